"""
Settlement Report Aggregator

Filters settlement records and sums their totals across counterparties and
periods for reporting. Each record is resolved once (cached totals or live
recomputation) and the same totals feed every filter and every aggregate.
"""

from dataclasses import dataclass, fields
from datetime import date
from decimal import Decimal

from ..models import (
    STATUS_FINALIZED,
    ZERO,
    Counterparty,
    CounterpartySummary,
    HUNDRED,
    PeriodSummary,
    ReportSummary,
    SettlementRecord,
    SettlementReport,
    SettlementTotals,
    parse_date,
)
from ..validators import parse_amount
from .settlement import SettlementCalculator

ALL = "all"


def _is_blank(value) -> bool:
    return value is None or not str(value).strip()


def _selected(value) -> bool:
    """Whether a select-style filter is set to something other than blank/'all'."""
    return not _is_blank(value) and str(value).strip() != ALL


def _bound(value) -> Decimal | None:
    if _is_blank(value):
        return None
    try:
        return parse_amount(value)
    except ValueError:
        return None


def _day(value) -> date | None:
    if _is_blank(value):
        return None
    try:
        return parse_date(str(value))
    except ValueError:
        return None


@dataclass
class ReportFilters:
    """
    Raw report filter inputs, exactly as the caller supplied them.

    Every filter is an independent predicate. A blank or unparseable input
    skips its predicate rather than excluding records.
    """

    counterparty_id: str | None = None
    period: str | None = None
    status: str | None = None
    counterparty_name: str | None = None
    period_text: str | None = None
    group_name: str | None = None
    volume_min: str | None = None
    volume_max: str | None = None
    counterparty_share_min: str | None = None
    counterparty_share_max: str | None = None
    platform_share_min: str | None = None
    platform_share_max: str | None = None
    created_from: str | None = None
    created_to: str | None = None

    @classmethod
    def from_dict(cls, data: dict | None) -> "ReportFilters":
        data = data or {}
        known = {f.name for f in fields(cls)}
        return cls(**{k: v for k, v in data.items() if k in known})


@dataclass
class _ResolvedRecord:
    record: SettlementRecord
    counterparty: Counterparty | None
    group_name: str
    totals: SettlementTotals


class ReportAggregator:
    """Aggregates settlement records by counterparty, by period and overall."""

    def __init__(self, calculator: SettlementCalculator | None = None):
        self.calculator = calculator or SettlementCalculator()

    def filter_records(
        self,
        records: list[SettlementRecord],
        counterparties: list[Counterparty],
        filters: ReportFilters | dict | None = None,
    ) -> list[SettlementRecord]:
        return [r.record for r in self._resolve_filtered(records, counterparties, filters)]

    def by_counterparty(self, records, counterparties, filters=None) -> list[CounterpartySummary]:
        return self._by_counterparty(self._resolve_filtered(records, counterparties, filters))

    def by_period(self, records, counterparties, filters=None) -> list[PeriodSummary]:
        return self._by_period(self._resolve_filtered(records, counterparties, filters))

    def summary(self, records, counterparties, filters=None) -> ReportSummary:
        return self._summary(self._resolve_filtered(records, counterparties, filters))

    def build_report(
        self,
        records: list[SettlementRecord],
        counterparties: list[Counterparty],
        filters: ReportFilters | dict | None = None,
    ) -> SettlementReport:
        """Summary, counterparty ranking and period trend over the filtered records."""
        resolved = self._resolve_filtered(records, counterparties, filters)
        return SettlementReport(
            summary=self._summary(resolved),
            by_counterparty=self._by_counterparty(resolved),
            by_period=self._by_period(resolved),
        )

    # -------------------------------------------------------------------------

    def _resolve_filtered(self, records, counterparties, filters) -> list[_ResolvedRecord]:
        if not isinstance(filters, ReportFilters):
            filters = ReportFilters.from_dict(filters)
        by_id = {c.id: c for c in counterparties}

        resolved = []
        for record in records:
            counterparty = by_id.get(record.counterparty_id)
            entry = _ResolvedRecord(
                record=record,
                counterparty=counterparty,
                group_name=self.calculator.group_name(record, counterparty),
                totals=self.calculator.totals(record, counterparty),
            )
            if self._matches(entry, filters):
                resolved.append(entry)
        return resolved

    def _matches(self, entry: _ResolvedRecord, filters: ReportFilters) -> bool:
        record = entry.record
        totals = entry.totals

        if _selected(filters.counterparty_id) and record.counterparty_id != str(filters.counterparty_id).strip():
            return False
        if _selected(filters.period) and record.period != str(filters.period).strip():
            return False
        if _selected(filters.status) and record.status != str(filters.status).strip():
            return False

        if not _is_blank(filters.counterparty_name):
            name = entry.counterparty.name if entry.counterparty else ""
            if str(filters.counterparty_name).strip().lower() not in name.lower():
                return False
        if not _is_blank(filters.period_text) and str(filters.period_text).strip() not in record.period:
            return False
        if not _is_blank(filters.group_name):
            if str(filters.group_name).strip().lower() not in (entry.group_name or "").lower():
                return False

        if not self._in_range(totals.volume, filters.volume_min, filters.volume_max):
            return False
        if not self._in_range(totals.counterparty_share, filters.counterparty_share_min, filters.counterparty_share_max):
            return False
        if not self._in_range(totals.platform_share, filters.platform_share_min, filters.platform_share_max):
            return False

        return self._in_date_range(record.created_at, filters.created_from, filters.created_to)

    @staticmethod
    def _in_range(value: Decimal, low_raw, high_raw) -> bool:
        low = _bound(low_raw)
        high = _bound(high_raw)
        if low is not None and value < low:
            return False
        if high is not None and value > high:
            return False
        return True

    @staticmethod
    def _in_date_range(created_at: str | None, start_raw, end_raw) -> bool:
        """Inclusive whole-day range. Records without a readable creation date are kept."""
        start = _day(start_raw)
        end = _day(end_raw)
        if start is None and end is None:
            return True
        created = _day(created_at)
        if created is None:
            return True
        if start is not None and created < start:
            return False
        if end is not None and created > end:
            return False
        return True

    @staticmethod
    def _by_counterparty(resolved: list[_ResolvedRecord]) -> list[CounterpartySummary]:
        summaries: dict[str, CounterpartySummary] = {}
        for entry in resolved:
            if entry.counterparty is None:
                continue
            summary = summaries.get(entry.counterparty.id)
            if summary is None:
                summary = CounterpartySummary(counterparty_id=entry.counterparty.id, name=entry.counterparty.name)
                summaries[entry.counterparty.id] = summary
            summary.record_count += 1
            summary.volume += entry.totals.volume
            summary.gross += entry.totals.gross
            summary.counterparty_share += entry.totals.counterparty_share
            summary.platform_share += entry.totals.platform_share

        return sorted(summaries.values(), key=lambda s: s.gross, reverse=True)

    @staticmethod
    def _by_period(resolved: list[_ResolvedRecord]) -> list[PeriodSummary]:
        summaries: dict[str, PeriodSummary] = {}
        for entry in resolved:
            period = entry.record.period
            summary = summaries.setdefault(period, PeriodSummary(period=period))
            summary.record_count += 1
            summary.volume += entry.totals.volume
            summary.gross += entry.totals.gross
            summary.counterparty_share += entry.totals.counterparty_share
            summary.platform_share += entry.totals.platform_share

        # YYYY-MM sorts chronologically as text
        return sorted(summaries.values(), key=lambda s: s.period)

    @staticmethod
    def _summary(resolved: list[_ResolvedRecord]) -> ReportSummary:
        summary = ReportSummary(record_count=len(resolved))
        for entry in resolved:
            if entry.record.status == STATUS_FINALIZED:
                summary.finalized_count += 1
            else:
                summary.draft_count += 1
            summary.total_volume += entry.totals.volume
            summary.total_gross += entry.totals.gross
            summary.total_counterparty_share += entry.totals.counterparty_share
            summary.total_platform_share += entry.totals.platform_share

        if summary.record_count:
            summary.average_gross = summary.total_gross / summary.record_count
        if summary.total_gross != ZERO:
            summary.counterparty_ratio_percent = summary.total_counterparty_share / summary.total_gross * HUNDRED
        return summary
