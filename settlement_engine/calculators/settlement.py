"""
Settlement Calculator

Resolves the totals of a settlement record: cached totals when the record
carries them, live recomputation from the group's rate tables otherwise.
Also builds the per-line breakdown and the cache values to persist.
"""

import logging
from decimal import Decimal

from ..models import (
    FIXED_COMMISSION,
    REVENUE_SHARE,
    STATUS_DRAFT,
    ZERO,
    CachedTotals,
    CommissionTable,
    CommissionTableGroup,
    Counterparty,
    MaturityRate,
    SettlementComputation,
    SettlementLine,
    SettlementRecord,
    SettlementTotals,
    volume_key,
)
from .formula import EarningFormula, percent_of
from .grouping import TableGroupIndex

logger = logging.getLogger(__name__)


class SettlementCalculator:
    """Computes per-record settlement totals and breakdowns."""

    DEFAULT_STATUS = STATUS_DRAFT

    def __init__(self, formula: EarningFormula | None = None):
        self.formula = formula or EarningFormula()

    def totals(self, record: SettlementRecord, counterparty: Counterparty | None) -> SettlementTotals:
        """
        Totals of one record.

        Cached totals are authoritative: they are returned even if the rate
        tables changed since they were written. Only records without a cache
        are recomputed from the live tables.
        """
        if record.cached is not None:
            cached = record.cached
            return SettlementTotals(
                volume=cached.volume,
                gross=cached.gross,
                counterparty_share=cached.counterparty_share,
                platform_share=cached.platform_share,
                source="cached",
            )

        computation = self.compute(record, counterparty)
        return SettlementTotals(
            volume=computation.total_volume,
            gross=computation.total_gross,
            counterparty_share=computation.total_counterparty_share,
            platform_share=computation.total_platform_share,
            source="computed",
        )

    def compute(
        self,
        record: SettlementRecord,
        counterparty: Counterparty | None,
        include_negative: bool = True,
    ) -> SettlementComputation:
        """
        Recompute a record from its volume map and the group's open tables.

        Normal tables contribute one line per enabled term with a positive
        volume under "{table_id}-{term}". Supplemental tables contribute the
        volume under "{table_id}" with their own split percentages.

        With include_negative=False, negative shares are left out of the
        share totals and counted instead.
        """
        result = SettlementComputation()
        resolved = self._resolve(record, counterparty)
        if resolved is None:
            return result
        index, group = resolved

        for table in index.member_tables(group):
            if table.is_supplemental_income:
                volume = record.volume_for(table.id)
                if volume <= 0:
                    continue
                earning = self.formula.compute_supplemental(table, volume)
                result.supplemental_volume += volume
                result.supplemental_counterparty_share += earning.counterparty_share
                result.supplemental_platform_share += earning.platform_share
                result.contributing_lines += 1
                continue

            for rate in table.active_rates():
                volume = record.volume_for(table.id, rate.term)
                if volume <= 0:
                    continue
                earning = self.formula.compute(table, volume, rate.term)
                if earning is None:
                    continue

                buy_amount, sell_amount = self._trade_amounts(table, rate, volume, earning.gross)
                result.volume += volume
                result.buy_amount += buy_amount
                result.sell_amount += sell_amount
                result.gross += earning.gross
                result.contributing_lines += 1

                if include_negative or earning.counterparty_share >= 0:
                    result.counterparty_share += earning.counterparty_share
                else:
                    result.excluded_counterparty_count += 1

                if include_negative or earning.platform_share >= 0:
                    result.platform_share += earning.platform_share
                else:
                    result.excluded_platform_count += 1

        return result

    def detail_lines(self, record: SettlementRecord, counterparty: Counterparty | None) -> list[SettlementLine]:
        """Every enabled line of the record's group, zero-volume lines included."""
        resolved = self._resolve(record, counterparty)
        if resolved is None:
            return []
        index, group = resolved

        lines = []
        for table in index.member_tables(group):
            sequence = index.sequence_number(table.id)
            if table.is_supplemental_income:
                volume = record.volume_for(table.id)
                earning = self.formula.compute_supplemental(table, volume)
                detail = table.supplemental
                lines.append(self._line(
                    table, group, sequence, None, volume,
                    rate_display=f"{detail.counterparty_percent:.2f}% / {detail.platform_percent:.2f}%",
                    gross=earning.gross,
                    counterparty_share=earning.counterparty_share,
                    platform_share=earning.platform_share,
                    is_supplemental=True,
                ))
                continue

            for rate in table.active_rates():
                volume = record.volume_for(table.id, rate.term)
                earning = self.formula.compute_or_zero(table, volume, rate.term)
                buy_amount, sell_amount = self._trade_amounts(table, rate, volume, earning.gross)
                lines.append(self._line(
                    table, group, sequence, rate.term, volume,
                    rate_display=self._rate_display(table, rate),
                    buy_amount=buy_amount,
                    sell_amount=sell_amount,
                    gross=earning.gross,
                    counterparty_share=earning.counterparty_share or ZERO,
                    platform_share=earning.platform_share,
                ))
        return lines

    def build_cache(
        self,
        record: SettlementRecord,
        counterparty: Counterparty | None,
        include_negative: bool = True,
    ) -> CachedTotals:
        """
        Cache values to persist whenever a record's volumes change.

        volume             = manual volume, or the recomputed total volume
        counterparty share = recomputed + extra income - deductions
        platform share     = (manual platform share, or recomputed) + extra income - deductions
        """
        computation = self.compute(record, counterparty, include_negative)

        volume = record.manual_volume
        if volume is None:
            volume = computation.total_volume

        platform_base = record.manual_platform_share
        if platform_base is None:
            platform_base = computation.total_platform_share

        counterparty_share = (
            computation.total_counterparty_share
            + record.extra_income.counterparty_amount
            - record.deductions.counterparty_amount
        )
        platform_share = (
            platform_base
            + record.extra_income.platform_amount
            - record.deductions.platform_amount
        )
        return CachedTotals(
            volume=volume,
            counterparty_share=counterparty_share,
            platform_share=platform_share,
        )

    def open_settlement(
        self,
        counterparty: Counterparty,
        period: str,
        group_id: str | None = None,
        record_id: str = "",
    ) -> SettlementRecord:
        """
        Open a new draft settlement for a period.

        Without a group_id the agreement version in force for the period is
        used. Raises ValueError when no usable group applies.
        """
        index = TableGroupIndex(counterparty)
        if group_id is None:
            group = index.resolve_group_for_period(period)
            if group is None:
                raise ValueError(f"No active table group of {counterparty.name} covers period {period}")
        else:
            group = counterparty.group_by_id(group_id)
            if group is None:
                raise ValueError(f"Table group not found: {group_id}")
            if not group.active:
                raise ValueError(f"Table group {group.name} is not active")
            if not group.covers_period(period):
                raise ValueError(f"Table group {group.name} is not valid for period {period}")

        return SettlementRecord(
            id=record_id,
            counterparty_id=counterparty.id,
            group_id=group.id,
            period=period,
            status=self.DEFAULT_STATUS,
            group_name=group.name,
        )

    def group_name(self, record: SettlementRecord, counterparty: Counterparty | None) -> str:
        """Live group name when the group still exists, else the record's snapshot."""
        if counterparty is not None:
            group = counterparty.group_by_id(record.group_id)
            if group is not None:
                return group.name
        return record.group_name

    def _resolve(
        self,
        record: SettlementRecord,
        counterparty: Counterparty | None,
    ) -> tuple[TableGroupIndex, CommissionTableGroup] | None:
        if counterparty is None:
            logger.warning("Settlement %s references missing counterparty %s", record.id, record.counterparty_id)
            return None
        group = counterparty.group_by_id(record.group_id)
        if group is None:
            logger.warning("Settlement %s references missing table group %s", record.id, record.group_id)
            return None
        return TableGroupIndex(counterparty), group

    @staticmethod
    def _trade_amounts(
        table: CommissionTable,
        rate: MaturityRate,
        volume: Decimal,
        gross: Decimal,
    ) -> tuple[Decimal, Decimal]:
        """Buy and sell amounts of a line. Fixed commission counts the whole earning as sell."""
        if table.pricing_model == REVENUE_SHARE:
            return percent_of(volume, rate.buy_rate), percent_of(volume, rate.sell_rate)
        return ZERO, gross

    @staticmethod
    def _rate_display(table: CommissionTable, rate: MaturityRate) -> str:
        if table.pricing_model == FIXED_COMMISSION:
            return f"{rate.percent_rate:.2f}%"
        return f"{rate.buy_rate:.2f}% / {rate.sell_rate:.2f}%"

    @staticmethod
    def _line(
        table: CommissionTable,
        group: CommissionTableGroup,
        sequence: str,
        term: str | None,
        volume: Decimal,
        **amounts,
    ) -> SettlementLine:
        return SettlementLine(
            table_id=table.id,
            key=volume_key(table.id, term),
            sequence=sequence,
            group_name=group.name,
            description=table.description,
            product=table.product,
            card_type=table.card_type,
            geography=table.geography,
            model_label=table.model_label,
            term=term,
            classification=table.classification_label,
            volume=volume,
            **amounts,
        )
