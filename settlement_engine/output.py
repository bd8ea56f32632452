"""
Output Builder

Constructs JSON-ready API responses from calculation results.
"""

from decimal import Decimal

from .calculators.formula import quantize_money
from .models import (
    CachedTotals,
    CounterpartySummary,
    PeriodSummary,
    SettlementLine,
    SettlementReport,
    SettlementResult,
    SettlementTotals,
    SimulationOutcome,
    SimulationResult,
    SimulationRow,
)


def to_money(value: Decimal) -> float:
    """Convert Decimal to float with 2 decimal places (ROUND_HALF_UP)."""
    return float(quantize_money(value))


def to_rate(value: Decimal) -> float:
    """Convert a rate or percentage to float with 4 decimal places."""
    return round(float(value), 4)


def _fmt(value) -> str:
    """Format a number as an amount string for descriptions."""
    return f"{value:,.2f}"


class OutputBuilder:
    """Builds the final output responses."""

    def build_settlement(self, result: SettlementResult) -> dict:
        """Totals, cache values and breakdown of one settlement record."""
        record = result.record
        computation = result.computation
        return {
            "record": {
                "id": record.id,
                "counterparty_id": record.counterparty_id,
                "group_id": record.group_id,
                "group_name": result.group_name,
                "period": record.period,
                "status": record.status,
            },
            "totals": self._totals(result.totals),
            "computation": {
                "volume": to_money(computation.volume),
                "buy_amount": to_money(computation.buy_amount),
                "sell_amount": to_money(computation.sell_amount),
                "gross": to_money(computation.gross),
                "counterparty_share": to_money(computation.counterparty_share),
                "platform_share": to_money(computation.platform_share),
                "supplemental_volume": to_money(computation.supplemental_volume),
                "supplemental_counterparty_share": to_money(computation.supplemental_counterparty_share),
                "supplemental_platform_share": to_money(computation.supplemental_platform_share),
                "excluded_counterparty_count": computation.excluded_counterparty_count,
                "excluded_platform_count": computation.excluded_platform_count,
                "contributing_lines": computation.contributing_lines,
            },
            "cache": self.build_cache(result.cache),
            "lines": [self._line(line) for line in result.lines],
        }

    def build_cache(self, cache: CachedTotals) -> dict:
        """Cache fields in the shape the application persists on the record."""
        return {
            "cached_volume": to_money(cache.volume),
            "cached_counterparty_share": to_money(cache.counterparty_share),
            "cached_platform_share": to_money(cache.platform_share),
        }

    def build_report(self, report: SettlementReport) -> dict:
        summary = report.summary
        return {
            "summary": {
                "record_count": summary.record_count,
                "finalized_count": summary.finalized_count,
                "draft_count": summary.draft_count,
                "total_volume": to_money(summary.total_volume),
                "total_gross": to_money(summary.total_gross),
                "total_counterparty_share": to_money(summary.total_counterparty_share),
                "total_platform_share": to_money(summary.total_platform_share),
                "average_gross": to_money(summary.average_gross),
                "counterparty_ratio_percent": round(float(summary.counterparty_ratio_percent), 1),
            },
            "by_counterparty": [self._counterparty_summary(s) for s in report.by_counterparty],
            "by_period": [self._period_summary(s) for s in report.by_period],
        }

    def build_simulation(self, outcome: SimulationOutcome) -> dict:
        """Ranked simulation results, or the explicit no_data signal."""
        return {
            "status": outcome.status,
            "amount": to_money(outcome.amount),
            "message": outcome.message,
            "result_count": len(outcome.results),
            "results": [self._simulation_result(r, rank) for rank, r in enumerate(outcome.results, start=1)],
        }

    def _totals(self, totals: SettlementTotals) -> dict:
        return {
            "volume": to_money(totals.volume),
            "gross": to_money(totals.gross),
            "counterparty_share": to_money(totals.counterparty_share),
            "platform_share": to_money(totals.platform_share),
            "source": totals.source,
        }

    def _line(self, line: SettlementLine) -> dict:
        return {
            "sequence": line.sequence,
            "table_id": line.table_id,
            "key": line.key,
            "group_name": line.group_name,
            "description": line.description,
            "product": line.product,
            "card_type": line.card_type,
            "geography": line.geography,
            "classification": line.classification,
            "model": line.model_label,
            "term": line.term,
            "rate": line.rate_display,
            "volume": to_money(line.volume),
            "buy_amount": to_money(line.buy_amount),
            "sell_amount": to_money(line.sell_amount),
            "gross": to_money(line.gross),
            "counterparty_share": to_money(line.counterparty_share),
            "platform_share": to_money(line.platform_share),
            "is_supplemental": line.is_supplemental,
        }

    def _counterparty_summary(self, summary: CounterpartySummary) -> dict:
        return {
            "counterparty_id": summary.counterparty_id,
            "name": summary.name,
            "record_count": summary.record_count,
            "volume": to_money(summary.volume),
            "gross": to_money(summary.gross),
            "counterparty_share": to_money(summary.counterparty_share),
            "platform_share": to_money(summary.platform_share),
        }

    def _period_summary(self, summary: PeriodSummary) -> dict:
        return {
            "period": summary.period,
            "record_count": summary.record_count,
            "volume": to_money(summary.volume),
            "gross": to_money(summary.gross),
            "counterparty_share": to_money(summary.counterparty_share),
            "platform_share": to_money(summary.platform_share),
        }

    def _simulation_result(self, result: SimulationResult, rank: int) -> dict:
        return {
            "rank": rank,
            "counterparty_id": result.counterparty_id,
            "counterparty_name": result.counterparty_name,
            "counterparty_type": result.counterparty_type,
            "row_count": result.row_count,
            "average_buy_rate": to_rate(result.average_buy_rate),
            "average_sell_rate": to_rate(result.average_sell_rate),
            "total_sell_volume": to_money(result.total_sell_volume),
            "total_earning": to_money(result.total_earning),
            "margin_percent": round(float(result.margin_percent), 2),
            "rows": [self._simulation_row(row) for row in result.rows],
        }

    def _simulation_row(self, row: SimulationRow) -> dict:
        if row.commission_amount:
            description = f"commission {_fmt(row.commission_amount)}, platform earning {_fmt(row.earning)}"
        elif row.scaled_gross:
            description = f"scaled treasury earning {_fmt(row.scaled_gross)}, platform earning {_fmt(row.earning)}"
        else:
            description = f"sell {row.sell_rate}% - buy {row.buy_rate}% = {_fmt(row.earning)}"
        return {
            "counterparty_name": row.counterparty_name,
            "table_id": row.table_id,
            "classification": row.classification,
            "model": row.model_label,
            "buy_rate": to_rate(row.buy_rate),
            "sell_rate": to_rate(row.sell_rate),
            "commission_amount": to_money(row.commission_amount),
            "scaled_gross": to_money(row.scaled_gross),
            "earning": to_money(row.earning),
            "description": description,
        }
