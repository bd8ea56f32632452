"""
Profitability Simulator

Applies the earning formulas to a hypothetical transaction amount across
every counterparty's open rate tables, then ranks counterparties by the
implied platform earning.
"""

import logging
from decimal import Decimal

from ..models import (
    FIXED_COMMISSION,
    HUNDRED,
    REVENUE_SHARE,
    TREASURY_INCOME,
    ZERO,
    CommissionTable,
    Counterparty,
    SimulationOutcome,
    SimulationResult,
    SimulationRow,
)
from .formula import EarningFormula

logger = logging.getLogger(__name__)


class ProfitabilitySimulator:
    """Stateless what-if calculator over a counterparty snapshot."""

    NO_DATA_MESSAGE = "No computable rate table data found"

    def __init__(self, formula: EarningFormula | None = None):
        self.formula = formula or EarningFormula()

    def simulate(self, counterparties: list[Counterparty], amount: Decimal) -> SimulationOutcome:
        """
        Simulate every counterparty for one amount.

        The amount must already be validated (> 0). Counterparties without a
        contributing row are left out; when none contributes the outcome is
        an explicit no_data, not an empty success.
        """
        results = []
        for counterparty in counterparties:
            result = self._simulate_counterparty(counterparty, amount)
            if result is not None:
                results.append(result)

        if not results:
            logger.info("Simulation of %s found no computable rate tables", amount)
            return SimulationOutcome(amount=amount, status="no_data", message=self.NO_DATA_MESSAGE)

        # sorted() is stable with reverse=True, ties keep enumeration order
        ranked = sorted(results, key=lambda r: r.total_earning, reverse=True)
        logger.info("Simulation of %s ranked %d counterparties", amount, len(ranked))
        return SimulationOutcome(
            amount=amount,
            status="ok",
            results=ranked,
            message=f"Profitability computed for {len(ranked)} counterparties",
        )

    def _simulate_counterparty(self, counterparty: Counterparty, amount: Decimal) -> SimulationResult | None:
        rows: list[SimulationRow] = []
        for table in counterparty.tables:
            if not self._is_eligible(table):
                continue
            if table.pricing_model == REVENUE_SHARE:
                rows.extend(self._revenue_share_rows(counterparty, table, amount))
            elif table.pricing_model == FIXED_COMMISSION:
                rows.extend(self._fixed_commission_rows(counterparty, table, amount))
            elif table.pricing_model == TREASURY_INCOME:
                rows.extend(self._treasury_rows(counterparty, table, amount))

        if not rows:
            return None

        revenue_rows = [r for r in rows if r.pricing_model == REVENUE_SHARE]
        total_earning = sum((r.earning for r in rows), ZERO)
        total_sell_volume = amount * len(revenue_rows)

        result = SimulationResult(
            counterparty_id=counterparty.id,
            counterparty_name=counterparty.name,
            counterparty_type=counterparty.counterparty_type,
            row_count=len(rows),
            total_sell_volume=total_sell_volume,
            total_earning=total_earning,
            rows=rows,
        )
        if revenue_rows:
            result.average_buy_rate = sum((r.buy_rate for r in revenue_rows), ZERO) / len(revenue_rows)
            result.average_sell_rate = sum((r.sell_rate for r in revenue_rows), ZERO) / len(revenue_rows)
        if total_sell_volume > 0:
            result.margin_percent = total_earning / total_sell_volume * HUNDRED
        return result

    @staticmethod
    def _is_eligible(table: CommissionTable) -> bool:
        return table.active and not table.is_closed and not table.is_supplemental_income

    def _revenue_share_rows(self, counterparty, table, amount) -> list[SimulationRow]:
        """The amount is the sell-side volume of each term: earning = amount * (sell - buy) / 100."""
        rows = []
        for rate in table.active_rates():
            if rate.buy_rate <= 0 or rate.sell_rate <= 0:
                continue
            earning = self.formula.compute(table, amount, rate.term)
            rows.append(SimulationRow(
                counterparty_name=counterparty.name,
                table_id=table.id,
                classification=f"{table.card_type} - {rate.term}",
                model_label=table.model_label,
                pricing_model=table.pricing_model,
                buy_rate=rate.buy_rate,
                sell_rate=rate.sell_rate,
                earning=earning.gross,
            ))
        return rows

    def _fixed_commission_rows(self, counterparty, table, amount) -> list[SimulationRow]:
        """Only the platform side of the commission is reported."""
        rows = []
        for rate in table.active_rates():
            if rate.percent_rate <= 0:
                continue
            commission = self.formula.compute(table, amount, rate.term)
            rows.append(SimulationRow(
                counterparty_name=counterparty.name,
                table_id=table.id,
                classification=f"{table.card_type} - {rate.term}",
                model_label=f"{table.model_label} ({rate.percent_rate}%)",
                pricing_model=table.pricing_model,
                commission_amount=commission.gross,
                earning=commission.platform_share,
            ))
        return rows

    def _treasury_rows(self, counterparty, table, amount) -> list[SimulationRow]:
        detail = table.treasury_detail
        if detail.earning <= 0:
            return []
        scaled = self.formula.scale_treasury(table, amount)
        return [SimulationRow(
            counterparty_name=counterparty.name,
            table_id=table.id,
            classification=table.classification_label,
            model_label=f"{table.model_label} ({detail.platform_percent}%)",
            pricing_model=table.pricing_model,
            scaled_gross=scaled.gross,
            earning=scaled.platform_share,
        )]
