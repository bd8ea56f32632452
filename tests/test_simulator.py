"""
Unit Tests for the Profitability Simulator

Tests verify per-model simulated earnings, eligibility rules and the ranking
of counterparties for a hypothetical amount.
"""

from decimal import Decimal

import pytest

from settlement_engine import SettlementEngine, SimulationInput
from settlement_engine.calculators import ProfitabilitySimulator
from settlement_engine.models import (
    Counterparty,
    FixedCommissionTable,
    MaturityRate,
    RevenueShareTable,
    SupplementalDetail,
    TreasuryDetail,
    TreasuryIncomeTable,
)

AMOUNT = Decimal("100000")


def _revenue_share(table_id="rs", buy="1.0", sell="1.5", **kwargs):
    return RevenueShareTable(
        id=table_id,
        card_type="Credit",
        counterparty_split_percent=Decimal("60"),
        platform_split_percent=Decimal("40"),
        maturity_rates=[MaturityRate(term="+7 days", buy_rate=Decimal(buy), sell_rate=Decimal(sell))],
        **kwargs,
    )


def _treasury(table_id="ti", earning="1000"):
    return TreasuryIncomeTable(
        id=table_id,
        card_type="Deposit",
        treasury_detail=TreasuryDetail(
            reference_amount=Decimal("50000"),
            platform_percent=Decimal("30"),
            earning=Decimal(earning),
        ),
    )


def _fixed(table_id="fc", percent="2.0"):
    return FixedCommissionTable(
        id=table_id,
        card_type="Debit",
        counterparty_split_percent=Decimal("70"),
        platform_split_percent=Decimal("30"),
        maturity_rates=[MaturityRate(term="D+1", percent_rate=Decimal(percent))],
    )


@pytest.fixture
def simulator():
    return ProfitabilitySimulator()


class TestRevenueShareSimulation:
    """earning = amount × (sell - buy) / 100"""

    def test_reference_amount(self, simulator):
        counterparty = Counterparty(id="a", name="Anadolu Bank", tables=[_revenue_share()])
        outcome = simulator.simulate([counterparty], AMOUNT)

        result = outcome.results[0]
        assert outcome.status == "ok"
        assert result.total_earning == Decimal("500")
        assert result.total_sell_volume == AMOUNT
        assert result.margin_percent == Decimal("0.5")
        assert result.average_buy_rate == Decimal("1.0")
        assert result.average_sell_rate == Decimal("1.5")
        assert result.rows[0].classification == "Credit - +7 days"

    def test_rows_without_both_rates_skipped(self, simulator):
        counterparty = Counterparty(id="a", name="Anadolu Bank", tables=[_revenue_share(buy="0")])
        assert simulator.simulate([counterparty], AMOUNT).status == "no_data"

    def test_negative_margin_reported(self, simulator):
        counterparty = Counterparty(id="a", name="Anadolu Bank", tables=[_revenue_share(buy="2.0")])
        assert simulator.simulate([counterparty], AMOUNT).results[0].total_earning == Decimal("-500")


class TestTreasurySimulation:
    """Stored earning scaled to the amount, platform percentage applied."""

    def test_scaled_platform_earning(self, simulator):
        counterparty = Counterparty(id="b", name="Marmara Payments", tables=[_treasury()])
        result = simulator.simulate([counterparty], AMOUNT).results[0]

        assert result.rows[0].scaled_gross == Decimal("2000")
        assert result.rows[0].classification == "- / Deposit / Domestic"
        assert result.total_earning == Decimal("600")
        # No revenue share rows, so no sell volume and no margin
        assert result.total_sell_volume == Decimal("0")
        assert result.margin_percent == Decimal("0")

    def test_zero_earning_skipped(self, simulator):
        counterparty = Counterparty(id="b", name="Marmara Payments", tables=[_treasury(earning="0")])
        assert simulator.simulate([counterparty], AMOUNT).status == "no_data"


class TestFixedCommissionSimulation:
    """Only the platform side of the commission counts as earning."""

    def test_platform_side(self, simulator):
        counterparty = Counterparty(id="d", name="Ege Bank", tables=[_fixed()])
        row = simulator.simulate([counterparty], AMOUNT).results[0].rows[0]

        assert row.commission_amount == Decimal("2000")
        assert row.earning == Decimal("600")
        assert row.model_label == "Fixed Commission (2.0%)"


class TestEligibility:
    """Closed, inactive and supplemental tables are left out."""

    def test_ineligible_tables(self, simulator):
        supplemental = _revenue_share("sup", supplemental=SupplementalDetail(code="RB"))
        counterparty = Counterparty(
            id="c",
            name="Closed Bank",
            tables=[
                _revenue_share("closed", closed_at="2024-12-31"),
                _revenue_share("inactive", active=False),
                supplemental,
            ],
        )
        outcome = simulator.simulate([counterparty], AMOUNT)

        assert outcome.status == "no_data"
        assert outcome.message == ProfitabilitySimulator.NO_DATA_MESSAGE
        assert not outcome.has_data

    def test_empty_counterparty_excluded_from_results(self, simulator):
        counterparties = [
            Counterparty(id="a", name="Anadolu Bank", tables=[_revenue_share()]),
            Counterparty(id="e", name="Empty Bank"),
        ]
        outcome = simulator.simulate(counterparties, AMOUNT)
        assert [r.counterparty_id for r in outcome.results] == ["a"]


class TestRanking:
    """Counterparties ranked by total earning, ties in enumeration order."""

    def test_descending_by_earning(self, simulator):
        counterparties = [
            Counterparty(id="a", name="Anadolu Bank", tables=[_revenue_share()]),
            Counterparty(id="b", name="Marmara Payments", tables=[_treasury()]),
        ]
        outcome = simulator.simulate(counterparties, AMOUNT)

        assert [r.counterparty_id for r in outcome.results] == ["b", "a"]
        assert outcome.message == "Profitability computed for 2 counterparties"

    def test_ties_are_stable(self, simulator):
        counterparties = [
            Counterparty(id="d", name="Ege Bank", tables=[_fixed()]),
            Counterparty(id="b", name="Marmara Payments", tables=[_treasury()]),
        ]
        outcome = simulator.simulate(counterparties, AMOUNT)
        assert [r.counterparty_id for r in outcome.results] == ["d", "b"]

    def test_totals_sum_all_models(self, simulator):
        counterparty = Counterparty(
            id="m",
            name="Mixed Bank",
            tables=[_revenue_share(), _treasury(), _fixed()],
        )
        result = simulator.simulate([counterparty], AMOUNT).results[0]

        assert result.row_count == 3
        assert result.total_earning == Decimal("1700")
        # Margin is measured over the revenue share sell volume
        assert result.margin_percent == Decimal("1.7")


class TestAmountValidation:
    """The engine rejects non-positive amounts before simulating."""

    @pytest.fixture
    def engine(self):
        return SettlementEngine()

    @pytest.mark.parametrize("amount", [0, -100, "abc", None, ""])
    def test_rejected(self, engine, amount):
        with pytest.raises(ValueError):
            engine.simulate(SimulationInput(counterparties=[], amount=amount))

    def test_string_amount_accepted(self, engine):
        counterparty = Counterparty(id="a", name="Anadolu Bank", tables=[_revenue_share()])
        outcome = engine.simulate(SimulationInput(counterparties=[counterparty], amount="100000"))
        assert outcome.results[0].total_earning == Decimal("500")
