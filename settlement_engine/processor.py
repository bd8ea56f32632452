"""
Settlement Engine - Main Orchestrator

Coordinates settlement computation, reporting and profitability simulation
through discrete, testable steps.
"""

import json
import logging
from typing import Any, Dict

from .calculators import (
    EarningFormula,
    ProfitabilitySimulator,
    ReportAggregator,
    SettlementCalculator,
    TableGroupIndex,
)
from .models import (
    Counterparty,
    ReportInput,
    SettlementInput,
    SettlementRecord,
    SettlementReport,
    SettlementResult,
    SimulationInput,
    SimulationOutcome,
)
from .output import OutputBuilder
from .validators import InputValidator

logger = logging.getLogger(__name__)


class SettlementEngine:
    """
    Main orchestrator of the commission & settlement engine.

    Settlement pipeline:
    1. Validate Input
    2. Locate Counterparty
    3. Resolve Totals (cache first)
    4. Recompute From Rate Tables
    5. Build Breakdown Lines
    6. Build Cache Values
    7. Build Output

    Report and simulation pipelines reuse the same formula instance; the
    report aggregator and the simulator never call each other.
    """

    def __init__(self):
        self.validator = InputValidator()
        self.formula = EarningFormula()
        self.settlement_calculator = SettlementCalculator(self.formula)
        self.report_aggregator = ReportAggregator(self.settlement_calculator)
        self.simulator = ProfitabilitySimulator(self.formula)
        self.output_builder = OutputBuilder()

    def compute_settlement(self, input_data: SettlementInput) -> SettlementResult:
        """
        Compute one settlement record against a snapshot.

        Args:
            input_data: SettlementInput with the record and counterparties

        Returns:
            SettlementResult with totals, recomputation, lines and cache values
        """
        record = input_data.record

        # Step 1: Validate
        self.validator.validate_period(record.period)
        self.validator.check_agreements(input_data.counterparties)

        # Step 2: Locate the owning counterparty (may be gone)
        counterparty = self._find_counterparty(input_data.counterparties, record.counterparty_id)

        # Steps 3-6
        calculator = self.settlement_calculator
        return SettlementResult(
            record=record,
            group_name=calculator.group_name(record, counterparty),
            totals=calculator.totals(record, counterparty),
            computation=calculator.compute(record, counterparty, input_data.include_negative),
            lines=calculator.detail_lines(record, counterparty),
            cache=calculator.build_cache(record, counterparty, input_data.include_negative),
        )

    def build_report(self, input_data: ReportInput) -> SettlementReport:
        """Aggregate settlement records for reporting."""
        logger.info("Building settlement report over %d records", len(input_data.records))
        return self.report_aggregator.build_report(
            input_data.records,
            input_data.counterparties,
            input_data.filters,
        )

    def simulate(self, input_data: SimulationInput) -> SimulationOutcome:
        """
        Run a profitability simulation.

        The amount is validated before anything is computed.
        """
        amount = self.validator.validate_simulation_amount(input_data.amount)
        return self.simulator.simulate(input_data.counterparties, amount)

    def open_settlement(
        self,
        counterparty: Counterparty,
        period: str,
        group_id: str | None = None,
        record_id: str = "",
    ) -> SettlementRecord:
        """Open a draft settlement for the agreement version in force."""
        self.validator.validate_period(period)
        return self.settlement_calculator.open_settlement(counterparty, period, group_id, record_id)

    # -------------------------------------------------------------------------
    # Dictionary API
    # -------------------------------------------------------------------------

    def compute_settlement_from_dict(self, data: Dict[str, Any]) -> Dict[str, Any]:
        result = self.compute_settlement(SettlementInput.from_dict(data))
        return self.output_builder.build_settlement(result)

    def build_report_from_dict(self, data: Dict[str, Any]) -> Dict[str, Any]:
        report = self.build_report(ReportInput.from_dict(data))
        return self.output_builder.build_report(report)

    def simulate_from_dict(self, data: Dict[str, Any]) -> Dict[str, Any]:
        outcome = self.simulate(SimulationInput.from_dict(data))
        return self.output_builder.build_simulation(outcome)

    def open_settlement_from_dict(self, data: Dict[str, Any]) -> Dict[str, Any]:
        """Open a settlement and list the volume keys to fill in."""
        counterparty = Counterparty.from_dict(data["counterparty"])
        record = self.open_settlement(
            counterparty,
            data.get("period"),
            data.get("group_id") or None,
            str(data.get("record_id", "")),
        )
        group = counterparty.group_by_id(record.group_id)
        return {
            "id": record.id,
            "counterparty_id": record.counterparty_id,
            "group_id": record.group_id,
            "group_name": record.group_name,
            "period": record.period,
            "status": record.status,
            "volume_by_key": {},
            "volume_keys": TableGroupIndex(counterparty).volume_keys(group),
        }

    @staticmethod
    def _find_counterparty(counterparties: list[Counterparty], counterparty_id: str) -> Counterparty | None:
        for counterparty in counterparties:
            if counterparty.id == counterparty_id:
                return counterparty
        logger.warning("Counterparty %s not found in snapshot", counterparty_id)
        return None


# =============================================================================
# CONVENIENCE FUNCTIONS
# =============================================================================

def compute_settlement_from_dict(input_data: Dict[str, Any]) -> Dict[str, Any]:
    """Compute one settlement record from a Python dict."""
    return SettlementEngine().compute_settlement_from_dict(input_data)


def build_report_from_dict(input_data: Dict[str, Any]) -> Dict[str, Any]:
    """Build a settlement report from a Python dict."""
    return SettlementEngine().build_report_from_dict(input_data)


def simulate_from_dict(input_data: Dict[str, Any]) -> Dict[str, Any]:
    """Run a profitability simulation from a Python dict."""
    return SettlementEngine().simulate_from_dict(input_data)


def simulate_from_json(json_input: str) -> str:
    """
    Run a profitability simulation from a JSON string and return a JSON string.
    """
    try:
        input_data = json.loads(json_input)
        result = SettlementEngine().simulate_from_dict(input_data)
        return json.dumps(result, indent=2)

    except ValueError as e:
        error_response = {"error": str(e), "status": "validation_failed"}
        return json.dumps(error_response, indent=2)

    except Exception as e:
        logger.exception("Simulation failed")
        error_response = {"error": str(e), "status": "failed"}
        return json.dumps(error_response, indent=2)
