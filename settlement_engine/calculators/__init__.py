"""
Calculators Package

Provides the calculation components of the settlement engine.
"""

from .formula import EarningFormula
from .grouping import TableGroupIndex
from .report import ReportAggregator, ReportFilters
from .settlement import SettlementCalculator
from .simulation import ProfitabilitySimulator

__all__ = [
    "EarningFormula",
    "TableGroupIndex",
    "SettlementCalculator",
    "ReportAggregator",
    "ReportFilters",
    "ProfitabilitySimulator",
]
