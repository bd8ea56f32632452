"""
COMMISSION & SETTLEMENT CALCULATION ENGINE
Rate tables, settlement aggregation and profitability simulation
"""

from .models import ReportInput, SettlementInput, SimulationInput
from .processor import SettlementEngine

__all__ = ['SettlementEngine', 'SettlementInput', 'ReportInput', 'SimulationInput']
