"""
LendFlow analysis engine - deterministic loan underwriting analysis.

Takes already-extracted financial documents and produces a single
underwriting report: qualifying income, business performance, deposit
behaviour, DSCR, DTI, liquidity and ranked risk flags.

Key Principles:
1. Deterministic - identical input yields an identical report
2. Order-independent - record order never changes a figure
3. Tolerant - malformed data degrades to zeros and notes, never raises
"""

from lendflow.analysis_engine.models import (
    FullAnalysisReport,
    LoanPurpose,
    RiskRating,
    Severity,
)
from lendflow.analysis_engine.orchestrator import AnalysisOptions, run_full_analysis

__all__ = [
    "run_full_analysis",
    "AnalysisOptions",
    "FullAnalysisReport",
    "LoanPurpose",
    "RiskRating",
    "Severity",
]
