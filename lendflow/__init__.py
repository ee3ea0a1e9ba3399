"""LendFlow - deterministic underwriting analysis of extracted loan documents."""

from lendflow.analysis_engine import AnalysisOptions, FullAnalysisReport, run_full_analysis

__version__ = "1.0.0"
__all__ = ["run_full_analysis", "AnalysisOptions", "FullAnalysisReport"]
