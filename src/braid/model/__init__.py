"""Conflict analysis: contract, LLM-backed analyzer and its tools."""

from braid.model.analysis import (
    AnalysisRequest,
    ConflictAnalyzer,
    ConflictResolution,
    ResolutionSuggestion,
    request_analysis,
)

__all__ = [
    "AnalysisRequest",
    "ConflictAnalyzer",
    "ConflictResolution",
    "ResolutionSuggestion",
    "request_analysis",
]
