"""
Opportunity scanning and the analysis facade.
"""

from arbengine.engine.facade import (
    AnalysisConstraints,
    AnalysisStage,
    ArbitrageEngine,
    EngineStats,
    Scenario,
    ScanAndAnalyzeResult,
)
from arbengine.engine.scanner import BatchScanResult, OpportunityScanner, ScanOptions, TokenScanResult

__all__ = [
    "AnalysisConstraints",
    "AnalysisStage",
    "ArbitrageEngine",
    "BatchScanResult",
    "EngineStats",
    "OpportunityScanner",
    "ScanAndAnalyzeResult",
    "ScanOptions",
    "Scenario",
    "TokenScanResult",
]
