"""Cycle detection, impact analysis and risk scoring."""

from shadowgraph.analysis.api_changes import classify_url_change, detect_api_url_changes
from shadowgraph.analysis.cycles import CycleDetector, cycle_signature
from shadowgraph.analysis.impact import ImpactAnalyzer
from shadowgraph.analysis.risk import RiskAssessor

__all__ = [
    "CycleDetector",
    "ImpactAnalyzer",
    "RiskAssessor",
    "classify_url_change",
    "cycle_signature",
    "detect_api_url_changes",
]
