"""
Quality gate for generated scenes.
"""

from .gate import (
    IssueSeverity,
    ProjectQualityReport,
    QualityGate,
    QualityIssue,
    SceneAnalysis,
    SceneQualityStatus,
    SceneStatus,
    derive_status,
)

__all__ = [
    "IssueSeverity",
    "ProjectQualityReport",
    "QualityGate",
    "QualityIssue",
    "SceneAnalysis",
    "SceneQualityStatus",
    "SceneStatus",
    "derive_status",
]
