from .structure import (
    AnswerAssessment,
    AnswerStrength,
    Anomaly,
    GapKind,
    StructuralAnalyzer,
    classify,
)
from .validation import IssueKind, ValidationIssue, validate_graph

__all__ = [
    "AnswerAssessment",
    "AnswerStrength",
    "Anomaly",
    "GapKind",
    "IssueKind",
    "StructuralAnalyzer",
    "ValidationIssue",
    "classify",
    "validate_graph",
]
