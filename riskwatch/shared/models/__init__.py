"""Shared domain models for the riskwatch platform."""
from .risk import (
    RiskLevel,
    CounselingRecommendation,
    LifecycleStatus,
    AnalysisSource,
    ConfidenceLevel,
    RISK_SCORE_TABLE,
    risk_score_for,
    AssessmentResult,
    degraded_assessment,
    ConversationRecord,
)

__all__ = [
    "RiskLevel",
    "CounselingRecommendation",
    "LifecycleStatus",
    "AnalysisSource",
    "ConfidenceLevel",
    "RISK_SCORE_TABLE",
    "risk_score_for",
    "AssessmentResult",
    "degraded_assessment",
    "ConversationRecord",
]
