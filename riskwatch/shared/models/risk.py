"""Risk vocabulary and conversation domain models.

This file defines the internal enums every provider response is clamped
to, the ephemeral assessment value object, and the persisted
conversation record.
"""
from dataclasses import dataclass, field, replace
from datetime import datetime
from enum import Enum
from typing import Dict, List, Optional


class RiskLevel(Enum):
    """Ordinal risk classification produced by the AI analysis provider."""
    NONE = "none"
    LOW = "low"
    MEDIUM = "medium"
    HIGH = "high"
    SEVERE = "severe"
    UNKNOWN = "unknown"     # Provider output unrecognized or unavailable


class CounselingRecommendation(Enum):
    """Whether the caller should be referred to a counselor."""
    NONE = "none"
    ADVISED = "advised"
    REQUIRED = "required"


class LifecycleStatus(Enum):
    """Conversation lifecycle states. None of them is terminal."""
    ACTIVE = "active"
    COMPLETED = "completed"
    NO_TRANSCRIPT = "no_transcript"
    ANALYSIS_ONLY = "analysis_only"


class AnalysisSource(Enum):
    """Which channel produced an assessment."""
    AUDIO = "audio"
    TEXT = "text"
    CACHED = "cached"
    FALLBACK_DEFAULT = "fallback-default"


class ConfidenceLevel(Enum):
    LOW = "low"
    MEDIUM = "medium"
    HIGH = "high"


# Sorting/display only. Classification always comes from the provider.
RISK_SCORE_TABLE: Dict[RiskLevel, int] = {
    RiskLevel.NONE: 0,
    RiskLevel.LOW: 2,
    RiskLevel.MEDIUM: 4,
    RiskLevel.HIGH: 7,
    RiskLevel.SEVERE: 10,
    RiskLevel.UNKNOWN: 0,
}


def risk_score_for(risk_level: RiskLevel) -> int:
    """Map a risk level to its fixed display score."""
    return RISK_SCORE_TABLE[risk_level]


@dataclass(frozen=True)
class AssessmentResult:
    """Validated output of one assessment run.

    Immutable - never persisted on its own, only folded into a
    ConversationRecord.
    """
    risk_level: RiskLevel
    counseling: CounselingRecommendation
    immediate_intervention: bool
    source: AnalysisSource
    transcript: str = ""
    emotional_state: str = ""
    concerning_phrases: List[str] = field(default_factory=list)
    assessment_summary: str = ""
    confidence: ConfidenceLevel = ConfidenceLevel.MEDIUM
    language: str = "unknown"
    support_recommendations: str = ""
    processing_time_ms: int = 0
    recording_used: bool = False    # Audio was analyzed, even if no transcript came back
    recording_ref: Optional[str] = None
    error: Optional[str] = None     # Reason for a degraded result

    @property
    def risk_score(self) -> int:
        return risk_score_for(self.risk_level)

    @property
    def is_degraded(self) -> bool:
        return self.source == AnalysisSource.FALLBACK_DEFAULT

    def as_cached(self) -> "AssessmentResult":
        """Copy of this result re-labelled as served from cache."""
        return replace(self, source=AnalysisSource.CACHED, processing_time_ms=0)


def degraded_assessment(reason: str, summary: Optional[str] = None) -> AssessmentResult:
    """Default assessment used when no provider channel produced a result."""
    return AssessmentResult(
        risk_level=RiskLevel.UNKNOWN,
        counseling=CounselingRecommendation.NONE,
        immediate_intervention=False,
        source=AnalysisSource.FALLBACK_DEFAULT,
        emotional_state="Unable to determine",
        assessment_summary=summary or "Unable to analyze conversation - manual review recommended",
        confidence=ConfidenceLevel.LOW,
        support_recommendations="Manual review recommended",
        error=reason,
    )


@dataclass
class ConversationRecord:
    """Mutable record tracking one call's risk state.

    Stored in PostgreSQL (or the in-memory store during development).
    Last write wins - no optimistic concurrency token is kept.
    """
    id: str
    originator: str = "unknown"
    telephony_call_ref: Optional[str] = None
    created_at: datetime = field(default_factory=datetime.utcnow)
    updated_at: datetime = field(default_factory=datetime.utcnow)
    transcript: str = ""
    recording_ref: Optional[str] = None
    risk_level: RiskLevel = RiskLevel.UNKNOWN
    counseling: CounselingRecommendation = CounselingRecommendation.NONE
    risk_score: int = 0
    immediate_intervention: bool = False
    assessment_summary: str = ""
    concerning_phrases: List[str] = field(default_factory=list)
    lifecycle_status: LifecycleStatus = LifecycleStatus.ACTIVE
    last_analysis_source: Optional[AnalysisSource] = None

    @property
    def has_transcript(self) -> bool:
        return bool(self.transcript and self.transcript.strip())

    def to_dict(self) -> dict:
        """Serialize for JSON responses."""
        return {
            "id": self.id,
            "originator": self.originator,
            "telephony_call_ref": self.telephony_call_ref,
            "created_at": self.created_at.isoformat(),
            "updated_at": self.updated_at.isoformat(),
            "transcript": self.transcript,
            "recording_ref": self.recording_ref,
            "risk_level": self.risk_level.value,
            "counseling": self.counseling.value,
            "risk_score": self.risk_score,
            "immediate_intervention": self.immediate_intervention,
            "assessment_summary": self.assessment_summary,
            "concerning_phrases": list(self.concerning_phrases),
            "lifecycle_status": self.lifecycle_status.value,
            "last_analysis_source": (
                self.last_analysis_source.value if self.last_analysis_source else None
            ),
        }
