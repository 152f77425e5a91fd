"""Clamp raw provider JSON to the internal risk vocabulary.

The provider is treated as untrusted: unknown enum values are mapped to
safe defaults and every free-text field is length-capped.
"""
import logging
from typing import Any, Dict, List, Optional

from riskwatch.shared.models import (
    AnalysisSource,
    AssessmentResult,
    ConfidenceLevel,
    CounselingRecommendation,
    RiskLevel,
)
from .config import FieldLimits

logger = logging.getLogger(__name__)

_RISK_LEVELS = {
    "no": RiskLevel.NONE,
    "none": RiskLevel.NONE,
    "low": RiskLevel.LOW,
    "medium": RiskLevel.MEDIUM,
    "high": RiskLevel.HIGH,
    "severe": RiskLevel.SEVERE,
}

_COUNSELING = {
    "no": CounselingRecommendation.NONE,
    "none": CounselingRecommendation.NONE,
    "advised": CounselingRecommendation.ADVISED,
    "yes": CounselingRecommendation.REQUIRED,
    "required": CounselingRecommendation.REQUIRED,
}

_TRUTHY = frozenset({"yes", "true", "1"})


def _token(value: Any) -> str:
    return str(value).strip().lower() if value is not None else ""


def _text(value: Any, default: str, limit: int) -> str:
    text = str(value).strip() if value is not None else ""
    return (text or default)[:limit]


def parse_risk_level(value: Any) -> RiskLevel:
    return _RISK_LEVELS.get(_token(value), RiskLevel.UNKNOWN)


def parse_counseling(value: Any) -> CounselingRecommendation:
    return _COUNSELING.get(_token(value), CounselingRecommendation.NONE)


def parse_flag(value: Any) -> bool:
    if isinstance(value, bool):
        return value
    return _token(value) in _TRUTHY


def parse_confidence(value: Any) -> ConfidenceLevel:
    try:
        return ConfidenceLevel(_token(value))
    except ValueError:
        return ConfidenceLevel.MEDIUM


def parse_phrases(value: Any, limits: FieldLimits) -> List[str]:
    if not isinstance(value, list):
        return []
    phrases = [str(p).strip() for p in value if p is not None]
    return [p[:limits.concerning_phrase_chars] for p in phrases if p][:limits.concerning_phrases]


def validate_assessment(
    raw: Dict[str, Any],
    source: AnalysisSource,
    limits: FieldLimits,
    transcript: Optional[str] = None,
    processing_time_ms: int = 0,
    recording_used: bool = False,
    recording_ref: Optional[str] = None,
) -> AssessmentResult:
    """Build an AssessmentResult from untrusted provider JSON.

    Args:
        raw: Decoded provider object
        source: Channel that produced it
        limits: Field length caps for that channel
        transcript: Known transcript text; when None the provider's
            `transcript` field is used (audio path)
        processing_time_ms: Wall time spent producing the result
        recording_used: Whether audio was analyzed
        recording_ref: Locator used for the audio, if any
    """
    risk_level = parse_risk_level(raw.get("risk_level"))
    if risk_level == RiskLevel.UNKNOWN:
        logger.warning(
            "ASSESSMENT_RISK_LEVEL_UNRECOGNIZED",
            extra={"value": str(raw.get("risk_level"))[:40], "source": source.value}
        )

    if transcript is None:
        transcript = raw.get("transcript")

    return AssessmentResult(
        risk_level=risk_level,
        counseling=parse_counseling(raw.get("counseling_needed")),
        immediate_intervention=parse_flag(raw.get("immediate_intervention")),
        source=source,
        transcript=_text(transcript, "", limits.transcript),
        emotional_state=_text(raw.get("emotional_state"), "Unknown emotional state", limits.emotional_state),
        concerning_phrases=parse_phrases(raw.get("concerning_phrases"), limits),
        assessment_summary=_text(raw.get("assessment_summary"), "No assessment available", limits.assessment_summary),
        confidence=parse_confidence(raw.get("confidence_level")),
        language=_text(raw.get("language_used"), "unknown", limits.language).lower(),
        support_recommendations=_text(
            raw.get("support_recommendations"), "Continue supportive listening", limits.support_recommendations
        ),
        processing_time_ms=processing_time_ms,
        recording_used=recording_used,
        recording_ref=recording_ref,
    )
