"""Risk Assessment Engine: cache, retry and audio-first/text-fallback analysis.

Risk classification itself is delegated to the AI analysis provider;
this package only orchestrates that delegation reliably.
"""

from .cache import AnalysisCache, CacheEntry
from .config import EngineConfig, FieldLimits, AUDIO_INSTRUCTIONS, TEXT_INSTRUCTIONS
from .engine import (
    RiskAssessmentEngine,
    AssessmentContext,
    AssessmentStrategy,
    AudioAnalysisStrategy,
    TranscriptAnalysisStrategy,
    PlaceholderAnalysisStrategy,
    StrategyOutcome,
    text_cache_key,
)
from .retry import RetryController, RetryPolicy
from .validation import validate_assessment

__all__ = [
    "AnalysisCache",
    "CacheEntry",
    "EngineConfig",
    "FieldLimits",
    "AUDIO_INSTRUCTIONS",
    "TEXT_INSTRUCTIONS",
    "RiskAssessmentEngine",
    "AssessmentContext",
    "AssessmentStrategy",
    "AudioAnalysisStrategy",
    "TranscriptAnalysisStrategy",
    "PlaceholderAnalysisStrategy",
    "StrategyOutcome",
    "text_cache_key",
    "RetryController",
    "RetryPolicy",
    "validate_assessment",
]
