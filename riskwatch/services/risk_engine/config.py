"""Risk engine configuration and the fixed provider instruction templates."""
import os
from dataclasses import dataclass

@dataclass(frozen=True)
class FieldLimits:
    """Length caps applied to free-text provider fields."""
    transcript: int = 10000
    emotional_state: int = 300
    concerning_phrases: int = 10
    concerning_phrase_chars: int = 200
    assessment_summary: int = 1000
    support_recommendations: int = 500
    language: int = 40

# The text model is prompted for a terser answer than the audio model
AUDIO_FIELD_LIMITS = FieldLimits()
TEXT_FIELD_LIMITS = FieldLimits(
    emotional_state=200,
    concerning_phrases=5,
    concerning_phrase_chars=100,
    assessment_summary=500,
    support_recommendations=200,
)

@dataclass(frozen=True)
class EngineConfig:
    """Cache, retry and fallback settings for the risk assessment engine."""
    cache_ttl_seconds: float = 300.0
    cache_capacity: int = 100
    retry_attempts: int = 2
    retry_base_delay_seconds: float = 1.0
    retry_max_delay_seconds: float = 30.0
    text_excerpt_chars: int = 4000
    placeholder_text: str = "Recording analysis failed - manual review needed"

    @classmethod
    def from_env(cls) -> "EngineConfig":
        """Environment variables:
            ANALYSIS_CACHE_TTL_SECONDS (default 300)
            ANALYSIS_CACHE_CAPACITY (default 100)
            PROVIDER_RETRY_ATTEMPTS (default 2)
            PROVIDER_RETRY_BASE_DELAY (default 1.0)
        """
        return cls(
            cache_ttl_seconds=float(os.getenv("ANALYSIS_CACHE_TTL_SECONDS", "300")),
            cache_capacity=int(os.getenv("ANALYSIS_CACHE_CAPACITY", "100")),
            retry_attempts=int(os.getenv("PROVIDER_RETRY_ATTEMPTS", "2")),
            retry_base_delay_seconds=float(os.getenv("PROVIDER_RETRY_BASE_DELAY", "1.0")),
        )


_ASSESSMENT_FOCUS = (
    "ANALYZE FOR: suicidal ideation (direct or indirect), self-harm indicators, "
    "depression symptoms, anxiety, emotional distress levels, coping mechanisms, "
    "support systems, crisis indicators, behavioral changes, sleep or appetite "
    "changes, social withdrawal, substance use, trauma indicators, hopelessness, "
    "mood patterns and cognitive distortions."
)

AUDIO_INSTRUCTIONS = f"""You are a professional mental health analyst. Analyze this complete mental health support call recording and provide a comprehensive assessment.

Respond ONLY with valid JSON in this exact format:

{{
  "transcript": "complete conversation transcript with clear speaker labels (Caller: / Agent:)",
  "risk_level": "no|low|medium|high|severe",
  "counseling_needed": "no|advised|yes",
  "immediate_intervention": "yes|no",
  "emotional_state": "detailed emotional and psychological state assessment",
  "concerning_phrases": ["direct quotes of concerning statements - up to 10 most significant"],
  "assessment_summary": "professional mental health assessment including risk factors and clinical observations",
  "confidence_level": "low|medium|high",
  "language_used": "hindi|english|hinglish|other",
  "support_recommendations": "specific, actionable recommendations for immediate and ongoing support"
}}

{_ASSESSMENT_FOCUS}

Base the analysis on tone, speech patterns, content and emotional expression throughout the entire conversation."""

TEXT_INSTRUCTIONS = f"""You are a professional mental health analyst. Analyze this mental health support conversation transcript.

Respond ONLY with valid JSON:

{{
  "risk_level": "no|low|medium|high|severe",
  "counseling_needed": "no|advised|yes",
  "immediate_intervention": "yes|no",
  "emotional_state": "detailed emotional and psychological state",
  "concerning_phrases": ["direct quotes of concerning statements - up to 5"],
  "assessment_summary": "professional mental health assessment",
  "confidence_level": "low|medium|high",
  "language_used": "hindi|english|hinglish|other",
  "support_recommendations": "specific actionable recommendations"
}}

{_ASSESSMENT_FOCUS}"""
