"""Provider endpoint configuration.

Timeouts follow the provider behaviour observed in production: metadata
and text analysis answer within seconds, audio analysis can take
several minutes for long calls.
"""
import os
from dataclasses import dataclass
from typing import Optional


@dataclass(frozen=True)
class VoiceProviderConfig:
    """Recording/voice provider (call metadata, recordings, messages)."""
    api_key: Optional[str] = None
    api_url: str = "https://api.ultravox.ai/api/calls"
    metadata_timeout_seconds: float = 15.0
    locator_timeout_seconds: float = 15.0
    download_timeout_seconds: float = 60.0
    health_timeout_seconds: float = 5.0

    @classmethod
    def from_env(cls) -> "VoiceProviderConfig":
        """Environment variables:
            VOICE_PROVIDER_API_KEY: API key (required for any call)
            VOICE_PROVIDER_API_URL: Calls endpoint base URL
        """
        return cls(
            api_key=os.getenv("VOICE_PROVIDER_API_KEY") or None,
            api_url=os.getenv("VOICE_PROVIDER_API_URL", cls.api_url).rstrip("/"),
        )


@dataclass(frozen=True)
class AnalysisProviderConfig:
    """AI analysis provider (transcription and risk assessment)."""
    api_key: Optional[str] = None
    base_url: str = "https://generativelanguage.googleapis.com/v1beta"
    text_model: str = "gemini-1.5-flash"
    audio_model: str = "gemini-2.5-pro"
    text_timeout_seconds: float = 15.0
    audio_timeout_seconds: float = 300.0
    audio_mime_type: str = "audio/wav"
    temperature: float = 0.2

    @classmethod
    def from_env(cls) -> "AnalysisProviderConfig":
        """Environment variables:
            ANALYSIS_API_KEY / GEMINI_API_KEY: API key
            ANALYSIS_BASE_URL: REST base URL
            ANALYSIS_TEXT_MODEL: Model for transcript analysis
            ANALYSIS_AUDIO_MODEL: Model for recording analysis
        """
        return cls(
            api_key=os.getenv("ANALYSIS_API_KEY") or os.getenv("GEMINI_API_KEY") or None,
            base_url=os.getenv("ANALYSIS_BASE_URL", cls.base_url).rstrip("/"),
            text_model=os.getenv("ANALYSIS_TEXT_MODEL", cls.text_model),
            audio_model=os.getenv("ANALYSIS_AUDIO_MODEL", cls.audio_model),
        )
