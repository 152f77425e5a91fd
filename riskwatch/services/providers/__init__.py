"""Provider Client Adapter: typed access to the voice and analysis providers.

Each operation is one timeout-bounded round-trip that surfaces typed
failures (ProviderTimeout, NotFound, RateLimited, InvalidResponse, ...)
instead of transport errors or status codes.
"""

from .config import AnalysisProviderConfig, VoiceProviderConfig
from .errors import (
    ProviderError,
    ProviderTimeout,
    RateLimited,
    ProviderUnavailable,
    NotFound,
    InvalidResponse,
    LocatorExpired,
    MissingCredentials,
    is_transient,
)
from .models import (
    AudioSource,
    TextSource,
    CallMetadata,
    RecordingLocator,
    TranscriptMessage,
    format_transcript,
)
from .voice_client import VoiceProviderClient
from .analysis_client import AnalysisProviderClient

__all__ = [
    "AnalysisProviderConfig",
    "VoiceProviderConfig",
    "ProviderError",
    "ProviderTimeout",
    "RateLimited",
    "ProviderUnavailable",
    "NotFound",
    "InvalidResponse",
    "LocatorExpired",
    "MissingCredentials",
    "is_transient",
    "AudioSource",
    "TextSource",
    "CallMetadata",
    "RecordingLocator",
    "TranscriptMessage",
    "format_transcript",
    "VoiceProviderClient",
    "AnalysisProviderClient",
]
