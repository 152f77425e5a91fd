"""Value objects exchanged with the external providers."""
from dataclasses import dataclass, field
from datetime import datetime
from typing import Any, Dict, List, Optional, Union


@dataclass(frozen=True)
class CallMetadata:
    """Call object as reported by the voice provider."""
    call_id: str
    originator: Optional[str] = None
    created_at: Optional[datetime] = None
    ended_at: Optional[datetime] = None
    end_reason: Optional[str] = None
    raw: Dict[str, Any] = field(default_factory=dict)


@dataclass(frozen=True)
class RecordingLocator:
    """Short-lived signed reference to call audio.

    Valid for a few minutes only; fetch a fresh one for every
    assessment attempt and never persist it for reuse.
    """
    url: str
    fetched_at: datetime = field(default_factory=datetime.utcnow)


@dataclass(frozen=True)
class TranscriptMessage:
    speaker_role: str   # "user" or "agent"
    text: str


@dataclass(frozen=True)
class AudioSource:
    """Binary recording submitted for transcription plus assessment."""
    data: bytes
    mime_type: str = "audio/wav"


@dataclass(frozen=True)
class TextSource:
    """Transcript text submitted for assessment only."""
    text: str


AnalysisContent = Union[AudioSource, TextSource]


def format_transcript(messages: List[TranscriptMessage]) -> str:
    """Render provider messages as "User: ..." / "Agent: ..." lines."""
    lines = []
    for message in messages:
        label = "User" if message.speaker_role == "user" else "Agent"
        lines.append(f"{label}: {message.text}")
    return "\n".join(lines)
