"""Shared fixtures: a real engine wired to mocked provider clients."""
import pytest
from unittest.mock import AsyncMock, MagicMock

from riskwatch.shared.utils import configure_pii_salt
from riskwatch.services.providers import AudioSource, CallMetadata, RecordingLocator
from riskwatch.services.risk_engine import (
    AnalysisCache,
    RetryController,
    RetryPolicy,
    RiskAssessmentEngine,
)
from riskwatch.services.conversation_service import InMemoryConversationStore


HIGH_RISK_AUDIO = {
    "transcript": "Caller: I don't want to be here anymore\nAgent: I'm listening",
    "risk_level": "high",
    "counseling_needed": "yes",
    "immediate_intervention": "yes",
    "assessment_summary": "Expressed hopelessness",
    "confidence_level": "high",
}

LOW_RISK_TEXT = {
    "risk_level": "low",
    "counseling_needed": "no",
    "immediate_intervention": "no",
    "assessment_summary": "Routine stress",
}


@pytest.fixture(autouse=True)
def setup_pii_salt():
    configure_pii_salt("test_salt_that_is_at_least_32_characters_long")


@pytest.fixture
def voice_client():
    client = MagicMock()
    client.configured = True
    client.fetch_fresh_recording_locator = AsyncMock(
        side_effect=lambda call_id: RecordingLocator(url=f"https://signed.example/{call_id}.wav")
    )
    client.download_recording = AsyncMock(return_value=b"RIFF....WAVE")
    client.fetch_transcript_messages = AsyncMock(return_value=[])
    client.fetch_call_metadata = AsyncMock(
        side_effect=lambda call_id: CallMetadata(call_id=call_id, originator="+15550100")
    )
    client.list_calls = AsyncMock(return_value=[])
    return client


@pytest.fixture
def analysis_client():
    client = MagicMock()
    client.configured = True
    client.config.audio_mime_type = "audio/wav"

    async def submit(content, instructions):
        if isinstance(content, AudioSource):
            return dict(HIGH_RISK_AUDIO)
        return dict(LOW_RISK_TEXT)

    client.submit_for_analysis = AsyncMock(side_effect=submit)
    return client


@pytest.fixture
def engine(voice_client, analysis_client):
    return RiskAssessmentEngine(
        voice_client,
        analysis_client,
        cache=AnalysisCache(ttl_seconds=300, capacity=50),
        retry=RetryController(RetryPolicy(max_attempts=2, base_delay_seconds=0.01), sleep=AsyncMock()),
    )


@pytest.fixture
def store():
    return InMemoryConversationStore()


@pytest.fixture
def alert_publisher():
    publisher = MagicMock()
    publisher.notify.return_value = True
    return publisher
