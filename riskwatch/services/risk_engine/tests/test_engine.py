"""Tests for RiskAssessmentEngine fallback chain and caching."""
import pytest
from unittest.mock import AsyncMock, MagicMock

from riskwatch.shared.models import AnalysisSource, RiskLevel
from riskwatch.services.providers import (
    AudioSource,
    InvalidResponse,
    LocatorExpired,
    MissingCredentials,
    NotFound,
    ProviderTimeout,
    RecordingLocator,
    TextSource,
    TranscriptMessage,
)
from riskwatch.services.risk_engine import (
    AnalysisCache,
    RetryController,
    RetryPolicy,
    RiskAssessmentEngine,
    text_cache_key,
)


AUDIO_RESPONSE = {
    "transcript": "Caller: I feel hopeless\nAgent: I'm here with you",
    "risk_level": "high",
    "counseling_needed": "yes",
    "immediate_intervention": "yes",
    "emotional_state": "hopeless",
    "concerning_phrases": ["I feel hopeless"],
    "assessment_summary": "High risk indicators",
    "confidence_level": "high",
    "language_used": "english",
    "support_recommendations": "Immediate counselor contact",
}

TEXT_RESPONSE = {
    "risk_level": "low",
    "counseling_needed": "advised",
    "immediate_intervention": "no",
    "assessment_summary": "Mild stress",
}


@pytest.fixture
def voice_client():
    client = MagicMock()
    client.configured = True
    client.fetch_fresh_recording_locator = AsyncMock(
        return_value=RecordingLocator(url="https://signed.example/c1.wav")
    )
    client.download_recording = AsyncMock(return_value=b"RIFF....WAVE")
    client.fetch_transcript_messages = AsyncMock(return_value=[])
    return client


@pytest.fixture
def analysis_client():
    client = MagicMock()
    client.configured = True
    client.config.audio_mime_type = "audio/wav"

    async def submit(content, instructions):
        if isinstance(content, AudioSource):
            return dict(AUDIO_RESPONSE)
        return dict(TEXT_RESPONSE)

    client.submit_for_analysis = AsyncMock(side_effect=submit)
    return client


@pytest.fixture
def sleep():
    return AsyncMock()


@pytest.fixture
def engine(voice_client, analysis_client, sleep):
    return RiskAssessmentEngine(
        voice_client,
        analysis_client,
        cache=AnalysisCache(ttl_seconds=300, capacity=10),
        retry=RetryController(RetryPolicy(max_attempts=2, base_delay_seconds=0.01), sleep=sleep),
    )


@pytest.mark.asyncio
class TestAudioPath:

    async def test_audio_assessment(self, engine, voice_client):
        result = await engine.assess("c1")

        assert result.source == AnalysisSource.AUDIO
        assert result.risk_level == RiskLevel.HIGH
        assert result.risk_score == 7
        assert result.immediate_intervention is True
        assert result.recording_used is True
        assert result.recording_ref == "https://signed.example/c1.wav"
        assert "hopeless" in result.transcript
        voice_client.fetch_fresh_recording_locator.assert_awaited_once_with("c1")

    async def test_fresh_locator_fetched_every_time(self, engine, voice_client):
        await engine.assess("c1", use_cache=False)
        await engine.assess("c1", use_cache=False)

        assert voice_client.fetch_fresh_recording_locator.await_count == 2

    async def test_transient_locator_failure_is_retried(self, engine, voice_client, sleep):
        voice_client.fetch_fresh_recording_locator.side_effect = [
            ProviderTimeout("slow"),
            RecordingLocator(url="https://signed.example/retry.wav"),
        ]

        result = await engine.assess("c1")

        assert result.source == AnalysisSource.AUDIO
        assert result.recording_ref == "https://signed.example/retry.wav"
        assert sleep.await_count == 1


@pytest.mark.asyncio
class TestFallbacks:

    async def test_expired_locator_falls_back_to_known_transcript(
        self, engine, voice_client, analysis_client
    ):
        voice_client.download_recording.side_effect = LocatorExpired("expired")

        result = await engine.assess("c1", known_transcript="User: work is stressful")

        assert result.source == AnalysisSource.TEXT
        assert result.risk_level == RiskLevel.LOW
        assert result.transcript == "User: work is stressful"
        assert result.recording_used is False
        content = analysis_client.submit_for_analysis.await_args.args[0]
        assert isinstance(content, TextSource)

    async def test_transcript_messages_used_when_nothing_stored(self, engine, voice_client):
        voice_client.fetch_fresh_recording_locator.side_effect = NotFound("no recording")
        voice_client.fetch_transcript_messages.return_value = [
            TranscriptMessage(speaker_role="user", text="I am tired"),
            TranscriptMessage(speaker_role="agent", text="How long has that been?"),
        ]

        result = await engine.assess("c1")

        assert result.source == AnalysisSource.TEXT
        assert result.transcript == "User: I am tired\nAgent: How long has that been?"

    async def test_missing_credentials_fall_back(self, engine, voice_client):
        voice_client.fetch_fresh_recording_locator.side_effect = MissingCredentials("no key")

        result = await engine.assess("c1", known_transcript="User: hello")

        assert result.source == AnalysisSource.TEXT

    async def test_placeholder_when_no_source_material(self, engine, voice_client, analysis_client):
        voice_client.fetch_fresh_recording_locator.side_effect = NotFound("no recording")

        result = await engine.assess("c1")

        assert result.source == AnalysisSource.FALLBACK_DEFAULT
        assert result.is_degraded
        assert result.transcript == ""
        assert result.error
        content = analysis_client.submit_for_analysis.await_args.args[0]
        assert content.text == engine.config.placeholder_text

    async def test_text_analysis_failure_degrades_with_transcript(
        self, engine, voice_client, analysis_client
    ):
        voice_client.fetch_fresh_recording_locator.side_effect = NotFound("no recording")
        analysis_client.submit_for_analysis.side_effect = InvalidResponse("not json")

        result = await engine.assess("c1", known_transcript="User: hi")

        assert result.source == AnalysisSource.FALLBACK_DEFAULT
        assert result.risk_level == RiskLevel.UNKNOWN
        assert result.risk_score == 0
        assert result.transcript == "User: hi"
        assert "InvalidResponse" in result.error

    async def test_total_failure_still_returns_result(self, engine, voice_client, analysis_client):
        voice_client.fetch_fresh_recording_locator.side_effect = NotFound("no recording")
        voice_client.fetch_transcript_messages.side_effect = NotFound("no messages")
        analysis_client.submit_for_analysis.side_effect = ProviderTimeout("down")

        result = await engine.assess("c1")

        assert result.risk_level == RiskLevel.UNKNOWN
        assert result.is_degraded

    async def test_unexpected_download_error_falls_back_to_text(self, engine, voice_client):
        voice_client.download_recording.side_effect = TypeError("Constructor parameter should be str")

        result = await engine.assess("c1", known_transcript="User: fine")

        assert result.source == AnalysisSource.TEXT
        assert result.transcript == "User: fine"
        assert result.recording_used is False

    async def test_unexpected_text_error_degrades(self, engine, voice_client, analysis_client):
        voice_client.fetch_fresh_recording_locator.side_effect = NotFound("no recording")
        analysis_client.submit_for_analysis.side_effect = ValueError("bad payload")

        result = await engine.assess("c1", known_transcript="User: hi")

        assert result.is_degraded
        assert result.transcript == "User: hi"
        assert "ValueError" in result.error

    async def test_empty_conversation_id_rejected(self, engine):
        with pytest.raises(ValueError):
            await engine.assess("")


@pytest.mark.asyncio
class TestCaching:

    async def test_second_call_served_from_cache(self, engine, analysis_client):
        first = await engine.assess("c1")
        second = await engine.assess("c1")

        assert first.source == AnalysisSource.AUDIO
        assert second.source == AnalysisSource.CACHED
        assert second.risk_level == first.risk_level
        assert second.processing_time_ms == 0
        assert analysis_client.submit_for_analysis.await_count == 1

    async def test_use_cache_false_bypasses_read(self, engine, analysis_client):
        await engine.assess("c1")
        result = await engine.assess("c1", use_cache=False)

        assert result.source == AnalysisSource.AUDIO
        assert analysis_client.submit_for_analysis.await_count == 2

    async def test_degraded_results_are_not_cached(self, engine, voice_client, analysis_client):
        voice_client.fetch_fresh_recording_locator.side_effect = NotFound("no recording")

        await engine.assess("c1")
        await engine.assess("c1")

        assert engine.cache.get("c1") is None
        assert analysis_client.submit_for_analysis.await_count == 2

    async def test_identical_transcripts_share_text_cache(self, engine, voice_client, analysis_client):
        voice_client.fetch_fresh_recording_locator.side_effect = NotFound("no recording")
        transcript = "User: same words"

        await engine.assess("c1", known_transcript=transcript)
        result = await engine.assess("c2", known_transcript=transcript)

        assert result.source == AnalysisSource.CACHED
        assert result.transcript == transcript
        assert analysis_client.submit_for_analysis.await_count == 1
        assert engine.cache.get(text_cache_key(transcript)) is not None

    async def test_shared_opening_does_not_share_text_cache(
        self, engine, voice_client, analysis_client
    ):
        voice_client.fetch_fresh_recording_locator.side_effect = NotFound("no recording")
        greeting = "Agent: Thanks for calling the support line, how are you feeling today? " * 4

        async def submit(content, instructions):
            if "end my life" in content.text:
                return {"risk_level": "severe", "immediate_intervention": "yes"}
            return dict(TEXT_RESPONSE)

        analysis_client.submit_for_analysis.side_effect = submit

        calm = await engine.assess("a", known_transcript=greeting + "User: work is stressful")
        urgent = await engine.assess(
            "b", known_transcript=greeting + "User: I want to end my life tonight"
        )

        assert calm.risk_level == RiskLevel.LOW
        assert urgent.risk_level == RiskLevel.SEVERE
        assert urgent.source == AnalysisSource.TEXT
        assert urgent.immediate_intervention is True

    async def test_clear_cache(self, engine):
        await engine.assess("c1")

        assert engine.clear_cache() == 1
        assert engine.stats()["cache"]["size"] == 0

    async def test_stats(self, engine):
        stats = engine.stats()

        assert stats["strategies"] == ["audio", "transcript", "placeholder"]
        assert stats["analysis_provider_configured"] is True
