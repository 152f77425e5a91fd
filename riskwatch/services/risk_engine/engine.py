"""Risk Assessment Engine.

Produces one validated AssessmentResult per conversation by walking an
ordered chain of strategies until one yields a result:

1. Cache lookup keyed by conversation id
2. Audio: fresh recording locator -> download -> transcribe + assess
3. Transcript text: stored transcript, else provider transcript messages
4. Placeholder text, marked fallback-default

Each provider call goes through the RetryController. Failures in the
audio path fall through to text; failures in text analysis become a
degraded default. assess() therefore always returns a result.
"""
import logging
import time
from abc import ABC, abstractmethod
from dataclasses import dataclass, replace
from typing import Any, Dict, List, Optional, Sequence

from riskwatch.shared.models import AnalysisSource, AssessmentResult, degraded_assessment
from riskwatch.shared.utils import fingerprint_text
from riskwatch.services.providers import (
    AnalysisProviderClient,
    AudioSource,
    ProviderError,
    TextSource,
    VoiceProviderClient,
    format_transcript,
)
from .cache import AnalysisCache
from .config import (
    AUDIO_FIELD_LIMITS,
    AUDIO_INSTRUCTIONS,
    TEXT_FIELD_LIMITS,
    TEXT_INSTRUCTIONS,
    EngineConfig,
)
from .retry import RetryController, RetryPolicy
from .validation import validate_assessment

logger = logging.getLogger(__name__)


def text_cache_key(text: str) -> str:
    return f"text:{fingerprint_text(text)}"


def _describe(error: Exception) -> str:
    return f"{type(error).__name__}: {error}"


@dataclass(frozen=True)
class AssessmentContext:
    conversation_id: str
    known_transcript: str = ""
    deadline: Optional[float] = None


@dataclass(frozen=True)
class StrategyOutcome:
    result: Optional[AssessmentResult] = None
    error: Optional[str] = None

    @property
    def succeeded(self) -> bool:
        return self.result is not None


class AssessmentStrategy(ABC):
    """One step of the fallback chain."""

    name = "strategy"

    @abstractmethod
    async def attempt(self, context: AssessmentContext) -> StrategyOutcome:
        pass


class AudioAnalysisStrategy(AssessmentStrategy):
    """Analyze the call recording. Never reuses a stored locator."""

    name = "audio"

    def __init__(
        self,
        voice_client: VoiceProviderClient,
        analysis_client: AnalysisProviderClient,
        retry: RetryController,
        mime_type: str = "audio/wav",
    ):
        self.voice_client = voice_client
        self.analysis_client = analysis_client
        self.retry = retry
        self.mime_type = mime_type

    async def attempt(self, context: AssessmentContext) -> StrategyOutcome:
        started = time.monotonic()
        try:
            locator = await self.retry.call(
                self.voice_client.fetch_fresh_recording_locator,
                context.conversation_id,
                deadline=context.deadline,
            )
            audio = await self.retry.call(
                self.voice_client.download_recording, locator, deadline=context.deadline
            )
            raw = await self.retry.call(
                self.analysis_client.submit_for_analysis,
                AudioSource(data=audio, mime_type=self.mime_type),
                AUDIO_INSTRUCTIONS,
                deadline=context.deadline,
            )
            result = validate_assessment(
                raw,
                AnalysisSource.AUDIO,
                AUDIO_FIELD_LIMITS,
                processing_time_ms=int((time.monotonic() - started) * 1000),
                recording_used=True,
                recording_ref=locator.url,
            )
        except ProviderError as e:
            return StrategyOutcome(error=_describe(e))
        except Exception as e:
            logger.error(
                "ASSESSMENT_AUDIO_PATH_UNEXPECTED_ERROR",
                extra={"conversation_id": context.conversation_id, "error": _describe(e)}
            )
            return StrategyOutcome(error=_describe(e))

        return StrategyOutcome(result=result)


class TranscriptAnalysisStrategy(AssessmentStrategy):
    """Assess transcript text; a failed submission degrades, it does not raise."""

    name = "transcript"

    def __init__(
        self,
        voice_client: VoiceProviderClient,
        analysis_client: AnalysisProviderClient,
        retry: RetryController,
        cache: AnalysisCache,
        excerpt_chars: int = 4000,
    ):
        self.voice_client = voice_client
        self.analysis_client = analysis_client
        self.retry = retry
        self.cache = cache
        self.excerpt_chars = excerpt_chars

    async def _resolve_transcript(self, context: AssessmentContext) -> str:
        if context.known_transcript.strip():
            return context.known_transcript.strip()
        try:
            messages = await self.retry.call(
                self.voice_client.fetch_transcript_messages,
                context.conversation_id,
                deadline=context.deadline,
            )
        except Exception as e:
            logger.info(
                "ASSESSMENT_TRANSCRIPT_MESSAGES_UNAVAILABLE",
                extra={"conversation_id": context.conversation_id, "error": _describe(e)}
            )
            return ""
        return format_transcript(messages)

    async def attempt(self, context: AssessmentContext) -> StrategyOutcome:
        transcript = await self._resolve_transcript(context)
        if not transcript:
            return StrategyOutcome(error="no transcript available")

        key = text_cache_key(transcript)
        cached = self.cache.get(key)
        if cached is not None:
            return StrategyOutcome(result=replace(cached.as_cached(), transcript=transcript))

        started = time.monotonic()
        try:
            raw = await self.retry.call(
                self.analysis_client.submit_for_analysis,
                TextSource(text=transcript[:self.excerpt_chars]),
                TEXT_INSTRUCTIONS,
                deadline=context.deadline,
            )
        except Exception as e:
            logger.error(
                "ASSESSMENT_TEXT_ANALYSIS_FAILED",
                extra={"conversation_id": context.conversation_id, "error": _describe(e)}
            )
            degraded = degraded_assessment(_describe(e))
            return StrategyOutcome(result=replace(degraded, transcript=transcript))

        result = validate_assessment(
            raw,
            AnalysisSource.TEXT,
            TEXT_FIELD_LIMITS,
            transcript=transcript,
            processing_time_ms=int((time.monotonic() - started) * 1000),
        )
        self.cache.put(key, result)
        return StrategyOutcome(result=result)


class PlaceholderAnalysisStrategy(AssessmentStrategy):
    """Terminal step: submit a fixed placeholder, or degrade. Always succeeds."""

    name = "placeholder"

    def __init__(
        self,
        analysis_client: AnalysisProviderClient,
        retry: RetryController,
        placeholder_text: str,
    ):
        self.analysis_client = analysis_client
        self.retry = retry
        self.placeholder_text = placeholder_text

    async def attempt(self, context: AssessmentContext) -> StrategyOutcome:
        try:
            raw = await self.retry.call(
                self.analysis_client.submit_for_analysis,
                TextSource(text=self.placeholder_text),
                TEXT_INSTRUCTIONS,
                deadline=context.deadline,
            )
        except Exception as e:
            return StrategyOutcome(result=degraded_assessment(_describe(e)))

        result = validate_assessment(
            raw, AnalysisSource.FALLBACK_DEFAULT, TEXT_FIELD_LIMITS, transcript=""
        )
        return StrategyOutcome(result=replace(result, error="no recording or transcript available"))


class RiskAssessmentEngine:
    """Orchestrates cache, provider calls and fallbacks for one conversation.

    The cache is injected rather than module-level so tests can drive it
    with a controllable clock.
    """

    def __init__(
        self,
        voice_client: VoiceProviderClient,
        analysis_client: AnalysisProviderClient,
        cache: Optional[AnalysisCache] = None,
        retry: Optional[RetryController] = None,
        config: Optional[EngineConfig] = None,
        strategies: Optional[Sequence[AssessmentStrategy]] = None,
    ):
        self.config = config or EngineConfig()
        self.voice_client = voice_client
        self.analysis_client = analysis_client
        self.cache = cache or AnalysisCache(
            ttl_seconds=self.config.cache_ttl_seconds,
            capacity=self.config.cache_capacity,
        )
        self.retry = retry or RetryController(RetryPolicy(
            max_attempts=self.config.retry_attempts,
            base_delay_seconds=self.config.retry_base_delay_seconds,
            max_delay_seconds=self.config.retry_max_delay_seconds,
        ))
        self.strategies: List[AssessmentStrategy] = list(strategies or self._default_strategies())

        logger.info(
            "RISK_ENGINE_INITIALIZED",
            extra={
                "strategies": [s.name for s in self.strategies],
                "cache_capacity": self.cache.capacity,
                "cache_ttl_seconds": self.cache.ttl_seconds,
                "retry_attempts": self.retry.policy.max_attempts,
            }
        )

    def _default_strategies(self) -> List[AssessmentStrategy]:
        return [
            AudioAnalysisStrategy(
                self.voice_client,
                self.analysis_client,
                self.retry,
                mime_type=self.analysis_client.config.audio_mime_type,
            ),
            TranscriptAnalysisStrategy(
                self.voice_client,
                self.analysis_client,
                self.retry,
                self.cache,
                excerpt_chars=self.config.text_excerpt_chars,
            ),
            PlaceholderAnalysisStrategy(
                self.analysis_client, self.retry, self.config.placeholder_text
            ),
        ]

    async def assess(
        self,
        conversation_id: str,
        known_transcript: str = "",
        use_cache: bool = True,
        deadline: Optional[float] = None,
    ) -> AssessmentResult:
        """Produce a fresh (or cached) assessment for a conversation.

        Args:
            conversation_id: Provider call identifier
            known_transcript: Transcript already on record, used by the
                text fallback
            use_cache: Read the cache before calling providers (the
                result is cached either way)
            deadline: Absolute deadline on the retry controller's clock;
                no retry back-off is started past it

        Returns:
            AssessmentResult - never raises for provider failures
        """
        if not conversation_id:
            raise ValueError("conversation_id is required")

        if use_cache:
            cached = self.cache.get(conversation_id)
            if cached is not None:
                logger.info("ASSESSMENT_CACHE_HIT", extra={"conversation_id": conversation_id})
                return cached.as_cached()

        started = time.monotonic()
        context = AssessmentContext(
            conversation_id=conversation_id,
            known_transcript=known_transcript or "",
            deadline=deadline,
        )

        result: Optional[AssessmentResult] = None
        failures: List[str] = []
        for strategy in self.strategies:
            outcome = await strategy.attempt(context)
            if outcome.succeeded:
                result = outcome.result
                break
            failures.append(f"{strategy.name}: {outcome.error}")
            logger.warning(
                "ASSESSMENT_STRATEGY_FAILED",
                extra={
                    "conversation_id": conversation_id,
                    "strategy": strategy.name,
                    "error": outcome.error,
                }
            )

        if result is None:
            result = degraded_assessment("; ".join(failures) or "no strategy produced a result")

        result = replace(result, processing_time_ms=int((time.monotonic() - started) * 1000))

        if not result.is_degraded:
            self.cache.put(conversation_id, result)

        logger.info(
            "ASSESSMENT_COMPLETED",
            extra={
                "conversation_id": conversation_id,
                "source": result.source.value,
                "risk_level": result.risk_level.value,
                "risk_score": result.risk_score,
                "immediate_intervention": result.immediate_intervention,
                "transcript_chars": len(result.transcript),
                "processing_time_ms": result.processing_time_ms,
            }
        )
        return result

    def stats(self) -> Dict[str, Any]:
        """Cache utilisation and provider configuration, for monitoring."""
        return {
            "cache": self.cache.stats(),
            "analysis_provider_configured": self.analysis_client.configured,
            "voice_provider_configured": self.voice_client.configured,
            "strategies": [s.name for s in self.strategies],
        }

    def clear_cache(self) -> int:
        return self.cache.clear()
