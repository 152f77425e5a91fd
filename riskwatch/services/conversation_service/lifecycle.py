"""Conversation Lifecycle Manager.

Owns every state transition of a ConversationRecord:

    active --assess--> completed      (a transcript exists)
    active --assess--> no_transcript  (assessment ran, no transcript)
    any    --assess--> analysis_only  (recording analyzed, no transcript)

No state is terminal; refresh and regenerate are accepted from any state.
Store access is synchronous (psycopg2) and runs in a worker thread.
"""
import asyncio
import logging
from dataclasses import dataclass, replace
from datetime import datetime
from typing import Callable, Optional

from riskwatch.shared.models import (
    AssessmentResult,
    ConversationRecord,
    LifecycleStatus,
    RiskLevel,
)
from riskwatch.shared.utils import hash_pii
from riskwatch.services.alerting import RiskAlertPublisher
from riskwatch.services.risk_engine import RiskAssessmentEngine
from .conversation_repository import ConversationStore
from .outcomes import BatchReport, ItemOutcome, RefreshStatus

logger = logging.getLogger(__name__)


class LifecycleError(Exception):
    """Base exception for lifecycle operations."""
    pass


class ConversationNotFound(LifecycleError):
    """Conversation id or correlation reference could not be resolved."""
    pass


class NoTranscript(LifecycleError):
    """Regeneration requested with neither a transcript nor a usable recording."""
    pass


@dataclass(frozen=True)
class RefreshOutcome:
    record: ConversationRecord
    transcript_changed: bool
    source: str


def resolve_status(transcript: str, result: AssessmentResult) -> LifecycleStatus:
    if transcript.strip():
        return LifecycleStatus.COMPLETED
    if result.recording_used:
        return LifecycleStatus.ANALYSIS_ONLY
    return LifecycleStatus.NO_TRANSCRIPT


def apply_assessment(
    record: ConversationRecord,
    result: AssessmentResult,
    now: Optional[datetime] = None,
) -> ConversationRecord:
    """Fold an assessment into a copy of `record`.

    A new transcript replaces the stored one only when non-empty. A
    degraded result never overwrites an existing classification; it only
    advances the timestamp and status.
    """
    transcript = result.transcript if result.transcript.strip() else record.transcript
    merged = replace(
        record,
        transcript=transcript,
        concerning_phrases=list(record.concerning_phrases),
        updated_at=now or datetime.utcnow(),
        lifecycle_status=resolve_status(transcript, result),
    )
    if result.recording_used and result.recording_ref:
        merged.recording_ref = result.recording_ref

    if result.is_degraded and record.risk_level != RiskLevel.UNKNOWN:
        return merged

    merged.risk_level = result.risk_level
    merged.risk_score = result.risk_score
    merged.counseling = result.counseling
    merged.immediate_intervention = result.immediate_intervention
    merged.assessment_summary = result.assessment_summary
    merged.concerning_phrases = list(result.concerning_phrases)
    merged.last_analysis_source = result.source
    return merged


class ConversationLifecycleManager:
    """Create, complete, refresh and regenerate conversation records.

    Usage::

        manager = ConversationLifecycleManager(store, engine, alert_publisher)
        await manager.create("call_123", originator="+15551234567", correlation_ref="CA42")
        record = await manager.call_ended("CA42", is_direct_id=False)
    """

    def __init__(
        self,
        store: ConversationStore,
        engine: RiskAssessmentEngine,
        alert_publisher: Optional[RiskAlertPublisher] = None,
        assessment_deadline_seconds: Optional[float] = 600.0,
        clock: Callable[[], datetime] = datetime.utcnow,
    ):
        self.store = store
        self.engine = engine
        self.alert_publisher = alert_publisher
        self.assessment_deadline_seconds = assessment_deadline_seconds
        self._clock = clock

    def _deadline(self) -> Optional[float]:
        if self.assessment_deadline_seconds is None:
            return None
        return self.engine.retry.deadline_in(self.assessment_deadline_seconds)

    async def _load(self, conversation_id: str) -> ConversationRecord:
        record = await asyncio.to_thread(self.store.find_by_id, conversation_id)
        if record is None:
            raise ConversationNotFound(f"Conversation {conversation_id} not found")
        return record

    async def _save(self, record: ConversationRecord) -> ConversationRecord:
        return await asyncio.to_thread(self.store.upsert, record)

    async def create(
        self,
        conversation_id: str,
        originator: str = "unknown",
        correlation_ref: Optional[str] = None,
    ) -> ConversationRecord:
        """Persist a new active record. A repeated id overwrites the old record."""
        if not conversation_id:
            raise ValueError("conversation_id is required")

        now = self._clock()
        record = ConversationRecord(
            id=conversation_id,
            originator=originator or "unknown",
            telephony_call_ref=correlation_ref,
            created_at=now,
            updated_at=now,
        )
        await self._save(record)

        logger.info(
            "CONVERSATION_CREATED",
            extra={
                "conversation_id": conversation_id,
                "originator_hash": hash_pii(record.originator),
                "correlated": correlation_ref is not None,
            }
        )
        return record

    async def complete_from_provider_event(
        self,
        correlation_ref: str,
        is_direct_id: bool = False,
    ) -> ConversationRecord:
        """Assess a finished call and persist the result.

        A direct id with no stored record creates one; an unresolvable
        correlation reference raises ConversationNotFound. An intervention
        alert is emitted once, after the record is persisted.
        """
        if is_direct_id:
            record = await asyncio.to_thread(self.store.find_by_id, correlation_ref)
            if record is None:
                record = await self.create(correlation_ref)
        else:
            record = await asyncio.to_thread(self.store.find_by_correlation_ref, correlation_ref)
            if record is None:
                logger.warning(
                    "CONVERSATION_CORRELATION_UNRESOLVED",
                    extra={"correlation_ref": correlation_ref}
                )
                raise ConversationNotFound(f"No conversation for call reference {correlation_ref}")

        result = await self.engine.assess(
            record.id, known_transcript=record.transcript, deadline=self._deadline()
        )
        updated = apply_assessment(record, result, self._clock())
        await self._save(updated)

        logger.info(
            "CONVERSATION_COMPLETED",
            extra={
                "conversation_id": updated.id,
                "lifecycle_status": updated.lifecycle_status.value,
                "risk_level": updated.risk_level.value,
                "risk_score": updated.risk_score,
                "source": result.source.value,
            }
        )

        if result.immediate_intervention:
            await self._emit_alert(updated)
        return updated

    async def call_ended(self, correlation_ref_or_id: str, is_direct_id: bool) -> ConversationRecord:
        """Inbound call-ended event from the webhook."""
        logger.info(
            "CALL_ENDED_RECEIVED",
            extra={"reference": correlation_ref_or_id, "is_direct_id": is_direct_id}
        )
        return await self.complete_from_provider_event(correlation_ref_or_id, is_direct_id)

    async def _emit_alert(self, record: ConversationRecord) -> None:
        if self.alert_publisher is None:
            logger.critical(
                "RISK_ALERT_NOT_CONFIGURED",
                extra={"conversation_id": record.id, "risk_level": record.risk_level.value}
            )
            return
        try:
            await asyncio.to_thread(self.alert_publisher.notify, record.id, record.risk_level)
        except Exception as e:
            logger.critical(
                "RISK_ALERT_DISPATCH_FAILED",
                extra={"conversation_id": record.id, "error": str(e)}
            )

    async def refresh(self, conversation_id: str) -> RefreshOutcome:
        """Re-assess a stored conversation and persist the merged result."""
        record = await self._load(conversation_id)
        result = await self.engine.assess(
            conversation_id, known_transcript=record.transcript, deadline=self._deadline()
        )
        updated = apply_assessment(record, result, self._clock())
        await self._save(updated)

        changed = updated.transcript != record.transcript
        logger.info(
            "CONVERSATION_REFRESHED",
            extra={
                "conversation_id": conversation_id,
                "transcript_changed": changed,
                "lifecycle_status": updated.lifecycle_status.value,
                "source": result.source.value,
            }
        )
        return RefreshOutcome(record=updated, transcript_changed=changed, source=result.source.value)

    async def regenerate(self, conversation_id: str) -> RefreshOutcome:
        """Force a fresh analysis, bypassing the cache read.

        Raises:
            ConversationNotFound: Unknown id
            NoTranscript: No stored transcript and no recording or provider
                transcript could be obtained; nothing is written
        """
        record = await self._load(conversation_id)
        result = await self.engine.assess(
            conversation_id,
            known_transcript=record.transcript,
            use_cache=False,
            deadline=self._deadline(),
        )

        if not record.has_transcript and not result.transcript.strip() and not result.recording_used:
            logger.warning(
                "CONVERSATION_REGENERATE_REJECTED",
                extra={"conversation_id": conversation_id, "reason": result.error}
            )
            raise NoTranscript(
                f"Conversation {conversation_id} has no transcript or recording to analyze"
            )

        updated = apply_assessment(record, result, self._clock())
        await self._save(updated)

        logger.info(
            "CONVERSATION_REGENERATED",
            extra={
                "conversation_id": conversation_id,
                "risk_level": updated.risk_level.value,
                "source": result.source.value,
            }
        )
        return RefreshOutcome(
            record=updated,
            transcript_changed=updated.transcript != record.transcript,
            source=result.source.value,
        )

    async def batch_refresh(self) -> BatchReport:
        """Refresh every stored conversation that still lacks a transcript.

        Items run one after another; a failure is recorded and the batch
        continues.
        """
        report = BatchReport(operation="refresh", status_type=RefreshStatus)
        records = await asyncio.to_thread(self.store.list_all)
        pending = [r for r in records if not r.has_transcript]

        for record in pending:
            try:
                outcome = await self.refresh(record.id)
            except Exception as e:
                logger.error(
                    "CONVERSATION_BATCH_REFRESH_ITEM_FAILED",
                    extra={"conversation_id": record.id, "error": str(e)}
                )
                report.add(ItemOutcome(record.id, RefreshStatus.FAILED, str(e)))
                continue

            if outcome.record.has_transcript:
                report.add(ItemOutcome(record.id, RefreshStatus.UPDATED))
            else:
                report.add(ItemOutcome(
                    record.id, RefreshStatus.SKIPPED, "no transcript available yet"
                ))

        logger.info(
            "CONVERSATION_BATCH_REFRESH_COMPLETED",
            extra={"candidates": len(pending), "counts": report.counts}
        )
        return report
