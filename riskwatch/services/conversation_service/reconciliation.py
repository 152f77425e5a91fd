"""Batch Reconciliation Engine.

Bulk import and validation of local conversation records against the
voice provider's call list. Both operations work in fixed-size groups
with a short pause between groups to stay under provider rate limits,
and both record one outcome per item instead of aborting on failure.
"""
import asyncio
import logging
import os
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Any, Awaitable, Callable, Dict, List, Optional, Sequence, TypeVar

from riskwatch.shared.models import ConversationRecord
from riskwatch.services.providers import CallMetadata, NotFound, ProviderError, VoiceProviderClient
from riskwatch.services.risk_engine import RiskAssessmentEngine
from .conversation_repository import ConversationStore
from .lifecycle import apply_assessment
from .outcomes import BatchReport, ImportStatus, ItemOutcome, ValidationStatus

logger = logging.getLogger(__name__)

T = TypeVar("T")


@dataclass(frozen=True)
class ReconciliationConfig:
    import_group_size: int = 5
    import_group_delay_seconds: float = 0.1
    validate_group_size: int = 10
    validate_group_delay_seconds: float = 0.2
    default_import_limit: int = 20

    @classmethod
    def from_env(cls) -> "ReconciliationConfig":
        return cls(
            import_group_size=int(os.getenv("IMPORT_GROUP_SIZE", "5")),
            import_group_delay_seconds=float(os.getenv("IMPORT_GROUP_DELAY", "0.1")),
            validate_group_size=int(os.getenv("VALIDATE_GROUP_SIZE", "10")),
            validate_group_delay_seconds=float(os.getenv("VALIDATE_GROUP_DELAY", "0.2")),
            default_import_limit=int(os.getenv("IMPORT_DEFAULT_LIMIT", "20")),
        )


def _chunks(items: Sequence[T], size: int) -> List[Sequence[T]]:
    return [items[i:i + size] for i in range(0, len(items), size)]


def _naive_utc(value: Optional[datetime]) -> Optional[datetime]:
    if value is None or value.tzinfo is None:
        return value
    return value.astimezone(timezone.utc).replace(tzinfo=None)


def _call_id(call: Dict[str, Any]) -> Optional[str]:
    value = call.get("callId") or call.get("id")
    return str(value) if value else None


class BatchReconciliationEngine:
    """Drives the assessment pipeline across many provider calls."""

    def __init__(
        self,
        store: ConversationStore,
        engine: RiskAssessmentEngine,
        voice_client: VoiceProviderClient,
        config: Optional[ReconciliationConfig] = None,
        sleep: Callable[[float], Awaitable[Any]] = asyncio.sleep,
        clock: Callable[[], datetime] = datetime.utcnow,
    ):
        self.store = store
        self.engine = engine
        self.voice_client = voice_client
        self.config = config or ReconciliationConfig()
        self._sleep = sleep
        self._clock = clock
        self._list_calls = engine.retry.wrap(voice_client.list_calls)
        self._fetch_metadata = engine.retry.wrap(voice_client.fetch_call_metadata)

    async def _run_groups(
        self,
        items: Sequence[T],
        group_size: int,
        delay_seconds: float,
        worker: Callable[[T], Awaitable[ItemOutcome]],
        on_error: Callable[[T, Exception], ItemOutcome],
    ) -> List[ItemOutcome]:
        outcomes: List[ItemOutcome] = []
        for index, group in enumerate(_chunks(items, group_size)):
            if index > 0 and delay_seconds > 0:
                await self._sleep(delay_seconds)
            results = await asyncio.gather(*(worker(item) for item in group), return_exceptions=True)
            for item, result in zip(group, results):
                if isinstance(result, Exception):
                    outcomes.append(on_error(item, result))
                elif isinstance(result, BaseException):
                    raise result
                else:
                    outcomes.append(result)
        return outcomes

    async def import_from_provider(self, limit: Optional[int] = None) -> BatchReport:
        """Import (or re-import) up to `limit` provider calls.

        Raises:
            ValueError: limit is less than 1
            ProviderError: The call list itself could not be fetched
        """
        if limit is None:
            limit = self.config.default_import_limit
        if limit < 1:
            raise ValueError(f"limit must be at least 1, got {limit}")
        calls = await self._list_calls(limit)
        calls = calls[:limit]

        logger.info("IMPORT_STARTED", extra={"limit": limit, "listed": len(calls)})

        def on_error(call: Dict[str, Any], error: Exception) -> ItemOutcome:
            logger.error(
                "IMPORT_ITEM_FAILED",
                extra={"conversation_id": _call_id(call), "error": str(error)}
            )
            return ItemOutcome(_call_id(call), ImportStatus.FAILED, str(error))

        report = BatchReport(operation="import", status_type=ImportStatus)
        for outcome in await self._run_groups(
            calls,
            self.config.import_group_size,
            self.config.import_group_delay_seconds,
            self._import_one,
            on_error,
        ):
            report.add(outcome)

        logger.info("IMPORT_COMPLETED", extra={"counts": report.counts})
        return report

    async def _import_one(self, call: Dict[str, Any]) -> ItemOutcome:
        call_id = _call_id(call)
        if not call_id:
            return ItemOutcome(None, ImportStatus.SKIPPED, "missing call identifier")

        existing = await asyncio.to_thread(self.store.find_by_id, call_id)
        metadata = await self._metadata_or_none(call_id)

        if existing is None:
            now = self._clock()
            record = ConversationRecord(
                id=call_id,
                originator=(metadata.originator if metadata else None) or call.get("from") or "unknown",
                created_at=_naive_utc(metadata.created_at if metadata else None) or now,
                updated_at=now,
            )
        else:
            record = existing
            if record.originator == "unknown" and metadata and metadata.originator:
                record.originator = metadata.originator

        result = await self.engine.assess(call_id, known_transcript=record.transcript)
        updated = apply_assessment(record, result, self._clock())
        await asyncio.to_thread(self.store.upsert, updated)

        status = ImportStatus.CREATED if existing is None else ImportStatus.UPDATED
        logger.info(
            "IMPORT_ITEM_STORED",
            extra={
                "conversation_id": call_id,
                "status": status.value,
                "risk_level": updated.risk_level.value,
                "source": result.source.value,
            }
        )
        return ItemOutcome(call_id, status)

    async def _metadata_or_none(self, call_id: str) -> Optional[CallMetadata]:
        try:
            return await self._fetch_metadata(call_id)
        except ProviderError as e:
            logger.info(
                "IMPORT_METADATA_UNAVAILABLE",
                extra={"conversation_id": call_id, "error": str(e)}
            )
            return None

    async def validate_against_provider(self) -> BatchReport:
        """Check that every stored conversation still exists upstream."""
        records = await asyncio.to_thread(self.store.list_all)
        ids = [r.id for r in records]

        logger.info("VALIDATION_STARTED", extra={"stored": len(ids)})

        def on_error(conversation_id: str, error: Exception) -> ItemOutcome:
            return ItemOutcome(conversation_id, ValidationStatus.ERROR, str(error))

        report = BatchReport(operation="validate", status_type=ValidationStatus)
        for outcome in await self._run_groups(
            ids,
            self.config.validate_group_size,
            self.config.validate_group_delay_seconds,
            self._validate_one,
            on_error,
        ):
            report.add(outcome)

        logger.info("VALIDATION_COMPLETED", extra={"counts": report.counts})
        return report

    async def _validate_one(self, conversation_id: str) -> ItemOutcome:
        try:
            await self._fetch_metadata(conversation_id)
        except NotFound:
            logger.warning("VALIDATION_ORPHANED_RECORD", extra={"conversation_id": conversation_id})
            return ItemOutcome(conversation_id, ValidationStatus.INVALID, "not found at provider")
        except ProviderError as e:
            return ItemOutcome(conversation_id, ValidationStatus.ERROR, str(e))
        return ItemOutcome(conversation_id, ValidationStatus.VALID)
