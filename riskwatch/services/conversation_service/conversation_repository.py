"""Conversation persistence.

Two implementations of the same small contract used by the lifecycle
manager and the reconciliation engine:

- ConversationRepository: PostgreSQL table `conversations`
- InMemoryConversationStore: process-local dict for development and tests

Contract: upsert(record), find_by_id(id), find_by_correlation_ref(ref),
list_all() newest-updated first, count(). Last write wins.
"""
import json
import logging
import threading
from copy import deepcopy
from typing import Any, Dict, List, Optional, Protocol

from riskwatch.shared.database import BaseRepository, ConnectionManager
from riskwatch.shared.models import (
    AnalysisSource,
    ConversationRecord,
    CounselingRecommendation,
    LifecycleStatus,
    RiskLevel,
)

logger = logging.getLogger(__name__)


class ConversationStore(Protocol):
    def upsert(self, record: ConversationRecord) -> ConversationRecord: ...

    def find_by_id(self, conversation_id: str) -> Optional[ConversationRecord]: ...

    def find_by_correlation_ref(self, correlation_ref: str) -> Optional[ConversationRecord]: ...

    def list_all(self) -> List[ConversationRecord]: ...

    def count(self) -> int: ...


class ConversationRepository(BaseRepository[ConversationRecord]):
    """PostgreSQL-backed conversation records."""

    def __init__(self, connection_manager: ConnectionManager):
        super().__init__(connection_manager, "conversations")

    def _row_to_entity(self, row: tuple) -> ConversationRecord:
        """Convert database row to ConversationRecord.

        Expected columns:
            0: id
            1: originator
            2: telephony_call_ref
            3: created_at
            4: updated_at
            5: transcript
            6: recording_ref
            7: risk_level
            8: counseling
            9: risk_score
            10: immediate_intervention
            11: assessment_summary
            12: concerning_phrases_json
            13: lifecycle_status
            14: last_analysis_source
        """
        phrases = row[12] or []
        if isinstance(phrases, str):
            phrases = json.loads(phrases)

        return ConversationRecord(
            id=row[0],
            originator=row[1] or "unknown",
            telephony_call_ref=row[2],
            created_at=row[3],
            updated_at=row[4],
            transcript=row[5] or "",
            recording_ref=row[6],
            risk_level=RiskLevel(row[7]),
            counseling=CounselingRecommendation(row[8]),
            risk_score=row[9],
            immediate_intervention=bool(row[10]),
            assessment_summary=row[11] or "",
            concerning_phrases=list(phrases),
            lifecycle_status=LifecycleStatus(row[13]),
            last_analysis_source=AnalysisSource(row[14]) if row[14] else None,
        )

    def _entity_to_params(self, entity: ConversationRecord) -> Dict[str, Any]:
        return {
            "id": entity.id,
            "originator": entity.originator,
            "telephony_call_ref": entity.telephony_call_ref,
            "created_at": entity.created_at,
            "updated_at": entity.updated_at,
            "transcript": entity.transcript,
            "recording_ref": entity.recording_ref,
            "risk_level": entity.risk_level.value,
            "counseling": entity.counseling.value,
            "risk_score": entity.risk_score,
            "immediate_intervention": entity.immediate_intervention,
            "assessment_summary": entity.assessment_summary,
            "concerning_phrases_json": json.dumps(entity.concerning_phrases),
            "lifecycle_status": entity.lifecycle_status.value,
            "last_analysis_source": (
                entity.last_analysis_source.value if entity.last_analysis_source else None
            ),
        }

    def upsert(self, record: ConversationRecord) -> ConversationRecord:
        return self.save(record)

    def find_by_correlation_ref(self, correlation_ref: str) -> Optional[ConversationRecord]:
        """Resolve a telephony session reference to its conversation."""
        return self._fetch_one(
            f"SELECT * FROM {self.table_name} WHERE telephony_call_ref = %s "
            f"ORDER BY updated_at DESC LIMIT 1",
            (correlation_ref,),
        )

    def list_all(self) -> List[ConversationRecord]:
        return self.find_all()


class InMemoryConversationStore:
    """Thread-safe dict store with the repository contract.

    Records are copied on the way in and out so callers never share
    mutable state with the store.
    """

    def __init__(self):
        self._records: Dict[str, ConversationRecord] = {}
        self._lock = threading.Lock()

    def upsert(self, record: ConversationRecord) -> ConversationRecord:
        with self._lock:
            self._records[record.id] = deepcopy(record)
        return record

    def find_by_id(self, conversation_id: str) -> Optional[ConversationRecord]:
        with self._lock:
            record = self._records.get(conversation_id)
            return deepcopy(record) if record else None

    def find_by_correlation_ref(self, correlation_ref: str) -> Optional[ConversationRecord]:
        with self._lock:
            matches = [r for r in self._records.values() if r.telephony_call_ref == correlation_ref]
            if not matches:
                return None
            return deepcopy(max(matches, key=lambda r: r.updated_at))

    def list_all(self) -> List[ConversationRecord]:
        with self._lock:
            records = [deepcopy(r) for r in self._records.values()]
        return sorted(records, key=lambda r: r.updated_at, reverse=True)

    def count(self) -> int:
        with self._lock:
            return len(self._records)
