"""Conversation Service: lifecycle transitions, persistence and bulk reconciliation.

The Flask app lives in http_handler and is not imported here.
"""

from .conversation_repository import (
    ConversationRepository,
    ConversationStore,
    InMemoryConversationStore,
)
from .lifecycle import (
    ConversationLifecycleManager,
    LifecycleError,
    ConversationNotFound,
    NoTranscript,
    RefreshOutcome,
    apply_assessment,
    resolve_status,
)
from .outcomes import (
    BatchReport,
    ItemOutcome,
    ImportStatus,
    RefreshStatus,
    ValidationStatus,
)
from .reconciliation import BatchReconciliationEngine, ReconciliationConfig

__all__ = [
    "ConversationRepository",
    "ConversationStore",
    "InMemoryConversationStore",
    "ConversationLifecycleManager",
    "LifecycleError",
    "ConversationNotFound",
    "NoTranscript",
    "RefreshOutcome",
    "apply_assessment",
    "resolve_status",
    "BatchReport",
    "ItemOutcome",
    "ImportStatus",
    "RefreshStatus",
    "ValidationStatus",
    "BatchReconciliationEngine",
    "ReconciliationConfig",
]
