"""Per-item outcomes and aggregate reports for bulk operations."""
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Dict, List, Optional, Type


class RefreshStatus(Enum):
    UPDATED = "updated"
    FAILED = "failed"
    SKIPPED = "skipped"


class ImportStatus(Enum):
    CREATED = "created"
    UPDATED = "updated"
    SKIPPED = "skipped"
    FAILED = "failed"


class ValidationStatus(Enum):
    VALID = "valid"
    INVALID = "invalid"     # Provider says the call does not exist
    ERROR = "error"         # Inconclusive


@dataclass(frozen=True)
class ItemOutcome:
    conversation_id: Optional[str]
    status: Enum
    reason: Optional[str] = None

    def to_dict(self) -> Dict[str, Any]:
        return {
            "conversation_id": self.conversation_id,
            "status": self.status.value,
            "reason": self.reason,
        }


@dataclass
class BatchReport:
    """Ordered per-item outcomes plus counts for every status of the operation."""
    operation: str
    status_type: Type[Enum]
    items: List[ItemOutcome] = field(default_factory=list)

    def add(self, outcome: ItemOutcome) -> None:
        self.items.append(outcome)

    def count(self, status: Enum) -> int:
        return sum(1 for item in self.items if item.status == status)

    @property
    def counts(self) -> Dict[str, int]:
        return {status.value: self.count(status) for status in self.status_type}

    def to_dict(self) -> Dict[str, Any]:
        return {
            "operation": self.operation,
            "total": len(self.items),
            "counts": self.counts,
            "results": [item.to_dict() for item in self.items],
        }
