##########################################
# --- Item, checkpoint, status models --- #
##########################################

from datetime import datetime, timezone
from enum import Enum
from typing import List, Optional

from pydantic import BaseModel, ConfigDict, Field

CHECKPOINT_SCHEMA_VERSION = 1


class ItemKind(str, Enum):
    """Kind of node in the remote tree."""
    CONTAINER = "container"
    LEAF = "leaf"


class ItemDescriptor(BaseModel):
    """Resolved view of an item identifier. Recomputed on every dequeue."""
    model_config = ConfigDict(frozen=True)

    item_id: str
    kind: ItemKind
    owner: Optional[str] = Field(
        default=None,
        description="Owner principal, or None when the backend does not expose one.",
    )

    @property
    def is_container(self) -> bool:
        return self.kind is ItemKind.CONTAINER


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class QueueCheckpoint(BaseModel):
    """Persisted remainder of the work queue plus cumulative counters."""
    schema_version: int = Field(
        default=CHECKPOINT_SCHEMA_VERSION,
        description="Version of the checkpoint layout.",
    )
    queue_key: str
    items: List[str] = Field(
        default_factory=list,
        description="Unprocessed item identifiers, bottom of the stack first.",
    )
    started_at: datetime = Field(default_factory=_utcnow)
    updated_at: datetime = Field(default_factory=_utcnow)
    slices_completed: int = 0
    items_handled: int = 0
    owners_changed: int = 0

    model_config = ConfigDict(
        json_schema_extra={
            "example": {
                "schema_version": 1,
                "queue_key": "QUEUE_ORIGINAL",
                "items": ["1AbCdEfG", "1HiJkLmN"],
                "started_at": "2024-01-01T00:00:00Z",
                "updated_at": "2024-01-01T00:05:00Z",
                "slices_completed": 1,
                "items_handled": 842,
                "owners_changed": 311,
            }
        }
    )


class CompletionRecord(BaseModel):
    """Written when a transfer drains its queue."""
    queue_key: str
    completed_at: datetime = Field(default_factory=_utcnow)
    slices_completed: int = 0
    items_handled: int = 0
    owners_changed: int = 0


class TransferState(str, Enum):
    """Lifecycle of one transfer, keyed by its queue key."""
    NOT_STARTED = "not_started"
    IN_PROGRESS = "in_progress"
    COMPLETE = "complete"


class TransferStatus(BaseModel):
    """Operator view of a transfer."""
    queue_key: str
    state: TransferState
    remaining: int = 0
    slices_completed: int = 0
    items_handled: int = 0
    owners_changed: int = 0
    updated_at: Optional[datetime] = None
