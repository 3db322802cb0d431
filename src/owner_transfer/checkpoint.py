"""
Checkpoint serialization.

Checkpoints are stored as JSON text. The current layout is a versioned
object (see ``QueueCheckpoint``); a bare JSON array of identifiers, as written
by earlier script-based transfers, is still accepted on load.
"""
import json
import logging
from typing import Optional

from pydantic import ValidationError

from owner_transfer.errors import CheckpointError
from owner_transfer.schemas import (
    CHECKPOINT_SCHEMA_VERSION,
    CompletionRecord,
    QueueCheckpoint,
)

logger = logging.getLogger(__name__)

COMPLETION_SUFFIX = ".complete"


def completion_key(queue_key: str) -> str:
    """Store key of the completion record for a queue key."""
    return f"{queue_key}{COMPLETION_SUFFIX}"


def dump_checkpoint(checkpoint: QueueCheckpoint) -> str:
    return checkpoint.model_dump_json()


def load_checkpoint(payload: str, queue_key: str) -> QueueCheckpoint:
    """Decode a stored checkpoint.

    Args:
        payload: Text previously written under ``queue_key``
        queue_key: Key the payload was read from

    Returns:
        The decoded checkpoint

    Raises:
        CheckpointError: If the payload is not valid JSON, has an unknown
            schema version or does not match the checkpoint layout
    """
    try:
        raw = json.loads(payload)
    except json.JSONDecodeError as e:
        raise CheckpointError(f"Checkpoint {queue_key} is not valid JSON: {e}") from e

    if isinstance(raw, list):
        if not all(isinstance(item, str) for item in raw):
            raise CheckpointError(f"Legacy checkpoint {queue_key} holds non-string items")
        logger.info("Upgrading legacy checkpoint %s (%s items)", queue_key, len(raw))
        return QueueCheckpoint(queue_key=queue_key, items=raw)

    if not isinstance(raw, dict):
        raise CheckpointError(f"Checkpoint {queue_key} has unexpected type {type(raw).__name__}")

    version = raw.get("schema_version")
    if version != CHECKPOINT_SCHEMA_VERSION:
        raise CheckpointError(
            f"Checkpoint {queue_key} has unsupported schema_version {version!r}"
        )

    try:
        checkpoint = QueueCheckpoint.model_validate(raw)
    except ValidationError as e:
        raise CheckpointError(f"Checkpoint {queue_key} is malformed: {e}") from e

    if checkpoint.queue_key != queue_key:
        logger.warning(
            "Checkpoint stored under %s names queue %s", queue_key, checkpoint.queue_key
        )
    return checkpoint


def dump_completion(record: CompletionRecord) -> str:
    return record.model_dump_json()


def load_completion(payload: Optional[str]) -> Optional[CompletionRecord]:
    if payload is None:
        return None
    try:
        return CompletionRecord.model_validate_json(payload)
    except ValidationError as e:
        raise CheckpointError(f"Completion record is malformed: {e}") from e
