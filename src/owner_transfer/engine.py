"""
Traversal engine.

One call to ``run_slice`` drains a work queue depth-first for at most one
slice budget: pop an identifier, resolve it, hand it to the new owner when the
current owner holds it, and push its children when it is a container. The
function does no persistence or scheduling; it returns the remaining queue
and the action the caller should take.
"""
import logging
import time
from dataclasses import dataclass
from enum import Enum
from typing import TYPE_CHECKING, Callable, List, Optional, Sequence, Tuple

from owner_transfer.errors import StorageError

if TYPE_CHECKING:
    from owner_transfer.adapters.storage import BaseStorage

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class TransferConfig:
    """Static configuration of one transfer."""
    root_ids: Tuple[str, ...]
    current_owner: str
    new_owner: str
    queue_key: str = "QUEUE_ORIGINAL"
    slice_budget_seconds: float = 300.0
    heartbeat_interval: int = 100
    max_heartbeats: int = 20
    reschedule_delay_seconds: int = 30

    def __post_init__(self):
        if not self.root_ids:
            raise ValueError("root_ids must name at least one item")
        if self.slice_budget_seconds < 0:
            raise ValueError("slice_budget_seconds must not be negative")
        if self.heartbeat_interval <= 0:
            raise ValueError("heartbeat_interval must be positive")


class SliceAction(str, Enum):
    """What the driver does once a slice returns."""
    RESCHEDULE = "reschedule"
    COMPLETE = "complete"


@dataclass
class SliceResult:
    """Outcome of one slice."""
    queue: List[str]
    action: SliceAction
    handled: int = 0
    owners_changed: int = 0
    owner_failures: int = 0
    unresolved: int = 0
    listing_failures: int = 0
    elapsed_seconds: float = 0.0
    # set by the driver when a finished transfer is invoked again
    already_complete: bool = False

    @property
    def remaining(self) -> int:
        return len(self.queue)


def run_slice(
    queue: Sequence[str],
    config: TransferConfig,
    storage: "BaseStorage",
    clock: Callable[[], float] = time.monotonic,
    budget_seconds: Optional[float] = None,
) -> SliceResult:
    """Process items from the top of ``queue`` until it empties or the budget runs out.

    The first item is always processed, so every slice makes progress even
    when the budget is already spent. The budget is checked between items;
    an item in flight is finished.

    Args:
        queue: Pending identifiers; the last element is processed first
        config: Transfer configuration
        storage: Adapter for the remote tree
        clock: Monotonic time source in seconds
        budget_seconds: Overrides ``config.slice_budget_seconds`` for this slice

    Returns:
        The remaining queue, counters and the follow-up action
    """
    pending = list(queue)
    budget = config.slice_budget_seconds if budget_seconds is None else budget_seconds
    result = SliceResult(queue=pending, action=SliceAction.COMPLETE)
    heartbeats = 0
    start = clock()

    while pending and (result.handled == 0 or clock() - start < budget):
        item_id = pending.pop()
        _handle_item(item_id, pending, config, storage, result)
        result.handled += 1

        if result.handled % config.heartbeat_interval == 0 and heartbeats < config.max_heartbeats:
            logger.info(
                "Processed %s items this slice; %s left in queue.",
                result.handled, len(pending)
            )
            heartbeats += 1

    result.elapsed_seconds = clock() - start
    result.action = SliceAction.RESCHEDULE if pending else SliceAction.COMPLETE
    logger.info("Slice processed %s items; %s left.", result.handled, len(pending))
    return result


def _handle_item(
    item_id: str,
    pending: List[str],
    config: TransferConfig,
    storage: "BaseStorage",
    result: SliceResult,
) -> None:
    try:
        descriptor = storage.resolve(item_id)
    except StorageError as e:
        logger.warning("Lookup failed for %s - skipped: %s", item_id, e)
        result.unresolved += 1
        return

    if descriptor is None:
        logger.info("Cannot access %s - skipped.", item_id)
        result.unresolved += 1
        return

    if descriptor.owner is not None and descriptor.owner == config.current_owner:
        try:
            storage.set_owner(item_id, config.new_owner)
            result.owners_changed += 1
        except StorageError as e:
            logger.warning("Skip %s - %s", item_id, e)
            result.owner_failures += 1

    if descriptor.is_container:
        try:
            children = list(storage.list_children(item_id))
        except StorageError as e:
            logger.warning("Could not list children of %s: %s", item_id, e)
            result.listing_failures += 1
            return
        pending.extend(children)
