"""
Slice driver.

Wraps the pure traversal engine with the side effects of a slice: loading or
seeding the checkpoint, persisting the remainder, re-arming the scheduler and
recording completion.
"""
import logging
import time
from datetime import datetime, timezone
from typing import Callable, Iterable, Optional

from owner_transfer import engine
from owner_transfer.adapters.checkpoint_store import BaseQueueStore, QueueStoreFactory
from owner_transfer.adapters.scheduler import SLICE_ENTRYPOINT, BaseScheduler, SchedulerFactory
from owner_transfer.adapters.storage import BaseStorage, StorageFactory
from owner_transfer.checkpoint import (
    completion_key,
    dump_checkpoint,
    dump_completion,
    load_checkpoint,
    load_completion,
)
from owner_transfer.engine import SliceAction, SliceResult, TransferConfig
from owner_transfer.schemas import (
    CompletionRecord,
    QueueCheckpoint,
    TransferState,
    TransferStatus,
)
from owner_transfer.settings import Settings, get_settings
from owner_transfer.utils.decorators import log_execution_time

logger = logging.getLogger(__name__)


class TransferDriver:
    """Runs slices of one transfer against its collaborators.

    At most one driver may operate on a given queue key at a time; overlapping
    slices on the same key overwrite each other's checkpoint.
    """

    def __init__(self, config: TransferConfig, storage: BaseStorage,
                 store: BaseQueueStore, scheduler: BaseScheduler,
                 clock: Callable[[], float] = time.monotonic,
                 entrypoint: str = SLICE_ENTRYPOINT):
        self.config = config
        self.storage = storage
        self.store = store
        self.scheduler = scheduler
        self.clock = clock
        self.entrypoint = entrypoint

    @property
    def queue_key(self) -> str:
        return self.config.queue_key

    def load_checkpoint(self) -> Optional[QueueCheckpoint]:
        payload = self.store.get(self.queue_key)
        if payload is None:
            return None
        return load_checkpoint(payload, self.queue_key)

    def load_completion(self) -> Optional[CompletionRecord]:
        return load_completion(self.store.get(completion_key(self.queue_key)))

    @log_execution_time
    def run_slice(self, budget_seconds: Optional[float] = None) -> SliceResult:
        """Run one slice and perform its follow-up action.

        Args:
            budget_seconds: Overrides the configured slice budget

        Returns:
            The engine's slice result

        Raises:
            CheckpointError: If the stored checkpoint cannot be decoded
            SchedulerError: If the next slice cannot be scheduled
        """
        checkpoint = self.load_checkpoint()
        if checkpoint is None:
            completion = self.load_completion()
            if completion is not None:
                logger.info(
                    "Transfer %s already completed at %s; nothing to do.",
                    self.queue_key, completion.completed_at.isoformat()
                )
                return SliceResult(queue=[], action=SliceAction.COMPLETE, already_complete=True)

            checkpoint = QueueCheckpoint(queue_key=self.queue_key, items=list(self.config.root_ids))
            logger.info(
                "No checkpoint for %s; seeding %s root item(s).",
                self.queue_key, len(checkpoint.items)
            )

        result = engine.run_slice(
            checkpoint.items,
            self.config,
            self.storage,
            clock=self.clock,
            budget_seconds=budget_seconds,
        )

        checkpoint = checkpoint.model_copy(update={
            "items": list(result.queue),
            "updated_at": datetime.now(timezone.utc),
            "slices_completed": checkpoint.slices_completed + 1,
            "items_handled": checkpoint.items_handled + result.handled,
            "owners_changed": checkpoint.owners_changed + result.owners_changed,
        })

        if result.action is SliceAction.RESCHEDULE:
            self.store.set(self.queue_key, dump_checkpoint(checkpoint))
            self.scheduler.schedule_once(
                self.entrypoint, self.config.reschedule_delay_seconds, self.queue_key
            )
        else:
            record = CompletionRecord(
                queue_key=self.queue_key,
                slices_completed=checkpoint.slices_completed,
                items_handled=checkpoint.items_handled,
                owners_changed=checkpoint.owners_changed,
            )
            self.store.set(completion_key(self.queue_key), dump_completion(record))
            self.store.delete(self.queue_key)
            logger.info("Transfer complete.")

        return result

    def status(self) -> TransferStatus:
        checkpoint = self.load_checkpoint()
        if checkpoint is not None:
            return TransferStatus(
                queue_key=self.queue_key,
                state=TransferState.IN_PROGRESS,
                remaining=len(checkpoint.items),
                slices_completed=checkpoint.slices_completed,
                items_handled=checkpoint.items_handled,
                owners_changed=checkpoint.owners_changed,
                updated_at=checkpoint.updated_at,
            )

        completion = self.load_completion()
        if completion is not None:
            return TransferStatus(
                queue_key=self.queue_key,
                state=TransferState.COMPLETE,
                slices_completed=completion.slices_completed,
                items_handled=completion.items_handled,
                owners_changed=completion.owners_changed,
                updated_at=completion.completed_at,
            )

        return TransferStatus(queue_key=self.queue_key, state=TransferState.NOT_STARTED)

    def seed(self, item_ids: Optional[Iterable[str]] = None) -> QueueCheckpoint:
        """Start (or restart) the transfer from the given items, default the roots."""
        items = list(item_ids) if item_ids is not None else list(self.config.root_ids)
        if not items:
            raise ValueError("Cannot seed a transfer with no items")

        checkpoint = QueueCheckpoint(queue_key=self.queue_key, items=items)
        self.store.set(self.queue_key, dump_checkpoint(checkpoint))
        self.store.delete(completion_key(self.queue_key))
        logger.info("Seeded %s with %s item(s)", self.queue_key, len(items))
        return checkpoint

    def enqueue(self, item_ids: Iterable[str]) -> QueueCheckpoint:
        """Push items onto the top of an in-progress transfer's queue."""
        items = list(item_ids)
        checkpoint = self.load_checkpoint()
        if checkpoint is None:
            return self.seed(items)

        checkpoint = checkpoint.model_copy(update={
            "items": checkpoint.items + items,
            "updated_at": datetime.now(timezone.utc),
        })
        self.store.set(self.queue_key, dump_checkpoint(checkpoint))
        logger.info("Enqueued %s item(s) on %s", len(items), self.queue_key)
        return checkpoint

    def reset(self) -> None:
        """Forget the transfer: removes the checkpoint and any completion record.

        Schedules that are already armed still fire once and will seed from the
        roots, so cancel them separately when stopping a transfer.
        """
        self.store.delete(self.queue_key)
        self.store.delete(completion_key(self.queue_key))
        logger.info("Reset transfer %s", self.queue_key)


def build_driver(settings: Optional[Settings] = None) -> TransferDriver:
    """Create a driver wired to the adapters of the configured deployment mode."""
    settings = settings or get_settings()
    return TransferDriver(
        config=settings.transfer_config(),
        storage=StorageFactory.get_storage(settings),
        store=QueueStoreFactory.get_store(settings),
        scheduler=SchedulerFactory.get_scheduler(settings),
    )
