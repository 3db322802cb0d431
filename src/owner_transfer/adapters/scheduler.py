"""
One-shot schedulers that re-invoke the slice entrypoint after a delay.

``LocalScheduler`` records the next invocation in a file that the CLI ``run``
loop waits on. ``EventBridgeScheduler`` creates a single-fire EventBridge
Scheduler schedule that invokes the Lambda entrypoint and deletes itself.
"""
import json
import logging
import re
import uuid
from datetime import datetime, timedelta, timezone
from pathlib import Path
from typing import Callable, Optional

from botocore.exceptions import ClientError
from pydantic import BaseModel

from owner_transfer.errors import SchedulerError
from owner_transfer.settings import Settings, get_settings

logger = logging.getLogger(__name__)

SLICE_ENTRYPOINT = "run_slice"

_SCHEDULE_NAME_CHARS = re.compile(r"[^0-9A-Za-z_.-]")


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class ScheduledInvocation(BaseModel):
    """A pending re-invocation of the entrypoint."""
    entrypoint: str
    queue_key: str
    due_at: datetime


class BaseScheduler:
    """Base class for slice schedulers (to be extended by specific implementations)"""
    def schedule_once(self, entrypoint: str, delay_seconds: int, queue_key: str) -> ScheduledInvocation:
        raise NotImplementedError


class LocalScheduler(BaseScheduler):
    """Records the next invocation under ``<storage_dir>/schedules``"""
    def __init__(self, storage_dir: str = "storage",
                 now: Callable[[], datetime] = _utcnow):
        self.schedule_dir = Path(storage_dir) / "schedules"
        self.schedule_dir.mkdir(parents=True, exist_ok=True)
        self.now = now
        logger.info("LocalScheduler initialized at: %s", self.schedule_dir)

    def _path(self, queue_key: str) -> Path:
        return self.schedule_dir / f"{_SCHEDULE_NAME_CHARS.sub('_', queue_key)}.json"

    def schedule_once(self, entrypoint, delay_seconds, queue_key):
        invocation = ScheduledInvocation(
            entrypoint=entrypoint,
            queue_key=queue_key,
            due_at=self.now() + timedelta(seconds=delay_seconds),
        )
        path = self._path(queue_key)
        try:
            with open(path, "w", encoding="utf-8") as f:
                f.write(invocation.model_dump_json())
        except OSError as e:
            raise SchedulerError(f"Cannot record schedule for {queue_key}: {e}") from e
        logger.info("Scheduled %s for %s at %s", entrypoint, queue_key, invocation.due_at.isoformat())
        return invocation

    def pending(self, queue_key: str) -> Optional[ScheduledInvocation]:
        path = self._path(queue_key)
        if not path.exists():
            return None
        with open(path, "r", encoding="utf-8") as f:
            return ScheduledInvocation.model_validate_json(f.read())

    def clear(self, queue_key: str) -> None:
        try:
            self._path(queue_key).unlink()
        except FileNotFoundError:
            pass


class EventBridgeScheduler(BaseScheduler):
    """Creates single-fire EventBridge Scheduler schedules"""
    def __init__(self, scheduler_client, target_arn: str, role_arn: str,
                 group_name: str = "default",
                 now: Callable[[], datetime] = _utcnow):
        self.client = scheduler_client
        self.target_arn = target_arn
        self.role_arn = role_arn
        self.group_name = group_name
        self.now = now

        logger.info(f"EventBridgeScheduler initialized")
        logger.info(f"  Target: {self.target_arn}")
        logger.info(f"  Group: {self.group_name}")

    def schedule_name(self, queue_key: str, due_at: datetime) -> str:
        # Names are limited to 64 characters; the random tail keeps
        # schedules armed within the same second apart
        prefix = _SCHEDULE_NAME_CHARS.sub("-", queue_key)[:40]
        return f"{prefix}-{due_at.strftime('%Y%m%d%H%M%S')}-{uuid.uuid4().hex[:8]}"

    def schedule_once(self, entrypoint, delay_seconds, queue_key):
        due_at = (self.now() + timedelta(seconds=delay_seconds)).replace(microsecond=0)
        name = self.schedule_name(queue_key, due_at)
        try:
            self.client.create_schedule(
                Name=name,
                GroupName=self.group_name,
                ScheduleExpression=f"at({due_at.strftime('%Y-%m-%dT%H:%M:%S')})",
                ScheduleExpressionTimezone="UTC",
                FlexibleTimeWindow={"Mode": "OFF"},
                Target={
                    "Arn": self.target_arn,
                    "RoleArn": self.role_arn,
                    "Input": json.dumps({"entrypoint": entrypoint, "queue_key": queue_key}),
                },
                ActionAfterCompletion="DELETE",
            )
        except ClientError as e:
            raise SchedulerError(f"Cannot create schedule {name}: {e}") from e

        logger.info(f"Scheduled {entrypoint} for {queue_key} at {due_at.isoformat()} ({name})")
        return ScheduledInvocation(entrypoint=entrypoint, queue_key=queue_key, due_at=due_at)


class SchedulerFactory:
    """Factory to initialize the correct scheduler based on deployment mode"""

    @staticmethod
    def get_scheduler(settings: Optional[Settings] = None) -> BaseScheduler:
        settings = settings or get_settings()
        mode = settings.deployment_mode

        if mode == "local-dev":
            return LocalScheduler(settings.storage_dir)

        if mode in ("aws-mock", "aws-prod"):
            if not settings.scheduler_target_arn or not settings.scheduler_role_arn:
                raise SchedulerError(
                    "SCHEDULER_TARGET_ARN and SCHEDULER_ROLE_ARN are required for EventBridge scheduling"
                )
            from owner_transfer.aws.utils import AWSClientManager
            client = AWSClientManager(settings).get_scheduler_client()
            return EventBridgeScheduler(
                client,
                target_arn=settings.scheduler_target_arn,
                role_arn=settings.scheduler_role_arn,
                group_name=settings.scheduler_group,
            )

        raise ValueError(
            f"Invalid deployment_mode: {mode}. "
            f"Choose from ['local-dev', 'aws-mock', 'aws-prod']"
        )
