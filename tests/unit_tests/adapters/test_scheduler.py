import json
import re
from datetime import datetime, timezone
from unittest.mock import MagicMock

import pytest
from botocore.exceptions import ClientError

from owner_transfer.adapters.scheduler import (
    SLICE_ENTRYPOINT,
    EventBridgeScheduler,
    LocalScheduler,
    SchedulerFactory,
)
from owner_transfer.errors import SchedulerError
from owner_transfer.settings import Settings
from tests.consts import TEST_QUEUE_KEY, TEST_ROLE_ARN, TEST_TARGET_ARN

FIXED_NOW = datetime(2024, 3, 1, 12, 0, 0, 250000, tzinfo=timezone.utc)


def test_local_scheduler_records_due_time(tmp_path):
    scheduler = LocalScheduler(str(tmp_path), now=lambda: FIXED_NOW)

    invocation = scheduler.schedule_once(SLICE_ENTRYPOINT, 30, TEST_QUEUE_KEY)

    assert invocation.due_at == datetime(2024, 3, 1, 12, 0, 30, 250000, tzinfo=timezone.utc)
    assert scheduler.pending(TEST_QUEUE_KEY) == invocation


def test_local_scheduler_overwrites_and_clears(tmp_path):
    scheduler = LocalScheduler(str(tmp_path), now=lambda: FIXED_NOW)
    scheduler.schedule_once(SLICE_ENTRYPOINT, 30, TEST_QUEUE_KEY)
    second = scheduler.schedule_once(SLICE_ENTRYPOINT, 60, TEST_QUEUE_KEY)

    assert scheduler.pending(TEST_QUEUE_KEY) == second

    scheduler.clear(TEST_QUEUE_KEY)
    scheduler.clear(TEST_QUEUE_KEY)
    assert scheduler.pending(TEST_QUEUE_KEY) is None


@pytest.fixture
def scheduler_client():
    return MagicMock()


@pytest.fixture
def eventbridge(scheduler_client):
    return EventBridgeScheduler(
        scheduler_client, TEST_TARGET_ARN, TEST_ROLE_ARN, now=lambda: FIXED_NOW
    )


def test_eventbridge_creates_one_shot_schedule(scheduler_client, eventbridge):
    invocation = eventbridge.schedule_once(SLICE_ENTRYPOINT, 30, TEST_QUEUE_KEY)

    kwargs = scheduler_client.create_schedule.call_args.kwargs
    assert re.fullmatch(r"QUEUE_TEST-20240301120030-[0-9a-f]{8}", kwargs["Name"])
    assert kwargs["GroupName"] == "default"
    assert kwargs["ScheduleExpression"] == "at(2024-03-01T12:00:30)"
    assert kwargs["ScheduleExpressionTimezone"] == "UTC"
    assert kwargs["FlexibleTimeWindow"] == {"Mode": "OFF"}
    assert kwargs["ActionAfterCompletion"] == "DELETE"
    assert kwargs["Target"]["Arn"] == TEST_TARGET_ARN
    assert kwargs["Target"]["RoleArn"] == TEST_ROLE_ARN
    assert json.loads(kwargs["Target"]["Input"]) == {
        "entrypoint": SLICE_ENTRYPOINT,
        "queue_key": TEST_QUEUE_KEY,
    }
    assert invocation.due_at == datetime(2024, 3, 1, 12, 0, 30, tzinfo=timezone.utc)


def test_eventbridge_schedule_name_is_sanitized_and_bounded(eventbridge):
    name = eventbridge.schedule_name("team/finance transfer " * 5, FIXED_NOW)

    assert len(name) <= 64
    assert "/" not in name and " " not in name


def test_eventbridge_names_differ_within_one_second(scheduler_client, eventbridge):
    eventbridge.schedule_once(SLICE_ENTRYPOINT, 30, TEST_QUEUE_KEY)
    eventbridge.schedule_once(SLICE_ENTRYPOINT, 30, TEST_QUEUE_KEY)

    first, second = [c.kwargs["Name"] for c in scheduler_client.create_schedule.call_args_list]
    assert first != second
    assert first[:-8] == second[:-8]


def test_eventbridge_client_error_becomes_scheduler_error(scheduler_client, eventbridge):
    scheduler_client.create_schedule.side_effect = ClientError(
        {"Error": {"Code": "ConflictException", "Message": "Schedule already exists"}},
        "CreateSchedule",
    )

    with pytest.raises(SchedulerError):
        eventbridge.schedule_once(SLICE_ENTRYPOINT, 30, TEST_QUEUE_KEY)


def test_factory_local_dev(tmp_path):
    settings = Settings(deployment_mode="local-dev", storage_dir=str(tmp_path))
    assert isinstance(SchedulerFactory.get_scheduler(settings), LocalScheduler)


def test_factory_aws_requires_target():
    settings = Settings(deployment_mode="aws-prod", scheduler_target_arn=None, scheduler_role_arn=None)
    with pytest.raises(SchedulerError):
        SchedulerFactory.get_scheduler(settings)


def test_factory_aws(aws_credentials):
    settings = Settings(
        deployment_mode="aws-prod",
        scheduler_target_arn=TEST_TARGET_ARN,
        scheduler_role_arn=TEST_ROLE_ARN,
    )
    scheduler = SchedulerFactory.get_scheduler(settings)

    assert isinstance(scheduler, EventBridgeScheduler)
    assert scheduler.target_arn == TEST_TARGET_ARN
