import pytest

from owner_transfer.adapters.checkpoint_store import (
    LocalQueueStore,
    MemoryQueueStore,
    QueueStoreFactory,
    S3QueueStore,
)
from owner_transfer.errors import CheckpointError
from owner_transfer.settings import Settings
from tests.consts import TEST_BUCKET_NAME, TEST_QUEUE_KEY

PAYLOAD = '{"schema_version": 1, "queue_key": "QUEUE_TEST", "items": ["a", "b"]}'


@pytest.fixture(params=["memory", "local", "s3"])
def any_store(request, tmp_path):
    if request.param == "memory":
        yield MemoryQueueStore()
    elif request.param == "local":
        yield LocalQueueStore(str(tmp_path))
    else:
        s3_client = request.getfixturevalue("mocked_aws")
        yield S3QueueStore(s3_client, TEST_BUCKET_NAME)


def test_missing_key_returns_none(any_store):
    assert any_store.get(TEST_QUEUE_KEY) is None


def test_set_then_get_round_trips(any_store):
    any_store.set(TEST_QUEUE_KEY, PAYLOAD)
    assert any_store.get(TEST_QUEUE_KEY) == PAYLOAD


def test_set_overwrites(any_store):
    any_store.set(TEST_QUEUE_KEY, PAYLOAD)
    any_store.set(TEST_QUEUE_KEY, "[]")
    assert any_store.get(TEST_QUEUE_KEY) == "[]"


def test_delete_is_idempotent(any_store):
    any_store.set(TEST_QUEUE_KEY, PAYLOAD)
    any_store.delete(TEST_QUEUE_KEY)
    any_store.delete(TEST_QUEUE_KEY)
    assert any_store.get(TEST_QUEUE_KEY) is None


def test_keys_are_independent(any_store):
    any_store.set("QUEUE_ONE", "[\"1\"]")
    any_store.set("QUEUE_TWO", "[\"2\"]")
    any_store.delete("QUEUE_ONE")
    assert any_store.get("QUEUE_TWO") == "[\"2\"]"


def test_local_store_layout(tmp_path):
    store = LocalQueueStore(str(tmp_path))
    store.set("team-finance.2024", PAYLOAD)

    path = tmp_path / "checkpoints" / "team-finance.2024.json"
    assert path.read_text() == PAYLOAD
    assert not list((tmp_path / "checkpoints").glob("*.tmp"))


@pytest.mark.parametrize("key", ["a/b", "team finance", "../escape", ""])
def test_file_and_s3_stores_reject_unsafe_keys(tmp_path, mocked_aws, key):
    for store in (LocalQueueStore(str(tmp_path)), S3QueueStore(mocked_aws, TEST_BUCKET_NAME)):
        with pytest.raises(CheckpointError):
            store.set(key, PAYLOAD)
        with pytest.raises(CheckpointError):
            store.get(key)


def test_similar_keys_do_not_share_a_checkpoint(tmp_path):
    store = LocalQueueStore(str(tmp_path))
    store.set("a_b", PAYLOAD)

    with pytest.raises(CheckpointError):
        store.set("a/b", "[]")
    assert store.get("a_b") == PAYLOAD


def test_s3_store_object_key(mocked_aws):
    store = S3QueueStore(mocked_aws, TEST_BUCKET_NAME, prefix="transfers/")
    store.set(TEST_QUEUE_KEY, PAYLOAD)

    body = mocked_aws.get_object(Bucket=TEST_BUCKET_NAME, Key=f"transfers/{TEST_QUEUE_KEY}.json")["Body"].read()
    assert body.decode("utf-8") == PAYLOAD


def test_factory_local_dev(tmp_path):
    settings = Settings(deployment_mode="local-dev", storage_dir=str(tmp_path))
    assert isinstance(QueueStoreFactory.get_store(settings), LocalQueueStore)


def test_factory_aws(mocked_aws):
    settings = Settings(deployment_mode="aws-prod", checkpoint_bucket=TEST_BUCKET_NAME)
    store = QueueStoreFactory.get_store(settings)

    assert isinstance(store, S3QueueStore)
    store.set(TEST_QUEUE_KEY, PAYLOAD)
    assert store.get(TEST_QUEUE_KEY) == PAYLOAD
