import logging
import os
import re
from pathlib import Path
from typing import Dict, Optional

from owner_transfer.errors import CheckpointError
from owner_transfer.settings import Settings, get_settings

logger = logging.getLogger(__name__)

_KEY_PATTERN = re.compile(r"[A-Za-z0-9._-]+")


def _checked_key(key: str) -> str:
    """Keys map to file and object names one-to-one, so only safe characters pass."""
    if not _KEY_PATTERN.fullmatch(key):
        raise CheckpointError(f"Unsupported checkpoint key {key!r}")
    return key


class BaseQueueStore:
    """Durable text store keyed by queue name (to be extended by specific implementations)"""
    def get(self, key: str) -> Optional[str]:
        raise NotImplementedError

    def set(self, key: str, payload: str) -> None:
        raise NotImplementedError

    def delete(self, key: str) -> None:
        """Remove a key. Deleting a missing key is not an error."""
        raise NotImplementedError


class MemoryQueueStore(BaseQueueStore):
    """Process-local store, for tests and dry runs"""
    def __init__(self, data: Optional[Dict[str, str]] = None):
        self.data: Dict[str, str] = dict(data or {})

    def get(self, key):
        return self.data.get(key)

    def set(self, key, payload):
        self.data[key] = payload

    def delete(self, key):
        self.data.pop(key, None)


class LocalQueueStore(BaseQueueStore):
    """Stores each key as a JSON file under ``<storage_dir>/checkpoints``"""
    def __init__(self, storage_dir: str = "storage"):
        self.checkpoint_dir = Path(storage_dir) / "checkpoints"
        self.checkpoint_dir.mkdir(parents=True, exist_ok=True)
        logger.info("LocalQueueStore initialized at: %s", self.checkpoint_dir)

    def _path(self, key: str) -> Path:
        return self.checkpoint_dir / f"{_checked_key(key)}.json"

    def get(self, key):
        path = self._path(key)
        if not path.exists():
            return None
        with open(path, "r", encoding="utf-8") as f:
            return f.read()

    def set(self, key, payload):
        path = self._path(key)
        tmp_path = path.with_suffix(".json.tmp")
        # Write then rename so a crash never leaves a half-written checkpoint
        with open(tmp_path, "w", encoding="utf-8") as f:
            f.write(payload)
            f.flush()
            os.fsync(f.fileno())
        os.replace(tmp_path, path)
        logger.debug("Saved checkpoint %s to %s", key, path)

    def delete(self, key):
        try:
            self._path(key).unlink()
            logger.debug("Deleted checkpoint %s", key)
        except FileNotFoundError:
            pass


class S3QueueStore(BaseQueueStore):
    """Stores each key as an object in an S3 bucket"""
    def __init__(self, s3_client, bucket: str, prefix: str = "checkpoints/"):
        self.s3 = s3_client
        self.bucket = bucket
        self.prefix = prefix

        logger.info(f"S3QueueStore initialized")
        logger.info(f"  Bucket: {self.bucket}")
        logger.info(f"  Prefix: {self.prefix}")

    def _object_key(self, key: str) -> str:
        return f"{self.prefix}{_checked_key(key)}.json"

    def get(self, key):
        try:
            response = self.s3.get_object(Bucket=self.bucket, Key=self._object_key(key))
        except self.s3.exceptions.NoSuchKey:
            return None
        return response["Body"].read().decode("utf-8")

    def set(self, key, payload):
        self.s3.put_object(
            Bucket=self.bucket,
            Key=self._object_key(key),
            Body=payload.encode("utf-8"),
            ContentType="application/json",
        )
        logger.debug(f"Saved checkpoint {key} to s3://{self.bucket}/{self._object_key(key)}")

    def delete(self, key):
        # S3 delete_object succeeds for missing keys
        self.s3.delete_object(Bucket=self.bucket, Key=self._object_key(key))
        logger.debug(f"Deleted checkpoint {key}")


class QueueStoreFactory:
    """Factory to initialize the correct checkpoint store based on deployment mode"""

    @staticmethod
    def get_store(settings: Optional[Settings] = None) -> BaseQueueStore:
        settings = settings or get_settings()
        mode = settings.deployment_mode

        if mode == "local-dev":
            return LocalQueueStore(settings.storage_dir)

        if mode in ("aws-mock", "aws-prod"):
            from owner_transfer.aws.utils import AWSClientManager
            s3_client = AWSClientManager(settings).get_s3_client()
            return S3QueueStore(s3_client, settings.checkpoint_bucket, settings.checkpoint_prefix)

        raise ValueError(
            f"Invalid deployment_mode: {mode}. "
            f"Choose from ['local-dev', 'aws-mock', 'aws-prod']"
        )
