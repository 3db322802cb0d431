"""boto3 client construction per deployment mode, and checkpoint bucket setup."""
import logging
from typing import Any, Dict, Optional

import boto3
from botocore.exceptions import ClientError

from owner_transfer.settings import Settings, get_settings

logger = logging.getLogger(__name__)


def client_kwargs(settings: Settings) -> Dict[str, Any]:
    """Keyword arguments for ``boto3.client`` under the given settings.

    Explicit credentials are passed only when configured, so aws-prod falls
    back to the execution role. The endpoint override is honored in aws-mock
    only.
    """
    kwargs: Dict[str, Any] = {"region_name": settings.aws_region}
    if settings.aws_access_key_id and settings.aws_secret_access_key:
        kwargs["aws_access_key_id"] = settings.aws_access_key_id
        kwargs["aws_secret_access_key"] = settings.aws_secret_access_key
    if settings.deployment_mode == "aws-mock" and settings.aws_endpoint_url:
        kwargs["endpoint_url"] = settings.aws_endpoint_url
    return kwargs


class AWSClientManager:
    """Hands out one boto3 client per service for a settings instance."""

    def __init__(self, settings: Optional[Settings] = None):
        self.settings = settings or get_settings()
        self._clients: Dict[str, Any] = {}
        logger.info(
            f"AWS clients for {self.settings.deployment_mode} in {self.settings.aws_region}"
            + (f" via {self.settings.aws_endpoint_url}"
               if self.settings.deployment_mode == "aws-mock" else "")
        )

    def get_client(self, service_name: str) -> Any:
        client = self._clients.get(service_name)
        if client is None:
            client = boto3.client(service_name, **client_kwargs(self.settings))
            self._clients[service_name] = client
            logger.debug(f"Created {service_name} client")
        return client

    def get_s3_client(self):
        return self.get_client("s3")

    def get_scheduler_client(self):
        """EventBridge Scheduler client (service name ``scheduler``)."""
        return self.get_client("scheduler")


def create_checkpoint_bucket(s3_client, bucket_name: str, region: str) -> None:
    """Create the checkpoint bucket unless this account already owns it.

    Raises:
        ClientError: If the bucket cannot be created (e.g. owned elsewhere)
    """
    kwargs: Dict[str, Any] = {"Bucket": bucket_name}
    # us-east-1 rejects an explicit location constraint
    if region != "us-east-1":
        kwargs["CreateBucketConfiguration"] = {"LocationConstraint": region}

    try:
        s3_client.create_bucket(**kwargs)
    except ClientError as e:
        if e.response.get("Error", {}).get("Code") == "BucketAlreadyOwnedByYou":
            logger.info(f"Checkpoint bucket {bucket_name} already exists")
            return
        raise
    logger.info(f"Created checkpoint bucket {bucket_name} in {region}")
