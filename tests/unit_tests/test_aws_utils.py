from unittest.mock import MagicMock

import pytest
from botocore.exceptions import ClientError

from owner_transfer.aws.utils import AWSClientManager, client_kwargs, create_checkpoint_bucket
from owner_transfer.settings import Settings


def bucket_error(code):
    return ClientError({"Error": {"Code": code, "Message": code}}, "CreateBucket")


def test_client_kwargs_aws_mock_uses_endpoint(monkeypatch):
    for name in ("AWS_ACCESS_KEY_ID", "AWS_SECRET_ACCESS_KEY", "AWS_ENDPOINT_URL"):
        monkeypatch.delenv(name, raising=False)

    kwargs = client_kwargs(Settings(deployment_mode="aws-mock", aws_region="eu-west-1"))

    assert kwargs == {
        "region_name": "eu-west-1",
        "aws_access_key_id": "mock",
        "aws_secret_access_key": "mock",
        "endpoint_url": "http://localhost:5000",
    }


def test_client_kwargs_aws_prod_ignores_endpoint(monkeypatch):
    monkeypatch.delenv("AWS_ACCESS_KEY_ID", raising=False)
    monkeypatch.delenv("AWS_SECRET_ACCESS_KEY", raising=False)

    kwargs = client_kwargs(Settings(
        deployment_mode="aws-prod", aws_region="us-east-1", aws_endpoint_url="http://localhost:5000"
    ))

    assert kwargs == {"region_name": "us-east-1"}


def test_manager_caches_clients(aws_credentials):
    manager = AWSClientManager(Settings(deployment_mode="aws-prod", aws_region="us-east-1"))

    assert manager.get_s3_client() is manager.get_s3_client()
    assert manager.get_scheduler_client().meta.service_model.service_name == "scheduler"


def test_create_bucket_in_us_east_1(mocked_aws):
    create_checkpoint_bucket(mocked_aws, "another-bucket", "us-east-1")

    names = [b["Name"] for b in mocked_aws.list_buckets()["Buckets"]]
    assert "another-bucket" in names


def test_create_bucket_sets_location_outside_us_east_1():
    s3_client = MagicMock()

    create_checkpoint_bucket(s3_client, "eu-bucket", "eu-west-1")

    s3_client.create_bucket.assert_called_once_with(
        Bucket="eu-bucket",
        CreateBucketConfiguration={"LocationConstraint": "eu-west-1"},
    )


def test_existing_bucket_is_accepted():
    s3_client = MagicMock()
    s3_client.create_bucket.side_effect = bucket_error("BucketAlreadyOwnedByYou")

    create_checkpoint_bucket(s3_client, "mine", "eu-west-1")


def test_foreign_bucket_is_an_error():
    s3_client = MagicMock()
    s3_client.create_bucket.side_effect = bucket_error("BucketAlreadyExists")

    with pytest.raises(ClientError):
        create_checkpoint_bucket(s3_client, "theirs", "eu-west-1")
