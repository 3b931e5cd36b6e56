"""Pytest fixtures and configuration."""

import os

import boto3
import pytest
from moto import mock_aws

os.environ["AWS_DEFAULT_REGION"] = "us-east-1"
os.environ["AWS_REGION"] = "us-east-1"
os.environ["AWS_ACCESS_KEY_ID"] = "testing"
os.environ["AWS_SECRET_ACCESS_KEY"] = "testing"
os.environ["DESTINATION_BUCKET"] = "test-processed-bucket"
os.environ.pop("LOCALSTACK_ENDPOINT", None)
os.environ.pop("AWS_LAMBDA_FUNCTION_NAME", None)
os.environ.pop("OUTPUT_PREFIX", None)

from clients import AWSClientFactory  # noqa: E402

SOURCE_BUCKET = "test-raw-bucket"
DESTINATION_BUCKET = "test-processed-bucket"


@pytest.fixture(autouse=True)
def reset_clients():
    """Drop cached boto3 clients between tests."""
    AWSClientFactory.reset()
    yield
    AWSClientFactory.reset()


@pytest.fixture
def sample_document():
    """Return the reference source record."""
    return {"id": 1, "name": "Test", "value": 100}


@pytest.fixture
def lambda_context():
    """Return a stand-in for the Lambda context object."""

    class Context:
        aws_request_id = "test-request-id-12345"
        function_name = "record-transform"
        memory_limit_in_mb = 128

    return Context()


def make_s3_event(*locations):
    """Build an ObjectCreated notification for (bucket, key) pairs."""
    return {
        "Records": [
            {
                "eventVersion": "2.1",
                "eventSource": "aws:s3",
                "awsRegion": "us-east-1",
                "eventTime": "2024-11-14T10:30:00.000Z",
                "eventName": "ObjectCreated:Put",
                "s3": {
                    "s3SchemaVersion": "1.0",
                    "configurationId": "record-transform-trigger",
                    "bucket": {
                        "name": bucket,
                        "arn": f"arn:aws:s3:::{bucket}",
                    },
                    "object": {
                        "key": key,
                        "size": 41,
                        "eTag": "0123456789abcdef0123456789abcdef",
                        "sequencer": "0A1B2C3D4E5F678901",
                    },
                },
            }
            for bucket, key in locations
        ]
    }


@pytest.fixture
def sample_s3_event():
    """Return a sample S3 event."""
    return make_s3_event((SOURCE_BUCKET, "data/sample.json"))


@pytest.fixture
def s3_buckets():
    """Create the raw and processed buckets in an in-memory S3."""
    with mock_aws():
        s3 = boto3.client("s3", region_name="us-east-1")
        s3.create_bucket(Bucket=SOURCE_BUCKET)
        s3.create_bucket(Bucket=DESTINATION_BUCKET)
        yield s3
