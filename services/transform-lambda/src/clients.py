"""Cached boto3 clients shared by the handler and the catalog tools."""

import boto3
from botocore.config import Config

from config import load_config

boto_config = Config(
    retries={"max_attempts": 3, "mode": "adaptive"},
    connect_timeout=10,
    read_timeout=60,
)


class AWSClientFactory:
    """Factory for creating AWS clients with proper configuration."""

    _clients: dict = {}

    @classmethod
    def _get_client(cls, service_name: str):
        if service_name not in cls._clients:
            aws = load_config().aws
            kwargs = {"config": boto_config, "region_name": aws.region}
            if aws.localstack_endpoint:
                kwargs["endpoint_url"] = aws.localstack_endpoint
            cls._clients[service_name] = boto3.client(service_name, **kwargs)
        return cls._clients[service_name]

    @classmethod
    def get_s3_client(cls):
        """Get or create S3 client."""
        return cls._get_client("s3")

    @classmethod
    def get_glue_client(cls):
        """Get or create Glue client."""
        return cls._get_client("glue")

    @classmethod
    def get_athena_client(cls):
        """Get or create Athena client."""
        return cls._get_client("athena")

    @classmethod
    def reset(cls):
        """Reset clients (useful for testing)."""
        cls._clients = {}
