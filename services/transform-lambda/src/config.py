"""Configuration management for the record transform pipeline."""

import os
from typing import Optional

from pydantic import BaseModel, Field

from exceptions import ConfigurationError

DEFAULT_OUTPUT_PREFIX = "processed/"


class AWSConfig(BaseModel):
    """AWS connection settings."""

    region: str = Field(default_factory=lambda: os.getenv("AWS_REGION", "us-east-1"))
    localstack_endpoint: Optional[str] = Field(
        default_factory=lambda: os.getenv("LOCALSTACK_ENDPOINT") or None
    )


class StorageConfig(BaseModel):
    """Destination bucket settings injected by the provisioning layer."""

    destination_bucket: str = Field(default_factory=lambda: os.getenv("DESTINATION_BUCKET", ""))
    output_prefix: str = Field(
        default_factory=lambda: os.getenv("OUTPUT_PREFIX", DEFAULT_OUTPUT_PREFIX)
    )


class CatalogConfig(BaseModel):
    """Glue catalog and Athena settings."""

    database_name: str = Field(default_factory=lambda: os.getenv("GLUE_DATABASE_NAME", ""))
    table_name: str = Field(default_factory=lambda: os.getenv("GLUE_TABLE_NAME", "processed"))
    crawler_name: str = Field(default_factory=lambda: os.getenv("GLUE_CRAWLER_NAME", ""))
    athena_workgroup: str = Field(default_factory=lambda: os.getenv("ATHENA_WORKGROUP", "primary"))
    athena_output_location: Optional[str] = Field(
        default_factory=lambda: os.getenv("ATHENA_OUTPUT_LOCATION") or None
    )


class Config(BaseModel):
    """Main configuration object."""

    aws: AWSConfig = Field(default_factory=AWSConfig)
    storage: StorageConfig = Field(default_factory=StorageConfig)
    catalog: CatalogConfig = Field(default_factory=CatalogConfig)

    log_level: str = Field(default_factory=lambda: os.getenv("LOG_LEVEL", "INFO"))

    def require_destination_bucket(self) -> str:
        """Return the destination bucket, failing if the deployment did not set one."""
        if not self.storage.destination_bucket:
            raise ConfigurationError(
                message="DESTINATION_BUCKET is not configured",
                config_key="DESTINATION_BUCKET",
            )
        return self.storage.destination_bucket


def load_config() -> Config:
    """Build configuration from the current process environment."""
    return Config()
