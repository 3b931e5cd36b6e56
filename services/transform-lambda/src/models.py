"""
Data models for the S3 object-created notification that triggers the transform.
Keys are exposed URL-decoded, the form S3 itself uses for object lookups.
"""

from dataclasses import dataclass
from datetime import datetime
from typing import Any, Optional
from urllib.parse import unquote_plus

from pydantic import BaseModel, ConfigDict, Field, field_validator
from pydantic import ValidationError as PydanticValidationError

from exceptions import EventValidationError


@dataclass(frozen=True)
class ObjectLocation:
    """A bucket/key pair identifying one S3 object."""
    bucket: str
    key: str

    @property
    def uri(self) -> str:
        return f"s3://{self.bucket}/{self.key}"


class S3Bucket(BaseModel):
    """Bucket section of a notification record."""
    name: str = Field(..., min_length=1)
    arn: Optional[str] = None


class S3Object(BaseModel):
    """Object section of a notification record."""
    key: str = Field(..., min_length=1)
    size: Optional[int] = None
    e_tag: Optional[str] = Field(None, alias="eTag")
    version_id: Optional[str] = Field(None, alias="versionId")
    sequencer: Optional[str] = None

    model_config = ConfigDict(populate_by_name=True)

    @field_validator("key")
    @classmethod
    def decode_key(cls, value: str) -> str:
        return unquote_plus(value)


class S3Entity(BaseModel):
    bucket: S3Bucket
    object_: S3Object = Field(..., alias="object")

    model_config = ConfigDict(populate_by_name=True)


class S3EventRecord(BaseModel):
    """One entry of the notification's Records list."""
    event_name: Optional[str] = Field(None, alias="eventName")
    event_time: Optional[datetime] = Field(None, alias="eventTime")
    aws_region: Optional[str] = Field(None, alias="awsRegion")
    s3: S3Entity

    model_config = ConfigDict(populate_by_name=True)

    @property
    def source(self) -> ObjectLocation:
        return ObjectLocation(bucket=self.s3.bucket.name, key=self.s3.object_.key)


class S3EventNotification(BaseModel):
    """
    Object-created notification delivered by the storage trigger.

    Only the fields the transform needs are modelled; anything else in the
    payload is ignored.
    """
    records: list[S3EventRecord] = Field(..., alias="Records", min_length=1)

    model_config = ConfigDict(populate_by_name=True)

    @property
    def sources(self) -> list[ObjectLocation]:
        return [record.source for record in self.records]

    @classmethod
    def from_event(cls, event: Any) -> "S3EventNotification":
        """
        Validate a raw Lambda event.

        Raises:
            EventValidationError: If the payload is not an S3 notification
        """
        if not isinstance(event, dict):
            raise EventValidationError(
                message="Invalid event structure: payload is not an object",
                field_name="event",
                expected="object",
                actual=type(event).__name__,
            )

        if not event.get("Records"):
            raise EventValidationError(
                message="Invalid event structure: missing Records",
                field_name="Records",
                expected="non-empty list",
                actual=event.get("Records"),
            )

        try:
            return cls.model_validate(event)
        except PydanticValidationError as e:
            first = e.errors()[0]
            location = ".".join(str(part) for part in first["loc"])
            raise EventValidationError(
                message=f"Invalid event structure: {first['msg']} at {location}",
                field_name=location,
                expected=first["type"],
                actual=first.get("input"),
                original_exception=e,
            )
