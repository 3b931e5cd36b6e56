"""
Transformer module for augmenting source JSON records.
Parses one object's content, stamps it as processed, and derives where it goes.
"""

import json
import logging
import math
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Callable, Optional

from config import DEFAULT_OUTPUT_PREFIX
from exceptions import RecordParseError
from models import ObjectLocation

logger = logging.getLogger(__name__)

CONTENT_TYPE = "application/json"
PROCESSED_AT_FIELD = "processed_at"
PROCESSED_FIELD = "processed"


def utc_now() -> datetime:
    return datetime.now(timezone.utc)


# The json module accepts NaN, Infinity and overflowing literals; they are not JSON.
def _reject_constant(name: str):
    raise ValueError(f"Non-finite number {name} is not valid JSON")


def _parse_finite_float(text: str) -> float:
    value = float(text)
    if math.isinf(value):
        raise ValueError(f"Number {text} is out of range")
    return value


@dataclass
class TransformedRecord:
    """Result of transforming a single source object."""
    source: ObjectLocation
    destination_key: str
    document: dict
    body: bytes
    processed_at: str

    def to_dict(self) -> dict:
        return {
            "source": {"bucket": self.source.bucket, "key": self.source.key},
            "destinationKey": self.destination_key,
            "processedAt": self.processed_at,
            "sizeBytes": len(self.body),
        }


class RecordTransformer:
    """
    Converts one structured record into an augmented record.

    The transform is all-or-nothing: either a complete TransformedRecord is
    returned or an exception is raised and nothing should be written.
    """

    def __init__(
        self,
        output_prefix: str = DEFAULT_OUTPUT_PREFIX,
        clock: Optional[Callable[[], datetime]] = None,
    ):
        self.output_prefix = output_prefix
        self.clock = clock or utc_now

    def transform(self, raw: bytes, source: ObjectLocation) -> TransformedRecord:
        """
        Parse, augment and serialize one source object.

        Args:
            raw: Object content as read from S3
            source: Where the content was read from

        Returns:
            TransformedRecord ready to be written

        Raises:
            RecordParseError: If the content is not a JSON object
        """
        document = self.parse(raw, source)
        augmented = self.augment(document)
        destination_key = self.destination_key(source.key)

        logger.debug(
            f"Transformed {source.uri} into {destination_key}",
            extra={"s3_bucket": source.bucket, "s3_key": source.key},
        )

        return TransformedRecord(
            source=source,
            destination_key=destination_key,
            document=augmented,
            body=self.serialize(augmented),
            processed_at=augmented[PROCESSED_AT_FIELD],
        )

    def parse(self, raw: bytes, source: ObjectLocation) -> dict:
        """Deserialize object content; only a top-level JSON object is accepted."""
        try:
            document = json.loads(
                raw,
                parse_constant=_reject_constant,
                parse_float=_parse_finite_float,
            )
        except ValueError as e:
            raise RecordParseError(
                message=f"Invalid JSON in S3 object {source.uri}: {e}",
                bucket=source.bucket,
                key=source.key,
                original_exception=e,
            )

        if not isinstance(document, dict):
            raise RecordParseError(
                message=(
                    f"Expected a JSON object in {source.uri}, "
                    f"got {type(document).__name__}"
                ),
                bucket=source.bucket,
                key=source.key,
            )

        return document

    def augment(self, document: dict) -> dict:
        """Return a copy of the document stamped with the processing time and flag."""
        augmented = dict(document)
        augmented[PROCESSED_AT_FIELD] = self.clock().isoformat()
        augmented[PROCESSED_FIELD] = True
        return augmented

    def destination_key(self, source_key: str) -> str:
        return f"{self.output_prefix}{source_key}"

    def serialize(self, document: dict) -> bytes:
        return json.dumps(document, allow_nan=False).encode("utf-8")
