"""
Record Transform Lambda - AWS Serverless data processing.

This module augments JSON records landing in the raw bucket with a
processing timestamp and flag, and writes them to the processed bucket
for cataloguing by Glue and querying with Athena.
"""

from exceptions import (
    AWSServiceError,
    CatalogError,
    ConfigurationError,
    EventValidationError,
    QueryError,
    RecordParseError,
    RecordProcessingError,
    S3Error,
)
from handler import handler
from models import ObjectLocation, S3EventNotification
from transformer import RecordTransformer, TransformedRecord

__all__ = [
    "handler",
    "ObjectLocation",
    "S3EventNotification",
    "RecordTransformer",
    "TransformedRecord",
    "RecordProcessingError",
    "EventValidationError",
    "RecordParseError",
    "AWSServiceError",
    "S3Error",
    "CatalogError",
    "QueryError",
    "ConfigurationError",
]

__version__ = "1.0.0"
