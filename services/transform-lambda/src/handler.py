"""
AWS Lambda handler for record transformation.
Triggered by S3 object-created events, augments each JSON record and writes
it under the processed prefix of the destination bucket.

Every failure is logged and re-raised so the invocation is marked failed and
the platform's own retry policy applies.
"""

import os
import time
from typing import Any

from botocore.exceptions import BotoCoreError, ClientError

from clients import AWSClientFactory
from config import load_config
from exceptions import RecordProcessingError, S3Error
from logging_config import (
    configure_logging,
    log_execution_time,
    set_correlation_id,
)
from models import ObjectLocation, S3EventNotification
from transformer import CONTENT_TYPE, RecordTransformer, TransformedRecord

logger = configure_logging(
    level=os.environ.get("LOG_LEVEL", "INFO"),
    service_name="record-transform",
)


def download_from_s3(source: ObjectLocation) -> bytes:
    """
    Download object content from S3.

    Args:
        source: Bucket and key of the object

    Returns:
        Raw object content

    Raises:
        S3Error: If the object cannot be read
    """
    try:
        s3 = AWSClientFactory.get_s3_client()
        response = s3.get_object(Bucket=source.bucket, Key=source.key)
        content = response["Body"].read()
    except (BotoCoreError, ClientError) as e:
        raise S3Error(
            message=f"Failed to download from S3: {e}",
            bucket=source.bucket,
            key=source.key,
            operation="GetObject",
            original_exception=e,
        )

    logger.info(
        f"Downloaded {len(content)} bytes from S3",
        extra={"s3_bucket": source.bucket, "s3_key": source.key},
    )
    return content


def upload_to_s3(bucket: str, key: str, body: bytes) -> None:
    """
    Write one JSON object to S3.

    Raises:
        S3Error: If the write is rejected
    """
    try:
        s3 = AWSClientFactory.get_s3_client()
        s3.put_object(Bucket=bucket, Key=key, Body=body, ContentType=CONTENT_TYPE)
    except (BotoCoreError, ClientError) as e:
        raise S3Error(
            message=f"Failed to upload to S3: {e}",
            bucket=bucket,
            key=key,
            operation="PutObject",
            original_exception=e,
        )

    logger.info(
        f"Uploaded {len(body)} bytes to S3",
        extra={"destination_bucket": bucket, "destination_key": key},
    )


@log_execution_time(logger)
def process_object(
    source: ObjectLocation,
    destination_bucket: str,
    transformer: RecordTransformer,
) -> TransformedRecord:
    """Read, transform and write a single object."""
    object_logger = logger.with_object(source.bucket, source.key)
    object_logger.info("Processing S3 object")

    raw = download_from_s3(source)
    record = transformer.transform(raw, source)
    upload_to_s3(destination_bucket, record.destination_key, record.body)

    object_logger.info(
        "Record processed",
        extra={
            "destination_bucket": destination_bucket,
            "destination_key": record.destination_key,
        },
    )
    return record


def is_own_output(source: ObjectLocation, destination_bucket: str, output_prefix: str) -> bool:
    """True when the object is one this function wrote itself."""
    return source.bucket == destination_bucket and source.key.startswith(output_prefix)


def handler(event: dict, context: Any) -> dict:
    """
    Main Lambda handler for S3 trigger.

    Args:
        event: S3 event notification
        context: Lambda context

    Returns:
        Processing result summary

    Raises:
        RecordProcessingError: On configuration, event, read, parse or write failure
    """
    start_time = time.perf_counter()

    request_id = getattr(context, "aws_request_id", None) if context else None
    correlation_id = set_correlation_id(request_id)

    logger.info(
        "Lambda invocation started",
        extra={"event_type": "lambda_start", "aws_request_id": request_id},
    )

    try:
        config = load_config()
        destination_bucket = config.require_destination_bucket()
        notification = S3EventNotification.from_event(event)
        transformer = RecordTransformer(output_prefix=config.storage.output_prefix)

        written = []
        skipped = []
        for source in notification.sources:
            if is_own_output(source, destination_bucket, transformer.output_prefix):
                logger.with_object(source.bucket, source.key).warning(
                    "Skipping object already under the output prefix"
                )
                skipped.append({"bucket": source.bucket, "key": source.key})
                continue

            record = process_object(source, destination_bucket, transformer)
            written.append(record.to_dict())

    except RecordProcessingError as e:
        if not e.context.correlation_id:
            e.context.correlation_id = correlation_id
        logger.error(
            f"Processing failed: {e.message}",
            extra={"event_type": "lambda_error", "error": e.to_dict()},
        )
        raise

    except Exception as e:
        logger.error(f"Unexpected error: {e}", exc_info=True)
        raise

    return build_response(
        200,
        {
            "message": "Processing complete",
            "correlationId": correlation_id,
            "destinationBucket": destination_bucket,
            "processed": written,
            "skipped": skipped,
        },
        start_time,
    )


def build_response(status_code: int, body: dict, start_time: float) -> dict:
    """Build Lambda response with timing metadata."""
    duration_ms = (time.perf_counter() - start_time) * 1000

    body["durationMs"] = round(duration_ms, 2)

    logger.info(
        "Lambda invocation complete",
        extra={
            "event_type": "lambda_complete",
            "status_code": status_code,
            "duration_ms": round(duration_ms, 2),
        },
    )

    return {
        "statusCode": status_code,
        "body": body,
    }
