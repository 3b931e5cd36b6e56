"""Tests for the Lambda handler against an in-memory S3."""

import json
import logging
from datetime import datetime, timezone
from unittest.mock import Mock, patch

import pytest
from botocore.exceptions import ClientError

from clients import AWSClientFactory
from conftest import DESTINATION_BUCKET, SOURCE_BUCKET, make_s3_event
from exceptions import (
    ConfigurationError,
    EventValidationError,
    RecordParseError,
    S3Error,
)
from handler import handler, is_own_output
from models import ObjectLocation


def put_source(s3, key, body):
    if not isinstance(body, (bytes, str)):
        body = json.dumps(body)
    s3.put_object(Bucket=SOURCE_BUCKET, Key=key, Body=body)


def read_destination(s3, key):
    response = s3.get_object(Bucket=DESTINATION_BUCKET, Key=key)
    return json.loads(response["Body"].read())


def destination_keys(s3):
    response = s3.list_objects_v2(Bucket=DESTINATION_BUCKET)
    return [obj["Key"] for obj in response.get("Contents", [])]


class TestHandlerSuccess:
    """Tests for successful transformations."""

    def test_reference_record(self, s3_buckets, sample_document, sample_s3_event, lambda_context):
        """Test the reference record lands at processed/<key> with both new fields."""
        put_source(s3_buckets, "data/sample.json", sample_document)

        result = handler(sample_s3_event, lambda_context)

        assert result["statusCode"] == 200
        output = read_destination(s3_buckets, "processed/data/sample.json")
        assert output["id"] == 1
        assert output["name"] == "Test"
        assert output["value"] == 100
        assert output["processed"] is True
        assert set(output) == {"id", "name", "value", "processed_at", "processed"}

    def test_processed_at_within_invocation(self, s3_buckets, sample_document, sample_s3_event):
        """Test processed_at is captured during the invocation, in UTC."""
        put_source(s3_buckets, "data/sample.json", sample_document)

        started = datetime.now(timezone.utc)
        handler(sample_s3_event, None)
        finished = datetime.now(timezone.utc)

        output = read_destination(s3_buckets, "processed/data/sample.json")
        processed_at = datetime.fromisoformat(output["processed_at"])
        assert processed_at.utcoffset().total_seconds() == 0
        assert started <= processed_at <= finished

    def test_exactly_one_write_with_json_content_type(self, s3_buckets, sample_document, sample_s3_event):
        """Test a single object is written with the JSON content type."""
        put_source(s3_buckets, "data/sample.json", sample_document)

        handler(sample_s3_event, None)

        assert destination_keys(s3_buckets) == ["processed/data/sample.json"]
        head = s3_buckets.head_object(Bucket=DESTINATION_BUCKET, Key="processed/data/sample.json")
        assert head["ContentType"] == "application/json"

    def test_source_object_untouched(self, s3_buckets, sample_document, sample_s3_event):
        """Test the source object is neither deleted nor rewritten."""
        put_source(s3_buckets, "data/sample.json", sample_document)

        handler(sample_s3_event, None)

        response = s3_buckets.get_object(Bucket=SOURCE_BUCKET, Key="data/sample.json")
        assert json.loads(response["Body"].read()) == sample_document

    def test_destination_key_independent_of_content(self, s3_buckets):
        """Test the destination key depends only on the source key."""
        put_source(s3_buckets, "a/b/c/deep.json", {"nested": {"list": [1, 2, 3]}})
        put_source(s3_buckets, "flat.json", {})

        handler(make_s3_event((SOURCE_BUCKET, "a/b/c/deep.json"), (SOURCE_BUCKET, "flat.json")), None)

        assert sorted(destination_keys(s3_buckets)) == [
            "processed/a/b/c/deep.json",
            "processed/flat.json",
        ]
        assert read_destination(s3_buckets, "processed/flat.json")["processed"] is True

    def test_reprocessing_overwrites_same_key(self, s3_buckets, sample_document, sample_s3_event):
        """Test a redelivered event overwrites the same destination object."""
        put_source(s3_buckets, "data/sample.json", sample_document)

        handler(sample_s3_event, None)
        first = read_destination(s3_buckets, "processed/data/sample.json")
        handler(sample_s3_event, None)
        second = read_destination(s3_buckets, "processed/data/sample.json")

        assert destination_keys(s3_buckets) == ["processed/data/sample.json"]
        first.pop("processed_at")
        second.pop("processed_at")
        assert first == second

    def test_url_encoded_key_is_decoded(self, s3_buckets, sample_document):
        """Test notification keys are URL-decoded before reading and writing."""
        put_source(s3_buckets, "data/my file (1).json", sample_document)

        handler(make_s3_event((SOURCE_BUCKET, "data/my+file+%281%29.json")), None)

        assert destination_keys(s3_buckets) == ["processed/data/my file (1).json"]

    def test_response_summary(self, s3_buckets, sample_document, sample_s3_event, lambda_context):
        """Test the response lists what was written."""
        put_source(s3_buckets, "data/sample.json", sample_document)

        result = handler(sample_s3_event, lambda_context)

        body = result["body"]
        assert body["correlationId"] == "test-request-id-12345"
        assert body["destinationBucket"] == DESTINATION_BUCKET
        assert body["processed"][0]["destinationKey"] == "processed/data/sample.json"
        assert body["processed"][0]["source"] == {"bucket": SOURCE_BUCKET, "key": "data/sample.json"}
        assert body["skipped"] == []
        assert "durationMs" in body

    def test_custom_output_prefix(self, s3_buckets, sample_document, sample_s3_event, monkeypatch):
        """Test OUTPUT_PREFIX changes where records are written."""
        monkeypatch.setenv("OUTPUT_PREFIX", "curated/")
        put_source(s3_buckets, "data/sample.json", sample_document)

        handler(sample_s3_event, None)

        assert destination_keys(s3_buckets) == ["curated/data/sample.json"]


class TestHandlerFailures:
    """Tests for failure propagation."""

    def test_unparseable_source_writes_nothing(self, s3_buckets, sample_s3_event):
        """Test invalid JSON fails the invocation without any write."""
        put_source(s3_buckets, "data/sample.json", b"{not json")

        with pytest.raises(RecordParseError) as exc_info:
            handler(sample_s3_event, None)

        assert exc_info.value.retryable is False
        assert exc_info.value.key == "data/sample.json"
        assert destination_keys(s3_buckets) == []

    def test_non_finite_number_writes_nothing(self, s3_buckets, sample_s3_event):
        """Test NaN and overflowing numbers never reach the processed bucket."""
        put_source(s3_buckets, "data/sample.json", b'{"v": NaN, "w": 1e400}')

        with pytest.raises(RecordParseError):
            handler(sample_s3_event, None)

        assert destination_keys(s3_buckets) == []

    def test_non_object_document_writes_nothing(self, s3_buckets, sample_s3_event):
        """Test a JSON array is rejected as a parse error."""
        put_source(s3_buckets, "data/sample.json", [{"id": 1}])

        with pytest.raises(RecordParseError):
            handler(sample_s3_event, None)

        assert destination_keys(s3_buckets) == []

    def test_missing_source_object(self, s3_buckets, sample_s3_event):
        """Test a missing source object surfaces as an S3 read error."""
        with pytest.raises(S3Error) as exc_info:
            handler(sample_s3_event, None)

        assert exc_info.value.operation == "GetObject"
        assert exc_info.value.bucket == SOURCE_BUCKET
        assert exc_info.value.retryable is True
        assert destination_keys(s3_buckets) == []

    def test_destination_write_failure(self, s3_buckets, sample_document, sample_s3_event):
        """Test a missing destination bucket fails the invocation."""
        put_source(s3_buckets, "data/sample.json", sample_document)
        s3_buckets.delete_bucket(Bucket=DESTINATION_BUCKET)

        with pytest.raises(S3Error) as exc_info:
            handler(sample_s3_event, None)

        assert exc_info.value.operation == "PutObject"
        assert exc_info.value.key == "processed/data/sample.json"

    def test_put_object_error_is_wrapped(self, sample_document, sample_s3_event):
        """Test a rejected write is re-raised as S3Error with the original cause."""
        s3 = Mock()
        s3.get_object.return_value = {
            "Body": Mock(read=Mock(return_value=json.dumps(sample_document).encode()))
        }
        denied = ClientError({"Error": {"Code": "AccessDenied", "Message": "Denied"}}, "PutObject")
        s3.put_object.side_effect = denied

        with patch.object(AWSClientFactory, "get_s3_client", return_value=s3):
            with pytest.raises(S3Error) as exc_info:
                handler(sample_s3_event, None)

        assert exc_info.value.original_exception is denied
        s3.put_object.assert_called_once()
        assert s3.put_object.call_args.kwargs["ContentType"] == "application/json"

    def test_missing_destination_configuration(self, sample_s3_event, monkeypatch):
        """Test an unset DESTINATION_BUCKET fails before touching S3."""
        monkeypatch.delenv("DESTINATION_BUCKET")
        s3 = Mock()

        with patch.object(AWSClientFactory, "get_s3_client", return_value=s3):
            with pytest.raises(ConfigurationError):
                handler(sample_s3_event, None)

        s3.get_object.assert_not_called()

    def test_invalid_event(self):
        """Test a payload without Records is rejected."""
        with pytest.raises(EventValidationError):
            handler({"Event": "s3:TestEvent"}, None)

    def test_error_carries_correlation_id(self, s3_buckets, sample_s3_event, lambda_context):
        """Test raised errors are tagged with the invocation's correlation ID."""
        with pytest.raises(S3Error) as exc_info:
            handler(sample_s3_event, lambda_context)

        assert exc_info.value.context.correlation_id == "test-request-id-12345"


class TestRecursionGuard:
    """Tests for skipping the function's own output."""

    def test_is_own_output(self):
        location = ObjectLocation(DESTINATION_BUCKET, "processed/data/sample.json")
        assert is_own_output(location, DESTINATION_BUCKET, "processed/") is True
        assert is_own_output(location, "other-bucket", "processed/") is False
        assert is_own_output(
            ObjectLocation(DESTINATION_BUCKET, "data/sample.json"), DESTINATION_BUCKET, "processed/"
        ) is False

    def test_own_output_is_skipped(self, s3_buckets, sample_document):
        """Test a notification for an already-processed object writes nothing."""
        s3_buckets.put_object(
            Bucket=DESTINATION_BUCKET,
            Key="processed/data/sample.json",
            Body=json.dumps(sample_document),
        )

        result = handler(make_s3_event((DESTINATION_BUCKET, "processed/data/sample.json")), None)

        assert result["body"]["processed"] == []
        assert result["body"]["skipped"] == [
            {"bucket": DESTINATION_BUCKET, "key": "processed/data/sample.json"}
        ]
        assert destination_keys(s3_buckets) == ["processed/data/sample.json"]


class TestFailureLogging:
    """Tests that every failure is logged before it is re-raised."""

    @staticmethod
    def failure_record(caplog):
        records = [
            r for r in caplog.records
            if r.levelno == logging.ERROR and r.getMessage().startswith("Processing failed")
        ]
        assert len(records) == 1
        return records[0]

    def assert_logged(self, caplog, error):
        record = self.failure_record(caplog)
        assert error.message in record.getMessage()
        assert str(error.original_exception) in record.getMessage()
        assert record.error == error.to_dict()

    def test_read_error_logged(self, s3_buckets, sample_s3_event, caplog):
        with pytest.raises(S3Error) as exc_info:
            handler(sample_s3_event, None)

        self.assert_logged(caplog, exc_info.value)
        assert self.failure_record(caplog).error["context"]["operation"] == "GetObject"

    def test_parse_error_logged(self, s3_buckets, sample_s3_event, caplog):
        put_source(s3_buckets, "data/sample.json", b"{not json")

        with pytest.raises(RecordParseError) as exc_info:
            handler(sample_s3_event, None)

        self.assert_logged(caplog, exc_info.value)
        assert "Invalid JSON" in self.failure_record(caplog).getMessage()

    def test_write_error_logged(self, s3_buckets, sample_document, sample_s3_event, caplog):
        put_source(s3_buckets, "data/sample.json", sample_document)
        s3_buckets.delete_bucket(Bucket=DESTINATION_BUCKET)

        with pytest.raises(S3Error) as exc_info:
            handler(sample_s3_event, None)

        self.assert_logged(caplog, exc_info.value)
        assert self.failure_record(caplog).error["context"]["operation"] == "PutObject"
