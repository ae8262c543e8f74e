# tests/test_errors.py
import json, datetime

import pytest

from docschema.errors import (
    ClassifiedError, ErrorKind, Severity, classify, parse_retry_after, type_conflict_error, validation_error,
)


@pytest.mark.parametrize("status, kind, retryable", [
    (400, ErrorKind.BAD_REQUEST, False),
    (401, ErrorKind.UNAUTHORIZED, False),
    (403, ErrorKind.FORBIDDEN, False),
    (404, ErrorKind.NOT_FOUND, False),
    (408, ErrorKind.REQUEST_TIMEOUT, True),
    (409, ErrorKind.CONFLICT, False),
    (429, ErrorKind.RATE_LIMIT, True),
    (500, ErrorKind.INTERNAL_SERVER_ERROR, True),
    (502, ErrorKind.BAD_GATEWAY, True),
    (503, ErrorKind.SERVICE_UNAVAILABLE, True),
    (504, ErrorKind.GATEWAY_TIMEOUT, True),
    (507, ErrorKind.INTERNAL_SERVER_ERROR, True),
    (418, ErrorKind.UNKNOWN, False),
])
def test_status_table(status, kind, retryable):
    err = classify({"code": status, "message": "failed"}, component="test")
    assert err.kind is kind
    assert err.retryable is retryable
    assert err.metadata.status_code == status
    assert err.context.component == "test"


def test_metadata_from_headers():
    raw = {
        "statusCode": 429,
        "headers": {
            "x-ms-retry-after-ms": "1500",
            "X-MS-Request-Charge": "2.5",
            "x-ms-activity-id": "act-1",
            "x-ms-substatus": "3200",
        },
    }
    err = classify(raw)
    assert err.kind is ErrorKind.RATE_LIMIT
    assert err.metadata.retry_after_ms == 1500
    assert err.metadata.request_charge == 2.5
    assert err.metadata.activity_id == "act-1"
    assert err.metadata.substatus == 3200


def test_metadata_from_exception_attributes(store_error):
    err = classify(store_error(503, "down", request_charge=1.25, retry_after_ms=200))
    assert err.kind is ErrorKind.SERVICE_UNAVAILABLE
    assert err.message == "down"
    assert err.metadata.request_charge == 1.25
    assert err.metadata.retry_after_ms == 200


def test_retry_after_seconds_header():
    err = classify({"status": 429, "headers": {"Retry-After": "2"}})
    assert err.metadata.retry_after_ms == 2000


def test_retry_after_http_date():
    now = datetime.datetime(2024, 1, 1, tzinfo=datetime.timezone.utc)
    assert parse_retry_after("Mon, 01 Jan 2024 00:00:05 GMT", now=now) == 5000
    assert parse_retry_after("Sun, 31 Dec 2023 23:59:00 GMT", now=now) == 0
    assert parse_retry_after("whenever", now=now) is None


def test_default_message_per_kind():
    assert classify({"code": 429}).message == "Request rate is large"
    assert classify({"code": 503}).message == "Service temporarily unavailable"


def test_classify_is_idempotent():
    err = classify({"code": 500})
    assert classify(err) is err
    assert classify(classify(err), component="other") is err


@pytest.mark.parametrize("raw, kind, retryable", [
    (Exception("Operation timeout exceeded"), ErrorKind.REQUEST_TIMEOUT, True),
    (Exception("Request was throttled"), ErrorKind.RATE_LIMIT, True),
    (Exception("503 Service Unavailable"), ErrorKind.SERVICE_UNAVAILABLE, True),
    (TimeoutError(), ErrorKind.REQUEST_TIMEOUT, True),
    (ConnectionResetError("reset by peer"), ErrorKind.SERVICE_UNAVAILABLE, True),
    (ValueError("boom"), ErrorKind.UNKNOWN, False),
    ({"message": "boom", "retryable": True}, ErrorKind.UNKNOWN, True),
])
def test_classify_without_status(raw, kind, retryable):
    err = classify(raw)
    assert err.kind is kind
    assert err.retryable is retryable


def test_bool_code_is_not_a_status():
    err = classify({"code": True, "message": "odd"})
    assert err.metadata.status_code is None
    assert err.kind is ErrorKind.UNKNOWN


def test_type_conflict_error_names_types():
    err = type_conflict_error({"string", "number"}, "age")
    assert err.kind is ErrorKind.TYPE_CONFLICT
    assert err.message == "Type conflict detected: number | string"
    assert err.severity is Severity.HIGH
    assert not err.retryable
    assert err.context.metadata["field_name"] == "age"


def test_error_is_read_only():
    err = validation_error("bad input", "test")
    with pytest.raises(AttributeError):
        err.kind = ErrorKind.UNKNOWN
    with pytest.raises(TypeError):
        err.context.metadata["x"] = 1


def test_to_dict_is_json_safe():
    err = classify({"code": 429, "headers": {"x-ms-request-charge": 3}}, component="sampler")
    data = json.loads(json.dumps(err.to_dict()))
    assert data["name"] == "ClassifiedError"
    assert data["kind"] == "rate_limit"
    assert data["retryable"] is True
    assert data["context"]["component"] == "sampler"
    assert data["context"]["timestamp"].endswith("Z")
    assert data["metadata"] == {"status_code": 429, "request_charge": 3.0}


def test_classified_error_is_an_exception():
    with pytest.raises(ClassifiedError, match="bad input"):
        raise validation_error("bad input", "test")
