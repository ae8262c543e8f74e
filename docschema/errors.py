# docschema/errors.py
import datetime, math
from dataclasses import dataclass, field, asdict
from email.utils import parsedate_to_datetime
from enum import Enum
from types import MappingProxyType
from typing import Any, Dict, Mapping, Optional

from dateutil import parser as dateparser


class ErrorKind(str, Enum):
    BAD_REQUEST = "bad_request"
    UNAUTHORIZED = "unauthorized"
    FORBIDDEN = "forbidden"
    NOT_FOUND = "not_found"
    REQUEST_TIMEOUT = "request_timeout"
    CONFLICT = "conflict"
    RATE_LIMIT = "rate_limit"
    INTERNAL_SERVER_ERROR = "internal_server_error"
    BAD_GATEWAY = "bad_gateway"
    SERVICE_UNAVAILABLE = "service_unavailable"
    GATEWAY_TIMEOUT = "gateway_timeout"
    VALIDATION = "validation"
    CONFIGURATION = "configuration"
    TYPE_CONFLICT = "type_conflict"
    RETRY_BUDGET_EXHAUSTED = "retry_budget_exhausted"
    ABORTED = "aborted"
    UNKNOWN = "unknown"


class Severity(str, Enum):
    LOW = "low"
    MEDIUM = "medium"
    HIGH = "high"
    CRITICAL = "critical"


# status -> (kind, retryable, severity, default message)
STATUS_TABLE: Dict[int, tuple] = {
    400: (ErrorKind.BAD_REQUEST, False, Severity.MEDIUM, "Bad request"),
    401: (ErrorKind.UNAUTHORIZED, False, Severity.HIGH, "Unauthorized"),
    403: (ErrorKind.FORBIDDEN, False, Severity.HIGH, "Forbidden"),
    404: (ErrorKind.NOT_FOUND, False, Severity.LOW, "Not found"),
    408: (ErrorKind.REQUEST_TIMEOUT, True, Severity.MEDIUM, "Request timeout"),
    409: (ErrorKind.CONFLICT, False, Severity.MEDIUM, "Conflict"),
    429: (ErrorKind.RATE_LIMIT, True, Severity.MEDIUM, "Request rate is large"),
    500: (ErrorKind.INTERNAL_SERVER_ERROR, True, Severity.HIGH, "Internal server error"),
    502: (ErrorKind.BAD_GATEWAY, True, Severity.HIGH, "Bad gateway"),
    503: (ErrorKind.SERVICE_UNAVAILABLE, True, Severity.HIGH, "Service temporarily unavailable"),
    504: (ErrorKind.GATEWAY_TIMEOUT, True, Severity.HIGH, "Gateway timeout"),
}

KIND_DEFAULTS: Dict[ErrorKind, tuple] = {
    kind: (severity, message) for kind, _, severity, message in STATUS_TABLE.values()
}
KIND_DEFAULTS.update({
    ErrorKind.VALIDATION: (Severity.HIGH, "Validation failed"),
    ErrorKind.CONFIGURATION: (Severity.MEDIUM, "Invalid configuration"),
    ErrorKind.TYPE_CONFLICT: (Severity.HIGH, "Type conflict detected"),
    ErrorKind.RETRY_BUDGET_EXHAUSTED: (Severity.HIGH, "Retry RU budget exhausted"),
    ErrorKind.ABORTED: (Severity.LOW, "Operation aborted"),
    ErrorKind.UNKNOWN: (Severity.MEDIUM, "Unknown error"),
})

# message fragment -> kind, checked in order when no status code matched
MESSAGE_HINTS = (
    ("timeout", ErrorKind.REQUEST_TIMEOUT),
    ("too many requests", ErrorKind.RATE_LIMIT),
    ("throttle", ErrorKind.RATE_LIMIT),
    ("rate", ErrorKind.RATE_LIMIT),
    ("service unavailable", ErrorKind.SERVICE_UNAVAILABLE),
)


def _nowz() -> str:
    return datetime.datetime.now(datetime.timezone.utc).isoformat().replace("+00:00", "Z")


@dataclass(frozen=True)
class ErrorContext:
    component: str = "unknown"
    timestamp: str = field(default_factory=_nowz)
    metadata: Mapping[str, Any] = field(default_factory=dict)

    def __post_init__(self):
        object.__setattr__(self, "metadata", MappingProxyType(dict(self.metadata or {})))

    def to_dict(self) -> Dict[str, Any]:
        return {"component": self.component, "timestamp": self.timestamp, "metadata": dict(self.metadata)}


@dataclass(frozen=True)
class ErrorMetadata:
    status_code: Optional[int] = None
    activity_id: Optional[str] = None
    retry_after_ms: Optional[int] = None
    request_charge: Optional[float] = None
    substatus: Optional[int] = None

    def to_dict(self) -> Dict[str, Any]:
        return {k: v for k, v in asdict(self).items() if v is not None}


class ClassifiedError(Exception):
    """
    The one failure type surfaced by this package.
    kind/severity/retryable/context/metadata are fixed at construction.
    """

    def __init__(self, message: str = "", *, kind: ErrorKind = ErrorKind.UNKNOWN,
                 severity: Optional[Severity] = None, retryable: bool = False,
                 context: Optional[ErrorContext] = None, metadata: Optional[ErrorMetadata] = None):
        default_severity, default_message = KIND_DEFAULTS[kind]
        message = message or default_message
        super().__init__(message)
        self._message = message
        self._kind = kind
        self._severity = severity or default_severity
        self._retryable = bool(retryable)
        self._context = context or ErrorContext()
        self._metadata = metadata or ErrorMetadata()

    message = property(lambda self: self._message)
    kind = property(lambda self: self._kind)
    severity = property(lambda self: self._severity)
    retryable = property(lambda self: self._retryable)
    context = property(lambda self: self._context)
    metadata = property(lambda self: self._metadata)

    @property
    def status_code(self) -> Optional[int]:
        return self._metadata.status_code

    def to_dict(self) -> Dict[str, Any]:
        return {
            "name": type(self).__name__,
            "message": self._message,
            "kind": self._kind.value,
            "severity": self._severity.value,
            "retryable": self._retryable,
            "context": self._context.to_dict(),
            "metadata": self._metadata.to_dict(),
        }

    def __repr__(self):
        return f"ClassifiedError(kind={self._kind.value!r}, message={self._message!r})"


# --- constructors for the non-HTTP kinds ------------------------------------
def validation_error(message: str, component: str, **metadata) -> ClassifiedError:
    return ClassifiedError(message, kind=ErrorKind.VALIDATION,
                           context=ErrorContext(component=component, metadata=metadata))


def configuration_error(message: str, component: str, **metadata) -> ClassifiedError:
    return ClassifiedError(message, kind=ErrorKind.CONFIGURATION,
                           context=ErrorContext(component=component, metadata=metadata))


def type_conflict_error(types, field_name: Optional[str] = None) -> ClassifiedError:
    ordered = sorted(types)
    return ClassifiedError(
        f"Type conflict detected: {' | '.join(ordered)}",
        kind=ErrorKind.TYPE_CONFLICT,
        context=ErrorContext(component="type-conflict-resolver", metadata={
            "conflicting_types": ordered, "field_name": field_name, "type_count": len(ordered),
        }),
    )


def budget_exhausted_error(consumed: float, budget: float, last: ClassifiedError, component: str) -> ClassifiedError:
    return ClassifiedError(
        f"Retry RU budget exhausted: {consumed:g}/{budget:g} RU. Last error: {last.message}",
        kind=ErrorKind.RETRY_BUDGET_EXHAUSTED,
        context=ErrorContext(component=component, metadata={
            "ru_consumed": consumed, "ru_budget": budget, "last_error_kind": last.kind.value,
        }),
        metadata=last.metadata,
    )


def aborted_error(component: str, message: str = "Sleep aborted") -> ClassifiedError:
    return ClassifiedError(message, kind=ErrorKind.ABORTED, context=ErrorContext(component=component))


# --- metadata extraction -----------------------------------------------------
def _read(raw: Any, *names: str) -> Any:
    for name in names:
        if isinstance(raw, Mapping):
            if raw.get(name) is not None:
                return raw[name]
        else:
            value = getattr(raw, name, None)
            if value is not None:
                return value
    return None


def _header(raw: Any, *names: str) -> Any:
    headers = _read(raw, "headers", "response_headers", "responseHeaders")
    if headers is None:
        response = _read(raw, "response")
        headers = _read(response, "headers") if response is not None else None
    if not isinstance(headers, Mapping):
        return None
    lowered = {str(k).lower(): v for k, v in headers.items()}
    for name in names:
        if lowered.get(name) is not None:
            return lowered[name]
    return None


def _to_number(value: Any) -> Optional[float]:
    if value is None or isinstance(value, bool):
        return None
    try:
        number = float(value)
    except (TypeError, ValueError):
        return None
    return number if math.isfinite(number) else None


def _status_code(raw: Any) -> Optional[int]:
    for name in ("code", "status_code", "statusCode", "status"):
        value = _read(raw, name)
        if isinstance(value, int) and not isinstance(value, bool):
            return value
        if isinstance(value, str) and value.isdigit():
            return int(value)
    response = _read(raw, "response")
    if response is not None:
        value = _read(response, "status_code", "status")
        if isinstance(value, int) and not isinstance(value, bool):
            return value
    return None


def parse_retry_after(value: Any, now: Optional[datetime.datetime] = None) -> Optional[int]:
    """
    Retry-After header value -> milliseconds.
    Accepts delta-seconds or an HTTP date; past dates give 0.
    """
    seconds = _to_number(value)
    if seconds is not None:
        return max(0, int(seconds * 1000))
    if not isinstance(value, str) or not value.strip():
        return None
    try:
        when = parsedate_to_datetime(value)
    except (TypeError, ValueError):
        try:
            when = dateparser.parse(value)
        except (ValueError, OverflowError):
            return None
    if when.tzinfo is None:
        when = when.replace(tzinfo=datetime.timezone.utc)
    now = now or datetime.datetime.now(datetime.timezone.utc)
    return max(0, int((when - now).total_seconds() * 1000))


def extract_error_metadata(raw: Any) -> ErrorMetadata:
    retry_after = _to_number(_read(raw, "retry_after_ms", "retryAfterMs", "retryAfterInMilliseconds",
                                   "retry_after_in_milliseconds"))
    if retry_after is None:
        retry_after = _to_number(_header(raw, "x-ms-retry-after-ms", "retry-after-ms"))
    if retry_after is None:
        retry_after = parse_retry_after(_header(raw, "retry-after"))

    charge = _to_number(_read(raw, "request_charge", "requestCharge"))
    if charge is None:
        charge = _to_number(_header(raw, "x-ms-request-charge"))

    activity = _read(raw, "activity_id", "activityId") or _header(raw, "x-ms-activity-id")
    substatus = _to_number(_read(raw, "substatus", "sub_status", "subStatusCode"))
    if substatus is None:
        substatus = _to_number(_header(raw, "x-ms-substatus"))

    return ErrorMetadata(
        status_code=_status_code(raw),
        activity_id=str(activity) if activity is not None else None,
        retry_after_ms=int(retry_after) if retry_after is not None else None,
        request_charge=charge,
        substatus=int(substatus) if substatus is not None else None,
    )


def _message(raw: Any) -> str:
    if isinstance(raw, BaseException):
        return str(raw)
    if isinstance(raw, Mapping):
        return str(raw.get("message") or "")
    return str(raw) if raw is not None else ""


def classify(raw: Any, component: str = "unknown") -> ClassifiedError:
    """
    Normalize any failure (exception, SDK error object, or plain mapping)
    into a ClassifiedError. Already-classified errors pass through unchanged.
    """
    if isinstance(raw, ClassifiedError):
        return raw

    metadata = extract_error_metadata(raw)
    message = _message(raw)
    status = metadata.status_code
    context = ErrorContext(component=component, metadata={"source": type(raw).__name__})

    if status in STATUS_TABLE:
        kind, retryable, _, _ = STATUS_TABLE[status]
    elif status is not None and 500 <= status <= 599:
        kind, retryable = ErrorKind.INTERNAL_SERVER_ERROR, True
    else:
        kind, retryable = _classify_without_status(raw, message)

    return ClassifiedError(message, kind=kind, retryable=retryable, context=context, metadata=metadata)


def _classify_without_status(raw: Any, message: str):
    explicit = _read(raw, "retryable")
    if isinstance(explicit, bool):
        return ErrorKind.UNKNOWN, explicit
    if isinstance(raw, TimeoutError):
        return ErrorKind.REQUEST_TIMEOUT, True
    if isinstance(raw, ConnectionError):
        return ErrorKind.SERVICE_UNAVAILABLE, True
    lowered = message.lower()
    for hint, kind in MESSAGE_HINTS:
        if hint in lowered:
            return kind, True
    return ErrorKind.UNKNOWN, False
