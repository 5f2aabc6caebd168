import json
from dataclasses import dataclass, field
from typing import Any, Optional

from google.auth.exceptions import TransportError
from googleapiclient.errors import HttpError
from httplib2 import HttpLib2Error


class ConfigurationError(Exception):
    """Required configuration is missing or malformed."""


class InvalidClientAddress(ValueError):
    def __init__(self, detected: Optional[str], reason: str = ""):
        self.detected = detected
        super().__init__(
            reason
            or "Unable to determine client IP address. Please provide IP in request body."
        )


# Canonical provider status strings take priority over the bare HTTP status.
_STATUS_BY_CODE = {
    "PERMISSION_DENIED": 403,
    "UNAUTHENTICATED": 403,
    "NOT_FOUND": 404,
    "INVALID_ARGUMENT": 400,
    "RESOURCE_EXHAUSTED": 429,
    "FAILED_PRECONDITION": 409,
    "ABORTED": 409,
}

_STATUS_BY_HTTP = {
    400: 400,
    401: 403,
    403: 403,
    404: 404,
    409: 409,
    412: 409,
    429: 429,
}

TRANSIENT_HTTP_STATUSES = frozenset({429, 500, 502, 503, 504})

# Failures below the API layer: DNS, sockets, token refresh.
TRANSPORT_ERRORS = (OSError, HttpLib2Error, TransportError)

# Anything a single Compute API call can raise on its way to a response.
QUERY_ERRORS = (HttpError,) + TRANSPORT_ERRORS


@dataclass
class ProviderError:
    status: int
    code: Any
    message: str
    details: list = field(default_factory=list)


def http_status(error: HttpError) -> int:
    status = getattr(error, "status_code", None) or getattr(error.resp, "status", 500)
    return int(status)


def _error_body(error: HttpError) -> dict:
    content = error.content
    if isinstance(content, bytes):
        content = content.decode("utf-8", errors="replace")
    try:
        body = json.loads(content)
    except (TypeError, ValueError):
        return {}
    if isinstance(body, dict) and isinstance(body.get("error"), dict):
        return body["error"]
    return {}


def classify(error: HttpError) -> ProviderError:
    """Map a Compute API error onto the status code returned to the caller."""
    body = _error_body(error)
    raw_status = http_status(error)
    code = body.get("status")

    if code in _STATUS_BY_CODE:
        status = _STATUS_BY_CODE[code]
    else:
        status = _STATUS_BY_HTTP.get(raw_status, 500)

    message = body.get("message") or getattr(error, "reason", None) or str(error)
    details = list(body.get("errors") or body.get("details") or [])
    return ProviderError(
        status=status, code=code or raw_status, message=str(message), details=details
    )


def is_not_found(error: Exception) -> bool:
    return isinstance(error, HttpError) and classify(error).status == 404


def is_transient(error: Exception) -> bool:
    if isinstance(error, HttpError):
        return http_status(error) in TRANSIENT_HTTP_STATUSES
    return isinstance(error, TRANSPORT_ERRORS)


def operation_error(operation: dict) -> Optional[dict]:
    """Error detail embedded in a DONE operation, or None when it succeeded."""
    errors = (operation.get("error") or {}).get("errors") or []
    if not errors:
        return None
    return {
        "code": errors[0].get("code", "OPERATION_FAILED"),
        "message": "; ".join(e.get("message", "") for e in errors if e.get("message"))
        or operation.get("httpErrorMessage", "operation failed"),
        "details": errors,
    }
