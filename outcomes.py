"""
Outcome classification.

The transport reports what happened on the wire as one of three raw
results; `classify()` turns that into exactly one `Outcome`. Failures that
happen before anything is sent go through `setup_failure()` instead.
"""

from dataclasses import dataclass
from enum import Enum
from typing import Optional, Union

UNKNOWN_ERROR = "Unknown error"


class OutcomeKind(Enum):
    SUCCESS = "success"
    HTTP_ERROR = "http_error"
    TIMEOUT = "timeout"
    NO_RESPONSE = "no_response"
    REQUEST_SETUP_ERROR = "request_error"


# =============================================================================
# RAW TRANSPORT RESULTS
# =============================================================================

@dataclass(frozen=True)
class HttpResponse:
    """The server answered with a status code."""
    status: int
    size: int = 0


@dataclass(frozen=True)
class TransportFailure:
    """The request went out but no response came back."""
    kind: str
    message: str = ""


@dataclass(frozen=True)
class Aborted:
    """The call was cut off by the request timeout."""


RawResult = Union[HttpResponse, TransportFailure, Aborted]


# =============================================================================
# OUTCOME
# =============================================================================

@dataclass(frozen=True)
class Outcome:
    """Classified result of one request attempt."""
    request_id: int
    kind: OutcomeKind
    elapsed_ms: float
    status_code: Optional[int] = None
    error_message: Optional[str] = None

    @property
    def is_success(self) -> bool:
        return self.kind is OutcomeKind.SUCCESS

    @property
    def histogram_key(self) -> str:
        """Key under which a failure is counted in the error histogram."""
        return self.error_message or UNKNOWN_ERROR


def classify(request_id: int, raw: RawResult, elapsed_ms: float) -> Outcome:
    """Map a raw transport result to an Outcome."""
    elapsed_ms = max(elapsed_ms, 0.0)

    if isinstance(raw, HttpResponse):
        if 200 <= raw.status < 300:
            return Outcome(request_id, OutcomeKind.SUCCESS, elapsed_ms, status_code=raw.status)
        return Outcome(
            request_id,
            OutcomeKind.HTTP_ERROR,
            elapsed_ms,
            status_code=raw.status,
            error_message=f"HTTP error: {raw.status}",
        )
    if isinstance(raw, Aborted):
        return Outcome(request_id, OutcomeKind.TIMEOUT, elapsed_ms, error_message="Request timeout")
    if isinstance(raw, TransportFailure):
        return Outcome(request_id, OutcomeKind.NO_RESPONSE, elapsed_ms, error_message="No response received")

    raise TypeError(f"Unsupported transport result: {raw!r}")


def setup_failure(request_id: int, message: str) -> Outcome:
    """Outcome for a request that failed before it was dispatched."""
    return Outcome(
        request_id,
        OutcomeKind.REQUEST_SETUP_ERROR,
        0.0,
        error_message=message or UNKNOWN_ERROR,
    )
