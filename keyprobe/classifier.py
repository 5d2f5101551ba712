"""
Response Classifier

Maps an upstream HTTP status and error body to an UpstreamOutcome, and an
outcome to the JSON response returned to the caller.

Key check and chat probe share this module but differ in two places:
- 403 is only reported as "forbidden" on the key check
- 429 is only split into quota / rate limit on the chat probe
"""

from dataclasses import dataclass, field
from enum import Enum
from typing import Optional, Dict, Any


# =============================================================================
# Messages
# =============================================================================

KEY_VALID_MESSAGE = "Your OpenAI key is valid and working!"
INVALID_KEY_MESSAGE = "Your API key is invalid or expired."
FORBIDDEN_MESSAGE = "Access forbidden. Your API key may not have the required permissions."
RATE_LIMIT_MESSAGE = "Rate limit exceeded. Please try again later."
QUOTA_MESSAGE = (
    "Your API key is valid, but your account has no credits/quota remaining. "
    "Please add credits to your OpenAI account."
)
UNREACHABLE_MESSAGE = (
    "Failed to connect to OpenAI API. "
    "Please check your internet connection and try again."
)
UPSTREAM_ERROR_TEMPLATE = "OpenAI API error: {message}"

UNKNOWN_ERROR = "Unknown error occurred"
RATE_LIMIT_FALLBACK = "Rate limit exceeded"

QUOTA_MARKERS = ("quota", "billing", "exceeded your current quota")


class Operation(Enum):
    """Which proxy operation an outcome belongs to."""
    KEY_CHECK = "check_key"
    CHAT = "chat"


class OutcomeKind(Enum):
    """Tag for UpstreamOutcome."""
    SUCCESS = "success"
    CLIENT_ERROR = "client_error"
    RATE_LIMITED = "rate_limited"
    UNREACHABLE = "unreachable"


class RateLimitKind(Enum):
    """The two meanings of an upstream 429."""
    QUOTA = "quota"
    THROTTLE = "throttle"


class ErrorType(str, Enum):
    """``errorType`` values in error bodies."""
    INVALID_KEY = "invalid_key"
    FORBIDDEN = "forbidden"
    QUOTA_EXCEEDED = "quota_exceeded"
    RATE_LIMIT = "rate_limit"
    OTHER = "other"


@dataclass
class UpstreamOutcome:
    """Result of one upstream call."""
    kind: OutcomeKind
    status: Optional[int] = None
    payload: Any = None
    provider_message: Optional[str] = None
    rate_limit: Optional[RateLimitKind] = None
    cause: Optional[str] = None

    @classmethod
    def success(cls, status: int, payload: Any = None) -> "UpstreamOutcome":
        return cls(kind=OutcomeKind.SUCCESS, status=status, payload=payload)

    @classmethod
    def client_error(cls, status: int, provider_message: str) -> "UpstreamOutcome":
        return cls(kind=OutcomeKind.CLIENT_ERROR, status=status, provider_message=provider_message)

    @classmethod
    def rate_limited(cls, kind: RateLimitKind, provider_message: str) -> "UpstreamOutcome":
        return cls(
            kind=OutcomeKind.RATE_LIMITED,
            status=429,
            provider_message=provider_message,
            rate_limit=kind,
        )

    @classmethod
    def unreachable(cls, cause: str) -> "UpstreamOutcome":
        return cls(kind=OutcomeKind.UNREACHABLE, cause=cause)

    @property
    def ok(self) -> bool:
        return self.kind == OutcomeKind.SUCCESS


@dataclass
class ProxyResponse:
    """Outward JSON response: HTTP status plus body."""
    status_code: int
    body: Dict[str, Any] = field(default_factory=dict)

    @property
    def error_type(self) -> Optional[str]:
        return self.body.get("errorType")


# =============================================================================
# Classification
# =============================================================================

def is_success(status: int) -> bool:
    return 200 <= status < 300


def provider_message(body: Any, default: str = UNKNOWN_ERROR) -> str:
    """
    Pull a human-readable message out of an OpenAI error body.

    Uses ``error.message``, then ``error.code``, then ``default``. Bodies that
    are missing or not shaped like ``{"error": {...}}`` give ``default``.
    """
    if not isinstance(body, dict):
        return default
    error = body.get("error")
    if not isinstance(error, dict):
        return default
    return str(error.get("message") or error.get("code") or default)


def is_quota_message(message: str) -> bool:
    """True if a 429 message is about billing/quota rather than throttling."""
    lowered = (message or "").lower()
    return any(marker in lowered for marker in QUOTA_MARKERS)


def classify(status: int, body: Any = None, distinguish_quota: bool = False) -> UpstreamOutcome:
    """Classify an upstream HTTP status and (parsed) body."""
    if is_success(status):
        return UpstreamOutcome.success(status, body)

    if status == 429:
        message = provider_message(body, RATE_LIMIT_FALLBACK)
        if distinguish_quota and is_quota_message(message):
            return UpstreamOutcome.rate_limited(RateLimitKind.QUOTA, message)
        return UpstreamOutcome.rate_limited(RateLimitKind.THROTTLE, message)

    return UpstreamOutcome.client_error(status, provider_message(body))


def classify_for(operation: Operation, status: int, body: Any = None) -> UpstreamOutcome:
    """Classify with the variant used by ``operation``."""
    return classify(status, body, distinguish_quota=operation == Operation.CHAT)


# =============================================================================
# Rendering
# =============================================================================

def _error(status: int, message: str, error_type: Optional[ErrorType] = None) -> ProxyResponse:
    body: Dict[str, Any] = {"error": message}
    if error_type is not None:
        body["errorType"] = error_type.value
    return ProxyResponse(status_code=status, body=body)


def unreachable_response() -> ProxyResponse:
    """500 response for transport-level failures."""
    return _error(500, UNREACHABLE_MESSAGE)


def render_error(outcome: UpstreamOutcome, operation: Operation) -> ProxyResponse:
    """Turn a non-success outcome into the caller-facing error response."""
    if outcome.kind == OutcomeKind.SUCCESS:
        raise ValueError("render_error() called with a success outcome")

    if outcome.kind == OutcomeKind.UNREACHABLE:
        return unreachable_response()

    if outcome.kind == OutcomeKind.RATE_LIMITED:
        if outcome.rate_limit == RateLimitKind.QUOTA:
            return _error(429, QUOTA_MESSAGE, ErrorType.QUOTA_EXCEEDED)
        return _error(429, RATE_LIMIT_MESSAGE, ErrorType.RATE_LIMIT)

    if outcome.status == 401:
        return _error(401, INVALID_KEY_MESSAGE, ErrorType.INVALID_KEY)

    if outcome.status == 403 and operation == Operation.KEY_CHECK:
        return _error(403, FORBIDDEN_MESSAGE, ErrorType.FORBIDDEN)

    return _error(
        outcome.status,
        UPSTREAM_ERROR_TEMPLATE.format(message=outcome.provider_message or UNKNOWN_ERROR),
        ErrorType.OTHER,
    )
