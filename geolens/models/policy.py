"""Fallback policy: model priority, sticky statuses, retry ceiling and backoff.

The policy is fixed configuration. `DEFAULT_POLICY` is what the CLI and the
feature modules use; tests build their own `FallbackPolicy` values.
"""

from __future__ import annotations

from dataclasses import dataclass
from enum import Enum


DEFAULT_MODEL_PRIORITY: tuple[str, ...] = (
    "gemini-2.5-flash",
    "gemini-2.0-flash",
    "gemini-1.5-flash",
    "gemini-1.5-pro",
)

# Lower-cased fragments that mark an error as a rejected credential.
CREDENTIAL_ERROR_TOKENS: tuple[str, ...] = (
    "api key not valid",
    "api_key_invalid",
    "invalid api key",
    "invalid_api_key",
    "incorrect api key",
    "api key expired",
    "invalid authentication credentials",
)

# Extra fragments that only count when no HTTP status is attached.
TRANSPORT_AUTH_TOKENS: tuple[str, ...] = (
    "authentication failed",
    "authenticationerror",
    "unauthorized",
)


class FailureKind(str, Enum):
    RATE_LIMITED = "rate_limited"
    OVERLOADED = "overloaded"
    NOT_FOUND = "not_found"
    INVALID_CREDENTIAL = "invalid_credential"
    EMPTY_RESPONSE = "empty_response"
    TRANSPORT = "transport"
    BACKEND_ERROR = "backend_error"


class Action(str, Enum):
    RETRY_SAME_MODEL = "retry_same_model"
    SWITCH_MODEL = "switch_model"
    FAIL_FAST = "fail_fast"


@dataclass(frozen=True)
class Failure:
    """One classified attempt failure."""
    kind: FailureKind
    status: int | None = None
    message: str = ""


def _mentions_credential(message: str, *, include_transport_tokens: bool = False) -> bool:
    lowered = message.lower()
    tokens = CREDENTIAL_ERROR_TOKENS
    if include_transport_tokens:
        tokens = tokens + TRANSPORT_AUTH_TOKENS
    return any(token in lowered for token in tokens)


def _status_of(exc: Exception) -> int | None:
    status = getattr(exc, "status_code", None)
    if status is None:
        response = getattr(exc, "response", None)
        status = getattr(response, "status_code", None)
    try:
        return int(status) if status is not None else None
    except (TypeError, ValueError):
        return None


def classify_exception(exc: Exception) -> Failure:
    """Classify a backend exception by its HTTP status and message."""
    message = str(exc)
    status = _status_of(exc)

    if status is None:
        if _mentions_credential(message, include_transport_tokens=True):
            return Failure(FailureKind.INVALID_CREDENTIAL, None, message)
        return Failure(FailureKind.TRANSPORT, None, message)

    if status == 401:
        return Failure(FailureKind.INVALID_CREDENTIAL, status, message)
    if status in (400, 403) and _mentions_credential(message):
        return Failure(FailureKind.INVALID_CREDENTIAL, status, message)
    if status == 429:
        return Failure(FailureKind.RATE_LIMITED, status, message)
    if status == 503:
        return Failure(FailureKind.OVERLOADED, status, message)
    if status == 404:
        return Failure(FailureKind.NOT_FOUND, status, message)
    return Failure(FailureKind.BACKEND_ERROR, status, message)


@dataclass(frozen=True)
class FallbackPolicy:
    """Frozen recovery policy for the resilient completion client."""
    models: tuple[str, ...] = DEFAULT_MODEL_PRIORITY
    sticky_statuses: frozenset[int] = frozenset({429})
    rate_limit_retries: int = 2
    backoff_base_seconds: float = 1.0
    backoff_multiplier: float = 2.0
    max_backoff_seconds: float = 30.0
    strip_tools_on_exhaustion: bool = True

    def __post_init__(self) -> None:
        if not self.models:
            raise ValueError("models must contain at least one model name")
        if self.rate_limit_retries < 0:
            raise ValueError("rate_limit_retries must be >= 0")
        if self.backoff_base_seconds < 0 or self.max_backoff_seconds < 0:
            raise ValueError("backoff delays must be >= 0")
        if self.backoff_multiplier < 1.0:
            raise ValueError("backoff_multiplier must be >= 1.0")

    @property
    def max_attempts(self) -> int:
        """Upper bound on backend calls for one invocation, tool restart included."""
        passes = 2 if self.strip_tools_on_exhaustion else 1
        return passes * len(self.models) * (1 + self.rate_limit_retries)

    def action_for(self, failure: Failure, retries_at_model: int) -> Action:
        if failure.kind is FailureKind.INVALID_CREDENTIAL:
            return Action.FAIL_FAST
        if failure.status in self.sticky_statuses and retries_at_model < self.rate_limit_retries:
            return Action.RETRY_SAME_MODEL
        return Action.SWITCH_MODEL

    def backoff_seconds(self, retry_number: int) -> float:
        """Delay before the n-th same-model retry (n starts at 1)."""
        exponent = max(0, retry_number - 1)
        delay = self.backoff_base_seconds * (self.backoff_multiplier ** exponent)
        return min(delay, self.max_backoff_seconds)


DEFAULT_POLICY = FallbackPolicy()
