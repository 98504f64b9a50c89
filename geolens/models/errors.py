"""Classified errors raised by the resilient completion client.

Only terminal failures are surfaced; retries, backoff and model switches are
resolved inside the client. Every error carries a message suitable for direct
display to an end user.
"""

from __future__ import annotations

from enum import Enum
from typing import Any


class ErrorKind(str, Enum):
    INVALID_CREDENTIAL = "InvalidCredential"
    ALL_MODELS_EXHAUSTED = "AllModelsExhausted"
    QUOTA_EXCEEDED = "QuotaExceeded"
    TRANSIENT_BACKEND_FAILURE = "TransientBackendFailure"


class CompletionError(Exception):
    """Base class for classified completion failures."""

    kind: ErrorKind = ErrorKind.ALL_MODELS_EXHAUSTED

    def __init__(
        self,
        message: str,
        *,
        attempts: int = 0,
        last_status: int | None = None,
    ) -> None:
        self.message = message
        self.attempts = attempts
        self.last_status = last_status
        super().__init__(message)

    def to_dict(self) -> dict[str, Any]:
        return {
            "kind": self.kind.value,
            "message": self.message,
            "attempts": self.attempts,
            "last_status": self.last_status,
        }


class InvalidCredentialError(CompletionError):
    """The backend rejected the API key. Never retried."""

    kind = ErrorKind.INVALID_CREDENTIAL


class AllModelsExhaustedError(CompletionError):
    """Every model in the priority list failed."""

    kind = ErrorKind.ALL_MODELS_EXHAUSTED


class QuotaExceededError(AllModelsExhaustedError):
    """Exhaustion where the last observed failure was rate limiting."""

    kind = ErrorKind.QUOTA_EXCEEDED


class TransientBackendError(AllModelsExhaustedError):
    """Exhaustion where the last observed failure was an unclassified backend error."""

    kind = ErrorKind.TRANSIENT_BACKEND_FAILURE
