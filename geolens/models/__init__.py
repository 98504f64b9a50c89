"""Resilient completion client and its backend types."""

from .adapter import CompletionBackend, NormalizedResponse, RequestPayload
from .errors import (
    AllModelsExhaustedError,
    CompletionError,
    ErrorKind,
    InvalidCredentialError,
    QuotaExceededError,
    TransientBackendError,
)
from .policy import DEFAULT_MODEL_PRIORITY, DEFAULT_POLICY, FallbackPolicy
from .resilient import ResilientCompletionClient

__all__ = [
    "AllModelsExhaustedError",
    "CompletionBackend",
    "CompletionError",
    "DEFAULT_MODEL_PRIORITY",
    "DEFAULT_POLICY",
    "ErrorKind",
    "FallbackPolicy",
    "InvalidCredentialError",
    "NormalizedResponse",
    "QuotaExceededError",
    "RequestPayload",
    "ResilientCompletionClient",
    "TransientBackendError",
]
