"""Resilient completion client: retry, model fallback and tool degradation.

Every invocation walks its own state `(model_index, tools_stripped, retries)`:

- 429 keeps the same model and waits (up to the policy's retry ceiling),
- 503, 404, other error statuses, transport failures and empty responses move
  on to the next model,
- a rejected API key fails immediately,
- when the list runs out and the payload declared tools, the whole list is
  tried once more without them.

Only a terminal, classified `CompletionError` ever reaches the caller.
"""

from __future__ import annotations

import asyncio
import logging
from typing import Awaitable, Callable

from .adapter import CompletionBackend, NormalizedResponse, RequestPayload
from .errors import (
    AllModelsExhaustedError,
    InvalidCredentialError,
    QuotaExceededError,
    TransientBackendError,
)
from .litellm_adapter import LiteLLMBackend
from .policy import DEFAULT_POLICY, Action, Failure, FailureKind, FallbackPolicy, classify_exception


logger = logging.getLogger(__name__)

SleepFunc = Callable[[float], Awaitable[None]]


def _describe(failure: Failure) -> str:
    if failure.status is not None:
        return f"HTTP {failure.status}"
    return failure.kind.value


class ResilientCompletionClient:
    """Calls the completion backend across a prioritized list of models."""

    def __init__(
        self,
        backend: CompletionBackend | None = None,
        policy: FallbackPolicy = DEFAULT_POLICY,
        sleep: SleepFunc = asyncio.sleep,
    ):
        self.backend = backend or LiteLLMBackend()
        self.policy = policy
        self._sleep = sleep

    async def call(self, api_key: str, payload: RequestPayload) -> NormalizedResponse:
        """Return the first non-empty response, or raise a classified `CompletionError`."""
        if not api_key or not api_key.strip():
            raise InvalidCredentialError("No API key provided. Add your API key and try again.")

        models = self.policy.models
        model_index = 0
        tools_stripped = False
        retries = 0
        attempts = 0
        current = payload
        last_failure: Failure | None = None
        last_exc: Exception | None = None

        while True:
            if model_index >= len(models):
                if not tools_stripped and self.policy.strip_tools_on_exhaustion and payload.has_tools:
                    logger.info("All %d models failed with tools; retrying without tools", len(models))
                    tools_stripped = True
                    model_index = 0
                    retries = 0
                    current = payload.without_tools()
                    continue
                raise self._exhausted(last_failure, attempts) from last_exc

            model = models[model_index]
            attempts += 1
            try:
                response = await self.backend.complete(model, api_key, current)
            except Exception as exc:
                last_exc = exc
                failure = classify_exception(exc)
            else:
                if response.candidates:
                    response.used_model = model
                    response.tools_stripped = tools_stripped
                    if attempts > 1:
                        logger.info("Model %s answered after %d attempts", model, attempts)
                    return response
                last_exc = None
                failure = Failure(FailureKind.EMPTY_RESPONSE, None, f"{model} returned no candidates")

            last_failure = failure
            action = self.policy.action_for(failure, retries)

            if action is Action.FAIL_FAST:
                logger.warning("Model %s rejected the API key (%s)", model, _describe(failure))
                raise InvalidCredentialError(
                    "The API key was rejected. Check that it is correct and enabled for this API.",
                    attempts=attempts,
                    last_status=failure.status,
                ) from last_exc

            if action is Action.RETRY_SAME_MODEL:
                retries += 1
                delay = self.policy.backoff_seconds(retries)
                logger.warning(
                    "Model %s failed (%s); retry %d/%d in %.1fs",
                    model,
                    _describe(failure),
                    retries,
                    self.policy.rate_limit_retries,
                    delay,
                )
                if delay > 0:
                    await self._sleep(delay)
                continue

            logger.warning("Model %s failed (%s); switching model", model, _describe(failure))
            model_index += 1
            retries = 0

    def _exhausted(self, failure: Failure | None, attempts: int) -> AllModelsExhaustedError:
        status = failure.status if failure else None
        tried = ", ".join(self.policy.models)

        if failure is not None and failure.kind is FailureKind.RATE_LIMITED:
            return QuotaExceededError(
                "API quota exceeded on every available model. "
                "Wait a minute and try again, or check your plan and billing.",
                attempts=attempts,
                last_status=status,
            )
        if failure is not None and failure.kind in (FailureKind.BACKEND_ERROR, FailureKind.TRANSPORT):
            return TransientBackendError(
                f"The AI service failed on every available model (last error: {_describe(failure)}). "
                "Please try again shortly.",
                attempts=attempts,
                last_status=status,
            )
        return AllModelsExhaustedError(
            f"No available model could answer this request (tried {tried}).",
            attempts=attempts,
            last_status=status,
        )
