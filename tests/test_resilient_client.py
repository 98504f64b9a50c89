"""Tests for the resilient completion client's retry/fallback state machine."""

from __future__ import annotations

import asyncio
import unittest
from unittest.mock import AsyncMock

from geolens.models.adapter import NormalizedResponse, RequestPayload
from geolens.models.errors import (
    AllModelsExhaustedError,
    ErrorKind,
    InvalidCredentialError,
    QuotaExceededError,
    TransientBackendError,
)
from geolens.models.policy import FallbackPolicy
from geolens.models.resilient import ResilientCompletionClient


class _StatusError(Exception):
    def __init__(self, status_code: int, message: str = "") -> None:
        super().__init__(message or f"HTTP {status_code}")
        self.status_code = status_code


def _ok(text: str = "answer", model: str = "backend-said") -> NormalizedResponse:
    return NormalizedResponse(used_model=model, candidates=[text])


def _empty() -> NormalizedResponse:
    return NormalizedResponse(used_model="x", candidates=[])


class _ScriptedBackend:
    """Plays per-model outcome scripts; the last outcome repeats forever."""

    def __init__(self, script: dict[str, list]) -> None:
        self.script = script
        self.calls: list[tuple[str, bool]] = []
        self._counts: dict[str, int] = {}

    async def complete(self, model, api_key, payload):  # noqa: ANN001
        self.calls.append((model, payload.has_tools))
        outcomes = self.script[model]
        idx = self._counts.get(model, 0)
        self._counts[model] = idx + 1
        outcome = outcomes[min(idx, len(outcomes) - 1)]
        if isinstance(outcome, Exception):
            raise outcome
        return outcome


def _policy(*models: str, retries: int = 2) -> FallbackPolicy:
    return FallbackPolicy(models=models, rate_limit_retries=retries, backoff_base_seconds=1.0, backoff_multiplier=2.0)


def _payload(tools: bool = False) -> RequestPayload:
    return RequestPayload.from_prompt("Who leads the CRM market?", grounding=tools)


class ResilientClientTests(unittest.IsolatedAsyncioTestCase):
    def _client(self, backend, policy):  # noqa: ANN001
        self.sleep = AsyncMock()
        return ResilientCompletionClient(backend=backend, policy=policy, sleep=self.sleep)

    def _sleeps(self) -> list[float]:
        return [c.args[0] for c in self.sleep.await_args_list]

    async def test_sticky_rate_limit_then_next_model_scenario(self) -> None:
        backend = _ScriptedBackend({
            "m1": [_StatusError(429), _StatusError(429), _StatusError(429)],
            "m2": [_ok("from m2")],
        })
        client = self._client(backend, _policy("m1", "m2"))

        result = await client.call("key", _payload())

        self.assertEqual([m for m, _ in backend.calls], ["m1", "m1", "m1", "m2"])
        self.assertEqual(result.used_model, "m2")
        self.assertEqual(result.content, "from m2")
        self.assertEqual(self._sleeps(), [1.0, 2.0])

    async def test_invalid_credential_on_first_attempt_makes_one_call(self) -> None:
        backend = _ScriptedBackend({
            "m1": [_StatusError(400, "API key not valid. Please pass a valid API key.")],
            "m2": [_ok()],
        })
        client = self._client(backend, _policy("m1", "m2"))

        with self.assertRaises(InvalidCredentialError) as ctx:
            await client.call("bad-key", _payload(tools=True))

        self.assertEqual(len(backend.calls), 1)
        self.assertEqual(ctx.exception.kind, ErrorKind.INVALID_CREDENTIAL)
        self.assertEqual(ctx.exception.attempts, 1)
        self.sleep.assert_not_awaited()

    async def test_unauthorized_status_fails_fast(self) -> None:
        backend = _ScriptedBackend({"m1": [_StatusError(401, "Unauthorized")], "m2": [_ok()]})
        client = self._client(backend, _policy("m1", "m2"))

        with self.assertRaises(InvalidCredentialError):
            await client.call("key", _payload())
        self.assertEqual(len(backend.calls), 1)

    async def test_forbidden_without_credential_message_switches_model(self) -> None:
        backend = _ScriptedBackend({
            "m1": [_StatusError(403, "Permission denied for this model in your region")],
            "m2": [_ok()],
        })
        client = self._client(backend, _policy("m1", "m2"))

        result = await client.call("key", _payload())

        self.assertEqual(result.used_model, "m2")
        self.assertEqual(len(backend.calls), 2)

    async def test_rate_limit_ceiling_then_not_found_moves_on(self) -> None:
        backend = _ScriptedBackend({
            "m1": [_StatusError(429), _StatusError(429), _StatusError(404)],
            "m2": [_ok()],
        })
        client = self._client(backend, _policy("m1", "m2"))

        result = await client.call("key", _payload())

        self.assertEqual([m for m, _ in backend.calls], ["m1", "m1", "m1", "m2"])
        sleeps = self._sleeps()
        self.assertEqual(len(sleeps), 2)
        self.assertLess(sleeps[0], sleeps[1])
        self.assertEqual(result.used_model, "m2")

    async def test_overloaded_and_not_found_switch_without_retry(self) -> None:
        for status in (503, 404, 500):
            with self.subTest(status=status):
                backend = _ScriptedBackend({"m1": [_StatusError(status)], "m2": [_ok()]})
                client = self._client(backend, _policy("m1", "m2"))

                result = await client.call("key", _payload())

                self.assertEqual([m for m, _ in backend.calls], ["m1", "m2"])
                self.assertEqual(result.used_model, "m2")
                self.sleep.assert_not_awaited()

    async def test_tools_are_stripped_once_then_exhaustion(self) -> None:
        backend = _ScriptedBackend({
            "m1": [_StatusError(503)],
            "m2": [_StatusError(404)],
            "m3": [_StatusError(503)],
        })
        client = self._client(backend, _policy("m1", "m2", "m3"))
        payload = _payload(tools=True)

        with self.assertRaises(AllModelsExhaustedError) as ctx:
            await client.call("key", payload)

        self.assertEqual(
            backend.calls,
            [("m1", True), ("m2", True), ("m3", True), ("m1", False), ("m2", False), ("m3", False)],
        )
        self.assertEqual(ctx.exception.kind, ErrorKind.ALL_MODELS_EXHAUSTED)
        self.assertTrue(payload.has_tools)

    async def test_no_tools_means_no_restart(self) -> None:
        backend = _ScriptedBackend({"m1": [_StatusError(503)], "m2": [_StatusError(503)]})
        client = self._client(backend, _policy("m1", "m2"))

        with self.assertRaises(AllModelsExhaustedError):
            await client.call("key", _payload())
        self.assertEqual(len(backend.calls), 2)

    async def test_success_after_tool_strip_is_flagged(self) -> None:
        backend = _ScriptedBackend({"m1": [_StatusError(400, "Search grounding is not supported"), _ok("plain")]})
        client = self._client(backend, _policy("m1"))

        result = await client.call("key", _payload(tools=True))

        self.assertEqual(backend.calls, [("m1", True), ("m1", False)])
        self.assertTrue(result.tools_stripped)
        self.assertEqual(result.content, "plain")

    async def test_invalid_credential_after_tool_strip_still_fails_fast(self) -> None:
        backend = _ScriptedBackend({
            "m1": [_StatusError(503), _StatusError(403, "API_KEY_INVALID"), _ok()],
            "m2": [_StatusError(503), _ok()],
        })
        client = self._client(backend, _policy("m1", "m2"))

        with self.assertRaises(InvalidCredentialError):
            await client.call("key", _payload(tools=True))
        self.assertEqual(backend.calls, [("m1", True), ("m2", True), ("m1", False)])

    async def test_empty_candidates_are_not_success(self) -> None:
        backend = _ScriptedBackend({"m1": [_empty()], "m2": [_ok("real")]})
        client = self._client(backend, _policy("m1", "m2"))

        result = await client.call("key", _payload())

        self.assertEqual(result.used_model, "m2")
        self.assertEqual(result.content, "real")
        self.sleep.assert_not_awaited()

    async def test_only_empty_candidates_exhausts(self) -> None:
        backend = _ScriptedBackend({"m1": [_empty()]})
        client = self._client(backend, _policy("m1"))

        with self.assertRaises(AllModelsExhaustedError) as ctx:
            await client.call("key", _payload())
        self.assertEqual(ctx.exception.kind, ErrorKind.ALL_MODELS_EXHAUSTED)

    async def test_response_is_stamped_with_serving_model(self) -> None:
        backend = _ScriptedBackend({"m1": [_StatusError(503)], "m2": [_ok(model="something-else")]})
        client = self._client(backend, _policy("m1", "m2"))

        result = await client.call("key", _payload())

        self.assertEqual(result.used_model, "m2")
        self.assertFalse(result.tools_stripped)

    async def test_all_rate_limited_terminates_within_bound(self) -> None:
        backend = _ScriptedBackend({m: [_StatusError(429)] for m in ("m1", "m2", "m3")})
        policy = _policy("m1", "m2", "m3")
        client = self._client(backend, policy)

        with self.assertRaises(QuotaExceededError) as ctx:
            await client.call("key", _payload(tools=True))

        self.assertEqual(len(backend.calls), policy.max_attempts)
        self.assertEqual(len(backend.calls), 2 * 3 * (1 + 2))
        self.assertEqual(ctx.exception.kind, ErrorKind.QUOTA_EXCEEDED)
        self.assertEqual(ctx.exception.last_status, 429)
        self.assertIsInstance(ctx.exception, AllModelsExhaustedError)

    async def test_transport_errors_switch_and_surface_as_transient(self) -> None:
        backend = _ScriptedBackend({
            "m1": [ConnectionError("Connection reset by peer")],
            "m2": [ValueError("Expecting value: line 1 column 1 (char 0)")],
        })
        client = self._client(backend, _policy("m1", "m2"))

        with self.assertRaises(TransientBackendError) as ctx:
            await client.call("key", _payload())

        self.assertEqual(len(backend.calls), 2)
        self.assertEqual(ctx.exception.kind, ErrorKind.TRANSIENT_BACKEND_FAILURE)
        self.assertIsInstance(ctx.exception.__cause__, ValueError)
        self.sleep.assert_not_awaited()

    async def test_transport_error_naming_authentication_fails_fast(self) -> None:
        backend = _ScriptedBackend({"m1": [RuntimeError("Authentication failed: API key not valid")], "m2": [_ok()]})
        client = self._client(backend, _policy("m1", "m2"))

        with self.assertRaises(InvalidCredentialError):
            await client.call("key", _payload())
        self.assertEqual(len(backend.calls), 1)

    async def test_missing_api_key_never_calls_backend(self) -> None:
        backend = _ScriptedBackend({"m1": [_ok()]})
        client = self._client(backend, _policy("m1"))

        with self.assertRaises(InvalidCredentialError):
            await client.call("  ", _payload())
        self.assertEqual(backend.calls, [])

    async def test_concurrent_calls_keep_independent_state(self) -> None:
        class _PerKeyBackend:
            def __init__(self) -> None:
                self.calls: list[tuple[str, str]] = []

            async def complete(self, model, api_key, payload):  # noqa: ANN001
                self.calls.append((api_key, model))
                await asyncio.sleep(0)
                if api_key == "busy" and model == "m1":
                    raise _StatusError(503)
                return _ok(f"{api_key}:{model}")

        backend = _PerKeyBackend()
        client = self._client(backend, _policy("m1", "m2"))

        busy, idle = await asyncio.gather(
            client.call("busy", _payload()),
            client.call("idle", _payload()),
        )

        self.assertEqual(busy.used_model, "m2")
        self.assertEqual(idle.used_model, "m1")
        self.assertEqual(sorted(backend.calls), [("busy", "m1"), ("busy", "m2"), ("idle", "m1")])


if __name__ == "__main__":
    unittest.main()
