"""LiteLLM-based completion backend: one request per call, Gemini by default."""

from __future__ import annotations
from typing import Any

import litellm

from .adapter import NormalizedResponse, RequestPayload


# Suppress litellm's noisy logging
litellm.suppress_debug_info = True


def _get_field(obj: Any, key: str) -> Any:
    if isinstance(obj, dict):
        return obj.get(key)
    return getattr(obj, key, None)


def _extract_usage(response: Any) -> dict[str, int]:
    """Extract token usage, including reasoning/cached tokens when present."""
    usage_obj = _get_field(response, "usage")
    if not usage_obj:
        return {}

    usage: dict[str, int] = {}
    for field in ("prompt_tokens", "completion_tokens", "total_tokens"):
        value = _get_field(usage_obj, field)
        if isinstance(value, (int, float)):
            usage[field] = int(value)

    completion_details = _get_field(usage_obj, "completion_tokens_details")
    if completion_details:
        value = _get_field(completion_details, "reasoning_tokens")
        if isinstance(value, (int, float)):
            usage["reasoning_tokens"] = int(value)

    prompt_details = _get_field(usage_obj, "prompt_tokens_details")
    if prompt_details:
        value = _get_field(prompt_details, "cached_tokens")
        if isinstance(value, (int, float)):
            usage["cached_tokens"] = int(value)

    return usage


def _extract_grounding(response: Any) -> Any:
    """Search grounding metadata, when the provider attached any."""
    grounding = _get_field(response, "vertex_ai_grounding_metadata")
    if grounding:
        return grounding
    hidden = _get_field(response, "_hidden_params")
    if isinstance(hidden, dict):
        return hidden.get("vertex_ai_grounding_metadata") or None
    return None


def _content_text(content: Any) -> str:
    """Flatten plain strings and Gemini-style `parts` lists into text."""
    if isinstance(content, str):
        return content
    if isinstance(content, list):
        texts = [str(part.get("text", "")) for part in content if isinstance(part, dict)]
        return "\n".join(t for t in texts if t)
    return str(content or "")


def build_messages(payload: RequestPayload) -> list[dict[str, Any]]:
    """Map payload turns onto chat messages."""
    messages: list[dict[str, Any]] = []
    if payload.system_instruction:
        messages.append({"role": "system", "content": payload.system_instruction})
    for turn in payload.contents:
        role = str(turn.get("role") or "user")
        # Gemini calls the assistant "model"
        if role == "model":
            role = "assistant"
        raw = turn.get("content") if "content" in turn else turn.get("parts")
        messages.append({"role": role, "content": _content_text(raw)})
    return messages


def candidate_texts(response: Any) -> list[str]:
    """Non-empty text of every returned choice."""
    texts: list[str] = []
    for choice in _get_field(response, "choices") or []:
        message = _get_field(choice, "message")
        content = _get_field(message, "content") if message is not None else None
        if isinstance(content, str) and content.strip():
            texts.append(content)
    return texts


class LiteLLMBackend:
    """Completion backend that sends one `litellm.acompletion` request per call."""

    def __init__(
        self,
        provider: str = "gemini",
        api_base: str | None = None,
        timeout_s: float | None = 60.0,
        extra_headers: dict[str, str] | None = None,
    ):
        self.provider = provider.strip().strip("/")
        self.api_base = api_base
        self.timeout_s = timeout_s
        self.extra_headers = extra_headers or {}

    def qualified_model(self, model: str) -> str:
        if "/" in model or not self.provider:
            return model
        return f"{self.provider}/{model}"

    def build_kwargs(self, model: str, api_key: str, payload: RequestPayload) -> dict[str, Any]:
        kwargs: dict[str, Any] = {
            "model": self.qualified_model(model),
            "messages": build_messages(payload),
            "api_key": api_key,
        }

        config = payload.generation_config
        if "temperature" in config:
            kwargs["temperature"] = float(config["temperature"])
        if "max_output_tokens" in config:
            kwargs["max_tokens"] = int(config["max_output_tokens"])
        if payload.wants_json:
            kwargs["response_format"] = {"type": "json_object"}

        if payload.tools:
            kwargs["tools"] = list(payload.tools)
        if self.timeout_s:
            kwargs["timeout"] = float(self.timeout_s)
        if self.api_base:
            kwargs["api_base"] = self.api_base
        if self.extra_headers:
            kwargs["extra_headers"] = self.extra_headers
        return kwargs

    async def complete(self, model: str, api_key: str, payload: RequestPayload) -> NormalizedResponse:
        """Execute one request via LiteLLM. Errors propagate to the caller untouched."""
        response = await litellm.acompletion(**self.build_kwargs(model, api_key, payload))

        choices = _get_field(response, "choices") or []
        finish_reason = "stop"
        if choices:
            finish_reason = _get_field(choices[0], "finish_reason") or "stop"

        return NormalizedResponse(
            used_model=model,
            candidates=candidate_texts(response),
            finish_reason=finish_reason,
            usage=_extract_usage(response),
            grounding=_extract_grounding(response),
            raw=response,
        )
