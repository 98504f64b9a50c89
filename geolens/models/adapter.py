"""Completion backend interface and base types."""

from __future__ import annotations
from dataclasses import dataclass, field, replace
from typing import Protocol, Any


@dataclass(frozen=True)
class RequestPayload:
    """Caller-supplied request. Opaque to the resilient client except for `tools`."""
    contents: list[dict[str, Any]]
    system_instruction: str | None = None
    generation_config: dict[str, Any] = field(default_factory=dict)
    tools: list[dict[str, Any]] | None = None

    @classmethod
    def from_prompt(
        cls,
        prompt: str,
        *,
        system_instruction: str | None = None,
        json_output: bool = False,
        grounding: bool = False,
    ) -> "RequestPayload":
        """Single-turn payload, optionally asking for JSON output and search grounding."""
        generation_config: dict[str, Any] = {}
        if json_output:
            generation_config["response_mime_type"] = "application/json"
        return cls(
            contents=[{"role": "user", "content": prompt}],
            system_instruction=system_instruction,
            generation_config=generation_config,
            tools=[{"googleSearch": {}}] if grounding else None,
        )

    @property
    def has_tools(self) -> bool:
        return bool(self.tools)

    @property
    def wants_json(self) -> bool:
        return self.generation_config.get("response_mime_type") == "application/json"

    def without_tools(self) -> "RequestPayload":
        return replace(self, tools=None)


@dataclass
class NormalizedResponse:
    """Normalized success body, stamped with the model that produced it."""
    used_model: str
    candidates: list[str] = field(default_factory=list)
    finish_reason: str = "stop"
    usage: dict[str, int] = field(default_factory=dict)
    grounding: Any = None
    tools_stripped: bool = False
    raw: Any = None  # provider-specific raw response

    @property
    def content(self) -> str:
        return self.candidates[0] if self.candidates else ""


class CompletionBackend(Protocol):
    """Protocol for completion transports. One request per call, no retries."""

    async def complete(
        self,
        model: str,
        api_key: str,
        payload: RequestPayload,
    ) -> NormalizedResponse:
        """Send one request. Raise on HTTP/transport failure; may return zero candidates."""
        ...
