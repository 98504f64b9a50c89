"""Answer fetching and brand-mention analysis on top of the resilient client."""

from __future__ import annotations

from dataclasses import asdict, dataclass, field
import logging
from typing import Any

from ..models.adapter import RequestPayload
from ..models.errors import CompletionError, InvalidCredentialError
from ..models.json_output import as_bool, extract_json_object
from ..models.resilient import ResilientCompletionClient


logger = logging.getLogger(__name__)

FETCH_ERROR_TEXT = "Error fetching response."
MAX_ANALYZED_CHARS = 5000

SENTIMENTS = ("positive", "neutral", "negative")
POSITIONS = ("first", "middle", "last", "not_listed", "only_option")
RECOMMENDATION_TYPES = (
    "primary_recommendation",
    "list_option",
    "comparison",
    "negative_example",
    "none",
)


@dataclass
class MentionAnalysis:
    """How one AI answer mentions the tracked brand."""
    mentioned: bool = False
    sentiment: str = "neutral"
    position: str = "not_listed"
    prominence_score: float = 0.0
    competitors_mentioned: list[str] = field(default_factory=list)
    recommendation_type: str = "none"
    error: bool = False

    @classmethod
    def failed(cls) -> "MentionAnalysis":
        return cls(error=True)

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "MentionAnalysis":
        """Coerce a loosely-typed model reply into a valid analysis."""
        sentiment = str(data.get("sentiment", "neutral")).lower()
        position = str(data.get("position", "not_listed")).lower()
        recommendation = str(data.get("recommendation_type", "none")).lower()
        try:
            prominence = float(data.get("prominence_score", 0) or 0)
        except (TypeError, ValueError):
            prominence = 0.0
        competitors = data.get("competitors_mentioned") or []
        if not isinstance(competitors, list):
            competitors = [competitors]
        return cls(
            mentioned=as_bool(data.get("mentioned")),
            sentiment=sentiment if sentiment in SENTIMENTS else "neutral",
            position=position if position in POSITIONS else "not_listed",
            prominence_score=min(10.0, max(0.0, prominence)),
            competitors_mentioned=[str(c) for c in competitors if str(c).strip()],
            recommendation_type=recommendation if recommendation in RECOMMENDATION_TYPES else "none",
            error=as_bool(data.get("error")),
        )

    def to_dict(self) -> dict[str, Any]:
        return asdict(self)


def _analysis_instruction(response_text: str, brand_name: str, competitors: list[str]) -> str:
    return (
        "You are an AI Analyst.\n"
        "Your task is to analyze an AI's response text to determine how it mentioned a specific brand.\n\n"
        f'Brand to Track: "{brand_name}"\n'
        f"Competitors: {', '.join(competitors)}\n\n"
        'Analyze the "Response Text" below and return a JSON object with this EXACT structure:\n'
        "{\n"
        '    "mentioned": boolean,\n'
        '    "sentiment": "positive" | "neutral" | "negative",\n'
        '    "position": "first" | "middle" | "last" | "not_listed" | "only_option",\n'
        '    "prominence_score": number (0-10, 0=not there, 10=primary focus/highly recommended),\n'
        '    "competitors_mentioned": string[],\n'
        '    "recommendation_type": "primary_recommendation" | "list_option" | "comparison" '
        '| "negative_example" | "none"\n'
        "}\n\n"
        'Response Text:\n"""\n'
        f"{response_text[:MAX_ANALYZED_CHARS]}\n"
        '"""\n\n'
        "Return ONLY valid JSON."
    )


async def fetch_response(
    client: ResilientCompletionClient,
    api_key: str,
    prompt: str,
    *,
    system_instruction: str | None = None,
) -> str:
    """Ask one prompt; returns `FETCH_ERROR_TEXT` when every model failed.

    A rejected API key is re-raised since no later prompt can succeed either.
    """
    payload = RequestPayload.from_prompt(prompt, system_instruction=system_instruction)
    try:
        result = await client.call(api_key, payload)
    except InvalidCredentialError:
        raise
    except CompletionError as err:
        logger.warning("Prompt failed (%s): %s", err.kind.value, err.message)
        return FETCH_ERROR_TEXT
    return result.content


async def analyze_response(
    client: ResilientCompletionClient,
    api_key: str,
    response_text: str,
    brand_name: str,
    competitors: list[str],
) -> MentionAnalysis:
    """Classify how `response_text` mentions the brand."""
    if not response_text or response_text.startswith(FETCH_ERROR_TEXT):
        return MentionAnalysis.failed()

    payload = RequestPayload.from_prompt(
        "Analyze this response.",
        system_instruction=_analysis_instruction(response_text, brand_name, competitors),
        json_output=True,
    )
    try:
        result = await client.call(api_key, payload)
    except InvalidCredentialError:
        raise
    except CompletionError as err:
        logger.warning("Mention analysis failed (%s): %s", err.kind.value, err.message)
        return MentionAnalysis.failed()

    parsed = extract_json_object(result.content)
    if parsed is None:
        logger.warning("Mention analysis returned unparsable output from %s", result.used_model)
        return MentionAnalysis.failed()
    return MentionAnalysis.from_dict(parsed)
