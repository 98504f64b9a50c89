"""GEO brand audit: how AI answers represent a brand, and how ready its content is."""

from __future__ import annotations

from dataclasses import dataclass, field
import logging
from typing import Any

from ..models.adapter import RequestPayload
from ..models.errors import CompletionError, InvalidCredentialError
from ..models.json_output import extract_json_object
from ..models.resilient import ResilientCompletionClient


logger = logging.getLogger(__name__)

NOT_PROVIDED = "Not provided"


class AuditResponseError(ValueError):
    """The model answered, but not with the JSON the audit asked for."""


@dataclass
class BrandAuditInput:
    brand_name: str = ""
    website_url: str = ""
    website_content: str = ""
    geo_content: str = ""
    competitors: str = ""

    def is_empty(self) -> bool:
        return not (self.brand_name.strip() or self.website_url.strip() or self.website_content.strip())


def _score(data: dict[str, Any], key: str) -> int:
    try:
        value = float(data.get(key) or 0)
    except (TypeError, ValueError):
        value = 0.0
    return int(round(min(100.0, max(0.0, value))))


@dataclass
class AuditScores:
    ai_accuracy: int = 0
    content_context_clarity: int = 0
    content_completeness: int = 0
    geo_readiness: int = 0

    @classmethod
    def from_dict(cls, data: Any) -> "AuditScores":
        if not isinstance(data, dict):
            return cls()
        return cls(
            ai_accuracy=_score(data, "aiAccuracy"),
            content_context_clarity=_score(data, "contentContextClarity"),
            content_completeness=_score(data, "contentCompleteness"),
            geo_readiness=_score(data, "geoReadiness"),
        )

    def to_dict(self) -> dict[str, int]:
        return {
            "aiAccuracy": self.ai_accuracy,
            "contentContextClarity": self.content_context_clarity,
            "contentCompleteness": self.content_completeness,
            "geoReadiness": self.geo_readiness,
        }


@dataclass
class BrandAuditResult:
    brand_analysis: str
    content_analysis: str
    scores: AuditScores = field(default_factory=AuditScores)
    used_model: str | None = None
    extracted_content: str | None = None

    def to_dict(self) -> dict[str, Any]:
        return {
            "brandAnalysis": self.brand_analysis,
            "contentAnalysis": self.content_analysis,
            "scores": self.scores.to_dict(),
            "used_model": self.used_model,
            "extracted_content": self.extracted_content,
        }


async def extract_website_content(client: ResilientCompletionClient, api_key: str, url: str) -> str | None:
    """Summarize a site's core brand content through a search-grounded call.

    Returns None when no model could read it; the audit then runs without
    website content. A rejected key still raises.
    """
    prompt = (
        "I need to analyze the website content for a brand audit.\n"
        f"Please visit this URL: {url}\n\n"
        "Task:\n"
        "1. Read the homepage content.\n"
        "2. Extract the main hero text, feature descriptions, and product explanation.\n"
        "3. Ignore navigation menus, footers, privacy policies, and ads.\n"
        "4. Return a clean, structured summary of the core brand content (approx 300-500 words).\n\n"
        "Just return the content text."
    )
    try:
        result = await client.call(api_key, RequestPayload.from_prompt(prompt, grounding=True))
    except InvalidCredentialError:
        raise
    except CompletionError as err:
        logger.warning("Website extraction for %s failed (%s)", url, err.kind.value)
        return None
    return result.content or None


def _audit_prompt(audit_input: BrandAuditInput, website_content: str) -> str:
    return f"""You are a Generative Engine Optimizer (GEO) Brand Audit Analyst.
You analyze ONLY the data provided in this request.
Your job is to audit how a brand is represented in AI-generated answers and
generative search systems (ChatGPT, Gemini, Perplexity).

INPUT
Brand Name:
{audit_input.brand_name.strip() or NOT_PROVIDED}

Website Content (raw text or summary):
{website_content or NOT_PROVIDED}

GEO / FAQ / Help Page Content (if any):
{audit_input.geo_content.strip() or NOT_PROVIDED}

Competitors (optional):
{audit_input.competitors.strip() or NOT_PROVIDED}

PART 1: BRAND KNOWLEDGE ANALYSIS (based ONLY on the brand name)
Simulate how a general AI model would answer "What is the brand?", "What do they do?"
and "Who is it for?" from its training data. Identify general brand awareness
(High/Low/Niche), potential hallucinations, and positioning clarity.

PART 2: CONTENT OPTIMIZATION ANALYSIS (based ONLY on the provided content)
Evaluate clarity and completeness, GEO readiness (FAQs, definitions, AI-friendly
formatting) and differentiation versus competitors. List ACTIONS to improve the content.

Return a raw JSON object:
{{
  "brandAnalysis": "Markdown for part 1, with the header '🔍 AI Brand Representation'",
  "contentAnalysis": "Markdown for part 2, with the header '🚀 Content Optimization'",
  "scores": {{
    "aiAccuracy": 0,
    "contentContextClarity": 0,
    "contentCompleteness": 0,
    "geoReadiness": 0
  }}
}}
Each score is 0-100."""


async def run_brand_audit(
    client: ResilientCompletionClient,
    api_key: str,
    audit_input: BrandAuditInput,
) -> BrandAuditResult:
    """Run the audit; website content is fetched first when only a URL is given.

    Raises ValueError when brand name, URL and content are all missing,
    `AuditResponseError` when the reply has no JSON object, and
    `CompletionError` when the audit call itself fails.
    """
    if audit_input.is_empty():
        raise ValueError("Provide at least a brand name, a website URL or website content.")

    website_content = audit_input.website_content.strip()
    extracted = None
    if audit_input.website_url.strip() and not website_content:
        extracted = await extract_website_content(client, api_key, audit_input.website_url.strip())
        website_content = extracted or ""

    result = await client.call(
        api_key,
        RequestPayload.from_prompt(_audit_prompt(audit_input, website_content), json_output=True),
    )
    parsed = extract_json_object(result.content)
    if parsed is None:
        raise AuditResponseError(f"Brand audit reply from {result.used_model} was not a JSON object.")

    return BrandAuditResult(
        brand_analysis=str(parsed.get("brandAnalysis") or ""),
        content_analysis=str(parsed.get("contentAnalysis") or ""),
        scores=AuditScores.from_dict(parsed.get("scores")),
        used_model=result.used_model,
        extracted_content=extracted,
    )
