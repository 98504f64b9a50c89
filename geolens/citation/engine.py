"""Citation intelligence: detect, classify and score brand citations in AI answers.

The LLM classifier does the heavy lifting; a phrase-based detector is kept as
the fallback whenever the classifier call or its JSON output fails.
"""

from __future__ import annotations

import asyncio
from dataclasses import asdict, dataclass, field
import logging
from typing import Any, Awaitable, Callable

from ..models.adapter import RequestPayload
from ..models.errors import CompletionError, InvalidCredentialError
from ..models.json_output import extract_json_object
from ..models.resilient import ResilientCompletionClient


logger = logging.getLogger(__name__)

NO_MENTION = "NO_MENTION"
MENTION_ONLY = "MENTION_ONLY"
WEAK_ATTRIBUTION = "WEAK_ATTRIBUTION"
STRONG_CITATION = "STRONG_CITATION"
DEFINITION_OWNERSHIP = "DEFINITION_OWNERSHIP"
ERROR = "ERROR"

CITATION_LEVELS = (NO_MENTION, MENTION_ONLY, WEAK_ATTRIBUTION, STRONG_CITATION, DEFINITION_OWNERSHIP)

LEVEL_BONUS = {DEFINITION_OWNERSHIP: 10, STRONG_CITATION: 5}

PLATFORM_PERSONAS: dict[str, str] = {
    "Gemini": "You are a helpful AI assistant.",
    "ChatGPT": (
        "You are ChatGPT based on GPT-4. Answer the following user query accurately, "
        "mimicking ChatGPT's helpful and direct style. Do not mention you are simulating."
    ),
    "Perplexity": (
        "You are Perplexity AI. You MUST provide citations in your response (e.g., [1], [2]). "
        "Focus on facts and sources. Respond in the style of Perplexity."
    ),
}

SleepFunc = Callable[[float], Awaitable[None]]


def geo_citation_prompts(brand: str, industry: str) -> list[str]:
    return [
        f"Define {brand} and its role in {industry}.",
        f"What is the best {industry} solution for enterprise?",
        f"According to {brand}, what is the future of {industry}?",
        f"Compare top {industry} tools: {brand} vs competitors.",
        f"How does {brand} handle data security?",
    ]


@dataclass
class LegacyCitation:
    is_cited: bool = False
    is_mentioned: bool = False
    type: str | None = None
    sentence: str | None = None
    confidence: float = 0.0


def _extract_sentence(text: str, index: int) -> str:
    start = text.rfind(".", 0, index + 1) + 1
    end = text.find(".", index)
    return text[start : end + 1 if end != -1 else len(text)].strip()


def detect_citation_legacy(text: str, brand: str) -> LegacyCitation:
    """Phrase-based attribution detection around the first brand mention."""
    if not text or not brand:
        return LegacyCitation()

    lower_text = text.lower()
    lower_brand = brand.lower()
    mention_index = lower_text.find(lower_brand)
    if mention_index == -1:
        return LegacyCitation()

    pre_brand = (
        f"according to {lower_brand}",
        f"as described by {lower_brand}",
        f"based on {lower_brand}",
        f"source: {lower_brand}",
        f"per {lower_brand}",
    )
    post_brand = (
        f"{lower_brand} states",
        f"{lower_brand} defines",
        f"{lower_brand} explains",
        f"{lower_brand} recommends",
        f"{lower_brand} suggests",
        f"{lower_brand}'s definition",
    )

    matched_type = None
    if any(p in lower_text for p in pre_brand):
        matched_type = "Explicit Attribution"
    elif any(p in lower_text for p in post_brand):
        matched_type = "Active Voice Attribution"

    sentence = _extract_sentence(text, mention_index)
    if matched_type:
        return LegacyCitation(True, True, matched_type, sentence, 1.0)
    return LegacyCitation(False, True, "Mention Only", sentence, 0.5)


@dataclass
class CitationAnalysis:
    """Classified citation presence of a brand in one AI answer."""
    citation_level: str = NO_MENTION
    confidence_score: float = 0.0
    citation_sentence: str | None = None
    citation_type: str | None = None
    platform: str | None = None
    platform_trust_score: float = 0.0
    platform_authority_status: str | None = None
    authority_change: str | None = None
    competitor_cited: str | None = None
    platform_bias_note: str | None = None
    removability_passed: bool | None = None
    why_not_cited: str | None = None
    recommended_fix: str | None = None
    fallback: bool = False

    @classmethod
    def from_model_output(cls, data: dict[str, Any], platform: str) -> "CitationAnalysis":
        level = str(data.get("citation_level") or NO_MENTION).upper()
        try:
            trust = float(data.get("platform_trust_score") or 0)
        except (TypeError, ValueError):
            trust = 0.0
        trust = min(100.0, max(0.0, trust))

        def _opt(key: str) -> str | None:
            value = data.get(key)
            return str(value) if value not in (None, "") else None

        removability = data.get("removability_passed")
        return cls(
            citation_level=level if level in CITATION_LEVELS else NO_MENTION,
            confidence_score=trust,
            citation_sentence=_opt("citation_sentence"),
            citation_type=_opt("citation_type"),
            platform=_opt("platform") or platform,
            platform_trust_score=trust,
            platform_authority_status=_opt("platform_authority_status"),
            authority_change=_opt("authority_change"),
            competitor_cited=_opt("competitor_cited"),
            platform_bias_note=_opt("platform_bias_note"),
            removability_passed=removability if isinstance(removability, bool) else None,
            why_not_cited=_opt("why_not_cited"),
            recommended_fix=_opt("recommended_fix"),
        )

    @classmethod
    def from_legacy(cls, legacy: LegacyCitation, platform: str) -> "CitationAnalysis":
        if legacy.is_cited:
            level = STRONG_CITATION
        elif legacy.is_mentioned:
            level = MENTION_ONLY
        else:
            level = NO_MENTION
        return cls(
            citation_level=level,
            confidence_score=legacy.confidence * 100,
            citation_sentence=legacy.sentence,
            citation_type=legacy.type,
            platform=platform,
            why_not_cited="AI Analysis Failed",
            recommended_fix="Retry analysis",
            fallback=True,
        )

    def to_dict(self) -> dict[str, Any]:
        return asdict(self)


def _classification_prompt(text: str, brand: str, competitors: str, platform: str) -> str:
    return f"""You are a Multi-Platform Citation Intelligence Engine for Generative Engine Optimization (GEO).
Analyze the AI-generated response below and determine brand authority and citation presence.

BRAND: {brand}
COMPETITORS: {competitors or "None provided"}
AI PLATFORM: {platform}

AI RESPONSE:
{text}

Steps:
1. Extract mentions of the brand, competitors, and generic unnamed sources.
2. Classify the brand presence as EXACTLY ONE of: {", ".join(CITATION_LEVELS)}.
   A mention is not a citation; a citation attributes a claim or definition to the brand.
3. Removability test: remove the brand name from the attributed sentence. If it still makes sense,
   downgrade authority by one level.
4. Citation type, if any: Definition, Explanation, Comparison, Recommendation, Source Reference.
5. Platform trust score 0-100 (explicit attribution, strength of language, absence of competitors).
6. Authority status: TRUSTED_SOURCE, WEAKLY_TRUSTED, GENERIC_REFERENCE or NOT_TRUSTED.
7. Competitor displacement: AUTHORITY_GAIN, AUTHORITY_LOSS or AUTHORITY_NEUTRAL.
8. Note how willing this platform is to cite brands.
9. If not strongly cited, explain why and give ONE actionable fix.

Output STRICT JSON:
{{
  "brand": "{brand}",
  "platform": "{platform}",
  "citation_level": "",
  "citation_type": "",
  "citation_sentence": "",
  "removability_passed": true,
  "platform_trust_score": 0,
  "platform_authority_status": "",
  "authority_change": "",
  "competitor_cited": "",
  "platform_bias_note": "",
  "why_not_cited": "",
  "recommended_fix": ""
}}"""


async def analyze_citation(
    client: ResilientCompletionClient,
    api_key: str,
    text: str,
    brand: str,
    competitors: str = "",
    platform: str = "Gemini",
) -> CitationAnalysis:
    """LLM citation classification, falling back to phrase detection on failure."""
    if not text or not brand:
        return CitationAnalysis(platform=platform)

    payload = RequestPayload.from_prompt(
        _classification_prompt(text, brand, competitors, platform),
        json_output=True,
    )
    try:
        result = await client.call(api_key, payload)
    except InvalidCredentialError:
        raise
    except CompletionError as err:
        logger.warning("Citation analysis failed (%s); using phrase detection", err.kind.value)
        return CitationAnalysis.from_legacy(detect_citation_legacy(text, brand), platform)

    parsed = extract_json_object(result.content)
    if parsed is None:
        logger.warning("Citation analysis from %s was not JSON; using phrase detection", result.used_model)
        return CitationAnalysis.from_legacy(detect_citation_legacy(text, brand), platform)
    return CitationAnalysis.from_model_output(parsed, platform)


def calculate_authority_score(analyses: list[CitationAnalysis | None]) -> int:
    """Citation Authority Score (0-100) averaged over all samples."""
    if not analyses:
        return 0
    total = 0.0
    for analysis in analyses:
        if analysis is None:
            continue
        sample = analysis.confidence_score + LEVEL_BONUS.get(analysis.citation_level, 0)
        if analysis.citation_level == NO_MENTION:
            sample = 0.0
        total += min(100.0, sample)
    return int(round(total / len(analyses)))


@dataclass
class CitationSample:
    prompt: str
    text: str
    analysis: CitationAnalysis
    platform: str
    used_model: str | None = None

    def to_dict(self) -> dict[str, Any]:
        return {
            "prompt": self.prompt,
            "text": self.text,
            "analysis": self.analysis.to_dict(),
            "platform": self.platform,
            "used_model": self.used_model,
        }


@dataclass
class PlatformAudit:
    platform: str
    samples: list[CitationSample] = field(default_factory=list)

    @property
    def authority_score(self) -> int:
        return calculate_authority_score([s.analysis for s in self.samples])


async def run_citation_audit(
    client: ResilientCompletionClient,
    api_key: str,
    brand: str,
    industry: str,
    competitors: str = "",
    *,
    platforms: list[str] | None = None,
    delay_seconds: float = 1.0,
    sleep: SleepFunc = asyncio.sleep,
) -> list[PlatformAudit]:
    """Ask each GEO prompt under each simulated platform persona and score citations."""
    selected = platforms or list(PLATFORM_PERSONAS)
    unknown = [p for p in selected if p not in PLATFORM_PERSONAS]
    if unknown:
        raise ValueError(f"Unknown platform(s): {', '.join(unknown)}")

    prompts = geo_citation_prompts(brand, industry)
    audits: list[PlatformAudit] = []
    first = True
    for platform in selected:
        audit = PlatformAudit(platform=platform)
        for prompt in prompts:
            if not first and delay_seconds > 0:
                await sleep(delay_seconds)
            first = False

            payload = RequestPayload.from_prompt(f"{PLATFORM_PERSONAS[platform]}\n\nUser Query: {prompt}")
            try:
                response = await client.call(api_key, payload)
            except InvalidCredentialError:
                raise
            except CompletionError as err:
                audit.samples.append(
                    CitationSample(
                        prompt=prompt,
                        text=f"Error generating response: {err.message}",
                        analysis=CitationAnalysis(
                            citation_level=ERROR,
                            platform=platform,
                            why_not_cited="Generation Failed",
                            recommended_fix=f"Error: {err.message}",
                        ),
                        platform=platform,
                    )
                )
                continue

            analysis = await analyze_citation(client, api_key, response.content, brand, competitors, platform)
            audit.samples.append(
                CitationSample(
                    prompt=prompt,
                    text=response.content,
                    analysis=analysis,
                    platform=platform,
                    used_model=response.used_model,
                )
            )
        audits.append(audit)
    return audits
