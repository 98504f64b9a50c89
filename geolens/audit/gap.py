"""Two-stage gap audit: grounded research on a product, then missing-feature analysis."""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any

from ..models.adapter import RequestPayload
from ..models.json_output import extract_json_object
from ..models.resilient import ResilientCompletionClient
from ..optimizer.content import Source, grounding_sources
from .brand import AuditResponseError


@dataclass
class GapAuditResult:
    public_description: str
    missing_key_points: list[str] = field(default_factory=list)
    optimized_snippet: str = ""
    sources: list[Source] = field(default_factory=list)
    grounded: bool = True

    def to_dict(self) -> dict[str, Any]:
        return {
            "publicDescription": self.public_description,
            "missingKeyPoints": self.missing_key_points,
            "optimizedSnippet": self.optimized_snippet,
            "sources": [s.to_dict() for s in self.sources],
            "grounded": self.grounded,
        }


def _analysis_prompt(public_description: str, key_features: str) -> str:
    return f"""You are a GEO (Generative Engine Optimization) Content Strategist.
1. Analyze the following "Public Description" found online.
2. Compare it against the "Client Key Features" provided below.
3. Identify which Client Key Features are MISSING or under-represented in the Public Description.
4. Write a single, high-impact optimized snippet (1 paragraph) that weaves these missing points
   into the existing narrative to bridge the gap.

Return ONLY a valid JSON object with this schema:
{{
  "missingKeyPoints": ["string", "string"],
  "optimizedSnippet": "string"
}}

Public Description:
"{public_description}"

Client Key Features:
"{key_features}"
"""


async def run_gap_audit(
    client: ResilientCompletionClient,
    api_key: str,
    product_name: str,
    key_features: str,
) -> GapAuditResult:
    """Compare what the web says about a product with the features its owner wants known."""
    if not product_name.strip() or not key_features.strip():
        raise ValueError("Both a product name and key features are required.")

    research = await client.call(
        api_key,
        RequestPayload.from_prompt(
            f'Find the current public description and key selling points of "{product_name.strip()}". '
            "Include recent features if relevant.",
            grounding=True,
        ),
    )

    analysis = await client.call(
        api_key,
        RequestPayload.from_prompt(_analysis_prompt(research.content, key_features.strip()), json_output=True),
    )
    parsed = extract_json_object(analysis.content)
    if parsed is None:
        raise AuditResponseError(f"Gap analysis reply from {analysis.used_model} was not a JSON object.")

    missing = parsed.get("missingKeyPoints") or []
    if not isinstance(missing, list):
        missing = [missing]
    return GapAuditResult(
        public_description=research.content,
        missing_key_points=[str(m) for m in missing if str(m).strip()],
        optimized_snippet=str(parsed.get("optimizedSnippet") or ""),
        sources=grounding_sources(research.grounding),
        grounded=not research.tools_stripped,
    )
