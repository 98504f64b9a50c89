"""Monitoring prompt generation for a brand."""

from __future__ import annotations

from dataclasses import dataclass
import re

from ..config import BrandConfig


MAX_COMPARISON_COMPETITORS = 3


@dataclass(frozen=True)
class MonitorPrompt:
    id: str
    text: str
    category: str

    def to_dict(self) -> dict[str, str]:
        return {"id": self.id, "text": self.text, "category": self.category}


def categorize_prompt(text: str, brand_name: str) -> str:
    if re.search(r"\bvs\b", text):
        return "Comparison"
    if "Alternative" in text or "similar" in text:
        return "Discovery"
    if brand_name and brand_name in text:
        return "Direct Brand"
    return "Industry Leader"


def generate_prompts(config: BrandConfig) -> list[MonitorPrompt]:
    """Build the monitoring prompt set (roughly 11-12 prompts)."""
    brand = config.brand_name
    category = config.category
    texts = [
        # Industry / category leadership
        f"What are the best tools for {config.industry}?",
        f"Top {category} software solutions used by professionals.",
        f"Who are the key players in the {category} market?",
        # Direct brand queries
        f"What is {brand} used for?",
        f"Pros and cons of {brand}.",
    ]
    texts.extend(f"{brand} vs {comp}" for comp in config.competitors[:MAX_COMPARISON_COMPETITORS])
    texts.extend([
        # Alternatives & discovery
        f"Competitors to {brand}",
        f"Better options than {brand}",
        # Use-case specific
        f"Best {category} for small businesses.",
        f"Most scalable {category} platform.",
    ])

    return [
        MonitorPrompt(id=f"p-{idx}", text=text, category=categorize_prompt(text, brand))
        for idx, text in enumerate(texts)
    ]
