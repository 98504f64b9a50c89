"""Prompt drift monitoring: run a prompt set, analyze mentions, compare runs."""

from __future__ import annotations

import asyncio
from dataclasses import dataclass, field
from datetime import datetime, timezone
import json
from pathlib import Path
import time
from typing import Any, Awaitable, Callable
import uuid

from ..models.resilient import ResilientCompletionClient
from .analyzer import MentionAnalysis, analyze_response, fetch_response
from .prompts import MonitorPrompt


PROMPT_DELAY_SECONDS = 3.5
SHIFT_THRESHOLD = 2.0

ProgressCallback = Callable[[int, int], None]
SleepFunc = Callable[[float], Awaitable[None]]


@dataclass
class PromptResult:
    """One prompt's answer within a monitoring run."""
    id: str
    text: str
    response: str
    category: str = ""
    timestamp: float = field(default_factory=time.time)
    analysis: MentionAnalysis | None = None

    def to_dict(self) -> dict[str, Any]:
        return {
            "id": self.id,
            "text": self.text,
            "category": self.category,
            "response": self.response,
            "timestamp": self.timestamp,
            "analysis": self.analysis.to_dict() if self.analysis else None,
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "PromptResult":
        analysis = data.get("analysis")
        return cls(
            id=str(data.get("id", "")),
            text=str(data.get("text", "")),
            response=str(data.get("response", "")),
            category=str(data.get("category", "")),
            timestamp=float(data.get("timestamp") or 0.0),
            analysis=MentionAnalysis.from_dict(analysis) if isinstance(analysis, dict) else None,
        )


@dataclass
class DriftRun:
    """A saved monitoring run for one brand."""
    run_id: str
    brand_name: str
    created_at: str
    results: list[PromptResult] = field(default_factory=list)

    @classmethod
    def new(cls, brand_name: str, results: list[PromptResult]) -> "DriftRun":
        return cls(
            run_id=f"drift_{uuid.uuid4().hex[:12]}",
            brand_name=brand_name,
            created_at=datetime.now(timezone.utc).isoformat(),
            results=results,
        )

    def to_dict(self) -> dict[str, Any]:
        return {
            "run_id": self.run_id,
            "brand_name": self.brand_name,
            "created_at": self.created_at,
            "results": [r.to_dict() for r in self.results],
        }


@dataclass
class DriftEntry:
    """Drift classification for one prompt between two runs."""
    id: str
    prompt: str
    status: str
    change_description: str
    color: str
    score_delta: float
    baseline: MentionAnalysis | None = None
    comparison: MentionAnalysis | None = None

    def to_dict(self) -> dict[str, Any]:
        return {
            "id": self.id,
            "prompt": self.prompt,
            "baseline": self.baseline.to_dict() if self.baseline else None,
            "comparison": self.comparison.to_dict() if self.comparison else None,
            "drift": {
                "status": self.status,
                "change_description": self.change_description,
                "color": self.color,
                "score_delta": self.score_delta,
            },
        }


async def run_prompts(
    client: ResilientCompletionClient,
    api_key: str,
    prompts: list[MonitorPrompt],
    *,
    delay_seconds: float = PROMPT_DELAY_SECONDS,
    on_progress: ProgressCallback | None = None,
    sleep: SleepFunc = asyncio.sleep,
) -> list[PromptResult]:
    """Ask each prompt in order, pausing `delay_seconds` between prompts."""
    results: list[PromptResult] = []
    for idx, prompt in enumerate(prompts):
        if idx > 0 and delay_seconds > 0:
            await sleep(delay_seconds)
        response = await fetch_response(client, api_key, prompt.text)
        results.append(PromptResult(id=prompt.id, text=prompt.text, response=response, category=prompt.category))
        if on_progress:
            on_progress(idx + 1, len(prompts))
    return results


async def analyze_mentions(
    client: ResilientCompletionClient,
    api_key: str,
    results: list[PromptResult],
    brand_name: str,
    competitors: list[str],
    *,
    on_progress: ProgressCallback | None = None,
) -> list[PromptResult]:
    """Attach a `MentionAnalysis` to every result (in place) and return them."""
    for idx, item in enumerate(results):
        item.analysis = await analyze_response(client, api_key, item.response, brand_name, competitors)
        if on_progress:
            on_progress(idx + 1, len(results))
    return results


def _classify(base: MentionAnalysis | None, comp: MentionAnalysis | None) -> tuple[str, str, str, float]:
    base_mentioned = base.mentioned if base else False
    comp_mentioned = comp.mentioned if comp else False
    base_score = base.prominence_score if base else 0.0
    comp_score = comp.prominence_score if comp else 0.0
    base_sentiment = base.sentiment if base else "neutral"
    comp_sentiment = comp.sentiment if comp else "neutral"
    delta = comp_score - base_score

    if base_mentioned and not comp_mentioned:
        return "LOST", "Brand disappeared from results", "red", delta
    if not base_mentioned and comp_mentioned:
        return "GAINED", "Brand appeared in results", "green", delta
    if abs(delta) >= SHIFT_THRESHOLD:
        if base_score > comp_score:
            return "SHIFTED", "Visibility dropped", "orange", delta
        return "SHIFTED", "Visibility improved", "green", delta
    if base_sentiment != comp_sentiment:
        return "SHIFTED", f"Sentiment changed: {base_sentiment} → {comp_sentiment}", "orange", delta
    return "STABLE", "No significant change", "gray", delta


def compare_runs(baseline: list[PromptResult], comparison: list[PromptResult]) -> list[DriftEntry]:
    """Pair prompts by id (falling back to position) and classify the drift."""
    by_id = {item.id: item for item in comparison}
    entries: list[DriftEntry] = []
    for idx, base_item in enumerate(baseline):
        comp_item = by_id.get(base_item.id)
        if comp_item is None and idx < len(comparison):
            comp_item = comparison[idx]
        comp_analysis = comp_item.analysis if comp_item else None
        status, description, color, delta = _classify(base_item.analysis, comp_analysis)
        entries.append(
            DriftEntry(
                id=base_item.id,
                prompt=base_item.text,
                status=status,
                change_description=description,
                color=color,
                score_delta=delta,
                baseline=base_item.analysis,
                comparison=comp_analysis,
            )
        )
    return entries


def save_run(run: DriftRun, output_dir: str | Path = "reports/drift") -> Path:
    """Save a JSON run file and return its path."""
    output_dir = Path(output_dir)
    output_dir.mkdir(parents=True, exist_ok=True)
    run_path = output_dir / f"{run.run_id}.json"
    run_path.write_text(json.dumps(run.to_dict(), indent=2, ensure_ascii=False), encoding="utf-8")
    return run_path


def load_run(path: str | Path) -> DriftRun:
    data = json.loads(Path(path).read_text(encoding="utf-8"))
    if not isinstance(data, dict):
        raise ValueError(f"{path}: not a drift run file")
    return DriftRun(
        run_id=str(data.get("run_id", "")),
        brand_name=str(data.get("brand_name", "")),
        created_at=str(data.get("created_at", "")),
        results=[PromptResult.from_dict(r) for r in data.get("results") or [] if isinstance(r, dict)],
    )
