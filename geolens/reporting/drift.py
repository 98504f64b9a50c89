"""Drift report rendering: markdown export and Rich console output."""

from __future__ import annotations

from collections import Counter
from pathlib import Path

from rich.console import Console
from rich.table import Table
from rich import box

from ..monitor.drift import DriftEntry


console = Console()

STATUS_STYLE = {"LOST": "red", "GAINED": "green", "SHIFTED": "yellow", "STABLE": "dim"}


def summarize_drift(entries: list[DriftEntry]) -> dict[str, int]:
    counts = Counter(e.status for e in entries)
    return {status: counts.get(status, 0) for status in ("LOST", "GAINED", "SHIFTED", "STABLE")}


def build_drift_markdown(
    entries: list[DriftEntry],
    *,
    title: str = "GeoLens Drift Report",
    brand_name: str | None = None,
) -> str:
    """Build a markdown report from compared runs."""
    lines: list[str] = []
    lines.append(f"# {title}")
    lines.append("")
    if brand_name:
        lines.append(f"Brand: `{brand_name}`")
        lines.append("")

    if not entries:
        lines.append("No prompts to compare.")
        return "\n".join(lines).rstrip() + "\n"

    summary = summarize_drift(entries)
    lines.append(
        f"Lost: **{summary['LOST']}** · Gained: **{summary['GAINED']}** · "
        f"Shifted: **{summary['SHIFTED']}** · Stable: **{summary['STABLE']}**"
    )
    lines.append("")
    lines.append("| Prompt | Status | Change | Δ Prominence |")
    lines.append("|---|---|---|---:|")
    for e in entries:
        prompt = e.prompt.replace("|", "\\|")
        lines.append(f"| {prompt} | {e.status} | {e.change_description} | {e.score_delta:+.1f} |")
    lines.append("")
    return "\n".join(lines).rstrip() + "\n"


def save_drift_markdown(entries: list[DriftEntry], path: str | Path, *, brand_name: str | None = None) -> Path:
    out = Path(path)
    out.parent.mkdir(parents=True, exist_ok=True)
    out.write_text(build_drift_markdown(entries, brand_name=brand_name), encoding="utf-8")
    return out


def print_drift_table(entries: list[DriftEntry]) -> None:
    """Print a rich console drift table."""
    table = Table(
        title="Prompt Drift",
        box=box.ROUNDED,
        show_header=True,
        header_style="bold magenta",
    )
    table.add_column("Prompt", style="white")
    table.add_column("Status", justify="center")
    table.add_column("Change")
    table.add_column("Δ", justify="right")

    for e in entries:
        style = STATUS_STYLE.get(e.status, "white")
        table.add_row(e.prompt[:70], f"[{style}]{e.status}[/{style}]", e.change_description, f"{e.score_delta:+.1f}")

    console.print(table)
    summary = summarize_drift(entries)
    console.print(
        f"  [red]Lost {summary['LOST']}[/red]  •  [green]Gained {summary['GAINED']}[/green]  •  "
        f"[yellow]Shifted {summary['SHIFTED']}[/yellow]  •  [dim]Stable {summary['STABLE']}[/dim]"
    )
