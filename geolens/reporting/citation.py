"""Citation audit console output."""

from __future__ import annotations

from rich.console import Console
from rich.panel import Panel
from rich.table import Table
from rich import box

from ..citation.engine import PlatformAudit


console = Console()


def _score_style(score: int) -> str:
    if score >= 70:
        return "green"
    elif score >= 40:
        return "yellow"
    else:
        return "red"


def print_citation_audit(brand: str, audits: list[PlatformAudit]) -> None:
    """Print per-platform authority scores and sample classifications."""
    lines = [f"[bold]{brand}[/bold]"]
    for audit in audits:
        score = audit.authority_score
        style = _score_style(score)
        lines.append(f"{audit.platform}: [{style}]{score}[/{style}] / 100")

    console.print()
    console.print(Panel(
        "\n".join(lines),
        title="[bold cyan]Citation Authority[/bold cyan]",
        border_style="cyan",
        padding=(1, 2),
    ))

    for audit in audits:
        table = Table(
            title=audit.platform,
            box=box.ROUNDED,
            show_header=True,
            header_style="bold magenta",
        )
        table.add_column("Prompt", style="white")
        table.add_column("Level", justify="center")
        table.add_column("Trust", justify="center")
        table.add_column("Model", style="dim")
        table.add_column("Fix")
        for sample in audit.samples:
            analysis = sample.analysis
            table.add_row(
                sample.prompt[:60],
                analysis.citation_level,
                f"{analysis.confidence_score:.0f}",
                sample.used_model or "-",
                (analysis.recommended_fix or "")[:60],
            )
        console.print(table)
