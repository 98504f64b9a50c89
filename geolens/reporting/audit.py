"""Console output for content optimization and audits."""

from __future__ import annotations

from rich.console import Console
from rich.markdown import Markdown
from rich.panel import Panel
from rich.table import Table
from rich import box

from ..audit.brand import BrandAuditResult
from ..audit.gap import GapAuditResult
from ..optimizer.content import OptimizationResult, Source


console = Console()

SCORE_LABELS = (
    ("ai_accuracy", "AI Accuracy"),
    ("content_context_clarity", "Context Clarity"),
    ("content_completeness", "Completeness"),
    ("geo_readiness", "GEO Readiness"),
)


def _score_style(score: int) -> str:
    if score >= 70:
        return "green"
    elif score >= 40:
        return "yellow"
    else:
        return "red"


def _print_sources(sources: list[Source]) -> None:
    if not sources:
        return
    console.print("[bold]Sources[/bold]")
    for s in sources:
        console.print(f"  [cyan]{s.title or s.uri}[/cyan]  [dim]{s.uri}[/dim]")


def print_optimization(result: OptimizationResult) -> None:
    questions = result.questions
    console.print(Panel(Markdown(questions.text), title=f"[bold cyan]Questions: {questions.topic}[/bold cyan]"))
    _print_sources(questions.sources)
    if result.content is not None:
        console.print(Panel(Markdown(result.content), title="[bold green]Optimized Content[/bold green]"))
    note = f"model: {questions.used_model}"
    if questions.tools_stripped:
        note += " (grounding disabled after fallback)"
    console.print(f"  [dim]{note}[/dim]")


def print_brand_audit(result: BrandAuditResult) -> None:
    table = Table(title="GEO Brand Audit", box=box.ROUNDED, header_style="bold magenta")
    table.add_column("Metric")
    table.add_column("Score", justify="right")
    for attr, label in SCORE_LABELS:
        score = getattr(result.scores, attr)
        style = _score_style(score)
        table.add_row(label, f"[{style}]{score}[/{style}] / 100")
    console.print(table)
    if result.brand_analysis:
        console.print(Panel(Markdown(result.brand_analysis), border_style="cyan"))
    if result.content_analysis:
        console.print(Panel(Markdown(result.content_analysis), border_style="green"))


def print_gap_audit(result: GapAuditResult) -> None:
    console.print(Panel(Markdown(result.public_description), title="[bold cyan]Public Description[/bold cyan]"))
    if not result.grounded:
        console.print("  [yellow]Answered without live search results.[/yellow]")
    _print_sources(result.sources)
    console.print("[bold]Missing key points[/bold]")
    for point in result.missing_key_points or ["None"]:
        console.print(f"  • {point}")
    if result.optimized_snippet:
        console.print(Panel(result.optimized_snippet, title="[bold green]Optimized Snippet[/bold green]"))
