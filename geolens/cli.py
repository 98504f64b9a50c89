"""GeoLens command line interface."""

from __future__ import annotations
import asyncio
import json
import logging
import sys
from pathlib import Path

import click
from dotenv import load_dotenv
from rich.console import Console
from rich.logging import RichHandler
from rich.table import Table
from rich import box

from .audit.brand import AuditResponseError, BrandAuditInput, run_brand_audit
from .audit.gap import run_gap_audit
from .config import BrandConfig, load_backend_config, load_brand_config, load_search_config
from .citation.engine import PLATFORM_PERSONAS, run_citation_audit
from .models.adapter import RequestPayload
from .models.errors import CompletionError
from .models.litellm_adapter import LiteLLMBackend
from .models.resilient import ResilientCompletionClient
from .monitor.drift import DriftRun, analyze_mentions, compare_runs, load_run, run_prompts, save_run
from .monitor.prompts import generate_prompts
from .optimizer.content import GROUNDED, MODES, RESEARCH, optimize_content
from .reporting.audit import print_brand_audit, print_gap_audit, print_optimization
from .reporting.citation import print_citation_audit
from .reporting.drift import print_drift_table, save_drift_markdown
from .search.tavily import SearchError, TavilySearchClient

console = Console()


@click.group()
@click.option("--verbose", "-v", is_flag=True, default=False, help="Log retries and model switches.")
def cli(verbose: bool):
    """🔭 GeoLens — AI Visibility Monitoring"""
    load_dotenv()
    logging.basicConfig(
        level=logging.INFO if verbose else logging.ERROR,
        format="%(message)s",
        handlers=[RichHandler(console=Console(stderr=True), show_path=False)],
        force=True,
    )


def _build_client() -> ResilientCompletionClient:
    cfg = load_backend_config()
    backend = LiteLLMBackend(provider=cfg.provider, api_base=cfg.api_base, timeout_s=cfg.timeout_s)
    return ResilientCompletionClient(backend=backend)


def _resolve_api_key(api_key: str | None) -> str:
    resolved = api_key or load_backend_config().api_key
    if not resolved:
        console.print("[red]✗ No API key found. Set GEMINI_API_KEY in .env or pass --api-key.[/red]")
        sys.exit(1)
    return resolved


def _load_brand(config_path: str) -> BrandConfig:
    try:
        return load_brand_config(config_path)
    except ValueError as err:
        console.print(f"[red]✗ {err}[/red]")
        sys.exit(1)


def _fail(err: CompletionError) -> None:
    console.print(f"[red]✗ {err.kind.value}: {err.message}[/red]")
    sys.exit(1)


def _progress(label: str):
    def report(done: int, total: int) -> None:
        console.print(f"  [dim]{label} {done}/{total}[/dim]")
    return report


@cli.command()
@click.argument("prompt")
@click.option("--system", "system_instruction", default=None, help="Optional system instruction.")
@click.option("--grounding/--no-grounding", default=False, show_default=True, help="Enable web-search grounding.")
@click.option("--json-output/--text-output", default=False, show_default=True, help="Ask for a JSON reply.")
@click.option(
    "--timeout",
    default=None,
    type=click.FloatRange(min=0, min_open=True),
    help="Hard deadline in seconds for the whole call chain.",
)
@click.option("--api-key", default=None, help="API key (overrides .env)")
def ask(prompt: str, system_instruction: str | None, grounding: bool, json_output: bool, timeout: float | None, api_key: str | None):
    """Ask one prompt through the resilient client."""
    key = _resolve_api_key(api_key)
    client = _build_client()
    payload = RequestPayload.from_prompt(
        prompt,
        system_instruction=system_instruction,
        json_output=json_output,
        grounding=grounding,
    )

    async def _run():
        call = client.call(key, payload)
        if timeout is not None:
            return await asyncio.wait_for(call, timeout=timeout)
        return await call

    try:
        result = asyncio.run(_run())
    except CompletionError as err:
        _fail(err)
    except asyncio.TimeoutError:
        console.print(f"[red]✗ Timed out after {timeout:.1f}s[/red]")
        sys.exit(1)

    console.print(result.content)
    note = f"model: {result.used_model}"
    if result.tools_stripped:
        note += " (grounding disabled after fallback)"
    console.print(f"\n  [dim]{note}[/dim]")


@cli.command()
@click.argument("query")
@click.option("--max-results", default=5, type=int, show_default=True)
def search(query: str, max_results: int):
    """Run a Tavily web search."""
    client = TavilySearchClient(load_search_config().api_key)
    try:
        response = asyncio.run(client.search(query, max_results=max_results))
    except SearchError as err:
        console.print(f"[red]✗ {err}[/red]")
        sys.exit(1)

    if response.answer:
        console.print(f"[bold]{response.answer}[/bold]\n")
    for r in response.results:
        console.print(f"[cyan]{r.title}[/cyan]  [dim]{r.url}[/dim]")
        console.print(f"  {r.content[:200]}")


@cli.command("prompts")
@click.argument("config_path", type=click.Path(exists=True, dir_okay=False))
def prompts_command(config_path: str):
    """List the monitoring prompts generated for a brand config."""
    brand = _load_brand(config_path)
    table = Table(title=f"Prompts — {brand.brand_name}", box=box.ROUNDED, header_style="bold magenta")
    table.add_column("ID", style="dim")
    table.add_column("Category", style="cyan")
    table.add_column("Prompt")
    for p in generate_prompts(brand):
        table.add_row(p.id, p.category, p.text)
    console.print(table)


@cli.command("drift-run")
@click.argument("config_path", type=click.Path(exists=True, dir_okay=False))
@click.option("--output-dir", default="reports/drift", show_default=True, help="Directory for run JSON files.")
@click.option("--delay", default=3.5, type=float, show_default=True, help="Seconds between prompts.")
@click.option("--api-key", default=None, help="API key (overrides .env)")
def drift_run(config_path: str, output_dir: str, delay: float, api_key: str | None):
    """Run the monitoring prompts, analyze mentions and save the run."""
    brand = _load_brand(config_path)
    key = _resolve_api_key(api_key)
    client = _build_client()
    prompts = generate_prompts(brand)

    async def _run():
        results = await run_prompts(client, key, prompts, delay_seconds=delay, on_progress=_progress("Prompt"))
        return await analyze_mentions(
            client, key, results, brand.brand_name, brand.competitors, on_progress=_progress("Analyzed")
        )

    try:
        results = asyncio.run(_run())
    except CompletionError as err:
        _fail(err)

    run = DriftRun.new(brand.brand_name, results)
    path = save_run(run, output_dir)

    mentioned = sum(1 for r in results if r.analysis and r.analysis.mentioned)
    errors = sum(1 for r in results if r.analysis and r.analysis.error)
    console.print(f"[green]✓[/green] {run.run_id}: mentioned in {mentioned}/{len(results)} answers")
    if errors:
        console.print(f"  [yellow]{errors} prompt(s) could not be analyzed[/yellow]")
    console.print(f"  [dim]Saved {path}[/dim]")


@cli.command("drift-compare")
@click.argument("baseline_path", type=click.Path(exists=True, dir_okay=False))
@click.argument("comparison_path", type=click.Path(exists=True, dir_okay=False))
@click.option("--markdown-out", default=None, type=click.Path(dir_okay=False), help="Write a markdown report.")
@click.option("--json-out", default=None, type=click.Path(dir_okay=False), help="Write drift entries as JSON.")
def drift_compare(baseline_path: str, comparison_path: str, markdown_out: str | None, json_out: str | None):
    """Compare two saved drift runs."""
    try:
        baseline = load_run(baseline_path)
        comparison = load_run(comparison_path)
    except (ValueError, json.JSONDecodeError) as err:
        console.print(f"[red]✗ {err}[/red]")
        sys.exit(1)

    entries = compare_runs(baseline.results, comparison.results)
    print_drift_table(entries)

    if markdown_out:
        path = save_drift_markdown(entries, markdown_out, brand_name=baseline.brand_name)
        console.print(f"  [dim]Markdown: {path}[/dim]")
    if json_out:
        Path(json_out).write_text(json.dumps([e.to_dict() for e in entries], indent=2), encoding="utf-8")
        console.print(f"  [dim]JSON: {json_out}[/dim]")


@cli.command()
@click.argument("config_path", type=click.Path(exists=True, dir_okay=False))
@click.option(
    "--platform",
    "platforms",
    multiple=True,
    type=click.Choice(sorted(PLATFORM_PERSONAS)),
    help="Platform persona(s) to audit (default: all).",
)
@click.option("--delay", default=1.0, type=float, show_default=True, help="Seconds between prompts.")
@click.option("--api-key", default=None, help="API key (overrides .env)")
def citation(config_path: str, platforms: tuple[str, ...], delay: float, api_key: str | None):
    """Audit how strongly AI answers cite the brand."""
    brand = _load_brand(config_path)
    key = _resolve_api_key(api_key)
    client = _build_client()

    try:
        audits = asyncio.run(
            run_citation_audit(
                client,
                key,
                brand.brand_name,
                brand.industry,
                ", ".join(brand.competitors),
                platforms=list(platforms) or None,
                delay_seconds=delay,
            )
        )
    except CompletionError as err:
        _fail(err)

    print_citation_audit(brand.brand_name, audits)


def _write_json(path: str | None, payload: dict) -> None:
    if path:
        Path(path).write_text(json.dumps(payload, indent=2, ensure_ascii=False), encoding="utf-8")
        console.print(f"  [dim]JSON: {path}[/dim]")


@cli.command()
@click.argument("topic")
@click.option("--mode", type=click.Choice(MODES), default=GROUNDED, show_default=True,
              help="research: Tavily results as context; grounded: model-side search.")
@click.option("--questions-only", is_flag=True, default=False, help="Skip the content generation step.")
@click.option("--json-out", default=None, type=click.Path(dir_okay=False), help="Write the result as JSON.")
@click.option("--api-key", default=None, help="API key (overrides .env)")
def optimize(topic: str, mode: str, questions_only: bool, json_out: str | None, api_key: str | None):
    """Find what people ask about TOPIC and write citation-ready content."""
    key = _resolve_api_key(api_key)
    client = _build_client()
    search_client = TavilySearchClient(load_search_config().api_key) if mode == RESEARCH else None

    try:
        result = asyncio.run(
            optimize_content(client, key, topic, mode=mode, search_client=search_client, generate=not questions_only)
        )
    except CompletionError as err:
        _fail(err)
    except (SearchError, ValueError) as err:
        console.print(f"[red]✗ {err}[/red]")
        sys.exit(1)

    print_optimization(result)
    _write_json(json_out, result.to_dict())


@cli.command("brand-audit")
@click.option("--brand", "brand_name", default="", help="Brand name.")
@click.option("--url", "website_url", default="", help="Website to read when no content file is given.")
@click.option("--content-file", default=None, type=click.Path(exists=True, dir_okay=False),
              help="Website content (text or markdown).")
@click.option("--geo-file", default=None, type=click.Path(exists=True, dir_okay=False),
              help="FAQ / help page content.")
@click.option("--competitors", default="", help="Comma-separated competitors.")
@click.option("--json-out", default=None, type=click.Path(dir_okay=False), help="Write the result as JSON.")
@click.option("--api-key", default=None, help="API key (overrides .env)")
def brand_audit(
    brand_name: str,
    website_url: str,
    content_file: str | None,
    geo_file: str | None,
    competitors: str,
    json_out: str | None,
    api_key: str | None,
):
    """Audit how AI answers represent a brand and how GEO-ready its content is."""
    audit_input = BrandAuditInput(
        brand_name=brand_name,
        website_url=website_url,
        website_content=Path(content_file).read_text(encoding="utf-8") if content_file else "",
        geo_content=Path(geo_file).read_text(encoding="utf-8") if geo_file else "",
        competitors=competitors,
    )
    if audit_input.is_empty():
        console.print("[red]✗ Provide --brand, --url or --content-file.[/red]")
        sys.exit(1)
    key = _resolve_api_key(api_key)
    client = _build_client()

    try:
        result = asyncio.run(run_brand_audit(client, key, audit_input))
    except CompletionError as err:
        _fail(err)
    except AuditResponseError as err:
        console.print(f"[red]✗ {err}[/red]")
        sys.exit(1)

    if website_url and not audit_input.website_content and result.extracted_content is None:
        console.print("  [yellow]Could not read the website; audited without its content.[/yellow]")
    print_brand_audit(result)
    _write_json(json_out, result.to_dict())


@cli.command("gap-audit")
@click.argument("product_name")
@click.option("--features", required=True, help="Key features the public description should cover.")
@click.option("--json-out", default=None, type=click.Path(dir_okay=False), help="Write the result as JSON.")
@click.option("--api-key", default=None, help="API key (overrides .env)")
def gap_audit(product_name: str, features: str, json_out: str | None, api_key: str | None):
    """Compare a product's public description with its key features."""
    key = _resolve_api_key(api_key)
    client = _build_client()

    try:
        result = asyncio.run(run_gap_audit(client, key, product_name, features))
    except CompletionError as err:
        _fail(err)
    except ValueError as err:
        console.print(f"[red]✗ {err}[/red]")
        sys.exit(1)

    print_gap_audit(result)
    _write_json(json_out, result.to_dict())


if __name__ == "__main__":
    cli()
