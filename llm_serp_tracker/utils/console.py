"""
Rich console utilities for dual-mode CLI output.

Human mode (--format text) renders Rich tables, panels and spinners.
Agent mode (--format json) buffers structured data and prints one JSON
document to stdout. Quiet mode (--quiet) prints tab-separated values.

Examples:
    >>> output_mode.format = "text"
    >>> with spinner("Crawling openai..."):
    ...     outcomes = asyncio.run(run_client_once(config, "acme-dental"))
    >>> print_run_outcomes(outcomes)

    >>> output_mode.format = "json"
    >>> success("Config valid")   # buffered
    >>> output_mode.flush_json()  # {"status": "success", ...}
"""

from __future__ import annotations

import json
import sys
from contextlib import contextmanager
from typing import TYPE_CHECKING, Any

from rich import box
from rich.console import Console
from rich.panel import Panel
from rich.table import Table

if TYPE_CHECKING:
    from llm_serp_tracker.runner import SurfaceRunOutcome
    from llm_serp_tracker.scoring.deltas import QueryRow
    from llm_serp_tracker.storage.run_detail import RunDetail

EMPTY = "—"


class OutputMode:
    """
    Output format shared by every CLI command.

    Attributes:
        format: "text" (human) or "json" (agent)
        quiet: Minimal tab-separated output in text mode
    """

    def __init__(self, format_type: str = "text", quiet: bool = False):
        if format_type not in ["text", "json"]:
            raise ValueError(f"Invalid format: {format_type}. Must be 'text' or 'json'")

        self.format = format_type
        self.quiet = quiet
        self._json_buffer: dict[str, Any] = {}

    def is_human(self) -> bool:
        return self.format == "text"

    def is_agent(self) -> bool:
        return self.format == "json"

    def add_json(self, key: str, value: Any) -> None:
        """Buffer a key for the JSON document printed by flush_json()."""
        self._json_buffer[key] = value

    def flush_json(self) -> None:
        """Print the buffered JSON document to stdout (agent mode only) and clear it."""
        if self.is_agent() and self._json_buffer:
            json.dump(self._json_buffer, sys.stdout, indent=2, default=str)
            sys.stdout.write("\n")
            sys.stdout.flush()
            self._json_buffer.clear()


# Global output mode instance (set by CLI flags)
output_mode = OutputMode()

console = Console()  # stdout
console_err = Console(stderr=True)  # stderr


@contextmanager
def spinner(message: str):
    """Show a spinner in human mode; silent otherwise."""
    if output_mode.is_human() and not output_mode.quiet:
        with console.status(f"[bold blue]{message}", spinner="dots") as status:
            yield status
    else:
        yield None


def success(message: str) -> None:
    if output_mode.is_human():
        if not output_mode.quiet:
            console.print(f"[green]✓[/green] {message}")
    elif output_mode.is_agent():
        output_mode.add_json("status", "success")
        output_mode.add_json("message", message)


def error(message: str) -> None:
    """Print an error to stderr (human) or buffer it (agent). Shown even when quiet."""
    if output_mode.is_human():
        console_err.print(f"[red]✗[/red] {message}", style="red")
    elif output_mode.is_agent():
        output_mode.add_json("status", "error")
        output_mode.add_json("error", message)


def warning(message: str) -> None:
    if output_mode.is_human():
        if not output_mode.quiet:
            console.print(f"[yellow]⚠[/yellow] {message}", style="yellow")
    elif output_mode.is_agent():
        output_mode.add_json("warning", message)


def info(message: str) -> None:
    if output_mode.is_human() and not output_mode.quiet:
        console.print(f"[blue]ℹ[/blue] {message}")


def print_banner(version: str) -> None:
    if not output_mode.is_human() or output_mode.quiet:
        return

    console.print(
        Panel(
            f"[bold cyan]LLM SERP Tracker[/bold cyan] v{version}\n"
            "Brand visibility in LLM answers",
            box=box.ROUNDED,
            border_style="cyan",
            expand=False,
        )
    )


# ============================================================================
# Formatting helpers
# ============================================================================


def format_optional(value: float | int | None, fmt: str = "{}") -> str:
    """
    Format a value, or an em dash for None.

    Example:
        >>> format_optional(None)
        '—'
        >>> format_optional(0.5, "{:.0%}")
        '50%'
    """
    if value is None:
        return EMPTY
    return fmt.format(value)


def format_delta(value: float | int | None, fmt: str = "{:+g}") -> str:
    """
    Colorize a signed delta: green for improvement, red for decline.

    Rank deltas are already sign-inverted, so positive always means better.
    """
    if value is None:
        return EMPTY
    text = fmt.format(value)
    if value > 0:
        return f"[green]{text}[/green]"
    if value < 0:
        return f"[red]{text}[/red]"
    return text


def query_row_to_dict(row: QueryRow) -> dict[str, Any]:
    deltas = row.deltas
    return {
        "query_id": row.query_id,
        "query_text": row.query_text,
        "query_type": row.query_type,
        "presence": row.presence,
        "llm_rank": row.llm_rank,
        "link_rank": row.link_rank,
        "sov": row.sov,
        "score": row.score,
        "breakdown": row.breakdown.to_dict() if row.breakdown else None,
        "flags": row.flags,
        "error": row.error,
        "deltas": (
            {
                "presence_delta": deltas.presence_delta,
                "llm_rank_delta": deltas.llm_rank_delta,
                "link_rank_delta": deltas.link_rank_delta,
                "sov_delta": deltas.sov_delta,
                "score_delta": deltas.score_delta,
            }
            if deltas
            else None
        ),
    }


def run_to_dict(run: dict) -> dict[str, Any]:
    """Public fields of a stored run record."""
    return {key: value for key, value in run.items() if not key.startswith("_")}


# ============================================================================
# Command output
# ============================================================================


def print_run_outcomes(outcomes: list[SurfaceRunOutcome]) -> None:
    """
    Print one row per crawled surface.

    Human mode: Rich table plus a result panel
    Agent mode: Flush buffered JSON including the outcomes
    Quiet mode: run_id, surface, overall, visibility, status (tab-separated)
    """
    if output_mode.is_agent():
        output_mode.add_json(
            "runs",
            [
                {
                    "run_id": o.run_id,
                    "client_id": o.client_id,
                    "surface": str(o.surface),
                    "model_name": o.model_name,
                    "overall_score": o.aggregate.overall_score,
                    "visibility_pct": o.aggregate.visibility_pct,
                    "total_queries": o.total_queries,
                    "connector_failures": o.connector_failures,
                    "parse_failures": o.parse_failures,
                    "status": o.status,
                }
                for o in outcomes
            ],
        )
        output_mode.flush_json()
        return

    if output_mode.quiet:
        for o in outcomes:
            print(
                f"{o.run_id}\t{o.surface}\t{o.aggregate.overall_score:.2f}\t"
                f"{o.aggregate.visibility_pct:.1f}\t{o.status}"
            )
        return

    table = Table(title="Crawl Results", box=box.ROUNDED, show_header=True)
    table.add_column("Surface", style="cyan")
    table.add_column("Model", style="magenta")
    table.add_column("Score", justify="right")
    table.add_column("Visibility", justify="right")
    table.add_column("Queries", justify="right")
    table.add_column("Failures", justify="right")
    table.add_column("Run ID", style="dim")

    for o in outcomes:
        failures = o.connector_failures + o.lost_queries
        table.add_row(
            str(o.surface),
            o.model_name,
            f"{o.aggregate.overall_score:.1f}",
            f"{o.aggregate.visibility_pct:.0f}%",
            str(o.total_queries),
            f"[red]{failures}[/red]" if failures else "0",
            o.run_id,
        )

    console.print(table)

    statuses = {o.status for o in outcomes}
    if statuses == {"success"}:
        console.print("[bold green]✓ All queries answered[/bold green]")
    elif statuses == {"failed"}:
        console.print("[bold red]✗ Every query fell back to the connector-error answer[/bold red]")
    else:
        console.print("[bold yellow]⚠ Some queries fell back to the connector-error answer[/bold yellow]")


def print_run_detail(detail: RunDetail) -> None:
    """Print a run's per-query rows with deltas against the previous run."""
    run = detail.run

    if output_mode.is_agent():
        output_mode.add_json("run", run_to_dict(run))
        output_mode.add_json(
            "previous_run_id", detail.previous_run["id"] if detail.previous_run else None
        )
        output_mode.add_json("queries", [query_row_to_dict(row) for row in detail.queries])
        output_mode.flush_json()
        return

    if output_mode.quiet:
        for row in detail.queries:
            delta = row.deltas.score_delta if row.deltas else None
            print(
                f"{row.query_id}\t{int(row.presence)}\t{format_optional(row.llm_rank)}\t"
                f"{format_optional(row.link_rank)}\t{format_optional(row.sov, '{:.3f}')}\t"
                f"{row.score:.2f}\t{format_optional(delta, '{:+.2f}')}"
            )
        return

    compared = (
        f"vs {detail.previous_run['started_at']}" if detail.previous_run else "first run"
    )
    console.print(
        Panel(
            f"[bold]Run:[/bold] {run['id']}\n"
            f"[bold]Client:[/bold] {run['client_id']}  "
            f"[bold]Surface:[/bold] {run['surface']} ({run['model_name']})\n"
            f"[bold]Started:[/bold] {run['started_at']}  ({compared})\n"
            f"[bold]Score:[/bold] {format_optional(run['overall_score'], '{:.1f}')}  "
            f"[bold]Visibility:[/bold] {format_optional(run['visibility_pct'], '{:.0f}%')}",
            box=box.ROUNDED,
            border_style="cyan",
        )
    )

    table = Table(box=box.SIMPLE_HEAVY, show_header=True)
    table.add_column("Query", style="cyan", max_width=48)
    table.add_column("Present", justify="center")
    table.add_column("LLM Rank", justify="right")
    table.add_column("Link Rank", justify="right")
    table.add_column("SOV", justify="right")
    table.add_column("Score", justify="right")
    table.add_column("Δ Score", justify="right")
    table.add_column("Δ Rank", justify="right")
    table.add_column("Flags", style="dim")

    for row in detail.queries:
        deltas = row.deltas
        table.add_row(
            row.query_text or row.query_id,
            "[green]✓[/green]" if row.presence else "[red]✗[/red]",
            format_optional(row.llm_rank),
            format_optional(row.link_rank),
            format_optional(row.sov, "{:.0%}"),
            f"{row.score:.1f}",
            format_delta(deltas.score_delta, "{:+.1f}") if deltas else EMPTY,
            format_delta(deltas.llm_rank_delta) if deltas else EMPTY,
            ", ".join(row.flags) or EMPTY,
        )

    console.print(table)


def print_history_table(client_id: str, runs: list[dict]) -> None:
    if output_mode.is_agent():
        output_mode.add_json("client_id", client_id)
        output_mode.add_json("runs", [run_to_dict(run) for run in runs])
        output_mode.flush_json()
        return

    if output_mode.quiet:
        for run in runs:
            print(
                f"{run['id']}\t{run['surface']}\t{run['started_at']}\t"
                f"{format_optional(run['overall_score'], '{:.2f}')}\t"
                f"{format_optional(run['visibility_pct'], '{:.1f}')}"
            )
        return

    table = Table(title=f"Run History: {client_id}", box=box.ROUNDED)
    table.add_column("Started", style="dim")
    table.add_column("Surface", style="cyan")
    table.add_column("Model", style="magenta")
    table.add_column("Score", justify="right")
    table.add_column("Visibility", justify="right")
    table.add_column("Answers", justify="right")
    table.add_column("Run ID", style="dim")

    for run in runs:
        table.add_row(
            run["started_at"],
            run["surface"],
            run["model_name"],
            format_optional(run["overall_score"], "{:.1f}"),
            format_optional(run["visibility_pct"], "{:.0f}%"),
            str(run["answer_count"]),
            run["id"],
        )

    console.print(table)


def print_scored_answer(answer: dict[str, Any], scored: dict[str, Any]) -> None:
    """Show the coerced answer and its score breakdown (offline `score` command)."""
    if output_mode.is_agent():
        output_mode.add_json("answer", answer)
        output_mode.add_json("scored", scored)
        output_mode.flush_json()
        return

    if output_mode.quiet:
        print(
            f"{scored['score']:.2f}\t{int(scored['presence'])}\t"
            f"{format_optional(scored['llm_rank'])}\t{format_optional(scored['link_rank'])}\t"
            f"{format_optional(scored['sov'], '{:.3f}')}"
        )
        return

    table = Table(title="Score Breakdown", box=box.ROUNDED)
    table.add_column("Component", style="cyan")
    table.add_column("Value", justify="right")
    for component, value in scored["breakdown"].items():
        table.add_row(component, f"{value:.1f}")
    table.add_row("[bold]score[/bold]", f"[bold]{scored['score']:.2f}[/bold]")

    console.print(
        f"Presence: {'yes' if scored['presence'] else 'no'}  "
        f"LLM rank: {format_optional(scored['llm_rank'])}  "
        f"Link rank: {format_optional(scored['link_rank'])}  "
        f"SOV: {format_optional(scored['sov'], '{:.0%}')}  "
        f"Flags: {', '.join(scored['flags']) or EMPTY}"
    )
    console.print(table)
