"""
CLI entrypoint for LLM SERP Tracker.

Dual-mode command-line interface:
- Human-friendly output: Rich spinners, tables and panels
- Agent-friendly output: one JSON document on stdout (--format json)
- Quiet mode: tab-separated values for shell scripts (--quiet)

Commands:
    run: Crawl client query panels on the configured surfaces
    validate: Validate configuration without running queries
    history: List stored runs for a client
    show-run: Show a run's per-query results with deltas vs the previous run
    score: Score a saved surface answer offline

Exit codes:
    0: Success
    1: Configuration error (invalid YAML, missing API keys, unknown client)
    2: Database error (cannot create/access SQLite)
    3: Partial failure (some queries fell back to the connector-error answer)
    4: Complete failure (every query fell back)

Examples:
    llm-serp-tracker run --config tracker.config.yaml
    llm-serp-tracker run -c tracker.config.yaml --client acme-dental --surface openai
    llm-serp-tracker show-run --db output/tracker.db --client acme-dental --surface claude
    llm-serp-tracker score --answer answer.json --brand "Acme Dental" -d acmedental.com

Security:
    - API keys are loaded from environment variables only
    - Errors may contain file paths but never API keys
"""

import asyncio
import sqlite3
from pathlib import Path
from typing import NoReturn

import typer
from rich.traceback import install as install_rich_traceback

from llm_serp_tracker.config.loader import load_config
from llm_serp_tracker.config.schema import Surface
from llm_serp_tracker.exceptions import (
    APIKeyMissingError,
    ClientNotFoundError,
    ConfigFileNotFoundError,
    ConfigValidationError,
    DatabaseError,
    NoQueriesConfiguredError,
)
from llm_serp_tracker.runner import run_client_once
from llm_serp_tracker.scoring.evaluator import EvaluationContext
from llm_serp_tracker.scoring.pipeline import score_connector_output
from llm_serp_tracker.storage.db import connect, init_db_if_needed, list_runs
from llm_serp_tracker.storage.run_detail import (
    get_latest_run_detail_with_diff,
    get_run_detail_with_diff,
)
from llm_serp_tracker.utils.console import (
    error,
    info,
    output_mode,
    print_banner,
    print_history_table,
    print_run_detail,
    print_run_outcomes,
    print_scored_answer,
    spinner,
    success,
    warning,
)
from llm_serp_tracker.utils.logging import setup_logging

install_rich_traceback(show_locals=False)

# Exit codes
EXIT_SUCCESS = 0
EXIT_CONFIG_ERROR = 1
EXIT_DB_ERROR = 2
EXIT_PARTIAL_FAILURE = 3
EXIT_COMPLETE_FAILURE = 4

app = typer.Typer(
    name="llm-serp-tracker",
    help="Track how LLM answer surfaces rank and cite your brand",
    add_completion=False,
)

FORMAT_HELP = "Output format: 'text' (human-friendly) or 'json' (machine-readable)"


def _fail(message: str, exit_code: int) -> NoReturn:
    """Report an error (flushing it in agent mode) and exit."""
    error(message)
    output_mode.flush_json()
    raise typer.Exit(exit_code)


def _configure_output(format: str, quiet: bool = False, verbose: bool = False) -> None:
    """Apply output flags and logging, exiting on an unknown format."""
    if format not in ("text", "json"):
        # Report in text mode; the requested format is unusable
        output_mode.format = "text"
        _fail(f"Invalid format: {format}. Must be 'text' or 'json'", EXIT_CONFIG_ERROR)

    output_mode.format = format
    output_mode.quiet = quiet

    # JSON logs on stderr would drown the human-mode tables
    setup_logging(verbose=verbose, quiet_logs=output_mode.is_human() and not verbose)


def _parse_surfaces(values: list[str] | None) -> list[Surface] | None:
    if not values:
        return None

    surfaces: list[Surface] = []
    for value in values:
        try:
            surface = Surface(value.lower())
        except ValueError:
            _fail(
                f"Unknown surface: {value}. "
                f"Choose from: {', '.join(s.value for s in Surface)}",
                EXIT_CONFIG_ERROR,
            )
        if surface not in surfaces:
            surfaces.append(surface)
    return surfaces


def _exit_code_for(statuses: list[str]) -> int:
    if all(status == "success" for status in statuses):
        return EXIT_SUCCESS
    if all(status == "failed" for status in statuses):
        return EXIT_COMPLETE_FAILURE
    return EXIT_PARTIAL_FAILURE


@app.command()
def run(
    config: Path = typer.Option(
        ...,
        "--config",
        "-c",
        help="Path to YAML configuration file",
        exists=True,
        file_okay=True,
        dir_okay=False,
    ),
    client: list[str] = typer.Option(
        None,
        "--client",
        help="Client id to crawl (repeatable). Default: every client in the config",
    ),
    surface: list[str] = typer.Option(
        None,
        "--surface",
        "-s",
        help="Surface to crawl: openai or claude (repeatable). Default: all configured",
    ),
    limit: int = typer.Option(
        None,
        "--limit",
        "-n",
        min=1,
        help="Only run the first N queries of each client",
    ),
    format: str = typer.Option("text", "--format", "-f", help=FORMAT_HELP),
    quiet: bool = typer.Option(
        False, "--quiet", "-q", help="Minimal output (tab-separated values)"
    ),
    verbose: bool = typer.Option(False, "--verbose", "-v", help="Enable debug logging"),
):
    """
    Crawl query panels and store scored answers.

    For each client and surface this sends every tracked query, coerces and
    scores the answer, stores it in SQLite, and records the run's overall
    score and visibility.

    Exit codes:
      0: All queries answered
      1: Configuration error
      2: Database error
      3: Some queries fell back to the connector-error answer
      4: Every query fell back
    """
    _configure_output(format, quiet, verbose)
    print_banner(_read_version())

    surfaces = _parse_surfaces(surface)

    try:
        with spinner("Loading configuration..."):
            runtime_config = load_config(config, surfaces)
    except ConfigFileNotFoundError as e:
        _fail(f"Configuration file not found: {e}", EXIT_CONFIG_ERROR)
    except APIKeyMissingError as e:
        _fail(f"API key missing: {e}", EXIT_CONFIG_ERROR)
    except ConfigValidationError as e:
        _fail(f"Configuration validation failed: {e}", EXIT_CONFIG_ERROR)

    client_ids = client or [c.id for c in runtime_config.clients]
    unknown = [client_id for client_id in client_ids if runtime_config.get_client(client_id) is None]
    if unknown:
        _fail(f"Unknown client(s): {', '.join(unknown)}", EXIT_CONFIG_ERROR)

    success(
        f"Loaded {len(client_ids)} client(s), "
        f"surfaces: {', '.join(str(s) for s in runtime_config.surfaces)}"
    )

    db_path = runtime_config.run_settings.sqlite_db_path
    try:
        with spinner("Initializing database..."):
            init_db_if_needed(db_path)
        info(f"Database ready: {db_path}")
    except (DatabaseError, sqlite3.Error, OSError) as e:
        _fail(f"Failed to initialize database: {e}", EXIT_DB_ERROR)

    outcomes = []
    for client_id in client_ids:
        try:
            with spinner(f"Crawling {client_id}..."):
                outcomes.extend(
                    asyncio.run(run_client_once(runtime_config, client_id, limit=limit))
                )
        except (NoQueriesConfiguredError, ClientNotFoundError) as e:
            warning(f"Skipping {client_id}: {e}")
        except (DatabaseError, sqlite3.Error) as e:
            _fail(f"Database error while crawling {client_id}: {e}", EXIT_DB_ERROR)

    if not outcomes:
        _fail("Nothing was crawled: no client has queries configured", EXIT_CONFIG_ERROR)

    print_run_outcomes(outcomes)
    raise typer.Exit(_exit_code_for([outcome.status for outcome in outcomes]))


@app.command()
def validate(
    config: Path = typer.Option(
        ...,
        "--config",
        "-c",
        help="Path to YAML configuration file",
        exists=True,
        file_okay=True,
        dir_okay=False,
    ),
    format: str = typer.Option("text", "--format", "-f", help=FORMAT_HELP),
):
    """
    Validate configuration file without executing queries.

    Checks YAML syntax, schema rules, and that every configured surface's
    API key environment variable is set.
    """
    _configure_output(format)

    try:
        with spinner("Validating configuration..."):
            runtime_config = load_config(config)
    except (ConfigFileNotFoundError, ConfigValidationError, APIKeyMissingError) as e:
        error(f"Validation failed: {e}")
        if output_mode.is_agent():
            output_mode.add_json("valid", False)
            output_mode.add_json("error_type", type(e).__name__)
            output_mode.flush_json()
        raise typer.Exit(EXIT_CONFIG_ERROR)

    query_count = sum(len(c.queries) for c in runtime_config.clients)
    success("Configuration is valid")
    info(f"Clients: {len(runtime_config.clients)}")
    info(f"Queries: {query_count}")
    info(f"Surfaces: {', '.join(str(s) for s in runtime_config.surfaces)}")

    if output_mode.is_agent():
        output_mode.add_json("valid", True)
        output_mode.add_json("clients_count", len(runtime_config.clients))
        output_mode.add_json("queries_count", query_count)
        output_mode.add_json("surfaces", [str(s) for s in runtime_config.surfaces])
        output_mode.flush_json()

    raise typer.Exit(EXIT_SUCCESS)


@app.command()
def history(
    client: str = typer.Option(..., "--client", help="Client id"),
    db: Path = typer.Option(
        "./output/tracker.db", "--db", help="Path to SQLite database", exists=True
    ),
    surface: str = typer.Option(None, "--surface", "-s", help="Only runs of this surface"),
    limit: int = typer.Option(20, "--limit", "-n", min=1, help="Maximum runs to list"),
    format: str = typer.Option("text", "--format", "-f", help=FORMAT_HELP),
    quiet: bool = typer.Option(False, "--quiet", "-q", help="Tab-separated output"),
):
    """List a client's stored runs, newest first."""
    _configure_output(format, quiet)
    surfaces = _parse_surfaces([surface] if surface else None)

    try:
        with connect(db) as conn:
            runs = list_runs(conn, client, surfaces[0] if surfaces else None, limit=limit)
    except sqlite3.Error as e:
        _fail(f"Failed to read run history: {e}", EXIT_DB_ERROR)

    if not runs and not output_mode.is_agent():
        warning(f"No runs found for client {client}")

    print_history_table(client, runs)
    raise typer.Exit(EXIT_SUCCESS)


@app.command("show-run")
def show_run(
    db: Path = typer.Option(
        "./output/tracker.db", "--db", help="Path to SQLite database", exists=True
    ),
    run_id: str = typer.Option(None, "--run-id", help="Run to show"),
    client: str = typer.Option(None, "--client", help="Client id (latest run)"),
    surface: str = typer.Option(None, "--surface", "-s", help="Surface (latest run)"),
    format: str = typer.Option("text", "--format", "-f", help=FORMAT_HELP),
    quiet: bool = typer.Option(False, "--quiet", "-q", help="Tab-separated output"),
):
    """
    Show per-query results of a run with deltas against the previous run.

    Select the run with --run-id, or with --client and --surface for the
    latest run of that pair.
    """
    _configure_output(format, quiet)

    if run_id is None and (client is None or surface is None):
        _fail("Provide --run-id, or both --client and --surface", EXIT_CONFIG_ERROR)

    try:
        with connect(db) as conn:
            if run_id is not None:
                detail = get_run_detail_with_diff(conn, run_id)
            else:
                parsed = _parse_surfaces([surface])
                detail = get_latest_run_detail_with_diff(conn, client, parsed[0])
    except sqlite3.Error as e:
        _fail(f"Failed to read run: {e}", EXIT_DB_ERROR)

    if detail is None:
        _fail(f"Run not found: {run_id or f'{client}/{surface}'}", EXIT_CONFIG_ERROR)

    print_run_detail(detail)
    raise typer.Exit(EXIT_SUCCESS)


@app.command()
def score(
    answer: Path = typer.Option(
        ...,
        "--answer",
        "-a",
        help="File with a surface answer (JSON or raw text)",
        exists=True,
        file_okay=True,
        dir_okay=False,
    ),
    brand: str = typer.Option(..., "--brand", "-b", help="Brand name"),
    domain: list[str] = typer.Option(
        None, "--domain", "-d", help="Brand domain (repeatable)"
    ),
    competitor: list[str] = typer.Option(
        None, "--competitor", help="Competitor domain (repeatable)"
    ),
    format: str = typer.Option("text", "--format", "-f", help=FORMAT_HELP),
    quiet: bool = typer.Option(False, "--quiet", "-q", help="Tab-separated output"),
):
    """
    Score a saved answer without calling any surface.

    The file goes through the same parse, coerce and score steps as a live
    crawl, so it is handy for checking how an odd answer shape is handled.
    """
    _configure_output(format, quiet)

    try:
        context = EvaluationContext(
            brand_name=brand,
            brand_domains=domain or [],
            competitors=competitor or [],
        )
    except ValueError as e:
        _fail(str(e), EXIT_CONFIG_ERROR)

    try:
        text = answer.read_text(encoding="utf-8")
    except UnicodeDecodeError as e:
        _fail(f"Answer file is not valid UTF-8: {answer} ({e.reason})", EXIT_CONFIG_ERROR)

    result = score_connector_output(text, context)

    if result.parse_failed:
        warning("No structured answer could be recovered; scored the fallback answer")

    print_scored_answer(result.answer.to_payload(), result.scored.to_dict())
    raise typer.Exit(EXIT_SUCCESS)


@app.callback(invoke_without_command=True)
def main(
    ctx: typer.Context,
    version: bool = typer.Option(
        False,
        "--version",
        "-V",
        help="Show version and exit",
    ),
):
    """
    LLM SERP Tracker - brand visibility in LLM answer surfaces.

    Sends a client's tracked queries to LLM surfaces, scores brand presence,
    rank, link rank and share of voice, and tracks the deltas between runs.
    """
    if version:
        from rich.console import Console

        Console().print(f"[bold cyan]llm-serp-tracker[/bold cyan] version {_read_version()}")
        raise typer.Exit(EXIT_SUCCESS)

    if ctx.invoked_subcommand is None:
        from rich.console import Console

        console = Console()
        console.print("[yellow]Use --help to see available commands[/yellow]")
        console.print()
        console.print("Quick start:")
        console.print("  llm-serp-tracker run --config tracker.config.yaml")


def _read_version() -> str:
    """Read the installed package version."""
    from importlib.metadata import PackageNotFoundError, version

    try:
        return version("llm-serp-tracker")
    except PackageNotFoundError:
        return "0.1.0"


if __name__ == "__main__":
    app()
