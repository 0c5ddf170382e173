"""
Read models for run reporting.

Turns stored answers back into QueryRow objects and joins a run against the
run before it (same client and surface) to attach deltas.

Example:
    >>> with connect(db_path) as conn:
    ...     detail = get_latest_run_detail_with_diff(conn, "acme-dental", "openai")
    >>> detail.queries[0].deltas.score_delta
    12.5
"""

import json
import sqlite3
from dataclasses import dataclass, field

from llm_serp_tracker.scoring.deltas import QueryRow, attach_deltas
from llm_serp_tracker.scoring.scorer import ScoreBreakdown
from llm_serp_tracker.storage.db import get_latest_run, get_previous_run, get_run


@dataclass
class RunDetail:
    """
    One run with its per-query rows.

    Attributes:
        run: Run record from storage.db.get_run()
        previous_run: Run the deltas were computed against, if any
        queries: Rows with deltas attached, ordered by query text
    """

    run: dict
    previous_run: dict | None = None
    queries: list[QueryRow] = field(default_factory=list)


def _breakdown_from_json(value: str | None) -> ScoreBreakdown | None:
    if not value:
        return None
    data = json.loads(value)
    return ScoreBreakdown(
        position=data["position"],
        link=data["link"],
        sov=data["sov"],
        accuracy=data["accuracy"],
    )


def _error_from_raw(raw_json: str) -> str | None:
    """Return the connector error stored in the raw payload, if any."""
    try:
        raw = json.loads(raw_json)
    except ValueError:
        return None
    if isinstance(raw, dict) and raw.get("error"):
        return str(raw["error"])
    return None


def build_query_rows(conn: sqlite3.Connection, run_id: str) -> list[QueryRow]:
    """
    Load a run's answers as QueryRow objects ordered by query text.

    Answers whose query was later removed from the panel are still returned,
    with an empty query_text.
    """
    cursor = conn.execute(
        """
        SELECT
            a.query_id, COALESCE(q.text, ''), q.type,
            a.presence, a.llm_rank, a.link_rank, a.sov, a.score,
            a.breakdown_json, a.flags_json, a.raw_json
        FROM answers a
        JOIN runs r ON r.id = a.run_id
        LEFT JOIN queries q ON q.id = a.query_id AND q.client_id = r.client_id
        WHERE a.run_id = ?
        ORDER BY COALESCE(q.text, ''), a.query_id
        """,
        (run_id,),
    )

    return [
        QueryRow(
            query_id=row[0],
            query_text=row[1],
            query_type=row[2],
            presence=bool(row[3]),
            llm_rank=row[4],
            link_rank=row[5],
            sov=row[6],
            score=row[7],
            breakdown=_breakdown_from_json(row[8]),
            flags=json.loads(row[9]),
            error=_error_from_raw(row[10]),
        )
        for row in cursor.fetchall()
    ]


def get_run_detail_with_diff(conn: sqlite3.Connection, run_id: str) -> RunDetail | None:
    """
    Load a run and attach deltas against its predecessor.

    The first run for a client and surface is compared against an empty
    previous run, so every row gets first-appearance deltas.

    Returns:
        RunDetail, or None if run_id does not exist
    """
    run = get_run(conn, run_id)
    if run is None:
        return None

    previous_run = get_previous_run(conn, run)
    current_rows = build_query_rows(conn, run_id)
    previous_rows = build_query_rows(conn, previous_run["id"]) if previous_run else []

    return RunDetail(
        run=run,
        previous_run=previous_run,
        queries=attach_deltas(current_rows, previous_rows),
    )


def get_latest_run_detail_with_diff(
    conn: sqlite3.Connection, client_id: str, surface: str
) -> RunDetail | None:
    """Same as get_run_detail_with_diff() for the newest run of client/surface."""
    if not client_id:
        return None

    latest = get_latest_run(conn, client_id, surface)
    if latest is None:
        return None

    return get_run_detail_with_diff(conn, latest["id"])
