"""
SQLite persistence for LLM SERP Tracker.

Schema versioning with forward-only migrations, plus parameterized CRUD
helpers. All timestamps are ISO 8601 UTC strings with a 'Z' suffix.

Tables:
- clients: Tracked brands (domains and competitors as JSON arrays)
- queries: Each client's query panel
- runs: One crawl of one client's panel against one surface
- answers: One ScoredAnswer per (run, query), with the raw payload
- citations: Exploded citations for link analytics
- scores: Run-level aggregate and per-query breakdown

Example usage:
    >>> init_db_if_needed("./output/tracker.db")
    >>> with connect("./output/tracker.db") as conn:
    ...     upsert_client(conn, "acme-dental", "Acme Dental", ["acmedental.com"], [])
    ...     conn.commit()

Security:
    - ALL queries use parameterized statements
    - NO API keys are ever stored in the database
"""

import json
import logging
import sqlite3
from pathlib import Path
from typing import Any

from llm_serp_tracker.exceptions import DatabaseError
from llm_serp_tracker.scoring.answer_block import AnswerCitation
from llm_serp_tracker.scoring.domain import is_brand_domain
from llm_serp_tracker.scoring.scorer import AggregateScore, ScoredAnswer
from llm_serp_tracker.utils.time import utc_timestamp

logger = logging.getLogger(__name__)

# Increment when migrations are added
CURRENT_SCHEMA_VERSION = 1


# ============================================================================
# Connection and migrations
# ============================================================================


def connect(db_path: str | Path) -> sqlite3.Connection:
    """Open a connection with foreign key enforcement enabled."""
    conn = sqlite3.connect(str(db_path))
    conn.execute("PRAGMA foreign_keys = ON")
    return conn


def init_db_if_needed(db_path: str | Path) -> None:
    """
    Create the database and bring its schema up to date.

    Idempotent: a database already at CURRENT_SCHEMA_VERSION is left alone.

    Raises:
        DatabaseError: If the schema is newer than this software or a
            migration fails
        OSError: If the parent directory cannot be created
    """
    db_path = Path(db_path)
    db_path.parent.mkdir(parents=True, exist_ok=True)

    with connect(db_path) as conn:
        conn.execute("""
            CREATE TABLE IF NOT EXISTS schema_version (
                version INTEGER PRIMARY KEY,
                applied_at TEXT NOT NULL
            )
        """)
        conn.commit()

        current_version = get_schema_version(conn)

        if current_version < CURRENT_SCHEMA_VERSION:
            logger.info(
                f"Database schema upgrade needed: "
                f"v{current_version} -> v{CURRENT_SCHEMA_VERSION}"
            )
            apply_migrations(conn, current_version, CURRENT_SCHEMA_VERSION)
        elif current_version > CURRENT_SCHEMA_VERSION:
            raise DatabaseError(
                f"Database schema version {current_version} is newer than "
                f"expected {CURRENT_SCHEMA_VERSION}. Update your software or "
                f"use a different database file."
            )
        else:
            logger.debug(f"Database schema is current (v{CURRENT_SCHEMA_VERSION})")


def get_schema_version(conn: sqlite3.Connection) -> int:
    """Return the applied schema version, 0 for a fresh database."""
    result = conn.execute("SELECT MAX(version) FROM schema_version").fetchone()[0]
    return result if result is not None else 0


def apply_migrations(conn: sqlite3.Connection, from_version: int, to_version: int) -> None:
    """
    Apply migrations (from_version, to_version] one transaction each.

    Raises:
        DatabaseError: On downgrade requests or a failing migration (that
            migration is rolled back; earlier ones stay applied)
    """
    if from_version > to_version:
        raise DatabaseError(
            f"Cannot downgrade schema from v{from_version} to v{to_version}."
        )

    migrations = {1: _migrate_to_v1}

    for target_version in range(from_version + 1, to_version + 1):
        migration = migrations.get(target_version)
        if migration is None:
            raise DatabaseError(f"No migration defined for version {target_version}")

        logger.info(f"Applying migration to schema version {target_version}")
        try:
            conn.execute("BEGIN")
            migration(conn)
            conn.execute(
                "INSERT INTO schema_version (version, applied_at) VALUES (?, ?)",
                (target_version, utc_timestamp()),
            )
            conn.commit()
        except sqlite3.Error as e:
            conn.rollback()
            logger.error(f"Migration to version {target_version} failed: {e}", exc_info=True)
            raise DatabaseError(
                f"Failed to migrate database to version {target_version}: {e}"
            ) from e


def _migrate_to_v1(conn: sqlite3.Connection) -> None:
    """Create the initial tables and indexes."""
    conn.execute("""
        CREATE TABLE IF NOT EXISTS clients (
            id TEXT PRIMARY KEY,
            name TEXT NOT NULL,
            domains_json TEXT NOT NULL DEFAULT '[]',
            competitors_json TEXT NOT NULL DEFAULT '[]',
            created_at TEXT NOT NULL,
            updated_at TEXT NOT NULL
        )
    """)

    conn.execute("""
        CREATE TABLE IF NOT EXISTS queries (
            id TEXT NOT NULL,
            client_id TEXT NOT NULL,
            text TEXT NOT NULL,
            type TEXT NOT NULL CHECK (
                type IN ('branded', 'category', 'comparison', 'local', 'faq')
            ),
            geo TEXT,
            weight REAL NOT NULL DEFAULT 1.0,
            sort_order INTEGER NOT NULL DEFAULT 0,
            created_at TEXT NOT NULL,
            updated_at TEXT NOT NULL,
            PRIMARY KEY (client_id, id),
            FOREIGN KEY (client_id) REFERENCES clients(id) ON DELETE CASCADE
        )
    """)

    conn.execute("""
        CREATE TABLE IF NOT EXISTS runs (
            id TEXT PRIMARY KEY,
            client_id TEXT NOT NULL,
            surface TEXT NOT NULL CHECK (surface IN ('openai', 'claude')),
            model_name TEXT NOT NULL,
            started_at TEXT NOT NULL,
            finished_at TEXT,
            FOREIGN KEY (client_id) REFERENCES clients(id) ON DELETE CASCADE
        )
    """)

    conn.execute("""
        CREATE TABLE IF NOT EXISTS answers (
            id INTEGER PRIMARY KEY AUTOINCREMENT,
            run_id TEXT NOT NULL,
            query_id TEXT NOT NULL,
            presence INTEGER NOT NULL,
            llm_rank INTEGER,
            link_rank INTEGER,
            sov REAL,
            score REAL NOT NULL,
            breakdown_json TEXT NOT NULL,
            flags_json TEXT NOT NULL DEFAULT '[]',
            raw_json TEXT NOT NULL,
            created_at TEXT NOT NULL,
            FOREIGN KEY (run_id) REFERENCES runs(id) ON DELETE CASCADE,
            UNIQUE (run_id, query_id)
        )
    """)

    conn.execute("""
        CREATE TABLE IF NOT EXISTS citations (
            id INTEGER PRIMARY KEY AUTOINCREMENT,
            answer_id INTEGER NOT NULL,
            position INTEGER NOT NULL,
            url TEXT NOT NULL,
            domain TEXT NOT NULL,
            is_brand_domain INTEGER NOT NULL,
            created_at TEXT NOT NULL,
            FOREIGN KEY (answer_id) REFERENCES answers(id) ON DELETE CASCADE
        )
    """)

    conn.execute("""
        CREATE TABLE IF NOT EXISTS scores (
            id INTEGER PRIMARY KEY AUTOINCREMENT,
            run_id TEXT NOT NULL,
            overall_score REAL NOT NULL,
            visibility_pct REAL NOT NULL,
            details_json TEXT NOT NULL DEFAULT '{}',
            created_at TEXT NOT NULL,
            FOREIGN KEY (run_id) REFERENCES runs(id) ON DELETE CASCADE
        )
    """)

    conn.execute("""
        CREATE INDEX IF NOT EXISTS idx_runs_client_surface_started
        ON runs(client_id, surface, started_at)
    """)
    conn.execute("CREATE INDEX IF NOT EXISTS idx_answers_run ON answers(run_id)")
    conn.execute("CREATE INDEX IF NOT EXISTS idx_citations_domain ON citations(domain)")
    conn.execute("CREATE INDEX IF NOT EXISTS idx_scores_run ON scores(run_id)")


# ============================================================================
# Clients and queries
# ============================================================================


def upsert_client(
    conn: sqlite3.Connection,
    client_id: str,
    name: str,
    domains: list[str],
    competitors: list[str],
) -> None:
    """Insert a client or update its name, domains and competitors."""
    now = utc_timestamp()
    conn.execute(
        """
        INSERT INTO clients (id, name, domains_json, competitors_json, created_at, updated_at)
        VALUES (?, ?, ?, ?, ?, ?)
        ON CONFLICT(id) DO UPDATE SET
            name = excluded.name,
            domains_json = excluded.domains_json,
            competitors_json = excluded.competitors_json,
            updated_at = excluded.updated_at
        """,
        (client_id, name, json.dumps(domains), json.dumps(competitors), now, now),
    )
    logger.debug(f"Upserted client {client_id} ({len(domains)} domains)")


def upsert_query(
    conn: sqlite3.Connection,
    client_id: str,
    query_id: str,
    text: str,
    query_type: str,
    geo: str | None = None,
    weight: float = 1.0,
    sort_order: int = 0,
) -> None:
    """
    Insert a query or update it in place.

    The (client_id, query_id) identity is what run-over-run deltas join on,
    so editing a query's text keeps its history.
    """
    now = utc_timestamp()
    conn.execute(
        """
        INSERT INTO queries (
            id, client_id, text, type, geo, weight, sort_order, created_at, updated_at
        ) VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?)
        ON CONFLICT(client_id, id) DO UPDATE SET
            text = excluded.text,
            type = excluded.type,
            geo = excluded.geo,
            weight = excluded.weight,
            sort_order = excluded.sort_order,
            updated_at = excluded.updated_at
        """,
        (query_id, client_id, text, query_type, geo, weight, sort_order, now, now),
    )


def get_client(conn: sqlite3.Connection, client_id: str) -> dict | None:
    """
    Fetch a client by id.

    Returns:
        dict with keys id, name, domains, competitors, or None
    """
    row = conn.execute(
        "SELECT id, name, domains_json, competitors_json FROM clients WHERE id = ?",
        (client_id,),
    ).fetchone()

    if row is None:
        return None

    return {
        "id": row[0],
        "name": row[1],
        "domains": json.loads(row[2]),
        "competitors": json.loads(row[3]),
    }


def list_queries(conn: sqlite3.Connection, client_id: str) -> list[dict]:
    """Return a client's queries in panel order."""
    cursor = conn.execute(
        """
        SELECT id, text, type, geo, weight
        FROM queries
        WHERE client_id = ?
        ORDER BY sort_order, created_at, rowid
        """,
        (client_id,),
    )
    return [
        {"id": row[0], "text": row[1], "type": row[2], "geo": row[3], "weight": row[4]}
        for row in cursor.fetchall()
    ]


# ============================================================================
# Runs, answers, citations, scores
# ============================================================================


def insert_run(
    conn: sqlite3.Connection,
    run_id: str,
    client_id: str,
    surface: str,
    model_name: str,
    started_at: str,
) -> None:
    """Record the start of a crawl. finished_at stays NULL until finish_run()."""
    conn.execute(
        """
        INSERT INTO runs (id, client_id, surface, model_name, started_at)
        VALUES (?, ?, ?, ?, ?)
        """,
        (run_id, client_id, str(surface), model_name, started_at),
    )
    logger.debug(f"Inserted run {run_id} for {client_id}/{surface}")


def finish_run(conn: sqlite3.Connection, run_id: str, finished_at: str) -> None:
    conn.execute("UPDATE runs SET finished_at = ? WHERE id = ?", (finished_at, run_id))


def insert_answer(
    conn: sqlite3.Connection,
    run_id: str,
    query_id: str,
    scored: ScoredAnswer,
    raw_payload: dict[str, Any],
) -> int:
    """
    Persist one scored answer.

    Args:
        conn: Active SQLite database connection
        run_id: Owning run
        query_id: Query identity
        scored: ScoredAnswer to store
        raw_payload: Diagnostic blob, typically {"answer": ..., "raw": ...}
            or {"error": ...} for connector failures

    Returns:
        Row id of the new answer (needed for insert_citations)
    """
    cursor = conn.execute(
        """
        INSERT INTO answers (
            run_id, query_id, presence, llm_rank, link_rank, sov,
            score, breakdown_json, flags_json, raw_json, created_at
        ) VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?)
        """,
        (
            run_id,
            query_id,
            int(scored.presence),
            scored.llm_rank,
            scored.link_rank,
            scored.sov,
            scored.score,
            json.dumps(scored.breakdown.to_dict()),
            json.dumps(scored.flags),
            json.dumps(raw_payload, default=str),
            utc_timestamp(),
        ),
    )
    return cursor.lastrowid


def insert_citations(
    conn: sqlite3.Connection,
    answer_id: int,
    citations: list[AnswerCitation],
    brand_domains: list[str],
) -> int:
    """
    Store an answer's citations with their brand-domain classification.

    Returns:
        Number of citation rows inserted
    """
    if not citations:
        return 0

    now = utc_timestamp()
    conn.executemany(
        """
        INSERT INTO citations (answer_id, position, url, domain, is_brand_domain, created_at)
        VALUES (?, ?, ?, ?, ?, ?)
        """,
        [
            (
                answer_id,
                position,
                citation.url,
                citation.domain,
                int(is_brand_domain(citation.domain, brand_domains)),
                now,
            )
            for position, citation in enumerate(citations, start=1)
        ],
    )
    return len(citations)


def insert_score(
    conn: sqlite3.Connection,
    run_id: str,
    aggregate: AggregateScore,
    details: dict[str, Any],
) -> None:
    """Store the run-level aggregate and its per-query breakdown."""
    conn.execute(
        """
        INSERT INTO scores (run_id, overall_score, visibility_pct, details_json, created_at)
        VALUES (?, ?, ?, ?, ?)
        """,
        (
            run_id,
            aggregate.overall_score,
            aggregate.visibility_pct,
            json.dumps(details),
            utc_timestamp(),
        ),
    )


# ============================================================================
# Run reads
# ============================================================================

_RUN_COLUMNS = """
    r.id, r.client_id, r.surface, r.model_name, r.started_at, r.finished_at,
    (SELECT s.overall_score FROM scores s WHERE s.run_id = r.id
        ORDER BY s.created_at DESC, s.id DESC LIMIT 1),
    (SELECT s.visibility_pct FROM scores s WHERE s.run_id = r.id
        ORDER BY s.created_at DESC, s.id DESC LIMIT 1),
    (SELECT COUNT(*) FROM answers a WHERE a.run_id = r.id),
    r.rowid
"""


def _run_from_row(row: tuple) -> dict:
    return {
        "id": row[0],
        "client_id": row[1],
        "surface": row[2],
        "model_name": row[3],
        "started_at": row[4],
        "finished_at": row[5],
        "overall_score": row[6],
        "visibility_pct": row[7],
        "answer_count": row[8],
        "_rowid": row[9],
    }


def get_run(conn: sqlite3.Connection, run_id: str) -> dict | None:
    """
    Fetch one run with its latest aggregate score.

    Returns:
        dict with id, client_id, surface, model_name, started_at,
        finished_at, overall_score, visibility_pct, answer_count, or None
    """
    row = conn.execute(
        f"SELECT {_RUN_COLUMNS} FROM runs r WHERE r.id = ?", (run_id,)
    ).fetchone()
    return _run_from_row(row) if row is not None else None


def list_runs(
    conn: sqlite3.Connection,
    client_id: str,
    surface: str | None = None,
    limit: int = 20,
) -> list[dict]:
    """Return a client's runs, newest first, optionally for one surface."""
    sql = f"SELECT {_RUN_COLUMNS} FROM runs r WHERE r.client_id = ?"
    params: list[Any] = [client_id]
    if surface is not None:
        sql += " AND r.surface = ?"
        params.append(str(surface))
    sql += " ORDER BY r.started_at DESC, r.rowid DESC LIMIT ?"
    params.append(limit)

    return [_run_from_row(row) for row in conn.execute(sql, params).fetchall()]


def get_latest_run(conn: sqlite3.Connection, client_id: str, surface: str) -> dict | None:
    runs = list_runs(conn, client_id, surface, limit=1)
    return runs[0] if runs else None


def get_previous_run(conn: sqlite3.Connection, run: dict) -> dict | None:
    """
    Find the run immediately preceding ``run`` for the same client and surface.

    Ties on started_at are broken by insertion order.
    """
    row = conn.execute(
        f"""
        SELECT {_RUN_COLUMNS}
        FROM runs r
        WHERE r.client_id = ?
          AND r.surface = ?
          AND (r.started_at < ? OR (r.started_at = ? AND r.rowid < ?))
        ORDER BY r.started_at DESC, r.rowid DESC
        LIMIT 1
        """,
        (
            run["client_id"],
            run["surface"],
            run["started_at"],
            run["started_at"],
            run["_rowid"],
        ),
    ).fetchone()
    return _run_from_row(row) if row is not None else None
