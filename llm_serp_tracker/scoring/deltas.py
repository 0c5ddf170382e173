"""
Run-over-run deltas for per-query rows.

attach_deltas() joins a run's rows against the immediately preceding run for
the same client and surface, matching rows by query id. Deltas are a read
view: computed on demand, never persisted.

Sign conventions:
    presence_delta   int(current) - int(previous), in {-1, 0, 1}
    *_rank_delta     previous - current, so positive always means "moved
                     toward rank 1"
    sov/score delta  current - previous

A value that appears for the first time (new query, or a rank/SOV that was
None before) reports the whole current value as its delta. New queries use
a negated rank so that "entered the ranking" reads as the same kind of
number a rank change would.

Queries that only exist in the previous run are not reported.
"""

from dataclasses import dataclass, field, replace

from llm_serp_tracker.scoring.scorer import ScoreBreakdown


@dataclass(frozen=True)
class QueryDelta:
    """Signed change of one query's metrics since the previous run."""

    presence_delta: int
    llm_rank_delta: int | None
    link_rank_delta: int | None
    sov_delta: float | None
    score_delta: float | None


@dataclass(frozen=True)
class QueryRow:
    """
    One query's persisted result within a run, as read back for reporting.

    Attributes:
        query_id: Stable query identity used for joining runs
        query_text: Query as asked
        presence, llm_rank, link_rank, sov, score, breakdown, flags:
            Stored ScoredAnswer fields
        error: Connector error message when the answer is a fallback
        deltas: Filled in by attach_deltas()
    """

    query_id: str
    query_text: str
    presence: bool
    llm_rank: int | None
    link_rank: int | None
    sov: float | None
    score: float
    breakdown: ScoreBreakdown | None = None
    flags: list[str] = field(default_factory=list)
    query_type: str | None = None
    error: str | None = None
    deltas: QueryDelta | None = None


def _rank_delta(current: int | None, previous: int | None) -> int | None:
    if current is not None and previous is not None:
        return previous - current
    if current is not None:
        # Gained a rank: the rank itself is the delta
        return current
    # Lost the rank, or never had one
    return None


def _value_delta(current: float | None, previous: float | None) -> float | None:
    if current is not None and previous is not None:
        return current - previous
    if current is not None:
        return current
    return None


def first_appearance_delta(row: QueryRow) -> QueryDelta:
    """
    Delta for a query with no row in the previous run.

    Example:
        >>> first_appearance_delta(row).score_delta == row.score
        True
    """
    return QueryDelta(
        presence_delta=1 if row.presence else 0,
        llm_rank_delta=-row.llm_rank if row.llm_rank is not None else None,
        link_rank_delta=-row.link_rank if row.link_rank is not None else None,
        sov_delta=row.sov,
        score_delta=row.score,
    )


def compare_rows(current: QueryRow, previous: QueryRow) -> QueryDelta:
    """
    Delta between the same query in two consecutive runs.

    Example:
        previous llm_rank=5, current llm_rank=2 gives llm_rank_delta=3
    """
    return QueryDelta(
        presence_delta=int(current.presence) - int(previous.presence),
        llm_rank_delta=_rank_delta(current.llm_rank, previous.llm_rank),
        link_rank_delta=_rank_delta(current.link_rank, previous.link_rank),
        sov_delta=_value_delta(current.sov, previous.sov),
        score_delta=_value_delta(current.score, previous.score),
    )


def attach_deltas(current: list[QueryRow], previous: list[QueryRow]) -> list[QueryRow]:
    """
    Return copies of the current rows with deltas attached.

    Rows are joined by query_id, not position, and the output keeps the
    order of ``current``. Inputs are not modified, so calling this
    repeatedly is safe.

    Args:
        current: Rows of the run being viewed
        previous: Rows of the preceding run (empty for a first run)

    Returns:
        New QueryRow objects with ``deltas`` set
    """
    previous_by_query = {row.query_id: row for row in previous}

    rows: list[QueryRow] = []
    for row in current:
        prev = previous_by_query.get(row.query_id)
        if prev is None:
            deltas = first_appearance_delta(row)
        else:
            deltas = compare_rows(row, prev)
        rows.append(replace(row, deltas=deltas))

    return rows
