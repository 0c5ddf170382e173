"""
Crawl orchestration for LLM SERP Tracker.

A crawl sends every tracked query of one client to one surface, scores each
answer, and stores the results:

1. Load the client and its queries (optionally limited)
2. Create the run record
3. Invoke the connector for every query, at most max_concurrency at a time
4. Score each answer; a connector failure scores the "Connector error"
   fallback instead, so no query is ever skipped
5. Store the aggregate score with a per-query breakdown and close the run

Queries are independent units of work: one failing or being cancelled does
not affect its siblings.

Example:
    >>> config = load_config("tracker.config.yaml")
    >>> outcomes = asyncio.run(run_client_once(config, "acme-dental"))
    >>> outcomes[0].aggregate.overall_score
    72.5
"""

import asyncio
import logging
import sqlite3
import uuid
from dataclasses import dataclass

from llm_serp_tracker.config.schema import ClientConfig, RuntimeConfig, Surface
from llm_serp_tracker.connectors import Connector, ConnectorContext, build_connector
from llm_serp_tracker.exceptions import ClientNotFoundError, NoQueriesConfiguredError
from llm_serp_tracker.scoring.evaluator import EvaluationContext
from llm_serp_tracker.scoring.pipeline import (
    PipelineResult,
    score_connector_failure,
    score_connector_output,
)
from llm_serp_tracker.scoring.scorer import AggregateScore, aggregate_scores
from llm_serp_tracker.storage.db import (
    connect,
    finish_run,
    get_client,
    init_db_if_needed,
    insert_answer,
    insert_citations,
    insert_run,
    insert_score,
    list_queries,
    upsert_client,
    upsert_query,
)
from llm_serp_tracker.utils.logging import log_with_context
from llm_serp_tracker.utils.time import utc_now, utc_timestamp

logger = logging.getLogger(__name__)


@dataclass
class QueryOutcome:
    """Scored result of one query within a run."""

    query_id: str
    result: PipelineResult
    connector_failed: bool = False


@dataclass
class SurfaceRunOutcome:
    """
    Summary of one client/surface crawl.

    Attributes:
        run_id: Stored run identifier
        client_id: Crawled client
        surface: Crawled surface
        model_name: Model used by the surface
        aggregate: Run-level overall score and visibility
        total_queries: Queries attempted
        connector_failures: Queries scored from the connector-error fallback
        parse_failures: Queries whose answer could not be coerced
        lost_queries: Queries that produced no stored answer at all
    """

    run_id: str
    client_id: str
    surface: Surface
    model_name: str
    aggregate: AggregateScore
    total_queries: int
    connector_failures: int = 0
    parse_failures: int = 0
    lost_queries: int = 0

    @property
    def status(self) -> str:
        """Overall result: success, partial or failed."""
        failed = self.connector_failures + self.lost_queries
        if failed == 0:
            return "success"
        if failed >= self.total_queries:
            return "failed"
        return "partial"


def sync_client_config(conn: sqlite3.Connection, client: ClientConfig) -> None:
    """Mirror a client and its query panel from the config into the database."""
    upsert_client(conn, client.id, client.name, client.domains, client.competitors)
    for sort_order, query in enumerate(client.queries):
        upsert_query(
            conn,
            client_id=client.id,
            query_id=query.id,
            text=query.text,
            query_type=query.type,
            geo=query.geo,
            weight=query.weight,
            sort_order=sort_order,
        )
    conn.commit()
    logger.debug(f"Synced client {client.id} with {len(client.queries)} queries")


def persist_query_result(
    conn: sqlite3.Connection,
    run_id: str,
    query_id: str,
    result: PipelineResult,
    raw_payload: dict,
    brand_domains: list[str],
) -> None:
    """Store one scored answer and its citations, then commit."""
    answer_id = insert_answer(conn, run_id, query_id, result.scored, raw_payload)
    insert_citations(conn, answer_id, result.answer.citations, brand_domains)
    conn.commit()


async def run_surface(
    conn: sqlite3.Connection,
    client_id: str,
    connector: Connector,
    max_concurrency: int = 40,
    limit: int | None = None,
) -> SurfaceRunOutcome:
    """
    Crawl one client's query panel on one surface.

    Args:
        conn: Open database connection (schema initialized)
        client_id: Client to crawl
        connector: Connector for the surface
        max_concurrency: Maximum queries in flight
        limit: Only run the first N queries

    Returns:
        SurfaceRunOutcome with the stored run id and aggregate

    Raises:
        ClientNotFoundError: If client_id is not in the database
        NoQueriesConfiguredError: If the client has no queries
    """
    surface = connector.surface
    started = utc_now()
    surface_context = {"client_id": client_id, "surface": str(surface)}

    client = get_client(conn, client_id)
    if client is None:
        raise ClientNotFoundError(f"Client {client_id} not found")

    queries = list_queries(conn, client_id)
    if not queries:
        raise NoQueriesConfiguredError(f"No queries configured for client {client_id}")

    if limit:
        queries = queries[:limit]

    run_id = str(uuid.uuid4())
    insert_run(conn, run_id, client_id, surface, connector.model_name, utc_timestamp(started))
    conn.commit()

    log_with_context(
        logger,
        logging.INFO,
        f"Starting {surface} crawl for {client['name']}: {len(queries)} queries, "
        f"concurrency={max_concurrency}",
        context=surface_context,
        run_id=run_id,
    )

    evaluation_context = EvaluationContext(
        brand_name=client["name"],
        brand_domains=client["domains"],
        competitors=client["competitors"],
    )
    semaphore = asyncio.Semaphore(max_concurrency)

    async def _run_query(query: dict) -> QueryOutcome:
        async with semaphore:
            query_context = {**surface_context, "query_id": query["id"]}
            try:
                connector_result = await connector.invoke(
                    ConnectorContext(
                        query_id=query["id"],
                        query_text=query["text"],
                        brand_name=client["name"],
                        brand_domains=client["domains"],
                        competitors=client["competitors"],
                    )
                )
            except Exception as e:
                log_with_context(
                    logger,
                    logging.ERROR,
                    f"Query failed, recording fallback answer: {type(e).__name__}: {e}",
                    context=query_context,
                    run_id=run_id,
                )
                result = score_connector_failure(evaluation_context)
                persist_query_result(
                    conn,
                    run_id,
                    query["id"],
                    result,
                    {"error": f"{type(e).__name__}: {e}"},
                    client["domains"],
                )
                return QueryOutcome(query_id=query["id"], result=result, connector_failed=True)

            for warning in connector_result.warnings:
                log_with_context(
                    logger, logging.WARNING, warning, context=query_context, run_id=run_id
                )

            result = score_connector_output(connector_result.answer, evaluation_context)
            persist_query_result(
                conn,
                run_id,
                query["id"],
                result,
                {
                    "answer": result.answer.to_payload(),
                    "raw": connector_result.raw,
                    "warnings": connector_result.warnings,
                },
                client["domains"],
            )

            log_with_context(
                logger,
                logging.INFO,
                "Query completed",
                context={
                    **query_context,
                    "presence": result.scored.presence,
                    "llm_rank": result.scored.llm_rank,
                    "link_rank": result.scored.link_rank,
                    "sov": result.scored.sov,
                    "score": result.scored.score,
                },
                run_id=run_id,
            )
            return QueryOutcome(query_id=query["id"], result=result)

    results = await asyncio.gather(
        *(_run_query(query) for query in queries), return_exceptions=True
    )

    outcomes: list[QueryOutcome] = []
    lost = 0
    for query, outcome in zip(queries, results, strict=True):
        if isinstance(outcome, BaseException):
            # Persistence failure or cancellation; nothing was stored for it
            logger.error(f"Query {query['id']} produced no answer: {outcome!r}")
            lost += 1
        else:
            outcomes.append(outcome)

    aggregate = aggregate_scores([outcome.result.scored for outcome in outcomes])
    insert_score(
        conn,
        run_id,
        aggregate,
        {
            "breakdown": [
                {
                    "query_id": outcome.query_id,
                    "score": outcome.result.scored.score,
                    "breakdown": outcome.result.scored.breakdown.to_dict(),
                    "presence": outcome.result.scored.presence,
                }
                for outcome in outcomes
            ]
        },
    )
    finish_run(conn, run_id, utc_timestamp())
    conn.commit()

    outcome = SurfaceRunOutcome(
        run_id=run_id,
        client_id=client_id,
        surface=surface,
        model_name=connector.model_name,
        aggregate=aggregate,
        total_queries=len(queries),
        connector_failures=sum(1 for o in outcomes if o.connector_failed),
        parse_failures=sum(1 for o in outcomes if o.result.parse_failed),
        lost_queries=lost,
    )

    log_with_context(
        logger,
        logging.INFO,
        f"Finished {surface} crawl: overall={aggregate.overall_score:.1f}, "
        f"visibility={aggregate.visibility_pct:.1f}%, status={outcome.status}, "
        f"duration={(utc_now() - started).total_seconds():.1f}s",
        context=surface_context,
        run_id=run_id,
    )
    return outcome


async def run_client_once(
    config: RuntimeConfig,
    client_id: str,
    surfaces: list[Surface] | None = None,
    limit: int | None = None,
    connectors: dict[Surface, Connector] | None = None,
) -> list[SurfaceRunOutcome]:
    """
    Crawl one client on each requested surface, one surface after another.

    Args:
        config: Loaded RuntimeConfig
        client_id: Client from the config file
        surfaces: Surfaces to crawl (default: every resolved surface)
        limit: Only run the first N queries per surface
        connectors: Prebuilt connectors by surface; missing ones are built
            from config

    Returns:
        One SurfaceRunOutcome per surface, in the requested order

    Raises:
        ClientNotFoundError: If client_id is not in the config
        NoQueriesConfiguredError: If the client has no queries
    """
    client = config.get_client(client_id)
    if client is None:
        raise ClientNotFoundError(f"Client {client_id} is not defined in the config")

    requested = surfaces or list(config.surfaces)
    connectors = connectors or {}

    db_path = config.run_settings.sqlite_db_path
    init_db_if_needed(db_path)

    outcomes: list[SurfaceRunOutcome] = []
    with connect(db_path) as conn:
        sync_client_config(conn, client)

        for surface in requested:
            connector = connectors.get(surface)
            if connector is None:
                connector = build_connector(config.surfaces[surface])

            outcomes.append(
                await run_surface(
                    conn,
                    client_id,
                    connector,
                    max_concurrency=config.run_settings.max_concurrent_requests,
                    limit=limit,
                )
            )

    return outcomes
