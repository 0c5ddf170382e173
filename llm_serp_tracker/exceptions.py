"""
Custom exceptions for LLM SERP Tracker.

Every application error inherits from SerpTrackerError so the CLI can catch
them with a single clause and map each family to an exit code.

Exception Hierarchy:
    SerpTrackerError (base)
    ├── ConfigurationError
    │   ├── ConfigFileNotFoundError
    │   ├── ConfigValidationError
    │   └── APIKeyMissingError
    ├── DatabaseError
    ├── ConnectorError
    └── RunError
        ├── ClientNotFoundError
        └── NoQueriesConfiguredError

The scoring core (llm_serp_tracker.scoring) deliberately raises none of these:
malformed surface output is repaired or replaced by the fallback AnswerBlock,
never surfaced as an exception.

Usage:
    from llm_serp_tracker.exceptions import ConfigurationError

    try:
        config = load_config(path)
    except ConfigFileNotFoundError as e:
        logger.error(f"Config file not found: {e}")
        raise typer.Exit(EXIT_CONFIG_ERROR)
"""


class SerpTrackerError(Exception):
    """
    Base exception for all LLM SERP Tracker errors.

    Example:
        try:
            run_client_once(...)
        except SerpTrackerError as e:
            logger.error(f"Tracker error: {e}")
    """

    pass


# ============================================================================
# Configuration Errors
# ============================================================================


class ConfigurationError(SerpTrackerError):
    """
    Base class for configuration-related errors.

    Should be caught and result in exit code 1 (configuration error).
    """

    pass


class ConfigFileNotFoundError(ConfigurationError):
    """Configuration file does not exist at the specified path."""

    pass


class ConfigValidationError(ConfigurationError):
    """
    Configuration file exists but fails YAML parsing or schema validation.

    The message lists every failing field as "location: message".
    """

    pass


class APIKeyMissingError(ConfigurationError):
    """
    Environment variable named by a surface's env_api_key is unset or empty.

    Example:
        raise APIKeyMissingError("OPENAI_API_KEY")
    """

    pass


# ============================================================================
# Storage Errors
# ============================================================================


class DatabaseError(SerpTrackerError):
    """SQLite initialization, migration or query failure (exit code 2)."""

    pass


# ============================================================================
# Connector Errors
# ============================================================================


class ConnectorError(SerpTrackerError):
    """
    A surface connector could not obtain an answer.

    Raised for non-retryable HTTP statuses and for responses that carry no
    answer content. The runner catches it per query and persists the
    fallback AnswerBlock instead of aborting the run.
    """

    pass


# ============================================================================
# Run Errors
# ============================================================================


class RunError(SerpTrackerError):
    """Base class for errors that prevent a crawl from starting."""

    pass


class ClientNotFoundError(RunError):
    """Requested client id does not exist in the database."""

    pass


class NoQueriesConfiguredError(RunError):
    """Client exists but has no tracked queries."""

    pass
