"""
Structured JSON logging for LLM SERP Tracker.

Provides:
- JSON formatted output to stderr (stdout is reserved for command output)
- UTC timestamps
- Structured context fields (run_id, surface, query_id, ...)
- Secret redaction so API keys never reach a log line in full

Examples:
    >>> from llm_serp_tracker.utils.logging import setup_logging, log_with_context
    >>> setup_logging(verbose=True)
    >>> logger = logging.getLogger("llm_serp_tracker.runner")
    >>> log_with_context(logger, logging.INFO, "Query completed", {"score": 95.0})
"""

import json
import logging
import re
import sys
from typing import Any

from llm_serp_tracker.utils.time import utc_timestamp


class JSONFormatter(logging.Formatter):
    """
    Format each record as one JSON object per line.

    Fields: timestamp, level, component (logger name), message, and when
    supplied via ``extra``: context, run_id, exception.
    """

    def format(self, record: logging.LogRecord) -> str:
        log_entry: dict[str, Any] = {
            "timestamp": utc_timestamp(),
            "level": record.levelname,
            "component": record.name,
            "message": record.getMessage(),
        }

        context = getattr(record, "context", None)
        if isinstance(context, dict):
            log_entry["context"] = context

        run_id = getattr(record, "run_id", None)
        if run_id is not None:
            log_entry["run_id"] = run_id

        if record.exc_info:
            log_entry["exception"] = self.formatException(record.exc_info)

        # default=str keeps non-JSON context values (enums, paths) loggable
        return json.dumps(log_entry, default=str)


class SecretRedactingFilter(logging.Filter):
    """
    Redact API keys and bearer tokens from messages, args and context.

    Matches keep their last 4 characters:
        "sk-ant-api03-abcdef...wxyz" -> "sk-...wxyz"
        "Bearer abc123...789z"       -> "Bearer ***789z"
    """

    SECRET_PATTERNS = [
        (re.compile(r"\bsk-(?:ant-)?[a-zA-Z0-9_-]{20,}"), "sk-...{last4}"),
        (re.compile(r"\bBearer\s+[a-zA-Z0-9._-]{20,}"), "Bearer ***{last4}"),
        (re.compile(r"(x-api-key['\"]?\s*[:=]\s*['\"]?)[a-zA-Z0-9_-]{20,}"), None),
    ]

    def filter(self, record: logging.LogRecord) -> bool:
        record.msg = self.redact(str(record.msg))

        if record.args:
            if isinstance(record.args, dict):
                record.args = {k: self._redact_value(v) for k, v in record.args.items()}
            elif isinstance(record.args, tuple):
                record.args = tuple(self._redact_value(arg) for arg in record.args)

        context = getattr(record, "context", None)
        if isinstance(context, dict):
            record.context = self._redact_value(context)

        return True

    def redact(self, text: str) -> str:
        """
        Replace every secret-looking token in text.

        Example:
            >>> SecretRedactingFilter().redact("key=sk-abcdefghijklmnopqrstuvwx")
            'key=sk-...uvwx'
        """
        for pattern, template in self.SECRET_PATTERNS:

            def replace(match: re.Match, template: str | None = template) -> str:
                matched = match.group(0)
                last4 = matched[-4:]
                if template is None:
                    # Header style: keep the "x-api-key:" prefix
                    return f"{match.group(1)}***{last4}"
                return template.format(last4=last4)

            text = pattern.sub(replace, text)

        return text

    def _redact_value(self, value: Any) -> Any:
        if isinstance(value, str):
            return self.redact(value)
        if isinstance(value, dict):
            return {k: self._redact_value(v) for k, v in value.items()}
        if isinstance(value, list):
            return [self._redact_value(v) for v in value]
        return value


def setup_logging(verbose: bool = False, quiet_logs: bool = False) -> None:
    """
    Configure structured JSON logging on the root logger.

    Args:
        verbose: DEBUG level when True, INFO otherwise.
        quiet_logs: Only WARNING and above. The CLI sets it in human mode so
            log lines do not interleave with the Rich tables.
            Takes precedence over verbose.

    Example:
        >>> setup_logging(verbose=True)
        >>> logging.getLogger("x").debug("shown")
    """
    if quiet_logs:
        level = logging.WARNING
    elif verbose:
        level = logging.DEBUG
    else:
        level = logging.INFO

    root_logger = logging.getLogger()
    root_logger.setLevel(level)

    # Remove existing handlers (prevents duplicate logs on repeated CLI calls)
    root_logger.handlers.clear()

    handler = logging.StreamHandler(sys.stderr)
    handler.setLevel(level)
    handler.setFormatter(JSONFormatter())
    handler.addFilter(SecretRedactingFilter())
    root_logger.addHandler(handler)

    # httpx logs every request at INFO; keep it for --verbose only
    logging.getLogger("httpx").setLevel(logging.DEBUG if verbose else logging.WARNING)


def log_with_context(
    logger: logging.Logger,
    level: int,
    message: str,
    context: dict[str, Any] | None = None,
    run_id: str | None = None,
) -> None:
    """
    Log a message with structured context and optional run_id.

    Equivalent to ``logger.log(level, message, extra={"context": ..., "run_id": ...})``.

    Example:
        >>> log_with_context(
        ...     logger,
        ...     logging.INFO,
        ...     "Query completed",
        ...     context={"query_id": "best-dentist", "score": 95.0},
        ...     run_id="3f2a...",
        ... )
    """
    extra: dict[str, Any] = {}

    if context is not None:
        extra["context"] = context

    if run_id is not None:
        extra["run_id"] = run_id

    logger.log(level, message, extra=extra or None)
