"""
Structured JSON logging for multi-ai.

Provides standardized logging with:
- JSON formatted output to stderr
- UTC timestamps with timezone info
- Structured context fields (service name, timings)
- Secret redaction (cookie values and session tokens are never logged)
- Component-based logger creation

All logs use Python's standard logging module with custom formatting.
Log level defaults to INFO, use setup_logging(verbose=True) for DEBUG.

Examples:
    >>> from multi_ai.utils.logging import setup_logging, get_logger
    >>> setup_logging(verbose=True)
    >>> logger = get_logger("multi_ai.browser.manager")
    >>> logger.info("Context created", extra={"context": {"context_id": "claude-context"}})

Security:
    - NEVER log cookie values or session tokens in full
    - Only stderr is used (stdout reserved for rendered responses)
"""

import json
import logging
import re
import sys
from typing import Any

from multi_ai.utils.time import utc_timestamp


class JSONFormatter(logging.Formatter):
    """
    Custom formatter that outputs logs as JSON with structured fields.

    Each log record is formatted as a JSON object with:
    - timestamp: ISO 8601 UTC timestamp
    - level: Log level (INFO, WARNING, ERROR, DEBUG)
    - component: Module/component name (from logger name)
    - message: Human-readable log message
    - context: Additional structured data (from 'context' in extra)
    - service: Service name (from 'service' in extra, if available)
    """

    def format(self, record: logging.LogRecord) -> str:
        log_entry = {
            "timestamp": utc_timestamp(),
            "level": record.levelname,
            "component": record.name,
            "message": record.getMessage(),
        }

        if hasattr(record, "context") and isinstance(record.context, dict):
            log_entry["context"] = record.context

        if hasattr(record, "service"):
            log_entry["service"] = record.service

        if record.exc_info:
            log_entry["exception"] = self.formatException(record.exc_info)

        return json.dumps(log_entry)


class SecretRedactingFilter(logging.Filter):
    """
    Logging filter that redacts potential secrets from log messages.

    Prevents accidental logging of:
    - Cookie values ("value=..." / "'value': '...'")
    - Session tokens and bearer tokens
    - Any long opaque string matching common secret patterns

    Replaces full secrets with redacted versions showing only last 4 chars:
    "Bearer abc123xyz789..." -> "Bearer ***z789"
    """

    SECRET_PATTERNS = [
        (re.compile(r"\bBearer\s+[a-zA-Z0-9_.-]{20,}"), "Bearer ***{last4}"),
        (
            re.compile(r"(?P<key>['\"]?value['\"]?\s*[:=]\s*['\"]?)[^'\",\s}]{8,}"),
            "{key}***{last4}",
        ),
        (re.compile(r"\b[a-zA-Z0-9_.-]{32,}\b"), "***{last4}"),
    ]

    def filter(self, record: logging.LogRecord) -> bool:
        record.msg = self._redact_secrets(str(record.msg))

        if record.args:
            if isinstance(record.args, dict):
                record.args = {
                    k: self._redact_secrets(str(v)) for k, v in record.args.items()
                }
            elif isinstance(record.args, tuple):
                record.args = tuple(
                    self._redact_secrets(str(arg)) for arg in record.args
                )

        if hasattr(record, "context") and isinstance(record.context, dict):
            record.context = self._redact_dict(record.context)

        return True

    def _redact_secrets(self, text: str) -> str:
        """
        Redact secrets in text, keeping only last 4 characters.

        Args:
            text: Input string potentially containing secrets

        Returns:
            String with secrets replaced by redacted versions
        """
        for pattern, template in self.SECRET_PATTERNS:

            def redact_match(match: re.Match) -> str:
                matched = match.group(0)
                groups = match.groupdict()
                return template.format(last4=matched[-4:], key=groups.get("key", ""))

            text = pattern.sub(redact_match, text)

        return text

    def _redact_dict(self, data: dict[str, Any]) -> dict[str, Any]:
        """
        Recursively redact secrets in dictionary values.

        A key literally named "value" or "cookies" is treated as secret
        regardless of its length.
        """
        result = {}
        for key, value in data.items():
            if key in ("value", "cookies"):
                result[key] = "***"
            elif isinstance(value, str):
                result[key] = self._redact_secrets(value)
            elif isinstance(value, dict):
                result[key] = self._redact_dict(value)
            elif isinstance(value, list):
                result[key] = [
                    self._redact_secrets(v) if isinstance(v, str) else v for v in value
                ]
            else:
                result[key] = value
        return result


def setup_logging(verbose: bool = False, quiet_logs: bool = False) -> None:
    """
    Configure structured JSON logging for the application.

    Sets up:
    - JSON formatter for structured output
    - Secret redaction filter
    - stderr output (stdout reserved for user-facing content)
    - Log level: DEBUG if verbose=True, WARNING if quiet_logs=True, INFO otherwise

    Args:
        verbose: If True, set log level to DEBUG. Wins over quiet_logs.
        quiet_logs: If True, only warnings and errors are emitted. Used in
            human output mode so JSON lines don't interleave with Rich output.

    Example:
        >>> setup_logging(verbose=True)
        >>> logger = get_logger("my.component")
        >>> logger.debug("Debug message")  # Will appear in logs
    """
    if verbose:
        level = logging.DEBUG
    elif quiet_logs:
        level = logging.WARNING
    else:
        level = logging.INFO

    root_logger = logging.getLogger()
    root_logger.setLevel(level)

    # Remove any existing handlers (prevents duplicate logs)
    root_logger.handlers.clear()

    handler = logging.StreamHandler(sys.stderr)
    handler.setLevel(level)
    handler.setFormatter(JSONFormatter())
    handler.addFilter(SecretRedactingFilter())

    root_logger.addHandler(handler)

    # Playwright's driver chatter is rarely useful outside debugging
    logging.getLogger("asyncio").setLevel(logging.WARNING)


def get_logger(component: str) -> logging.Logger:
    """
    Get a logger instance for a specific component.

    Args:
        component: Component name (e.g., "multi_ai.services.agent")

    Returns:
        Logger instance configured for JSON output
    """
    return logging.getLogger(component)


def log_with_context(
    logger: logging.Logger,
    level: int,
    message: str,
    context: dict[str, Any] | None = None,
    service: str | None = None,
) -> None:
    """
    Log a message with structured context and optional service name.

    Equivalent to logger.log(level, message, extra={'context': {...}, 'service': '...'})

    Args:
        logger: Logger instance (from get_logger)
        level: Log level (logging.INFO, logging.WARNING, etc.)
        message: Human-readable log message
        context: Optional dict with additional structured data
        service: Optional service name to include in log

    Example:
        >>> log_with_context(
        ...     logger,
        ...     logging.INFO,
        ...     "Prompt completed",
        ...     context={"status": "success", "response_time_ms": 8123},
        ...     service="claude",
        ... )
    """
    extra = {}

    if context is not None:
        extra["context"] = context

    if service is not None:
        extra["service"] = service

    logger.log(level, message, extra=extra if extra else None)
