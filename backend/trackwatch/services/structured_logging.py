"""
Structured Logging Service

Provides JSON-formatted structured logging with correlation context for
request tracing and per-item watcher tracking.

Features:
- JSON log formatter for machine-parseable output
- Request correlation via X-Request-ID
- Tracked item correlation, so every log line of a watcher tick carries the item id
- Context propagation via contextvars (each asyncio task keeps its own copy)
"""

import json
import logging
import uuid
from contextvars import ContextVar
from datetime import datetime, timezone
from typing import Optional, Dict, Any


# Context variables for correlation
request_id_var: ContextVar[Optional[str]] = ContextVar('request_id', default=None)
item_id_var: ContextVar[Optional[int]] = ContextVar('item_id', default=None)
extra_context_var: ContextVar[Dict[str, Any]] = ContextVar('extra_context', default={})


def get_request_id() -> Optional[str]:
    """Get the current request ID from context."""
    return request_id_var.get()


def set_request_id(request_id: Optional[str]) -> None:
    request_id_var.set(request_id)


def get_item_id() -> Optional[int]:
    """Get the id of the tracked item being reconciled, if any."""
    return item_id_var.get()


def get_extra_context() -> Dict[str, Any]:
    return extra_context_var.get()


def clear_context() -> None:
    """Clear all context variables."""
    request_id_var.set(None)
    item_id_var.set(None)
    extra_context_var.set({})


def generate_request_id() -> str:
    """Generate a new short unique request ID."""
    return str(uuid.uuid4())[:8]


def _correlation_fields() -> Dict[str, Any]:
    fields: Dict[str, Any] = {}
    request_id = get_request_id()
    if request_id:
        fields["request_id"] = request_id
    item_id = get_item_id()
    if item_id is not None:
        fields["item_id"] = item_id
    extra_context = get_extra_context()
    if extra_context:
        fields["context"] = extra_context
    return fields


class JSONLogFormatter(logging.Formatter):
    """
    JSON formatter for structured logging output.

    One JSON object per line with correlation IDs and extra context.
    """

    def __init__(self, include_extra: bool = True):
        super().__init__()
        self.include_extra = include_extra

    def format(self, record: logging.LogRecord) -> str:
        log_data = {
            "timestamp": datetime.now(timezone.utc).isoformat(),
            "level": record.levelname,
            "logger": record.name,
            "message": record.getMessage(),
            "module": record.module,
            "function": record.funcName,
            "line": record.lineno,
        }

        correlation = _correlation_fields()
        if not self.include_extra:
            correlation.pop("context", None)
        log_data.update(correlation)

        if record.exc_info:
            log_data["exception"] = {
                "type": record.exc_info[0].__name__ if record.exc_info[0] else None,
                "message": str(record.exc_info[1]) if record.exc_info[1] else None,
            }

        return json.dumps(log_data, default=str, ensure_ascii=False)


class CorrelationContext:
    """
    Context manager for setting correlation IDs.

    Usage:
        with CorrelationContext(item_id=42, url=item.url):
            logger.info("This log will include the item id")
    """

    def __init__(
        self,
        request_id: Optional[str] = None,
        item_id: Optional[int] = None,
        **extra_context
    ):
        self.request_id = request_id
        self.item_id = item_id
        self.extra_context = extra_context
        self._tokens = []

    def __enter__(self):
        if self.request_id:
            self._tokens.append((request_id_var, request_id_var.set(self.request_id)))
        if self.item_id is not None:
            self._tokens.append((item_id_var, item_id_var.set(self.item_id)))
        if self.extra_context:
            merged = {**get_extra_context(), **self.extra_context}
            self._tokens.append((extra_context_var, extra_context_var.set(merged)))
        return self

    def __exit__(self, exc_type, exc_val, exc_tb):
        while self._tokens:
            var, token = self._tokens.pop()
            var.reset(token)
        return False


def setup_json_logging(
    logger_name: Optional[str] = None,
    level: int = logging.INFO,
    json_output: bool = True
) -> logging.Handler:
    """
    Route a logger's output through a single structured handler.

    Existing stream handlers on the logger are replaced so that lines are
    not emitted twice after logging.basicConfig().

    Args:
        logger_name: Logger name (None for root logger)
        level: Minimum log level
        json_output: Whether to output JSON (True) or plain text (False)

    Returns:
        The configured handler
    """
    logger = logging.getLogger(logger_name) if logger_name else logging.getLogger()

    for existing in list(logger.handlers):
        if isinstance(existing, logging.StreamHandler):
            logger.removeHandler(existing)

    handler = logging.StreamHandler()
    handler.setLevel(level)

    if json_output:
        handler.setFormatter(JSONLogFormatter())
    else:
        handler.setFormatter(logging.Formatter(
            '%(asctime)s [%(levelname)s] %(name)s:%(lineno)d - %(message)s'
        ))

    logger.addHandler(handler)
    logger.setLevel(level)
    return handler
