"""
Debug Utilities - Structured logging helpers for the SmartList backend

This module provides:
- A pre-configured family of `smartlist.*` loggers with key=value context
- Function decorators and context managers for timing async work
- One-line helpers for database queries, LLM calls, WebSocket events and
  ingestion pipeline transitions
- In-process counters for the ingestion pipeline

All logs are output to stdout for container visibility.

Environment Variables:
    DEBUG_MODE=true           - Include request bodies/params in debug lines
    LOG_LEVEL=DEBUG           - Set log level (DEBUG, INFO, WARNING, ERROR)

Usage:
    from utils.debug import Loggers, DebugContext, log_db_query

    async with DebugContext("drain_step", list_id=list_id):
        ...
"""

import functools
import logging
import time
import json
import sys
from typing import Any, Callable, Optional, Dict, List
from datetime import datetime, timezone
import os

DEBUG_MODE = os.getenv("DEBUG_MODE", "false").lower() == "true"
LOG_LEVEL = os.getenv("LOG_LEVEL", "INFO").upper()

LOGGER_NAMES = [
    'smartlist', 'smartlist.debug', 'smartlist.db', 'smartlist.api',
    'smartlist.websocket', 'smartlist.ai', 'smartlist.ingestion', 'smartlist.context',
]


def setup_debug_logging():
    """
    Configure the smartlist.* loggers to write to stdout with structured formatting.

    Call this early in application startup.
    """
    level = getattr(logging, LOG_LEVEL, logging.INFO)

    formatter = logging.Formatter(
        '%(asctime)s | %(levelname)-8s | %(name)-25s | %(message)s',
        datefmt='%Y-%m-%d %H:%M:%S'
    )

    for logger_name in LOGGER_NAMES:
        logger = logging.getLogger(logger_name)
        logger.setLevel(level)

        # Remove existing handlers
        logger.handlers = []

        handler = logging.StreamHandler(sys.stdout)
        handler.setFormatter(formatter)
        handler.setLevel(level)
        logger.addHandler(handler)

        # Prevent propagation to avoid duplicate logs
        logger.propagate = False

    debug_logger = logging.getLogger("smartlist.debug")
    debug_logger.info(f"Debug logging configured: level={LOG_LEVEL}, debug_mode={DEBUG_MODE}")


debug_logger = logging.getLogger("smartlist.debug")


def _format_value(value: Any, max_length: int = 200) -> str:
    """Format a value for debug output, truncating if necessary."""
    try:
        if value is None:
            return "None"
        if isinstance(value, (str, int, float, bool)):
            str_val = str(value)
        elif isinstance(value, (dict, list)):
            str_val = json.dumps(value, default=str)
        else:
            str_val = repr(value)

        if len(str_val) > max_length:
            return str_val[:max_length] + "..."
        return str_val
    except Exception:
        return "<unserializable>"


class DebugLogger:
    """
    Logger with structured key=value output.

    Usage:
        logger = DebugLogger("ingestion")
        logger.info("Entry committed", list_id="abc", item_id="123")
    """

    def __init__(self, module: str):
        self.module = module
        self.logger = logging.getLogger(f"smartlist.{module}")

    def _format_message(self, message: str, **kwargs) -> str:
        if kwargs:
            context_str = " | ".join(f"{k}={_format_value(v)}" for k, v in kwargs.items())
            return f"[{self.module}] {message} | {context_str}"
        return f"[{self.module}] {message}"

    def debug(self, message: str, **kwargs):
        self.logger.debug(self._format_message(message, **kwargs))

    def info(self, message: str, **kwargs):
        self.logger.info(self._format_message(message, **kwargs))

    def warning(self, message: str, **kwargs):
        self.logger.warning(self._format_message(message, **kwargs))

    def error(self, message: str, exc_info: bool = False, **kwargs):
        """Log error message with context and optional exception info."""
        self.logger.error(self._format_message(message, **kwargs), exc_info=exc_info)

    def exception(self, message: str, **kwargs):
        """Log exception with full traceback."""
        self.logger.exception(self._format_message(message, **kwargs))


class Loggers:
    """Pre-configured debug loggers for different application modules."""
    db = DebugLogger("db")
    api = DebugLogger("api")
    ws = DebugLogger("websocket")
    ai = DebugLogger("ai")
    ingestion = DebugLogger("ingestion")


def debug_async(func: Callable) -> Callable:
    """
    Decorator for async functions that logs entry, exit, and errors.

    Usage:
        @debug_async
        async def parse(self, voice_input):
            ...
    """
    @functools.wraps(func)
    async def wrapper(*args, **kwargs):
        func_name = func.__name__
        module = func.__module__.split('.')[-1]
        logger = DebugLogger(module)

        args_str = ", ".join([_format_value(a) for a in args[:3]])  # Limit args logged
        kwargs_str = ", ".join([f"{k}={_format_value(v)}" for k, v in list(kwargs.items())[:3]])
        params = ", ".join(filter(None, [args_str, kwargs_str]))

        logger.debug(f"ENTER {func_name}({params})")

        start_time = time.time()
        try:
            result = await func(*args, **kwargs)
            elapsed = (time.time() - start_time) * 1000

            result_str = _format_value(result, max_length=100)
            if elapsed > 1000:
                logger.warning(f"EXIT {func_name} -> {result_str}",
                               duration_ms=f"{elapsed:.2f}", status="SLOW")
            else:
                logger.debug(f"EXIT {func_name} -> {result_str}",
                             duration_ms=f"{elapsed:.2f}")
            return result
        except Exception as e:
            elapsed = (time.time() - start_time) * 1000
            logger.error(f"ERROR {func_name}: {type(e).__name__}: {str(e)}",
                         duration_ms=f"{elapsed:.2f}", exc_info=True)
            raise

    return wrapper


class DebugContext:
    """
    Context manager for debugging code blocks with timing and error handling.

    Usage:
        with DebugContext("match_items", list_id=list_id):
            classify(candidate, items)

        async with DebugContext("drain_step"):
            await engine.drain_once()
    """

    def __init__(self, name: str, logger: Optional[DebugLogger] = None, **context):
        self.name = name
        self.logger = logger or DebugLogger("context")
        self.context = context
        self.start_time = None

    def __enter__(self):
        self.start_time = time.time()
        self.logger.debug(f"BEGIN {self.name}", **self.context)
        return self

    def __exit__(self, exc_type, exc_val, exc_tb):
        elapsed = (time.time() - self.start_time) * 1000

        if exc_type:
            self.logger.error(
                f"FAILED {self.name}: {exc_type.__name__}: {str(exc_val)}",
                duration_ms=f"{elapsed:.2f}",
                exc_info=True,
                **self.context
            )
        elif elapsed > 1000:
            self.logger.warning(
                f"END {self.name}",
                duration_ms=f"{elapsed:.2f}",
                status="SLOW",
                **self.context
            )
        else:
            self.logger.debug(
                f"END {self.name}",
                duration_ms=f"{elapsed:.2f}",
                **self.context
            )

        return False  # Don't suppress exceptions

    async def __aenter__(self):
        return self.__enter__()

    async def __aexit__(self, exc_type, exc_val, exc_tb):
        return self.__exit__(exc_type, exc_val, exc_tb)


def log_db_query(operation: str, table: str, duration_ms: float,
                 rows_affected: Optional[int] = None,
                 query_params: Optional[Dict] = None,
                 error: Optional[str] = None):
    """
    Log a database query with details.

    Usage:
        log_db_query("SELECT", "shopping_lists", 5.2, rows_affected=1, query_params={"id": "123"})
    """
    logger = Loggers.db
    context = {
        "operation": operation,
        "table": table,
        "duration_ms": f"{duration_ms:.2f}",
    }
    if rows_affected is not None:
        context["rows"] = rows_affected
    if query_params and DEBUG_MODE:
        context["params"] = _format_value(query_params)
    if error:
        context["error"] = error

    debug_stats.record_db_query(operation, table, duration_ms)

    if error:
        logger.error("QUERY FAILED", **context)
    elif duration_ms > 100:
        logger.warning("QUERY (SLOW)", **context)
    else:
        logger.debug("QUERY", **context)


def log_ws_event(event_type: str, connection_id: Optional[str] = None,
                 list_id: Optional[str] = None,
                 data: Optional[Dict] = None, error: Optional[str] = None):
    """
    Log a WebSocket event.

    Usage:
        log_ws_event("CONNECT", connection_id="abc123", list_id="list1")
    """
    logger = Loggers.ws
    context = {"event": event_type}
    if connection_id:
        context["conn_id"] = connection_id
    if list_id:
        context["list_id"] = list_id
    if data and DEBUG_MODE:
        context["data"] = _format_value(data)
    if error:
        context["error"] = error

    if error:
        logger.error("WS_EVENT", **context)
    else:
        logger.debug("WS_EVENT", **context)


def log_ai_request(provider: str, model: str, operation: str,
                   prompt_tokens: Optional[int] = None,
                   completion_tokens: Optional[int] = None,
                   duration_ms: Optional[float] = None,
                   error: Optional[str] = None):
    """
    Log an AI/LLM request.

    Usage:
        log_ai_request("ollama", "llama3", "normalize_item",
                      prompt_tokens=500, completion_tokens=200, duration_ms=1500)
    """
    logger = Loggers.ai
    context = {
        "provider": provider,
        "model": model,
        "operation": operation,
    }
    if prompt_tokens:
        context["prompt_tokens"] = prompt_tokens
    if completion_tokens:
        context["completion_tokens"] = completion_tokens
    if duration_ms:
        context["duration_ms"] = f"{duration_ms:.2f}"
    if error:
        context["error"] = error

    if error:
        logger.error("AI_REQUEST", **context)
    elif duration_ms and duration_ms > 10000:
        logger.warning("AI_REQUEST (SLOW)", **context)
    else:
        logger.info("AI_REQUEST", **context)


def log_ingestion_event(event: str, list_id: Optional[str] = None,
                        item_name: Optional[str] = None,
                        reason: Optional[str] = None, **extra):
    """
    Log one ingestion pipeline transition and count it.

    Usage:
        log_ingestion_event("COMMITTED", list_id="abc", item_name="Milk")
        log_ingestion_event("DROPPED", list_id="abc", reason="list_not_found")
    """
    logger = Loggers.ingestion
    context = {"event": event}
    if list_id:
        context["list_id"] = list_id
    if item_name:
        context["item"] = item_name
    if reason:
        context["reason"] = reason
    context.update(extra)

    debug_stats.record_ingestion(event)

    if event == "DROPPED":
        logger.warning("PIPELINE", **context)
    else:
        logger.info("PIPELINE", **context)


class DebugStats:
    """
    Collect and report in-process debug statistics.

    Usage:
        stats = DebugStats()
        stats.record_db_query("SELECT", "shopping_lists", 5.2)
        stats.record_ingestion("COMMITTED")
        print(stats.get_summary())
    """

    def __init__(self):
        self.db_queries: List[Dict] = []
        self.ingestion: Dict[str, int] = {}
        self._start_time = time.time()

    def record_db_query(self, operation: str, table: str, duration_ms: float):
        """Record a database query."""
        self.db_queries.append({
            "operation": operation,
            "table": table,
            "duration_ms": duration_ms,
            "timestamp": datetime.now(timezone.utc).isoformat()
        })
        # Keep only last 1000
        if len(self.db_queries) > 1000:
            self.db_queries = self.db_queries[-1000:]

    def record_ingestion(self, event: str):
        self.ingestion[event] = self.ingestion.get(event, 0) + 1

    def get_summary(self) -> Dict:
        """Get a summary of debug statistics."""
        uptime = time.time() - self._start_time

        total_queries = len(self.db_queries)
        if total_queries > 0:
            avg_query_time = sum(q["duration_ms"] for q in self.db_queries) / total_queries
            slow_queries = sum(1 for q in self.db_queries if q["duration_ms"] > 100)
        else:
            avg_query_time = 0
            slow_queries = 0

        return {
            "uptime_seconds": uptime,
            "debug_mode": DEBUG_MODE,
            "database": {
                "total_queries": total_queries,
                "avg_query_ms": round(avg_query_time, 2),
                "slow_count": slow_queries,
            },
            "ingestion": dict(self.ingestion),
        }

    def clear(self):
        """Clear all statistics."""
        self.db_queries.clear()
        self.ingestion.clear()


# Global debug stats instance
debug_stats = DebugStats()


def get_debug_info() -> Dict:
    """
    Get debug information about the application state.
    """
    import platform

    return {
        "timestamp": datetime.now(timezone.utc).isoformat(),
        "environment": {
            "python_version": sys.version,
            "platform": platform.platform(),
            "debug_mode": DEBUG_MODE,
            "log_level": LOG_LEVEL,
        },
        "stats": debug_stats.get_summary()
    }
