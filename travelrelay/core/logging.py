"""Structured logging for TravelRelay."""
import json
import logging
from datetime import datetime, timezone
from typing import Any, Dict, Optional


class StructuredLogger:
    """Structured JSON logger for resilient upstream calls."""

    def __init__(self, name: str = "travelrelay"):
        self.logger = logging.getLogger(name)

    def log_call(
        self,
        operation: str,
        outcome: str = "success",  # "success", "cache_hit", "error" or "timeout"
        state: Optional[str] = None,
        attempts: int = 0,
        latency_ms: int = 0,
        cache_hit: bool = False,
        cache_key: Optional[str] = None,
        error_class: Optional[str] = None,
        upstream_status: Optional[int] = None,
        error_message: Optional[str] = None,
        level: str = "INFO",
    ):
        """Log the summary of one execute() call as structured JSON.

        Args:
            operation: Operation name given to the executor
            outcome: "success", "cache_hit", "error" or "timeout"
            state: Final state-machine transition (e.g. "RETRIES_EXHAUSTED")
            attempts: Number of thunk invocations
            latency_ms: Wall time of the whole call, retries included
            cache_hit: Whether the value came from the cache
            cache_key: Cache key, if one was supplied
            error_class: Classification of the last failure
            upstream_status: Upstream HTTP status code, if known
            error_message: Message of the last failure
            level: Log level (INFO, WARNING, ERROR)
        """
        log_entry: Dict[str, Any] = {
            "ts": datetime.now(timezone.utc).isoformat().replace("+00:00", "Z"),
            "level": level,
            "operation": operation,
            "outcome": outcome,
            "attempts": attempts,
            "latency_ms": latency_ms,
            "cache_hit": cache_hit,
        }

        if state:
            log_entry["state"] = state
        if cache_key:
            log_entry["cache_key"] = cache_key

        if outcome in ("error", "timeout"):
            if error_class:
                log_entry["error_class"] = error_class
            if upstream_status:
                log_entry["upstream_status"] = upstream_status
            if error_message:
                log_entry["error"] = error_message

        log_message = json.dumps(log_entry, ensure_ascii=False)

        if level == "ERROR":
            self.logger.error(log_message)
        elif level == "WARNING":
            self.logger.warning(log_message)
        else:
            self.logger.info(log_message)


# Global structured logger instance
structured_logger = StructuredLogger()
