"""
Structured logging for the ConsumerView client.

Provides centralized logging with console and optional file output, plus
counters for monitoring login churn, lookup volume and auth retries.
"""

import logging
import sys
import threading
from pathlib import Path
from typing import Optional
from datetime import datetime
import json


class StructuredLogger:
    """
    Centralized logger with support for console and file outputs.
    Tracks metrics for monitoring API usage.
    """

    def __init__(
        self,
        name: str = "consumerview",
        level: str = "INFO",
        log_dir: Optional[Path] = None,
        enable_file: bool = False,
        enable_console: bool = True,
    ):
        """
        Initialize the structured logger.

        Args:
            name: Logger name
            level: Log level (DEBUG, INFO, WARNING, ERROR, CRITICAL)
            log_dir: Directory for log files (default: logs/)
            enable_file: Write logs to file
            enable_console: Output logs to console
        """
        self.logger = logging.getLogger(name)
        self.logger.setLevel(getattr(logging, level.upper()))
        self.logger.handlers.clear()  # Remove existing handlers

        self._metrics_lock = threading.Lock()
        self.metrics = {
            "logins": 0,
            "login_failures": 0,
            "batch_lookups": 0,
            "single_lookups": 0,
            "items_looked_up": 0,
            "auth_retries": 0,
            "errors_by_type": {},
        }

        # Console handler
        if enable_console:
            console_handler = logging.StreamHandler(sys.stderr)
            console_handler.setLevel(getattr(logging, level.upper()))
            console_formatter = logging.Formatter(
                fmt='%(asctime)s | %(levelname)-8s | %(name)s | %(message)s',
                datefmt='%Y-%m-%d %H:%M:%S'
            )
            console_handler.setFormatter(console_formatter)
            self.logger.addHandler(console_handler)

        # File handler
        if enable_file:
            if log_dir is None:
                log_dir = Path("logs")
            log_dir.mkdir(parents=True, exist_ok=True)

            log_file = log_dir / f"consumerview_{datetime.now().strftime('%Y%m%d')}.log"
            file_handler = logging.FileHandler(log_file, encoding='utf-8')
            file_handler.setLevel(logging.DEBUG)  # Always log everything to file
            file_formatter = logging.Formatter(
                fmt='%(asctime)s | %(levelname)-8s | %(name)s:%(lineno)d | %(message)s',
                datefmt='%Y-%m-%d %H:%M:%S'
            )
            file_handler.setFormatter(file_formatter)
            self.logger.addHandler(file_handler)

        if not enable_console and not enable_file:
            self.logger.addHandler(logging.NullHandler())

    def debug(self, message: str, **kwargs):
        """Log debug message with optional context."""
        self._log(logging.DEBUG, message, kwargs)

    def info(self, message: str, **kwargs):
        """Log info message with optional context."""
        self._log(logging.INFO, message, kwargs)

    def warning(self, message: str, **kwargs):
        """Log warning message with optional context."""
        self._log(logging.WARNING, message, kwargs)

    def error(self, message: str, **kwargs):
        """Log error message with optional context."""
        self._log(logging.ERROR, message, kwargs)

    def critical(self, message: str, **kwargs):
        """Log critical message with optional context."""
        self._log(logging.CRITICAL, message, kwargs)

    def _log(self, level: int, message: str, context: dict):
        """Internal logging method with context."""
        if context:
            message = f"{message} | Context: {json.dumps(context, default=str)}"
        self.logger.log(level, message)

    # Metric tracking methods

    def record_login(self):
        """Increment login counter."""
        with self._metrics_lock:
            self.metrics["logins"] += 1

    def record_login_failure(self):
        """Increment failed login counter."""
        with self._metrics_lock:
            self.metrics["login_failures"] += 1

    def record_batch_lookup(self, size: int):
        """Record a batch lookup call and the number of items it carried."""
        with self._metrics_lock:
            self.metrics["batch_lookups"] += 1
            self.metrics["items_looked_up"] += size

    def record_single_lookup(self):
        """Record a single-item lookup call."""
        with self._metrics_lock:
            self.metrics["single_lookups"] += 1
            self.metrics["items_looked_up"] += 1

    def record_auth_retry(self):
        """Record a lookup retried after a forced re-login."""
        with self._metrics_lock:
            self.metrics["auth_retries"] += 1

    def record_error(self, error_type: str):
        """Record an API failure by error class name."""
        with self._metrics_lock:
            errors = self.metrics["errors_by_type"]
            errors[error_type] = errors.get(error_type, 0) + 1

    def get_metrics(self) -> dict:
        """Return current metrics."""
        with self._metrics_lock:
            metrics_copy = dict(self.metrics)
            metrics_copy["errors_by_type"] = dict(self.metrics["errors_by_type"])

        metrics_copy["average_batch_size"] = 0
        if metrics_copy["batch_lookups"] > 0:
            batched_items = metrics_copy["items_looked_up"] - metrics_copy["single_lookups"]
            metrics_copy["average_batch_size"] = round(
                batched_items / metrics_copy["batch_lookups"], 1
            )

        return metrics_copy

    def log_metrics_summary(self):
        """Log a summary of current metrics."""
        metrics = self.get_metrics()

        self.info("=== ConsumerView Session Metrics ===")
        self.info(f"Logins: {metrics['logins']} ({metrics['login_failures']} failed)")
        self.info(
            f"Lookups: {metrics['batch_lookups']} batch, {metrics['single_lookups']} single, "
            f"{metrics['items_looked_up']} items (avg batch {metrics['average_batch_size']})"
        )
        self.info(f"Auth retries: {metrics['auth_retries']}")

        if metrics["errors_by_type"]:
            self.info("Error Types:")
            for error_type, count in metrics["errors_by_type"].items():
                self.info(f"  {error_type}: {count}")


# Global logger instance
_global_logger: Optional[StructuredLogger] = None


def get_logger(
    name: str = "consumerview",
    level: str = "INFO",
    **kwargs
) -> StructuredLogger:
    """
    Get or create the global logger instance.

    Args:
        name: Logger name
        level: Log level (DEBUG, INFO, WARNING, ERROR, CRITICAL)
        **kwargs: Additional arguments passed to StructuredLogger

    Returns:
        StructuredLogger instance
    """
    global _global_logger

    if _global_logger is None:
        _global_logger = StructuredLogger(name=name, level=level, **kwargs)

    return _global_logger


def reset_logger():
    """Reset the global logger (useful for testing)."""
    global _global_logger
    _global_logger = None


def fingerprint(token: Optional[str]) -> str:
    """Short, non-reversible label for a token so it can appear in logs."""
    if not token:
        return "<none>"
    return f"{token[:4]}...({len(token)})"
