"""
Structured logging system for cratefill.

Provides logging with console and file outputs plus thread-safe run metrics,
so worker threads can report progress through the same handle.
"""

import json
import logging
import sys
import threading
from datetime import datetime
from pathlib import Path
from typing import Optional


class StructuredLogger:
    """
    Logger with support for console and file outputs.
    Tracks run metrics for a backfill run.

    Instances are passed explicitly to the pipeline stages, one per run.
    """

    def __init__(
        self,
        name: str = "cratefill",
        level: str = "INFO",
        log_dir: Optional[Path] = None,
        enable_file: bool = True,
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
        self.logger.propagate = False
        for handler in list(self.logger.handlers):
            self.logger.removeHandler(handler)
            handler.close()

        self._lock = threading.Lock()
        self.metrics = {
            "candidates": 0,
            "already_resolved": 0,
            "processed": 0,
            "journaled": 0,
            "no_update": 0,
            "skipped": 0,
            "errors_by_type": {},
        }

        if enable_console:
            console_handler = logging.StreamHandler(sys.stdout)
            console_handler.setLevel(getattr(logging, level.upper()))
            console_formatter = logging.Formatter(
                fmt='%(asctime)s | %(levelname)-8s | %(name)s | %(message)s',
                datefmt='%Y-%m-%d %H:%M:%S'
            )
            console_handler.setFormatter(console_formatter)
            self.logger.addHandler(console_handler)

        if enable_file:
            if log_dir is None:
                log_dir = Path("logs")
            log_dir.mkdir(parents=True, exist_ok=True)

            log_file = log_dir / f"cratefill_{datetime.now().strftime('%Y%m%d')}.log"
            file_handler = logging.FileHandler(log_file, encoding='utf-8')
            file_handler.setLevel(logging.DEBUG)  # Always log everything to file
            file_formatter = logging.Formatter(
                fmt='%(asctime)s | %(levelname)-8s | %(threadName)s | %(name)s:%(lineno)d | %(message)s',
                datefmt='%Y-%m-%d %H:%M:%S'
            )
            file_handler.setFormatter(file_formatter)
            self.logger.addHandler(file_handler)

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
        if context:
            message = f"{message} | Context: {json.dumps(context, default=str)}"
        self.logger.log(level, message, stacklevel=3)

    def close(self):
        """Detach and close all handlers."""
        for handler in list(self.logger.handlers):
            self.logger.removeHandler(handler)
            handler.close()

    # Metric tracking methods

    def record(self, counter: str, count: int = 1):
        """Increment a run counter."""
        with self._lock:
            self.metrics[counter] += count

    def record_skip(self, error_type: str):
        """Record an item dropped after a failed inspection."""
        with self._lock:
            self.metrics["skipped"] += 1
            errors = self.metrics["errors_by_type"]
            errors[error_type] = errors.get(error_type, 0) + 1

    def get_metrics(self) -> dict:
        """Return a snapshot of the current metrics."""
        with self._lock:
            metrics_copy = dict(self.metrics)
            metrics_copy["errors_by_type"] = dict(self.metrics["errors_by_type"])
        return metrics_copy

    def log_metrics_summary(self):
        """Log a summary of current metrics."""
        metrics = self.get_metrics()

        self.info("=== Backfill Run Metrics ===")
        self.info(
            f"Candidates: {metrics['candidates']} "
            f"({metrics['already_resolved']} already in journal)"
        )
        self.info(
            f"Processed: {metrics['processed']} | "
            f"journaled: {metrics['journaled']} "
            f"(no update needed: {metrics['no_update']}) | "
            f"skipped: {metrics['skipped']}"
        )

        if metrics["errors_by_type"]:
            self.info("Skip reasons:")
            for error_type, count in sorted(metrics["errors_by_type"].items()):
                self.info(f"  {error_type}: {count}")
