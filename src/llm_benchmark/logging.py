"""
Structured logging and error reporting for the LLM Benchmark Toolkit.

Provides:
- structlog configuration (JSON or console rendering)
- Progress reporting for benchmark runs
- Error reporting with request parameters redacted
"""

import sys
import logging
import logging.handlers
from pathlib import Path
from typing import Optional, Dict, Any, Union
from datetime import datetime

import structlog
from structlog.stdlib import LoggerFactory

from .config import BenchmarkSettings


SENSITIVE_KEYS = ("password", "secret", "credential", "api_key", "access_key", "session_token")


class BenchmarkLogger:
    """
    Configures structlog and the standard library handlers it writes through.
    """

    def __init__(self, settings: BenchmarkSettings):
        """
        Initialize logging configuration.

        Args:
            settings: BenchmarkSettings instance with logging settings
        """
        self.settings = settings
        self._configured = False
        self._progress_logger: Optional["ProgressLogger"] = None

    def configure_logging(self):
        """
        Configure structlog processors and the console/file handlers.

        Safe to call more than once; only the first call has an effect.
        """
        if self._configured:
            return

        logging.basicConfig(
            level=getattr(logging, self.settings.log_level),
            format='%(message)s',
            handlers=[]
        )

        processors = [
            structlog.stdlib.filter_by_level,
            structlog.stdlib.add_logger_name,
            structlog.stdlib.add_log_level,
            structlog.stdlib.PositionalArgumentsFormatter(),
            structlog.processors.TimeStamper(fmt="ISO"),
            structlog.processors.StackInfoRenderer(),
            structlog.processors.format_exc_info,
        ]

        if self.settings.log_format == "structured":
            processors.append(structlog.processors.JSONRenderer())
        else:
            processors.append(structlog.dev.ConsoleRenderer(colors=sys.stderr.isatty()))

        structlog.configure(
            processors=processors,
            wrapper_class=structlog.stdlib.BoundLogger,
            logger_factory=LoggerFactory(),
            cache_logger_on_first_use=True,
        )

        self._setup_handlers()
        self._configured = True

        structlog.get_logger(__name__).info(
            "Logging configured",
            log_level=self.settings.log_level,
            log_format=self.settings.log_format,
            log_file=self.settings.log_file
        )

    def _setup_handlers(self):
        """Attach a stderr handler and, if configured, a rotating file handler."""
        root_logger = logging.getLogger()
        root_logger.handlers.clear()
        root_logger.setLevel(getattr(logging, self.settings.log_level))

        # stdout is reserved for command output
        console_handler = logging.StreamHandler(sys.stderr)
        console_handler.setLevel(getattr(logging, self.settings.log_level))
        root_logger.addHandler(console_handler)

        if self.settings.log_file:
            log_file = Path(self.settings.log_file)
            log_file.parent.mkdir(parents=True, exist_ok=True)

            file_handler = logging.handlers.RotatingFileHandler(
                log_file,
                maxBytes=10 * 1024 * 1024,
                backupCount=5
            )
            file_handler.setLevel(logging.DEBUG)
            root_logger.addHandler(file_handler)

    def get_logger(self, name: str) -> structlog.stdlib.BoundLogger:
        """
        Get a structured logger, configuring logging on first use.

        Args:
            name: Logger name (typically __name__)

        Returns:
            Configured structlog BoundLogger instance
        """
        if not self._configured:
            self.configure_logging()

        return structlog.get_logger(name)

    def get_progress_logger(self) -> "ProgressLogger":
        """Return the shared progress logger."""
        if not self._progress_logger:
            self._progress_logger = ProgressLogger(self.get_logger("progress"))

        return self._progress_logger


class ProgressLogger:
    """
    Tracks benchmark runs (or any other long operation) and logs completion
    rate, success rate and an ETA as cells finish.
    """

    def __init__(self, logger=None):
        self.logger = logger or get_logger("progress")
        self._active: Dict[str, Dict[str, Any]] = {}

    def start_operation(
        self,
        operation_id: str,
        operation_type: str,
        total_items: int,
        **context
    ):
        """
        Start tracking an operation.

        Args:
            operation_id: Unique identifier, usually the run ID
            operation_type: Kind of operation, e.g. "benchmark_run"
            total_items: Number of items (cells) to process
            **context: Extra key-value pairs to log
        """
        now = datetime.now()
        self._active[operation_id] = {
            "operation_type": operation_type,
            "total_items": total_items,
            "completed_items": 0,
            "failed_items": 0,
            "start_time": now,
            "last_update": now,
        }

        self.logger.info(
            "Operation started",
            operation_id=operation_id,
            operation_type=operation_type,
            total_items=total_items,
            **context
        )

    def update_progress(
        self,
        operation_id: str,
        completed_delta: int = 0,
        failed_delta: int = 0,
        **context
    ):
        """
        Record newly processed items of an active operation.

        Args:
            operation_id: Operation identifier
            completed_delta: Items that succeeded since the last update
            failed_delta: Items that failed since the last update
            **context: Extra key-value pairs to log
        """
        operation = self._active.get(operation_id)
        if operation is None:
            self.logger.warning("Progress update for unknown operation", operation_id=operation_id)
            return

        operation["completed_items"] += completed_delta
        operation["failed_items"] += failed_delta
        operation["last_update"] = datetime.now()

        processed = operation["completed_items"] + operation["failed_items"]
        total = operation["total_items"]
        elapsed = (operation["last_update"] - operation["start_time"]).total_seconds()

        remaining = total - processed
        eta = None
        if processed > 0 and remaining > 0 and elapsed > 0:
            eta = remaining / (processed / elapsed)

        self.logger.info(
            "Progress update",
            operation_id=operation_id,
            completed_items=operation["completed_items"],
            failed_items=operation["failed_items"],
            total_items=total,
            completion_rate=round(processed / total * 100, 1) if total else 100.0,
            success_rate=round(operation["completed_items"] / processed * 100, 1) if processed else 0.0,
            elapsed_time=round(elapsed, 1),
            estimated_remaining_time=round(eta, 1) if eta is not None else None,
            **context
        )

    def complete_operation(self, operation_id: str, success: bool = True, **context):
        """
        Mark an operation as finished and stop tracking it.

        Args:
            operation_id: Operation identifier
            success: Whether the operation as a whole succeeded
            **context: Extra key-value pairs to log
        """
        operation = self._active.pop(operation_id, None)
        if operation is None:
            self.logger.warning("Completion for unknown operation", operation_id=operation_id)
            return

        processed = operation["completed_items"] + operation["failed_items"]
        total_time = (datetime.now() - operation["start_time"]).total_seconds()

        self.logger.info(
            "Operation completed",
            operation_id=operation_id,
            operation_type=operation["operation_type"],
            success=success,
            completed_items=operation["completed_items"],
            failed_items=operation["failed_items"],
            total_items=operation["total_items"],
            success_rate=round(operation["completed_items"] / processed * 100, 1) if processed else 0.0,
            total_time=round(total_time, 1),
            **context
        )

    def is_active(self, operation_id: str) -> bool:
        return operation_id in self._active


class ErrorReporter:
    """
    Logs errors with a category and enough context to debug them.
    """

    def __init__(self, logger=None):
        self.logger = logger or get_logger("errors")

    def report_api_error(
        self,
        error: Exception,
        operation: str,
        model_id: Optional[str] = None,
        item_id: Optional[str] = None,
        request_params: Optional[Dict[str, Any]] = None,
        **context
    ):
        """
        Report a provider call failure.

        Args:
            error: Exception that occurred
            operation: Operation being performed
            model_id: Model that was called
            item_id: Test case being processed
            request_params: Request parameters, redacted before logging
            **context: Additional context
        """
        error_context = self._base_context("api_error", error, operation=operation, **context)
        if model_id:
            error_context["model_id"] = model_id
        if item_id:
            error_context["item_id"] = item_id
        if request_params:
            error_context["request_params"] = self._sanitize_params(request_params)

        self.logger.error("API error occurred", **error_context)

    def report_storage_error(
        self,
        error: Exception,
        operation: str,
        file_path: Optional[Union[str, Path]] = None,
        **context
    ):
        """Report a persistence failure."""
        error_context = self._base_context("storage_error", error, operation=operation, **context)
        if file_path:
            error_context["file_path"] = str(file_path)

        self.logger.error("Storage error occurred", **error_context, exc_info=error)

    def report_run_error(self, error: Exception, run_id: str, **context):
        """Report an error that moved a benchmark run to the failed state."""
        error_context = self._base_context("run_error", error, run_id=run_id, **context)
        self.logger.error("Benchmark run failed", **error_context, exc_info=error)

    def report_validation_error(
        self,
        error: Exception,
        data_type: str,
        validation_context: Optional[Dict[str, Any]] = None,
        **context
    ):
        """Report invalid benchmark, dataset or model-generated data."""
        error_context = self._base_context("validation_error", error, data_type=data_type, **context)
        if validation_context:
            error_context["validation_context"] = validation_context

        self.logger.error("Validation error occurred", **error_context)

    @staticmethod
    def _base_context(category: str, error: Exception, **context) -> Dict[str, Any]:
        return {
            "error_category": category,
            "error_type": type(error).__name__,
            "error_message": str(error),
            **context
        }

    def _sanitize_params(self, params: Dict[str, Any]) -> Dict[str, Any]:
        """
        Mask values whose key names look like credentials.

        Args:
            params: Original parameters

        Returns:
            Copy of params with sensitive values replaced
        """
        sanitized = {}
        for key, value in params.items():
            key_lower = key.lower()
            if any(sensitive in key_lower for sensitive in SENSITIVE_KEYS):
                sanitized[key] = "***REDACTED***"
            elif isinstance(value, dict):
                sanitized[key] = self._sanitize_params(value)
            else:
                sanitized[key] = value

        return sanitized


def setup_logging(settings: BenchmarkSettings) -> BenchmarkLogger:
    """
    Set up logging for the application.

    Args:
        settings: BenchmarkSettings instance

    Returns:
        Configured BenchmarkLogger instance
    """
    benchmark_logger = BenchmarkLogger(settings)
    benchmark_logger.configure_logging()
    return benchmark_logger


def get_logger(name: str) -> structlog.stdlib.BoundLogger:
    """
    Get a logger instance (convenience function).

    Args:
        name: Logger name

    Returns:
        Structured logger instance
    """
    return structlog.get_logger(name)
