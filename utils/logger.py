"""
Unified Logging Configuration for the Chemistry Grader.

Every module logs through the shared ``logger`` instance defined at the
bottom of this file, which also keeps simple operation counters.
"""

import logging
import os
from datetime import datetime
from logging.handlers import RotatingFileHandler
from pathlib import Path
from typing import Any, Dict, Optional


def setup_logger(name: str, log_file: Optional[str] = None) -> logging.Logger:
    """
    Set up a logger with console and rotating file output.

    Args:
        name: Name of the logger (usually __name__)
        log_file: Optional log file path. If not provided, logs to logs/app.log

    Returns:
        logging.Logger: Configured logger instance
    """
    logger = logging.getLogger(name)

    if not logger.handlers:
        log_level = os.getenv("LOG_LEVEL", "INFO").upper()

        valid_levels = ['DEBUG', 'INFO', 'WARNING', 'ERROR', 'CRITICAL']
        if log_level not in valid_levels:
            log_level = 'INFO'

        logger.setLevel(getattr(logging, log_level, logging.INFO))

        file_formatter = logging.Formatter(
            "%(asctime)s - %(name)s - %(levelname)s - %(threadName)s - %(message)s"
        )
        console_formatter = logging.Formatter("%(levelname)s - %(message)s")

        console_handler = logging.StreamHandler()
        console_handler.setFormatter(console_formatter)
        logger.addHandler(console_handler)

        log_file = log_file or os.getenv("LOG_FILE")
        if log_file is None:
            log_dir = Path("logs")
            log_dir.mkdir(exist_ok=True)
            log_file = log_dir / "app.log"

        file_handler = RotatingFileHandler(
            str(log_file),
            maxBytes=10 * 1024 * 1024,  # 10MB
            backupCount=5,
            delay=True,
            encoding='utf-8'
        )
        file_handler.setFormatter(file_formatter)
        logger.addHandler(file_handler)

        # Don't propagate to root logger
        logger.propagate = False

    return logger


class Logger:
    """Process-wide logger with operation counters."""

    _instance = None

    def __new__(cls):
        if cls._instance is None:
            cls._instance = super().__new__(cls)
            cls._instance._initialized = False
        return cls._instance

    def __init__(self):
        if getattr(self, "_initialized", False):
            return

        self.logger = setup_logger("chemgrader", None)

        self.metrics = {
            "start_time": datetime.now(),
            "api_calls": 0,
            "llm_calls": 0,
            "ocr_operations": 0,
            "grading_operations": 0,
            "degraded_questions": 0,
            "pipeline_runs": 0,
            "pipeline_failures": 0,
            "errors": 0,
            "warnings": 0,
        }

        self._initialized = True

    def get_logger(self) -> logging.Logger:
        """Get the underlying logger instance."""
        return self.logger

    def debug(self, message: str, *args, **kwargs) -> None:
        self.logger.debug(message, *args, **kwargs)

    def info(self, message: str, *args, **kwargs) -> None:
        self.logger.info(message, *args, **kwargs)

    def warning(self, message: str, *args, **kwargs) -> None:
        self.log_metric("warnings")
        self.logger.warning(message, *args, **kwargs)

    def error(self, message: str, *args, **kwargs) -> None:
        self.log_metric("errors")
        self.logger.error(message, *args, **kwargs)

    def critical(self, message: str, *args, **kwargs) -> None:
        self.log_metric("errors")
        self.logger.critical(message, *args, **kwargs)

    def exception(self, message: str, *args, **kwargs) -> None:
        """Log an exception with traceback."""
        self.log_metric("errors")
        self.logger.exception(message, *args, **kwargs)

    def log_error_with_context(self, error: Exception, context: Dict[str, Any]) -> None:
        """Log an error with additional context information.

        Args:
            error: The exception that occurred
            context: Additional context information (submission id, stage, ...)
        """
        self.log_metric("errors")
        self.logger.error(
            f"Error occurred: {type(error).__name__} - {error}",
            extra={'error_context': context},
            exc_info=error,
        )

    def log_metric(self, metric_name: str, value: Any = 1) -> None:
        """Log a metric value."""
        if metric_name in self.metrics:
            if isinstance(self.metrics[metric_name], (int, float)):
                self.metrics[metric_name] += value
            else:
                self.metrics[metric_name] = value

    def log_api_call(
        self, endpoint: str, method: str, status_code: int, duration: float
    ) -> None:
        """Log an outbound provider call.

        Args:
            endpoint: API endpoint
            method: HTTP method
            status_code: Response status code
            duration: Call duration in seconds
        """
        self.log_metric("api_calls")
        self.logger.info(
            f"API Call: {method} {endpoint} - Status: {status_code} - Duration: {duration:.2f}s"
        )

    def log_llm_call(self, purpose: str, model: str, duration: float, success: bool = True) -> None:
        self.log_metric("llm_calls")
        outcome = "ok" if success else "failed"
        self.logger.info(f"LLM call ({purpose}) model={model} {outcome} in {duration:.2f}s")

    def log_ocr_operation(
        self, document: str, success: bool = True, confidence: Optional[float] = None
    ) -> None:
        """Log OCR operation details.

        Args:
            document: Name of the document
            success: Whether extraction was successful
            confidence: Extraction confidence if available
        """
        self.log_metric("ocr_operations")
        if success:
            if confidence is not None:
                self.logger.info(
                    f"OCR successful on {document} - Confidence: {confidence:.2f}"
                )
            else:
                self.logger.info(f"OCR successful on {document}")
        else:
            self.log_metric("errors")
            self.logger.error(f"OCR failed on {document}")

    def log_grading_operation(self, question_id: str, strategy: str, marks: int,
                              max_marks: int, degraded: bool = False) -> None:
        self.log_metric("grading_operations")
        if degraded:
            self.log_metric("degraded_questions")
            self.warning(f"Question {question_id} degraded to manual review ({strategy})")
        else:
            self.logger.debug(f"Question {question_id}: {marks}/{max_marks} via {strategy}")


# Create default logger instance
logger = Logger()
