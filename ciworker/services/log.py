import logging
import sys
from logging.handlers import RotatingFileHandler
from pathlib import Path
from typing import Dict, Any, Optional


def _format_context(context: Dict[str, Any]) -> str:
    return " | ".join(f"{k}={v}" for k, v in context.items())

def _configure_handlers(log_file: Optional[str]):
    """Configure handlers at the root level"""
    root_logger = logging.getLogger()
    root_logger.setLevel(logging.INFO)

    formatter = logging.Formatter(
        '%(asctime)s | %(levelname)-8s | %(name)-40s | %(message)s'
    )

    # Console handler
    console_handler = logging.StreamHandler(sys.stdout)
    console_handler.setFormatter(formatter)
    root_logger.addHandler(console_handler)

    # File handler if specified
    if log_file:
        Path(log_file).parent.mkdir(parents=True, exist_ok=True)
        file_handler = RotatingFileHandler(
            log_file,
            maxBytes=10 * 1024 * 1024,  # 10MB
            backupCount=5,
            encoding='utf-8'
        )
        file_handler.setFormatter(formatter)
        root_logger.addHandler(file_handler)


_handlers_configured = False


def configure_logging(log_file: Optional[str] = None) -> None:
    """Install the worker's root handlers once per process"""
    global _handlers_configured
    if _handlers_configured:
        return
    _configure_handlers(log_file)
    _handlers_configured = True


class StructuredLogger:
    def __init__(self, name: str, level: str = "INFO", context: Optional[Dict[str, Any]] = None):
        """
        Create a hierarchical logger with parent-child relationships
        Example:
        - ciworker.providers (parent)
          - ciworker.providers.docker (child)
            - ciworker.providers.docker.lifecycle (grandchild)

        Context given here is appended to every line, after the per-call context.
        """
        self._logger = logging.getLogger(name)
        self._logger.setLevel(getattr(logging, level))
        self._logger.propagate = True  # Allow propagation to parent loggers
        self._context = dict(context or {})

    @property
    def name(self) -> str:
        return self._logger.name

    def bind(self, **context: Any) -> "StructuredLogger":
        """Return a logger for the same name that always carries ``context``"""
        merged = dict(self._context)
        merged.update(context)
        return StructuredLogger(self._logger.name, logging.getLevelName(self._logger.level), merged)

    def info(self, message: str, context: Optional[Dict[str, Any]] = None):
        self._log(logging.INFO, message, context)

    def error(self, message: str, context: Optional[Dict[str, Any]] = None):
        self._log(logging.ERROR, message, context)

    def debug(self, message: str, context: Optional[Dict[str, Any]] = None):
        self._log(logging.DEBUG, message, context)

    def warning(self, message: str, context: Optional[Dict[str, Any]] = None):
        self._log(logging.WARNING, message, context)

    def _log(self, level: int, message: str, context: Optional[Dict[str, Any]]):
        merged = dict(context or {})
        for key, value in self._context.items():
            merged.setdefault(key, value)

        # Convert context to string only if present
        if merged:
            message = f"{message} | {_format_context(merged)}"

        self._logger.log(level, message)


def get_logger(name: str, **context: Any) -> StructuredLogger:
    """Factory function to get a hierarchical logger"""
    return StructuredLogger(name, context=context)
