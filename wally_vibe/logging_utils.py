"""
Logging utilities for wally-vibe

All diagnostics go to stderr so the wrapped command keeps stdout to itself.
"""

import logging
import json
import sys
from datetime import datetime, timezone
from typing import Any, Dict, Optional

TEXT_PREFIX = "[wally-vibe]"

_RECORD_ATTRS = frozenset((
    'name', 'msg', 'args', 'levelname', 'levelno', 'pathname',
    'filename', 'module', 'lineno', 'funcName', 'created',
    'msecs', 'relativeCreated', 'thread', 'threadName',
    'processName', 'process', 'getMessage', 'exc_info',
    'exc_text', 'stack_info', 'taskName', 'message',
))


class JSONFormatter(logging.Formatter):
    """JSON formatter for structured logging"""

    def format(self, record: logging.LogRecord) -> str:
        """Format log record as JSON"""
        log_data = {
            "timestamp": datetime.now(timezone.utc).isoformat().replace("+00:00", "Z"),
            "level": record.levelname,
            "logger": record.name,
            "message": record.getMessage(),
            "module": record.module,
            "function": record.funcName,
            "line": record.lineno
        }

        if record.exc_info:
            log_data["exception"] = self.formatException(record.exc_info)

        # Fields passed through extra=
        for key, value in record.__dict__.items():
            if key not in _RECORD_ATTRS:
                log_data[key] = value

        return json.dumps(log_data, ensure_ascii=False, default=str)


class WallyVibeFilter(logging.Filter):
    """Attach device and step context to records that carry it"""

    def filter(self, record: logging.LogRecord) -> bool:
        if hasattr(record, 'device_name'):
            record.device_context = {
                "device_name": record.device_name
            }

        if hasattr(record, 'step'):
            record.step_context = {
                "step": record.step
            }

        return True


def setup_logging(log_level: str = "INFO", log_format: str = "text",
                  log_file: Optional[str] = None) -> None:
    """
    Setup logging for wally-vibe.

    Args:
        log_level: Logging level (DEBUG, INFO, WARNING, ERROR, CRITICAL)
        log_format: Log format ("text", "verbose" or "json")
        log_file: Optional log file path
    """
    root_logger = logging.getLogger()
    root_logger.setLevel(getattr(logging, log_level.upper()))

    root_logger.handlers.clear()

    if log_format.lower() == "json":
        formatter = JSONFormatter()
    elif log_format.lower() == "verbose":
        formatter = logging.Formatter(
            '%(asctime)s - %(levelname)s - %(name)s - %(message)s',
            datefmt='%Y-%m-%d %H:%M:%S'
        )
    else:
        formatter = logging.Formatter(f'{TEXT_PREFIX} %(message)s')

    console_handler = logging.StreamHandler(sys.stderr)
    console_handler.setFormatter(formatter)
    console_handler.addFilter(WallyVibeFilter())
    root_logger.addHandler(console_handler)

    if log_file:
        file_handler = logging.FileHandler(log_file)
        file_handler.setFormatter(formatter)
        file_handler.addFilter(WallyVibeFilter())
        root_logger.addHandler(file_handler)

    # The client library and its transport are chatty at INFO
    logging.getLogger('buttplug').setLevel(logging.WARNING)
    logging.getLogger('websockets').setLevel(logging.WARNING)
    logging.getLogger('asyncio').setLevel(logging.WARNING)


def get_logger(name: str) -> logging.Logger:
    """
    Get logger by name.

    Args:
        name: Logger name

    Returns:
        Logger instance
    """
    return logging.getLogger(name)


def log_phase_start(logger: logging.Logger, phase: str, **kwargs) -> None:
    """
    Log the start of a phase.

    Args:
        logger: Logger instance
        phase: Phase name ("command", "connect", "playback")
        **kwargs: Additional context
    """
    logger.debug(
        f"Starting phase: {phase}",
        extra={
            "phase": phase,
            "phase_action": "start",
            **kwargs
        }
    )


def log_phase_end(logger: logging.Logger, phase: str,
                  duration_ms: Optional[int] = None, success: bool = True,
                  **kwargs) -> None:
    """
    Log the end of a phase.

    Args:
        logger: Logger instance
        phase: Phase name
        duration_ms: Phase duration in milliseconds
        success: Whether phase was successful
        **kwargs: Additional context
    """
    logger.debug(
        f"Completed phase: {phase} (success: {success}, {duration_ms}ms)",
        extra={
            "phase": phase,
            "phase_action": "end",
            "duration_ms": duration_ms,
            "success": success,
            **kwargs
        }
    )


def log_device_command(logger: logging.Logger, device_name: str, step: int,
                       intensity: float) -> None:
    """
    Log an intensity command sent to a device.

    Args:
        logger: Logger instance
        device_name: Device name
        step: Zero-based pattern step index
        intensity: Intensity sent to the device
    """
    logger.debug(
        f"Step {step}: {device_name} -> {intensity:g}",
        extra={
            "device_name": device_name,
            "event_type": "device_command",
            "step": step,
            "intensity": intensity
        }
    )


def log_error(logger: logging.Logger, message: str, error: BaseException,
              context: Optional[Dict[str, Any]] = None) -> None:
    """
    Log a recovered error with context.

    The traceback is only attached at DEBUG level; the console line stays short.

    Args:
        logger: Logger instance
        message: Human readable prefix, e.g. "error trying to vibe"
        error: Exception that occurred
        context: Additional context
    """
    logger.error(
        f"{message}: {error}",
        extra={
            "event_type": "error",
            "error_type": type(error).__name__,
            "error_message": str(error),
            "context": context or {}
        },
        exc_info=error if logger.isEnabledFor(logging.DEBUG) else None
    )


def log_metrics(logger: logging.Logger, metrics: Dict[str, Any]) -> None:
    """
    Log run metrics.

    Args:
        logger: Logger instance
        metrics: Metrics data
    """
    logger.debug(
        f"Run metrics: branch={metrics.get('branch')} total={metrics.get('total_duration_ms')}ms",
        extra={
            "event_type": "metrics",
            "metrics": metrics
        }
    )
