"""
Structured Logging Setup

Consistent logging configuration across all operator components.
Uses JSON format for structured logs in production.
"""

import logging
import sys
import os
from datetime import datetime, timezone
import json

LOG_LEVEL_ENV = "REBOOT_OPERATOR_LOG_LEVEL"
LOG_FORMAT_ENV = "REBOOT_OPERATOR_LOG_FORMAT"


class JsonFormatter(logging.Formatter):
    """JSON log formatter for structured logging"""

    def format(self, record: logging.LogRecord) -> str:
        log_data = {
            "timestamp": datetime.now(timezone.utc).isoformat(),
            "level": record.levelname,
            "service": getattr(record, "service", "unknown"),
            "message": record.getMessage(),
            "logger": record.name,
        }

        # Add exception info if present
        if record.exc_info:
            log_data["exception"] = self.formatException(record.exc_info)

        # Add extra fields
        for key, value in record.__dict__.items():
            if key not in (
                "name", "msg", "args", "levelname", "levelno", "pathname",
                "filename", "module", "exc_info", "exc_text", "stack_info",
                "lineno", "funcName", "created", "msecs", "relativeCreated",
                "thread", "threadName", "processName", "process", "service",
                "message", "taskName",
            ):
                log_data[key] = value

        return json.dumps(log_data, default=str)


class ServiceLoggerAdapter(logging.LoggerAdapter):
    """Logger adapter that adds service name to all logs"""

    def process(self, msg: str, kwargs: dict) -> tuple[str, dict]:
        kwargs.setdefault("extra", {})
        kwargs["extra"]["service"] = self.extra.get("service", "unknown")
        return msg, kwargs


def setup_logging(
    service_name: str,
    log_level: str = "INFO",
    json_format: bool = True,
) -> logging.Logger:
    """
    Set up structured logging for a component.

    Args:
        service_name: Name of the component (e.g., "operator.reconciler")
        log_level: Logging level (DEBUG, INFO, WARNING, ERROR, CRITICAL)
        json_format: Use JSON format (True for production, False for dev)

    Returns:
        Configured logger instance
    """
    numeric_level = getattr(logging, log_level.upper(), logging.INFO)

    logger = logging.getLogger(f"reboot_operator.{service_name}")
    logger.setLevel(numeric_level)

    # Clear existing handlers
    logger.handlers.clear()

    handler = logging.StreamHandler(sys.stdout)
    handler.setLevel(numeric_level)

    if json_format:
        formatter = JsonFormatter()
    else:
        formatter = logging.Formatter(
            "%(asctime)s [%(levelname)s] %(name)s: %(message)s",
            datefmt="%Y-%m-%d %H:%M:%S",
        )

    handler.setFormatter(formatter)
    logger.addHandler(handler)

    # Don't propagate to root logger
    logger.propagate = False

    return logger


# Set once the config file has been read; until then the environment decides
_applied_settings: dict[str, str] = {}


def get_service_logger(service_name: str) -> ServiceLoggerAdapter:
    """
    Get a logger adapter with service context.

    Args:
        service_name: Name of the component

    Returns:
        Logger adapter with service name in all logs
    """
    log_level = _applied_settings.get("level") or os.environ.get(LOG_LEVEL_ENV, "INFO")
    log_format = _applied_settings.get("format") or os.environ.get(LOG_FORMAT_ENV, "json")

    logger = setup_logging(service_name, log_level, log_format.lower() == "json")
    return ServiceLoggerAdapter(logger, {"service": service_name})


def apply_log_settings(log_level: str, log_format: str) -> None:
    """
    Re-level every operator logger created so far.

    Loggers are created at import time from the environment; this lets the
    config file (or --log-level) take over once it has been read. Loggers
    created afterwards pick up the same settings.
    """
    _applied_settings["level"] = log_level.upper()
    _applied_settings["format"] = log_format.lower()

    numeric_level = getattr(logging, log_level.upper(), logging.INFO)
    for name, logger in logging.root.manager.loggerDict.items():
        if not name.startswith("reboot_operator.") or not isinstance(logger, logging.Logger):
            continue
        setup_logging(
            name[len("reboot_operator."):],
            logging.getLevelName(numeric_level),
            log_format.lower() == "json",
        )


# Convenience loggers for common operations
def log_annotation_write(
    logger: logging.Logger,
    machine: str,
    annotations: dict[str, str],
    success: bool = True,
    error: Exception | None = None,
) -> None:
    """Log an annotation patch on a machine"""
    rendered = ", ".join(f"{k}={v}" for k, v in annotations.items())
    if success:
        logger.info(
            f"Set {rendered} on {machine}",
            extra={"machine": machine, "annotations": annotations},
        )
    else:
        logger.warning(
            f"Failed setting {rendered} on {machine}: {error}",
            extra={"machine": machine, "annotations": annotations},
        )


def log_coordination(
    logger: logging.Logger,
    machine: str,
    outcome: str,
    elapsed_seconds: float,
    detail: str = "",
) -> None:
    """Log the end of a reboot coordination attempt"""
    log_method = {
        "completed": logger.info,
        "timed_out": logger.warning,
        "aborted": logger.warning,
    }.get(outcome, logger.info)

    message = f"Coordination for {machine} {outcome} after {elapsed_seconds:.1f}s"
    if detail:
        message = f"{message}: {detail}"

    log_method(
        message,
        extra={
            "machine": machine,
            "outcome": outcome,
            "elapsed_seconds": round(elapsed_seconds, 3),
        },
    )
