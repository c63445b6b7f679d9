"""
Common Utilities

Shared modules used across the operator:
- constants.py - Annotation keys and values (agent wire contract)
- config.py - Configuration dataclasses and YAML loading
- exceptions.py - Custom exception classes
- logging_setup.py - Structured logging setup
- rate_limit.py - Token bucket rate limiter
"""

from .constants import (
    ANNOTATION_OK_TO_REBOOT,
    ANNOTATION_REBOOT_NEEDED,
    ANNOTATION_REBOOT_IN_PROGRESS,
    ANNOTATION_REBOOT_PAUSED,
    TRUE,
    FALSE,
    EVENT_REASON_REBOOT_FAILED,
)
from .config import (
    OperatorConfig,
    ApiSettings,
    CoordinatorSettings,
    HealthSettings,
    LoggingSettings,
    LogFormat,
    load_operator_config,
    load_config_file,
)
from .exceptions import (
    OperatorError,
    ConfigError,
    RepositoryError,
    ListError,
    AnnotationWriteError,
    WatchError,
)
from .logging_setup import (
    setup_logging,
    get_service_logger,
    apply_log_settings,
    log_annotation_write,
    log_coordination,
)
from .rate_limit import TokenBucketRateLimiter

__all__ = [
    # Constants
    "ANNOTATION_OK_TO_REBOOT",
    "ANNOTATION_REBOOT_NEEDED",
    "ANNOTATION_REBOOT_IN_PROGRESS",
    "ANNOTATION_REBOOT_PAUSED",
    "TRUE",
    "FALSE",
    "EVENT_REASON_REBOOT_FAILED",
    # Config
    "OperatorConfig",
    "ApiSettings",
    "CoordinatorSettings",
    "HealthSettings",
    "LoggingSettings",
    "LogFormat",
    "load_operator_config",
    "load_config_file",
    # Exceptions
    "OperatorError",
    "ConfigError",
    "RepositoryError",
    "ListError",
    "AnnotationWriteError",
    "WatchError",
    # Logging
    "setup_logging",
    "get_service_logger",
    "apply_log_settings",
    "log_annotation_write",
    "log_coordination",
    # Rate limiting
    "TokenBucketRateLimiter",
]
