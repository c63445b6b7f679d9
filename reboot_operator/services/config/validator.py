"""
Configuration Validator

Validates operator configuration before the loop starts.
"""

from urllib.parse import urlparse

from reboot_operator.common.config import OperatorConfig
from reboot_operator.common.exceptions import ConfigError
from reboot_operator.common.logging_setup import get_service_logger

logger = get_service_logger("config.validator")

VALID_LOG_LEVELS = ("DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL")


class ConfigValidator:
    """Validates operator configuration"""

    def validate(self, config: OperatorConfig) -> tuple[bool, list[str]]:
        """
        Validate configuration.

        Args:
            config: Loaded configuration

        Returns:
            Tuple of (is_valid, list of error messages)
        """
        errors: list[str] = []

        errors.extend(self._validate_api(config))
        errors.extend(self._validate_coordinator(config))
        errors.extend(self._validate_health(config))

        if config.logging.level not in VALID_LOG_LEVELS:
            errors.append(f"Unknown log level: {config.logging.level}")

        is_valid = len(errors) == 0

        if not is_valid:
            logger.warning(
                f"Config validation failed: {len(errors)} errors",
                extra={"errors": errors},
            )
        else:
            logger.debug("Config validation passed")

        return is_valid, errors

    def validate_or_raise(self, config: OperatorConfig) -> OperatorConfig:
        """Validate and raise ConfigError listing every problem"""
        is_valid, errors = self.validate(config)
        if not is_valid:
            raise ConfigError("; ".join(errors))
        return config

    def _validate_api(self, config: OperatorConfig) -> list[str]:
        """Validate state store connection settings"""
        errors = []
        api = config.api

        parsed = urlparse(api.url)
        if parsed.scheme not in ("http", "https") or not parsed.netloc:
            errors.append(f"Invalid API URL: {api.url!r}")

        if not api.event_namespace:
            errors.append("Event namespace must not be empty")

        if api.request_timeout_seconds <= 0:
            errors.append("Request timeout must be positive")

        return errors

    def _validate_coordinator(self, config: OperatorConfig) -> list[str]:
        """Validate loop and handshake settings"""
        errors = []
        coordinator = config.coordinator

        if coordinator.poll_qps <= 0:
            errors.append("Poll rate must be positive")

        if coordinator.poll_burst < 1:
            errors.append("Poll burst must be at least 1")

        if coordinator.reboot_timeout_seconds <= 0:
            errors.append("Reboot timeout must be positive")

        if coordinator.max_concurrent_reboots < 1:
            errors.append("max_concurrent_reboots must be at least 1")

        return errors

    def _validate_health(self, config: OperatorConfig) -> list[str]:
        """Validate health endpoint settings"""
        errors = []
        health = config.health

        if health.enabled and (health.port < 1 or health.port > 65535):
            errors.append("Invalid health port number")

        return errors
