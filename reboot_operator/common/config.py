"""
Configuration Dataclasses

Type-safe configuration structures for the operator.
Loaded from config.yaml, with a few environment overrides for deployment.
"""

import os
from dataclasses import dataclass, field, asdict
from enum import Enum
from pathlib import Path
from typing import Any

import yaml

from .constants import IN_CLUSTER_API_URL, SERVICE_ACCOUNT_DIR
from .exceptions import ConfigError

CONFIG_SEARCH_PATHS = [
    "/etc/reboot-operator/config.yaml",
    "/opt/reboot-operator/config.yaml",
    Path(__file__).parent.parent.parent / "config.yaml",
]


class LogFormat(str, Enum):
    """Supported log output formats"""
    JSON = "json"
    TEXT = "text"


@dataclass
class ApiSettings:
    """State store (node API) connection settings"""
    url: str = IN_CLUSTER_API_URL
    token_file: str = f"{SERVICE_ACCOUNT_DIR}/token"
    ca_file: str = f"{SERVICE_ACCOUNT_DIR}/ca.crt"
    verify_tls: bool = True
    event_namespace: str = "default"
    request_timeout_seconds: float = 30.0


@dataclass
class CoordinatorSettings:
    """Reconciliation loop and reboot handshake settings"""
    poll_qps: float = 0.2  # one list per 5 seconds
    poll_burst: int = 1
    reboot_timeout_seconds: float = 3600.0
    # Machines granted per iteration. 1 keeps reboots strictly serialized.
    max_concurrent_reboots: int = 1


@dataclass
class HealthSettings:
    """Health endpoint settings"""
    enabled: bool = True
    host: str = "0.0.0.0"
    port: int = 8090


@dataclass
class LoggingSettings:
    """Log output settings"""
    level: str = "INFO"
    format: LogFormat = LogFormat.JSON


@dataclass
class OperatorConfig:
    """Complete operator configuration"""
    api: ApiSettings = field(default_factory=ApiSettings)
    coordinator: CoordinatorSettings = field(default_factory=CoordinatorSettings)
    health: HealthSettings = field(default_factory=HealthSettings)
    logging: LoggingSettings = field(default_factory=LoggingSettings)

    # Where the config came from (empty when built from defaults)
    source_path: str = ""

    def to_dict(self) -> dict[str, Any]:
        """Convert to dictionary for display"""
        data = asdict(self)
        data["logging"]["format"] = self.logging.format.value
        return data


def _section(data: dict, name: str) -> dict:
    """Return a config section, treating an empty one as defaults"""
    section = data.get(name) or {}
    if not isinstance(section, dict):
        raise ConfigError(f"Section '{name}' must be a mapping, got {type(section).__name__}")
    return section


def _env_int(environ: dict[str, str], name: str) -> int:
    try:
        return int(environ[name])
    except ValueError:
        raise ConfigError(f"{name} must be an integer, got {environ[name]!r}")


def load_operator_config(data: dict, environ: dict[str, str] | None = None) -> OperatorConfig:
    """
    Load OperatorConfig from dictionary (e.g., parsed YAML)

    Raises:
        ConfigError: a section is not a mapping, or an environment
            override does not parse
    """
    environ = os.environ if environ is None else environ

    api_data = _section(data, "api")
    api = ApiSettings(
        url=api_data.get("url", IN_CLUSTER_API_URL),
        token_file=api_data.get("token_file", f"{SERVICE_ACCOUNT_DIR}/token"),
        ca_file=api_data.get("ca_file", f"{SERVICE_ACCOUNT_DIR}/ca.crt"),
        verify_tls=api_data.get("verify_tls", True),
        event_namespace=api_data.get("event_namespace", "default"),
        request_timeout_seconds=float(api_data.get("request_timeout_seconds", 30.0)),
    )

    coordinator_data = _section(data, "coordinator")
    coordinator = CoordinatorSettings(
        poll_qps=float(coordinator_data.get("poll_qps", 0.2)),
        poll_burst=int(coordinator_data.get("poll_burst", 1)),
        reboot_timeout_seconds=float(coordinator_data.get("reboot_timeout_seconds", 3600.0)),
        max_concurrent_reboots=int(coordinator_data.get("max_concurrent_reboots", 1)),
    )

    health_data = _section(data, "health")
    health = HealthSettings(
        enabled=health_data.get("enabled", True),
        host=health_data.get("host", "0.0.0.0"),
        port=int(health_data.get("port", 8090)),
    )

    logging_data = _section(data, "logging")
    try:
        log_format = LogFormat(str(logging_data.get("format", "json")).lower())
    except ValueError:
        raise ConfigError(f"Unknown log format: {logging_data.get('format')}")
    logging_settings = LoggingSettings(
        level=str(logging_data.get("level", "INFO")).upper(),
        format=log_format,
    )

    # Environment overrides
    if environ.get("REBOOT_OPERATOR_API_URL"):
        api.url = environ["REBOOT_OPERATOR_API_URL"]
    if environ.get("REBOOT_OPERATOR_TOKEN_FILE"):
        api.token_file = environ["REBOOT_OPERATOR_TOKEN_FILE"]
    if environ.get("REBOOT_OPERATOR_HEALTH_PORT"):
        health.port = _env_int(environ, "REBOOT_OPERATOR_HEALTH_PORT")
    if environ.get("REBOOT_OPERATOR_MAX_CONCURRENT_REBOOTS"):
        coordinator.max_concurrent_reboots = _env_int(environ, "REBOOT_OPERATOR_MAX_CONCURRENT_REBOOTS")

    return OperatorConfig(
        api=api,
        coordinator=coordinator,
        health=health,
        logging=logging_settings,
    )


def find_config_path() -> str | None:
    """Find configuration file in the standard locations"""
    for path in CONFIG_SEARCH_PATHS:
        path = Path(path)
        if path.exists():
            return str(path)
    return None


def load_config_file(config_path: str | None = None, environ: dict[str, str] | None = None) -> OperatorConfig:
    """
    Load configuration from a YAML file.

    A missing file at a searched location falls back to defaults; a missing
    file that was asked for explicitly is an error.

    Raises:
        ConfigError: file unreadable, not valid YAML, or not a mapping
    """
    path = config_path or find_config_path()
    if path is None:
        return load_operator_config({}, environ)

    try:
        with open(path, "r") as f:
            data = yaml.safe_load(f) or {}
    except FileNotFoundError:
        raise ConfigError(f"Config file not found: {path}")
    except yaml.YAMLError as e:
        raise ConfigError(f"Error parsing {path}: {e}")

    if not isinstance(data, dict):
        raise ConfigError(f"{path} must contain a mapping at the top level")

    try:
        config = load_operator_config(data, environ)
    except (TypeError, ValueError) as e:
        raise ConfigError(f"Invalid value in {path}: {e}")
    config.source_path = str(path)
    return config
