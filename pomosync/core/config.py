"""
Configuration management for pomosync.

This module handles loading, validating, and providing access to the
application configuration stored in config.yaml, with sensitive values
overridable from environment variables (a .env file is honoured).

The configuration file contains:
    - Google OAuth client credentials and API endpoints
    - Location of the local SQLite task store
    - Sync scheduler timings (cooldown, debounce, periodic interval)
    - Network timeout and retry policy
    - Logging preferences
    - Location of the OAuth token file

Configuration File Location:
    1. The path passed with --config
    2. ./config.yaml
    3. ~/.pomosync/config.yaml
    When no file is found every section falls back to its defaults.

Environment Overrides:
    POMOSYNC_CLIENT_ID, POMOSYNC_CLIENT_SECRET, POMOSYNC_REDIRECT_URI,
    POMOSYNC_DB_PATH, POMOSYNC_LOG_LEVEL

Example config.yaml:
    remote:
      client_id: "1234.apps.googleusercontent.com"
      client_secret: "your_client_secret_here"
      redirect_uri: "http://localhost:8080/callback"

    sync:
      cooldown: 30
      periodic_interval: 600

    logging:
      level: "INFO"
      file: "pomosync.log"
"""

import os
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any

import yaml
from dotenv import find_dotenv, load_dotenv

from pomosync.core.exceptions import ConfigError


CONFIG_FILENAME = "config.yaml"
DEFAULT_CONFIG_DIR = Path.home() / ".pomosync"

TASKS_SCOPE = "https://www.googleapis.com/auth/tasks"


@dataclass(frozen=True)
class RemoteConfig:
    """
    Remote task service (Google Tasks) configuration.

    Attributes:
        client_id: OAuth client id from the Google Cloud console.
        client_secret: OAuth client secret.
        redirect_uri: Redirect URI registered for the OAuth client.
        scope: OAuth scope requested at login.
        api_base_url: Base URL of the Tasks REST API.
        token_url: OAuth token endpoint (code exchange and refresh).
        auth_url: OAuth consent page.
        tasklist: Task list that is kept in sync ("@default" is the user's primary list).
    """
    client_id: str = ""
    client_secret: str = ""
    redirect_uri: str = "http://localhost:8080/callback"
    scope: str = TASKS_SCOPE
    api_base_url: str = "https://tasks.googleapis.com/tasks/v1"
    token_url: str = "https://oauth2.googleapis.com/token"
    auth_url: str = "https://accounts.google.com/o/oauth2/v2/auth"
    tasklist: str = "@default"


@dataclass(frozen=True)
class StorageConfig:
    """
    Local storage configuration.

    Attributes:
        database_path: SQLite file holding the local tasks.
    """
    database_path: Path = DEFAULT_CONFIG_DIR / "tasks.db"


@dataclass(frozen=True)
class SyncConfig:
    """
    Sync scheduler timings, all in seconds.

    Attributes:
        cooldown: Minimum gap between two passes of any origin.
        debounce: Quiet period after the last local change before an auto pass.
        auto_interval: Minimum gap since the last pass for an auto pass to fire.
        periodic_interval: Interval of the background periodic pass.
        token_max_age: Age after which the access token is refreshed before a pass.
        success_reset: Delay before a success status returns to idle.
        error_reset: Delay before an error status returns to idle.
    """
    cooldown: float = 30.0
    debounce: float = 8.0
    auto_interval: float = 120.0
    periodic_interval: float = 600.0
    token_max_age: float = 3000.0
    success_reset: float = 3.0
    error_reset: float = 5.0


@dataclass(frozen=True)
class NetworkConfig:
    """
    HTTP behaviour for the remote client.

    Attributes:
        request_timeout: Per-call timeout in seconds.
        max_retries: Attempts for a call failing with a transient network error.
        retry_delay: Initial delay between attempts.
        backoff: Delay multiplier for exponential backoff.
        max_delay: Upper bound of a single delay.
        jitter: Fraction of the delay added or removed at random.
        user_agent: User-Agent header sent with every request.
    """
    request_timeout: float = 30.0
    max_retries: int = 3
    retry_delay: float = 1.0
    backoff: float = 2.0
    max_delay: float = 30.0
    jitter: float = 0.5
    user_agent: str = "pomosync/0.3.0"


@dataclass(frozen=True)
class LoggingConfig:
    """Logging preferences (see pomosync.core.logger.setup_logging)."""
    level: str = "INFO"
    file: str | None = None
    max_size: str = "10MB"
    backup_count: int = 3
    console_output: bool = True
    colored_output: bool = True


@dataclass(frozen=True)
class SecurityConfig:
    """
    Attributes:
        token_storage_path: JSON file holding the OAuth tokens (mode 600).
    """
    token_storage_path: Path = DEFAULT_CONFIG_DIR / "tokens.json"


@dataclass(frozen=True)
class Config:
    """
    Complete application configuration.

    Created by load_config() and treated as immutable.

    Example:
        config = load_config()
        print(f"Tasks stored in: {config.storage.database_path}")
        print(f"Cooldown: {config.sync.cooldown}s")
    """
    remote: RemoteConfig = field(default_factory=RemoteConfig)
    storage: StorageConfig = field(default_factory=StorageConfig)
    sync: SyncConfig = field(default_factory=SyncConfig)
    network: NetworkConfig = field(default_factory=NetworkConfig)
    logging: LoggingConfig = field(default_factory=LoggingConfig)
    security: SecurityConfig = field(default_factory=SecurityConfig)
    source: Path | None = None

    def config_directory(self) -> Path:
        """Directory used to resolve relative paths (log file)."""
        if self.source is not None:
            return self.source.parent
        return DEFAULT_CONFIG_DIR


_SECTIONS = ("remote", "storage", "sync", "network", "logging", "security")

_ENV_OVERRIDES = {
    "POMOSYNC_CLIENT_ID": ("remote", "client_id"),
    "POMOSYNC_CLIENT_SECRET": ("remote", "client_secret"),
    "POMOSYNC_REDIRECT_URI": ("remote", "redirect_uri"),
    "POMOSYNC_DB_PATH": ("storage", "database_path"),
    "POMOSYNC_LOG_LEVEL": ("logging", "level"),
}

_LOG_LEVELS = ("DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL")


def find_config_file(config_path: Path | None = None) -> Path | None:
    """
    Locate the configuration file.

    An explicit path must exist; otherwise the working directory and the
    user configuration directory are searched in that order.
    """
    if config_path is not None:
        if not config_path.exists():
            raise ConfigError(
                f"Configuration file not found: {config_path}",
                details={"file_path": str(config_path)}
            )
        return config_path

    for candidate in (Path.cwd() / CONFIG_FILENAME, DEFAULT_CONFIG_DIR / CONFIG_FILENAME):
        if candidate.exists():
            return candidate
    return None


def load_config(config_path: Path | None = None, use_env: bool = True) -> Config:
    """
    Load and validate configuration from config.yaml and the environment.

    Args:
        config_path: Optional explicit path to the config file.
        use_env: Apply POMOSYNC_* environment overrides (a .env file in the
                 working directory is loaded first).

    Returns:
        Config: A frozen dataclass containing all configuration values.

    Raises:
        ConfigError: If an explicit file is missing, the YAML is invalid,
                     or a value has the wrong type or range.
    """
    path = find_config_file(config_path)
    raw_config: dict[str, Any] = {}

    if path is not None:
        raw_config = _read_yaml(path)

    if use_env:
        load_dotenv(find_dotenv(usecwd=True))
        _apply_environment(raw_config)

    _validate_config(raw_config)

    return Config(
        remote=_parse_remote_config(raw_config.get("remote") or {}),
        storage=_parse_storage_config(raw_config.get("storage") or {}),
        sync=_parse_sync_config(raw_config.get("sync") or {}),
        network=_parse_network_config(raw_config.get("network") or {}),
        logging=_parse_logging_config(raw_config.get("logging") or {}),
        security=_parse_security_config(raw_config.get("security") or {}),
        source=path,
    )


def _read_yaml(path: Path) -> dict[str, Any]:
    try:
        with open(path, "r", encoding="utf-8") as f:
            content = f.read()
    except IOError as e:
        raise ConfigError(
            f"Failed to read configuration file: {e}",
            details={"file_path": str(path), "original_error": str(e)}
        ) from e

    try:
        raw_config = yaml.safe_load(content)
    except yaml.YAMLError as e:
        raise ConfigError(
            f"Invalid YAML syntax in configuration file: {e}",
            details={"file_path": str(path), "original_error": str(e)}
        ) from e

    # An empty file parses to None
    if raw_config is None:
        return {}

    if not isinstance(raw_config, dict):
        raise ConfigError(
            "Configuration file must contain a YAML dictionary",
            details={"file_path": str(path)}
        )
    return raw_config


def _apply_environment(raw_config: dict[str, Any]) -> None:
    for env_var, (section, key) in _ENV_OVERRIDES.items():
        value = os.getenv(env_var)
        if value:
            section_data = raw_config.get(section)
            if not isinstance(section_data, dict):
                section_data = {}
                raw_config[section] = section_data
            section_data[key] = value


def _validate_config(raw_config: dict[str, Any]) -> None:
    for section in _SECTIONS:
        value = raw_config.get(section)
        if value is not None and not isinstance(value, dict):
            raise ConfigError(
                f"Section '{section}' must be a dictionary",
                details={"section": section}
            )


def _string(section: dict[str, Any], name: str, key: str, default: str) -> str:
    value = section.get(key, default)
    if value is None:
        return default
    if not isinstance(value, str):
        raise ConfigError(
            f"'{name}.{key}' must be a string",
            details={"field": f"{name}.{key}", "value": value}
        )
    return value.strip()


def _number(section: dict[str, Any], name: str, key: str, default: float, minimum: float = 0) -> float:
    value = section.get(key, default)
    # bool is an int subclass; reject it explicitly
    if isinstance(value, bool) or not isinstance(value, (int, float)) or value < minimum:
        raise ConfigError(
            f"'{name}.{key}' must be a number >= {minimum}",
            details={"field": f"{name}.{key}", "value": value}
        )
    return float(value)


def _integer(section: dict[str, Any], name: str, key: str, default: int, minimum: int = 0) -> int:
    value = section.get(key, default)
    if isinstance(value, bool) or not isinstance(value, int) or value < minimum:
        raise ConfigError(
            f"'{name}.{key}' must be an integer >= {minimum}",
            details={"field": f"{name}.{key}", "value": value}
        )
    return value


def _path(section: dict[str, Any], name: str, key: str, default: Path) -> Path:
    value = section.get(key)
    if value is None:
        return default
    if not isinstance(value, str) or not value.strip():
        raise ConfigError(
            f"'{name}.{key}' must be a non-empty string path",
            details={"field": f"{name}.{key}"}
        )
    return Path(value.strip()).expanduser()


def _parse_remote_config(section: dict[str, Any]) -> RemoteConfig:
    defaults = RemoteConfig()
    return RemoteConfig(
        client_id=_string(section, "remote", "client_id", defaults.client_id),
        client_secret=_string(section, "remote", "client_secret", defaults.client_secret),
        redirect_uri=_string(section, "remote", "redirect_uri", defaults.redirect_uri),
        scope=_string(section, "remote", "scope", defaults.scope),
        api_base_url=_string(section, "remote", "api_base_url", defaults.api_base_url).rstrip("/"),
        token_url=_string(section, "remote", "token_url", defaults.token_url),
        auth_url=_string(section, "remote", "auth_url", defaults.auth_url),
        tasklist=_string(section, "remote", "tasklist", defaults.tasklist) or defaults.tasklist,
    )


def _parse_storage_config(section: dict[str, Any]) -> StorageConfig:
    defaults = StorageConfig()
    return StorageConfig(
        database_path=_path(section, "storage", "database_path", defaults.database_path)
    )


def _parse_sync_config(section: dict[str, Any]) -> SyncConfig:
    defaults = SyncConfig()
    return SyncConfig(
        cooldown=_number(section, "sync", "cooldown", defaults.cooldown),
        debounce=_number(section, "sync", "debounce", defaults.debounce),
        auto_interval=_number(section, "sync", "auto_interval", defaults.auto_interval),
        periodic_interval=_number(section, "sync", "periodic_interval", defaults.periodic_interval, minimum=1),
        token_max_age=_number(section, "sync", "token_max_age", defaults.token_max_age),
        success_reset=_number(section, "sync", "success_reset", defaults.success_reset),
        error_reset=_number(section, "sync", "error_reset", defaults.error_reset),
    )


def _parse_network_config(section: dict[str, Any]) -> NetworkConfig:
    defaults = NetworkConfig()
    jitter = _number(section, "network", "jitter", defaults.jitter)
    if jitter > 1:
        raise ConfigError(
            "'network.jitter' must be between 0 and 1",
            details={"field": "network.jitter", "value": jitter}
        )
    return NetworkConfig(
        request_timeout=_number(section, "network", "request_timeout", defaults.request_timeout, minimum=1),
        max_retries=_integer(section, "network", "max_retries", defaults.max_retries, minimum=1),
        retry_delay=_number(section, "network", "retry_delay", defaults.retry_delay),
        backoff=_number(section, "network", "backoff", defaults.backoff, minimum=1),
        max_delay=_number(section, "network", "max_delay", defaults.max_delay),
        jitter=jitter,
        user_agent=_string(section, "network", "user_agent", defaults.user_agent),
    )


def _parse_logging_config(section: dict[str, Any]) -> LoggingConfig:
    defaults = LoggingConfig()
    level = _string(section, "logging", "level", defaults.level).upper()
    if level not in _LOG_LEVELS:
        raise ConfigError(
            f"'logging.level' must be one of {', '.join(_LOG_LEVELS)}",
            details={"field": "logging.level", "value": level}
        )

    log_file = section.get("file", defaults.file)
    if log_file is not None and not isinstance(log_file, str):
        raise ConfigError(
            "'logging.file' must be a string path or null",
            details={"field": "logging.file"}
        )

    return LoggingConfig(
        level=level,
        file=log_file or None,
        max_size=_string(section, "logging", "max_size", defaults.max_size),
        backup_count=_integer(section, "logging", "backup_count", defaults.backup_count),
        console_output=bool(section.get("console_output", defaults.console_output)),
        colored_output=bool(section.get("colored_output", defaults.colored_output)),
    )


def _parse_security_config(section: dict[str, Any]) -> SecurityConfig:
    defaults = SecurityConfig()
    return SecurityConfig(
        token_storage_path=_path(section, "security", "token_storage_path", defaults.token_storage_path)
    )
