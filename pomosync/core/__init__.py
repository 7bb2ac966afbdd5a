"""
Core module for pomosync.

This module provides the foundational components used throughout the application:
    - exceptions: Custom exception classes for error handling
    - config: Configuration loading and validation
    - database: Thread-safe SQLite task store
    - logger: Colored console and rotating file logging

Usage:
    from pomosync.core import (
        Config, load_config,
        TaskStore,
        setup_logging, get_logger,
        PomoSyncError, ConfigError, DatabaseError
    )
"""

from pomosync.core.config import (
    Config,
    LoggingConfig,
    NetworkConfig,
    RemoteConfig,
    SecurityConfig,
    StorageConfig,
    SyncConfig,
    load_config,
)
from pomosync.core.database import TaskStore
from pomosync.core.exceptions import (
    AuthError,
    ConfigError,
    DatabaseError,
    NetworkError,
    PartialFailureError,
    PerTaskError,
    PomoSyncError,
    RemoteTaskError,
    TaskNotFoundError,
    ValidationError,
)
from pomosync.core.logger import (
    configure_from_config,
    get_logger,
    setup_logging,
    shutdown_logging,
)

__all__ = [
    # Config
    "Config",
    "RemoteConfig",
    "StorageConfig",
    "SyncConfig",
    "NetworkConfig",
    "LoggingConfig",
    "SecurityConfig",
    "load_config",
    # Database
    "TaskStore",
    # Exceptions
    "PomoSyncError",
    "ConfigError",
    "DatabaseError",
    "TaskNotFoundError",
    "ValidationError",
    "RemoteTaskError",
    "AuthError",
    "NetworkError",
    "PerTaskError",
    "PartialFailureError",
    # Logging
    "setup_logging",
    "configure_from_config",
    "get_logger",
    "shutdown_logging",
]
