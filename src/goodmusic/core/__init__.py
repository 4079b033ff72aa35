"""Core infrastructure layer - no business logic dependencies.

This module provides foundation-level services:
- Configuration management (TOML + .env overrides)
- Database connections and schema migrations (SQLite)
- Stable path identifiers (doc://, cache://)
- Console and log output (Rich, loguru)
"""

# Configuration
from .config import (
    Config,
    PathsConfig,
    LibraryConfig,
    MetadataConfig,
    SyncConfig,
    PlaybackConfig,
    LoggingConfig,
    load_config,
    get_config_dir,
    get_config_path,
    get_data_dir,
    get_cache_dir,
    create_default_config,
    ensure_directories,
)

# Database
from .database import get_db_connection, init_database, migrate_database

# Paths
from .paths import PathCodec, is_path_within_root

# Console and logging
from .console import get_console, safe_print
from .output import configure_logging, setup_loguru, log

__all__ = [
    # Configuration
    "Config",
    "PathsConfig",
    "LibraryConfig",
    "MetadataConfig",
    "SyncConfig",
    "PlaybackConfig",
    "LoggingConfig",
    "load_config",
    "get_config_dir",
    "get_config_path",
    "get_data_dir",
    "get_cache_dir",
    "create_default_config",
    "ensure_directories",
    # Database
    "get_db_connection",
    "init_database",
    "migrate_database",
    # Paths
    "PathCodec",
    "is_path_within_root",
    # Console and logging
    "get_console",
    "safe_print",
    "configure_logging",
    "setup_loguru",
    "log",
]
