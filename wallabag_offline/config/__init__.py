from __future__ import annotations

from .database import DatabaseConfig
from .settings import AppConfig, RuntimeConfig, Settings, load_config
from .wallabag import WallabagConfig, run_credential_command

__all__ = [
    "AppConfig",
    "DatabaseConfig",
    "RuntimeConfig",
    "Settings",
    "WallabagConfig",
    "load_config",
    "run_credential_command",
]
