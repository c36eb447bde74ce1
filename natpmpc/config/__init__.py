"""Configuration loading for natpmpc."""

from __future__ import annotations

from natpmpc.config.config import (
    ConfigManager,
    get_config,
    init_config,
    reload_config,
    set_config,
)

__all__ = ["ConfigManager", "get_config", "init_config", "reload_config", "set_config"]
