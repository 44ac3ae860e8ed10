"""
Config persistence.

The host owns the config: it is loaded once at startup and written back
only on an explicit settings save or when a sync stamps its time.
"""

from __future__ import annotations

import logging
from abc import ABC, abstractmethod
from pathlib import Path
from typing import Any, Optional

import yaml
from pydantic import ValidationError

from . import TMCLOUD_HOME
from .models import SyncConfig

logger = logging.getLogger("tmcloud.config")


class ConfigStore(ABC):
    """Abstract config persistence."""

    @abstractmethod
    def load(self) -> SyncConfig:
        """Load the config, falling back to defaults."""

    @abstractmethod
    def save(self, config: SyncConfig) -> None:
        """Persist the config."""

    def update(self, **changes: Any) -> SyncConfig:
        """Reload the stored config, change only the given fields, and save.

        Another process may have saved settings since this one loaded
        them; those are kept.

        Returns:
            The config as saved.
        """
        config = self.load().model_copy(update=changes)
        self.save(config)
        return config


class YamlConfigStore(ConfigStore):
    """Config kept in ``<home>/config/config.yaml``."""

    def __init__(self, home: Optional[Path] = None):
        self.home = (home or Path(TMCLOUD_HOME)).expanduser()
        self.path = self.home / "config" / "config.yaml"

    def load(self) -> SyncConfig:
        if self.path.exists():
            try:
                data = yaml.safe_load(self.path.read_text(encoding="utf-8")) or {}
                return SyncConfig(**data)
            except (yaml.YAMLError, ValidationError, TypeError) as exc:
                logger.warning("Failed to load config: %s - using defaults", exc)
        return SyncConfig()

    def save(self, config: SyncConfig) -> None:
        self.path.parent.mkdir(parents=True, exist_ok=True)
        data = config.model_dump(mode="json")
        self.path.write_text(
            yaml.dump(data, default_flow_style=False), encoding="utf-8"
        )
        logger.info("Configuration saved")
