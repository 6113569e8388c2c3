"""Settings management using Pydantic for type validation and configuration."""

from __future__ import annotations

import logging
import os
from pathlib import Path
from typing import Any, Optional, cast

import yaml
from pydantic import Field, PrivateAttr, ValidationError, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

logger = logging.getLogger(__name__)

ENV_PREFIX = "FAMILYCAL_"

VALID_WEEK_STARTS = ("sunday", "monday")
VALID_COLUMN_STRATEGIES = ("greedy", "interval_coloring")


class FamilyCalSettings(BaseSettings):
    """Application settings with environment variable and YAML support.

    Precedence (highest first): constructor arguments, ``FAMILYCAL_*``
    environment variables, the YAML config file, field defaults.
    """

    _explicit_args: set = PrivateAttr(default_factory=set)
    _env_vars_set: set = PrivateAttr(default_factory=set)

    # Recurrence expansion
    max_occurrences_per_call: int = Field(
        default=500, ge=1, description="Hard ceiling on dates generated per expansion call"
    )
    include_logistics: bool = Field(
        default=True, description="Derive arrival/drive-time sub-events for recurring series"
    )
    cache_max_entries: int = Field(
        default=256, ge=0, description="Computed-window cache size (0 disables caching)"
    )

    # Time grid geometry
    slot_minutes: int = Field(default=30, ge=1, description="Minutes per grid slot")
    slot_height_px: int = Field(default=32, ge=1, description="Pixel height of one grid slot")
    min_event_height_px: int = Field(
        default=20, ge=0, description="Minimum rendered height of a timed event"
    )
    simplified_threshold_minutes: int = Field(
        default=60, description="Simplified view moves longer timed events to the all-day row"
    )
    initial_scroll_hour: int = Field(
        default=7, ge=0, le=23, description="Hour the grid is scrolled to when opened"
    )
    week_starts_on: str = Field(default="sunday", description="First day of the week view")
    column_strategy: str = Field(
        default="greedy", description="Overlap packing: greedy or interval_coloring"
    )

    # Pointer gestures
    drag_threshold_px: float = Field(
        default=5.0, ge=0, description="Movement separating a click from a drag"
    )
    click_event_minutes: int = Field(
        default=60, ge=1, description="Duration of an event created by a click"
    )
    min_drag_minutes: int = Field(
        default=30, ge=1, description="Minimum duration of an event created by a drag"
    )

    # Logging
    log_level: str = Field(default="INFO", description="Root log level")
    debug: bool = Field(default=False, description="Enable debug logging for familycal modules")

    # File paths
    config_dir: Path = Field(default_factory=lambda: Path.home() / ".config" / "familycal")
    config_file_path: Optional[Path] = Field(
        default=None, description="Explicit YAML config file (FAMILYCAL_CONFIG_FILE_PATH)"
    )

    model_config = SettingsConfigDict(
        env_prefix=ENV_PREFIX,
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore",
        validate_assignment=True,
    )

    def __init__(self, **kwargs: Any) -> None:
        env_vars_set = {
            key[len(ENV_PREFIX):].lower() for key in os.environ if key.startswith(ENV_PREFIX)
        }

        super().__init__(**kwargs)

        self._explicit_args = set(kwargs.keys())
        self._env_vars_set = env_vars_set

        self._load_yaml_config()

    @field_validator("week_starts_on")
    @classmethod
    def _validate_week_start(cls, value: str) -> str:
        value = value.strip().lower()
        if value not in VALID_WEEK_STARTS:
            raise ValueError(f"week_starts_on must be one of {VALID_WEEK_STARTS}, got {value!r}")
        return value

    @field_validator("column_strategy")
    @classmethod
    def _validate_column_strategy(cls, value: str) -> str:
        value = value.strip().lower()
        if value not in VALID_COLUMN_STRATEGIES:
            raise ValueError(
                f"column_strategy must be one of {VALID_COLUMN_STRATEGIES}, got {value!r}"
            )
        return value

    @field_validator("log_level")
    @classmethod
    def _normalize_log_level(cls, value: str) -> str:
        return value.strip().upper()

    def _find_config_file(self) -> Optional[Path]:
        """Locate the YAML config file, explicit path first."""
        if self.config_file_path is not None:
            return self.config_file_path if self.config_file_path.exists() else None

        user_config = self.config_dir / "config.yaml"
        if user_config.exists():
            return user_config

        return None

    def _load_yaml_config(self) -> None:
        """Load configuration from YAML file if it exists."""
        config_file = self._find_config_file()
        if not config_file:
            return

        try:
            with config_file.open(encoding="utf-8") as f:
                config_data = yaml.safe_load(f)
        except (OSError, yaml.YAMLError) as e:
            # Don't fail if YAML loading fails, just continue with defaults/env vars
            logger.warning("Could not load YAML config from %s: %s", config_file, e)
            return

        if not config_data:
            return
        if not isinstance(config_data, dict):
            logger.warning("Ignoring YAML config %s: top level must be a mapping", config_file)
            return

        self._apply_yaml_section(config_data)
        # Nested sections mirror the module layout; flattened into the same fields
        for section in ("recurrence", "layout", "pointer", "logging"):
            nested = config_data.get(section)
            if isinstance(nested, dict):
                self._apply_yaml_section(nested)

        logger.debug("Loaded YAML config from %s", config_file)

    def _apply_yaml_section(self, section: dict[str, Any]) -> None:
        for key, value in section.items():
            if key not in type(self).model_fields:
                continue
            if key in self._explicit_args or key in self._env_vars_set:
                continue
            try:
                setattr(self, key, value)
            except ValidationError as e:
                logger.warning("Ignoring invalid YAML setting %s=%r: %s", key, value, e)

    @property
    def config_file(self) -> Path:
        """Path to the default YAML configuration file."""
        return self.config_dir / "config.yaml"


# Global settings management
_settings_instance: Optional[FamilyCalSettings] = None


def get_settings() -> FamilyCalSettings:
    """Get the global settings instance, creating it lazily if needed.

    Returns:
        FamilyCalSettings: The global settings instance
    """
    if globals()["_settings_instance"] is None:
        globals()["_settings_instance"] = FamilyCalSettings()
    return cast(FamilyCalSettings, globals()["_settings_instance"])


def reset_settings() -> None:
    """Reset the global settings instance (primarily for testing)."""
    globals()["_settings_instance"] = None
