"""Settings management for Tokemon."""

import json
import logging
import sys
from datetime import datetime
from pathlib import Path
from typing import Any, Dict, List, Optional, Tuple

import pytz
from pydantic import Field, field_validator, model_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

from tokemon import __version__

logger = logging.getLogger(__name__)

REFRESH_INTERVAL_PRESETS: Tuple[int, ...] = (30, 60, 120, 300, 600)
VALID_LOG_LEVELS: Tuple[str, ...] = ("DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL")


class LastUsedParams:
    """Manages last used parameters persistence."""

    PERSISTED_FIELDS: Tuple[str, ...] = (
        "refresh_interval",
        "oauth_enabled",
        "jsonl_enabled",
        "alert_threshold",
        "timezone",
        "history_max_age_days",
        "data_path",
    )

    def __init__(self, config_dir: Optional[Path] = None) -> None:
        """Initialize with config directory."""
        self.config_dir = config_dir or Path.home() / ".tokemon"
        self.params_file = self.config_dir / "last_used.json"

    def save(self, settings: "Settings") -> None:
        """Save current settings as last used."""
        try:
            params: Dict[str, Any] = {}
            for field_name in self.PERSISTED_FIELDS:
                value = getattr(settings, field_name, None)
                if value is None:
                    continue
                params[field_name] = str(value) if isinstance(value, Path) else value
            params["timestamp"] = datetime.now().isoformat()

            self.config_dir.mkdir(parents=True, exist_ok=True)

            temp_file = self.params_file.with_suffix(".tmp")
            with open(temp_file, "w") as f:
                json.dump(params, f, indent=2)
            temp_file.replace(self.params_file)

            logger.debug(f"Saved last used params: {params}")

        except Exception as e:
            logger.warning(f"Failed to save last used params: {e}")

    def load(self) -> Dict[str, Any]:
        """Load last used parameters."""
        if not self.params_file.exists():
            return {}

        try:
            with open(self.params_file) as f:
                params = json.load(f)

            params.pop("timestamp", None)

            logger.debug(f"Loaded last used params: {params}")
            return params

        except Exception as e:
            logger.warning(f"Failed to load last used params: {e}")
            return {}

    def clear(self) -> None:
        """Clear last used parameters."""
        try:
            if self.params_file.exists():
                self.params_file.unlink()
                logger.debug("Cleared last used params")
        except Exception as e:
            logger.warning(f"Failed to clear last used params: {e}")

    def exists(self) -> bool:
        """Check if last used params exist."""
        return self.params_file.exists()


class Settings(BaseSettings):
    """Tokemon settings from CLI arguments, TOKEMON_* environment and last used values."""

    model_config = SettingsConfigDict(
        env_prefix="TOKEMON_",
        case_sensitive=False,
        validate_default=True,
        validate_assignment=True,
        extra="ignore",
        cli_parse_args=True,
        cli_prog_name="tokemon",
        cli_kebab_case=True,
        cli_implicit_flags=True,
    )

    refresh_interval: int = Field(
        default=60,
        description="Seconds between usage polls (30, 60, 120, 300 or 600)",
    )

    oauth_enabled: bool = Field(
        default=True, description="Read utilization from the OAuth usage API"
    )

    jsonl_enabled: bool = Field(
        default=True, description="Fall back to Claude Code session logs"
    )

    alert_threshold: int = Field(
        default=80,
        ge=50,
        le=100,
        description="Usage percentage that raises a warning alert (50-100)",
    )

    data_path: Optional[Path] = Field(
        default=None, description="Session log root (default: ~/.claude/projects)"
    )

    credentials_path: Optional[Path] = Field(
        default=None,
        description="Claude Code credentials file (default: ~/.claude/.credentials.json)",
    )

    history_path: Optional[Path] = Field(
        default=None,
        description="Usage history file (default: ~/.tokemon/usage_history.json)",
    )

    history_max_age_days: int = Field(
        default=30, ge=1, description="Days of usage history to keep"
    )

    timezone: str = Field(
        default="UTC", description="Timezone for analytics buckets (e.g. Europe/Warsaw)"
    )

    log_level: str = Field(default="INFO", description="Logging level")

    log_file: Optional[Path] = Field(default=None, description="Log file path")

    once: bool = Field(default=False, description="Fetch once, print JSON and exit")

    debug: bool = Field(default=False, description="Enable debug logging")

    version: bool = Field(default=False, description="Show version information")

    clear: bool = Field(default=False, description="Clear saved configuration")

    @field_validator("refresh_interval")
    @classmethod
    def validate_refresh_interval(cls, v: int) -> int:
        if v not in REFRESH_INTERVAL_PRESETS:
            raise ValueError(
                f"Invalid refresh interval: {v}. "
                f"Must be one of: {', '.join(str(p) for p in REFRESH_INTERVAL_PRESETS)}"
            )
        return v

    @field_validator("timezone")
    @classmethod
    def validate_timezone(cls, v: str) -> str:
        """Validate timezone."""
        try:
            pytz.timezone(v)
        except pytz.exceptions.UnknownTimeZoneError:
            raise ValueError(f"Invalid timezone: {v}")
        return v

    @field_validator("log_level", mode="before")
    @classmethod
    def validate_log_level(cls, v: Any) -> str:
        """Validate and normalize log level."""
        if isinstance(v, str):
            v_upper = v.upper()
            if v_upper not in VALID_LOG_LEVELS:
                raise ValueError(f"Invalid log level: {v}")
            return v_upper
        return v

    @model_validator(mode="after")
    def validate_sources(self) -> "Settings":
        if not self.oauth_enabled and not self.jsonl_enabled:
            raise ValueError("At least one data source (OAuth or JSONL) must stay enabled")
        return self

    @classmethod
    def settings_customise_sources(
        cls,
        settings_cls: Any,
        init_settings: Any,
        env_settings: Any,
        dotenv_settings: Any,
        file_secret_settings: Any,
    ) -> Tuple[Any, ...]:
        """Custom sources - CLI, init and environment only."""
        return (init_settings, env_settings)

    @staticmethod
    def _cli_fields(argv: Optional[List[str]]) -> List[str]:
        """Field names given explicitly on the command line."""
        provided = []
        for arg in argv or []:
            if not arg.startswith("--"):
                continue
            name = arg[2:].split("=", 1)[0].replace("-", "_")
            if name.startswith("no_") and name[3:] in Settings.model_fields:
                name = name[3:]
            if name in Settings.model_fields:
                provided.append(name)
        return provided

    @classmethod
    def load_with_last_used(cls, argv: Optional[List[str]] = None) -> "Settings":
        """Load settings with last used params support.

        Precedence is CLI arguments, then last used values, then defaults.
        ``--clear`` drops the saved values first.
        """
        if argv and "--version" in argv:
            print(f"tokemon {__version__}")
            sys.exit(0)

        last_used = LastUsedParams()

        if argv and "--clear" in argv:
            last_used.clear()
            last_params: Dict[str, Any] = {}
        else:
            last_params = last_used.load()

        settings = cls(_cli_parse_args=argv or [])

        cli_provided = set(cls._cli_fields(argv))
        for key, value in last_params.items():
            if key in cli_provided or key not in cls.model_fields:
                continue
            try:
                setattr(settings, key, value)
            except ValueError as e:
                logger.warning(f"Ignoring saved value for {key}: {e}")

        if settings.debug:
            settings.log_level = "DEBUG"

        last_used.save(settings)
        return settings
