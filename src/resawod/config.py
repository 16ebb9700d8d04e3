"""Runtime settings and the booking configuration file.

Two layers:

* ``Settings`` - process-level knobs loaded from ``RESAWOD_*`` environment
  variables (or a ``.env`` file): paths, timezone, retry pacing, HTTP server.
* ``BookingConfig`` - the TOML file listing users and the slot to book for
  each weekday. Parsed with tomllib and validated with pydantic.
"""

import tomllib
from datetime import datetime, time
from pathlib import Path
from zoneinfo import ZoneInfo

from pydantic import BaseModel, Field, ValidationError, field_validator
from pydantic_settings import BaseSettings

from resawod.errors import ConfigError


class Settings(BaseSettings):
    """Scheduler settings loaded from environment variables.

    For local development, create a .env file in the project root.
    """

    config_path: str = Field(
        default="config.toml",
        description="Path to the TOML booking configuration",
    )
    state_file: str | None = Field(
        default=None,
        description="Booked-slot ledger path (defaults to scheduler_state.json beside the config)",
    )
    timezone: str = Field(
        default="Europe/Paris",
        description="Timezone the provider opens booking windows in",
    )

    # Pacing
    retry_delay_seconds: float = Field(
        default=60,
        description="Delay before retrying a failed booking attempt",
    )
    watcher_active_interval_seconds: float = Field(
        default=60,
        description="Watcher interval while any user has waiting-list entries",
    )
    watcher_idle_interval_seconds: float = Field(
        default=3600,
        description="Watcher interval while nobody is on a waiting list",
    )

    # Nubapp API
    api_base: str = Field(
        default="https://sport.nubapp.com/api/v4",
        description="Nubapp API base URL",
    )
    request_timeout_seconds: float = Field(
        default=30,
        description="Timeout for a single HTTP request to the provider",
    )

    # Status page
    host: str = Field(default="0.0.0.0", description="Status page listen host")
    port: int = Field(default=3009, description="Status page listen port")

    # Logging
    log_json: bool = Field(
        default=False,
        description="Output logs in JSON format (for production)",
    )
    log_level: str = Field(
        default="INFO",
        description="Log level (DEBUG, INFO, WARNING, ERROR, CRITICAL)",
    )

    model_config = {
        "env_prefix": "RESAWOD_",
        "case_sensitive": False,
        "env_file": ".env",
        "env_file_encoding": "utf-8",
        "extra": "ignore",
    }

    @property
    def tz(self) -> ZoneInfo:
        return ZoneInfo(self.timezone)

    def resolved_state_file(self) -> Path:
        """Ledger path, defaulting to a file next to the booking config."""
        if self.state_file:
            return Path(self.state_file)
        return Path(self.config_path).parent / "scheduler_state.json"


class AppConfig(BaseModel):
    """Gym identifiers on the Nubapp platform."""

    application_id: str
    category_activity_id: str

    @field_validator("application_id", "category_activity_id", mode="before")
    @classmethod
    def _stringify(cls, value):
        return str(value)


class UserConfig(BaseModel):
    """Credentials and the weekdays a user wants booked."""

    name: str
    login: str
    password: str
    slots: list[str] = []

    model_config = {"frozen": True}


class SlotConfig(BaseModel):
    """The slot to book on a weekday: start time and optional activity filter."""

    time: str  # "18:00" or "18:00:00", matched as a substring of the slot start
    activity: str | None = None

    model_config = {"frozen": True}

    @property
    def activity_filter(self) -> str | None:
        """Activity filter, with an empty string meaning no filter."""
        return self.activity or None

    def parsed_time(self) -> time:
        """Parse ``time`` as HH:MM:SS or HH:MM.

        Raises:
            ValueError: If the value matches neither format.
        """
        return parse_slot_time(self.time)


class BookingConfig(BaseModel):
    """Contents of the TOML booking configuration file."""

    app: AppConfig
    users: list[UserConfig] = []
    slots: dict[str, SlotConfig] = {}

    @field_validator("slots", mode="before")
    @classmethod
    def _lowercase_days(cls, value):
        if isinstance(value, dict):
            return {str(k).lower(): v for k, v in value.items()}
        return value

    def slot_for(self, day_name: str) -> SlotConfig | None:
        return self.slots.get(day_name.lower())


def parse_slot_time(value: str) -> time:
    """Parse a slot time written as HH:MM:SS or HH:MM."""
    text = value.strip()
    for fmt in ("%H:%M:%S", "%H:%M"):
        try:
            return datetime.strptime(text, fmt).time()
        except ValueError:
            continue
    raise ValueError(f"Cannot parse slot time {value!r}")


def load_config(path: str | Path) -> BookingConfig:
    """Read and validate the TOML booking configuration.

    Raises:
        ConfigError: If the file cannot be read, parsed or validated.
    """
    path = Path(path)
    try:
        raw = path.read_text(encoding="utf-8")
    except OSError as e:
        raise ConfigError(f"Failed to read {path}: {e}") from e
    try:
        data = tomllib.loads(raw)
    except tomllib.TOMLDecodeError as e:
        raise ConfigError(f"Failed to parse {path}: {e}") from e
    try:
        return BookingConfig.model_validate(data)
    except ValidationError as e:
        raise ConfigError(f"Invalid configuration in {path}: {e}") from e


# Singleton pattern
_settings: Settings | None = None


def get_settings() -> Settings:
    """Get the settings singleton.

    Returns:
        Settings: Settings instance
    """
    global _settings
    if _settings is None:
        _settings = Settings()
    return _settings
