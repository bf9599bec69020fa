"""
Configuration management using Pydantic models loaded from YAML.
"""

from pathlib import Path
from typing import List, Optional

import yaml
from pydantic import BaseModel, Field, field_validator, model_validator

from .domain.models import (
    DEFAULT_SLOT_INTERVAL,
    OperatingWindow,
    ScheduleOverride,
    WeeklySchedule,
)


class HoursConfig(BaseModel):
    """Weekly opening hours for one day (0=Sunday, 6=Saturday)."""
    day_of_week: int
    open_time: Optional[str] = None  # HH:MM
    close_time: Optional[str] = None
    is_closed: bool = False
    break_start: Optional[str] = None
    break_end: Optional[str] = None

    @model_validator(mode="after")
    def validate_window(self) -> "HoursConfig":
        """Reject windows the slot engine could not work with."""
        self.to_window()
        return self

    def to_window(self) -> OperatingWindow:
        return OperatingWindow.from_record(self.model_dump())


class OverrideConfig(BaseModel):
    """Special hours or a closure on one calendar date."""
    date: str  # YYYY-MM-DD
    open_time: Optional[str] = None
    close_time: Optional[str] = None
    is_closed: bool = False
    reason: Optional[str] = None

    @model_validator(mode="after")
    def validate_override(self) -> "OverrideConfig":
        self.to_override()
        return self

    def to_override(self) -> ScheduleOverride:
        return ScheduleOverride.from_record(self.model_dump())


class ServiceConfig(BaseModel):
    """A bookable service of a business."""
    id: str
    name: str
    duration: int  # minutes
    price: float = 0
    is_active: bool = True

    @field_validator("duration")
    @classmethod
    def validate_duration(cls, value: int) -> int:
        """Ensure service duration is positive."""
        if value <= 0:
            raise ValueError("duration must be greater than zero")
        return value


class BusinessConfig(BaseModel):
    """A tenant with its booking page settings."""
    id: str
    slug: str
    name: str
    slot_interval: Optional[int] = None  # 15, 20, 30 ...
    is_active: bool = True
    hours: List[HoursConfig] = Field(default_factory=list)
    services: List[ServiceConfig] = Field(default_factory=list)
    overrides: List[OverrideConfig] = Field(default_factory=list)

    @field_validator("slot_interval")
    @classmethod
    def validate_slot_interval(cls, value: Optional[int]) -> Optional[int]:
        if value is not None and value <= 0:
            raise ValueError("slot_interval must be greater than zero")
        return value

    @field_validator("hours")
    @classmethod
    def validate_hours(cls, value: List[HoursConfig]) -> List[HoursConfig]:
        """Ensure every weekday is configured at most once."""
        days = [entry.day_of_week for entry in value]
        duplicates = sorted({day for day in days if days.count(day) > 1})
        if duplicates:
            raise ValueError(f"Duplicate hours for day_of_week {duplicates}")
        return value

    @field_validator("services")
    @classmethod
    def validate_services(cls, value: List[ServiceConfig]) -> List[ServiceConfig]:
        seen: set[str] = set()
        for service in value:
            if service.id in seen:
                raise ValueError(f"Duplicate service id detected: {service.id}")
            seen.add(service.id)
        return value

    @field_validator("overrides")
    @classmethod
    def validate_overrides(cls, value: List[OverrideConfig]) -> List[OverrideConfig]:
        seen: set[str] = set()
        for override in value:
            if override.date in seen:
                raise ValueError(f"Duplicate override for date {override.date}")
            seen.add(override.date)
        return value

    def weekly_schedule(self) -> WeeklySchedule:
        return WeeklySchedule.from_windows([entry.to_window() for entry in self.hours])

    def schedule_overrides(self) -> List[ScheduleOverride]:
        return [entry.to_override() for entry in self.overrides]

    def find_service(self, service_id: str) -> ServiceConfig | None:
        for service in self.services:
            if service.id == service_id:
                return service
        return None


class PostgrestConfig(BaseModel):
    """Connection settings for a hosted Postgres exposed through PostgREST."""
    url: str
    api_key: str
    timeout_seconds: float = 10

    @field_validator("url")
    @classmethod
    def strip_trailing_slash(cls, value: str) -> str:
        return value.rstrip("/")


class AppConfig(BaseModel):
    """Application configuration."""
    timezone: str = "Asia/Jerusalem"
    log_level: str = "WARNING"
    enforce_alignment: bool = False
    default_slot_interval: int = DEFAULT_SLOT_INTERVAL
    data_file: Optional[Path] = None
    postgrest: Optional[PostgrestConfig] = None
    businesses: List[BusinessConfig] = Field(default_factory=list)

    @field_validator("log_level")
    @classmethod
    def validate_log_level(cls, value: str) -> str:
        level = value.upper()
        if level not in {"DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"}:
            raise ValueError(f"Unknown log level: {value}")
        return level

    @field_validator("default_slot_interval")
    @classmethod
    def validate_default_slot_interval(cls, value: int) -> int:
        if value <= 0:
            raise ValueError("default_slot_interval must be greater than zero")
        return value

    @field_validator("businesses")
    @classmethod
    def validate_businesses(cls, value: List[BusinessConfig]) -> List[BusinessConfig]:
        """Ensure business ids and slugs are unique."""
        seen_ids: set[str] = set()
        seen_slugs: set[str] = set()
        for business in value:
            slug_key = business.slug.lower()
            if business.id in seen_ids:
                raise ValueError(f"Duplicate business id detected: {business.id}")
            if slug_key in seen_slugs:
                raise ValueError(f"Duplicate business slug detected: {business.slug}")
            seen_ids.add(business.id)
            seen_slugs.add(slug_key)

        # Appointments reference services by id alone.
        seen_services: set[str] = set()
        for business in value:
            for service in business.services:
                if service.id in seen_services:
                    raise ValueError(f"Service id {service.id} is used by more than one business")
                seen_services.add(service.id)
        return value

    @classmethod
    def load_from_yaml(cls, config_path: Path) -> "AppConfig":
        """
        Load configuration from YAML file.

        A relative ``data_file`` is resolved against the directory
        of the config file.

        Args:
            config_path: Path to the YAML config file

        Returns:
            AppConfig instance

        Raises:
            FileNotFoundError: If config file doesn't exist
            ValueError: If config is invalid
        """
        if not config_path.exists():
            raise FileNotFoundError(
                f"Config file not found: {config_path}\n"
                f"Please create a config.yaml file. See config.example.yaml for reference."
            )

        try:
            with open(config_path, "r", encoding="utf-8") as f:
                data = yaml.safe_load(f) or {}
        except yaml.YAMLError as exc:
            raise ValueError(f"Invalid YAML in {config_path}: {exc}") from exc

        if not isinstance(data, dict):
            raise ValueError("Config file must contain a mapping at the root level.")

        config = cls(**data)

        if config.data_file is not None and not config.data_file.is_absolute():
            config.data_file = config_path.parent / config.data_file

        return config

    def find_business(self, identifier: str) -> BusinessConfig | None:
        """Find a business by slug (case-insensitive) or id."""
        for business in self.businesses:
            if business.slug.lower() == identifier.lower() or business.id == identifier:
                return business
        return None

    def resolve_business(self, identifier: str) -> BusinessConfig:
        """
        Resolve a business slug or id.

        Raises:
            ValueError: If no business matches
        """
        business = self.find_business(identifier)
        if business is None:
            raise ValueError(
                f"Unknown business: '{identifier}'. "
                f"Use a configured slug or id."
            )
        return business


def get_default_config_path() -> Path:
    """Get the default configuration file path."""
    # Look for config.yaml in current directory
    current_dir = Path.cwd()
    config_path = current_dir / "config.yaml"

    if not config_path.exists():
        # Try in the project root (parent of the package)
        project_root = Path(__file__).parent.parent
        config_path = project_root / "config.yaml"

    return config_path
