"""
Configuration management using Pydantic models loaded from YAML.
"""

import os
from pathlib import Path
from typing import Dict, List

import yaml
from pydantic import BaseModel, Field, field_validator, model_validator

from .domain.working_hours import ClinicHours
from .services.availability import SearchLimits

CONFIG_ENV_VAR = "CLINICAGENDA_CONFIG"
GRAPH_SECRET_ENV_VAR = "CLINICAGENDA_GRAPH_SECRET"
SMTP_PASSWORD_ENV_VAR = "CLINICAGENDA_SMTP_PASSWORD"
WHATSAPP_KEY_ENV_VAR = "CLINICAGENDA_WHATSAPP_KEY"


def _check_hour(value: int) -> int:
    if not 0 <= value <= 23:
        raise ValueError(f"Hour must be between 0 and 23, got {value}")
    return value


class BusinessConfig(BaseModel):
    """Clinic contact data used in notifications."""
    name: str = "Clínica"
    email: str = ""
    phone: str = ""
    address: str = ""


class CalendarConfig(BaseModel):
    """One specialist calendar, addressed by its number in requests."""
    number: str
    calendar_ref: str
    specialist: str = ""

    @field_validator("number", mode="before")
    @classmethod
    def coerce_number(cls, value) -> str:
        return str(value)


class ServiceConfig(BaseModel):
    number: str
    name: str

    @field_validator("number", mode="before")
    @classmethod
    def coerce_number(cls, value) -> str:
        return str(value)


class WorkingHoursEntry(BaseModel):
    """Stored opening hours for one calendar and ISO weekday (1 = Monday, 7 = Sunday)."""
    calendar: str
    weekday: int
    start_hour: int
    end_hour: int

    @field_validator("calendar", mode="before")
    @classmethod
    def coerce_calendar(cls, value) -> str:
        return str(value)

    @field_validator("weekday")
    @classmethod
    def validate_weekday(cls, value: int) -> int:
        if value not in range(1, 8):
            raise ValueError(f"weekday must be between 1 and 7, got {value}")
        return value

    @field_validator("start_hour", "end_hour")
    @classmethod
    def validate_hour(cls, value: int) -> int:
        return _check_hour(value)


class PolicyConfig(BaseModel):
    """Fixed day-type hours and the minimum lead time."""
    weekday_open: int = 10
    weekday_close: int = 19
    lunch_start: int = 14
    lunch_end: int = 15
    saturday_open: int = 10
    saturday_close: int = 13
    lead_time_minutes: int = 60

    @field_validator("weekday_open", "weekday_close", "lunch_start", "lunch_end", "saturday_open", "saturday_close")
    @classmethod
    def validate_hour(cls, value: int) -> int:
        return _check_hour(value)

    @field_validator("lead_time_minutes")
    @classmethod
    def validate_lead_time(cls, value: int) -> int:
        if value <= 0:
            raise ValueError("lead_time_minutes must be greater than zero")
        return value

    @model_validator(mode="after")
    def validate_windows(self) -> "PolicyConfig":
        if self.weekday_close <= self.weekday_open:
            raise ValueError("weekday_close must be later than weekday_open")
        if self.saturday_close < self.saturday_open:
            raise ValueError("saturday_close must not be earlier than saturday_open")
        if not self.weekday_open <= self.lunch_start < self.lunch_end <= self.weekday_close:
            raise ValueError("lunch break must lie inside the weekday window")
        return self

    def to_clinic_hours(self) -> ClinicHours:
        return ClinicHours(
            weekday_open=self.weekday_open,
            weekday_close=self.weekday_close,
            lunch_start=self.lunch_start,
            lunch_end=self.lunch_end,
            saturday_open=self.saturday_open,
            saturday_close=self.saturday_close,
        )


class SearchConfig(BaseModel):
    primary_window: int = 3
    primary_scan_cap: int = 5
    lookback_days: int = 3
    lookahead_days: int = 14
    alternatives_target: int = 2
    next_available_days: int = 30
    next_working_days: int = 14

    @model_validator(mode="after")
    def validate_positive(self) -> "SearchConfig":
        for name, value in self.model_dump().items():
            if value <= 0:
                raise ValueError(f"search.{name} must be greater than zero")
        return self

    def to_limits(self) -> SearchLimits:
        return SearchLimits(**self.model_dump())


class GraphConfig(BaseModel):
    client_id: str = ""
    tenant_id: str = ""
    client_secret: str = ""

    def get_authority_url(self) -> str:
        return f"https://login.microsoftonline.com/{self.tenant_id}"


class SmtpConfig(BaseModel):
    enabled: bool = False
    host: str = ""
    port: int = 587
    user: str = ""
    password: str = ""
    sender: str = ""


class WhatsAppConfig(BaseModel):
    enabled: bool = False
    api_url: str = ""
    api_key: str = ""


class DatabaseConfig(BaseModel):
    url: str = "sqlite:///clinicagenda.db"


class ClientCacheConfig(BaseModel):
    max_entries: int = 500
    ttl_seconds: int = 86400

    @field_validator("max_entries", "ttl_seconds")
    @classmethod
    def validate_positive(cls, value: int) -> int:
        if value <= 0:
            raise ValueError("client cache limits must be greater than zero")
        return value


class AppConfig(BaseModel):
    """Application configuration."""
    timezone: str = "America/Mexico_City"
    default_calendar: str = "1"
    business: BusinessConfig = Field(default_factory=BusinessConfig)
    calendars: List[CalendarConfig] = Field(default_factory=list)
    services: List[ServiceConfig] = Field(default_factory=list)
    working_hours: List[WorkingHoursEntry] = Field(default_factory=list)
    policy: PolicyConfig = Field(default_factory=PolicyConfig)
    search: SearchConfig = Field(default_factory=SearchConfig)
    graph: GraphConfig = Field(default_factory=GraphConfig)
    smtp: SmtpConfig = Field(default_factory=SmtpConfig)
    whatsapp: WhatsAppConfig = Field(default_factory=WhatsAppConfig)
    database: DatabaseConfig = Field(default_factory=DatabaseConfig)
    client_cache: ClientCacheConfig = Field(default_factory=ClientCacheConfig)
    use_mock_calendar: bool = False

    @field_validator("default_calendar", mode="before")
    @classmethod
    def coerce_default_calendar(cls, value) -> str:
        return str(value)

    @field_validator("calendars")
    @classmethod
    def validate_calendars(cls, value: List[CalendarConfig]) -> List[CalendarConfig]:
        """Ensure calendar numbers are unique."""
        seen: set[str] = set()
        for calendar in value:
            if calendar.number in seen:
                raise ValueError(f"Duplicate calendar number detected: {calendar.number}")
            seen.add(calendar.number)
        return value

    @field_validator("services")
    @classmethod
    def validate_services(cls, value: List[ServiceConfig]) -> List[ServiceConfig]:
        seen: set[str] = set()
        for service in value:
            if service.number in seen:
                raise ValueError(f"Duplicate service number detected: {service.number}")
            seen.add(service.number)
        return value

    @classmethod
    def load_from_yaml(cls, config_path: Path) -> "AppConfig":
        """
        Load configuration from YAML file.

        Secrets may be left out of the file and supplied through
        ``CLINICAGENDA_GRAPH_SECRET``, ``CLINICAGENDA_SMTP_PASSWORD`` and
        ``CLINICAGENDA_WHATSAPP_KEY``.

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

        return cls(**data).with_env_secrets()

    def with_env_secrets(self) -> "AppConfig":
        """Copy of the config with secrets from the environment filled in."""
        config = self.model_copy(deep=True)
        if os.getenv(GRAPH_SECRET_ENV_VAR):
            config.graph.client_secret = os.environ[GRAPH_SECRET_ENV_VAR]
        if os.getenv(SMTP_PASSWORD_ENV_VAR):
            config.smtp.password = os.environ[SMTP_PASSWORD_ENV_VAR]
        if os.getenv(WHATSAPP_KEY_ENV_VAR):
            config.whatsapp.api_key = os.environ[WHATSAPP_KEY_ENV_VAR]
        return config

    def find_calendar(self, number: str) -> CalendarConfig | None:
        for calendar in self.calendars:
            if calendar.number == str(number):
                return calendar
        return None

    def find_service(self, number: str) -> ServiceConfig | None:
        for service in self.services:
            if service.number == str(number):
                return service
        return None

    def calendar_refs(self) -> Dict[str, str]:
        return {calendar.number: calendar.calendar_ref for calendar in self.calendars}

    def specialists(self) -> Dict[str, str]:
        return {calendar.number: calendar.specialist for calendar in self.calendars}

    def service_names(self) -> Dict[str, str]:
        return {service.number: service.name for service in self.services}


def get_default_config_path() -> Path:
    """Get the default configuration file path."""
    env_path = os.getenv(CONFIG_ENV_VAR)
    if env_path:
        return Path(env_path)

    config_path = Path.cwd() / "config.yaml"
    if not config_path.exists():
        # Try in the project root (parent of the package)
        config_path = Path(__file__).parent.parent / "config.yaml"

    return config_path
