"""Pydantic configuration models for all system settings."""

from __future__ import annotations

from pydantic import BaseModel, Field, field_validator

from grid_monitor.timezone_utils import resolve_timezone


class HomeAssistantConfig(BaseModel):
    base_url: str = ""
    token: str = ""
    entity: str = ""  # e.g. binary_sensor.grid_power
    poll_interval_seconds: float = Field(30.0, gt=0)
    failure_backoff_seconds: float = Field(10.0, gt=0)
    timeout_seconds: float = Field(10.0, gt=0)

    @property
    def state_url(self) -> str:
        return f"{self.base_url.rstrip('/')}/api/states/{self.entity}"


class OutageSourceConfig(BaseModel):
    base_url: str = ""
    region: str = ""
    city: str = ""
    street: str = ""
    building: str = ""
    poll_interval_seconds: float = Field(300.0, gt=0)
    failure_backoff_seconds: float = Field(10.0, gt=0)
    timeout_seconds: float = Field(10.0, gt=0)

    @property
    def status_url(self) -> str:
        return f"{self.base_url.rstrip('/')}/api/status"

    @property
    def address(self) -> str:
        return f"{self.city}, {self.street}, {self.building}"


class HistoryConfig(BaseModel):
    file_path: str = "data/grid_history.json"
    window_seconds: float = Field(86400.0, gt=0)  # 24 hours


class DashboardConfig(BaseModel):
    host: str = "0.0.0.0"
    port: int = Field(8080, ge=1, le=65535)
    refresh_seconds: int = Field(60, gt=0)  # live page re-reads /api/state


class ResilienceConfig(BaseModel):
    max_consecutive_failures: int = Field(3, ge=1)


class LoggingConfig(BaseModel):
    level: str = "INFO"
    format: str = "json"
    file: str = ""


class AppConfig(BaseModel):
    """Root configuration model containing all system settings."""

    timezone: str = "Europe/Kyiv"
    home_assistant: HomeAssistantConfig = HomeAssistantConfig()
    outage: OutageSourceConfig = OutageSourceConfig()
    history: HistoryConfig = HistoryConfig()
    dashboard: DashboardConfig = DashboardConfig()
    resilience: ResilienceConfig = ResilienceConfig()
    logging: LoggingConfig = LoggingConfig()

    @field_validator("timezone")
    @classmethod
    def check_timezone(cls, value: str) -> str:
        resolve_timezone(value)
        return value

    def missing_required(self) -> list[str]:
        """Dotted names of settings that must be set before the service can start."""
        required = {
            "home_assistant.base_url": self.home_assistant.base_url,
            "home_assistant.token": self.home_assistant.token,
            "home_assistant.entity": self.home_assistant.entity,
            "outage.base_url": self.outage.base_url,
            "outage.region": self.outage.region,
            "outage.city": self.outage.city,
            "outage.street": self.outage.street,
            "outage.building": self.outage.building,
            "history.file_path": self.history.file_path,
        }
        return [key for key, value in required.items() if not value.strip()]
