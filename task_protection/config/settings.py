"""
Process configuration, loaded from environment variables.

ECS_AGENT_URI is injected by ECS into every task. COPILOT_QUEUE_URI is
injected by Copilot for worker services. Missing required values are fatal.
"""

from typing import Optional, Type, TypeVar

from pydantic import Field, ValidationError
from pydantic_settings import BaseSettings, SettingsConfigDict

from task_protection.models.reconciler import ReconcilerConfig


class ConfigurationError(Exception):
    """Required configuration is missing or invalid. Not retryable."""
    pass


REQUIRED_HINTS = {
    "ecs_agent_uri": (
        "ECS_AGENT_URI environment variable must be set. "
        "This is set automatically in an ECS task environment"
    ),
    "copilot_queue_uri": (
        "COPILOT_QUEUE_URI environment variable must be set so that "
        "the worker knows what queue to watch"
    ),
}


class AgentSettings(BaseSettings):
    """Settings shared by every process that protects itself."""

    model_config = SettingsConfigDict(case_sensitive=False, extra="ignore")

    ecs_agent_uri: str = Field(min_length=1)
    agent_timeout_seconds: float = Field(default=5.0, gt=0)
    agent_retries: int = Field(default=1, ge=0)

    protection_duration_minutes: float = 60
    protection_maintain_percentage: float = 10
    protection_refresh_percentage: float = 80
    protection_tick_interval_ms: int = 10_000
    rejection_alert_threshold: int = Field(default=3, ge=1)

    log_level: str = "INFO"

    def reconciler_config(self) -> ReconcilerConfig:
        return ReconcilerConfig(
            desired_duration_minutes=self.protection_duration_minutes,
            maintain_percentage=self.protection_maintain_percentage,
            refresh_percentage=self.protection_refresh_percentage,
            tick_interval_ms=self.protection_tick_interval_ms,
        )


class WorkerSettings(AgentSettings):
    """Queue consumer settings."""

    copilot_queue_uri: str = Field(min_length=1)
    aws_region: Optional[str] = None
    queue_wait_time_seconds: int = Field(default=20, ge=0, le=20)
    queue_visibility_timeout_seconds: int = Field(default=60 * 60, ge=0)
    default_work_duration_ms: float = Field(default=1000, ge=0)
    acquire_timeout_seconds: float = Field(default=60.0, gt=0)
    max_consecutive_rejections: int = Field(default=3, ge=1)


class ServerSettings(AgentSettings):
    """Websocket server settings."""

    protection_tick_interval_ms: int = 60_000
    host: str = "0.0.0.0"
    port: int = 80
    static_dir: Optional[str] = None


SettingsT = TypeVar("SettingsT", bound=AgentSettings)


def load_settings(settings_cls: Type[SettingsT], **overrides) -> SettingsT:
    """
    Build settings from the environment.

    Raises ConfigurationError naming every missing or invalid variable,
    including an invalid protection timing combination.
    """
    try:
        settings = settings_cls(**overrides)
        settings.reconciler_config()
    except ValidationError as e:
        problems = []
        for error in e.errors():
            field = str(error["loc"][0]) if error["loc"] else ""
            if error["type"] == "missing" and field in REQUIRED_HINTS:
                problems.append(REQUIRED_HINTS[field])
            elif field:
                problems.append(f"{field.upper()}: {error['msg']}")
            else:
                problems.append(error["msg"])
        raise ConfigurationError("; ".join(problems)) from e
    return settings
