"""Tests for environment configuration."""

import pytest

from task_protection.config.settings import (
    ConfigurationError,
    ServerSettings,
    WorkerSettings,
    load_settings,
)


@pytest.fixture
def clean_env(monkeypatch):
    for name in ("ECS_AGENT_URI", "COPILOT_QUEUE_URI", "PROTECTION_MAINTAIN_PERCENTAGE"):
        monkeypatch.delenv(name, raising=False)
    return monkeypatch


class TestLoadSettings:
    def test_missing_agent_uri_is_fatal(self, clean_env):
        with pytest.raises(ConfigurationError, match="ECS_AGENT_URI"):
            load_settings(ServerSettings)

    def test_worker_requires_queue(self, clean_env):
        clean_env.setenv("ECS_AGENT_URI", "http://agent")
        with pytest.raises(ConfigurationError, match="COPILOT_QUEUE_URI"):
            load_settings(WorkerSettings)

    def test_reads_environment(self, clean_env):
        clean_env.setenv("ECS_AGENT_URI", "http://agent")
        clean_env.setenv("COPILOT_QUEUE_URI", "https://sqs.example/queue")
        clean_env.setenv("PROTECTION_DURATION_MINUTES", "30")
        clean_env.setenv("PROTECTION_MAINTAIN_PERCENTAGE", "0")

        settings = load_settings(WorkerSettings)
        config = settings.reconciler_config()

        assert settings.copilot_queue_uri == "https://sqs.example/queue"
        assert settings.queue_visibility_timeout_seconds == 3600
        assert config.desired_duration_minutes == 30
        assert config.maintain_percentage == 0

    def test_invalid_protection_timing_is_fatal(self, clean_env):
        clean_env.setenv("ECS_AGENT_URI", "http://agent")
        clean_env.setenv("PROTECTION_MAINTAIN_PERCENTAGE", "90")
        with pytest.raises(ConfigurationError, match="maintain_percentage"):
            load_settings(ServerSettings)

    def test_server_ticks_once_per_minute_by_default(self, clean_env):
        settings = load_settings(ServerSettings, ecs_agent_uri="http://agent")
        assert settings.reconciler_config().tick_interval_ms == 60_000
