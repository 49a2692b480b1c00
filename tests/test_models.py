"""Tests for reconciler configuration and state models."""

import logging

import pytest
from pydantic import ValidationError

from task_protection.models.reconciler import (
    ProtectionState,
    ReconcilerConfig,
    ReconcilerState,
)


class TestReconcilerConfig:
    def test_defaults_are_valid(self):
        config = ReconcilerConfig()
        assert config.desired_duration_minutes == 60
        assert config.maintain_percentage <= config.refresh_percentage

    def test_derived_thresholds(self):
        config = ReconcilerConfig(
            desired_duration_minutes=1,
            maintain_percentage=10,
            refresh_percentage=80,
            tick_interval_ms=10_000,
        )
        assert config.maintain_for_seconds == 6
        assert config.refresh_after_seconds == 48
        assert config.tick_interval_seconds == 10

    def test_maintain_above_refresh_rejected(self):
        with pytest.raises(ValidationError, match="maintain_percentage"):
            ReconcilerConfig(maintain_percentage=90, refresh_percentage=80)

    def test_full_lease_refresh_allowed(self):
        config = ReconcilerConfig(
            desired_duration_minutes=30,
            maintain_percentage=0,
            refresh_percentage=100,
        )
        assert config.refresh_after_seconds == 30 * 60

    def test_refresh_too_late_for_tick_interval_warns(self, caplog):
        """A refresh at 95% of a 1 minute lease can't be guaranteed with 10s ticks."""
        with caplog.at_level(logging.WARNING, logger="task_protection.models.reconciler"):
            config = ReconcilerConfig(
                desired_duration_minutes=1,
                refresh_percentage=95,
                tick_interval_ms=10_000,
            )
        assert config.refresh_percentage == 95
        assert "may lapse" in caplog.text

    def test_comfortable_refresh_does_not_warn(self, caplog):
        with caplog.at_level(logging.WARNING, logger="task_protection.models.reconciler"):
            ReconcilerConfig()
        assert caplog.records == []

    @pytest.mark.parametrize(
        "field,value",
        [
            ("desired_duration_minutes", 0),
            ("maintain_percentage", -1),
            ("refresh_percentage", 101),
            ("tick_interval_ms", 0),
        ],
    )
    def test_out_of_range_values_rejected(self, field, value):
        with pytest.raises(ValidationError):
            ReconcilerConfig(**{field: value})

    def test_config_is_immutable(self):
        config = ReconcilerConfig()
        with pytest.raises(ValidationError):
            config.maintain_percentage = 50


class TestReconcilerState:
    def test_starts_unprotected(self):
        state = ReconcilerState(last_transition_at=0.0)
        assert state.desired == ProtectionState.UNPROTECTED
        assert state.current == ProtectionState.UNPROTECTED
        assert state.generation == 0
