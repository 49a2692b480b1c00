"""Reconciler configuration, protection state, and notices."""

import logging
from datetime import datetime
from enum import Enum
from typing import Optional

from pydantic import BaseModel, ConfigDict, Field, model_validator

logger = logging.getLogger(__name__)


class ProtectionState(str, Enum):
    PROTECTED = "protected"
    UNPROTECTED = "unprotected"


class ProtectionEvent(str, Enum):
    PROTECTED = "protected"
    UNPROTECTED = "unprotected"
    REJECTED = "rejected"


class ReconcilerConfig(BaseModel):
    """
    Configuration for the protection reconciler.

    The two percentages are fractions of the lease duration:
      maintain_percentage: how long to hold a fresh lease before honoring a release
      refresh_percentage: how long a lease may age before it is renewed early
    """

    model_config = ConfigDict(frozen=True)

    desired_duration_minutes: float = Field(default=60, gt=0)
    maintain_percentage: float = Field(default=10, ge=0, le=100)
    refresh_percentage: float = Field(default=80, ge=0, le=100)
    tick_interval_ms: int = Field(default=10_000, gt=0)

    @model_validator(mode="after")
    def check_timing(self) -> "ReconcilerConfig":
        if self.maintain_percentage > self.refresh_percentage:
            raise ValueError(
                f"maintain_percentage ({self.maintain_percentage}) must not exceed "
                f"refresh_percentage ({self.refresh_percentage}); the lease would be "
                f"refreshed before a release could ever be honored"
            )
        lease_seconds = self.desired_duration_minutes * 60
        if self.refresh_after_seconds + self.tick_interval_seconds >= lease_seconds:
            logger.warning(
                "Refresh threshold (%.1fs) plus one tick interval (%.1fs) reaches the "
                "lease (%.1fs); protection may lapse before it is refreshed",
                self.refresh_after_seconds,
                self.tick_interval_seconds,
                lease_seconds,
            )
        return self

    @property
    def refresh_after_seconds(self) -> float:
        return self.desired_duration_minutes * 60 * self.refresh_percentage / 100

    @property
    def maintain_for_seconds(self) -> float:
        return self.desired_duration_minutes * 60 * self.maintain_percentage / 100

    @property
    def tick_interval_seconds(self) -> float:
        return self.tick_interval_ms / 1000


class ReconcilerState(BaseModel):
    """Desired vs. confirmed protection, plus the timing metadata for hysteresis."""

    desired: ProtectionState = ProtectionState.UNPROTECTED
    current: ProtectionState = ProtectionState.UNPROTECTED
    last_transition_at: float
    generation: int = 0  # bumped on every desired write
    consecutive_rejections: int = 0


class ProtectionNotice(BaseModel):
    """One notification per reconciliation tick."""

    event: ProtectionEvent
    current: ProtectionState
    desired: ProtectionState
    generation: int
    reason: Optional[str] = None
    emitted_at: datetime
