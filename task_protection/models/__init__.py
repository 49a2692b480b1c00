"""Task protection data models."""

from task_protection.models.reconciler import (
    ProtectionEvent,
    ProtectionNotice,
    ProtectionState,
    ReconcilerConfig,
    ReconcilerState,
)

__all__ = [
    "ProtectionEvent",
    "ProtectionNotice",
    "ProtectionState",
    "ReconcilerConfig",
    "ReconcilerState",
]
