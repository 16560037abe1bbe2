"""Instance status taxonomy used for quota accounting.

Every recognized status belongs to exactly one bucket:

- stable statuses count toward used quota
- transitional statuses count toward pending quota and should not be shown as "in use"
- terminal statuses count toward neither

Unrecognized values fall in no bucket and are not counted anywhere.
"""

from dataclasses import dataclass
from enum import Enum
from typing import Iterable, List


class InstanceStatus:
    """Recognized instance status strings."""

    # Stable
    RUNNING = "running"
    STOPPED = "stopped"
    ERROR = "error"

    # Transitional
    CREATING = "creating"
    RESETTING = "resetting"

    # Terminal
    DELETING = "deleting"
    DELETED = "deleted"
    FAILED = "failed"


class StatusBucket(Enum):
    """Quota bucket of a status value."""
    STABLE = "stable"
    TRANSITIONAL = "transitional"
    TERMINAL = "terminal"
    UNKNOWN = "unknown"


_STABLE = (InstanceStatus.RUNNING, InstanceStatus.STOPPED, InstanceStatus.ERROR)
_TRANSITIONAL = (InstanceStatus.CREATING, InstanceStatus.RESETTING)
_TERMINAL = (InstanceStatus.DELETING, InstanceStatus.DELETED, InstanceStatus.FAILED)

# Rows in these statuses are already on their way out and are never re-examined
DELETION_STATUSES = (InstanceStatus.DELETING, InstanceStatus.DELETED)


def get_stable_statuses() -> List[str]:
    """Statuses that count toward used quota."""
    return list(_STABLE)


def get_transitional_statuses() -> List[str]:
    """Statuses that count toward pending quota."""
    return list(_TRANSITIONAL)


def get_terminal_statuses() -> List[str]:
    """Statuses that count toward no quota."""
    return list(_TERMINAL)


def get_quota_countable_statuses() -> List[str]:
    """Statuses included in used-quota totals.

    Only stable statuses are returned so an instance is never counted in both
    used and pending totals.
    """
    return get_stable_statuses()


def is_stable_status(status: str) -> bool:
    return status in _STABLE


def is_transitional_status(status: str) -> bool:
    return status in _TRANSITIONAL


def is_terminal_status(status: str) -> bool:
    return status in _TERMINAL


def classify_status(status: str) -> StatusBucket:
    """Return the quota bucket for a status value."""
    if is_stable_status(status):
        return StatusBucket.STABLE
    if is_transitional_status(status):
        return StatusBucket.TRANSITIONAL
    if is_terminal_status(status):
        return StatusBucket.TERMINAL
    return StatusBucket.UNKNOWN


@dataclass
class QuotaUsage:
    """Instance counts per quota bucket."""
    used: int = 0
    pending: int = 0

    @property
    def total(self) -> int:
        return self.used + self.pending


def compute_quota_usage(statuses: Iterable[str]) -> QuotaUsage:
    """Count used and pending quota for a collection of status values."""
    usage = QuotaUsage()
    for status in statuses:
        if is_stable_status(status):
            usage.used += 1
        elif is_transitional_status(status):
            usage.pending += 1
    return usage
