"""
Release schedule and plan types.

A schedule is a fixed sequence of ten absolute unlock timestamps. Two plans
are derived from it: the short plan releases 20% at each of the first five
checkpoints, the long plan releases 10% at each of all ten checkpoints.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from enum import Enum
from typing import Iterable

from .vesting_exceptions import InvalidScheduleError

logger = logging.getLogger(__name__)

CHECKPOINT_COUNT = 10

# 100,000 whole tokens at 18 decimals
DEFAULT_LONG_PLAN_THRESHOLD = 100_000 * 10**18

# 30 days after the final checkpoint
DEFAULT_GRACE_PERIOD = 30 * 24 * 60 * 60


class PlanType(Enum):
    """Vesting plan selected by cumulative locked amount."""

    SHORT = "short"
    LONG = "long"

    @property
    def release_stages(self) -> int:
        return 5 if self is PlanType.SHORT else 10

    @property
    def percent_per_cycle(self) -> int:
        return 20 if self is PlanType.SHORT else 10


def plan_from_total(total_locked: int, threshold: int = DEFAULT_LONG_PLAN_THRESHOLD) -> PlanType:
    """Derive the plan for a cumulative locked amount.

    Amounts at or above ``threshold`` vest on the long plan.
    """
    return PlanType.LONG if total_locked >= threshold else PlanType.SHORT


@dataclass(frozen=True)
class ReleaseSchedule:
    """
    Immutable ordered set of unlock checkpoints.

    Attributes:
        timestamps: Ten strictly increasing Unix timestamps
    """

    timestamps: tuple[int, ...]

    def __post_init__(self) -> None:
        stamps = tuple(self.timestamps)
        if len(stamps) != CHECKPOINT_COUNT:
            raise InvalidScheduleError(
                f"Schedule must contain exactly {CHECKPOINT_COUNT} checkpoints, got {len(stamps)}",
                details={"count": len(stamps)},
            )
        for stamp in stamps:
            if isinstance(stamp, bool) or not isinstance(stamp, int):
                raise InvalidScheduleError(
                    "Checkpoint timestamps must be integers (Unix timestamps).",
                    details={"value": repr(stamp)},
                )
            if stamp < 0:
                raise InvalidScheduleError("Checkpoint timestamps cannot be negative.")
        for index in range(1, len(stamps)):
            if stamps[index] <= stamps[index - 1]:
                raise InvalidScheduleError(
                    "Checkpoint timestamps must be strictly increasing",
                    details={"index": index, "previous": stamps[index - 1], "value": stamps[index]},
                )
        # Frozen dataclass: coerce list input to a tuple in place
        object.__setattr__(self, "timestamps", stamps)

    @classmethod
    def from_iterable(cls, timestamps: Iterable[int]) -> "ReleaseSchedule":
        return cls(tuple(timestamps))

    @property
    def first_unlock(self) -> int:
        return self.timestamps[0]

    @property
    def final_unlock(self) -> int:
        return self.timestamps[-1]

    def __len__(self) -> int:
        return len(self.timestamps)

    def __getitem__(self, index: int) -> int:
        return self.timestamps[index]

    def checkpoints_for(self, plan: PlanType) -> tuple[int, ...]:
        """Return the checkpoints a plan releases on."""
        return self.timestamps[: plan.release_stages]

    def elapsed_checkpoints(self, plan: PlanType, now: int) -> int:
        """Count plan checkpoints whose timestamp is at or before ``now``."""
        return sum(1 for stamp in self.checkpoints_for(plan) if stamp <= now)

    def cumulative_entitlement(self, total_locked: int, plan: PlanType, now: int) -> int:
        """
        Total amount released to date for ``total_locked`` on ``plan``.

        Each elapsed checkpoint contributes ``total_locked * percent // 100``
        and the truncated shares are summed. This is not the same as a single
        division over the elapsed proportion and must stay that way.

        Args:
            total_locked: Cumulative locked amount in base units
            plan: Plan the beneficiary is on
            now: Current timestamp

        Returns:
            Cumulative entitlement in base units
        """
        entitlement = 0
        for stamp in self.checkpoints_for(plan):
            if stamp <= now:
                entitlement += total_locked * plan.percent_per_cycle // 100
        return entitlement

    def next_unlock(self, plan: PlanType, now: int) -> int | None:
        """Return the next plan checkpoint after ``now``, or None once all have elapsed."""
        for stamp in self.checkpoints_for(plan):
            if stamp > now:
                return stamp
        return None

    def sweep_time(self, grace_period: int = DEFAULT_GRACE_PERIOD) -> int:
        """Earliest time the administrator may sweep residual custody."""
        return self.final_unlock + grace_period

    def to_list(self) -> list[int]:
        return list(self.timestamps)


__all__ = [
    "CHECKPOINT_COUNT",
    "DEFAULT_GRACE_PERIOD",
    "DEFAULT_LONG_PLAN_THRESHOLD",
    "PlanType",
    "ReleaseSchedule",
    "plan_from_total",
]
