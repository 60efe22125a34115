"""Streak state and its closed sets of actions and statuses.

The streak itself is persisted on the user stats aggregate; these types
are the in-memory view the state machine works on.
"""

from dataclasses import dataclass
from datetime import datetime
from enum import Enum


DEFAULT_MILESTONES = (3, 7, 14, 30, 60, 100, 365)


class StreakAction(str, Enum):
    """What one qualifying activity did to the streak."""

    START = "start"
    ALREADY_UPDATED = "already_updated"
    EXTENDED = "extended"
    RESTARTED = "restarted"


class StreakStatus(str, Enum):
    """Streak health as seen from today."""

    START = "start"  # no activity yet
    ACTIVE = "active"  # active today
    AT_RISK = "at_risk"  # last active yesterday, today still open
    BROKEN = "broken"  # a full day was missed


@dataclass(frozen=True)
class StreakState:
    """Invariant: ``longest_streak >= current_streak >= 0``."""

    current_streak: int = 0
    longest_streak: int = 0
    last_active_at: datetime | None = None


@dataclass(frozen=True)
class StreakUpdate:
    """Result of recording one activity."""

    state: StreakState
    action: StreakAction
    previous_streak: int
    milestone: int | None = None

    @property
    def changed(self) -> bool:
        return self.action != StreakAction.ALREADY_UPDATED


@dataclass(frozen=True)
class StreakStatusView:
    current_streak: int
    longest_streak: int
    status: StreakStatus
    days_since_last_activity: int | None
    last_active_at: datetime | None
    next_milestone: int | None
