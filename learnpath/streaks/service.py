"""Daily learning streak state machine.

Days are calendar days in the configured timezone, computed from server
time only. Transitions on a qualifying activity, by day gap to the last
activity:

- no previous activity: start at 1
- gap 0 (or negative after a clock change): already updated, only the
  activity timestamp moves
- gap 1: extended by one
- gap > 1: restarted at 1, the longest streak is kept
"""

from collections.abc import Sequence
from datetime import datetime
from zoneinfo import ZoneInfo

from .models import (
    DEFAULT_MILESTONES,
    StreakAction,
    StreakState,
    StreakStatus,
    StreakStatusView,
    StreakUpdate,
)


def calendar_day_gap(last: datetime, now: datetime, tz: ZoneInfo) -> int:
    """Whole calendar days between two instants, in ``tz``."""
    return (now.astimezone(tz).date() - last.astimezone(tz).date()).days


def crossed_milestone(
    previous: int, current: int, milestones: Sequence[int] = DEFAULT_MILESTONES
) -> int | None:
    """Smallest milestone reached by going from ``previous`` to ``current``.

    Only one milestone is reported per update even when a jump crosses
    several.

    Examples:
        >>> crossed_milestone(2, 3)
        3
        >>> crossed_milestone(2, 40)
        3
        >>> crossed_milestone(3, 4) is None
        True
    """
    for milestone in sorted(milestones):
        if previous < milestone <= current:
            return milestone
    return None


def next_milestone(
    current: int, milestones: Sequence[int] = DEFAULT_MILESTONES
) -> int | None:
    for milestone in sorted(milestones):
        if milestone > current:
            return milestone
    return None


def apply_activity(
    state: StreakState,
    now: datetime,
    tz: ZoneInfo,
    milestones: Sequence[int] = DEFAULT_MILESTONES,
) -> StreakUpdate:
    """Record one qualifying activity at ``now``. Pure; never fails."""
    previous = state.current_streak

    if state.last_active_at is None:
        action = StreakAction.START
        current = 1
    else:
        gap = calendar_day_gap(state.last_active_at, now, tz)
        if gap <= 0:
            action = StreakAction.ALREADY_UPDATED
            current = max(previous, 1)
        elif gap == 1:
            action = StreakAction.EXTENDED
            current = previous + 1
        else:
            action = StreakAction.RESTARTED
            current = 1

    new_state = StreakState(
        current_streak=current,
        longest_streak=max(state.longest_streak, current),
        last_active_at=now,
    )
    milestone = None
    if action == StreakAction.EXTENDED:
        milestone = crossed_milestone(previous, current, milestones)

    return StreakUpdate(
        state=new_state,
        action=action,
        previous_streak=previous,
        milestone=milestone,
    )


def describe_streak(
    state: StreakState,
    now: datetime,
    tz: ZoneInfo,
    milestones: Sequence[int] = DEFAULT_MILESTONES,
) -> StreakStatusView:
    """Read-only status of a streak as of ``now``.

    The stored current streak is reported as is; a broken streak is only
    reset by the next activity.
    """
    if state.last_active_at is None:
        status = StreakStatus.START
        gap = None
    else:
        gap = max(calendar_day_gap(state.last_active_at, now, tz), 0)
        if gap == 0:
            status = StreakStatus.ACTIVE
        elif gap == 1:
            status = StreakStatus.AT_RISK
        else:
            status = StreakStatus.BROKEN

    return StreakStatusView(
        current_streak=state.current_streak,
        longest_streak=state.longest_streak,
        status=status,
        days_since_last_activity=gap,
        last_active_at=state.last_active_at,
        next_milestone=next_milestone(state.current_streak, milestones),
    )


class StreakTracker:
    """Streak rules bound to a timezone and milestone list."""

    def __init__(
        self,
        timezone: str = "UTC",
        milestones: Sequence[int] = DEFAULT_MILESTONES,
    ):
        self.tz = ZoneInfo(timezone)
        self.milestones = tuple(sorted(milestones))

    def record(self, state: StreakState, now: datetime) -> StreakUpdate:
        return apply_activity(state, now, self.tz, self.milestones)

    def status(self, state: StreakState, now: datetime) -> StreakStatusView:
        return describe_streak(state, now, self.tz, self.milestones)
