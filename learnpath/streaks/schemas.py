"""Pydantic schemas for streak endpoints."""

from datetime import datetime

from pydantic import BaseModel

from .models import StreakAction, StreakStatus, StreakStatusView, StreakUpdate


class StreakStatusResponse(BaseModel):
    """Streak status as of now."""

    current_streak: int
    longest_streak: int
    status: StreakStatus
    days_since_last_activity: int | None = None
    last_active_at: datetime | None = None
    next_milestone: int | None = None

    @classmethod
    def from_view(cls, view: StreakStatusView) -> "StreakStatusResponse":
        return cls(
            current_streak=view.current_streak,
            longest_streak=view.longest_streak,
            status=view.status,
            days_since_last_activity=view.days_since_last_activity,
            last_active_at=view.last_active_at,
            next_milestone=view.next_milestone,
        )


class StreakActivityResponse(BaseModel):
    """Outcome of recording one activity."""

    current_streak: int
    longest_streak: int
    action: StreakAction
    milestone: int | None = None
    last_active_at: datetime | None = None

    @classmethod
    def from_update(cls, update: StreakUpdate) -> "StreakActivityResponse":
        return cls(
            current_streak=update.state.current_streak,
            longest_streak=update.state.longest_streak,
            action=update.action,
            milestone=update.milestone,
            last_active_at=update.state.last_active_at,
        )
