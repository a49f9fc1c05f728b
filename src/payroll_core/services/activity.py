"""Activity recording for completed payroll operations.

Services receive an ActivityRecorder and call it after a successful write.
Recorder failures are isolated: they are logged and never change the
operation's result.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any, Protocol, runtime_checkable

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class Activity:
    """One auditable action (e.g. payroll_created, thirteenth_month_saved)."""

    action: str
    entity_type: str
    entity_id: str
    company_id: str | None = None
    actor: str | None = None
    details: dict[str, Any] = field(default_factory=dict)
    occurred_at: datetime = field(default_factory=lambda: datetime.now(timezone.utc))


@runtime_checkable
class ActivityRecorder(Protocol):
    """Protocol for activity sinks."""

    async def record(self, activity: Activity) -> None:
        """Record an activity."""
        ...


class NullActivityRecorder:
    """Discards every activity."""

    async def record(self, activity: Activity) -> None:
        return None


class LoggingActivityRecorder:
    """Writes activities to a logger at INFO."""

    def __init__(self, logger_name: str = "payroll_core.activity"):
        self._logger = logging.getLogger(logger_name)

    async def record(self, activity: Activity) -> None:
        self._logger.info(
            "%s %s=%s company=%s actor=%s",
            activity.action,
            activity.entity_type,
            activity.entity_id,
            activity.company_id,
            activity.actor,
        )


class InMemoryActivityRecorder:
    """Collects activities in a list (for tests)."""

    def __init__(self) -> None:
        self.activities: list[Activity] = []

    async def record(self, activity: Activity) -> None:
        self.activities.append(activity)

    def actions(self) -> list[str]:
        return [a.action for a in self.activities]

    def clear(self) -> None:
        self.activities.clear()


async def record_safely(recorder: ActivityRecorder, activity: Activity) -> None:
    """Record an activity, logging (not raising) any recorder failure."""
    try:
        await recorder.record(activity)
    except Exception:
        logger.exception(
            "Activity recorder failed for %s %s",
            activity.action,
            activity.entity_id,
        )
