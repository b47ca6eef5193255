"""Cron spec validation and evaluation.

One place decides what a valid spec is and when it fires next. Both the
service (validation before any side effect) and the APScheduler adapter
(the trigger it registers) go through this module, so the two can never
disagree about a spec.

Accepted specs:
    - standard 5-field crontab (``minute hour day month day_of_week``),
      with names (``MON``, ``JAN``) and ``0``/``7`` both meaning Sunday
    - descriptors ``@yearly`` ``@annually`` ``@monthly`` ``@weekly``
      ``@daily`` ``@midnight`` ``@hourly``

Tags:
    cronspine, scheduling, cron, croniter, validation

Doc-Types:
    api-reference
"""

from __future__ import annotations

from datetime import UTC, datetime, tzinfo
from zoneinfo import ZoneInfo

from apscheduler.triggers.base import BaseTrigger
from croniter import croniter

from cronspine.core.errors import ValidationError

DESCRIPTORS: dict[str, str] = {
    "@yearly": "0 0 1 1 *",
    "@annually": "0 0 1 1 *",
    "@monthly": "0 0 1 * *",
    "@weekly": "0 0 * * 0",
    "@daily": "0 0 * * *",
    "@midnight": "0 0 * * *",
    "@hourly": "0 * * * *",
}


def normalize_spec(spec: str) -> str:
    """Collapse whitespace and expand descriptors to 5-field form."""
    expr = " ".join(spec.split())
    return DESCRIPTORS.get(expr.lower(), expr)


def validate_spec(spec: str | None) -> str:
    """Validate a cron spec and return it unchanged (stripped).

    Raises:
        ValidationError: empty, wrong field count, or unparseable spec
    """
    if spec is None or not spec.strip():
        raise ValidationError("cron spec is required")

    stripped = spec.strip()
    expr = normalize_spec(stripped)
    if len(expr.split(" ")) != 5:
        raise ValidationError(
            f"cron spec must have 5 fields, got {len(expr.split(' '))}"
        ).with_context(spec=stripped)

    if not croniter.is_valid(expr):
        raise ValidationError(f"invalid cron spec: {stripped!r}").with_context(spec=stripped)

    return stripped


def next_fire_time(
    spec: str,
    after: datetime,
    timezone: str | tzinfo = "UTC",
) -> datetime:
    """Next time *spec* fires strictly after *after*, as an aware UTC datetime."""
    tz = ZoneInfo(timezone) if isinstance(timezone, str) else timezone
    if after.tzinfo is None:
        after = after.replace(tzinfo=UTC)
    start = after.astimezone(tz)
    nxt = croniter(normalize_spec(spec), start).get_next(datetime)
    return nxt.astimezone(UTC)


class CronSpecTrigger(BaseTrigger):
    """APScheduler trigger evaluating a crontab spec with croniter.

    APScheduler's own ``CronTrigger`` numbers weekdays from Monday; this
    trigger keeps standard crontab weekday semantics.
    """

    __slots__ = ("spec", "timezone")

    def __init__(self, spec: str, timezone: str | tzinfo = "UTC"):
        self.spec = validate_spec(spec)
        self.timezone = ZoneInfo(timezone) if isinstance(timezone, str) else timezone

    def get_next_fire_time(
        self, previous_fire_time: datetime | None, now: datetime
    ) -> datetime | None:
        start = previous_fire_time or now
        return next_fire_time(self.spec, start, self.timezone).astimezone(self.timezone)

    def __getstate__(self):
        return {"version": 1, "spec": self.spec, "timezone": str(self.timezone)}

    def __setstate__(self, state):
        self.spec = state["spec"]
        self.timezone = ZoneInfo(state["timezone"])

    def __str__(self) -> str:
        return f"cron[{self.spec}]"

    def __repr__(self) -> str:
        return f"<{self.__class__.__name__} (spec={self.spec!r}, timezone='{self.timezone}')>"


__all__ = [
    "DESCRIPTORS",
    "normalize_spec",
    "validate_spec",
    "next_fire_time",
    "CronSpecTrigger",
]
