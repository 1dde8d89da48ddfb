"""Schedule rule construction and parsing of user-supplied days and times."""

from __future__ import annotations

from dataclasses import dataclass
from enum import IntEnum
from typing import Any

from tplc.errors import InvalidInputError


class StartOption(IntEnum):
    TIME = 0
    SUNRISE = 1
    SUNSET = 2


# Index into the ``wday`` array: [Sun, Mon, Tue, Wed, Thu, Fri, Sat]
DAY_INDEX: dict[str, int] = {
    "sun": 0,
    "sunday": 0,
    "mon": 1,
    "monday": 1,
    "tue": 2,
    "tuesday": 2,
    "wed": 3,
    "wednesday": 3,
    "thu": 4,
    "thursday": 4,
    "fri": 5,
    "friday": 5,
    "sat": 6,
    "saturday": 6,
}


@dataclass
class ScheduleRuleBuilder:
    """Builds a ``schedule.add_rule`` payload.

    Example::

        rule = (
            ScheduleRuleBuilder()
            .with_action(True)
            .with_time(7, 30)
            .with_days(parse_days(["mon", "fri"]))
            .build()
        )
    """

    action: bool | None = None
    name: str | None = None
    enabled: bool = True
    time_opt: StartOption = StartOption.TIME
    minutes: int | None = None
    wday: list[int] | None = None
    repeat: bool = True

    def with_action(self, turn_on: bool) -> ScheduleRuleBuilder:
        self.action = turn_on
        return self

    def with_name(self, name: str) -> ScheduleRuleBuilder:
        self.name = name
        return self

    def with_time(self, hour: int, minute: int) -> ScheduleRuleBuilder:
        self.time_opt = StartOption.TIME
        self.minutes = hour * 60 + minute
        return self

    def with_sunrise(self) -> ScheduleRuleBuilder:
        self.time_opt = StartOption.SUNRISE
        self.minutes = 0
        return self

    def with_sunset(self) -> ScheduleRuleBuilder:
        self.time_opt = StartOption.SUNSET
        self.minutes = 0
        return self

    def with_days(self, wday: list[int]) -> ScheduleRuleBuilder:
        self.wday = wday
        self.repeat = True
        return self

    def with_enabled(self, enabled: bool) -> ScheduleRuleBuilder:
        self.enabled = enabled
        return self

    def build(self) -> dict[str, Any]:
        if self.action is None:
            raise InvalidInputError("Schedule rule requires an action (on/off)")

        rule: dict[str, Any] = {
            "enable": 1 if self.enabled else 0,
            "sact": 1 if self.action else 0,
            "stime_opt": int(self.time_opt),
            "smin": self.minutes or 0,
            "soffset": 0,
            "etime_opt": -1,
            "emin": 0,
            "eoffset": 0,
            "eact": -1,
            "repeat": 1 if self.repeat else 0,
            "wday": self.wday if self.wday is not None else [1] * 7,
        }
        if self.name is not None:
            rule["name"] = self.name
        return rule


def parse_days(days: list[str]) -> list[int]:
    """Convert day names to a 7-slot ``wday`` mask starting on Sunday."""
    wday = [0] * 7
    for day in days:
        key = day.strip().lower()
        if key not in DAY_INDEX:
            raise InvalidInputError(
                f"Invalid day: '{day}'. Use: sun, mon, tue, wed, thu, fri, sat"
            )
        wday[DAY_INDEX[key]] = 1
    return wday


def parse_time(value: str) -> tuple[int, int]:
    """Parse ``HH:MM`` into ``(hour, minute)``."""
    parts = value.split(":")
    if len(parts) != 2:
        raise InvalidInputError(f"Invalid time format '{value}'. Use HH:MM")
    try:
        hour = int(parts[0])
    except ValueError:
        raise InvalidInputError(f"Invalid hour in '{value}'") from None
    try:
        minute = int(parts[1])
    except ValueError:
        raise InvalidInputError(f"Invalid minute in '{value}'") from None
    if not (0 <= hour <= 23 and 0 <= minute <= 59):
        raise InvalidInputError(f"Time '{value}' out of range (00:00-23:59)")
    return hour, minute


def apply_edits(
    rule: dict[str, Any],
    *,
    action: bool | None = None,
    time: tuple[int, int] | None = None,
    wday: list[int] | None = None,
    enabled: bool | None = None,
) -> dict[str, Any]:
    """Return a copy of an existing rule with the given fields overridden."""
    updated = dict(rule)
    if action is not None:
        updated["sact"] = 1 if action else 0
    if time is not None:
        hour, minute = time
        updated["stime_opt"] = int(StartOption.TIME)
        updated["smin"] = hour * 60 + minute
    if wday is not None:
        updated["wday"] = wday
    if enabled is not None:
        updated["enable"] = 1 if enabled else 0
    return updated


def find_rule(rules: dict[str, Any] | None, rule_id: str) -> dict[str, Any] | None:
    """Find a rule by id in a ``schedule.get_rules`` reply."""
    rule_list = (rules or {}).get("rule_list")
    if not isinstance(rule_list, list):
        return None
    for rule in rule_list:
        if isinstance(rule, dict) and rule.get("id") == rule_id:
            return rule
    return None
