"""Weekly opening-hours evaluation.

Parses the OpenStreetMap style ``opening_hours`` strings stored with each
establishment (``"Mo-Fr 08:00-22:00; Sa,Su 10:00-02:00; PH off"``) into a
``WeeklySchedule`` and answers whether a place is open at a given moment.

Supported: ``24/7``, weekday selectors with ranges, wrap-around ranges and
comma lists, comma separated time ranges (ends past midnight spill into the
next day), open ends (``18:00+``) and the ``off``/``closed``/``open``
modifiers. Later rules replace earlier ones for the days they select, while
rules joined with a comma (``Mo-Fr 08:00-18:00, Sa 10:00-14:00``) add to them.
Holiday selectors are skipped since there is no holiday calendar. Anything
else is a ``ScheduleParseError``, which ``evaluate`` reports as ``OpenState.UNKNOWN``.
"""

from __future__ import annotations

import re
from dataclasses import dataclass, replace
from datetime import datetime
from functools import lru_cache
from typing import FrozenSet, List, Optional, Tuple

from loguru import logger

from models import OpenState


DAY_ORDER = ["mo", "tu", "we", "th", "fr", "sa", "su"]
ALL_DAYS: FrozenSet[int] = frozenset(range(7))
MINUTES_PER_DAY = 24 * 60

_HOLIDAYS = {"ph", "sh"}
_DAY_TOKEN = re.compile(r"^(mo|tu|we|th|fr|sa|su)(?:-(mo|tu|we|th|fr|sa|su))?$")
_TIME_RANGE = re.compile(r"^(\d{1,2}):(\d{2})-(\d{1,2}):(\d{2})$")
_OPEN_END = re.compile(r"^(\d{1,2}):(\d{2})\+$")
_CLOSED_WORDS = {"off", "closed"}
# "," between a time or modifier and a day selector starts an additional rule
_ADDITIONAL_RULE = re.compile(r"(?:(?<=\d)|(?<=\+)|(?<=off)|(?<=open)|(?<=closed)),(?=(?:mo|tu|we|th|fr|sa|su|ph|sh)\b)")


class ScheduleParseError(ValueError):
    pass


@dataclass(frozen=True)
class ScheduleRule:
    days: FrozenSet[int]
    # minutes from the start of the day; an end above 1440 runs into the next day
    intervals: Tuple[Tuple[int, int], ...] = ()
    closed: bool = False
    # joined with "," so it extends the preceding rule instead of replacing it
    additional: bool = False

    def covers(self, minute: int) -> bool:
        if self.closed:
            return False
        return any(start <= minute < end for start, end in self.intervals)


def _covered(rules: List[ScheduleRule], minute: int) -> bool:
    is_open = False
    for rule in rules:
        if rule.closed:
            is_open = False
        elif rule.covers(minute):
            is_open = True
    return is_open


@dataclass(frozen=True)
class WeeklySchedule:
    rules: Tuple[ScheduleRule, ...]

    def rules_for(self, weekday: int) -> List[ScheduleRule]:
        effective: List[ScheduleRule] = []
        for rule in self.rules:
            if weekday not in rule.days:
                continue
            if rule.additional:
                effective.append(rule)
            else:
                effective = [rule]
        return effective

    def is_open_at(self, at: datetime) -> bool:
        weekday = at.weekday()
        minute = at.hour * 60 + at.minute

        today = self.rules_for(weekday)
        if _covered(today, minute):
            return True
        if any(rule.closed for rule in today):
            return False
        return _covered(self.rules_for((weekday - 1) % 7), minute + MINUTES_PER_DAY)


def _parse_clock(hour: str, minute: str, *, allow_past_midnight: bool) -> int:
    h = int(hour)
    m = int(minute)
    limit = 48 if allow_past_midnight else 24
    if m > 59 or h > limit or (h == limit and m > 0):
        raise ScheduleParseError(f"invalid time {hour}:{minute}")
    return h * 60 + m


def _parse_days(token: str) -> Optional[FrozenSet[int]]:
    """Return the selected weekdays, or None when the token selects only holidays."""
    days: set[int] = set()
    saw_holiday = False
    for part in token.split(","):
        if part in _HOLIDAYS:
            saw_holiday = True
            continue
        match = _DAY_TOKEN.match(part)
        if not match:
            raise ScheduleParseError(f"unsupported day selector {part!r}")
        start, end = match.group(1), match.group(2)
        start_idx = DAY_ORDER.index(start)
        if not end:
            days.add(start_idx)
            continue
        end_idx = DAY_ORDER.index(end)
        if start_idx <= end_idx:
            days.update(range(start_idx, end_idx + 1))
        else:
            days.update(range(start_idx, 7))
            days.update(range(0, end_idx + 1))
    if not days and saw_holiday:
        return None
    return frozenset(days)


def _parse_times(token: str) -> Tuple[Tuple[int, int], ...]:
    intervals: list[Tuple[int, int]] = []
    for part in token.split(","):
        match = _TIME_RANGE.match(part)
        if match:
            start = _parse_clock(match.group(1), match.group(2), allow_past_midnight=False)
            end = _parse_clock(match.group(3), match.group(4), allow_past_midnight=True)
            if start >= MINUTES_PER_DAY:
                raise ScheduleParseError(f"range starts at midnight or later: {part!r}")
            if end <= start:
                end += MINUTES_PER_DAY
            intervals.append((start, end))
            continue
        match = _OPEN_END.match(part)
        if match:
            start = _parse_clock(match.group(1), match.group(2), allow_past_midnight=False)
            intervals.append((start, MINUTES_PER_DAY))
            continue
        raise ScheduleParseError(f"unsupported time selector {part!r}")
    return tuple(intervals)


def _looks_like_days(token: str) -> bool:
    return all(p in _HOLIDAYS or _DAY_TOKEN.match(p) for p in token.split(","))


def _normalize(segment: str) -> str:
    text = segment.strip().lower()
    text = re.sub(r"\s*-\s*", "-", text)
    return re.sub(r"\s*,\s*", ",", text)


def _parse_rule(segment: str) -> Optional[ScheduleRule]:
    text = _normalize(segment)
    if text == "24/7":
        return ScheduleRule(days=ALL_DAYS, intervals=((0, MINUTES_PER_DAY),))

    tokens = text.split()
    if not tokens:
        raise ScheduleParseError("empty rule")

    days: Optional[FrozenSet[int]] = ALL_DAYS
    has_day_selector = False
    if _looks_like_days(tokens[0]):
        days = _parse_days(tokens[0])
        has_day_selector = True
        tokens = tokens[1:]

    intervals: Tuple[Tuple[int, int], ...] = ()
    closed = False
    for token in tokens:
        if token in _CLOSED_WORDS:
            closed = True
        elif token == "open":
            continue
        elif intervals:
            raise ScheduleParseError(f"unexpected token {token!r}")
        else:
            intervals = _parse_times(token)

    if days is None:
        # holiday-only rule
        return None
    if not intervals and not closed:
        if not has_day_selector:
            raise ScheduleParseError(f"rule without selectors: {segment!r}")
        intervals = ((0, MINUTES_PER_DAY),)
    return ScheduleRule(days=days, intervals=() if closed else intervals, closed=closed)


@lru_cache(maxsize=512)
def parse_schedule(hours: str) -> WeeklySchedule:
    segments = [seg for seg in hours.split(";") if seg.strip()]
    if not segments:
        raise ScheduleParseError("empty schedule")
    rules: List[ScheduleRule] = []
    for seg in segments:
        for index, part in enumerate(_ADDITIONAL_RULE.split(_normalize(seg))):
            rule = _parse_rule(part)
            if rule is not None:
                rules.append(replace(rule, additional=index > 0))
    return WeeklySchedule(rules=tuple(rules))


def evaluate(hours: Optional[str], at: datetime) -> OpenState:
    """Open/closed state of ``hours`` at ``at`` (wall-clock fields of ``at`` are used as-is)."""
    if hours is None or not hours.strip():
        return OpenState.UNKNOWN
    try:
        schedule = parse_schedule(hours)
    except ScheduleParseError as exc:
        logger.debug("unparseable opening_hours {!r}: {}", hours, exc)
        return OpenState.UNKNOWN
    return OpenState.OPEN if schedule.is_open_at(at) else OpenState.CLOSED
