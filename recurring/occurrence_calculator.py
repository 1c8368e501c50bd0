"""Pure occurrence calculation for recurrence rules over a date window."""

from __future__ import annotations

import calendar
from datetime import date
from typing import Iterator, Optional

from recurring.rule_state import (
    FREQUENCIES,
    FREQUENCY_DAILY,
    FREQUENCY_MONTHLY,
    FREQUENCY_WEEKLY,
    FREQUENCY_YEARLY,
    RecurrenceComputationError,
    RecurrenceRule,
)

LEAP_DAY_CLAMP = "clamp"
LEAP_DAY_SKIP = "skip"
LEAP_DAY_POLICIES: tuple[str, ...] = (LEAP_DAY_CLAMP, LEAP_DAY_SKIP)


def days_in_month(year: int, month: int) -> int:
    return calendar.monthrange(year, month)[1]


def add_months(anchor: date, months: int) -> date:
    """
    Offset an anchor date by whole months, clamping the day to month end.

    The day is always derived from the anchor, never from a previously
    clamped result, so a 31st anchor yields 28/29, 30 and 31 as each
    target month allows.
    """
    return _date_at_month_index(anchor, _month_index(anchor) + months)


def _month_index(value: date) -> int:
    return value.year * 12 + (value.month - 1)


def _date_at_month_index(anchor: date, month_index: int) -> date:
    year, month_zero = divmod(month_index, 12)
    month = month_zero + 1
    return date(year, month, min(anchor.day, days_in_month(year, month)))


def _ceil_div(numerator: int, denominator: int) -> int:
    return -(-numerator // denominator)


def _yearly_occurrence(anchor: date, years: int, leap_day_policy: str) -> Optional[date]:
    year = anchor.year + years
    if anchor.month == 2 and anchor.day == 29 and not calendar.isleap(year):
        if leap_day_policy == LEAP_DAY_SKIP:
            return None
        return date(year, 2, 28)
    return date(year, anchor.month, anchor.day)


def _check_rule(rule: RecurrenceRule, leap_day_policy: str) -> None:
    if rule.frequency not in FREQUENCIES:
        raise RecurrenceComputationError(
            f"Unsupported frequency={rule.frequency!r} for rule_id={rule.rule_id}."
        )
    if isinstance(rule.interval, bool) or not isinstance(rule.interval, int) or rule.interval < 1:
        raise RecurrenceComputationError(
            f"Invalid interval={rule.interval!r} for rule_id={rule.rule_id}."
        )
    if leap_day_policy not in LEAP_DAY_POLICIES:
        raise RecurrenceComputationError(f"Unsupported leap_day_policy={leap_day_policy!r}.")


def effective_range(
    rule: RecurrenceRule,
    query_start: date,
    query_end: date,
) -> Optional[tuple[date, date]]:
    """Intersect the rule's active span with the query window."""
    range_start = max(rule.start_date, query_start)
    range_end = query_end if rule.end_date is None else min(rule.end_date, query_end)
    if range_start > range_end:
        return None
    return range_start, range_end


def iter_occurrences(
    rule: RecurrenceRule,
    query_start: date,
    query_end: date,
    *,
    leap_day_policy: str = LEAP_DAY_CLAMP,
) -> Iterator[date]:
    """Yield the rule's fire dates inside the query window in increasing order."""
    _check_rule(rule, leap_day_policy)
    bounds = effective_range(rule, query_start, query_end)
    if bounds is None:
        return
    range_start, range_end = bounds
    anchor = rule.start_date
    interval = rule.interval

    # Candidates stay ordinals or month indexes until they are known to be
    # <= range_end; a date is only built for an in-range candidate.
    if rule.frequency in (FREQUENCY_DAILY, FREQUENCY_WEEKLY):
        step_days = interval if rule.frequency == FREQUENCY_DAILY else 7 * interval
        k = _ceil_div((range_start - anchor).days, step_days)
        ordinal = anchor.toordinal() + step_days * k
        last_ordinal = range_end.toordinal()
        while ordinal <= last_ordinal:
            yield date.fromordinal(ordinal)
            ordinal += step_days
        return

    if rule.frequency == FREQUENCY_MONTHLY:
        anchor_index = _month_index(anchor)
        last_index = _month_index(range_end)
        k = _ceil_div(_month_index(range_start) - anchor_index, interval)
        while anchor_index + k * interval <= last_index:
            current = _date_at_month_index(anchor, anchor_index + k * interval)
            k += 1
            if current < range_start:
                continue
            if current > range_end:
                return
            yield current
        return

    # FREQUENCY_YEARLY
    k = _ceil_div(range_start.year - anchor.year, interval)
    while anchor.year + k * interval <= range_end.year:
        current = _yearly_occurrence(anchor, k * interval, leap_day_policy)
        k += 1
        if current is None or current < range_start:
            continue
        if current > range_end:
            return
        yield current


def occurrences(
    rule: RecurrenceRule,
    query_start: date,
    query_end: date,
    *,
    leap_day_policy: str = LEAP_DAY_CLAMP,
) -> list[date]:
    """
    Return the rule's fire dates inside [query_start, query_end].

    Date arithmetic failures on the rule's data surface as
    RecurrenceComputationError so callers can isolate the rule.
    """
    try:
        return list(
            iter_occurrences(rule, query_start, query_end, leap_day_policy=leap_day_policy)
        )
    except (OverflowError, TypeError, ValueError) as exc:
        raise RecurrenceComputationError(
            f"Cannot compute occurrences for rule_id={rule.rule_id}: {exc}"
        ) from exc


def is_occurrence(
    rule: RecurrenceRule,
    day: date,
    *,
    leap_day_policy: str = LEAP_DAY_CLAMP,
) -> bool:
    """Cadence congruence test for a single date."""
    return occurrences(rule, day, day, leap_day_policy=leap_day_policy) == [day]
