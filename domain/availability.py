"""Availability resolution: rules + date + lead time -> tagged slot list"""
from datetime import date, datetime, time, timedelta, timezone
from typing import Iterable, List, Optional, Tuple

from domain.enums import AvailabilityKind, AvailabilitySource
from domain.value_objects import AvailabilityResult, AvailabilityRules, coerce_time_list


def weekday_key(day: date) -> int:
    """0 = Sunday .. 6 = Saturday"""
    return (day.weekday() + 1) % 7


class AvailabilityResolver:
    """Domain service for bookable time slots on a calendar date.

    The most specific matching tier wins and is never merged with the
    others. Slot times are wall-clock UTC.
    """

    def __init__(self, platform_default_times: Iterable[str]):
        self.platform_default_times = coerce_time_list(list(platform_default_times))

    def base_times(
        self,
        rules: Optional[AvailabilityRules],
        day: date,
    ) -> Tuple[AvailabilitySource, List[str]]:
        """Matched tier and its configured times, before any filtering"""
        if rules is None or rules.is_empty():
            return AvailabilitySource.PLATFORM_DEFAULT, list(self.platform_default_times)

        candidates = (
            (AvailabilitySource.SPECIFIC_DATE, rules.specific_dates.get(day.isoformat())),
            (AvailabilitySource.MONTH, rules.months.get(day.strftime("%Y-%m"))),
            (AvailabilitySource.YEAR, rules.years.get(day.strftime("%Y"))),
            (AvailabilitySource.WEEKDAY, rules.days_of_week.get(weekday_key(day))),
            (AvailabilitySource.DEFAULT, rules.default_times),
        )
        for source, times in candidates:
            if times is not None:
                return source, list(times)

        return AvailabilitySource.PLATFORM_DEFAULT, list(self.platform_default_times)

    def resolve(
        self,
        rules: Optional[AvailabilityRules],
        day: date,
        hours_in_advance: int = 0,
        now: Optional[datetime] = None,
        booked_times: Iterable[str] = (),
    ) -> AvailabilityResult:
        source, times = self.base_times(rules, day)
        if not times:
            return AvailabilityResult(
                on_date=day, kind=AvailabilityKind.CLOSED, source=source
            )

        now = _as_utc(now or datetime.now(timezone.utc))
        lead_time = timedelta(hours=max(0, hours_in_advance or 0))
        taken = set(coerce_time_list(list(booked_times)))

        slots: List[str] = []
        excluded: List[str] = []
        for slot in times:
            hour, minute = (int(part) for part in slot.split(":"))
            starts_at = datetime.combine(day, time(hour, minute), tzinfo=timezone.utc)
            if starts_at - now >= lead_time and slot not in taken:
                slots.append(slot)
            else:
                excluded.append(slot)

        kind = AvailabilityKind.OPEN if slots else AvailabilityKind.BOOKED_OUT
        return AvailabilityResult(
            on_date=day, kind=kind, source=source, slots=slots, excluded=excluded
        )


def _as_utc(moment: datetime) -> datetime:
    if moment.tzinfo is None:
        return moment.replace(tzinfo=timezone.utc)
    return moment.astimezone(timezone.utc)
