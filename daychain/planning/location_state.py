"""
Location state tracking.

The user is away from home from the start of outbound travel until the end of
return travel for each chain; recovery happens at home. Home intervals are the
at-home periods long enough to hold meals and flexible activities.
"""

from datetime import datetime

from ..config import MIN_HOME_INTERVAL_MINUTES
from ..time_math import minutes_between
from ..types import ExecutionChain, HomeInterval, LocationPeriod, LocationState


def not_home_spans(chains: list[ExecutionChain]) -> list[tuple[datetime, datetime]]:
    """Merged [travel_there.start, travel_back.end] spans, in time order."""
    spans = sorted(
        (chain.commitment_envelope.travel_there.start_time,
         chain.commitment_envelope.travel_back.end_time)
        for chain in chains
    )
    merged: list[tuple[datetime, datetime]] = []
    for start, end in spans:
        if merged and start <= merged[-1][1]:
            merged[-1] = (merged[-1][0], max(merged[-1][1], end))
        else:
            merged.append((start, end))
    return merged


class LocationStateTracker:
    """Derives location periods and home intervals for a plan window."""

    def calculate_location_periods(
        self, chains: list[ExecutionChain], plan_start: datetime, sleep_time: datetime
    ) -> list[LocationPeriod]:
        """
        Partition [plan_start, sleep_time) into at_home / not_home periods.

        Away spans are clipped to the window; overlapping spans merge.
        """
        periods: list[LocationPeriod] = []
        cursor = plan_start
        for start, end in not_home_spans(chains):
            start, end = max(start, plan_start), min(end, sleep_time)
            if end <= start:
                continue
            if cursor < start:
                periods.append(LocationPeriod(cursor, start, "at_home"))
            periods.append(LocationPeriod(start, end, "not_home"))
            cursor = max(cursor, end)
        if cursor < sleep_time:
            periods.append(LocationPeriod(cursor, sleep_time, "at_home"))
        return periods

    def calculate_home_intervals(
        self,
        periods: list[LocationPeriod],
        min_duration_minutes: int = MIN_HOME_INTERVAL_MINUTES,
    ) -> list[HomeInterval]:
        intervals = []
        for period in periods:
            if period.state != "at_home":
                continue
            duration = minutes_between(period.start, period.end)
            if duration >= min_duration_minutes:
                intervals.append(HomeInterval(period.start, period.end, duration))
        return intervals

    def contains_span(
        self, start: datetime, end: datetime, intervals: list[HomeInterval]
    ) -> bool:
        """True if [start, end) lies entirely inside one home interval."""
        return any(interval.start <= start and end <= interval.end for interval in intervals)

    def get_location_state_at(
        self, time: datetime, periods: list[LocationPeriod]
    ) -> LocationState:
        for period in periods:
            if period.start <= time < period.end:
                return period.state
        return "at_home"
