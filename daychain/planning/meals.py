"""
Meal placement.

Each meal gets a target time (anchor-aware when the day has anchors), is
clamped into its window, kept at least MIN_MEAL_GAP_MINUTES after the previous
meal, and then searched for a free slot within +/- SEARCH_RANGE_MINUTES of the
target. A placed meal sits entirely inside a home interval and ends by sleep.
"""

import logging
from dataclasses import dataclass
from datetime import date, datetime, time, timedelta
from typing import Literal

from ..time_math import add_minutes, combine, intervals_overlap
from ..types import HomeInterval
from .location_state import LocationStateTracker

logger = logging.getLogger(__name__)

_home_tracker = LocationStateTracker()

MealType = Literal["breakfast", "lunch", "dinner"]
PlacementReason = Literal["anchor-aware", "default"]

MEAL_ORDER: tuple[MealType, ...] = ("breakfast", "lunch", "dinner")


@dataclass(frozen=True)
class MealConfig:
    window_start: str  # "HH:MM"
    window_end: str  # "HH:MM"
    default_time: str  # Target when the day has no anchors
    duration: int  # minutes


MEAL_CONFIGS: dict[MealType, MealConfig] = {
    "breakfast": MealConfig("06:30", "11:30", "09:30", 15),
    "lunch": MealConfig("11:30", "15:30", "13:00", 30),
    "dinner": MealConfig("17:00", "21:30", "19:00", 45),
}

MIN_MEAL_GAP_MINUTES = 180  # Start of a meal to end of the previous one
SEARCH_RANGE_MINUTES = 30
SEARCH_STEP_MINUTES = 5
BREAKFAST_AFTER_WAKE_MINUTES = 45
LATE_WAKE_HOUR = 9  # Without anchors, waking at/after this puts breakfast after wake
MEAL_AFTER_ANCHOR_MINUTES = 30
LUNCH_ANCHOR_CUTOFF = time(12, 0)  # Morning anchors end before this
DINNER_ANCHOR_CUTOFF = time(15, 0)  # Evening anchors end after this
ANCHOR_AWARE_LUNCH = "12:30"
ANCHOR_AWARE_DINNER = "19:00"

Span = tuple[datetime, datetime]


@dataclass(frozen=True)
class MealPlacement:
    meal: MealType
    target_time: datetime | None
    start: datetime | None = None
    end: datetime | None = None
    skip_reason: str | None = None
    placement_reason: PlacementReason = "default"

    @property
    def skipped(self) -> bool:
        return self.start is None

    @property
    def duration(self) -> int:
        return MEAL_CONFIGS[self.meal].duration


def meal_window(meal: MealType, day: date) -> Span:
    config = MEAL_CONFIGS[meal]
    return combine(day, config.window_start), combine(day, config.window_end)


def calculate_meal_target_time(
    meal: MealType, anchors: list[Span], wake_time: datetime
) -> tuple[datetime, PlacementReason]:
    """
    Target time for a meal.

    Without anchors the default times apply (breakfast moves to wake + 45 min
    for late risers). With anchors, breakfast follows wake, lunch follows the
    last anchor ending before noon and dinner the last anchor ending after
    15:00.
    """
    day = wake_time.date()
    if not anchors:
        if meal == "breakfast" and wake_time.hour >= LATE_WAKE_HOUR:
            return add_minutes(wake_time, BREAKFAST_AFTER_WAKE_MINUTES), "default"
        return combine(day, MEAL_CONFIGS[meal].default_time), "default"

    if meal == "breakfast":
        return add_minutes(wake_time, BREAKFAST_AFTER_WAKE_MINUTES), "anchor-aware"

    if meal == "lunch":
        noon = datetime.combine(day, LUNCH_ANCHOR_CUTOFF)
        morning_ends = [end for _, end in anchors if end < noon]
        if morning_ends:
            return add_minutes(max(morning_ends), MEAL_AFTER_ANCHOR_MINUTES), "anchor-aware"
        return combine(day, ANCHOR_AWARE_LUNCH), "anchor-aware"

    afternoon = datetime.combine(day, DINNER_ANCHOR_CUTOFF)
    evening_ends = [end for _, end in anchors if end > afternoon]
    if evening_ends:
        return add_minutes(max(evening_ends), MEAL_AFTER_ANCHOR_MINUTES), "anchor-aware"
    return combine(day, ANCHOR_AWARE_DINNER), "anchor-aware"


def clamp_to_meal_window(
    target: datetime, meal: MealType, now: datetime
) -> datetime | None:
    """Clamp into the meal window and not before now; None if the window has passed."""
    window_start, window_end = meal_window(meal, target.date())
    if now > window_end:
        return None
    clamped = min(max(target, window_start), window_end)
    clamped = max(clamped, now)
    if clamped > window_end:
        return None
    return clamped


def check_meal_spacing(proposed: datetime, previous_meal_end: datetime | None) -> bool:
    if previous_meal_end is None:
        return True
    return proposed - previous_meal_end >= timedelta(minutes=MIN_MEAL_GAP_MINUTES)


def has_conflict(start: datetime, end: datetime, occupied: list[Span]) -> bool:
    return any(intervals_overlap(start, end, o_start, o_end) for o_start, o_end in occupied)


def candidate_times(target: datetime, search_range: int = SEARCH_RANGE_MINUTES) -> list[datetime]:
    """Target first, then forward in 5-minute steps, then backward."""
    offsets = range(SEARCH_STEP_MINUTES, search_range + 1, SEARCH_STEP_MINUTES)
    return (
        [target]
        + [add_minutes(target, offset) for offset in offsets]
        + [add_minutes(target, -offset) for offset in offsets]
    )


def place_meals(
    anchors: list[Span],
    occupied: list[Span],
    wake_time: datetime,
    sleep_time: datetime,
    now: datetime,
    home_intervals: list[HomeInterval],
    not_before: datetime | None = None,
) -> list[MealPlacement]:
    """
    Place breakfast, lunch and dinner.

    Args:
        anchors: Commitment spans used for anchor-aware targets
        occupied: Spans a meal may not overlap (chain blocks, wake ramp)
        wake_time: Day's wake time
        sleep_time: Meals must end by this time
        now: Effective now (plan start); meals never start before it
        home_intervals: A meal must fit entirely inside one of these
        not_before: Targets earlier than this move up to it (wake ramp end)

    Returns:
        One MealPlacement per meal, skipped ones carrying a skip_reason
    """
    placements: list[MealPlacement] = []
    occupied = list(occupied)
    previous_end: datetime | None = None

    for meal in MEAL_ORDER:
        duration = MEAL_CONFIGS[meal].duration
        target, reason = calculate_meal_target_time(meal, anchors, wake_time)
        if not_before is not None and target < not_before:
            target = not_before

        clamped = clamp_to_meal_window(target, meal, now)
        if clamped is None:
            logger.debug("Skipping %s: past meal window", meal)
            placements.append(MealPlacement(meal, target, skip_reason="Past meal window"))
            continue

        if not check_meal_spacing(clamped, previous_end):
            logger.debug("Skipping %s: too close to previous meal", meal)
            placements.append(MealPlacement(meal, clamped, skip_reason="Meal spacing"))
            continue

        slot = None
        for candidate in candidate_times(clamped):
            end = add_minutes(candidate, duration)
            if (
                candidate >= now
                and end <= sleep_time
                and check_meal_spacing(candidate, previous_end)
                and not has_conflict(candidate, end, occupied)
                and _home_tracker.contains_span(candidate, end, home_intervals)
            ):
                slot = candidate
                break

        if slot is None:
            clamped_end = add_minutes(clamped, duration)
            if clamped_end > sleep_time:
                skip_reason = "Would exceed sleep time"
            elif not _home_tracker.contains_span(clamped, clamped_end, home_intervals):
                skip_reason = "Not in home interval"
            else:
                skip_reason = "No valid slot found"
            logger.debug("Skipping %s: %s", meal, skip_reason)
            placements.append(MealPlacement(meal, clamped, skip_reason=skip_reason))
            continue

        end = add_minutes(slot, duration)
        logger.debug("Placed %s at %s-%s (%s)", meal, slot, end, reason)
        placements.append(MealPlacement(meal, clamped, slot, end, placement_reason=reason))
        occupied.append((slot, end))
        previous_end = end

    return placements
