"""
Test helper functions and fakes for daychain tests.

These can be imported by test modules for building anchors and plans.
"""

import sys
import threading
from datetime import date, datetime, timedelta
from pathlib import Path

# Add project root to path for imports
sys.path.insert(0, str(Path(__file__).parent.parent))

from daychain.chains.travel import TravelRoute
from daychain.types import Anchor, ChainStepInstance, DailyPlan, TimeBlock

TEST_DATE = date(2026, 1, 20)


def at(hhmm: str, day: date = TEST_DATE) -> datetime:
    """Naive datetime for "HH:MM" on the test day."""
    hours, minutes = hhmm.split(":")
    return datetime(day.year, day.month, day.day, int(hours), int(minutes))


def make_anchor(
    anchor_id: str = "a1",
    start: str = "10:00",
    end: str = "12:00",
    anchor_type: str = "class",
    title: str = "Lecture",
    location: str | None = "Campus",
) -> Anchor:
    return Anchor(
        id=anchor_id,
        title=title,
        type=anchor_type,
        start=at(start),
        end=at(end),
        location=location,
    )


class FixedEstimator:
    """Returns the same duration for every destination and counts calls."""

    def __init__(self, minutes: int = 20):
        self.minutes = minutes
        self.calls = 0
        self._lock = threading.Lock()

    def estimate(self, origin, destination, conditions, preferences) -> TravelRoute:
        with self._lock:
            self.calls += 1
        return TravelRoute(duration_minutes=self.minutes, method="walk")


class FailingEstimator:
    def estimate(self, origin, destination, conditions, preferences) -> TravelRoute:
        raise ConnectionError("routing service unreachable")


class HangingEstimator:
    """Blocks until released (or 2 seconds pass)."""

    def __init__(self):
        self.release = threading.Event()

    def estimate(self, origin, destination, conditions, preferences) -> TravelRoute:
        self.release.wait(2)
        return TravelRoute(duration_minutes=20)


class SlowFirstEstimator:
    """Earlier departures answer more slowly, to scramble completion order."""

    def estimate(self, origin, destination, conditions, preferences) -> TravelRoute:
        delay = max(0.0, 0.05 - conditions.time_window.arrival.hour * 0.003)
        threading.Event().wait(delay)
        return TravelRoute(duration_minutes=15)


def assert_contiguous(steps: list[ChainStepInstance]) -> None:
    """Each step must end exactly where the next begins."""
    for previous, current in zip(steps, steps[1:]):
        assert previous.end_time == current.start_time, (
            f"{previous.name} ends {previous.end_time} but {current.name} "
            f"starts {current.start_time}"
        )


def assert_no_live_overlap(blocks: list[TimeBlock]) -> None:
    live = sorted((b for b in blocks if b.is_live), key=lambda b: (b.start_time, b.end_time))
    for previous, current in zip(live, live[1:]):
        assert current.start_time >= previous.end_time, (
            f"{previous.activity_name} ({previous.start_time:%H:%M}-{previous.end_time:%H:%M}) "
            f"overlaps {current.activity_name} "
            f"({current.start_time:%H:%M}-{current.end_time:%H:%M})"
        )


def blocks_named(plan: DailyPlan, name: str) -> list[TimeBlock]:
    return [block for block in plan.time_blocks if block.activity_name == name]


def block_named(plan: DailyPlan, name: str) -> TimeBlock:
    matches = blocks_named(plan, name)
    assert len(matches) == 1, f"Expected one {name!r} block, found {len(matches)}"
    return matches[0]


def span(block) -> tuple[str, str]:
    """("HH:MM", "HH:MM") for a block or step, for readable assertions."""
    start = getattr(block, "start_time", None) or block.start
    end = getattr(block, "end_time", None) or block.end
    return f"{start:%H:%M}", f"{end:%H:%M}"


def minutes(n: int) -> timedelta:
    return timedelta(minutes=n)
