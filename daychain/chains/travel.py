"""
Travel estimator contract.

Route computation is a black box behind the TravelEstimator protocol. This
module builds the request (destination, conditions, preferences) for one
anchor and turns any estimator failure into the default travel duration, so
travel estimation never aborts chain generation.
"""

import logging
import math
from dataclasses import dataclass, field
from datetime import datetime
from typing import Literal, Mapping, Protocol

from ..bounded import call_with_timeout
from ..config import DEFAULT_CONFIG, SchedulerConfig
from ..errors import CollaboratorTimeoutError
from ..time_math import add_minutes
from ..types import Anchor, TravelFallbackInfo

logger = logging.getLogger(__name__)

# Birmingham city centre, used when an anchor has no resolvable location
DEFAULT_DESTINATION_COORDINATES = (52.4508, -1.9305)
DEPARTURE_LEAD_MINUTES = 60  # Travel window opens this long before the anchor
TRAVEL_WINDOW_FLEXIBILITY_MINUTES = 15

TravelMethod = Literal["bike", "train", "walk", "bus", "mixed"]
FitnessLevel = Literal["low", "medium", "high"]


@dataclass(frozen=True)
class Location:
    name: str
    coordinates: tuple[float, float] = DEFAULT_DESTINATION_COORDINATES
    type: str = "other"  # home, university, work, ...
    address: str | None = None


@dataclass(frozen=True)
class Weather:
    temperature: float = 15.0  # Celsius
    condition: str = "cloudy"
    wind_speed: float = 10.0  # km/h
    humidity: float = 70.0  # percent
    precipitation: float = 0.0  # mm/h


@dataclass(frozen=True)
class TimeWindow:
    departure: datetime
    arrival: datetime
    flexibility: int = TRAVEL_WINDOW_FLEXIBILITY_MINUTES  # minutes


@dataclass(frozen=True)
class TravelConditions:
    weather: Weather
    user_energy: int  # 1-5
    time_window: TimeWindow


@dataclass(frozen=True)
class TravelPreferences:
    preferred_method: TravelMethod = "mixed"
    max_walking_distance: int = 1500  # meters
    fitness_level: FitnessLevel = "medium"
    daily_budget: int = 500  # pence
    weekly_budget: int = 2000  # pence
    buffer_time: int = 10  # minutes
    max_travel_time: int = 60  # minutes


@dataclass(frozen=True)
class TravelRoute:
    """Estimator answer. Only duration_minutes is consumed by chain generation."""

    duration_minutes: int
    method: str = "mixed"


class TravelEstimator(Protocol):
    def estimate(
        self,
        origin: Location,
        destination: Location,
        conditions: TravelConditions,
        preferences: TravelPreferences,
    ) -> TravelRoute: ...


@dataclass(frozen=True)
class TravelEstimate:
    """Travel duration for one anchor and, if defaulted, why."""

    duration_minutes: int
    fallback: TravelFallbackInfo | None = None
    method: str | None = None


@dataclass(frozen=True)
class StaticTravelEstimator:
    """
    Table lookup estimator keyed by destination name.

    Unknown destinations raise LookupError unless default_minutes is set.
    """

    durations: Mapping[str, int] = field(default_factory=dict)
    default_minutes: int | None = None
    method: str = "mixed"

    def estimate(self, origin, destination, conditions, preferences) -> TravelRoute:
        minutes = self.durations.get(destination.name, self.default_minutes)
        if minutes is None:
            raise LookupError(f"No travel time known for {destination.name!r}")
        return TravelRoute(duration_minutes=minutes, method=self.method)


def destination_for_anchor(anchor: Anchor) -> Location:
    """Destination for an anchor's location string (name and address)."""
    name = anchor.location or anchor.title
    return Location(name=name, address=anchor.location)


def build_travel_conditions(
    anchor: Anchor, user_energy: int = 3, weather: Weather | None = None
) -> TravelConditions:
    return TravelConditions(
        weather=weather or Weather(),
        user_energy=user_energy,
        time_window=TimeWindow(
            departure=add_minutes(anchor.start, -DEPARTURE_LEAD_MINUTES),
            arrival=anchor.start,
        ),
    )


def estimate_travel_duration(
    estimator: TravelEstimator,
    origin: Location,
    anchor: Anchor,
    user_energy: int = 3,
    weather: Weather | None = None,
    preferences: TravelPreferences | None = None,
    config: SchedulerConfig = DEFAULT_CONFIG,
) -> TravelEstimate:
    """
    Travel minutes from origin to the anchor, never raising.

    Anchors without a location, estimator errors, timeouts and non-positive
    durations all produce the default duration with a TravelFallbackInfo.
    """
    default = config.default_travel_minutes

    if not anchor.location:
        logger.info("Anchor %s has no location, using default travel time", anchor.id)
        return TravelEstimate(default, TravelFallbackInfo("no_location", default))

    destination = destination_for_anchor(anchor)
    conditions = build_travel_conditions(anchor, user_energy, weather)
    try:
        route = call_with_timeout(
            estimator.estimate,
            config.collaborator_timeout_seconds,
            origin,
            destination,
            conditions,
            preferences or TravelPreferences(),
            description="travel estimator",
        )
    except CollaboratorTimeoutError as exc:
        logger.warning("Travel estimate for anchor %s timed out: %s", anchor.id, exc)
        return TravelEstimate(default, TravelFallbackInfo("timeout", default, str(exc)))
    except Exception as exc:
        logger.warning("Travel estimate for anchor %s failed: %s", anchor.id, exc)
        return TravelEstimate(
            default, TravelFallbackInfo("estimator_error", default, str(exc))
        )

    minutes = getattr(route, "duration_minutes", None)
    if not isinstance(minutes, (int, float)) or isinstance(minutes, bool) or minutes <= 0:
        logger.warning(
            "Travel estimate for anchor %s returned invalid duration %r", anchor.id, minutes
        )
        return TravelEstimate(
            default, TravelFallbackInfo("invalid_duration", default, repr(minutes))
        )

    return TravelEstimate(math.ceil(minutes), None, getattr(route, "method", None))
