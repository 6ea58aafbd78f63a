"""
Daily context contract.

The provider reports yesterday-derived signals (meds, energy and sleep flags,
typical step durations). Absence is always ``None``: a missing provider, a
provider error, a timeout, and a provider with nothing to say all look the
same to the context integrator.
"""

import logging
from datetime import date
from typing import Any, Protocol

from ..bounded import call_with_timeout
from ..config import DEFAULT_CONFIG, SchedulerConfig
from ..types import DailyContext, DayFlags, MedsStatus

logger = logging.getLogger(__name__)


class DailyContextProvider(Protocol):
    def get_daily_context(self, user_id: str, day: date) -> DailyContext | None: ...


def fetch_daily_context(
    provider: DailyContextProvider | None,
    user_id: str,
    day: date,
    config: SchedulerConfig = DEFAULT_CONFIG,
) -> DailyContext | None:
    """Fetch the day's context, returning None on any failure."""
    if provider is None:
        return None
    try:
        context = call_with_timeout(
            provider.get_daily_context,
            config.collaborator_timeout_seconds,
            user_id,
            day,
            description="daily context provider",
        )
    except Exception as exc:
        logger.warning("Daily context unavailable for user %s on %s: %s", user_id, day, exc)
        return None
    if context is not None and not isinstance(context, DailyContext):
        logger.warning("Daily context provider returned %s, ignoring", type(context).__name__)
        return None
    return context


def daily_context_from_dict(data: dict[str, Any]) -> DailyContext:
    """
    Parse a loosely typed context payload.

    Expected shape:
        {"meds": {"taken": bool, "reliability": float},
         "day_flags": {"low_energy_risk": bool, "sleep_debt_risk": bool},
         "duration_priors": {"shower_min": 20, ...},
         "date": "YYYY-MM-DD"}

    Raises:
        ValueError: If the meds block is missing
    """
    meds = data.get("meds")
    if not isinstance(meds, dict) or "taken" not in meds:
        raise ValueError("Daily context requires meds.taken")

    flags = data.get("day_flags") or {}
    priors = data.get("duration_priors") or {}

    return DailyContext(
        meds=MedsStatus(
            taken=bool(meds["taken"]),
            reliability=float(meds.get("reliability", 0.0)),
        ),
        day_flags=DayFlags(
            low_energy_risk=bool(flags.get("low_energy_risk", False)),
            sleep_debt_risk=bool(flags.get("sleep_debt_risk", False)),
        ),
        duration_priors={str(key): int(value) for key, value in priors.items()},
        date=data.get("date"),
    )


class StaticContextProvider:
    """Provider returning the same context for every user and day."""

    def __init__(self, context: DailyContext | None):
        self.context = context

    def get_daily_context(self, user_id: str, day: date) -> DailyContext | None:
        return self.context
