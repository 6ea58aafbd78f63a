"""
Pytest fixtures for daychain tests.
"""

import sys
from pathlib import Path

import pytest

# Add project root to path for imports
sys.path.insert(0, str(Path(__file__).parent.parent))

from daychain.chains.chain_generator import (
    ChainGenerator,
    ChainGeneratorConfig,
    ChainGeneratorOptions,
)
from daychain.chains.context_integration import ContextIntegrator
from daychain.chains.daily_context import StaticContextProvider
from daychain.chains.templates import default_registry
from daychain.chains.travel import Location
from daychain.planning.plan_builder import PlanBuilder
from daychain.planning.plan_store import InMemoryPlanStore
from daychain.planning.sources import StaticAnchorSource, StaticTaskSource
from daychain.types import DailyContext, DayFlags, MedsStatus, PlanInput

from helpers import TEST_DATE, FixedEstimator, make_anchor


@pytest.fixture
def home() -> Location:
    return Location(name="Home", type="home")


@pytest.fixture
def registry():
    return default_registry()


@pytest.fixture
def estimator() -> FixedEstimator:
    """20-minute travel to anywhere."""
    return FixedEstimator(20)


@pytest.fixture
def generator(estimator, registry) -> ChainGenerator:
    return ChainGenerator(estimator, registry)


@pytest.fixture
def options(home) -> ChainGeneratorOptions:
    return ChainGeneratorOptions(
        user_id="user-1", date=TEST_DATE, config=ChainGeneratorConfig(current_location=home)
    )


@pytest.fixture
def lecture():
    """Class anchor 10:00-12:00 at Campus."""
    return make_anchor()


@pytest.fixture
def lecture_chain(generator, options, lecture):
    """
    Chain for the 10:00-12:00 lecture with 20 min travel.

    Deadline 08:55; class template is 57 min so steps run 07:58-08:55.
    """
    return generator.generate_chain_for_anchor(lecture, options)


@pytest.fixture
def integrator() -> ContextIntegrator:
    return ContextIntegrator()


@pytest.fixture
def rough_day_context() -> DailyContext:
    """Meds missed, low energy and sleep debt, a slower shower."""
    return DailyContext(
        meds=MedsStatus(taken=False, reliability=0.8),
        day_flags=DayFlags(low_energy_risk=True, sleep_debt_risk=True),
        duration_priors={"shower_min": 20},
        date="2026-01-19",
    )


@pytest.fixture
def good_day_context() -> DailyContext:
    return DailyContext(meds=MedsStatus(taken=True, reliability=0.9))


@pytest.fixture
def plan_input() -> PlanInput:
    return PlanInput(
        user_id="user-1",
        date=TEST_DATE,
        wake_time="07:00",
        sleep_time="23:00",
        energy_state="medium",
        timezone="Europe/London",
    )


@pytest.fixture
def store() -> InMemoryPlanStore:
    return InMemoryPlanStore()


@pytest.fixture
def make_builder(estimator, store):
    """Factory for a PlanBuilder over the given anchors, tasks and context."""

    def _make(anchors=(), tasks=(), context=None, **kwargs) -> PlanBuilder:
        return PlanBuilder(
            anchor_source=StaticAnchorSource(list(anchors)),
            travel_estimator=kwargs.pop("travel_estimator", estimator),
            plan_store=store,
            context_provider=StaticContextProvider(context),
            task_source=StaticTaskSource(list(tasks)),
            **kwargs,
        )

    return _make
