"""
Planner tunables.

Constants are the defaults; SchedulerConfig bundles them so callers (and tests)
can override individual values without touching module state.
"""

from dataclasses import dataclass

from .types import EnergyState

# Chain generation
CHAIN_COMPLETION_BUFFER_MINUTES = 45  # Chain must finish this long before travel
DEFAULT_TRAVEL_DURATION_MINUTES = 30  # Used when the travel estimator fails
PREP_DURATION_MINUTES = 15
PREP_DURATION_EXTENDED_MINUTES = 25  # Recorded for seminars and workshops
EXTENDED_PREP_ANCHOR_TYPES = ("seminar", "workshop")
RECOVERY_SHORT_MINUTES = 10
RECOVERY_LONG_MINUTES = 20
LONG_ANCHOR_THRESHOLD_MINUTES = 120  # Anchors longer than this get long recovery

# Collaborators
COLLABORATOR_TIMEOUT_SECONDS = 5.0
MAX_PARALLEL_ANCHORS = 4

# Context integration
MEDS_STEP_MINUTES = 2
LOW_ENERGY_FACTOR = 1.10
SLEEP_DEBT_FACTOR = 1.15

# Plan building
PLAN_START_ROUNDING_MINUTES = 5
TRANSITION_BUFFER_MINUTES = 5  # Gap kept after each flexible activity
MIN_HOME_INTERVAL_MINUTES = 30
PRIMARY_FOCUS_MINUTES = 60
DEFAULT_TASK_MINUTES = 60
MORNING_ROUTINE_DEFAULT_MINUTES = 30
EVENING_ROUTINE_DEFAULT_MINUTES = 20
EVENING_ROUTINE_EARLIEST = "18:00"


@dataclass(frozen=True)
class EnergyConfig:
    """Per-energy-state planning limits."""

    wake_ramp_minutes: int  # Length of the Wake Ramp block
    task_limit: int  # Max tasks placed in home gaps


# Lower energy gets a longer ramp and fewer tasks
ENERGY_CONFIGS: dict[EnergyState, EnergyConfig] = {
    "low": EnergyConfig(wake_ramp_minutes=120, task_limit=1),
    "medium": EnergyConfig(wake_ramp_minutes=90, task_limit=2),
    "high": EnergyConfig(wake_ramp_minutes=75, task_limit=3),
}


def get_energy_config(energy_state: EnergyState) -> EnergyConfig:
    """Get the configuration for a given energy state."""
    return ENERGY_CONFIGS[energy_state]


@dataclass(frozen=True)
class SchedulerConfig:
    """Overridable planner settings. Defaults mirror the module constants."""

    chain_completion_buffer_minutes: int = CHAIN_COMPLETION_BUFFER_MINUTES
    default_travel_minutes: int = DEFAULT_TRAVEL_DURATION_MINUTES
    prep_minutes: int = PREP_DURATION_MINUTES
    prep_extended_minutes: int = PREP_DURATION_EXTENDED_MINUTES
    recovery_short_minutes: int = RECOVERY_SHORT_MINUTES
    recovery_long_minutes: int = RECOVERY_LONG_MINUTES
    long_anchor_threshold_minutes: int = LONG_ANCHOR_THRESHOLD_MINUTES
    # None disables the bound (collaborator is called inline)
    collaborator_timeout_seconds: float | None = COLLABORATOR_TIMEOUT_SECONDS
    max_parallel_anchors: int = MAX_PARALLEL_ANCHORS
    meds_step_minutes: int = MEDS_STEP_MINUTES
    low_energy_factor: float = LOW_ENERGY_FACTOR
    sleep_debt_factor: float = SLEEP_DEBT_FACTOR
    plan_start_rounding_minutes: int = PLAN_START_ROUNDING_MINUTES
    transition_buffer_minutes: int = TRANSITION_BUFFER_MINUTES
    min_home_interval_minutes: int = MIN_HOME_INTERVAL_MINUTES

    def __post_init__(self):
        if self.chain_completion_buffer_minutes < 0:
            raise ValueError("chain_completion_buffer_minutes must be >= 0")
        if self.default_travel_minutes <= 0:
            raise ValueError("default_travel_minutes must be positive")
        if self.max_parallel_anchors < 1:
            raise ValueError("max_parallel_anchors must be >= 1")
        if self.plan_start_rounding_minutes < 1:
            raise ValueError("plan_start_rounding_minutes must be >= 1")


DEFAULT_CONFIG = SchedulerConfig()
