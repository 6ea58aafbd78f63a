"""
Data structures for chain generation and daily planning.

Chain-side types (anchors, templates, step instances, envelopes) are produced by
the chain generator; plan-side types (time blocks, daily plans) are produced by
the plan builder and mutated only through the sequencer.
"""

from dataclasses import dataclass, field
from datetime import date, datetime
from typing import Literal, Mapping

# =============================================================================
# Literal aliases
# =============================================================================

KnownAnchorType = Literal["class", "seminar", "workshop", "appointment", "other"]

StepRole = Literal[
    "chain-step",  # Ordinary preparation or travel step
    "exit-gate",  # Final pre-departure checklist
    "anchor",  # The commitment itself
    "recovery",  # Decompression after returning
]

StepStatus = Literal["pending", "completed", "skipped"]

ChainStatus = Literal["pending", "in-progress", "completed", "failed"]

EnvelopePhase = Literal["prep", "travel_there", "anchor", "travel_back", "recovery"]

ActivityType = Literal["commitment", "routine", "meal", "task", "buffer"]

EnergyState = Literal["low", "medium", "high"]

PlanStatus = Literal["pending", "degraded"]

LocationState = Literal["at_home", "not_home"]

BlockSource = Literal["chain", "wake_ramp", "meal", "routine", "task", "filler"]

TravelFallbackReason = Literal["no_location", "estimator_error", "timeout", "invalid_duration"]


# =============================================================================
# Anchors and templates
# =============================================================================


@dataclass(frozen=True)
class Anchor:
    """A fixed calendar commitment. Owned by calendar ingestion, never mutated."""

    id: str
    title: str
    type: str  # Usually a KnownAnchorType; unknown types fall back to "other"
    start: datetime
    end: datetime
    location: str | None = None

    @property
    def duration_minutes(self) -> int:
        return round((self.end - self.start).total_seconds() / 60)


@dataclass(frozen=True)
class ChainStepTemplate:
    """One preparation step in a chain template."""

    id: str
    name: str
    duration_estimate: int  # minutes
    is_required: bool = True
    can_skip_when_late: bool = False
    is_exit_gate: bool = False
    gate_tags: tuple[str, ...] = ()


@dataclass(frozen=True)
class ChainTemplate:
    """Ordered steps (earliest first) needed to safely reach one anchor type."""

    anchor_type: str
    steps: tuple[ChainStepTemplate, ...]


# =============================================================================
# Annotation records
# =============================================================================


@dataclass(frozen=True)
class TemplateFallbackInfo:
    """The anchor type had no template; the fallback template was used."""

    requested_type: str
    used_type: str


@dataclass(frozen=True)
class TravelFallbackInfo:
    """Travel duration is the default constant, not an estimate."""

    reason: TravelFallbackReason
    default_minutes: int
    detail: str | None = None


@dataclass(frozen=True)
class EnvelopeInfo:
    """Marks a step as one of the five commitment envelope phases."""

    envelope_id: str
    phase: EnvelopePhase
    # Seminar/workshop prep allowance. Recorded on the prep phase only; it does
    # not resize the prep span.
    prep_allowance_minutes: int | None = None


@dataclass(frozen=True)
class DurationPriorInfo:
    """Step duration was overwritten from historical data."""

    original_duration: int
    prior_duration: int
    prior_key: str


@dataclass(frozen=True)
class InjectionInfo:
    """Step was inserted by context integration."""

    obligation: str  # e.g. "meds"
    reason: str


@dataclass(frozen=True)
class ContextEnhancementInfo:
    """Summary of what context integration did to a chain."""

    context_available: bool
    exit_gate_suggestions: tuple[str, ...] = ()
    injected_step_names: tuple[str, ...] = ()
    adjusted_step_names: tuple[str, ...] = ()
    low_energy_factor: float = 1.0
    sleep_debt_factor: float = 1.0
    risk_multiplier: float = 1.0  # Display only, never applied to durations
    failed_substeps: tuple[str, ...] = ()


@dataclass(frozen=True)
class StepMetadata:
    """Typed annotations attached to a chain step instance."""

    envelope: EnvelopeInfo | None = None
    travel_fallback: TravelFallbackInfo | None = None
    duration_prior: DurationPriorInfo | None = None
    injection: InjectionInfo | None = None
    gate_tags: tuple[str, ...] = ()
    gate_suggestions: tuple[str, ...] = ()


@dataclass(frozen=True)
class ChainMetadata:
    """Typed annotations attached to an execution chain."""

    template_fallback: TemplateFallbackInfo | None = None
    travel_fallback: TravelFallbackInfo | None = None
    context: ContextEnhancementInfo | None = None


# =============================================================================
# Chains
# =============================================================================


@dataclass
class ChainStepInstance:
    """A scheduled step of one execution chain."""

    step_id: str
    chain_id: str
    name: str
    start_time: datetime
    end_time: datetime
    duration: int  # minutes
    is_required: bool
    can_skip_when_late: bool
    role: StepRole
    status: StepStatus = "pending"
    skip_reason: str | None = None
    metadata: StepMetadata = field(default_factory=StepMetadata)

    @property
    def fallback_used(self) -> bool:
        """True if this step's timing rests on the default travel duration."""
        return self.metadata.travel_fallback is not None


@dataclass
class CommitmentEnvelope:
    """Five contiguous phases surrounding one anchor."""

    envelope_id: str
    prep: ChainStepInstance
    travel_there: ChainStepInstance
    anchor: ChainStepInstance
    travel_back: ChainStepInstance
    recovery: ChainStepInstance

    def phases(self) -> list[ChainStepInstance]:
        """Phases in chronological order."""
        return [self.prep, self.travel_there, self.anchor, self.travel_back, self.recovery]


@dataclass
class ExecutionChain:
    """Backward-planned preparation chain plus envelope for one anchor."""

    chain_id: str
    anchor_id: str
    anchor: Anchor
    chain_completion_deadline: datetime
    travel_duration: int  # minutes, estimated or default
    steps: list[ChainStepInstance]
    commitment_envelope: CommitmentEnvelope
    status: ChainStatus = "pending"
    metadata: ChainMetadata = field(default_factory=ChainMetadata)

    @property
    def template_fallback(self) -> bool:
        return self.metadata.template_fallback is not None

    @property
    def fallback_used(self) -> bool:
        return self.metadata.travel_fallback is not None

    def find_step_by_role(self, role: StepRole) -> ChainStepInstance | None:
        for step in self.steps:
            if step.role == role:
                return step
        return None


@dataclass(frozen=True)
class AnchorFailure:
    """An anchor omitted from a generation run, with the error that caused it."""

    anchor_id: str
    error: str


@dataclass
class ChainGenerationResult:
    """Chains in anchor order plus any isolated per-anchor failures."""

    chains: list[ExecutionChain] = field(default_factory=list)
    failures: list[AnchorFailure] = field(default_factory=list)


# =============================================================================
# Daily context
# =============================================================================


@dataclass(frozen=True)
class MedsStatus:
    """Whether medication was taken on the prior day."""

    taken: bool
    reliability: float = 0.0  # 0.0-1.0


@dataclass(frozen=True)
class DayFlags:
    low_energy_risk: bool = False
    sleep_debt_risk: bool = False


@dataclass(frozen=True)
class DailyContext:
    """
    Day-level signals derived from the prior day's habits.

    Absence of context is represented by ``None`` at every call site, never by
    an empty DailyContext.
    """

    meds: MedsStatus
    day_flags: DayFlags = field(default_factory=DayFlags)
    # Step name (or prior key such as "shower_min") -> typical minutes
    duration_priors: Mapping[str, int] = field(default_factory=dict)
    date: str | None = None  # "YYYY-MM-DD"


# =============================================================================
# Plan inputs
# =============================================================================


@dataclass(frozen=True)
class PlanInput:
    """Request to build one day's plan."""

    user_id: str
    date: date
    wake_time: str  # "07:00" format
    sleep_time: str  # "23:00" format
    energy_state: EnergyState = "medium"
    timezone: str = "Europe/London"  # IANA timezone used to resolve "now"
    user_energy: int = 3  # 1-5, passed to the travel estimator


@dataclass(frozen=True)
class Task:
    """A pending task offered by the task source."""

    id: str
    title: str
    estimated_duration: int | None = None  # minutes; None means 60
    is_required: bool = False
    deadline: datetime | None = None


RoutineType = Literal["morning", "evening"]


@dataclass(frozen=True)
class Routine:
    id: str
    name: str
    routine_type: RoutineType
    estimated_duration: int  # minutes


# =============================================================================
# Plan outputs
# =============================================================================


@dataclass(frozen=True)
class LocationPeriod:
    start: datetime
    end: datetime
    state: LocationState


@dataclass(frozen=True)
class HomeInterval:
    start: datetime
    end: datetime
    duration: int  # minutes


@dataclass
class BlockMetadata:
    """Linkage and display flags for one time block."""

    source: BlockSource
    location_state: LocationState = "at_home"
    is_required: bool = False
    chain_id: str | None = None
    step_id: str | None = None
    anchor_id: str | None = None
    role: StepRole | None = None
    envelope_phase: EnvelopePhase | None = None
    fallback_used: bool = False  # Consumers must show these as estimated
    template_fallback: bool = False
    skip_reason: str | None = None
    placement_reason: str | None = None
    target_time: datetime | None = None
    shifted_by_minutes: int | None = None


@dataclass
class TimeBlock:
    """A scheduled unit of activity within a day plan."""

    block_id: str
    plan_id: str
    start_time: datetime
    end_time: datetime
    activity_type: ActivityType
    activity_name: str
    is_fixed: bool
    metadata: BlockMetadata
    sequence_order: int = 0
    status: StepStatus = "pending"

    @property
    def duration_minutes(self) -> int:
        return round((self.end_time - self.start_time).total_seconds() / 60)

    @property
    def is_live(self) -> bool:
        """Skipped blocks keep their window for history but occupy no time."""
        return self.status != "skipped"


@dataclass
class DailyPlan:
    """One user's sequenced day."""

    id: str
    user_id: str
    date: date
    wake_time: datetime
    sleep_time: datetime
    energy_state: EnergyState
    plan_start: datetime
    timezone: str = "Europe/London"  # IANA zone the naive times are in
    status: PlanStatus = "pending"
    time_blocks: list[TimeBlock] = field(default_factory=list)
    chains: list[ExecutionChain] = field(default_factory=list)
    location_periods: list[LocationPeriod] = field(default_factory=list)
    home_intervals: list[HomeInterval] = field(default_factory=list)
    chain_failures: list[AnchorFailure] = field(default_factory=list)

    @property
    def generated_after_wake(self) -> bool:
        return self.plan_start > self.wake_time
