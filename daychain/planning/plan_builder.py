"""
Daily plan assembly.

Generates a sequenced day plan from the day's anchors:

1. Plan start = max(wake, now rounded up to 5 minutes)
2. Chains (generator + context integration, isolated per anchor) are
   flattened into fixed blocks
3. Wake Ramp at wake time, when the plan starts at wake
4. Location periods and home intervals from the chain envelopes
5. Meals inside home intervals
6. Flexible activities (morning routine, tasks, evening routine) in home gaps
7. Remaining time becomes buffer blocks
8. Blocks are sequenced and validated; only a valid plan is saved
"""

import logging
import threading
import uuid
from dataclasses import dataclass
from datetime import date, datetime

from ..bounded import call_with_timeout
from ..chains.chain_generator import (
    ChainGenerator,
    ChainGeneratorConfig,
    ChainGeneratorOptions,
)
from ..chains.context_integration import ContextIntegrator
from ..chains.daily_context import DailyContextProvider, fetch_daily_context
from ..chains.templates import ChainTemplateRegistry
from ..chains.travel import Location, TravelEstimator
from ..config import (
    DEFAULT_CONFIG,
    DEFAULT_TASK_MINUTES,
    ENERGY_CONFIGS,
    EVENING_ROUTINE_DEFAULT_MINUTES,
    EVENING_ROUTINE_EARLIEST,
    MORNING_ROUTINE_DEFAULT_MINUTES,
    PRIMARY_FOCUS_MINUTES,
    SchedulerConfig,
    get_energy_config,
)
from ..errors import IllegalStateTransitionError, PlanValidationError
from ..time_math import (
    add_minutes,
    combine,
    free_intervals,
    get_current_datetime_in_tz,
    minutes_between,
    resolve_day_bounds,
    round_up_to_interval,
)
from ..types import (
    ActivityType,
    Anchor,
    BlockMetadata,
    BlockSource,
    ChainStepInstance,
    DailyPlan,
    ExecutionChain,
    HomeInterval,
    LocationPeriod,
    PlanInput,
    Routine,
    Task,
    TimeBlock,
)
from .location_state import LocationStateTracker
from .meals import place_meals
from .plan_store import InMemoryPlanStore, PlanStore
from .sequencer import Sequencer
from .sources import AnchorSource, RoutineSource, TaskSource

logger = logging.getLogger(__name__)

SKIPPED_BEFORE_START = "Occurred before plan start"
DEGRADED_REASON = "degraded"
WAKE_RAMP_NAME = "Wake Ramp"
BUFFER_NAME = "Buffer"
PRIMARY_FOCUS_NAME = "Primary Focus Block"
MORNING_ROUTINE_NAME = "Morning Routine"
EVENING_ROUTINE_NAME = "Evening Routine"

ROLE_ACTIVITY_TYPES: dict[str, ActivityType] = {
    "anchor": "commitment",
    "chain-step": "routine",
    "exit-gate": "routine",
    "recovery": "buffer",
}
NOT_HOME_PHASES = ("travel_there", "anchor", "travel_back")

Span = tuple[datetime, datetime]


@dataclass(frozen=True)
class FlexibleActivity:
    """A movable activity waiting for a home gap."""

    name: str
    duration: int  # minutes
    activity_type: ActivityType
    source: BlockSource
    is_required: bool = False


def new_block(
    plan_id: str,
    start: datetime,
    end: datetime,
    activity_type: ActivityType,
    name: str,
    is_fixed: bool,
    metadata: BlockMetadata,
) -> TimeBlock:
    return TimeBlock(
        block_id=str(uuid.uuid4()),
        plan_id=plan_id,
        start_time=start,
        end_time=end,
        activity_type=activity_type,
        activity_name=name,
        is_fixed=is_fixed,
        metadata=metadata,
    )


def live_spans(blocks: list[TimeBlock]) -> list[Span]:
    return [(block.start_time, block.end_time) for block in blocks if block.is_live]


def intersect_with_home(gaps: list[Span], home_intervals: list[HomeInterval]) -> list[Span]:
    """Parts of the free gaps that fall inside home intervals, in time order."""
    result = []
    for gap_start, gap_end in gaps:
        for interval in home_intervals:
            start = max(gap_start, interval.start)
            end = min(gap_end, interval.end)
            if start < end:
                result.append((start, end))
    return sorted(result)


def assign_sequence_order(blocks: list[TimeBlock]) -> list[TimeBlock]:
    """Sort by (start, end), skipped before live on ties, and number from 0."""
    ordered = sorted(
        blocks,
        key=lambda block: (block.start_time, block.end_time, block.is_live),
    )
    for index, block in enumerate(ordered):
        block.sequence_order = index
    return ordered


def validate_plan_blocks(blocks: list[TimeBlock]) -> None:
    """
    Check ordering and overlap invariants.

    Raises:
        PlanValidationError: Listing every violation found
    """
    violations = []

    for previous, current in zip(blocks, blocks[1:]):
        if current.sequence_order <= previous.sequence_order:
            violations.append(
                f"Sequence order not increasing at {current.activity_name} "
                f"({previous.sequence_order} -> {current.sequence_order})"
            )
        if current.start_time < previous.start_time:
            violations.append(f"{current.activity_name} sequenced before an earlier block")

    for block in blocks:
        if block.end_time < block.start_time:
            violations.append(f"{block.activity_name} ends before it starts")

    latest: TimeBlock | None = None
    for block in sorted((b for b in blocks if b.is_live), key=lambda b: (b.start_time, b.end_time)):
        if latest is not None and block.start_time < latest.end_time and block.end_time > block.start_time:
            kind = "Fixed blocks" if block.is_fixed and latest.is_fixed else "Blocks"
            violations.append(
                f"{kind} overlap: {latest.activity_name} "
                f"({latest.start_time:%H:%M}-{latest.end_time:%H:%M}) and "
                f"{block.activity_name} ({block.start_time:%H:%M}-{block.end_time:%H:%M})"
            )
        if latest is None or block.end_time > latest.end_time:
            latest = block

    if violations:
        raise PlanValidationError(
            f"Plan failed validation with {len(violations)} violation(s)", violations
        )


class PlanBuilder:
    """
    Builds, validates and degrades daily plans.

    Collaborators are injected; the template registry and config are passed
    through to the chain generator and context integrator.
    """

    def __init__(
        self,
        anchor_source: AnchorSource,
        travel_estimator: TravelEstimator,
        plan_store: PlanStore | None = None,
        context_provider: DailyContextProvider | None = None,
        task_source: TaskSource | None = None,
        routine_source: RoutineSource | None = None,
        registry: ChainTemplateRegistry | None = None,
        config: SchedulerConfig = DEFAULT_CONFIG,
        sequencer: Sequencer | None = None,
    ):
        self.anchor_source = anchor_source
        self.plan_store = plan_store if plan_store is not None else InMemoryPlanStore()
        self.context_provider = context_provider
        self.task_source = task_source
        self.routine_source = routine_source
        self.config = config
        self.chain_generator = ChainGenerator(travel_estimator, registry, config)
        self.context_integrator = ContextIntegrator(config)
        self.location_tracker = LocationStateTracker()
        self.sequencer = sequencer or Sequencer()
        self._degrade_lock = threading.Lock()

    # -------------------------------------------------------------------------
    # Generation
    # -------------------------------------------------------------------------

    def generate_daily_plan(
        self,
        plan_input: PlanInput,
        current_location: Location,
        current_datetime: datetime | None = None,
    ) -> DailyPlan:
        """
        Generate, validate and save a plan for one day.

        Args:
            plan_input: User, date, wake/sleep times and energy state
            current_location: Travel origin for every anchor
            current_datetime: Current local time (defaults to now in the
                plan timezone)

        Returns:
            The saved DailyPlan

        Raises:
            PlanValidationError: If blocks overlap or are out of order
        """
        if plan_input.energy_state not in ENERGY_CONFIGS:
            raise ValueError(f"Unknown energy state {plan_input.energy_state!r}")

        # "Now" is in the user's timezone, not the host's
        if current_datetime is None:
            current_datetime = get_current_datetime_in_tz(plan_input.timezone)

        wake_time, sleep_time = resolve_day_bounds(
            plan_input.date, plan_input.wake_time, plan_input.sleep_time
        )
        plan_start = self.calculate_plan_start(wake_time, current_datetime)
        plan_id = str(uuid.uuid4())

        logger.info(
            "Generating plan %s for user %s on %s (start %s, sleep %s)",
            plan_id,
            plan_input.user_id,
            plan_input.date,
            plan_start,
            sleep_time,
        )

        # 1. Chains, one isolated pipeline per anchor
        anchors = self._fetch_anchors(plan_input.user_id, plan_input.date)
        context = fetch_daily_context(
            self.context_provider, plan_input.user_id, plan_input.date, self.config
        )
        options = ChainGeneratorOptions(
            user_id=plan_input.user_id,
            date=plan_input.date,
            config=ChainGeneratorConfig(
                current_location=current_location, user_energy=plan_input.user_energy
            ),
        )
        generation = self.chain_generator.generate_chains_for_date(
            anchors,
            options,
            enhance=lambda chain: self.context_integrator.enhance_chain(chain, context),
        )

        blocks: list[TimeBlock] = []
        for chain in generation.chains:
            blocks.extend(self.flatten_chain(chain, plan_id, plan_start))

        # 2. Wake ramp
        ramp = self.build_wake_ramp(plan_id, plan_input, wake_time, plan_start, sleep_time, blocks)
        if ramp is not None:
            blocks.append(ramp)

        # 3. Location
        periods = self.location_tracker.calculate_location_periods(
            generation.chains, plan_start, sleep_time
        )
        home_intervals = self.location_tracker.calculate_home_intervals(
            periods, self.config.min_home_interval_minutes
        )

        # 4. Meals
        blocks.extend(
            self.place_meal_blocks(
                plan_id, blocks, wake_time, sleep_time, plan_start, home_intervals,
                not_before=ramp.end_time if ramp is not None else None,
            )
        )

        # 5. Flexible activities, then evening routine
        activities, evening = self.gather_flexible_activities(plan_input)
        blocks.extend(
            self.place_flexible_activities(
                plan_id, activities, blocks, plan_start, sleep_time, home_intervals
            )
        )
        evening_block = self.place_evening_routine(
            plan_id, evening, blocks, plan_input.date, plan_start, sleep_time, home_intervals
        )
        if evening_block is not None:
            blocks.append(evening_block)

        # 6. Buffers
        blocks.extend(self.fill_buffers(plan_id, blocks, plan_start, sleep_time, periods))

        # 7. Sequence and validate before anything is saved
        ordered = assign_sequence_order(blocks)
        validate_plan_blocks(ordered)

        plan = DailyPlan(
            id=plan_id,
            user_id=plan_input.user_id,
            date=plan_input.date,
            wake_time=wake_time,
            sleep_time=sleep_time,
            energy_state=plan_input.energy_state,
            plan_start=plan_start,
            timezone=plan_input.timezone,
            time_blocks=ordered,
            chains=generation.chains,
            location_periods=periods,
            home_intervals=home_intervals,
            chain_failures=generation.failures,
        )
        self.plan_store.save(plan)

        logger.info(
            "Plan %s saved: %d blocks, %d chains, %d chain failures",
            plan_id,
            len(ordered),
            len(generation.chains),
            len(generation.failures),
        )
        return plan

    def calculate_plan_start(self, wake_time: datetime, now: datetime) -> datetime:
        """max(wake, now rounded up to the configured interval)."""
        rounded = round_up_to_interval(now, self.config.plan_start_rounding_minutes)
        return max(wake_time, rounded)

    def _fetch_anchors(self, user_id: str, day: date) -> list[Anchor]:
        # Anchor source failures propagate; a plan without its commitments is wrong
        anchors = call_with_timeout(
            self.anchor_source.get_anchors_for_date,
            self.config.collaborator_timeout_seconds,
            user_id,
            day,
            description="anchor source",
        )
        return list(anchors or [])

    def flatten_chain(
        self, chain: ExecutionChain, plan_id: str, plan_start: datetime
    ) -> list[TimeBlock]:
        """
        Convert a chain into fixed blocks.

        Chain steps plus travel there, anchor, travel back and recovery; prep
        is only a span over the steps. When enhancement pushed the chain's
        end past the outbound travel start, outbound travel starts at the
        chain's end with its duration unchanged.
        """
        envelope = chain.commitment_envelope
        blocks = [self._chain_block(plan_id, chain, step) for step in chain.steps]

        travel = envelope.travel_there
        chain_end = chain.steps[-1].end_time if chain.steps else travel.start_time
        if chain_end > travel.start_time:
            shift = minutes_between(travel.start_time, chain_end)
            logger.info("Chain %s overruns its deadline, shifting travel by %d min", chain.chain_id, shift)
            blocks.append(
                self._chain_block(
                    plan_id,
                    chain,
                    travel,
                    start=chain_end,
                    end=add_minutes(chain_end, travel.duration),
                    shifted_by=shift,
                )
            )
        else:
            blocks.append(self._chain_block(plan_id, chain, travel))

        for step in (envelope.anchor, envelope.travel_back, envelope.recovery):
            blocks.append(self._chain_block(plan_id, chain, step))

        for block in blocks:
            if block.end_time <= plan_start:
                block.status = "skipped"
                block.metadata.skip_reason = SKIPPED_BEFORE_START
        return blocks

    def _chain_block(
        self,
        plan_id: str,
        chain: ExecutionChain,
        step: ChainStepInstance,
        start: datetime | None = None,
        end: datetime | None = None,
        shifted_by: int | None = None,
    ) -> TimeBlock:
        envelope = step.metadata.envelope
        phase = envelope.phase if envelope is not None else None
        return new_block(
            plan_id,
            start or step.start_time,
            end or step.end_time,
            ROLE_ACTIVITY_TYPES[step.role],
            step.name,
            True,
            BlockMetadata(
                source="chain",
                location_state="not_home" if phase in NOT_HOME_PHASES else "at_home",
                is_required=step.is_required,
                chain_id=chain.chain_id,
                step_id=step.step_id,
                anchor_id=chain.anchor_id,
                role=step.role,
                envelope_phase=phase,
                fallback_used=step.fallback_used,
                template_fallback=chain.template_fallback,
                shifted_by_minutes=shifted_by,
            ),
        )

    def build_wake_ramp(
        self,
        plan_id: str,
        plan_input: PlanInput,
        wake_time: datetime,
        plan_start: datetime,
        sleep_time: datetime,
        blocks: list[TimeBlock],
    ) -> TimeBlock | None:
        """
        Wake Ramp starting at wake, only when the plan starts at wake.

        Truncated at the first chain block; omitted if a block already covers
        wake time.
        """
        if plan_start != wake_time:
            return None
        ramp_minutes = get_energy_config(plan_input.energy_state).wake_ramp_minutes
        gaps = free_intervals(live_spans(blocks), plan_start, sleep_time)
        if not gaps or gaps[0][0] != plan_start:
            logger.debug("No room for wake ramp at %s", plan_start)
            return None
        end = min(add_minutes(plan_start, ramp_minutes), gaps[0][1])
        return new_block(
            plan_id,
            plan_start,
            end,
            "routine",
            WAKE_RAMP_NAME,
            False,
            BlockMetadata(source="wake_ramp", placement_reason="wake"),
        )

    def place_meal_blocks(
        self,
        plan_id: str,
        blocks: list[TimeBlock],
        wake_time: datetime,
        sleep_time: datetime,
        plan_start: datetime,
        home_intervals: list[HomeInterval],
        not_before: datetime | None = None,
    ) -> list[TimeBlock]:
        anchors = [
            (block.start_time, block.end_time)
            for block in blocks
            if block.activity_type == "commitment"
        ]
        placements = place_meals(
            anchors,
            live_spans(blocks),
            wake_time,
            sleep_time,
            plan_start,
            home_intervals,
            not_before=not_before,
        )
        meal_blocks = []
        for placement in placements:
            if placement.skipped:
                logger.info("Meal %s omitted: %s", placement.meal, placement.skip_reason)
                continue
            meal_blocks.append(
                new_block(
                    plan_id,
                    placement.start,
                    placement.end,
                    "meal",
                    placement.meal.capitalize(),
                    False,
                    BlockMetadata(
                        source="meal",
                        placement_reason=placement.placement_reason,
                        target_time=placement.target_time,
                    ),
                )
            )
        return meal_blocks

    def gather_flexible_activities(
        self, plan_input: PlanInput
    ) -> tuple[list[FlexibleActivity], FlexibleActivity]:
        """
        Activities for home gaps, in placement order, plus the evening routine.

        Morning routine first, then up to the energy state's task limit of
        tasks (a Primary Focus Block when there are none).
        """
        routines = self._fetch_routines(plan_input.user_id)
        morning = self._routine_activity(
            routines, "morning", MORNING_ROUTINE_NAME, MORNING_ROUTINE_DEFAULT_MINUTES
        )
        evening = self._routine_activity(
            routines, "evening", EVENING_ROUTINE_NAME, EVENING_ROUTINE_DEFAULT_MINUTES
        )

        limit = get_energy_config(plan_input.energy_state).task_limit
        tasks = self._fetch_tasks(plan_input.user_id, plan_input.date)
        # Earliest deadline first; undated tasks keep source order at the end
        tasks = sorted(tasks, key=lambda task: (task.deadline is None, task.deadline or datetime.min))
        task_activities = [
            FlexibleActivity(
                name=task.title,
                duration=task.estimated_duration or DEFAULT_TASK_MINUTES,
                activity_type="task",
                source="task",
                is_required=task.is_required,
            )
            for task in tasks[:limit]
        ]
        if not task_activities:
            task_activities = [
                FlexibleActivity(PRIMARY_FOCUS_NAME, PRIMARY_FOCUS_MINUTES, "task", "task")
            ]
        return [morning, *task_activities], evening

    def _routine_activity(
        self, routines: list[Routine], routine_type: str, default_name: str, default_minutes: int
    ) -> FlexibleActivity:
        for routine in routines:
            if routine.routine_type == routine_type:
                return FlexibleActivity(
                    routine.name, routine.estimated_duration, "routine", "routine"
                )
        return FlexibleActivity(default_name, default_minutes, "routine", "routine")

    def _fetch_tasks(self, user_id: str, day: date) -> list[Task]:
        if self.task_source is None:
            return []
        try:
            return list(
                call_with_timeout(
                    self.task_source.get_pending_tasks,
                    self.config.collaborator_timeout_seconds,
                    user_id,
                    day,
                    description="task source",
                )
                or []
            )
        except Exception as exc:
            logger.warning("Task source unavailable for user %s: %s", user_id, exc)
            return []

    def _fetch_routines(self, user_id: str) -> list[Routine]:
        if self.routine_source is None:
            return []
        try:
            return list(
                call_with_timeout(
                    self.routine_source.get_routines,
                    self.config.collaborator_timeout_seconds,
                    user_id,
                    description="routine source",
                )
                or []
            )
        except Exception as exc:
            logger.warning("Routine source unavailable for user %s: %s", user_id, exc)
            return []

    def place_flexible_activities(
        self,
        plan_id: str,
        activities: list[FlexibleActivity],
        blocks: list[TimeBlock],
        plan_start: datetime,
        sleep_time: datetime,
        home_intervals: list[HomeInterval],
    ) -> list[TimeBlock]:
        """
        Fill home gaps with activities in order, each followed by a transition.

        An activity that does not fit the current gap waits for the next one;
        activities left over after the last gap are dropped.
        """
        transition = self.config.transition_buffer_minutes
        gaps = intersect_with_home(
            free_intervals(live_spans(blocks), plan_start, sleep_time), home_intervals
        )
        queue = list(activities)
        placed = []

        for gap_start, gap_end in gaps:
            cursor = gap_start
            while queue:
                activity = queue[0]
                end = add_minutes(cursor, activity.duration)
                if add_minutes(end, transition) > gap_end:
                    break
                placed.append(self._activity_block(plan_id, activity, cursor, end))
                cursor = add_minutes(end, transition)
                queue.pop(0)
            if not queue:
                break

        for activity in queue:
            logger.info("No home gap for %s (%d min), dropping", activity.name, activity.duration)
        return placed

    def place_evening_routine(
        self,
        plan_id: str,
        evening: FlexibleActivity,
        blocks: list[TimeBlock],
        day: date,
        plan_start: datetime,
        sleep_time: datetime,
        home_intervals: list[HomeInterval],
    ) -> TimeBlock | None:
        """Evening routine in the first home gap from 18:00 (or plan start if sleep is earlier)."""
        evening_earliest = combine(day, EVENING_ROUTINE_EARLIEST)
        earliest = evening_earliest if sleep_time > evening_earliest else plan_start
        gaps = intersect_with_home(
            free_intervals(live_spans(blocks), plan_start, sleep_time), home_intervals
        )
        for gap_start, gap_end in gaps:
            start = max(gap_start, earliest)
            end = add_minutes(start, evening.duration)
            if end <= gap_end:
                return self._activity_block(plan_id, evening, start, end)
        logger.info("No home gap for %s, dropping", evening.name)
        return None

    def _activity_block(
        self, plan_id: str, activity: FlexibleActivity, start: datetime, end: datetime
    ) -> TimeBlock:
        return new_block(
            plan_id,
            start,
            end,
            activity.activity_type,
            activity.name,
            False,
            BlockMetadata(source=activity.source, is_required=activity.is_required),
        )

    def fill_buffers(
        self,
        plan_id: str,
        blocks: list[TimeBlock],
        window_start: datetime,
        window_end: datetime,
        periods: list[LocationPeriod],
    ) -> list[TimeBlock]:
        """Buffer blocks for every unallocated gap in the window."""
        return [
            new_block(
                plan_id,
                start,
                end,
                "buffer",
                BUFFER_NAME,
                False,
                BlockMetadata(
                    source="filler",
                    location_state=self.location_tracker.get_location_state_at(start, periods),
                ),
            )
            for start, end in free_intervals(live_spans(blocks), window_start, window_end)
        ]

    # -------------------------------------------------------------------------
    # Degradation
    # -------------------------------------------------------------------------

    def degrade_plan(self, plan_id: str) -> DailyPlan:
        """
        Shed optional work from a plan that is running behind.

        Pending non-required tasks are skipped, pending filler buffers are
        rebuilt around the remaining live blocks, and the plan is re-sequenced.
        Fixed blocks, completed blocks and skipped blocks keep their times.

        Raises:
            PlanNotFoundError: If the store has no such plan
            IllegalStateTransitionError: If the plan is already degraded
        """
        with self._degrade_lock:
            plan = self.plan_store.get(plan_id)
            if plan.status == "degraded":
                raise IllegalStateTransitionError(f"Plan {plan_id} is already degraded")

            skipped = 0
            for block in plan.time_blocks:
                if (
                    block.activity_type == "task"
                    and block.status == "pending"
                    and not block.metadata.is_required
                ):
                    try:
                        self.sequencer.mark_block_skipped(block, DEGRADED_REASON)
                        skipped += 1
                    except IllegalStateTransitionError:
                        logger.info("Task block %s changed state during degrade", block.block_id)

            kept = [
                block
                for block in plan.time_blocks
                if not (block.metadata.source == "filler" and block.status == "pending")
            ]
            kept.extend(
                self.fill_buffers(
                    plan.id, kept, plan.plan_start, plan.sleep_time, plan.location_periods
                )
            )
            ordered = assign_sequence_order(kept)
            validate_plan_blocks(ordered)

            plan.time_blocks = ordered
            plan.status = "degraded"
            self.plan_store.save(plan)

        logger.info("Plan %s degraded: %d tasks skipped", plan_id, skipped)
        return plan


def generate_daily_plan(
    plan_input: PlanInput,
    current_location: Location,
    anchor_source: AnchorSource,
    travel_estimator: TravelEstimator,
    current_datetime: datetime | None = None,
) -> DailyPlan:
    """
    Convenience function to build a plan with default collaborators.

    Args:
        plan_input: User, date, wake/sleep times and energy state
        current_location: Travel origin
        anchor_source: Calendar collaborator
        travel_estimator: Route duration collaborator
        current_datetime: Current local time (defaults to now in plan timezone)

    Returns:
        DailyPlan saved to a fresh in-memory store
    """
    builder = PlanBuilder(anchor_source, travel_estimator)
    return builder.generate_daily_plan(plan_input, current_location, current_datetime)
