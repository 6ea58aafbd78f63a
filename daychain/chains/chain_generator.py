"""
Backward chain generation.

Each anchor gets an execution chain planned backward from its chain completion
deadline, plus a commitment envelope (prep, travel there, anchor, travel back,
recovery) around it.

Architecture:
1. Travel estimator provides the travel duration (or the default on failure)
2. Deadline = anchor start - (travel + completion buffer)
3. Template steps are laid out in reverse, ending exactly at the deadline
4. Envelope phases are chained contiguously around the anchor
5. Optional enhancement (context integration) runs inside the same per-anchor
   isolation boundary
"""

import logging
import uuid
from concurrent.futures import ThreadPoolExecutor
from dataclasses import dataclass
from datetime import date, datetime
from typing import Callable

from ..config import DEFAULT_CONFIG, EXTENDED_PREP_ANCHOR_TYPES, SchedulerConfig
from ..time_math import add_minutes, minutes_between
from ..types import (
    Anchor,
    AnchorFailure,
    ChainGenerationResult,
    ChainMetadata,
    ChainStepInstance,
    ChainTemplate,
    CommitmentEnvelope,
    EnvelopeInfo,
    EnvelopePhase,
    ExecutionChain,
    StepMetadata,
    StepRole,
    TemplateFallbackInfo,
    TravelFallbackInfo,
)
from .templates import ChainTemplateRegistry, default_registry
from .travel import (
    Location,
    TravelEstimate,
    TravelEstimator,
    TravelPreferences,
    Weather,
    estimate_travel_duration,
)

logger = logging.getLogger(__name__)

# Namespace for deterministic chain and step identifiers
CHAIN_ID_NAMESPACE = uuid.UUID("6f1c2b1e-4d0a-5b7e-9a52-0c3e8d7f1a44")

ChainEnhancer = Callable[[ExecutionChain], ExecutionChain]


@dataclass(frozen=True)
class ChainGeneratorConfig:
    """Per-request inputs to travel estimation."""

    current_location: Location
    user_energy: int = 3  # 1-5
    weather: Weather | None = None
    preferences: TravelPreferences | None = None


@dataclass(frozen=True)
class ChainGeneratorOptions:
    user_id: str
    date: date
    config: ChainGeneratorConfig


def make_chain_id(anchor: Anchor) -> str:
    return str(uuid.uuid5(CHAIN_ID_NAMESPACE, f"chain:{anchor.id}:{anchor.start.isoformat()}"))


def make_step_id(chain_id: str, key: str) -> str:
    return str(uuid.uuid5(CHAIN_ID_NAMESPACE, f"{chain_id}:{key}"))


class ChainGenerator:
    """
    Generates execution chains for a day's anchors.

    The template registry and config are injected; nothing is looked up from
    module state at generation time.
    """

    def __init__(
        self,
        travel_estimator: TravelEstimator,
        registry: ChainTemplateRegistry | None = None,
        config: SchedulerConfig = DEFAULT_CONFIG,
    ):
        self.travel_estimator = travel_estimator
        self.registry = registry or default_registry()
        self.config = config

    def generate_chains_for_date(
        self,
        anchors: list[Anchor],
        options: ChainGeneratorOptions,
        enhance: ChainEnhancer | None = None,
    ) -> ChainGenerationResult:
        """
        Generate one chain per anchor, isolating failures.

        A failing anchor is omitted from the chains and recorded as an
        AnchorFailure; the remaining anchors are unaffected. Pipelines may run
        concurrently but results keep the input anchor order.

        Args:
            anchors: The day's anchors
            options: User, date and travel inputs
            enhance: Applied to each chain after envelope construction

        Returns:
            ChainGenerationResult with chains and failures
        """
        result = ChainGenerationResult()
        if not anchors:
            return result

        workers = min(self.config.max_parallel_anchors, len(anchors))
        if workers <= 1:
            outcomes = [self._run_isolated(anchor, options, enhance) for anchor in anchors]
        else:
            with ThreadPoolExecutor(
                max_workers=workers, thread_name_prefix="daychain-chain"
            ) as executor:
                futures = [
                    executor.submit(self._run_isolated, anchor, options, enhance)
                    for anchor in anchors
                ]
                outcomes = [future.result() for future in futures]

        for outcome in outcomes:
            if isinstance(outcome, AnchorFailure):
                result.failures.append(outcome)
            else:
                result.chains.append(outcome)

        logger.info(
            "Generated %d chains (%d failed) for user %s on %s",
            len(result.chains),
            len(result.failures),
            options.user_id,
            options.date,
        )
        return result

    def _run_isolated(
        self,
        anchor: Anchor,
        options: ChainGeneratorOptions,
        enhance: ChainEnhancer | None,
    ) -> ExecutionChain | AnchorFailure:
        try:
            chain = self.generate_chain_for_anchor(anchor, options)
            if enhance is not None:
                chain = enhance(chain)
            return chain
        except Exception as exc:
            logger.exception("Failed to generate chain for anchor %s", anchor.id)
            return AnchorFailure(anchor_id=anchor.id, error=f"{type(exc).__name__}: {exc}")

    def generate_chain_for_anchor(
        self, anchor: Anchor, options: ChainGeneratorOptions
    ) -> ExecutionChain:
        """Build the chain and envelope for one anchor. Raises on invalid anchors."""
        if anchor.end < anchor.start:
            raise ValueError(f"Anchor {anchor.id} ends before it starts")

        travel = self._get_travel_duration(anchor, options.config)
        deadline = self.calculate_chain_completion_deadline(anchor, travel.duration_minutes)

        template, fell_back = self.registry.get_chain_template(anchor.type)
        template_fallback = None
        if fell_back:
            logger.info(
                "No template for anchor type %r, using %r", anchor.type, template.anchor_type
            )
            template_fallback = TemplateFallbackInfo(
                requested_type=anchor.type, used_type=template.anchor_type
            )

        chain_id = make_chain_id(anchor)
        steps = self.generate_backward_chain(chain_id, template, deadline)
        envelope = self.generate_commitment_envelope(
            anchor, chain_id, steps, deadline, travel.duration_minutes, travel.fallback
        )

        return ExecutionChain(
            chain_id=chain_id,
            anchor_id=anchor.id,
            anchor=anchor,
            chain_completion_deadline=deadline,
            travel_duration=travel.duration_minutes,
            steps=steps,
            commitment_envelope=envelope,
            metadata=ChainMetadata(
                template_fallback=template_fallback,
                travel_fallback=travel.fallback,
            ),
        )

    def calculate_chain_completion_deadline(
        self, anchor: Anchor, travel_duration: int
    ) -> datetime:
        """Latest time the chain must finish: start - (travel + completion buffer)."""
        total = travel_duration + self.config.chain_completion_buffer_minutes
        return add_minutes(anchor.start, -total)

    def generate_backward_chain(
        self, chain_id: str, template: ChainTemplate, deadline: datetime
    ) -> list[ChainStepInstance]:
        """
        Lay template steps out backward so the last step ends at the deadline.

        Returns steps in chronological order; each step's end equals the next
        step's start.
        """
        steps: list[ChainStepInstance] = []
        cursor = deadline

        for index in range(len(template.steps) - 1, -1, -1):
            template_step = template.steps[index]
            start = add_minutes(cursor, -template_step.duration_estimate)
            role: StepRole = "exit-gate" if template_step.is_exit_gate else "chain-step"
            steps.append(
                ChainStepInstance(
                    step_id=make_step_id(chain_id, f"{index}:{template_step.id}"),
                    chain_id=chain_id,
                    name=template_step.name,
                    start_time=start,
                    end_time=cursor,
                    duration=template_step.duration_estimate,
                    is_required=template_step.is_required,
                    can_skip_when_late=template_step.can_skip_when_late,
                    role=role,
                    metadata=StepMetadata(gate_tags=template_step.gate_tags),
                )
            )
            cursor = start

        steps.reverse()
        return steps

    def generate_commitment_envelope(
        self,
        anchor: Anchor,
        chain_id: str,
        steps: list[ChainStepInstance],
        deadline: datetime,
        travel_duration: int,
        travel_fallback: TravelFallbackInfo | None = None,
    ) -> CommitmentEnvelope:
        """
        Build the five contiguous envelope phases around an anchor.

        Prep spans the chain steps (zero length at the deadline for an empty
        chain). Both travel phases carry travel_fallback when travel was
        defaulted.
        """
        envelope_id = make_step_id(chain_id, "envelope")

        def phase_step(
            phase: EnvelopePhase,
            name: str,
            start: datetime,
            end: datetime,
            role: StepRole = "chain-step",
            fallback: TravelFallbackInfo | None = None,
            prep_allowance: int | None = None,
        ) -> ChainStepInstance:
            return ChainStepInstance(
                step_id=make_step_id(chain_id, f"envelope:{phase}"),
                chain_id=chain_id,
                name=name,
                start_time=start,
                end_time=end,
                duration=minutes_between(start, end),
                is_required=True,
                can_skip_when_late=False,
                role=role,
                metadata=StepMetadata(
                    envelope=EnvelopeInfo(envelope_id, phase, prep_allowance),
                    travel_fallback=fallback,
                ),
            )

        prep_start = steps[0].start_time if steps else deadline
        prep_end = steps[-1].end_time if steps else deadline
        travel_there_end = add_minutes(prep_end, travel_duration)
        travel_back_end = add_minutes(anchor.end, travel_duration)
        recovery_end = add_minutes(travel_back_end, self.recovery_duration_for(anchor))

        return CommitmentEnvelope(
            envelope_id=envelope_id,
            prep=phase_step(
                "prep",
                "Preparation",
                prep_start,
                prep_end,
                prep_allowance=self.prep_allowance_for(anchor),
            ),
            travel_there=phase_step(
                "travel_there",
                f"Travel to {anchor.title}",
                prep_end,
                travel_there_end,
                fallback=travel_fallback,
            ),
            anchor=phase_step("anchor", anchor.title, anchor.start, anchor.end, role="anchor"),
            travel_back=phase_step(
                "travel_back",
                f"Travel from {anchor.title}",
                anchor.end,
                travel_back_end,
                fallback=travel_fallback,
            ),
            recovery=phase_step(
                "recovery", "Recovery", travel_back_end, recovery_end, role="recovery"
            ),
        )

    def recovery_duration_for(self, anchor: Anchor) -> int:
        """Long recovery for anchors of at least the long-anchor threshold."""
        if anchor.duration_minutes >= self.config.long_anchor_threshold_minutes:
            return self.config.recovery_long_minutes
        return self.config.recovery_short_minutes

    def prep_allowance_for(self, anchor: Anchor) -> int:
        if anchor.type in EXTENDED_PREP_ANCHOR_TYPES:
            return self.config.prep_extended_minutes
        return self.config.prep_minutes

    def _get_travel_duration(
        self, anchor: Anchor, generator_config: ChainGeneratorConfig
    ) -> TravelEstimate:
        return estimate_travel_duration(
            self.travel_estimator,
            generator_config.current_location,
            anchor,
            user_energy=generator_config.user_energy,
            weather=generator_config.weather,
            preferences=generator_config.preferences,
            config=self.config,
        )


def generate_chains_for_date(
    anchors: list[Anchor],
    options: ChainGeneratorOptions,
    travel_estimator: TravelEstimator,
    registry: ChainTemplateRegistry | None = None,
) -> ChainGenerationResult:
    """
    Convenience function to generate chains.

    Args:
        anchors: The day's anchors
        options: User, date and travel inputs
        travel_estimator: Route duration collaborator
        registry: Template registry (defaults to the built-in templates)

    Returns:
        ChainGenerationResult with chains in anchor order
    """
    generator = ChainGenerator(travel_estimator, registry)
    return generator.generate_chains_for_date(anchors, options)
