"""
Context-aware chain enhancement.

Applies the day's context to a generated chain in four independent sub-steps:

1. Exit-gate suggestions (keys/phone/water plus meds and charger when needed)
2. Step injection ("Take meds" when yesterday's meds were missed)
3. Duration priors (typical durations overwrite template estimates)
4. Risk inflators (display-only multiplier from energy and sleep flags)

A failing sub-step is logged and recorded; the others still run. Injection
and priors that would leave too late to reach the anchor on time are dropped
and recorded the same way. Envelope phases are never moved here.
"""

import logging
from dataclasses import replace
from typing import Mapping

from ..config import DEFAULT_CONFIG, SchedulerConfig
from ..time_math import add_minutes
from ..types import (
    ChainStepInstance,
    ContextEnhancementInfo,
    DailyContext,
    DurationPriorInfo,
    ExecutionChain,
    InjectionInfo,
    StepMetadata,
)
from .chain_generator import make_step_id

logger = logging.getLogger(__name__)

BASE_EXIT_GATE_SUGGESTIONS = ("keys", "phone", "water")
MEDS_STEP_NAME = "Take meds"
# Meds go right after the first step whose name contains one of these
INJECTION_MARKERS = ("wake", "bathroom")
PRIOR_KEY_SUFFIX = "_min"


def recompute_schedule(
    steps: list[ChainStepInstance], changed_index: int, new_duration: int
) -> list[ChainStepInstance]:
    """
    Resize one step and cascade later steps forward or backward.

    Pure: returns new instances for the changed step and every later step; the
    input list and its steps are untouched. Earlier steps are shared.

    Args:
        steps: Contiguous chain steps in order
        changed_index: Index of the step to resize
        new_duration: New duration in minutes (>= 0)

    Returns:
        New contiguous step list of the same length
    """
    if not 0 <= changed_index < len(steps):
        raise IndexError(f"changed_index {changed_index} out of range")
    if new_duration < 0:
        raise ValueError("new_duration must be >= 0")

    result = list(steps[:changed_index])
    changed = steps[changed_index]
    cursor = changed.start_time
    for offset, step in enumerate(steps[changed_index:]):
        duration = new_duration if offset == 0 else step.duration
        end = add_minutes(cursor, duration)
        result.append(replace(step, start_time=cursor, end_time=end, duration=duration))
        cursor = end
    return result


def shift_steps(
    steps: list[ChainStepInstance], from_index: int, minutes: int
) -> list[ChainStepInstance]:
    """Move steps[from_index:] by a fixed number of minutes, durations unchanged."""
    shifted = list(steps[:from_index])
    for step in steps[from_index:]:
        shifted.append(
            replace(
                step,
                start_time=add_minutes(step.start_time, minutes),
                end_time=add_minutes(step.end_time, minutes),
            )
        )
    return shifted


def arrives_in_time(chain: ExecutionChain, steps: list[ChainStepInstance]) -> bool:
    """True if leaving when the steps end still reaches the anchor by its start."""
    if not steps:
        return True
    travel = chain.commitment_envelope.travel_there.duration
    return add_minutes(steps[-1].end_time, travel) <= chain.anchor.start


def generate_exit_gate_suggestions(context: DailyContext) -> list[str]:
    suggestions = list(BASE_EXIT_GATE_SUGGESTIONS)
    if not context.meds.taken:
        suggestions.append("meds")
    if context.day_flags.low_energy_risk:
        suggestions.append("phone-charger")
    return suggestions


def find_injection_index(steps: list[ChainStepInstance]) -> int:
    """Index just after the first wake/bathroom step, or 0 if there is none."""
    for index, step in enumerate(steps):
        name = step.name.lower()
        if any(marker in name for marker in INJECTION_MARKERS):
            return index + 1
    return 0


def normalize_prior_key(key: str) -> str:
    """"shower_min" -> "shower"; "cook_simple_meal_min" -> "cook simple meal"."""
    normalized = key.strip().lower()
    if normalized.endswith(PRIOR_KEY_SUFFIX):
        normalized = normalized[: -len(PRIOR_KEY_SUFFIX)]
    return normalized.replace("_", " ").strip()


def match_duration_prior(
    step_name: str, priors: Mapping[str, int]
) -> tuple[str, int] | None:
    """
    Find the prior for a step name.

    An exact (normalized) name match wins; otherwise the first key whose
    normalized form is a substring of the step name.

    Returns:
        (prior_key, minutes) or None
    """
    name = step_name.strip().lower()
    normalized = [(key, normalize_prior_key(key), value) for key, value in priors.items()]
    for key, norm, value in normalized:
        if norm == name:
            return key, value
    for key, norm, value in normalized:
        if norm and norm in name:
            return key, value
    return None


class ContextIntegrator:
    """Applies daily context to execution chains."""

    def __init__(self, config: SchedulerConfig = DEFAULT_CONFIG):
        self.config = config

    def enhance_chain(
        self, chain: ExecutionChain, context: DailyContext | None
    ) -> ExecutionChain:
        """
        Return a new chain with context applied.

        With no context the chain is returned unchanged apart from a
        ContextEnhancementInfo(context_available=False) annotation.
        """
        if context is None:
            return replace(
                chain,
                metadata=replace(
                    chain.metadata, context=ContextEnhancementInfo(context_available=False)
                ),
            )

        steps = list(chain.steps)
        failed: list[str] = []
        suggestions: list[str] = []
        injected: list[str] = []
        adjusted: list[str] = []
        low_energy_factor = sleep_debt_factor = 1.0

        try:
            suggestions = generate_exit_gate_suggestions(context)
            steps = self.attach_exit_gate_suggestions(steps, suggestions)
        except Exception:
            logger.warning("Exit-gate suggestions failed for chain %s", chain.chain_id, exc_info=True)
            failed.append("exit_gate_suggestions")

        before = steps
        try:
            steps, injected = self.inject_missing_steps(chain.chain_id, steps, context)
            if not arrives_in_time(chain, steps):
                logger.warning(
                    "Injected steps would make chain %s late for its anchor, dropping them",
                    chain.chain_id,
                )
                steps, injected = before, []
                failed.append("step_injection")
        except Exception:
            logger.warning("Step injection failed for chain %s", chain.chain_id, exc_info=True)
            steps, injected = before, []
            failed.append("step_injection")

        before = steps
        try:
            steps, adjusted = self.apply_duration_priors(steps, context.duration_priors)
            if not arrives_in_time(chain, steps):
                logger.warning(
                    "Duration priors %s would make chain %s late for its anchor, dropping them",
                    adjusted,
                    chain.chain_id,
                )
                steps, adjusted = before, []
                failed.append("duration_priors")
        except Exception:
            logger.warning("Duration priors failed for chain %s", chain.chain_id, exc_info=True)
            steps, adjusted = before, []
            failed.append("duration_priors")

        try:
            low_energy_factor, sleep_debt_factor = self.calculate_risk_inflators(context)
        except Exception:
            logger.warning("Risk inflators failed for chain %s", chain.chain_id, exc_info=True)
            failed.append("risk_inflators")

        info = ContextEnhancementInfo(
            context_available=True,
            exit_gate_suggestions=tuple(suggestions),
            injected_step_names=tuple(injected),
            adjusted_step_names=tuple(adjusted),
            low_energy_factor=low_energy_factor,
            sleep_debt_factor=sleep_debt_factor,
            risk_multiplier=round(low_energy_factor * sleep_debt_factor, 4),
            failed_substeps=tuple(failed),
        )
        logger.debug(
            "Enhanced chain %s: injected=%s adjusted=%s risk=%.3f",
            chain.chain_id,
            injected,
            adjusted,
            info.risk_multiplier,
        )
        return replace(
            chain, steps=steps, metadata=replace(chain.metadata, context=info)
        )

    def attach_exit_gate_suggestions(
        self, steps: list[ChainStepInstance], suggestions: list[str]
    ) -> list[ChainStepInstance]:
        return [
            replace(step, metadata=replace(step.metadata, gate_suggestions=tuple(suggestions)))
            if step.role == "exit-gate"
            else step
            for step in steps
        ]

    def inject_missing_steps(
        self, chain_id: str, steps: list[ChainStepInstance], context: DailyContext
    ) -> tuple[list[ChainStepInstance], list[str]]:
        """
        Insert a required meds step when yesterday's meds were missed.

        Every step after the insertion point moves forward by exactly the
        injected duration.
        """
        if context.meds.taken:
            return steps, []

        minutes = self.config.meds_step_minutes
        index = find_injection_index(steps)
        if index == 0:
            start = steps[0].start_time if steps else None
        else:
            start = steps[index - 1].end_time
        if start is None:
            return steps, []

        meds_step = ChainStepInstance(
            step_id=make_step_id(chain_id, "injected:meds"),
            chain_id=chain_id,
            name=MEDS_STEP_NAME,
            start_time=start,
            end_time=add_minutes(start, minutes),
            duration=minutes,
            is_required=True,
            can_skip_when_late=False,
            role="chain-step",
            metadata=StepMetadata(
                injection=InjectionInfo(
                    obligation="meds",
                    reason=(
                        "Meds not taken yesterday "
                        f"(reliability {context.meds.reliability:.2f})"
                    ),
                )
            ),
        )
        shifted = shift_steps(steps, index, minutes)
        return shifted[:index] + [meds_step] + shifted[index:], [MEDS_STEP_NAME]

    def apply_duration_priors(
        self, steps: list[ChainStepInstance], priors: Mapping[str, int]
    ) -> tuple[list[ChainStepInstance], list[str]]:
        """
        Overwrite step durations from priors and re-cascade later steps.

        Injected steps, non-positive priors and priors equal to the current
        duration are left alone.
        """
        adjusted: list[str] = []
        if not priors:
            return steps, adjusted

        for index in range(len(steps)):
            step = steps[index]
            if step.metadata.injection is not None:
                continue
            match = match_duration_prior(step.name, priors)
            if match is None:
                continue
            key, minutes = match
            if minutes <= 0:
                logger.debug("Ignoring non-positive prior %s=%s", key, minutes)
                continue
            if minutes == step.duration:
                continue

            steps = recompute_schedule(steps, index, minutes)
            steps[index] = replace(
                steps[index],
                metadata=replace(
                    steps[index].metadata,
                    duration_prior=DurationPriorInfo(
                        original_duration=step.duration,
                        prior_duration=minutes,
                        prior_key=key,
                    ),
                ),
            )
            adjusted.append(step.name)

        return steps, adjusted

    def calculate_risk_inflators(self, context: DailyContext) -> tuple[float, float]:
        """(low_energy_factor, sleep_debt_factor); 1.0 when not flagged."""
        low_energy = self.config.low_energy_factor if context.day_flags.low_energy_risk else 1.0
        sleep_debt = self.config.sleep_debt_factor if context.day_flags.sleep_debt_risk else 1.0
        return low_energy, sleep_debt
