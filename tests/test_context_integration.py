"""
Tests for context-aware chain enhancement.
"""

from dataclasses import replace

import pytest

from daychain.chains.context_integration import (
    ContextIntegrator,
    arrives_in_time,
    find_injection_index,
    generate_exit_gate_suggestions,
    match_duration_prior,
    normalize_prior_key,
    recompute_schedule,
)
from daychain.config import SchedulerConfig
from daychain.types import DailyContext, DayFlags, MedsStatus

from helpers import assert_contiguous, at, minutes, span


def step_named(chain, name):
    return next(step for step in chain.steps if step.name == name)


class TestExitGateSuggestions:
    def test_base_suggestions(self, good_day_context):
        assert generate_exit_gate_suggestions(good_day_context) == ["keys", "phone", "water"]

    def test_missed_meds_and_low_energy(self, rough_day_context):
        assert generate_exit_gate_suggestions(rough_day_context) == [
            "keys",
            "phone",
            "water",
            "meds",
            "phone-charger",
        ]

    def test_attached_to_exit_gate_only(self, integrator, lecture_chain, rough_day_context):
        enhanced = integrator.enhance_chain(lecture_chain, rough_day_context)
        gate = enhanced.find_step_by_role("exit-gate")
        assert "phone-charger" in gate.metadata.gate_suggestions
        others = [step for step in enhanced.steps if step.role != "exit-gate"]
        assert all(step.metadata.gate_suggestions == () for step in others)


class TestStepInjection:
    """Missed meds insert a 2-minute step and push later steps forward."""

    def test_meds_injected_after_bathroom(self, integrator, lecture_chain, rough_day_context):
        enhanced = integrator.enhance_chain(lecture_chain, rough_day_context)
        names = [step.name for step in enhanced.steps]
        assert names.index("Take meds") == names.index("Bathroom") + 1
        meds = step_named(enhanced, "Take meds")
        assert span(meds) == ("08:13", "08:15")
        assert meds.is_required
        assert meds.metadata.injection.obligation == "meds"

    def test_later_steps_shift_by_injected_duration(self, integrator, lecture_chain):
        context = DailyContext(meds=MedsStatus(taken=False))
        enhanced = integrator.enhance_chain(lecture_chain, context)

        originals = {step.name: step for step in lecture_chain.steps}
        for step in enhanced.steps:
            if step.name == "Take meds":
                continue
            original = originals[step.name]
            assert step.duration == original.duration
            if original.start_time >= at("08:13"):
                assert step.start_time == original.start_time + minutes(2)
            else:
                assert step.start_time == original.start_time
        assert_contiguous(enhanced.steps)

    def test_no_injection_when_meds_taken(self, integrator, lecture_chain, good_day_context):
        enhanced = integrator.enhance_chain(lecture_chain, good_day_context)
        assert "Take meds" not in [step.name for step in enhanced.steps]
        assert enhanced.metadata.context.injected_step_names == ()

    def test_injection_index_without_markers(self, lecture_chain):
        steps = [step for step in lecture_chain.steps if step.name != "Bathroom"]
        assert find_injection_index(steps) == 0

    def test_injected_at_start_when_no_marker(self, integrator, lecture_chain):
        chain = replace(
            lecture_chain,
            steps=[step for step in lecture_chain.steps if step.name != "Bathroom"],
        )
        enhanced = integrator.enhance_chain(chain, DailyContext(meds=MedsStatus(taken=False)))
        assert enhanced.steps[0].name == "Take meds"
        assert enhanced.steps[0].start_time == chain.steps[0].start_time
        assert enhanced.steps[1].start_time == chain.steps[0].start_time + minutes(2)

    def test_envelope_not_moved(self, integrator, lecture_chain, rough_day_context):
        enhanced = integrator.enhance_chain(lecture_chain, rough_day_context)
        assert enhanced.commitment_envelope == lecture_chain.commitment_envelope


class TestDurationPriors:
    def test_normalize_prior_key(self):
        assert normalize_prior_key("shower_min") == "shower"
        assert normalize_prior_key("cook_simple_meal_min") == "cook simple meal"
        assert normalize_prior_key("Bathroom") == "bathroom"

    def test_exact_match_beats_substring(self):
        priors = {"dress_min": 12, "Get dressed": 8}
        assert match_duration_prior("Get dressed", priors) == ("Get dressed", 8)

    def test_substring_match(self):
        assert match_duration_prior("Hygiene (brush teeth)", {"hygiene_min": 7}) == (
            "hygiene_min",
            7,
        )
        assert match_duration_prior("Feed cat", {"hygiene_min": 7}) is None

    def test_prior_overwrites_and_recascades(self, integrator, lecture_chain):
        context = DailyContext(meds=MedsStatus(taken=True), duration_priors={"shower_min": 20})
        enhanced = integrator.enhance_chain(lecture_chain, context)

        shower = step_named(enhanced, "Shower")
        assert shower.duration == 20
        assert shower.metadata.duration_prior.original_duration == 15
        assert shower.metadata.duration_prior.prior_key == "shower_min"
        assert span(step_named(enhanced, "Get dressed")) == ("08:38", "08:48")
        assert enhanced.steps[-1].end_time == at("09:00")
        assert enhanced.steps[0].start_time == lecture_chain.steps[0].start_time
        assert enhanced.metadata.context.adjusted_step_names == ("Shower",)
        assert_contiguous(enhanced.steps)

    def test_non_positive_prior_ignored(self, integrator, lecture_chain):
        context = DailyContext(meds=MedsStatus(taken=True), duration_priors={"shower_min": 0})
        enhanced = integrator.enhance_chain(lecture_chain, context)
        assert [s.duration for s in enhanced.steps] == [s.duration for s in lecture_chain.steps]

    def test_injected_step_keeps_its_duration(self, integrator, lecture_chain):
        context = DailyContext(
            meds=MedsStatus(taken=False), duration_priors={"take_meds_min": 10}
        )
        enhanced = integrator.enhance_chain(lecture_chain, context)
        assert step_named(enhanced, "Take meds").duration == 2

    def test_prior_that_misses_the_anchor_is_dropped(self, integrator, lecture_chain):
        # Shower 15 -> 75 would end the chain at 09:55 and arrive 10:15
        context = DailyContext(meds=MedsStatus(taken=True), duration_priors={"shower_min": 75})
        enhanced = integrator.enhance_chain(lecture_chain, context)

        assert step_named(enhanced, "Shower").duration == 15
        assert enhanced.metadata.context.failed_substeps == ("duration_priors",)
        assert enhanced.metadata.context.adjusted_step_names == ()

    def test_prior_within_slack_is_kept(self, integrator, lecture_chain):
        context = DailyContext(meds=MedsStatus(taken=True), duration_priors={"shower_min": 40})
        enhanced = integrator.enhance_chain(lecture_chain, context)

        assert step_named(enhanced, "Shower").duration == 40
        assert enhanced.steps[-1].end_time == at("09:20")
        assert enhanced.metadata.context.failed_substeps == ()

    def test_dropped_priors_keep_injection(self, integrator, lecture_chain):
        context = DailyContext(
            meds=MedsStatus(taken=False), duration_priors={"shower_min": 75}
        )
        enhanced = integrator.enhance_chain(lecture_chain, context)
        assert "Take meds" in [step.name for step in enhanced.steps]
        assert step_named(enhanced, "Shower").duration == 15
        assert enhanced.metadata.context.failed_substeps == ("duration_priors",)

    def test_arrives_in_time(self, lecture_chain):
        # 45 minutes of slack between arrival and the anchor
        assert arrives_in_time(lecture_chain, lecture_chain.steps)
        assert arrives_in_time(lecture_chain, recompute_schedule(lecture_chain.steps, 3, 60))
        assert not arrives_in_time(lecture_chain, recompute_schedule(lecture_chain.steps, 3, 61))
        assert arrives_in_time(lecture_chain, [])


class TestRecomputeSchedule:
    def test_is_pure(self, lecture_chain):
        before = [(s.start_time, s.end_time, s.duration) for s in lecture_chain.steps]
        result = recompute_schedule(lecture_chain.steps, 3, 30)
        after = [(s.start_time, s.end_time, s.duration) for s in lecture_chain.steps]
        assert before == after
        assert result is not lecture_chain.steps
        assert result[3].duration == 30

    def test_shortening_pulls_later_steps_back(self, lecture_chain):
        result = recompute_schedule(lecture_chain.steps, 3, 5)
        assert result[-1].end_time == lecture_chain.steps[-1].end_time - minutes(10)
        assert result[:3] == lecture_chain.steps[:3]
        assert_contiguous(result)

    def test_rejects_bad_arguments(self, lecture_chain):
        with pytest.raises(IndexError):
            recompute_schedule(lecture_chain.steps, len(lecture_chain.steps), 5)
        with pytest.raises(ValueError):
            recompute_schedule(lecture_chain.steps, 0, -1)


class TestRiskInflators:
    def test_both_flags(self, integrator, lecture_chain, rough_day_context):
        enhanced = integrator.enhance_chain(lecture_chain, rough_day_context)
        info = enhanced.metadata.context
        assert info.low_energy_factor == 1.10
        assert info.sleep_debt_factor == 1.15
        assert info.risk_multiplier == pytest.approx(1.265)

    def test_low_energy_only(self, integrator, lecture_chain):
        context = DailyContext(
            meds=MedsStatus(taken=True), day_flags=DayFlags(low_energy_risk=True)
        )
        info = integrator.enhance_chain(lecture_chain, context).metadata.context
        assert info.risk_multiplier == pytest.approx(1.10)

    def test_multiplier_not_applied_to_durations(self, integrator, lecture_chain):
        context = DailyContext(
            meds=MedsStatus(taken=True),
            day_flags=DayFlags(low_energy_risk=True, sleep_debt_risk=True),
        )
        enhanced = integrator.enhance_chain(lecture_chain, context)
        assert [span(step) for step in enhanced.steps] == [
            span(step) for step in lecture_chain.steps
        ]
        assert [step.duration for step in enhanced.steps] == [
            step.duration for step in lecture_chain.steps
        ]

    def test_factors_come_from_config(self, lecture_chain, rough_day_context):
        integrator = ContextIntegrator(SchedulerConfig(low_energy_factor=1.5, sleep_debt_factor=2.0))
        info = integrator.enhance_chain(lecture_chain, rough_day_context).metadata.context
        assert info.risk_multiplier == pytest.approx(3.0)


class TestMissingContext:
    def test_none_context_leaves_chain_unchanged(self, integrator, lecture_chain):
        enhanced = integrator.enhance_chain(lecture_chain, None)
        assert enhanced.metadata.context.context_available is False
        assert enhanced.metadata.context.risk_multiplier == 1.0

    def test_original_chain_not_mutated(self, integrator, lecture_chain, rough_day_context):
        step_count = len(lecture_chain.steps)
        integrator.enhance_chain(lecture_chain, rough_day_context)
        assert len(lecture_chain.steps) == step_count
        assert lecture_chain.metadata.context is None


class TestSubStepIsolation:
    """One failing sub-step does not stop the others."""

    def test_injection_failure_recorded(self, lecture_chain, rough_day_context, monkeypatch):
        integrator = ContextIntegrator()

        def boom(*args, **kwargs):
            raise RuntimeError("injection broke")

        monkeypatch.setattr(integrator, "inject_missing_steps", boom)
        enhanced = integrator.enhance_chain(lecture_chain, rough_day_context)
        info = enhanced.metadata.context

        assert info.failed_substeps == ("step_injection",)
        assert "Take meds" not in [step.name for step in enhanced.steps]
        # Suggestions, priors and inflators still applied
        assert "meds" in enhanced.find_step_by_role("exit-gate").metadata.gate_suggestions
        assert step_named(enhanced, "Shower").duration == 20
        assert info.risk_multiplier == pytest.approx(1.265)

    def test_priors_failure_keeps_injection(self, lecture_chain, rough_day_context, monkeypatch):
        integrator = ContextIntegrator()
        monkeypatch.setattr(
            integrator,
            "apply_duration_priors",
            lambda *args: (_ for _ in ()).throw(ValueError("bad priors")),
        )
        enhanced = integrator.enhance_chain(lecture_chain, rough_day_context)
        assert enhanced.metadata.context.failed_substeps == ("duration_priors",)
        assert "Take meds" in [step.name for step in enhanced.steps]
        assert step_named(enhanced, "Shower").duration == 15
