"""
Tests for chain templates and the template registry.
"""

import pytest

from daychain.chains.templates import (
    DEFAULT_GATE_TAGS,
    ChainTemplateRegistry,
    minimum_duration,
    optional_steps,
    required_steps,
    skippable_steps,
    template_duration,
)
from daychain.types import ChainStepTemplate, ChainTemplate


class TestDefaultTemplates:
    """Built-in templates per anchor type."""

    def test_all_anchor_types_present(self, registry):
        assert registry.anchor_types == ["appointment", "class", "other", "seminar", "workshop"]

    def test_class_template_order(self, registry):
        template, _ = registry.get_chain_template("class")
        assert [step.id for step in template.steps] == [
            "feed-cat",
            "bathroom",
            "hygiene",
            "shower",
            "dress",
            "pack-bag",
            "exit-gate",
            "leave",
        ]

    def test_class_durations(self, registry):
        template, _ = registry.get_chain_template("class")
        assert template_duration(template) == 57
        # Shower is the only optional step
        assert minimum_duration(template) == 42

    def test_seminar_reviews_materials(self, registry):
        template, _ = registry.get_chain_template("seminar")
        review = [step for step in template.steps if step.id == "review-materials"]
        assert len(review) == 1
        assert review[0].name == "Review seminar materials"
        assert review[0].can_skip_when_late

    def test_appointment_skips_cat_and_shower(self, registry):
        template, _ = registry.get_chain_template("appointment")
        ids = [step.id for step in template.steps]
        assert "feed-cat" not in ids
        assert "shower" not in ids
        assert ids[-2:] == ["exit-gate", "leave"]

    def test_exit_gate_carries_tags(self, registry):
        template, _ = registry.get_chain_template("workshop")
        gate = next(step for step in template.steps if step.is_exit_gate)
        assert gate.name == "Exit Readiness Check"
        assert gate.duration_estimate == 2
        assert gate.gate_tags == DEFAULT_GATE_TAGS

    def test_leave_house_is_zero_minutes(self, registry):
        template, _ = registry.get_chain_template("class")
        assert template.steps[-1].name == "Leave house"
        assert template.steps[-1].duration_estimate == 0

    def test_step_filters(self, registry):
        template, _ = registry.get_chain_template("seminar")
        assert {step.id for step in optional_steps(template)} == {"shower", "review-materials"}
        assert skippable_steps(template) == optional_steps(template)
        assert len(required_steps(template)) == len(template.steps) - 2


class TestRegistryLookup:
    """Fallback and immutability of the registry."""

    def test_known_type_does_not_fall_back(self, registry):
        template, fell_back = registry.get_chain_template("appointment")
        assert template.anchor_type == "appointment"
        assert fell_back is False

    def test_unknown_type_falls_back_to_other(self, registry):
        template, fell_back = registry.get_chain_template("lab")
        assert template.anchor_type == "other"
        assert fell_back is True

    def test_registry_mapping_is_read_only(self, registry):
        with pytest.raises(TypeError):
            registry.templates["lab"] = registry.templates["other"]

    def test_registry_requires_fallback_template(self):
        with pytest.raises(ValueError, match="fallback"):
            ChainTemplateRegistry(templates={"class": ChainTemplate("class", ())})

    def test_registry_rejects_two_exit_gates(self):
        gate = ChainStepTemplate("exit-gate", "Check", 2, is_exit_gate=True)
        with pytest.raises(ValueError, match="exit gate"):
            ChainTemplateRegistry(templates={"other": ChainTemplate("other", (gate, gate))})

    def test_custom_registry_is_independent(self, registry):
        quick = ChainTemplate("other", (ChainStepTemplate("leave", "Leave house", 0),))
        custom = ChainTemplateRegistry(templates={"other": quick})
        assert custom.get_chain_template("class") == (quick, True)
        assert registry.get_chain_template("class")[1] is False
