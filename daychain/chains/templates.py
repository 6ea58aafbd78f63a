"""
Chain templates: the preparation steps needed to leave the house for each
anchor type.

Templates are frozen and collected in a ChainTemplateRegistry that is injected
into the chain generator. Unknown anchor types resolve to the fallback
template, and the caller is told so it can flag the chain.
"""

from dataclasses import dataclass, field
from types import MappingProxyType
from typing import Mapping

from ..types import ChainStepTemplate, ChainTemplate

FALLBACK_ANCHOR_TYPE = "other"

# Items the exit readiness check asks the user to confirm
DEFAULT_GATE_TAGS = ("keys", "phone", "water", "meds", "cat-fed", "bag-packed")


def _required(step_id: str, name: str, minutes: int) -> ChainStepTemplate:
    return ChainStepTemplate(id=step_id, name=name, duration_estimate=minutes)


def _skippable(step_id: str, name: str, minutes: int) -> ChainStepTemplate:
    return ChainStepTemplate(
        id=step_id,
        name=name,
        duration_estimate=minutes,
        is_required=False,
        can_skip_when_late=True,
    )


FEED_CAT = _required("feed-cat", "Feed cat", 5)
BATHROOM = _required("bathroom", "Bathroom", 10)
HYGIENE = _required("hygiene", "Hygiene (brush teeth)", 5)
SHOWER = _skippable("shower", "Shower", 15)
DRESS = _required("dress", "Get dressed", 10)
PACK_BAG = _required("pack-bag", "Pack bag", 10)
EXIT_GATE = ChainStepTemplate(
    id="exit-gate",
    name="Exit Readiness Check",
    duration_estimate=2,
    is_exit_gate=True,
    gate_tags=DEFAULT_GATE_TAGS,
)
LEAVE = _required("leave", "Leave house", 0)


def _review_materials(kind: str) -> ChainStepTemplate:
    return _skippable("review-materials", f"Review {kind} materials", 15)


def _build_default_templates() -> dict[str, ChainTemplate]:
    standard = (FEED_CAT, BATHROOM, HYGIENE, SHOWER, DRESS, PACK_BAG, EXIT_GATE, LEAVE)
    return {
        "class": ChainTemplate("class", standard),
        "seminar": ChainTemplate(
            "seminar",
            (FEED_CAT, BATHROOM, HYGIENE, SHOWER, DRESS, _review_materials("seminar"),
             PACK_BAG, EXIT_GATE, LEAVE),
        ),
        "workshop": ChainTemplate(
            "workshop",
            (FEED_CAT, BATHROOM, HYGIENE, SHOWER, DRESS, _review_materials("workshop"),
             PACK_BAG, EXIT_GATE, LEAVE),
        ),
        # Appointments skip the cat and the shower
        "appointment": ChainTemplate(
            "appointment", (BATHROOM, HYGIENE, DRESS, PACK_BAG, EXIT_GATE, LEAVE)
        ),
        FALLBACK_ANCHOR_TYPE: ChainTemplate(FALLBACK_ANCHOR_TYPE, standard),
    }


@dataclass(frozen=True)
class ChainTemplateRegistry:
    """Read-only anchor type -> template mapping."""

    templates: Mapping[str, ChainTemplate] = field(default_factory=_build_default_templates)
    fallback_type: str = FALLBACK_ANCHOR_TYPE

    def __post_init__(self):
        if self.fallback_type not in self.templates:
            raise ValueError(f"Registry has no fallback template {self.fallback_type!r}")
        for anchor_type, template in self.templates.items():
            gates = [step for step in template.steps if step.is_exit_gate]
            if len(gates) > 1:
                raise ValueError(f"Template {anchor_type!r} has more than one exit gate")
        object.__setattr__(self, "templates", MappingProxyType(dict(self.templates)))

    def get_chain_template(self, anchor_type: str) -> tuple[ChainTemplate, bool]:
        """
        Look up the template for an anchor type.

        Returns:
            (template, fell_back) where fell_back is True if the type was unknown
            and the fallback template was returned instead.
        """
        template = self.templates.get(anchor_type)
        if template is not None:
            return template, False
        return self.templates[self.fallback_type], True

    @property
    def anchor_types(self) -> list[str]:
        return sorted(self.templates)


def default_registry() -> ChainTemplateRegistry:
    """Registry holding the built-in templates."""
    return ChainTemplateRegistry()


def template_duration(template: ChainTemplate) -> int:
    """Total minutes of all steps."""
    return sum(step.duration_estimate for step in template.steps)


def minimum_duration(template: ChainTemplate) -> int:
    """Total minutes of required steps only (the late-running floor)."""
    return sum(step.duration_estimate for step in template.steps if step.is_required)


def required_steps(template: ChainTemplate) -> list[ChainStepTemplate]:
    return [step for step in template.steps if step.is_required]


def optional_steps(template: ChainTemplate) -> list[ChainStepTemplate]:
    return [step for step in template.steps if not step.is_required]


def skippable_steps(template: ChainTemplate) -> list[ChainStepTemplate]:
    return [step for step in template.steps if step.can_skip_when_late]
