"""Contracts for the plan builder's input collaborators, with static implementations."""

from dataclasses import dataclass, field
from datetime import date
from typing import Protocol

from ..types import Anchor, Routine, Task


class AnchorSource(Protocol):
    def get_anchors_for_date(self, user_id: str, day: date) -> list[Anchor]: ...


class TaskSource(Protocol):
    def get_pending_tasks(self, user_id: str, day: date) -> list[Task]: ...


class RoutineSource(Protocol):
    def get_routines(self, user_id: str) -> list[Routine]: ...


@dataclass
class StaticAnchorSource:
    """Returns the anchors whose start falls on the requested day."""

    anchors: list[Anchor] = field(default_factory=list)

    def get_anchors_for_date(self, user_id: str, day: date) -> list[Anchor]:
        return sorted(
            (anchor for anchor in self.anchors if anchor.start.date() == day),
            key=lambda anchor: anchor.start,
        )


@dataclass
class StaticTaskSource:
    tasks: list[Task] = field(default_factory=list)

    def get_pending_tasks(self, user_id: str, day: date) -> list[Task]:
        return list(self.tasks)


@dataclass
class StaticRoutineSource:
    routines: list[Routine] = field(default_factory=list)

    def get_routines(self, user_id: str) -> list[Routine]:
        return list(self.routines)
