"""Plan persistence contract."""

import threading
from typing import Protocol

from ..errors import PlanNotFoundError
from ..types import DailyPlan


class PlanStore(Protocol):
    def save(self, plan: DailyPlan) -> None: ...

    def get(self, plan_id: str) -> DailyPlan:
        """Return the plan or raise PlanNotFoundError."""
        ...


class InMemoryPlanStore:
    """Thread-safe dict-backed store. Plans are stored by reference."""

    def __init__(self):
        self._plans: dict[str, DailyPlan] = {}
        self._lock = threading.Lock()

    def save(self, plan: DailyPlan) -> None:
        with self._lock:
            self._plans[plan.id] = plan

    def get(self, plan_id: str) -> DailyPlan:
        with self._lock:
            plan = self._plans.get(plan_id)
        if plan is None:
            raise PlanNotFoundError(f"No plan with id {plan_id}")
        return plan

    def __len__(self) -> int:
        with self._lock:
            return len(self._plans)
