"""
Chain completion tracking.

Momentum preservation: a chain that finishes late but with every required
step done is a success, and a running chain never triggers replanning.
"""

from dataclasses import dataclass, field, replace
from datetime import datetime
from typing import Literal

from ..types import ChainStatus, ChainStepInstance, ExecutionChain

ChainIntegrity = Literal["intact", "broken"]


@dataclass(frozen=True)
class ChainStatusResult:
    status: ChainStatus
    chain_integrity: ChainIntegrity
    message: str
    completed_steps: list[str] = field(default_factory=list)
    missing_steps: list[str] = field(default_factory=list)
    was_late: bool = False


class ChainStatusService:
    """Evaluates chain status from its step statuses."""

    def evaluate_chain_status(
        self, chain: ExecutionChain, now: datetime | None = None
    ) -> ChainStatusResult:
        """
        Determine chain status.

        - Nothing done yet -> pending
        - Anchor reached with all required steps completed -> completed
        - Anchor reached with required steps missing -> failed
        - Otherwise -> in-progress

        Args:
            chain: Chain to evaluate
            now: Current time, used for lateness of a running chain

        Returns:
            ChainStatusResult with step breakdown
        """
        completed = [step.name for step in chain.steps if step.status == "completed"]
        missing = [step.name for step in self.missing_required_steps(chain)]

        if not self.has_started(chain):
            return ChainStatusResult("pending", "intact", "Chain not started", completed, missing)

        if self.is_complete(chain):
            was_late = self._started_after_deadline(chain)
            if not missing:
                message = (
                    "You made it! Chain completed late but intact."
                    if was_late
                    else "You made it! Chain completed on time."
                )
                return ChainStatusResult("completed", "intact", message, completed, missing, was_late)
            return ChainStatusResult(
                "failed",
                "broken",
                f"Chain broke at {missing[0]}. Let's try again tomorrow.",
                completed,
                missing,
                was_late,
            )

        was_late = now is not None and now > chain.chain_completion_deadline
        return ChainStatusResult(
            "in-progress", "intact", "Chain in progress", completed, missing, was_late
        )

    def update_chain_status(
        self, chain: ExecutionChain, now: datetime | None = None
    ) -> ExecutionChain:
        """Copy of the chain with its status re-evaluated."""
        return replace(chain, status=self.evaluate_chain_status(chain, now).status)

    def get_chain_integrity(self, chain: ExecutionChain) -> ChainIntegrity:
        return "broken" if self.missing_required_steps(chain) else "intact"

    def should_trigger_replanning(self, chain: ExecutionChain) -> bool:
        """Never replan mid-flow, even when a chain overruns."""
        return False

    def missing_required_steps(self, chain: ExecutionChain) -> list[ChainStepInstance]:
        return [step for step in chain.steps if step.is_required and step.status != "completed"]

    def has_started(self, chain: ExecutionChain) -> bool:
        touched = [*chain.steps, *chain.commitment_envelope.phases()]
        return any(step.status != "pending" for step in touched)

    def is_complete(self, chain: ExecutionChain) -> bool:
        """A chain is complete once its anchor is reached."""
        return chain.commitment_envelope.anchor.status == "completed"

    def _started_after_deadline(self, chain: ExecutionChain) -> bool:
        if not chain.steps:
            return False
        return chain.steps[0].start_time > chain.chain_completion_deadline
