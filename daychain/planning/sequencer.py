"""
Runtime sequencing.

Blocks and chain steps move one way only: pending -> completed or
pending -> skipped. Each transition is a compare-and-set under a lock chosen
by the item's id from a fixed, module-wide pool, so every Sequencer (and the
module-level functions) excludes every other: of two concurrent callers
exactly one succeeds and the other gets IllegalStateTransitionError.

A chain block transitioned with its plan also moves the matching chain step
(linked by BlockMetadata.step_id), which keeps ChainStatusService in step with
runtime progress.
"""

import logging
import threading
from datetime import datetime

from ..errors import IllegalStateTransitionError
from ..time_math import get_current_datetime_in_tz
from ..types import ChainStepInstance, DailyPlan, StepStatus, TimeBlock

logger = logging.getLogger(__name__)

TRANSITION_LOCK_STRIPES = 64

# Shared by all Sequencer instances; bounded, never grows with the plan count
_TRANSITION_LOCKS = tuple(threading.Lock() for _ in range(TRANSITION_LOCK_STRIPES))


def find_chain_step(plan: DailyPlan, step_id: str | None) -> ChainStepInstance | None:
    """Chain step or envelope phase with the given id, if the plan has one."""
    if step_id is None:
        return None
    for chain in plan.chains:
        for step in (*chain.steps, *chain.commitment_envelope.phases()):
            if step.step_id == step_id:
                return step
    return None


class Sequencer:
    """Current/next lookups and guarded status transitions."""

    def _lock_for(self, key: str) -> threading.Lock:
        return _TRANSITION_LOCKS[hash(key) % TRANSITION_LOCK_STRIPES]

    # -------------------------------------------------------------------------
    # Lookups
    # -------------------------------------------------------------------------

    def get_current_block(
        self, plan: DailyPlan, now: datetime | None = None
    ) -> TimeBlock | None:
        """
        The block the user should be doing now.

        First pending block (in sequence order) whose window contains now;
        otherwise the earliest pending block; None when nothing is pending.
        Without an explicit now, the current time in the plan's timezone is
        used.
        """
        if now is None:
            now = get_current_datetime_in_tz(plan.timezone)
        pending = self._pending_blocks(plan)
        for block in pending:
            if block.start_time <= now < block.end_time:
                return block
        return pending[0] if pending else None

    def get_next_blocks(
        self, plan: DailyPlan, n: int = 3, now: datetime | None = None
    ) -> list[TimeBlock]:
        """Up to n pending blocks sequenced after the current block."""
        current = self.get_current_block(plan, now)
        if current is None or n <= 0:
            return []
        later = [
            block
            for block in self._pending_blocks(plan)
            if block.sequence_order > current.sequence_order
        ]
        return later[:n]

    def _pending_blocks(self, plan: DailyPlan) -> list[TimeBlock]:
        return sorted(
            (block for block in plan.time_blocks if block.status == "pending"),
            key=lambda block: block.sequence_order,
        )

    # -------------------------------------------------------------------------
    # Transitions
    # -------------------------------------------------------------------------

    def mark_block_complete(
        self, block: TimeBlock, plan: DailyPlan | None = None
    ) -> TimeBlock:
        self._transition_block(block, "completed")
        self._mirror_to_step(plan, block, "completed")
        return block

    def mark_block_skipped(
        self, block: TimeBlock, reason: str, plan: DailyPlan | None = None
    ) -> TimeBlock:
        self._transition_block(block, "skipped", reason)
        self._mirror_to_step(plan, block, "skipped", reason)
        return block

    def mark_step_complete(self, step: ChainStepInstance) -> ChainStepInstance:
        return self._transition_step(step, "completed")

    def mark_step_skipped(self, step: ChainStepInstance, reason: str) -> ChainStepInstance:
        return self._transition_step(step, "skipped", reason)

    def _transition_block(
        self, block: TimeBlock, target: StepStatus, reason: str | None = None
    ) -> TimeBlock:
        with self._lock_for(f"block:{block.block_id}"):
            if block.status != "pending":
                raise IllegalStateTransitionError(
                    f"Block {block.block_id} ({block.activity_name}) is {block.status}, "
                    f"cannot mark {target}"
                )
            block.status = target
            if reason is not None:
                block.metadata.skip_reason = reason
        logger.debug("Block %s -> %s", block.block_id, target)
        return block

    def _transition_step(
        self, step: ChainStepInstance, target: StepStatus, reason: str | None = None
    ) -> ChainStepInstance:
        with self._lock_for(f"step:{step.step_id}"):
            if step.status != "pending":
                raise IllegalStateTransitionError(
                    f"Step {step.step_id} ({step.name}) is {step.status}, cannot mark {target}"
                )
            step.status = target
            if reason is not None:
                step.skip_reason = reason
        logger.debug("Step %s -> %s", step.step_id, target)
        return step

    def _mirror_to_step(
        self,
        plan: DailyPlan | None,
        block: TimeBlock,
        target: StepStatus,
        reason: str | None = None,
    ) -> None:
        if plan is None:
            return
        step = find_chain_step(plan, block.metadata.step_id)
        if step is None:
            return
        try:
            self._transition_step(step, target, reason)
        except IllegalStateTransitionError:
            # Step already recorded directly through mark_step_*
            logger.debug(
                "Step %s already %s, block %s not mirrored",
                step.step_id,
                step.status,
                block.block_id,
            )


_default_sequencer = Sequencer()


def get_current_block(plan: DailyPlan, now: datetime | None = None) -> TimeBlock | None:
    return _default_sequencer.get_current_block(plan, now)


def get_next_blocks(plan: DailyPlan, n: int = 3, now: datetime | None = None) -> list[TimeBlock]:
    return _default_sequencer.get_next_blocks(plan, n, now)


def mark_block_complete(block: TimeBlock, plan: DailyPlan | None = None) -> TimeBlock:
    return _default_sequencer.mark_block_complete(block, plan)


def mark_block_skipped(block: TimeBlock, reason: str, plan: DailyPlan | None = None) -> TimeBlock:
    return _default_sequencer.mark_block_skipped(block, reason, plan)
