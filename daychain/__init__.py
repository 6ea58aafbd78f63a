"""
daychain: chain-based daily plan generation

Turns a day's fixed commitments (anchors) into a sequenced plan with
backward-planned preparation chains, travel, recovery, meals and flexible
work, then drives and degrades that plan at runtime.

Main entry point: PlanBuilder
"""

from .chains.chain_generator import ChainGenerator, ChainGeneratorOptions
from .chains.chain_status import ChainStatusService
from .chains.context_integration import ContextIntegrator, recompute_schedule
from .chains.templates import ChainTemplateRegistry, default_registry
from .chains.travel import Location, TravelEstimator, TravelRoute
from .config import DEFAULT_CONFIG, SchedulerConfig
from .errors import (
    CollaboratorTimeoutError,
    IllegalStateTransitionError,
    PlanNotFoundError,
    PlanValidationError,
    SchedulingError,
)
from .planning.plan_builder import PlanBuilder, generate_daily_plan
from .planning.plan_store import InMemoryPlanStore, PlanStore
from .planning.sequencer import Sequencer
from .serialization import plan_to_dict, to_dict
from .types import (
    Anchor,
    ChainStepInstance,
    DailyContext,
    DailyPlan,
    ExecutionChain,
    PlanInput,
    TimeBlock,
)

__all__ = [
    # Types
    "Anchor",
    "ChainStepInstance",
    "ExecutionChain",
    "DailyContext",
    "PlanInput",
    "TimeBlock",
    "DailyPlan",
    "Location",
    "TravelRoute",
    "TravelEstimator",
    # Config
    "SchedulerConfig",
    "DEFAULT_CONFIG",
    "ChainTemplateRegistry",
    "default_registry",
    # Chains
    "ChainGenerator",
    "ChainGeneratorOptions",
    "ContextIntegrator",
    "recompute_schedule",
    "ChainStatusService",
    # Planning
    "PlanBuilder",
    "generate_daily_plan",
    "PlanStore",
    "InMemoryPlanStore",
    "Sequencer",
    # Serialization
    "to_dict",
    "plan_to_dict",
    # Errors
    "SchedulingError",
    "CollaboratorTimeoutError",
    "PlanValidationError",
    "IllegalStateTransitionError",
    "PlanNotFoundError",
]
