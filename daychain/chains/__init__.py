"""
Chain Layer.

Turns each anchor into an execution chain: backward-planned preparation steps
plus the commitment envelope around the anchor.

Modules:
- templates: Anchor type -> preparation step templates
- travel: Travel estimator contract and default-duration fallback
- chain_generator: Deadline, backward chain and envelope per anchor
- daily_context: Daily context contract and bounded fetch
- context_integration: Exit-gate suggestions, injection, priors, risk
- chain_status: Chain completion evaluation
"""

from .chain_generator import ChainGenerator, ChainGeneratorConfig, ChainGeneratorOptions
from .chain_status import ChainStatusResult, ChainStatusService
from .context_integration import ContextIntegrator, recompute_schedule
from .daily_context import DailyContextProvider, daily_context_from_dict
from .templates import ChainTemplateRegistry, default_registry
from .travel import Location, StaticTravelEstimator, TravelEstimator, TravelRoute

__all__ = [
    "ChainGenerator",
    "ChainGeneratorConfig",
    "ChainGeneratorOptions",
    "ChainStatusResult",
    "ChainStatusService",
    "ContextIntegrator",
    "recompute_schedule",
    "DailyContextProvider",
    "daily_context_from_dict",
    "ChainTemplateRegistry",
    "default_registry",
    "Location",
    "StaticTravelEstimator",
    "TravelEstimator",
    "TravelRoute",
]
