"""
Planning Layer.

Assembles chains, meals and flexible activities into a sequenced day plan and
drives the plan at runtime.

Modules:
- location_state: Home / not-home periods derived from chain envelopes
- meals: Meal targets, windows, spacing and slot search
- sources: Anchor, task and routine source contracts
- plan_store: Plan persistence contract and in-memory store
- plan_builder: Full-day assembly, validation and degradation
- sequencer: Block status state machine and current/next lookups
"""
