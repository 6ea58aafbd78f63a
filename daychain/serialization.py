"""
Conversion between planner dataclasses and JSON-ready dicts.
"""

from dataclasses import asdict
from datetime import date, datetime
from typing import Any

from .time_math import parse_time
from .types import Anchor, DailyPlan, PlanInput, Routine, Task


def _jsonable(value: Any) -> Any:
    if isinstance(value, (datetime, date)):
        return value.isoformat()
    if isinstance(value, dict):
        return {key: _jsonable(item) for key, item in value.items()}
    if isinstance(value, (list, tuple)):
        return [_jsonable(item) for item in value]
    return value


def to_dict(obj: object) -> object:
    """Convert dataclass instances to dicts recursively, datetimes as ISO strings."""
    if hasattr(obj, "__dataclass_fields__"):
        return _jsonable(asdict(obj))
    elif isinstance(obj, list):
        return [to_dict(item) for item in obj]
    else:
        return _jsonable(obj)


def camel_case(name: str) -> str:
    """"chain_completion_deadline" -> "chainCompletionDeadline"."""
    head, *rest = name.split("_")
    return head + "".join(part[:1].upper() + part[1:] for part in rest)


def _camelize(value: Any) -> Any:
    if isinstance(value, dict):
        return {camel_case(key): _camelize(item) for key, item in value.items()}
    if isinstance(value, list):
        return [_camelize(item) for item in value]
    return value


def plan_to_dict(plan: DailyPlan) -> dict:
    """
    camelCase view of a plan for persistence and UI collaborators.

    Chains carry explicit fallbackUsed / templateFallback flags so consumers
    can mark estimated timings without digging into metadata.
    """
    result = _camelize(to_dict(plan))
    result["generatedAfterWake"] = plan.generated_after_wake
    for chain, chain_dict in zip(plan.chains, result["chains"]):
        chain_dict["fallbackUsed"] = chain.fallback_used
        chain_dict["templateFallback"] = chain.template_fallback
    return result


def _parse_datetime(value: str) -> datetime:
    return datetime.fromisoformat(value)


def anchors_from_dict(data: list[dict]) -> list[Anchor]:
    """Convert JSON dicts to Anchor objects."""
    return [
        Anchor(
            id=str(d["id"]),
            title=d["title"],
            type=d.get("type", "other"),
            start=_parse_datetime(d["start"]),
            end=_parse_datetime(d["end"]),
            location=d.get("location"),
        )
        for d in data
    ]


def tasks_from_dict(data: list[dict]) -> list[Task]:
    return [
        Task(
            id=str(d["id"]),
            title=d["title"],
            estimated_duration=d.get("estimated_duration"),
            is_required=bool(d.get("is_required", False)),
            deadline=_parse_datetime(d["deadline"]) if d.get("deadline") else None,
        )
        for d in data
    ]


def routines_from_dict(data: list[dict]) -> list[Routine]:
    return [
        Routine(
            id=str(d["id"]),
            name=d["name"],
            routine_type=d["routine_type"],
            estimated_duration=int(d["estimated_duration"]),
        )
        for d in data
    ]


def plan_input_from_dict(data: dict) -> PlanInput:
    """
    Build a PlanInput, validating the clock fields.

    Raises:
        KeyError: If a required field is missing
        ValueError: If a date or time is malformed
    """
    parse_time(data["wake_time"])
    parse_time(data["sleep_time"])
    return PlanInput(
        user_id=data["user_id"],
        date=date.fromisoformat(data["date"]),
        wake_time=data["wake_time"],
        sleep_time=data["sleep_time"],
        energy_state=data.get("energy_state", "medium"),
        timezone=data.get("timezone", "Europe/London"),
        user_energy=int(data.get("user_energy", 3)),
    )
