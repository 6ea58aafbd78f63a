#!/usr/bin/env python3
"""
Generate a daily plan from a JSON request file.

Usage: python3 generate_plan.py <request_file.json>

Request fields:
    user_id, date ("YYYY-MM-DD"), wake_time, sleep_time ("HH:MM"),
    energy_state, timezone, anchors (list), and optionally
    travel_minutes (destination -> minutes), default_travel_minutes,
    current_location, daily_context, tasks, routines,
    now (ISO local datetime, defaults to the current time in timezone)

The plan is written to stdout as camelCase JSON. On failure a JSON object
with an "error" key is printed and the exit status is 1.
"""

import json
import logging
import sys
from datetime import datetime

from daychain.chains.daily_context import StaticContextProvider, daily_context_from_dict
from daychain.chains.travel import Location, StaticTravelEstimator
from daychain.errors import PlanValidationError
from daychain.planning.plan_builder import PlanBuilder
from daychain.planning.sources import StaticAnchorSource, StaticRoutineSource, StaticTaskSource
from daychain.serialization import (
    anchors_from_dict,
    plan_input_from_dict,
    plan_to_dict,
    routines_from_dict,
    tasks_from_dict,
)


def build_plan(data: dict) -> dict:
    """Build a plan from a parsed request and return its JSON view."""
    plan_input = plan_input_from_dict(data)

    context = None
    if data.get("daily_context"):
        context = daily_context_from_dict(data["daily_context"])

    builder = PlanBuilder(
        anchor_source=StaticAnchorSource(anchors_from_dict(data.get("anchors", []))),
        travel_estimator=StaticTravelEstimator(
            durations=data.get("travel_minutes", {}),
            default_minutes=data.get("default_travel_minutes"),
        ),
        context_provider=StaticContextProvider(context),
        task_source=StaticTaskSource(tasks_from_dict(data.get("tasks", []))),
        routine_source=StaticRoutineSource(routines_from_dict(data.get("routines", []))),
    )
    current_location = Location(name=data.get("current_location", "Home"), type="home")
    now = datetime.fromisoformat(data["now"]) if data.get("now") else None

    plan = builder.generate_daily_plan(plan_input, current_location, now)
    return plan_to_dict(plan)


def main() -> None:
    logging.basicConfig(level=logging.WARNING, stream=sys.stderr)

    if len(sys.argv) != 2:
        print(json.dumps({"error": "Usage: generate_plan.py <request_file.json>"}))
        sys.exit(1)

    request_file = sys.argv[1]

    try:
        with open(request_file) as f:
            data = json.load(f)

        print(json.dumps(build_plan(data)))

    except FileNotFoundError:
        print(json.dumps({"error": f"Request file not found: {request_file}"}))
        sys.exit(1)
    except json.JSONDecodeError as e:
        print(json.dumps({"error": f"Invalid JSON in request file: {e}"}))
        sys.exit(1)
    except KeyError as e:
        print(json.dumps({"error": f"Missing required field: {e}"}))
        sys.exit(1)
    except PlanValidationError as e:
        print(json.dumps({"error": f"Plan validation failed: {e}", "violations": e.violations}))
        sys.exit(1)
    except Exception as e:
        print(json.dumps({"error": f"Plan generation failed: {e}"}))
        sys.exit(1)


if __name__ == "__main__":
    main()
