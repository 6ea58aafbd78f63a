"""
Tests for the generate_plan.py command-line entry point and plan JSON.
"""

import json
import sys

import pytest

import generate_plan
from daychain.serialization import camel_case, plan_input_from_dict, plan_to_dict

from helpers import TEST_DATE, at, make_anchor


@pytest.fixture
def request_data():
    return {
        "user_id": "user-1",
        "date": "2026-01-20",
        "wake_time": "07:00",
        "sleep_time": "23:00",
        "energy_state": "medium",
        "timezone": "Europe/London",
        "now": "2026-01-20T06:00:00",
        "travel_minutes": {"Campus": 20},
        "anchors": [
            {
                "id": "a1",
                "title": "Lecture",
                "type": "class",
                "start": "2026-01-20T10:00:00",
                "end": "2026-01-20T12:00:00",
                "location": "Campus",
            }
        ],
        "daily_context": {
            "meds": {"taken": True, "reliability": 0.9},
            "day_flags": {"low_energy_risk": True},
        },
    }


def run_cli(monkeypatch, capsys, *args):
    monkeypatch.setattr(sys, "argv", ["generate_plan.py", *args])
    exit_code = 0
    try:
        generate_plan.main()
    except SystemExit as exc:
        exit_code = exc.code
    return exit_code, json.loads(capsys.readouterr().out)


class TestCli:
    def test_generates_plan_json(self, tmp_path, monkeypatch, capsys, request_data):
        request_file = tmp_path / "request.json"
        request_file.write_text(json.dumps(request_data))

        exit_code, output = run_cli(monkeypatch, capsys, str(request_file))

        assert exit_code == 0
        assert output["userId"] == "user-1"
        assert output["planStart"] == "2026-01-20T07:00:00"
        assert output["timezone"] == "Europe/London"
        assert output["generatedAfterWake"] is False
        names = [block["activityName"] for block in output["timeBlocks"]]
        assert "Lecture" in names
        assert "Travel to Lecture" in names
        chain = output["chains"][0]
        assert chain["chainCompletionDeadline"] == "2026-01-20T08:55:00"
        assert chain["fallbackUsed"] is False
        assert chain["templateFallback"] is False
        assert chain["metadata"]["context"]["riskMultiplier"] == pytest.approx(1.1)

    def test_unknown_destination_uses_default_travel(
        self, tmp_path, monkeypatch, capsys, request_data
    ):
        request_data["travel_minutes"] = {}
        request_file = tmp_path / "request.json"
        request_file.write_text(json.dumps(request_data))

        exit_code, output = run_cli(monkeypatch, capsys, str(request_file))

        assert exit_code == 0
        chain = output["chains"][0]
        assert chain["travelDuration"] == 30
        assert chain["fallbackUsed"] is True

    def test_missing_file(self, tmp_path, monkeypatch, capsys):
        exit_code, output = run_cli(monkeypatch, capsys, str(tmp_path / "nope.json"))
        assert exit_code == 1
        assert output["error"].startswith("Request file not found")

    def test_usage(self, monkeypatch, capsys):
        exit_code, output = run_cli(monkeypatch, capsys)
        assert exit_code == 1
        assert "Usage" in output["error"]

    def test_invalid_json(self, tmp_path, monkeypatch, capsys):
        request_file = tmp_path / "request.json"
        request_file.write_text("{not json")
        exit_code, output = run_cli(monkeypatch, capsys, str(request_file))
        assert exit_code == 1
        assert output["error"].startswith("Invalid JSON")

    def test_missing_field(self, tmp_path, monkeypatch, capsys, request_data):
        del request_data["wake_time"]
        request_file = tmp_path / "request.json"
        request_file.write_text(json.dumps(request_data))
        exit_code, output = run_cli(monkeypatch, capsys, str(request_file))
        assert exit_code == 1
        assert "wake_time" in output["error"]

    def test_validation_failure_lists_violations(
        self, tmp_path, monkeypatch, capsys, request_data
    ):
        second = dict(request_data["anchors"][0], id="a2", title="Seminar")
        second["start"] = "2026-01-20T10:30:00"
        second["end"] = "2026-01-20T11:30:00"
        request_data["anchors"].append(second)
        request_file = tmp_path / "request.json"
        request_file.write_text(json.dumps(request_data))

        exit_code, output = run_cli(monkeypatch, capsys, str(request_file))

        assert exit_code == 1
        assert output["error"].startswith("Plan validation failed")
        assert output["violations"]


class TestSerialization:
    def test_camel_case(self):
        assert camel_case("chain_completion_deadline") == "chainCompletionDeadline"
        assert camel_case("id") == "id"

    def test_plan_to_dict_is_json_ready(self, make_builder, plan_input, home):
        plan = make_builder(anchors=[make_anchor()]).generate_daily_plan(
            plan_input, home, at("06:00")
        )
        data = plan_to_dict(plan)
        json.dumps(data)
        first = data["timeBlocks"][0]
        assert set(first) >= {
            "blockId",
            "planId",
            "startTime",
            "endTime",
            "activityType",
            "activityName",
            "isFixed",
            "sequenceOrder",
            "status",
            "metadata",
        }
        assert data["homeIntervals"][0] == {
            "start": "2026-01-20T07:00:00",
            "end": "2026-01-20T08:55:00",
            "duration": 115,
        }

    def test_plan_input_rejects_bad_clock(self):
        with pytest.raises(ValueError):
            plan_input_from_dict(
                {"user_id": "u", "date": "2026-01-20", "wake_time": "7am", "sleep_time": "23:00"}
            )

    def test_plan_input_defaults(self):
        plan_input = plan_input_from_dict(
            {"user_id": "u", "date": "2026-01-20", "wake_time": "07:00", "sleep_time": "23:00"}
        )
        assert plan_input.date == TEST_DATE
        assert plan_input.energy_state == "medium"
        assert plan_input.timezone == "Europe/London"
