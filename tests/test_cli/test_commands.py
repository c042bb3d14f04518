"""Tests for CLI commands."""

import json

import pytest
from typer.testing import CliRunner

from groom_route.cli.commands import app

runner = CliRunner()

BASE = "8401 Coral Way, Miami, FL"


@pytest.fixture
def day_file(tmp_path):
    """A day's appointments on disk, listed out of order."""
    path = tmp_path / "day.json"
    path.write_text(
        json.dumps(
            {
                "appointments": [
                    {
                        "id": "late",
                        "client": {"name": "Bea", "address": "77 Ocean Dr, Miami Beach"},
                        "services": ["bath-brush"],
                        "time": "1:00 PM",
                    },
                    {
                        "id": "early",
                        "client": {"name": "Al", "address": "123 Palm Ave, Miami"},
                        "services": [{"id": "full-groom", "name": "Full Service Grooming"}],
                        "time": "9:00 AM",
                        "petCount": 2,
                    },
                    {
                        "id": "nowhere",
                        "client": {"name": "Cy"},
                        "services": ["nail-trim"],
                        "time": "11:00 AM",
                    },
                ]
            }
        )
    )
    return path


class TestVersion:
    """Tests for version command."""

    def test_version(self):
        result = runner.invoke(app, ["version"])

        assert result.exit_code == 0
        assert "GroomRoute v0.1.0" in result.stdout


class TestTravelTime:
    """Tests for travel-time command."""

    def test_fallback_estimate(self):
        result = runner.invoke(app, ["travel-time", "1 Main St", "2 Elm St"])

        assert result.exit_code == 0
        assert "fallback" in result.stdout

    def test_same_address(self):
        result = runner.invoke(app, ["travel-time", "1 Main St", "1 main st"])

        assert result.exit_code == 0
        assert "0 min" in result.stdout

    def test_live_only_without_key(self):
        result = runner.invoke(app, ["travel-time", "1 Main St", "2 Elm St", "--live-only"])

        assert result.exit_code == 0
        assert "cannot calculate route time" in result.stdout


class TestRoute:
    """Tests for route command."""

    def test_route_json(self, day_file):
        result = runner.invoke(app, ["route", str(day_file), "--base", BASE, "--json"])

        assert result.exit_code == 0
        summary = json.loads(result.stdout)
        assert [s["appointment_id"] for s in summary["stops"]] == ["early", "late"]
        assert summary["unrouted_appointment_ids"] == ["nowhere"]
        assert summary["base_location"] == BASE

    def test_route_table_and_export(self, day_file, tmp_path):
        export = tmp_path / "route.json"
        result = runner.invoke(app, ["route", str(day_file), "-b", BASE, "-e", str(export)])

        assert result.exit_code == 0
        assert "Totals" in result.stdout
        assert json.loads(export.read_text())["stops"][0]["appointment_id"] == "early"

    def test_missing_file(self, tmp_path):
        result = runner.invoke(app, ["route", str(tmp_path / "nope.json")])

        assert result.exit_code == 1
        assert "not found" in result.stdout

    def test_invalid_json(self, tmp_path):
        path = tmp_path / "bad.json"
        path.write_text("{not json")

        result = runner.invoke(app, ["route", str(path)])

        assert result.exit_code == 1
        assert "Invalid JSON" in result.stdout


class TestOptimize:
    """Tests for optimize command."""

    def test_optimize_json(self, day_file):
        result = runner.invoke(app, ["optimize", str(day_file), "--base", BASE, "--json"])

        assert result.exit_code == 0
        data = json.loads(result.stdout)
        assert data["time_saved_minutes"] >= 0
        assert data["is_optimal"] is not data["available"]
        assert {s["appointment_id"] for s in data["optimized_route"]["stops"]} == {"early", "late"}

    def test_optimize_text(self, day_file):
        result = runner.invoke(app, ["optimize", str(day_file), "--base", BASE])

        assert result.exit_code == 0
        assert "Optimized order" in result.stdout


class TestAutoSchedule:
    """Tests for auto-schedule command."""

    def test_auto_schedule_json(self, day_file):
        result = runner.invoke(app, ["auto-schedule", str(day_file), "--base", BASE, "--json"])

        assert result.exit_code == 0
        data = json.loads(result.stdout)
        proposed = data["proposed"]
        assert [a["id"] for a in proposed] == ["early", "nowhere", "late"]
        assert proposed[0]["time"] == "9:00 AM"
        # full groom plus one extra pet
        assert proposed[0]["duration"] == 105
        assert proposed[0]["endTime"] == "10:45 AM"
        # no address: starts as soon as the previous appointment ends
        assert proposed[1]["time"] == "10:45 AM"

    def test_auto_schedule_table(self, day_file):
        result = runner.invoke(app, ["auto-schedule", str(day_file), "--base", BASE, "--optimized"])

        assert result.exit_code == 0
        assert "Proposed schedule" in result.stdout


class TestHealthAndStats:
    """Tests for health and stats commands."""

    def test_health(self):
        result = runner.invoke(app, ["health"])

        assert result.exit_code == 0
        assert "fallback" in result.stdout

    def test_stats_after_run(self, day_file):
        runner.invoke(app, ["optimize", str(day_file), "--base", BASE, "--json"])
        result = runner.invoke(app, ["stats"])

        assert result.exit_code == 0
        assert "routes" in result.stdout
