"""
Tests for the Typer command line.
"""

import json

import pytest
from typer.testing import CliRunner

from slotengine.cli.app import app

runner = CliRunner()

CONFIG_YAML = """
data_file: appointments.json
businesses:
  - id: "1"
    slug: barber
    name: Barber
    slot_interval: 30
    hours:
      - {day_of_week: 1, open_time: "09:00", close_time: "12:00", break_start: "10:30", break_end: "11:00"}
    services:
      - {id: s1, name: Cut, duration: 30}
"""


@pytest.fixture
def config_path(tmp_path):
    path = tmp_path / "config.yaml"
    path.write_text(CONFIG_YAML, encoding="utf-8")
    return path


def _invoke(config_path, *args):
    return runner.invoke(app, [*args, "--config", str(config_path)])


def test_slots_lists_available_times(config_path):
    result = _invoke(config_path, "slots", "barber", "--service", "s1", "--date", "2024-11-25")

    assert result.exit_code == 0
    assert "09:00" in result.output
    assert "10:30" not in result.output


def test_closed_day_reports_no_times(config_path):
    result = _invoke(config_path, "slots", "barber", "--service", "s1", "--date", "2024-11-26")

    assert result.exit_code == 0
    assert "No available times" in result.output


def test_book_then_conflict(config_path, tmp_path):
    args = ("book", "barber", "2024-11-25", "09:00", "--service", "s1", "--customer", "c1")

    first = _invoke(config_path, *args)
    second = _invoke(config_path, *args)

    assert first.exit_code == 0
    assert "Appointment booked" in first.output
    assert second.exit_code == 1
    assert "just taken" in second.output

    stored = json.loads((tmp_path / "appointments.json").read_text(encoding="utf-8"))
    assert len(stored["appointments"]) == 1


def test_cancel_frees_the_slot(config_path, tmp_path):
    _invoke(config_path, "book", "barber", "2024-11-25", "09:00", "--service", "s1", "--customer", "c1")
    stored = json.loads((tmp_path / "appointments.json").read_text(encoding="utf-8"))
    appointment_id = stored["appointments"][0]["id"]

    result = _invoke(config_path, "cancel", "barber", appointment_id, "--customer", "c1")

    assert result.exit_code == 0
    rebooked = _invoke(config_path, "book", "barber", "2024-11-25", "09:00", "--service", "s1", "--customer", "c2")
    assert rebooked.exit_code == 0


def test_timeline_shows_break(config_path):
    result = _invoke(config_path, "timeline", "barber", "--date", "2024-11-25")

    assert result.exit_code == 0
    assert "break" in result.output


def test_override_closes_day(config_path):
    closed = _invoke(config_path, "override", "barber", "2024-11-25", "--closed", "--reason", "Holiday")
    slots = _invoke(config_path, "slots", "barber", "--service", "s1", "--date", "2024-11-25")

    assert closed.exit_code == 0
    assert "No available times" in slots.output


def test_override_requires_hours_or_closed(config_path):
    result = _invoke(config_path, "override", "barber", "2024-11-25", "--open", "09:00")

    assert result.exit_code == 1


def test_unknown_business_fails(config_path):
    result = _invoke(config_path, "slots", "nope", "--service", "s1")

    assert result.exit_code == 1
    assert "Unknown business" in result.output


def test_businesses_table(config_path):
    result = _invoke(config_path, "businesses")

    assert result.exit_code == 0
    assert "barber" in result.output


def test_paused_business_takes_no_bookings(tmp_path):
    path = tmp_path / "config.yaml"
    path.write_text(CONFIG_YAML.replace("    slot_interval: 30\n", "    slot_interval: 30\n    is_active: false\n"), encoding="utf-8")

    slots = _invoke(path, "slots", "barber", "--service", "s1", "--date", "2024-11-25")
    booked = _invoke(path, "book", "barber", "2024-11-25", "09:00", "--service", "s1", "--customer", "c1")

    assert "No available times" in slots.output
    assert booked.exit_code == 1
    assert "not taking bookings" in booked.output
