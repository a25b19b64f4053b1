"""
Smoke tests for the Typer CLI.
"""

from typer.testing import CliRunner

from clinicagenda import __version__
from clinicagenda.cli.app import app

runner = CliRunner()

CONFIG = """
timezone: America/Mexico_City
calendars:
  - {number: 1, calendar_ref: agenda@clinic.mx, specialist: Dra. Ana}
services:
  - {number: 1, name: Consulta general}
working_hours:
  - {calendar: 1, weekday: 1, start_hour: 10, end_hour: 19}
database:
  url: "sqlite://"
"""


def _config(tmp_path):
    path = tmp_path / "config.yaml"
    path.write_text(CONFIG, encoding="utf-8")
    return str(path)


def test_version():
    result = runner.invoke(app, ["version"])

    assert result.exit_code == 0
    assert __version__ in result.stdout


def test_missing_config_exits_with_error(tmp_path):
    result = runner.invoke(app, ["diagnose", "2025-01-13", "--config", str(tmp_path / "nope.yaml")])

    assert result.exit_code == 1
    assert "Config file not found" in result.stdout


def test_diagnose_closed_day(tmp_path):
    result = runner.invoke(app, ["diagnose", "2025-01-12", "--config", _config(tmp_path), "--mock"])

    assert result.exit_code == 0
    assert "cerrado" in result.stdout


def test_diagnose_open_day_lists_hours(tmp_path):
    result = runner.invoke(app, ["diagnose", "2025-01-13", "--config", _config(tmp_path), "--mock"])

    assert result.exit_code == 0
    assert "10:00" in result.stdout
    assert "lunch" in result.stdout


def test_bad_date_is_reported(tmp_path):
    result = runner.invoke(app, ["diagnose", "13-01-2025", "--config", _config(tmp_path), "--mock"])

    assert result.exit_code == 1
    assert "Formato de fecha" in result.stdout
