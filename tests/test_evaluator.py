"""Unit tests for threshold evaluation."""

from __future__ import annotations

from models.records import Severity
from services.evaluator import ThresholdEvaluator, format_number


def test_single_temperature_breach_is_warning() -> None:
    evaluation = ThresholdEvaluator().evaluate(temperature=32, humidity=50, pressure=1000)

    assert evaluation.triggers == ["Temperature: 32°C (limit: 30°C)"]
    assert evaluation.severity is Severity.warning
    assert evaluation.message == "Temperature: 32°C (limit: 30°C)"
    assert evaluation.breached


def test_all_metrics_critical() -> None:
    evaluation = ThresholdEvaluator().evaluate(temperature=36, humidity=90, pressure=1035)

    assert evaluation.triggers == [
        "Temperature: 36°C (limit: 30°C)",
        "Humidity: 90% (limit: 70%)",
        "Pressure: 1035 hPa (limit: 1020 hPa)",
    ]
    assert evaluation.severity is Severity.critical
    assert evaluation.message == " | ".join(evaluation.triggers)


def test_no_breach_has_no_severity() -> None:
    evaluation = ThresholdEvaluator().evaluate(temperature=20, humidity=40, pressure=1000)

    assert evaluation.triggers == []
    assert evaluation.severity is None
    assert evaluation.message == ""
    assert not evaluation.breached


def test_limits_are_exclusive_for_warnings() -> None:
    evaluation = ThresholdEvaluator().evaluate(temperature=30, humidity=70, pressure=1020)

    assert evaluation.triggers == []


def test_critical_bounds_are_inclusive() -> None:
    evaluator = ThresholdEvaluator()

    assert evaluator.evaluate(35, 50, 1000).severity is Severity.critical
    assert evaluator.evaluate(25, 85, 1000).severity is Severity.critical
    assert evaluator.evaluate(25, 50, 1030).severity is Severity.critical
    assert evaluator.evaluate(34.9, 84.9, 1029.9).severity is Severity.warning


def test_fractional_values_are_rendered_verbatim() -> None:
    evaluation = ThresholdEvaluator().evaluate(temperature=20, humidity=71.5, pressure=1000)

    assert evaluation.triggers == ["Humidity: 71.5% (limit: 70%)"]
    assert format_number(32.0) == "32"
    assert format_number(1020.25) == "1020.25"
