"""Threshold evaluation for sensor readings."""

from __future__ import annotations

from models.records import Evaluation, Severity

TEMPERATURE_LIMIT = 30.0
HUMIDITY_LIMIT = 70.0
PRESSURE_LIMIT = 1020.0

TEMPERATURE_CRITICAL = 35.0
HUMIDITY_CRITICAL = 85.0
PRESSURE_CRITICAL = 1030.0


def format_number(value: float) -> str:
    """Render ``32.0`` as ``32`` and keep fractional values as-is."""

    if isinstance(value, float) and value.is_integer():
        return str(int(value))
    return str(value)


class ThresholdEvaluator:
    """Pure evaluation component that can be unit tested in isolation."""

    def evaluate(self, temperature: float, humidity: float, pressure: float) -> Evaluation:
        evaluation = Evaluation()

        if temperature > TEMPERATURE_LIMIT:
            evaluation.triggers.append(
                f"Temperature: {format_number(temperature)}°C "
                f"(limit: {format_number(TEMPERATURE_LIMIT)}°C)"
            )
        if humidity > HUMIDITY_LIMIT:
            evaluation.triggers.append(
                f"Humidity: {format_number(humidity)}% (limit: {format_number(HUMIDITY_LIMIT)}%)"
            )
        if pressure > PRESSURE_LIMIT:
            evaluation.triggers.append(
                f"Pressure: {format_number(pressure)} hPa "
                f"(limit: {format_number(PRESSURE_LIMIT)} hPa)"
            )

        if not evaluation.triggers:
            return evaluation

        critical = (
            temperature >= TEMPERATURE_CRITICAL
            or humidity >= HUMIDITY_CRITICAL
            or pressure >= PRESSURE_CRITICAL
        )
        evaluation.severity = Severity.critical if critical else Severity.warning
        return evaluation
