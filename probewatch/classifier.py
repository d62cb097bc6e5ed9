from __future__ import annotations

from typing import Optional

from probewatch.types import HealthStatus, Measurement, Thresholds

# Маркеры в тексте ошибки, по ним генератор алертов определяет метрику
STATUS_CODE_MARKER = "status code"
RESPONSE_TIME_MARKER = "Response time"
SSL_MARKER = "SSL certificate"


def _response_time_limits(thresholds: Optional[Thresholds]) -> tuple[Optional[float], Optional[float]]:
    if thresholds is None or thresholds.response_time is None:
        return None, None
    return thresholds.response_time.warning, thresholds.response_time.critical


def _status_code_mismatch(m: Measurement) -> bool:
    return (
        m.expected_status_code is not None
        and m.status_code is not None
        and m.status_code != m.expected_status_code
    )


def classify(measurement: Measurement, thresholds: Optional[Thresholds] = None) -> HealthStatus:
    """Чистая функция: измерения + пороги сервиса -> статус.

    Правила проверяются сверху вниз, срабатывает первое:
    сбой -> down; неожиданный код или нет ожидаемого контента -> warning;
    задержка >= critical -> critical; задержка >= warning -> degraded; иначе healthy.
    Отсутствующие пороги просто пропускают шаги 3-4.
    """
    if measurement.failed:
        return HealthStatus.DOWN
    if _status_code_mismatch(measurement) or measurement.content_missing is not None:
        return HealthStatus.WARNING
    warning, critical = _response_time_limits(thresholds)
    latency = measurement.latency_ms
    if latency is not None:
        if critical is not None and latency >= critical:
            return HealthStatus.CRITICAL
        if warning is not None and latency >= warning:
            return HealthStatus.DEGRADED
    return HealthStatus.HEALTHY


def describe(measurement: Measurement, thresholds: Optional[Thresholds], status: HealthStatus) -> Optional[str]:
    """Текст ошибки для выбранного правила (None для healthy)."""
    if status == HealthStatus.HEALTHY:
        return None
    if status == HealthStatus.DOWN:
        return measurement.error or "Service unreachable"
    if status == HealthStatus.WARNING:
        if _status_code_mismatch(measurement):
            return f"Expected {STATUS_CODE_MARKER} {measurement.expected_status_code}, but got {measurement.status_code}"
        if measurement.content_missing is not None:
            return f'Expected response to contain "{measurement.content_missing}", but it was not found'
        return measurement.error
    warning, critical = _response_time_limits(thresholds)
    if status == HealthStatus.CRITICAL:
        return f"{RESPONSE_TIME_MARKER} ({measurement.latency_ms}ms) exceeded critical threshold ({_fmt(critical)}ms)"
    if status == HealthStatus.DEGRADED:
        return f"{RESPONSE_TIME_MARKER} ({measurement.latency_ms}ms) exceeded warning threshold ({_fmt(warning)}ms)"
    return measurement.error


def _fmt(value: Optional[float]) -> str:
    if value is None:
        return "?"
    return str(int(value)) if float(value).is_integer() else str(value)
