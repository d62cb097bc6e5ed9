from __future__ import annotations

from dataclasses import dataclass
from typing import Any, Iterable, Optional

from probewatch.classifier import RESPONSE_TIME_MARKER, SSL_MARKER, STATUS_CODE_MARKER
from probewatch.types import (
    OPEN_ALERT_STATUSES,
    AlertDraft,
    AlertMetric,
    AlertSeverity,
    AlertStatus,
    CheckOutcome,
    HealthStatus,
    ServiceSpec,
    raw_value,
)

SEVERITY_RANK = {
    AlertSeverity.WARNING.value: 1,
    AlertSeverity.CRITICAL.value: 2,
    AlertSeverity.DOWN.value: 3,
}

_STATUS_TO_SEVERITY = {
    HealthStatus.DOWN: AlertSeverity.DOWN,
    HealthStatus.CRITICAL: AlertSeverity.CRITICAL,
    HealthStatus.WARNING: AlertSeverity.WARNING,
    HealthStatus.DEGRADED: AlertSeverity.WARNING,
}


class InvalidAlertTransition(ValueError):
    pass


def is_open(alert: Any) -> bool:
    return raw_value(alert.status) in OPEN_ALERT_STATUSES


def generate_alert(service: ServiceSpec, outcome: CheckOutcome, check_id: Optional[int] = None) -> Optional[AlertDraft]:
    """Черновик алерта по результату проверки; None для healthy и pending."""
    severity = _STATUS_TO_SEVERITY.get(outcome.status)
    if severity is None:
        return None

    error = outcome.error or ""
    if STATUS_CODE_MARKER in error:
        metric, value = AlertMetric.STATUS_CODE, outcome.metadata.get("status_code")
    elif RESPONSE_TIME_MARKER in error:
        metric, value = AlertMetric.RESPONSE_TIME, outcome.response_time
    elif SSL_MARKER in error:
        metric, value = AlertMetric.SSL, outcome.metadata.get("days_remaining")
    else:
        metric, value = AlertMetric.CUSTOM, None

    return AlertDraft(
        service_id=service.id,
        check_id=check_id,
        severity=severity,
        metric=metric,
        value=value if value is not None else outcome.error,
        message=outcome.error or f"Service {service.display_name} is {outcome.status.value}",
        timestamp=outcome.timestamp,
    )


def evaluate_availability(service: ServiceSpec, uptime_pct: Optional[float], check_id: Optional[int] = None) -> Optional[AlertDraft]:
    """Алерт по доступности за окно: uptime <= critical -> critical, <= warning -> warning."""
    limits = service.thresholds.availability
    if limits is None or uptime_pct is None:
        return None
    if limits.critical is not None and uptime_pct <= limits.critical:
        severity, limit, label = AlertSeverity.CRITICAL, limits.critical, "critical"
    elif limits.warning is not None and uptime_pct <= limits.warning:
        severity, limit, label = AlertSeverity.WARNING, limits.warning, "warning"
    else:
        return None
    return AlertDraft(
        service_id=service.id,
        check_id=check_id,
        severity=severity,
        metric=AlertMetric.AVAILABILITY,
        value=round(uptime_pct, 2),
        message=f"Availability ({uptime_pct:.2f}%) dropped below {label} threshold ({limit}%)",
    )


def _open_for_same_metric(open_alerts: Iterable[Any], draft: AlertDraft) -> list[Any]:
    return [
        a for a in (open_alerts or [])
        if str(a.service_id) == str(draft.service_id)
        and raw_value(a.metric) == raw_value(draft.metric)
        and is_open(a)
    ]


def should_create_new_alert(open_alerts: Iterable[Any], draft: AlertDraft) -> bool:
    """Создавать ли новый алерт.

    Нет открытого алерта по той же паре (сервис, метрика) -> да.
    Открытый алерт с той же серьёзностью -> нет, это продолжение.
    Другая серьёзность -> да (эскалация или деэскалация).
    """
    matching = _open_for_same_metric(open_alerts, draft)
    if not matching:
        return True
    return not any(raw_value(a.severity) == raw_value(draft.severity) for a in matching)


@dataclass(frozen=True)
class AlertPlan:
    create: bool
    supersede: tuple[Any, ...] = ()


def plan_alert(open_alerts: Iterable[Any], draft: AlertDraft) -> AlertPlan:
    """Решение по черновику с учётом смены серьёзности.

    Новый алерт другой серьёзности вытесняет открытые алерты той же пары
    (сервис, метрика): их нужно закрыть как resolved, чтобы по паре оставался один открытый.
    """
    open_alerts = list(open_alerts or [])
    if not should_create_new_alert(open_alerts, draft):
        return AlertPlan(create=False)
    stale = tuple(a for a in _open_for_same_metric(open_alerts, draft) if raw_value(a.severity) != raw_value(draft.severity))
    return AlertPlan(create=True, supersede=stale)


def should_auto_resolve_alert(
    alert: Any,
    service: ServiceSpec,
    current_status: HealthStatus | str,
    response_time: Optional[int] = None,
) -> bool:
    """Автозакрытие открытого алерта.

    healthy закрывает алерт любой метрики. Для response_time достаточно,
    чтобы последнее время ответа опустилось ниже порога warning, если сервис
    при этом ответил (не down).
    """
    if not is_open(alert):
        return False
    if raw_value(current_status) == HealthStatus.HEALTHY.value:
        return True
    # у down время ответа это время до сбоя, а не задержка сервиса
    if raw_value(current_status) == HealthStatus.DOWN.value:
        return False
    if raw_value(alert.metric) == AlertMetric.RESPONSE_TIME.value and response_time is not None:
        limits = service.thresholds.response_time
        if limits is not None and limits.warning is not None and response_time < limits.warning:
            return True
    return False


_MANUAL_TARGETS = frozenset({AlertStatus.ACKNOWLEDGED.value, AlertStatus.RESOLVED.value, AlertStatus.CLOSED.value})


def transition_alert(current: AlertStatus | str, target: AlertStatus | str) -> AlertStatus:
    """Проверить ручной переход статуса алерта (acknowledge / resolve / close)."""
    current, target = raw_value(current), raw_value(target)
    if target not in _MANUAL_TARGETS:
        raise InvalidAlertTransition(f"status must be one of acknowledged, resolved, closed (got {target!r})")
    if current not in OPEN_ALERT_STATUSES:
        raise InvalidAlertTransition(f"alert is already {current}")
    if current == target:
        raise InvalidAlertTransition(f"alert is already {current}")
    return AlertStatus(target)
