from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime, timedelta
from typing import Any, Iterable, Optional

from probewatch.alerts import SEVERITY_RANK
from probewatch.types import (
    AlertSeverity,
    IncidentDraft,
    IncidentSeverity,
    IncidentStatus,
    ensure_utc,
    raw_value,
    utcnow,
)

DEFAULT_WINDOW_MINUTES = 15

_INCIDENT_SEVERITY = {
    AlertSeverity.DOWN.value: IncidentSeverity.CRITICAL,
    AlertSeverity.CRITICAL.value: IncidentSeverity.MAJOR,
    AlertSeverity.WARNING.value: IncidentSeverity.MINOR,
}


def _alert_time(alert: Any) -> datetime:
    return ensure_utc(alert.timestamp)


def _distinct_services(alerts: Iterable[Any]) -> list[Any]:
    seen: list[Any] = []
    for a in alerts:
        if a.service_id not in seen:
            seen.append(a.service_id)
    return seen


def group_alerts_into_incident(alerts: Iterable[Any], time_window_minutes: float = DEFAULT_WINDOW_MINUTES) -> Optional[IncidentDraft]:
    """Сгруппировать одновременные алерты нескольких сервисов в черновик инцидента.

    Окно отсчитывается от самого раннего алерта. Инцидент формируется,
    только если в окне есть алерты минимум от двух разных сервисов.
    """
    ordered = sorted(alerts or [], key=_alert_time)
    if len(_distinct_services(ordered)) < 2:
        return None

    first_time = _alert_time(ordered[0])
    window = timedelta(minutes=time_window_minutes)
    in_window = [a for a in ordered if _alert_time(a) - first_time <= window]
    services = _distinct_services(in_window)
    if len(services) < 2:
        return None

    highest = max((raw_value(a.severity) for a in in_window), key=lambda s: SEVERITY_RANK.get(s, 0))
    return IncidentDraft(
        title=f"Multiple services {'down' if highest == AlertSeverity.DOWN.value else 'degraded'}",
        services=tuple(services),
        severity=_INCIDENT_SEVERITY.get(highest, IncidentSeverity.MINOR),
        started_at=first_time,
    )


@dataclass(frozen=True)
class IncidentUpdatePlan:
    message: str
    status: IncidentStatus
    author: Optional[str]
    timestamp: datetime
    new_status: Optional[IncidentStatus]
    set_resolved_at: bool


def plan_incident_update(
    current_status: IncidentStatus | str,
    new_status: Optional[IncidentStatus | str] = None,
    message: Optional[str] = None,
    author: Optional[str] = None,
    *,
    already_resolved: bool = False,
    now: Optional[datetime] = None,
) -> IncidentUpdatePlan:
    """Запись для журнала обновлений инцидента (журнал только дополняется)."""
    current = IncidentStatus(raw_value(current_status))
    target = IncidentStatus(raw_value(new_status)) if new_status is not None else None
    changed = target is not None and target != current
    if not message:
        if not changed:
            raise ValueError("update message is required when the status does not change")
        message = f"Status changed from {current.value} to {target.value}"
    return IncidentUpdatePlan(
        message=message,
        status=target or current,
        author=author,
        timestamp=now or utcnow(),
        new_status=target if changed else None,
        set_resolved_at=changed and target == IncidentStatus.RESOLVED and not already_resolved,
    )
