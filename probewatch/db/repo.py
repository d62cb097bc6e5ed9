from datetime import datetime, timedelta, timezone
from typing import Any, Iterable, Optional

from probewatch.types import (
    OPEN_ALERT_STATUSES,
    AlertDraft,
    CheckOutcome,
    HealthStatus,
    IncidentDraft,
    IncidentStatus,
    ensure_utc as _ensure_utc,
    raw_value,
)
from .models import (
    SessionLocal,
    Service,
    CheckResult,
    Alert,
    Incident,
    IncidentUpdate,
    ERR_MAX_LEN,
)


def _parse_ts(value: Any) -> Optional[datetime]:
    if isinstance(value, datetime):
        return _ensure_utc(value)
    if isinstance(value, str):
        try:
            return _ensure_utc(datetime.fromisoformat(value))
        except ValueError:
            return None
    return None


def create_service(name: str, url: str, check_type: str = "http", interval_s: int = 60, timeout_s: int = 30, **options: Any) -> Service:
    """Создать новую запись сервиса (options: поля модели Service: port, rt_warning_ms и т.д.)."""
    with SessionLocal() as session:
        service = Service(
            name=name,
            url=url,
            check_type=check_type,
            interval_s=interval_s,
            timeout_s=timeout_s,
            **options,
        )
        session.add(service)
        session.commit()
        return service


def get_service(service_id: int) -> Service | None:
    with SessionLocal() as session:
        return session.query(Service).filter(Service.id == service_id).first()


def list_services() -> list[Service]:
    """Получить все сервисы из базы данных."""
    with SessionLocal() as session:
        return session.query(Service).order_by(Service.id).all()


def list_active_services(service_id: int | None = None) -> list[Service]:
    """Сервисы без паузы (опционально один), в порядке id."""
    with SessionLocal() as session:
        q = session.query(Service).filter(Service.paused.is_(False))
        if service_id is not None:
            q = q.filter(Service.id == service_id)
        return q.order_by(Service.id).all()


def set_service_paused(service_id: int, paused: bool) -> None:
    with SessionLocal() as session:
        service = session.query(Service).filter(Service.id == service_id).first()
        if service is None:
            return
        service.paused = paused
        session.commit()


def insert_check(service_id: int, outcome: CheckOutcome) -> CheckResult:
    """Сохранить результат проверки сервиса."""
    meta = dict(outcome.metadata)
    error_text = outcome.error or None
    with SessionLocal() as session:
        check = CheckResult(
            service_id=service_id,
            ts=_ensure_utc(outcome.timestamp),
            status=outcome.status.value,
            is_up=outcome.status != HealthStatus.DOWN,
            latency_ms=outcome.response_time,
            status_code=meta.get("status_code"),
            response_size=meta.get("response_size"),
            error_text=error_text[:ERR_MAX_LEN] if error_text else None,
            details=meta,
            ssl_valid_from=_parse_ts(meta.get("valid_from")),
            ssl_valid_to=_parse_ts(meta.get("valid_to")),
            ssl_days_remaining=meta.get("days_remaining"),
            ssl_issuer=meta.get("issuer"),
        )
        session.add(check)
        session.commit()
        return check


def update_service_status(service_id: int, status: str, response_time_ms: int | None, checked_at: datetime) -> None:
    """Обновить статус сервиса после проверки."""
    with SessionLocal() as session:
        service = session.query(Service).filter(Service.id == service_id).first()
        if service is None:
            return
        service.status = status
        service.response_time_ms = response_time_ms
        service.last_check = _ensure_utc(checked_at)
        session.commit()


def get_latest_check(service_id: int) -> CheckResult | None:
    with SessionLocal() as session:
        return (
            session.query(CheckResult)
            .filter(CheckResult.service_id == service_id)
            .order_by(CheckResult.ts.desc(), CheckResult.id.desc())
            .first()
        )


def get_history(service_id: int, limit: int) -> list[dict]:
    """Получить последние результаты проверок для сервиса (до указанного лимита)."""
    with SessionLocal() as session:
        results = (
            session.query(CheckResult)
            .filter(CheckResult.service_id == service_id)
            .order_by(CheckResult.ts.desc(), CheckResult.id.desc())
            .limit(limit)
            .all()
        )
        return [
            {
                "id": r.id,
                "service_id": r.service_id,
                "ts": _ensure_utc(r.ts),
                "status": r.status,
                "latency_ms": r.latency_ms,
                "status_code": r.status_code,
                "error_text": r.error_text,
            }
            for r in results
        ]


def uptime_(service_id: int, time_span: timedelta = timedelta(hours=24), up_to: datetime | None = None) -> float | None:
    """Аптайм (проценты 0..100) за окно [up_to - time_span, up_to]; None, если проверок не было."""
    with SessionLocal() as session:
        end_time = _ensure_utc(up_to or datetime.now(timezone.utc))
        start_time = end_time - time_span
        total_query = session.query(CheckResult).filter(
            CheckResult.service_id == service_id,
            CheckResult.ts >= start_time,
            CheckResult.ts <= end_time,
        )
        total = total_query.count()
        if total == 0:
            return None
        up = total_query.filter(CheckResult.is_up).count()
        return 100.0 * up / total


def create_alert(draft: AlertDraft) -> Alert:
    with SessionLocal() as session:
        alert = Alert(
            service_id=draft.service_id,
            check_id=draft.check_id,
            timestamp=_ensure_utc(draft.timestamp),
            status=raw_value(draft.status),
            severity=raw_value(draft.severity),
            metric=raw_value(draft.metric),
            value=draft.value,
            message=draft.message,
        )
        session.add(alert)
        session.commit()
        return alert


def get_alert(alert_id: int) -> Alert | None:
    with SessionLocal() as session:
        return session.query(Alert).filter(Alert.id == alert_id).first()


def list_open_alerts(service_id: int | None = None) -> list[Alert]:
    """Открытые (pending/acknowledged) алерты, сначала старые."""
    with SessionLocal() as session:
        q = session.query(Alert).filter(Alert.status.in_(OPEN_ALERT_STATUSES))
        if service_id is not None:
            q = q.filter(Alert.service_id == service_id)
        return q.order_by(Alert.timestamp.asc(), Alert.id.asc()).all()


def list_alerts(open_only: bool = True, service_id: int | None = None, limit: int = 100) -> list[Alert]:
    with SessionLocal() as session:
        q = session.query(Alert)
        if open_only:
            q = q.filter(Alert.status.in_(OPEN_ALERT_STATUSES))
        if service_id is not None:
            q = q.filter(Alert.service_id == service_id)
        return q.order_by(Alert.timestamp.desc(), Alert.id.desc()).limit(limit).all()


def list_uncorrelated_alerts(since: datetime) -> list[Alert]:
    """Открытые алерты без инцидента, созданные не раньше since."""
    with SessionLocal() as session:
        return (
            session.query(Alert)
            .filter(
                Alert.status.in_(OPEN_ALERT_STATUSES),
                Alert.incident_id.is_(None),
                Alert.timestamp >= _ensure_utc(since),
            )
            .order_by(Alert.timestamp.asc(), Alert.id.asc())
            .all()
        )


def resolve_alerts(alert_ids: Iterable[int], resolved_at: datetime, note: str | None = None, resolved_by: str | None = None) -> int:
    """Перевести открытые алерты в resolved. Возвращает количество изменённых."""
    ids = list(alert_ids)
    if not ids:
        return 0
    with SessionLocal() as session:
        rows = (
            session.query(Alert)
            .filter(Alert.id.in_(ids), Alert.status.in_(OPEN_ALERT_STATUSES))
            .all()
        )
        for alert in rows:
            alert.status = "resolved"
            alert.resolved_at = _ensure_utc(resolved_at)
            alert.resolved_by = resolved_by
            if note:
                alert.resolution_note = note[:ERR_MAX_LEN]
        session.commit()
        return len(rows)


def set_alert_status(alert_id: int, status: str, actor: str | None, at: datetime) -> Alert | None:
    """Ручное изменение статуса алерта (переход проверяется вызывающей стороной)."""
    with SessionLocal() as session:
        alert = session.query(Alert).filter(Alert.id == alert_id).first()
        if alert is None:
            return None
        alert.status = status
        if status == "acknowledged":
            alert.acknowledged_by = actor
            alert.acknowledged_at = _ensure_utc(at)
        elif status == "resolved":
            alert.resolved_by = actor
            alert.resolved_at = _ensure_utc(at)
        session.commit()
        return alert


def create_incident(draft: IncidentDraft, alert_ids: Iterable[int] = (), message: str | None = None, author: str | None = None) -> Incident:
    """Создать инцидент из черновика, привязать алерты и записать первое обновление."""
    with SessionLocal() as session:
        services = session.query(Service).filter(Service.id.in_(list(draft.services))).all()
        incident = Incident(
            title=draft.title[:100],
            severity=raw_value(draft.severity),
            status=raw_value(draft.status),
            started_at=_ensure_utc(draft.started_at),
            created_by=author,
            services=services,
        )
        incident.updates.append(
            IncidentUpdate(
                message=message or draft.title,
                status=raw_value(draft.status),
                author=author,
            )
        )
        session.add(incident)
        session.flush()
        ids = list(alert_ids)
        if ids:
            session.query(Alert).filter(Alert.id.in_(ids)).update(
                {Alert.incident_id: incident.id}, synchronize_session=False
            )
        session.commit()
        return incident


def get_incident(incident_id: int) -> Incident | None:
    with SessionLocal() as session:
        return session.query(Incident).filter(Incident.id == incident_id).first()


def append_incident_update(incident_id: int, message: str, status: str, author: str | None, ts: datetime, new_status: str | None = None, resolved_at: datetime | None = None) -> Incident | None:
    """Добавить запись в журнал инцидента; существующие записи не меняются."""
    with SessionLocal() as session:
        incident = session.query(Incident).filter(Incident.id == incident_id).first()
        if incident is None:
            return None
        incident.updates.append(
            IncidentUpdate(message=message, status=status, author=author, timestamp=_ensure_utc(ts))
        )
        if new_status is not None:
            incident.status = new_status
        if resolved_at is not None and incident.resolved_at is None:
            incident.resolved_at = _ensure_utc(resolved_at)
        session.commit()
        return incident


def list_incidents(open_only: bool = True) -> list[dict]:
    with SessionLocal() as session:
        q = session.query(Incident).order_by(Incident.started_at.desc())
        if open_only:
            q = q.filter(Incident.status != IncidentStatus.RESOLVED.value)
        return [
            {
                "id": inc.id,
                "title": inc.title,
                "severity": inc.severity,
                "status": inc.status,
                "services": [s.id for s in inc.services],
                "started_at": _ensure_utc(inc.started_at),
                "resolved_at": _ensure_utc(inc.resolved_at) if inc.resolved_at else None,
            }
            for inc in q.all()
        ]
