from datetime import datetime, timedelta, timezone

from probewatch.db.models import Base, engine, Alert, SessionLocal
from probewatch.db.repo import (
    create_service,
    get_service,
    list_services,
    list_active_services,
    set_service_paused,
    insert_check,
    update_service_status,
    get_latest_check,
    get_history,
    uptime_,
    create_alert,
    get_alert,
    list_open_alerts,
    list_alerts,
    list_uncorrelated_alerts,
    resolve_alerts,
    set_alert_status,
    create_incident,
    get_incident,
    append_incident_update,
    list_incidents,
)
from probewatch.types import (
    AlertDraft,
    AlertMetric,
    AlertSeverity,
    CheckOutcome,
    HealthStatus,
    IncidentDraft,
    IncidentSeverity,
    ServiceSpec,
)


def setup_module():
    """Create database tables before running tests."""
    Base.metadata.create_all(engine)


def teardown_module():
    """Drop database tables after tests complete."""
    Base.metadata.drop_all(engine)


def test_services_and_checks():
    """Сервисы, результаты проверок, история и аптайм."""
    service = create_service(
        name="Repo API",
        url="https://api.example.com/health",
        interval_s=60,
        timeout_s=10,
        rt_warning_ms=800,
        rt_critical_ms=2000,
        expected_response_content="ok",
    )
    assert service.id is not None
    assert service.status == "pending"
    assert get_service(service.id).name == "Repo API"

    spec = ServiceSpec.from_row(get_service(service.id))
    assert spec.thresholds.response_time.warning == 800
    assert spec.thresholds.availability is None
    assert spec.expected_response_content == "ok"

    now = datetime.now(timezone.utc)
    two_hours_ago = now - timedelta(hours=2)
    one_hour_ago = now - timedelta(hours=1)

    # в обратном хронологическом порядке, чтобы проверить сортировку
    insert_check(service.id, CheckOutcome(status=HealthStatus.HEALTHY, response_time=150, metadata={"status_code": 200}, timestamp=two_hours_ago))
    insert_check(service.id, CheckOutcome(status=HealthStatus.DOWN, response_time=30, error="Connection refused", timestamp=one_hour_ago))
    last = insert_check(
        service.id,
        CheckOutcome(status=HealthStatus.WARNING, response_time=200, error="Expected status code 200, but got 503", metadata={"status_code": 503, "response_size": 12}, timestamp=now),
    )
    assert last.is_up is True
    assert last.status_code == 503
    assert last.details["response_size"] == 12

    latest = get_latest_check(service.id)
    assert latest.id == last.id

    history = get_history(service.id, limit=2)
    assert [h["status"] for h in history] == ["warning", "down"]
    assert history[0]["ts"] == now
    assert history[1]["error_text"] == "Connection refused"
    assert len(get_history(service.id, limit=10)) == 3

    # 2 из 3 проверок без down
    assert abs(uptime_(service.id, timedelta(hours=24), up_to=now) - 200 / 3) < 1e-9
    assert uptime_(service.id, timedelta(minutes=30), up_to=now) == 100.0
    assert uptime_(service.id, timedelta(hours=1), up_to=now - timedelta(days=2)) is None

    update_service_status(service.id, "warning", 200, now)
    updated = get_service(service.id)
    assert updated.status == "warning" and updated.response_time_ms == 200

    set_service_paused(service.id, True)
    assert service.id not in [s.id for s in list_active_services()]
    assert service.id in [s.id for s in list_services()]
    set_service_paused(service.id, False)
    assert [s.id for s in list_active_services(service.id)] == [service.id]


def test_ssl_fields_are_stored():
    service = create_service(name="Repo TLS", url="https://tls.example.com", check_type="ssl")
    valid_to = datetime(2027, 1, 1, tzinfo=timezone.utc)
    check = insert_check(
        service.id,
        CheckOutcome(
            status=HealthStatus.HEALTHY,
            response_time=40,
            metadata={"valid_from": "2026-01-01T00:00:00+00:00", "valid_to": valid_to.isoformat(), "days_remaining": 120, "issuer": "CN=Test CA"},
        ),
    )
    assert check.ssl_valid_to == valid_to
    assert check.ssl_days_remaining == 120
    assert check.ssl_issuer == "CN=Test CA"


def test_alert_lifecycle():
    service = create_service(name="Repo Alerts", url="https://alerts.example.com")
    draft = AlertDraft(service_id=service.id, severity=AlertSeverity.DOWN, metric=AlertMetric.CUSTOM, value="Connection refused", message="Connection refused")
    alert = create_alert(draft)
    assert alert.status == "pending" and alert.severity == "down" and alert.metric == "custom"
    assert [a.id for a in list_open_alerts(service.id)] == [alert.id]

    acked = set_alert_status(alert.id, "acknowledged", "alice", datetime.now(timezone.utc))
    assert acked.acknowledged_by == "alice" and acked.acknowledged_at is not None
    assert [a.id for a in list_open_alerts(service.id)] == [alert.id]

    resolved_at = datetime.now(timezone.utc)
    assert resolve_alerts([alert.id], resolved_at, note="Auto-resolved: service is healthy", resolved_by="system") == 1
    # повторное закрытие ничего не меняет
    assert resolve_alerts([alert.id], resolved_at) == 0
    stored = get_alert(alert.id)
    assert stored.status == "resolved" and stored.resolved_by == "system"
    assert stored.resolution_note == "Auto-resolved: service is healthy"
    assert list_open_alerts(service.id) == []
    assert [a.id for a in list_alerts(open_only=False, service_id=service.id)] == [alert.id]
    assert list_alerts(open_only=True, service_id=service.id) == []
    assert set_alert_status(999999, "closed", None, resolved_at) is None


def test_incident_lifecycle():
    a = create_service(name="Repo Inc A", url="https://a.example.com")
    b = create_service(name="Repo Inc B", url="https://b.example.com")
    now = datetime.now(timezone.utc)
    alerts = [
        create_alert(AlertDraft(service_id=a.id, severity=AlertSeverity.DOWN, metric=AlertMetric.CUSTOM, value=None, message="down", timestamp=now)),
        create_alert(AlertDraft(service_id=b.id, severity=AlertSeverity.DOWN, metric=AlertMetric.CUSTOM, value=None, message="down", timestamp=now)),
    ]
    ids = [x.id for x in alerts]
    assert set(ids) <= {x.id for x in list_uncorrelated_alerts(now - timedelta(minutes=15))}

    draft = IncidentDraft(title="Multiple services down", services=(a.id, b.id), severity=IncidentSeverity.CRITICAL, started_at=now)
    incident = create_incident(draft, ids, message="opened", author="system")
    assert sorted(s.id for s in incident.services) == sorted([a.id, b.id])
    assert [u.message for u in incident.updates] == ["opened"]
    assert not set(ids) & {x.id for x in list_uncorrelated_alerts(now - timedelta(minutes=15))}
    with SessionLocal() as s:
        assert {x.incident_id for x in s.query(Alert).filter(Alert.id.in_(ids))} == {incident.id}

    assert incident.id in [i["id"] for i in list_incidents(open_only=True)]

    later = now + timedelta(minutes=30)
    updated = append_incident_update(incident.id, "Status changed from investigating to resolved", "resolved", "bob", later, new_status="resolved", resolved_at=later)
    assert updated.status == "resolved"
    assert updated.resolved_at == later

    loaded = get_incident(incident.id)
    assert [u.status for u in loaded.updates] == ["investigating", "resolved"]
    assert loaded.updates[1].author == "bob"
    assert incident.id not in [i["id"] for i in list_incidents(open_only=True)]
    assert append_incident_update(999999, "x", "resolved", None, later) is None
