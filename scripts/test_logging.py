import json
import logging

from probewatch.logging_config import JsonFormatter, check_context, setup_logging
from probewatch.probers import ProbeDispatcher
from probewatch.types import CheckOutcome, CheckType, HealthStatus, ServiceSpec


class _FixedProber:
	check_type = CheckType.TCP

	async def probe(self, service):
		return CheckOutcome(status=HealthStatus.DOWN, response_time=3, error="Connection refused")

	async def open(self):
		return None

	async def close(self):
		return None


def test_check_context_drops_empty_fields():
	ctx = check_context(5, CheckType.HTTP, HealthStatus.CRITICAL, alert_id=9, incident_id=None)
	assert ctx == {"service_id": 5, "check_type": "http", "status": "critical", "alert_id": 9}
	assert check_context(incident_id=3) == {"incident_id": 3}


def test_json_formatter_includes_check_context():
	record = logging.LogRecord("probewatch.scheduler", logging.WARNING, __file__, 1, "alert %s created", (12,), None)
	for key, value in check_context(4, "dns", "down", alert_id=12).items():
		setattr(record, key, value)
	payload = json.loads(JsonFormatter().format(record))
	assert payload["msg"] == "alert 12 created"
	assert payload["level"] == "WARNING"
	assert payload["service_id"] == 4
	assert payload["check_type"] == "dns"
	assert payload["alert_id"] == 12
	assert "incident_id" not in payload


async def test_dispatcher_logs_outcome_with_context(caplog):
	"""Результат проверки попадает в лог вместе с id сервиса, типом и статусом."""
	dispatcher = ProbeDispatcher({CheckType.TCP: _FixedProber()})
	service = ServiceSpec(id=21, url="tcp://db.example.com:5432", check_type=CheckType.TCP)
	with caplog.at_level(logging.INFO, logger="probewatch.probers.factory"):
		await dispatcher.probe(service)
	record = [r for r in caplog.records if r.levelno == logging.WARNING][-1]
	assert record.service_id == 21
	assert record.check_type == "tcp"
	assert record.status == "down"


def test_setup_logging_json(monkeypatch):
	monkeypatch.setenv("LOG_JSON", "true")
	monkeypatch.setenv("LOG_LEVEL", "debug")
	root = logging.getLogger()
	saved_handlers, saved_level = list(root.handlers), root.level
	try:
		setup_logging()
		assert root.level == logging.DEBUG
		assert len(root.handlers) == 1
		assert isinstance(root.handlers[0].formatter, JsonFormatter)
		assert logging.getLogger("sqlalchemy.engine").level == logging.WARNING
	finally:
		for h in list(root.handlers):
			root.removeHandler(h)
		for h in saved_handlers:
			root.addHandler(h)
		root.setLevel(saved_level)
