from __future__ import annotations

from typing import Optional

from prometheus_client import Counter, Histogram, Gauge, CONTENT_TYPE_LATEST, generate_latest

# Глобальный реестр метрик (используется по умолчанию)

checks_total = Counter(
	"probewatch_checks_total",
	"Общее количество проверок сервисов",
	labelnames=("check_type", "status"),
)

probe_latency_ms = Histogram(
	"probewatch_probe_latency_ms",
	"Время ответа проверки в миллисекундах",
	buckets=(50, 100, 200, 300, 500, 750, 1000, 1500, 2000, 3000, 5000, 10000, 30000),
	labelnames=("check_type",),
)

alerts_total = Counter(
	"probewatch_alerts_total",
	"Решения по алертам: created, suppressed, auto_resolved, superseded",
	labelnames=("action", "metric"),
)

incidents_total = Counter(
	"probewatch_incidents_total",
	"Созданные инциденты",
	labelnames=("severity",),
)

batch_duration_s = Histogram(
	"probewatch_batch_duration_seconds",
	"Длительность одного прохода раннера",
	buckets=(0.1, 0.5, 1, 2, 5, 10, 30, 60, 120, 300),
)

manual_queue_size = Gauge(
	"probewatch_manual_queue_size",
	"Размер очереди ручных проверок",
)


def record_check(check_type: str, status: str, latency_value_ms: Optional[int]) -> None:
	"""Записать метрики Prometheus для одной проверки."""
	checks_total.labels(check_type=check_type, status=status).inc()
	if latency_value_ms is not None:
		probe_latency_ms.labels(check_type=check_type).observe(max(0.0, float(latency_value_ms)))


def record_alert(action: str, metric: str, n: int = 1) -> None:
	if n > 0:
		alerts_total.labels(action=action, metric=metric).inc(n)


def record_incident(severity: str) -> None:
	incidents_total.labels(severity=severity).inc()


def observe_batch(seconds: float) -> None:
	batch_duration_s.observe(max(0.0, seconds))


def set_manual_queue_size(n: int) -> None:
	manual_queue_size.set(max(0, int(n)))


def render_metrics() -> tuple[bytes, str]:
	"""Вернуть полезную нагрузку метрик и тип контента для FastAPI-роута."""
	return generate_latest(), CONTENT_TYPE_LATEST
