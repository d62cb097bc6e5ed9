import asyncio
import logging
import os
import time
from dataclasses import dataclass, field
from datetime import datetime, timedelta
from typing import Any, Callable, Optional

from probewatch import metrics
from probewatch.alerts import evaluate_availability, generate_alert, plan_alert, should_auto_resolve_alert
from probewatch.db import repo
from probewatch.incidents import DEFAULT_WINDOW_MINUTES, group_alerts_into_incident
from probewatch.logging_config import check_context
from probewatch.notifier import AlertEvent, Notifier, build_notifier_from_env
from probewatch.probers import ProbeDispatcher
from probewatch.types import AlertMetric, CheckOutcome, ServiceSpec, ensure_utc, raw_value, utcnow

logger = logging.getLogger(__name__)

SYSTEM_ACTOR = "system"


@dataclass
class ServiceReport:
	service_id: int
	name: str
	status: str  # статус проверки, либо error / skipped
	response_time: Optional[int] = None
	error: Optional[str] = None
	alerts_created: int = 0
	alerts_resolved: int = 0

	def to_dict(self) -> dict[str, Any]:
		return {
			"service_id": self.service_id,
			"name": self.name,
			"status": self.status,
			"response_time": self.response_time,
			"error": self.error,
			"alerts_created": self.alerts_created,
			"alerts_resolved": self.alerts_resolved,
		}


@dataclass
class BatchReport:
	started_at: datetime
	finished_at: Optional[datetime] = None
	results: list[ServiceReport] = field(default_factory=list)
	incidents: list[int] = field(default_factory=list)

	@property
	def checked(self) -> int:
		return sum(1 for r in self.results if r.status not in ("error", "skipped"))

	@property
	def errors(self) -> int:
		return sum(1 for r in self.results if r.status == "error")

	@property
	def skipped(self) -> int:
		return sum(1 for r in self.results if r.status == "skipped")

	def to_dict(self) -> dict[str, Any]:
		return {
			"started_at": self.started_at.isoformat(),
			"finished_at": self.finished_at.isoformat() if self.finished_at else None,
			"checked": self.checked,
			"errors": self.errors,
			"skipped": self.skipped,
			"incidents": list(self.incidents),
			"results": [r.to_dict() for r in self.results],
		}


class Runner:
	"""Последовательный проход по сервисам: проверка, запись, алерты, корреляция в инциденты."""

	def __init__(
		self,
		*,
		tick_seconds: int = 10,
		max_batch_seconds: float = 300,
		correlation_window_minutes: float = DEFAULT_WINDOW_MINUTES,
		availability_window: timedelta = timedelta(hours=24),
		notifier: Optional[Notifier] = None,
		dispatcher_factory: Callable[[], ProbeDispatcher] = ProbeDispatcher,
		now: Callable[[], datetime] = utcnow,
		monotonic: Callable[[], float] = time.monotonic,
	) -> None:
		self._tick_seconds = max(1, tick_seconds)
		self._max_batch_seconds = max_batch_seconds
		self._correlation_window = correlation_window_minutes
		self._availability_window = availability_window
		self._notifier = notifier or build_notifier_from_env()
		self._dispatcher_factory = dispatcher_factory
		self._now = now
		self._monotonic = monotonic
		self._stop_event = asyncio.Event()
		self._manual_queue: asyncio.Queue[int] = asyncio.Queue()

	async def run(self) -> None:
		logger.info("Runner started: tick=%ss, max_batch=%ss", self._tick_seconds, self._max_batch_seconds)
		while not self._stop_event.is_set():
			try:
				# сначала обрабатываем ручные запросы повышенного приоритета
				await self._drain_manual_queue()
				await self.run_once()
			except Exception as e:
				logger.exception("runner tick failed: %s", e)
			try:
				await asyncio.wait_for(self._stop_event.wait(), timeout=self._tick_seconds)
			except asyncio.TimeoutError:
				pass
		logger.info("Runner stopped")

	def stop(self) -> None:
		self._stop_event.set()

	async def enqueue_manual(self, service_id: int) -> None:
		"""Поместить сервис в ручную очередь для немедленной проверки."""
		await self._manual_queue.put(service_id)
		metrics.set_manual_queue_size(self._manual_queue.qsize())

	async def _drain_manual_queue(self) -> None:
		items: list[int] = []
		while not self._manual_queue.empty():
			items.append(self._manual_queue.get_nowait())
		metrics.set_manual_queue_size(self._manual_queue.qsize())
		for sid in dict.fromkeys(items):
			await self.run_once(force=True, service_id=sid)

	def _is_due(self, last_check: Optional[datetime], interval_s: int, now: datetime) -> bool:
		if last_check is None:
			return True
		return (now - ensure_utc(last_check)).total_seconds() >= interval_s

	async def run_once(self, force: bool = False, service_id: Optional[int] = None) -> BatchReport:
		"""Один проход: проверить все сервисы, которым пора (или все при force), затем скоррелировать алерты."""
		report = BatchReport(started_at=self._now())
		t0 = self._monotonic()
		deadline = t0 + self._max_batch_seconds
		services = repo.list_active_services(service_id)

		async with self._dispatcher_factory() as dispatcher:
			for row in services:
				if not force and not self._is_due(row.last_check, row.interval_s, self._now()):
					continue
				if self._monotonic() >= deadline:
					logger.warning("batch deadline reached, skipping service %s", row.id)
					report.results.append(ServiceReport(service_id=row.id, name=row.name, status="skipped"))
					continue
				try:
					item = await self._check_service(dispatcher, ServiceSpec.from_row(row))
				except Exception as e:
					logger.exception("check of service %s failed", row.id)
					item = ServiceReport(service_id=row.id, name=row.name, status="error", error=str(e))
				report.results.append(item)

		try:
			report.incidents = await self._correlate()
		except Exception:
			logger.exception("alert correlation failed")

		report.finished_at = self._now()
		metrics.observe_batch(self._monotonic() - t0)
		if report.results:
			logger.info(
				"batch done: checked=%s errors=%s skipped=%s incidents=%s",
				report.checked, report.errors, report.skipped, len(report.incidents),
			)
		return report

	async def _check_service(self, dispatcher: ProbeDispatcher, spec: ServiceSpec) -> ServiceReport:
		outcome = await dispatcher.probe(spec)
		check = repo.insert_check(spec.id, outcome)
		repo.update_service_status(spec.id, outcome.status.value, outcome.response_time, outcome.timestamp)
		metrics.record_check(str(raw_value(spec.check_type)), outcome.status.value, outcome.response_time)

		uptime = repo.uptime_(spec.id, self._availability_window, up_to=outcome.timestamp)
		availability_draft = evaluate_availability(spec, uptime, check_id=check.id)

		item = ServiceReport(
			service_id=spec.id,
			name=spec.display_name,
			status=outcome.status.value,
			response_time=outcome.response_time,
			error=outcome.error,
		)
		open_alerts = repo.list_open_alerts(spec.id)
		resolved = self._auto_resolve(spec, outcome, open_alerts, availability_draft is None)
		item.alerts_resolved = len(resolved)
		open_alerts = [a for a in open_alerts if a.id not in resolved]

		for draft in (generate_alert(spec, outcome, check_id=check.id), availability_draft):
			if draft is None:
				continue
			metric = raw_value(draft.metric)
			plan = plan_alert(open_alerts, draft)
			if not plan.create:
				metrics.record_alert("suppressed", metric)
				continue
			if plan.supersede:
				stale_ids = [a.id for a in plan.supersede]
				n = repo.resolve_alerts(
					stale_ids,
					outcome.timestamp,
					note=f"Superseded by {raw_value(draft.severity)} alert",
					resolved_by=SYSTEM_ACTOR,
				)
				metrics.record_alert("superseded", metric, n)
				open_alerts = [a for a in open_alerts if a.id not in stale_ids]
			alert = repo.create_alert(draft)
			open_alerts.append(alert)
			item.alerts_created += 1
			metrics.record_alert("created", metric)
			logger.info(
				"alert %s created for service %s: %s", alert.id, spec.id, alert.message,
				extra=check_context(spec.id, spec.check_type, outcome.status, alert_id=alert.id),
			)
			await self._notifier.send(AlertEvent.from_alert(alert, spec.display_name))
		return item

	def _auto_resolve(self, spec: ServiceSpec, outcome: CheckOutcome, open_alerts: list, availability_ok: bool) -> set[int]:
		"""Закрыть открытые алерты, причина которых ушла.

		Алерты доступности закрываются только когда аптайм за окно вернулся выше порогов,
		остальные по текущему статусу и времени ответа.
		"""
		ids: list[int] = []
		for alert in open_alerts:
			if raw_value(alert.metric) == AlertMetric.AVAILABILITY.value:
				if availability_ok:
					ids.append(alert.id)
			elif should_auto_resolve_alert(alert, spec, outcome.status, outcome.response_time):
				ids.append(alert.id)
		if not ids:
			return set()
		n = repo.resolve_alerts(
			ids,
			outcome.timestamp,
			note=f"Auto-resolved: service is {outcome.status.value}",
			resolved_by=SYSTEM_ACTOR,
		)
		for alert in open_alerts:
			if alert.id in ids:
				metrics.record_alert("auto_resolved", raw_value(alert.metric))
		logger.info("auto-resolved %s alert(s) for service %s", n, spec.id)
		return set(ids)

	async def _correlate(self) -> list[int]:
		"""Сгруппировать свежие непривязанные алерты разных сервисов в инциденты."""
		window = timedelta(minutes=self._correlation_window)
		created: list[int] = []
		while True:
			alerts = repo.list_uncorrelated_alerts(self._now() - window)
			draft = group_alerts_into_incident(alerts, self._correlation_window)
			if draft is None:
				return created
			members = [
				a.id for a in alerts
				if a.service_id in draft.services and ensure_utc(a.timestamp) - draft.started_at <= window
			]
			message = f"Incident opened automatically: {len(draft.services)} services affected"
			incident = repo.create_incident(draft, members, message=message, author=SYSTEM_ACTOR)
			created.append(incident.id)
			metrics.record_incident(raw_value(draft.severity))
			logger.warning(
				"incident %s opened: %s, services=%s", incident.id, incident.title, list(draft.services),
				extra=check_context(incident_id=incident.id),
			)
			await self._notifier.send(
				AlertEvent(
					service_id=None,
					level="error",
					title=incident.title,
					message=message,
					incident_id=incident.id,
				)
			)


def from_env() -> "Runner":
	try:
		tick = int(os.getenv("CHECK_TICK_SEC", "10"))
		max_batch = float(os.getenv("MAX_BATCH_SEC", "300"))
		window = float(os.getenv("CORRELATION_WINDOW_MIN", str(DEFAULT_WINDOW_MINUTES)))
		availability_hours = float(os.getenv("AVAILABILITY_WINDOW_HOURS", "24"))
	except ValueError:
		logger.warning("invalid runner settings in environment, using defaults")
		tick, max_batch, window, availability_hours = 10, 300.0, float(DEFAULT_WINDOW_MINUTES), 24.0
	return Runner(
		tick_seconds=tick,
		max_batch_seconds=max_batch,
		correlation_window_minutes=window,
		availability_window=timedelta(hours=availability_hours),
	)
