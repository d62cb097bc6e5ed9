import asyncio
from datetime import datetime
from typing import Any, List, Literal, Optional

from fastapi import FastAPI, HTTPException, Path, Query, Request, status, Depends
from fastapi.responses import JSONResponse, PlainTextResponse
from fastapi.exceptions import RequestValidationError
from pydantic import BaseModel, Field

from probewatch.alerts import InvalidAlertTransition, transition_alert
from probewatch.db import repo
from probewatch.incidents import plan_incident_update
from probewatch.scheduler import Runner, from_env
from probewatch.metrics import render_metrics
from probewatch.security import api_key_auth
from probewatch.types import ensure_utc, utcnow
from probewatch.logging_config import setup_logging

# инициализация БД
from probewatch.db.init_db import main as init_db_main


class ErrorResponse(BaseModel):
	code: str
	message: str


class AlertOut(BaseModel):
	id: int
	service_id: int
	status: str
	severity: str
	metric: str
	value: Any = None
	message: str
	timestamp: datetime
	incident_id: Optional[int] = None
	acknowledged_by: Optional[str] = None
	acknowledged_at: Optional[datetime] = None
	resolved_by: Optional[str] = None
	resolved_at: Optional[datetime] = None
	resolution_note: Optional[str] = None


class AlertStatusIn(BaseModel):
	status: Literal["acknowledged", "resolved", "closed"]
	user: Optional[str] = Field(default=None, max_length=200)


class IncidentUpdateIn(BaseModel):
	message: Optional[str] = Field(default=None, max_length=1000)
	status: Optional[Literal["investigating", "identified", "monitoring", "resolved"]] = None
	author: Optional[str] = Field(default=None, max_length=200)


class IncidentUpdateOut(BaseModel):
	message: str
	status: str
	timestamp: datetime
	author: Optional[str] = None


class IncidentOut(BaseModel):
	id: int
	title: str
	severity: str
	status: str
	started_at: datetime
	resolved_at: Optional[datetime] = None
	services: List[int]
	updates: List[IncidentUpdateOut]


def _opt_utc(ts: Optional[datetime]) -> Optional[datetime]:
	return ensure_utc(ts) if ts is not None else None


def _alert_out(a) -> AlertOut:
	return AlertOut(
		id=a.id,
		service_id=a.service_id,
		status=a.status,
		severity=a.severity,
		metric=a.metric,
		value=a.value,
		message=a.message,
		timestamp=ensure_utc(a.timestamp),
		incident_id=a.incident_id,
		acknowledged_by=a.acknowledged_by,
		acknowledged_at=_opt_utc(a.acknowledged_at),
		resolved_by=a.resolved_by,
		resolved_at=_opt_utc(a.resolved_at),
		resolution_note=a.resolution_note,
	)


def _incident_out(inc) -> IncidentOut:
	return IncidentOut(
		id=inc.id,
		title=inc.title,
		severity=inc.severity,
		status=inc.status,
		started_at=ensure_utc(inc.started_at),
		resolved_at=_opt_utc(inc.resolved_at),
		services=[s.id for s in inc.services],
		updates=[
			IncidentUpdateOut(message=u.message, status=u.status, timestamp=ensure_utc(u.timestamp), author=u.author)
			for u in inc.updates
		],
	)


app = FastAPI(title="probewatch API", description="Мониторинг доступности сервисов: проверки, алерты, инциденты", version="0.1.0")

_runner: Optional[Runner] = None
_runner_task: Optional[asyncio.Task] = None


def _get_runner() -> Runner:
	# без запущенного фонового цикла (тесты, ручной вызов) создаём раннер по требованию
	global _runner
	if _runner is None:
		_runner = from_env()
	return _runner


@app.exception_handler(HTTPException)
async def http_exception_handler(request: Request, exc: HTTPException):
	return JSONResponse(status_code=exc.status_code, content=ErrorResponse(code=str(exc.status_code), message=str(exc.detail)).model_dump())


@app.exception_handler(RequestValidationError)
async def validation_exception_handler(request: Request, exc: RequestValidationError):
	return JSONResponse(status_code=status.HTTP_400_BAD_REQUEST, content=ErrorResponse(code="400", message="validation error").model_dump())


@app.on_event("startup")
async def on_startup():
	setup_logging()
	# убедиться, что схема БД существует
	init_db_main()
	global _runner_task
	_runner_task = asyncio.create_task(_get_runner().run())


@app.on_event("shutdown")
async def on_shutdown():
	global _runner_task
	if _runner is not None:
		_runner.stop()
	if _runner_task is not None:
		try:
			await asyncio.wait_for(_runner_task, timeout=5)
		except asyncio.TimeoutError:
			_runner_task.cancel()
		_runner_task = None


@app.get("/health")
def health():
	return {"status": "ok"}


@app.get("/metrics", include_in_schema=False)
def metrics_endpoint():
	payload, content_type = render_metrics()
	return PlainTextResponse(payload.decode("utf-8"), media_type=content_type)


@app.get("/ready", include_in_schema=False)
def ready():
	# проверка БД и состояния раннера
	try:
		repo.list_services()
	except Exception:
		raise HTTPException(status_code=503, detail="db not ready")
	if _runner_task is None or _runner_task.done():
		raise HTTPException(status_code=503, detail="runner not running")
	return {"status": "ready"}


@app.post("/cron/check-services", dependencies=[Depends(api_key_auth)])
async def cron_check_services(force: bool = Query(False), service_id: Optional[int] = Query(None, ge=1)):
	report = await _get_runner().run_once(force=force, service_id=service_id)
	return report.to_dict()


@app.post("/services/{service_id}/check", dependencies=[Depends(api_key_auth)])
async def check_service(service_id: int = Path(ge=1)):
	service = repo.get_service(service_id)
	if service is None:
		raise HTTPException(status_code=404, detail="service not found")
	if service.paused:
		raise HTTPException(status_code=409, detail="service is paused")
	report = await _get_runner().run_once(force=True, service_id=service_id)
	if not report.results:
		raise HTTPException(status_code=503, detail="check was not performed")
	return report.results[0].to_dict()


@app.get("/alerts", response_model=List[AlertOut])
async def list_alerts(
	alert_status: Literal["open", "all"] = Query("open", alias="status"),
	service_id: Optional[int] = Query(None, ge=1),
	limit: int = Query(100, ge=1, le=1000),
):
	items = repo.list_alerts(open_only=alert_status == "open", service_id=service_id, limit=limit)
	return [_alert_out(a) for a in items]


@app.put("/alerts/{alert_id}", response_model=AlertOut, dependencies=[Depends(api_key_auth)])
async def update_alert(payload: AlertStatusIn, alert_id: int = Path(ge=1)):
	alert = repo.get_alert(alert_id)
	if alert is None:
		raise HTTPException(status_code=404, detail="alert not found")
	try:
		target = transition_alert(alert.status, payload.status)
	except InvalidAlertTransition as e:
		raise HTTPException(status_code=400, detail=str(e))
	updated = repo.set_alert_status(alert_id, target.value, payload.user, utcnow())
	if updated is None:
		raise HTTPException(status_code=404, detail="alert not found")
	return _alert_out(updated)


@app.get("/incidents/{incident_id}", response_model=IncidentOut)
async def get_incident(incident_id: int = Path(ge=1)):
	incident = repo.get_incident(incident_id)
	if incident is None:
		raise HTTPException(status_code=404, detail="incident not found")
	return _incident_out(incident)


@app.post("/incidents/{incident_id}/updates", response_model=IncidentOut, status_code=status.HTTP_201_CREATED, dependencies=[Depends(api_key_auth)])
async def add_incident_update(payload: IncidentUpdateIn, incident_id: int = Path(ge=1)):
	incident = repo.get_incident(incident_id)
	if incident is None:
		raise HTTPException(status_code=404, detail="incident not found")
	try:
		plan = plan_incident_update(
			incident.status,
			payload.status,
			payload.message,
			payload.author,
			already_resolved=incident.resolved_at is not None,
		)
	except ValueError as e:
		raise HTTPException(status_code=400, detail=str(e))
	updated = repo.append_incident_update(
		incident_id,
		plan.message,
		plan.status.value,
		plan.author,
		plan.timestamp,
		new_status=plan.new_status.value if plan.new_status else None,
		resolved_at=plan.timestamp if plan.set_resolved_at else None,
	)
	if updated is None:
		raise HTTPException(status_code=404, detail="incident not found")
	return _incident_out(updated)
