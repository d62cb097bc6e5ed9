from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any, Optional

from probewatch.types import raw_value

# серьёзность алерта -> уровень уведомления
_SEVERITY_LEVEL = {
	"warning": "warn",
	"critical": "error",
	"down": "error",
}


@dataclass
class AlertEvent:
	service_id: Optional[int]
	level: str  # info, warn, error
	title: str
	message: str
	metric: Optional[str] = None
	incident_id: Optional[int] = None
	ts: datetime = field(default_factory=lambda: datetime.now(timezone.utc))

	@classmethod
	def from_alert(cls, alert: Any, service_name: str) -> "AlertEvent":
		"""Событие об открытом алерте (черновик или строка БД)."""
		severity = raw_value(alert.severity)
		return cls(
			service_id=alert.service_id,
			level=_SEVERITY_LEVEL.get(severity, "info"),
			title=f"[{severity}] {service_name}",
			message=alert.message,
			metric=raw_value(alert.metric),
			ts=alert.timestamp,
		)
