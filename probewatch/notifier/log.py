from __future__ import annotations

import logging

from .base import Notifier
from .types import AlertEvent


_level_map = {
	"info": logging.INFO,
	"warn": logging.WARNING,
	"error": logging.ERROR,
}


class LogNotifier(Notifier):
	def __init__(self, name: str = "probewatch.alerts") -> None:
		self._logger = logging.getLogger(name)

	async def send(self, event: AlertEvent) -> None:
		lvl = _level_map.get(event.level, logging.INFO)
		self._logger.log(
			lvl,
			"title=%s, msg=%s, service_id=%s, metric=%s, incident_id=%s, ts=%s",
			event.title,
			event.message,
			event.service_id,
			event.metric,
			event.incident_id,
			event.ts.isoformat(),
		)
