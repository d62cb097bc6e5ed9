from __future__ import annotations

import json
import logging
import os
from typing import Any

_TEXT_FORMAT = "%(asctime)s %(levelname)s %(name)s - %(message)s"

# Контекст проверки, который проберы и раннер передают через extra=
CONTEXT_FIELDS = ("service_id", "check_type", "status", "alert_id", "incident_id")


def check_context(service_id: Any = None, check_type: Any = None, status: Any = None, **ids: Any) -> dict[str, Any]:
	"""Словарь для extra= с непустыми полями контекста; enum-значения приводятся к строкам."""
	raw = {"service_id": service_id, "check_type": check_type, "status": status, **ids}
	return {k: getattr(v, "value", v) for k, v in raw.items() if v is not None and k in CONTEXT_FIELDS}


class JsonFormatter(logging.Formatter):
	"""Одна JSON-строка на запись: уровень, логгер, сообщение, время и контекст проверки, если он есть."""

	def format(self, record: logging.LogRecord) -> str:
		payload: dict[str, Any] = {
			"level": record.levelname,
			"logger": record.name,
			"msg": record.getMessage(),
			"time": self.formatTime(record, datefmt="%Y-%m-%dT%H:%M:%S%z"),
		}
		for name in CONTEXT_FIELDS:
			value = getattr(record, name, None)
			if value is not None:
				payload[name] = value
		if record.exc_info:
			payload["exc_info"] = self.formatException(record.exc_info)
		return json.dumps(payload, ensure_ascii=False, default=str)


def setup_logging() -> None:
	"""Логирование probewatch: уровень из LOG_LEVEL, JSON через LOG_JSON.

	Шумные логгеры aiohttp.access и sqlalchemy.engine поднимаются до WARNING,
	чтобы пакетный прогон не тонул в строках доступа и SQL.
	"""
	level = os.getenv("LOG_LEVEL", "INFO").upper()
	use_json = os.getenv("LOG_JSON", "false").lower() in ("1", "true", "yes")
	root = logging.getLogger()
	root.setLevel(level)
	# Очистить имеющиеся обработчики
	for h in list(root.handlers):
		root.removeHandler(h)
		h.close()
	handler = logging.StreamHandler()
	if use_json:
		handler.setFormatter(JsonFormatter())
	else:
		handler.setFormatter(logging.Formatter(_TEXT_FORMAT))
	root.addHandler(handler)
	for noisy in ("aiohttp.access", "sqlalchemy.engine"):
		logging.getLogger(noisy).setLevel(logging.WARNING)
