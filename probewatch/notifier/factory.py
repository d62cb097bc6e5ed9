from __future__ import annotations

import os
from typing import List

from .base import CompositeNotifier, Notifier
from .log import LogNotifier


def build_notifier_from_env() -> Notifier:
	"""Построить агрегатор нотификаторов из переменных окружения (канал один: лог, имя логгера NOTIFY_LOG_NAME)."""
	channels: List[Notifier] = [LogNotifier(os.getenv("NOTIFY_LOG_NAME", "probewatch.alerts"))]
	return CompositeNotifier(channels)
