from __future__ import annotations

import abc
import logging
from typing import Iterable

from .types import AlertEvent

logger = logging.getLogger(__name__)


class Notifier(abc.ABC):
	@abc.abstractmethod
	async def send(self, event: AlertEvent) -> None:
		...


class CompositeNotifier(Notifier):
	def __init__(self, channels: Iterable[Notifier]):
		self._channels = list(channels)

	@property
	def channels(self) -> list[Notifier]:
		return list(self._channels)

	async def send(self, event: AlertEvent) -> None:
		for ch in self._channels:
			try:
				await ch.send(event)
			except Exception as e:
				# ошибка одного канала не мешает остальным и не роняет раннер
				logger.warning("notifier channel %s failed: %s", type(ch).__name__, e)
