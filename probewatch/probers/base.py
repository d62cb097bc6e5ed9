from __future__ import annotations

import abc
import asyncio
import logging
from time import perf_counter
from typing import Any, Callable, Mapping, Optional
from urllib.parse import urlsplit

from probewatch.classifier import classify, describe
from probewatch.types import CheckOutcome, CheckType, HealthStatus, Measurement, ServiceSpec

logger = logging.getLogger(__name__)

ERR_MAX_LEN = 512


def _split(url: str):
    # "example.com:5432" без схемы urlsplit разбирает как path, поэтому добавляем "//"
    return urlsplit(url if "://" in url else f"//{url}")


def target_host(url: str) -> str:
    host = _split(url.strip()).hostname
    if not host:
        raise ValueError(f"Cannot extract hostname from {url!r}")
    return host


def url_port(url: str) -> Optional[int]:
    try:
        return _split(url.strip()).port
    except ValueError:
        return None


class Prober(abc.ABC):
    """Базовый пробер: замер времени, классификация и перевод любых сбоев в down."""

    check_type: CheckType

    def __init__(self, *, clock: Callable[[], float] = perf_counter) -> None:
        self._clock = clock

    async def open(self) -> None:
        """Захватить общие ресурсы (сессии и т.п.), по умолчанию ничего."""

    async def close(self) -> None:
        ...

    async def __aenter__(self):
        await self.open()
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb) -> None:
        await self.close()

    def elapsed_ms(self, start: float) -> int:
        return max(0, int((self._clock() - start) * 1000))

    async def probe(self, service: ServiceSpec) -> CheckOutcome:
        start = self._clock()
        try:
            return await self._probe(service, start)
        except asyncio.CancelledError:
            raise
        except Exception as e:
            logger.exception("unexpected %s probe failure for %s", self.check_type.value, service.url)
            return self.down(f"Unexpected error: {e}", start)

    @abc.abstractmethod
    async def _probe(self, service: ServiceSpec, start: float) -> CheckOutcome:
        ...

    def down(self, error: str, start: float, metadata: Optional[Mapping[str, Any]] = None) -> CheckOutcome:
        return CheckOutcome(
            status=HealthStatus.DOWN,
            response_time=self.elapsed_ms(start),
            error=(error or "Unknown error")[:ERR_MAX_LEN],
            metadata=dict(metadata or {}),
        )

    def finish(self, service: ServiceSpec, measurement: Measurement, metadata: Optional[Mapping[str, Any]] = None) -> CheckOutcome:
        """Классифицировать измерение с порогами сервиса и собрать CheckOutcome."""
        status = classify(measurement, service.thresholds)
        return CheckOutcome(
            status=status,
            response_time=measurement.latency_ms or 0,
            error=describe(measurement, service.thresholds, status),
            metadata=dict(metadata or {}),
        )
