from __future__ import annotations

import logging
from typing import Mapping, Optional

from probewatch.logging_config import check_context
from probewatch.probers.base import Prober
from probewatch.probers.custom import CustomProber
from probewatch.probers.dns import DnsProber
from probewatch.probers.http import HttpProber
from probewatch.probers.ping import PingProber
from probewatch.probers.tcp import PortProber, TcpProber
from probewatch.probers.tls import SslProber
from probewatch.types import CheckOutcome, CheckType, HealthStatus, ServiceSpec

logger = logging.getLogger(__name__)


class UnsupportedCheckType(ValueError):
    """Ошибка конфигурации: для типа проверки нет пробера."""


_registry: dict[CheckType, type[Prober]] = {
    CheckType.HTTP: HttpProber,
    CheckType.PING: PingProber,
    CheckType.TCP: TcpProber,
    CheckType.PORT: PortProber,
    CheckType.DNS: DnsProber,
    CheckType.SSL: SslProber,
    CheckType.CUSTOM: CustomProber,
}


def register_prober(check_type: CheckType, prober_cls: type[Prober]) -> None:
    _registry[check_type] = prober_cls


def build_probers() -> dict[CheckType, Prober]:
    return {check_type: cls() for check_type, cls in _registry.items()}


class ProbeDispatcher:
    """Выбор пробера по типу проверки. Использовать внутри 'async with', чтобы делить HTTP-сессию."""

    def __init__(self, probers: Optional[Mapping[CheckType, Prober]] = None) -> None:
        self._probers = dict(probers) if probers is not None else build_probers()

    async def __aenter__(self) -> "ProbeDispatcher":
        for prober in self._probers.values():
            await prober.open()
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb) -> None:
        for prober in self._probers.values():
            await prober.close()

    def prober_for(self, check_type: CheckType | str) -> Prober:
        prober = None
        if isinstance(check_type, CheckType):
            prober = self._probers.get(check_type)
        if prober is None:
            raise UnsupportedCheckType(f"Unsupported check type: {getattr(check_type, 'value', check_type)}")
        return prober

    async def probe(self, service: ServiceSpec) -> CheckOutcome:
        if service.paused:
            return CheckOutcome(status=HealthStatus.PENDING, error="Service checks paused")
        prober = self.prober_for(service.check_type)
        logger.info("Начинаем проверку: %s (%s)", service.url, prober.check_type.value)
        outcome = await prober.probe(service)
        context = check_context(service.id, prober.check_type, outcome.status)
        if outcome.status == HealthStatus.HEALTHY:
            logger.info("Успешная проверка %s: %sms", service.url, outcome.response_time, extra=context)
        else:
            logger.warning("Проверка %s: %s (%s)", service.url, outcome.status.value, outcome.error, extra=context)
        return outcome


async def probe(service: ServiceSpec) -> CheckOutcome:
    """Одна проверка одного сервиса без общего пула ресурсов."""
    async with ProbeDispatcher() as dispatcher:
        return await dispatcher.probe(service)
