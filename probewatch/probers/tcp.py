from __future__ import annotations

import asyncio
import socket
from typing import Optional

from probewatch.probers.base import Prober, target_host, url_port
from probewatch.types import CheckOutcome, CheckType, Measurement, ServiceSpec


class TcpProber(Prober):
    """Открыть TCP-соединение к (host, port); успех = установленное соединение."""

    check_type = CheckType.TCP

    def resolve_port(self, service: ServiceSpec) -> Optional[int]:
        # tcp: порт из адреса цели, затем поле port
        return url_port(service.url) or service.port

    async def _probe(self, service: ServiceSpec, start: float) -> CheckOutcome:
        host = target_host(service.url)
        port = self.resolve_port(service)
        if not port:
            return self.down("No port configured", start)
        metadata = {"host": host, "port": port}
        try:
            _, writer = await asyncio.wait_for(asyncio.open_connection(host, port), timeout=service.timeout_s)
        except asyncio.TimeoutError:
            return self.down("Connection timed out", start, metadata)
        except ConnectionRefusedError:
            return self.down("Connection refused", start, metadata)
        except socket.gaierror:
            return self.down("Host not found", start, metadata)
        except OSError as e:
            return self.down(str(e) or "Connection error", start, metadata)
        latency_ms = self.elapsed_ms(start)
        writer.close()
        try:
            await writer.wait_closed()
        except OSError:
            pass
        return self.finish(service, Measurement(latency_ms=latency_ms), metadata)


class PortProber(TcpProber):
    check_type = CheckType.PORT

    def resolve_port(self, service: ServiceSpec) -> Optional[int]:
        # port: поле port, затем порт из адреса цели
        return service.port or url_port(service.url)
