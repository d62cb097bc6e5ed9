from __future__ import annotations

import asyncio
import socket

import aiohttp

from probewatch.probers.base import Prober, target_host
from probewatch.types import CheckOutcome, CheckType, Measurement, ServiceSpec


class DnsProber(Prober):
    """Резолв имени хоста через резолвер aiohttp; адреса попадают в metadata."""

    check_type = CheckType.DNS

    async def _probe(self, service: ServiceSpec, start: float) -> CheckOutcome:
        host = target_host(service.url)
        resolver = aiohttp.ThreadedResolver()
        try:
            records = await asyncio.wait_for(
                resolver.resolve(host, 0, family=socket.AF_UNSPEC),
                timeout=service.timeout_s,
            )
        except asyncio.TimeoutError:
            return self.down("DNS resolution timed out", start, {"host": host})
        except OSError as e:
            if isinstance(e, socket.gaierror) and e.errno == socket.EAI_NONAME:
                return self.down("Host not found", start, {"host": host})
            return self.down(str(e) or "DNS resolution failed", start, {"host": host})
        finally:
            await resolver.close()
        latency_ms = self.elapsed_ms(start)
        addresses: list[str] = []
        for record in records:
            address = record["host"]
            if address not in addresses:
                addresses.append(address)
        if not addresses:
            return self.down("No DNS records found", start, {"host": host})
        return self.finish(service, Measurement(latency_ms=latency_ms), {"host": host, "addresses": addresses})
