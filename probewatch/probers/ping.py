from __future__ import annotations

import asyncio
import os
import re
from time import perf_counter
from typing import Callable, Optional

from probewatch.probers.base import Prober, target_host
from probewatch.types import CheckOutcome, CheckType, Measurement, ServiceSpec

_RTT_RE = re.compile(r"time[=<]\s*(\d+(?:\.\d+)?)\s*ms")
_LOSS_RE = re.compile(r"(\d+(?:\.\d+)?)%\s*packet loss")


class PingProber(Prober):
    """ICMP-проверка через системный ping (сырые сокеты требуют root)."""

    check_type = CheckType.PING

    def __init__(self, *, binary: Optional[str] = None, clock: Callable[[], float] = perf_counter) -> None:
        super().__init__(clock=clock)
        self._binary = binary or os.getenv("PING_BINARY", "ping")

    def command(self, host: str, timeout_s: int) -> list[str]:
        return [self._binary, "-c", "1", "-W", str(max(1, int(timeout_s))), host]

    async def _probe(self, service: ServiceSpec, start: float) -> CheckOutcome:
        host = target_host(service.url)
        try:
            proc = await asyncio.create_subprocess_exec(
                *self.command(host, service.timeout_s),
                stdout=asyncio.subprocess.PIPE,
                stderr=asyncio.subprocess.PIPE,
            )
        except FileNotFoundError:
            return self.down(f"ping executable not found: {self._binary}", start, {"host": host})
        try:
            # ОС сама ограничивает ожидание через -W, wait_for страхует от зависшего процесса
            stdout, stderr = await asyncio.wait_for(proc.communicate(), timeout=service.timeout_s + 1)
        except asyncio.TimeoutError:
            try:
                proc.kill()
            except ProcessLookupError:
                pass
            await proc.wait()
            return self.down("Ping timed out", start, {"host": host})

        output = stdout.decode(errors="replace")
        loss_match = _LOSS_RE.search(output)
        metadata = {
            "host": host,
            "packet_loss": float(loss_match.group(1)) if loss_match else None,
        }
        if proc.returncode != 0:
            reason = stderr.decode(errors="replace").strip()
            return self.down(reason or "Host unreachable", start, metadata)
        rtt_match = _RTT_RE.search(output)
        latency_ms = int(round(float(rtt_match.group(1)))) if rtt_match else self.elapsed_ms(start)
        return self.finish(service, Measurement(latency_ms=latency_ms), metadata)
