from __future__ import annotations

import asyncio
import socket
import ssl
from dataclasses import dataclass
from datetime import datetime
from time import perf_counter
from typing import Callable

from cryptography import x509

from probewatch.classifier import SSL_MARKER
from probewatch.probers.base import Prober, target_host, url_port
from probewatch.types import CheckOutcome, CheckType, HealthStatus, Measurement, ServiceSpec, utcnow

CRITICAL_DAYS = 7
WARNING_DAYS = 30

# X509_V_ERR_CERT_HAS_EXPIRED
_CERT_EXPIRED_CODE = 10


@dataclass(frozen=True)
class CertificateInfo:
    valid_from: datetime
    valid_to: datetime
    issuer: str


class SslProber(Prober):
    """Проверка сертификата: срок действия и время TLS-рукопожатия."""

    check_type = CheckType.SSL

    def __init__(self, *, clock: Callable[[], float] = perf_counter, now: Callable[[], datetime] = utcnow) -> None:
        super().__init__(clock=clock)
        self._now = now

    async def fetch_certificate(self, host: str, port: int, timeout_s: float, verify: bool) -> CertificateInfo:
        ctx = ssl.create_default_context()
        if not verify:
            ctx.check_hostname = False
            ctx.verify_mode = ssl.CERT_NONE
        _, writer = await asyncio.wait_for(
            asyncio.open_connection(host, port, ssl=ctx, server_hostname=host),
            timeout=timeout_s,
        )
        try:
            ssl_object = writer.get_extra_info("ssl_object")
            der = ssl_object.getpeercert(binary_form=True) if ssl_object is not None else None
        finally:
            writer.close()
            try:
                await writer.wait_closed()
            except (OSError, ssl.SSLError):
                pass
        if not der:
            raise ValueError("Server did not present a certificate")
        cert = x509.load_der_x509_certificate(der)
        return CertificateInfo(
            valid_from=cert.not_valid_before_utc,
            valid_to=cert.not_valid_after_utc,
            issuer=cert.issuer.rfc4514_string(),
        )

    async def _probe(self, service: ServiceSpec, start: float) -> CheckOutcome:
        host = target_host(service.url)
        port = url_port(service.url) or service.port or 443
        metadata = {"host": host, "port": port}
        try:
            cert = await self.fetch_certificate(host, port, service.timeout_s, service.verify_ssl)
        except asyncio.TimeoutError:
            return self.down("Connection timed out", start, metadata)
        except ssl.SSLCertVerificationError as e:
            if e.verify_code == _CERT_EXPIRED_CODE:
                return self.down(f"{SSL_MARKER} has expired", start, metadata)
            return self.down(f"{SSL_MARKER} verification failed: {e.verify_message or e}", start, metadata)
        except ssl.SSLError as e:
            return self.down(f"SSL handshake failed: {e}", start, metadata)
        except ConnectionRefusedError:
            return self.down("Connection refused", start, metadata)
        except socket.gaierror:
            return self.down("Host not found", start, metadata)
        except OSError as e:
            return self.down(str(e) or "Connection error", start, metadata)
        except ValueError as e:
            return self.down(f"Invalid certificate: {e}", start, metadata)

        latency_ms = self.elapsed_ms(start)
        now = self._now()
        days_remaining = int((cert.valid_to - now).total_seconds() // 86400)
        metadata.update(
            valid_from=cert.valid_from.isoformat(),
            valid_to=cert.valid_to.isoformat(),
            days_remaining=days_remaining,
            issuer=cert.issuer,
            is_valid=cert.valid_from <= now < cert.valid_to,
        )
        if cert.valid_to <= now:
            return self.down(f"{SSL_MARKER} has expired", start, metadata)
        if days_remaining <= CRITICAL_DAYS:
            return self._expiring(HealthStatus.CRITICAL, days_remaining, latency_ms, metadata)
        if days_remaining <= WARNING_DAYS:
            return self._expiring(HealthStatus.WARNING, days_remaining, latency_ms, metadata)
        return self.finish(service, Measurement(latency_ms=latency_ms), metadata)

    def _expiring(self, status: HealthStatus, days: int, latency_ms: int, metadata: dict) -> CheckOutcome:
        return CheckOutcome(
            status=status,
            response_time=latency_ms,
            error=f"{SSL_MARKER} expires in {days} days",
            metadata=metadata,
        )
