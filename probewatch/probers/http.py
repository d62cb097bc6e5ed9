from __future__ import annotations

import asyncio
import logging
import os
import socket
from time import perf_counter
from typing import Any, Callable, Optional

import aiohttp

from probewatch.probers.base import Prober
from probewatch.types import CheckOutcome, CheckType, Measurement, ServiceSpec

logger = logging.getLogger(__name__)

DEFAULT_USER_AGENT = "Mozilla/5.0 (X11; Linux x86_64) probewatch/1.0"


def _build_trace_config() -> aiohttp.TraceConfig:
    # Фазы запроса пишем в trace_request_ctx конкретного запроса
    trace = aiohttp.TraceConfig()

    def mark(name: str):
        async def _cb(session, context, params) -> None:
            timings = context.trace_request_ctx
            if isinstance(timings, dict):
                timings[name] = perf_counter()
        return _cb

    trace.on_dns_resolvehost_start.append(mark("dns_start"))
    trace.on_dns_resolvehost_end.append(mark("dns_end"))
    trace.on_connection_create_start.append(mark("conn_start"))
    trace.on_connection_create_end.append(mark("conn_end"))
    trace.on_request_start.append(mark("req_start"))
    trace.on_request_end.append(mark("resp_headers"))
    return trace


def _phase_timings(timings: dict[str, float]) -> dict[str, Optional[int]]:
    def diff(a: str, b: str) -> Optional[int]:
        if a in timings and b in timings:
            return int((timings[b] - timings[a]) * 1000)
        return None
    return {
        "dns_ms": diff("dns_start", "dns_end"),
        "connect_ms": diff("conn_start", "conn_end"),
        "ttfb_ms": diff("req_start", "resp_headers"),
    }


def _decode_body(body: bytes, charset: Optional[str]) -> str:
    # неизвестная кодировка из Content-Type не должна превращать ответ в down
    try:
        return body.decode(charset or "utf-8", errors="replace")
    except LookupError:
        return body.decode("utf-8", errors="replace")


class HttpProber(Prober):
    """HTTP/HTTPS проверка: метод, заголовки, редиректы, проверка TLS, ожидаемый код и контент."""

    check_type = CheckType.HTTP

    def __init__(
        self,
        *,
        user_agent: Optional[str] = None,
        max_redirects: Optional[int] = None,
        clock: Callable[[], float] = perf_counter,
    ) -> None:
        super().__init__(clock=clock)
        self._user_agent = user_agent or os.getenv("HTTP_USER_AGENT", DEFAULT_USER_AGENT)
        self._max_redirects = max_redirects or int(os.getenv("HTTP_MAX_REDIRECTS", "5"))
        self._session: Optional[aiohttp.ClientSession] = None

    def _new_session(self) -> aiohttp.ClientSession:
        # без дефолтного таймаута, он задаётся на каждый запрос из настроек сервиса
        return aiohttp.ClientSession(
            headers={"User-Agent": self._user_agent},
            trace_configs=[_build_trace_config()],
        )

    async def open(self) -> None:
        if self._session is None:
            self._session = self._new_session()

    async def close(self) -> None:
        if self._session is not None:
            try:
                await self._session.close()
            except Exception as e:
                logger.warning("Failed to close session: %s", e)
        self._session = None

    async def _probe(self, service: ServiceSpec, start: float) -> CheckOutcome:
        own_session = self._session is None
        session = self._new_session() if own_session else self._session
        try:
            return await self._request(session, service, start)
        finally:
            if own_session:
                await session.close()

    async def _request(self, session: aiohttp.ClientSession, service: ServiceSpec, start: float) -> CheckOutcome:
        method = (service.http_method or "GET").upper()
        timings: dict[str, float] = {}
        kwargs: dict[str, Any] = {
            "headers": dict(service.request_headers),
            "timeout": aiohttp.ClientTimeout(total=service.timeout_s),
            "allow_redirects": service.follow_redirects,
            "max_redirects": self._max_redirects,
            # ssl=False отключает проверку сертификата
            "ssl": True if service.verify_ssl else False,
            "trace_request_ctx": timings,
        }
        if service.request_body and method not in ("GET", "HEAD"):
            kwargs["data"] = service.request_body

        try:
            # код ответа не валидируем на транспортном уровне: любые коды доступны для анализа
            async with session.request(method, service.url, **kwargs) as response:
                body = await response.read()
                latency_ms = self.elapsed_ms(start)
                status_code = response.status
                headers = dict(response.headers)
                text = _decode_body(body, response.charset)
        except asyncio.TimeoutError:
            return self.down("Connection timed out", start)
        except aiohttp.ClientConnectorCertificateError as e:
            if "expired" in str(e).lower():
                return self.down("SSL certificate has expired", start)
            return self.down(f"SSL certificate verification failed: {e}", start)
        except aiohttp.ClientSSLError as e:
            return self.down(str(e) or "SSL error", start)
        except aiohttp.ClientConnectorError as e:
            if isinstance(e.os_error, socket.gaierror):
                return self.down("Host not found", start)
            if isinstance(e.os_error, ConnectionRefusedError):
                return self.down("Connection refused", start)
            return self.down(str(e) or "Connection error", start)
        except aiohttp.ClientError as e:
            return self.down(str(e) or "Client error", start)

        expected_content = service.expected_response_content
        measurement = Measurement(
            latency_ms=latency_ms,
            status_code=status_code,
            expected_status_code=service.expected_status_code,
            content_missing=expected_content if expected_content and expected_content not in text else None,
        )
        metadata = {
            "status_code": status_code,
            "response_size": len(body),
            "headers": headers,
            **_phase_timings(timings),
        }
        return self.finish(service, measurement, metadata)
