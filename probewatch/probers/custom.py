from __future__ import annotations

import asyncio
import json
from typing import Any, Awaitable, Callable, Mapping

import aiohttp

from probewatch.probers.base import Prober
from probewatch.types import CheckOutcome, CheckType, HealthStatus, Measurement, ServiceSpec

CustomExecutor = Callable[[ServiceSpec], Awaitable[Mapping[str, Any]]]

_executors: dict[str, CustomExecutor] = {}


class ContractError(ValueError):
    """Ответ пользовательской проверки не соответствует контракту."""


def register_custom_executor(name: str, executor: CustomExecutor) -> None:
    """Зарегистрировать Python-исполнитель для custom_config={"executor": name}."""
    _executors[name] = executor


def unregister_custom_executor(name: str) -> None:
    _executors.pop(name, None)


class CustomProber(Prober):
    """Пользовательская проверка с явным контрактом.

    custom_config выбирает исполнителя:
      {"command": ["/usr/local/bin/check", "--json"]} - процесс, stdout = один JSON-объект;
      {"webhook": "https://...", "method": "POST"} - HTTP-вызов, тело ответа = JSON-объект;
      {"executor": "name"} - функция, зарегистрированная через register_custom_executor.

    Контракт результата: {"status"?: str, "ok"?: bool, "latency_ms"?: number,
    "message"?: str, "metadata"?: object}. Явный валидный status имеет приоритет,
    иначе ok=false -> down, а успешный результат классифицируется по задержке.
    """

    check_type = CheckType.CUSTOM

    async def _probe(self, service: ServiceSpec, start: float) -> CheckOutcome:
        config = service.custom_config or {}
        try:
            if "command" in config:
                payload = await self._run_command(config["command"], service.timeout_s)
            elif "webhook" in config:
                payload = await self._call_webhook(config["webhook"], str(config.get("method", "GET")), service)
            elif "executor" in config:
                executor = _executors.get(str(config["executor"]))
                if executor is None:
                    return self.down(f"Unknown custom executor: {config['executor']}", start)
                payload = _validate(await asyncio.wait_for(executor(service), timeout=service.timeout_s))
            else:
                return self.down("Custom check is not configured", start)
        except asyncio.TimeoutError:
            return self.down("Custom check timed out", start)
        except ContractError as e:
            return self.down(f"Custom check contract violation: {e}", start)
        except aiohttp.ClientError as e:
            return self.down(str(e) or "Custom webhook failed", start)
        except OSError as e:
            return self.down(f"Custom command failed: {e}", start)
        return self._interpret(service, payload, start)

    async def _run_command(self, command: Any, timeout_s: int) -> Mapping[str, Any]:
        if isinstance(command, str) or not command:
            raise ContractError("command must be a non-empty argv list")
        proc = await asyncio.create_subprocess_exec(
            *[str(part) for part in command],
            stdout=asyncio.subprocess.PIPE,
            stderr=asyncio.subprocess.PIPE,
        )
        try:
            stdout, stderr = await asyncio.wait_for(proc.communicate(), timeout=timeout_s)
        except asyncio.TimeoutError:
            try:
                proc.kill()
            except ProcessLookupError:
                pass
            await proc.wait()
            raise
        if proc.returncode != 0:
            reason = stderr.decode(errors="replace").strip()
            raise ContractError(f"exit code {proc.returncode}" + (f": {reason}" if reason else ""))
        return _parse_json(stdout.decode(errors="replace"))

    async def _call_webhook(self, url: str, method: str, service: ServiceSpec) -> Mapping[str, Any]:
        timeout = aiohttp.ClientTimeout(total=service.timeout_s)
        async with aiohttp.ClientSession(timeout=timeout) as session:
            kwargs: dict[str, Any] = {"headers": dict(service.request_headers)}
            if method.upper() not in ("GET", "HEAD"):
                kwargs["json"] = {"service_id": service.id, "url": service.url}
            async with session.request(method.upper(), url, **kwargs) as response:
                text = await response.text()
                if response.status >= 400:
                    raise ContractError(f"webhook returned HTTP {response.status}")
        return _parse_json(text)

    def _interpret(self, service: ServiceSpec, payload: Mapping[str, Any], start: float) -> CheckOutcome:
        latency = payload.get("latency_ms")
        latency_ms = int(latency) if isinstance(latency, (int, float)) else self.elapsed_ms(start)
        message = payload.get("message")
        metadata = payload.get("metadata") if isinstance(payload.get("metadata"), Mapping) else {}
        raw_status = payload.get("status")
        if raw_status is not None:
            try:
                status = HealthStatus(raw_status)
            except ValueError:
                return self.down(f"Custom check contract violation: unknown status {raw_status!r}", start)
            if status != HealthStatus.HEALTHY:
                return CheckOutcome(
                    status=status,
                    response_time=latency_ms,
                    error=str(message) if message else f"Custom check reported {status.value}",
                    metadata=metadata,
                )
        elif payload.get("ok") is False:
            return self.down(str(message) if message else "Custom check failed", start, metadata)
        return self.finish(service, Measurement(latency_ms=latency_ms), metadata)


def _parse_json(text: str) -> Mapping[str, Any]:
    try:
        payload = json.loads(text)
    except json.JSONDecodeError as e:
        raise ContractError(f"output is not JSON ({e.msg})") from e
    return _validate(payload)


def _validate(payload: Any) -> Mapping[str, Any]:
    if not isinstance(payload, dict):
        raise ContractError("output must be a JSON object")
    if "status" not in payload and "ok" not in payload:
        raise ContractError('output must contain "status" or "ok"')
    return payload
