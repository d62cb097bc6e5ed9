from __future__ import annotations

import hmac
import logging
import os
from fastapi import Header, HTTPException, Request, status

logger = logging.getLogger(__name__)


async def api_key_auth(request: Request, x_api_key: str | None = Header(default=None)) -> None:
	"""Ключ для эндпоинтов, которые запускают проверки или меняют алерты и инциденты.

	Без API_KEY в окружении проверка отключена (локальный запуск, тесты).
	Нет заголовка X-API-KEY -> 401 "api key is required", ключ не совпал -> 401 "invalid api key".
	"""
	required = os.getenv("API_KEY")
	if not required:
		return
	if not x_api_key:
		logger.warning("rejected %s %s: missing api key", request.method, request.url.path)
		raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="api key is required")
	if not hmac.compare_digest(x_api_key.encode("utf-8"), required.encode("utf-8")):
		logger.warning("rejected %s %s: invalid api key", request.method, request.url.path)
		raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="invalid api key")
