"""HTTP client for the backend that mints voice call ids."""

from __future__ import annotations

import asyncio
import logging
from collections.abc import Mapping
from typing import Any, Protocol

import aiohttp

from demo_telephony.errors import ExternalServiceFailure

logger = logging.getLogger(__name__)

CREATE_VOICE_CALL_PATH = "/api/createVoiceCall"
SET_CALL_CENTER_CONFIG_PATH = "/api/setCallCenterConfig"


class CallRegistrar(Protocol):
    async def register_call(
        self, phone_number: str | None, attributes: Mapping[str, Any]
    ) -> str | None: ...

    async def configure_tenant(self, call_center_config: Mapping[str, Any]) -> bool: ...


class RegistrationClient:
    """Talks to the registration backend over a shared aiohttp session.

    A ``{"success": false}`` answer is not an error: ``register_call``
    returns None and the caller picks its own id. Transport failures and
    HTTP error statuses raise ExternalServiceFailure and are never retried.
    """

    def __init__(
        self,
        session: aiohttp.ClientSession,
        base_url: str,
        *,
        timeout: float = 5.0,
    ) -> None:
        self._session = session
        self._base_url = base_url.rstrip("/")
        self._timeout = aiohttp.ClientTimeout(total=timeout)

    async def register_call(
        self, phone_number: str | None, attributes: Mapping[str, Any]
    ) -> str | None:
        body = await self._post(
            "createVoiceCall",
            CREATE_VOICE_CALL_PATH,
            {"phoneNumber": phone_number, **attributes},
        )
        call_id = body.get("voiceCallId")
        if not call_id or body.get("success") is False:
            logger.warning("Registration declined for %s: %s", phone_number, body)
            return None
        return str(call_id)

    async def configure_tenant(self, call_center_config: Mapping[str, Any]) -> bool:
        body = await self._post(
            "setCallCenterConfig",
            SET_CALL_CENTER_CONFIG_PATH,
            dict(call_center_config),
        )
        return bool(body.get("success"))

    async def _post(
        self, operation: str, path: str, payload: dict[str, Any]
    ) -> dict[str, Any]:
        url = self._base_url + path
        try:
            async with self._session.post(
                url, json=payload, timeout=self._timeout
            ) as resp:
                resp.raise_for_status()
                body = await resp.json(content_type=None)
        except (aiohttp.ClientError, asyncio.TimeoutError, ValueError) as exc:
            logger.error("%s request to %s failed: %s", operation, url, exc)
            detail = str(exc) or type(exc).__name__
            raise ExternalServiceFailure(operation, detail) from exc
        if not isinstance(body, dict):
            raise ExternalServiceFailure(operation, f"unexpected response {body!r}")
        logger.debug("%s response: %s", operation, body)
        return body
