"""JSON-over-HTTP transport shared by the position, data and routing clients."""

from __future__ import annotations

import json
import logging
from collections.abc import Mapping
from typing import Any, Protocol

import aiohttp

from fleetmotion._redact import redact_for_log
from fleetmotion.exceptions import FleetTransportError

_logger = logging.getLogger(__name__)

USER_AGENT = "fleetmotion/1"


class Transport(Protocol):
    """Structural transport interface used by endpoint modules.

    Tests pass in doubles that return canned payloads.
    """

    async def get_json(
        self,
        endpoint: str,
        *,
        params: Mapping[str, str] | None = None,
        headers: Mapping[str, str] | None = None,
    ) -> Any: ...

    async def post_json(
        self,
        endpoint: str,
        payload: Any,
        *,
        headers: Mapping[str, str] | None = None,
    ) -> Any: ...


class JsonTransport:
    """aiohttp transport bound to one base URL."""

    def __init__(
        self,
        base_url: str,
        http_session: aiohttp.ClientSession,
        *,
        timeout: float = 30.0,
        default_headers: Mapping[str, str] | None = None,
    ) -> None:
        self._base_url = base_url.rstrip("/")
        self._http = http_session
        self._timeout = aiohttp.ClientTimeout(total=timeout)
        self._default_headers: dict[str, str] = {
            "accept": "application/json",
            "user-agent": USER_AGENT,
        }
        if default_headers:
            self._default_headers.update(default_headers)

    @property
    def base_url(self) -> str:
        return self._base_url

    def _headers(self, extra: Mapping[str, str] | None) -> dict[str, str]:
        headers = dict(self._default_headers)
        if extra:
            headers.update(extra)
        return headers

    async def get_json(
        self,
        endpoint: str,
        *,
        params: Mapping[str, str] | None = None,
        headers: Mapping[str, str] | None = None,
    ) -> Any:
        """GET *endpoint* and decode the JSON body.

        Raises
        ------
        FleetTransportError
            On network failure, a non-2xx status or a non-JSON body.
        """
        url = f"{self._base_url}{endpoint}"
        _logger.debug("GET %s params=%s", url, redact_for_log(dict(params or {})))
        return await self._request("GET", url, endpoint, params=params, headers=self._headers(headers))

    async def post_json(
        self,
        endpoint: str,
        payload: Any,
        *,
        headers: Mapping[str, str] | None = None,
    ) -> Any:
        """POST *payload* as JSON to *endpoint* and decode the JSON reply."""
        url = f"{self._base_url}{endpoint}"
        merged = self._headers(headers)
        merged["content-type"] = "application/json; charset=UTF-8"
        _logger.debug("POST %s", url)
        return await self._request(
            "POST",
            url,
            endpoint,
            data=json.dumps(payload, separators=(",", ":"), default=str),
            headers=merged,
        )

    async def _request(self, method: str, url: str, endpoint: str, **kwargs: Any) -> Any:
        try:
            async with self._http.request(method, url, timeout=self._timeout, **kwargs) as resp:
                text = await resp.text()
                if not 200 <= resp.status < 300:
                    raise FleetTransportError(
                        f"HTTP {resp.status} from {endpoint}: {text[:200]}",
                        status_code=resp.status,
                        endpoint=endpoint,
                    )
        except FleetTransportError:
            raise
        except TimeoutError as exc:
            raise FleetTransportError(f"Request to {endpoint} timed out", endpoint=endpoint) from exc
        except aiohttp.ClientError as exc:
            raise FleetTransportError(
                f"Request to {endpoint} failed: {exc}",
                endpoint=endpoint,
            ) from exc

        if not text.strip():
            return None
        try:
            return json.loads(text)
        except json.JSONDecodeError as exc:
            raise FleetTransportError(
                f"Invalid JSON from {endpoint}: {text[:200]}",
                endpoint=endpoint,
            ) from exc
