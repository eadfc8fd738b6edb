"""Async client for the authoritative position service."""

from __future__ import annotations

import logging
from typing import Any

import aiohttp

from fleetmotion._api import positions as _positions_api
from fleetmotion._transport import JsonTransport, Transport
from fleetmotion.config import FleetConfig
from fleetmotion.exceptions import FleetError
from fleetmotion.models.positions import PositionsRequest, PositionsResponse

_logger = logging.getLogger(__name__)


class PositionServiceClient:
    """Client for the simulation backend that computes vehicle positions.

    Usage::

        async with PositionServiceClient(config) as client:
            response = await client.fetch_positions(request)

    Parameters
    ----------
    config : FleetConfig
        Service URLs and timeouts.
    session : aiohttp.ClientSession, optional
        Shared HTTP session; the client closes only sessions it created.
    transport : Transport, optional
        Pre-built transport, mainly for tests.
    """

    def __init__(
        self,
        config: FleetConfig,
        *,
        session: aiohttp.ClientSession | None = None,
        transport: Transport | None = None,
    ) -> None:
        self._config = config
        self._external_session = session is not None
        self._http_session = session
        self._transport: Transport | None = transport

    async def __aenter__(self) -> PositionServiceClient:
        if self._transport is None:
            if self._http_session is None:
                self._http_session = aiohttp.ClientSession()
            self._transport = JsonTransport(
                self._config.position_base_url,
                self._http_session,
                timeout=self._config.request_timeout,
            )
        return self

    async def __aexit__(self, *exc: Any) -> None:
        if not self._external_session and self._http_session is not None:
            await self._http_session.close()
            self._http_session = None
        self._transport = None

    def _require_transport(self) -> Transport:
        if self._transport is None:
            raise FleetError("Client not initialized. Use 'async with PositionServiceClient(...) as client:'")
        return self._transport

    async def fetch_positions(self, request: PositionsRequest) -> PositionsResponse:
        """Fetch authoritative positions for the vehicles in *request*.

        Raises
        ------
        FleetTransportError
            On network failure or a non-2xx reply.
        FleetApiError
            When the reply is not a usable position payload.
        """
        transport = self._require_transport()
        return await _positions_api.fetch_positions(transport, self._config.position_endpoint, request)
