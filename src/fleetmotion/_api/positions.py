"""Authoritative position endpoint.

Endpoint:
  - POST {position_endpoint} (batch, one entry per vehicle)
"""

from __future__ import annotations

import logging
from typing import Any

from pydantic import ValidationError

from fleetmotion._redact import redact_for_log
from fleetmotion._transport import Transport
from fleetmotion.exceptions import FleetApiError
from fleetmotion.models.positions import PositionsRequest, PositionsResponse

_logger = logging.getLogger(__name__)


def build_positions_payload(request: PositionsRequest) -> dict[str, Any]:
    return request.model_dump(mode="json")


def parse_positions_response(endpoint: str, body: Any) -> PositionsResponse:
    """Validate a position-service reply.

    Raises
    ------
    FleetApiError
        When the body is neither a list nor an object, carries an
        ``error`` key, or fails validation as a whole.
    """
    if body is None:
        return PositionsResponse()
    if not isinstance(body, (dict, list)):
        raise FleetApiError(
            f"{endpoint} returned {type(body).__name__}, expected object or list",
            code="invalid_body",
            endpoint=endpoint,
        )
    if isinstance(body, dict) and body.get("error"):
        raise FleetApiError(
            f"{endpoint} failed: {body.get('error')}",
            code=str(body.get("code", "")),
            endpoint=endpoint,
        )
    try:
        return PositionsResponse.model_validate(body)
    except ValidationError as exc:
        raise FleetApiError(
            f"{endpoint} returned an unusable position payload",
            code="invalid_body",
            endpoint=endpoint,
        ) from exc


async def fetch_positions(
    transport: Transport,
    endpoint: str,
    request: PositionsRequest,
) -> PositionsResponse:
    """Request authoritative positions for every vehicle in *request*.

    Parameters
    ----------
    transport : Transport
        Transport bound to the position service.
    endpoint : str
        Batch endpoint path.
    request : PositionsRequest
        Vehicles, their waypoints for the day and weekday flags.

    Returns
    -------
    PositionsResponse
        Parsed results; malformed entries are dropped.
    """
    payload = build_positions_payload(request)
    _logger.debug(
        "Position request day=%d vehicles=%d",
        request.day_of_week,
        len(request.vehicles),
    )
    body = await transport.post_json(endpoint, payload)
    response = parse_positions_response(endpoint, body)
    _logger.debug(
        "Position response vehicles=%d raw=%s",
        len(response.vehicles),
        redact_for_log(body, max_string=256),
    )
    return response
