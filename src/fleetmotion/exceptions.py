"""Custom exception hierarchy for fleetmotion."""

from __future__ import annotations


class FleetError(Exception):
    """Base exception for all fleetmotion errors."""


class FleetConfigError(FleetError):
    """Invalid or missing configuration."""


class FleetTransportError(FleetError):
    """HTTP-level failure (network, non-2xx, invalid JSON)."""

    def __init__(
        self,
        message: str,
        *,
        status_code: int | None = None,
        endpoint: str = "",
    ) -> None:
        self.status_code = status_code
        self.endpoint = endpoint
        super().__init__(message)


class FleetApiError(FleetError):
    """A service answered with a well-formed but unusable response."""

    def __init__(
        self,
        message: str,
        *,
        code: str = "",
        endpoint: str = "",
    ) -> None:
        self.code = code
        self.endpoint = endpoint
        super().__init__(message)


class FleetDataError(FleetApiError):
    """The fleet data source returned rows that could not be used.

    Raised for vehicle, route, waypoint or simulation-state queries.
    The dashboard treats it like any other refresh failure.
    """
