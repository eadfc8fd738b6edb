"""Configuration for fleetmotion."""

from __future__ import annotations

import dataclasses
import os
from collections.abc import Mapping
from typing import Any

from fleetmotion.exceptions import FleetConfigError


def _env_float(env: Mapping[str, str], key: str) -> float | None:
    value = env.get(key)
    if value is None or not value.strip():
        return None
    try:
        return float(value)
    except ValueError as exc:
        raise FleetConfigError(f"{key} must be numeric, got {value!r}") from exc


@dataclasses.dataclass(frozen=True)
class AnimationTuning:
    """Constants that shape how markers move between polls.

    Distances are metres, durations milliseconds, speeds km/h and
    offsets degrees.
    """

    default_speed_kmh: float = 30.0
    max_plausible_speed_kmh: float = 250.0
    min_leg_ms: float = 2_000.0
    max_leg_ms: float = 300_000.0
    catch_up_ms: float = 2_000.0
    drift_offset_deg: float = 0.00005
    drift_first_leg_ms: float = 12_000.0
    drift_leg_ms: float = 18_000.0
    waypoint_tolerance_m: float = 10.0
    path_key_precision: int = 6
    focus_min_zoom: int = 14
    fit_padding_px: int = 48
    frame_interval: float = 1 / 60


@dataclasses.dataclass(frozen=True)
class FleetConfig:
    """Engine and poll-cycle configuration.

    Parameters
    ----------
    position_base_url : str
        Base URL of the simulation backend that computes authoritative positions.
    position_endpoint : str
        Path of the batch position endpoint.
    routing_base_url : str
        Base URL of an OSRM-compatible routing service.
    routing_profile : str
        OSRM profile used for road paths.
    data_base_url : str
        Base URL of the PostgREST-style fleet data API.
    data_api_key : str or None
        API key sent to the fleet data API.
    request_timeout : float
        Total timeout in seconds for a single HTTP request.
    refresh_interval : float
        Requested poll interval in seconds.  Rounded to whole minutes,
        never below one minute.
    app_name : str
        Dashboard title.
    animation : AnimationTuning
        Motion constants.
    """

    position_base_url: str = "http://localhost:8000"
    position_endpoint: str = "/api/simulation/positions"
    routing_base_url: str = "https://router.project-osrm.org"
    routing_profile: str = "driving"
    data_base_url: str = "http://localhost:54321"
    data_api_key: str | None = None
    request_timeout: float = 30.0
    refresh_interval: float = 600.0
    app_name: str = "GPS Simulation Dashboard"
    animation: AnimationTuning = dataclasses.field(default_factory=AnimationTuning)

    @property
    def refresh_minutes(self) -> int:
        """Poll period in whole minutes."""
        if self.refresh_interval <= 0:
            return 10
        return max(1, round(self.refresh_interval / 60))

    @property
    def refresh_seconds(self) -> float:
        return float(self.refresh_minutes * 60)

    @classmethod
    def from_env(cls, **overrides: Any) -> FleetConfig:
        """Create configuration from ``FLEET_*`` environment variables.

        Explicit keyword arguments override environment values.

        Parameters
        ----------
        **overrides
            Explicit field values that take precedence over env vars.

        Returns
        -------
        FleetConfig
            Populated configuration.

        Raises
        ------
        FleetConfigError
            If a numeric variable cannot be parsed.
        """
        env = os.environ

        animation_overrides = overrides.pop("animation", None)
        animation_kwargs: dict[str, Any] = {}
        _ENV_ANIMATION_MAP = {
            "FLEET_DEFAULT_SPEED_KMH": "default_speed_kmh",
            "FLEET_MIN_LEG_MS": "min_leg_ms",
            "FLEET_MAX_LEG_MS": "max_leg_ms",
            "FLEET_WAYPOINT_TOLERANCE_M": "waypoint_tolerance_m",
            "FLEET_FRAME_INTERVAL": "frame_interval",
        }
        for env_key, field_name in _ENV_ANIMATION_MAP.items():
            parsed = _env_float(env, env_key)
            if parsed is not None:
                animation_kwargs[field_name] = parsed

        if isinstance(animation_overrides, dict):
            animation_kwargs.update(animation_overrides)
        elif isinstance(animation_overrides, AnimationTuning):
            animation_kwargs = dataclasses.asdict(animation_overrides)

        animation = AnimationTuning(**animation_kwargs) if animation_kwargs else AnimationTuning()

        _ENV_CONFIG_MAP = {
            "FLEET_POSITION_BASE_URL": "position_base_url",
            "FLEET_POSITION_ENDPOINT": "position_endpoint",
            "FLEET_ROUTING_BASE_URL": "routing_base_url",
            "FLEET_ROUTING_PROFILE": "routing_profile",
            "FLEET_DATA_BASE_URL": "data_base_url",
            "FLEET_DATA_API_KEY": "data_api_key",
            "FLEET_APP_NAME": "app_name",
        }
        config_kwargs: dict[str, Any] = {"animation": animation}
        for env_key, field_name in _ENV_CONFIG_MAP.items():
            val = env.get(env_key)
            if val is not None:
                config_kwargs[field_name] = val

        if "request_timeout" not in overrides:
            timeout = _env_float(env, "FLEET_REQUEST_TIMEOUT")
            if timeout is not None:
                config_kwargs["request_timeout"] = timeout

        if "refresh_interval" not in overrides:
            interval = _env_float(env, "FLEET_REFRESH_INTERVAL_SEC")
            if interval is not None:
                config_kwargs["refresh_interval"] = interval

        config_kwargs.update(overrides)

        return cls(**config_kwargs)
