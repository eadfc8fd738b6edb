"""fleetmotion - Animated fleet positions from sparse waypoints and periodic fixes."""

from importlib.metadata import PackageNotFoundError, version

try:
    __version__ = version("fleetmotion")
except PackageNotFoundError:
    __version__ = "0+local"
from fleetmotion.client import PositionServiceClient
from fleetmotion.config import AnimationTuning, FleetConfig
from fleetmotion.dashboard import FleetDashboard, build_vehicle_list
from fleetmotion.datasource import FleetDataSource, RestFleetDataSource
from fleetmotion.exceptions import (
    FleetApiError,
    FleetConfigError,
    FleetDataError,
    FleetError,
    FleetTransportError,
)
from fleetmotion.geometry import LatLng, distance_meters, path_length, point_at_fraction
from fleetmotion.markers import MapSurface, Marker, MarkerSynchronizer
from fleetmotion.models import (
    PositionsRequest,
    PositionsResponse,
    PositionStatus,
    RouteRecord,
    SimulationState,
    VehicleListItem,
    VehiclePosition,
    VehicleRecord,
    VehicleStatus,
    VehicleViewModel,
    Waypoint,
    WaypointRef,
)
from fleetmotion.reconciler import PositionReconciler
from fleetmotion.road_paths import OsrmRouting, RoadPath, RoadPathResolver, RoutingCapability, RoutingFailure
from fleetmotion.scheduler import AnimationScheduler, leg_duration_ms
from fleetmotion.sequencer import next_waypoint
from fleetmotion.state import AnimationState, ViewState
from fleetmotion.view import MapView

__all__ = [
    "__version__",
    "AnimationScheduler",
    "AnimationState",
    "AnimationTuning",
    "FleetApiError",
    "FleetConfig",
    "FleetConfigError",
    "FleetDashboard",
    "FleetDataError",
    "FleetDataSource",
    "FleetError",
    "FleetTransportError",
    "LatLng",
    "MapSurface",
    "MapView",
    "Marker",
    "MarkerSynchronizer",
    "OsrmRouting",
    "PositionReconciler",
    "PositionServiceClient",
    "PositionStatus",
    "PositionsRequest",
    "PositionsResponse",
    "RestFleetDataSource",
    "RoadPath",
    "RoadPathResolver",
    "RouteRecord",
    "RoutingCapability",
    "RoutingFailure",
    "SimulationState",
    "VehicleListItem",
    "VehiclePosition",
    "VehicleRecord",
    "VehicleStatus",
    "VehicleViewModel",
    "ViewState",
    "Waypoint",
    "WaypointRef",
    "build_vehicle_list",
    "distance_meters",
    "leg_duration_ms",
    "next_waypoint",
    "path_length",
    "point_at_fraction",
]
