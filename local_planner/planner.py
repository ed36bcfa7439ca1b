import logging
import threading
from typing import List, Optional, Sequence

import numpy as np

from mpc_controller import MPCController, TrackingResult, VehicleModel

from .config import PlannerConfig
from .exceptions import EmptyOrMalformedMap, MalformedScan, TransformUnavailable
from .gap_follower import GapFollower
from .grid_map import GridMap
from .reference_path import load_tracks
from .transforms import TransformProvider
from .types import LaserScan, OccupancyGrid, ReferenceTrajectory, Transform2D, VehicleState, Waypoint
from .waypoint_selector import WaypointSelector

logger = logging.getLogger(__name__)


def build_controller(config: PlannerConfig) -> MPCController:
    vehicle_model = VehicleModel(
        wheelbase_front=config.wheelbase_front,
        wheelbase_rear=config.wheelbase_rear,
        max_steering=config.max_steering,
        min_velocity=config.min_velocity,
        max_velocity=config.max_velocity,
        max_acceleration=config.max_acc,
        dt=config.dt,
    )
    return MPCController(
        vehicle_model,
        horizon=config.horizon,
        state_weights=np.array(config.state_weights),
        input_weights=np.array(config.input_weights),
        input_rate_weights=np.array(config.input_rate_weights),
        terminal_state_weights=(np.array(config.terminal_state_weights)
                                if config.terminal_state_weights is not None else None),
        default_speed=config.default_speed,
        reactive_speed=config.reactive_speed,
        braking_deceleration=config.braking_deceleration,
        max_consecutive_failures=config.max_consecutive_failures,
        solve_time_budget=config.solve_time_budget,
        qp_solver=config.qp_solver,
        solver_options=config.solver_options,
    )


def build_planner(config: PlannerConfig, transforms: TransformProvider,
                  grid: Optional[OccupancyGrid] = None) -> 'Planner':
    """
    Planner with the reference tracks named in the config.

    Raises:
        MalformedReferenceData: If a track file cannot be loaded
    """
    tracks = load_tracks(config.track_files, config.delimiter, config.skiprows)
    return Planner(config, tracks, transforms, grid=grid)


class Planner:
    """
    Owns the process-wide planner state and runs one handler per message.

    Handlers are serialized with a lock so the grid and the vehicle state
    have a single writer even when the host delivers callbacks concurrently.
    No handler lets a planner error escape; failures are logged and the
    affected part of the cycle is skipped.
    """

    def __init__(self, config: PlannerConfig, tracks: Sequence[ReferenceTrajectory],
                 transforms: TransformProvider, grid: Optional[OccupancyGrid] = None,
                 controller: Optional[MPCController] = None):
        self.config = config
        self.transforms = transforms
        self._lock = threading.Lock()
        self.state = VehicleState()

        self.gap_follower = GapFollower(
            bubble_radius=config.bubble_radius,
            gap_threshold=config.gap_threshold,
            gap_size_threshold=config.gap_size_threshold,
            max_range=config.max_scan,
            field_of_view=config.field_of_view,
        )
        self.selector = WaypointSelector(tracks, config.lookahead_distance, config.collision_points)
        self.controller = controller if controller is not None else build_controller(config)

        self.grid_map: Optional[GridMap] = None
        if grid is not None:
            self.set_map(grid)

        self.reactive_headings: List[float] = []
        self.target: Optional[Waypoint] = None
        self.opponent_distance: Optional[float] = None
        self.laser_to_map: Optional[Transform2D] = None
        self.map_to_vehicle: Optional[Transform2D] = None

    def set_map(self, grid: OccupancyGrid) -> bool:
        """Replace the grid, the previous one is kept when the new one is malformed."""
        try:
            grid_map = GridMap(grid, self.config.inflation_radius, self.config.decay_threshold,
                               self.config.map_scan_fraction)
        except EmptyOrMalformedMap as error:
            logger.error("Rejected map: %s", error)
            return False
        with self._lock:
            self.grid_map = grid_map
        logger.info("Map set: %dx%d cells at %.3f m", grid.width, grid.height, grid.resolution)
        return True

    def on_scan(self, scan: LaserScan) -> Optional[OccupancyGrid]:
        """
        Scan handler: reactive headings for the next control cycle and a grid update.

        Returns:
            Grid snapshot to publish, None when the grid update was skipped
        """
        try:
            scan.validate()
        except MalformedScan as error:
            logger.warning("Skipping scan: %s", error)
            return None

        with self._lock:
            self.reactive_headings = self.gap_follower.reactive_headings(scan)

            if self.grid_map is None:
                logger.warning("No map available, skipping grid update")
                return None
            try:
                self.laser_to_map = self.transforms.lookup_transform(self.config.map_frame,
                                                                     self.config.ego_laser)
            except TransformUnavailable as error:
                logger.warning("Skipping grid update: %s", error)
                return None
            return self.grid_map.update(scan, self.laser_to_map)

    def _select_target(self) -> Optional[Waypoint]:
        if self.grid_map is None:
            logger.warning("No map available, skipping waypoint selection")
            return None
        try:
            self.map_to_vehicle = self.transforms.lookup_transform(self.config.ego_car,
                                                                   self.config.map_frame)
        except TransformUnavailable as error:
            if self.map_to_vehicle is None:
                logger.warning("Skipping waypoint selection: %s", error)
                return None
            logger.warning("%s, using last known transform", error)
        return self.selector.select(self.state, self.map_to_vehicle, self.grid_map.grid)

    def on_odometry(self, state: VehicleState) -> TrackingResult:
        """
        Odometry handler: one control cycle.

        Returns:
            Tracking result whose command is to be published
        """
        with self._lock:
            self.state.update(state)
            self.target = self._select_target()
            return self.controller.track(self.state.as_array(), self.state.velocity,
                                         self.target, self.reactive_headings)

    def on_opponent_odometry(self) -> Optional[float]:
        """Distance to the opponent car, kept for diagnostics only."""
        with self._lock:
            try:
                opponent = self.transforms.lookup_transform(self.config.ego_car, self.config.opp_car)
            except TransformUnavailable as error:
                logger.debug("Opponent distance unavailable: %s", error)
                return self.opponent_distance
            self.opponent_distance = float(np.hypot(opponent.x, opponent.y))
            return self.opponent_distance
