"""
Local planner for an autonomous race car.

Keeps a decaying obstacle layer on an occupancy grid, proposes reactive
gap-following headings, selects a lookahead target on the reference tracks
and hands everything to the MPC trajectory tracker.
"""

from .config import PlannerConfig, config_from_dict, load_config
from .exceptions import (EmptyOrMalformedMap, MalformedReferenceData, MalformedScan, PlannerError,
                         TransformUnavailable)
from .gap_follower import GapFollower
from .grid_map import GridMap
from .planner import Planner, build_controller, build_planner
from .reference_path import load_reference_path, load_tracks
from .transforms import StaticTransformProvider, TransformProvider
from .types import LaserScan, OccupancyGrid, ReferenceTrajectory, Transform2D, VehicleState, Waypoint
from .waypoint_selector import WaypointSelector

__all__ = [
    'PlannerConfig', 'config_from_dict', 'load_config',
    'PlannerError', 'TransformUnavailable', 'EmptyOrMalformedMap', 'MalformedReferenceData', 'MalformedScan',
    'GapFollower', 'GridMap', 'Planner', 'build_controller', 'build_planner',
    'load_reference_path', 'load_tracks',
    'StaticTransformProvider', 'TransformProvider',
    'LaserScan', 'OccupancyGrid', 'ReferenceTrajectory', 'Transform2D', 'VehicleState', 'Waypoint',
    'WaypointSelector',
]
