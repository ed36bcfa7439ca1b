"""
Static configuration set of the planner, loaded once at start-up.
"""

import logging
from dataclasses import asdict, dataclass, field, fields
from typing import Dict, List, Optional

import numpy as np
import yaml

logger = logging.getLogger(__name__)


@dataclass
class PlannerConfig:
    # Waypoint selection
    lookahead_distance: float = 2.5
    collision_points: int = 0

    # Gap following
    bubble_radius: float = 0.40
    gap_threshold: float = 2.0
    gap_size_threshold: int = 30
    max_scan: float = 5.0
    field_of_view: float = float(np.pi)

    # Grid map
    inflation_radius: int = 3
    decay_threshold: int = 50
    map_scan_fraction: float = 2.0 / 3.0

    # Vehicle model
    wheelbase_front: float = 0.15875
    wheelbase_rear: float = 0.17145
    max_steering: float = 0.4189
    min_velocity: float = 0.0
    max_velocity: float = 7.0
    max_acc: float = 9.51

    # MPC
    dt: float = 0.1
    horizon: int = 10
    state_weights: List[float] = field(default_factory=lambda: [10.0, 10.0, 1.0])
    input_weights: List[float] = field(default_factory=lambda: [0.1, 0.5])
    input_rate_weights: List[float] = field(default_factory=lambda: [1.0, 0.5])
    terminal_state_weights: Optional[List[float]] = None
    default_speed: float = 1.0
    reactive_speed: float = 1.0
    braking_deceleration: float = 2.0
    max_consecutive_failures: int = 1
    solve_time_budget: Optional[float] = 0.05
    qp_solver: str = 'qpoases'
    solver_options: Dict = field(default_factory=dict)

    # Reference data
    track_files: List[str] = field(default_factory=list)
    delimiter: str = ','
    skiprows: int = 0

    # Frames
    map_frame: str = 'map'
    ego_car: str = 'ego_racecar/base_link'
    opp_car: str = 'opp_racecar/base_link'
    ego_laser: str = 'ego_racecar/laser'

    # Topics
    scan_topic: str = '/scan'
    ego_odom: str = '/odom'
    opp_odom: str = '/opp_odom'
    map_topic: str = '/map'
    drive_topic: str = '/drive'
    costmap_topic: str = '/costmap'
    mpc_topic: str = '/mpc'
    waypoint_topic: str = '/waypoint'

    log_level: str = 'INFO'

    def to_dict(self) -> Dict:
        return asdict(self)


_NUMERIC = (int, float)


def _check_type(name: str, value, default):
    if default is None or value is None:
        return value
    if isinstance(default, bool) or isinstance(default, str):
        if not isinstance(value, type(default)):
            raise ValueError(f"config '{name}' must be {type(default).__name__}, got {value!r}")
    elif isinstance(default, _NUMERIC):
        if isinstance(value, bool) or not isinstance(value, _NUMERIC):
            raise ValueError(f"config '{name}' must be a number, got {value!r}")
        if isinstance(default, int) and not isinstance(value, int):
            raise ValueError(f"config '{name}' must be an integer, got {value!r}")
    elif isinstance(default, (list, dict)) and not isinstance(value, type(default)):
        raise ValueError(f"config '{name}' must be a {type(default).__name__}, got {value!r}")
    return value


def config_from_dict(values: Dict) -> PlannerConfig:
    """Build a config from a mapping, unknown keys are logged and ignored."""
    defaults = PlannerConfig()
    known = {f.name for f in fields(PlannerConfig)}
    kwargs = {}
    for key, value in (values or {}).items():
        if key not in known:
            logger.warning("Ignoring unknown config key '%s'", key)
            continue
        kwargs[key] = _check_type(key, value, getattr(defaults, key))
    return PlannerConfig(**kwargs)


def load_config(path: str) -> PlannerConfig:
    with open(path, 'r') as file:
        values = yaml.safe_load(file)
    if values is not None and not isinstance(values, dict):
        raise ValueError(f"{path}: expected a mapping of parameters")
    logger.info("Loaded configuration from %s", path)
    return config_from_dict(values)
