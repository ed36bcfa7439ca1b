"""
Value types shared by the local planner components.

Everything here is either process-wide state updated in place
(VehicleState, OccupancyGrid) or immutable reference data (Waypoint,
ReferenceTrajectory). Per-cycle inputs such as LaserScan are never retained.
"""

from dataclasses import dataclass, field
from typing import Optional

import numpy as np

from .exceptions import EmptyOrMalformedMap, MalformedReferenceData, MalformedScan


@dataclass
class VehicleState:
    x: float = 0.0  # [m]
    y: float = 0.0  # [m]
    theta: float = 0.0  # heading [rad]
    velocity: float = 0.0  # longitudinal velocity [m/s]
    angular_velocity: float = 0.0  # yaw rate [rad/s]

    def as_array(self) -> np.ndarray:
        """MPC state [x, y, theta]."""
        return np.array([self.x, self.y, self.theta])

    def update(self, other: 'VehicleState'):
        self.x = other.x
        self.y = other.y
        self.theta = other.theta
        self.velocity = other.velocity
        self.angular_velocity = other.angular_velocity


@dataclass(frozen=True)
class Waypoint:
    x: float
    y: float
    heading: float = 0.0
    speed: float = 0.0


class ReferenceTrajectory:
    """
    Ordered sequence of waypoints stored as an (M, 4) array of
    [x, y, heading, speed] rows.
    """

    def __init__(self, points, name: str = 'track'):
        points = np.array(points, dtype=float)
        if points.ndim != 2 or points.shape[1] != 4:
            raise MalformedReferenceData(f"{name}: expected (M, 4) waypoints, got shape {points.shape}")
        if len(points) == 0:
            raise MalformedReferenceData(f"{name}: no waypoints")
        if not np.all(np.isfinite(points)):
            raise MalformedReferenceData(f"{name}: non-finite waypoint values")
        points.setflags(write=False)
        self.points = points
        self.name = name

    def __len__(self) -> int:
        return len(self.points)

    @property
    def positions(self) -> np.ndarray:
        return self.points[:, :2]

    def waypoint(self, index: int) -> Waypoint:
        x, y, heading, speed = self.points[index]
        return Waypoint(float(x), float(y), float(heading), float(speed))


@dataclass
class LaserScan:
    ranges: np.ndarray
    angle_min: float
    angle_max: float
    angle_increment: float

    def __post_init__(self):
        self.ranges = np.asarray(self.ranges, dtype=float)

    def validate(self):
        if self.ranges.ndim != 1 or len(self.ranges) == 0:
            raise MalformedScan("laser scan has no beams")
        if not np.isfinite(self.angle_increment) or self.angle_increment <= 0:
            raise MalformedScan(f"invalid scan angle increment {self.angle_increment}")


@dataclass
class Transform2D:
    """Planar rigid transform: rotate by yaw, then translate by (x, y)."""
    x: float = 0.0
    y: float = 0.0
    yaw: float = 0.0

    @classmethod
    def from_pose(cls, x: float, y: float, yaw: float) -> 'Transform2D':
        """Transform taking points in a frame with the given pose into the parent frame."""
        return cls(x, y, yaw)

    def apply(self, points) -> np.ndarray:
        """Transform (N, 2) points (or a single (2,) point)."""
        points = np.asarray(points, dtype=float)
        c, s = np.cos(self.yaw), np.sin(self.yaw)
        rotation = np.array([[c, -s], [s, c]])
        return points @ rotation.T + np.array([self.x, self.y])

    def inverse(self) -> 'Transform2D':
        c, s = np.cos(self.yaw), np.sin(self.yaw)
        return Transform2D(-(c * self.x + s * self.y), s * self.x - c * self.y, -self.yaw)


@dataclass
class OccupancyGrid:
    """
    Binary occupancy grid in row-major order (nav_msgs convention).

    Cell (col, row) covers [origin + col*resolution, origin + (col+1)*resolution)
    along x and likewise along y. There is no "unknown" state.
    """
    FREE = 0
    OCCUPIED = 100

    width: int
    height: int
    resolution: float
    origin_x: float = 0.0
    origin_y: float = 0.0
    data: Optional[np.ndarray] = field(default=None, repr=False)

    def __post_init__(self):
        if self.data is None:
            self.data = np.zeros(self.width * self.height, dtype=np.int8)
        else:
            self.data = np.asarray(self.data).astype(np.int8).ravel()

    @classmethod
    def empty(cls, width: int, height: int, resolution: float,
              origin_x: float = 0.0, origin_y: float = 0.0) -> 'OccupancyGrid':
        return cls(width, height, resolution, origin_x, origin_y)

    def validate(self):
        if self.width <= 0 or self.height <= 0 or len(self.data) == 0:
            raise EmptyOrMalformedMap("occupancy grid is empty")
        if self.resolution <= 0:
            raise EmptyOrMalformedMap(f"invalid grid resolution {self.resolution}")
        if len(self.data) != self.width * self.height:
            raise EmptyOrMalformedMap(
                f"grid data has {len(self.data)} cells, expected {self.width}x{self.height}")

    def cells(self, points) -> np.ndarray:
        """Floor map-frame points to (N, 2) integer [col, row] cells."""
        points = np.atleast_2d(np.asarray(points, dtype=float))
        origin = np.array([self.origin_x, self.origin_y])
        return np.floor((points - origin) / self.resolution).astype(int)

    def in_bounds(self, cells: np.ndarray) -> np.ndarray:
        return ((cells[:, 0] >= 0) & (cells[:, 0] < self.width)
                & (cells[:, 1] >= 0) & (cells[:, 1] < self.height))

    def cell_index(self, x: float, y: float) -> Optional[int]:
        """Flat index of the cell containing (x, y), None outside the grid."""
        cell = self.cells([x, y])
        if not self.in_bounds(cell)[0]:
            return None
        return int(cell[0, 1] * self.width + cell[0, 0])

    def is_occupied(self, x: float, y: float) -> bool:
        index = self.cell_index(x, y)
        return index is not None and self.data[index] == self.OCCUPIED

    def copy(self) -> 'OccupancyGrid':
        return OccupancyGrid(self.width, self.height, self.resolution,
                             self.origin_x, self.origin_y, self.data.copy())

    def as_image(self) -> np.ndarray:
        return self.data.reshape(self.height, self.width)
