import logging
from typing import FrozenSet

import numpy as np

from .types import LaserScan, OccupancyGrid, Transform2D

logger = logging.getLogger(__name__)


class GridMap:
    """
    Short-lived obstacle layer on top of a static occupancy grid.

    Laser hits are inflated into square blocks of OCCUPIED cells. Cells that
    switch from FREE to OCCUPIED are remembered as pending obstacles and are
    all cleared again every `decay_threshold` updates, so a transient detection
    blocks the map for a bounded time while recurring hits are re-marked.
    Cells occupied in the static map are never pending and never decay.
    """

    def __init__(self, grid: OccupancyGrid, inflation_radius: int = 3,
                 decay_threshold: int = 50, scan_fraction: float = 2.0 / 3.0):
        """
        Args:
            grid: Initial (static) occupancy grid, validated here
            inflation_radius: Half width of the inflation square [cells]
            decay_threshold: Number of updates between two decays
            scan_fraction: Central fraction of the scan beams that is processed
        """
        grid.validate()
        self.grid = grid.copy()
        self.inflation_radius = inflation_radius
        self.decay_threshold = decay_threshold
        self.scan_fraction = scan_fraction

        self._pending = set()
        self._update_count = 0

        offsets = np.arange(-inflation_radius, inflation_radius + 1)
        dx, dy = np.meshgrid(offsets, offsets)
        self._inflation_offsets = np.column_stack([dx.ravel(), dy.ravel()])

    @property
    def pending_obstacles(self) -> FrozenSet[int]:
        return frozenset(self._pending)

    def snapshot(self) -> OccupancyGrid:
        return self.grid.copy()

    def scan_window(self, n_beams: int):
        margin = (1.0 - self.scan_fraction) / 2.0
        return int(round(n_beams * margin)), int(round(n_beams * (1.0 - margin)))

    def scan_points(self, scan: LaserScan, laser_to_map: Transform2D) -> np.ndarray:
        """Map-frame hit points of the valid beams inside the scan window."""
        start, end = self.scan_window(len(scan.ranges))
        indices = np.arange(start, end)
        ranges = scan.ranges[start:end]
        valid = np.isfinite(ranges)

        angles = scan.angle_min + indices[valid] * scan.angle_increment
        hits = ranges[valid]
        sensor_points = np.column_stack([hits * np.cos(angles), hits * np.sin(angles)])
        return laser_to_map.apply(sensor_points)

    def inflated_cells(self, points: np.ndarray) -> np.ndarray:
        """Flat indices of all in-bounds cells within the inflation square of each point."""
        if len(points) == 0:
            return np.empty(0, dtype=int)
        centers = self.grid.cells(points)
        cells = (centers[:, None, :] + self._inflation_offsets[None, :, :]).reshape(-1, 2)
        cells = cells[self.grid.in_bounds(cells)]
        return np.unique(cells[:, 1] * self.grid.width + cells[:, 0])

    def mark_points(self, points: np.ndarray) -> int:
        """
        Mark the inflated cells of map-frame points as OCCUPIED.

        Returns:
            Number of cells that switched from FREE to OCCUPIED
        """
        indices = self.inflated_cells(np.asarray(points, dtype=float).reshape(-1, 2))
        new_cells = indices[self.grid.data[indices] != OccupancyGrid.OCCUPIED]
        self.grid.data[new_cells] = OccupancyGrid.OCCUPIED
        self._pending.update(new_cells.tolist())
        return len(new_cells)

    def decay(self):
        """Forget every obstacle marked since the last decay."""
        if self._pending:
            self.grid.data[list(self._pending)] = OccupancyGrid.FREE
        logger.debug("Cleared %d decayed obstacle cells", len(self._pending))
        self._pending.clear()
        self._update_count = 0

    def update(self, scan: LaserScan, laser_to_map: Transform2D) -> OccupancyGrid:
        """
        Fold one scan into the grid and return a snapshot for publishing.

        Args:
            scan: Laser scan in the laser frame
            laser_to_map: Transform from the laser frame into the map frame

        Returns:
            Copy of the updated grid
        """
        points = self.scan_points(scan, laser_to_map)

        # Decay first so the current hits are always in the returned grid
        self._update_count += 1
        if self._update_count >= self.decay_threshold:
            self.decay()
        marked = self.mark_points(points)

        logger.debug("Map updated: %d hits, %d new obstacle cells", len(points), marked)
        return self.snapshot()
