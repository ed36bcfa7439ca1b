import logging
from typing import Optional, Sequence, Tuple

import numpy as np

from .types import OccupancyGrid, ReferenceTrajectory, Transform2D, VehicleState, Waypoint

logger = logging.getLogger(__name__)


class WaypointSelector:
    """
    Picks the local target on the reference tracks.

    On every track the waypoints ahead of the vehicle are ranked by how close
    their distance is to the lookahead distance; the best ranked waypoint whose
    map cell is free wins. The best match over all tracks is the target.
    """

    def __init__(self, tracks: Sequence[ReferenceTrajectory], lookahead_distance: float = 2.5,
                 collision_points: int = 0):
        """
        Args:
            tracks: Reference trajectories, read only
            lookahead_distance: Desired distance of the target from the vehicle [m]
            collision_points: Samples checked along the straight line to a
                candidate (0 checks only the candidate's own cell)
        """
        self.tracks = list(tracks)
        self.lookahead_distance = lookahead_distance
        self.collision_points = collision_points

    def _admissible(self, position: np.ndarray, grid: OccupancyGrid, origin: Optional[np.ndarray]) -> bool:
        index = grid.cell_index(*position)
        if index is None or grid.data[index] == OccupancyGrid.OCCUPIED:
            return False
        if self.collision_points > 0 and origin is not None:
            fractions = np.linspace(0.0, 1.0, self.collision_points + 1)[1:]
            samples = origin + fractions[:, None] * (position - origin)
            cells = grid.cells(samples)
            cells = cells[grid.in_bounds(cells)]
            if np.any(grid.data[cells[:, 1] * grid.width + cells[:, 0]] == OccupancyGrid.OCCUPIED):
                return False
        return True

    def select_from_track(self, track: ReferenceTrajectory, map_to_vehicle: Transform2D,
                          grid: OccupancyGrid, origin: Optional[np.ndarray] = None
                          ) -> Optional[Tuple[Waypoint, float]]:
        """
        Best admissible waypoint of one track.

        Returns:
            (waypoint, |distance - lookahead|) or None when the track has no
            admissible waypoint ahead of the vehicle
        """
        local = map_to_vehicle.apply(track.positions)
        ahead = np.flatnonzero(local[:, 0] >= 0.0)
        if len(ahead) == 0:
            return None

        errors = np.abs(np.hypot(local[ahead, 0], local[ahead, 1]) - self.lookahead_distance)
        # Equal errors: the waypoint further along the path first
        for j in np.lexsort((-ahead, errors)):
            index = ahead[j]
            if self._admissible(track.positions[index], grid, origin):
                return track.waypoint(index), float(errors[j])
            logger.debug("%s: waypoint %d blocked, trying next best", track.name, index)
        return None

    def select(self, state: VehicleState, map_to_vehicle: Transform2D,
               grid: OccupancyGrid) -> Optional[Waypoint]:
        """
        Target waypoint for this cycle, None when no track offers one.
        """
        origin = np.array([state.x, state.y])
        best = None
        for track in self.tracks:
            candidate = self.select_from_track(track, map_to_vehicle, grid, origin)
            if candidate is not None and (best is None or candidate[1] < best[1]):
                best = candidate

        if best is None:
            logger.debug("No feasible waypoint on %d tracks", len(self.tracks))
            return None
        return best[0]
