import numpy as np
from typing import Optional, Sequence

from .types import OccupancyGrid, ReferenceTrajectory, Waypoint


def plot_cycle(ax, grid: Optional[OccupancyGrid], result=None, target: Optional[Waypoint] = None,
               tracks: Sequence[ReferenceTrajectory] = ()):
    """
    Draw one planner cycle: grid, reference tracks, MPC horizon and target.

    Args:
        ax: Matplotlib axes
        grid: Occupancy grid snapshot (optional)
        result: TrackingResult of the cycle (optional)
        target: Selected waypoint (optional)
        tracks: Reference trajectories
    """
    if grid is not None:
        extent = [grid.origin_x, grid.origin_x + grid.width * grid.resolution,
                  grid.origin_y, grid.origin_y + grid.height * grid.resolution]
        ax.imshow(grid.as_image(), cmap='Greys', origin='lower', extent=extent,
                  vmin=OccupancyGrid.FREE, vmax=OccupancyGrid.OCCUPIED)

    for track in tracks:
        ax.plot(track.positions[:, 0], track.positions[:, 1], '--', linewidth=1, label=track.name)

    if result is not None:
        if result.reference is not None:
            ax.plot(result.reference[:, 0], result.reference[:, 1], 'g.', label='reference')
        states = np.asarray(result.predicted_states)
        ax.plot(states[:, 0], states[:, 1], 'b-o', markersize=3, label=f'horizon ({result.mode.value})')

    if target is not None:
        ax.plot(target.x, target.y, 'r*', markersize=12, label='target')

    ax.set_xlabel('X [m]')
    ax.set_ylabel('Y [m]')
    ax.set_aspect('equal')
    ax.legend(loc='upper right', fontsize='small')
    return ax
