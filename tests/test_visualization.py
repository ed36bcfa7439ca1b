import matplotlib
matplotlib.use('Agg')

import matplotlib.pyplot as plt
import numpy as np

from local_planner.types import OccupancyGrid, ReferenceTrajectory, Waypoint
from local_planner.visualization import plot_cycle
from mpc_controller import ControlCommand, TrackingMode, TrackingResult


def test_plot_cycle_draws_all_layers():
    grid = OccupancyGrid.empty(20, 10, 0.1)
    track = ReferenceTrajectory([[0.0, 0.5, 0.0, 1.0], [1.5, 0.5, 0.0, 1.0]], name='center')
    result = TrackingResult(ControlCommand(0.0, 1.0), np.zeros((11, 3)), TrackingMode.TRACKING_WAYPOINT,
                            solved=True, reference=np.zeros((11, 3)))

    fig, ax = plt.subplots()
    plot_cycle(ax, grid, result, Waypoint(1.0, 0.5), [track])

    assert len(ax.images) == 1
    assert len(ax.lines) == 4
    labels = [text.get_text() for text in ax.get_legend().get_texts()]
    assert 'horizon (tracking_waypoint)' in labels
    plt.close(fig)


def test_plot_cycle_without_grid():
    fig, ax = plt.subplots()
    plot_cycle(ax, None, tracks=[ReferenceTrajectory([[0.0, 0.0, 0.0, 1.0]])])
    assert len(ax.images) == 0
    plt.close(fig)
