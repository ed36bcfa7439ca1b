#!/usr/bin/env python3
"""
Closed-loop planner demo in a straight corridor with a box obstacle.

The laser scan is ray-cast against a ground-truth grid, the vehicle is moved
with the MPC's own kinematic model, and the final cycle is plotted.
"""

import argparse
import logging
import os

import matplotlib.pyplot as plt
import numpy as np

from local_planner import (LaserScan, OccupancyGrid, StaticTransformProvider, Transform2D, VehicleState,
                           build_planner, load_config)
from local_planner.visualization import plot_cycle

ROOT = os.path.dirname(os.path.dirname(os.path.abspath(__file__)))


def corridor_world(length=22.0, width=4.0, resolution=0.05, obstacle=(8.0, 0.0, 0.3)):
    """Ground-truth grid: walls at y = ±width/2 and a square obstacle (x, y, half size)."""
    grid = OccupancyGrid.empty(int(length / resolution), int(width / resolution) + 2, resolution,
                               origin_x=-1.0, origin_y=-width / 2 - resolution)
    image = grid.as_image()
    image[0, :] = OccupancyGrid.OCCUPIED
    image[-1, :] = OccupancyGrid.OCCUPIED
    ox, oy, half = obstacle
    xs = grid.origin_x + (np.arange(grid.width) + 0.5) * resolution
    ys = grid.origin_y + (np.arange(grid.height) + 0.5) * resolution
    X, Y = np.meshgrid(xs, ys)
    image[(np.abs(X - ox) <= half) & (np.abs(Y - oy) <= half)] = OccupancyGrid.OCCUPIED
    return grid


def ray_cast(world: OccupancyGrid, pose: VehicleState, n_beams=1080, fov=np.radians(270), max_range=10.0):
    angles = np.linspace(-fov / 2, fov / 2, n_beams)
    steps = np.arange(0.0, max_range, world.resolution / 2)
    ranges = np.full(n_beams, np.inf)
    for i, angle in enumerate(angles):
        heading = pose.theta + angle
        points = np.column_stack([pose.x + steps * np.cos(heading), pose.y + steps * np.sin(heading)])
        cells = world.cells(points)
        inside = world.in_bounds(cells)
        hit = np.zeros(len(steps), dtype=bool)
        hit[inside] = world.data[cells[inside, 1] * world.width + cells[inside, 0]] == OccupancyGrid.OCCUPIED
        if np.any(hit):
            ranges[i] = steps[np.argmax(hit)]
    return LaserScan(ranges, angles[0], angles[-1], angles[1] - angles[0])


def main():
    parser = argparse.ArgumentParser(description=__doc__)
    parser.add_argument('--config', default=os.path.join(ROOT, 'config', 'params.yaml'))
    parser.add_argument('--cycles', type=int, default=60)
    parser.add_argument('--no-plot', action='store_true')
    args = parser.parse_args()

    config = load_config(args.config)
    logging.basicConfig(level=config.log_level, format='%(asctime)s %(levelname)s %(name)s: %(message)s')
    config.track_files = [os.path.join(ROOT, path) for path in config.track_files]
    # Offline run, no real-time deadline
    config.solve_time_budget = None

    world = corridor_world()
    static_map = OccupancyGrid.empty(world.width, world.height, world.resolution, world.origin_x, world.origin_y)
    static_map.as_image()[[0, -1], :] = OccupancyGrid.OCCUPIED

    transforms = StaticTransformProvider()
    planner = build_planner(config, transforms, grid=static_map)

    state = VehicleState()
    grid = result = None
    for cycle in range(args.cycles):
        pose = Transform2D.from_pose(state.x, state.y, state.theta)
        transforms.set_transform(config.map_frame, config.ego_laser, pose)
        transforms.set_transform(config.map_frame, config.ego_car, pose)

        grid = planner.on_scan(ray_cast(world, state)) or grid
        result = planner.on_odometry(state)
        command = result.command

        next_pose = planner.controller.vehicle_model.propagate(
            state.as_array(), [command.steering_angle, command.velocity])
        state = VehicleState(*next_pose, velocity=command.velocity)
        logging.info("cycle %d: mode=%s steering=%.3f velocity=%.2f pose=(%.2f, %.2f, %.2f)",
                     cycle, result.mode.value, command.steering_angle, command.velocity,
                     state.x, state.y, state.theta)

    if not args.no_plot:
        fig, ax = plt.subplots(figsize=(12, 4))
        plot_cycle(ax, grid, result, planner.target, planner.selector.tracks)
        plt.show()


if __name__ == '__main__':
    main()
