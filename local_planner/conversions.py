"""
Conversions from ROS-shaped messages to the planner's value types.

One function per source shape. Messages are accessed by attribute only, so
any object with the nav_msgs / geometry_msgs / sensor_msgs layout works.
"""

import numpy as np
from scipy.spatial.transform import Rotation

from .types import LaserScan, OccupancyGrid, Transform2D, VehicleState, Waypoint


def yaw_from_quaternion(q) -> float:
    """Yaw angle [rad] of a quaternion with x, y, z, w attributes."""
    return float(Rotation.from_quat([q.x, q.y, q.z, q.w]).as_euler('zyx')[0])


def _pose_of(msg):
    # Odometry -> PoseWithCovariance -> Pose, PoseStamped -> Pose, Pose
    pose = getattr(msg, 'pose', msg)
    return getattr(pose, 'pose', pose)


def state_from_odometry(msg) -> VehicleState:
    pose = _pose_of(msg)
    twist = msg.twist.twist
    return VehicleState(
        x=pose.position.x,
        y=pose.position.y,
        theta=yaw_from_quaternion(pose.orientation),
        velocity=twist.linear.x,
        angular_velocity=twist.angular.z,
    )


def waypoint_from_pose(msg, speed: float = 0.1) -> Waypoint:
    """Waypoint from a Pose, PoseStamped or Odometry message."""
    pose = _pose_of(msg)
    return Waypoint(pose.position.x, pose.position.y, yaw_from_quaternion(pose.orientation), speed)


def transform_from_msg(msg) -> Transform2D:
    """Planar part of a geometry_msgs TransformStamped."""
    transform = msg.transform
    return Transform2D(transform.translation.x, transform.translation.y,
                       yaw_from_quaternion(transform.rotation))


def scan_from_msg(msg) -> LaserScan:
    return LaserScan(np.asarray(msg.ranges, dtype=float), msg.angle_min, msg.angle_max, msg.angle_increment)


def grid_from_msg(msg) -> OccupancyGrid:
    """
    Binary grid from a nav_msgs OccupancyGrid. Unknown (-1) and any value
    below the occupied threshold are treated as free.
    """
    info = msg.info
    data = np.asarray(msg.data, dtype=np.int16)
    binary = np.where(data >= OccupancyGrid.OCCUPIED, OccupancyGrid.OCCUPIED, OccupancyGrid.FREE)
    return OccupancyGrid(info.width, info.height, info.resolution,
                         info.origin.position.x, info.origin.position.y, binary)
