from types import SimpleNamespace

import numpy as np
import pytest

from local_planner.conversions import (grid_from_msg, scan_from_msg, state_from_odometry, transform_from_msg,
                                       waypoint_from_pose, yaw_from_quaternion)
from local_planner.types import OccupancyGrid


def quaternion(yaw):
    return SimpleNamespace(x=0.0, y=0.0, z=np.sin(yaw / 2), w=np.cos(yaw / 2))


def point(x, y):
    return SimpleNamespace(x=x, y=y, z=0.0)


def pose(x, y, yaw):
    return SimpleNamespace(position=point(x, y), orientation=quaternion(yaw))


def odometry(x, y, yaw, v=0.0, yaw_rate=0.0):
    return SimpleNamespace(
        pose=SimpleNamespace(pose=pose(x, y, yaw)),
        twist=SimpleNamespace(twist=SimpleNamespace(linear=point(v, 0.0),
                                                    angular=SimpleNamespace(x=0.0, y=0.0, z=yaw_rate))),
    )


@pytest.mark.parametrize('yaw', [0.0, 0.5, -1.2, 3.0])
def test_yaw_from_quaternion(yaw):
    assert yaw_from_quaternion(quaternion(yaw)) == pytest.approx(yaw)


def test_state_from_odometry():
    state = state_from_odometry(odometry(1.0, -2.0, 0.3, v=2.5, yaw_rate=0.1))
    assert (state.x, state.y) == (1.0, -2.0)
    assert state.theta == pytest.approx(0.3)
    assert state.velocity == 2.5
    assert state.angular_velocity == 0.1


def test_waypoint_from_any_pose_shape():
    bare = waypoint_from_pose(pose(1.0, 2.0, 0.4))
    stamped = waypoint_from_pose(SimpleNamespace(header=None, pose=pose(1.0, 2.0, 0.4)))
    from_odom = waypoint_from_pose(odometry(1.0, 2.0, 0.4))

    assert bare == stamped == from_odom
    assert bare.speed == 0.1
    assert waypoint_from_pose(pose(0.0, 0.0, 0.0), speed=3.0).speed == 3.0


def test_transform_from_msg():
    msg = SimpleNamespace(transform=SimpleNamespace(translation=point(0.5, 0.25),
                                                    rotation=quaternion(np.pi / 2)))
    transform = transform_from_msg(msg)
    assert (transform.x, transform.y) == (0.5, 0.25)
    np.testing.assert_allclose(transform.apply([1.0, 0.0]), [0.5, 1.25], atol=1e-12)


def test_scan_from_msg():
    msg = SimpleNamespace(ranges=[1.0, float('inf'), 2.0], angle_min=-0.1, angle_max=0.1, angle_increment=0.1)
    scan = scan_from_msg(msg)
    assert isinstance(scan.ranges, np.ndarray)
    assert scan.ranges.shape == (3,)
    assert scan.angle_increment == 0.1


def test_grid_from_msg_is_binary():
    info = SimpleNamespace(width=3, height=2, resolution=0.05,
                           origin=SimpleNamespace(position=point(-1.0, -0.5)))
    msg = SimpleNamespace(info=info, data=[-1, 0, 50, 100, 0, 100])
    grid = grid_from_msg(msg)

    assert (grid.width, grid.height, grid.resolution) == (3, 2, 0.05)
    assert (grid.origin_x, grid.origin_y) == (-1.0, -0.5)
    np.testing.assert_array_equal(grid.data, [0, 0, 0, 100, 0, 100])
    assert grid.data.dtype == np.int8
    assert grid.as_image()[1, 0] == OccupancyGrid.OCCUPIED
