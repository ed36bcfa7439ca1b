import numpy as np
import pytest

from local_planner.exceptions import MalformedReferenceData, MalformedScan, TransformUnavailable
from local_planner.transforms import StaticTransformProvider, TransformProvider
from local_planner.types import LaserScan, OccupancyGrid, ReferenceTrajectory, Transform2D, VehicleState


def test_transform_apply_and_inverse():
    transform = Transform2D(1.0, 2.0, np.pi / 2)
    np.testing.assert_allclose(transform.apply([1.0, 0.0]), [1.0, 3.0], atol=1e-12)

    points = np.array([[0.0, 0.0], [1.0, 1.0], [-2.0, 0.5]])
    np.testing.assert_allclose(transform.inverse().apply(transform.apply(points)), points, atol=1e-12)


def test_pose_inverse_gives_vehicle_frame():
    # Vehicle at (2, 1) facing +y: a point 1 m further along +y is straight ahead
    map_to_vehicle = Transform2D.from_pose(2.0, 1.0, np.pi / 2).inverse()
    np.testing.assert_allclose(map_to_vehicle.apply([2.0, 2.0]), [1.0, 0.0], atol=1e-12)


def test_static_transform_provider():
    transforms = StaticTransformProvider()
    transforms.set_transform('map', 'laser', Transform2D(1.0, 0.0, 0.0))

    assert transforms.lookup_transform('map', 'laser').x == 1.0
    assert transforms.lookup_transform('laser', 'map').x == -1.0
    with pytest.raises(TransformUnavailable):
        transforms.lookup_transform('map', 'base_link')

    transforms.remove_transform('map', 'laser')
    with pytest.raises(TransformUnavailable):
        transforms.lookup_transform('map', 'laser')


def test_transform_provider_requires_lookup():
    class NoLookup(TransformProvider):
        pass

    with pytest.raises(TypeError):
        NoLookup()


def test_scan_validation():
    LaserScan(np.ones(3), -0.1, 0.1, 0.1).validate()
    with pytest.raises(MalformedScan):
        LaserScan([], 0.0, 0.0, 0.1).validate()
    with pytest.raises(MalformedScan):
        LaserScan(np.ones(3), 0.0, 0.0, 0.0).validate()
    with pytest.raises(MalformedScan):
        LaserScan(np.ones(3), 0.0, 0.0, np.nan).validate()


def test_grid_cell_indexing():
    grid = OccupancyGrid.empty(4, 3, 0.5, origin_x=-1.0, origin_y=0.0)
    assert grid.cell_index(-0.9, 0.1) == 0
    assert grid.cell_index(0.1, 0.6) == 1 * 4 + 2
    assert grid.cell_index(1.1, 0.1) is None
    assert grid.cell_index(-1.1, 0.1) is None
    assert grid.cell_index(0.0, 1.6) is None


def test_grid_image_is_a_view():
    grid = OccupancyGrid.empty(4, 3, 0.5)
    grid.as_image()[2, 1] = OccupancyGrid.OCCUPIED
    assert grid.data[2 * 4 + 1] == OccupancyGrid.OCCUPIED
    assert grid.is_occupied(0.6, 1.1)


def test_grid_copy_is_independent():
    grid = OccupancyGrid.empty(2, 2, 1.0)
    copy = grid.copy()
    copy.data[0] = OccupancyGrid.OCCUPIED
    assert grid.data[0] == OccupancyGrid.FREE


def test_reference_trajectory_validation():
    with pytest.raises(MalformedReferenceData):
        ReferenceTrajectory(np.zeros((0, 4)))
    with pytest.raises(MalformedReferenceData):
        ReferenceTrajectory(np.zeros((3, 3)))
    with pytest.raises(MalformedReferenceData):
        ReferenceTrajectory([[0.0, np.inf, 0.0, 1.0]])


def test_vehicle_state_update():
    state = VehicleState()
    state.update(VehicleState(1.0, 2.0, 0.5, 3.0, 0.1))
    np.testing.assert_allclose(state.as_array(), [1.0, 2.0, 0.5])
    assert state.velocity == 3.0
