import numpy as np
import pytest

from local_planner.exceptions import EmptyOrMalformedMap
from local_planner.grid_map import GridMap
from local_planner.types import LaserScan, OccupancyGrid, Transform2D

OCCUPIED = OccupancyGrid.OCCUPIED
FREE = OccupancyGrid.FREE


def make_grid(width=100, height=100):
    # Origin offset keeps test points away from cell boundaries
    return OccupancyGrid.empty(width, height, 0.1, origin_x=-5.02, origin_y=-5.02)


def make_scan(hit_range=np.inf, n=9, extra=None):
    """Scan over [-pi/2, pi/2] with a single return on the forward beam."""
    ranges = np.full(n, np.inf)
    ranges[n // 2] = hit_range
    for index, value in (extra or {}).items():
        ranges[index] = value
    return LaserScan(ranges, -np.pi / 2, np.pi / 2, np.pi / (n - 1))


def test_hit_marks_inflated_square():
    grid_map = GridMap(make_grid(), inflation_radius=1, decay_threshold=100)
    grid = grid_map.update(make_scan(1.05), Transform2D())

    image = grid.as_image()
    assert np.count_nonzero(grid.data == OCCUPIED) == 9
    assert np.all(image[49:52, 59:62] == OCCUPIED)
    assert len(grid_map.pending_obstacles) == 9


def test_update_returns_snapshot():
    grid_map = GridMap(make_grid(), inflation_radius=1)
    grid = grid_map.update(make_scan(1.05), Transform2D())
    grid.data[:] = FREE
    assert np.count_nonzero(grid_map.grid.data == OCCUPIED) == 9


def test_inflation_stays_in_bounds():
    grid_map = GridMap(make_grid(10, 10), inflation_radius=1)
    # Cell (0, 5) on the left edge: no wrap into column 9 of the neighbouring rows
    marked = grid_map.mark_points(np.array([[-5.02 + 0.05, -5.02 + 0.55]]))

    image = grid_map.grid.as_image()
    assert marked == 6
    assert np.all(image[4:7, 0:2] == OCCUPIED)
    assert np.all(image[:, 9] == FREE)
    assert all(0 <= index < 100 for index in grid_map.pending_obstacles)


def test_corner_hit_marks_only_inside_cells():
    grid_map = GridMap(make_grid(10, 10), inflation_radius=2)
    # Cell (9, 9) is the top right corner
    marked = grid_map.mark_points(np.array([[-4.07, -4.07]]))
    assert marked == 9
    assert np.all(grid_map.grid.as_image()[7:, 7:] == OCCUPIED)


def test_hits_outside_grid_are_ignored():
    grid_map = GridMap(make_grid(), inflation_radius=3)
    grid = grid_map.update(make_scan(50.0), Transform2D())
    assert np.all(grid.data == FREE)
    assert not grid_map.pending_obstacles


def test_invalid_and_peripheral_beams_are_skipped():
    grid_map = GridMap(make_grid(), inflation_radius=0)
    # Beams 0 and 8 are outside the central window, beam 3 is NaN
    scan = make_scan(np.nan, extra={0: 1.05, 8: 1.05, 3: np.nan})
    grid = grid_map.update(scan, Transform2D())
    assert np.all(grid.data == FREE)


def test_scan_window_covers_central_fraction():
    grid_map = GridMap(make_grid())
    assert grid_map.scan_window(360) == (60, 300)
    assert grid_map.scan_window(1080) == (180, 900)


def test_laser_transform_is_applied():
    grid_map = GridMap(make_grid(), inflation_radius=0)
    grid = grid_map.update(make_scan(1.05), Transform2D(1.0, 2.0, np.pi / 2))
    assert grid.is_occupied(1.0, 3.05)
    assert not grid.is_occupied(1.05, 0.0)


def test_marking_is_idempotent():
    grid_map = GridMap(make_grid(), inflation_radius=2, decay_threshold=100)
    scan = make_scan(1.05)
    first = grid_map.update(scan, Transform2D())
    pending = grid_map.pending_obstacles

    second = grid_map.update(scan, Transform2D())
    np.testing.assert_array_equal(first.data, second.data)
    assert grid_map.pending_obstacles == pending
    assert grid_map.mark_points(grid_map.scan_points(scan, Transform2D())) == 0


def test_obstacles_decay_after_threshold():
    grid_map = GridMap(make_grid(), inflation_radius=1, decay_threshold=3)
    assert grid_map.update(make_scan(1.05), Transform2D()).is_occupied(1.05, 0.0)
    assert grid_map.update(make_scan(), Transform2D()).is_occupied(1.05, 0.0)

    grid = grid_map.update(make_scan(), Transform2D())
    assert np.all(grid.data == FREE)
    assert not grid_map.pending_obstacles


def test_recurring_hits_are_remarked_after_decay():
    grid_map = GridMap(make_grid(), inflation_radius=1, decay_threshold=2)
    scan = make_scan(1.05)
    grid_map.update(scan, Transform2D())

    # The second update decays and re-marks in the same step
    grid = grid_map.update(scan, Transform2D())
    assert grid.is_occupied(1.05, 0.0)
    assert np.count_nonzero(grid.data == OCCUPIED) == 9

    grid = grid_map.update(scan, Transform2D())
    assert grid.is_occupied(1.05, 0.0)
    assert len(grid_map.pending_obstacles) == 9


def test_every_returned_grid_holds_its_own_hits():
    grid_map = GridMap(make_grid(), inflation_radius=1, decay_threshold=1)
    for _ in range(3):
        grid = grid_map.update(make_scan(1.05), Transform2D())
        assert grid.is_occupied(1.05, 0.0)
        assert len(grid_map.pending_obstacles) == 9


def test_static_obstacles_never_decay():
    static = make_grid()
    index = static.cell_index(1.05, 0.0)
    static.data[index] = OCCUPIED

    grid_map = GridMap(static, inflation_radius=1, decay_threshold=1)
    assert index not in grid_map.pending_obstacles
    grid = grid_map.update(make_scan(1.05), Transform2D())
    assert np.count_nonzero(grid.data == OCCUPIED) == 9
    assert index not in grid_map.pending_obstacles

    grid = grid_map.update(make_scan(), Transform2D())
    assert grid.data[index] == OCCUPIED
    assert np.count_nonzero(grid.data == OCCUPIED) == 1


def test_static_grid_is_not_modified():
    static = make_grid()
    grid_map = GridMap(static, inflation_radius=1)
    grid_map.update(make_scan(1.05), Transform2D())
    assert np.all(static.data == FREE)


def test_malformed_grid_is_rejected():
    with pytest.raises(EmptyOrMalformedMap):
        GridMap(OccupancyGrid(10, 10, 0.1, data=np.zeros(5)))
    with pytest.raises(EmptyOrMalformedMap):
        GridMap(OccupancyGrid(0, 0, 0.1))
    with pytest.raises(EmptyOrMalformedMap):
        GridMap(OccupancyGrid(10, 10, 0.0))
