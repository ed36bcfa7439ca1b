import logging
from typing import List, Optional, Tuple

import numpy as np

from .exceptions import MalformedScan
from .types import LaserScan

logger = logging.getLogger(__name__)


class GapFollower:
    """
    Reactive heading candidates from a single laser scan (follow-the-gap).

    The scan is truncated to a fixed field of view, cleaned of NaN/inf, the
    neighbourhood of the closest return is zeroed out (safety bubble) and
    every sufficiently wide run of open ranges yields a heading towards its
    middle beam.
    """

    def __init__(self, bubble_radius: float = 0.4, gap_threshold: float = 2.0,
                 gap_size_threshold: int = 30, max_range: float = 5.0,
                 field_of_view: float = np.pi):
        """
        Args:
            bubble_radius: Safety radius around the closest point [m]
            gap_threshold: Minimum range for a beam to count as open [m]
            gap_size_threshold: A gap must have more beams than this
            max_range: Ranges above this (and inf) are clamped to it [m]
            field_of_view: Total angle of the truncated scan [rad]
        """
        self.bubble_radius = bubble_radius
        self.gap_threshold = gap_threshold
        self.gap_size_threshold = gap_size_threshold
        self.max_range = max_range
        self.field_of_view = field_of_view

        # Fixed from the first valid scan, the sensor's field of view does not change
        self.window: Optional[Tuple[int, int]] = None
        self.angle_increment: Optional[float] = None

    def _init_window(self, scan: LaserScan):
        n = len(scan.ranges)
        span = scan.angle_max - scan.angle_min
        if span <= self.field_of_view:
            self.window = (0, n)
        else:
            size = int(self.field_of_view / span * n)
            self.window = (n // 2 - size // 2, n // 2 + size // 2)
        self.angle_increment = scan.angle_increment
        logger.info("Gap follower window fixed to beams [%d, %d)", *self.window)

    def truncate(self, scan: LaserScan) -> np.ndarray:
        """Ranges inside the field-of-view window, raises MalformedScan before the window is fixed."""
        if self.window is None:
            scan.validate()
            self._init_window(scan)
        start, end = self.window
        return scan.ranges[start:end]

    def filter_ranges(self, ranges: np.ndarray) -> np.ndarray:
        """NaN -> 0 (blocked), inf or beyond max_range -> max_range (open)."""
        filtered = np.array(ranges, dtype=float)
        filtered[np.isnan(filtered)] = 0.0
        filtered[np.isinf(filtered) | (filtered > self.max_range)] = self.max_range
        return filtered

    def eliminate_bubble(self, ranges: np.ndarray, closest_idx: int,
                         angle_increment: Optional[float] = None) -> np.ndarray:
        """Zero every beam within bubble_radius of the closest point."""
        if angle_increment is None:
            angle_increment = self.angle_increment
        cleared = ranges.copy()
        closest_dist = ranges[closest_idx]
        if closest_dist <= 0.0:
            cleared[:] = 0.0
            return cleared

        # At most the whole scan on either side
        half_width = min(self.bubble_radius / closest_dist / angle_increment, len(ranges))
        start = max(int(round(closest_idx - half_width)), 0)
        end = min(int(round(closest_idx + half_width)), len(ranges) - 1)
        cleared[start:end + 1] = 0.0
        return cleared

    def find_gaps(self, ranges: np.ndarray) -> List[Tuple[int, int]]:
        """Inclusive (start, end) index pairs of accepted gaps, left to right."""
        gaps = []
        open_beams = ranges > self.gap_threshold
        idx = 0
        n = len(ranges)
        while idx < n:
            if not open_beams[idx]:
                idx += 1
                continue
            start = idx
            while idx < n and open_beams[idx]:
                idx += 1
            if idx - start > self.gap_size_threshold:
                gaps.append((start, idx - 1))
        return gaps

    def reactive_headings(self, scan: LaserScan) -> List[float]:
        """
        Candidate headings [rad] relative to the vehicle, one per accepted gap.

        An empty list means no gap was accepted, or the scan was malformed.
        """
        try:
            scan.validate()
        except MalformedScan as error:
            logger.warning("Ignoring scan: %s", error)
            return []

        ranges = self.filter_ranges(self.truncate(scan))
        if len(ranges) == 0:
            return []

        closest_idx = int(np.argmin(ranges))
        cleared = self.eliminate_bubble(ranges, closest_idx)
        center = len(cleared) // 2

        headings = [((start + end) // 2 - center) * self.angle_increment
                    for start, end in self.find_gaps(cleared)]
        logger.debug("Closest point %.2f m at beam %d, %d gaps accepted",
                     ranges[closest_idx], closest_idx, len(headings))
        return headings
