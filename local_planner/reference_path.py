import logging
import os
from typing import List, Optional, Sequence

import numpy as np

from .exceptions import MalformedReferenceData
from .types import ReferenceTrajectory

logger = logging.getLogger(__name__)


def load_reference_path(path: str, delimiter: str = ',', skiprows: int = 0,
                        name: Optional[str] = None) -> ReferenceTrajectory:
    """
    Load a reference trajectory from delimited text.

    Each record holds at least x, y, heading and speed in that order; extra
    columns are ignored and lines starting with '#' are comments.

    Args:
        path: File to read
        delimiter: Field delimiter
        skiprows: Number of header lines to skip
        name: Track name (default: file name without extension)

    Returns:
        ReferenceTrajectory

    Raises:
        MalformedReferenceData: If the file is missing, unparsable or incomplete
    """
    name = name or os.path.splitext(os.path.basename(path))[0]
    try:
        data = np.loadtxt(path, delimiter=delimiter, skiprows=skiprows, comments='#', ndmin=2)
    except (OSError, ValueError) as error:
        raise MalformedReferenceData(f"{name}: cannot read {path}: {error}") from error

    if data.shape[0] == 0:
        raise MalformedReferenceData(f"{name}: {path} has no waypoints")
    if data.shape[1] < 4:
        raise MalformedReferenceData(
            f"{name}: {path} has {data.shape[1]} columns, need x, y, heading, speed")

    track = ReferenceTrajectory(data[:, :4], name=name)
    logger.info("Loaded %d waypoints from %s", len(track), path)
    return track


def load_tracks(paths: Sequence[str], delimiter: str = ',', skiprows: int = 0) -> List[ReferenceTrajectory]:
    if not paths:
        raise MalformedReferenceData("no reference path files configured")
    return [load_reference_path(path, delimiter, skiprows) for path in paths]
