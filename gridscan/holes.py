# gridscan/holes.py
"""Row-local linear interpolation across short visibility gaps."""

from __future__ import annotations

import numpy as np

from utils.helpers import pack_rgb, round_half_up, unpack_rgb
from utils.logger import Logger

from .grid import GridPointCloud

LOG = Logger.get_logger("holes")

# below this many rows the pass is too quick for a progress bar
PROGRESS_MIN_ROWS = 2048


def fill_holes(cloud: GridPointCloud, max_gap: int) -> GridPointCloud:
    """
    Fill runs of at most ``max_gap`` invisible cells enclosed by two visible
    cells of the same row. Position and color channels are interpolated
    linearly; runs touching a row end are left alone.
    """
    max_gap = int(max_gap)
    if max_gap < 1:
        return cloud

    w = cloud.width
    P = cloud.positions
    V = cloud.visible
    filled = 0

    rows = Logger.progress(
        range(cloud.height),
        desc="fill holes",
        total=cloud.height,
        disable=cloud.height < PROGRESS_MIN_ROWS,
    )
    for row in rows:
        base = row * w
        cols = np.flatnonzero(V[base : base + w])
        if len(cols) < 2:
            continue
        gaps = np.diff(cols) - 1
        for k in np.flatnonzero((gaps > 0) & (gaps <= max_gap)):
            start = base + int(cols[k])
            finish = base + int(cols[k + 1])
            run = finish - start
            t = np.arange(1, run) / run
            P[start + 1 : finish] = P[start] + np.outer(t, P[finish] - P[start])

            c0 = unpack_rgb(cloud.colors[start : start + 1])[0]
            c1 = unpack_rgb(cloud.colors[finish : finish + 1])[0]
            cloud.colors[start + 1 : finish] = pack_rgb(
                round_half_up(c0 + np.outer(t, c1 - c0))
            )
            V[start + 1 : finish] = True
            filled += run - 1

    if filled:
        cloud.invalidate()
    LOG.info(f"fill_holes(max_gap={max_gap}): {filled} pts filled")
    return cloud
