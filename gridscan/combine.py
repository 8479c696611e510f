# gridscan/combine.py
"""Multi-capture helpers: per-cell averaging and slit-scan assembly."""

from __future__ import annotations

import math
from dataclasses import dataclass
from typing import Sequence

import numpy as np

from utils.helpers import pack_rgb, rotation_x, rotation_y, unpack_rgb
from utils.logger import Logger

from .box import ScanBox
from .grid import GridPointCloud

LOG = Logger.get_logger("combine")

SLIT_MIN_DISTANCE = 5.0
SLIT_SHIFT = 5.0
SLIT_ROTATION_DEG = 4.0


# ============================== AVERAGE ======================================


def average_clouds(clouds: Sequence[GridPointCloud]) -> GridPointCloud:
    """
    Per-cell mean of equally sized clouds over the captures where the cell
    is visible. Channel means are truncated; centers are averaged.
    """
    if not clouds:
        raise ValueError("average_clouds needs at least one cloud")
    first = clouds[0]
    for c in clouds[1:]:
        if (c.width, c.height) != (first.width, first.height):
            raise ValueError(
                f"cannot average {c.width}x{c.height} with {first.width}x{first.height}"
            )

    out = GridPointCloud(first.width, first.height, first.cloud_cfg())
    cnt = np.zeros(out.count, dtype=np.int64)
    P = np.zeros((out.count, 3))
    C = np.zeros((out.count, 3), dtype=np.int64)
    for c in clouds:
        v = c.visible
        P[v] += c.positions[v]
        C[v] += unpack_rgb(c.colors[v])
        cnt += v
        out.center += c.center
    out.center /= len(clouds)

    has = cnt > 0
    out.positions[has] = P[has] / cnt[has, None]
    out.colors[has] = pack_rgb(C[has] // cnt[has, None])
    out.visible[:] = has
    LOG.info(f"averaged {len(clouds)} clouds: {out.visible_count} visible")
    return out


# ============================== SLITS ========================================


@dataclass
class Slit:
    """A single grid column (vertical) or row (horizontal) from one capture."""

    vertical: bool
    center: np.ndarray
    positions: np.ndarray
    colors: np.ndarray
    visible: np.ndarray

    def __len__(self) -> int:
        return int(len(self.positions))

    @classmethod
    def from_cloud(
        cls,
        cloud: GridPointCloud,
        box: ScanBox,
        vertical: bool,
        min_distance: float = SLIT_MIN_DISTANCE,
    ) -> "Slit":
        """
        Take the column (row) holding the in-box point closest to the box
        center in x (y), if closer than ``min_distance``; otherwise an empty slit.
        """
        n = cloud.height if vertical else cloud.width
        slit = cls(
            vertical=vertical,
            center=box.center.copy(),
            positions=np.zeros((n, 3)),
            colors=np.zeros(n, dtype=np.uint32),
            visible=np.zeros(n, dtype=bool),
        )

        ok = cloud.visible & box.is_inside(cloud.positions)
        axis = 0 if vertical else 1
        dist = np.where(ok, np.abs(cloud.positions[:, axis] - box.center[axis]), np.inf)
        best = int(np.argmin(dist))
        if not dist[best] < min_distance:
            LOG.debug("slit: no point close enough to the box center")
            return slit

        col, row = cloud.cell(best)
        G = cloud.grid_indices()
        idx = G[:, col] if vertical else G[row, :]
        keep = ok[idx]
        slit.positions[keep] = cloud.positions[idx[keep]]
        slit.colors[keep] = cloud.colors[idx[keep]]
        slit.visible[:] = keep
        return slit


def combine_slits(
    slits: Sequence[Slit], rotate: bool = False, common_center: bool = False
) -> GridPointCloud:
    """
    Stack slits side by side into one grid (oldest first).

    Slit i of n is either rotated by 4 deg * (n-1-i) around its center or
    shifted by 5 * (n-1-i) across the slit direction; with ``common_center``
    every slit is then moved onto the center of the last one.
    """
    if not slits:
        raise ValueError("combine_slits needs at least one slit")
    last = slits[-1]
    vertical = last.vertical
    n = len(slits)
    width, height = (n, len(last)) if vertical else (len(last), n)
    cloud = GridPointCloud(width, height)
    cloud.center[:] = last.center
    G = cloud.grid_indices()

    for i, slit in enumerate(slits):
        steps = n - 1 - i
        P = slit.positions[slit.visible].copy()
        if rotate:
            angle = math.radians(SLIT_ROTATION_DEG * steps)
            R = rotation_y(angle) if vertical else rotation_x(angle)
            P = (P - slit.center) @ R.T + slit.center
        else:
            P[:, 0 if vertical else 1] += SLIT_SHIFT * steps
        if common_center:
            P += cloud.center - slit.center

        idx = (G[:, i] if vertical else G[i, :])[slit.visible]
        cloud.positions[idx] = P
        cloud.colors[idx] = slit.colors[slit.visible]
        cloud.visible[idx] = True

    LOG.info(f"combined {n} {'vertical' if vertical else 'horizontal'} slits -> {width}x{height}")
    return cloud
