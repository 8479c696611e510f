# gridscan/picking.py
"""Screen-space nearest point picking through a caller-supplied projection."""

from __future__ import annotations

from typing import Callable, Optional, Tuple

import numpy as np
from scipy.spatial import cKDTree

from utils.logger import Logger

from .config import PickingCfg
from .grid import GridPointCloud

LOG = Logger.get_logger("picking")

# (N, 3) world points -> (N, 3) columns (screen_x, screen_y, depth)
ProjectFn = Callable[[np.ndarray], np.ndarray]
ScalarProjectFn = Callable[[float, float, float], Tuple[float, float, float]]


def vectorize_projection(fn: ScalarProjectFn) -> ProjectFn:
    """Adapt a per-point (x, y, z) -> (sx, sy, depth) callable to arrays."""

    def _project(P: np.ndarray) -> np.ndarray:
        out = np.empty((len(P), 3), dtype=float)
        for k, (x, y, z) in enumerate(P):
            out[k] = fn(float(x), float(y), float(z))
        return out

    return _project


def nearest_point_to_screen_position(
    cloud: GridPointCloud,
    screen_x: float,
    screen_y: float,
    radius: float,
    project_fn: ProjectFn,
    use_back_points: bool = True,
) -> Optional[int]:
    """
    Flat index of the visible point picked at (screen_x, screen_y), or None.

    Candidates lie within ``radius`` pixels of the cursor. Points the
    projection cannot place (non-finite output, e.g. behind the camera) are
    skipped. With ``use_back_points`` a candidate must be in front of its own
    back point, i.e. have a larger depth; stale back points are rebuilt on
    access. The winner minimizes ``d_screen**2 + (max_depth - depth)**2``
    where ``max_depth`` is the topmost candidate depth.
    """
    idx = np.flatnonzero(cloud.visible)
    if len(idx) == 0:
        return None

    proj = np.asarray(project_fn(cloud.positions[idx]), dtype=float).reshape(-1, 3)
    finite = np.all(np.isfinite(proj), axis=1)
    if not finite.all():
        LOG.debug(f"pick: {int((~finite).sum())} pts not projectable, skipped")
        idx, proj = idx[finite], proj[finite]
        if len(idx) == 0:
            return None

    tree = cKDTree(proj[:, :2])
    hits = np.sort(
        np.asarray(tree.query_ball_point([screen_x, screen_y], r=radius), dtype=np.int64)
    )
    if len(hits) == 0:
        return None

    if use_back_points:
        back = np.asarray(
            project_fn(cloud.back_points[idx[hits]]), dtype=float
        ).reshape(-1, 3)
        hits = hits[proj[hits, 2] > back[:, 2]]
        if len(hits) == 0:
            return None

    depth = proj[hits, 2]
    d2 = (proj[hits, 0] - screen_x) ** 2 + (proj[hits, 1] - screen_y) ** 2
    score = d2 + (depth.max() - depth) ** 2
    best = int(idx[hits[int(np.argmin(score))]])
    LOG.debug(f"pick ({screen_x}, {screen_y}) r={radius}: {len(hits)} candidates -> {best}")
    return best


def pick(
    cloud: GridPointCloud,
    screen_x: float,
    screen_y: float,
    project_fn: ProjectFn,
    cfg: Optional[PickingCfg] = None,
) -> Optional[int]:
    """Pick with the radius and back-point policy of ``cfg``."""
    cfg = cfg or PickingCfg()
    return nearest_point_to_screen_position(
        cloud,
        screen_x,
        screen_y,
        cfg.radius_px,
        project_fn,
        use_back_points=cfg.use_back_points,
    )
