# gridscan/normals.py
"""Grid normals (four-quadrant cross products) and the offset back surface."""

from __future__ import annotations

from typing import Tuple

import numpy as np

from utils.helpers import safe_normalize
from utils.logger import Logger

from .grid import GridPointCloud, shifted

LOG = Logger.get_logger("normals")


def _neighbors(
    Pg: np.ndarray, Vg: np.ndarray, drow: int, dcol: int
) -> Tuple[np.ndarray, np.ndarray]:
    """Edge vectors to the (drow, dcol) neighbor and where that neighbor is usable."""
    Q, inside = shifted(Pg, drow, dcol)
    vis, _ = shifted(Vg, drow, dcol, fill=False)
    return Q - Pg, inside & vis


def estimate_normals(
    positions: np.ndarray, visible: np.ndarray, width: int, height: int
) -> np.ndarray:
    """
    Per-point unit normal, or the zero vector where no neighbor pair exists.

    Averages the normalized cross products of the four quadrants
    (right, down), (right, up), (left, down), (left, up); the cross order is
    mirrored per quadrant so all contributions face the same side.
    """
    Pg = positions.reshape(height, width, 3)
    Vg = visible.reshape(height, width)

    R, has_r = _neighbors(Pg, Vg, 0, 1)
    L, has_l = _neighbors(Pg, Vg, 0, -1)
    D, has_d = _neighbors(Pg, Vg, 1, 0)
    U, has_u = _neighbors(Pg, Vg, -1, 0)

    quadrants = (
        (np.cross(R, D), has_r & has_d),
        (np.cross(U, R), has_r & has_u),
        (np.cross(D, L), has_l & has_d),
        (np.cross(L, U), has_l & has_u),
    )

    acc = np.zeros_like(Pg)
    n = np.zeros(Vg.shape, dtype=int)
    for perp, ok in quadrants:
        ok = ok & Vg
        acc += np.where(ok[..., None], safe_normalize(perp), 0.0)
        n += ok

    N = np.where((n > 0)[..., None], safe_normalize(acc), 0.0)
    LOG.debug(f"normals: {int((n > 0).sum())}/{int(Vg.sum())} visible pts defined")
    return N.reshape(-1, 3)


def interior_mask(visible: np.ndarray, width: int, height: int) -> np.ndarray:
    """Visible points whose four axis-aligned neighbors exist and are visible."""
    Vg = visible.reshape(height, width)
    out = Vg.copy()
    for drow, dcol in ((0, 1), (0, -1), (1, 0), (-1, 0)):
        vis, inside = shifted(Vg, drow, dcol, fill=False)
        out &= vis & inside
    return out.reshape(-1)


def estimate_back_points(
    positions: np.ndarray,
    normals: np.ndarray,
    visible: np.ndarray,
    width: int,
    height: int,
    offset: float,
    interior_factor: float,
) -> np.ndarray:
    """Offset visible points along -normal; interior points go further back."""
    interior = interior_mask(visible, width, height)
    off = np.where(interior, offset * interior_factor, offset)
    B = positions.copy()
    B[visible] = positions[visible] - normals[visible] * off[visible, None]
    return B


# ============================== CLOUD API ====================================


def calculate_normals(cloud: GridPointCloud) -> np.ndarray:
    """Recompute and cache the cloud normals."""
    N = cloud.calculate_normals()
    LOG.info(f"normals computed for {cloud.width}x{cloud.height} grid")
    return N


def calculate_back_points(cloud: GridPointCloud) -> np.ndarray:
    """Recompute and cache the back surface (normals computed on demand)."""
    B = cloud.calculate_back_points()
    LOG.info(
        f"back points: offset={cloud.back_offset} "
        f"x{cloud.back_interior_factor} interior"
    )
    return B
