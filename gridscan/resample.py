# gridscan/resample.py
"""Resolution reduction and grid boundary changes (crop / extend)."""

from __future__ import annotations

import math

import numpy as np

from utils.helpers import pack_rgb, round_half_up, unpack_rgb
from utils.logger import Logger

from .grid import GridPointCloud

LOG = Logger.get_logger("resample")


# ============================== REDUCTION ====================================


def _pad_to(grid: np.ndarray, H: int, W: int) -> np.ndarray:
    h, w = grid.shape[:2]
    pad = [(0, H - h), (0, W - w)] + [(0, 0)] * (grid.ndim - 2)
    return np.pad(grid, pad)


def reduce_resolution(cloud: GridPointCloud, factor: int) -> GridPointCloud:
    """
    Block-average the grid by ``factor``.

    New cell (c, r) averages position and color channels of the visible
    cells in [c*f, c*f+f) x [r*f, r*f+f); it stays invisible (zero position,
    zero color) when none of them is visible.
    """
    f = int(factor)
    if f <= 1:
        LOG.debug(f"reduce_resolution: factor {factor} -> no-op")
        return cloud

    w, h = cloud.width, cloud.height
    nw, nh = math.ceil(w / f), math.ceil(h / f)
    H, W = nh * f, nw * f

    V = _pad_to(cloud.as_grid(cloud.visible), H, W)
    # invisible slots may hold NaN/inf from invalid depth: mask, don't multiply
    P = np.where(V[..., None], _pad_to(cloud.as_grid(cloud.positions), H, W), 0.0)
    C = np.where(V[..., None], _pad_to(cloud.as_grid(unpack_rgb(cloud.colors)), H, W), 0)

    cnt = V.reshape(nh, f, nw, f).sum(axis=(1, 3))
    P_sum = P.reshape(nh, f, nw, f, 3).sum(axis=(1, 3))
    C_sum = C.reshape(nh, f, nw, f, 3).sum(axis=(1, 3))

    has = cnt > 0
    denom = np.maximum(cnt, 1)[..., None]
    P_new = np.where(has[..., None], P_sum / denom, 0.0)
    C_new = np.where(has, pack_rgb(round_half_up(C_sum / denom)), 0).astype(np.uint32)

    cloud.replace_arrays(nw, nh, P_new.reshape(-1, 3), C_new.reshape(-1), has.reshape(-1))
    LOG.info(f"reduce_resolution x{f}: {w}x{h} -> {nw}x{nh} ({cloud.visible_count} visible)")
    return cloud


def subsample(cloud: GridPointCloud, factor: int) -> GridPointCloud:
    """Keep every ``factor``-th cell in each direction (no averaging)."""
    f = int(factor)
    if f <= 1:
        return cloud
    nw, nh = cloud.width // f, cloud.height // f
    if nw < 1 or nh < 1:
        LOG.warning(f"subsample x{f} would empty a {cloud.width}x{cloud.height} grid, skipped")
        return cloud
    rows = np.arange(nh) * f
    cols = np.arange(nw) * f
    src = rows[:, None] * cloud.width + cols[None, :]
    return cloud.remap(nw, nh, src.ravel())


# ============================== CROP / EXTEND ================================


def visible_bounds(cloud: GridPointCloud):
    """(col0, row0, col1, row1) of the visible cells, inclusive; None if empty."""
    ini, end = cloud.row_extremes()
    rows = np.flatnonzero(ini >= 0)
    if len(rows) == 0:
        return None
    return int(ini[rows].min()), int(rows[0]), int(end[rows].max()), int(rows[-1])


def crop(cloud: GridPointCloud) -> GridPointCloud:
    """Shrink the grid to the tight rectangle around the visible cells."""
    bounds = visible_bounds(cloud)
    if bounds is None:
        LOG.warning("crop: no visible points, falling back to a 1x1 grid")
        col0, row0, col1, row1 = 0, 0, 0, 0
    else:
        col0, row0, col1, row1 = bounds

    nw, nh = col1 - col0 + 1, row1 - row0 + 1
    if (nw, nh) == (cloud.width, cloud.height):
        return cloud

    src = cloud.grid_indices()[row0 : row1 + 1, col0 : col1 + 1]
    LOG.info(f"crop: {cloud.width}x{cloud.height} -> {nw}x{nh} at ({col0}, {row0})")
    return cloud.remap(nw, nh, src.ravel())


def _place(
    cloud: GridPointCloud, nw: int, nh: int, col_off: int, row_off: int
) -> GridPointCloud:
    src = np.full((nh, nw), -1, dtype=np.int64)
    src[row_off : row_off + cloud.height, col_off : col_off + cloud.width] = (
        cloud.grid_indices()
    )
    return cloud.remap(nw, nh, src.ravel())


def extend(cloud: GridPointCloud, new_width: int, new_height: int) -> GridPointCloud:
    """Grow the grid (never shrinks), keeping the old content centered."""
    nw = max(cloud.width, int(new_width))
    nh = max(cloud.height, int(new_height))
    if (nw, nh) == (cloud.width, cloud.height):
        return cloud
    col_off = (nw - cloud.width) // 2
    row_off = (nh - cloud.height) // 2
    LOG.info(f"extend: {cloud.width}x{cloud.height} -> {nw}x{nh}")
    return _place(cloud, nw, nh, col_off, row_off)


def extend_from_center(cloud: GridPointCloud) -> GridPointCloud:
    """
    Grow the grid so the central pixel (visible cell closest to the center
    in XY) becomes the grid midpoint, with equal margins on both sides.
    """
    px = cloud.central_pixel()
    if px is None:
        return cloud
    cc, cr = px
    half_w = max(cc, cloud.width - 1 - cc)
    half_h = max(cr, cloud.height - 1 - cr)
    nw, nh = 2 * half_w + 1, 2 * half_h + 1
    if (nw, nh) == (cloud.width, cloud.height):
        return cloud
    LOG.info(f"extend_from_center: pixel ({cc}, {cr}) -> {nw}x{nh}")
    return _place(cloud, nw, nh, half_w - cc, half_h - cr)
