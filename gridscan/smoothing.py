# gridscan/smoothing.py
"""Connectivity-gated Gaussian smoothing of the position field."""

from __future__ import annotations

import numpy as np

from utils.logger import Logger

from .grid import GridPointCloud, shifted, squared_distance

LOG = Logger.get_logger("smooth")


def odd_kernel_size(kernel_size: int) -> int:
    k = int(kernel_size)
    return k + 1 if k % 2 == 0 else k


def gaussian_kernel(kernel_size: int) -> np.ndarray:
    """
    (k, k) Gaussian weights with sigma = (k-1)/4, zeroed outside the disk of
    radius (k-1)/2. ``kernel_size`` is bumped to the next odd number.
    """
    k = odd_kernel_size(kernel_size)
    if k <= 1:
        return np.ones((1, 1))
    half = (k - 1) // 2
    sigma = (k - 1) / 4.0
    d = np.arange(-half, half + 1)
    r2 = d[:, None] ** 2 + d[None, :] ** 2
    K = np.exp(-r2 / (2.0 * sigma**2))
    K[r2 > half * half] = 0.0
    return K


def gaussian_smooth(cloud: GridPointCloud, kernel_size: int) -> GridPointCloud:
    """
    Replace every visible position by the weighted mean of its visible,
    connected neighbors inside the kernel disk. Reads from a snapshot, so
    already-smoothed cells never feed back into the pass.
    """
    k = odd_kernel_size(kernel_size)
    if k <= 1:
        LOG.debug(f"gaussian_smooth: kernel {kernel_size} -> no-op")
        return cloud

    K = gaussian_kernel(k)
    half = (k - 1) // 2
    Pg = cloud.as_grid(cloud.positions).copy()
    Vg = cloud.as_grid(cloud.visible)

    acc = np.zeros_like(Pg)
    wsum = np.zeros(Vg.shape, dtype=float)
    for di in range(-half, half + 1):
        for dj in range(-half, half + 1):
            weight = K[di + half, dj + half]
            if weight <= 0.0:
                continue
            Q, inside = shifted(Pg, di, dj)
            vis, _ = shifted(Vg, di, dj, fill=False)
            ok = (
                Vg
                & inside
                & vis
                & (squared_distance(Q, Pg) < cloud.connectivity_threshold)
            )
            acc += np.where(ok[..., None], weight * Q, 0.0)
            wsum += np.where(ok, weight, 0.0)

    update = Vg & (wsum > 0)
    smoothed = Pg.copy()
    smoothed[update] = acc[update] / wsum[update][:, None]
    cloud.positions = smoothed.reshape(-1, 3)
    cloud.invalidate()
    LOG.info(f"gaussian_smooth(k={k}): {int(update.sum())} pts smoothed")
    return cloud
