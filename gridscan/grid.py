"""
Structured (row-major) point grid: one 3D point, one packed ARGB color and
one visibility flag per sensor pixel.

Index convention everywhere: ``index = col + row * width``. Use
``GridPointCloud.index`` / ``grid_indices`` / ``shifted`` instead of
spelling the arithmetic out at call sites.
"""

from __future__ import annotations

import copy as _copy
from dataclasses import dataclass
from typing import Callable, Optional, Tuple

import numpy as np

from utils.helpers import fmt_array, pack_rgb, rotation_y
from utils.logger import Logger

from .config import CloudCfg

LOG = Logger.get_logger("grid")

PointPredicate = Callable[[np.ndarray], np.ndarray]
CellMapping = Callable[[int, int], Optional[int]]


# ============================== HELPERS ======================================


def shifted(
    grid: np.ndarray, drow: int, dcol: int, fill=0
) -> Tuple[np.ndarray, np.ndarray]:
    """
    Neighbor view of a (H, W, ...) array.

    Returns (values, inside) where values[r, c] = grid[r + drow, c + dcol]
    and inside[r, c] tells whether that neighbor exists. Out-of-bounds
    entries are set to ``fill``.
    """
    H, W = grid.shape[:2]
    out = np.full_like(grid, fill)
    inside = np.zeros((H, W), dtype=bool)
    r0, r1 = max(0, -drow), min(H, H - drow)
    c0, c1 = max(0, -dcol), min(W, W - dcol)
    if r0 < r1 and c0 < c1:
        out[r0:r1, c0:c1] = grid[r0 + drow : r1 + drow, c0 + dcol : c1 + dcol]
        inside[r0:r1, c0:c1] = True
    return out, inside


def squared_distance(A: np.ndarray, B: np.ndarray) -> np.ndarray:
    D = np.asarray(A, dtype=float) - np.asarray(B, dtype=float)
    return np.einsum("...i,...i->...", D, D)


# ============================== INPUT FRAME ==================================


@dataclass(frozen=True)
class SensorFrame:
    """
    One acquisition frame.

    points : (H*W, 3) or (H, W, 3) sensor 3D coordinates
    color  : (H, W, 3) uint8 RGB image, or (H, W) packed ARGB
    depth  : (H, W) raw depth / validity map (> 0 means valid)
    """

    points: np.ndarray
    color: np.ndarray
    depth: np.ndarray

    @property
    def width(self) -> int:
        return int(self.color.shape[1])

    @property
    def height(self) -> int:
        return int(self.color.shape[0])


def _frame_sample(frame: SensorFrame, reduction_factor: int):
    f = max(1, int(reduction_factor))
    W, H = frame.width, frame.height
    w, h = W // f, H // f
    if w < 1 or h < 1:
        raise ValueError(
            f"reduction factor {f} too large for a {W}x{H} frame"
        )
    rows = np.arange(h) * f
    cols = np.arange(w) * f
    idx = (rows[:, None] * W + cols[None, :]).ravel()

    P = np.asarray(frame.points, dtype=float).reshape(-1, 3)[idx]
    color = np.asarray(frame.color)
    if color.ndim == 3:
        C = pack_rgb(color.reshape(-1, color.shape[2])[idx, :3])
    else:
        C = color.reshape(-1)[idx].astype(np.uint32)
    V = np.asarray(frame.depth).reshape(-1)[idx] > 0
    return w, h, P, C, V


# ============================== CONTAINER ====================================


class GridPointCloud:
    """Row-major grid point cloud with lazily derived normals/back points."""

    def __init__(self, width: int, height: int, cfg: Optional[CloudCfg] = None) -> None:
        if int(width) < 1 or int(height) < 1:
            raise ValueError(f"grid dimensions must be positive, got {width}x{height}")
        cfg = cfg or CloudCfg()
        self.width = int(width)
        self.height = int(height)
        n = self.width * self.height
        self.positions = np.zeros((n, 3), dtype=float)
        self.colors = np.zeros(n, dtype=np.uint32)
        self.visible = np.zeros(n, dtype=bool)
        self.center = np.zeros(3, dtype=float)
        self.connectivity_threshold = float(cfg.connectivity_threshold)
        self.back_offset = float(cfg.back_offset)
        self.back_interior_factor = float(cfg.back_interior_factor)
        self._normals: Optional[np.ndarray] = None
        self._back_points: Optional[np.ndarray] = None

    # ------------------------------------------------------------ factories

    @classmethod
    def from_selection(
        cls,
        source: "GridPointCloud",
        predicate: PointPredicate,
        center: Optional[np.ndarray] = None,
    ) -> "GridPointCloud":
        """
        Copy of ``source`` keeping only visible cells whose position passes
        ``predicate`` (vectorized over (N, 3)).
        """
        out = cls(source.width, source.height, source.cloud_cfg())
        out.positions[:] = source.positions
        out.colors[:] = source.colors
        inside = np.asarray(predicate(source.positions), dtype=bool).reshape(-1)
        out.visible[:] = source.visible & inside
        out.center[:] = source.center if center is None else np.asarray(center, float)
        LOG.debug(f"selection kept {out.visible_count}/{source.visible_count} pts")
        return out

    @classmethod
    def from_frame(
        cls,
        frame: SensorFrame,
        reduction_factor: int = 1,
        cfg: Optional[CloudCfg] = None,
    ) -> "GridPointCloud":
        """Subsample a sensor frame into a new grid."""
        w, h, P, C, V = _frame_sample(frame, reduction_factor)
        out = cls(w, h, cfg)
        out.positions[:] = P
        out.colors[:] = C
        out.visible[:] = V
        LOG.debug(f"frame {frame.width}x{frame.height} -> grid {w}x{h}")
        return out

    def update_from_frame(self, frame: SensorFrame, reduction_factor: int = 1) -> "GridPointCloud":
        """Refill in place from a new frame (dimensions follow the frame)."""
        w, h, P, C, V = _frame_sample(frame, reduction_factor)
        self.replace_arrays(w, h, P, C, V)
        return self

    # ------------------------------------------------------------ basics

    @property
    def count(self) -> int:
        return self.width * self.height

    @property
    def visible_count(self) -> int:
        return int(np.count_nonzero(self.visible))

    def index(self, col: int, row: int) -> int:
        """Flat index of grid cell (col, row)."""
        if not (0 <= col < self.width and 0 <= row < self.height):
            raise IndexError(f"cell ({col}, {row}) outside {self.width}x{self.height}")
        return col + row * self.width

    def cell(self, index: int) -> Tuple[int, int]:
        """(col, row) of a flat index."""
        return int(index % self.width), int(index // self.width)

    def grid_indices(self) -> np.ndarray:
        """(H, W) array of flat indices."""
        return np.arange(self.count).reshape(self.height, self.width)

    def as_grid(self, values: np.ndarray) -> np.ndarray:
        """View a per-point array as (H, W, ...)."""
        return values.reshape((self.height, self.width) + values.shape[1:])

    def cloud_cfg(self) -> CloudCfg:
        return CloudCfg(
            connectivity_threshold=self.connectivity_threshold,
            back_offset=self.back_offset,
            back_interior_factor=self.back_interior_factor,
        )

    def copy(self) -> "GridPointCloud":
        """Deep copy, including derived caches."""
        return _copy.deepcopy(self)

    def __repr__(self) -> str:
        return (
            f"GridPointCloud({self.width}x{self.height}, "
            f"visible={self.visible_count}, center={fmt_array(self.center)})"
        )

    # ------------------------------------------------------------ derived state

    def invalidate(self) -> None:
        """Drop normals and back points; they are rebuilt on next access."""
        self._normals = None
        self._back_points = None

    @property
    def has_normals(self) -> bool:
        return self._normals is not None

    @property
    def has_back_points(self) -> bool:
        return self._back_points is not None

    @property
    def normals(self) -> np.ndarray:
        if self._normals is None:
            self.calculate_normals()
        return self._normals

    @property
    def back_points(self) -> np.ndarray:
        if self._back_points is None:
            self.calculate_back_points()
        return self._back_points

    def calculate_normals(self) -> np.ndarray:
        from .normals import estimate_normals

        self._normals = estimate_normals(
            self.positions, self.visible, self.width, self.height
        )
        return self._normals

    def calculate_back_points(self) -> np.ndarray:
        from .normals import estimate_back_points

        self._back_points = estimate_back_points(
            self.positions,
            self.normals,
            self.visible,
            self.width,
            self.height,
            self.back_offset,
            self.back_interior_factor,
        )
        return self._back_points

    # ------------------------------------------------------------ resizing

    def replace_arrays(
        self,
        width: int,
        height: int,
        positions: np.ndarray,
        colors: np.ndarray,
        visible: np.ndarray,
    ) -> None:
        n = int(width) * int(height)
        if not (len(positions) == len(colors) == len(visible) == n):
            raise ValueError(
                f"array lengths {len(positions)}/{len(colors)}/{len(visible)} "
                f"do not match {width}x{height}"
            )
        self.width = int(width)
        self.height = int(height)
        self.positions = np.asarray(positions, dtype=float).reshape(n, 3)
        self.colors = np.asarray(colors, dtype=np.uint32).reshape(n)
        self.visible = np.asarray(visible, dtype=bool).reshape(n)
        self.invalidate()

    def remap(self, new_width: int, new_height: int, source_index: np.ndarray) -> "GridPointCloud":
        """
        Rebuild all arrays at a new size. ``source_index[k]`` is the old flat
        index copied into new cell ``k``, or -1 to leave it invisible.
        """
        src = np.asarray(source_index, dtype=np.int64).reshape(-1)
        n = int(new_width) * int(new_height)
        if len(src) != n:
            raise ValueError(f"source index has {len(src)} entries, expected {n}")
        if np.any(src >= self.count):
            raise IndexError("source index outside the current grid")
        has = src >= 0
        P = np.zeros((n, 3), dtype=float)
        C = np.zeros(n, dtype=np.uint32)
        V = np.zeros(n, dtype=bool)
        P[has] = self.positions[src[has]]
        C[has] = self.colors[src[has]]
        V[has] = self.visible[src[has]]
        self.replace_arrays(new_width, new_height, P, C, V)
        return self

    def resize(self, new_width: int, new_height: int, mapping: CellMapping) -> "GridPointCloud":
        """Resize asking ``mapping(col, row)`` for the source index of each new cell."""
        src = np.full(int(new_width) * int(new_height), -1, dtype=np.int64)
        for row in range(int(new_height)):
            for col in range(int(new_width)):
                s = mapping(col, row)
                if s is not None:
                    src[col + row * int(new_width)] = int(s)
        return self.remap(new_width, new_height, src)

    # ------------------------------------------------------------ transforms

    def constrain(self, lower, upper) -> "GridPointCloud":
        """Hide every point not strictly inside the box [lower, upper]."""
        lo = np.asarray(lower, dtype=float)
        hi = np.asarray(upper, dtype=float)
        inside = np.all((self.positions > lo) & (self.positions < hi), axis=1)
        self.visible &= inside
        self.invalidate()
        return self

    def translate(self, offset) -> "GridPointCloud":
        v = np.asarray(offset, dtype=float).reshape(3)
        self.positions += v
        self.center += v
        self.invalidate()
        return self

    def rotate(self, angle: float) -> "GridPointCloud":
        """Rotate around the vertical axis through the center (radians)."""
        R = rotation_y(angle)
        self.positions = (self.positions - self.center) @ R.T + self.center
        self.invalidate()
        return self

    def scale(self, factor: float) -> "GridPointCloud":
        """Scale around the center; the connectivity threshold follows."""
        f = float(factor)
        self.positions = (self.positions - self.center) * f + self.center
        self.connectivity_threshold *= f * f
        self.invalidate()
        return self

    # ------------------------------------------------------------ queries

    def connected(self, p1, p2) -> bool:
        return bool(squared_distance(p1, p2) < self.connectivity_threshold)

    def connected_mask(self, A: np.ndarray, B: np.ndarray) -> np.ndarray:
        """Vectorized ``connected`` over matching rows of A and B."""
        return squared_distance(A, B) < self.connectivity_threshold

    def calculate_limits(self) -> Optional[Tuple[np.ndarray, np.ndarray]]:
        """Lower/upper corners of the visible points, None if nothing is visible."""
        if not self.visible.any():
            return None
        P = self.positions[self.visible]
        return P.min(axis=0), P.max(axis=0)

    def row_extremes(self) -> Tuple[np.ndarray, np.ndarray]:
        """First and last visible column per row (-1 for empty rows)."""
        mask = self.as_grid(self.visible)
        has = mask.any(axis=1)
        ini = np.argmax(mask, axis=1)
        end = self.width - 1 - np.argmax(mask[:, ::-1], axis=1)
        ini = np.where(has, ini, -1)
        end = np.where(has, end, -1)
        return ini, end

    def central_pixel(self) -> Optional[Tuple[int, int]]:
        """(col, row) of the visible point closest to the center in the XY plane."""
        if not self.visible.any():
            return None
        d = np.sum((self.positions[:, :2] - self.center[:2]) ** 2, axis=1)
        d = np.where(self.visible, d, np.inf)
        return self.cell(int(np.argmin(d)))

    def central_point(self) -> Optional[np.ndarray]:
        px = self.central_pixel()
        if px is None:
            return None
        return self.positions[self.index(*px)].copy()
