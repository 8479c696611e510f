from __future__ import annotations

import math

import numpy as np

from .config import ALPHA_OPAQUE
from .logger import Logger

# ============================================================================ #
# Logger / numpy
# ============================================================================ #
logger = Logger.get_logger("helpers")


def fmt_array(v) -> str:
    """Pretty numpy one-liner for logs."""
    return np.array2string(np.asarray(v), separator=", ")


# ============================================================================ #
# Math: rotations
# ============================================================================ #
def rotation_y(angle: float) -> np.ndarray:
    """
    3x3 rotation around the vertical (Y) axis, angle in radians.
    x' = cos*x - sin*z, z' = sin*x + cos*z
    """
    c, s = math.cos(angle), math.sin(angle)
    return np.array(
        [
            [c, 0.0, -s],
            [0.0, 1.0, 0.0],
            [s, 0.0, c],
        ]
    )


def rotation_x(angle: float) -> np.ndarray:
    """3x3 rotation around the horizontal (X) axis, angle in radians."""
    c, s = math.cos(angle), math.sin(angle)
    return np.array(
        [
            [1.0, 0.0, 0.0],
            [0.0, c, -s],
            [0.0, s, c],
        ]
    )


def safe_normalize(V: np.ndarray, eps: float = 1e-12) -> np.ndarray:
    """Row-wise normalization; rows shorter than eps become zero."""
    V = np.asarray(V, dtype=float)
    n = np.linalg.norm(V, axis=-1, keepdims=True)
    out = np.zeros_like(V)
    np.divide(V, n, out=out, where=n > eps)
    return out


def round_half_up(x) -> np.ndarray:
    """Round-to-nearest with halves going up (127.5 -> 128)."""
    return np.floor(np.asarray(x, dtype=float) + 0.5)


# ============================================================================ #
# Packed ARGB colors
# ============================================================================ #
def pack_rgb(rgb: np.ndarray) -> np.ndarray:
    """(N,3) 0-255 channels -> (N,) uint32 opaque ARGB."""
    c = np.clip(np.asarray(rgb), 0, 255).astype(np.uint32)
    return (
        np.uint32(ALPHA_OPAQUE)
        | (c[..., 0] << np.uint32(16))
        | (c[..., 1] << np.uint32(8))
        | c[..., 2]
    ).astype(np.uint32)


def unpack_rgb(colors: np.ndarray) -> np.ndarray:
    """(N,) packed ARGB -> (N,3) int64 channels."""
    c = np.asarray(colors, dtype=np.uint32)
    return np.stack(
        [(c >> np.uint32(16)) & 0xFF, (c >> np.uint32(8)) & 0xFF, c & 0xFF],
        axis=-1,
    ).astype(np.int64)


def unpack_rgba(colors: np.ndarray) -> np.ndarray:
    """(N,) packed ARGB -> (N,4) uint8 RGBA."""
    c = np.asarray(colors, dtype=np.uint32)
    return np.stack(
        [
            (c >> np.uint32(16)) & 0xFF,
            (c >> np.uint32(8)) & 0xFF,
            c & 0xFF,
            (c >> np.uint32(24)) & 0xFF,
        ],
        axis=-1,
    ).astype(np.uint8)
