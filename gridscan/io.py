# gridscan/io.py
"""
Row-major point+color text format.

Line 1: "<width> <height>"
Then exactly width*height lines, one per cell in row-major order:
    x y z r g b                 visible cell, position relative to the center
    -99 -99 -99 -99 -99 -99     masked cell
"""

from __future__ import annotations

from pathlib import Path
from typing import List, Optional

import numpy as np

from utils import config as ucfg
from utils.error_tracker import ScanFormatError
from utils.helpers import pack_rgb, round_half_up, unpack_rgb
from utils.logger import Logger

from .config import CloudCfg
from .grid import GridPointCloud

LOG = Logger.get_logger("io")

N_FIELDS = 6
SENTINEL_LINE = " ".join([str(ucfg.INVISIBLE_SENTINEL)] * N_FIELDS)


def _fmt(v: float) -> str:
    return repr(float(v))


def format_points(cloud: GridPointCloud) -> List[str]:
    """Serialize to the list of file lines (without newlines)."""
    lines = [f"{cloud.width} {cloud.height}"]
    rel = cloud.positions - cloud.center
    rgb = unpack_rgb(cloud.colors)
    for i in range(cloud.count):
        if cloud.visible[i]:
            x, y, z = rel[i]
            r, g, b = rgb[i]
            lines.append(f"{_fmt(x)} {_fmt(y)} {_fmt(z)} {r} {g} {b}")
        else:
            lines.append(SENTINEL_LINE)
    return lines


def save_points(cloud: GridPointCloud, path: Path) -> Path:
    """Write the cloud in the text format, positions relative to its center."""
    path = Path(path)
    path.parent.mkdir(parents=True, exist_ok=True)
    path.write_text("\n".join(format_points(cloud)) + "\n", encoding="utf-8")
    LOG.info(f"Save wrote {cloud.visible_count}/{cloud.count} points to {path}")
    return path


def _parse_header(line: str):
    parts = line.split()
    if len(parts) != 2:
        raise ScanFormatError(f"header must be '<width> <height>', got {line!r}", 1)
    try:
        width, height = int(parts[0]), int(parts[1])
    except ValueError as e:
        raise ScanFormatError(f"non-integer dimensions {line!r}", 1) from e
    if width < 1 or height < 1:
        raise ScanFormatError(f"dimensions must be positive, got {width}x{height}", 1)
    return width, height


def parse_points(text: str, cfg: Optional[CloudCfg] = None) -> GridPointCloud:
    """
    Parse the text format. Any malformed content raises ScanFormatError.
    The center is the mean of the visible points (0 if there are none).
    """
    lines = text.splitlines()
    while lines and not lines[-1].strip():
        lines.pop()
    if not lines:
        raise ScanFormatError("empty scan file")

    width, height = _parse_header(lines[0])
    n = width * height
    body = lines[1:]
    if len(body) != n:
        raise ScanFormatError(f"expected {n} point lines for {width}x{height}, got {len(body)}")

    values = np.empty((n, N_FIELDS), dtype=float)
    for k, line in enumerate(body):
        parts = line.split()
        if len(parts) != N_FIELDS:
            raise ScanFormatError(f"expected {N_FIELDS} values, got {len(parts)}", k + 2)
        try:
            values[k] = [float(p) for p in parts]
        except ValueError as e:
            raise ScanFormatError(f"non-numeric value in {line!r}", k + 2) from e
        if not np.all(np.isfinite(values[k])):
            raise ScanFormatError(f"non-finite value in {line!r}", k + 2)

    visible = values[:, 3] >= 0
    cloud = GridPointCloud(width, height, cfg)
    cloud.visible[:] = visible
    cloud.positions[visible] = values[visible, :3]
    cloud.colors[visible] = pack_rgb(round_half_up(values[visible, 3:6]))
    if visible.any():
        cloud.center[:] = cloud.positions[visible].mean(axis=0)
    return cloud


def load_points(path: Path, cfg: Optional[CloudCfg] = None) -> GridPointCloud:
    path = Path(path)
    if not path.exists():
        raise FileNotFoundError(f"scan file not found: {path}")
    cloud = parse_points(path.read_text(encoding="utf-8"), cfg)
    LOG.info(f"Loaded {cloud.visible_count} visible points ({cloud.width}x{cloud.height}) from {path.name}")
    return cloud
