# gridscan/mesher.py
"""
Grid triangulation plus line and point lists for the rendering step.

Every emitted primitive only joins visible points, and every edge it
contains passes the cloud's connectivity test.
"""

from __future__ import annotations

from dataclasses import dataclass
from pathlib import Path
from typing import List, Literal, Optional, Tuple

import numpy as np
import open3d as o3d

from utils.helpers import unpack_rgba
from utils.logger import Logger, SuppressNativeOutput

from .grid import GridPointCloud

LOG = Logger.get_logger("mesher")

MeshKind = Literal["triangles", "lines", "points"]


# ============================== OUTPUT TYPE ==================================


@dataclass
class GridMesh:
    """
    Indexed primitive list.

    vertices     : (V, 3) positions
    indices      : (M, k) vertex indices, k = 3 / 2 / 1
    source_index : (V,) flat grid index of each vertex
    colors       : (V, 4) uint8 RGBA or None
    normals      : (V, 3) unit normals or None
    """

    kind: MeshKind
    vertices: np.ndarray
    indices: np.ndarray
    source_index: np.ndarray
    colors: Optional[np.ndarray] = None
    normals: Optional[np.ndarray] = None

    def __len__(self) -> int:
        return int(len(self.indices))

    @property
    def is_empty(self) -> bool:
        return len(self.indices) == 0

    def primitives(self) -> np.ndarray:
        """(M, k, 3) vertex positions per primitive."""
        return self.vertices[self.indices]

    def source_primitives(self) -> np.ndarray:
        """(M, k) grid indices per primitive."""
        return self.source_index[self.indices]

    def to_open3d(self):
        """TriangleMesh / LineSet / PointCloud for Open3D consumers."""
        pts = o3d.utility.Vector3dVector(self.vertices.astype(np.float64))
        rgb = None
        if self.colors is not None:
            rgb = self.colors[:, :3].astype(np.float64) / 255.0

        if self.kind == "triangles":
            geom = o3d.geometry.TriangleMesh()
            geom.vertices = pts
            geom.triangles = o3d.utility.Vector3iVector(self.indices.astype(np.int32))
            if rgb is not None:
                geom.vertex_colors = o3d.utility.Vector3dVector(rgb)
            if self.normals is not None:
                geom.vertex_normals = o3d.utility.Vector3dVector(self.normals)
            return geom

        if self.kind == "lines":
            geom = o3d.geometry.LineSet()
            geom.points = pts
            geom.lines = o3d.utility.Vector2iVector(self.indices.astype(np.int32))
            if rgb is not None and len(self.indices):
                # LineSet colors are per line: take the first endpoint
                geom.colors = o3d.utility.Vector3dVector(rgb[self.indices[:, 0]])
            return geom

        geom = o3d.geometry.PointCloud()
        geom.points = pts
        if rgb is not None:
            geom.colors = o3d.utility.Vector3dVector(rgb)
        if self.normals is not None:
            geom.normals = o3d.utility.Vector3dVector(self.normals)
        return geom


def _build(
    cloud: GridPointCloud,
    kind: MeshKind,
    prims: np.ndarray,
    positions: np.ndarray,
    add_colors: bool,
    add_normals: bool,
    flip_normals: bool = False,
) -> GridMesh:
    """Compact grid-indexed primitives into a GridMesh with its own vertex list."""
    k = {"triangles": 3, "lines": 2, "points": 1}[kind]
    prims = np.asarray(prims, dtype=np.int64).reshape(-1, k)
    used = np.unique(prims)
    indices = np.searchsorted(used, prims).astype(np.int64)

    colors = unpack_rgba(cloud.colors[used]) if add_colors else None
    normals = None
    if add_normals:
        normals = cloud.normals[used]
        if flip_normals:
            normals = -normals
    return GridMesh(
        kind=kind,
        vertices=positions[used].copy(),
        indices=indices,
        source_index=used,
        colors=colors,
        normals=normals,
    )


def _edges_connected(cloud: GridPointCloud, P: np.ndarray, a, b) -> np.ndarray:
    return cloud.connected_mask(P[a], P[b])


# ============================== TRIANGLES ====================================


def triangulate(
    cloud: GridPointCloud,
    add_normals: bool = False,
    add_colors: bool = True,
    back_side: bool = False,
) -> GridMesh:
    """
    Two triangles per 2x2 block (i, i+1, i+w, i+w+1).

    First triangle (i, i+1, i+w) falls back to (i, i+w+1, i+w) when i+1 is
    invisible; second (i+1, i+w+1, i+w) falls back to (i, i+1, i+w+1) when
    i+w is invisible. ``back_side`` triangulates the back points with
    reversed winding.
    """
    P = cloud.back_points if back_side else cloud.positions
    w, h = cloud.width, cloud.height
    if w < 2 or h < 2:
        return _build(cloud, "triangles", np.empty((0, 3)), P, add_colors, add_normals, back_side)

    i = cloud.grid_indices()[:-1, :-1].ravel()
    a, b, c, d = i, i + 1, i + w, i + w + 1
    V = cloud.visible

    first_nat = V[b]
    first = np.where(first_nat[:, None], np.stack([a, b, c], 1), np.stack([a, d, c], 1))
    first_ok = V[a] & V[c] & (first_nat | V[d])

    second_nat = V[c]
    second = np.where(second_nat[:, None], np.stack([b, d, c], 1), np.stack([a, b, d], 1))
    second_ok = V[b] & V[d] & (second_nat | V[a])

    tris = np.stack([first, second], axis=1).reshape(-1, 3)
    ok = np.stack([first_ok, second_ok], axis=1).reshape(-1)
    tris = tris[ok]
    conn = (
        _edges_connected(cloud, P, tris[:, 0], tris[:, 1])
        & _edges_connected(cloud, P, tris[:, 0], tris[:, 2])
        & _edges_connected(cloud, P, tris[:, 1], tris[:, 2])
    )
    tris = tris[conn]
    if back_side:
        tris = tris[:, [0, 2, 1]]

    mesh = _build(cloud, "triangles", tris, P, add_colors, add_normals, back_side)
    LOG.debug(
        f"triangulate{' (back)' if back_side else ''}: {len(mesh)} triangles, "
        f"{int(ok.sum()) - len(mesh)} rejected by connectivity"
    )
    return mesh


# ============================== BANDS ========================================


def _band_strips(cloud: GridPointCloud, vertical_gap: int) -> List[List[int]]:
    """
    Triangle strips (as grid index lists) pairing each selected row with the
    row below. A strip restarts when the next point in the row is not
    connected to the previous one; an unusable lower point is replaced by
    the upper one, and an invisible upper point may close the strip with its
    lower neighbor.
    """
    w, h = cloud.width, cloud.height
    P, V = cloud.positions, cloud.visible
    strips: List[List[int]] = []
    strip: Optional[List[int]] = None

    for row in range(0, h - 1, vertical_gap):
        if strip is not None:
            strips.append(strip)
            strip = None
        col = 0
        while col < w:
            i = col + row * w
            lower = i + w
            if V[i]:
                if strip is None:
                    strip = [i]
                elif cloud.connected(P[i], P[i - 1]):
                    strip.append(i)
                else:
                    # restart the band from this same point
                    strips.append(strip)
                    strip = None
                    continue
                if V[lower] and cloud.connected(P[i], P[lower]):
                    strip.append(lower)
                else:
                    strip.append(i)
            elif strip is not None:
                if V[lower] and cloud.connected(P[lower], P[i - 1]):
                    strip.append(lower)
                strips.append(strip)
                strip = None
            col += 1

    if strip is not None:
        strips.append(strip)
    return strips


def _strip_triangles(strip: List[int]) -> List[Tuple[int, int, int]]:
    """Unroll a strip, wound like ``triangulate``; degenerate triangles dropped."""
    tris = []
    for k in range(len(strip) - 2):
        a, b, c = strip[k], strip[k + 1], strip[k + 2]
        if a == b or b == c or a == c:
            continue
        tris.append((a, c, b) if k % 2 == 0 else (a, b, c))
    return tris


def bands(
    cloud: GridPointCloud,
    vertical_gap: int = 1,
    add_normals: bool = False,
    add_colors: bool = True,
) -> GridMesh:
    """Horizontal triangle bands every ``vertical_gap`` rows."""
    vertical_gap = int(vertical_gap)
    if vertical_gap < 1:
        raise ValueError(f"vertical_gap must be positive, got {vertical_gap}")
    strips = _band_strips(cloud, vertical_gap)
    tris = [t for s in strips for t in _strip_triangles(s)]
    mesh = _build(
        cloud, "triangles", np.array(tris, dtype=np.int64).reshape(-1, 3),
        cloud.positions, add_colors, add_normals,
    )
    LOG.debug(f"bands(gap={vertical_gap}): {len(strips)} strips, {len(mesh)} triangles")
    return mesh


# ============================== LINES / POINTS ===============================


def lines(
    cloud: GridPointCloud, add_normals: bool = False, add_colors: bool = True
) -> GridMesh:
    """Horizontal, vertical and diagonal (i -> i+w+1) grid edges."""
    w, h = cloud.width, cloud.height
    G = cloud.grid_indices()
    pairs = []
    if w > 1:
        pairs.append(np.stack([G[:, :-1].ravel(), G[:, 1:].ravel()], 1))
    if h > 1:
        pairs.append(np.stack([G[:-1, :].ravel(), G[1:, :].ravel()], 1))
    if w > 1 and h > 1:
        pairs.append(np.stack([G[:-1, :-1].ravel(), G[1:, 1:].ravel()], 1))
    if not pairs:
        return _build(cloud, "lines", np.empty((0, 2)), cloud.positions, add_colors, add_normals)

    E = np.concatenate(pairs, axis=0)
    E = E[np.lexsort((E[:, 1], E[:, 0]))]
    V = cloud.visible
    ok = V[E[:, 0]] & V[E[:, 1]]
    E = E[ok]
    E = E[_edges_connected(cloud, cloud.positions, E[:, 0], E[:, 1])]
    return _build(cloud, "lines", E, cloud.positions, add_colors, add_normals)


def points(
    cloud: GridPointCloud, add_normals: bool = False, add_colors: bool = True
) -> GridMesh:
    """One point primitive per visible cell."""
    idx = np.flatnonzero(cloud.visible)
    return _build(cloud, "points", idx[:, None], cloud.positions, add_colors, add_normals)


# ============================== EXPORT =======================================


def save_mesh(mesh: GridMesh, path: Path) -> Path:
    """Write a GridMesh as PLY through Open3D."""
    path = Path(path)
    path.parent.mkdir(parents=True, exist_ok=True)
    geom = mesh.to_open3d()
    with SuppressNativeOutput():
        if mesh.kind == "triangles":
            ok = o3d.io.write_triangle_mesh(str(path), geom)
        elif mesh.kind == "lines":
            ok = o3d.io.write_line_set(str(path), geom)
        else:
            ok = o3d.io.write_point_cloud(str(path), geom)
    if ok:
        LOG.info(f"Save wrote {len(mesh)} {mesh.kind} to {path}")
    else:
        LOG.warning(f"Save failed: {path}")
    return path
