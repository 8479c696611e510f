from __future__ import annotations

from dataclasses import dataclass, replace
from typing import Dict

from utils.logger import Logger

from .config import MeshCfg, ProcessingCfg
from .grid import GridPointCloud
from .holes import fill_holes
from .mesher import GridMesh, bands, lines, points, triangulate
from .normals import calculate_back_points, calculate_normals
from .resample import crop, reduce_resolution
from .smoothing import gaussian_smooth

LOG = Logger.get_logger("pipeline")


@dataclass
class ScanEditor:
    """
    Keeps the untouched capture and rebuilds the working copy from it every
    time a processing parameter changes, so edits never accumulate.
    """

    original: GridPointCloud
    cfg: ProcessingCfg = ProcessingCfg()

    def __post_init__(self) -> None:
        self.original = self.original.copy()
        self.current = process_scan(self.original, self.cfg)

    def update(self, **changes) -> GridPointCloud:
        """Apply new processing knobs (ProcessingCfg field names) from scratch."""
        self.cfg = replace(self.cfg, **changes)
        self.current = process_scan(self.original, self.cfg)
        return self.current

    def reset(self) -> GridPointCloud:
        self.current = self.original.copy()
        return self.current


def process_scan(original: GridPointCloud, cfg: ProcessingCfg) -> GridPointCloud:
    """Copy, reduce, fill, smooth, (scale, crop), then derive normals/back points."""
    cloud = original.copy()
    LOG.info(f"[PROCESS] start {cloud}")
    reduce_resolution(cloud, cfg.reduction_factor)
    fill_holes(cloud, cfg.fill_max_gap)
    gaussian_smooth(cloud, cfg.smooth_kernel)
    if cfg.scale != 1.0:
        cloud.scale(cfg.scale)
    if cfg.crop:
        crop(cloud)
    if cfg.compute_normals or cfg.compute_back_points:
        calculate_normals(cloud)
    if cfg.compute_back_points:
        calculate_back_points(cloud)
    LOG.info(f"[PROCESS] done {cloud}")
    return cloud


def build_meshes(cloud: GridPointCloud, cfg: MeshCfg) -> Dict[str, GridMesh]:
    """Primitive lists requested by ``cfg``, keyed by name."""
    out: Dict[str, GridMesh] = {}
    if cfg.triangles:
        out["front"] = triangulate(cloud, cfg.add_normals, cfg.add_colors)
    if cfg.back_side:
        out["back"] = triangulate(cloud, cfg.add_normals, cfg.add_colors, back_side=True)
    if cfg.lines:
        out["lines"] = lines(cloud, cfg.add_normals, cfg.add_colors)
    if cfg.points:
        out["points"] = points(cloud, cfg.add_normals, cfg.add_colors)
    if cfg.bands:
        out["bands"] = bands(cloud, cfg.band_gap, cfg.add_normals, cfg.add_colors)
    LOG.info("[MESH] " + " ".join(f"{k}={len(m)}" for k, m in out.items()))
    return out
