from __future__ import annotations

from dataclasses import dataclass, field

from utils import config as ucfg

# ============================== CONFIG TYPES =================================


@dataclass(frozen=True)
class CloudCfg:
    """Per-cloud geometric constants."""

    connectivity_threshold: float = ucfg.MAX_SEPARATION**2  # squared distance
    back_offset: float = ucfg.BACK_OFFSET
    back_interior_factor: float = ucfg.BACK_INTERIOR_FACTOR


@dataclass(frozen=True)
class ProcessingCfg:
    """Scalar knobs fed by the control panel (0/1 disables a stage)."""

    reduction_factor: int = 2
    fill_max_gap: int = 15
    smooth_kernel: int = 0
    scale: float = 1.0
    crop: bool = False
    compute_normals: bool = True
    compute_back_points: bool = True


@dataclass(frozen=True)
class MeshCfg:
    """Which primitive lists to build and what each vertex carries."""

    add_normals: bool = False
    add_colors: bool = True
    triangles: bool = True
    back_side: bool = True
    lines: bool = False
    points: bool = False
    bands: bool = False
    band_gap: int = 1  # rows between bands


@dataclass(frozen=True)
class PickingCfg:
    radius_px: float = 10.0
    use_back_points: bool = True


@dataclass(frozen=True)
class PipelineCfg:
    """Top-level knobs for the scan processing run."""

    data_root: str = str(ucfg.DATA_ROOT)
    scan_file: str = ucfg.SCAN_FILE
    output_dir_name: str = ucfg.OUTPUT_DIR_NAME
    cloud: CloudCfg = field(default_factory=CloudCfg)
    processing: ProcessingCfg = field(default_factory=ProcessingCfg)
    mesh: MeshCfg = field(default_factory=MeshCfg)
    picking: PickingCfg = field(default_factory=PickingCfg)
    save_points: bool = True
    save_meshes: bool = True
