from __future__ import annotations

from pathlib import Path

from utils import config as ucfg
from utils.error_tracker import ErrorTracker
from utils.logger import Logger

from .config import PipelineCfg
from .io import load_points, save_points
from .mesher import save_mesh
from .pipeline import build_meshes, process_scan

LOG = Logger.get_logger("main")


def run(cfg: PipelineCfg | None = None) -> Path | None:
    """
    Entry point: configure logging, install ErrorTracker, process one scan.
    Returns the output directory, or None when the scan had no visible points.
    """
    Logger.configure()
    ErrorTracker.install_excepthook()
    ErrorTracker.install_signal_handlers()

    cfg = cfg or PipelineCfg()
    root = Path(cfg.data_root)
    scan_path = root / cfg.scan_file
    LOG.info(f"[START] scan={scan_path}")

    original = load_points(scan_path, cfg.cloud)
    if original.visible_count == 0:
        LOG.warning("Empty scan - nothing to process.")
        return None

    cloud = process_scan(original, cfg.processing)
    out_dir = root / cfg.output_dir_name
    stem = Path(cfg.scan_file).stem

    if cfg.save_points:
        save_points(cloud, out_dir / f"{stem}{ucfg.PROCESSED_SUFFIX}")
    if cfg.save_meshes:
        for name, mesh in build_meshes(cloud, cfg.mesh).items():
            if mesh.is_empty:
                LOG.warning(f"[MESH] {name} is empty, not saved")
                continue
            save_mesh(mesh, out_dir / f"{stem}_{name}.ply")
    return out_dir


def _main() -> None:
    """Module runner for `python -m gridscan.main`."""
    try:
        run(PipelineCfg())
    except Exception as e:
        ErrorTracker.report(e)
        raise


if __name__ == "__main__":
    _main()
