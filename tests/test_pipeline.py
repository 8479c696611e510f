import signal
import sys

import numpy as np

from gridscan.config import MeshCfg, PipelineCfg, ProcessingCfg
from gridscan.grid import GridPointCloud
from gridscan.io import load_points, save_points
from gridscan.main import run
from gridscan.pipeline import ScanEditor, process_scan
from utils.error_tracker import ErrorTracker

from conftest import make_flat_grid


def test_process_scan_leaves_original_untouched():
    original = make_flat_grid(8, 8)
    before = original.positions.copy()
    out = process_scan(original, ProcessingCfg())
    assert (out.width, out.height) == (4, 4)
    assert out.has_normals and out.has_back_points
    assert (original.width, original.height) == (8, 8)
    assert np.array_equal(original.positions, before)


def test_process_scan_scale_and_crop():
    original = make_flat_grid(6, 6)
    original.visible[:] = False
    original.visible[[14, 15, 20, 21]] = True
    cfg = ProcessingCfg(reduction_factor=1, scale=2.0, crop=True, compute_back_points=False)
    out = process_scan(original, cfg)
    assert (out.width, out.height) == (2, 2)
    assert out.connectivity_threshold == original.connectivity_threshold * 4
    assert out.has_normals and not out.has_back_points


def test_editor_rebuilds_from_original():
    editor = ScanEditor(make_flat_grid(8, 8))
    assert (editor.current.width, editor.current.height) == (4, 4)
    editor.update(reduction_factor=4)
    assert (editor.current.width, editor.current.height) == (2, 2)
    editor.update(reduction_factor=1)
    assert (editor.current.width, editor.current.height) == (8, 8)
    assert editor.cfg.reduction_factor == 1
    assert editor.reset().count == 64


def _isolate_tracker(monkeypatch):
    monkeypatch.setattr(signal, "signal", lambda *args: None)
    monkeypatch.setattr(sys, "excepthook", sys.excepthook)
    monkeypatch.setattr(ErrorTracker, "_installed", False)
    monkeypatch.setattr(ErrorTracker, "_orig_hook", None)


def test_run_writes_processed_scan_and_meshes(tmp_path, monkeypatch):
    _isolate_tracker(monkeypatch)
    save_points(make_flat_grid(8, 8), tmp_path / "scan.points")
    cfg = PipelineCfg(data_root=str(tmp_path), mesh=MeshCfg(lines=True))

    out_dir = run(cfg)
    assert out_dir == tmp_path / "out"
    for name in ("scan_front.ply", "scan_back.ply", "scan_lines.ply"):
        assert (out_dir / name).exists()
    processed = load_points(out_dir / "scan_processed.points")
    assert (processed.width, processed.height) == (4, 4)


def test_run_on_empty_scan_returns_none(tmp_path, monkeypatch):
    _isolate_tracker(monkeypatch)
    save_points(GridPointCloud(2, 2), tmp_path / "scan.points")
    assert run(PipelineCfg(data_root=str(tmp_path))) is None
    assert not (tmp_path / "out").exists()
