import math

import numpy as np
import pytest

from gridscan.box import ScanBox
from gridscan.combine import Slit, average_clouds, combine_slits
from gridscan.grid import GridPointCloud
from utils.helpers import pack_rgb, unpack_rgb

from conftest import make_flat_grid


def test_box_is_inside_is_strict():
    box = ScanBox(center=[0, 0, 0], size=10.0)
    inside = box.is_inside(np.array([[4.9, 0, 0], [5.0, 0, 0], [0, -4.9, 4.9]]))
    assert inside.tolist() == [True, False, True]
    lo, hi = box.corners()
    assert np.allclose(lo, -5.0) and np.allclose(hi, 5.0)


def test_center_in_face_moves_box_back():
    box = ScanBox(center=[0, 0, 0], size=400.0)
    cloud = GridPointCloud(1, 1)
    assert box.center_in_face(cloud, lambda c: np.array([1.0, 2.0, 3.0]))
    assert np.allclose(box.center, [1.0, 2.0, 83.0])
    assert not box.center_in_face(cloud, lambda c: None)
    assert np.allclose(box.center, [1.0, 2.0, 83.0])


def test_average_over_visible_captures():
    a = GridPointCloud(2, 1)
    a.positions[:] = [[0.0, 0.0, 0.0], [2.0, 0.0, 0.0]]
    a.colors[:] = pack_rgb(np.array([[100, 0, 0], [100, 0, 0]]))
    a.visible[:] = True
    b = GridPointCloud(2, 1)
    b.positions[0] = [2.0, 0.0, 0.0]
    b.colors[0] = pack_rgb(np.array([[201, 0, 0]]))[0]
    b.visible[0] = True

    avg = average_clouds([a, b])
    assert avg.visible.tolist() == [True, True]
    assert np.allclose(avg.positions, [[1.0, 0.0, 0.0], [2.0, 0.0, 0.0]])
    assert unpack_rgb(avg.colors)[:, 0].tolist() == [150, 100]


def test_average_rejects_bad_input():
    with pytest.raises(ValueError):
        average_clouds([])
    with pytest.raises(ValueError):
        average_clouds([GridPointCloud(2, 2), GridPointCloud(3, 2)])


def test_vertical_slit_takes_column_nearest_box_center():
    cloud = make_flat_grid(3, 3, spacing=10.0)
    box = ScanBox(center=[10.0, 10.0, 0.0], size=100.0)
    slit = Slit.from_cloud(cloud, box, vertical=True)
    assert len(slit) == 3
    assert slit.visible.all()
    assert np.allclose(slit.positions[:, 0], 10.0)
    assert np.allclose(slit.positions[:, 1], [0.0, 10.0, 20.0])


def test_slit_empty_when_nothing_close():
    cloud = make_flat_grid(3, 3, spacing=10.0)
    box = ScanBox(center=[15.0, 15.0, 0.0], size=100.0)
    slit = Slit.from_cloud(cloud, box, vertical=True, min_distance=2.0)
    assert not slit.visible.any()


def test_combine_shifted_slits():
    cloud = make_flat_grid(3, 3, spacing=10.0)
    box = ScanBox(center=[10.0, 10.0, 0.0], size=100.0)
    slits = [Slit.from_cloud(cloud, box, vertical=True) for _ in range(3)]
    out = combine_slits(slits)
    assert (out.width, out.height) == (3, 3)
    assert out.visible.all()
    G = out.grid_indices()
    assert np.allclose(out.positions[G[0, :], 0], [20.0, 15.0, 10.0])
    assert np.allclose(out.center, box.center)


def test_combine_rotated_slits():
    slit = Slit(
        vertical=True,
        center=np.zeros(3),
        positions=np.array([[1.0, 0.0, 0.0]]),
        colors=np.zeros(1, dtype=np.uint32),
        visible=np.array([True]),
    )
    out = combine_slits([slit, slit], rotate=True)
    a = math.radians(4.0)
    assert np.allclose(out.positions[0], [math.cos(a), 0.0, math.sin(a)])
    assert np.allclose(out.positions[1], [1.0, 0.0, 0.0])
