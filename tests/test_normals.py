import numpy as np
import pytest

from gridscan.normals import (
    calculate_back_points,
    calculate_normals,
    estimate_normals,
    interior_mask,
)

from conftest import make_flat_grid


def test_flat_grid_normals_point_along_z():
    cloud = make_flat_grid(4, 4)
    N = calculate_normals(cloud)
    assert N.shape == (16, 3)
    assert np.allclose(N, [0.0, 0.0, 1.0])
    assert cloud.has_normals


def test_mirrored_grid_flips_normals():
    cloud = make_flat_grid(3, 3)
    cloud.positions[:, 0] *= -1.0
    assert np.allclose(cloud.normals, [0.0, 0.0, -1.0])


def test_normals_are_unit_or_zero():
    rng = np.random.default_rng(7)
    cloud = make_flat_grid(6, 5)
    cloud.positions[:, 2] = rng.normal(scale=0.3, size=cloud.count)
    cloud.visible[rng.random(cloud.count) < 0.3] = False
    N = estimate_normals(cloud.positions, cloud.visible, cloud.width, cloud.height)
    lengths = np.linalg.norm(N, axis=1)
    assert np.all(np.isclose(lengths, 1.0) | (lengths == 0.0))
    assert np.all(lengths[~cloud.visible] == 0.0)


def test_isolated_point_has_zero_normal():
    cloud = make_flat_grid(3, 3)
    cloud.visible[:] = False
    cloud.visible[4] = True
    assert np.allclose(cloud.normals[4], 0.0)


def test_single_row_has_no_normals():
    cloud = make_flat_grid(4, 1)
    assert np.allclose(cloud.normals, 0.0)


def test_interior_mask_needs_four_visible_neighbors():
    cloud = make_flat_grid(3, 3)
    assert np.flatnonzero(interior_mask(cloud.visible, 3, 3)).tolist() == [4]
    cloud.visible[1] = False
    assert not interior_mask(cloud.visible, 3, 3).any()


def test_back_points_push_interior_further():
    cloud = make_flat_grid(3, 3)
    B = calculate_back_points(cloud)
    assert cloud.has_back_points
    assert B[4, 2] == pytest.approx(-0.01 * 10.0)
    assert B[0, 2] == pytest.approx(-0.01)
    assert np.allclose(B[:, :2], cloud.positions[:, :2])


def test_back_points_keep_invisible_positions():
    cloud = make_flat_grid(3, 3)
    cloud.visible[8] = False
    cloud.positions[8] = [5.0, 5.0, 5.0]
    assert np.allclose(cloud.back_points[8], [5.0, 5.0, 5.0])
