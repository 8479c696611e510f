import numpy as np
import pytest
import open3d as o3d

from gridscan.mesher import bands, lines, points, save_mesh, triangulate
from gridscan.pipeline import build_meshes
from gridscan.config import MeshCfg

from conftest import make_flat_grid


def _edges_ok(cloud, mesh):
    src = mesh.source_primitives()
    k = src.shape[1]
    for a in range(k):
        for b in range(a + 1, k):
            if not cloud.connected_mask(
                cloud.positions[src[:, a]], cloud.positions[src[:, b]]
            ).all():
                return False
    return bool(cloud.visible[src].all())


def test_full_grid_gives_two_triangles_per_block():
    cloud = make_flat_grid(4, 4)
    mesh = triangulate(cloud)
    assert mesh.kind == "triangles"
    assert len(mesh) == 18
    assert len(mesh.vertices) == 16
    assert mesh.colors.shape == (16, 4)
    assert mesh.normals is None
    assert _edges_ok(cloud, mesh)


def test_first_block_triangles_in_order():
    mesh = triangulate(make_flat_grid(2, 2))
    assert mesh.source_primitives().tolist() == [[0, 1, 2], [1, 3, 2]]


def test_fallback_when_right_neighbor_is_hidden():
    cloud = make_flat_grid(2, 2)
    cloud.visible[1] = False
    mesh = triangulate(cloud)
    assert mesh.source_primitives().tolist() == [[0, 3, 2]]


def test_fallback_when_lower_neighbor_is_hidden():
    cloud = make_flat_grid(2, 2)
    cloud.visible[2] = False
    mesh = triangulate(cloud)
    assert mesh.source_primitives().tolist() == [[0, 1, 3]]


def test_disconnected_point_drops_its_triangles():
    cloud = make_flat_grid(3, 2)
    cloud.positions[2, 2] = 500.0
    mesh = triangulate(cloud)
    assert 2 not in mesh.source_primitives()
    assert len(mesh) == 2
    assert _edges_ok(cloud, mesh)


def test_degenerate_grid_has_no_triangles():
    assert triangulate(make_flat_grid(5, 1)).is_empty


def test_back_side_uses_back_points_with_reversed_winding():
    cloud = make_flat_grid(2, 2)
    mesh = triangulate(cloud, add_normals=True, back_side=True)
    assert mesh.source_primitives().tolist() == [[0, 2, 1], [1, 2, 3]]
    assert np.allclose(mesh.vertices[:, 2], -0.01)
    assert np.allclose(mesh.normals, [0.0, 0.0, -1.0])


def test_optional_vertex_attributes():
    cloud = make_flat_grid(3, 3)
    mesh = triangulate(cloud, add_normals=True, add_colors=False)
    assert mesh.colors is None
    assert np.allclose(mesh.normals, [0.0, 0.0, 1.0])


def test_lines_cover_grid_edges_and_respect_connectivity():
    cloud = make_flat_grid(3, 2)
    mesh = lines(cloud)
    # 4 horizontal + 3 vertical + 2 diagonal
    assert len(mesh) == 9
    cloud.positions[5, 2] = 500.0
    gated = lines(cloud)
    assert 5 not in gated.source_primitives()
    assert _edges_ok(cloud, gated)


def test_points_one_per_visible_cell():
    cloud = make_flat_grid(3, 3)
    cloud.visible[[0, 4]] = False
    mesh = points(cloud)
    assert len(mesh) == 7
    assert mesh.source_index.tolist() == [1, 2, 3, 5, 6, 7, 8]


def test_to_open3d_geometry_types():
    cloud = make_flat_grid(3, 3)
    tri = triangulate(cloud).to_open3d()
    assert isinstance(tri, o3d.geometry.TriangleMesh)
    assert len(tri.triangles) == 8
    assert isinstance(lines(cloud).to_open3d(), o3d.geometry.LineSet)
    assert isinstance(points(cloud).to_open3d(), o3d.geometry.PointCloud)


def test_build_meshes_and_save(tmp_path):
    cloud = make_flat_grid(3, 3)
    meshes = build_meshes(cloud, MeshCfg(lines=True, points=True))
    assert set(meshes) == {"front", "back", "lines", "points"}
    out = save_mesh(meshes["front"], tmp_path / "sub" / "front.ply")
    assert out.exists()


# ------------------------------------------------------------------ bands


def test_bands_on_full_grid_match_triangulation():
    cloud = make_flat_grid(3, 3)
    mesh = bands(cloud)
    assert len(mesh) == 8
    assert mesh.source_primitives()[:2].tolist() == [[0, 1, 3], [3, 1, 4]]
    assert _edges_ok(cloud, mesh)
    # same orientation as the block triangulation
    assert bands(make_flat_grid(2, 2)).source_primitives().tolist() == [[0, 1, 2], [2, 1, 3]]


def test_bands_skip_rows_by_gap():
    cloud = make_flat_grid(3, 5)
    assert len(bands(cloud, 2)) == 2 * 4
    top_rows = bands(cloud, 4).source_index
    assert top_rows.max() < 2 * 3


def test_bands_close_with_lower_point_when_upper_is_hidden():
    cloud = make_flat_grid(3, 2)
    cloud.visible[2] = False
    mesh = bands(cloud)
    assert mesh.source_primitives().tolist() == [[0, 1, 3], [3, 1, 4], [1, 5, 4]]


def test_bands_restart_at_disconnected_point():
    cloud = make_flat_grid(5, 2)
    cloud.positions[2, 2] = 500.0
    mesh = bands(cloud)
    assert 2 not in mesh.source_primitives()
    assert _edges_ok(cloud, mesh)
    # strips on both sides of the far point survive
    assert len(mesh) == 4


def test_bands_reject_bad_gap():
    with pytest.raises(ValueError):
        bands(make_flat_grid(2, 2), 0)
