"""Projection to screen space, culling and near-plane clipping."""

import numpy as np
import pytest

from cpuraster.geometry import (ATTR_COUNT, CULL_NONE, clip_poly_near, project_mesh, signed_area,
                                triangulate_fan)
from cpuraster.maths import translate
from cpuraster.scene import Camera, Mesh

from conftest import pixel_camera, quad


def project(mesh, camera, width=8, height=8, **kw):
    return project_mesh(mesh, camera.view_matrix(), camera.projection_matrix(width / height),
                        width, height, **kw)


class TestProjection:
    def test_pixel_camera_mapping(self, camera8):
        tri = Mesh([(1, 1, 0), (7, 1, 0), (1, 5, 0)], faces=[[0, 1, 2]])
        batch = project(tri, camera8)
        assert batch.count == 1
        xy = sorted(map(tuple, batch.screen[0, :, :2].tolist()))
        assert xy == [(1.0, 3.0), (1.0, 7.0), (7.0, 7.0)]

    def test_triangles_stored_with_positive_area(self, camera8, quad_mesh):
        batch = project(quad_mesh, camera8)
        assert batch.count == 2
        assert np.all(signed_area(batch.screen) > 0.0)

    def test_back_faces_culled(self, camera8, quad_mesh):
        back = Mesh(quad_mesh.positions, quad_mesh.normals, quad_mesh.uvs, quad_mesh.faces[:, ::-1])
        assert project(back, camera8).count == 0
        both = project(back, camera8, cull=CULL_NONE)
        assert both.count == 2
        assert np.all(signed_area(both.screen) > 0.0)

    def test_degenerate_faces_dropped(self, camera8):
        mesh = Mesh([(1, 1, 0), (7, 1, 0), (1, 5, 0)], faces=[[0, 0, 1], [0, 1, 2]])
        batch = project(mesh, camera8)
        assert batch.count == 1
        assert batch.face.tolist() == [1]

    def test_zero_area_dropped(self, camera8):
        mesh = Mesh([(1, 1, 0), (3, 3, 0), (5, 5, 0)], faces=[[0, 1, 2]])
        assert project(mesh, camera8, cull=CULL_NONE).count == 0

    def test_offscreen_rejected(self, camera8):
        assert project(quad(20, 20, 30, 30), camera8).count == 0

    def test_model_matrix_and_attributes(self, camera8, quad_mesh):
        batch = project(quad_mesh, camera8, model=translate(1.0, 0.0, 0.0))
        assert batch.attrs.shape == (2, 3, ATTR_COUNT)
        assert batch.world_pos[..., 0].min() == pytest.approx(3.0)
        assert np.allclose(batch.normal, [0, 0, 1])

    def test_face_materials_carried(self, camera8):
        mesh = quad(2, 2, 6, 6)
        mesh.face_materials = np.array([3, 5])
        assert sorted(project(mesh, camera8).material.tolist()) == [3, 5]

    def test_empty_mesh(self, camera8):
        assert project(Mesh(np.zeros((0, 3)), faces=[]), camera8).count == 0


class TestNearClipping:
    def test_clip_poly_near(self):
        # two vertices in front (z >= -w), one behind
        clip = np.array([[0.0, 0.0, 0.0, 1.0], [1.0, 0.0, 0.0, 1.0], [0.0, 1.0, -3.0, 1.0]])
        attrs = np.array([[0.0], [1.0], [2.0]])
        pts, att = clip_poly_near(clip, attrs)
        assert len(pts) == 4
        for p in pts:
            assert p[2] + p[3] >= -1e-12
        assert len(triangulate_fan(pts, att)) == 2

    def test_crossing_triangle_keeps_positive_w(self):
        cam = Camera(eye=(0.0, 0.0, 0.0), target=(0.0, 0.0, -1.0), fov_y=90.0, near=0.5, far=50.0)
        # one vertex behind the camera
        mesh = Mesh([(-1.0, -1.0, -2.0), (1.0, -1.0, -2.0), (0.0, 1.0, 1.0)], faces=[[0, 1, 2]])
        batch = project(mesh, cam, 16, 16, cull=CULL_NONE)
        assert batch.count >= 1
        assert np.all(batch.inv_w > 0.0)
        assert np.all(batch.screen[:, :, 2] >= -1e-9)

    def test_fully_behind_dropped(self):
        cam = Camera(eye=(0.0, 0.0, 0.0), target=(0.0, 0.0, -1.0), near=0.5)
        mesh = Mesh([(-1.0, -1.0, 2.0), (1.0, -1.0, 2.0), (0.0, 1.0, 2.0)], faces=[[0, 1, 2]])
        assert project(mesh, cam, cull=CULL_NONE).count == 0


def test_pixel_camera_helper_is_exact():
    cam = pixel_camera(16, 8)
    mesh = Mesh([(0, 0, 0), (16, 0, 0), (16, 8, 0)], faces=[[0, 1, 2]])
    batch = project(mesh, cam, 16, 8)
    assert set(map(tuple, batch.screen[0, :, :2].tolist())) == {(0.0, 8.0), (16.0, 8.0), (16.0, 0.0)}
