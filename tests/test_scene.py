"""Mesh integrity, tangent frames, cameras and lights."""

import numpy as np
import pytest

from cpuraster.errors import MeshError
from cpuraster.scene import (Camera, Light, Mesh, TextureSet, Vertex, split_lights,
                             tangent_basis, vertex_normals)
from cpuraster.textures import Texture

from conftest import quad


class TestMesh:
    def test_out_of_range_index(self):
        with pytest.raises(MeshError):
            Mesh([(0, 0, 0), (1, 0, 0), (0, 1, 0)], faces=[[0, 1, 3]])

    def test_validate_mismatched_attributes(self):
        mesh = quad(0, 0, 1, 1)
        mesh.uvs = mesh.uvs[:2]
        with pytest.raises(MeshError):
            mesh.validate()

    def test_validate_face_materials_length(self):
        mesh = Mesh([(0, 0, 0), (1, 0, 0), (0, 1, 0)], faces=[[0, 1, 2]], face_materials=[0, 1])
        with pytest.raises(MeshError):
            mesh.validate()

    def test_degenerate_face_is_not_an_error(self):
        mesh = Mesh([(0, 0, 0), (1, 0, 0), (0, 1, 0)], faces=[[0, 0, 1]])
        assert mesh.validate() is mesh

    def test_default_normals_follow_winding(self):
        mesh = Mesh([(0, 0, 0), (1, 0, 0), (0, 1, 0)], faces=[[0, 1, 2]])
        assert np.allclose(mesh.normals, [[0, 0, 1]] * 3)

    def test_from_vertices(self):
        verts = [
            Vertex((0, 0, 0), (0, 0, 1), (0, 0), (1, 0, 0)),
            Vertex((1, 0, 0), (0, 0, 1), (1, 0), (1, 0, 0)),
            Vertex((0, 1, 0), (0, 0, 1), (0, 1), (1, 0, 0)),
        ]
        mesh = Mesh.from_vertices(verts, [[0, 1, 2]])
        assert mesh.has_tangents()
        assert np.allclose(mesh.bitangents, [[0, 1, 0]] * 3)
        assert mesh.vertex(1).uv == (1.0, 0.0)

    def test_bounds(self):
        lo, hi = quad(-1, -2, 3, 4, z=0.5).bounds()
        assert np.allclose(lo, [-1, -2, 0.5])
        assert np.allclose(hi, [3, 4, 0.5])


class TestTangents:
    def test_axis_aligned_uvs(self):
        mesh = quad(0, 0, 2, 2)
        tan, bit = tangent_basis(mesh.positions, mesh.normals, mesh.uvs, mesh.faces)
        assert np.allclose(tan, [[1, 0, 0]] * 4)
        assert np.allclose(bit, [[0, 1, 0]] * 4)

    def test_mirrored_uvs_flip_bitangent(self):
        mesh = quad(0, 0, 2, 2)
        uvs = mesh.uvs.copy()
        uvs[:, 1] = 1.0 - uvs[:, 1]
        _, bit = tangent_basis(mesh.positions, mesh.normals, uvs, mesh.faces)
        assert np.allclose(bit, [[0, -1, 0]] * 4)

    def test_compute_tangents_fills_mesh(self):
        mesh = quad(0, 0, 1, 1).compute_tangents()
        assert mesh.has_tangents()

    def test_vertex_normals_unreferenced_vertex(self):
        n = vertex_normals(np.array([[0, 0, 0], [1, 0, 0], [0, 1, 0], [5, 5, 5]], dtype=float),
                           np.array([[0, 1, 2]]))
        assert np.allclose(n[3], [0, 0, 1])


class TestMaterials:
    def test_arrays_become_textures(self):
        ts = TextureSet(diffuse=np.zeros((2, 2, 3), dtype=np.uint8))
        assert isinstance(ts.diffuse, Texture)
        assert ts.normal is None

    def test_unknown_normal_space(self):
        with pytest.raises(ValueError):
            TextureSet(normal_space="world")


class TestCamera:
    def test_orthographic_switch(self):
        assert not Camera().is_orthographic
        cam = Camera(ortho_height=2.0)
        assert cam.is_orthographic
        assert cam.projection_matrix(2.0)[0, 0] == pytest.approx(1.0 / 4.0)

    def test_view_direction(self):
        cam = Camera(eye=(0, 0, 5), target=(0, 0, 0))
        assert np.allclose(cam.view_direction(), [0, 0, -1])


class TestLights:
    def test_direction_to_light(self):
        pts = np.array([[0.0, 0.0, 0.0], [1.0, 0.0, 0.0]])
        d = Light.directional((0, -1, 0)).direction_to_light(pts)
        assert np.allclose(d, [[0, 1, 0], [0, 1, 0]])
        p = Light.point((0, 0, 2)).direction_to_light(pts)
        assert np.allclose(p[0], [0, 0, 1])

    def test_radiance(self):
        assert np.allclose(Light.ambient((1.0, 0.5, 0.0), 2.0).radiance(), [2.0, 1.0, 0.0])

    def test_ambient_never_casts_shadows(self):
        assert not Light.ambient().casts_shadows
        assert Light.directional((0, 0, -1)).casts_shadows
        assert not Light.directional((0, 0, -1), cast_shadows=False).casts_shadows

    def test_split(self):
        lights = [Light.ambient(), Light.point((0, 0, 1)), Light.directional((1, 0, 0))]
        ambient, direct = split_lights(lights)
        assert len(ambient) == 1 and len(direct) == 2

    def test_unknown_kind(self):
        with pytest.raises(ValueError):
            Light(kind="spot")

    @pytest.mark.parametrize("light", [Light.directional((0, 0, -1)), Light.point((0, 0, 6))])
    def test_shadow_camera_sees_bounds(self, light):
        lo, hi = np.array([-1.0, -1.0, -1.0]), np.array([1.0, 1.0, 1.0])
        cam = light.shadow_camera(lo, hi)
        vp = cam.view_projection(1.0)
        corners = np.array([[x, y, z] for x in (-1, 1) for y in (-1, 1) for z in (-1, 1)], dtype=float)
        clip = np.c_[corners, np.ones(8)] @ vp.T
        ndc = clip[:, :3] / clip[:, 3:4]
        assert np.all(np.abs(ndc) <= 1.0 + 1e-9)
