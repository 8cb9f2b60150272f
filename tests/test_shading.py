"""Shading variants, texture roles and lighting terms."""

import numpy as np
import pytest

from cpuraster import RenderOptions, render
from cpuraster.scene import Light, TextureSet
from cpuraster.shading import DEFAULT_MATERIAL, bucket_intensity, material_for
from cpuraster.textures import Texture

from conftest import pixel_camera, quad

SIZE = 16
CENTRE = (8, 8)                      # (row, col) inside the quad below
LIGHT_FRONT = Light.directional((0.0, 0.0, -1.0), cast_shadows=False)


@pytest.fixture
def mesh():
    return quad(4, 4, 12, 12)


@pytest.fixture
def camera():
    return pixel_camera(SIZE, SIZE)


def options(**kw):
    base = dict(shadows=False, ssao=False, bloom=False, texture_filter="nearest")
    base.update(kw)
    return RenderOptions(**base)


def shade_one(mesh, camera, textures, lights, **kw):
    return render(mesh, textures, camera, lights, (SIZE, SIZE), options(**kw))


class TestHelpers:
    def test_bucket_intensity(self):
        vals = np.array([0.9, 0.7, 0.5, 0.35, 0.2, 0.1, 0.0])
        assert bucket_intensity(vals).tolist() == [1.0, 0.8, 0.6, 0.45, 0.3, 0.0, 0.0]

    def test_material_fallback(self):
        mats = [TextureSet(base_color=(1, 0, 0))]
        assert material_for(mats, 0) is mats[0]
        assert material_for(mats, 4) is DEFAULT_MATERIAL
        assert material_for([], 0) is DEFAULT_MATERIAL


class TestLighting:
    @pytest.mark.parametrize("shading", ["flat", "gouraud", "phong"])
    def test_head_on_light_is_full_diffuse(self, mesh, camera, shading):
        fb = shade_one(mesh, camera, TextureSet(base_color=(0.2, 1.0, 0.6)), [LIGHT_FRONT], shading=shading)
        assert fb.color[CENTRE].tolist() == [51, 255, 153]

    def test_light_from_behind_is_black(self, mesh, camera):
        fb = shade_one(mesh, camera, None, [Light.directional((0, 0, 1))])
        assert fb.color[CENTRE].tolist() == [0, 0, 0]

    def test_oblique_light_scales_by_cosine(self, mesh, camera):
        d = (0.0, -np.sqrt(0.84), -0.4)
        fb = shade_one(mesh, camera, None, [Light.directional(d)], shading="flat")
        assert fb.color[CENTRE].tolist() == [102, 102, 102]

    def test_lights_accumulate(self, mesh, camera):
        dim = Light.directional((0, 0, -1), intensity=0.25, cast_shadows=False)
        fb = shade_one(mesh, camera, None, [dim, dim, Light.ambient(intensity=0.25)])
        assert fb.color[CENTRE].tolist() == [191, 191, 191]

    def test_point_light(self, mesh, camera):
        fb = shade_one(mesh, camera, None, [Light.point((8.0, 8.0, 5.0), cast_shadows=False)])
        # right under the light the surface faces it squarely
        assert fb.color[CENTRE].min() > 240

    def test_specular_highlight(self, mesh, camera):
        spec = TextureSet(base_color=(0, 0, 0), specular=Texture.solid((1.0, 1.0, 1.0)), shininess=8.0)
        fb = shade_one(mesh, camera, spec, [LIGHT_FRONT])
        assert fb.color[CENTRE].min() > 200
        dull = shade_one(mesh, camera, TextureSet(base_color=(0, 0, 0)), [LIGHT_FRONT])
        assert dull.color[CENTRE].tolist() == [0, 0, 0]

    def test_toon_quantizes_gouraud(self, mesh, camera):
        d = (0.0, -np.sin(np.radians(50.0)), -np.cos(np.radians(50.0)))   # N.L ~ 0.64
        fb = shade_one(mesh, camera, None, [Light.directional(d)], shading="gouraud", toon_shading=True)
        assert fb.color[CENTRE].tolist() == [204, 204, 204]


class TestTextures:
    def test_diffuse_map_tints(self, mesh, camera):
        tex = TextureSet(diffuse=Texture.solid((0.0, 1.0, 0.0)))
        fb = shade_one(mesh, camera, tex, [Light.ambient()])
        assert fb.color[CENTRE].tolist() == [0, 255, 0]

    def test_glow_only_shows_through_bloom(self, mesh, camera):
        tex = TextureSet(base_color=(0, 0, 0), glow=Texture.solid((0.0, 0.0, 0.5)))
        fb = shade_one(mesh, camera, tex, [])
        assert fb.color[CENTRE].tolist() == [0, 0, 0]
        assert np.allclose(fb.glow[CENTRE], [0.0, 0.0, 0.5])

    @pytest.mark.parametrize("bloom", [False, True])
    def test_dim_glow_below_threshold_is_dark(self, mesh, camera, bloom):
        tex = TextureSet(base_color=(0, 0, 0), glow=Texture.solid((0.3, 0.3, 0.3)))
        fb = shade_one(mesh, camera, tex, [], bloom=bloom, bloom_threshold=0.6)
        assert fb.color[CENTRE].tolist() == [0, 0, 0]

    def test_bright_glow_blooms(self, mesh, camera):
        tex = TextureSet(base_color=(0, 0, 0), glow=Texture.solid((1.0, 1.0, 1.0)))
        fb = shade_one(mesh, camera, tex, [], bloom=True)
        assert fb.color[CENTRE].min() > 0

    def test_flat_tangent_normal_map_changes_nothing(self, mesh, camera):
        flat = TextureSet(normal=Texture.solid((0.5, 0.5, 1.0)))
        with_map = shade_one(mesh, camera, flat, [LIGHT_FRONT])
        without = shade_one(mesh, camera, None, [LIGHT_FRONT])
        assert np.array_equal(with_map.color, without.color)

    def test_tangent_normal_map_tilts_normal(self, mesh, camera):
        sideways = TextureSet(normal=Texture.solid((1.0, 0.5, 0.5)))
        fb = shade_one(mesh, camera, sideways, [LIGHT_FRONT])
        assert np.allclose(fb.normal[CENTRE], [1.0, 0.0, 0.0], atol=1e-6)
        assert fb.color[CENTRE].tolist() == [0, 0, 0]
        off = shade_one(mesh, camera, sideways, [LIGHT_FRONT], normal_mapping=False)
        assert off.color[CENTRE].tolist() == [255, 255, 255]

    def test_object_space_normal_map(self, mesh, camera):
        up = TextureSet(normal=Texture.solid((0.5, 1.0, 0.5)), normal_space="object")
        fb = shade_one(mesh, camera, up, [Light.directional((0, -1, 0), cast_shadows=False)])
        assert np.allclose(fb.normal[CENTRE], [0.0, 1.0, 0.0], atol=1e-6)
        assert fb.color[CENTRE].tolist() == [255, 255, 255]

    def test_per_face_materials(self, camera):
        mesh = quad(4, 4, 12, 12)
        mesh.face_materials = np.array([0, 1])
        mats = [TextureSet(base_color=(1, 0, 0)), TextureSet(base_color=(0, 0, 1))]
        fb = render(mesh, mats, camera, [Light.ambient()], (SIZE, SIZE), options())
        colours = {tuple(c) for c in fb.color[fb.coverage].tolist()}
        assert colours == {(255, 0, 0), (0, 0, 255)}


class TestDebugModes:
    def test_unlit_ignores_lights(self, mesh, camera):
        fb = shade_one(mesh, camera, TextureSet(base_color=(0.2, 0.4, 0.6)), [], shading="unlit")
        assert fb.color[CENTRE].tolist() == [51, 102, 153]

    def test_depth_mode(self, mesh, camera):
        fb = shade_one(mesh, camera, None, [], shading="depth")
        expect = int(np.round((1.0 - fb.depth[CENTRE]) * 255.0))
        assert fb.color[CENTRE].tolist() == [expect] * 3

    def test_outputs_for_later_passes(self, mesh, camera):
        fb = shade_one(mesh, camera, None, [LIGHT_FRONT])
        assert fb.coverage.sum() == 64
        assert np.allclose(fb.normal[fb.coverage], [0, 0, 1])
        assert np.allclose(fb.position[CENTRE], [8.5, 16 - 8.5, 0.0])
