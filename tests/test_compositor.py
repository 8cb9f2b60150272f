"""Bloom and final colour resolve."""

import numpy as np
import pytest

from cpuraster.compositor import bloom, compose, luminance, overlay_wireframe
from cpuraster.framebuffer import Framebuffer, to_uint8

from conftest import make_batch


@pytest.fixture
def fb():
    f = Framebuffer(8, 8)
    f.clear((0.2, 0.4, 0.6))
    return f


class TestBloom:
    def test_below_threshold_is_dropped(self):
        glow = np.full((8, 8, 3), 0.5)
        assert np.all(bloom(glow, threshold=0.6) == 0.0)

    def test_bright_pixel_spreads(self):
        glow = np.zeros((9, 9, 3))
        glow[4, 4] = 1.0
        out = bloom(glow, threshold=0.5, radius=2, strength=1.0)
        assert out[4, 4, 0] < 1.0
        assert out[4, 6, 0] > 0.0
        assert out[..., 0].sum() == pytest.approx(1.0)

    def test_strength_scales(self):
        glow = np.zeros((9, 9, 3))
        glow[4, 4] = 1.0
        assert np.allclose(bloom(glow, 0.5, 2, 2.0), 2.0 * bloom(glow, 0.5, 2, 1.0))

    def test_luminance_of_white(self):
        assert luminance(np.array([1.0, 1.0, 1.0])) == pytest.approx(1.0)


class TestCompose:
    def test_uncovered_keeps_background(self, fb):
        compose(fb)
        assert np.all(fb.color == to_uint8((0.2, 0.4, 0.6)))

    def test_terms_add_up(self, fb):
        fb.coverage[2, 3] = True
        fb.ambient[2, 3] = 0.2
        fb.direct[2, 3] = (0.4, 0.2, 0.0)
        compose(fb)
        assert fb.color[2, 3].tolist() == to_uint8((0.6, 0.4, 0.2)).tolist()

    def test_raw_glow_not_added(self, fb):
        fb.coverage[2, 3] = True
        fb.glow[2, 3] = (0.4, 0.0, 0.0)
        compose(fb)
        assert fb.color[2, 3].tolist() == [0, 0, 0]
        compose(fb, None, bloom(fb.glow, threshold=0.6))
        assert fb.color[2, 3].tolist() == [0, 0, 0]

    def test_ao_scales_ambient_only(self, fb):
        fb.coverage[0, 0] = True
        fb.ambient[0, 0] = 0.4
        fb.direct[0, 0] = 0.2
        ao = np.ones((8, 8))
        ao[0, 0] = 0.5
        compose(fb, ao)
        assert fb.color[0, 0].tolist() == [to_uint8(0.4)] * 3

    def test_clamps_overexposure(self, fb):
        fb.coverage[1, 1] = True
        fb.direct[1, 1] = 5.0
        compose(fb)
        assert fb.color[1, 1].tolist() == [255, 255, 255]

    def test_bloom_reaches_background(self, fb):
        halo = np.zeros((8, 8, 3))
        halo[5, 5] = 0.25
        compose(fb, None, halo)
        assert fb.color[5, 5].tolist() == to_uint8((0.45, 0.65, 0.85)).tolist()
        assert fb.color[0, 0].tolist() == to_uint8((0.2, 0.4, 0.6)).tolist()


def test_wireframe_overlay(fb):
    batch = make_batch([[(0, 0, 0.5), (7, 0, 0.5), (0, 7, 0.5)]])
    overlay_wireframe(fb, batch, (1.0, 0.0, 0.0))
    assert fb.color[0, 4].tolist() == [255, 0, 0]
    assert fb.color[6, 6].tolist() == to_uint8((0.2, 0.4, 0.6)).tolist()


def test_clear_colour_matches_background():
    f = Framebuffer(4, 4)
    f.clear((0.1, 0.2, 0.3))
    assert f.color[0, 0].tolist() == to_uint8((0.1, 0.2, 0.3)).tolist() == [26, 51, 76]
    compose(f)
    assert np.all(f.color == [26, 51, 76])
