"""Render configuration validation."""

import pytest

from cpuraster.errors import ConfigurationError
from cpuraster.options import RenderOptions, validate_resolution


class TestRenderOptions:
    def test_defaults(self):
        opts = RenderOptions()
        assert opts.shading == "phong"
        assert opts.shadow_bias == 0.005
        assert opts.shadow_map_size == 1024
        assert opts.ssao_samples == 16
        assert opts.texture_filter == "bilinear"
        assert opts.seed == 1337

    @pytest.mark.parametrize("changes", [
        {"shading": "raytraced"},
        {"texture_filter": "trilinear"},
        {"cull": "front"},
        {"shadow_bias": -0.1},
        {"shadow_map_size": 0},
        {"shadow_darkness": 1.5},
        {"ssao_samples": 0},
        {"ssao_radius": 0.0},
        {"bloom_radius": -1},
        {"bloom_strength": -2.0},
        {"background": (0.0, 0.0)},
    ])
    def test_invalid_values(self, changes):
        with pytest.raises(ConfigurationError):
            RenderOptions(**changes)

    def test_replace_validates(self):
        opts = RenderOptions().replace(shading="gouraud", toon_shading=True)
        assert opts.shading == "gouraud" and opts.toon_shading
        with pytest.raises(ConfigurationError):
            opts.replace(shading="nope")

    def test_dict_round_trip(self):
        opts = RenderOptions(background=(0.1, 0.2, 0.3), ssao=False)
        assert RenderOptions.from_dict(opts.to_dict()) == opts

    def test_from_dict_lists_become_tuples(self):
        opts = RenderOptions.from_dict({"background": [0.0, 0.5, 1.0]})
        assert opts.background == (0.0, 0.5, 1.0)

    def test_from_dict_unknown_key(self):
        with pytest.raises(ConfigurationError, match="antialiasing"):
            RenderOptions.from_dict({"antialiasing": 4})

    def test_configuration_error_is_value_error(self):
        with pytest.raises(ValueError):
            RenderOptions(shading="x")


class TestResolution:
    def test_valid(self):
        assert validate_resolution((640, 480)) == (640, 480)

    @pytest.mark.parametrize("bad", [(0, 10), (10, -1), (10.5, 10), "abc", None, (1, 2, 3)])
    def test_invalid(self, bad):
        with pytest.raises(ConfigurationError):
            validate_resolution(bad)
