"""
Render configuration.

RenderOptions carries every per-call toggle and tuning constant. Defaults
are reasonable for a ~1 unit sized model; shadow bias and SSAO radius are
scene-scale dependent and meant to be tuned.
"""

import dataclasses
from dataclasses import dataclass
from typing import Any, Mapping, Tuple

from .errors import ConfigurationError
from .geometry import CULL_BACK, CULL_NONE
from .textures import FILTER_BILINEAR, FILTER_NEAREST

SHADING_FLAT = "flat"
SHADING_GOURAUD = "gouraud"
SHADING_PHONG = "phong"
SHADING_UNLIT = "unlit"
SHADING_DEPTH = "depth"

SHADING_MODELS = (SHADING_FLAT, SHADING_GOURAUD, SHADING_PHONG, SHADING_UNLIT, SHADING_DEPTH)


@dataclass(frozen=True)
class RenderOptions:
    # shading
    shading: str = SHADING_PHONG
    normal_mapping: bool = True
    texture_filter: str = FILTER_BILINEAR
    toon_shading: bool = False
    cull: str = CULL_BACK
    background: Tuple[float, float, float] = (0.04, 0.04, 0.07)

    # shadows
    shadows: bool = True
    shadow_bias: float = 0.005
    shadow_map_size: int = 1024
    shadow_darkness: float = 1.0

    # ambient occlusion
    ssao: bool = True
    ssao_samples: int = 16
    ssao_radius: float = 0.5
    ssao_bias: float = 0.025
    ssao_blur: bool = True

    # glow / bloom
    bloom: bool = True
    bloom_threshold: float = 0.6
    bloom_radius: int = 4
    bloom_strength: float = 1.0

    # debug overlay
    wireframe: bool = False
    wireframe_color: Tuple[float, float, float] = (0.8, 0.8, 0.9)

    # RNG seed for the SSAO kernel/noise; fixed so frames are reproducible
    seed: int = 1337

    def __post_init__(self):
        self.validate()

    def validate(self) -> "RenderOptions":
        if self.shading not in SHADING_MODELS:
            raise ConfigurationError(f"shading must be one of {SHADING_MODELS}, got {self.shading!r}")
        if self.texture_filter not in (FILTER_BILINEAR, FILTER_NEAREST):
            raise ConfigurationError(f"unknown texture_filter {self.texture_filter!r}")
        if self.cull not in (CULL_BACK, CULL_NONE):
            raise ConfigurationError(f"unknown cull mode {self.cull!r}")
        if self.shadow_bias < 0.0:
            raise ConfigurationError("shadow_bias must be >= 0")
        if int(self.shadow_map_size) <= 0:
            raise ConfigurationError("shadow_map_size must be positive")
        if not 0.0 <= self.shadow_darkness <= 1.0:
            raise ConfigurationError("shadow_darkness must be in [0, 1]")
        if int(self.ssao_samples) <= 0:
            raise ConfigurationError("ssao_samples must be positive")
        if self.ssao_radius <= 0.0:
            raise ConfigurationError("ssao_radius must be positive")
        if self.ssao_bias < 0.0:
            raise ConfigurationError("ssao_bias must be >= 0")
        if int(self.bloom_radius) < 0:
            raise ConfigurationError("bloom_radius must be >= 0")
        if self.bloom_strength < 0.0:
            raise ConfigurationError("bloom_strength must be >= 0")
        for name in ("background", "wireframe_color"):
            if len(getattr(self, name)) != 3:
                raise ConfigurationError(f"{name} must be an RGB triple")
        return self

    def replace(self, **changes) -> "RenderOptions":
        return dataclasses.replace(self, **changes)

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> "RenderOptions":
        """Build options from a plain mapping (e.g. parsed JSON); unknown keys are an error."""
        known = {f.name for f in dataclasses.fields(cls)}
        unknown = sorted(set(data) - known)
        if unknown:
            raise ConfigurationError(f"unknown render options: {', '.join(unknown)}")
        values = dict(data)
        for name in ("background", "wireframe_color"):
            if name in values:
                values[name] = tuple(values[name])
        return cls(**values)

    def to_dict(self) -> dict:
        return dataclasses.asdict(self)


def validate_resolution(resolution) -> Tuple[int, int]:
    """Return (width, height) or raise ConfigurationError before anything is allocated."""
    try:
        width, height = resolution
        width_i, height_i = int(width), int(height)
    except (TypeError, ValueError) as e:
        raise ConfigurationError(f"resolution must be a (width, height) pair, got {resolution!r}") from e
    if width_i != width or height_i != height:
        raise ConfigurationError(f"resolution must be integral, got {resolution!r}")
    if width_i <= 0 or height_i <= 0:
        raise ConfigurationError(f"resolution must be positive, got {width_i}x{height_i}")
    return width_i, height_i
