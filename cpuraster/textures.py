"""
Textures and sampling.

Sampling is a pair of pure functions over (data, uv, wrap); a Texture only
bundles the pixel array with convenience accessors. There is no hidden
sampler state: filter and wrap policy are passed on every call.

Texture coordinates follow the OBJ convention: u grows to the right,
v grows upwards, so v=0 is the bottom row of the image.
"""

from typing import Optional

import numpy as np

WRAP_CLAMP = "clamp"
WRAP_REPEAT = "repeat"

FILTER_NEAREST = "nearest"
FILTER_BILINEAR = "bilinear"


def _wrap_index(idx: np.ndarray, size: int, wrap: str) -> np.ndarray:
    if wrap == WRAP_REPEAT:
        return np.mod(idx, size)
    return np.clip(idx, 0, size - 1)


def sample_nearest(data: np.ndarray, uv: np.ndarray, wrap: str = WRAP_CLAMP) -> np.ndarray:
    """
    Nearest-texel lookup.

    data - (H, W, C) float array
    uv   - (N, 2) texture coordinates
    Returns (N, C).
    """
    th, tw = data.shape[:2]
    uv = np.asarray(uv, dtype=np.float64)
    tx = np.floor(uv[:, 0] * tw).astype(np.int64)
    ty = np.floor((1.0 - uv[:, 1]) * th).astype(np.int64)
    tx = _wrap_index(tx, tw, wrap)
    ty = _wrap_index(ty, th, wrap)
    return data[ty, tx]


def sample_bilinear(data: np.ndarray, uv: np.ndarray, wrap: str = WRAP_CLAMP) -> np.ndarray:
    """
    Bilinear lookup between the four texel centres around each uv.

    With the clamp policy, samples past the outer texel centres take the
    edge texel (clamp-to-edge).
    """
    th, tw = data.shape[:2]
    uv = np.asarray(uv, dtype=np.float64)
    fx = uv[:, 0] * tw - 0.5
    fy = (1.0 - uv[:, 1]) * th - 0.5
    x0 = np.floor(fx)
    y0 = np.floor(fy)
    ax = (fx - x0)[:, None]
    ay = (fy - y0)[:, None]
    x0 = x0.astype(np.int64)
    y0 = y0.astype(np.int64)
    x1 = _wrap_index(x0 + 1, tw, wrap)
    y1 = _wrap_index(y0 + 1, th, wrap)
    x0 = _wrap_index(x0, tw, wrap)
    y0 = _wrap_index(y0, th, wrap)

    top = data[y0, x0] * (1.0 - ax) + data[y0, x1] * ax
    bottom = data[y1, x0] * (1.0 - ax) + data[y1, x1] * ax
    return top * (1.0 - ay) + bottom * ay


class Texture:
    """
    2D grid of colour samples stored as float32 in [0, 1].

    Accepts uint8 arrays (0..255) or float arrays already in [0, 1];
    greyscale (H, W) images become (H, W, 1).
    """

    def __init__(self, data: np.ndarray):
        arr = np.asarray(data)
        if arr.ndim == 2:
            arr = arr[:, :, None]
        if arr.dtype == np.uint8:
            arr = arr.astype(np.float32) / 255.0
        else:
            arr = arr.astype(np.float32)
        self.data = arr

    @property
    def width(self) -> int:
        return self.data.shape[1]

    @property
    def height(self) -> int:
        return self.data.shape[0]

    @property
    def channels(self) -> int:
        return self.data.shape[2]

    def sample(self, uv: np.ndarray, filter: str = FILTER_BILINEAR,
               wrap: str = WRAP_CLAMP) -> np.ndarray:
        if filter == FILTER_NEAREST:
            return sample_nearest(self.data, uv, wrap)
        return sample_bilinear(self.data, uv, wrap)

    def sample_rgb(self, uv: np.ndarray, filter: str = FILTER_BILINEAR,
                   wrap: str = WRAP_CLAMP) -> np.ndarray:
        """Sample and broadcast to three channels (greyscale -> grey RGB)."""
        s = self.sample(uv, filter, wrap)
        if s.shape[1] >= 3:
            return s[:, :3]
        return np.repeat(s[:, :1], 3, axis=1)

    def sample_scalar(self, uv: np.ndarray, filter: str = FILTER_BILINEAR,
                      wrap: str = WRAP_CLAMP) -> np.ndarray:
        """Sample the first channel only (specular/intensity maps)."""
        return self.sample(uv, filter, wrap)[:, 0]

    def sample_normal(self, uv: np.ndarray, filter: str = FILTER_BILINEAR,
                      wrap: str = WRAP_CLAMP) -> np.ndarray:
        """Decode an RGB normal map texel from [0,1] to a [-1,1] vector."""
        return self.sample_rgb(uv, filter, wrap) * 2.0 - 1.0

    @staticmethod
    def solid(color, size: int = 1) -> "Texture":
        """A constant-colour texture, handy for tests and placeholders."""
        c = np.asarray(color, dtype=np.float32)
        return Texture(np.tile(c, (size, size, 1)))


def optional_texture(value) -> Optional[Texture]:
    """Coerce arrays to Texture, pass Texture/None through."""
    if value is None or isinstance(value, Texture):
        return value
    return Texture(value)
