"""Framebuffer: colour output plus the depth/normal/position planes the passes share."""

import numpy as np
from PIL import Image

from .maths import Buffer2D

FAR_DEPTH = 1.0


class Framebuffer:
    """
    All per-pixel buffers of one render target.

    color    - (H, W, 3) uint8, final output; only the compositor writes it
               after the main pass
    depth    - (H, W) float64 z-buffer, cleared to FAR_DEPTH
    normal   - (H, W, 3) world-space shading normal
    position - (H, W, 3) world-space position
    ambient, direct, glow - (H, W, 3) float32 lighting terms kept apart so
               SSAO and bloom can be applied separately
    coverage - (H, W) bool, True where geometry was drawn
    tri_ids, bary - visibility buffer (triangle index + perspective-correct
               barycentrics) written by the rasterizer

    Allocated once per resolution; clear() resets in place.
    """

    def __init__(self, width: int, height: int):
        self.width = width
        self.height = height
        self.background = np.zeros(3, dtype=np.float64)
        self._color = Buffer2D(width, height, 3, np.uint8, 0)
        self._depth = Buffer2D(width, height, 1, np.float64, FAR_DEPTH)
        self._normal = Buffer2D(width, height, 3, np.float32, 0.0)
        self._position = Buffer2D(width, height, 3, np.float32, 0.0)
        self._ambient = Buffer2D(width, height, 3, np.float32, 0.0)
        self._direct = Buffer2D(width, height, 3, np.float32, 0.0)
        self._glow = Buffer2D(width, height, 3, np.float32, 0.0)
        self._coverage = Buffer2D(width, height, 1, np.bool_, False)
        self._tri_ids = Buffer2D(width, height, 1, np.int64, -1)
        self._bary = Buffer2D(width, height, 3, np.float64, 0.0)

    @property
    def resolution(self):
        return self.width, self.height

    @property
    def color(self) -> np.ndarray:
        return self._color.data

    @property
    def depth(self) -> np.ndarray:
        return self._depth.data

    @property
    def normal(self) -> np.ndarray:
        return self._normal.data

    @property
    def position(self) -> np.ndarray:
        return self._position.data

    @property
    def ambient(self) -> np.ndarray:
        return self._ambient.data

    @property
    def direct(self) -> np.ndarray:
        return self._direct.data

    @property
    def glow(self) -> np.ndarray:
        return self._glow.data

    @property
    def coverage(self) -> np.ndarray:
        return self._coverage.data

    @property
    def tri_ids(self) -> np.ndarray:
        return self._tri_ids.data

    @property
    def bary(self) -> np.ndarray:
        return self._bary.data

    def clear(self, background=(0.0, 0.0, 0.0)) -> None:
        """Reset every plane; the colour plane is filled with `background` (RGB in [0,1])."""
        self.background = np.clip(np.asarray(background, dtype=np.float64), 0.0, 1.0)
        for buf in (self._depth, self._normal, self._position, self._ambient,
                    self._direct, self._glow, self._coverage, self._tri_ids, self._bary):
            buf.clear()
        self._color.clear(to_uint8(self.background))

    def to_image(self) -> Image.Image:
        return Image.fromarray(self.color)


def to_uint8(rgb) -> np.ndarray:
    """Map [0,1] floats to 0..255 with rounding; out-of-range values are clamped."""
    return np.round(np.clip(np.asarray(rgb, dtype=np.float64), 0.0, 1.0) * 255.0).astype(np.uint8)
