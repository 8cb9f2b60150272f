"""Final image assembly: AO-scaled ambient + direct + bloomed glow -> 8-bit colour."""

import logging
from typing import Optional

import numpy as np

from .framebuffer import Framebuffer, to_uint8
from .geometry import TriangleBatch
from .maths import gaussian_weights, separable_blur
from .raster import draw_wireframe

logger = logging.getLogger(__name__)

LUMA = np.array([0.2126, 0.7152, 0.0722])


def luminance(rgb: np.ndarray) -> np.ndarray:
    return np.asarray(rgb, dtype=np.float64) @ LUMA


def bloom(glow: np.ndarray, threshold: float = 0.6, radius: int = 4,
          strength: float = 1.0) -> np.ndarray:
    """
    Blurred halo of the bright part of the glow buffer, shape (H, W, 3).

    Glow samples with luminance at or below `threshold` are dropped; the
    rest are blurred with a separable Gaussian and scaled by `strength`.
    """
    glow = np.asarray(glow, dtype=np.float64)
    bright = np.where((luminance(glow) > threshold)[..., None], glow, 0.0)
    if not bright.any():
        return np.zeros_like(glow)
    return separable_blur(bright, gaussian_weights(radius)) * strength


def compose(fb: Framebuffer, ao: Optional[np.ndarray] = None,
            bloom_rgb: Optional[np.ndarray] = None) -> np.ndarray:
    """
    Resolve the lighting planes into fb.color.

    Covered pixels get clip(ambient * ao + direct + bloom); uncovered
    pixels keep the clear colour, plus any bloom spilling over them.
    """
    covered = fb.coverage
    ambient = fb.ambient.astype(np.float64)
    if ao is not None:
        ambient = ambient * ao[..., None]
    lit = ambient + fb.direct

    background = np.broadcast_to(fb.background.astype(np.float64), lit.shape)
    hdr = np.where(covered[..., None], lit, background)
    if bloom_rgb is not None:
        hdr = hdr + bloom_rgb
        fb.color[...] = to_uint8(hdr)
    else:
        # exact clear colour for uncovered pixels
        fb.color[covered] = to_uint8(hdr[covered])
    return fb.color


def overlay_wireframe(fb: Framebuffer, batch: TriangleBatch, color=(0.8, 0.8, 0.9)) -> None:
    """Draw every rasterized triangle's outline over fb.color."""
    if batch.count == 0:
        return
    r, g, b = (int(c) for c in to_uint8(color))
    draw_wireframe(fb.color, np.ascontiguousarray(batch.screen), r, g, b)
    logger.debug("wireframe: %d triangles", batch.count)
