"""
Shadow mapping.

For each shadow-casting light the scene is rasterized depth-only from the
light's point of view. During shading a world point is reprojected into
that map; if it lies farther from the light than the stored depth by more
than the bias, something sits in between and the light is blocked.
"""

import logging
from dataclasses import dataclass
from typing import Optional

import numpy as np

from .framebuffer import FAR_DEPTH
from .geometry import CULL_NONE, project_mesh
from .maths import Buffer2D, transform_points, viewport
from .raster import rasterize_depth
from .scene import Camera, Light, Mesh

logger = logging.getLogger(__name__)


@dataclass
class ShadowMap:
    """Depth image of the scene seen from one light, plus the matrix that produced it."""
    depth: Buffer2D
    view_projection: np.ndarray
    camera: Camera
    bias: float

    @property
    def size(self) -> int:
        return self.depth.width

    @classmethod
    def allocate(cls, size: int, bias: float) -> "ShadowMap":
        return cls(depth=Buffer2D(size, size, 1, np.float64, FAR_DEPTH),
                   view_projection=np.eye(4), camera=Camera(), bias=bias)

    def project(self, points: np.ndarray):
        """
        World points -> shadow-map screen space.

        Returns (screen (N, 3), valid (N,)) where `valid` is False for
        points behind the light camera.
        """
        clip = transform_points(self.view_projection, points)
        w = clip[:, 3]
        valid = w > 1e-12
        safe_w = np.where(valid, w, 1.0)
        ndc = clip[:, :3] / safe_w[:, None]
        screen = transform_points(viewport(self.size, self.size), ndc)[:, :3]
        return screen, valid


def render_shadow_map(mesh: Mesh, light: Light, bounds, size: int, bias: float,
                      shadow_map: Optional[ShadowMap] = None,
                      model: Optional[np.ndarray] = None) -> ShadowMap:
    """
    Render `mesh` depth-only from `light`.

    An existing map of the same size is cleared and reused. Both faces are
    rasterized so thin or open geometry still casts shadows.
    """
    if shadow_map is None or shadow_map.size != size:
        shadow_map = ShadowMap.allocate(size, bias)
    camera = light.shadow_camera(*bounds)
    view = camera.view_matrix()
    proj = camera.projection_matrix(1.0)

    shadow_map.depth.clear()
    shadow_map.camera = camera
    shadow_map.view_projection = proj @ view
    shadow_map.bias = bias

    batch = project_mesh(mesh, view, proj, size, size, cull=CULL_NONE, model=model)
    rasterize_depth(batch, shadow_map.depth.data)
    logger.debug("shadow map %dx%d: %d triangles from %s light", size, size, batch.count, light.kind)
    return shadow_map


def shadow_factor(shadow_map: ShadowMap, points: np.ndarray, darkness: float = 1.0) -> np.ndarray:
    """
    Per-point light visibility, shape (N,).

    1.0 where the light reaches the point, 1 - darkness where it is
    occluded. Points outside the light's frustum count as lit.
    """
    points = np.asarray(points, dtype=np.float64)
    factor = np.ones(len(points))
    if len(points) == 0:
        return factor

    screen, valid = shadow_map.project(points)
    size = shadow_map.size
    sx, sy, sz = screen[:, 0], screen[:, 1], screen[:, 2]
    inside = valid & (sx >= 0.0) & (sx < size) & (sy >= 0.0) & (sy < size) & (sz >= 0.0) & (sz <= 1.0)

    idx = np.nonzero(inside)[0]
    tx = np.floor(sx[idx]).astype(np.int64)
    ty = np.floor(sy[idx]).astype(np.int64)
    stored = shadow_map.depth.data[ty, tx]
    occluded = sz[idx] > stored + shadow_map.bias
    factor[idx[occluded]] = 1.0 - darkness
    return factor
