"""
Render entry point.

One frame runs these passes in order, each finishing before the next:

  validate -> geometric transform -> shadow maps -> rasterize + shade
           -> SSAO -> composite (-> wireframe overlay)
"""

import logging
import time
from typing import List, Mapping, Optional, Sequence

import numpy as np

from .compositor import bloom, compose, overlay_wireframe
from .errors import ConfigurationError
from .framebuffer import Framebuffer
from .geometry import project_mesh
from .maths import identity, transform_points
from .options import SHADING_DEPTH, SHADING_PHONG, SHADING_UNLIT, RenderOptions, validate_resolution
from .raster import rasterize_batch
from .scene import NORMAL_SPACE_TANGENT, Camera, Light, Mesh, TextureSet
from .shading import shade
from .shadows import ShadowMap, render_shadow_map
from .ssao import compute_ssao

logger = logging.getLogger(__name__)

UNLIT_MODELS = (SHADING_UNLIT, SHADING_DEPTH)


def as_materials(textures) -> List[TextureSet]:
    """Accept None, one TextureSet, or a sequence of them (indexed by face material)."""
    if textures is None:
        return []
    if isinstance(textures, TextureSet):
        return [textures]
    materials = list(textures)
    for m in materials:
        if not isinstance(m, TextureSet):
            raise ConfigurationError(f"expected TextureSet, got {type(m).__name__}")
    return materials


def as_options(options) -> RenderOptions:
    """RenderOptions pass through; plain mappings go through RenderOptions.from_dict."""
    if isinstance(options, RenderOptions):
        return options
    if isinstance(options, Mapping):
        return RenderOptions.from_dict(options)
    raise ConfigurationError(f"options must be RenderOptions or a mapping, got {type(options).__name__}")


def world_bounds(mesh: Mesh, model: np.ndarray):
    if mesh.vertex_count == 0:
        return np.zeros(3), np.zeros(3)
    pts = transform_points(model, mesh.positions)[:, :3]
    return pts.min(axis=0), pts.max(axis=0)


class Renderer:
    """
    Keeps the framebuffer and the shadow maps alive between frames.

    Buffers are reallocated only when the resolution (or shadow map size)
    changes; otherwise they are cleared in place.
    """

    def __init__(self, options: Optional[RenderOptions] = None):
        self.options = as_options(options) if options is not None else RenderOptions()
        self.framebuffer: Optional[Framebuffer] = None
        self.shadow_maps: List[Optional[ShadowMap]] = []
        self.last_timings = {}

    def _target(self, width: int, height: int) -> Framebuffer:
        fb = self.framebuffer
        if fb is None or fb.resolution != (width, height):
            logger.debug("allocating %dx%d framebuffer", width, height)
            fb = self.framebuffer = Framebuffer(width, height)
        return fb

    def _shadow_slot(self, index: int) -> Optional[ShadowMap]:
        while len(self.shadow_maps) <= index:
            self.shadow_maps.append(None)
        return self.shadow_maps[index]

    def render(self, mesh: Mesh, textures, camera: Camera, lights: Sequence[Light],
               resolution, options: Optional[RenderOptions] = None,
               model: Optional[np.ndarray] = None) -> Framebuffer:
        opts = as_options(options) if options is not None else self.options
        width, height = validate_resolution(resolution)
        materials = as_materials(textures)
        mesh.validate()
        if model is None:
            model = identity()
        lights = list(lights)
        timings = {}
        t0 = time.perf_counter()

        view = camera.view_matrix()
        proj = camera.projection_matrix(width / height)
        with_tangents = (opts.shading == SHADING_PHONG and opts.normal_mapping and
                         any(m.normal is not None and m.normal_space == NORMAL_SPACE_TANGENT
                             for m in materials))
        batch = project_mesh(mesh, view, proj, width, height, cull=opts.cull,
                             model=model, with_tangents=with_tangents)
        if isinstance(textures, TextureSet):
            batch.material[:] = 0
        timings["transform"] = time.perf_counter() - t0

        t0 = time.perf_counter()
        shadow_maps = {}
        if opts.shadows and opts.shading not in UNLIT_MODELS:
            bounds = world_bounds(mesh, model)
            for i, light in enumerate(lights):
                if not light.casts_shadows:
                    continue
                sm = render_shadow_map(mesh, light, bounds, opts.shadow_map_size, opts.shadow_bias,
                                       self._shadow_slot(i), model)
                self.shadow_maps[i] = shadow_maps[i] = sm
        timings["shadows"] = time.perf_counter() - t0

        t0 = time.perf_counter()
        fb = self._target(width, height)
        fb.clear(opts.background)
        rasterize_batch(batch, fb.depth, fb.tri_ids, fb.bary)
        shaded = shade(fb, batch, materials, lights, camera.eye, opts, shadow_maps, model)
        timings["main"] = time.perf_counter() - t0

        t0 = time.perf_counter()
        ao = None
        if opts.ssao and opts.shading not in UNLIT_MODELS:
            ao = compute_ssao(fb.position, fb.normal, fb.coverage, view, proj, width, height,
                              opts.ssao_samples, opts.ssao_radius, opts.ssao_bias,
                              opts.ssao_blur, opts.seed)
        timings["ssao"] = time.perf_counter() - t0

        t0 = time.perf_counter()
        bloom_rgb = None
        if opts.bloom:
            bloom_rgb = bloom(fb.glow, opts.bloom_threshold, opts.bloom_radius, opts.bloom_strength)
        compose(fb, ao, bloom_rgb)
        if opts.wireframe:
            overlay_wireframe(fb, batch, opts.wireframe_color)
        timings["composite"] = time.perf_counter() - t0

        self.last_timings = timings
        logger.debug("frame %dx%d: %d triangles, %d pixels shaded, %s", width, height, batch.count,
                     shaded, ", ".join(f"{k} {v * 1000.0:.1f}ms" for k, v in timings.items()))
        return fb


def render(mesh: Mesh, textures, camera: Camera, lights: Sequence[Light], resolution,
           options: Optional[RenderOptions] = None, model: Optional[np.ndarray] = None) -> Framebuffer:
    """
    Render one frame into a new Framebuffer.

    textures - a TextureSet, a list of them indexed by Mesh.face_materials, or None
    lights   - ambient, directional and point lights, any number of each

    Raises ConfigurationError for a bad resolution or options, MeshError for
    an inconsistent mesh. Rendering the same inputs twice gives identical
    pixels.
    """
    return Renderer(options).render(mesh, textures, camera, lights, resolution, options, model)
