"""
Per-pixel shading over the visibility buffer.

The rasterizer leaves, for every covered pixel, the id of the visible
triangle and its perspective-correct barycentrics. Shading then runs once
over all visible pixels at the same time: attributes are interpolated,
textures sampled, and one lighting variant (chosen once per draw call)
evaluated on whole arrays.

Lighting model (Phong):
  ambient = albedo * sum(ambient lights)              -> framebuffer.ambient
  direct  = sum_lights radiance * shadow *
            (albedo * kd * max(0, N.L) + ks * max(0, R.V)^shininess)
                                                      -> framebuffer.direct
  glow    = glow map sample, untouched                -> framebuffer.glow
SSAO later scales `ambient` only. The compositor adds ambient and direct;
glow reaches the image only through the bloom pass.
"""

import logging
from dataclasses import dataclass
from typing import Dict, Optional, Sequence

import numpy as np

from .framebuffer import Framebuffer
from .geometry import ATTR_BITANGENT, ATTR_NORMAL, ATTR_POSITION, ATTR_TANGENT, ATTR_UV, TriangleBatch
from .maths import dot, identity, normal_matrix, normalize, reflect, transform_directions
from .options import (SHADING_DEPTH, SHADING_FLAT, SHADING_GOURAUD, SHADING_PHONG,
                      SHADING_UNLIT, RenderOptions)
from .scene import NORMAL_SPACE_OBJECT, Light, TextureSet, split_lights
from .shadows import ShadowMap, shadow_factor

logger = logging.getLogger(__name__)

DEFAULT_MATERIAL = TextureSet()


@dataclass
class Surface:
    """Per-pixel surface description for the N visible pixels."""
    position: np.ndarray    # (N, 3) world
    normal: np.ndarray      # (N, 3) shading normal, unit
    albedo: np.ndarray      # (N, 3)
    kd: np.ndarray          # (N,)
    ks: np.ndarray          # (N,)
    shininess: np.ndarray   # (N,)
    glow: np.ndarray        # (N, 3)


def bucket_intensity(intensity: np.ndarray) -> np.ndarray:
    """Quantize diffuse intensity into a few bands (toon look)."""
    return np.select(
        [intensity > 0.85, intensity > 0.60, intensity > 0.45, intensity > 0.30, intensity > 0.15],
        [1.0, 0.80, 0.60, 0.45, 0.30],
        default=0.0,
    )


def material_for(materials: Sequence[TextureSet], index: int) -> TextureSet:
    """Material by index; ids past the end of the list fall back to the default material."""
    if 0 <= index < len(materials):
        return materials[index]
    return DEFAULT_MATERIAL


def perturb_normal(material: TextureSet, uv, normal, tangent, bitangent,
                   model: np.ndarray, filter: str) -> np.ndarray:
    """
    Shading normal from the material's normal map.

    Tangent-space maps are rotated by the interpolated TBN basis; object-space
    maps go through the model's normal matrix. Without a normal map the
    interpolated geometric normal is returned.
    """
    if material.normal is None:
        return normal
    sample = material.normal.sample_normal(uv, filter)
    if material.normal_space == NORMAL_SPACE_OBJECT:
        return normalize(transform_directions(normal_matrix(model), sample))
    t = normalize(tangent - normal * dot(normal, tangent)[:, None])
    b = normalize(bitangent)
    mapped = t * sample[:, 0:1] + b * sample[:, 1:2] + normal * sample[:, 2:3]
    return normalize(mapped)


def build_surface(batch: TriangleBatch, tri: np.ndarray, bary: np.ndarray,
                  materials: Sequence[TextureSet], options: RenderOptions,
                  model: np.ndarray) -> Surface:
    """Interpolate vertex attributes and sample every texture role for the visible pixels."""
    attrs = np.einsum("nk,nkc->nc", bary, batch.attrs[tri])
    position = attrs[:, ATTR_POSITION]
    normal = normalize(attrs[:, ATTR_NORMAL])
    uv = attrs[:, ATTR_UV]
    n = len(tri)

    if options.shading == SHADING_FLAT:
        normal = batch.face_normals()[tri]

    albedo = np.empty((n, 3))
    kd = np.empty(n)
    ks = np.zeros(n)
    shininess = np.empty(n)
    glow = np.zeros((n, 3))
    filt = options.texture_filter

    mat_ids = batch.material[tri]
    for m in np.unique(mat_ids):
        sel = np.nonzero(mat_ids == m)[0]
        mat = material_for(materials, int(m))
        muv = uv[sel]
        base = np.asarray(mat.base_color, dtype=np.float64)
        albedo[sel] = base if mat.diffuse is None else mat.diffuse.sample_rgb(muv, filt) * base
        kd[sel] = mat.diffuse_strength
        shininess[sel] = mat.shininess
        if mat.specular is not None:
            ks[sel] = mat.specular.sample_scalar(muv, filt) * mat.specular_strength
        if mat.glow is not None:
            glow[sel] = mat.glow.sample_rgb(muv, filt)
        if options.normal_mapping and options.shading == SHADING_PHONG:
            normal[sel] = perturb_normal(mat, muv, normal[sel], attrs[sel, ATTR_TANGENT],
                                         attrs[sel, ATTR_BITANGENT], model, filt)

    return Surface(position, normal, albedo, kd, ks, shininess, glow)


def _phong_terms(light: Light, position, normal, eye, shininess):
    """(diffuse, specular) intensities of one light, Phong reflection model."""
    l = light.direction_to_light(position)
    v = normalize(eye - position)
    ndl = np.maximum(dot(normal, l), 0.0)
    r = reflect(l, normal)
    spec = np.where(ndl > 0.0, np.maximum(dot(r, v), 0.0) ** shininess, 0.0)
    return ndl, spec


def _vertex_lighting(batch: TriangleBatch, light: Light, eye, shininess_per_tri):
    """Per-vertex (diffuse, specular) of one light for every batch triangle, shapes (T, 3)."""
    pos = batch.world_pos.reshape(-1, 3)
    nrm = normalize(batch.normal.reshape(-1, 3))
    shin = np.repeat(shininess_per_tri, 3)
    ndl, spec = _phong_terms(light, pos, nrm, eye, shin)
    return ndl.reshape(-1, 3), spec.reshape(-1, 3)


def shade(fb: Framebuffer, batch: TriangleBatch, materials: Sequence[TextureSet],
          lights: Sequence[Light], eye, options: RenderOptions,
          shadow_maps: Optional[Dict[int, ShadowMap]] = None,
          model: Optional[np.ndarray] = None) -> int:
    """
    Fill fb.ambient / direct / glow / normal / position / coverage from the
    visibility buffer. Returns the number of shaded pixels.

    `shadow_maps` maps an index into `lights` to that light's shadow map.
    """
    if model is None:
        model = identity()
    shadow_maps = shadow_maps or {}
    eye = np.asarray(eye, dtype=np.float64)

    ys, xs = np.nonzero(fb.tri_ids >= 0)
    n = len(ys)
    if n == 0:
        return 0
    tri = fb.tri_ids[ys, xs]
    bary = fb.bary[ys, xs]

    surf = build_surface(batch, tri, bary, materials, options, model)
    ambient = np.zeros((n, 3))
    direct = np.zeros((n, 3))

    if options.shading == SHADING_UNLIT:
        direct = surf.albedo
    elif options.shading == SHADING_DEPTH:
        direct = np.repeat((1.0 - fb.depth[ys, xs])[:, None], 3, axis=1)
    else:
        ambient_lights, direct_lights = split_lights(lights)
        ambient_rgb = sum((l.radiance() for l in ambient_lights), np.zeros(3))
        ambient = surf.albedo * ambient_rgb

        if options.shading == SHADING_GOURAUD:
            shin_tri = np.array([material_for(materials, int(m)).shininess for m in batch.material])

        for li, light in enumerate(lights):
            if light.is_ambient:
                continue
            if options.shading == SHADING_GOURAUD:
                vd, vs = _vertex_lighting(batch, light, eye, shin_tri)
                ndl = np.sum(bary * vd[tri], axis=1)
                spec = np.sum(bary * vs[tri], axis=1)
                if options.toon_shading:
                    ndl = bucket_intensity(ndl)
            else:
                ndl, spec = _phong_terms(light, surf.position, surf.normal, eye, surf.shininess)

            visible = np.ones(n)
            if options.shadows and li in shadow_maps:
                visible = shadow_factor(shadow_maps[li], surf.position, options.shadow_darkness)

            term = surf.albedo * (surf.kd * ndl)[:, None] + (surf.ks * spec)[:, None]
            direct += light.radiance() * term * visible[:, None]
        logger.debug("%s shading: %d pixels, %d direct lights", options.shading, n, len(direct_lights))

    fb.ambient[ys, xs] = ambient
    fb.direct[ys, xs] = direct
    fb.glow[ys, xs] = surf.glow
    fb.normal[ys, xs] = surf.normal
    fb.position[ys, xs] = surf.position
    fb.coverage[ys, xs] = True
    return n
