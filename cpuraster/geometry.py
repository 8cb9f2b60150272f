"""
Geometric pipeline: model -> world -> clip -> NDC -> screen.

Produces a TriangleBatch: one record per rasterizable triangle with its own
three vertices. Near-plane clipping can split a mesh face into two
triangles, so batch triangles do not map one-to-one onto mesh faces; every
batch triangle remembers the face it came from.
"""

import logging
from dataclasses import dataclass
from typing import List, Optional, Tuple

import numpy as np

from .maths import identity, normal_matrix, normalize, transform_directions, transform_points, viewport
from .scene import Mesh, tangent_basis

logger = logging.getLogger(__name__)

CULL_BACK = "back"
CULL_NONE = "none"

# Per-vertex attribute layout of TriangleBatch.attrs
ATTR_POSITION = slice(0, 3)
ATTR_NORMAL = slice(3, 6)
ATTR_UV = slice(6, 8)
ATTR_TANGENT = slice(8, 11)
ATTR_BITANGENT = slice(11, 14)
ATTR_COUNT = 14

# Triangles with |signed area| below this (in pixels^2) have no coverage.
MIN_AREA = 1e-10


@dataclass
class TriangleBatch:
    """
    Screen-space triangles ready for the rasterizer.

    screen - (T, 3, 3) x, y in pixels, z depth in [0, 1]
    inv_w  - (T, 3) 1 / clip w, for perspective-correct interpolation
    attrs  - (T, 3, ATTR_COUNT) world position, world normal, uv, tangent, bitangent
    face   - (T,) source mesh face
    material - (T,) material index

    Every triangle is stored with positive signed area (see signed_area);
    front faces have their second and third vertices swapped to get there.
    """
    screen: np.ndarray
    inv_w: np.ndarray
    attrs: np.ndarray
    face: np.ndarray
    material: np.ndarray
    width: int
    height: int

    @property
    def count(self) -> int:
        return len(self.screen)

    @property
    def world_pos(self) -> np.ndarray:
        return self.attrs[:, :, ATTR_POSITION]

    @property
    def normal(self) -> np.ndarray:
        return self.attrs[:, :, ATTR_NORMAL]

    @property
    def uv(self) -> np.ndarray:
        return self.attrs[:, :, ATTR_UV]

    @property
    def tangent(self) -> np.ndarray:
        return self.attrs[:, :, ATTR_TANGENT]

    @property
    def bitangent(self) -> np.ndarray:
        return self.attrs[:, :, ATTR_BITANGENT]

    def face_normals(self) -> np.ndarray:
        """Flat normal per triangle: the normalized average of its vertex normals."""
        return normalize(self.normal.sum(axis=1))

    @classmethod
    def empty(cls, width: int, height: int) -> "TriangleBatch":
        return cls(
            screen=np.zeros((0, 3, 3)),
            inv_w=np.zeros((0, 3)),
            attrs=np.zeros((0, 3, ATTR_COUNT)),
            face=np.zeros(0, dtype=np.int64),
            material=np.zeros(0, dtype=np.int64),
            width=width,
            height=height,
        )


def signed_area(screen: np.ndarray) -> np.ndarray:
    """
    Twice the signed area of screen-space triangles, shape (T,).

    Screen y grows downwards, so a triangle that is counter-clockwise in NDC
    (a front face) comes out negative here.
    """
    x0, y0 = screen[:, 0, 0], screen[:, 0, 1]
    x1, y1 = screen[:, 1, 0], screen[:, 1, 1]
    x2, y2 = screen[:, 2, 0], screen[:, 2, 1]
    return (x1 - x0) * (y2 - y0) - (y1 - y0) * (x2 - x0)


# ============================================================
#  Near-plane clipping (homogeneous clip space)
# ============================================================

def _near_distance(clip: np.ndarray) -> np.ndarray:
    """Signed distance to the near plane z = -w; >= 0 means visible side."""
    return clip[..., 2] + clip[..., 3]


def clip_poly_near(clip: np.ndarray, attrs: np.ndarray) -> Tuple[List[np.ndarray], List[np.ndarray]]:
    """
    Sutherland-Hodgman pass against the near plane (z + w >= 0) in clip space.

    Returns the surviving polygon as parallel lists of clip positions and
    vertex attributes; both are lerped at the crossing point, before the
    perspective divide, so no vertex with w <= 0 reaches the divide.
    """
    out_clip: List[np.ndarray] = []
    out_attr: List[np.ndarray] = []
    d = _near_distance(clip)

    n = len(clip)
    for i in range(n):
        j = (i + 1) % n
        a_in, b_in = d[i] >= 0.0, d[j] >= 0.0

        if a_in and b_in:
            # keep end vertex B
            out_clip.append(clip[j]); out_attr.append(attrs[j])
        elif a_in and not b_in:
            # leaving visible region => add intersection only
            t = d[i] / (d[i] - d[j])
            out_clip.append(clip[i] + (clip[j] - clip[i]) * t)
            out_attr.append(attrs[i] + (attrs[j] - attrs[i]) * t)
        elif (not a_in) and b_in:
            # entering visible region => intersection + B
            t = d[i] / (d[i] - d[j])
            out_clip.append(clip[i] + (clip[j] - clip[i]) * t)
            out_attr.append(attrs[i] + (attrs[j] - attrs[i]) * t)
            out_clip.append(clip[j]); out_attr.append(attrs[j])

    return out_clip, out_attr


def triangulate_fan(poly_clip: List[np.ndarray], poly_attr: List[np.ndarray]):
    """
    Convert a convex polygon (3..N vertices) into triangles using a fan:
      (0,1,2), (0,2,3), ..., (0,N-2,N-1)

    Used after near-plane clipping, because the clipped polygon may have 4 vertices.
    """
    tris = []
    for i in range(1, len(poly_clip) - 1):
        tris.append((
            np.stack([poly_clip[0], poly_clip[i], poly_clip[i + 1]]),
            np.stack([poly_attr[0], poly_attr[i], poly_attr[i + 1]]),
        ))
    return tris


# ============================================================
#  Mesh projection
# ============================================================

def vertex_attributes(mesh: Mesh, model: np.ndarray, with_tangents: bool) -> np.ndarray:
    """World-space per-vertex attributes packed as (V, ATTR_COUNT)."""
    n = mesh.vertex_count
    out = np.zeros((n, ATTR_COUNT))
    out[:, ATTR_POSITION] = transform_points(model, mesh.positions)[:, :3]
    out[:, ATTR_NORMAL] = normalize(transform_directions(normal_matrix(model), mesh.normals))
    out[:, ATTR_UV] = mesh.uvs
    if with_tangents:
        if mesh.has_tangents():
            tan, bit = mesh.tangents, mesh.bitangents
        else:
            tan, bit = tangent_basis(mesh.positions, mesh.normals, mesh.uvs, mesh.faces)
        out[:, ATTR_TANGENT] = normalize(transform_directions(model, tan))
        out[:, ATTR_BITANGENT] = normalize(transform_directions(model, bit))
    return out


def project_mesh(mesh: Mesh, view: np.ndarray, projection: np.ndarray,
                 width: int, height: int, cull: str = CULL_BACK,
                 model: Optional[np.ndarray] = None,
                 with_tangents: bool = False) -> TriangleBatch:
    """
    Transform every face of `mesh` to screen space.

    Drops:
      - faces that repeat a vertex index (degenerate)
      - faces entirely on the far side of the near plane
      - triangles with zero screen-space area
      - triangles whose bounding box misses the target completely
      - back faces when cull == "back"
    """
    if model is None:
        model = identity()
    faces = mesh.faces
    if len(faces) == 0:
        return TriangleBatch.empty(width, height)

    vattr = vertex_attributes(mesh, model, with_tangents)
    clip = transform_points(projection @ view, vattr[:, ATTR_POSITION])

    keep = (faces[:, 0] != faces[:, 1]) & (faces[:, 1] != faces[:, 2]) & (faces[:, 0] != faces[:, 2])
    face_idx = np.nonzero(keep)[0]
    f = faces[face_idx]
    tri_clip = clip[f]          # (F, 3, 4)
    tri_attr = vattr[f]         # (F, 3, K)
    if mesh.face_materials is not None:
        tri_mat = mesh.face_materials[face_idx]
    else:
        tri_mat = np.zeros(len(face_idx), dtype=np.int64)

    inside = _near_distance(tri_clip) >= 0.0
    n_inside = inside.sum(axis=1)
    whole = n_inside == 3
    crossing = np.nonzero((n_inside > 0) & (n_inside < 3))[0]

    clips = [tri_clip[whole]]
    attrs = [tri_attr[whole]]
    src_face = [face_idx[whole]]
    src_mat = [tri_mat[whole]]

    if len(crossing):
        extra_clip, extra_attr, extra_face, extra_mat = [], [], [], []
        for t in crossing:
            poly_clip, poly_attr = clip_poly_near(tri_clip[t], tri_attr[t])
            for c, a in triangulate_fan(poly_clip, poly_attr):
                extra_clip.append(c)
                extra_attr.append(a)
                extra_face.append(face_idx[t])
                extra_mat.append(tri_mat[t])
        if extra_clip:
            clips.append(np.stack(extra_clip))
            attrs.append(np.stack(extra_attr))
            src_face.append(np.asarray(extra_face, dtype=np.int64))
            src_mat.append(np.asarray(extra_mat, dtype=np.int64))
        logger.debug("near-plane clipping split %d faces into %d triangles",
                     len(crossing), len(extra_clip))

    tri_clip = np.concatenate(clips)
    tri_attr = np.concatenate(attrs)
    tri_face = np.concatenate(src_face)
    tri_mat = np.concatenate(src_mat)

    # Perspective divide; clipping guarantees w > 0 for perspective cameras
    w = tri_clip[:, :, 3]
    ok = np.all(w > 1e-12, axis=1)
    tri_clip, tri_attr, tri_face, tri_mat, w = tri_clip[ok], tri_attr[ok], tri_face[ok], tri_mat[ok], w[ok]
    inv_w = 1.0 / w
    ndc = tri_clip[:, :, :3] * inv_w[:, :, None]
    screen = transform_points(viewport(width, height), ndc)[:, :, :3]

    # trivial reject if triangle bbox is fully off-screen
    xs, ys = screen[:, :, 0], screen[:, :, 1]
    on_screen = (xs.max(axis=1) >= 0) & (xs.min(axis=1) <= width) & \
                (ys.max(axis=1) >= 0) & (ys.min(axis=1) <= height)

    # Backface culling in screen space by signed area
    area = signed_area(screen)
    visible = on_screen & (np.abs(area) > MIN_AREA)
    if cull == CULL_BACK:
        visible &= area < 0.0

    screen, inv_w, tri_attr = screen[visible], inv_w[visible], tri_attr[visible]
    tri_face, tri_mat, area = tri_face[visible], tri_mat[visible], area[visible]

    # Store everything with positive area so the rasterizer sees one winding
    flip = area < 0.0
    for arr in (screen, inv_w, tri_attr):
        arr[flip, 1], arr[flip, 2] = arr[flip, 2].copy(), arr[flip, 1].copy()

    logger.debug("projected %d faces -> %d triangles", len(faces), len(screen))
    return TriangleBatch(screen=screen, inv_w=inv_w, attrs=tri_attr, face=tri_face,
                         material=tri_mat, width=width, height=height)
