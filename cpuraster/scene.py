"""
Scene inputs consumed by the renderer: meshes, materials, camera, lights.

All of these are read-only to the pipeline. A Mesh is validated once at the
load boundary; the render passes treat a validated mesh as a precondition.
"""

import math
from dataclasses import dataclass
from typing import List, NamedTuple, Optional, Sequence, Tuple

import numpy as np

from .errors import MeshError
from .maths import look_at, normalize, orthographic, perspective
from .textures import Texture, optional_texture


# ============================================================
#  Mesh
# ============================================================

class Vertex(NamedTuple):
    """Single vertex record. Immutable once loaded."""
    position: Tuple[float, float, float]
    normal: Tuple[float, float, float] = (0.0, 0.0, 1.0)
    uv: Tuple[float, float] = (0.0, 0.0)
    tangent: Optional[Tuple[float, float, float]] = None


class Mesh:
    """
    Indexed triangle mesh.

    positions - (V, 3) float
    normals   - (V, 3) float, unit length by convention (not enforced)
    uvs       - (V, 2) float
    faces     - (F, 3) int, indices into the vertex arrays
    tangents, bitangents - optional (V, 3) tangent-space basis
    face_materials - optional (F,) int, index into the material list

    A face that repeats an index is degenerate; it is kept here and skipped
    by the rasterizer.
    """

    def __init__(self, positions, normals=None, uvs=None, faces=None,
                 tangents=None, bitangents=None, face_materials=None):
        self.positions = np.asarray(positions, dtype=np.float64).reshape(-1, 3)
        n = len(self.positions)
        self.faces = np.asarray(faces if faces is not None else [], dtype=np.int64).reshape(-1, 3)
        if normals is None:
            _check_indices(self.faces, n)
            normals = vertex_normals(self.positions, self.faces)
        if uvs is None:
            uvs = np.zeros((n, 2))
        self.normals = np.asarray(normals, dtype=np.float64).reshape(-1, 3)
        self.uvs = np.asarray(uvs, dtype=np.float64).reshape(-1, 2)
        self.tangents = None if tangents is None else np.asarray(tangents, dtype=np.float64).reshape(-1, 3)
        self.bitangents = None if bitangents is None else np.asarray(bitangents, dtype=np.float64).reshape(-1, 3)
        self.face_materials = (None if face_materials is None
                               else np.asarray(face_materials, dtype=np.int64).reshape(-1))

    @classmethod
    def from_vertices(cls, vertices: Sequence[Vertex], faces, face_materials=None) -> "Mesh":
        verts = [v if isinstance(v, Vertex) else Vertex(*v) for v in vertices]
        tangents = None
        if verts and all(v.tangent is not None for v in verts):
            tangents = [v.tangent for v in verts]
        mesh = cls(
            positions=[v.position for v in verts],
            normals=[v.normal for v in verts],
            uvs=[v.uv for v in verts],
            faces=faces,
            tangents=tangents,
            face_materials=face_materials,
        )
        if tangents is not None:
            mesh.bitangents = np.cross(mesh.normals, mesh.tangents)
        return mesh.validate()

    @property
    def vertex_count(self) -> int:
        return len(self.positions)

    @property
    def face_count(self) -> int:
        return len(self.faces)

    def vertex(self, i: int) -> Vertex:
        tangent = None if self.tangents is None else tuple(self.tangents[i])
        return Vertex(tuple(self.positions[i]), tuple(self.normals[i]), tuple(self.uvs[i]), tangent)

    def validate(self) -> "Mesh":
        """Fail fast on out-of-range indices or inconsistent array lengths."""
        n = self.vertex_count
        if len(self.normals) != n or len(self.uvs) != n:
            raise MeshError(
                f"attribute arrays disagree: {n} positions, {len(self.normals)} normals, "
                f"{len(self.uvs)} uvs"
            )
        for name in ("tangents", "bitangents"):
            arr = getattr(self, name)
            if arr is not None and len(arr) != n:
                raise MeshError(f"{name} has {len(arr)} entries, expected {n}")
        _check_indices(self.faces, n)
        if self.face_materials is not None and len(self.face_materials) != self.face_count:
            raise MeshError(
                f"face_materials has {len(self.face_materials)} entries, expected {self.face_count}"
            )
        return self

    def bounds(self) -> Tuple[np.ndarray, np.ndarray]:
        if self.vertex_count == 0:
            return np.zeros(3), np.zeros(3)
        return self.positions.min(axis=0), self.positions.max(axis=0)

    def has_tangents(self) -> bool:
        return self.tangents is not None and self.bitangents is not None

    def compute_tangents(self) -> "Mesh":
        """Fill in tangents/bitangents from UV gradients (see tangent_basis)."""
        self.tangents, self.bitangents = tangent_basis(self.positions, self.normals, self.uvs, self.faces)
        return self


def _check_indices(faces: np.ndarray, n: int) -> None:
    if faces.size:
        lo, hi = int(faces.min()), int(faces.max())
        if lo < 0 or hi >= n:
            raise MeshError(f"face index out of range [0, {n}): min={lo} max={hi}")


def vertex_normals(positions: np.ndarray, faces: np.ndarray) -> np.ndarray:
    """
    Area-weighted vertex normals from counter-clockwise faces.

    Vertices not referenced by any face get (0, 0, 1).
    """
    acc = np.zeros_like(positions)
    if len(faces):
        p0, p1, p2 = positions[faces[:, 0]], positions[faces[:, 1]], positions[faces[:, 2]]
        face_n = np.cross(p1 - p0, p2 - p0)
        for k in range(3):
            np.add.at(acc, faces[:, k], face_n)
    out = normalize(acc)
    out[np.linalg.norm(out, axis=1) == 0.0] = (0.0, 0.0, 1.0)
    return out


def tangent_basis(positions, normals, uvs, faces) -> Tuple[np.ndarray, np.ndarray]:
    """
    Derive per-vertex tangent/bitangent from UV gradients.

    Per-face tangents are accumulated on their vertices, then
    Gram-Schmidt orthogonalised against the vertex normal. Faces with
    degenerate UV mapping contribute nothing. The bitangent keeps the
    handedness of the UV mapping.
    """
    f = faces
    p0, p1, p2 = positions[f[:, 0]], positions[f[:, 1]], positions[f[:, 2]]
    t0, t1, t2 = uvs[f[:, 0]], uvs[f[:, 1]], uvs[f[:, 2]]
    e1, e2 = p1 - p0, p2 - p0
    d1, d2 = t1 - t0, t2 - t0
    det = d1[:, 0] * d2[:, 1] - d2[:, 0] * d1[:, 1]
    r = np.divide(1.0, det, out=np.zeros_like(det), where=np.abs(det) > 1e-12)[:, None]
    face_t = (e1 * d2[:, 1:2] - e2 * d1[:, 1:2]) * r
    face_b = (e2 * d1[:, 0:1] - e1 * d2[:, 0:1]) * r

    tan = np.zeros_like(positions)
    bit = np.zeros_like(positions)
    for k in range(3):
        np.add.at(tan, f[:, k], face_t)
        np.add.at(bit, f[:, k], face_b)

    n = normalize(normals)
    tan = normalize(tan - n * np.sum(n * tan, axis=1, keepdims=True))
    handed = np.where(np.sum(np.cross(n, tan) * bit, axis=1) < 0.0, -1.0, 1.0)[:, None]
    return tan, np.cross(n, tan) * handed


# ============================================================
#  Materials
# ============================================================

NORMAL_SPACE_TANGENT = "tangent"
NORMAL_SPACE_OBJECT = "object"


@dataclass
class TextureSet:
    """
    The four texture roles of a material, each optional.

    Missing roles fall back to: diffuse -> flat `base_color`,
    normal -> interpolated geometric normal, specular -> zero,
    glow -> zero.
    """
    diffuse: Optional[Texture] = None
    normal: Optional[Texture] = None
    specular: Optional[Texture] = None
    glow: Optional[Texture] = None
    base_color: Tuple[float, float, float] = (1.0, 1.0, 1.0)
    diffuse_strength: float = 1.0
    specular_strength: float = 1.0
    shininess: float = 32.0
    normal_space: str = NORMAL_SPACE_TANGENT

    def __post_init__(self):
        self.diffuse = optional_texture(self.diffuse)
        self.normal = optional_texture(self.normal)
        self.specular = optional_texture(self.specular)
        self.glow = optional_texture(self.glow)
        if self.normal_space not in (NORMAL_SPACE_TANGENT, NORMAL_SPACE_OBJECT):
            raise ValueError(f"unknown normal_space {self.normal_space!r}")


# ============================================================
#  Camera
# ============================================================

@dataclass(frozen=True)
class Camera:
    """
    Pinhole (or orthographic) camera.

    fov_y is in degrees. Setting `ortho_height` (half the visible height in
    world units) switches to an orthographic projection.
    """
    eye: Tuple[float, float, float] = (0.0, 0.0, 3.0)
    target: Tuple[float, float, float] = (0.0, 0.0, 0.0)
    up: Tuple[float, float, float] = (0.0, 1.0, 0.0)
    fov_y: float = 60.0
    ortho_height: Optional[float] = None
    near: float = 0.1
    far: float = 100.0

    @property
    def is_orthographic(self) -> bool:
        return self.ortho_height is not None

    def view_matrix(self) -> np.ndarray:
        return look_at(self.eye, self.target, self.up)

    def projection_matrix(self, aspect: float) -> np.ndarray:
        if self.is_orthographic:
            return orthographic(self.ortho_height * aspect, self.ortho_height, self.near, self.far)
        return perspective(math.radians(self.fov_y), aspect, self.near, self.far)

    def view_projection(self, aspect: float) -> np.ndarray:
        return self.projection_matrix(aspect) @ self.view_matrix()

    def view_direction(self) -> np.ndarray:
        """Unit vector from eye towards target."""
        return normalize(np.asarray(self.target, dtype=np.float64) - np.asarray(self.eye, dtype=np.float64))


# ============================================================
#  Lights
# ============================================================

LIGHT_AMBIENT = "ambient"
LIGHT_DIRECTIONAL = "directional"
LIGHT_POINT = "point"


@dataclass(frozen=True)
class Light:
    """
    Light source.

    ambient     - contributes only to the ambient term (no direction, no shadows)
    directional - `direction` is the direction the light travels in
    point       - emits from `position` in every direction

    Only directional and point lights with `cast_shadows` get a shadow map.
    """
    kind: str = LIGHT_DIRECTIONAL
    color: Tuple[float, float, float] = (1.0, 1.0, 1.0)
    intensity: float = 1.0
    direction: Tuple[float, float, float] = (0.0, -1.0, 0.0)
    position: Tuple[float, float, float] = (0.0, 0.0, 0.0)
    cast_shadows: bool = True

    def __post_init__(self):
        if self.kind not in (LIGHT_AMBIENT, LIGHT_DIRECTIONAL, LIGHT_POINT):
            raise ValueError(f"unknown light kind {self.kind!r}")

    @classmethod
    def ambient(cls, color=(1.0, 1.0, 1.0), intensity=1.0) -> "Light":
        return cls(kind=LIGHT_AMBIENT, color=tuple(color), intensity=intensity, cast_shadows=False)

    @classmethod
    def directional(cls, direction, color=(1.0, 1.0, 1.0), intensity=1.0, cast_shadows=True) -> "Light":
        return cls(kind=LIGHT_DIRECTIONAL, color=tuple(color), intensity=intensity,
                   direction=tuple(direction), cast_shadows=cast_shadows)

    @classmethod
    def point(cls, position, color=(1.0, 1.0, 1.0), intensity=1.0, cast_shadows=True) -> "Light":
        return cls(kind=LIGHT_POINT, color=tuple(color), intensity=intensity,
                   position=tuple(position), cast_shadows=cast_shadows)

    @property
    def is_ambient(self) -> bool:
        return self.kind == LIGHT_AMBIENT

    @property
    def casts_shadows(self) -> bool:
        return self.cast_shadows and not self.is_ambient

    def radiance(self) -> np.ndarray:
        return np.asarray(self.color, dtype=np.float64) * self.intensity

    def direction_to_light(self, points: np.ndarray) -> np.ndarray:
        """Unit vectors from each point towards the light, shape (N, 3)."""
        points = np.asarray(points, dtype=np.float64)
        if self.kind == LIGHT_POINT:
            return normalize(np.asarray(self.position, dtype=np.float64) - points)
        l = -normalize(np.asarray(self.direction, dtype=np.float64))
        return np.broadcast_to(l, points.shape).copy()

    def shadow_camera(self, bounds_min, bounds_max) -> Camera:
        """
        Camera that sees the whole scene bounding sphere from this light.

        Directional lights get an orthographic camera placed outside the
        sphere; point lights get a perspective camera at the light position
        whose field of view encloses the sphere.
        """
        lo = np.asarray(bounds_min, dtype=np.float64)
        hi = np.asarray(bounds_max, dtype=np.float64)
        center = (lo + hi) * 0.5
        radius = max(float(np.linalg.norm(hi - lo)) * 0.5, 1e-3)

        if self.kind == LIGHT_POINT:
            eye = np.asarray(self.position, dtype=np.float64)
            dist = float(np.linalg.norm(center - eye))
            if dist <= radius:
                fov = 120.0
                near = radius * 0.01
            else:
                fov = min(math.degrees(2.0 * math.asin(radius / dist)) * 1.05, 120.0)
                near = max(dist - radius, radius * 0.01)
            return Camera(eye=tuple(eye), target=tuple(center), fov_y=fov,
                          near=near, far=dist + radius)

        d = normalize(np.asarray(self.direction, dtype=np.float64))
        eye = center - d * radius * 2.0
        return Camera(eye=tuple(eye), target=tuple(center), ortho_height=radius,
                      near=radius * 0.5, far=radius * 3.5)


def split_lights(lights: Sequence[Light]) -> Tuple[List[Light], List[Light]]:
    """Separate ambient lights from directional/point ones."""
    ambient = [l for l in lights if l.is_ambient]
    direct = [l for l in lights if not l.is_ambient]
    return ambient, direct
