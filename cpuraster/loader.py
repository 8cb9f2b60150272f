"""
File I/O at the edges of the renderer: Wavefront OBJ meshes, texture
images and PNG output.
"""

import logging
import os
from dataclasses import dataclass
from typing import Dict, List, Optional, Tuple

import numpy as np
from PIL import Image, UnidentifiedImageError

from .errors import MeshError, RenderError, TextureError
from .framebuffer import Framebuffer
from .scene import Mesh, vertex_normals
from .textures import Texture

logger = logging.getLogger(__name__)


# ============================================================
#  OBJ
# ============================================================

@dataclass
class Face:
    """
    One polygon corner list, indices into:
      - v:  vertex positions
      - vt: texture coords (-1 if absent)
      - vn: vertex normals (-1 if absent)

    Indices are 0-based (OBJ's 1-based and negative indices are resolved
    while parsing).
    """
    v: Tuple[int, ...]
    vt: Tuple[int, ...]
    vn: Tuple[int, ...]
    material: int = 0


def _resolve_index(token: str, count: int, lineno: int) -> int:
    i = int(token)
    if i < 0:
        i = count + i
    else:
        i -= 1
    if i < 0 or i >= count:
        raise MeshError(f"line {lineno}: index {token} out of range (have {count})")
    return i


class OBJModel:
    """
    Wavefront OBJ reader.

    Supported:
      v  x y z
      vt u v
      vn x y z
      f  v  v/vt  v//vn  v/vt/vn   (3 or more corners, negative indices ok)
      usemtl name                  (each new name gets the next material id)

    Polygons with more than three corners are fan-triangulated.
    """

    def __init__(self, path: str):
        self.path = path
        self.verts: List[Tuple[float, float, float]] = []
        self.uvs: List[Tuple[float, float]] = []
        self.normals: List[Tuple[float, float, float]] = []
        self.faces: List[Face] = []
        self.materials: Dict[str, int] = {}
        self._load(path)

    def _load(self, path: str):
        current = 0
        polygons = 0
        with open(path, "r", encoding="utf-8", errors="ignore") as f:
            for lineno, line in enumerate(f, 1):
                line = line.strip()
                if not line or line.startswith("#"):
                    continue
                parts = line.split()
                try:
                    if parts[0] == "v" and len(parts) >= 4:
                        self.verts.append((float(parts[1]), float(parts[2]), float(parts[3])))
                    elif parts[0] == "vt" and len(parts) >= 3:
                        self.uvs.append((float(parts[1]), float(parts[2])))
                    elif parts[0] == "vn" and len(parts) >= 4:
                        self.normals.append((float(parts[1]), float(parts[2]), float(parts[3])))
                    elif parts[0] == "usemtl" and len(parts) >= 2:
                        current = self.materials.setdefault(parts[1], len(self.materials))
                    elif parts[0] == "f":
                        if len(parts) < 4:
                            raise MeshError(f"line {lineno}: face needs at least 3 corners")
                        face = self._parse_face(parts[1:], lineno, current)
                        if len(face.v) > 3:
                            polygons += 1
                        self.faces.append(face)
                except ValueError as e:
                    if isinstance(e, MeshError):
                        raise
                    raise MeshError(f"{path}:{lineno}: cannot parse {line!r}") from e

        if polygons:
            logger.warning("%s: fan-triangulated %d faces with more than 3 vertices", path, polygons)

    def _parse_face(self, corners: List[str], lineno: int, material: int) -> Face:
        v_idx, vt_idx, vn_idx = [], [], []
        for corner in corners:
            comps = corner.split("/")
            v_idx.append(_resolve_index(comps[0], len(self.verts), lineno))
            vt_idx.append(_resolve_index(comps[1], len(self.uvs), lineno)
                          if len(comps) > 1 and comps[1] else -1)
            vn_idx.append(_resolve_index(comps[2], len(self.normals), lineno)
                          if len(comps) > 2 and comps[2] else -1)
        return Face(tuple(v_idx), tuple(vt_idx), tuple(vn_idx), material)

    def triangles(self):
        """(v, vt, vn, material) corner triples, polygons split as a fan around corner 0."""
        for face in self.faces:
            for k in range(1, len(face.v) - 1):
                corners = (0, k, k + 1)
                yield (tuple(face.v[i] for i in corners),
                       tuple(face.vt[i] for i in corners),
                       tuple(face.vn[i] for i in corners),
                       face.material)

    def to_mesh(self) -> Mesh:
        """
        Unify (v, vt, vn) corner triples into a single indexed vertex list.

        Vertices without a normal get the area-weighted average of their
        adjacent face normals; vertices without UVs get (0, 0).
        """
        lookup: Dict[Tuple[int, int, int], int] = {}
        keys: List[Tuple[int, int, int]] = []
        faces, mats = [], []
        for vs, vts, vns, mat in self.triangles():
            tri = []
            for key in zip(vs, vts, vns):
                idx = lookup.get(key)
                if idx is None:
                    idx = lookup[key] = len(keys)
                    keys.append(key)
                tri.append(idx)
            faces.append(tri)
            mats.append(mat)

        verts = np.asarray(self.verts, dtype=np.float64).reshape(-1, 3)
        uv_src = np.asarray(self.uvs, dtype=np.float64).reshape(-1, 2)
        n_src = np.asarray(self.normals, dtype=np.float64).reshape(-1, 3)
        k = np.asarray(keys, dtype=np.int64).reshape(-1, 3)
        faces_arr = np.asarray(faces, dtype=np.int64).reshape(-1, 3)

        positions = verts[k[:, 0]]
        uvs = np.zeros((len(k), 2))
        has_uv = k[:, 1] >= 0
        uvs[has_uv] = uv_src[k[has_uv, 1]]

        normals = vertex_normals(positions, faces_arr)
        has_n = k[:, 2] >= 0
        normals[has_n] = n_src[k[has_n, 2]]

        mesh = Mesh(positions, normals, uvs, faces_arr,
                    face_materials=mats if len(self.materials) > 1 else None)
        return mesh.validate()


def load_obj(path: str) -> Mesh:
    """Read an OBJ file into a validated Mesh."""
    model = OBJModel(path)
    mesh = model.to_mesh()
    logger.info("loaded %s: %d vertices, %d triangles, %d materials", os.path.basename(path),
                mesh.vertex_count, mesh.face_count, max(1, len(model.materials)))
    return mesh


# ============================================================
#  Images
# ============================================================

def load_texture(path: str, flip_y: bool = False, mode: Optional[str] = "RGB") -> Texture:
    """
    Decode an image file with Pillow.

    `mode` converts the image first ("RGB", "L", ...; None keeps it as is).
    `flip_y` mirrors it vertically for assets authored with v pointing down.
    """
    try:
        with Image.open(path) as img:
            if mode is not None:
                img = img.convert(mode)
            data = np.asarray(img, dtype=np.uint8)
    except (OSError, UnidentifiedImageError) as e:
        raise TextureError(f"cannot read texture {path}: {e}") from e
    if flip_y:
        data = data[::-1]
    logger.info("loaded texture %s (%dx%d)", os.path.basename(path), data.shape[1], data.shape[0])
    return Texture(data)


def save_image(framebuffer: Optional[Framebuffer], path: str) -> str:
    """Write the colour buffer to `path` (format from the extension, PNG recommended)."""
    if framebuffer is None:
        raise RenderError(f"no frame rendered yet, nothing to save to {path}")
    framebuffer.to_image().save(path)
    logger.info("saved %dx%d image to %s", framebuffer.width, framebuffer.height, path)
    return path
