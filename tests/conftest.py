"""Pytest configuration and shared fixtures."""

import sys
from pathlib import Path

import numpy as np
import pytest

# Add the project root to the path
project_root = Path(__file__).parent.parent
sys.path.insert(0, str(project_root))

from cpuraster.geometry import ATTR_COUNT, TriangleBatch  # noqa: E402
from cpuraster.options import RenderOptions  # noqa: E402
from cpuraster.scene import Camera, Mesh  # noqa: E402


def pixel_camera(width, height):
    """
    Orthographic camera where world (x, y) on the z=0 plane lands on screen
    pixel coordinates (x, height - y). Power-of-two sizes keep it exact.
    """
    return Camera(eye=(width / 2.0, height / 2.0, 10.0), target=(width / 2.0, height / 2.0, 0.0),
                  ortho_height=height / 2.0, near=1.0, far=20.0)


def quad(x0, y0, x1, y1, z=0.0):
    """Axis-aligned quad facing +z (counter-clockwise seen from the camera), two triangles."""
    positions = [(x0, y0, z), (x1, y0, z), (x1, y1, z), (x0, y1, z)]
    normals = [(0.0, 0.0, 1.0)] * 4
    uvs = [(0.0, 0.0), (1.0, 0.0), (1.0, 1.0), (0.0, 1.0)]
    return Mesh(positions, normals, uvs, [[0, 1, 2], [0, 2, 3]])


def merge(*meshes):
    """Concatenate meshes into one (face indices shifted)."""
    positions, normals, uvs, faces = [], [], [], []
    offset = 0
    for m in meshes:
        positions.append(m.positions)
        normals.append(m.normals)
        uvs.append(m.uvs)
        faces.append(m.faces + offset)
        offset += m.vertex_count
    return Mesh(np.concatenate(positions), np.concatenate(normals), np.concatenate(uvs),
                np.concatenate(faces))


def make_batch(screens, inv_w=None, width=8, height=8):
    """TriangleBatch straight from screen-space vertices (must have positive area)."""
    screen = np.asarray(screens, dtype=np.float64).reshape(-1, 3, 3)
    n = len(screen)
    return TriangleBatch(
        screen=screen,
        inv_w=np.ones((n, 3)) if inv_w is None else np.asarray(inv_w, dtype=np.float64),
        attrs=np.zeros((n, 3, ATTR_COUNT)),
        face=np.arange(n),
        material=np.zeros(n, dtype=np.int64),
        width=width,
        height=height,
    )


@pytest.fixture
def camera8():
    return pixel_camera(8, 8)


@pytest.fixture
def quad_mesh():
    """Quad covering screen pixels 2..5 in both axes for an 8x8 pixel camera."""
    return quad(2.0, 2.0, 6.0, 6.0)


@pytest.fixture
def plain_options():
    """Flat shading with every post effect off; output is exactly predictable."""
    return RenderOptions(shading="flat", shadows=False, ssao=False, bloom=False)


@pytest.fixture
def temp_output_dir(tmp_path):
    """Provide a temporary directory for test outputs."""
    out = tmp_path / "outputs"
    out.mkdir()
    return out
