import math
from typing import Optional, Tuple

import numpy as np


# ============================================================
#  Vectors
# ============================================================

def vec3(x, y, z) -> np.ndarray:
    """Build a float64 3D vector."""
    return np.array([x, y, z], dtype=np.float64)


def dot(a: np.ndarray, b: np.ndarray) -> np.ndarray:
    """Dot product over the last axis (works on stacks of vectors)."""
    return np.sum(a * b, axis=-1)


def normalize(v: np.ndarray) -> np.ndarray:
    """
    Normalize vectors along the last axis.

    Zero-length vectors stay zero instead of producing NaNs, so a missing
    normal degrades to "no lighting" rather than poisoning the framebuffer.
    """
    v = np.asarray(v, dtype=np.float64)
    n = np.linalg.norm(v, axis=-1, keepdims=True)
    return np.divide(v, n, out=np.zeros_like(v), where=n > 1e-12)


def reflect(l: np.ndarray, n: np.ndarray) -> np.ndarray:
    """
    Reflect direction L about normal N.

    L points from the surface towards the light; the result points away
    from the surface on the mirrored side: R = 2(N.L)N - L.
    """
    return 2.0 * dot(n, l)[..., None] * n - l


def to_homogeneous(points: np.ndarray, w: float = 1.0) -> np.ndarray:
    """Append a w component to (..., 3) points."""
    points = np.asarray(points, dtype=np.float64)
    pad = np.full(points.shape[:-1] + (1,), w, dtype=np.float64)
    return np.concatenate([points, pad], axis=-1)


# ============================================================
#  4x4 matrices (column vectors: p' = M @ p)
# ============================================================

def identity() -> np.ndarray:
    return np.eye(4, dtype=np.float64)


def translate(tx, ty, tz) -> np.ndarray:
    """
    Translation matrix.

    Applies: (x, y, z) -> (x + tx, y + ty, z + tz)
    """
    m = identity()
    m[0, 3] = tx
    m[1, 3] = ty
    m[2, 3] = tz
    return m


def scale(sx, sy, sz) -> np.ndarray:
    """
    Scaling matrix.

    Applies: (x, y, z) -> (sx*x, sy*y, sz*z)
    """
    m = identity()
    m[0, 0] = sx
    m[1, 1] = sy
    m[2, 2] = sz
    return m


def rotate_x(a) -> np.ndarray:
    """Rotation around X axis by angle a (radians)."""
    c, s = math.cos(a), math.sin(a)
    m = identity()
    m[1, 1] = c
    m[1, 2] = -s
    m[2, 1] = s
    m[2, 2] = c
    return m


def rotate_y(a) -> np.ndarray:
    """Rotation around Y axis by angle a (radians)."""
    c, s = math.cos(a), math.sin(a)
    m = identity()
    m[0, 0] = c
    m[0, 2] = s
    m[2, 0] = -s
    m[2, 2] = c
    return m


def look_at(eye, target, up) -> np.ndarray:
    """
    View matrix for a camera at `eye` looking at `target`.

    Right-handed: the camera looks towards -Z in view space, +Y is up.
    If `up` is parallel to the viewing direction a fallback up axis is used.
    """
    eye = np.asarray(eye, dtype=np.float64)
    target = np.asarray(target, dtype=np.float64)
    up = np.asarray(up, dtype=np.float64)

    z = normalize(eye - target)
    x = np.cross(up, z)
    if np.linalg.norm(x) <= 1e-9:
        alt = vec3(0.0, 0.0, 1.0) if abs(z[1]) > 0.9 else vec3(0.0, 1.0, 0.0)
        x = np.cross(alt, z)
    x = normalize(x)
    y = np.cross(z, x)

    m = identity()
    m[0, :3] = x
    m[1, :3] = y
    m[2, :3] = z
    m[0, 3] = -dot(x, eye)
    m[1, 3] = -dot(y, eye)
    m[2, 3] = -dot(z, eye)
    return m


# ============================================================
#  Projections
# ============================================================

def perspective(fov_y, aspect, z_near, z_far) -> np.ndarray:
    """
    Perspective projection matrix.

    Parameters:
      fov_y  - vertical field of view in radians
      aspect - width / height
      z_near - near plane distance (positive)
      z_far  - far plane distance (positive)

    Notes:
      - camera looks towards -Z in view space.
      - This projection produces clip-space with w = -z_view.
      - NDC z is -1 on the near plane and +1 on the far plane.
    """
    f = 1.0 / math.tan(fov_y / 2.0)
    m = np.zeros((4, 4), dtype=np.float64)
    m[0, 0] = f / aspect
    m[1, 1] = f
    m[2, 2] = (z_far + z_near) / (z_near - z_far)
    m[2, 3] = (2.0 * z_far * z_near) / (z_near - z_far)
    m[3, 2] = -1.0
    return m


def orthographic(half_width, half_height, z_near, z_far) -> np.ndarray:
    """
    Orthographic projection of the view-space box
    [-half_width, half_width] x [-half_height, half_height] x [-z_far, -z_near].

    w stays 1, so perspective-correct interpolation degrades to plain
    screen-space interpolation.
    """
    m = identity()
    m[0, 0] = 1.0 / half_width
    m[1, 1] = 1.0 / half_height
    m[2, 2] = -2.0 / (z_far - z_near)
    m[2, 3] = -(z_far + z_near) / (z_far - z_near)
    return m


def viewport(width, height) -> np.ndarray:
    """
    Map NDC [-1..1]^3 to screen space.

    NDC:
      x=-1 left, x=+1 right
      y=-1 bottom, y=+1 top
    Screen:
      x in [0, width], y in [0, height] with y=0 at the top row edge,
      z in [0, 1] (0 = near plane, 1 = far plane).

    Pixel (i, j) has its centre at (i + 0.5, j + 0.5).
    """
    m = identity()
    m[0, 0] = width / 2.0
    m[0, 3] = width / 2.0
    m[1, 1] = -height / 2.0
    m[1, 3] = height / 2.0
    m[2, 2] = 0.5
    m[2, 3] = 0.5
    return m


def transform_points(m: np.ndarray, points: np.ndarray) -> np.ndarray:
    """Apply a 4x4 matrix to (..., 3) points; returns homogeneous (..., 4)."""
    return to_homogeneous(points) @ m.T


def transform_directions(m: np.ndarray, dirs: np.ndarray) -> np.ndarray:
    """Apply the upper-left 3x3 of `m` to (..., 3) direction vectors."""
    return np.asarray(dirs, dtype=np.float64) @ m[:3, :3].T


def normal_matrix(m: np.ndarray) -> np.ndarray:
    """
    Inverse-transpose of the upper-left 3x3, embedded in a 4x4.

    Needed so normals stay perpendicular to surfaces under non-uniform scale.
    """
    out = identity()
    out[:3, :3] = np.linalg.inv(m[:3, :3]).T
    return out


# ============================================================
#  Generic 2D sample buffer
# ============================================================

class Buffer2D:
    """
    Dense (height, width, channels) sample grid with a fixed clear value.

    Indexing is [y, x] (row-major, y=0 is the top row). Buffers are allocated
    once and cleared in place between frames.
    """

    def __init__(self, width: int, height: int, channels: int = 1,
                 dtype=np.float32, fill=0.0):
        self.width = int(width)
        self.height = int(height)
        self.channels = int(channels)
        self.fill = fill
        shape: Tuple[int, ...] = (self.height, self.width)
        if self.channels > 1:
            shape = shape + (self.channels,)
        self.data = np.empty(shape, dtype=dtype)
        self.clear()

    @property
    def shape(self) -> Tuple[int, ...]:
        return self.data.shape

    def clear(self, fill: Optional[object] = None) -> None:
        """Reset every sample in place (no reallocation)."""
        self.data[...] = self.fill if fill is None else fill

    def in_bounds(self, x: int, y: int) -> bool:
        return 0 <= x < self.width and 0 <= y < self.height

    def get(self, x: int, y: int):
        return self.data[y, x]

    def set(self, x: int, y: int, value) -> None:
        if self.in_bounds(x, y):
            self.data[y, x] = value


# ============================================================
#  Image filters
# ============================================================

def gaussian_weights(radius: int, sigma: Optional[float] = None) -> np.ndarray:
    """Normalized 1D Gaussian taps, length 2*radius+1."""
    radius = int(radius)
    if radius <= 0:
        return np.ones(1)
    if sigma is None:
        sigma = max(radius / 2.0, 0.5)
    x = np.arange(-radius, radius + 1, dtype=np.float64)
    w = np.exp(-(x * x) / (2.0 * sigma * sigma))
    return w / w.sum()


def separable_blur(img: np.ndarray, weights) -> np.ndarray:
    """
    Convolve an (H, W) or (H, W, C) image with `weights` along x, then y.

    Borders repeat the edge sample, so a constant image stays constant.
    """
    w = np.asarray(weights, dtype=np.float64)
    r = len(w) // 2
    src = np.asarray(img, dtype=np.float64)
    if r == 0:
        return src * w[0]
    h, wd = src.shape[:2]
    tail = ((0, 0),) * (src.ndim - 2)

    p = np.pad(src, ((0, 0), (r, r)) + tail, mode="edge")
    horiz = np.zeros_like(src)
    for i, wi in enumerate(w):
        horiz += wi * p[:, i:i + wd]

    p = np.pad(horiz, ((r, r), (0, 0)) + tail, mode="edge")
    out = np.zeros_like(src)
    for i, wi in enumerate(w):
        out += wi * p[i:i + h]
    return out
