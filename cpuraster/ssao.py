"""
Screen-space ambient occlusion.

For each covered pixel a hemisphere of sample points around the surface
normal is projected back to the screen. A sample counts as occluded when
the visible surface at its pixel lies in front of it (closer to the
camera) by more than the bias and rises above the shaded point's tangent
plane, so a plane never occludes itself. Samples far away in depth are
faded out by a range check so silhouettes do not darken the background
geometry.

Everything is compared in view space, where the camera looks down -z
(larger z = closer to the eye).
"""

import logging

import numpy as np
from numba import njit, prange

from .maths import separable_blur, transform_directions, transform_points

logger = logging.getLogger(__name__)

NOISE_SIZE = 4
MIN_ELEVATION = 0.15
BLUR_WEIGHTS = (1.0 / 16.0, 4.0 / 16.0, 6.0 / 16.0, 4.0 / 16.0, 1.0 / 16.0)


def make_kernel(count: int, seed: int = 1337) -> np.ndarray:
    """
    Hemisphere sample offsets, shape (count, 3), z >= MIN_ELEVATION * length.

    Lengths grow quadratically with the index so most samples stay close
    to the shaded point.
    """
    rng = np.random.default_rng(seed)
    samples = np.empty((count, 3), dtype=np.float64)
    for i in range(count):
        v = rng.random(3) * 2.0 - 1.0
        v[2] = rng.random()
        v = v / (np.linalg.norm(v) + 1e-6)
        if v[2] < MIN_ELEVATION:
            # tilt up to the minimum elevation, keeping the azimuth
            v[:2] *= np.sqrt(1.0 - MIN_ELEVATION ** 2) / np.linalg.norm(v[:2])
            v[2] = MIN_ELEVATION
        s = i / float(count)
        samples[i] = v * (0.1 + 0.9 * s * s)
    return samples


def make_noise(size: int = NOISE_SIZE, seed: int = 1337) -> np.ndarray:
    """Tile of random rotation vectors in the xy plane, shape (size, size, 3)."""
    rng = np.random.default_rng(seed)
    noise = rng.random((size, size, 3)) * 2.0 - 1.0
    noise[:, :, 2] = 0.0
    return noise


@njit(cache=True)
def _smoothstep(x):
    t = min(max(x, 0.0), 1.0)
    return t * t * (3.0 - 2.0 * t)


@njit(cache=True, parallel=True)
def _ssao_kernel(pos, nrm, coverage, proj, kernel, noise, radius, bias, out):
    height, width = coverage.shape
    n_samples = kernel.shape[0]
    ns = noise.shape[0]

    for y in prange(height):
        for x in range(width):
            if not coverage[y, x]:
                out[y, x] = 1.0
                continue
            px, py, pz = pos[y, x, 0], pos[y, x, 1], pos[y, x, 2]
            nx, ny, nz = nrm[y, x, 0], nrm[y, x, 1], nrm[y, x, 2]

            # tangent frame: noise vector made orthogonal to n
            rx, ry, rz = noise[y % ns, x % ns, 0], noise[y % ns, x % ns, 1], noise[y % ns, x % ns, 2]
            d = rx * nx + ry * ny + rz * nz
            tx, ty, tz = rx - nx * d, ry - ny * d, rz - nz * d
            tl = (tx * tx + ty * ty + tz * tz) ** 0.5
            if tl < 1e-6:
                if abs(nx) < 0.9:
                    tx, ty, tz = 0.0, -nz, ny
                else:
                    tx, ty, tz = nz, 0.0, -nx
                tl = (tx * tx + ty * ty + tz * tz) ** 0.5
            tx, ty, tz = tx / tl, ty / tl, tz / tl
            bx, by, bz = ny * tz - nz * ty, nz * tx - nx * tz, nx * ty - ny * tx

            occlusion = 0.0
            for i in range(n_samples):
                kx, ky, kz = kernel[i, 0], kernel[i, 1], kernel[i, 2]
                sx = px + (tx * kx + bx * ky + nx * kz) * radius
                sy = py + (ty * kx + by * ky + ny * kz) * radius
                sz = pz + (tz * kx + bz * ky + nz * kz) * radius

                cx = proj[0, 0] * sx + proj[0, 1] * sy + proj[0, 2] * sz + proj[0, 3]
                cy = proj[1, 0] * sx + proj[1, 1] * sy + proj[1, 2] * sz + proj[1, 3]
                cw = proj[3, 0] * sx + proj[3, 1] * sy + proj[3, 2] * sz + proj[3, 3]
                if cw <= 1e-12:
                    continue
                u = (cx / cw + 1.0) * 0.5 * width
                v = (1.0 - cy / cw) * 0.5 * height
                if u < 0.0 or u >= width or v < 0.0 or v >= height:
                    continue
                ix = int(u)
                iy = int(v)
                if not coverage[iy, ix]:
                    continue

                # occluder must sit in front of the sample and above the tangent plane
                scene_z = pos[iy, ix, 2]
                height_above = ((pos[iy, ix, 0] - px) * nx + (pos[iy, ix, 1] - py) * ny +
                                (scene_z - pz) * nz)
                if scene_z >= sz + bias and height_above > bias:
                    occlusion += _smoothstep(radius / (abs(pz - scene_z) + 1e-6))

            out[y, x] = min(max(1.0 - occlusion / n_samples, 0.0), 1.0)


def compute_ssao(position: np.ndarray, normal: np.ndarray, coverage: np.ndarray,
                 view: np.ndarray, projection: np.ndarray, width: int, height: int,
                 samples: int = 16, radius: float = 0.5, bias: float = 0.025,
                 blur: bool = True, seed: int = 1337) -> np.ndarray:
    """
    Ambient-occlusion factor per pixel, shape (height, width), in [0, 1].

    `position` and `normal` are the world-space planes of the framebuffer;
    `view` and `projection` are the camera matrices the frame was rendered
    with. 1.0 means fully open; uncovered pixels are always 1.0.
    """
    out = np.ones((height, width), dtype=np.float64)
    if not coverage.any():
        return out

    pos_view = transform_points(view, position.reshape(-1, 3))[:, :3].reshape(height, width, 3)
    nrm_view = transform_directions(view, normal.reshape(-1, 3)).reshape(height, width, 3)
    kernel = make_kernel(int(samples), seed)
    noise = make_noise(NOISE_SIZE, seed + 1)

    _ssao_kernel(np.ascontiguousarray(pos_view), np.ascontiguousarray(nrm_view),
                 np.ascontiguousarray(coverage), np.ascontiguousarray(projection, dtype=np.float64),
                 kernel, noise, float(radius), float(bias), out)

    if blur:
        out = separable_blur(out, BLUR_WEIGHTS)
        out[~coverage] = 1.0
        np.clip(out, 0.0, 1.0, out=out)

    logger.debug("ssao: %d samples, radius %.3f, %d covered pixels", samples, radius, int(coverage.sum()))
    return out
