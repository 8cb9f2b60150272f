"""
Triangle rasterizer (bounding-box scan + edge functions) and line drawing.

Conventions:
  - pixel (x, y) has its centre at (x + 0.5, y + 0.5); y=0 is the top row
  - edge functions are evaluated with their endpoints in a canonical order,
    so two triangles sharing an edge get exactly negated values for it
  - a centre lying exactly on an edge belongs to the triangle for which that
    edge is a top or left edge (top-left fill rule); together with the
    canonical evaluation this makes shared edges seamless and never
    double-covered
  - depth is interpolated linearly in screen space and tested with a strict
    "nearer than" comparison; the z-buffer stores [0, 1] with 1 = far plane
  - other attributes use perspective-correct barycentrics
        b_i' = b_i * inv_w_i / sum_j(b_j * inv_w_j)
"""

import logging
import math

import numpy as np
from numba import njit, prange

from .geometry import CULL_BACK, MIN_AREA, TriangleBatch

logger = logging.getLogger(__name__)

# Rows handled by one parallel worker. Bands never overlap, so the
# depth-test-and-write for a pixel only ever happens on one thread.
BAND_ROWS = 16


# ============================================================
#  Shared numba helpers
# ============================================================

@njit(cache=True)
def _edge(ax, ay, bx, by, px, py):
    """
    Edge function of (a -> b) at p: positive when p is on the interior side
    of a positive-area triangle.

    Evaluated from the lexicographically smaller endpoint so E(a,b,p) and
    E(b,a,p) are exact negatives of each other.
    """
    if ax < bx or (ax == bx and ay < by):
        return (bx - ax) * (py - ay) - (by - ay) * (px - ax)
    return -((ax - bx) * (py - by) - (ay - by) * (px - bx))


@njit(cache=True)
def _is_top_left(ax, ay, bx, by):
    """Top edge: horizontal, going right. Left edge: going up (y decreasing)."""
    dy = by - ay
    return dy < 0.0 or (dy == 0.0 and bx - ax > 0.0)


@njit(cache=True)
def _covers(w, top_left):
    return w > 0.0 or (w == 0.0 and top_left)


@njit(cache=True)
def _weights(x0, y0, x1, y1, x2, y2, px, py):
    """Unnormalized barycentric weights: each is the edge opposite its vertex."""
    w0 = _edge(x1, y1, x2, y2, px, py)
    w1 = _edge(x2, y2, x0, y0, px, py)
    w2 = _edge(x0, y0, x1, y1, px, py)
    return w0, w1, w2


@njit(cache=True)
def _resolve(w0, w1, w2, z0, z1, z2, iw0, iw1, iw2):
    """
    Turn edge weights into (depth, perspective-correct barycentrics).

    Depth is affine in screen space, so it uses the plain barycentrics.
    """
    s = w0 + w1 + w2
    b0 = w0 / s
    b1 = w1 / s
    b2 = w2 / s
    z = b0 * z0 + b1 * z1 + b2 * z2
    p0 = b0 * iw0
    p1 = b1 * iw1
    p2 = b2 * iw2
    ps = p0 + p1 + p2
    return z, p0 / ps, p1 / ps, p2 / ps


@njit(cache=True)
def _pixel_range(a, b, c, limit):
    """Pixels whose centres can fall inside [min(a,b,c), max(a,b,c)], clamped."""
    lo = max(0, int(math.floor(min(a, b, c) - 0.5)))
    hi = min(limit - 1, int(math.ceil(max(a, b, c) - 0.5)))
    return lo, hi


# ============================================================
#  Whole-batch rasterization
# ============================================================

@njit(cache=True, parallel=True)
def _raster_kernel(screen, inv_w, depth, tri_ids, bary, write_ids):
    """
    Rasterize every triangle of a batch into `depth` (and the visibility
    buffer when write_ids is set).

    Work is split into horizontal bands of BAND_ROWS rows; each band walks
    the triangles in submission order, so the result does not depend on
    the number of threads.
    """
    height, width = depth.shape
    n_tri = screen.shape[0]
    n_bands = (height + BAND_ROWS - 1) // BAND_ROWS

    for band in prange(n_bands):
        row_lo = band * BAND_ROWS
        row_hi = min(height, row_lo + BAND_ROWS) - 1
        for t in range(n_tri):
            x0, y0, z0 = screen[t, 0, 0], screen[t, 0, 1], screen[t, 0, 2]
            x1, y1, z1 = screen[t, 1, 0], screen[t, 1, 1], screen[t, 1, 2]
            x2, y2, z2 = screen[t, 2, 0], screen[t, 2, 1], screen[t, 2, 2]

            miny, maxy = _pixel_range(y0, y1, y2, height)
            miny = max(miny, row_lo)
            maxy = min(maxy, row_hi)
            if miny > maxy:
                continue
            minx, maxx = _pixel_range(x0, x1, x2, width)
            if minx > maxx:
                continue

            tl0 = _is_top_left(x1, y1, x2, y2)
            tl1 = _is_top_left(x2, y2, x0, y0)
            tl2 = _is_top_left(x0, y0, x1, y1)
            iw0, iw1, iw2 = inv_w[t, 0], inv_w[t, 1], inv_w[t, 2]

            for y in range(miny, maxy + 1):
                py = y + 0.5
                for x in range(minx, maxx + 1):
                    px = x + 0.5
                    w0, w1, w2 = _weights(x0, y0, x1, y1, x2, y2, px, py)
                    if not (_covers(w0, tl0) and _covers(w1, tl1) and _covers(w2, tl2)):
                        continue
                    if w0 + w1 + w2 <= 0.0:
                        continue
                    z, b0, b1, b2 = _resolve(w0, w1, w2, z0, z1, z2, iw0, iw1, iw2)
                    if z >= depth[y, x]:
                        continue
                    depth[y, x] = z
                    if write_ids:
                        tri_ids[y, x] = t
                        bary[y, x, 0] = b0
                        bary[y, x, 1] = b1
                        bary[y, x, 2] = b2


def rasterize_batch(batch: TriangleBatch, depth: np.ndarray, tri_ids: np.ndarray,
                    bary: np.ndarray) -> None:
    """
    Main-pass rasterization into a depth buffer plus visibility buffer.

    tri_ids - (H, W) int64, index into the batch of the visible triangle
              (left untouched where nothing was drawn; clear it to -1)
    bary    - (H, W, 3) perspective-correct barycentrics of that triangle
    """
    if batch.count == 0:
        return
    _raster_kernel(np.ascontiguousarray(batch.screen, dtype=np.float64),
                   np.ascontiguousarray(batch.inv_w, dtype=np.float64),
                   depth, tri_ids, bary, True)


def rasterize_depth(batch: TriangleBatch, depth: np.ndarray) -> None:
    """Depth-only mode, used for shadow maps."""
    if batch.count == 0:
        return
    _raster_kernel(np.ascontiguousarray(batch.screen, dtype=np.float64),
                   np.ascontiguousarray(batch.inv_w, dtype=np.float64),
                   depth, np.zeros((1, 1), dtype=np.int64), np.zeros((1, 1, 3)), False)


# ============================================================
#  Single triangle with a fragment callback
# ============================================================

@njit(cache=True)
def _triangle_fragments(x0, y0, x1, y1, x2, y2, width, height):
    """
    Covered pixels of a positive-area triangle, in scan order.

    Returns (xs, ys, weights) with weights[i] the unnormalized edge weights.
    """
    minx, maxx = _pixel_range(x0, x1, x2, width)
    miny, maxy = _pixel_range(y0, y1, y2, height)
    n = max(0, maxx - minx + 1) * max(0, maxy - miny + 1)
    xs = np.empty(n, dtype=np.int64)
    ys = np.empty(n, dtype=np.int64)
    ws = np.empty((n, 3), dtype=np.float64)

    tl0 = _is_top_left(x1, y1, x2, y2)
    tl1 = _is_top_left(x2, y2, x0, y0)
    tl2 = _is_top_left(x0, y0, x1, y1)

    k = 0
    for y in range(miny, maxy + 1):
        py = y + 0.5
        for x in range(minx, maxx + 1):
            px = x + 0.5
            w0, w1, w2 = _weights(x0, y0, x1, y1, x2, y2, px, py)
            if _covers(w0, tl0) and _covers(w1, tl1) and _covers(w2, tl2) and w0 + w1 + w2 > 0.0:
                xs[k] = x
                ys[k] = y
                ws[k, 0] = w0
                ws[k, 1] = w1
                ws[k, 2] = w2
                k += 1
    return xs[:k], ys[:k], ws[:k]


def _winding_order(screen: np.ndarray, cull: str):
    """Vertex order giving positive area, or None if the triangle is dropped."""
    (x0, y0), (x1, y1), (x2, y2) = screen[0, :2], screen[1, :2], screen[2, :2]
    area = (x1 - x0) * (y2 - y0) - (y1 - y0) * (x2 - x0)
    if abs(area) <= MIN_AREA:
        return None
    if area < 0.0:
        return [0, 2, 1]
    if cull == CULL_BACK:
        return None
    return [0, 1, 2]


def rasterize_triangle(screen, inv_w, depth: np.ndarray, fragment, cull: str = CULL_BACK) -> int:
    """
    Rasterize one screen-space triangle, calling `fragment` per passing pixel.

    screen   - (3, 3) x, y in pixels and z in [0, 1]
    inv_w    - (3,) 1/w per vertex, or None for affine (orthographic) input
    depth    - (H, W) z-buffer, updated before the callback runs
    fragment - fragment(x, y, bary, z); bary is perspective-correct and in
               the caller's vertex order

    Returns the number of fragments that passed the depth test.
    """
    screen = np.asarray(screen, dtype=np.float64)
    inv_w = np.ones(3) if inv_w is None else np.asarray(inv_w, dtype=np.float64)
    order = _winding_order(screen, cull)
    if order is None:
        return 0
    s, iw = screen[order], inv_w[order]
    height, width = depth.shape
    xs, ys, ws = _triangle_fragments(s[0, 0], s[0, 1], s[1, 0], s[1, 1], s[2, 0], s[2, 1],
                                     width, height)
    drawn = 0
    bary = np.empty(3)
    for x, y, (w0, w1, w2) in zip(xs, ys, ws):
        z, b0, b1, b2 = _resolve(w0, w1, w2, s[0, 2], s[1, 2], s[2, 2], iw[0], iw[1], iw[2])
        if z >= depth[y, x]:
            continue
        depth[y, x] = z
        bary[order] = (b0, b1, b2)
        fragment(int(x), int(y), bary.copy(), z)
        drawn += 1
    return drawn


def barycentric_at(screen, inv_w, px: float, py: float) -> np.ndarray:
    """
    Perspective-correct barycentrics of point (px, py), using the same
    arithmetic as the rasterizer. No coverage test is applied.
    """
    s = np.asarray(screen, dtype=np.float64)
    iw = np.ones(3) if inv_w is None else np.asarray(inv_w, dtype=np.float64)
    w0, w1, w2 = _weights(s[0, 0], s[0, 1], s[1, 0], s[1, 1], s[2, 0], s[2, 1], px, py)
    _, b0, b1, b2 = _resolve(w0, w1, w2, s[0, 2], s[1, 2], s[2, 2], iw[0], iw[1], iw[2])
    return np.array([b0, b1, b2])


def interpolate(bary: np.ndarray, attributes: np.ndarray) -> np.ndarray:
    """Weighted sum of the three per-vertex attribute rows."""
    return np.asarray(bary) @ np.asarray(attributes, dtype=np.float64)


# ============================================================
#  Bresenham line
# ============================================================

@njit(cache=True)
def draw_line(img, x0, y0, x1, y1, r, g, b):
    """
    Bresenham integer line drawing into img[y, x, :].

    Pixels outside the image are skipped, so endpoints may lie off-screen.
    """
    height, width = img.shape[0], img.shape[1]
    steep = abs(x0 - x1) < abs(y0 - y1)
    if steep:
        x0, y0 = y0, x0
        x1, y1 = y1, x1
    if x0 > x1:
        x0, x1 = x1, x0
        y0, y1 = y1, y0

    dx = x1 - x0
    dy = abs(y1 - y0)
    error2 = 0
    y = y0
    ystep = 1 if y1 > y0 else -1

    for x in range(x0, x1 + 1):
        px, py = (y, x) if steep else (x, y)
        if 0 <= px < width and 0 <= py < height:
            img[py, px, 0] = r
            img[py, px, 1] = g
            img[py, px, 2] = b
        error2 += 2 * dy
        if error2 > dx:
            y += ystep
            error2 -= 2 * dx


@njit(cache=True)
def draw_wireframe(img, screen, r, g, b):
    """Outline every triangle of a (T, 3, >=2) screen-space array."""
    for t in range(screen.shape[0]):
        for k in range(3):
            a = screen[t, k]
            c = screen[t, (k + 1) % 3]
            draw_line(img, int(a[0]), int(a[1]), int(c[0]), int(c[1]), r, g, b)
