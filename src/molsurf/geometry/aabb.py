"""Axis-aligned bounding boxes and the slab ray-box test.

The molecule's bounding box bounds every march: rays that miss it are reported
as background and rays that hit it start at the entry distance.
"""

from dataclasses import dataclass

import numpy as np
import taichi as ti
import taichi.math as tm

# Type alias for 3D vectors using Taichi's math module
vec3 = tm.vec3


@dataclass(frozen=True)
class BoundingBox:
    """Host-side axis-aligned box.

    Attributes:
        minimum: Lower corner (x, y, z).
        maximum: Upper corner (x, y, z), strictly greater on every axis.
    """

    minimum: tuple[float, float, float]
    maximum: tuple[float, float, float]

    def __post_init__(self):
        for lo, hi in zip(self.minimum, self.maximum):
            if not hi > lo:
                raise ValueError(
                    f"Bounding box maximum must exceed minimum, got {self.minimum} / {self.maximum}"
                )

    @property
    def extent(self) -> np.ndarray:
        """Edge lengths along x, y and z."""
        return np.asarray(self.maximum, dtype=np.float64) - np.asarray(
            self.minimum, dtype=np.float64
        )

    @property
    def center(self) -> np.ndarray:
        """Midpoint of the box."""
        return 0.5 * (
            np.asarray(self.minimum, dtype=np.float64)
            + np.asarray(self.maximum, dtype=np.float64)
        )

    @property
    def diagonal(self) -> float:
        """Length of the box diagonal."""
        return float(np.linalg.norm(self.extent))

    def contains(self, point) -> bool:
        """Check whether a point lies inside or on the box."""
        p = np.asarray(point, dtype=np.float64)
        return bool(np.all(p >= self.minimum) and np.all(p <= self.maximum))

    @classmethod
    def from_points(cls, points: np.ndarray, padding: float = 0.0) -> "BoundingBox":
        """Build the tight box around a set of points, grown by padding.

        Args:
            points: Array of shape (N, 3) with N >= 1.
            padding: Distance added on every side.

        Raises:
            ValueError: If points is empty or not (N, 3).
        """
        pts = np.asarray(points, dtype=np.float64)
        if pts.ndim != 2 or pts.shape[1] != 3 or len(pts) == 0:
            raise ValueError(f"Expected a non-empty (N, 3) array, got shape {pts.shape}")
        lo = pts.min(axis=0) - padding
        hi = pts.max(axis=0) + padding
        return cls(minimum=tuple(float(v) for v in lo), maximum=tuple(float(v) for v in hi))

    def snapped(self, cell_size: float) -> "BoundingBox":
        """Grow the box outward so every corner is a multiple of cell_size."""
        if cell_size <= 0.0:
            raise ValueError(f"cell_size must be positive, got {cell_size}")
        lo = np.floor(np.asarray(self.minimum) / cell_size) * cell_size
        hi = np.ceil(np.asarray(self.maximum) / cell_size) * cell_size
        # A coordinate already on a cell boundary must still give a non-empty span
        hi = np.where(hi <= lo, lo + cell_size, hi)
        return BoundingBox(
            minimum=tuple(float(v) for v in lo), maximum=tuple(float(v) for v in hi)
        )


@ti.func
def intersect_aabb(origin: vec3, direction: vec3, bb_min: vec3, bb_max: vec3):
    """Intersect a ray with an axis-aligned box using the slab method.

    Zero direction components yield infinite slab distances, which the IEEE
    min/max reduction handles without a special case.

    Args:
        origin: Ray origin.
        direction: Ray direction (need not be normalized).
        bb_min: Lower box corner.
        bb_max: Upper box corner.

    Returns:
        Tuple (hit, t_near, t_far). hit is 1 when the ray enters the box in
        front of the origin; t_near is clamped to 0 for origins inside the box.
    """
    inv_dir = 1.0 / direction
    t0 = (bb_min - origin) * inv_dir
    t1 = (bb_max - origin) * inv_dir
    t_small = ti.min(t0, t1)
    t_big = ti.max(t0, t1)
    t_near = ti.max(ti.max(t_small.x, t_small.y), t_small.z)
    t_far = ti.min(ti.min(t_big.x, t_big.y), t_big.z)

    hit = 0
    if t_far >= t_near and t_far >= 0.0:
        hit = 1
    t_near = ti.max(t_near, 0.0)
    return hit, t_near, t_far
