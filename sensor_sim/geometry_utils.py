"""
Geometry utilities for the 3D sensor simulation.

Provides the small vector type used by the data model, quaternion helpers
for sensor orientation and beam volumes, and the ray intersection tests
(axis-aligned box, horizontal rectangle) used by the beam engine.

Conventions:
- +Y is up, the ground lies in the X-Z plane.
- A sensor with zero rotation looks along +Z.
- Quaternions are numpy arrays ordered (x, y, z, w).
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Any, Dict, Mapping, Optional, Sequence, Tuple, Union
import math

import numpy as np


EPS = 1e-8


# ---------------------------------------------------------------------------
# Vector type
# ---------------------------------------------------------------------------


@dataclass
class Vec3:
    """Position in world coordinates (meters)."""

    x: float
    y: float
    z: float

    def as_array(self) -> np.ndarray:
        return np.array([self.x, self.y, self.z], dtype=float)

    def as_tuple(self) -> Tuple[float, float, float]:
        return (self.x, self.y, self.z)

    def copy(self) -> "Vec3":
        return Vec3(self.x, self.y, self.z)

    def to_dict(self) -> Dict[str, float]:
        return {"x": self.x, "y": self.y, "z": self.z}

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> "Vec3":
        return cls(float(data["x"]), float(data["y"]), float(data["z"]))


Vec3Like = Union[Vec3, Sequence[float], Mapping[str, Any]]


def as_vec3(value: Vec3Like) -> Vec3:
    """Coerce a Vec3, an (x, y, z) sequence or an {x, y, z} mapping to a new Vec3."""
    if isinstance(value, Vec3):
        return value.copy()
    if isinstance(value, Mapping):
        return Vec3.from_dict(value)
    x, y, z = value
    return Vec3(float(x), float(y), float(z))


def normalize(v: np.ndarray) -> np.ndarray:
    """Return v scaled to unit length; a zero vector is returned unchanged."""
    length = float(np.linalg.norm(v))
    if length < 1e-12:
        return np.array(v, dtype=float)
    return np.asarray(v, dtype=float) / length


# ---------------------------------------------------------------------------
# Quaternions
# ---------------------------------------------------------------------------


def quat_identity() -> np.ndarray:
    return np.array([0.0, 0.0, 0.0, 1.0])


def quat_from_axis_angle(axis: Sequence[float], angle: float) -> np.ndarray:
    """Quaternion for a rotation of `angle` radians about a unit `axis`."""
    half = angle / 2.0
    s = math.sin(half)
    return np.array([axis[0] * s, axis[1] * s, axis[2] * s, math.cos(half)])


def quat_multiply(a: np.ndarray, b: np.ndarray) -> np.ndarray:
    """Hamilton product a * b (apply b first, then a)."""
    ax, ay, az, aw = a
    bx, by, bz, bw = b
    return np.array(
        [
            ax * bw + aw * bx + ay * bz - az * by,
            ay * bw + aw * by + az * bx - ax * bz,
            az * bw + aw * bz + ax * by - ay * bx,
            aw * bw - ax * bx - ay * by - az * bz,
        ]
    )


def quat_from_euler_yxz(pitch: float, yaw: float, roll: float) -> np.ndarray:
    """Orientation from Euler angles in radians, intrinsic order Y (yaw), X (pitch), Z (roll).

    Yaw turns about the vertical axis, pitch about the lateral axis and roll
    about the forward axis, composed as q = q_yaw * q_pitch * q_roll.
    """
    q_yaw = quat_from_axis_angle((0.0, 1.0, 0.0), yaw)
    q_pitch = quat_from_axis_angle((1.0, 0.0, 0.0), pitch)
    q_roll = quat_from_axis_angle((0.0, 0.0, 1.0), roll)
    return quat_multiply(quat_multiply(q_yaw, q_pitch), q_roll)


def quat_rotate(q: np.ndarray, v: Sequence[float]) -> np.ndarray:
    """Rotate vector v by unit quaternion q."""
    u = np.asarray(q[:3], dtype=float)
    w = float(q[3])
    vec = np.asarray(v, dtype=float)
    t = 2.0 * np.cross(u, vec)
    return vec + w * t + np.cross(u, t)


def quat_from_unit_vectors(v_from: Sequence[float], v_to: Sequence[float]) -> np.ndarray:
    """Shortest-arc rotation taking unit vector v_from onto unit vector v_to."""
    a = np.asarray(v_from, dtype=float)
    b = np.asarray(v_to, dtype=float)
    r = float(np.dot(a, b)) + 1.0
    if r < 1e-6:
        # Opposite vectors: rotate 180 degrees about any perpendicular axis
        if abs(a[0]) > abs(a[2]):
            q = np.array([-a[1], a[0], 0.0, 0.0])
        else:
            q = np.array([0.0, -a[2], a[1], 0.0])
    else:
        c = np.cross(a, b)
        q = np.array([c[0], c[1], c[2], r])
    return q / np.linalg.norm(q)


# ---------------------------------------------------------------------------
# Ray intersection
# ---------------------------------------------------------------------------


def ray_aabb_distance(
    origin: np.ndarray,
    direction: np.ndarray,
    box_min: Sequence[float],
    box_max: Sequence[float],
) -> Optional[float]:
    """Ray-AABB intersection using the slab method.

    Only the entry point counts: box faces are single-sided, so a ray whose
    origin lies inside the box does not hit it.

    Returns the distance t along origin + t * direction, or None for no hit.
    """
    tmin = -math.inf
    tmax = math.inf
    for axis in range(3):
        o = origin[axis]
        d = direction[axis]
        lo = box_min[axis]
        hi = box_max[axis]
        if abs(d) < EPS:
            if o < lo or o > hi:
                return None
            continue
        t1 = (lo - o) / d
        t2 = (hi - o) / d
        tmin = max(tmin, min(t1, t2))
        tmax = min(tmax, max(t1, t2))

    if tmin > tmax or tmin < 0.0:
        return None
    return float(tmin)


def ray_horizontal_rect_distance(
    origin: np.ndarray,
    direction: np.ndarray,
    y: float,
    x_min: float,
    x_max: float,
    z_min: float,
    z_max: float,
) -> Optional[float]:
    """Intersection with a double-sided rectangle lying in the plane Y = y.

    Returns the distance along the ray, or None when the ray is parallel to
    the plane, points away from it, or crosses it outside the rectangle.
    """
    dy = direction[1]
    if abs(dy) < EPS:
        return None
    t = (y - origin[1]) / dy
    if t < 0.0:
        return None
    hx = origin[0] + t * direction[0]
    hz = origin[2] + t * direction[2]
    if not (x_min <= hx <= x_max and z_min <= hz <= z_max):
        return None
    return float(t)


# ---------------------------------------------------------------------------
# Scalar helpers
# ---------------------------------------------------------------------------


def clamp(value: float, vmin: float, vmax: float) -> float:
    """Clamp value to [vmin, vmax]."""
    return max(vmin, min(vmax, value))


def lerp(a: float, b: float, t: float) -> float:
    """Linear interpolation: a + t*(b - a), t typically in [0,1]."""
    return a + t * (b - a)
