"""NumPy-backed math utilities: Vec3, Quaternion, Mat3/Mat4 operations.

Vectors are plain numpy arrays; quaternions are [x, y, z, w] arrays.
Matrices act on column vectors (``m @ v``); a rotation matrix built from
a surface frame stores the tangent, bitangent and normal as its columns.
"""

import numpy as np
from numpy.typing import NDArray

# Type aliases
Vec3 = NDArray[np.float64]
Mat3 = NDArray[np.float64]
Mat4 = NDArray[np.float64]
Quat = NDArray[np.float64]  # [x, y, z, w]


def vec3(x: float = 0.0, y: float = 0.0, z: float = 0.0) -> Vec3:
    return np.array([x, y, z], dtype=np.float64)


def as_vec3(v) -> Vec3:
    """Coerce any 3-sequence to a float64 vector."""
    return np.asarray(v, dtype=np.float64).reshape(3)


def mat4_identity() -> Mat4:
    return np.eye(4, dtype=np.float64)


def mat4_translation(x: float, y: float, z: float) -> Mat4:
    m = np.eye(4, dtype=np.float64)
    m[0, 3] = x
    m[1, 3] = y
    m[2, 3] = z
    return m


def mat3_from_quaternion(q: Quat) -> Mat3:
    """Convert quaternion [x,y,z,w] to a 3x3 rotation matrix."""
    x, y, z, w = q
    return np.array([
        [1 - 2 * (y * y + z * z), 2 * (x * y - z * w), 2 * (x * z + y * w)],
        [2 * (x * y + z * w), 1 - 2 * (x * x + z * z), 2 * (y * z - x * w)],
        [2 * (x * z - y * w), 2 * (y * z + x * w), 1 - 2 * (x * x + y * y)],
    ], dtype=np.float64)


def mat4_compose(position: Vec3, quaternion: Quat, scale: Vec3) -> Mat4:
    """Compose TRS matrix from position, quaternion rotation, and scale."""
    m = np.eye(4, dtype=np.float64)
    m[:3, :3] = mat3_from_quaternion(quaternion) * np.asarray(scale, dtype=np.float64)
    m[:3, 3] = position
    return m


def mat4_inverse(m: Mat4) -> Mat4:
    return np.linalg.inv(m)


def mat3_normal(m: Mat4) -> Mat3:
    """Extract normal matrix (inverse transpose of upper-left 3x3)."""
    return np.linalg.inv(m[:3, :3]).T


def mat3_to_quat(r: Mat3) -> Quat:
    """Convert a 3x3 rotation matrix to a quaternion [x, y, z, w].

    Shepperd's method: branch on the largest of trace and diagonal terms.
    """
    trace = r[0, 0] + r[1, 1] + r[2, 2]
    if trace > 0:
        s = 0.5 / np.sqrt(trace + 1.0)
        q = np.array([
            (r[2, 1] - r[1, 2]) * s,
            (r[0, 2] - r[2, 0]) * s,
            (r[1, 0] - r[0, 1]) * s,
            0.25 / s,
        ])
    elif r[0, 0] > r[1, 1] and r[0, 0] > r[2, 2]:
        s = 2.0 * np.sqrt(1.0 + r[0, 0] - r[1, 1] - r[2, 2])
        q = np.array([
            0.25 * s,
            (r[0, 1] + r[1, 0]) / s,
            (r[0, 2] + r[2, 0]) / s,
            (r[2, 1] - r[1, 2]) / s,
        ])
    elif r[1, 1] > r[2, 2]:
        s = 2.0 * np.sqrt(1.0 + r[1, 1] - r[0, 0] - r[2, 2])
        q = np.array([
            (r[0, 1] + r[1, 0]) / s,
            0.25 * s,
            (r[1, 2] + r[2, 1]) / s,
            (r[0, 2] - r[2, 0]) / s,
        ])
    else:
        s = 2.0 * np.sqrt(1.0 + r[2, 2] - r[0, 0] - r[1, 1])
        q = np.array([
            (r[0, 2] + r[2, 0]) / s,
            (r[1, 2] + r[2, 1]) / s,
            0.25 * s,
            (r[1, 0] - r[0, 1]) / s,
        ])
    return quat_normalize(q.astype(np.float64))


def quat_from_basis(tangent: Vec3, bitangent: Vec3, normal: Vec3) -> Quat:
    """Rotation taking the X/Y/Z axes onto tangent/bitangent/normal."""
    return mat3_to_quat(np.column_stack([tangent, bitangent, normal]))


# Quaternion operations

def quat_identity() -> Quat:
    return np.array([0.0, 0.0, 0.0, 1.0], dtype=np.float64)


def quat_from_axis_angle(axis: Vec3, angle: float) -> Quat:
    """Create quaternion from axis-angle."""
    half = angle / 2
    s = np.sin(half)
    a = normalize(as_vec3(axis))
    return np.array([a[0] * s, a[1] * s, a[2] * s, np.cos(half)], dtype=np.float64)


def quat_multiply(a: Quat, b: Quat) -> Quat:
    """Multiply two quaternions (a * b): apply b first, then a."""
    ax, ay, az, aw = a
    bx, by, bz, bw = b
    return np.array([
        aw * bx + ax * bw + ay * bz - az * by,
        aw * by - ax * bz + ay * bw + az * bx,
        aw * bz + ax * by - ay * bx + az * bw,
        aw * bw - ax * bx - ay * by - az * bz,
    ], dtype=np.float64)


def quat_conjugate(q: Quat) -> Quat:
    return np.array([-q[0], -q[1], -q[2], q[3]], dtype=np.float64)


def quat_normalize(q: Quat) -> Quat:
    n = np.linalg.norm(q)
    if n < 1e-10:
        return quat_identity()
    return q / n


def quat_slerp(a: Quat, b: Quat, t: float) -> Quat:
    """Spherical linear interpolation between two quaternions."""
    dot = np.dot(a, b)
    if dot < 0:
        b = -b
        dot = -dot
    if dot > 0.9995:
        result = a + t * (b - a)
        return quat_normalize(result)
    theta = np.arccos(np.clip(dot, -1.0, 1.0))
    sin_theta = np.sin(theta)
    if sin_theta < 1e-10:
        return a.copy()
    wa = np.sin((1 - t) * theta) / sin_theta
    wb = np.sin(t * theta) / sin_theta
    return quat_normalize(wa * a + wb * b)


def quat_rotate_vec3(q: Quat, v: Vec3) -> Vec3:
    """Rotate a vector by a quaternion."""
    qv = q[:3]
    w = q[3]
    t = 2.0 * np.cross(qv, v)
    return v + w * t + np.cross(qv, t)


def quat_same_hemisphere(q: Quat, reference: Quat) -> Quat:
    """Return ``q`` or ``-q``, whichever lies on the side of ``reference``."""
    if np.dot(q, reference) < 0:
        return -q
    return q


def quat_angle(a: Quat, b: Quat) -> float:
    """Angle in radians of the rotation taking ``a`` to ``b``."""
    d = abs(float(np.dot(quat_normalize(a), quat_normalize(b))))
    return 2.0 * float(np.arccos(min(1.0, d)))


# Vector operations

def normalize(v: Vec3) -> Vec3:
    n = np.linalg.norm(v)
    if n < 1e-10:
        return np.zeros_like(v)
    return v / n


def project_onto_plane(v: Vec3, normal: Vec3) -> Vec3:
    """Remove the component of ``v`` along the unit ``normal``."""
    return v - np.dot(v, normal) * normal


def clamp(value: float, lo: float, hi: float) -> float:
    return max(lo, min(hi, value))


def transform_point(m: Mat4, p: Vec3) -> Vec3:
    """Transform a point by a 4x4 matrix."""
    v = np.array([p[0], p[1], p[2], 1.0], dtype=np.float64)
    r = m @ v
    return r[:3]


def transform_direction(m: Mat4, d: Vec3) -> Vec3:
    """Transform a direction by a 4x4 matrix (ignores translation)."""
    return (m[:3, :3] @ d)


def transform_normal(m: Mat4, n: Vec3) -> Vec3:
    """Transform a surface normal, staying perpendicular under non-uniform scale."""
    return normalize(mat3_normal(m) @ n)
