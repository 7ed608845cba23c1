"""Rotations and rigid-body transforms with their Lie-algebra maps.

Quaternions are given and returned as ``(w, x, y, z)`` with the real part
first. Tangent vectors of SE(3) are ordered translation first, then
rotation: ``xi = (rho, phi)``.
"""

from __future__ import annotations

import argparse
import math

import numpy as np

_SMALL_ANGLE = 1e-5
_ORTHOGONALITY_TOLERANCE = 1e-6


def _vector(value, size, name):
    array = np.asarray(value, dtype=float)
    if array.shape != (size,):
        raise ValueError(f"{name} must have shape ({size},), got {array.shape}")
    return array


def _square(value, size, name):
    array = np.asarray(value, dtype=float)
    if array.shape != (size, size):
        raise ValueError(f"{name} must have shape ({size}, {size}), got {array.shape}")
    return array


def _frozen(array):
    array = np.array(array, dtype=float)
    array.setflags(write=False)
    return array


def hat(omega):
    """Return the skew-symmetric matrix of a 3-vector."""
    x, y, z = _vector(omega, 3, "omega")
    return np.array([[0.0, -z, y], [z, 0.0, -x], [-y, x, 0.0]])


def vee(matrix):
    """Return the 3-vector of a skew-symmetric matrix."""
    m = _square(matrix, 3, "matrix")
    return np.array([m[2, 1], m[0, 2], m[1, 0]])


def angle_axis_to_matrix(angle, axis):
    """Rotation matrix for a rotation of ``angle`` radians about ``axis``."""
    axis = _vector(axis, 3, "axis")
    norm = np.linalg.norm(axis)
    if norm == 0.0:
        raise ValueError("rotation axis must be non-zero")
    a = axis / norm
    c, s = math.cos(angle), math.sin(angle)
    return c * np.eye(3) + (1.0 - c) * np.outer(a, a) + s * hat(a)


def _normalized_quaternion(q):
    q = _vector(q, 4, "quaternion")
    norm = np.linalg.norm(q)
    if norm == 0.0:
        raise ValueError("quaternion must be non-zero")
    return q / norm


def quaternion_to_matrix(q):
    """Rotation matrix of a quaternion ``(w, x, y, z)``; it is normalized first."""
    w, x, y, z = _normalized_quaternion(q)
    return np.array(
        [
            [1 - 2 * (y * y + z * z), 2 * (x * y - w * z), 2 * (x * z + w * y)],
            [2 * (x * y + w * z), 1 - 2 * (x * x + z * z), 2 * (y * z - w * x)],
            [2 * (x * z - w * y), 2 * (y * z + w * x), 1 - 2 * (x * x + y * y)],
        ]
    )


def matrix_to_quaternion(matrix):
    """Unit quaternion ``(w, x, y, z)`` of a rotation matrix."""
    m = _square(matrix, 3, "matrix")
    diagonal_sum = m[0, 0] + m[1, 1] + m[2, 2]
    if diagonal_sum > 0.0:
        s = math.sqrt(diagonal_sum + 1.0)
        w = 0.5 * s
        s = 0.5 / s
        q = np.array(
            [w, (m[2, 1] - m[1, 2]) * s, (m[0, 2] - m[2, 0]) * s, (m[1, 0] - m[0, 1]) * s]
        )
    else:
        i = 0
        if m[1, 1] > m[0, 0]:
            i = 1
        if m[2, 2] > m[i, i]:
            i = 2
        j = (i + 1) % 3
        k = (j + 1) % 3
        s = math.sqrt(m[i, i] - m[j, j] - m[k, k] + 1.0)
        vec = np.zeros(3)
        vec[i] = 0.5 * s
        s = 0.5 / s
        w = (m[k, j] - m[j, k]) * s
        vec[j] = (m[j, i] + m[i, j]) * s
        vec[k] = (m[k, i] + m[i, k]) * s
        q = np.concatenate(([w], vec))
    return q / np.linalg.norm(q)


def euler_angles_zyx(matrix):
    """Yaw, pitch and roll of a rotation matrix, in the order z, y, x.

    The yaw lies in ``[0, pi]`` and the other two in ``[-pi, pi]``, so that
    ``Rz(yaw) @ Ry(pitch) @ Rx(roll)`` reproduces the matrix.
    """
    m = _square(matrix, 3, "matrix")
    i, j, k = 2, 1, 0
    yaw = math.atan2(m[j, k], m[k, k])
    c2 = math.hypot(m[i, i], m[i, j])
    if yaw < 0.0:
        yaw += math.pi
        pitch = math.atan2(-m[i, k], -c2)
    else:
        pitch = math.atan2(-m[i, k], c2)
    s1, c1 = math.sin(yaw), math.cos(yaw)
    roll = math.atan2(s1 * m[k, i] - c1 * m[j, i], c1 * m[j, j] - s1 * m[k, j])
    return np.array([yaw, pitch, roll])


def _transform_points(rotation, translation, points):
    p = np.asarray(points, dtype=float)
    if p.ndim == 0 or p.shape[-1] != 3:
        raise ValueError(f"points must have a last dimension of 3, got {p.shape}")
    return p @ rotation.T + translation


class SO3:
    """A rotation in three dimensions."""

    __slots__ = ("_matrix",)

    def __init__(self, matrix=None):
        if matrix is None:
            m = np.eye(3)
        else:
            m = _square(matrix, 3, "matrix")
            if not np.allclose(m @ m.T, np.eye(3), atol=_ORTHOGONALITY_TOLERANCE):
                raise ValueError("matrix is not orthogonal")
            if np.linalg.det(m) <= 0.0:
                raise ValueError("matrix is not a proper rotation")
        self._matrix = _frozen(m)

    @classmethod
    def _wrap(cls, matrix):
        obj = cls.__new__(cls)
        obj._matrix = _frozen(matrix)
        return obj

    @property
    def matrix(self):
        """The 3x3 rotation matrix."""
        return self._matrix

    @classmethod
    def exp(cls, omega):
        """Rotation of the rotation vector ``omega``."""
        omega = _vector(omega, 3, "omega")
        theta = np.linalg.norm(omega)
        omega_hat = hat(omega)
        if theta < _SMALL_ANGLE:
            m = np.eye(3) + omega_hat + 0.5 * omega_hat @ omega_hat
            u, _, vt = np.linalg.svd(m)
            return cls._wrap(u @ vt)
        return cls._wrap(angle_axis_to_matrix(theta, omega / theta))

    @classmethod
    def from_quaternion(cls, q):
        """Rotation of a quaternion ``(w, x, y, z)``."""
        return cls._wrap(quaternion_to_matrix(q))

    def log(self):
        """Rotation vector of this rotation, with angle in ``[0, pi]``."""
        w, *vec = self.unit_quaternion()
        vec = np.array(vec)
        n = np.linalg.norm(vec)
        if n < 1e-10:
            two_atan = 2.0 / w - (2.0 / 3.0) * n * n / (w ** 3)
        elif abs(w) < 1e-10:
            two_atan = (math.pi if w > 0 else -math.pi) / n
        else:
            two_atan = 2.0 * math.atan(n / w) / n
        return two_atan * vec

    def inverse(self):
        """The inverse rotation."""
        return SO3._wrap(self._matrix.T)

    def unit_quaternion(self):
        """Unit quaternion ``(w, x, y, z)`` of this rotation."""
        return matrix_to_quaternion(self._matrix)

    def __mul__(self, other):
        if isinstance(other, SO3):
            return SO3._wrap(self._matrix @ other._matrix)
        return _transform_points(self._matrix, np.zeros(3), other)

    def __repr__(self):
        return f"SO3(log={self.log().tolist()})"


def _left_jacobian(phi):
    theta = np.linalg.norm(phi)
    phi_hat = hat(phi)
    if theta < _SMALL_ANGLE:
        return np.eye(3) + 0.5 * phi_hat + phi_hat @ phi_hat / 6.0
    return (
        np.eye(3)
        + (1.0 - math.cos(theta)) / theta ** 2 * phi_hat
        + (theta - math.sin(theta)) / theta ** 3 * phi_hat @ phi_hat
    )


def _left_jacobian_inverse(phi):
    theta = np.linalg.norm(phi)
    phi_hat = hat(phi)
    if theta < _SMALL_ANGLE:
        return np.eye(3) - 0.5 * phi_hat + phi_hat @ phi_hat / 12.0
    coefficient = (
        1.0 - theta * math.sin(theta) / (2.0 * (1.0 - math.cos(theta)))
    ) / theta ** 2
    return np.eye(3) - 0.5 * phi_hat + coefficient * phi_hat @ phi_hat


class SE3:
    """A rigid-body transform: a rotation followed by a translation."""

    __slots__ = ("_rotation", "_translation")

    def __init__(self, rotation=None, translation=None):
        if rotation is None:
            rotation = SO3()
        elif not isinstance(rotation, SO3):
            rotation = SO3(rotation)
        self._rotation = rotation
        t = np.zeros(3) if translation is None else _vector(translation, 3, "translation")
        self._translation = _frozen(t)

    @property
    def rotation(self):
        """The rotation part as an SO3."""
        return self._rotation

    @property
    def rotation_matrix(self):
        """The 3x3 rotation matrix."""
        return self._rotation.matrix

    @property
    def translation(self):
        """The translation vector."""
        return self._translation

    @classmethod
    def exp(cls, xi):
        """Transform of the tangent vector ``xi = (rho, phi)``."""
        xi = _vector(xi, 6, "xi")
        rho, phi = xi[:3], xi[3:]
        return cls(SO3.exp(phi), _left_jacobian(phi) @ rho)

    @classmethod
    def from_quaternion(cls, q, translation=None):
        """Transform of a quaternion ``(w, x, y, z)`` and a translation."""
        return cls(SO3.from_quaternion(q), translation)

    @classmethod
    def from_matrix(cls, matrix):
        """Transform of a 4x4 homogeneous matrix."""
        m = _square(matrix, 4, "matrix")
        if not np.allclose(m[3], [0.0, 0.0, 0.0, 1.0]):
            raise ValueError("last row of a rigid transform must be (0, 0, 0, 1)")
        return cls(m[:3, :3], m[:3, 3])

    @staticmethod
    def hat(xi):
        """4x4 matrix of the tangent vector ``xi = (rho, phi)``."""
        xi = _vector(xi, 6, "xi")
        m = np.zeros((4, 4))
        m[:3, :3] = hat(xi[3:])
        m[:3, 3] = xi[:3]
        return m

    @staticmethod
    def vee(matrix):
        """Tangent vector ``(rho, phi)`` of a 4x4 twist matrix."""
        m = _square(matrix, 4, "matrix")
        return np.concatenate((m[:3, 3], vee(m[:3, :3])))

    def log(self):
        """Tangent vector ``(rho, phi)`` of this transform."""
        phi = self._rotation.log()
        rho = _left_jacobian_inverse(phi) @ self._translation
        return np.concatenate((rho, phi))

    def matrix(self):
        """The 4x4 homogeneous matrix."""
        m = np.eye(4)
        m[:3, :3] = self._rotation.matrix
        m[:3, 3] = self._translation
        return m

    def matrix3x4(self):
        """The upper 3x4 block ``[R | t]``."""
        return self.matrix()[:3]

    def inverse(self):
        """The inverse transform."""
        r_inv = self._rotation.inverse()
        return SE3(r_inv, -(r_inv.matrix @ self._translation))

    def adjoint(self):
        """6x6 adjoint matrix acting on ``(rho, phi)`` tangent vectors."""
        r = self._rotation.matrix
        adj = np.zeros((6, 6))
        adj[:3, :3] = r
        adj[3:, 3:] = r
        adj[:3, 3:] = hat(self._translation) @ r
        return adj

    def unit_quaternion(self):
        """Unit quaternion ``(w, x, y, z)`` of the rotation part."""
        return self._rotation.unit_quaternion()

    def __mul__(self, other):
        if isinstance(other, SE3):
            return SE3(
                self._rotation * other._rotation,
                self._rotation.matrix @ other._translation + self._translation,
            )
        return _transform_points(self._rotation.matrix, self._translation, other)

    def __repr__(self):
        return (
            f"SE3(quaternion={self.unit_quaternion().tolist()}, "
            f"translation={self._translation.tolist()})"
        )


def _lie_demo():
    r = angle_axis_to_matrix(math.pi / 2, [0, 0, 1])
    q = matrix_to_quaternion(r)
    so3_r = SO3(r)
    so3_q = SO3.from_quaternion(q)
    print("SO(3) from matrix:\n", so3_r.matrix)
    print("SO(3) from quaternion:\n", so3_q.matrix)
    print("they are equal")
    so3 = so3_r.log()
    print("so3 =", so3)
    print("so3 hat=\n", hat(so3))
    print("so3 hat vee=", vee(hat(so3)))
    updated = SO3.exp([1e-4, 0, 0]) * so3_r
    print("SO3 updated =\n", updated.matrix)
    print("*******************************")
    t = np.array([1.0, 0.0, 0.0])
    se3_rt = SE3(r, t)
    se3_qt = SE3.from_quaternion(q, t)
    print("SE3 from R,t=\n", se3_rt.matrix())
    print("SE3 from q,t=\n", se3_qt.matrix())
    se3 = se3_rt.log()
    print("se3 =", se3)
    print("se3 hat =\n", SE3.hat(se3))
    print("se3 hat vee =", SE3.vee(SE3.hat(se3)))
    update = np.zeros(6)
    update[0] = 1e-4
    print("SE3 updated =\n", (SE3.exp(update) * se3_rt).matrix())


def _geometry_demo():
    rotation = angle_axis_to_matrix(math.pi / 4, [0, 0, 1])
    print("rotation matrix =\n", rotation)
    v = np.array([1.0, 0.0, 0.0])
    print("(1,0,0) after rotation (by matrix) =", rotation @ v)
    print("yaw pitch roll =", euler_angles_zyx(rotation))
    transform = SE3(rotation, [1, 3, 4])
    print("Transform matrix =\n", transform.matrix())
    print("v tranformed =", transform * v)
    q = matrix_to_quaternion(rotation)
    print("quaternion (w, x, y, z) =", q)
    print("(1,0,0) after rotation =", SO3.from_quaternion(q) * v)


def _transform_demo():
    t1w = SE3.from_quaternion([0.35, 0.2, 0.3, 0.1], [0.3, 0.1, 0.1])
    t2w = SE3.from_quaternion([-0.5, 0.4, -0.1, 0.2], [-0.1, 0.5, 0.3])
    p1 = np.array([0.5, 0.0, 0.2])
    print((t2w * t1w.inverse()) * p1)


_DEMOS = {"lie": _lie_demo, "geometry": _geometry_demo, "transform": _transform_demo}


def main(argv=None):
    """Print worked examples of rotations, transforms and their Lie algebra."""
    parser = argparse.ArgumentParser(description=main.__doc__)
    parser.add_argument("section", nargs="?", choices=[*_DEMOS, "all"], default="all")
    args = parser.parse_args(argv)
    sections = _DEMOS.values() if args.section == "all" else [_DEMOS[args.section]]
    with np.printoptions(precision=6, suppress=True):
        for demo in sections:
            demo()
    return 0


if __name__ == "__main__":
    raise SystemExit(main())