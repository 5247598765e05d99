"""SO(3) rotation helpers in JAX.

Rotation matrices here come in two flavours. ``from_quaternion`` returns the
usual active rotation (body orientation expressed in the parent frame), while
``rx``, ``ry`` and ``rz`` return *coordinate* rotations: the matrix that takes
parent coordinates to the coordinates of a frame rotated by ``angle`` about
the given axis. The two are transposes of each other.
"""

import jax
import jax.numpy as jnp

Array = jax.Array


def rx(angle: Array) -> Array:
    """Coordinate rotation for a frame rotated by ``angle`` about x."""
    c, s = jnp.cos(angle), jnp.sin(angle)
    zero, one = jnp.zeros_like(c), jnp.ones_like(c)
    return jnp.stack([
        jnp.stack([one, zero, zero], axis=-1),
        jnp.stack([zero, c, s], axis=-1),
        jnp.stack([zero, -s, c], axis=-1)
    ], axis=-2)


def ry(angle: Array) -> Array:
    """Coordinate rotation for a frame rotated by ``angle`` about y."""
    c, s = jnp.cos(angle), jnp.sin(angle)
    zero, one = jnp.zeros_like(c), jnp.ones_like(c)
    return jnp.stack([
        jnp.stack([c, zero, -s], axis=-1),
        jnp.stack([zero, one, zero], axis=-1),
        jnp.stack([s, zero, c], axis=-1)
    ], axis=-2)


def rz(angle: Array) -> Array:
    """Coordinate rotation for a frame rotated by ``angle`` about z."""
    c, s = jnp.cos(angle), jnp.sin(angle)
    zero, one = jnp.zeros_like(c), jnp.ones_like(c)
    return jnp.stack([
        jnp.stack([c, s, zero], axis=-1),
        jnp.stack([-s, c, zero], axis=-1),
        jnp.stack([zero, zero, one], axis=-1)
    ], axis=-2)


def inverse(R: Array) -> Array:
    """
    Compute inverse of rotation matrix.

    For rotation matrices, the inverse is simply the transpose.

    Args:
        R: (..., 3, 3) rotation matrix

    Returns:
        (..., 3, 3) inverse rotation matrix
    """
    return jnp.swapaxes(R, -1, -2)


def apply(R: Array, v: Array) -> Array:
    """Multiply ``R`` into a 3-vector or into each row of an (N, 3) stack.

    ``Xform.rotate`` and ``Xform.transform_point`` go through here, so both
    accept a single vector or a stack of contact points alike.
    """
    if v.ndim == R.ndim - 1:
        return jnp.einsum('...ij,...j->...i', R, v)
    return jnp.einsum('...ij,...nj->...ni', R, v)


def skew_symmetric(v: Array) -> Array:
    """
    Convert 3D vector to skew-symmetric (cross product) matrix.

    Args:
        v: (..., 3) vector

    Returns:
        (..., 3, 3) matrix ``K`` with ``K @ u == cross(v, u)``
    """
    zeros = jnp.zeros(v.shape[:-1], dtype=v.dtype)

    return jnp.stack([
        jnp.stack([zeros, -v[..., 2], v[..., 1]], axis=-1),
        jnp.stack([v[..., 2], zeros, -v[..., 0]], axis=-1),
        jnp.stack([-v[..., 1], v[..., 0], zeros], axis=-1)
    ], axis=-2)


def from_quaternion(quaternions: Array) -> Array:
    """
    Convert quaternions to rotation matrices.

    Args:
        quaternions: (..., 4) array of quaternions in (w, x, y, z) format

    Returns:
        (..., 3, 3) array of rotation matrices
    """
    # Normalize quaternions for numerical stability
    quaternions = quaternions / jnp.linalg.norm(quaternions, axis=-1, keepdims=True)

    w, x, y, z = jnp.moveaxis(quaternions, -1, 0)

    xx, yy, zz = x*x, y*y, z*z
    wx, wy, wz = w*x, w*y, w*z
    xy, xz, yz = x*y, x*z, y*z

    return jnp.stack([
        jnp.stack([1 - 2*(yy + zz), 2*(xy - wz), 2*(xz + wy)], axis=-1),
        jnp.stack([2*(xy + wz), 1 - 2*(xx + zz), 2*(yz - wx)], axis=-1),
        jnp.stack([2*(xz - wy), 2*(yz + wx), 1 - 2*(xx + yy)], axis=-1)
    ], axis=-2)


def to_quaternion(matrix: Array) -> Array:
    """
    Convert rotation matrices to quaternions (w, x, y, z).
    Batch-safe and JIT-friendly implementation.

    Args:
        matrix: (..., 3, 3) array of rotation matrices

    Returns:
        (..., 4) array of unit quaternions with non-negative scalar part
    """
    m00 = matrix[..., 0, 0]
    m01 = matrix[..., 0, 1]
    m02 = matrix[..., 0, 2]
    m10 = matrix[..., 1, 0]
    m11 = matrix[..., 1, 1]
    m12 = matrix[..., 1, 2]
    m20 = matrix[..., 2, 0]
    m21 = matrix[..., 2, 1]
    m22 = matrix[..., 2, 2]

    trace = m00 + m11 + m22

    eps = jnp.finfo(matrix.dtype).eps

    # One candidate per largest diagonal term; the best conditioned one wins
    q0 = jnp.stack([trace + 1.0, m21 - m12, m02 - m20, m10 - m01], axis=-1) * 0.5
    q1 = jnp.stack([m21 - m12, m00 - m11 - m22 + 1.0, m01 + m10, m02 + m20], axis=-1) * 0.5
    q2 = jnp.stack([m02 - m20, m01 + m10, m11 - m00 - m22 + 1.0, m12 + m21], axis=-1) * 0.5
    q3 = jnp.stack([m10 - m01, m02 + m20, m12 + m21, m22 - m00 - m11 + 1.0], axis=-1) * 0.5

    s0 = 1.0 / jnp.sqrt(jnp.maximum(1.0 + trace, eps))
    s1 = 1.0 / jnp.sqrt(jnp.maximum(1.0 + m00 - m11 - m22, eps))
    s2 = 1.0 / jnp.sqrt(jnp.maximum(1.0 + m11 - m00 - m22, eps))
    s3 = 1.0 / jnp.sqrt(jnp.maximum(1.0 + m22 - m00 - m11, eps))

    q0 = q0 * s0[..., None]
    q1 = q1 * s1[..., None]
    q2 = q2 * s2[..., None]
    q3 = q3 * s3[..., None]

    mask0 = (trace > 0)
    mask1 = (~mask0) & (m00 > m11) & (m00 > m22)
    mask2 = (~mask0) & (~mask1) & (m11 > m22)
    mask3 = (~mask0) & (~mask1) & (~mask2)

    quaternion = (
        jnp.where(mask0[..., None], q0, 0) +
        jnp.where(mask1[..., None], q1, 0) +
        jnp.where(mask2[..., None], q2, 0) +
        jnp.where(mask3[..., None], q3, 0)
    )

    # Ensure non-negative scalar part and normalize
    quaternion = jnp.where(quaternion[..., 0:1] < 0, -quaternion, quaternion)
    return quaternion / jnp.linalg.norm(quaternion, axis=-1, keepdims=True)
