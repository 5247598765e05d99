"""Spatial (6D) vector algebra in JAX.

Motion and force vectors are Plücker pairs of 3-vectors. An ``Xform`` is the
coordinate transform from a frame A to a frame B: ``position`` is the origin
of B expressed in A, ``rotation`` takes A coordinates to B coordinates.
Composition follows the usual matrix product reading, so ``a.compose(b)``
applies ``b`` first.

Every type is an immutable PyTree, so all of it works under ``jit``,
``vmap`` and ``grad``.
"""

import jax
import jax.numpy as jnp
from flax import struct

from . import so3

Array = jax.Array


def _vector(x) -> Array:
    return jnp.asarray(x, dtype=jnp.result_type(float)).reshape(3)


@struct.dataclass
class Motion:
    """Spatial motion vector (linear part ``v``, angular part ``w``)."""
    v: Array
    w: Array

    @classmethod
    def create(cls, v=(0.0, 0.0, 0.0), w=(0.0, 0.0, 0.0)) -> "Motion":
        return cls(_vector(v), _vector(w))

    @classmethod
    def zero(cls) -> "Motion":
        return cls.create()

    def __add__(self, other: "Motion") -> "Motion":
        return Motion(self.v + other.v, self.w + other.w)

    def __sub__(self, other: "Motion") -> "Motion":
        return Motion(self.v - other.v, self.w - other.w)

    def __neg__(self) -> "Motion":
        return Motion(-self.v, -self.w)

    def __mul__(self, scalar) -> "Motion":
        return Motion(self.v * scalar, self.w * scalar)

    __rmul__ = __mul__

    def cross_motion(self, other: "Motion") -> "Motion":
        """Spatial cross product ``self ×ₘ other`` (velocity-product terms)."""
        return Motion(
            v=jnp.cross(self.w, other.v) + jnp.cross(self.v, other.w),
            w=jnp.cross(self.w, other.w),
        )

    def cross_force(self, force: "Force") -> "Force":
        """Spatial cross product ``self ×f force``.

        This operator is the negative transpose of ``cross_motion`` for the
        same motion vector.
        """
        return Force(
            f=jnp.cross(self.w, force.f),
            m=jnp.cross(self.w, force.m) + jnp.cross(self.v, force.f),
        )

    def dot(self, force: "Force") -> Array:
        """Scalar product of a motion and a force (power)."""
        return jnp.dot(self.v, force.f) + jnp.dot(self.w, force.m)

    def point_velocity(self, point: Array) -> Array:
        """Linear velocity of ``point`` (same frame) moving with this motion."""
        return jnp.cross(self.w, point) + self.v


@struct.dataclass
class Force:
    """Spatial force vector (linear force ``f``, moment ``m``)."""
    f: Array
    m: Array

    @classmethod
    def create(cls, f=(0.0, 0.0, 0.0), m=(0.0, 0.0, 0.0)) -> "Force":
        return cls(_vector(f), _vector(m))

    @classmethod
    def zero(cls) -> "Force":
        return cls.create()

    @classmethod
    def at_point(cls, force: Array, point: Array) -> "Force":
        """Spatial force of a pure ``force`` acting through ``point``."""
        return cls(f=force, m=jnp.cross(point, force))

    def __add__(self, other: "Force") -> "Force":
        return Force(self.f + other.f, self.m + other.m)

    def __sub__(self, other: "Force") -> "Force":
        return Force(self.f - other.f, self.m - other.m)

    def __neg__(self) -> "Force":
        return Force(-self.f, -self.m)

    def __mul__(self, scalar) -> "Force":
        return Force(self.f * scalar, self.m * scalar)

    __rmul__ = __mul__

    def outer(self) -> "InertiaAB":
        """Rank-one operator ``self selfᵀ`` in articulated-inertia layout."""
        return InertiaAB(
            mass=jnp.outer(self.f, self.f),
            coupling=jnp.outer(self.m, self.f),
            moment=jnp.outer(self.m, self.m),
        )


@struct.dataclass
class InertiaAB:
    """Articulated-body inertia, a symmetric 6x6 operator stored as blocks.

    As a matrix acting on ``(w, v)`` it reads ``[[moment, coupling],
    [couplingᵀ, mass]]``. Unlike ``Inertia`` it is not reducible to ten
    parameters once a joint's freedom has been projected out of it.
    """
    mass: Array
    coupling: Array
    moment: Array

    @classmethod
    def zero(cls) -> "InertiaAB":
        return cls(jnp.zeros((3, 3)), jnp.zeros((3, 3)), jnp.zeros((3, 3)))

    def __add__(self, other: "InertiaAB") -> "InertiaAB":
        return InertiaAB(self.mass + other.mass,
                         self.coupling + other.coupling,
                         self.moment + other.moment)

    def __sub__(self, other: "InertiaAB") -> "InertiaAB":
        return InertiaAB(self.mass - other.mass,
                         self.coupling - other.coupling,
                         self.moment - other.moment)

    def scale(self, scalar) -> "InertiaAB":
        return InertiaAB(self.mass * scalar, self.coupling * scalar, self.moment * scalar)

    def __mul__(self, motion: Motion) -> Force:
        return Force(
            f=self.mass @ motion.v + self.coupling.T @ motion.w,
            m=self.moment @ motion.w + self.coupling @ motion.v,
        )

    def to_matrix(self) -> Array:
        """Dense 6x6 matrix in (angular, linear) ordering."""
        top = jnp.concatenate([self.moment, self.coupling], axis=-1)
        bottom = jnp.concatenate([self.coupling.T, self.mass], axis=-1)
        return jnp.concatenate([top, bottom], axis=-2)


@struct.dataclass
class Inertia:
    """Rigid-body inertia: mass, centre of mass, rotational inertia about the COM."""
    mass: Array
    com: Array
    moi: Array

    @classmethod
    def zero(cls) -> "Inertia":
        return cls(jnp.zeros(()), jnp.zeros(3), jnp.zeros((3, 3)))

    @classmethod
    def from_components(cls, mass, com, components) -> "Inertia":
        """Build from the six independent tensor entries ``[xx, yy, zz, yz, xz, xy]``."""
        xx, yy, zz, yz, xz, xy = (float(c) for c in components)
        moi = jnp.array([
            [xx, xy, xz],
            [xy, yy, yz],
            [xz, yz, zz],
        ])
        return cls(jnp.asarray(float(mass), dtype=jnp.result_type(float)), _vector(com), moi)

    def tensor_components(self) -> Array:
        """Inverse of ``from_components``: ``[xx, yy, zz, yz, xz, xy]``."""
        I = self.moi
        return jnp.stack([I[0, 0], I[1, 1], I[2, 2], I[1, 2], I[0, 2], I[0, 1]])

    def to_articulated(self) -> InertiaAB:
        """Express about the frame origin as a full 6x6 operator."""
        c_cross = so3.skew_symmetric(self.com)
        return InertiaAB(
            mass=self.mass * jnp.eye(3),
            coupling=self.mass * c_cross,
            moment=self.moi - self.mass * c_cross @ c_cross,
        )

    def __mul__(self, motion: Motion) -> Force:
        return self.to_articulated() * motion


@struct.dataclass
class Xform:
    """Plücker coordinate transform between two frames."""
    position: Array
    rotation: Array

    @classmethod
    def identity(cls) -> "Xform":
        return cls(jnp.zeros(3), jnp.eye(3))

    @classmethod
    def create(cls, position=(0.0, 0.0, 0.0), rotation=None) -> "Xform":
        rotation = jnp.eye(3) if rotation is None else jnp.asarray(rotation, dtype=jnp.result_type(float))
        return cls(_vector(position), rotation)

    @classmethod
    def from_position_and_quaternion(cls, position, quaternion) -> "Xform":
        """Frame located at ``position`` with orientation ``quaternion`` (w, x, y, z).

        The quaternion describes the child frame's orientation in the parent,
        so the stored coordinate rotation is its transpose.
        """
        R = so3.from_quaternion(jnp.asarray(quaternion, dtype=jnp.result_type(float)))
        return cls(_vector(position), so3.inverse(R))

    @classmethod
    def rotx(cls, angle) -> "Xform":
        return cls(jnp.zeros(3), so3.rx(angle))

    @classmethod
    def roty(cls, angle) -> "Xform":
        return cls(jnp.zeros(3), so3.ry(angle))

    @classmethod
    def rotz(cls, angle) -> "Xform":
        return cls(jnp.zeros(3), so3.rz(angle))

    @classmethod
    def posx(cls, x) -> "Xform":
        return cls(x * jnp.array([1.0, 0.0, 0.0]), jnp.eye(3))

    @classmethod
    def posy(cls, y) -> "Xform":
        return cls(y * jnp.array([0.0, 1.0, 0.0]), jnp.eye(3))

    @classmethod
    def posz(cls, z) -> "Xform":
        return cls(z * jnp.array([0.0, 0.0, 1.0]), jnp.eye(3))

    def compose(self, other: "Xform") -> "Xform":
        """``self ∘ other``: transform by ``other`` first, then by ``self``."""
        return Xform(
            position=other.position + other.rotation.T @ self.position,
            rotation=self.rotation @ other.rotation,
        )

    def inverse(self) -> "Xform":
        return Xform(
            position=-(self.rotation @ self.position),
            rotation=self.rotation.T,
        )

    def rotate(self, vector: Array) -> Array:
        """Re-express a free 3-vector (direction) in the target frame."""
        return so3.apply(self.rotation, vector)

    def transform_point(self, point: Array) -> Array:
        """Re-express a point (position), or an (N, 3) stack of them, in the target frame."""
        return so3.apply(self.rotation, point - self.position)

    def apply_motion(self, motion: Motion) -> Motion:
        return Motion(
            v=self.rotation @ (motion.v - jnp.cross(self.position, motion.w)),
            w=self.rotation @ motion.w,
        )

    def apply_force(self, force: Force) -> Force:
        """Force transform, the dual of ``apply_motion``.

        Power is invariant: ``X.apply_motion(m).dot(X.apply_force(f)) == m.dot(f)``.
        """
        return Force(
            f=self.rotation @ force.f,
            m=self.rotation @ (force.m - jnp.cross(self.position, force.f)),
        )

    def apply_inertia(self, inertia: InertiaAB) -> InertiaAB:
        """Congruence transform ``X* I X⁻¹`` carrying an inertia into the target frame.

        With ``X`` the motion transform from a child to its parent frame this
        is the shift ``Xᵀ I X`` used when composing articulated inertias.
        """
        E = self.rotation
        r_cross = so3.skew_symmetric(self.position)
        shifted = inertia.coupling - r_cross @ inertia.mass
        return InertiaAB(
            mass=E @ inertia.mass @ E.T,
            coupling=E @ shifted @ E.T,
            moment=E @ ((inertia.moment - r_cross @ inertia.coupling.T) + shifted @ r_cross) @ E.T,
        )

    def to_matrix(self) -> Array:
        """6x6 motion transform in (angular, linear) ordering."""
        E = self.rotation
        zeros = jnp.zeros((3, 3), dtype=E.dtype)
        top = jnp.concatenate([E, zeros], axis=-1)
        bottom = jnp.concatenate([-E @ so3.skew_symmetric(self.position), E], axis=-1)
        return jnp.concatenate([top, bottom], axis=-2)
