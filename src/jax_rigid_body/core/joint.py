"""Joint PyTree: the per-degree-of-freedom state unit of a mechanism.

A joint is both the connection between a body and its parent and the
container for everything the solver computes about that body. It is
immutable; the dynamics passes produce updated joints with ``replace``.
"""

from enum import Enum
from typing import Tuple

import jax.numpy as jnp
from jax import Array
from flax import struct

from ..transforms import so3
from ..transforms.spatial import Force, Inertia, InertiaAB, Motion, Xform
from .description import MeshDef


class JointKind(Enum):
    """Closed set of joint kinds. Values are the document tags."""
    BASE = "Base"
    RX = "Rx"
    RY = "Ry"
    RZ = "Rz"
    PX = "Px"
    PY = "Py"
    PZ = "Pz"

    @property
    def is_revolute(self) -> bool:
        return self in (JointKind.RX, JointKind.RY, JointKind.RZ)

    @property
    def is_prismatic(self) -> bool:
        return self in (JointKind.PX, JointKind.PY, JointKind.PZ)


_AXES = {
    JointKind.RX: 0, JointKind.PX: 0,
    JointKind.RY: 1, JointKind.PY: 1,
    JointKind.RZ: 2, JointKind.PZ: 2,
}


def motion_subspace(kind: JointKind) -> Motion:
    """Unit screw axis of a joint kind, zero for the base."""
    if kind == JointKind.BASE:
        return Motion.zero()
    axis = jnp.zeros(3).at[_AXES[kind]].set(1.0)
    if kind.is_revolute:
        return Motion(v=jnp.zeros(3), w=axis)
    return Motion(v=axis, w=jnp.zeros(3))


def joint_transform(kind: JointKind, q: Array) -> Xform:
    """Joint displacement transform for position ``q``."""
    if kind == JointKind.RX:
        return Xform.rotx(q)
    if kind == JointKind.RY:
        return Xform.roty(q)
    if kind == JointKind.RZ:
        return Xform.rotz(q)
    if kind == JointKind.PX:
        return Xform.posx(q)
    if kind == JointKind.PY:
        return Xform.posy(q)
    if kind == JointKind.PZ:
        return Xform.posz(q)
    return Xform.identity()


@struct.dataclass
class Pose:
    """Absolute pose of a joint frame in world coordinates.

    Attributes:
        position: (3,) origin of the joint frame.
        rotation: (3, 3) orientation, joint axes as columns.
        quaternion: (4,) the same orientation as (w, x, y, z).
    """
    position: Array
    rotation: Array
    quaternion: Array


@struct.dataclass
class Joint:
    """Immutable PyTree holding one joint's parameters, state and solver scratch.

    Attributes:
        name: Unique joint name (static).
        kind: Joint kind (static).
        visuals: Attached visual primitives, carried for output only (static).
        s: Motion subspace (unit screw axis).
        inertia: Rigid-body inertia of the body moved by this joint.
        xt: Fixed offset from the parent frame to the un-displaced joint frame.
        offset_quaternion: Orientation of ``xt`` as declared (w, x, y, z).
        q, qd, qdd: Generalized position, velocity and acceleration.
        xj: Joint displacement transform, a function of ``q``.
        xl: Transform from the parent frame to this frame (``xj ∘ xt``).
        x: Transform from world coordinates to this frame.
        v: Spatial velocity in this frame.
        vj: Joint velocity ``s * qd``.
        c: Velocity-product (bias) acceleration ``v ×ₘ vj``.
        a: Spatial acceleration in this frame. Prescribed for a base.
        ia: Articulated-body inertia.
        pa: Articulated bias force.
        tau: Accumulated generalized force from internal force models.
        f_ext: Accumulated external spatial force, in world coordinates.
        d: ``sᵀ ia s``, the inertia felt along the joint axis.
        u: ``tau - sᵀ pa``, the joint-space force residual.
        ia_s: ``ia s``.
    """
    name: str = struct.field(pytree_node=False)
    kind: JointKind = struct.field(pytree_node=False)
    visuals: Tuple[MeshDef, ...] = struct.field(pytree_node=False)

    s: Motion
    inertia: Inertia
    xt: Xform
    offset_quaternion: Array

    q: Array
    qd: Array
    qdd: Array

    xj: Xform
    xl: Xform
    x: Xform
    v: Motion
    vj: Motion
    c: Motion
    a: Motion

    ia: InertiaAB
    pa: Force
    tau: Array
    f_ext: Force
    d: Array
    u: Array
    ia_s: Force

    @classmethod
    def create(
        cls,
        name: str,
        kind: JointKind,
        inertia: Inertia = None,
        xt: Xform = None,
        *,
        offset_quaternion=None,
        q=0.0,
        qd=0.0,
        acceleration: Motion = None,
        visuals: Tuple[MeshDef, ...] = (),
    ) -> "Joint":
        """Build a joint at rest with zeroed solver fields."""
        inertia = Inertia.zero() if inertia is None else inertia
        xt = Xform.identity() if xt is None else xt
        if offset_quaternion is None:
            offset_quaternion = so3.to_quaternion(so3.inverse(xt.rotation))
        acceleration = Motion.zero() if acceleration is None else acceleration
        zero = jnp.zeros((), dtype=jnp.result_type(float))
        return cls(
            name=name,
            kind=kind,
            visuals=tuple(visuals),
            s=motion_subspace(kind),
            inertia=inertia,
            xt=xt,
            offset_quaternion=jnp.asarray(offset_quaternion, dtype=jnp.result_type(float)),
            q=jnp.asarray(q, dtype=jnp.result_type(float)),
            qd=jnp.asarray(qd, dtype=jnp.result_type(float)),
            qdd=zero,
            xj=Xform.identity(),
            xl=Xform.identity(),
            x=Xform.identity(),
            v=Motion.zero(),
            vj=Motion.zero(),
            c=Motion.zero(),
            a=acceleration,
            ia=InertiaAB.zero(),
            pa=Force.zero(),
            tau=zero,
            f_ext=Force.zero(),
            d=zero,
            u=zero,
            ia_s=Force.zero(),
        )

    @classmethod
    def base(cls, name: str, acceleration: Motion, **kwargs) -> "Joint":
        """Root anchor with a prescribed spatial acceleration (gravity)."""
        return cls.create(name, JointKind.BASE, acceleration=acceleration, **kwargs)

    def reset_accumulators(self) -> "Joint":
        """Zero what force models accumulate into, ahead of a force-injection pass."""
        zero = jnp.zeros_like(self.tau)
        return self.replace(tau=zero, f_ext=Force.zero(), qdd=jnp.zeros_like(self.qdd))

    def pose(self) -> Pose:
        """Absolute pose of this joint frame, valid after a kinematics pass."""
        rotation = so3.inverse(self.x.rotation)
        return Pose(
            position=self.x.position,
            rotation=rotation,
            quaternion=so3.to_quaternion(rotation),
        )
