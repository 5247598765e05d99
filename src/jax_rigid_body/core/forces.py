"""Per-joint force models.

Each model is bound to a single joint (by arena index) and only ever reads
and writes that joint, so the models commute and the injection pass may
apply them in any order. Controls arrive as an explicit ``ControlInput``
snapshot instead of ambient state.
"""

from typing import Union

import jax
import jax.numpy as jnp
from jax import Array
from flax import struct

from ..transforms.spatial import Force
from .joint import Joint

_UP = jnp.array([0.0, 0.0, 1.0])
_SPIN_AXIS = jnp.array([0.0, 1.0, 0.0])


def _scalar(x) -> Array:
    return jnp.asarray(x, dtype=jnp.result_type(float))


@struct.dataclass
class ControlInput:
    """Normalized driver controls consumed by the force models.

    Attributes:
        throttle: Drive demand in [0, 1].
        brake: Brake demand in [0, 1].
        steering: Steering demand in [-1, 1], positive turns left.
    """
    throttle: Array
    brake: Array
    steering: Array

    @classmethod
    def create(cls, throttle=0.0, brake=0.0, steering=0.0) -> "ControlInput":
        return cls(
            throttle=jnp.clip(_scalar(throttle), 0.0, 1.0),
            brake=jnp.clip(_scalar(brake), 0.0, 1.0),
            steering=jnp.clip(_scalar(steering), -1.0, 1.0),
        )


@struct.dataclass
class Suspension:
    """Linear spring-damper acting on a prismatic joint's own coordinate."""
    joint: int = struct.field(pytree_node=False)
    stiffness: Array
    damping: Array

    def apply(self, joint: Joint, control: ControlInput) -> Joint:
        return joint.replace(tau=joint.tau - (self.stiffness * joint.q + self.damping * joint.qd))


@struct.dataclass
class Steering:
    """Ideal position servo: the joint angle follows the steering demand.

    This writes ``q`` rather than a force, so it must run before the
    kinematics pass of each dynamics evaluation.
    """
    joint: int = struct.field(pytree_node=False)
    max_angle: Array

    def apply(self, joint: Joint, control: ControlInput) -> Joint:
        return joint.replace(q=control.steering * self.max_angle)


@struct.dataclass
class DrivenWheel:
    """Constant-torque motor.

    ``max_speed`` and ``max_power`` are carried from the model description
    but not enforced.
    """
    joint: int = struct.field(pytree_node=False)
    max_torque: Array
    max_speed: Array
    max_power: Array

    def apply(self, joint: Joint, control: ControlInput) -> Joint:
        return joint.replace(tau=joint.tau + control.throttle * self.max_torque)


@struct.dataclass
class BrakeWheel:
    """Brake torque opposing the current direction of rotation."""
    joint: int = struct.field(pytree_node=False)
    max_torque: Array

    def torque(self, qd: Array, control: ControlInput) -> Array:
        """Torque of magnitude ``brake * max_torque`` against ``sign(qd)``.

        A wheel at rest gets no braking torque. Subnormal speeds are flushed
        to zero on CPU and brake as rest.
        """
        return -control.brake * self.max_torque * jnp.sign(qd)

    def apply(self, joint: Joint, control: ControlInput) -> Joint:
        return joint.replace(tau=joint.tau + self.torque(joint.qd, control))


@struct.dataclass
class TireContact:
    """Point contact between a wheel and the ground plane z = 0.

    The wheel spins about its local y axis. The contact frame is built from
    that axis projected onto the ground (lateral), world up, and their cross
    product (forward). A spin axis normal to the ground makes the projection
    degenerate and the resulting force NaN; such a wheel is a modelling error.

    Vertical force is a spring-damper on the penetration depth. Longitudinal
    and lateral forces oppose the contact-point slip velocity, scale with the
    vertical load and are clipped to the vertical force magnitude.
    """
    joint: int = struct.field(pytree_node=False)
    radius: Array
    stiffness: Array
    damping: Array
    longitudinal_stiffness: Array
    lateral_stiffness: Array

    def contact_force(self, joint: Joint) -> Force:
        """Spatial contact force in world coordinates, zero when not touching."""
        x0 = joint.x.inverse()  # joint frame -> world

        lateral = x0.rotate(_SPIN_AXIS).at[2].set(0.0)
        lateral = lateral / jnp.linalg.norm(lateral)
        forward = jnp.cross(lateral, _UP)
        forward = forward / jnp.linalg.norm(forward)

        # Lowest point of the tire, found in the joint frame
        forward_local = joint.x.rotate(forward)
        tire_up_local = jnp.cross(forward_local, _SPIN_AXIS)
        tire_up_local = tire_up_local / jnp.linalg.norm(tire_up_local)
        contact_point = x0.transform_point(-self.radius * tire_up_local)
        height = contact_point[2]

        velocity = x0.apply_motion(joint.v).point_velocity(contact_point)

        vertical = -self.stiffness * height - self.damping * velocity[2]
        limit = jnp.abs(vertical)
        forward_force = jnp.clip(
            -jnp.dot(velocity, forward) * self.longitudinal_stiffness * vertical, -limit, limit)
        lateral_force = jnp.clip(
            -jnp.dot(velocity, lateral) * self.lateral_stiffness * vertical, -limit, limit)

        force = Force.at_point(
            forward_force * forward + lateral_force * lateral + vertical * _UP,
            contact_point,
        )
        # Strict inequality: a grazing tire carries no load
        in_contact = height < 0.0
        return jax.tree_util.tree_map(lambda f: jnp.where(in_contact, f, 0.0), force)

    def apply(self, joint: Joint, control: ControlInput) -> Joint:
        return joint.replace(f_ext=joint.f_ext + self.contact_force(joint))


ForceModel = Union[Suspension, Steering, DrivenWheel, BrakeWheel, TireContact]
