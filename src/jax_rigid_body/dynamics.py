"""Forward dynamics of a joint forest: the articulated-body algorithm.

A dynamics evaluation runs these passes over the whole forest, in order:

1. position servos (steering) overwrite their joints' ``q``;
2. kinematics, root to leaf: poses, velocities and bias accelerations;
3. force injection, a flat pass: every force model updates its own joint;
4. external forces, root to leaf: world-frame contact forces folded into
   each joint's bias force;
5. articulated inertia, leaf to root: each joint hands its parent its
   inertia and bias force with its own degree of freedom projected out;
6. acceleration, root to leaf: joint and spatial accelerations.

Siblings never interact except through their parent, so the order in which
children are visited does not change the result. Passes are not
incremental; perturbing the state means running all of them again.
"""

from typing import Callable, List, Optional, Tuple

import jax.numpy as jnp
from jax import Array

from .core.forces import ControlInput, Steering
from .core.joint import Joint, JointKind, joint_transform
from .core.model import MechanismModel

OutwardUpdate = Callable[[Joint, Joint], Joint]
InwardUpdate = Callable[[Joint, Joint], Tuple[Joint, Joint]]


def traverse(
    model: MechanismModel,
    joints: List[Joint],
    outward: Optional[OutwardUpdate] = None,
    inward: Optional[InwardUpdate] = None,
) -> List[Joint]:
    """Depth-first walk of every tree in the forest, starting below each base.

    ``outward(joint, parent)`` runs on the way down, so a parent is always
    updated before its children. ``inward(joint, parent)`` runs on the way
    back up, after all of a joint's children, and may update the parent.
    ``joints`` is updated in place and returned.
    """
    def visit(parent: int, index: int) -> None:
        if outward is not None:
            joints[index] = outward(joints[index], joints[parent])
        for child in model.children[index]:
            visit(index, child)
        if inward is not None:
            joints[index], joints[parent] = inward(joints[index], joints[parent])

    for root in model.roots:
        for child in model.children[root]:
            visit(root, child)
    return joints


def _kinematics_update(joint: Joint, parent: Joint) -> Joint:
    xj = joint_transform(joint.kind, joint.q)
    xl = xj.compose(joint.xt)
    x = xl.compose(parent.x)
    vj = joint.s * joint.qd
    v = xl.apply_motion(parent.v) + vj
    c = v.cross_motion(vj)
    # Bias force starts from this body alone; children and contacts add to it
    ia = joint.inertia.to_articulated()
    pa = v.cross_force(ia * v)
    return joint.replace(xj=xj, xl=xl, x=x, vj=vj, v=v, c=c, ia=ia, pa=pa)


def _external_force_update(joint: Joint, parent: Joint) -> Joint:
    return joint.replace(pa=joint.pa - joint.x.apply_force(joint.f_ext))


def _articulated_inertia_update(joint: Joint, parent: Joint) -> Tuple[Joint, Joint]:
    ia_s = joint.ia * joint.s
    d = joint.s.dot(ia_s)
    u = joint.tau - joint.s.dot(joint.pa)

    # What the parent sees through this joint's free axis
    ia = joint.ia - ia_s.outer().scale(1.0 / d)
    pa = joint.pa + ia * joint.c + ia_s * (u / d)

    joint = joint.replace(ia_s=ia_s, d=d, u=u)
    if parent.kind == JointKind.BASE:
        # A base is a fixed anchor; nothing reads its inertia
        return joint, parent

    to_parent = joint.xl.inverse()
    parent = parent.replace(
        ia=parent.ia + to_parent.apply_inertia(ia),
        pa=parent.pa + to_parent.apply_force(pa),
    )
    return joint, parent


def _acceleration_update(joint: Joint, parent: Joint) -> Joint:
    a = joint.xl.apply_motion(parent.a) + joint.c
    qdd = (joint.u - a.dot(joint.ia_s)) / joint.d
    return joint.replace(qdd=qdd, a=a + joint.s * qdd)


def apply_position_servos(model: MechanismModel, joints: List[Joint], control: ControlInput) -> List[Joint]:
    """Write commanded positions into servoed joints before kinematics runs."""
    for system in model.systems:
        if isinstance(system, Steering):
            joints[system.joint] = system.apply(joints[system.joint], control)
    return joints


def inject_forces(model: MechanismModel, joints: List[Joint], control: ControlInput) -> List[Joint]:
    """Let every force model update its joint's accumulators."""
    for system in model.systems:
        if not isinstance(system, Steering):
            joints[system.joint] = system.apply(joints[system.joint], control)
    return joints


def kinematics(model: MechanismModel, control: ControlInput) -> MechanismModel:
    """Refresh poses and velocities from the current ``q`` and ``qd``."""
    joints = apply_position_servos(model, list(model.joints), control)
    joints = traverse(model, joints, outward=_kinematics_update)
    return model.with_joints(joints)


def forward_dynamics(model: MechanismModel, control: ControlInput) -> MechanismModel:
    """Run all dynamics passes on the model's current state.

    Force accumulators are expected to be zero on entry (see
    ``Joint.reset_accumulators``).

    Args:
        model: MechanismModel holding the current ``q`` and ``qd``.
        control: Control snapshot for the force models.

    Returns:
        The model with every derived quantity and ``qdd`` filled in.
    """
    joints = apply_position_servos(model, list(model.joints), control)
    joints = traverse(model, joints, outward=_kinematics_update)
    joints = inject_forces(model, joints, control)
    joints = traverse(model, joints, outward=_external_force_update)
    joints = traverse(model, joints, inward=_articulated_inertia_update)
    joints = traverse(model, joints, outward=_acceleration_update)
    return model.with_joints(joints)


def joint_accelerations(model: MechanismModel, control: ControlInput) -> Array:
    """Generalized accelerations of all joints, in declaration order."""
    joints = [joint.reset_accumulators() for joint in model.joints]
    solved = forward_dynamics(model.with_joints(joints), control)
    return jnp.stack([joint.qdd for joint in solved.joints])
