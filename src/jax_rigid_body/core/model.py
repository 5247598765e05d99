"""MechanismModel PyTree and its construction from a model description.

The joint forest is an arena: joints live in a tuple in declaration order and
refer to each other by integer index. Topology (parents, children, roots) is
static metadata, so traversal order is fixed at trace time and every pass is
JIT-compilable.
"""

import logging
from typing import Dict, Mapping, Optional, Tuple

import jax.numpy as jnp
from flax import struct

from ..config import GRAVITY
from ..transforms.spatial import Inertia, Motion, Xform
from . import description as desc
from .forces import BrakeWheel, DrivenWheel, ForceModel, Steering, Suspension, TireContact
from .joint import Joint, JointKind, Pose

logger = logging.getLogger(__name__)


class ModelError(ValueError):
    """Invalid model description. Raised at build time, never during a step."""


@struct.dataclass
class MechanismModel:
    """Immutable PyTree representation of an articulated mechanism.

    Attributes:
        name: Model name from the description.
        joint_names: Joint names in declaration order. Index is the joint handle.
        parent_indices: Parent handle of every joint, -1 for a base.
        children: Child handles of every joint, in declaration order.
        roots: Handles of the base joints.
        joints: The joints themselves, in declaration order.
        systems: Force models attached to the joints.
    """
    name: str = struct.field(pytree_node=False)
    joint_names: Tuple[str, ...] = struct.field(pytree_node=False)
    parent_indices: Tuple[int, ...] = struct.field(pytree_node=False)
    children: Tuple[Tuple[int, ...], ...] = struct.field(pytree_node=False)
    roots: Tuple[int, ...] = struct.field(pytree_node=False)
    joints: Tuple[Joint, ...]
    systems: Tuple[ForceModel, ...]

    @property
    def num_joints(self) -> int:
        return len(self.joint_names)

    def index(self, name: str) -> int:
        try:
            return self.joint_names.index(name)
        except ValueError:
            raise ValueError(f"Joint '{name}' not found in model")

    def joint(self, name: str) -> Joint:
        return self.joints[self.index(name)]

    def with_joints(self, joints) -> "MechanismModel":
        return self.replace(joints=tuple(joints))

    def poses(self) -> Dict[str, Pose]:
        """Absolute pose of every joint frame, keyed by joint name."""
        return {joint.name: joint.pose() for joint in self.joints}


_SYSTEM_BUILDERS = {
    desc.SuspensionDef: lambda index, d: Suspension(
        joint=index, stiffness=_scalar(d.stiffness), damping=_scalar(d.damping)),
    desc.SteeringDef: lambda index, d: Steering(
        joint=index, max_angle=_scalar(d.max_angle)),
    desc.DriveDef: lambda index, d: DrivenWheel(
        joint=index, max_torque=_scalar(d.max_torque),
        max_speed=_scalar(d.max_speed), max_power=_scalar(d.max_power)),
    desc.BrakeDef: lambda index, d: BrakeWheel(
        joint=index, max_torque=_scalar(d.max_torque)),
    desc.TireContactDef: lambda index, d: TireContact(
        joint=index, radius=_scalar(d.radius), stiffness=_scalar(d.stiffness),
        damping=_scalar(d.damping),
        longitudinal_stiffness=_scalar(d.longitudinal_stiffness),
        lateral_stiffness=_scalar(d.lateral_stiffness)),
}


def _scalar(x):
    return jnp.asarray(float(x), dtype=jnp.result_type(float))


def build_model(
    model_def: desc.ModelDef,
    gravity: float = GRAVITY,
    initial_positions: Optional[Mapping[str, float]] = None,
) -> MechanismModel:
    """Build a MechanismModel from its description in one forward pass.

    Args:
        model_def: The model description. Parents must precede children.
        gravity: Gravity magnitude, applied as an upward acceleration of every
            base so that bodies fall along -z.
        initial_positions: Optional initial ``q`` per joint name.

    Returns:
        MechanismModel: The joint forest with its force models attached.

    Raises:
        ModelError: On a duplicate joint name, a missing or late parent, a
            base with a parent, a non-base joint without one, or a system or
            initial position naming an unknown joint.
    """
    declared = {joint_def.name for joint_def in model_def.joints}
    index_by_name: Dict[str, int] = {}
    joints = []
    parent_indices = []

    for i, joint_def in enumerate(model_def.joints):
        name = joint_def.name
        if name in index_by_name:
            raise ModelError(f"Duplicate joint name '{name}'")

        try:
            kind = JointKind(joint_def.joint_type)
        except ValueError:
            raise ModelError(f"Joint '{name}' has unknown type '{joint_def.joint_type}'")

        parent = joint_def.parent
        if kind == JointKind.BASE:
            if parent is not None:
                raise ModelError(f"Base joint '{name}' must not have a parent (got '{parent}')")
            parent_index = -1
        else:
            if parent is None:
                raise ModelError(f"Joint '{name}' has no parent; only Base joints may be roots")
            if parent not in index_by_name:
                if parent in declared:
                    raise ModelError(
                        f"Parent '{parent}' of joint '{name}' is declared after its child")
                raise ModelError(f"Parent '{parent}' of joint '{name}' not found")
            parent_index = index_by_name[parent]

        transform = joint_def.transform
        inertia = joint_def.inertia
        xt = Xform.from_position_and_quaternion(transform.position, transform.quaternion)
        kwargs = dict(
            offset_quaternion=transform.quaternion,
            visuals=joint_def.meshes,
        )
        body_inertia = Inertia.from_components(inertia.mass, inertia.center_of_mass, inertia.inertia)
        if kind == JointKind.BASE:
            joint = Joint.base(name, Motion.create(v=(0.0, 0.0, gravity)),
                               inertia=body_inertia, xt=xt, **kwargs)
        else:
            joint = Joint.create(name, kind, body_inertia, xt, **kwargs)

        index_by_name[name] = i
        joints.append(joint)
        parent_indices.append(parent_index)

    for name, q in (initial_positions or {}).items():
        if name not in index_by_name:
            raise ModelError(f"Initial position given for unknown joint '{name}'")
        i = index_by_name[name]
        joints[i] = joints[i].replace(q=_scalar(q))

    systems = []
    for system_def in model_def.systems:
        if system_def.joint not in index_by_name:
            tag = desc.SYSTEM_TAGS[type(system_def)]
            raise ModelError(f"{tag} system refers to unknown joint '{system_def.joint}'")
        systems.append(_SYSTEM_BUILDERS[type(system_def)](index_by_name[system_def.joint], system_def))

    children = tuple(
        tuple(j for j, p in enumerate(parent_indices) if p == i)
        for i in range(len(joints))
    )
    roots = tuple(i for i, p in enumerate(parent_indices) if p < 0)

    logger.debug("Built model '%s': %d joints, %d systems, %d root(s)",
                 model_def.name, len(joints), len(systems), len(roots))

    return MechanismModel(
        name=model_def.name,
        joint_names=tuple(index_by_name),
        parent_indices=tuple(parent_indices),
        children=children,
        roots=roots,
        joints=tuple(joints),
        systems=tuple(systems),
    )


def _floats(values) -> tuple:
    return tuple(float(v) for v in values)


def _system_def(model: MechanismModel, system: ForceModel) -> desc.SystemDef:
    name = model.joint_names[system.joint]
    if isinstance(system, Suspension):
        return desc.SuspensionDef(name, float(system.stiffness), float(system.damping))
    if isinstance(system, Steering):
        return desc.SteeringDef(name, float(system.max_angle))
    if isinstance(system, DrivenWheel):
        return desc.DriveDef(name, float(system.max_torque),
                             float(system.max_speed), float(system.max_power))
    if isinstance(system, BrakeWheel):
        return desc.BrakeDef(name, float(system.max_torque))
    return desc.TireContactDef(
        name, float(system.radius), float(system.stiffness), float(system.damping),
        float(system.longitudinal_stiffness), float(system.lateral_stiffness))


def to_model_def(model: MechanismModel) -> desc.ModelDef:
    """Re-serialize a model into the description it was built from."""
    joint_defs = []
    for joint, parent in zip(model.joints, model.parent_indices):
        joint_defs.append(desc.JointDef(
            name=joint.name,
            joint_type=joint.kind.value,
            parent=model.joint_names[parent] if parent >= 0 else None,
            transform=desc.TransformDef(
                position=_floats(joint.xt.position),
                quaternion=_floats(joint.offset_quaternion),
            ),
            inertia=desc.InertiaDef(
                mass=float(joint.inertia.mass),
                center_of_mass=_floats(joint.inertia.com),
                inertia=_floats(joint.inertia.tensor_components()),
            ),
            meshes=joint.visuals,
        ))
    return desc.ModelDef(
        name=model.name,
        joints=tuple(joint_defs),
        systems=tuple(_system_def(model, system) for system in model.systems),
    )
