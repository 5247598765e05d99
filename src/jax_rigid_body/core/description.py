"""Declarative model description.

These frozen dataclasses mirror the persisted model document one field at a
time: an ordered list of joints (each parent declared before its children)
followed by the force "systems" attached to them. They carry plain Python
values only; ``core.model.build_model`` turns them into JAX data.
"""

from dataclasses import dataclass
from typing import Optional, Tuple, Union

Vector3 = Tuple[float, float, float]


@dataclass(frozen=True)
class TransformDef:
    position: Vector3 = (0.0, 0.0, 0.0)
    quaternion: Tuple[float, float, float, float] = (1.0, 0.0, 0.0, 0.0)  # (w, x, y, z)


@dataclass(frozen=True)
class InertiaDef:
    mass: float = 0.0
    center_of_mass: Vector3 = (0.0, 0.0, 0.0)
    # xx, yy, zz, yz, xz, xy
    inertia: Tuple[float, float, float, float, float, float] = (0.0,) * 6


@dataclass(frozen=True)
class BoxDef:
    half_extents: Vector3


@dataclass(frozen=True)
class CylinderDef:
    height: float
    radius: float


MeshTypeDef = Union[BoxDef, CylinderDef]


@dataclass(frozen=True)
class MeshDef:
    """Visual primitive attached to a joint. Never read by the dynamics."""
    mesh_type: MeshTypeDef
    transform: TransformDef = TransformDef()
    color: Tuple[float, float, float, float] = (1.0, 1.0, 1.0, 1.0)


@dataclass(frozen=True)
class JointDef:
    name: str
    joint_type: str  # one of Base, Rx, Ry, Rz, Px, Py, Pz
    parent: Optional[str] = None
    transform: TransformDef = TransformDef()
    inertia: InertiaDef = InertiaDef()
    meshes: Tuple[MeshDef, ...] = ()


@dataclass(frozen=True)
class SteeringDef:
    joint: str
    max_angle: float


@dataclass(frozen=True)
class DriveDef:
    joint: str
    max_torque: float
    max_speed: float
    max_power: float


@dataclass(frozen=True)
class BrakeDef:
    joint: str
    max_torque: float


@dataclass(frozen=True)
class SuspensionDef:
    joint: str
    stiffness: float
    damping: float


@dataclass(frozen=True)
class TireContactDef:
    joint: str
    radius: float
    stiffness: float
    damping: float
    longitudinal_stiffness: float
    lateral_stiffness: float


SystemDef = Union[SteeringDef, DriveDef, BrakeDef, SuspensionDef, TireContactDef]

# Document tag of every system record
SYSTEM_TAGS = {
    SteeringDef: "Steering",
    DriveDef: "Drive",
    BrakeDef: "Brake",
    SuspensionDef: "Suspension",
    TireContactDef: "TireContact",
}

MESH_TAGS = {
    BoxDef: "Box",
    CylinderDef: "Cylinder",
}


@dataclass(frozen=True)
class ModelDef:
    name: str
    joints: Tuple[JointDef, ...] = ()
    systems: Tuple[SystemDef, ...] = ()
