"""Four-wheeled car model.

The chassis floats on a chain of six single-DOF joints (Px, Py, Pz, Rz, Ry,
Rx) under a fixed base; only the last link carries mass. Every corner has a
prismatic suspension, and the wheel spins on a revolute joint beneath it.
Front wheels sit on an extra steering joint.
"""

import math
from typing import List

from .core import description as desc
from .core.model import MechanismModel, build_model

CORNERS = ("fl", "fr", "rl", "rr")
FRONT_CORNERS = CORNERS[:2]

CHASSIS_DIMENSIONS = (3.0, 1.25, 0.4)
CHASSIS_MASS = 1000.0
SUSPENSION_MASS = 10.0
WHEEL_MASS = 10.0
WHEEL_RADIUS = 0.325

SUSPENSION_POSITIONS = {
    "fl": (1.25, 0.75, -0.3),
    "fr": (1.25, -0.75, -0.3),
    "rl": (-1.25, 0.75, -0.3),
    "rr": (-1.25, -0.75, -0.3),
}

# Starting chassis height above the ground
CAR_INITIAL_POSITIONS = {"chassis_pz": 0.55}


def _chassis(joints: List[desc.JointDef]) -> str:
    length, width, height = CHASSIS_DIMENSIONS
    inertia = desc.InertiaDef(
        mass=CHASSIS_MASS,
        inertia=(
            CHASSIS_MASS / 12.0 * (width ** 2 + height ** 2),
            CHASSIS_MASS / 12.0 * (length ** 2 + height ** 2),
            CHASSIS_MASS / 12.0 * (length ** 2 + width ** 2),
            0.0, 0.0, 0.0,
        ),
    )
    body = desc.MeshDef(
        desc.BoxDef((length / 2.0, width / 2.0, height / 2.0)),
        color=(0.5, 0.5, 0.5, 1.0),
    )

    parent = "base"
    kinds = ("Px", "Py", "Pz", "Rz", "Ry", "Rx")
    for i, kind in enumerate(kinds):
        name = f"chassis_{kind.lower()}"
        last = i == len(kinds) - 1
        joints.append(desc.JointDef(
            name=name,
            joint_type=kind,
            parent=parent,
            inertia=inertia if last else desc.InertiaDef(),
            meshes=(body,) if last else (),
        ))
        parent = name
    return parent


def _suspensions(joints, systems, chassis: str) -> None:
    moi = 2.0 / 3.0 * SUSPENSION_MASS * 0.25 ** 2
    # Quarter of the car's weight over 0.1 m of travel, half of critical damping
    stiffness = CHASSIS_MASS * 9.81 / 4.0 / 0.1
    damping = 0.5 * 2.0 * math.sqrt(stiffness * CHASSIS_MASS / 4.0)

    for corner in CORNERS:
        name = f"suspension_{corner}"
        joints.append(desc.JointDef(
            name=name,
            joint_type="Pz",
            parent=chassis,
            transform=desc.TransformDef(position=SUSPENSION_POSITIONS[corner]),
            inertia=desc.InertiaDef(mass=SUSPENSION_MASS, inertia=(moi, moi, moi, 0.0, 0.0, 0.0)),
            meshes=(desc.MeshDef(desc.BoxDef((0.125, 0.125, 0.125)), color=(1.0, 0.0, 0.0, 1.0)),),
        ))
        systems.append(desc.SuspensionDef(name, stiffness=stiffness, damping=damping))


def _steering(joints, systems) -> None:
    for corner in FRONT_CORNERS:
        name = f"steering_{corner}"
        joints.append(desc.JointDef(name=name, joint_type="Rz", parent=f"suspension_{corner}"))
        systems.append(desc.SteeringDef(name, max_angle=math.radians(30.0)))


def _wheels(joints, systems) -> None:
    moi_xz = 1.0 / 12.0 * WHEEL_MASS * 3.0 * 0.25 ** 2
    moi_y = WHEEL_MASS * 0.25 ** 2
    tire_stiffness = CHASSIS_MASS * 9.81 / 4.0 / 0.005
    tire_damping = 0.25 * 2.0 * math.sqrt(CHASSIS_MASS / 4.0 * tire_stiffness)

    for corner in CORNERS:
        name = f"wheel_{corner}"
        front = corner in FRONT_CORNERS
        joints.append(desc.JointDef(
            name=name,
            joint_type="Ry",
            parent=f"steering_{corner}" if front else f"suspension_{corner}",
            inertia=desc.InertiaDef(mass=WHEEL_MASS, inertia=(moi_xz, moi_y, moi_xz, 0.0, 0.0, 0.0)),
            meshes=(desc.MeshDef(desc.CylinderDef(height=0.2, radius=WHEEL_RADIUS),
                                 color=(0.5, 0.5, 1.0, 1.0)),),
        ))
        if not front:
            systems.append(desc.DriveDef(name, max_torque=400.0, max_speed=50.0, max_power=100.0e3))
        systems.append(desc.BrakeDef(name, max_torque=800.0 if front else 400.0))
        systems.append(desc.TireContactDef(
            name,
            radius=WHEEL_RADIUS,
            stiffness=tire_stiffness,
            damping=tire_damping,
            longitudinal_stiffness=0.2,
            lateral_stiffness=0.5,
        ))


def car_model_def() -> desc.ModelDef:
    """Description of the car: base, chassis chain, then one group of joints per layer."""
    joints = [desc.JointDef(name="base", joint_type="Base")]
    systems: List[desc.SystemDef] = []

    chassis = _chassis(joints)
    _suspensions(joints, systems, chassis)
    _steering(joints, systems)
    _wheels(joints, systems)

    return desc.ModelDef(name="car", joints=tuple(joints), systems=tuple(systems))


def build_car(**build_kwargs) -> MechanismModel:
    """Build the car with the chassis raised to ``CAR_INITIAL_POSITIONS``.

    Keyword arguments are forwarded to ``build_model``.
    """
    build_kwargs.setdefault("initial_positions", CAR_INITIAL_POSITIONS)
    return build_model(car_model_def(), **build_kwargs)
