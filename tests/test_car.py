"""Tests for the car model."""

import numpy as np

from jax_rigid_body.car import CAR_INITIAL_POSITIONS, build_car, car_model_def
from jax_rigid_body.core import (
    BrakeWheel,
    ControlInput,
    DrivenWheel,
    JointKind,
    Steering,
    Suspension,
    TireContact,
)
from jax_rigid_body.dynamics import joint_accelerations, kinematics
from jax_rigid_body.integrator import simulate


def test_car_structure():
    model = build_car()

    assert model.num_joints == 17
    assert model.roots == (0,)
    assert model.joint_names[:7] == (
        "base", "chassis_px", "chassis_py", "chassis_pz", "chassis_rz", "chassis_ry", "chassis_rx",
    )
    for corner in ("fl", "fr"):
        assert model.parent_indices[model.index(f"wheel_{corner}")] == model.index(f"steering_{corner}")
        assert model.joint(f"steering_{corner}").kind == JointKind.RZ
    for corner in ("rl", "rr"):
        assert model.parent_indices[model.index(f"wheel_{corner}")] == model.index(f"suspension_{corner}")
    for corner in ("fl", "fr", "rl", "rr"):
        assert model.parent_indices[model.index(f"suspension_{corner}")] == model.index("chassis_rx")

    counts = {}
    for system in model.systems:
        counts[type(system)] = counts.get(type(system), 0) + 1
    assert counts == {Suspension: 4, Steering: 2, DrivenWheel: 2, BrakeWheel: 4, TireContact: 4}

    np.testing.assert_allclose(model.joint("chassis_pz").q, CAR_INITIAL_POSITIONS["chassis_pz"])
    np.testing.assert_allclose(model.joint("chassis_rx").inertia.mass, 1000.0)


def test_car_description_is_serializable_order():
    """Every parent precedes its children."""
    seen = set()
    for joint in car_model_def().joints:
        assert joint.parent is None or joint.parent in seen
        seen.add(joint.name)


def test_steering_turns_front_wheels():
    model = kinematics(build_car(), ControlInput.create(steering=1.0))
    np.testing.assert_allclose(model.joint("steering_fl").q, np.radians(30.0))

    quaternion = model.poses()["wheel_fl"].quaternion
    half = np.radians(15.0)
    np.testing.assert_allclose(quaternion, [np.cos(half), 0.0, 0.0, np.sin(half)], atol=1e-12)
    np.testing.assert_allclose(model.poses()["wheel_rl"].quaternion, [1.0, 0.0, 0.0, 0.0], atol=1e-12)


def test_wheel_positions():
    poses = kinematics(build_car(), ControlInput.create()).poses()
    np.testing.assert_allclose(poses["chassis_rx"].position, [0.0, 0.0, 0.55], atol=1e-12)
    np.testing.assert_allclose(poses["wheel_fl"].position, [1.25, 0.75, 0.25], atol=1e-12)
    np.testing.assert_allclose(poses["wheel_rr"].position, [-1.25, -0.75, 0.25], atol=1e-12)


def test_initial_accelerations_are_symmetric():
    model = build_car()
    qdd = dict(zip(model.joint_names, np.asarray(joint_accelerations(model, ControlInput.create()))))

    assert all(np.isfinite(value) for value in qdd.values())
    np.testing.assert_allclose(qdd["suspension_fl"], qdd["suspension_fr"], rtol=1e-9)
    np.testing.assert_allclose(qdd["suspension_rl"], qdd["suspension_rr"], rtol=1e-9)
    np.testing.assert_allclose(qdd["chassis_py"], 0.0, atol=1e-6)
    # The tires start compressed and push the wheels up against the springs
    assert qdd["suspension_fl"] > 0.0
    assert qdd["suspension_rr"] > 0.0


def test_throttle_drives_rear_wheels():
    model = build_car()
    idle = dict(zip(model.joint_names, np.asarray(joint_accelerations(model, ControlInput.create()))))
    driven = dict(zip(model.joint_names,
                      np.asarray(joint_accelerations(model, ControlInput.create(throttle=1.0)))))

    assert driven["wheel_rl"] > idle["wheel_rl"]
    assert driven["wheel_rr"] > idle["wheel_rr"]
    np.testing.assert_allclose(driven["wheel_rl"] - idle["wheel_rl"], driven["wheel_rr"] - idle["wheel_rr"], rtol=1e-9)


def test_short_simulation_stays_finite():
    model = build_car()
    final, trajectory = simulate(model, ControlInput.create(throttle=0.5, steering=0.2), 0.001, 200)

    assert trajectory.q.shape == (200, 17)
    assert np.all(np.isfinite(np.asarray(trajectory.q)))
    assert np.all(np.isfinite(np.asarray(trajectory.qd)))
    # The chassis stays off the ground
    assert float(final.poses()["chassis_rx"].position[2]) > 0.1
