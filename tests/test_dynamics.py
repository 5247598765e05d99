"""Tests for the articulated-body forward dynamics."""

import dataclasses
from pathlib import Path

import hypothesis
import jax
import jax.numpy as jnp
import numpy as np
import pytest
from hypothesis import given, settings
from hypothesis import strategies as st

from jax_rigid_body.car import CAR_INITIAL_POSITIONS, car_model_def
from jax_rigid_body.config import GRAVITY
from jax_rigid_body.core import ControlInput, build_model
from jax_rigid_body.core import description as desc
from jax_rigid_body.dynamics import forward_dynamics, joint_accelerations, kinematics
from jax_rigid_body.integrator import JointState, set_state
from jax_rigid_body.io import load_model

hypothesis.settings.register_profile("ci", max_examples=10, deadline=None)

FIXTURES = Path(__file__).parent / "fixtures"
NO_CONTROL = ControlInput.create()


def with_state(model, q, qd):
    return set_state(model, JointState(jnp.asarray(q, dtype=float), jnp.asarray(qd, dtype=float)))


def pendulum_def(mass=2.0, length=0.8, moi=0.05) -> desc.ModelDef:
    return desc.ModelDef(
        name="pendulum",
        joints=(
            desc.JointDef("base", "Base"),
            desc.JointDef("arm", "Ry", parent="base", inertia=desc.InertiaDef(
                mass=mass, center_of_mass=(0.0, 0.0, -length), inertia=(moi, moi, moi, 0.0, 0.0, 0.0))),
        ),
    )


def double_pendulum_reference(theta, theta_dot):
    """Lagrangian accelerations of the fixture's double pendulum."""
    m1, a1, I1, l1 = 1.5, 0.5, 0.125, 1.0
    m2, a2, I2 = 1.0, 0.4, 0.06
    g = GRAVITY
    t1, t2 = theta
    w1, w2 = theta_dot

    c2 = np.cos(t2)
    M = np.array([
        [I1 + I2 + m1 * a1 ** 2 + m2 * (l1 ** 2 + a2 ** 2 + 2 * l1 * a2 * c2),
         I2 + m2 * (a2 ** 2 + l1 * a2 * c2)],
        [I2 + m2 * (a2 ** 2 + l1 * a2 * c2), I2 + m2 * a2 ** 2],
    ])
    h = m2 * l1 * a2 * np.sin(t2)
    coriolis = np.array([-h * (2 * w1 * w2 + w2 ** 2), h * w1 ** 2])
    gravity = np.array([
        m1 * g * a1 * np.sin(t1) + m2 * g * (l1 * np.sin(t1) + a2 * np.sin(t1 + t2)),
        m2 * g * a2 * np.sin(t1 + t2),
    ])
    return np.linalg.solve(M, -coriolis - gravity)


def test_free_fall():
    model_def = desc.ModelDef(
        name="drop",
        joints=(
            desc.JointDef("base", "Base"),
            desc.JointDef("body", "Pz", parent="base",
                          inertia=desc.InertiaDef(mass=2.0, inertia=(0.1, 0.1, 0.1, 0.0, 0.0, 0.0))),
        ),
    )
    qdd = joint_accelerations(build_model(model_def), NO_CONTROL)
    np.testing.assert_allclose(qdd, [0.0, -GRAVITY], atol=1e-12)


def test_gravity_magnitude_is_configurable():
    model_def = desc.ModelDef(
        name="drop",
        joints=(
            desc.JointDef("base", "Base"),
            desc.JointDef("body", "Pz", parent="base", inertia=desc.InertiaDef(mass=1.0)),
        ),
    )
    qdd = joint_accelerations(build_model(model_def, gravity=1.62), NO_CONTROL)
    np.testing.assert_allclose(qdd[1], -1.62, atol=1e-12)


@given(st.integers(min_value=0, max_value=100))
@settings(deadline=None, max_examples=20)
def test_floating_chassis_falls_without_rotating(seed):
    """A body on a Px-Py-Pz-Rz-Ry-Rx chain accelerates straight down whatever its attitude."""
    model_def = car_model_def()
    model_def = dataclasses.replace(model_def, joints=model_def.joints[:7], systems=())
    model = build_model(model_def)

    angles = jax.random.uniform(jax.random.PRNGKey(seed), (3,), minval=-1.0, maxval=1.0)
    q = jnp.concatenate([jnp.zeros(4), angles])
    model = with_state(model, q, jnp.zeros(7))

    qdd = joint_accelerations(model, NO_CONTROL)
    np.testing.assert_allclose(qdd, [0.0, 0.0, 0.0, -GRAVITY, 0.0, 0.0, 0.0], atol=1e-9)


@given(st.integers(min_value=0, max_value=100))
@settings(deadline=None, max_examples=20)
def test_single_pendulum(seed):
    mass, length, moi = 2.0, 0.8, 0.05
    k1, k2 = jax.random.split(jax.random.PRNGKey(seed))
    theta = float(jax.random.uniform(k1, minval=-np.pi, maxval=np.pi))
    theta_dot = float(jax.random.normal(k2))

    model = with_state(build_model(pendulum_def(mass, length, moi)), [0.0, theta], [0.0, theta_dot])
    qdd = joint_accelerations(model, NO_CONTROL)

    expected = -mass * GRAVITY * length * np.sin(theta) / (moi + mass * length ** 2)
    np.testing.assert_allclose(qdd[1], expected, rtol=1e-9, atol=1e-12)


@given(st.integers(min_value=0, max_value=100))
@settings(deadline=None, max_examples=20)
def test_double_pendulum_matches_lagrangian(seed):
    k1, k2 = jax.random.split(jax.random.PRNGKey(seed))
    theta = np.asarray(jax.random.uniform(k1, (2,), minval=-np.pi, maxval=np.pi))
    theta_dot = np.asarray(jax.random.normal(k2, (2,)) * 2.0)

    model = load_model(FIXTURES / "double_pendulum.json")
    model = with_state(model, [0.0, *theta], [0.0, *theta_dot])
    qdd = joint_accelerations(model, NO_CONTROL)

    np.testing.assert_allclose(qdd[1:], double_pendulum_reference(theta, theta_dot), rtol=1e-8, atol=1e-10)


def test_hanging_pendulum_is_at_rest():
    model = build_model(pendulum_def())
    np.testing.assert_allclose(joint_accelerations(model, NO_CONTROL), jnp.zeros(2), atol=1e-12)


def test_forest_roots_are_independent():
    """Two pendulums under separate bases match the same pendulum on its own."""
    single = pendulum_def()
    arm = single.joints[1]
    forest = desc.ModelDef(
        name="forest",
        joints=(
            desc.JointDef("left_base", "Base"),
            dataclasses.replace(arm, name="left_arm", parent="left_base"),
            desc.JointDef("right_base", "Base", transform=desc.TransformDef(position=(3.0, 0.0, 0.0))),
            dataclasses.replace(arm, name="right_arm", parent="right_base"),
        ),
    )
    model = build_model(forest)
    assert model.roots == (0, 2)
    model = with_state(model, [0.0, 0.4, 0.0, -1.1], [0.0, 0.3, 0.0, 2.0])
    qdd = joint_accelerations(model, NO_CONTROL)

    reference = build_model(single)
    for theta, theta_dot, result in ((0.4, 0.3, qdd[1]), (-1.1, 2.0, qdd[3])):
        expected = joint_accelerations(with_state(reference, [0.0, theta], [0.0, theta_dot]), NO_CONTROL)[1]
        np.testing.assert_allclose(result, expected, rtol=1e-12)


def test_repeated_evaluation_is_stable():
    """Running the passes twice on the same state gives the same answer."""
    model = with_state(load_model(FIXTURES / "double_pendulum.json"), [0.0, 0.3, -0.2], [0.0, 1.0, 0.5])
    first = joint_accelerations(model, NO_CONTROL)
    solved = forward_dynamics(model, NO_CONTROL)
    second = joint_accelerations(solved, NO_CONTROL)
    np.testing.assert_allclose(first, second, rtol=1e-12)


def reversed_blocks(model_def: desc.ModelDef) -> desc.ModelDef:
    joints = list(model_def.joints)
    chassis, suspensions, steering, wheels = joints[:7], joints[7:11], joints[11:13], joints[13:]
    return dataclasses.replace(
        model_def,
        joints=tuple(chassis + suspensions[::-1] + steering[::-1] + wheels[::-1]),
        systems=tuple(reversed(model_def.systems)),
    )


@given(st.integers(min_value=0, max_value=100))
@settings(deadline=None, max_examples=10)
def test_sibling_order_does_not_matter(seed):
    model_def = car_model_def()
    models = [
        build_model(model_def, initial_positions=CAR_INITIAL_POSITIONS),
        build_model(reversed_blocks(model_def), initial_positions=CAR_INITIAL_POSITIONS),
    ]
    names = models[0].joint_names
    velocities = dict(zip(names, np.asarray(jax.random.normal(jax.random.PRNGKey(seed), (len(names),)))))
    velocities["base"] = 0.0
    control = ControlInput.create(throttle=0.5, brake=0.2, steering=0.3)

    results = []
    for model in models:
        q = [float(joint.q) for joint in model.joints]
        qd = [velocities[name] for name in model.joint_names]
        qdd = joint_accelerations(with_state(model, q, qd), control)
        results.append(dict(zip(model.joint_names, np.asarray(qdd))))

    for name in names:
        np.testing.assert_allclose(results[0][name], results[1][name], rtol=1e-8, atol=1e-8)


def test_kinematics_poses_and_velocities():
    model_def = desc.ModelDef(
        name="arm",
        joints=(
            desc.JointDef("base", "Base"),
            desc.JointDef("lift", "Pz", parent="base"),
            desc.JointDef("turn", "Rz", parent="lift"),
            desc.JointDef("reach", "Px", parent="turn", transform=desc.TransformDef(position=(1.0, 0.0, 0.0))),
        ),
    )
    model = with_state(build_model(model_def), [0.0, 0.5, np.pi / 2, 0.0], [0.0, 1.0, 0.0, 0.0])
    model = kinematics(model, NO_CONTROL)
    poses = model.poses()

    np.testing.assert_allclose(poses["lift"].position, [0.0, 0.0, 0.5], atol=1e-12)
    np.testing.assert_allclose(poses["reach"].position, [0.0, 1.0, 0.5], atol=1e-12)
    np.testing.assert_allclose(poses["reach"].rotation, [[0.0, -1.0, 0.0], [1.0, 0.0, 0.0], [0.0, 0.0, 1.0]], atol=1e-12)
    np.testing.assert_allclose(poses["reach"].quaternion, [np.cos(np.pi / 4), 0.0, 0.0, np.sin(np.pi / 4)], atol=1e-12)

    # The lift velocity seen in the rotated frame is still straight up
    np.testing.assert_allclose(model.joint("reach").v.v, [0.0, 0.0, 1.0], atol=1e-12)


def test_joint_offset_orientation():
    """A declared offset rotation turns the joint axis with it."""
    quarter_turn_about_x = (np.cos(np.pi / 4), np.sin(np.pi / 4), 0.0, 0.0)
    model_def = desc.ModelDef(
        name="tilted",
        joints=(
            desc.JointDef("base", "Base"),
            desc.JointDef("slide", "Py", parent="base",
                          transform=desc.TransformDef(quaternion=quarter_turn_about_x),
                          inertia=desc.InertiaDef(mass=1.0)),
        ),
    )
    # The local y axis points along world z, so the slider falls freely
    model = build_model(model_def)
    np.testing.assert_allclose(joint_accelerations(model, NO_CONTROL)[1], -GRAVITY, atol=1e-9)

    model = kinematics(with_state(model, [0.0, 2.0], [0.0, 0.0]), NO_CONTROL)
    np.testing.assert_allclose(model.poses()["slide"].position, [0.0, 0.0, 2.0], atol=1e-12)


def test_joint_accelerations_jit():
    model = with_state(load_model(FIXTURES / "double_pendulum.json"), [0.0, 0.7, 0.1], [0.0, -0.5, 1.5])
    expected = joint_accelerations(model, NO_CONTROL)
    np.testing.assert_allclose(jax.jit(joint_accelerations)(model, NO_CONTROL), expected, rtol=1e-12)


def test_unknown_joint_lookup():
    model = build_model(pendulum_def())
    with pytest.raises(ValueError, match="Joint 'elbow' not found in model"):
        model.joint("elbow")
