"""Fixed-step 4th-order Runge-Kutta integration of a mechanism.

The state vector is every joint's ``(q, qd)`` in declaration order. Each RK4
stage writes a candidate state into the joints, clears the force
accumulators, runs the full dynamics and reads back ``(qd, qdd)``.
"""

import logging
from typing import Dict, Tuple

import jax
import jax.numpy as jnp
from jax import Array
from flax import struct

from .config import SimulationConfig
from .core.description import ModelDef
from .core.forces import ControlInput
from .core.joint import Pose
from .core.model import MechanismModel, build_model
from .dynamics import forward_dynamics, kinematics

logger = logging.getLogger(__name__)


@struct.dataclass
class JointState:
    """Generalized state of all joints.

    Attributes:
        q: (num_joints,) positions.
        qd: (num_joints,) velocities.
    """
    q: Array
    qd: Array

    def __add__(self, other: "JointState") -> "JointState":
        return JointState(self.q + other.q, self.qd + other.qd)

    def __mul__(self, scalar) -> "JointState":
        return JointState(self.q * scalar, self.qd * scalar)

    __rmul__ = __mul__


def get_state(model: MechanismModel) -> JointState:
    return JointState(
        q=jnp.stack([joint.q for joint in model.joints]),
        qd=jnp.stack([joint.qd for joint in model.joints]),
    )


def set_state(model: MechanismModel, state: JointState) -> MechanismModel:
    return model.with_joints(
        joint.replace(q=state.q[i], qd=state.qd[i]) for i, joint in enumerate(model.joints)
    )


def get_derivative(model: MechanismModel) -> JointState:
    return JointState(
        q=jnp.stack([joint.qd for joint in model.joints]),
        qd=jnp.stack([joint.qdd for joint in model.joints]),
    )


def state_derivative(model: MechanismModel, state: JointState, control: ControlInput) -> JointState:
    """Time derivative ``(qd, qdd)`` of ``state``."""
    model = set_state(model, state)
    model = model.with_joints(joint.reset_accumulators() for joint in model.joints)
    return get_derivative(forward_dynamics(model, control))


def rk4_step(model: MechanismModel, control: ControlInput, dt) -> MechanismModel:
    """Advance the model by one RK4 step of size ``dt``.

    The new state is written back and the kinematics refreshed, so poses in
    the returned model correspond to the new state.
    """
    y0 = get_state(model)
    k1 = state_derivative(model, y0, control)
    k2 = state_derivative(model, y0 + k1 * (dt / 2.0), control)
    k3 = state_derivative(model, y0 + k2 * (dt / 2.0), control)
    k4 = state_derivative(model, y0 + k3 * dt, control)
    y1 = y0 + (k1 + k2 * 2.0 + k3 * 2.0 + k4) * (dt / 6.0)
    return kinematics(set_state(model, y1), control)


def simulate(
    model: MechanismModel,
    control: ControlInput,
    dt: float,
    num_steps: int,
) -> Tuple[MechanismModel, JointState]:
    """Run ``num_steps`` fixed steps with constant controls.

    Args:
        model: Initial model.
        control: Controls held for the whole run.
        dt: Step size.
        num_steps: Number of steps.

    Returns:
        The final model and the trajectory, a JointState whose arrays have
        shape (num_steps, num_joints) holding the state after every step.
    """
    def scan_body(carry, _):
        carry = rk4_step(carry, control, dt)
        return carry, get_state(carry)

    return jax.lax.scan(scan_body, model, None, length=num_steps)


_rk4_step_jit = jax.jit(rk4_step)


class Simulator:
    """Steps a model in wall-clock frames with a bounded step size."""

    def __init__(self, model: MechanismModel, config: SimulationConfig = SimulationConfig()):
        self.config = config
        self.time = 0.0
        self.model = kinematics(model, ControlInput.create())

    @classmethod
    def from_model_def(
        cls,
        model_def: ModelDef,
        config: SimulationConfig = SimulationConfig(),
        **build_kwargs,
    ) -> "Simulator":
        """Build ``model_def`` with the configured gravity and wrap it."""
        return cls(build_model(model_def, gravity=config.gravity, **build_kwargs), config)

    def step(self, control: ControlInput, dt: float = None) -> MechanismModel:
        dt = self.config.time_step if dt is None else dt
        self.model = _rk4_step_jit(self.model, control, jnp.asarray(dt))
        self.time += dt
        return self.model

    def update(self, frame_time: float, control: ControlInput) -> MechanismModel:
        """Advance by one frame.

        The frame time is used as the step when it does not exceed the
        nominal step; longer frames fall back to the nominal step so the
        integrator never sees an unbounded ``dt``. A frame time that is not
        positive leaves the state untouched.
        """
        if frame_time <= 0.0:
            logger.warning("Ignoring non-positive frame time %.4f s", frame_time)
            return self.model
        if frame_time > self.config.time_step:
            logger.warning("Frame time %.4f s exceeds nominal step %.4f s; using nominal step",
                           frame_time, self.config.time_step)
            frame_time = self.config.time_step
        return self.step(control, frame_time)

    def poses(self) -> Dict[str, Pose]:
        return self.model.poses()
