"""
JAX Rigid Body: articulated rigid-body dynamics in JAX.

This library simulates tree-structured mechanisms of single-DOF joints with
the articulated-body algorithm and a fixed-step RK4 integrator. Models are
immutable PyTrees, so a whole step is JIT-compilable.
"""

import jax
jax.config.update("jax_enable_x64", True)

from . import transforms
from . import core
from . import io
from .config import SimulationConfig
from .core import ControlInput, MechanismModel, ModelError, build_model
from .dynamics import forward_dynamics, kinematics
from .integrator import Simulator, rk4_step, simulate

__version__ = "0.1.0"
__all__ = [
    "transforms",
    "core",
    "io",
    "SimulationConfig",
    "ControlInput",
    "MechanismModel",
    "ModelError",
    "build_model",
    "forward_dynamics",
    "kinematics",
    "Simulator",
    "rk4_step",
    "simulate",
]
