"""Core mechanism data structures.

This module provides the joint forest, its declarative description and the
force models attached to individual joints, all as immutable PyTrees.
"""

from . import description
from .description import ModelDef
from .forces import BrakeWheel, ControlInput, DrivenWheel, ForceModel, Steering, Suspension, TireContact
from .joint import Joint, JointKind, Pose
from .model import MechanismModel, ModelError, build_model, to_model_def

__all__ = [
    "description",
    "ModelDef",
    "BrakeWheel",
    "ControlInput",
    "DrivenWheel",
    "ForceModel",
    "Steering",
    "Suspension",
    "TireContact",
    "Joint",
    "JointKind",
    "Pose",
    "MechanismModel",
    "ModelError",
    "build_model",
    "to_model_def",
]
