"""
Spatial algebra for rigid-body dynamics.

This module provides JIT-compilable implementations of:
- SO(3) rotation helpers (so3 module)
- 6D motion/force vectors, Plücker transforms and spatial inertias
  (spatial module)

All operations are pure arithmetic; none of them raise.
"""

from . import so3
from . import spatial
from .spatial import Force, Inertia, InertiaAB, Motion, Xform

__all__ = [
    "so3",
    "spatial",
    "Force",
    "Inertia",
    "InertiaAB",
    "Motion",
    "Xform",
]
