"""Simulation settings."""

from dataclasses import dataclass

GRAVITY = 9.81  # m/s^2, acts along -z
DEFAULT_TIME_STEP = 0.002  # s, 500 Hz


@dataclass(frozen=True)
class SimulationConfig:
    """Settings for a ``Simulator``.

    Attributes:
        time_step: Nominal fixed integration step. Frame times longer than
            this are replaced by it, trading real-time pacing for stability
            of the explicit integrator. Stiff tire or suspension parameters
            need a correspondingly small step.
        gravity: Gravity magnitude used when building models.
    """
    time_step: float = DEFAULT_TIME_STEP
    gravity: float = GRAVITY

    def __post_init__(self):
        if self.time_step <= 0.0:
            raise ValueError(f"time_step must be positive, got {self.time_step}")
