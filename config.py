"""
Chain Configuration
Immutable set of tunables shared by the simulator and the animator
"""

from __future__ import annotations

import dataclasses
import math
import numbers
from dataclasses import dataclass
from typing import Optional

import numpy as np

from physics import FAULT_POLICIES, GRAVITY, InvalidChain, InvalidLength


def _is_count(value) -> bool:
    return isinstance(value, numbers.Integral) and not isinstance(value, bool)


@dataclass(frozen=True)
class ChainConfig:
    """
    Parameters of one chain-pendulum run.

    Defaults reproduce the classic ten-link fan: link 0 starts at 3π/2 and
    every following link 0.3π further back.
    """

    link_count: int = 10
    base_angle: float = 3.0 * np.pi / 2.0
    angle_step: float = 0.3 * np.pi
    arm_length: float = 25.0
    gravity: float = GRAVITY
    damping: Optional[float] = 0.992  # None disables damping
    time_step: Optional[float] = 1.0 / 120.0  # None: wall-clock dt in live mode
    on_fault: str = "raise"
    trace_points: int = 500
    size_scale: float = 10.0

    def __post_init__(self):
        if not _is_count(self.link_count):
            raise ValueError(f"link_count must be an integer, got {self.link_count!r}")
        if self.link_count < 1:
            raise InvalidChain(f"link_count must be >= 1, got {self.link_count}")
        if not math.isfinite(self.arm_length) or self.arm_length <= 0:
            raise InvalidLength(f"arm_length must be finite and > 0, got {self.arm_length}")
        if not math.isfinite(self.gravity):
            raise ValueError(f"gravity must be finite, got {self.gravity}")
        if self.damping is not None and (not math.isfinite(self.damping) or self.damping <= 0):
            raise ValueError(f"damping must be finite and > 0, got {self.damping}")
        if self.time_step is not None and (not math.isfinite(self.time_step) or self.time_step <= 0):
            raise ValueError(f"time_step must be finite and > 0, got {self.time_step}")
        if self.on_fault not in FAULT_POLICIES:
            raise ValueError(f"Unknown fault policy '{self.on_fault}'. Use one of {FAULT_POLICIES}.")
        if not _is_count(self.trace_points) or self.trace_points < 0:
            raise ValueError(f"trace_points must be an integer >= 0, got {self.trace_points!r}")
        if self.size_scale <= 0:
            raise ValueError(f"size_scale must be > 0, got {self.size_scale}")

    def initial_angles(self) -> np.ndarray:
        """Starting angle of every link, ``base_angle - index * angle_step``."""
        return self.base_angle - np.arange(self.link_count) * self.angle_step

    def ticks_per_frame(self, fps: int) -> int:
        """
        Physics ticks to run per rendered frame at ``fps``.

        Angular speed is measured per tick, so live and headless runs must
        tick at the same rate. Wall-clock mode ticks once per frame.
        """
        if fps <= 0:
            raise ValueError(f"fps must be positive, got {fps}")
        if self.time_step is None:
            return 1
        return max(1, int(round(1.0 / (fps * self.time_step))))

    def replace(self, **changes) -> ChainConfig:
        return dataclasses.replace(self, **changes)
