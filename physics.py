"""
Chain-Pendulum Physics
Per-link Euler update and neighbour influence propagation for an N-link chain
"""

from __future__ import annotations

import math
from typing import List, Optional, Sequence

import numpy as np

GRAVITY = 9.82

FAULT_POLICIES = ("raise", "reset")


class ChainError(ValueError):
    """Base class for invalid chain configuration or state."""


class InvalidChain(ChainError):
    """Raised when a chain would be built without links."""


class InvalidLength(ChainError):
    """Raised when an arm length is not a finite positive number."""


class NonFiniteState(ChainError):
    """Raised when a link's angle or speed stops being finite during a tick."""

    def __init__(self, index: int, angle: float, angular_speed: float):
        self.index = index
        self.angle = angle
        self.angular_speed = angular_speed
        super().__init__(
            f"Link {index} became non-finite (angle={angle}, angular_speed={angular_speed})"
        )


def _check_length(length: float) -> float:
    length = float(length)
    if not math.isfinite(length) or length <= 0:
        raise InvalidLength(f"Arm length must be finite and > 0, got {length}")
    return length


class Pendulum:
    """
    A single link of the chain.

    The angle is measured from the downward vertical in radians and the
    angular speed is in radians per update call, not per second.
    """

    def __init__(
        self,
        angle: float,
        arm_length: float,
        angular_speed: float = 0.0,
        gravity: float = GRAVITY,
    ):
        self.angle = float(angle)
        self.angular_speed = float(angular_speed)
        self.gravity = float(gravity)
        self._arm_length = _check_length(arm_length)

    @property
    def arm_length(self) -> float:
        return self._arm_length

    @arm_length.setter
    def arm_length(self, value: float) -> None:
        self._arm_length = _check_length(value)

    def integrate(self, dt: float) -> float:
        """
        Advance this link by one explicit Euler step.

        Returns the negated speed change of the step, which the chain passes
        on to neighbouring links as their influence.
        """
        if dt == 0:
            return 0.0
        delta_speed = math.sin(self.angle) * self.gravity / self._arm_length * dt
        self.angular_speed += delta_speed
        self.angle -= self.angular_speed
        return -delta_speed

    def receive_influence(self, influence: float) -> None:
        # speed-only coupling, the angle follows on the next integrate
        self.angular_speed += influence / 2

    def reset(self, angle: float) -> None:
        self.angle = float(angle)
        self.angular_speed = 0.0

    def is_finite(self) -> bool:
        return math.isfinite(self.angle) and math.isfinite(self.angular_speed)

    def __repr__(self) -> str:
        return (
            f"Pendulum(angle={self.angle!r}, arm_length={self._arm_length!r}, "
            f"angular_speed={self.angular_speed!r})"
        )


class Chain:
    """
    Ordered chain of pendulums, index 0 hangs from the fixed pivot.

    One call to ``tick`` damps, integrates and propagates influence link by
    link, left to right. Influence from link i reaches link i+1 before link
    i+1 is integrated in the same pass, while link i-1 only feels it from the
    next pass onward.
    """

    def __init__(
        self,
        links: Sequence[Pendulum],
        damping: Optional[float] = None,
        on_fault: str = "raise",
    ):
        links = list(links)
        if not links:
            raise InvalidChain("A chain needs at least one link")
        if damping is not None:
            damping = float(damping)
            if not math.isfinite(damping) or damping <= 0:
                raise ValueError(f"Damping must be finite and > 0, got {damping}")
        if on_fault not in FAULT_POLICIES:
            raise ValueError(f"Unknown fault policy '{on_fault}'. Use one of {FAULT_POLICIES}.")

        self.links: List[Pendulum] = links
        self.damping = damping
        self.on_fault = on_fault
        self._initial_angles = [link.angle for link in links]

    @classmethod
    def from_config(cls, config) -> Chain:
        """Build a chain from a ``config.ChainConfig``."""
        links = [
            Pendulum(angle, config.arm_length, gravity=config.gravity)
            for angle in config.initial_angles()
        ]
        return cls(links, damping=config.damping, on_fault=config.on_fault)

    def __len__(self) -> int:
        return len(self.links)

    def __iter__(self):
        return iter(self.links)

    def __getitem__(self, index: int) -> Pendulum:
        return self.links[index]

    @property
    def angles(self) -> np.ndarray:
        return np.array([link.angle for link in self.links])

    @property
    def angular_speeds(self) -> np.ndarray:
        return np.array([link.angular_speed for link in self.links])

    def set_arm_lengths(self, length: float) -> None:
        """Set every link's arm length, called by the renderer before ``tick``."""
        length = _check_length(length)
        for link in self.links:
            link.arm_length = length

    def tick(self, dt: float) -> None:
        """Advance the whole chain by one step of ``dt`` seconds."""
        dt = float(dt)
        if not math.isfinite(dt) or dt < 0:
            raise ValueError(f"Time step must be finite and >= 0, got {dt}")

        links = self.links
        last = len(links) - 1
        for i, link in enumerate(links):
            if self.damping is not None:
                link.angular_speed *= self.damping
            influence = link.integrate(dt)

            if not link.is_finite():
                if self.on_fault == "raise":
                    raise NonFiniteState(i, link.angle, link.angular_speed)
                link.reset(self._initial_angles[i])
                influence = 0.0

            if i > 0:
                links[i - 1].receive_influence(influence / 2)
            if i < last:
                links[i + 1].receive_influence(influence)

    def positions(self) -> np.ndarray:
        """
        Joint coordinates of the chain, pivot first.

        Returns an (N + 1, 2) array. Each link is rotated relative to the
        previous one, so link i points along the sum of angles 0..i; y points
        up and a link at rest hangs below its joint.
        """
        points = np.zeros((len(self.links) + 1, 2))
        phi = 0.0
        for k, link in enumerate(self.links):
            phi += link.angle
            points[k + 1, 0] = points[k, 0] + math.sin(phi) * link.arm_length
            points[k + 1, 1] = points[k, 1] - math.cos(phi) * link.arm_length
        return points

    def end_effector(self) -> np.ndarray:
        return self.positions()[-1]
