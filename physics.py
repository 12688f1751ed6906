"""
2D Bouncing Ball Physics Engine
Closed-form floor bounces: impact time, geometric bounce series, settling.
"""

import math
import numpy as np
from dataclasses import dataclass
from typing import Iterable, List

# ──────────────────────────────────────────────
# Constants (pixel units, seconds)
# ──────────────────────────────────────────────
GRAVITY: float = -1000.0  # px/s^2, AKA y'' (which is why it is negative)
COEFFICIENT_OF_RESTITUTION: float = 0.5  # fraction of vertical speed kept per bounce


class InvalidState(ValueError):
    """Non-finite ball state or time step handed to the trajectory math."""


@dataclass(frozen=True)
class Ball:
    """Point mass. y = 0 is the floor, y grows upward."""
    x: float
    y: float
    vx: float
    vy: float

    def as_tuple(self) -> tuple:
        return (self.x, self.y, self.vx, self.vy)

    def as_array(self) -> np.ndarray:
        return np.array(self.as_tuple(), dtype=float)

    def is_finite(self) -> bool:
        return all(math.isfinite(v) for v in self.as_tuple())

    def is_at_rest(self) -> bool:
        return self.y == 0.0 and self.vy == 0.0


def _check_finite(*values: float) -> None:
    if not all(math.isfinite(v) for v in values):
        raise InvalidState(f"non-finite state: {list(values)}")


class PhysicsEngine:
    """Closed-form floor-bounce integrator.

    Gravity and restitution are instance configuration so tests and the
    server's params panel can swap them without touching module state.
    """

    def __init__(self, gravity: float = GRAVITY,
                 restitution: float = COEFFICIENT_OF_RESTITUTION):
        if not (math.isfinite(gravity) and gravity < 0):
            raise ValueError(f"gravity must be finite and negative, got {gravity}")
        if not 0.0 < restitution < 1.0:
            raise ValueError(f"restitution must be in (0, 1), got {restitution}")
        self.gravity = float(gravity)
        self.restitution = float(restitution)

    # ──────────────────────────────────────────
    # Trajectory math
    # ──────────────────────────────────────────
    def time_to_impact(self, y: float, vy: float) -> float:
        """Time until the ball reaches the floor.

        Finds t such that:
            0 = y + y' t + 1/2 y'' t^2
        Quadratic formula gives t = (-y' +/- sqrt(y'^2 - 2 y'' y)) / y''.
        With y'' < 0 and y >= 0 the minus branch is the root in the future.
        """
        _check_finite(y, vy)
        g = self.gravity
        return (-vy - math.sqrt(vy * vy - 2 * g * y)) / g

    def flight_time_this_bounce(self, rebound_velocity: float) -> float:
        """time_to_impact() launched from the floor (y = 0)."""
        return (2 * rebound_velocity) / -self.gravity

    def time_to_stillness(self, rebound_velocity: float) -> float:
        """Infinite sum of flight_time_this_bounce() * r^i."""
        r = self.restitution
        return self.flight_time_this_bounce(rebound_velocity) * (1 + r / (1 - r))

    def time_for_n_bounces(self, rebound_velocity: float, bounces: int) -> float:
        """Finite sum of flight_time_this_bounce() * r^i for i < bounces.

            period = flight_time * (1 - r^n) / (1 - r)
        """
        if bounces == 0:
            return 0.0
        r = self.restitution
        return (self.flight_time_this_bounce(rebound_velocity)
                * (1 - r ** bounces) / (1 - r))

    def number_of_bounces_in_period(self, rebound_velocity: float,
                                    period: float) -> int:
        """Largest n with time_for_n_bounces(rv, n) <= period.

        Inverting the finite series:
            r^n = 1 - (1 - r) * period / flight_time
            n   = log(1 - (1 - r) * period / flight_time) / log(r)

        Requires rebound_velocity > 0 and period < time_to_stillness().
        """
        r = self.restitution
        fraction = 1 - (1 - r) * period / self.flight_time_this_bounce(rebound_velocity)
        return int(math.floor(math.log(fraction) / math.log(r)))

    # ──────────────────────────────────────────
    # Integration
    # ──────────────────────────────────────────
    def _free_flight(self, ball: Ball, seconds: float) -> Ball:
        """Exact kinematics with no floor contact in [0, seconds]."""
        y = ball.y + ball.vy * seconds + 0.5 * self.gravity * seconds * seconds
        return Ball(
            x=ball.x + ball.vx * seconds,
            y=max(0.0, y),
            vx=ball.vx,
            vy=ball.vy + self.gravity * seconds,
        )

    def _settles_within(self, rebound_velocity: float, seconds: float) -> bool:
        if self.time_to_stillness(rebound_velocity) <= seconds:
            return True
        # Rounding near the end of the series can push the log argument to 0.
        r = self.restitution
        return 1 - (1 - r) * seconds / self.flight_time_this_bounce(rebound_velocity) <= 0

    def _after_impact(self, ball: Ball, seconds: float) -> Ball:
        """Continue a ball sitting on the floor with upward ball.vy."""
        rebound_velocity = ball.vy
        if self._settles_within(rebound_velocity, seconds):
            # infinite impacts => grounded before the end of the period
            return Ball(ball.x + ball.vx * seconds, 0.0, ball.vx, 0.0)

        # Skip the whole bounces, then fly the last partial one.
        bounces = self.number_of_bounces_in_period(rebound_velocity, seconds)
        bounce_time = self.time_for_n_bounces(rebound_velocity, bounces)
        last_bounce = Ball(
            x=ball.x + ball.vx * bounce_time,
            y=0.0,
            vx=ball.vx,
            vy=rebound_velocity * self.restitution ** bounces,
        )
        return self._free_flight(last_bounce, seconds - bounce_time)

    def advance(self, ball: Ball, dt: float) -> Ball:
        """Return the ball state dt seconds later."""
        if not ball.is_finite():
            raise InvalidState(f"non-finite ball: {ball.as_tuple()}")
        if not math.isfinite(dt) or dt < 0:
            raise InvalidState(f"invalid time step: {dt}")
        if dt == 0:
            return ball

        tti = self.time_to_impact(ball.y, ball.vy)
        if tti > dt:
            # No impacts to worry about.
            return self._free_flight(ball, dt)

        # 1 or more impacts to worry about.
        impact = self._free_flight(ball, tti)
        rebound = Ball(impact.x, 0.0, impact.vx, -self.restitution * impact.vy)
        return self._after_impact(rebound, dt - tti)

    def advance_all(self, balls: Iterable[Ball], dt: float) -> List[Ball]:
        """advance() every ball independently."""
        return [self.advance(b, dt) for b in balls]
