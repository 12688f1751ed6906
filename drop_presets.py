"""
Drop Preset System
Canonical single-ball scenarios (free fall, drift, bounce, settle) that set up
a ball, run it headless and return the result dict.
"""

import numpy as np
from physics import Ball, PhysicsEngine

# Tick used when sampling a preset's trajectory
_DT = 0.02


def _run(engine: PhysicsEngine, ball: Ball, seconds: float) -> dict:
    """Advance in one call, and separately tick-by-tick for the trajectory."""
    final = engine.advance(ball, seconds)

    n_ticks = max(1, int(round(seconds / _DT)))
    tick = seconds / n_ticks
    samples = [ball.as_tuple()]
    current = ball
    for _ in range(n_ticks):
        current = engine.advance(current, tick)
        samples.append(current.as_tuple())
    return {"ball": final, "ticked": current, "trajectory": np.array(samples)}


class DropPreset:
    """Each preset: ball placement → optional run → result dict."""

    @staticmethod
    def free_fall(run=True, engine: PhysicsEngine | None = None) -> dict:
        """Dropped from 2000 px, 1 s: no floor contact yet."""
        engine = engine or PhysicsEngine()
        start = Ball(0.0, 2000.0, 0.0, 0.0)
        return DropPreset._finish(engine, start, 1.0, run)

    @staticmethod
    def drift(run=True, engine: PhysicsEngine | None = None) -> dict:
        """Grounded and at rest vertically, sliding right at 1 px/s."""
        engine = engine or PhysicsEngine()
        start = Ball(1000.0, 0.0, 1.0, 0.0)
        return DropPreset._finish(engine, start, 1.0, run)

    @staticmethod
    def bounce_to_peak(run=True, engine: PhysicsEngine | None = None) -> dict:
        """Dropped from the height that takes 2 s to fall; stops 1 s after the bounce.

        With r = 0.5 the ball is at the peak of its first rebound, h * r^2.
        """
        engine = engine or PhysicsEngine()
        h = 2 * -engine.gravity
        start = Ball(0.0, h, 0.0, 0.0)
        return DropPreset._finish(engine, start, 3.0, run)

    @staticmethod
    def settle(run=True, engine: PhysicsEngine | None = None) -> dict:
        """Thrown up and sideways, run long enough for the bounces to die out."""
        engine = engine or PhysicsEngine()
        start = Ball(100.0, 50.0, 30.0, 400.0)
        return DropPreset._finish(engine, start, 10.0, run)

    @staticmethod
    def _finish(engine: PhysicsEngine, start: Ball, seconds: float, run: bool) -> dict:
        result = {"start": start, "ball": start, "engine": engine,
                  "seconds": seconds, "elapsed": 0.0}
        if run:
            result.update(_run(engine, start, seconds))
            result["elapsed"] = seconds
        return result


PRESETS = {
    "free_fall": DropPreset.free_fall,
    "drift": DropPreset.drift,
    "bounce_to_peak": DropPreset.bounce_to_peak,
    "settle": DropPreset.settle,
}
