"""
Bouncing Balls Recorder -- Layer 3 (headless)
Layer 3: fixed-step tick driver + PIL renderer → GIF.
Layer 2: controller.py (BouncingBallsController)
Layer 1: physics.py (PhysicsEngine)

    python main.py --clicks 20 --seconds 5 --output balls.gif
    python main.py --script scripts/fountain.py
    python main.py --preset settle --output settle.gif
"""

import argparse
import math
import random
import sys

from controller import (
    BouncingBallsController, DEFAULT_WIDTH, DEFAULT_HEIGHT,
    SIMULATION_INTERVAL_IN_SECONDS,
)
from drop_presets import PRESETS
from physics import PhysicsEngine, GRAVITY, COEFFICIENT_OF_RESTITUTION
from renderer import Renderer, save_gif


def create_argument_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        description="Bouncing balls - headless simulation recorder",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog=__doc__,
    )

    source = parser.add_argument_group("Scene")
    group = source.add_mutually_exclusive_group()
    group.add_argument("--clicks", type=int, default=10,
                       help="Number of random clicks to spawn (default: 10)")
    group.add_argument("--script", type=str, default=None,
                       help="Spawn script (.py with a SCRIPT dict)")
    group.add_argument("--preset", choices=sorted(PRESETS), default=None,
                       help="Single-ball drop preset")

    sim = parser.add_argument_group("Simulation")
    sim.add_argument("--seconds", type=float, default=5.0,
                     help="Simulated duration (default: 5.0)")
    sim.add_argument("--fps", type=float, default=1.0 / SIMULATION_INTERVAL_IN_SECONDS,
                     help="Ticks per second, one frame per tick (default: 50)")
    sim.add_argument("--gravity", type=float, default=GRAVITY,
                     help=f"Gravity, negative (default: {GRAVITY})")
    sim.add_argument("--restitution", type=float, default=COEFFICIENT_OF_RESTITUTION,
                     help=f"Restitution in (0, 1) (default: {COEFFICIENT_OF_RESTITUTION})")
    sim.add_argument("--seed", type=int, default=None, help="Random seed")

    out = parser.add_argument_group("Output")
    out.add_argument("--width", type=int, default=DEFAULT_WIDTH)
    out.add_argument("--height", type=int, default=DEFAULT_HEIGHT)
    out.add_argument("--output", type=str, default="balls.gif",
                     help="GIF path (default: balls.gif)")
    return parser


def build_controller(args) -> BouncingBallsController:
    engine = PhysicsEngine(args.gravity, args.restitution)
    rng = random.Random(args.seed)
    ctrl = BouncingBallsController(engine=engine, rng=rng,
                                   width=args.width, height=args.height)

    if args.script:
        ctrl.load_script_file(args.script)
    elif args.preset:
        start = PRESETS[args.preset](run=False, engine=engine)["start"]
        ctrl.set_balls([start.as_tuple()])
    else:
        for _ in range(args.clicks):
            ctrl.click(rng.uniform(0, ctrl.width), rng.uniform(0, ctrl.height / 2))
    return ctrl


def record(ctrl: BouncingBallsController, seconds: float, fps: float) -> list:
    """Tick the controller at 1/fps and render one frame per tick."""
    renderer = Renderer(ctrl.width, ctrl.height)
    dt = 1.0 / fps
    frames = [renderer.render(ctrl.balls)]
    for _ in range(int(round(seconds * fps))):
        ctrl.step(dt)
        frames.append(renderer.render(ctrl.balls))
        ctrl.pending_events.clear()
    return frames


def parse_args(argv=None) -> argparse.Namespace:
    parser = create_argument_parser()
    args = parser.parse_args(argv)
    if not (math.isfinite(args.fps) and args.fps > 0):
        parser.error(f"--fps must be a positive number, got {args.fps}")
    if not (math.isfinite(args.seconds) and args.seconds >= 0):
        parser.error(f"--seconds must be zero or more, got {args.seconds}")
    return args


def main(argv=None) -> int:
    args = parse_args(argv)
    try:
        ctrl = build_controller(args)
    except ValueError as exc:
        print(f"[ERR] {exc}", file=sys.stderr)
        return 2
    if ctrl.status_msg:
        print(ctrl.status_msg)

    frames = record(ctrl, args.seconds, args.fps)
    save_gif(frames, args.output, fps=args.fps)
    print(f"[REC] Saved {len(frames)} frames, {len(ctrl.balls)} ball(s) left → {args.output}")
    return 0


if __name__ == "__main__":
    sys.exit(main())
