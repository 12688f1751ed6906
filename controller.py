"""
BouncingBallsController — Layer 2 (Simulation Logic)

Owns the ball collection, viewport size and spawn randomness.
Communicates with Layer 3 (server.py / main.py) via:
  - pending_events  : rendering commands (spawn_ball, clear_balls, resize, …)

Layer 3 calls:
  ctrl.step(dt)               — advance every ball by the elapsed real time
  ctrl.click(px, py)          — pointer event in surface pixels → new ball
  ctrl.resize(w, h)           — drawing surface changed size
  ctrl.pending_events         — list of dicts to consume and act on
  ctrl.balls / width / height — read-only state for drawing
"""

import json
import math
import random
import runpy
from pathlib import Path
import numpy as np

from physics import (
    PhysicsEngine, Ball, InvalidState, GRAVITY, COEFFICIENT_OF_RESTITUTION,
)


# ── Spawn / tick defaults ─────────────────────────────────────────────────────
SCATTER: float = 200.0                       # spawn velocity scale, tuned by eye
SIMULATION_INTERVAL_IN_SECONDS: float = 0.02  # fixed tick used by headless drivers
MAX_FRAME_DT: float = 0.05                    # clamp for stalled frame drivers
GC_INTERVAL: float = 1.0                      # seconds of sim time between culls
DEFAULT_WIDTH: int = 800
DEFAULT_HEIGHT: int = 600

DEFAULT_INFO_MSG = "[Click] Spawn ball  [C] Clear"


def gaussian_approximation(rng: random.Random | None = None) -> float:
    """Approximate a standard-ish gaussian with the central limit theorem.

    This is the Irwin–Hall distribution (n = 6) shifted to mean 0, so the
    result is bounded in [-3, 3] with variance 1/2. SCATTER compensates.
    """
    rng = rng or random
    n = 6
    result = 0.0
    for _ in range(n):
        result += rng.random() - 0.5
    return result


class BouncingBallsController:
    """Layer 2: ball collection + simulation orchestration."""

    # ── Constructor ───────────────────────────────────────────────────────────

    def __init__(self, engine: PhysicsEngine | None = None,
                 rng: random.Random | None = None,
                 scatter: float = SCATTER,
                 width: int = DEFAULT_WIDTH, height: int = DEFAULT_HEIGHT):
        self.engine = engine or PhysicsEngine()
        self.rng = rng or random.Random()
        self.scatter = scatter

        self.balls: list[Ball] = []
        self.width = width
        self.height = height

        self.sim_time = 0.0
        self._gc_timer = 0.0

        # Script state
        self._last_script_path = ""
        self._last_script: dict = {}

        # Status / info messages (L3 reads these to update text)
        self.status_msg = ""
        self.info_msg = DEFAULT_INFO_MSG

        # Event queue for L3
        self.pending_events: list[dict] = []

    # ──────────────────────────────────────────────────────────────────────────
    # Main loop
    # ──────────────────────────────────────────────────────────────────────────

    @property
    def paused(self) -> bool:
        return not self.balls

    def step(self, dt: float) -> None:
        """Advance every ball by dt seconds. Called every frame by L3."""
        if self.paused:
            return
        self.balls = self.engine.advance_all(self.balls, dt)
        self.sim_time += dt

        self._gc_timer += dt
        if self._gc_timer >= GC_INTERVAL:
            self._gc_timer = 0.0
            self.garbage_collect()

    # ──────────────────────────────────────────────────────────────────────────
    # Ball management
    # ──────────────────────────────────────────────────────────────────────────

    def add_ball(self, x: float, y: float) -> Ball:
        """Spawn a ball at (x, y) with a random velocity."""
        if not (math.isfinite(x) and math.isfinite(y)) or y < 0:
            raise InvalidState(f"spawn position must be finite and above the floor: ({x}, {y})")
        ball = Ball(
            x=float(x),
            y=float(y),
            vx=self.scatter * gaussian_approximation(self.rng),
            vy=self.scatter * gaussian_approximation(self.rng),
        )
        self.balls.append(ball)
        self.pending_events.append({"type": "spawn_ball", "ball": ball})
        return ball

    def garbage_collect(self) -> int:
        """Drop balls that left the horizontal bounds (0, width). In place."""
        before = len(self.balls)
        self.balls[:] = [b for b in self.balls if 0 < b.x < self.width]
        removed = before - len(self.balls)
        if removed:
            print(f"[GC] removed {removed} ball(s), {len(self.balls)} left")
        return removed

    def clear_balls(self) -> None:
        self.balls.clear()
        self._gc_timer = 0.0
        self.pending_events.append({"type": "clear_balls"})

    def set_balls(self, balls_info) -> "BouncingBallsController":
        """Replace the collection from [[x, y, vx, vy], ...] rows."""
        balls = [Ball(*(float(v) for v in row)) for row in balls_info]
        for b in balls:
            if not b.is_finite() or b.y < 0:
                raise InvalidState(f"bad ball state: {b.as_tuple()}")
        self.balls = balls
        self.pending_events.append({"type": "clear_balls"})
        for b in self.balls:
            self.pending_events.append({"type": "spawn_ball", "ball": b})
        return self

    # ──────────────────────────────────────────────────────────────────────────
    # Viewport / input
    # ──────────────────────────────────────────────────────────────────────────

    def resize(self, width: int, height: int) -> None:
        self.width = int(width)
        self.height = int(height)
        self.pending_events.append(
            {"type": "resize", "width": self.width, "height": self.height})

    def click_to_world(self, px: float, py: float) -> tuple:
        """Surface pixel (origin top-left) → world (y = 0 at the floor)."""
        return float(px), max(0.0, float(self.height - py))

    def click(self, px: float, py: float) -> Ball:
        """Pointer click: spawn, then cull."""
        x, y = self.click_to_world(px, py)
        ball = self.add_ball(x, y)
        self.garbage_collect()
        return ball

    # ──────────────────────────────────────────────────────────────────────────
    # State export
    # ──────────────────────────────────────────────────────────────────────────

    def get_obs(self) -> np.ndarray:
        """Return the collection as an (N, 4) float array of [x, y, vx, vy]."""
        if not self.balls:
            return np.zeros((0, 4), dtype=float)
        return np.array([b.as_tuple() for b in self.balls], dtype=float)

    def get_state_json(self) -> str:
        """Return current ball state as compact single-line set-command JSON."""
        balls = [[round(v, 4) for v in b.as_tuple()] for b in self.balls]
        return json.dumps({"cmd": "set", "balls": balls}, separators=(',', ':'))

    def get_params(self) -> dict:
        return {
            "GRAVITY": self.engine.gravity,
            "COEFFICIENT_OF_RESTITUTION": self.engine.restitution,
            "SCATTER": self.scatter,
        }

    def set_param(self, name: str, value: float) -> None:
        """Update one live param. Raises ValueError on a bad name or value."""
        value = float(value)
        if name == "GRAVITY":
            self.engine = PhysicsEngine(value, self.engine.restitution)
        elif name == "COEFFICIENT_OF_RESTITUTION":
            self.engine = PhysicsEngine(self.engine.gravity, value)
        elif name == "SCATTER":
            if not math.isfinite(value) or value < 0:
                raise ValueError(f"SCATTER must be finite and non-negative, got {value}")
            self.scatter = value
        else:
            raise ValueError(f"unknown param '{name}'")

    def reset_params(self) -> None:
        self.engine = PhysicsEngine(GRAVITY, COEFFICIENT_OF_RESTITUTION)
        self.scatter = SCATTER

    # ──────────────────────────────────────────────────────────────────────────
    # JSON command console
    # ──────────────────────────────────────────────────────────────────────────

    def execute_command(self, text: str) -> None:
        """Parse a JSON command string and dispatch to handlers."""
        if not isinstance(text, str):
            self.status_msg = f"JSON error: expected command text, got {type(text).__name__}"
            return
        if not text:
            print("[CMD] execute_command: empty text")
            return
        text = text.replace('\r', '')
        try:
            data = json.loads(text)
        except json.JSONDecodeError as exc:
            print(f"[CMD] JSON parse error: {exc}")
            self.status_msg = f"JSON error: {exc}"
            return
        if not isinstance(data, dict):
            self.status_msg = "JSON error: expected an object"
            return
        cmd = str(data.get("cmd", "")).lower().strip()
        print(f"[CMD] cmd={cmd}")
        if cmd == "set":
            self._cmd_set(data)
        elif cmd == "spawn":
            self._cmd_spawn(data)
        elif cmd == "clear":
            self.clear_balls()
            self.status_msg = "Cleared."
        elif cmd == "save":
            self._cmd_save(data)
        elif cmd == "load":
            self._cmd_load(data)
        elif cmd == "params":
            self._cmd_params(data)
        else:
            self.status_msg = (f"Unknown cmd '{cmd}'. "
                               "Use set/spawn/clear/save/load/params.")

    def _cmd_set(self, data: dict) -> None:
        rows = data.get("balls", [])
        try:
            self.set_balls(rows)
        except (TypeError, ValueError) as exc:
            self.status_msg = f"set: bad balls: {exc}"
            return
        self.status_msg = f"set: {len(self.balls)} ball(s)."

    def _cmd_spawn(self, data: dict) -> None:
        try:
            x, y = float(data["x"]), float(data["y"])
            self.add_ball(x, y)
        except (KeyError, TypeError, ValueError):
            self.status_msg = "spawn: finite numeric 'x' and 'y' required."
            return
        self.status_msg = f"spawn: ({x:.1f}, {y:.1f})"

    def _cmd_save(self, data: dict) -> None:
        """save: write all ball states to a JSON file."""
        file_opt = data.get("file", "")
        if not isinstance(file_opt, str):
            self.status_msg = "save: 'file' must be a string."
            return
        if not file_opt:
            from datetime import datetime
            fname = datetime.now().strftime("%H%M%S") + "_balls.json"
        else:
            fname = file_opt if file_opt.endswith(".json") else file_opt + ".json"

        payload = {"cmd": "set", "balls": [list(b.as_tuple()) for b in self.balls]}
        try:
            with open(fname, "w", encoding="utf-8") as f:
                json.dump(payload, f, indent=2)
        except OSError as e:
            self.status_msg = f"Save error: {e}"
            return
        print(f"[CMD] save → {fname}")
        self.status_msg = f"Saved → {fname}"

    def _cmd_load(self, data: dict) -> None:
        """load: restore ball states from a JSON file saved by 'save'."""
        file_opt = data.get("file", "")
        if not isinstance(file_opt, str) or not file_opt:
            self.status_msg = "load: 'file' field required (string)."
            return
        fname = file_opt if file_opt.endswith(".json") else file_opt + ".json"
        try:
            with open(fname, "r", encoding="utf-8") as f:
                loaded = json.load(f)
        except FileNotFoundError:
            self.status_msg = f"load: not found: {fname}"
            return
        except (OSError, json.JSONDecodeError) as e:
            self.status_msg = f"Load error: {e}"
            return
        if not isinstance(loaded, dict):
            self.status_msg = f"load: {fname} is not a set command"
            return
        print(f"[CMD] load ← {fname}")
        self._cmd_set(loaded)

    def _cmd_params(self, data: dict) -> None:
        """params: update engine/spawn params by name."""
        updated, skipped = [], []
        for k, v in data.items():
            if k == "cmd":
                continue
            try:
                self.set_param(k, v)
                updated.append(f"{k}={float(v):.4g}")
            except (TypeError, ValueError) as e:
                print(f"[CMD] param {k} rejected: {e}")
                skipped.append(k)

        self.pending_events.append({"type": "refresh_params", "params": self.get_params()})
        msg = f"params: set {updated}"
        if skipped:
            msg += f"  (rejected: {skipped})"
        print(f"[CMD] {msg}")
        self.status_msg = msg

    # ──────────────────────────────────────────────────────────────────────────
    # Script system
    # ──────────────────────────────────────────────────────────────────────────

    def collect_script_files(self) -> list:
        """Return sorted list of .py files from the scripts/ dir."""
        scripts_dir = Path(__file__).parent / "scripts"
        if not scripts_dir.is_dir():
            return []
        return sorted(p for p in scripts_dir.glob("*.py") if p.name != "__init__.py")

    @staticmethod
    def parse_script(script) -> tuple:
        """Validate a spawn script dict; return (viewport, seed, clicks).

        ``viewport`` is an optional [width, height] of positive ints, ``seed``
        an optional int, ``clicks`` a list of [px, py] finite pixel pairs.
        Raises ValueError naming the first bad field.
        """
        if not isinstance(script, dict):
            raise ValueError(f"SCRIPT must be a dict, got {type(script).__name__}")

        viewport = script.get("viewport")
        if viewport is not None:
            if (not isinstance(viewport, (list, tuple)) or len(viewport) != 2
                    or not all(isinstance(v, int) and v > 0 for v in viewport)):
                raise ValueError(f"viewport must be [width, height], got {viewport!r}")
            viewport = (int(viewport[0]), int(viewport[1]))

        seed = script.get("seed")
        if seed is not None and not isinstance(seed, int):
            raise ValueError(f"seed must be an int, got {seed!r}")

        raw = script.get("clicks", [])
        if not isinstance(raw, (list, tuple)):
            raise ValueError(f"clicks must be a list, got {type(raw).__name__}")
        clicks = []
        for i, row in enumerate(raw):
            if not isinstance(row, (list, tuple)) or len(row) != 2:
                raise ValueError(f"clicks[{i}] must be [px, py], got {row!r}")
            try:
                px, py = float(row[0]), float(row[1])
            except (TypeError, ValueError):
                raise ValueError(f"clicks[{i}] must be numeric, got {row!r}") from None
            if not (math.isfinite(px) and math.isfinite(py)):
                raise ValueError(f"clicks[{i}] must be finite, got {row!r}")
            clicks.append((px, py))
        return viewport, seed, clicks

    def execute_script(self, script: dict) -> None:
        """Reset the scene and replay a spawn script's clicks.

        A script that fails validation leaves the scene untouched.
        """
        try:
            viewport, seed, clicks = self.parse_script(script)
        except ValueError as exc:
            print(f"[SCRIPT] rejected: {exc}")
            self.status_msg = f"Script error: {exc}"
            return

        self._last_script = script
        self.clear_balls()
        if viewport is not None:
            self.resize(*viewport)
        if seed is not None:
            self.rng.seed(seed)
        for px, py in clicks:
            self.click(px, py)
        self.sim_time = 0.0
        self.status_msg = f"Script: {len(clicks)} click(s) replayed."
        print(f"[SCRIPT] {self.status_msg}  balls={len(self.balls)}")

    def load_script_file(self, path: str) -> None:
        """Run a .py spawn script and replay its module-level SCRIPT dict."""
        script_path = Path(path).resolve()
        if not script_path.is_file():
            self.status_msg = f"Script not found: {script_path}"
            return
        try:
            namespace = runpy.run_path(str(script_path), run_name="__spawn_script__")
        except Exception as exc:
            # arbitrary user code; report and keep the current scene
            print(f"[SCRIPT] {script_path.name} failed: {exc!r}")
            self.status_msg = f"Script error: {exc}"
            return
        if "SCRIPT" not in namespace:
            self.status_msg = f"No SCRIPT variable in {script_path.name}"
            return
        self._last_script_path = str(script_path)
        self.execute_script(namespace["SCRIPT"])

    def reload_script(self) -> None:
        """Re-execute the last loaded script."""
        if self._last_script_path:
            self.load_script_file(self._last_script_path)
        elif self._last_script:
            self.execute_script(self._last_script)
        else:
            self.status_msg = "No script loaded yet. Call load_script_file(path)."
