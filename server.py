"""
Bouncing Balls Web Server — Layer 3 (FastAPI + WebSocket)

Serves the canvas frontend and runs the tick driver,
communicating ball state to browser clients over WebSocket.
"""

import asyncio
import json
import time
from contextlib import asynccontextmanager
from pathlib import Path

from fastapi import FastAPI, WebSocket, WebSocketDisconnect
from fastapi.responses import FileResponse
from fastapi.staticfiles import StaticFiles

from controller import BouncingBallsController, MAX_FRAME_DT
from physics import GRAVITY, COEFFICIENT_OF_RESTITUTION
import controller as _ctrl_mod

STATIC_DIR = Path(__file__).parent / "static"

# ── Controller ──────────────────────────────────────────────────────────────

ctrl = BouncingBallsController()


# ── Lifespan (startup/shutdown) ─────────────────────────────────────────────

@asynccontextmanager
async def lifespan(app: FastAPI):
    task = asyncio.create_task(game_loop())
    task.add_done_callback(_report_loop_exit)
    yield
    task.cancel()


def _report_loop_exit(task: asyncio.Task) -> None:
    """Surface a tick task that died; the app keeps serving without it."""
    if task.cancelled():
        return
    exc = task.exception()
    if exc is not None:
        print(f"[LOOP] game_loop stopped: {exc!r}")
        ctrl.status_msg = f"Simulation stopped: {exc}"


app = FastAPI(lifespan=lifespan)

# ── Client state ────────────────────────────────────────────────────────────

clients: list[WebSocket] = []

# ── Physics params (name, label, min, max, step) ────────────────────────────

PHYSICS_PARAMS = [
    ("GRAVITY",                    "Gravity",      -5000.0, -50.0, 50.0),
    ("COEFFICIENT_OF_RESTITUTION", "Restitution",   0.05,    0.95,  0.05),
    ("SCATTER",                    "Scatter",       0.0,   1000.0, 10.0),
]

PARAM_DEFAULTS = {
    "GRAVITY": GRAVITY,
    "COEFFICIENT_OF_RESTITUTION": COEFFICIENT_OF_RESTITUTION,
    "SCATTER": _ctrl_mod.SCATTER,
}

# ── Async tick driver ───────────────────────────────────────────────────────

TARGET_FPS = 60
FRAME_DT = 1.0 / TARGET_FPS


async def game_loop():
    """Main loop: feed elapsed real time to the controller at ~60 fps."""
    last_time = time.perf_counter()

    while True:
        now = time.perf_counter()
        dt = now - last_time
        last_time = now
        if dt > MAX_FRAME_DT:
            dt = MAX_FRAME_DT

        ctrl.step(dt)

        if clients:
            await broadcast(_build_frame_message())
        else:
            ctrl.pending_events.clear()

        elapsed = time.perf_counter() - now
        sleep_time = FRAME_DT - elapsed
        if sleep_time > 0:
            await asyncio.sleep(sleep_time)
        else:
            await asyncio.sleep(0)


async def broadcast(msg: str) -> None:
    dead: list[WebSocket] = []
    for ws in clients:
        try:
            await ws.send_text(msg)
        except Exception:
            dead.append(ws)
    for ws in dead:
        if ws in clients:
            clients.remove(ws)


def _ball_row(b) -> list:
    return [round(float(v), 3) for v in b.as_tuple()]


def _build_frame_message() -> str:
    """Serialize current state into a JSON frame message."""
    events = []
    for ev in ctrl.pending_events:
        if ev.get("type") == "spawn_ball" and "ball" in ev:
            events.append({"type": "spawn_ball", "ball": _ball_row(ev["ball"])})
        else:
            events.append(ev)
    ctrl.pending_events.clear()

    frame = {
        "type": "frame",
        "balls": [_ball_row(b) for b in ctrl.balls],
        "events": events,
        "width": ctrl.width,
        "height": ctrl.height,
        "status": ctrl.status_msg,
        "info": ctrl.info_msg,
    }
    return json.dumps(frame, separators=(',', ':'))


def _build_init_message() -> str:
    return json.dumps({
        "type": "init",
        "gravity": ctrl.engine.gravity,
        "restitution": ctrl.engine.restitution,
        "scatter": ctrl.scatter,
        "target_fps": TARGET_FPS,
        "max_frame_dt": MAX_FRAME_DT,
        "width": ctrl.width,
        "height": ctrl.height,
    })


# ── Physics params helpers ──────────────────────────────────────────────────

def _get_params_data() -> list:
    """Return all physics params with current values."""
    current = ctrl.get_params()
    result = []
    for attr, label, mn, mx, step in PHYSICS_PARAMS:
        result.append({
            "attr": attr, "label": label,
            "value": round(current[attr], 6),
            "min": mn, "max": mx, "step": step,
        })
    return result


def _adjust_param(idx: int, direction: int, fine: bool) -> dict | None:
    if not 0 <= idx < len(PHYSICS_PARAMS):
        return None
    attr, label, mn, mx, step = PHYSICS_PARAMS[idx]
    s = step / 10.0 if fine else step
    cur = ctrl.get_params()[attr]
    new_val = max(mn, min(mx, cur + direction * s))
    ctrl.set_param(attr, new_val)
    return {"type": "param_update", "index": idx, "value": round(new_val, 6)}


def _reset_params() -> None:
    for attr, dflt in PARAM_DEFAULTS.items():
        ctrl.set_param(attr, dflt)


# ── Client command dispatch ─────────────────────────────────────────────────

def handle_command(msg: dict) -> dict | None:
    """Apply one client command. Returns a direct reply, if any."""
    cmd = msg.get("cmd", "")
    if cmd == "click":
        ctrl.click(float(msg.get("x", 0.0)), float(msg.get("y", 0.0)))
    elif cmd == "resize":
        ctrl.resize(int(msg.get("width", ctrl.width)),
                    int(msg.get("height", ctrl.height)))
    elif cmd == "clear":
        ctrl.clear_balls()
    elif cmd == "execute":
        ctrl.execute_command(msg.get("text", ""))
    elif cmd == "get_state":
        return {"type": "state_json", "data": ctrl.get_state_json()}
    elif cmd == "get_params":
        return {"type": "params", "data": _get_params_data()}
    elif cmd == "adjust_param":
        return _adjust_param(int(msg.get("index", 0)),
                             int(msg.get("direction", 0)),
                             bool(msg.get("fine", False)))
    elif cmd == "reset_params":
        _reset_params()
        return {"type": "params", "data": _get_params_data()}
    return None


# ── WebSocket endpoint ──────────────────────────────────────────────────────

@app.websocket("/ws")
async def websocket_endpoint(ws: WebSocket):
    await ws.accept()
    clients.append(ws)

    await ws.send_text(_build_init_message())

    try:
        while True:
            data = await ws.receive_text()
            try:
                msg = json.loads(data)
            except json.JSONDecodeError:
                continue
            if not isinstance(msg, dict):
                continue
            try:
                reply = handle_command(msg)
            except (TypeError, ValueError) as exc:
                print(f"[WS] bad command {msg.get('cmd')!r}: {exc}")
                continue
            if reply is not None:
                await ws.send_text(json.dumps(reply))
    except WebSocketDisconnect:
        pass
    finally:
        if ws in clients:
            clients.remove(ws)


# ── Static files + root route ───────────────────────────────────────────────

app.mount("/static", StaticFiles(directory=STATIC_DIR), name="static")


@app.get("/")
async def root():
    return FileResponse(STATIC_DIR / "index.html")


# ── Run with uvicorn ────────────────────────────────────────────────────────

if __name__ == "__main__":
    import uvicorn
    uvicorn.run("server:app", host="0.0.0.0", port=8000, reload=False)
