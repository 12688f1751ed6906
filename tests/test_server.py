"""
Server Tests — command dispatch, frame serialization and the WebSocket endpoint.
The tick driver is not started (no lifespan), so frames are built by hand.
"""

import sys
import os
import json
import asyncio
import random
import pytest
from fastapi.testclient import TestClient

sys.path.insert(0, os.path.join(os.path.dirname(__file__), ".."))

import server
from controller import BouncingBallsController
from physics import Ball, PhysicsEngine, InvalidState


@pytest.fixture(autouse=True)
def fresh_ctrl(monkeypatch):
    ctrl = BouncingBallsController(engine=PhysicsEngine(), rng=random.Random(0),
                                   width=800, height=600)
    monkeypatch.setattr(server, "ctrl", ctrl)
    return ctrl


class TestHandleCommand:

    def test_click_spawns_with_flipped_y(self, fresh_ctrl):
        server.handle_command({"cmd": "click", "x": 100, "y": 100})
        assert len(fresh_ctrl.balls) == 1
        assert fresh_ctrl.balls[0].y == 500.0

    def test_resize(self, fresh_ctrl):
        server.handle_command({"cmd": "resize", "width": 300, "height": 200})
        assert (fresh_ctrl.width, fresh_ctrl.height) == (300, 200)

    def test_clear(self, fresh_ctrl):
        fresh_ctrl.add_ball(10, 10)
        server.handle_command({"cmd": "clear"})
        assert fresh_ctrl.balls == []

    def test_execute(self, fresh_ctrl):
        server.handle_command({"cmd": "execute", "text": '{"cmd":"set","balls":[[1,2,3,4]]}'})
        assert fresh_ctrl.balls == [Ball(1, 2, 3, 4)]

    def test_execute_with_non_string_text(self, fresh_ctrl):
        assert server.handle_command({"cmd": "execute", "text": 5}) is None
        assert fresh_ctrl.status_msg.startswith("JSON error")

    def test_execute_save_with_non_string_file(self, fresh_ctrl):
        server.handle_command({"cmd": "execute", "text": '{"cmd":"save","file":5}'})
        assert fresh_ctrl.status_msg == "save: 'file' must be a string."

    def test_get_state(self, fresh_ctrl):
        fresh_ctrl.set_balls([[1, 2, 3, 4]])
        reply = server.handle_command({"cmd": "get_state"})
        assert reply["type"] == "state_json"
        assert json.loads(reply["data"])["balls"] == [[1, 2, 3, 4]]

    def test_get_params(self):
        reply = server.handle_command({"cmd": "get_params"})
        attrs = [p["attr"] for p in reply["data"]]
        assert attrs == ["GRAVITY", "COEFFICIENT_OF_RESTITUTION", "SCATTER"]

    def test_adjust_param_clamps(self, fresh_ctrl):
        reply = server.handle_command({"cmd": "adjust_param", "index": 1, "direction": 1})
        assert reply == {"type": "param_update", "index": 1, "value": 0.55}
        for _ in range(20):
            server.handle_command({"cmd": "adjust_param", "index": 1, "direction": 1})
        assert fresh_ctrl.engine.restitution == 0.95

    def test_adjust_param_out_of_range(self):
        assert server.handle_command({"cmd": "adjust_param", "index": 9, "direction": 1}) is None

    def test_reset_params(self, fresh_ctrl):
        fresh_ctrl.set_param("SCATTER", 1.0)
        server.handle_command({"cmd": "reset_params"})
        assert fresh_ctrl.scatter == server.PARAM_DEFAULTS["SCATTER"]

    def test_unknown_command_is_ignored(self):
        assert server.handle_command({"cmd": "dance"}) is None


class TestFrameMessage:

    def test_frame_contains_balls_and_drains_events(self, fresh_ctrl):
        fresh_ctrl.set_balls([[1, 2, 3, 4]])
        frame = json.loads(server._build_frame_message())
        assert frame["type"] == "frame"
        assert frame["balls"] == [[1, 2, 3, 4]]
        assert {"type": "spawn_ball", "ball": [1, 2, 3, 4]} in frame["events"]
        assert (frame["width"], frame["height"]) == (800, 600)
        assert fresh_ctrl.pending_events == []

    def test_init_message(self):
        init = json.loads(server._build_init_message())
        assert init["type"] == "init"
        assert init["gravity"] < 0
        assert init["target_fps"] == server.TARGET_FPS


class TestWebSocket:

    def test_init_then_reply(self):
        client = TestClient(server.app)
        with client.websocket_connect("/ws") as ws:
            assert ws.receive_json()["type"] == "init"
            ws.send_text("not json")
            ws.send_json({"cmd": "click", "x": "oops"})
            ws.send_json({"cmd": "get_params"})
            assert ws.receive_json()["type"] == "params"

    def test_bad_execute_keeps_socket_open(self, fresh_ctrl):
        client = TestClient(server.app)
        with client.websocket_connect("/ws") as ws:
            assert ws.receive_json()["type"] == "init"
            ws.send_json({"cmd": "execute", "text": {"cmd": "clear"}})
            ws.send_json({"cmd": "execute", "text": '{"cmd":"load","file":5}'})
            ws.send_json({"cmd": "get_state"})
            assert ws.receive_json()["type"] == "state_json"
        assert fresh_ctrl.status_msg.startswith("load:")

    def test_index_served(self):
        client = TestClient(server.app)
        resp = client.get("/")
        assert resp.status_code == 200
        assert "<canvas" in resp.text


class TestGameLoopLifespan:

    @staticmethod
    def _run_lifespan(seconds=0.05):
        async def run():
            async with server.lifespan(server.app):
                await asyncio.sleep(seconds)
        asyncio.run(run())

    def test_clamps_stalled_frames(self, fresh_ctrl, monkeypatch):
        seen = []
        monkeypatch.setattr(fresh_ctrl, "step", seen.append)
        ticks = iter([0.0, 10.0])
        monkeypatch.setattr(server.time, "perf_counter", lambda: next(ticks, 10.0))
        self._run_lifespan()
        assert seen
        assert max(seen) == server.MAX_FRAME_DT

    def test_dead_loop_is_reported(self, fresh_ctrl, monkeypatch, capsys):
        def failing_step(dt):
            raise InvalidState("ball went non-finite")
        monkeypatch.setattr(fresh_ctrl, "step", failing_step)
        self._run_lifespan()
        assert fresh_ctrl.status_msg == "Simulation stopped: ball went non-finite"
        assert "[LOOP]" in capsys.readouterr().out

    def test_clean_shutdown_is_silent(self, fresh_ctrl, capsys):
        self._run_lifespan(0.01)
        assert fresh_ctrl.status_msg == ""
        assert "[LOOP]" not in capsys.readouterr().out
