"""
Renderer Tests — y flip, dot drawing and GIF export, no display needed.
"""

import sys
import os
import numpy as np
import pytest
from PIL import Image

sys.path.insert(0, os.path.join(os.path.dirname(__file__), ".."))

from physics import Ball
from renderer import Renderer, save_gif, BG_COLOR, DOT_COLOR


class TestRenderer:

    def test_frame_shape(self):
        frame = Renderer(120, 80).render([])
        assert frame.shape == (80, 120, 3)
        assert frame.dtype == np.uint8

    def test_clears_to_background(self):
        frame = Renderer(20, 10).render([])
        assert np.all(frame == np.array(BG_COLOR, dtype=np.uint8))

    def test_world_to_pixel_flips_y(self):
        r = Renderer(100, 1000)
        assert r.world_to_pixel(10, 20) == (10, 980)

    def test_draws_dot_at_flipped_position(self):
        frame = Renderer(100, 100).render([Ball(10, 20, 0, 0)])
        assert tuple(frame[80, 10]) == DOT_COLOR
        assert tuple(frame[20, 10]) == BG_COLOR

    def test_floor_ball_is_visible(self):
        frame = Renderer(50, 50).render([Ball(25, 0, 0, 0)])
        assert tuple(frame[49, 25]) == DOT_COLOR

    def test_identical_dots(self):
        frame = Renderer(100, 100).render([Ball(20, 50, 0, 0), Ball(70, 50, 1, 1)])
        left = frame[45:56, 15:26]
        right = frame[45:56, 65:76]
        np.testing.assert_array_equal(left, right)


class TestSaveGif:

    def test_writes_all_frames(self, tmp_path):
        r = Renderer(40, 30)
        frames = [r.render([Ball(5 + i, 10, 0, 0)]) for i in range(4)]
        path = tmp_path / "out.gif"
        save_gif(frames, str(path), fps=25)
        with Image.open(path) as img:
            assert img.size == (40, 30)
            assert img.n_frames == 4

    def test_rejects_empty(self, tmp_path):
        with pytest.raises(ValueError):
            save_gif([], str(tmp_path / "x.gif"))
