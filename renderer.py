"""
Headless renderer: ball collection → RGB frames (PIL), GIF export.
World y = 0 is the floor; the image origin is top-left, so y is flipped.
"""

from typing import Iterable, List, Tuple
import numpy as np
from PIL import Image, ImageDraw

from physics import Ball

DOT_RADIUS = 2
BG_COLOR: Tuple[int, int, int] = (255, 255, 255)
DOT_COLOR: Tuple[int, int, int] = (0, 0, 0)


class Renderer:
    """Draws balls as identical dots on a cleared surface."""

    def __init__(self, width: int, height: int, dot_radius: int = DOT_RADIUS,
                 bg_color=BG_COLOR, dot_color=DOT_COLOR):
        self.width = int(width)
        self.height = int(height)
        self.dot_radius = dot_radius
        self.bg_color = bg_color
        self.dot_color = dot_color

    def world_to_pixel(self, x: float, y: float) -> Tuple[float, float]:
        return x, self.height - y

    def draw(self, balls: Iterable[Ball]) -> Image.Image:
        img = Image.new("RGB", (self.width, self.height), self.bg_color)
        draw = ImageDraw.Draw(img)
        r = self.dot_radius
        for b in balls:
            px, py = self.world_to_pixel(b.x, b.y)
            draw.ellipse([px - r, py - r, px + r, py + r], fill=self.dot_color)
        return img

    def render(self, balls: Iterable[Ball]) -> np.ndarray:
        """Render single frame → (height, width, 3) uint8."""
        return np.asarray(self.draw(balls), dtype=np.uint8)


def save_gif(frames: List[np.ndarray], path: str, fps: float = 50.0) -> None:
    """Write (H, W, 3) uint8 frames as a looping GIF."""
    if not frames:
        raise ValueError("save_gif: no frames to write")
    images = [Image.fromarray(f) for f in frames]
    duration_ms = max(1, int(round(1000.0 / fps)))
    images[0].save(path, save_all=True, append_images=images[1:],
                   duration=duration_ms, loop=0)
