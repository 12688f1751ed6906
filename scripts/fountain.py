"""Fountain — ten clicks stacked in the middle of an 800x600 viewport."""

SCRIPT = {
    "viewport": [800, 600],
    "seed": 7,
    "clicks": [[400, 300 - 15 * i] for i in range(10)],
}
