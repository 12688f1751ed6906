"""Rain — a row of clicks along the top edge, all dropping from the same height."""

SCRIPT = {
    "viewport": [800, 600],
    "seed": 42,
    "clicks": [[40 + 80 * i, 20] for i in range(10)],
}
