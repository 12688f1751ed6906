"""Floor drop — three clicks just above the floor; settles almost at once."""

SCRIPT = {
    "viewport": [640, 480],
    "seed": 1,
    "clicks": [
        [160, 470],
        [320, 475],
        [480, 478],
    ],
}
