#!/usr/bin/env python3

import colorsys
from typing import Iterator, Tuple


RGB = Tuple[int, int, int]


def clamp(value, low, high):
    """Limit ``value`` to the closed range [low, high]."""
    return max(low, min(high, value))


def unit_to_byte(value: float) -> int:
    """Map a 0-1 value onto 0-255."""
    return int(round(clamp(value, 0.0, 1.0) * 255))


def hsv_transition(from_rgb: RGB, to_rgb: RGB, steps: int) -> Iterator[RGB]:
    """
    Interpolate between two colors in HSV space.

    Hue, saturation and value each move linearly from the first color
    towards the second. The first yielded color is ``from_rgb``; the target
    itself is not yielded, the last step lands one increment short of it.

    Parameters
    ----------
    from_rgb : tuple
        Start color (r, g, b), 0-255 each
    to_rgb : tuple
        End color (r, g, b), 0-255 each
    steps : int
        Number of colors to yield

    Yields
    ------
    tuple
        (r, g, b) color for each step
    """
    if steps <= 0:
        return

    start = colorsys.rgb_to_hsv(*(c / 255.0 for c in from_rgb))
    end = colorsys.rgb_to_hsv(*(c / 255.0 for c in to_rgb))
    increments = [(e - s) / steps for s, e in zip(start, end)]

    for i in range(steps):
        h, s, v = (clamp(s0 + i * inc, 0.0, 1.0) for s0, inc in zip(start, increments))
        r, g, b = colorsys.hsv_to_rgb(h, s, v)
        yield (int(round(r * 255)), int(round(g * 255)), int(round(b * 255)))
