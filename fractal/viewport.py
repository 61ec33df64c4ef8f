"""Mapping between the pixel grid and the complex plane."""

from __future__ import annotations

from dataclasses import dataclass
from typing import Iterator

import numpy as np

DEFAULT_ZOOM = 0.003333333


@dataclass(frozen=True)
class Viewport:
    """Rectangle of the complex plane covered by a rendered image."""

    top_left: complex
    bottom_right: complex

    def __iter__(self) -> Iterator[complex]:
        return iter((self.top_left, self.bottom_right))

    def step(self, width: int, height: int) -> tuple[float, float]:
        """Return the per-pixel (horizontal, vertical) step sizes."""

        x_step = abs(self.bottom_right.real - self.top_left.real) / width
        y_step = abs(self.top_left.imag - self.bottom_right.imag) / height
        return x_step, y_step


def compute_viewport(width: int, height: int, center: complex, zoom: float) -> Viewport:
    scale = DEFAULT_ZOOM / zoom
    half_height = height / 2.0 * scale
    half_width = width / 2.0 * scale
    return Viewport(
        top_left=complex(center.real - half_width, center.imag + half_height),
        bottom_right=complex(center.real + half_width, center.imag - half_height),
    )


def pixel_to_complex(viewport: Viewport, width: int, height: int, row: int, col: int) -> complex:
    x_step, y_step = viewport.step(width, height)
    x = viewport.top_left.real + float(col) * x_step
    y = viewport.top_left.imag - float(row) * y_step
    return complex(x, y)


def sample_grid(viewport: Viewport, width: int, height: int) -> tuple[np.ndarray, np.ndarray]:
    """Return the real coordinates of each column and imaginary coordinates of each row."""

    x_step, y_step = viewport.step(width, height)
    x = np.float64(viewport.top_left.real) + np.arange(width, dtype=np.float64) * np.float64(x_step)
    y = np.float64(viewport.top_left.imag) - np.arange(height, dtype=np.float64) * np.float64(y_step)
    return x, y
