"""Histogram equalized HSL coloring and pixel packing."""

from __future__ import annotations

from enum import Enum
from typing import Union

import numpy as np

from .errors import ConfigurationError, DegenerateHistogramError

SATURATION = 0.90
LUMINOSITY = 0.50
ALPHA = 255


class PixelFormat(Enum):
    """Channel order of the packed output buffer."""

    RGBA8 = "rgba8"
    BGRA8 = "bgra8"

    @classmethod
    def parse(cls, value: Union["PixelFormat", str]) -> "PixelFormat":
        if isinstance(value, cls):
            return value
        if isinstance(value, str):
            name = value.strip().lower()
            if not name.endswith("8"):
                name += "8"
            for member in cls:
                if member.value == name:
                    return member
        choices = ", ".join(member.value for member in cls)
        raise ConfigurationError(f"Unknown pixel format {value!r}. Valid choices: {choices}.")


def hsl_rgb_array(hue, sat: float, lum: float) -> np.ndarray:
    """Convert hues in degrees to 8-bit RGB triples.

    Arithmetic is carried out in float32 and every channel is truncated toward
    zero, so the output is stable across platforms. Hues of 300 degrees and
    above, including exactly 360, fall into the last sextant.
    """

    hue = np.asarray(hue, dtype=np.float32)
    sat = np.float32(sat)
    lum = np.float32(lum)
    one = np.float32(1.0)

    c = (one - np.abs(np.float32(2.0) * lum - one)) * sat
    x = c * (one - np.abs(np.fmod(hue / np.float32(60.0), np.float32(2.0)) - one))
    m = lum - c / np.float32(2.0)

    chroma = np.broadcast_to(c, x.shape)
    zero = np.zeros_like(x)
    sextant = np.fix(np.trunc(hue) / np.float32(60.0))
    conditions = [sextant == 0, sextant == 1, sextant == 2, sextant == 3, sextant == 4]

    red = np.select(conditions, [chroma, x, zero, zero, x], default=chroma)
    green = np.select(conditions, [x, chroma, chroma, x, zero], default=zero)
    blue = np.select(conditions, [zero, zero, x, chroma, chroma], default=x)

    rgb = (np.stack((red, green, blue), axis=-1) + m) * np.float32(255.0)
    return np.clip(np.trunc(rgb), 0, 255).astype(np.uint8)


def hsl_rgb(hue: float, sat: float, lum: float) -> tuple[int, int, int]:
    """Convert a single HSL color to an RGB triple.

    >>> hsl_rgb(120.0, 0.80, 0.80)
    (163, 244, 163)
    """

    red, green, blue = hsl_rgb_array(hue, sat, lum)
    return int(red), int(green), int(blue)


def accumulate_histogram(smooth: np.ndarray, max_iterations: int) -> tuple[np.ndarray, int]:
    """Count escaped samples per whole iteration.

    Samples equal to ``max_iterations`` never escaped and are left out of both
    the histogram and the escape total.
    """

    escaped = smooth < max_iterations
    bins = np.floor(smooth[escaped]).astype(np.int64)
    histogram = np.bincount(bins, minlength=max_iterations)
    return histogram, int(np.count_nonzero(escaped))


def build_hues_table(histogram: np.ndarray, escape_total: int) -> np.ndarray:
    """Cumulative normalized histogram with a trailing zero sentinel."""

    if escape_total == 0:
        raise DegenerateHistogramError("no sample escaped; the histogram cannot be normalized")
    shares = histogram.astype(np.float32) / np.float32(escape_total)
    cumulative = np.cumsum(shares, dtype=np.float32)
    return np.concatenate((cumulative, np.zeros(1, dtype=np.float32)))


def hue_for_iteration(smooth, hues: np.ndarray) -> np.ndarray:
    """Interpolate escaped continuous iteration values into hues in degrees."""

    smooth = np.asarray(smooth, dtype=np.float64)
    lo = np.floor(smooth).astype(np.int64)
    hi = np.ceil(smooth).astype(np.int64)
    frac = np.fmod(smooth, 1.0)
    position = hues[lo].astype(np.float64) * (1.0 - frac) + hues[hi].astype(np.float64) * frac
    return np.float32(360.0) - position.astype(np.float32) * np.float32(360.0)


def colorize(smooth: np.ndarray, hues: np.ndarray, max_iterations: int) -> np.ndarray:
    rgb = np.zeros(smooth.shape + (3,), dtype=np.uint8)
    escaped = smooth < max_iterations
    if np.any(escaped):
        hue = hue_for_iteration(smooth[escaped], hues)
        rgb[escaped] = hsl_rgb_array(hue, SATURATION, LUMINOSITY)
    return rgb


def pack_pixels(rgb: np.ndarray, pixel_format: PixelFormat) -> bytes:
    """Interleave RGB triples with an opaque alpha channel."""

    if pixel_format is PixelFormat.RGBA8:
        channels = rgb
    elif pixel_format is PixelFormat.BGRA8:
        channels = rgb[..., ::-1]
    else:
        raise ConfigurationError(f"Unsupported pixel format {pixel_format!r}.")
    alpha = np.full(rgb.shape[:-1] + (1,), ALPHA, dtype=np.uint8)
    return np.concatenate((channels, alpha), axis=-1).tobytes()
