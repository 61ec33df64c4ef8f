"""Rendering primitives for histogram colored Mandelbrot images."""

from __future__ import annotations

import math
import numbers
from dataclasses import dataclass, field
from typing import Optional, Union

import numpy as np
import tensorflow as tf

from .color import PixelFormat, accumulate_histogram, build_hues_table, colorize, pack_pixels
from .errors import ConfigurationError, DegenerateHistogramError
from .viewport import Viewport, compute_viewport, sample_grid

HORIZON = 4.0
MAX_ITERATION_CAP = 65535


@dataclass(frozen=True)
class RenderConfig:
    """Parameters that describe a single render of the Mandelbrot set."""

    width: int
    height: int
    center: complex
    zoom: float
    max_iterations: int
    pixel_format: PixelFormat = PixelFormat.RGBA8

    def __post_init__(self) -> None:
        for name in ("width", "height"):
            value = getattr(self, name)
            if isinstance(value, bool) or not isinstance(value, (int, np.integer)) or value <= 0:
                raise ConfigurationError(f"{name} must be a positive integer, got {value!r}.")
        if isinstance(self.center, bool) or not isinstance(self.center, numbers.Complex):
            raise ConfigurationError(f"center must be a complex number, got {self.center!r}.")
        center = complex(self.center)
        if not (math.isfinite(center.real) and math.isfinite(center.imag)):
            raise ConfigurationError(f"center must be finite, got {center!r}.")
        if isinstance(self.zoom, bool) or not isinstance(self.zoom, numbers.Real):
            raise ConfigurationError(f"zoom must be a real number, got {self.zoom!r}.")
        zoom = float(self.zoom)
        if not math.isfinite(zoom) or zoom <= 0:
            raise ConfigurationError(f"zoom must be a positive finite number, got {self.zoom!r}.")
        iterations = self.max_iterations
        if isinstance(iterations, bool) or not isinstance(iterations, (int, np.integer)):
            raise ConfigurationError(f"max_iterations must be an integer, got {iterations!r}.")
        if not 0 < iterations <= MAX_ITERATION_CAP:
            raise ConfigurationError(
                f"max_iterations must be between 1 and {MAX_ITERATION_CAP}, got {iterations!r}."
            )

        object.__setattr__(self, "width", int(self.width))
        object.__setattr__(self, "height", int(self.height))
        object.__setattr__(self, "center", center)
        object.__setattr__(self, "zoom", zoom)
        object.__setattr__(self, "max_iterations", int(iterations))
        object.__setattr__(self, "pixel_format", PixelFormat.parse(self.pixel_format))

    @classmethod
    def create(
        cls,
        width: int,
        height: int,
        cx: float,
        cy: float,
        zoom: float,
        max_iterations: int,
        pixel_format: Union[PixelFormat, str] = PixelFormat.RGBA8,
    ) -> "RenderConfig":
        return cls(width, height, complex(cx, cy), zoom, max_iterations, pixel_format)


@dataclass(frozen=True)
class EscapeField:
    """Escape-time values for every sample of a grid."""

    smooth: np.ndarray
    iterations: np.ndarray


@dataclass(frozen=True)
class RenderResult:
    """Container for the pixel buffer and the working values of one render."""

    pixels: bytes
    smooth: np.ndarray
    iterations: np.ndarray
    histogram: np.ndarray
    escape_total: int
    hues: Optional[np.ndarray]
    viewport: Viewport = field(repr=False)


def escape_time(c: complex, max_iterations: int) -> float:
    """Return the continuous escape count of ``c``.

    Points that stay bounded for ``max_iterations`` steps return
    ``max_iterations`` exactly.
    """

    cr, ci = c.real, c.imag
    zr = zi = 0.0
    iterations = 0
    while zr * zr + zi * zi <= HORIZON and iterations < max_iterations:
        zr, zi = zr * zr - zi * zi + cr, zr * zi + zi * zr + ci
        iterations += 1
    if iterations == max_iterations:
        return float(max_iterations)
    modulus = math.sqrt(zr * zr + zi * zi)
    value = iterations + 1.0 - math.log10(math.log2(modulus))
    if math.isnan(value):
        return float(max_iterations)
    return max(value, 0.0)


@tf.function
def _mandelbrot_step(
    zr: tf.Tensor, zi: tf.Tensor, cr: tf.Tensor, ci: tf.Tensor, ns: tf.Tensor, active: tf.Tensor
) -> tuple[tf.Tensor, tf.Tensor, tf.Tensor, tf.Tensor]:
    """Perform a single Mandelbrot iteration for points that have not escaped."""

    zr_new = zr * zr - zi * zi + cr
    zi_new = zr * zi + zi * zr + ci
    zr = tf.where(active, zr_new, zr)
    zi = tf.where(active, zi_new, zi)
    ns = ns + tf.cast(active, tf.int32)
    norm_sqr = zr * zr + zi * zi
    new_active = tf.logical_and(active, norm_sqr <= tf.constant(HORIZON, dtype=norm_sqr.dtype))
    return zr, zi, ns, new_active


@tf.function
def _mandelbrot_run(
    cr: tf.Tensor, ci: tf.Tensor, max_iterations: tf.Tensor
) -> tuple[tf.Tensor, tf.Tensor, tf.Tensor, tf.Tensor, tf.Tensor]:
    """Iterate the Mandelbrot formula using a TensorFlow while loop."""

    max_iterations = tf.cast(max_iterations, tf.int32)
    i = tf.constant(0, dtype=tf.int32)
    zr = tf.zeros_like(cr)
    zi = tf.zeros_like(ci)
    ns = tf.zeros_like(cr, tf.int32)
    active = tf.ones_like(ns, tf.bool)

    def cond(i, zr, zi, ns, active):
        return tf.logical_and(tf.less(i, max_iterations), tf.reduce_any(active))

    def body(i, zr, zi, ns, active):
        zr, zi, ns, active = _mandelbrot_step(zr, zi, cr, ci, ns, active)
        return i + 1, zr, zi, ns, active

    return tf.while_loop(cond, body, (i, zr, zi, ns, active))


def evaluate_field(x: np.ndarray, y: np.ndarray, max_iterations: int, *, device: Optional[str] = None) -> EscapeField:
    """Evaluate the continuous escape count on the grid spanned by ``x`` and ``y``."""

    with tf.device(device if device is not None else "/CPU:0"):
        x_tf = tf.convert_to_tensor(x, dtype=tf.float64)
        y_tf = tf.convert_to_tensor(y, dtype=tf.float64)
        cr, ci = tf.meshgrid(x_tf, y_tf)
        _, zr, zi, ns, _ = _mandelbrot_run(cr, ci, tf.constant(max_iterations, dtype=tf.int32))

    zr = zr.numpy()
    zi = zi.numpy()
    iterations = np.array(ns.numpy(), copy=True)

    escaped = iterations < max_iterations
    smooth = np.full(iterations.shape, np.float64(max_iterations), dtype=np.float64)
    modulus = np.sqrt(zr[escaped] * zr[escaped] + zi[escaped] * zi[escaped])
    values = iterations[escaped].astype(np.float64) + 1.0 - np.log10(np.log2(modulus))
    smooth[escaped] = np.maximum(values, 0.0)
    # coordinates that overflowed to inf or nan are treated as background
    undefined = np.isnan(smooth)
    smooth[undefined] = max_iterations
    iterations[undefined] = max_iterations
    return EscapeField(smooth=smooth, iterations=iterations)


def render_frame(config: RenderConfig, *, device: Optional[str] = None) -> RenderResult:
    """Render ``config`` into a packed pixel buffer.

    The histogram, escape total and per-pixel values belong to this call only.
    When no sample escapes, the whole image is background.
    """

    viewport = compute_viewport(config.width, config.height, config.center, config.zoom)
    x, y = sample_grid(viewport, config.width, config.height)

    # pass 1: escape values and histogram
    escape = evaluate_field(x, y, config.max_iterations, device=device)
    histogram, escape_total = accumulate_histogram(escape.smooth, config.max_iterations)

    # pass 2: hue lookup, HSL conversion and packing
    try:
        hues = build_hues_table(histogram, escape_total)
    except DegenerateHistogramError:
        hues = None
        rgb = np.zeros(escape.smooth.shape + (3,), dtype=np.uint8)
    else:
        rgb = colorize(escape.smooth, hues, config.max_iterations)

    return RenderResult(
        pixels=pack_pixels(rgb, config.pixel_format),
        smooth=escape.smooth,
        iterations=escape.iterations,
        histogram=histogram,
        escape_total=escape_total,
        hues=hues,
        viewport=viewport,
    )


class Mandelbrot:
    """Renderer bound to one configuration.

    >>> m = Mandelbrot(RenderConfig.create(600, 400, 0.0, 0.0, 0.5, 100))
    >>> len(m.render())
    960000
    """

    def __init__(self, config: RenderConfig, *, device: Optional[str] = None) -> None:
        self.config = config
        self.device = device
        self._viewport = compute_viewport(config.width, config.height, config.center, config.zoom)

    @property
    def viewport(self) -> Viewport:
        """The (top-left, bottom-right) corners of the rendered region."""
        return self._viewport

    def render(self) -> bytes:
        return render_frame(self.config, device=self.device).pixels
