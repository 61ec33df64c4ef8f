"""Public API for histogram colored Mandelbrot rendering."""

from .color import (
    PixelFormat,
    accumulate_histogram,
    build_hues_table,
    colorize,
    hsl_rgb,
    hsl_rgb_array,
    hue_for_iteration,
    pack_pixels,
)
from .errors import ConfigurationError, DegenerateHistogramError
from .renderer import (
    EscapeField,
    Mandelbrot,
    RenderConfig,
    RenderResult,
    escape_time,
    evaluate_field,
    render_frame,
)
from .viewport import DEFAULT_ZOOM, Viewport, compute_viewport, pixel_to_complex, sample_grid

__all__ = [
    "DEFAULT_ZOOM",
    "ConfigurationError",
    "DegenerateHistogramError",
    "EscapeField",
    "Mandelbrot",
    "PixelFormat",
    "RenderConfig",
    "RenderResult",
    "Viewport",
    "accumulate_histogram",
    "build_hues_table",
    "colorize",
    "compute_viewport",
    "escape_time",
    "evaluate_field",
    "hsl_rgb",
    "hsl_rgb_array",
    "hue_for_iteration",
    "pack_pixels",
    "pixel_to_complex",
    "render_frame",
    "sample_grid",
]
