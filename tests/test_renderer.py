import math

import numpy as np
import pytest

from fractal import (
    ConfigurationError,
    Mandelbrot,
    PixelFormat,
    RenderConfig,
    compute_viewport,
    escape_time,
    evaluate_field,
    hsl_rgb,
    hsl_rgb_array,
    hue_for_iteration,
    render_frame,
    sample_grid,
)


@pytest.fixture(scope="module")
def reference_image():
    config = RenderConfig.create(100, 100, -0.0, 0.0, 0.1, 100, PixelFormat.RGBA8)
    return Mandelbrot(config).render()


def test_render_buffer_length(reference_image):
    assert len(reference_image) == 40_000


def test_center_row_is_inside_the_set(reference_image):
    for i in range(20_000, 20_040, 4):
        assert reference_image[i] == 0
        assert reference_image[i + 1] == 0
        assert reference_image[i + 2] == 0
        assert reference_image[i + 3] == 255


def test_middle_of_center_row_is_inside_the_set(reference_image):
    # columns 45-54 of row 50
    assert reference_image[20_180:20_220] == bytes([0, 0, 0, 255]) * 10


def test_escaped_pixels_use_fixed_saturation_and_luminosity():
    config = RenderConfig.create(100, 100, -0.0, 0.0, 0.1, 100)
    result = render_frame(config)
    pixels = np.frombuffer(result.pixels, dtype=np.uint8).reshape(100, 100, 4)
    escaped = result.smooth < 100
    expected = hsl_rgb_array(hue_for_iteration(result.smooth[escaped], result.hues), 0.9, 0.5)
    np.testing.assert_array_equal(pixels[escaped][:, :3], expected)
    for row, col in [(0, 0), (0, 99), (99, 50)]:
        assert escaped[row, col]
        hue = float(hue_for_iteration(result.smooth[row, col], result.hues))
        assert tuple(pixels[row, col, :3]) == hsl_rgb(hue, 0.9, 0.5)


def test_corner_pixel_is_green(reference_image):
    red, green, blue = reference_image[396], reference_image[397], reference_image[398]
    assert green > 0
    assert red < green
    assert blue < green


def test_alpha_is_always_opaque(reference_image):
    assert set(reference_image[3::4]) == {255}


@pytest.mark.parametrize("width, height", [(1, 1), (3, 7), (64, 9)])
def test_buffer_length_matches_dimensions(width, height):
    config = RenderConfig.create(width, height, -0.5, 0.0, 0.2, 30)
    assert len(Mandelbrot(config).render()) == width * height * 4


def test_repeated_renders_are_identical():
    mandelbrot = Mandelbrot(RenderConfig.create(40, 30, -0.5, 0.0, 0.3, 60))
    first = mandelbrot.render()
    second = mandelbrot.render()
    assert first == second


def test_bgra_swaps_red_and_blue():
    rgba = render_frame(RenderConfig.create(24, 16, -0.5, 0.0, 0.3, 50, "rgba8")).pixels
    bgra = render_frame(RenderConfig.create(24, 16, -0.5, 0.0, 0.3, 50, "bgra8")).pixels
    rgba = np.frombuffer(rgba, dtype=np.uint8).reshape(-1, 4)
    bgra = np.frombuffer(bgra, dtype=np.uint8).reshape(-1, 4)
    np.testing.assert_array_equal(bgra, rgba[:, [2, 1, 0, 3]])


def test_no_escape_renders_background():
    # a tiny window inside the main cardioid
    result = render_frame(RenderConfig.create(8, 6, -0.1, 0.0, 1000.0, 50))
    assert result.escape_total == 0
    assert result.hues is None
    assert result.histogram.sum() == 0
    assert result.pixels == bytes([0, 0, 0, 255]) * 48


def test_histogram_sums_to_escape_total():
    config = RenderConfig.create(50, 40, -0.5, 0.0, 0.2, 80)
    result = render_frame(config)
    assert result.histogram.shape == (80,)
    assert result.histogram.sum() == result.escape_total
    assert result.escape_total == np.count_nonzero(result.smooth < 80)
    assert result.hues.shape == (81,)
    assert result.hues[-1] == 0.0
    assert result.hues[-2] == pytest.approx(1.0, abs=1e-4)
    assert np.all(np.diff(result.hues[:-1]) >= 0)


def test_continuous_values_and_hues_stay_in_range():
    config = RenderConfig.create(60, 40, -0.75, 0.1, 0.4, 120)
    result = render_frame(config)
    assert result.smooth.shape == (40, 60)
    assert np.all(result.smooth >= 0.0)
    assert np.all(result.smooth <= 120.0)
    escaped = result.smooth[result.smooth < 120]
    hues = hue_for_iteration(escaped, result.hues)
    assert np.all(hues >= -1e-3)
    assert np.all(hues <= 360.0)


def test_result_viewport_matches_renderer():
    config = RenderConfig.create(30, 20, 0.25, -0.5, 2.0, 40)
    assert render_frame(config).viewport == Mandelbrot(config).viewport


def test_escape_time_inside_and_outside():
    assert escape_time(0j, 100) == 100.0
    assert escape_time(complex(-1.0, 0.0), 250) == 250.0
    # z1 = 2 + 2i already lies beyond the horizon
    assert escape_time(complex(2.0, 2.0), 10) == pytest.approx(2.0 - math.log10(1.5))


def test_overflowing_viewport_renders_without_error():
    # the viewport span overflows to inf, so the first row and column are nan
    result = render_frame(RenderConfig.create(2, 2, 0.0, 0.0, 3.0e-311, 10))
    assert len(result.pixels) == 16
    assert np.all(np.isfinite(result.smooth))
    assert np.all((result.smooth >= 0.0) & (result.smooth <= 10.0))
    assert result.histogram.sum() == result.escape_total
    pixels = np.frombuffer(result.pixels, dtype=np.uint8).reshape(2, 2, 4)
    assert pixels[0, 0].tolist() == [0, 0, 0, 255]


def test_escape_time_of_undefined_point_is_background():
    assert escape_time(complex(float("nan"), 0.0), 10) == 10.0


def test_escape_time_is_bounded_by_cap():
    for c in (complex(0.3, 0.5), complex(-0.75, 0.1), complex(0.26, 0.0), complex(-2.1, 0.0)):
        value = escape_time(c, 64)
        assert 0.0 <= value <= 64.0


def test_field_matches_single_point_evaluation():
    viewport = compute_viewport(12, 9, -0.6 + 0.2j, 0.5)
    x, y = sample_grid(viewport, 12, 9)
    field = evaluate_field(x, y, 90)
    assert field.smooth.shape == (9, 12)
    expected = np.array([[escape_time(complex(xr, yi), 90) for xr in x] for yi in y])
    np.testing.assert_allclose(field.smooth, expected, rtol=1e-12)
    np.testing.assert_array_equal(field.smooth == 90, field.iterations == 90)


def test_raising_the_cap_keeps_escape_counts():
    viewport = compute_viewport(40, 30, -0.75 + 0.1j, 0.5)
    x, y = sample_grid(viewport, 40, 30)
    low = evaluate_field(x, y, 40)
    high = evaluate_field(x, y, 160)
    escaped = low.iterations < 40
    assert np.any(escaped)
    np.testing.assert_array_equal(low.iterations[escaped], high.iterations[escaped])
    np.testing.assert_array_equal(low.smooth[escaped], high.smooth[escaped])
    assert np.all(high.iterations[~escaped] >= 40)


def test_config_coerces_values():
    config = RenderConfig(10, 20, 1, 2, 50, "BGRA")
    assert config.center == complex(1.0, 0.0)
    assert isinstance(config.zoom, float)
    assert config.pixel_format is PixelFormat.BGRA8


@pytest.mark.parametrize(
    "kwargs",
    [
        dict(width=0),
        dict(height=-3),
        dict(width=2.5),
        dict(zoom=0.0),
        dict(zoom=-1.0),
        dict(zoom=float("nan")),
        dict(zoom=float("inf")),
        dict(zoom=True),
        dict(zoom="2"),
        dict(max_iterations=0),
        dict(max_iterations=70_000),
        dict(max_iterations=True),
        dict(center=complex(float("inf"), 0.0)),
        dict(center="origin"),
        dict(center="1+2j"),
        dict(center=True),
        dict(pixel_format="argb8"),
    ],
)
def test_invalid_configuration_is_rejected(kwargs):
    values = dict(width=10, height=10, center=0j, zoom=1.0, max_iterations=10, pixel_format="rgba8")
    values.update(kwargs)
    with pytest.raises(ConfigurationError):
        RenderConfig(**values)
