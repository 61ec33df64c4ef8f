import os
import sys
import warnings
from argparse import ArgumentParser
from pathlib import Path

_VERBOSE_FLAGS = {"--verbose", "-v"}
_cli_verbose = any(arg in _VERBOSE_FLAGS for arg in sys.argv[1:])
_env_log_level = os.environ.get("TF_CPP_MIN_LOG_LEVEL")
_suppress_messages = (not _cli_verbose) and _env_log_level != "0"

if _suppress_messages and _env_log_level is None:
    os.environ["TF_CPP_MIN_LOG_LEVEL"] = "3"

if _suppress_messages:
    warnings.filterwarnings(
        "ignore",
        message=r"Protobuf gencode version .* is exactly one major version older than the runtime version .*",
        category=UserWarning,
        module="google.protobuf",
    )

VERBOSE = _cli_verbose


def log(message, *args, **kwargs):
    if VERBOSE:
        print(message, *args, **kwargs)


import tensorflow as tf

if _suppress_messages:
    tf.get_logger().setLevel("ERROR")
    for handler in tf.get_logger().handlers:
        handler.setLevel("ERROR")

import PIL.Image
import PIL.ImageDraw
import PIL.ImageFont

from fractal import ConfigurationError, PixelFormat, RenderConfig, Viewport, render_frame


def select_device() -> str:
    """Place the computation on the first visible GPU, falling back to the CPU."""

    gpus = tf.config.list_physical_devices('GPU')
    if not gpus:
        log("No GPU found, using CPU")
        return '/CPU:0'
    try:
        for gpu in gpus:
            tf.config.experimental.set_memory_growth(gpu, True)
    except RuntimeError as e:
        log(e)
        return '/CPU:0'
    log("GPU found, using %s" % gpus[0].name)
    return '/GPU:0'


def build_parser():
    parser = ArgumentParser(description='Render a histogram colored image of the Mandelbrot set.')

    parser.add_argument('--width', type=int,
                        dest='width', help='width of the image in pixels',
                        metavar='WIDTH', default=600)

    parser.add_argument('--height', type=int,
                        dest='height', help='height of the image in pixels',
                        metavar='HEIGHT', default=400)

    parser.add_argument('--x-center', type=float,
                        dest='x_center', help='real part of the point in the complex plane at the image center',
                        metavar='X_CENTER', default=0.0)

    parser.add_argument('--y-center', type=float,
                        dest='y_center', help='imaginary part of the point in the complex plane at the image center',
                        metavar='Y_CENTER', default=0.0)

    parser.add_argument('--zoom', type=float,
                        dest='zoom', help='magnification factor. Choose > 1 to zoom in, < 1 to zoom out',
                        metavar='ZOOM', default=0.5)

    parser.add_argument('--max-iterations', type=int,
                        dest='max_iterations', help='maximum number of iterations before a point is considered inside the set',
                        metavar='MAX_ITERATIONS', default=100)

    parser.add_argument('--pixel-format', type=str,
                        dest='pixel_format', help='channel order of the rendered buffer: "rgba8" or "bgra8"',
                        metavar='PIXEL_FORMAT', default='rgba8')

    parser.add_argument('--output', dest='output', type=str,
                        help='Destination image file. Defaults to mandelbrot.<format> in the working directory.')

    parser.add_argument('--format', type=str,
                        dest='format', help='file format of the output. Can be any extension supported by Pillow. Default: "png".',
                        metavar='FORMAT', default='png')

    parser.add_argument('--show-coordinates', help='overlay the viewport bounds and origin marker on the image',
                        dest='show_coordinates', action='store_true')

    parser.add_argument('-v', '--verbose', action='store_true',
                        help='Enable verbose logging, including TensorFlow and hardware diagnostics.')

    return parser


def resolve_config(opt, parser: ArgumentParser) -> RenderConfig:
    try:
        return RenderConfig.create(
            opt.width,
            opt.height,
            opt.x_center,
            opt.y_center,
            opt.zoom,
            opt.max_iterations,
            opt.pixel_format,
        )
    except ConfigurationError as exc:
        parser.error(str(exc))


def resolve_output_path(opt, parser: ArgumentParser) -> tuple[Path, str]:
    image_format = (getattr(opt, "format", "png") or "png").lower().lstrip(".")
    if not image_format:
        image_format = "png"

    output_arg = getattr(opt, "output", None)
    if not output_arg:
        return Path(f"mandelbrot.{image_format}").expanduser().resolve(), image_format

    if str(output_arg).endswith(tuple(filter(None, {os.sep, os.altsep}))):
        parser.error("--output must be a file path.")
    output_path = Path(output_arg).expanduser()
    if output_path.exists() and output_path.is_dir():
        parser.error("--output must point to a file, not a directory.")
    expected_suffix = f".{image_format}"
    if output_path.suffix:
        if output_path.suffix.lower() != expected_suffix.lower():
            parser.error(f"--output extension {output_path.suffix} does not match --format {image_format}.")
    else:
        output_path = output_path.with_suffix(expected_suffix)
    return output_path.resolve(), image_format


def _pil_format_name(ext: str) -> str:
    upper = ext.upper()
    if upper == "JPG":
        return "JPEG"
    if upper == "TIF":
        return "TIFF"
    return upper


def buffer_to_image(pixels: bytes, config: RenderConfig) -> PIL.Image.Image:
    """Wrap a packed render buffer in an RGBA Pillow image."""

    raw_mode = "BGRA" if config.pixel_format is PixelFormat.BGRA8 else "RGBA"
    return PIL.Image.frombytes("RGBA", (config.width, config.height), bytes(pixels), "raw", raw_mode)


def write_single_image(image: PIL.Image.Image, output_path: Path, image_format: str) -> None:
    """Write a single image to ``output_path`` using the provided format."""

    pil_format = _pil_format_name(image_format)
    if pil_format == "JPEG" and image.mode != "RGB":
        image = image.convert("RGB")
    output_path.parent.mkdir(parents=True, exist_ok=True)
    image.save(str(output_path), format=pil_format)


_FONT_CANDIDATES = (
    "/usr/share/fonts/truetype/dejavu/DejaVuSans.ttf",
    "/usr/share/fonts/truetype/liberation/LiberationSans-Regular.ttf",
    "/usr/share/fonts/truetype/freefont/FreeSans.ttf",
)


def _load_annotation_font(image: PIL.Image.Image, scale: float = 1.0) -> PIL.ImageFont.ImageFont:
    base = max(min(image.size), 1)
    target_size = max(12, int(round(base * 0.028 * scale)))
    for path in _FONT_CANDIDATES:
        font_path = Path(path)
        if font_path.exists():
            try:
                return PIL.ImageFont.truetype(str(font_path), target_size)
            except OSError:
                continue
    return PIL.ImageFont.load_default()


def _measure(draw: PIL.ImageDraw.ImageDraw, text: str, font: PIL.ImageFont.ImageFont) -> tuple[int, int]:
    bbox = draw.textbbox((0, 0), text, font=font)
    return int(round(bbox[2] - bbox[0])), int(round(bbox[3] - bbox[1]))


def annotate_with_viewport(image: PIL.Image.Image, viewport: Viewport, config: RenderConfig) -> PIL.Image.Image:
    """Overlay the viewport corners, center and the complex origin on ``image``."""

    if image.mode != "RGBA":
        image = image.convert("RGBA")

    draw = PIL.ImageDraw.Draw(image, "RGBA")
    font = _load_annotation_font(image)
    font_size = getattr(font, "size", 14)

    top_left, bottom_right = viewport
    lines = [
        f"X: [{top_left.real:.6g}, {bottom_right.real:.6g}]",
        f"Y: [{bottom_right.imag:.6g}, {top_left.imag:.6g}]",
        f"Center: ({config.center.real:.6g}, {config.center.imag:.6g})",
        f"Zoom: {config.zoom:.6g}",
    ]

    padding = max(8, int(round(font_size * 0.6)))
    line_spacing = max(4, int(round(font_size * 0.35)))
    sizes = [_measure(draw, line, font) for line in lines]
    text_width = max(width for width, _ in sizes)
    text_height = sum(height for _, height in sizes) + line_spacing * (len(lines) - 1)

    box_left = 12
    box_top = 12
    box_right = box_left + text_width + padding * 2
    box_bottom = box_top + text_height + padding * 2
    box_extent = min(box_right - box_left, box_bottom - box_top)
    radius = min(max(10, int(round(box_extent * 0.18))), box_extent // 2)
    draw.rounded_rectangle(
        [(box_left, box_top), (box_right, box_bottom)],
        radius=radius,
        fill=(14, 17, 32, 190),
        outline=(255, 255, 255, 45),
        width=max(1, int(round(font_size * 0.08))),
    )

    shadow = max(1, int(round(font_size * 0.1)))
    text_y = box_top + padding
    for line, (_, height) in zip(lines, sizes):
        draw.text((box_left + padding + shadow, text_y + shadow), line, font=font, fill=(0, 0, 0, 170))
        draw.text((box_left + padding, text_y), line, font=font, fill=(240, 244, 255, 255))
        text_y += height + line_spacing

    x_step, y_step = viewport.step(config.width, config.height)
    inside_x = top_left.real <= 0.0 <= bottom_right.real
    inside_y = bottom_right.imag <= 0.0 <= top_left.imag
    if inside_x and inside_y:
        origin_col = int((0.0 - top_left.real) / x_step)
        origin_row = int((top_left.imag - 0.0) / y_step)
        if 0 <= origin_col < config.width and 0 <= origin_row < config.height:
            marker = max(3, int(round(min(config.width, config.height) * 0.005)))
            halo = marker + max(1, marker // 3)
            draw.ellipse(
                [(origin_col - halo, origin_row - halo), (origin_col + halo, origin_row + halo)],
                fill=(0, 0, 0, 120),
            )
            draw.ellipse(
                [(origin_col - marker, origin_row - marker), (origin_col + marker, origin_row + marker)],
                fill=(255, 255, 255, 235),
                outline=(0, 0, 0, 180),
                width=max(1, marker // 2),
            )

    return image


def main(argv=None):
    parser = build_parser()
    opt = parser.parse_args(argv)

    global VERBOSE
    VERBOSE = bool(opt.verbose)
    log("TensorFlow version: %s" % tf.__version__)

    config = resolve_config(opt, parser)
    output_path, image_format = resolve_output_path(opt, parser)

    result = render_frame(config, device=select_device())
    top_left, bottom_right = result.viewport
    log("viewport: top-left %s, bottom-right %s" % (top_left, bottom_right))
    if result.hues is None:
        log("no point escaped within %d iterations; writing background image" % config.max_iterations)
    else:
        log("%d of %d points escaped" % (result.escape_total, config.width * config.height))

    image = buffer_to_image(result.pixels, config)
    if opt.show_coordinates:
        image = annotate_with_viewport(image, result.viewport, config)

    write_single_image(image, output_path, image_format)
    log("wrote %s" % output_path)


if __name__ == '__main__':
    main()
