"""Convert a single image between formats, optionally cover-resized to an exact box.

Public entry points:
  - convert_to_base64: returns a 'data:<mime>;base64,...' string
  - convert_to_disk: writes the converted image to a path (overwriting it)
  - get_supported_formats: MIME types this installation can handle

Pillow is imported lazily so that a missing install surfaces as
ImageEnvironmentError rather than an ImportError at import time.
"""

from __future__ import annotations

import base64
import io
import math
from contextlib import contextmanager
from dataclasses import dataclass
from fractions import Fraction
from pathlib import Path
from typing import IO, TYPE_CHECKING, Callable, Iterator, Union

from loguru import logger

from errors import EncodeError, FileError, TransformError
from formats import ImageFormat, get_supported_formats, map_quality, validate

if TYPE_CHECKING:
    from PIL.Image import Image

__all__ = [
    "ConversionRequest",
    "convert_to_base64",
    "convert_to_disk",
    "cover_box",
    "encode",
    "get_supported_formats",
    "resize_cover",
]

DEFAULT_FORMAT = "webp"
DEFAULT_QUALITY = 80

Destination = Union[str, Path, IO[bytes]]


@dataclass(frozen=True)
class ConversionRequest:
    file_path: str | Path
    format: str = DEFAULT_FORMAT
    quality: int = DEFAULT_QUALITY
    width: int = 0
    height: int = 0
    save_path: str | Path | None = None

    @property
    def wants_resize(self) -> bool:
        # both dimensions or neither
        return self.width > 0 and self.height > 0


# --- Resize ---
def _crop_offset(scaled: int, target: int) -> int:
    return max(0, min((scaled - target) // 2, scaled - target))


def cover_box(
    orig_width: int, orig_height: int, width: int, height: int
) -> tuple[tuple[int, int], tuple[int, int, int, int]]:
    """Compute the scaled size and centred crop box that cover width x height.

    Returns ((scaled_width, scaled_height), (left, top, right, bottom)).
    """
    if orig_width <= 0 or orig_height <= 0:
        raise TransformError(f"Cannot resize an image of size {orig_width}x{orig_height}")

    scale = max(Fraction(width, orig_width), Fraction(height, orig_height))
    scaled_width = max(width, math.ceil(orig_width * scale))
    scaled_height = max(height, math.ceil(orig_height * scale))

    x = _crop_offset(scaled_width, width)
    y = _crop_offset(scaled_height, height)
    return (scaled_width, scaled_height), (x, y, x + width, y + height)


def resize_cover(image: Image, width: int, height: int) -> Image:
    """Scale image to fill width x height, then centre-crop the overflow.

    Returns a new image; the caller still owns (and must close) the input.
    """
    from PIL import Image as PILImage

    scaled_size, box = cover_box(image.width, image.height, width, height)
    logger.debug(f"Cover resize {image.size} -> {scaled_size}, crop {box}")

    try:
        resized = image.resize(scaled_size, PILImage.Resampling.BICUBIC)
    except (OSError, ValueError) as exc:
        raise TransformError(f"Failed to resize image: {exc}") from exc

    try:
        cropped = resized.crop(box)
    except (OSError, ValueError) as exc:
        raise TransformError(f"Failed to crop image: {exc}") from exc
    finally:
        resized.close()

    if cropped.size != (width, height):
        cropped.close()
        raise TransformError(f"Failed to crop image to {width}x{height}")
    return cropped


# --- Encoders ---
@contextmanager
def _writable(image: Image, modes: tuple[str, ...]) -> Iterator[Image]:
    """Yield image in a mode the encoder accepts, closing any converted copy."""
    if image.mode in modes:
        yield image
        return
    converted = image.convert("RGBA" if image.has_transparency_data else "RGB")
    try:
        yield converted
    finally:
        converted.close()


def _flatten_alpha(image: Image) -> Image:
    from PIL import Image as PILImage

    # JPEG can't have alpha
    rgba = image.convert("RGBA")
    try:
        bg = PILImage.new("RGB", image.size, (255, 255, 255))
        bg.paste(rgba, mask=rgba.split()[-1])
    finally:
        rgba.close()
    return bg


def _encode_jpeg(image: Image, destination: Destination, quality: int | None = None) -> None:
    options = {} if quality is None else {"quality": quality}
    if image.has_transparency_data:
        flat = _flatten_alpha(image)
        try:
            flat.save(destination, format="JPEG", **options)
        finally:
            flat.close()
        return
    with _writable(image, ("1", "L", "RGB", "CMYK")) as im:
        im.save(destination, format="JPEG", **options)


def _encode_png(image: Image, destination: Destination, quality: int | None = None) -> None:
    # PNG is lossless; its 0-9 "quality" is the zlib compression level
    options = {} if quality is None else {"compress_level": quality}
    with _writable(image, ("1", "L", "LA", "I", "I;16", "P", "RGB", "RGBA")) as im:
        im.save(destination, format="PNG", **options)


def _encode_gif(image: Image, destination: Destination) -> None:
    image.save(destination, format="GIF")


def _encode_webp(image: Image, destination: Destination, quality: int | None = None) -> None:
    options = {} if quality is None else {"quality": quality}
    with _writable(image, ("RGB", "RGBA")) as im:
        im.save(destination, format="WEBP", **options)


def _encode_bmp(image: Image, destination: Destination) -> None:
    with _writable(image, ("1", "L", "P", "RGB", "RGBA")) as im:
        im.save(destination, format="BMP")


def _encode_avif(image: Image, destination: Destination, quality: int | None = None) -> None:
    options = {} if quality is None else {"quality": quality}
    with _writable(image, ("RGB", "RGBA")) as im:
        im.save(destination, format="AVIF", **options)


_ENCODERS: dict[ImageFormat, Callable[..., None]] = {
    ImageFormat.JPEG: _encode_jpeg,
    ImageFormat.PNG: _encode_png,
    ImageFormat.GIF: _encode_gif,
    ImageFormat.WEBP: _encode_webp,
    ImageFormat.BMP: _encode_bmp,
    ImageFormat.AVIF: _encode_avif,
}


def encode(image: Image, destination: Destination, fmt: ImageFormat, quality: int | None) -> None:
    """Encode image to a path or a binary buffer.

    The encoder is called without a quality argument when quality is None.
    """
    encoder = _ENCODERS[fmt]
    logger.debug(f"Encoding {fmt.mime} (quality={quality})")
    try:
        if quality is not None:
            encoder(image, destination, quality)
        else:
            encoder(image, destination)
    except (OSError, ValueError) as exc:
        raise EncodeError(f"Failed to encode image as {fmt.mime}: {exc}") from exc


# --- Pipeline ---
def _decode(file_path: str | Path, source: ImageFormat) -> Image:
    from PIL import Image as PILImage

    try:
        image = PILImage.open(file_path, formats=[source.pil_format])
    except (OSError, PILImage.DecompressionBombError) as exc:
        raise FileError(f"Failed to create image from {file_path}: {exc}") from exc
    try:
        image.load()
    except OSError as exc:
        image.close()
        raise FileError(f"Failed to create image from {file_path}: {exc}") from exc
    return image


@contextmanager
def _prepared_image(request: ConversionRequest) -> Iterator[tuple[Image, ImageFormat, int | None]]:
    """Validate, decode and optionally resize; the image is closed on exit."""
    source, target = validate(request.file_path, request.format)
    if request.save_path is not None and not Path(request.save_path).parent.exists():
        raise FileError(f"Output directory does not exist: {Path(request.save_path).parent}")
    quality = map_quality(request.quality, target)

    image = _decode(request.file_path, source)
    logger.debug(f"Decoded {request.file_path} ({source.mime}, {image.width}x{image.height})")
    try:
        if request.wants_resize:
            resized = resize_cover(image, request.width, request.height)
            image.close()
            image = resized
        yield image, target, quality
    finally:
        image.close()


def convert_to_base64(
    file_path: str | Path,
    format: str = DEFAULT_FORMAT,
    quality: int = DEFAULT_QUALITY,
    width: int = 0,
    height: int = 0,
) -> str:
    """Convert an image and return it as a base64 data URI.

    Args:
        file_path: Path to the source image
        format: Output format name ('webp', 'jpeg', 'jpg', 'png', ...)
        quality: 0-100, rescaled to the format's own range; ignored for GIF and BMP
        width, height: Cover-resize target; both must be > 0 to resize

    Returns:
        'data:image/<format>;base64,<payload>'

    Raises:
        ImageEnvironmentError, FormatError, FileError, TransformError, EncodeError
    """
    request = ConversionRequest(file_path, format, quality, width, height)
    buffer = io.BytesIO()
    with _prepared_image(request) as (image, target, mapped_quality):
        encode(image, buffer, target, mapped_quality)

    payload = base64.b64encode(buffer.getvalue()).decode("ascii")
    return f"data:{target.mime};base64,{payload}"


def convert_to_disk(
    file_path: str | Path,
    save_path: str | Path,
    format: str = DEFAULT_FORMAT,
    quality: int = DEFAULT_QUALITY,
    width: int = 0,
    height: int = 0,
) -> None:
    """Convert an image and write it to save_path, overwriting any existing file.

    Same arguments and errors as convert_to_base64. The output directory must
    already exist.
    """
    request = ConversionRequest(file_path, format, quality, width, height, save_path=save_path)
    with _prepared_image(request) as (image, target, mapped_quality):
        encode(image, save_path, target, mapped_quality)
    logger.debug(f"Wrote {save_path}")
