"""Format table, runtime capability detection, quality mapping and input validation."""

from __future__ import annotations

import threading
from enum import Enum
from pathlib import Path

from loguru import logger

from errors import FileError, FormatError, ImageEnvironmentError

# --- Config ---
ALLOWED_TYPES = frozenset(
    {"image/jpeg", "image/png", "image/gif", "image/webp", "image/bmp", "image/avif"}
)
FORMAT_ALIASES = {"jpg": "jpeg"}
# Pillow reports multi-picture JPEGs (most camera files) as MPO
DETECTED_ALIASES = {"MPO": "JPEG"}
# Native library a plugin needs before it can actually decode/encode
NATIVE_FEATURES = {"JPEG": "jpg", "PNG": "zlib", "WEBP": "webp", "AVIF": "avif"}

_types_supported: frozenset[str] | None = None
_types_lock = threading.Lock()


class ImageFormat(Enum):
    """Formats the converter is willing to handle.

    Each member carries its MIME type, the Pillow format name and the ceiling
    of its native quality scale (None for formats without one).
    """

    JPEG = ("image/jpeg", "JPEG", 100)
    PNG = ("image/png", "PNG", 9)
    GIF = ("image/gif", "GIF", None)
    WEBP = ("image/webp", "WEBP", 100)
    BMP = ("image/bmp", "BMP", None)
    AVIF = ("image/avif", "AVIF", 100)

    def __init__(self, mime: str, pil_format: str, max_quality: int | None):
        self.mime = mime
        self.pil_format = pil_format
        self.max_quality = max_quality

    @classmethod
    def from_mime(cls, mime: str) -> ImageFormat:
        for member in cls:
            if member.mime == mime:
                return member
        raise FormatError(f"Format not supported: {mime}")


def normalize_format(fmt: str) -> str:
    """Turn 'WebP', 'jpg' or 'image/png' into a lowercase 'image/<name>' MIME string."""
    name = fmt.strip().lower()
    if name.startswith("image/"):
        name = name[len("image/"):]
    name = FORMAT_ALIASES.get(name, name)
    return f"image/{name}"


# --- Capability detection ---
def pillow_available() -> bool:
    try:
        from PIL import Image  # noqa: F401
    except ImportError:
        return False
    return True


def capability_report() -> dict[str, bool]:
    """Ask Pillow which registered formats can be both opened and saved.

    Keys are Pillow format names (e.g. 'WEBP'); only formats that register a
    MIME type are reported.
    """
    from PIL import Image, features

    Image.init()
    # a format backed by a third-party plugin may need a library Pillow cannot check
    known = {*features.modules, *features.codecs, *features.features}
    report: dict[str, bool] = {}
    for plugin_format in Image.MIME:
        supported = plugin_format in Image.OPEN and plugin_format in Image.SAVE
        feature = NATIVE_FEATURES.get(plugin_format)
        if supported and feature in known:
            supported = bool(features.check(feature))
        report[plugin_format] = supported
    return report


def get_supported_formats() -> frozenset[str]:
    """Return the MIME types this installation can decode and encode.

    Computed on first use and cached for the lifetime of the process.
    """
    global _types_supported
    if _types_supported is not None:
        return _types_supported

    with _types_lock:
        if _types_supported is None:
            found = set()
            for plugin_format, supported in capability_report().items():
                if not supported:
                    continue
                mime = f"image/{plugin_format.lower()}"
                if mime in ALLOWED_TYPES:
                    found.add(mime)
            _types_supported = frozenset(found)
            logger.debug(f"Supported image types: {sorted(_types_supported)}")
    return _types_supported


# --- Quality ---
def map_quality(requested: int, fmt: ImageFormat) -> int | None:
    """Rescale a 0-100 quality onto the format's native range.

    Out-of-range values are clamped. Returns None for formats that take no
    quality argument (GIF, BMP).
    """
    requested = max(0, min(100, int(requested)))
    if fmt.max_quality is None:
        return None
    # round half up: 50 -> 4.5 -> 5 on PNG's 0-9 scale
    return (requested * fmt.max_quality * 2 + 100) // 200


# --- Validation ---
def check_environment() -> None:
    if not pillow_available():
        raise ImageEnvironmentError("Pillow is not installed. Install with: pip install pillow")


def check_format(mime: str) -> ImageFormat:
    if mime not in get_supported_formats():
        raise FormatError(f"Format not supported: {mime}")
    return ImageFormat.from_mime(mime)


def check_file(file_path: str | Path) -> ImageFormat:
    """Check that file_path is an existing image of a supported type.

    Only the header is read; the pixel data is decoded later.
    """
    from PIL import Image

    path = Path(file_path)
    if not path.exists():
        raise FileError(f"File does not exist: {path}")

    try:
        with Image.open(path) as im:
            detected = im.format or ""
    except (OSError, Image.DecompressionBombError) as exc:  # UnidentifiedImageError is an OSError
        raise FileError(f"Not a valid image file: {path}") from exc

    detected = DETECTED_ALIASES.get(detected, detected)
    mime = f"image/{detected.lower()}"
    if mime not in get_supported_formats():
        raise FormatError(f"File type is not supported: {mime}")
    return ImageFormat.from_mime(mime)


def validate(file_path: str | Path, fmt: str) -> tuple[ImageFormat, ImageFormat]:
    """Run every check in order and return (source format, target format)."""
    check_environment()
    target = check_format(normalize_format(fmt))
    source = check_file(file_path)
    return source, target
