"""Test configuration and fixtures for imageconverter.

Sample images are generated with Pillow into tmp_path, so no media needs to
be checked in.
"""

from pathlib import Path
from typing import Callable

import pytest
from PIL import Image

import formats

# Leading bytes of each encoded format, used to check encoder output
MAGIC = {
    "image/jpeg": lambda b: b[:3] == b"\xff\xd8\xff",
    "image/png": lambda b: b[:8] == b"\x89PNG\r\n\x1a\n",
    "image/gif": lambda b: b[:4] == b"GIF8",
    "image/webp": lambda b: b[:4] == b"RIFF" and b[8:12] == b"WEBP",
    "image/bmp": lambda b: b[:2] == b"BM",
    "image/avif": lambda b: b[4:8] == b"ftyp" and b[8:12] in (b"avif", b"avis"),
}

FILL = {"RGB": (200, 30, 30), "RGBA": (200, 30, 30, 128), "L": 128}
BLOCK = {"RGB": (0, 0, 255), "RGBA": (0, 0, 255, 255), "L": 0}


# ============================================================================
# Helpers
# ============================================================================


def require(mime: str) -> None:
    """Skip the calling test when this Pillow build cannot handle mime."""
    if mime not in formats.get_supported_formats():
        pytest.skip(f"{mime} not supported by this Pillow build")


# ============================================================================
# Function-Scoped Fixtures (Run Per Test)
# ============================================================================


@pytest.fixture(autouse=True)
def fresh_capability_cache(monkeypatch: pytest.MonkeyPatch):
    """Start each test with an empty capability cache."""
    monkeypatch.setattr(formats, "_types_supported", None)


@pytest.fixture
def make_image(tmp_path: Path) -> Callable[..., Path]:
    """Factory writing a small generated image and returning its path."""

    def _make(
        name: str = "sample.png",
        size: tuple[int, int] = (100, 50),
        mode: str = "RGB",
        pil_format: str | None = None,
    ) -> Path:
        path = tmp_path / name
        with Image.new(mode, size, FILL[mode]) as im:
            # a contrasting block so resampling/cropping has something to move
            im.paste(BLOCK[mode], (0, 0, max(1, size[0] // 2), max(1, size[1] // 2)))
            im.save(path, format=pil_format)
        return path

    return _make


@pytest.fixture
def sample_png(make_image) -> Path:
    """100x50 RGB PNG."""
    return make_image("sample.png", (100, 50))


@pytest.fixture
def sample_jpeg(make_image) -> Path:
    """100x50 RGB JPEG."""
    return make_image("sample.jpg", (100, 50))


@pytest.fixture
def output_dir(tmp_path: Path) -> Path:
    """Provide clean temporary directory for test outputs."""
    out = tmp_path / "output"
    out.mkdir()
    return out


@pytest.fixture
def sample_mpo(tmp_path: Path) -> Path:
    """100x50 two-frame MPO, the way cameras write multi-picture JPEGs."""
    path = tmp_path / "camera.jpg"
    with Image.new("RGB", (100, 50), FILL["RGB"]) as first, Image.new("RGB", (100, 50), BLOCK["RGB"]) as second:
        first.save(path, format="MPO", save_all=True, append_images=[second])
    return path
