"""Image decoding helpers: orientation probing and resizing for display."""

import enum
import functools
import importlib.util
import io
import logging
from pathlib import Path
from typing import TYPE_CHECKING, Any, cast

from PIL import Image

if TYPE_CHECKING:

    class VipsImage:
        """Stub for pyvips.Image to work around incomplete type stubs."""

        width: int
        height: int

        def resize(self, scale: float, kernel: str) -> "VipsImage":
            """Resize image by scale factor."""
            ...

        def write_to_buffer(self, format: str) -> bytes:
            """Write image to buffer in given format."""
            ...
else:
    try:
        from pyvips import Image as VipsImage
    except Exception:
        VipsImage = Any

HAS_PYVIPS = importlib.util.find_spec("pyvips") is not None

ImageRef = bytes | Path


class Orientation(enum.Enum):
    """Shape of an image as far as spread pairing is concerned."""

    PORTRAIT = "portrait"
    LANDSCAPE = "landscape"
    UNKNOWN = "unknown"


def orientation_from_size(width: int, height: int) -> Orientation:
    """Classify pixel dimensions; only strictly taller images are portrait."""
    return Orientation.PORTRAIT if width < height else Orientation.LANDSCAPE


def decode_dimensions(ref: ImageRef) -> tuple[int, int] | None:
    """Read (width, height) from image bytes or a file path.

    Only the header is decoded. Returns None when the data cannot be read.
    """
    try:
        if HAS_PYVIPS:
            return _dimensions_with_pyvips(ref)
        return _dimensions_with_pillow(ref)
    except Exception as e:
        logging.warning("Could not read image dimensions: %s", e)
        return None


def _dimensions_with_pyvips(ref: ImageRef) -> tuple[int, int]:
    import pyvips

    if isinstance(ref, Path):
        img = cast(VipsImage, pyvips.Image.new_from_file(str(ref)))
    else:
        img = cast(VipsImage, pyvips.Image.new_from_buffer(ref, ""))
    return img.width, img.height


def _dimensions_with_pillow(ref: ImageRef) -> tuple[int, int]:
    target = ref if isinstance(ref, Path) else io.BytesIO(ref)
    with Image.open(target) as img:
        return img.size


def resolve_orientation(entry) -> Orientation:
    """Resolve and memoize the orientation of an image entry.

    The first call decodes the image header and stores the result on
    ``entry.orientation``; later calls return the stored value. Entries whose
    dimensions cannot be read resolve to ``Orientation.UNKNOWN`` and are never
    decoded again.
    """
    if entry.orientation is not None:
        return entry.orientation
    with entry.lock:
        if entry.orientation is None:
            size = decode_dimensions(entry.source_ref)
            if size is None:
                entry.orientation = Orientation.UNKNOWN
            else:
                entry.orientation = orientation_from_size(*size)
            logging.info("Resolved orientation of %s: %s", entry.name, entry.orientation.value)
    return entry.orientation


@functools.lru_cache(maxsize=32)
def get_resized_bytes(raw_bytes: bytes, target_width: int, target_height: int) -> bytes:
    """Fit image bytes inside the target box using pyvips (fast) or Pillow (fallback)."""
    if HAS_PYVIPS:
        return _resize_with_pyvips(raw_bytes, target_width, target_height)
    return _resize_with_pillow(raw_bytes, target_width, target_height)


def get_resized_pil(raw_bytes: bytes, target_width: int, target_height: int) -> Image.Image:
    """Return a Pillow image fitted inside the target box."""
    resized = get_resized_bytes(raw_bytes, max(1, target_width), max(1, target_height))
    img = Image.open(io.BytesIO(resized))
    img.load()
    return img


def _fit_scale(width: int, height: int, box_width: int, box_height: int) -> float:
    return min(box_width / width, box_height / height)


def _resize_with_pyvips(raw_bytes: bytes, width: int, height: int) -> bytes:
    """Fast resize using libvips via pyvips."""
    import pyvips

    img: VipsImage = cast(VipsImage, pyvips.Image.new_from_buffer(raw_bytes, ""))
    scale = _fit_scale(img.width, img.height, width, height)

    resized = img.resize(scale, kernel="lanczos3")
    return resized.write_to_buffer(".png")


def _resize_with_pillow(raw_bytes: bytes, width: int, height: int) -> bytes:
    """Fallback resize using Pillow."""
    img = Image.open(io.BytesIO(raw_bytes))
    orig_w, orig_h = img.size

    scale = _fit_scale(orig_w, orig_h, width, height)
    new_w = max(1, int(orig_w * scale))
    new_h = max(1, int(orig_h * scale))

    resized = img.convert("RGB").resize((new_w, new_h), Image.Resampling.LANCZOS)
    buf = io.BytesIO()
    resized.save(buf, format="PNG")
    return buf.getvalue()
