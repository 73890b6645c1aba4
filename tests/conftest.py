"""Pytest fixtures shared across all test files."""

import io
from pathlib import Path

import pytest
from PIL import Image

from pagination import PaginationEngine
from sources import DataSource, ImageEntry, SourceKind

SIZES = {"P": (10, 20), "L": (20, 10)}


def image_bytes(size=(10, 20), fmt="PNG") -> bytes:
    """Encode a solid test image of the given size."""
    img = Image.new("RGB", size, color="red")
    buf = io.BytesIO()
    img.save(buf, format=fmt)
    return buf.getvalue()


def write_image(path: Path, size=(10, 20)) -> Path:
    """Write a test image file and return its path."""
    Image.new("RGB", size, color="blue").save(path)
    return path


def entries_for(pattern: str) -> list[ImageEntry]:
    """Build entries from a pattern: P portrait, L landscape, X unreadable."""
    entries = []
    for i, kind in enumerate(pattern):
        data = image_bytes(SIZES[kind]) if kind in SIZES else b"not an image"
        entries.append(ImageEntry(name=f"{i:03d}.png", source_ref=data))
    return entries


@pytest.fixture
def build_source():
    """Return a factory for in-memory archive sources."""

    def factory(pattern: str, path: str = "/comics/book.zip", siblings=()) -> DataSource:
        return DataSource(
            path=Path(path),
            kind=SourceKind.ARCHIVE,
            images=entries_for(pattern),
            siblings=[Path(s) for s in siblings],
        )

    return factory


@pytest.fixture
def engine_for(build_source):
    """Return a factory for an engine that has opened one in-memory source."""

    def factory(pattern: str, **kwargs) -> PaginationEngine:
        source = build_source(pattern)
        engine = PaginationEngine(loader=lambda _: source, **kwargs)
        assert engine.open_source(source.path)
        return engine

    return factory
