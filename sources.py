"""Open archives, image folders, and single images as ordered page sources."""

from __future__ import annotations

import enum
import logging
import os
import re
import tarfile
import threading
import zipfile
import zlib
from dataclasses import dataclass, field
from pathlib import Path

from image_backend import ImageRef, Orientation
from perf import PerfTimer

IMAGE_EXTS = {".jpg", ".jpeg", ".png", ".gif", ".bmp", ".webp"}
ZIP_EXTS = {".zip", ".cbz"}
TAR_EXTS = {".tar", ".cbt"}
RAR_EXTS = {".rar", ".cbr"}
ARCHIVE_EXTS = ZIP_EXTS | TAR_EXTS | RAR_EXTS

# macOS resource forks stored alongside the real entries
ARCHIVE_METADATA_PREFIX = "__MACOSX/"

# Raised by zipfile and tarfile while decompressing unreadable members
ARCHIVE_READ_ERRORS = (zlib.error, RuntimeError, NotImplementedError, EOFError, OSError)


class SourceError(RuntimeError):
    """Raised when a path cannot be opened as an image source."""


class PathKind(enum.Enum):
    """What a filesystem path looks like to the loader."""

    ARCHIVE = "archive"
    IMAGE = "image"
    DIRECTORY = "directory"
    UNKNOWN = "unknown"


class SourceKind(enum.Enum):
    """Kind of an opened source; single images open their folder."""

    ARCHIVE = "archive"
    DIRECTORY = "directory"


@dataclass(eq=False)
class ImageEntry:
    """One image inside a source, with a lazily resolved orientation."""

    name: str
    source_ref: ImageRef
    orientation: Orientation | None = None
    lock: threading.Lock = field(default_factory=threading.Lock, repr=False)

    def read_bytes(self) -> bytes:
        """Return the encoded image data."""
        if isinstance(self.source_ref, Path):
            return self.source_ref.read_bytes()
        return self.source_ref


@dataclass
class DataSource:
    """Ordered images of one opened source plus its sibling sources."""

    path: Path
    kind: SourceKind
    images: list[ImageEntry]
    siblings: list[Path] = field(default_factory=list)

    def index_of(self, path: Path) -> int | None:
        """Return the index of the entry read from ``path``, if any."""
        for index, entry in enumerate(self.images):
            if entry.source_ref == path:
                return index
        return None


def natural_key(s: str):
    """Return a key for natural sorting with numeric segments."""
    # Natural sort: "10" > "2" correctly
    return [int(t) if t.isdigit() else t.casefold() for t in re.split(r"(\d+)", s)]


def is_image_name(name: str) -> bool:
    """Return True when a path looks like a supported image."""
    return Path(name).suffix.casefold() in IMAGE_EXTS


def is_archive_name(name: str) -> bool:
    """Return True when a path looks like a supported archive."""
    return Path(name).suffix.casefold() in ARCHIVE_EXTS


def classify_path(path: str | Path) -> PathKind:
    """Classify a path by extension, falling back to filesystem metadata."""
    raw = str(path)
    path = Path(path)
    if path.is_dir():
        return PathKind.DIRECTORY
    if is_archive_name(path.name):
        return PathKind.ARCHIVE
    if is_image_name(path.name):
        return PathKind.IMAGE
    if raw.endswith(("/", os.sep)):
        return PathKind.DIRECTORY
    return PathKind.UNKNOWN


def path_without_extension(path: str | Path) -> str:
    """Return the last path component without its extension.

    A trailing segment of five or more characters after the final dot is
    kept, since such a dot is not an extension separator. Directory paths
    ending in a separator give an empty string.
    """
    raw = str(path)
    if not raw or raw.endswith(("/", os.sep)):
        return ""
    name = Path(raw).name
    stem, dot, ext = name.rpartition(".")
    if not dot or len(ext) >= 5:
        return name
    return stem


def list_entries(directory: Path, kind: PathKind) -> list[Path]:
    """List non-hidden entries of ``kind`` directly inside ``directory``."""
    try:
        children = list(directory.iterdir())
    except OSError as e:
        logging.warning("Could not list %s: %s", directory, e)
        return []

    found = []
    for child in children:
        if child.name.startswith("."):
            continue
        if kind is PathKind.DIRECTORY:
            if child.is_dir():
                found.append(child)
        elif child.is_file() and classify_path(child) is kind:
            found.append(child)
    found.sort(key=lambda p: natural_key(p.name))
    return found


def _filter_archive_names(names) -> list[str]:
    kept = [
        n
        for n in names
        if not n.startswith(ARCHIVE_METADATA_PREFIX) and not n.endswith("/") and is_image_name(n)
    ]
    kept.sort(key=natural_key)
    return kept


def read_zip(path: Path) -> dict[str, bytes]:
    """Decompress the image members of a ZIP/CBZ archive."""
    try:
        with zipfile.ZipFile(path, "r") as zf:
            return {name: zf.read(name) for name in _filter_archive_names(zf.namelist())}
    except (zipfile.BadZipFile, *ARCHIVE_READ_ERRORS) as exc:
        raise SourceError(f"Could not open ZIP archive: {exc}") from exc


def read_tar(path: Path) -> dict[str, bytes]:
    """Extract the image members of a TAR/CBT archive."""
    try:
        with tarfile.open(path, "r") as tf:
            members = {m.name: m for m in tf.getmembers() if m.isfile()}
            data = {}
            for name in _filter_archive_names(members):
                handle = tf.extractfile(members[name])
                if handle is None:
                    raise SourceError(f"Could not read TAR member: {name}")
                with handle:
                    data[name] = handle.read()
            return data
    except (tarfile.TarError, *ARCHIVE_READ_ERRORS) as exc:
        raise SourceError(f"Could not open TAR archive: {exc}") from exc


def read_rar(path: Path) -> dict[str, bytes]:
    """Extract the image members of a RAR/CBR archive via unrar2-cffi."""
    from unrar.cffi import rarfile as rarfile_cffi

    try:
        rar = rarfile_cffi.RarFile(str(path))
        names = [n for n in rar.namelist() if n]
    except Exception as exc:
        raise SourceError(f"Could not open RAR archive: {exc}") from exc

    data = {}
    for name in _filter_archive_names(names):
        try:
            data[name] = rar.read(name)
        except Exception as e:
            logging.warning("Failed to extract %s: %s", name, e)
    return data


def read_archive(path: Path) -> dict[str, bytes]:
    """Decompress an archive into ``name -> bytes`` for its image members."""
    ext = path.suffix.casefold()
    if ext in ZIP_EXTS:
        return read_zip(path)
    if ext in TAR_EXTS:
        return read_tar(path)
    if ext in RAR_EXTS:
        return read_rar(path)
    raise SourceError(f"Unsupported archive type: {path.name}")


def load_archive(path: Path) -> DataSource:
    """Load an archive fully into memory as a data source."""
    with PerfTimer("load_archive", path.name):
        members = read_archive(path)
    images = [ImageEntry(name=name, source_ref=blob) for name, blob in members.items()]
    siblings = list_entries(path.parent, PathKind.ARCHIVE)
    logging.info("Loaded archive %s: %d images, %d siblings", path, len(images), len(siblings))
    return DataSource(path=path, kind=SourceKind.ARCHIVE, images=images, siblings=siblings)


def load_directory(path: Path) -> DataSource:
    """Load the images directly inside a directory as a data source."""
    if not path.is_dir():
        raise SourceError("Provided path is not a directory")

    with PerfTimer("load_directory", path.name):
        files = list_entries(path, PathKind.IMAGE)
    images = [ImageEntry(name=p.name, source_ref=p) for p in files]
    siblings = list_entries(path.parent, PathKind.DIRECTORY)
    logging.info("Loaded directory %s: %d images, %d siblings", path, len(images), len(siblings))
    return DataSource(path=path, kind=SourceKind.DIRECTORY, images=images, siblings=siblings)


def load_source(path: str | Path) -> DataSource:
    """Load a path containing a directory, archive, or image.

    A single image opens its containing directory. The returned source may
    hold zero images; callers decide what to do with an empty source.
    """
    path = Path(os.path.abspath(Path(path).expanduser()))
    kind = classify_path(path)
    logging.info("Loading %s as %s", path, kind.value)

    if kind is PathKind.ARCHIVE:
        return load_archive(path)
    if kind is PathKind.DIRECTORY:
        return load_directory(path)
    if kind is PathKind.IMAGE:
        return load_directory(path.parent)
    raise SourceError("Unsupported type. Open an archive, a directory, or an image file.")
