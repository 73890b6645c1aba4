"""Decide which image or spread is shown for every navigation command.

All commands funnel through :meth:`PaginationEngine.move_to_index`, which
pairs two adjacent portrait images into a ``Double`` spread when the view
mode allows it and shows everything else as a ``Single``. The engine is
driven from one thread (the Tk event loop); only orientation resolution may
also run on the prefetch worker, and that is idempotent per entry.
"""

from __future__ import annotations

import enum
import logging
import os
from collections.abc import Callable
from dataclasses import dataclass, field
from pathlib import Path

from image_backend import Orientation, resolve_orientation
from sources import DataSource, ImageEntry, SourceError, load_source, path_without_extension


class ViewMode(enum.Enum):
    """User preference for pairing portrait pages."""

    SINGLE = "single"
    DOUBLE = "double"


class PageDirection(enum.Enum):
    """Side the book opens toward; only affects layout and key mirroring.

    ``RIGHT`` is a right-bound book read right to left: the lower index of a
    spread sits on the right and the Left arrow turns forward. ``LEFT`` reads
    left to right. Both name the binding side, not the flow of the pages.
    """

    LEFT = "left"
    RIGHT = "right"


@dataclass(frozen=True)
class Single:
    """One image shown alone."""

    index: int
    image: ImageEntry

    @property
    def indices(self) -> tuple[int, ...]:
        return (self.index,)


@dataclass(frozen=True)
class Double:
    """Two adjacent portrait images shown as one spread; ``index1`` is the lower."""

    index1: int
    image1: ImageEntry
    image2: ImageEntry

    @property
    def index2(self) -> int:
        return self.index1 + 1

    @property
    def indices(self) -> tuple[int, ...]:
        return (self.index1, self.index1 + 1)


DisplaySet = Single | Double


@dataclass
class NavigationState:
    """What is on screen for the active source."""

    current_index: int = 0
    displayed: DisplaySet | None = None
    active_source_path: Path | None = None
    view_mode: ViewMode = ViewMode.DOUBLE
    page_direction: PageDirection = PageDirection.RIGHT


@dataclass
class PositionLedger:
    """Last shown index per source path, kept for the lifetime of the process."""

    _positions: dict[Path, int] = field(default_factory=dict)

    def get(self, path: Path, default: int = 0) -> int:
        """Return the remembered index for ``path``."""
        return self._positions.get(path, default)

    def record(self, path: Path, index: int) -> None:
        """Remember ``index`` as the last shown page of ``path``."""
        self._positions[path] = index

    def __contains__(self, path) -> bool:
        return path in self._positions

    def __len__(self) -> int:
        return len(self._positions)


def _is_portrait(orientation: Orientation) -> bool:
    # UNKNOWN pairs exactly like LANDSCAPE: never
    return orientation is Orientation.PORTRAIT


class PaginationEngine:
    """State machine mapping navigation commands to displayed pages."""

    def __init__(
        self,
        loader: Callable[[Path], DataSource] = load_source,
        resolver: Callable[[ImageEntry], Orientation] = resolve_orientation,
        ledger: PositionLedger | None = None,
        view_mode: ViewMode = ViewMode.DOUBLE,
        page_direction: PageDirection = PageDirection.RIGHT,
        on_position_changed: Callable[[NavigationState], None] | None = None,
        on_boundary_reached: Callable[[], None] | None = None,
    ):
        """Wire the engine to its loader, resolver, and notification sinks."""
        self._loader = loader
        self._resolver = resolver
        self.ledger = ledger if ledger is not None else PositionLedger()
        self.state = NavigationState(view_mode=view_mode, page_direction=page_direction)
        self.source: DataSource | None = None
        self.generation = 0
        self.on_position_changed = on_position_changed
        self.on_boundary_reached = on_boundary_reached

    @property
    def displayed(self) -> DisplaySet | None:
        return self.state.displayed

    @property
    def current_index(self) -> int:
        return self.state.current_index

    @property
    def image_count(self) -> int:
        return len(self.source.images) if self.source else 0

    @property
    def active_source_path(self) -> Path | None:
        return self.state.active_source_path

    @property
    def displayed_indices(self) -> tuple[int, ...]:
        if self.state.displayed is None:
            return ()
        return self.state.displayed.indices

    @property
    def is_first_page(self) -> bool:
        return self.state.displayed is not None and self.state.current_index == 0

    @property
    def is_last_page(self) -> bool:
        """True when the display covers the final image."""
        indices = self.displayed_indices
        return bool(indices) and indices[-1] == self.image_count - 1

    @property
    def source_path_without_extension(self) -> str:
        if self.state.active_source_path is None:
            return ""
        return path_without_extension(self.state.active_source_path)

    def _has_images(self) -> bool:
        return self.image_count > 0

    def _orientation(self, index: int) -> Orientation | None:
        """Resolve the orientation at ``index``; None when out of range."""
        if self.source is None or not 0 <= index < len(self.source.images):
            return None
        return self._resolver(self.source.images[index])

    def set_view_mode(self, mode: ViewMode) -> None:
        """Switch single/double preference and re-derive the current display."""
        if mode is self.state.view_mode:
            return
        logging.info("View mode changed to %s", mode.value)
        self.state.view_mode = mode
        if self.state.displayed is not None:
            self.move_to_index(self.state.current_index)

    def toggle_view_mode(self) -> None:
        """Flip between single and double view."""
        if self.state.view_mode is ViewMode.DOUBLE:
            self.set_view_mode(ViewMode.SINGLE)
        else:
            self.set_view_mode(ViewMode.DOUBLE)

    def set_page_direction(self, direction: PageDirection) -> None:
        self.state.page_direction = direction
        self._notify_position_changed()

    def open_source(self, path: str | Path) -> bool:
        """Load ``path`` and show its remembered page.

        Returns False and leaves the current source untouched when the path
        cannot be loaded or holds no images.
        """
        path = Path(path)
        try:
            loaded = self._loader(path)
        except (SourceError, OSError):
            logging.exception("Failed to open source: %s", path)
            return False

        if not loaded.images:
            logging.info("No images in %s; keeping current source", path)
            return False

        self.source = loaded
        self.generation += 1
        self.state = NavigationState(
            active_source_path=loaded.path,
            view_mode=self.state.view_mode,
            page_direction=self.state.page_direction,
        )

        index = min(self.ledger.get(loaded.path, 0), len(loaded.images) - 1)
        # pointing at one file inside a folder opens the folder at that file
        picked = loaded.index_of(Path(os.path.abspath(path.expanduser())))
        if picked is not None:
            index = picked

        logging.info("Opened %s at index %d (generation %d)", loaded.path, index, self.generation)
        self.move_to_index(index)
        return True

    def move_to_index(self, index: int, force_single: bool = False) -> bool:
        """Show the page starting at ``index``; out-of-range requests are ignored."""
        if self.source is None or not 0 <= index < len(self.source.images):
            return False

        images = self.source.images
        self.state.current_index = index
        if self.state.active_source_path is not None:
            self.ledger.record(self.state.active_source_path, index)

        first = images[index]
        first_orientation = self._resolver(first)
        has_next = index + 1 < len(images)

        if force_single or self.state.view_mode is ViewMode.SINGLE or not has_next:
            displayed: DisplaySet = Single(index, first)
        elif not _is_portrait(first_orientation):
            displayed = Single(index, first)
        else:
            second = images[index + 1]
            if _is_portrait(self._resolver(second)):
                displayed = Double(index, first, second)
            else:
                displayed = Single(index, first)

        self.state.displayed = displayed
        logging.info("Displaying %s", displayed.indices)
        self._notify_position_changed()
        if self.is_last_page and self.on_boundary_reached is not None:
            self.on_boundary_reached()
        return True

    def move_next_page(self) -> bool:
        """Advance past everything currently shown."""
        displayed = self.state.displayed
        if displayed is None or not self._has_images():
            return False
        return self.move_to_index(self.state.current_index + len(displayed.indices))

    def move_prev_page(self) -> bool:
        """Go back one page without re-showing the current images."""
        if self.state.displayed is None or not self._has_images():
            return False
        index = self.state.current_index
        behind1 = self._orientation(index - 1)
        if behind1 is None:
            return False
        if not _is_portrait(behind1):
            return self.move_to_index(index - 1, force_single=True)
        behind2 = self._orientation(index - 2)
        if behind2 is None or not _is_portrait(behind2):
            return self.move_to_index(index - 1, force_single=True)
        return self.move_to_index(index - 2)

    def move_next_single_image(self) -> bool:
        """Advance by exactly one image, re-deriving pairing at the new index."""
        displayed = self.state.displayed
        if displayed is None or not self._has_images():
            return False
        index = self.state.current_index
        last = self.image_count - 1
        if index >= last:
            return False
        # a spread already covering the final two images stays put
        if isinstance(displayed, Double) and index >= last - 1:
            return False
        return self.move_to_index(index + 1)

    def move_prev_single_image(self) -> bool:
        """Step back one image, recovering a spread behind a lone landscape page."""
        if self.state.displayed is None or not self._has_images():
            return False
        index = self.state.current_index
        if index < 1:
            return False
        current = self._orientation(index)
        behind1 = self._orientation(index - 1)
        behind2 = self._orientation(index - 2)
        if (
            current is not None
            and not _is_portrait(current)
            and behind2 is not None
            and _is_portrait(behind1)
            and _is_portrait(behind2)
        ):
            return self.move_to_index(index - 2)
        return self.move_to_index(index - 1)

    def move_first_page(self) -> bool:
        """Jump to the first page in the source."""
        return self.move_to_index(0)

    def move_last_page(self) -> bool:
        """Show the final image, paired with the one before it when both are portrait."""
        if not self._has_images():
            return False
        last = self.image_count - 1
        if self.state.view_mode is ViewMode.DOUBLE and last >= 1:
            if _is_portrait(self._orientation(last - 1)) and _is_portrait(self._orientation(last)):
                return self.move_to_index(last - 1)
        return self.move_to_index(last)

    def _notify_position_changed(self) -> None:
        if self.on_position_changed is not None:
            self.on_position_changed(self.state)
