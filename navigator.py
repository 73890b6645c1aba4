"""Switch between sibling sources of the one currently open."""

from __future__ import annotations

import logging
import random
from collections.abc import Callable
from pathlib import Path

from pagination import PaginationEngine

# Upper bound on picks when siblings vanished from disk since listing
MAX_RANDOM_ATTEMPTS = 100


class SourceNavigator:
    """Resolve next/previous/random siblings and open them through the engine."""

    def __init__(
        self,
        engine: PaginationEngine,
        path_exists: Callable[[Path], bool] = Path.exists,
        rng: random.Random | None = None,
    ):
        """Bind to an engine; ``path_exists`` and ``rng`` are injectable for tests."""
        self._engine = engine
        self._path_exists = path_exists
        self._rng = rng or random.Random()

    def _sibling_offset(self, offset: int) -> Path | None:
        source = self._engine.source
        active = self._engine.active_source_path
        if source is None or active is None:
            return None
        try:
            position = source.siblings.index(active)
        except ValueError:
            return None
        target = position + offset
        if not 0 <= target < len(source.siblings):
            return None
        return source.siblings[target]

    @property
    def prev_sibling(self) -> Path | None:
        return self._sibling_offset(-1)

    @property
    def next_sibling(self) -> Path | None:
        return self._sibling_offset(1)

    def open_next_source(self) -> bool:
        """Open the sibling after the active source, if there is one."""
        target = self.next_sibling
        if target is None:
            logging.info("No next source after %s", self._engine.active_source_path)
            return False
        return self._engine.open_source(target)

    def open_prev_source(self) -> bool:
        """Open the sibling before the active source, if there is one."""
        target = self.prev_sibling
        if target is None:
            logging.info("No previous source before %s", self._engine.active_source_path)
            return False
        return self._engine.open_source(target)

    def open_random_source(self) -> bool:
        """Open a random sibling other than the active one that still exists.

        Gives up silently after ``MAX_RANDOM_ATTEMPTS`` picks.
        """
        source = self._engine.source
        if source is None:
            return False
        active = self._engine.active_source_path
        candidates = [s for s in source.siblings if s != active]
        if not candidates:
            return False

        for attempt in range(MAX_RANDOM_ATTEMPTS):
            target = self._rng.choice(candidates)
            if self._path_exists(target):
                logging.info("Random source picked after %d attempt(s): %s", attempt + 1, target)
                return self._engine.open_source(target)
        logging.warning("No existing random source found in %d attempts", MAX_RANDOM_ATTEMPTS)
        return False
