"""Viewer commands and the key bindings that trigger them."""

from __future__ import annotations

import enum
import logging
import os
import webbrowser
from dataclasses import dataclass
from urllib.parse import quote_plus

from navigator import SourceNavigator
from pagination import PageDirection, PaginationEngine


class AppEvent(enum.Enum):
    """Commands the viewer can issue to the engine and navigator."""

    MOVE_NEXT_PAGE = "move_next_page"
    MOVE_PREV_PAGE = "move_prev_page"
    MOVE_NEXT_SINGLE_IMAGE = "move_next_single_image"
    MOVE_PREV_SINGLE_IMAGE = "move_prev_single_image"
    MOVE_FIRST_PAGE = "move_first_page"
    MOVE_LAST_PAGE = "move_last_page"
    SWITCH_NEXT_SOURCE = "switch_next_source"
    SWITCH_PREV_SOURCE = "switch_prev_source"
    SWITCH_RANDOM_SOURCE = "switch_random_source"
    TOGGLE_VIEW_MODE = "toggle_view_mode"
    SEARCH_FILE_NAME = "search_file_name"


# Web search opened for the active source name; {query} is URL-quoted
SEARCH_URL = os.environ.get("SPREADVIEW_SEARCH_URL", "https://www.google.com/search?q={query}")

# Commands swapped when pages are read right to left
HORIZONTAL_SWITCH_PAIRS = [
    (AppEvent.MOVE_NEXT_PAGE, AppEvent.MOVE_PREV_PAGE),
    (AppEvent.MOVE_NEXT_SINGLE_IMAGE, AppEvent.MOVE_PREV_SINGLE_IMAGE),
    (AppEvent.MOVE_LAST_PAGE, AppEvent.MOVE_FIRST_PAGE),
]


@dataclass(frozen=True)
class KeyBinding:
    """A Tk keysym (plus Shift state) bound to a command."""

    keysym: str
    event: AppEvent
    shift: bool = False
    horizontal: bool = False


# Written for left-to-right reading; see horizontal_switch
DEFAULT_KEY_BINDINGS = [
    KeyBinding("Right", AppEvent.MOVE_NEXT_PAGE, horizontal=True),
    KeyBinding("Left", AppEvent.MOVE_PREV_PAGE, horizontal=True),
    KeyBinding("Right", AppEvent.MOVE_NEXT_SINGLE_IMAGE, shift=True, horizontal=True),
    KeyBinding("Left", AppEvent.MOVE_PREV_SINGLE_IMAGE, shift=True, horizontal=True),
    KeyBinding("Home", AppEvent.MOVE_FIRST_PAGE, horizontal=True),
    KeyBinding("End", AppEvent.MOVE_LAST_PAGE, horizontal=True),
    KeyBinding("Next", AppEvent.MOVE_NEXT_PAGE),
    KeyBinding("Prior", AppEvent.MOVE_PREV_PAGE),
    KeyBinding("space", AppEvent.MOVE_NEXT_PAGE),
    KeyBinding("space", AppEvent.MOVE_PREV_PAGE, shift=True),
    KeyBinding("Down", AppEvent.SWITCH_NEXT_SOURCE),
    KeyBinding("Up", AppEvent.SWITCH_PREV_SOURCE),
    KeyBinding("r", AppEvent.SWITCH_RANDOM_SOURCE),
    KeyBinding("d", AppEvent.TOGGLE_VIEW_MODE),
    KeyBinding("f", AppEvent.SEARCH_FILE_NAME),
]


def horizontal_switch(event: AppEvent) -> AppEvent:
    """Return the mirrored command, or ``event`` itself when it has no mirror."""
    for left, right in HORIZONTAL_SWITCH_PAIRS:
        if event is left:
            return right
        if event is right:
            return left
    return event


def resolve_key(
    keysym: str,
    shift: bool,
    direction: PageDirection,
    bindings: list[KeyBinding] | None = None,
) -> AppEvent | None:
    """Map a key press to a command, mirroring horizontal keys for right-to-left."""
    for binding in bindings if bindings is not None else DEFAULT_KEY_BINDINGS:
        if binding.keysym == keysym and binding.shift == shift:
            if binding.horizontal and direction is PageDirection.RIGHT:
                return horizontal_switch(binding.event)
            return binding.event
    return None


def search_file_name(engine: PaginationEngine) -> bool:
    """Open a web search for the active source's name without its extension."""
    query = engine.source_path_without_extension
    if not query:
        return False
    url = SEARCH_URL.format(query=quote_plus(query))
    logging.info("Searching the web for %s", query)
    webbrowser.open(url)
    return True


def dispatch(event: AppEvent, engine: PaginationEngine, navigator: SourceNavigator) -> bool:
    """Run a command; returns whatever the underlying operation reports."""
    if event is AppEvent.TOGGLE_VIEW_MODE:
        engine.toggle_view_mode()
        return True
    if event is AppEvent.SEARCH_FILE_NAME:
        return search_file_name(engine)
    handlers = {
        AppEvent.MOVE_NEXT_PAGE: engine.move_next_page,
        AppEvent.MOVE_PREV_PAGE: engine.move_prev_page,
        AppEvent.MOVE_NEXT_SINGLE_IMAGE: engine.move_next_single_image,
        AppEvent.MOVE_PREV_SINGLE_IMAGE: engine.move_prev_single_image,
        AppEvent.MOVE_FIRST_PAGE: engine.move_first_page,
        AppEvent.MOVE_LAST_PAGE: engine.move_last_page,
        AppEvent.SWITCH_NEXT_SOURCE: navigator.open_next_source,
        AppEvent.SWITCH_PREV_SOURCE: navigator.open_prev_source,
        AppEvent.SWITCH_RANDOM_SOURCE: navigator.open_random_source,
    }
    return handlers[event]()
