#!/usr/bin/env python3
"""Spread-aware image viewer for archives, image folders, and single images."""

from __future__ import annotations

import argparse
import logging
import os
import queue
import sys
import threading
import time
import tkinter as tk
from collections import OrderedDict
from collections.abc import Callable
from pathlib import Path
from tkinter import filedialog, messagebox
from typing import cast

from PIL import Image, ImageTk

from events import AppEvent, dispatch, resolve_key
from image_backend import get_resized_pil, resolve_orientation
from navigator import SourceNavigator
from pagination import (
    DisplaySet,
    NavigationState,
    PageDirection,
    PaginationEngine,
    Single,
    ViewMode,
)
from perf import PerfTimer
from sources import IMAGE_EXTS, ImageEntry

BACKGROUND = "#111111"
IMAGE_FILETYPE_PATTERN = " ".join(f"*{ext}" for ext in sorted(IMAGE_EXTS))
FILE_DIALOG_TYPES = [
    ("Archives", "*.zip *.cbz *.tar *.cbt *.rar *.cbr"),
    ("Image Files", IMAGE_FILETYPE_PATTERN),
    ("All files", "*.*"),
]

LOG_ROOT = Path(os.environ.get("SPREADVIEW_LOG_DIR", "logs")).expanduser()
LOG_PATH: Path | None = None
LOG_LEVEL = os.environ.get("SPREADVIEW_LOG_LEVEL", "INFO").upper()

# Entries past the current display whose orientation is resolved ahead of time
PREFETCH_AHEAD = 2


def _as_wm(obj: tk.Misc) -> tk.Wm:
    """Treat a Misc (Tk root) as Wm for type checking."""
    return cast(tk.Wm, obj)


def _init_logging() -> None:
    """Log to a fresh timestamped directory under ``LOG_ROOT``."""
    global LOG_PATH
    log_dir = LOG_ROOT / time.strftime("%Y%m%d-%H%M%S")
    log_dir.mkdir(parents=True, exist_ok=True)
    LOG_PATH = log_dir / "spreadview.log"
    level = logging.getLevelName(LOG_LEVEL)
    if not isinstance(level, int):
        level = logging.INFO
    logging.basicConfig(
        filename=str(LOG_PATH),
        filemode="a",
        level=level,
        format="%(asctime)s %(levelname)s [%(threadName)s] %(message)s",
    )
    logging.info("spreadview logging to %s (level %s)", LOG_PATH, logging.getLevelName(level))


class FrameCache:
    """Composed frames for recently shown spreads of the active source.

    Frames are keyed by the displayed indices, the page direction, and the
    canvas size. Asking with a newer engine generation drops every frame of
    the previous source.
    """

    def __init__(self, maxsize: int = 20):
        if maxsize <= 0:
            raise ValueError("maxsize must be positive")
        self._maxsize = maxsize
        self._generation: int | None = None
        self._frames: OrderedDict[tuple, Image.Image] = OrderedDict()

    @staticmethod
    def _key(displayed: DisplaySet, direction: PageDirection, size: tuple[int, int]) -> tuple:
        return (displayed.indices, direction, size)

    def _sync(self, generation: int) -> None:
        if generation != self._generation:
            if self._frames:
                logging.info("Dropping %d frames of generation %s", len(self._frames), self._generation)
            self._frames.clear()
            self._generation = generation

    def get(
        self, generation: int, displayed: DisplaySet, direction: PageDirection, size: tuple[int, int]
    ) -> Image.Image | None:
        self._sync(generation)
        key = self._key(displayed, direction, size)
        frame = self._frames.get(key)
        if frame is not None:
            self._frames.move_to_end(key)
        return frame

    def put(
        self,
        generation: int,
        displayed: DisplaySet,
        direction: PageDirection,
        size: tuple[int, int],
        frame: Image.Image,
    ) -> None:
        self._sync(generation)
        key = self._key(displayed, direction, size)
        self._frames[key] = frame
        self._frames.move_to_end(key)
        while len(self._frames) > self._maxsize:
            self._frames.popitem(last=False)

    def __len__(self):
        return len(self._frames)


class CommandDebouncer:
    """Collapse key repeat of one command into a single run.

    A different command arriving while one is pending runs the pending one
    first, so mixed key presses are never dropped.
    """

    def __init__(self, delay_ms: int, run: Callable[[AppEvent], None], app):
        self._delay = delay_ms
        self._run = run
        self._app = app
        self._pending: AppEvent | None = None
        self._timer_id: str | None = None

    def trigger(self, app_event: AppEvent) -> None:
        if self._timer_id is not None:
            self._app.after_cancel(self._timer_id)
            self._timer_id = None
        if self._pending is not None and self._pending is not app_event:
            self.flush()
        self._pending = app_event
        self._timer_id = self._app.after(self._delay, self.flush)

    def flush(self) -> None:
        """Run the pending command now, if any."""
        app_event, self._pending = self._pending, None
        self._timer_id = None
        if app_event is not None:
            self._run(app_event)


class OrientationWorker:
    """Background thread resolving orientations of upcoming entries.

    Requests carry the engine generation they were issued for; work for a
    source that has since been replaced is dropped.
    """

    def __init__(self, current_generation: Callable[[], int]):
        """Start the daemon thread; ``current_generation`` reports the live generation."""
        self._current_generation = current_generation
        self._queue: queue.Queue[tuple[int, ImageEntry]] = queue.Queue()
        self._thread = threading.Thread(target=self._run, daemon=True, name="OrientationWorker")
        self._thread.start()

    def request(self, generation: int, entry: ImageEntry) -> None:
        if entry.orientation is None:
            self._queue.put((generation, entry))

    def _run(self):
        while True:
            generation, entry = self._queue.get()
            try:
                if generation != self._current_generation():
                    logging.info("Dropping stale orientation request for %s", entry.name)
                    continue
                resolve_orientation(entry)
            except Exception as e:
                logging.error("Orientation worker error: %s", e)
            finally:
                self._queue.task_done()

    def join(self) -> None:
        """Block until every queued request has been handled."""
        self._queue.join()


def spread_layout(displayed: DisplaySet, direction: PageDirection) -> list[ImageEntry]:
    """Order displayed entries left to right on screen.

    Right-to-left reading puts the lower-indexed page on the right.
    """
    if isinstance(displayed, Single):
        entries = [displayed.image]
    else:
        entries = [displayed.image1, displayed.image2]
    if direction is PageDirection.RIGHT:
        entries.reverse()
    return entries


def compose_display(entries: list[ImageEntry], width: int, height: int) -> Image.Image:
    """Fit each entry into an equal slot and paste them side by side."""
    slot_width = max(1, width // len(entries))
    parts = [get_resized_pil(entry.read_bytes(), slot_width, height) for entry in entries]
    total_width = sum(p.width for p in parts)
    total_height = max(p.height for p in parts)
    canvas = Image.new("RGB", (total_width, total_height), BACKGROUND)
    x = 0
    for part in parts:
        y = (total_height - part.height) // 2
        canvas.paste(part.convert("RGB"), (x, y))
        x += part.width
    return canvas


class SpreadViewer(tk.Frame):
    """Tk front end drawing whatever the pagination engine displays."""

    def __init__(
        self,
        master: tk.Tk,
        source_path: Path,
        view_mode: ViewMode = ViewMode.DOUBLE,
        page_direction: PageDirection = PageDirection.RIGHT,
    ):
        """Build the canvas, wire key bindings, and open the initial source."""
        super().__init__(master)
        self.pack(fill=tk.BOTH, expand=True)
        self.configure(bg=BACKGROUND)
        self._fullscreen = False

        self.engine = PaginationEngine(
            view_mode=view_mode,
            page_direction=page_direction,
            on_position_changed=self._on_position_changed,
            on_boundary_reached=self._on_boundary_reached,
        )
        self.navigator = SourceNavigator(self.engine)
        self._worker = OrientationWorker(lambda: self.engine.generation)

        self.canvas = tk.Canvas(self, bg=BACKGROUND, highlightthickness=0)
        self.canvas.pack(fill=tk.BOTH, expand=True)

        # Keep reference to avoid Tk garbage-collecting the image
        self._tk_img: ImageTk.PhotoImage | None = None
        self._frame_cache = FrameCache(maxsize=20)
        self._nav_debounce = CommandDebouncer(60, self._run_event, self)

        self._bind_keys()
        self.canvas.bind("<Configure>", lambda _: self._render_current())

        if not self.engine.open_source(source_path):
            messagebox.showerror("Could not open", f"No images to show in {source_path}")
        self._update_title()

    def _bind_keys(self):
        self.bind_all("<KeyPress>", self._on_key)
        self.bind_all("<MouseWheel>", self._on_mouse_wheel)
        self.bind_all("<Button-4>", lambda e: self._nav_debounce.trigger(AppEvent.MOVE_PREV_PAGE))
        self.bind_all("<Button-5>", lambda e: self._nav_debounce.trigger(AppEvent.MOVE_NEXT_PAGE))
        self.bind_all("<Escape>", lambda e: self._quit())
        self.bind_all("q", lambda e: self._quit())
        self.bind_all("w", lambda e: self.toggle_fullscreen())
        self.bind_all("l", lambda e: self._open_dialog())

    def _on_key(self, event) -> None:
        shift = bool(event.state & 0x0001)
        app_event = resolve_key(event.keysym, shift, self.engine.state.page_direction)
        logging.info("KeyPress keysym=%s shift=%s -> %s", event.keysym, shift, app_event)
        if app_event is not None:
            self._nav_debounce.trigger(app_event)

    def _on_mouse_wheel(self, event) -> None:
        if event.delta < 0:
            self._nav_debounce.trigger(AppEvent.MOVE_NEXT_PAGE)
        elif event.delta > 0:
            self._nav_debounce.trigger(AppEvent.MOVE_PREV_PAGE)

    def _run_event(self, app_event: AppEvent) -> None:
        with PerfTimer("dispatch", app_event.value):
            dispatch(app_event, self.engine, self.navigator)
        self._update_title()

    def _on_position_changed(self, state: NavigationState) -> None:
        source = self.engine.source
        if source is not None and state.displayed is not None:
            after = state.displayed.indices[-1] + 1
            for entry in source.images[after : after + PREFETCH_AHEAD]:
                self._worker.request(self.engine.generation, entry)
        self._render_current()

    def _on_boundary_reached(self) -> None:
        logging.info("Reached the last page of %s", self.engine.active_source_path)

    def _render_current(self) -> None:
        displayed = self.engine.displayed
        self.canvas.delete("all")
        if displayed is None:
            return

        cw = max(1, self.canvas.winfo_width())
        ch = max(1, self.canvas.winfo_height())
        direction = self.engine.state.page_direction
        generation = self.engine.generation

        frame = self._frame_cache.get(generation, displayed, direction, (cw, ch))
        if frame is None:
            try:
                with PerfTimer("compose_display", str(displayed.indices)):
                    frame = compose_display(spread_layout(displayed, direction), cw, ch)
            except Exception:
                logging.exception("Failed to render %s", displayed.indices)
                return
            self._frame_cache.put(generation, displayed, direction, (cw, ch), frame)

        self._tk_img = ImageTk.PhotoImage(frame, master=self)
        self.canvas.create_image(cw // 2, ch // 2, image=self._tk_img, anchor="center")
        self.canvas.create_text(
            cw // 2, ch - 8, text=self.status_text(), fill="#888888", anchor="s"
        )
        self._update_title()

    def status_text(self) -> str:
        """Neighbouring source names for the bottom status line."""
        prev_path = self.navigator.prev_sibling
        next_path = self.navigator.next_sibling
        prev_name = prev_path.name if prev_path else "-"
        next_name = next_path.name if next_path else "-"
        return f"prev: {prev_name}    next: {next_name}"

    def title_text(self) -> str:
        path = self.engine.active_source_path
        if path is None:
            return "spreadview"
        indices = self.engine.displayed_indices
        if not indices:
            return f"spreadview - {path.name}"
        pages = "-".join(str(i + 1) for i in indices)
        return f"spreadview - {path.name} ({pages}/{self.engine.image_count})"

    def _update_title(self) -> None:
        _as_wm(self.master).title(self.title_text())

    def toggle_fullscreen(self) -> None:
        """Toggle fullscreen state."""
        self._fullscreen = not self._fullscreen
        try:
            _as_wm(self.master).attributes("-fullscreen", self._fullscreen)
        except tk.TclError:
            logging.warning("Fullscreen not supported by this window manager")

    def _open_dialog(self) -> None:
        selection = filedialog.askopenfilename(
            parent=self, title="Open", filetypes=FILE_DIALOG_TYPES
        )
        if selection and not self.engine.open_source(Path(selection)):
            messagebox.showerror("Could not open", f"No images to show in {selection}")
        self._update_title()

    def _quit(self) -> None:
        logging.info("Quit requested.")
        self.master.destroy()


def main():
    """Parse arguments and launch the viewer."""
    _init_logging()
    parser = argparse.ArgumentParser(description="Archive and folder viewer with two-page spreads")
    parser.add_argument("source", nargs="?", help="Archive, directory, or image file")
    parser.add_argument("--single", action="store_true", help="Never pair portrait pages")
    parser.add_argument(
        "--direction",
        choices=[d.value for d in PageDirection],
        default=PageDirection.RIGHT.value,
        help="Binding side of the book; right reads right to left (default: right)",
    )
    parser.add_argument("--windowed", action="store_true", help="Do not start fullscreen")
    args = parser.parse_args()

    root = tk.Tk()
    root.withdraw()

    path: Path | None = None
    if args.source:
        path = Path(args.source).expanduser()
    else:
        selection = filedialog.askopenfilename(
            parent=root, title="Open", filetypes=FILE_DIALOG_TYPES
        )
        if not selection:
            root.destroy()
            return
        path = Path(selection)

    if not path.exists():
        print(f"File not found: {path}", file=sys.stderr)
        root.destroy()
        sys.exit(1)

    if not args.windowed:
        root.attributes("-fullscreen", True)

    view_mode = ViewMode.SINGLE if args.single else ViewMode.DOUBLE
    app = SpreadViewer(root, path, view_mode=view_mode, page_direction=PageDirection(args.direction))
    app._fullscreen = not args.windowed

    root.deiconify()
    root.mainloop()


if __name__ == "__main__":
    main()
