"""Tests for the Tk viewer helpers and command-line entry point."""

import logging
from pathlib import Path
from unittest.mock import MagicMock, Mock, patch

import pytest

import spreadview
from conftest import entries_for, write_image
from events import AppEvent
from navigator import SourceNavigator
from pagination import Double, PageDirection, PaginationEngine, Single, ViewMode
from spreadview import (
    CommandDebouncer,
    FrameCache,
    OrientationWorker,
    SpreadViewer,
    compose_display,
    spread_layout,
)


def test_spread_layout_right_to_left_puts_lower_page_on_right():
    first, second = entries_for("PP")
    layout = spread_layout(Double(0, first, second), PageDirection.RIGHT)
    assert layout == [second, first]


def test_spread_layout_left_to_right_keeps_order():
    first, second = entries_for("PP")
    assert spread_layout(Double(0, first, second), PageDirection.LEFT) == [first, second]
    assert spread_layout(Single(0, first), PageDirection.RIGHT) == [first]


def test_compose_display_splits_width_between_pages():
    frame = compose_display(entries_for("PP"), 100, 100)
    assert frame.size == (100, 100)

    frame = compose_display(entries_for("L"), 100, 100)
    assert frame.size == (100, 50)


def test_frame_cache_evicts_least_recently_shown():
    first, second, third = entries_for("PPP")
    cache = FrameCache(maxsize=2)
    direction = PageDirection.RIGHT
    cache.put(1, Single(0, first), direction, (100, 100), "frame-0")
    cache.put(1, Single(1, second), direction, (100, 100), "frame-1")
    assert cache.get(1, Single(0, first), direction, (100, 100)) == "frame-0"

    cache.put(1, Single(2, third), direction, (100, 100), "frame-2")

    assert cache.get(1, Single(1, second), direction, (100, 100)) is None
    assert cache.get(1, Single(0, first), direction, (100, 100)) == "frame-0"
    assert len(cache) == 2


def test_frame_cache_keys_on_layout_and_size():
    first, second = entries_for("PP")
    spread = Double(0, first, second)
    cache = FrameCache()
    cache.put(1, spread, PageDirection.RIGHT, (100, 100), "rtl")

    assert cache.get(1, spread, PageDirection.LEFT, (100, 100)) is None
    assert cache.get(1, spread, PageDirection.RIGHT, (200, 100)) is None
    assert cache.get(1, Single(0, first), PageDirection.RIGHT, (100, 100)) is None
    assert cache.get(1, Double(0, first, second), PageDirection.RIGHT, (100, 100)) == "rtl"


def test_frame_cache_drops_frames_of_previous_source():
    first = entries_for("P")[0]
    cache = FrameCache()
    cache.put(1, Single(0, first), PageDirection.RIGHT, (100, 100), "old")

    assert cache.get(2, Single(0, first), PageDirection.RIGHT, (100, 100)) is None
    assert len(cache) == 0


def test_frame_cache_rejects_non_positive_size():
    with pytest.raises(ValueError):
        FrameCache(maxsize=0)


def test_debouncer_collapses_repeats_of_one_command():
    app = Mock()
    app.after.side_effect = ["after#1", "after#2"]
    run = Mock()
    debouncer = CommandDebouncer(50, run, app)

    debouncer.trigger(AppEvent.MOVE_NEXT_PAGE)
    debouncer.trigger(AppEvent.MOVE_NEXT_PAGE)

    app.after_cancel.assert_called_once_with("after#1")
    run.assert_not_called()
    scheduled = app.after.call_args.args[1]
    scheduled()
    run.assert_called_once_with(AppEvent.MOVE_NEXT_PAGE)


def test_debouncer_runs_pending_command_before_a_different_one():
    app = Mock()
    app.after.side_effect = ["after#1", "after#2"]
    run = Mock()
    debouncer = CommandDebouncer(50, run, app)

    debouncer.trigger(AppEvent.MOVE_NEXT_PAGE)
    debouncer.trigger(AppEvent.TOGGLE_VIEW_MODE)

    run.assert_called_once_with(AppEvent.MOVE_NEXT_PAGE)
    debouncer.flush()
    assert [c.args[0] for c in run.call_args_list] == [
        AppEvent.MOVE_NEXT_PAGE,
        AppEvent.TOGGLE_VIEW_MODE,
    ]
    debouncer.flush()
    assert run.call_count == 2


def test_orientation_worker_resolves_current_generation():
    entry = entries_for("P")[0]
    worker = OrientationWorker(lambda: 3)

    worker.request(3, entry)
    worker.join()

    assert entry.orientation is not None


def test_orientation_worker_drops_stale_requests():
    entry = entries_for("P")[0]
    worker = OrientationWorker(lambda: 3)

    worker.request(2, entry)
    worker.join()

    assert entry.orientation is None


def _bare_viewer(engine):
    viewer = object.__new__(SpreadViewer)
    viewer.engine = engine
    viewer.navigator = SourceNavigator(engine)
    return viewer


def test_title_shows_source_and_pages(build_source):
    source = build_source("PPP", path="/comics/book.zip")
    engine = PaginationEngine(loader=lambda _: source)
    viewer = _bare_viewer(engine)
    assert viewer.title_text() == "spreadview"

    engine.open_source(source.path)
    assert viewer.title_text() == "spreadview - book.zip (1-2/3)"
    engine.move_next_page()
    assert viewer.title_text() == "spreadview - book.zip (3/3)"


def test_status_text_names_neighbouring_sources(build_source):
    siblings = ["/comics/a.zip", "/comics/book.zip", "/comics/z.zip"]
    source = build_source("P", path="/comics/book.zip", siblings=siblings)
    engine = PaginationEngine(loader=lambda _: source)
    engine.open_source(source.path)

    assert _bare_viewer(engine).status_text() == "prev: a.zip    next: z.zip"


def test_main_function_with_source_argument(monkeypatch, tmp_path):
    """Test main function with command line source argument."""
    monkeypatch.setattr(spreadview, "LOG_ROOT", tmp_path / "logs")
    target = write_image(tmp_path / "page.png")
    mock_viewer = MagicMock()

    with (
        patch("tkinter.Tk") as mock_tk,
        patch.object(spreadview, "SpreadViewer", mock_viewer),
    ):
        mock_root = MagicMock()
        mock_tk.return_value = mock_root

        test_args = ["spreadview.py", str(target), "--single", "--direction", "left", "--windowed"]
        with patch("sys.argv", test_args):
            spreadview.main()

    mock_viewer.assert_called_once_with(
        mock_root, target, view_mode=ViewMode.SINGLE, page_direction=PageDirection.LEFT
    )
    mock_root.attributes.assert_not_called()
    mock_root.deiconify.assert_called_once()
    mock_root.mainloop.assert_called_once()
    assert spreadview.LOG_PATH is not None
    assert spreadview.LOG_PATH.parent.parent == tmp_path / "logs"


def test_main_function_defaults_to_fullscreen_spreads(monkeypatch, tmp_path):
    monkeypatch.setattr(spreadview, "LOG_ROOT", tmp_path / "logs")
    target = write_image(tmp_path / "page.png")
    mock_viewer = MagicMock()

    with (
        patch("tkinter.Tk") as mock_tk,
        patch.object(spreadview, "SpreadViewer", mock_viewer),
        patch("sys.argv", ["spreadview.py", str(target)]),
    ):
        mock_root = MagicMock()
        mock_tk.return_value = mock_root
        spreadview.main()

    mock_root.attributes.assert_called_with("-fullscreen", True)
    _, kwargs = mock_viewer.call_args
    assert kwargs == {"view_mode": ViewMode.DOUBLE, "page_direction": PageDirection.RIGHT}


def test_main_function_with_missing_file(monkeypatch, tmp_path):
    monkeypatch.setattr(spreadview, "LOG_ROOT", tmp_path / "logs")

    with (
        patch("tkinter.Tk") as mock_tk,
        patch.object(spreadview, "SpreadViewer") as mock_viewer,
        patch("sys.argv", ["spreadview.py", str(tmp_path / "missing.zip")]),
    ):
        mock_root = MagicMock()
        mock_tk.return_value = mock_root
        with pytest.raises(SystemExit) as exc:
            spreadview.main()

    assert exc.value.code == 1
    mock_root.destroy.assert_called_once()
    mock_viewer.assert_not_called()


def test_main_function_with_cancelled_dialog(monkeypatch, tmp_path):
    monkeypatch.setattr(spreadview, "LOG_ROOT", tmp_path / "logs")

    with (
        patch("tkinter.Tk") as mock_tk,
        patch("tkinter.filedialog.askopenfilename", return_value=""),
        patch.object(spreadview, "SpreadViewer") as mock_viewer,
        patch("sys.argv", ["spreadview.py"]),
    ):
        mock_root = MagicMock()
        mock_tk.return_value = mock_root
        spreadview.main()

    mock_root.destroy.assert_called_once()
    mock_viewer.assert_not_called()


def test_main_function_with_dialog_selection(monkeypatch, tmp_path):
    monkeypatch.setattr(spreadview, "LOG_ROOT", tmp_path / "logs")
    target = write_image(tmp_path / "page.png")

    with (
        patch("tkinter.Tk") as mock_tk,
        patch("tkinter.filedialog.askopenfilename", return_value=str(target)),
        patch.object(spreadview, "SpreadViewer") as mock_viewer,
        patch("sys.argv", ["spreadview.py", "--windowed"]),
    ):
        mock_tk.return_value = MagicMock()
        spreadview.main()

    assert mock_viewer.call_args.args[1] == Path(target)


@pytest.mark.parametrize(("name", "expected"), [("DEBUG", logging.DEBUG), ("CHATTY", logging.INFO)])
def test_init_logging_uses_configured_level(monkeypatch, tmp_path, name, expected):
    monkeypatch.setattr(spreadview, "LOG_ROOT", tmp_path / "logs")
    monkeypatch.setattr(spreadview, "LOG_PATH", None)
    monkeypatch.setattr(spreadview, "LOG_LEVEL", name)

    with patch("logging.basicConfig") as mock_config:
        spreadview._init_logging()

    assert mock_config.call_args.kwargs["level"] == expected
    assert spreadview.LOG_PATH.name == "spreadview.log"
    assert spreadview.LOG_PATH.parent.is_dir()


def test_right_bound_direction_reads_right_to_left():
    from events import resolve_key

    first, second = entries_for("PP")
    spread = Double(0, first, second)

    assert spread_layout(spread, PageDirection.RIGHT)[-1] is first
    assert resolve_key("Left", False, PageDirection.RIGHT) is AppEvent.MOVE_NEXT_PAGE
    assert spread_layout(spread, PageDirection.LEFT)[0] is first
    assert resolve_key("Right", False, PageDirection.LEFT) is AppEvent.MOVE_NEXT_PAGE
