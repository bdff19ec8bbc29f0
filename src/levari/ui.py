"""
Terminal front end for levari.

Draws the player, the shelf and the backside of the selected record with
plain ANSI escapes, and maps key presses onto session actions.
"""
import os
import re
import select
import shutil
import signal
import sys
import termios
import time
import tty
import unicodedata
from functools import lru_cache
from typing import Any, List, Optional, Tuple

from .config import COLOR_MAP, AppConfig
from .logging_config import get_logger, LevariError
from .session import PlaybackSession, SessionSnapshot, VOLUME_STEP
from .state import Focus, ViewState

logger = get_logger('ui')

# =============================================================================
# Constants
# =============================================================================
C_RESET = COLOR_MAP["reset"]
PLAYER_HEIGHT = 9
SHELF_WIDTH_RATIO = 0.4

KEY_ENTER = ("\r", "\n")
KEY_CTRL_D = "\x04"
KEY_CTRL_U = "\x15"
KEY_CTRL_N = "\x0e"
ARROW_KEYS = {
    "\x1b[A": "k",
    "\x1b[B": "j",
    "\x1b[C": "l",
    "\x1b[D": "h",
}

HELP_LINE = (
    "Space = Play/Pause  |  Enter = Insert/Eject/Skip  |  h/j/k/l = Navigate  |  "
    "Shift+H/J/K/L = Change Focus  |  m = Bookmark  |  n/N = Next/Prev Bookmark  |  "
    "+/- = Volume  |  >/< = Speed  |  q = Quit"
)

NOT_INSERTED = "That album is not inserted. Press ENTER to insert."

# Ranger-style border characters
BORDER_TL = "┌"
BORDER_TR = "┐"
BORDER_BL = "└"
BORDER_BR = "┘"
BORDER_H = "─"
BORDER_V = "│"


# =============================================================================
# Text helpers
# =============================================================================
def _strip_ansi(text: str) -> str:
    """Remove ANSI escape codes from text for accurate length calculation."""
    return re.sub(r"\x1b\[[0-?]*[ -/]*[@-~]", "", text)


@lru_cache(maxsize=4096)
def _char_display_width(ch: str) -> int:
    """Return display width of a single Unicode character (0, 1 or 2)."""
    if not ch:
        return 0
    if unicodedata.category(ch) in ("Mn", "Me", "Cf"):
        return 0
    if unicodedata.east_asian_width(ch) in ("F", "W"):
        return 2
    return 1


def _display_width(text: str) -> int:
    """Return the visible terminal width of `text`, ignoring ANSI escapes."""
    return sum(_char_display_width(ch) for ch in _strip_ansi(text))


def _fit(text: str, width: int, ellipsis: str = "...") -> str:
    """Truncate or pad plain `text` to exactly `width` display columns."""
    if width <= 0:
        return ""
    if _display_width(text) > width:
        target = width - len(ellipsis) if width > len(ellipsis) else width
        out = []
        cur = 0
        for ch in text:
            w = _char_display_width(ch)
            if cur + w > target:
                break
            out.append(ch)
            cur += w
        text = "".join(out) + (ellipsis if width > len(ellipsis) else "")
    return text + " " * (width - _display_width(text))


def format_time(seconds: float) -> str:
    """Format seconds as MM:SS."""
    total = max(0, int(seconds))
    return f"{total // 60:02d}:{total % 60:02d}"


# =============================================================================
# Panels
# =============================================================================
def render_player(snapshot: SessionSnapshot) -> List[str]:
    """Lines of the player panel."""
    if not snapshot.active:
        return ["No album playing"]
    return [
        f"Album: {snapshot.collection_name}",
        f"Path: {snapshot.collection_path}",
        "",
        f"Elapsed: {format_time(snapshot.total_elapsed)}",
        f"Volume: {int(round(snapshot.volume * 100))}%",
        f"RPM: {snapshot.rpm} RPM",
        f"Status: {'Paused' if snapshot.paused else 'Playing'}",
    ]


def render_shelf(view: ViewState, snapshot: SessionSnapshot) -> List[Tuple[str, bool]]:
    """Shelf entries as (text, highlighted) pairs."""
    lines = []
    for index, collection in enumerate(view.catalog):
        name = collection.name
        if collection.bookmarked:
            name += " [*]"
        inserted = snapshot.collection_index == index
        if inserted:
            name += " [INSERTED]"
        prefix = ">> " if index == view.selected_index else "   "
        lines.append((prefix + name, inserted or index == view.selected_index))
    return lines


def render_backside(view: ViewState) -> List[Tuple[str, bool]]:
    """Tracks of the selected album with start times, as (text, highlighted) pairs."""
    if len(view.catalog) == 0:
        return []
    lines = []
    start = 0
    for index, track in enumerate(view.catalog[view.selected_index].tracks):
        line = f"{track.title} [{format_time(start)}]"
        current = view.focus is Focus.SONGS and index == view.song_cursor
        if current:
            line = f"> {line}"
        lines.append((line, current))
        start += track.duration
    return lines


def _window(count: int, selected: int, height: int) -> int:
    """First visible row so that `selected` stays on screen."""
    if count <= height:
        return 0
    return max(0, min(selected - height // 2, count - height))


def _box(title: str, rows: List[Tuple[str, bool]], width: int, height: int,
         border: str, accent: str) -> List[str]:
    """Draw a bordered panel of exactly `height` lines."""
    inner = max(0, width - 2)
    top = _fit(f"{BORDER_H}{title}", inner).replace(" ", BORDER_H)
    lines = [f"{border}{BORDER_TL}{top}{BORDER_TR}{C_RESET}"]
    for i in range(max(0, height - 2)):
        text, highlight = rows[i] if i < len(rows) else ("", False)
        body = _fit(text, inner)
        if highlight:
            body = f"{accent}{body}{C_RESET}"
        lines.append(f"{border}{BORDER_V}{C_RESET}{body}{border}{BORDER_V}{C_RESET}")
    lines.append(f"{border}{BORDER_BL}{BORDER_H * inner}{BORDER_BR}{C_RESET}")
    return lines


def draw(view: ViewState, session: PlaybackSession, config: AppConfig,
         size: Tuple[int, int]) -> List[str]:
    """Compose the whole screen for a terminal of `size` (rows, cols)."""
    rows, cols = size
    cols = max(20, cols)
    rows = max(PLAYER_HEIGHT + 6, rows)
    header_color = COLOR_MAP.get(config.colors.get("header", ""), "")
    accent = COLOR_MAP.get(config.colors.get("accent", ""), "")
    focus_color = COLOR_MAP.get(config.colors.get("focus", ""), "")
    idle_color = header_color

    def border_for(focus: Focus) -> str:
        return focus_color if view.focus is focus else idle_color

    snapshot = session.snapshot()
    screen = [
        f"{header_color}{COLOR_MAP['bold']}Levari{C_RESET} - {accent}{view.title_phrase}{C_RESET}",
        BORDER_H * cols,
    ]

    player_rows = [(line, False) for line in render_player(snapshot)]
    screen += _box("Player", player_rows, cols, PLAYER_HEIGHT, border_for(Focus.VINYL), accent)

    body_height = rows - len(screen) - 2
    shelf_width = int(cols * SHELF_WIDTH_RATIO)
    side_width = cols - shelf_width

    shelf = render_shelf(view, snapshot)
    start = _window(len(shelf), view.selected_index, body_height - 2)
    shelf_box = _box("Shelf", shelf[start:], shelf_width, body_height,
                     border_for(Focus.ALBUMS), accent)

    side = render_backside(view)
    side_start = _window(len(side), view.song_cursor, body_height - 2)
    side_box = _box("Backside", side[side_start:], side_width, body_height,
                    border_for(Focus.SONGS), accent)

    screen += [left + right for left, right in zip(shelf_box, side_box)]
    screen.append(BORDER_H * cols)
    screen.append(_fit(snapshot.message or HELP_LINE, cols))
    return screen


# =============================================================================
# Input handling
# =============================================================================
def _shift_key(view: ViewState, session: PlaybackSession, key: str) -> None:
    focus = view.focus
    if key == "J" and focus is Focus.VINYL:
        view.set_focus(Focus.ALBUMS)
    elif key == "K" and focus in (Focus.ALBUMS, Focus.SONGS):
        view.set_focus(Focus.VINYL)
    elif key == "L" and focus is Focus.ALBUMS:
        if session.active_index == view.selected_index:
            view.set_focus(Focus.SONGS)
            view.set_song_cursor(session.track_index)
        else:
            session.set_message(NOT_INSERTED)
    elif key == "H" and focus is Focus.SONGS:
        view.set_focus(Focus.ALBUMS)
    elif key == "G" and focus is Focus.ALBUMS:
        view.go_to_bottom()


def _enter(view: ViewState, session: PlaybackSession) -> None:
    if len(view.catalog) == 0:
        return
    if view.focus is Focus.SONGS:
        session.skip_to(view.selected_index, view.song_cursor)
    elif session.active_index == view.selected_index:
        session.eject()
    else:
        session.insert(view.selected_index)


def _bookmark_jump(view: ViewState, session: PlaybackSession, forward: bool) -> None:
    if view.focus is not Focus.ALBUMS or len(view.catalog) == 0:
        return
    index = view.next_bookmark() if forward else view.prev_bookmark()
    if index is not None:
        session.set_message(f"Jumped to bookmarked album '{view.catalog[index].name}'")


def _toggle_bookmark(view: ViewState, session: PlaybackSession) -> None:
    if view.focus is not Focus.ALBUMS or len(view.catalog) == 0:
        return
    collection = view.catalog[view.selected_index]
    if view.catalog.toggle_bookmark(view.selected_index):
        session.set_message(f"Bookmarked '{collection.name}'")
    else:
        session.set_message(f"Removed bookmark '{collection.name}'")


def _jump_to_playing(view: ViewState, session: PlaybackSession) -> None:
    if session.active_index is None:
        session.set_message("No album is playing!")
        return
    view.select(session.active_index)
    view.set_focus(Focus.ALBUMS)
    session.set_message(f"Jumped to playing album '{session.active.name}'")


def handle_key(view: ViewState, session: PlaybackSession, key: str,
               volume_step: float = VOLUME_STEP) -> bool:
    """Apply one key press.

    Returns:
        False when the user asked to quit
    """
    key = ARROW_KEYS.get(key, key)
    nav = view.navigation
    focus = view.focus

    if key == "g":
        if focus is Focus.ALBUMS and nav.pending_g:
            view.go_to_top()
            nav.pending_g = False
        else:
            nav.pending_g = focus is Focus.ALBUMS
        return True
    nav.pending_g = False

    if key == "q":
        return False
    elif key == "n":
        _bookmark_jump(view, session, forward=True)
    elif key in ("N", KEY_CTRL_N):
        _bookmark_jump(view, session, forward=False)
    elif len(key) == 1 and key.isascii() and key.isupper():
        _shift_key(view, session, key)
    elif key == "j":
        if focus is Focus.VINYL:
            view.set_focus(Focus.ALBUMS)
        elif focus is Focus.ALBUMS:
            view.next_album()
        else:
            view.next_song()
    elif key == "k":
        if focus is Focus.ALBUMS:
            view.previous_album()
        elif focus is Focus.SONGS:
            view.previous_song()
    elif key == "h":
        if focus is Focus.SONGS:
            view.set_focus(Focus.ALBUMS)
        elif focus is Focus.VINYL:
            session.eject()
    elif key == "l":
        if focus is Focus.ALBUMS:
            view.set_focus(Focus.SONGS)
            playing = session.active_index == view.selected_index
            view.set_song_cursor(session.track_index if playing else 0)
    elif key == " ":
        session.toggle_pause()
    elif key in KEY_ENTER:
        _enter(view, session)
    elif key in ("+", "="):
        session.change_volume(volume_step)
    elif key == "-":
        session.change_volume(-volume_step)
    elif key == ">":
        session.increase_speed()
    elif key == "<":
        session.decrease_speed()
    elif key == "m":
        _toggle_bookmark(view, session)
    elif key == "p":
        _jump_to_playing(view, session)
    elif key == KEY_CTRL_D and focus is Focus.ALBUMS:
        view.half_page_down()
    elif key == KEY_CTRL_U and focus is Focus.ALBUMS:
        view.half_page_up()
    return True


def read_key(fd: int, timeout: float) -> Optional[str]:
    """Wait up to `timeout` seconds for one key press."""
    if not select.select([fd], [], [], timeout)[0]:
        return None
    ch = os.read(fd, 1)
    if not ch:
        return None
    if ch == b"\x1b" and select.select([fd], [], [], 0.01)[0]:
        return "\x1b" + os.read(fd, 2).decode("utf-8", errors="ignore")
    return ch.decode("utf-8", errors="ignore")


# =============================================================================
# Main loop
# =============================================================================
def _exit_now(signum: Optional[int] = None, frame: Any = None) -> None:
    raise SystemExit(0)


def run(view: ViewState, session: PlaybackSession, config: AppConfig) -> None:
    """Run the interactive loop until the user quits.

    The loop waits for input at most until the next tick, then expires
    old status messages and redraws.
    """
    if not sys.stdin.isatty():
        raise LevariError("Must run in an interactive terminal")

    fd = sys.stdin.fileno()
    old = termios.tcgetattr(fd)
    tty.setcbreak(fd)
    for signum in (signal.SIGTERM, signal.SIGHUP):
        signal.signal(signum, _exit_now)

    # Alternate screen, hidden cursor
    sys.stdout.write("\033[?1049h\033[?25l")
    sys.stdout.flush()

    tick_rate = config.tick_rate
    last_tick = time.monotonic()
    running = True
    try:
        while running:
            size = shutil.get_terminal_size()
            screen = draw(view, session, config, (size.lines, size.columns))
            sys.stdout.write("\033[H" + "\033[K\n".join(screen) + "\033[J")
            sys.stdout.flush()

            timeout = max(0.0, tick_rate - (time.monotonic() - last_tick))
            try:
                key = read_key(fd, timeout)
            except KeyboardInterrupt:
                key = "q"
            if key is not None:
                running = handle_key(view, session, key, config.volume_step)

            if time.monotonic() - last_tick >= tick_rate:
                session.tick()
                last_tick = time.monotonic()
    finally:
        session.close()
        termios.tcsetattr(fd, termios.TCSADRAIN, old)
        sys.stdout.write("\033[?25h\033[?1049l")
        sys.stdout.flush()
        logger.info("Terminal restored")
