"""
View state for the levari terminal UI.
"""
import random
from dataclasses import dataclass, field
from enum import Enum
from typing import List, Optional

from .catalog import Catalog
from .logging_config import get_logger

logger = get_logger('state')

TITLE_PHRASES: List[str] = [
    "Spinning Vinyl...",
    "Warm Crackle Vibes",
    "Analog Dreams",
    "Groove On!",
    "Retro Beats",
    "Sonic Nostalgia",
    "Vinyl Vibes",
    "Spin It to Win It",
]


class Focus(Enum):
    VINYL = "vinyl"
    ALBUMS = "albums"
    SONGS = "songs"


@dataclass
class NavigationState:
    """Cursor positions in the shelf and the track list."""
    selected_index: int = 0
    song_cursor: int = 0
    focus: Focus = Focus.ALBUMS
    pending_g: bool = False


@dataclass
class ViewState:
    """Everything the UI shows that isn't part of the playback session."""

    catalog: Catalog
    navigation: NavigationState = field(default_factory=NavigationState)
    title_phrase: str = field(default_factory=lambda: random.choice(TITLE_PHRASES))

    @property
    def focus(self) -> Focus:
        return self.navigation.focus

    @property
    def selected_index(self) -> int:
        return self.navigation.selected_index

    @property
    def song_cursor(self) -> int:
        return self.navigation.song_cursor

    def set_focus(self, focus: Focus) -> None:
        self.navigation.focus = focus
        logger.debug(f"Focus moved to {focus.value}")

    def select(self, index: int) -> None:
        """Select a shelf entry, clamped to the catalog."""
        if len(self.catalog) == 0:
            return
        self.navigation.selected_index = max(0, min(len(self.catalog) - 1, index))

    # -------------------------------------------------------------------------
    # Shelf navigation
    # -------------------------------------------------------------------------
    def next_album(self) -> None:
        self.select(self.selected_index + 1)

    def previous_album(self) -> None:
        """Move up the shelf; from the top entry focus goes to the player."""
        if len(self.catalog) == 0:
            return
        if self.selected_index == 0:
            self.set_focus(Focus.VINYL)
        else:
            self.select(self.selected_index - 1)

    def go_to_top(self) -> None:
        self.select(0)

    def go_to_bottom(self) -> None:
        self.select(len(self.catalog) - 1)

    def half_page_down(self) -> None:
        self.select(self.selected_index + max(1, len(self.catalog) // 2))

    def half_page_up(self) -> None:
        self.select(self.selected_index - max(1, len(self.catalog) // 2))

    def next_bookmark(self) -> Optional[int]:
        index = self.catalog.next_bookmark(self.selected_index)
        if index is not None:
            self.select(index)
        return index

    def prev_bookmark(self) -> Optional[int]:
        index = self.catalog.prev_bookmark(self.selected_index)
        if index is not None:
            self.select(index)
        return index

    # -------------------------------------------------------------------------
    # Track list navigation
    # -------------------------------------------------------------------------
    def _song_count(self) -> int:
        if len(self.catalog) == 0:
            return 0
        return len(self.catalog[self.selected_index].tracks)

    def set_song_cursor(self, index: int) -> None:
        count = self._song_count()
        self.navigation.song_cursor = max(0, min(count - 1, index)) if count else 0

    def next_song(self) -> None:
        self.set_song_cursor(self.song_cursor + 1)

    def previous_song(self) -> None:
        self.set_song_cursor(self.song_cursor - 1)
