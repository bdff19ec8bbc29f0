import pytest

from levari.config import AppConfig
from levari.state import Focus, ViewState
from levari.ui import (
    KEY_CTRL_D,
    KEY_CTRL_U,
    NOT_INSERTED,
    _display_width,
    _fit,
    draw,
    format_time,
    handle_key,
    render_backside,
    render_player,
    render_shelf,
)


@pytest.fixture
def view(catalog):
    return ViewState(catalog)


def press(view, session, *keys):
    for key in keys:
        handle_key(view, session, key)


class TestViewState:
    """Tests for shelf and track list navigation."""

    def test_select_is_clamped(self, view):
        """Test selection never leaves the catalog."""
        view.select(10)
        assert view.selected_index == 2

        view.select(-4)
        assert view.selected_index == 0

    def test_up_from_top_focuses_player(self, view):
        """Test moving up from the first album focuses the player."""
        view.previous_album()

        assert view.focus is Focus.VINYL
        assert view.selected_index == 0

    def test_song_cursor_is_clamped(self, view):
        """Test the song cursor stays within the selected album."""
        view.set_song_cursor(99)
        assert view.song_cursor == 2

        view.select(2)
        view.set_song_cursor(1)
        assert view.song_cursor == 0

    def test_half_page(self, view):
        """Test half page moves by half the shelf."""
        view.half_page_down()
        assert view.selected_index == 1

        view.half_page_up()
        assert view.selected_index == 0

    def test_bookmark_navigation_selects(self, view, catalog):
        """Test bookmark jumps move the selection."""
        catalog.toggle_bookmark(2)

        assert view.next_bookmark() == 2
        assert view.selected_index == 2

    def test_empty_catalog(self):
        """Test navigation on an empty shelf does nothing."""
        from levari.catalog import Catalog

        view = ViewState(Catalog([]))
        view.next_album()
        view.previous_album()
        view.next_song()

        assert view.selected_index == 0
        assert view.focus is Focus.ALBUMS


class TestHandleKey:
    """Tests for key dispatch."""

    def test_quit(self, view, session):
        """Test q stops the loop."""
        assert handle_key(view, session, "q") is False
        assert handle_key(view, session, "j") is True

    def test_enter_inserts_then_ejects(self, view, session):
        """Test Enter toggles the selected album in the player."""
        press(view, session, "\r")
        assert session.active_index == 0

        press(view, session, "\n")
        assert session.active_index is None

    def test_enter_on_other_album_swaps(self, view, session, channels):
        """Test Enter on another album replaces the inserted one."""
        press(view, session, "\r", "j", "\r")

        assert session.active_index == 1
        assert channels[0].closed

    def test_enter_in_songs_skips(self, view, session):
        """Test Enter on the backside plays the track under the cursor."""
        press(view, session, "l", "j", "j", "\r")

        assert session.active_index == 0
        assert session.track_index == 2

    def test_gg_goes_to_top(self, view, session):
        """Test a double g jumps to the first album."""
        press(view, session, "G")
        assert view.selected_index == 2

        press(view, session, "g", "g")
        assert view.selected_index == 0

    def test_single_g_does_nothing(self, view, session):
        """Test g followed by another key does not jump."""
        view.select(2)
        press(view, session, "g", "k", "g")

        assert view.selected_index == 1

    def test_arrow_keys(self, view, session):
        """Test arrow escape sequences map onto hjkl."""
        press(view, session, "\x1b[B")
        assert view.selected_index == 1

        press(view, session, "\x1b[A", "\x1b[A")
        assert view.focus is Focus.VINYL

    def test_shift_focus_keys(self, view, session):
        """Test Shift+K and Shift+J move between player and shelf."""
        press(view, session, "K")
        assert view.focus is Focus.VINYL

        press(view, session, "J")
        assert view.focus is Focus.ALBUMS

    def test_shift_l_requires_inserted_album(self, view, session):
        """Test Shift+L only opens the backside of the inserted album."""
        press(view, session, "L")
        assert view.focus is Focus.ALBUMS
        assert session.snapshot().message == NOT_INSERTED

        session.skip_to(0, 1)
        press(view, session, "L")
        assert view.focus is Focus.SONGS
        assert view.song_cursor == 1

    def test_h_on_player_ejects(self, view, session):
        """Test h while the player is focused ejects the album."""
        session.insert(0)
        press(view, session, "K", "h")

        assert session.active_index is None

    def test_volume_and_speed_keys(self, view, session):
        """Test +, -, > and < reach the session."""
        press(view, session, "+", "+", "=")
        assert session.volume == pytest.approx(0.28)

        press(view, session, "-")
        assert session.volume == pytest.approx(0.27)

        press(view, session, ">", ">", ">")
        assert session.rpm == 78

        press(view, session, "<")
        assert session.rpm == 45

    def test_space_toggles_pause(self, view, session):
        """Test space pauses the inserted album."""
        session.insert(0)
        press(view, session, " ")

        assert session.paused is True

    def test_bookmark_keys(self, view, session, catalog):
        """Test m toggles a bookmark and n/N jump between them."""
        view.select(1)
        press(view, session, "m")
        assert catalog[1].bookmarked
        assert session.snapshot().message == "Bookmarked 'beta'"

        view.select(0)
        press(view, session, "n")
        assert view.selected_index == 1
        assert session.snapshot().message == "Jumped to bookmarked album 'beta'"

        view.select(2)
        press(view, session, "N")
        assert view.selected_index == 1

    def test_jump_to_playing(self, view, session):
        """Test p selects the inserted album."""
        press(view, session, "p")
        assert session.snapshot().message == "No album is playing!"

        session.insert(2)
        press(view, session, "p")
        assert view.selected_index == 2

    def test_ctrl_d_and_ctrl_u(self, view, session):
        """Test half page keys on the shelf."""
        press(view, session, KEY_CTRL_D)
        assert view.selected_index == 1

        press(view, session, KEY_CTRL_U)
        assert view.selected_index == 0


class TestRendering:
    """Tests for panel rendering."""

    def test_format_time(self):
        """Test MM:SS formatting."""
        assert format_time(0) == "00:00"
        assert format_time(125.9) == "02:05"
        assert format_time(-3) == "00:00"

    def test_fit_pads_and_truncates(self):
        """Test text is fitted to an exact width."""
        assert _fit("abc", 5) == "abc  "
        assert _fit("abcdefgh", 6) == "abc..."
        assert _display_width(_fit("日本語のアルバム", 7)) == 7

    def test_idle_player(self, session):
        """Test the player panel without an album."""
        assert render_player(session.snapshot()) == ["No album playing"]

    def test_active_player(self, session, fake_time):
        """Test the player panel shows album, time and speed."""
        session.insert(1)
        fake_time.advance(75)

        lines = render_player(session.snapshot())

        assert lines[0] == "Album: beta"
        assert "Elapsed: 01:15" in lines
        assert "Volume: 25%" in lines
        assert "RPM: 33 RPM" in lines
        assert "Status: Playing" in lines

    def test_shelf_markers(self, view, session, catalog):
        """Test the shelf marks selection, bookmarks and the inserted album."""
        catalog.toggle_bookmark(1)
        session.insert(2)

        lines = render_shelf(view, session.snapshot())

        assert lines[0] == (">> alpha", True)
        assert lines[1] == ("   beta [*]", False)
        assert lines[2] == ("   gamma [INSERTED]", True)

    def test_backside_start_times(self, view):
        """Test each track shows where it starts on the record."""
        view.set_focus(Focus.SONGS)
        view.set_song_cursor(1)

        assert render_backside(view) == [
            ("track1 [00:00]", False),
            ("> track2 [01:40]", True),
            ("track3 [05:00]", False),
        ]

    def test_backside_title_with_arrow(self):
        """Test a title that starts with '> ' is not taken for the cursor."""
        from pathlib import Path
        from levari.catalog import Catalog, Collection, Track

        tracks = [
            Track(title="> Overture", duration=10, path=Path("/music/x/a.mp3")),
            Track(title="Finale", duration=10, path=Path("/music/x/b.mp3")),
        ]
        view = ViewState(Catalog([Collection(name="x", path=Path("/music/x"), tracks=tracks)]))

        assert render_backside(view) == [
            ("> Overture [00:00]", False),
            ("Finale [00:10]", False),
        ]

        view.set_focus(Focus.SONGS)
        view.set_song_cursor(1)
        assert [highlight for _, highlight in render_backside(view)] == [False, True]

    def test_draw_fills_screen(self, view, session):
        """Test draw returns one line per terminal row."""
        session.insert(0)

        screen = draw(view, session, AppConfig(), (30, 100))

        assert len(screen) == 30
        assert screen[-1].startswith("Album 'alpha' inserted")
