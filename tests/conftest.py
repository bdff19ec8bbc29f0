import sys
import tempfile
import pytest
from pathlib import Path

sys.path.insert(0, str(Path(__file__).parent.parent / "src"))

from levari.audio import AudioChannel, AudioSource
from levari.catalog import Catalog, Collection, Track
from levari.logging_config import SourceError


class FakeTime:
    """Manually advanced monotonic clock."""

    def __init__(self, start: float = 1000.0):
        self.value = start

    def __call__(self) -> float:
        return self.value

    def advance(self, seconds: float) -> None:
        self.value += seconds


class FakeChannel(AudioChannel):
    """Records every call instead of producing sound."""

    def __init__(self):
        super().__init__("fake")
        self.sources = []
        self.volume = None
        self.playing = False
        self.closed = False

    def append(self, source, speed=1.0):
        self.sources.append((source, speed))

    def play(self):
        self.playing = True

    def pause(self):
        self.playing = False

    def set_volume(self, volume):
        self.volume = volume

    def close(self):
        self.closed = True
        self.playing = False


class FakeOpener:
    """Opens every path except the ones listed as broken."""

    def __init__(self):
        self.broken = set()

    def __call__(self, path):
        if Path(path) in self.broken:
            raise SourceError(f"Cannot decode '{Path(path).name}'")
        return AudioSource(Path(path))


def make_collection(name: str, durations) -> Collection:
    tracks = [
        Track(title=f"track{i + 1}", duration=d, path=Path(f"/music/{name}/track{i + 1}.mp3"))
        for i, d in enumerate(durations)
    ]
    return Collection(name=name, path=Path(f"/music/{name}"), tracks=tracks)


@pytest.fixture
def fake_time():
    return FakeTime()


@pytest.fixture
def channels():
    """Every FakeChannel handed out by the builder, in order."""
    return []


@pytest.fixture
def opener():
    return FakeOpener()


@pytest.fixture
def catalog():
    return Catalog([
        make_collection("alpha", [100, 200, 300]),
        make_collection("beta", [60, 60]),
        make_collection("gamma", []),
    ])


@pytest.fixture
def session(catalog, fake_time, channels, opener):
    from levari.audio import ChannelBuilder
    from levari.session import PlaybackSession

    def factory():
        channel = FakeChannel()
        channels.append(channel)
        return channel

    builder = ChannelBuilder(factory=factory, opener=opener)
    yield PlaybackSession(catalog, builder=builder, now=fake_time)


@pytest.fixture
def temp_music_dir():
    """Create a temporary music library with albums at different depths."""
    with tempfile.TemporaryDirectory() as tmpdir:
        music_dir = Path(tmpdir) / "music"
        music_dir.mkdir()

        album = music_dir / "Artist" / "Album"
        album.mkdir(parents=True)
        (album / "track10.mp3").write_bytes(b"\0" * 100000)
        (album / "track2.flac").write_bytes(b"\0" * 60000)
        (album / "track1.OGG").touch()
        (album / "notes.txt").touch()

        covers_only = music_dir / "Covers Only"
        covers_only.mkdir()
        (covers_only / "cover.jpg").touch()

        (music_dir / "Empty" / "Deeper").mkdir(parents=True)

        yield music_dir
