import tempfile
import pytest
from pathlib import Path

from levari import audio
from levari.audio import AudioSource, ChannelBuilder, MpvChannel, open_channel
from levari.logging_config import AudioChannelError, PlaybackError, SourceError

from conftest import FakeChannel, FakeOpener


@pytest.fixture
def temp_dir():
    with tempfile.TemporaryDirectory() as tmpdir:
        yield Path(tmpdir)


class TestAudioSource:
    """Tests for AudioSource."""

    def test_missing_file(self, temp_dir):
        """Test opening a nonexistent file raises SourceError."""
        with pytest.raises(SourceError):
            AudioSource.open(temp_dir / "missing.mp3")

    def test_not_audio(self, temp_dir):
        """Test a text file is rejected as undecodable."""
        path = temp_dir / "notes.txt"
        path.write_text("these are liner notes, not audio\n" * 20)

        with pytest.raises(SourceError):
            AudioSource.open(path)

    def test_source_error_is_playback_error(self):
        """Test SourceError can be handled as a PlaybackError."""
        assert issubclass(SourceError, PlaybackError)
        assert issubclass(AudioChannelError, PlaybackError)

    def test_skip_accumulates(self):
        """Test skip returns a new source further in."""
        source = AudioSource(Path("/music/a.mp3"))

        skipped = source.skip(12.5).skip(2.5)

        assert source.start == 0.0
        assert skipped.start == pytest.approx(15.0)
        assert skipped.path == source.path

    def test_skip_ignores_negative(self):
        """Test a negative skip does not rewind."""
        assert AudioSource(Path("/a.mp3"), 5.0).skip(-3).start == 5.0


class TestMpvChannel:
    """Tests for the mpv command line."""

    def test_command_has_group_per_file(self):
        """Test each source gets its own option group."""
        channel = MpvChannel("/usr/bin/mpv", ipc_path="/tmp/levari-test.sock")
        channel.append(AudioSource(Path("/music/a/1.mp3"), 42.0), 1.0)
        channel.append(AudioSource(Path("/music/a/2.mp3")), 1.0)

        cmd = channel.build_command()

        assert cmd[0] == "/usr/bin/mpv"
        assert "--input-ipc-server=/tmp/levari-test.sock" in cmd
        assert cmd.count("--{") == 2
        assert cmd.count("--}") == 2
        assert cmd.count("--start=+42.000") == 1
        first_group = cmd[cmd.index("--{"):cmd.index("--}") + 1]
        assert "--start=+42.000" in first_group
        assert str(Path("/music/a/1.mp3").resolve()) in first_group

    def test_command_speed_and_volume(self):
        """Test speed and volume reach mpv."""
        channel = MpvChannel("mpv", ipc_path="/tmp/levari-test.sock")
        channel.append(AudioSource(Path("/music/a/1.mp3")), 45 / 33)
        channel.set_volume(0.25)

        cmd = channel.build_command()

        assert "--volume=25" in cmd
        assert "--speed=1.3636" in cmd
        assert "--audio-pitch-correction=no" in cmd
        assert not any(arg.startswith("--start") for arg in cmd)

    def test_volume_is_clamped(self):
        """Test volume outside 0.0-2.0 is clamped."""
        channel = MpvChannel("mpv", ipc_path="/tmp/levari-test.sock")

        channel.set_volume(5.0)
        assert channel.volume == 2.0
        assert "--volume=200" in channel.build_command()

        channel.set_volume(-1.0)
        assert channel.volume == 0.0

    def test_play_without_sources_does_not_spawn(self):
        """Test an empty channel never starts a process."""
        channel = MpvChannel("mpv", ipc_path="/tmp/levari-test.sock")

        channel.play()
        channel.pause()
        channel.close()

        assert channel.process is None

    def test_spawn_failure(self, temp_dir):
        """Test a missing executable raises AudioChannelError."""
        channel = MpvChannel(str(temp_dir / "no-such-mpv"), ipc_path=str(temp_dir / "x.sock"))
        channel.append(AudioSource(temp_dir / "a.mp3"))

        with pytest.raises(AudioChannelError):
            channel.play()

    def test_append_after_start_is_refused(self):
        """Test a started channel rejects tracks that would lose their speed."""

        class RunningProcess:
            pid = 0

            def poll(self):
                return None

        channel = MpvChannel("mpv", ipc_path="/tmp/levari-test.sock")
        channel.append(AudioSource(Path("/music/a/1.mp3")), 2.0)
        channel.process = RunningProcess()

        with pytest.raises(AudioChannelError):
            channel.append(AudioSource(Path("/music/a/2.mp3")), 2.0)

        assert len(channel.sources) == 1
        channel.process = None

    def test_unique_ipc_paths(self):
        """Test every channel gets its own socket."""
        assert MpvChannel().ipc_path != MpvChannel().ipc_path


class TestOpenChannel:
    """Tests for player detection."""

    def test_unknown_player(self):
        """Test a player that isn't installed raises AudioChannelError."""
        with pytest.raises(AudioChannelError):
            open_channel("levari-no-such-player")

    def test_auto_without_mpv(self, monkeypatch):
        """Test auto detection fails cleanly without mpv."""
        monkeypatch.setattr(audio, "_find_command", lambda cmd: None)

        with pytest.raises(AudioChannelError):
            open_channel("auto")

    def test_auto_with_mpv(self, monkeypatch):
        """Test auto detection builds an MpvChannel."""
        monkeypatch.setattr(audio, "_find_command", lambda cmd: "/opt/bin/" + cmd)

        channel = open_channel("auto")

        assert isinstance(channel, MpvChannel)
        assert channel.executable == "/opt/bin/mpv"


class TestChannelBuilder:
    """Tests for ChannelBuilder."""

    def test_builds_playing_channel(self):
        """Test the offset applies to the first source only."""
        made = []
        builder = ChannelBuilder(factory=lambda: made.append(FakeChannel()) or made[-1], opener=FakeOpener())

        channel = builder.build([Path("/m/1.mp3"), Path("/m/2.mp3")], offset=30.0, speed=2.0, volume=0.5)

        assert channel is made[0]
        assert [s.start for s, _ in channel.sources] == [30.0, 0.0]
        assert all(speed == 2.0 for _, speed in channel.sources)
        assert channel.volume == 0.5
        assert channel.playing

    def test_open_failure_creates_no_channel(self):
        """Test a broken file fails before any channel exists."""
        made = []
        opener = FakeOpener()
        opener.broken.add(Path("/m/2.mp3"))
        builder = ChannelBuilder(factory=lambda: made.append(FakeChannel()) or made[-1], opener=opener)

        with pytest.raises(SourceError):
            builder.build([Path("/m/1.mp3"), Path("/m/2.mp3")])

        assert made == []

    def test_start_failure_closes_channel(self):
        """Test a channel that fails to start is closed."""

        class BrokenChannel(FakeChannel):
            def play(self):
                raise AudioChannelError("no output device")

        made = []
        builder = ChannelBuilder(factory=lambda: made.append(BrokenChannel()) or made[-1], opener=FakeOpener())

        with pytest.raises(AudioChannelError):
            builder.build([Path("/m/1.mp3")])

        assert made[0].closed is True
