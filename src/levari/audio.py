"""
Audio output for levari.

Playback runs in an external ``mpv`` process. A channel is one such
process holding the queue of tracks still to play for the inserted album.
"""
import json
import os
import shutil
import signal
import socket
import subprocess
import tempfile
from dataclasses import dataclass, replace
from itertools import count
from pathlib import Path
from typing import Callable, Dict, List, Optional, Sequence, Tuple, Union

import mutagen
from mutagen import MutagenError

from .logging_config import get_logger, AudioChannelError, SourceError

logger = get_logger('audio')

# Session volume runs 0.0-2.0, mpv takes a percentage.
MAX_VOLUME = 2.0

_channel_ids = count(1)

# External command cache
_command_cache: Dict[str, Optional[str]] = {}


def _find_command(cmd: str) -> Optional[str]:
    """Find an external command in PATH with caching."""
    if cmd in _command_cache:
        return _command_cache[cmd]
    result = shutil.which(cmd)
    _command_cache[cmd] = result
    return result


@dataclass(frozen=True)
class AudioSource:
    """A decodable audio file and the position playback starts from."""

    path: Path
    start: float = 0.0

    @classmethod
    def open(cls, path: Union[str, Path]) -> "AudioSource":
        """Open ``path`` and check that its header decodes.

        Raises:
            SourceError: If the file is missing, unreadable or not audio
        """
        path = Path(path)
        try:
            audio = mutagen.File(path)
        except OSError as e:
            raise SourceError(f"Cannot open '{path.name}': {e}") from e
        except MutagenError as e:
            raise SourceError(f"Cannot decode '{path.name}': {e}") from e
        if audio is None:
            raise SourceError(f"Unsupported audio format: '{path.name}'")
        return cls(path)

    def skip(self, seconds: float) -> "AudioSource":
        """Return a copy of this source starting ``seconds`` later."""
        return replace(self, start=self.start + max(0.0, seconds))


class AudioChannel:
    """Base class for audio channels."""

    def __init__(self, executable: str):
        self.executable = executable

    def append(self, source: AudioSource, speed: float = 1.0) -> None:
        """Queue a source to play after the ones already appended."""
        raise NotImplementedError("Subclasses must implement append()")

    def play(self) -> None:
        """Start or resume playback."""
        raise NotImplementedError("Subclasses must implement play()")

    def pause(self) -> None:
        """Pause playback."""
        raise NotImplementedError("Subclasses must implement pause()")

    def set_volume(self, volume: float) -> None:
        """Set volume level (0.0-2.0)."""
        raise NotImplementedError("Subclasses must implement set_volume()")

    def close(self) -> None:
        """Stop playback and release the output."""
        raise NotImplementedError("Subclasses must implement close()")


class MpvChannel(AudioChannel):
    """Audio channel backed by an mpv process.

    Sources are collected until the first ``play()``, which launches mpv
    with every source in its own option group so the first one can start
    mid-track. Pausing stops the process group; volume changes go through
    mpv's JSON IPC socket.
    """

    def __init__(self, executable: str = "mpv", ipc_path: Optional[str] = None):
        super().__init__(executable)
        self.sources: List[Tuple[AudioSource, float]] = []
        self.volume: float = 1.0
        self.paused: bool = False
        self.process: Optional[subprocess.Popen] = None
        self.ipc_path = ipc_path or os.path.join(
            tempfile.gettempdir(), f"levari-{os.getpid()}-{next(_channel_ids)}.sock"
        )

    def append(self, source: AudioSource, speed: float = 1.0) -> None:
        """Queue a source before the first ``play()``.

        Raises:
            AudioChannelError: If mpv is already running; the per-file
                speed and start offset only exist on the command line
        """
        if self.process is not None:
            raise AudioChannelError("Cannot queue tracks on a channel that has started")
        self.sources.append((source, speed))

    def build_command(self) -> List[str]:
        """Build the mpv command line for the queued sources."""
        cmd = [
            self.executable,
            "--no-video",
            "--audio-display=no",
            "--terminal=no",
            "--keep-open=no",
            "--idle=no",
            "--audio-pitch-correction=no",
            "--volume-max=200",
            f"--volume={self._mpv_volume()}",
            f"--input-ipc-server={self.ipc_path}",
        ]
        for source, speed in self.sources:
            cmd.append("--{")
            if source.start > 0:
                cmd.append(f"--start=+{source.start:.3f}")
            cmd.append(f"--speed={speed:.4f}")
            cmd.append(str(source.path.resolve()))
            cmd.append("--}")
        return cmd

    def is_running(self) -> bool:
        return self.process is not None and self.process.poll() is None

    def play(self) -> None:
        if self.process is None:
            if self.sources:
                self._spawn()
            self.paused = False
            return
        if self.paused and self.is_running():
            self._signal(signal.SIGCONT)
        self.paused = False

    def pause(self) -> None:
        if self.paused:
            return
        if self.is_running():
            self._signal(signal.SIGSTOP)
        self.paused = True

    def set_volume(self, volume: float) -> None:
        self.volume = max(0.0, min(MAX_VOLUME, volume))
        if self.is_running():
            self._send(["set_property", "volume", self._mpv_volume()])

    def close(self) -> None:
        """Stop the mpv process, escalating to SIGKILL if it lingers."""
        if self.process and self.process.poll() is None:
            try:
                pgid = os.getpgid(self.process.pid)
                os.killpg(pgid, signal.SIGTERM)
                # A stopped process only sees SIGTERM once continued.
                os.killpg(pgid, signal.SIGCONT)
                self.process.wait(timeout=1.0)
                logger.info(f"Stopped audio process: {self.process.pid}")
            except (ProcessLookupError, PermissionError) as e:
                logger.warning(f"Process termination error: {e}")
            except subprocess.TimeoutExpired:
                try:
                    os.killpg(os.getpgid(self.process.pid), signal.SIGKILL)
                    self.process.wait(timeout=0.5)
                    logger.warning(f"Force killed audio process: {self.process.pid}")
                except (ProcessLookupError, PermissionError, subprocess.TimeoutExpired) as e:
                    logger.warning(f"Force kill failed: {e}")
        self.process = None
        self.paused = False
        try:
            os.unlink(self.ipc_path)
        except OSError:
            pass

    def _mpv_volume(self) -> int:
        return int(round(self.volume * 100))

    def _spawn(self) -> None:
        cmd = self.build_command()
        try:
            self.process = subprocess.Popen(
                cmd,
                stdin=subprocess.DEVNULL,
                stdout=subprocess.DEVNULL,
                stderr=subprocess.DEVNULL,
                preexec_fn=os.setsid,
            )
        except (subprocess.SubprocessError, OSError) as e:
            logger.error(f"Failed to start {self.executable}: {e}")
            raise AudioChannelError(f"Failed to start audio player: {e}") from e
        logger.info(f"Started playback of {len(self.sources)} tracks (pid {self.process.pid})")

    def _signal(self, signum: int) -> None:
        try:
            os.killpg(os.getpgid(self.process.pid), signum)
        except (ProcessLookupError, PermissionError) as e:
            logger.warning(f"Could not signal audio process: {e}")

    def _send(self, command: list) -> bool:
        """Fire one IPC command at mpv without waiting for the reply."""
        payload = (json.dumps({"command": command}) + "\n").encode("utf-8")
        sock = socket.socket(socket.AF_UNIX, socket.SOCK_STREAM)
        sock.settimeout(0.2)
        try:
            sock.connect(self.ipc_path)
            sock.sendall(payload)
            return True
        except OSError as e:
            logger.debug(f"mpv IPC command {command[0]} not delivered: {e}")
            return False
        finally:
            sock.close()


def detect_available_player() -> Optional[str]:
    """Return the path of a supported audio player, if one is installed."""
    for player in ("mpv",):
        path = _find_command(player)
        if path:
            return path
    logger.warning("No supported audio player found")
    return None


def resolve_player(player: str = "auto") -> Optional[str]:
    """Path of the executable for ``player``, or None if it can't be run."""
    if player == "auto":
        return detect_available_player()
    return _find_command(player)


def open_channel(player: str = "auto") -> AudioChannel:
    """Create a new, empty audio channel.

    Args:
        player: ``"auto"`` to look up mpv on PATH, or an explicit executable

    Raises:
        AudioChannelError: If no usable player is available
    """
    executable = resolve_player(player)
    if not executable:
        raise AudioChannelError(f"Audio player not found: {'mpv' if player == 'auto' else player}")
    return MpvChannel(executable)


ChannelFactory = Callable[[], AudioChannel]
SourceOpener = Callable[[Path], AudioSource]


class ChannelBuilder:
    """Builds a fully queued, playing channel in one step.

    Every source is opened before the channel is handed out, so a failure
    leaves nothing half built behind.
    """

    def __init__(
        self,
        factory: Optional[ChannelFactory] = None,
        opener: SourceOpener = AudioSource.open,
    ):
        self.factory = factory or open_channel
        self.opener = opener

    def build(
        self,
        paths: Sequence[Path],
        offset: float = 0.0,
        speed: float = 1.0,
        volume: float = 1.0,
    ) -> AudioChannel:
        """Queue ``paths`` with the first one skipped ahead by ``offset``.

        Raises:
            SourceError: If a file can't be opened or decoded
            AudioChannelError: If the output can't be created or started
        """
        sources = [self.opener(Path(path)) for path in paths]
        if sources and offset > 0:
            sources[0] = sources[0].skip(offset)

        channel = self.factory()
        try:
            for source in sources:
                channel.append(source, speed)
            channel.set_volume(volume)
            channel.play()
        except Exception:
            channel.close()
            raise
        return channel
