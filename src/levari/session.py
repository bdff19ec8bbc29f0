"""
Playback session for levari.

The session decides which album is in the player and which track is
playing, rebuilds the audio channel whenever the queue or the speed
changes, and keeps the session clock in step with it.
"""
import time
from dataclasses import dataclass
from typing import Callable, Optional

from .audio import AudioChannel, ChannelBuilder
from .catalog import Catalog, Collection
from .clock import SessionClock
from .logging_config import get_logger, PlaybackError

logger = get_logger('session')

# =============================================================================
# Constants
# =============================================================================
RPM_SETTINGS = (33, 45, 78)
BASE_RPM = 33
VOLUME_MIN = 0.0
VOLUME_MAX = 2.0
DEFAULT_VOLUME = 0.25
VOLUME_STEP = 0.01
MESSAGE_TIMEOUT = 3.0


def speed_factor(rpm: int) -> float:
    """Playback rate of a turntable setting relative to 33 RPM."""
    return rpm / BASE_RPM


def clamp_volume(volume: float) -> float:
    return round(max(VOLUME_MIN, min(VOLUME_MAX, volume)), 2)


@dataclass
class StatusMessage:
    text: str
    created: float


@dataclass(frozen=True)
class SessionSnapshot:
    """Read-only view of the session for drawing the player."""

    collection_index: Optional[int]
    collection_name: Optional[str]
    collection_path: Optional[str]
    track_index: Optional[int]
    track_title: Optional[str]
    elapsed: float
    total_elapsed: float
    paused: bool
    volume: float
    rpm: int
    speed: float
    message: Optional[str]

    @property
    def active(self) -> bool:
        return self.collection_index is not None


class PlaybackSession:
    """State machine for the inserted album.

    The session is Idle while no album is inserted and Active otherwise.
    Every action that changes what is queued builds a complete new channel
    first and only then swaps it in, so a failed build leaves the session
    exactly as it was.
    """

    def __init__(
        self,
        catalog: Catalog,
        builder: Optional[ChannelBuilder] = None,
        clock: Optional[SessionClock] = None,
        volume: float = DEFAULT_VOLUME,
        rpm: int = BASE_RPM,
        message_timeout: float = MESSAGE_TIMEOUT,
        now: Callable[[], float] = time.monotonic,
    ):
        if rpm not in RPM_SETTINGS:
            raise ValueError(f"Unsupported RPM setting: {rpm}")
        self.catalog = catalog
        self.builder = builder or ChannelBuilder()
        self._now = now
        self.clock = clock or SessionClock(now)
        self.volume = clamp_volume(volume)
        self.rpm = rpm
        self.message_timeout = message_timeout

        self.active_index: Optional[int] = None
        self.track_index: int = 0
        self.channel: Optional[AudioChannel] = None
        self.message: Optional[StatusMessage] = None

    # -------------------------------------------------------------------------
    # Queries
    # -------------------------------------------------------------------------
    @property
    def active(self) -> Optional[Collection]:
        if self.active_index is None:
            return None
        return self.catalog[self.active_index]

    @property
    def is_active(self) -> bool:
        return self.active_index is not None

    @property
    def paused(self) -> bool:
        return self.clock.paused

    @property
    def speed(self) -> float:
        return speed_factor(self.rpm)

    def total_elapsed(self) -> float:
        """Seconds played across the whole inserted album."""
        collection = self.active
        if collection is None:
            return 0.0
        return collection.start_offset(self.track_index) + self.clock.elapsed()

    def snapshot(self) -> SessionSnapshot:
        self.sync()
        collection = self.active
        track = None
        if collection is not None and self.track_index < len(collection.tracks):
            track = collection.tracks[self.track_index]
        return SessionSnapshot(
            collection_index=self.active_index,
            collection_name=collection.name if collection else None,
            collection_path=str(collection.path) if collection else None,
            track_index=self.track_index if collection else None,
            track_title=track.title if track else None,
            elapsed=self.clock.elapsed(),
            total_elapsed=self.total_elapsed(),
            paused=self.clock.paused,
            volume=self.volume,
            rpm=self.rpm,
            speed=self.speed,
            message=self.message.text if self.message else None,
        )

    # -------------------------------------------------------------------------
    # Status messages
    # -------------------------------------------------------------------------
    def set_message(self, text: str) -> None:
        self.message = StatusMessage(text, self._now())
        logger.debug(f"Status: {text}")

    def tick(self) -> bool:
        """Advance the track position and expire the status message.

        Returns:
            True if the message was cleared
        """
        self.sync()
        if self.message and self._now() - self.message.created >= self.message_timeout:
            self.message = None
            return True
        return False

    # -------------------------------------------------------------------------
    # Actions
    # -------------------------------------------------------------------------
    def insert(self, index: int) -> bool:
        """Put an album in the player and start it from the first track.

        Inserting the album that is already playing does nothing. Any other
        playing album is ejected first.
        """
        if not self.catalog.is_valid_index(index):
            self.set_message("No album at that position.")
            return False
        if self.active_index == index:
            return False

        collection = self.catalog[index]
        channel = self._build(collection, 0, 0.0)
        if channel is None:
            return False

        if self.is_active:
            self.eject()
        self._install(index, 0, channel, 0.0)
        self.set_message(f"Album '{collection.name}' inserted and playing.")
        logger.info(f"Inserted '{collection.name}'")
        return True

    def eject(self) -> bool:
        """Stop playback and take the album out of the player."""
        collection = self.active
        if collection is None:
            return False
        if self.channel is not None:
            self.channel.close()
            self.channel = None
        self.active_index = None
        self.track_index = 0
        self.clock.stop()
        self.set_message(f"Album '{collection.name}' ejected.")
        logger.info(f"Ejected '{collection.name}'")
        return True

    def skip_to(self, collection_index: int, track_index: int) -> bool:
        """Play ``collection_index`` starting at ``track_index``.

        The channel is always rebuilt, even when that album is already
        playing, and the target album becomes the inserted one.
        """
        if not self.catalog.is_valid_index(collection_index):
            self.set_message("No album at that position.")
            return False
        collection = self.catalog[collection_index]
        if not 0 <= track_index < len(collection.tracks):
            self.set_message(f"No track {track_index + 1} on '{collection.name}'.")
            return False

        channel = self._build(collection, track_index, 0.0)
        if channel is None:
            return False

        self._install(collection_index, track_index, channel, 0.0)
        title = collection.tracks[track_index].title
        self.set_message(f"Skipped to: '{title}'")
        logger.info(f"Skipped to track {track_index} of '{collection.name}'")
        return True

    def set_speed(self, rpm: int) -> bool:
        """Switch the turntable speed, keeping the current position."""
        if rpm not in RPM_SETTINGS:
            raise ValueError(f"Unsupported RPM setting: {rpm}")
        if rpm == self.rpm:
            return False

        collection = self.active
        if collection is None:
            self.rpm = rpm
            self.set_message(f"Speed: {rpm} RPM")
            return True

        self.sync()
        offset = self.total_elapsed() - collection.start_offset(self.track_index)
        if self.track_index < len(collection.tracks):
            duration = collection.tracks[self.track_index].duration
            if duration > 0:
                offset = min(offset, float(duration))
        offset = max(0.0, offset)

        previous_rpm = self.rpm
        self.rpm = rpm
        channel = self._build(collection, self.track_index, offset)
        if channel is None:
            self.rpm = previous_rpm
            return False

        was_paused = self.clock.paused
        self._install(self.active_index, self.track_index, channel, offset)
        if was_paused:
            channel.pause()
            self.clock.pause()
        self.set_message(f"Speed: {rpm} RPM")
        logger.info(f"Speed changed {previous_rpm} -> {rpm} RPM at {offset:.2f}s")
        return True

    def increase_speed(self) -> bool:
        position = RPM_SETTINGS.index(self.rpm)
        target = RPM_SETTINGS[min(position + 1, len(RPM_SETTINGS) - 1)]
        if target == self.rpm:
            self.set_message(f"Speed: {self.rpm} RPM")
            return False
        return self.set_speed(target)

    def decrease_speed(self) -> bool:
        position = RPM_SETTINGS.index(self.rpm)
        target = RPM_SETTINGS[max(position - 1, 0)]
        if target == self.rpm:
            self.set_message(f"Speed: {self.rpm} RPM")
            return False
        return self.set_speed(target)

    def change_volume(self, delta: float) -> float:
        """Adjust the volume by ``delta``; applies to the live channel if any."""
        self.volume = clamp_volume(self.volume + delta)
        if self.channel is not None:
            self.channel.set_volume(self.volume)
        self.set_message(f"Volume: {int(round(self.volume * 100))}%")
        return self.volume

    def toggle_pause(self) -> bool:
        """Pause or resume the inserted album.

        Returns:
            False if there was nothing to pause or resume
        """
        if not self.is_active or self.channel is None:
            self.set_message("No album is inserted yet. Press ENTER to insert.")
            return False
        if self.clock.paused:
            self.channel.play()
            self.clock.resume()
            self.set_message("Playing...")
        else:
            self.channel.pause()
            self.clock.pause()
            self.set_message("Paused.")
        return True

    def sync(self) -> None:
        """Move to the next track once the current one has played through.

        Tracks without a duration estimate never advance on their own.
        """
        collection = self.active
        if collection is None:
            return
        while self.track_index + 1 < len(collection.tracks):
            duration = collection.tracks[self.track_index].duration
            if duration <= 0 or self.clock.elapsed() < duration:
                break
            self.clock.advance(duration)
            self.track_index += 1
            logger.debug(f"Advanced to track {self.track_index} of '{collection.name}'")

    def close(self) -> None:
        """Release the audio channel on shutdown."""
        if self.channel is not None:
            self.channel.close()
            self.channel = None

    # -------------------------------------------------------------------------
    # Channel building
    # -------------------------------------------------------------------------
    def _build(self, collection: Collection, track_index: int, offset: float) -> Optional[AudioChannel]:
        paths = [track.path for track in collection.tracks[track_index:]]
        try:
            return self.builder.build(paths, offset=offset, speed=self.speed, volume=self.volume)
        except PlaybackError as e:
            logger.warning(f"Could not start '{collection.name}': {e}")
            self.set_message(f"Error: {e}")
            return None

    def _install(self, index: int, track_index: int, channel: AudioChannel, offset: float) -> None:
        previous = self.channel
        self.channel = channel
        if previous is not None and previous is not channel:
            previous.close()
        self.active_index = index
        self.track_index = track_index
        self.clock.reset(offset, rate=self.speed)
