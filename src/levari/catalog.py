"""
Music library discovery for levari.

A library is a directory tree. Any directory holding a cover image or at
least one audio file is a collection (an "album" on the shelf); other
directories are containers that are searched recursively.
"""
import os
import random
import re
from dataclasses import dataclass, field
from functools import cmp_to_key
from pathlib import Path
from typing import Iterator, List, Optional, Sequence, Union

from .logging_config import get_logger, FilesystemError

logger = get_logger('catalog')

# =============================================================================
# Constants
# =============================================================================
AUDIO_EXTENSIONS = {"mp3", "flac", "wav", "ogg"}
COVER_PREFIX = "cover."

# Rough bitrate used to turn a file size into a duration estimate.
BYTES_PER_SECOND = 40_000

_NATURAL_RE = re.compile(r"^(?P<prefix>[A-Za-z]*)(?P<num>[0-9]+)")


# =============================================================================
# Classes
# =============================================================================
@dataclass(frozen=True)
class Track:
    """One playable audio file.

    Attributes:
        title: File name without extension
        duration: Estimated duration in whole seconds
        path: Location of the audio file
    """

    title: str
    duration: int
    path: Path


@dataclass
class Collection:
    """A leaf directory of the library, played as one album."""

    name: str
    path: Path
    cover: Optional[Path] = None
    tracks: List[Track] = field(default_factory=list)
    bookmarked: bool = False

    def start_offset(self, index: int) -> int:
        """Sum of the durations of all tracks before ``index``."""
        return sum(track.duration for track in self.tracks[:max(0, index)])

    @property
    def total_duration(self) -> int:
        return self.start_offset(len(self.tracks))


class Catalog:
    """Ordered, load-once list of collections with bookmark navigation."""

    def __init__(self, collections: Sequence[Collection]):
        self._collections: List[Collection] = list(collections)

    def __len__(self) -> int:
        return len(self._collections)

    def __getitem__(self, index: int) -> Collection:
        return self._collections[index]

    def __iter__(self) -> Iterator[Collection]:
        return iter(self._collections)

    def is_valid_index(self, index: int) -> bool:
        return 0 <= index < len(self._collections)

    def shuffle(self, rng: Optional[random.Random] = None) -> None:
        """Shuffle the presentation order in place."""
        (rng or random).shuffle(self._collections)
        logger.debug(f"Shuffled {len(self._collections)} collections")

    def toggle_bookmark(self, index: int) -> bool:
        """Flip the bookmark on a collection.

        Returns:
            The new bookmark state, False when ``index`` is out of range
        """
        if not self.is_valid_index(index):
            return False
        collection = self._collections[index]
        collection.bookmarked = not collection.bookmarked
        logger.debug(f"Bookmark on '{collection.name}' is now {collection.bookmarked}")
        return collection.bookmarked

    def next_bookmark(self, start: int) -> Optional[int]:
        """Find the next bookmarked collection after ``start``, wrapping around."""
        return self._find_bookmark(start, 1)

    def prev_bookmark(self, start: int) -> Optional[int]:
        """Find the previous bookmarked collection before ``start``, wrapping around."""
        return self._find_bookmark(start, -1)

    def _find_bookmark(self, start: int, direction: int) -> Optional[int]:
        count = len(self._collections)
        if count == 0:
            return None
        start %= count
        for offset in range(1, count + 1):
            index = (start + direction * offset) % count
            if self._collections[index].bookmarked:
                return index
        return None


# =============================================================================
# Ordering and estimates
# =============================================================================
def _cmp(a, b) -> int:
    return (a > b) - (a < b)


def natural_compare(a: str, b: str) -> int:
    """Compare two titles so that embedded track numbers sort numerically.

    Titles shaped like ``<letters><digits>...`` compare by the letter
    prefix first, then by the digit run as an integer. Anything else
    compares as plain strings.

    Returns:
        Negative, zero or positive like a classic ``cmp``
    """
    a_match = _NATURAL_RE.match(a)
    b_match = _NATURAL_RE.match(b)
    if a_match and b_match:
        result = _cmp(a_match.group("prefix"), b_match.group("prefix"))
        if result == 0:
            result = _cmp(int(a_match.group("num")), int(b_match.group("num")))
        if result != 0:
            return result
    return _cmp(a, b)


def sort_tracks(tracks: List[Track]) -> List[Track]:
    """Return ``tracks`` in natural title order."""
    return sorted(tracks, key=cmp_to_key(lambda x, y: natural_compare(x.title, y.title)))


def estimate_duration(size: int) -> int:
    """Estimate a track length in seconds from its size in bytes.

    The result is ``size / 40000`` rounded half up, so 100000 bytes
    (2.5 s) gives 3 and 60000 bytes (1.5 s) gives 2. This is only an
    approximation, not a parse of the media.
    """
    if size <= 0:
        return 0
    return (size + BYTES_PER_SECOND // 2) // BYTES_PER_SECOND


# =============================================================================
# Loading
# =============================================================================
def _list_entries(path: Path) -> List[os.DirEntry]:
    try:
        with os.scandir(path) as entries:
            return list(entries)
    except OSError as e:
        logger.debug(f"Cannot read directory {path}: {e}")
        raise FilesystemError(f"Cannot read directory {path}: {e}") from e


def _is_file(entry: os.DirEntry) -> bool:
    try:
        return entry.is_file()
    except OSError:
        return False


def load_collection(path: Union[str, Path]) -> Collection:
    """Build a collection candidate from the direct files of ``path``.

    Raises:
        FilesystemError: If the directory or a file in it can't be read
    """
    path = Path(path)
    entries = [entry for entry in _list_entries(path) if _is_file(entry)]

    cover = None
    for entry in entries:
        if entry.name.lower().startswith(COVER_PREFIX):
            cover = Path(entry.path)
            break

    tracks = []
    for entry in entries:
        stem, dot, ext = entry.name.rpartition(".")
        if not dot or not stem or ext.lower() not in AUDIO_EXTENSIONS:
            continue
        try:
            size = entry.stat().st_size
        except OSError as e:
            raise FilesystemError(f"Cannot stat {entry.path}: {e}") from e
        tracks.append(Track(title=stem, duration=estimate_duration(size), path=Path(entry.path)))

    return Collection(
        name=path.name or str(path),
        path=path,
        cover=cover,
        tracks=sort_tracks(tracks),
    )


def load_catalog(root: Union[str, Path]) -> List[Collection]:
    """Walk ``root`` depth first and return every collection found.

    A directory with a cover or with audio files is emitted as a
    collection and not descended into. Otherwise its subdirectories are
    searched in the order the filesystem lists them.

    Raises:
        FilesystemError: If any directory on the way can't be enumerated
    """
    root = Path(root)
    candidate = load_collection(root)
    if candidate.cover is not None or candidate.tracks:
        logger.debug(f"Found collection '{candidate.name}' with {len(candidate.tracks)} tracks")
        return [candidate]

    collections: List[Collection] = []
    for entry in _list_entries(root):
        try:
            is_dir = entry.is_dir(follow_symlinks=False)
        except OSError:
            continue
        if is_dir:
            collections.extend(load_catalog(Path(entry.path)))
    return collections
