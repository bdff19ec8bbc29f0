"""
Levari - Terminal vinyl-style music player.
"""

__version__ = "0.3.0"
__author__ = "Levari Team"
__description__ = "A terminal music player that plays album folders like records on a turntable."

from .catalog import Catalog, Collection, Track, load_catalog, load_collection, natural_compare
from .clock import SessionClock
from .session import PlaybackSession, SessionSnapshot

# Re-export key classes and functions
__all__ = [
    # Catalog
    'Catalog',
    'Collection',
    'Track',
    'load_catalog',
    'load_collection',
    'natural_compare',

    # Playback
    'SessionClock',
    'PlaybackSession',
    'SessionSnapshot',
]
