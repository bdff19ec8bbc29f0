"""
Command line entry point for levari.
"""
import argparse
import sys
from pathlib import Path
from typing import List, Optional

from . import __version__, __description__
from .audio import ChannelBuilder, open_channel, resolve_player
from .catalog import Catalog, load_catalog
from .config import load_config
from .logging_config import get_logger, setup_logging, FilesystemError, LevariError
from .session import PlaybackSession, RPM_SETTINGS
from .state import ViewState
from . import ui

logger = get_logger('main')


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(prog="levari", description=__description__)
    parser.add_argument("-d", "--datadir", type=Path,
                        help="root directory of the music library")
    parser.add_argument("--config", type=Path,
                        help="path to levari.toml (default: $XDG_CONFIG_HOME/levari/levari.toml)")
    parser.add_argument("--no-shuffle", action="store_true",
                        help="keep the shelf in library order")
    parser.add_argument("--rpm", type=int, choices=RPM_SETTINGS,
                        help="initial turntable speed")
    parser.add_argument("--player", help="audio player executable (default: mpv on PATH)")
    parser.add_argument("--log-level", choices=["DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"])
    parser.add_argument("--log-file", type=Path)
    parser.add_argument("-V", "--version", action="version", version=f"levari {__version__}")
    return parser


def load_shelf(root: Path, shuffle: bool = True) -> Catalog:
    """Load the library under `root` for display.

    Raises:
        FilesystemError: If the library can't be read
        LevariError: If it holds no albums at all
    """
    catalog = Catalog(load_catalog(root))
    if len(catalog) == 0:
        raise LevariError(f"No albums found in {root}")
    if shuffle:
        catalog.shuffle()
    logger.info(f"Loaded {len(catalog)} albums from {root}")
    return catalog


def main(argv: Optional[List[str]] = None) -> int:
    args = build_parser().parse_args(argv)

    manager = load_config(args.config)
    config = manager.config
    if args.rpm is not None:
        manager.set("rpm", args.rpm)
    if args.player:
        manager.set("player", args.player)
    if args.no_shuffle:
        manager.set("shuffle", False)

    log_level = args.log_level or config.log_level
    log_file = args.log_file or config.log_file
    setup_logging(log_level, log_file)

    root = args.datadir or manager.get_music_directory_path()
    if root is None:
        print("levari: no music directory given (use --datadir or set [library] directory)",
              file=sys.stderr)
        return 2

    try:
        catalog = load_shelf(root, shuffle=config.shuffle)
    except FilesystemError as e:
        logger.debug(f"Failed to load library: {e}")
        print(f"levari: {e}", file=sys.stderr)
        return 1
    except LevariError as e:
        print(f"levari: {e}", file=sys.stderr)
        return 1

    executable = resolve_player(config.player)
    if executable is None:
        if config.player == "auto":
            print("levari: mpv was not found on PATH", file=sys.stderr)
        else:
            print(f"levari: audio player not found: {config.player}", file=sys.stderr)
        return 1
    logger.debug(f"Using audio player {executable}")

    # The UI owns the terminal from here on; keep logging off the screen.
    setup_logging(log_level, log_file, console=False)

    builder = ChannelBuilder(factory=lambda: open_channel(executable))
    session = PlaybackSession(
        catalog,
        builder=builder,
        volume=config.volume,
        rpm=config.rpm,
        message_timeout=config.message_timeout,
    )
    view = ViewState(catalog)
    try:
        ui.run(view, session, config)
    except LevariError as e:
        print(f"levari: {e}", file=sys.stderr)
        return 1
    return 0
