"""
The config module provides the configuration dataclass and parsing logic.

Parsing is strict: invalid values raise detailed errors, and unrecognized keys are logged as
warnings rather than silently ignored.
"""

from __future__ import annotations

import functools
import logging
from collections import deque
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any

import appdirs
import tomllib

from reel.common import ReelExpectedError

XDG_CONFIG_REEL = Path(appdirs.user_config_dir("reel"))
XDG_CONFIG_REEL.mkdir(parents=True, exist_ok=True)
CONFIG_PATH = XDG_CONFIG_REEL / "config.toml"

XDG_DATA_REEL = Path(appdirs.user_data_dir("reel"))

DEFAULT_PLAYABLE_EXTENSIONS = [".mp4", ".ogv"]
DEFAULT_HIDDEN_EXTENSIONS = [".jpg"]
DEFAULT_CONVERTIBLE_EXTENSIONS = [".mkv", ".mov", ".avi", ".wmv", ".flv", ".webm"]

logger = logging.getLogger(__name__)


class ConfigNotFoundError(ReelExpectedError):
    pass


class ConfigDecodeError(ReelExpectedError):
    pass


class MissingConfigKeyError(ReelExpectedError):
    pass


class InvalidConfigValueError(ReelExpectedError, ValueError):
    pass


@dataclass(frozen=True)
class Config:
    library_dir: Path
    data_dir: Path

    # Lowercased, dot-prefixed extensions.
    playable_extensions: list[str] = field(default_factory=lambda: list(DEFAULT_PLAYABLE_EXTENSIONS))
    hidden_extensions: list[str] = field(default_factory=lambda: list(DEFAULT_HIDDEN_EXTENSIONS))
    convertible_extensions: list[str] = field(
        default_factory=lambda: list(DEFAULT_CONVERTIBLE_EXTENSIONS)
    )

    preview_cache_size: int = 150
    timeline_frame_count: int = 20
    thumbnail_max_dimension: int = 512
    thumbnail_seek_seconds: float = 1.0
    # Playback positions past this mark the record as seen.
    seen_threshold_seconds: float = 1.0
    probe_timeout_seconds: float = 45.0
    ffmpeg_path: str = "ffmpeg"
    page_size: int = 100

    @classmethod
    def parse(cls, config_path_override: Path | None = None) -> Config:
        # As we parse, delete consumed values from the data dictionary. If any are left over at the
        # end of the config, warn that unknown config keys were found.
        cfgpath = config_path_override or CONFIG_PATH
        try:
            with cfgpath.open("r") as fp:
                data = tomllib.loads(fp.read())
        except FileNotFoundError as e:
            raise ConfigNotFoundError(f"Configuration file not found ({cfgpath})") from e
        except tomllib.TOMLDecodeError as e:
            raise ConfigDecodeError(
                f"Failed to decode configuration file: invalid TOML: {e}"
            ) from e

        try:
            library_dir = Path(data["library_dir"]).expanduser()
            del data["library_dir"]
        except KeyError as e:
            raise MissingConfigKeyError(
                f"Missing key library_dir in configuration file ({cfgpath})"
            ) from e
        except (ValueError, TypeError) as e:
            raise InvalidConfigValueError(
                f"Invalid value for library_dir in configuration file ({cfgpath}): must be a path"
            ) from e

        try:
            data_dir = Path(data["data_dir"]).expanduser()
            del data["data_dir"]
        except KeyError:
            data_dir = XDG_DATA_REEL
        except (TypeError, ValueError) as e:
            raise InvalidConfigValueError(
                f"Invalid value for data_dir in configuration file ({cfgpath}): must be a path"
            ) from e
        data_dir.mkdir(parents=True, exist_ok=True)

        playable_extensions = _parse_extensions(
            data, "playable_extensions", DEFAULT_PLAYABLE_EXTENSIONS, cfgpath
        )
        hidden_extensions = _parse_extensions(
            data, "hidden_extensions", DEFAULT_HIDDEN_EXTENSIONS, cfgpath
        )
        convertible_extensions = _parse_extensions(
            data, "convertible_extensions", DEFAULT_CONVERTIBLE_EXTENSIONS, cfgpath
        )

        preview_cache_size = _parse_positive_int(data, "preview_cache_size", 150, cfgpath)
        timeline_frame_count = _parse_positive_int(data, "timeline_frame_count", 20, cfgpath)
        thumbnail_max_dimension = _parse_positive_int(
            data, "thumbnail_max_dimension", 512, cfgpath
        )
        page_size = _parse_positive_int(data, "page_size", 100, cfgpath)

        thumbnail_seek_seconds = _parse_seconds(data, "thumbnail_seek_seconds", 1.0, cfgpath)
        seen_threshold_seconds = _parse_seconds(data, "seen_threshold_seconds", 1.0, cfgpath)
        probe_timeout_seconds = _parse_seconds(data, "probe_timeout_seconds", 45.0, cfgpath)
        if probe_timeout_seconds == 0:
            raise InvalidConfigValueError(
                f"Invalid value for probe_timeout_seconds in configuration file ({cfgpath}): must be positive"
            )

        try:
            ffmpeg_path = data["ffmpeg_path"]
            del data["ffmpeg_path"]
            if not isinstance(ffmpeg_path, str) or not ffmpeg_path:
                raise ValueError(f"Must be a non-empty string: got {ffmpeg_path!r}")
        except KeyError:
            ffmpeg_path = "ffmpeg"
        except ValueError as e:
            raise InvalidConfigValueError(
                f"Invalid value for ffmpeg_path in configuration file ({cfgpath}): {e}"
            ) from e

        if data:
            unrecognized_accessors: list[str] = []
            # Do a DFS over the data keys to assemble the map of unknown keys. State is a tuple of
            # ("accessor", node).
            dfs_state: deque[tuple[str, Any]] = deque([("", data)])
            while dfs_state:
                accessor, node = dfs_state.pop()
                if isinstance(node, dict):
                    for k, v in node.items():
                        child_accessor = k if not accessor else f"{accessor}.{k}"
                        dfs_state.append((child_accessor, v))
                    continue
                unrecognized_accessors.append(accessor)
            logger.warning(
                f"Unrecognized options found in configuration file: {', '.join(sorted(unrecognized_accessors))}"
            )

        return Config(
            library_dir=library_dir,
            data_dir=data_dir,
            playable_extensions=playable_extensions,
            hidden_extensions=hidden_extensions,
            convertible_extensions=convertible_extensions,
            preview_cache_size=preview_cache_size,
            timeline_frame_count=timeline_frame_count,
            thumbnail_max_dimension=thumbnail_max_dimension,
            thumbnail_seek_seconds=thumbnail_seek_seconds,
            seen_threshold_seconds=seen_threshold_seconds,
            probe_timeout_seconds=probe_timeout_seconds,
            ffmpeg_path=ffmpeg_path,
            page_size=page_size,
        )

    @functools.cached_property
    def database_path(self) -> Path:
        return self.data_dir / "library.sqlite3"

    @functools.cached_property
    def playlist_path(self) -> Path:
        return self.data_dir / "playlist.toml"


def _parse_extensions(
    data: dict[str, Any],
    key: str,
    default: list[str],
    cfgpath: Path,
) -> list[str]:
    try:
        value = data[key]
        del data[key]
        if not isinstance(value, list):
            raise ValueError(f"Must be a list[str]: got {type(value)}")
        for s in value:
            if not isinstance(s, str):
                raise ValueError(f"Each extension must be of type str: got {type(s)}")
    except KeyError:
        return list(default)
    except ValueError as e:
        raise InvalidConfigValueError(
            f"Invalid value for {key} in configuration file ({cfgpath}): {e}"
        ) from e
    # Accept both "mp4" and ".MP4".
    return [("." + s.lstrip(".")).lower() for s in value]


def _parse_positive_int(data: dict[str, Any], key: str, default: int, cfgpath: Path) -> int:
    try:
        value = data[key]
        del data[key]
        if not isinstance(value, int) or isinstance(value, bool) or value <= 0:
            raise ValueError(f"must be a positive integer: got {value!r}")
    except KeyError:
        return default
    except ValueError as e:
        raise InvalidConfigValueError(
            f"Invalid value for {key} in configuration file ({cfgpath}): {e}"
        ) from e
    return value


def _parse_seconds(data: dict[str, Any], key: str, default: float, cfgpath: Path) -> float:
    try:
        value = data[key]
        del data[key]
        if not isinstance(value, int | float) or isinstance(value, bool) or value < 0:
            raise ValueError(f"must be a non-negative number of seconds: got {value!r}")
    except KeyError:
        return default
    except ValueError as e:
        raise InvalidConfigValueError(
            f"Invalid value for {key} in configuration file ({cfgpath}): {e}"
        ) from e
    return float(value)
