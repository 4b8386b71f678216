import tempfile
from pathlib import Path

import pytest

from reel.config import (
    Config,
    ConfigDecodeError,
    ConfigNotFoundError,
    InvalidConfigValueError,
    MissingConfigKeyError,
)


def test_config_minimal() -> None:
    with tempfile.TemporaryDirectory() as tmpdir:
        path = Path(tmpdir) / "config.toml"
        with path.open("w") as fp:
            fp.write(
                f"""
                library_dir = "~/.videos"
                data_dir = "{tmpdir}/data"
                """
            )

        c = Config.parse(config_path_override=path)
        assert c.library_dir == Path.home() / ".videos"
        assert c.data_dir == Path(tmpdir) / "data"
        assert c.data_dir.is_dir()
        assert c.playable_extensions == [".mp4", ".ogv"]
        assert c.hidden_extensions == [".jpg"]
        assert c.preview_cache_size == 150
        assert c.timeline_frame_count == 20
        assert c.database_path == Path(tmpdir) / "data" / "library.sqlite3"
        assert c.playlist_path == Path(tmpdir) / "data" / "playlist.toml"


def test_config_full() -> None:
    with tempfile.TemporaryDirectory() as tmpdir:
        path = Path(tmpdir) / "config.toml"
        with path.open("w") as fp:
            fp.write(
                f"""
                library_dir = "{tmpdir}/videos"
                data_dir = "{tmpdir}/data"
                playable_extensions = ["mp4", ".WEBM"]
                hidden_extensions = [".jpg", ".png"]
                convertible_extensions = [".mkv"]
                preview_cache_size = 10
                timeline_frame_count = 8
                thumbnail_max_dimension = 256
                thumbnail_seek_seconds = 2
                seen_threshold_seconds = 5.5
                probe_timeout_seconds = 10
                ffmpeg_path = "/opt/ffmpeg/bin/ffmpeg"
                page_size = 50
                """
            )

        c = Config.parse(config_path_override=path)
        assert c == Config(
            library_dir=Path(tmpdir) / "videos",
            data_dir=Path(tmpdir) / "data",
            playable_extensions=[".mp4", ".webm"],
            hidden_extensions=[".jpg", ".png"],
            convertible_extensions=[".mkv"],
            preview_cache_size=10,
            timeline_frame_count=8,
            thumbnail_max_dimension=256,
            thumbnail_seek_seconds=2.0,
            seen_threshold_seconds=5.5,
            probe_timeout_seconds=10.0,
            ffmpeg_path="/opt/ffmpeg/bin/ffmpeg",
            page_size=50,
        )


def test_config_not_found() -> None:
    with tempfile.TemporaryDirectory() as tmpdir:
        path = Path(tmpdir) / "config.toml"
        with pytest.raises(ConfigNotFoundError):
            Config.parse(config_path_override=path)


def test_config_invalid_toml() -> None:
    with tempfile.TemporaryDirectory() as tmpdir:
        path = Path(tmpdir) / "config.toml"
        path.write_text("library_dir = ")
        with pytest.raises(ConfigDecodeError):
            Config.parse(config_path_override=path)


def test_config_missing_key_validation() -> None:
    with tempfile.TemporaryDirectory() as tmpdir:
        path = Path(tmpdir) / "config.toml"
        path.touch()
        with pytest.raises(MissingConfigKeyError) as excinfo:
            Config.parse(config_path_override=path)
        assert str(excinfo.value) == f"Missing key library_dir in configuration file ({path})"


def test_config_value_validation() -> None:
    with tempfile.TemporaryDirectory() as tmpdir:
        path = Path(tmpdir) / "config.toml"
        base = f'library_dir = "{tmpdir}/videos"\ndata_dir = "{tmpdir}/data"\n'

        def write(text: str) -> None:
            path.write_text(base + text)

        # library_dir
        path.write_text("library_dir = 123")
        with pytest.raises(InvalidConfigValueError) as excinfo:
            Config.parse(config_path_override=path)
        assert (
            str(excinfo.value)
            == f"Invalid value for library_dir in configuration file ({path}): must be a path"
        )

        # preview_cache_size
        write("preview_cache_size = 0")
        with pytest.raises(InvalidConfigValueError) as excinfo:
            Config.parse(config_path_override=path)
        assert (
            str(excinfo.value)
            == f"Invalid value for preview_cache_size in configuration file ({path}): must be a positive integer: got 0"
        )

        # playable_extensions
        write("playable_extensions = 'mp4'")
        with pytest.raises(InvalidConfigValueError) as excinfo:
            Config.parse(config_path_override=path)
        assert (
            str(excinfo.value)
            == f"Invalid value for playable_extensions in configuration file ({path}): Must be a list[str]: got <class 'str'>"
        )
        write("playable_extensions = [1]")
        with pytest.raises(InvalidConfigValueError) as excinfo:
            Config.parse(config_path_override=path)
        assert (
            str(excinfo.value)
            == f"Invalid value for playable_extensions in configuration file ({path}): Each extension must be of type str: got <class 'int'>"
        )

        # seen_threshold_seconds
        write("seen_threshold_seconds = -1")
        with pytest.raises(InvalidConfigValueError):
            Config.parse(config_path_override=path)

        # probe_timeout_seconds
        write("probe_timeout_seconds = 0")
        with pytest.raises(InvalidConfigValueError):
            Config.parse(config_path_override=path)

        # ffmpeg_path
        write('ffmpeg_path = ""')
        with pytest.raises(InvalidConfigValueError):
            Config.parse(config_path_override=path)


def test_config_unrecognized_keys_warn(caplog: pytest.LogCaptureFixture) -> None:
    with tempfile.TemporaryDirectory() as tmpdir:
        path = Path(tmpdir) / "config.toml"
        path.write_text(
            f"""
            library_dir = "{tmpdir}/videos"
            data_dir = "{tmpdir}/data"
            lalala = 1
            [nested]
            key = "x"
            """
        )
        Config.parse(config_path_override=path)
        assert "Unrecognized options found in configuration file: lalala, nested.key" in caplog.text
