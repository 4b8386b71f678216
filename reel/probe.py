"""
The probe module extracts what the library needs from video files: a duration, a representative
thumbnail, and an evenly spaced strip of timeline frames.

Frames are rendered by an ffmpeg subprocess piping a PNG to stdout, then bounded and re-encoded as
JPEG with Pillow. Durations are read with mutagen.

Every probe operation fails by returning None; nothing here raises on a bad file. The pipeline
decides what a failure means for the record.
"""

from __future__ import annotations

import io
import logging
import subprocess
from pathlib import Path
from typing import Protocol

import mutagen
from mutagen import MutagenError
from PIL import Image, UnidentifiedImageError

from reel.config import Config

logger = logging.getLogger(__name__)

JPEG_QUALITY = 85
# Brightness ceiling, per channel, under which a pixel counts as black.
BLACK_PIXEL_THRESHOLD = 15
BLACK_CHECK_WIDTH = 20
# Timeline strips are not attempted for clips shorter than this.
MIN_TIMELINE_DURATION = 1.0


class Prober(Protocol):
    def duration(self, path: Path) -> float | None: ...

    def primary_frame(self, path: Path) -> bytes | None: ...

    def timeline_frames(self, path: Path, count: int) -> list[bytes] | None: ...


def bounded_dimensions(width: int, height: int, max_dimension: int) -> tuple[int, int]:
    """Scale (width, height) down so that neither side exceeds max_dimension, keeping aspect."""
    if width <= max_dimension and height <= max_dimension:
        return width, height
    if width >= height:
        return max_dimension, max(1, round(height * max_dimension / width))
    return max(1, round(width * max_dimension / height)), max_dimension


def timeline_offsets(duration: float | None, count: int) -> list[float] | None:
    """Evenly spaced offsets, excluding the very start and end of the clip."""
    if duration is None or duration != duration or duration == float("inf"):
        return None
    if duration < MIN_TIMELINE_DURATION or count <= 0:
        return None
    interval = duration / (count + 1)
    return [interval * i for i in range(1, count + 1)]


def is_black_frame(jpeg: bytes) -> bool:
    """
    Whether an encoded frame is entirely (near-)black. Fade-ins commonly produce black primary
    thumbnails.
    """
    try:
        with Image.open(io.BytesIO(jpeg)) as im:
            rgb = im.convert("RGB")
            height = max(1, round(rgb.height * BLACK_CHECK_WIDTH / max(1, rgb.width)))
            small = rgb.resize((BLACK_CHECK_WIDTH, height))
    except (UnidentifiedImageError, OSError) as e:
        logger.debug(f"Could not decode frame for black check: {e}")
        return False
    for band in small.split():
        _, hi = band.getextrema()
        if hi > BLACK_PIXEL_THRESHOLD:
            return False
    return True


class MediaProbe:
    def __init__(self, c: Config) -> None:
        self.config = c

    def duration(self, path: Path) -> float | None:
        try:
            mf = mutagen.File(path)
        except (MutagenError, OSError) as e:
            logger.debug(f"Failed to read duration of {path}: {e}")
            return None
        if mf is None or mf.info is None:
            logger.debug(f"Failed to read duration of {path}: unrecognized format")
            return None
        length = getattr(mf.info, "length", None)
        if not length or length <= 0:
            return None
        return float(length)

    def primary_frame(self, path: Path) -> bytes | None:
        """Render the thumbnail frame. At most one retry is made per call."""
        frame = self._render_frame(path, self.config.thumbnail_seek_seconds)
        if frame is None:
            if self.config.thumbnail_seek_seconds > 0:
                # Clips shorter than the seek offset have no frame there.
                logger.debug(f"Retrying thumbnail of {path} from the first frame")
                frame = self._render_frame(path, 0.0)
        elif is_black_frame(frame):
            duration = self.duration(path)
            if duration and duration / 2 > self.config.thumbnail_seek_seconds:
                logger.debug(f"Thumbnail of {path} is black, retrying at the midpoint")
                frame = self._render_frame(path, duration / 2) or frame
        return frame

    def timeline_frames(self, path: Path, count: int) -> list[bytes] | None:
        offsets = timeline_offsets(self.duration(path), count)
        if offsets is None:
            logger.debug(f"Skipping timeline of {path}: duration unknown or too short")
            return None
        frames: list[bytes] = []
        for offset in offsets:
            frame = self._render_frame(path, offset)
            if frame is not None:
                frames.append(frame)
        if not frames:
            return None
        logger.debug(f"Rendered {len(frames)}/{count} timeline frames of {path}")
        return frames

    def _render_frame(self, path: Path, offset: float) -> bytes | None:
        args = [self.config.ffmpeg_path, "-hide_banner", "-loglevel", "error"]
        if offset > 0:
            args.extend(["-ss", f"{offset:.3f}"])
        args.extend(["-i", str(path), "-frames:v", "1", "-f", "image2pipe", "-vcodec", "png", "pipe:1"])
        try:
            completed = subprocess.run(
                args,
                capture_output=True,
                check=False,
                timeout=self.config.probe_timeout_seconds,
            )
        except subprocess.TimeoutExpired:
            logger.warning(f"Timed out rendering frame of {path} at {offset:.3f}s")
            return None
        except OSError as e:
            logger.warning(f"Failed to invoke {self.config.ffmpeg_path}: {e}")
            return None
        if completed.returncode != 0 or not completed.stdout:
            stderr = completed.stderr.decode(errors="replace").strip()
            logger.debug(f"ffmpeg rendered no frame of {path} at {offset:.3f}s: {stderr}")
            return None
        return encode_jpeg(completed.stdout, self.config.thumbnail_max_dimension)


def encode_jpeg(image_data: bytes, max_dimension: int) -> bytes | None:
    """Decode any Pillow-readable image, bound its size, and re-encode it as JPEG."""
    try:
        with Image.open(io.BytesIO(image_data)) as im:
            rgb = im.convert("RGB")
    except (UnidentifiedImageError, OSError) as e:
        logger.debug(f"Failed to decode rendered frame: {e}")
        return None
    size = bounded_dimensions(rgb.width, rgb.height, max_dimension)
    if size != rgb.size:
        rgb = rgb.resize(size, Image.Resampling.LANCZOS)
    out = io.BytesIO()
    rgb.save(out, format="JPEG", quality=JPEG_QUALITY)
    return out.getvalue()
