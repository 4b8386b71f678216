"""
The pipeline module derives previews and durations for records in the background of a sync.

Work is strictly sequential: one record is probed, its result persisted, and only then does the
next record start. A run can be cancelled between records. The record in flight always completes,
so a cancelled run leaves the store consistent and a later run resumes naturally: whatever still
lacks a thumbnail is scheduled again by the next sync.

A bad file never aborts a run. Its failure is recorded on the record itself (non-playable, with a
description) and the pipeline moves on.
"""

from __future__ import annotations

import logging
import threading
from collections.abc import Callable, Iterable
from dataclasses import dataclass
from pathlib import Path

from reel.config import Config
from reel.files import FileResolver, LibraryAccessError
from reel.previews import PreviewCache
from reel.probe import Prober
from reel.records import LibraryRecord
from reel.store import Store

logger = logging.getLogger(__name__)

THUMBNAIL_FAILED_DESCRIPTION = (
    "Could not generate thumbnail. File may be corrupt or in an unsupported format."
)
REGENERATE_FAILED_DESCRIPTION = "Failed to regenerate thumbnail."


@dataclass(frozen=True)
class Progress:
    processed: int
    total: int
    phase: str


@dataclass
class PipelineResult:
    processed: int = 0
    succeeded: int = 0
    failed: int = 0
    skipped: int = 0
    cancelled: bool = False


class ProcessingPipeline:
    def __init__(
        self,
        c: Config,
        store: Store,
        probe: Prober,
        preview_cache: PreviewCache,
        on_progress: Callable[[Progress], None] | None = None,
    ) -> None:
        self.config = c
        self.store = store
        self.probe = probe
        self.preview_cache = preview_cache
        self.on_progress = on_progress
        self._cancel = threading.Event()
        self._progress = Progress(processed=0, total=0, phase="idle")

    @property
    def progress(self) -> Progress:
        return self._progress

    @property
    def cancelled(self) -> bool:
        return self._cancel.is_set()

    def cancel(self) -> None:
        """Request that the current (or next) run stop after the record in flight."""
        logger.info("Cancellation requested, stopping after the current record")
        self._cancel.set()

    def _report(self, processed: int, total: int, phase: str) -> None:
        self._progress = Progress(processed=processed, total=total, phase=phase)
        if self.on_progress is not None:
            self.on_progress(self._progress)

    def _begin(self, records: list[LibraryRecord], resolver: FileResolver, phase: str) -> None:
        # A cancel requested before the run starts stops it before the first record.
        if records and not resolver:
            raise LibraryAccessError(
                "No library files are available to process: scan the library directory first"
            )
        logger.info(f"Starting {phase} for {len(records)} records")
        self._report(0, len(records), phase)

    def _finish(self, processed: int, total: int) -> None:
        self._cancel.clear()
        self._report(processed, total, "idle")

    def _current(self, record: LibraryRecord) -> LibraryRecord:
        # Results are applied to the stored state, not the possibly stale scheduled copy.
        return self.store.get_record(record.id) or record

    def _primary_frame(self, path: Path) -> bytes | None:
        # Injected probes are not trusted to honor the never-raise contract.
        try:
            return self.probe.primary_frame(path)
        except Exception as e:
            logger.warning(f"Probe raised while rendering thumbnail of {path}: {e}", exc_info=True)
            return None

    def generate_thumbnails(
        self,
        records: Iterable[LibraryRecord],
        resolver: FileResolver,
    ) -> PipelineResult:
        records = list(records)
        self._begin(records, resolver, "thumbnails")
        result = PipelineResult()

        for record in records:
            if self._cancel.is_set():
                result.cancelled = True
                logger.info(f"Thumbnail generation cancelled after {result.processed} records")
                break

            record = self._current(record)
            path = resolver.resolve(record)
            if path is None:
                logger.warning(f"Skipping {record.relative_path}: file not available")
                result.skipped += 1
            else:
                frame = self._primary_frame(path)
                if frame is not None:
                    updated = record.replace(playable=True, description="")
                    self.store.upsert_record(updated, thumbnail=frame)
                    result.succeeded += 1
                    logger.debug(f"Generated thumbnail of {record.relative_path}")
                else:
                    updated = record.replace(playable=False, description=THUMBNAIL_FAILED_DESCRIPTION)
                    self.store.upsert_record(updated)
                    result.failed += 1
                    logger.warning(f"Failed to generate thumbnail of {record.relative_path}")

            result.processed += 1
            self._report(result.processed, len(records), "thumbnails")

        logger.info(
            f"Finished thumbnails: {result.succeeded} generated, {result.failed} failed, "
            f"{result.skipped} skipped"
        )
        self._finish(result.processed, len(records))
        return result

    def regenerate(self, record: LibraryRecord, resolver: FileResolver) -> LibraryRecord:
        """
        Regenerate the previews of a single record on demand. If its file is not available, only
        a diagnostic is appended to the description; the existing thumbnail and playability stay.
        """
        path = resolver.resolve(record)
        if path is None:
            note = (
                f"Regeneration failed for {record.relative_path}: file not available. "
                "Re-scan the library directory."
            )
            description = f"{record.description}\n{note}" if record.description else note
            updated = record.replace(description=description)
            self.store.upsert_record(updated)
            logger.warning(f"Cannot regenerate {record.relative_path}: file not available")
            return updated

        self.store.delete_timeline(record.id)
        self.preview_cache.delete(record.id)
        frame = self._primary_frame(path)
        if frame is None:
            updated = record.replace(playable=False, description=REGENERATE_FAILED_DESCRIPTION)
            self.store.upsert_record(updated)
            logger.warning(f"Failed to regenerate thumbnail of {record.relative_path}")
            return updated
        updated = record.replace(playable=True, description="")
        self.store.upsert_record(updated, thumbnail=frame)
        logger.info(f"Regenerated thumbnail of {record.relative_path}")
        return updated

    def scan_durations(
        self,
        records: Iterable[LibraryRecord],
        resolver: FileResolver,
    ) -> PipelineResult:
        """Probe and persist durations of playable records whose duration is unknown."""
        todo = [r for r in records if r.playable and not r.duration]
        self._begin(todo, resolver, "durations")
        result = PipelineResult()

        for record in todo:
            if self._cancel.is_set():
                result.cancelled = True
                logger.info(f"Duration scan cancelled after {result.processed} records")
                break

            record = self._current(record)
            path = resolver.resolve(record)
            if path is None:
                result.skipped += 1
            else:
                try:
                    duration = self.probe.duration(path)
                except Exception as e:
                    logger.warning(f"Probe raised while reading duration of {path}: {e}", exc_info=True)
                    duration = None
                if duration:
                    self.store.upsert_record(record.replace(duration=duration))
                    result.succeeded += 1
                    logger.debug(f"Read duration {duration:.2f}s of {record.relative_path}")
                else:
                    result.failed += 1

            result.processed += 1
            self._report(result.processed, len(todo), "durations")

        logger.info(f"Finished duration scan: {result.succeeded} found, {result.failed} unknown")
        self._finish(result.processed, len(todo))
        return result
