"""
The cli module defines reel's CLI interface. It does not have any domain logic of its own. It is
dedicated to parsing, resolving arguments, and delegating to the appropriate module.
"""

from __future__ import annotations

import json
import logging
import signal
from collections.abc import Callable, Iterator
from contextlib import contextmanager
from dataclasses import dataclass
from pathlib import Path
from typing import Any, TypeVar

import click

from reel.config import Config
from reel.query import SortCriteria
from reel.store import Store

logger = logging.getLogger(__name__)

F = TypeVar("F", bound=Callable[..., Any])


@dataclass
class Context:
    config: Config

    @contextmanager
    def store(self) -> Iterator[Store]:
        with Store(self.config.database_path) as store:
            yield store


# fmt: off
@click.group()
@click.option("--verbose", "-v", is_flag=True, help="Emit verbose logging.")
@click.option("--config", "-c", type=click.Path(path_type=Path), help="Override the config file location.")
@click.pass_context
# fmt: on
def cli(cc: click.Context, verbose: bool, config: Path | None = None) -> None:
    """A video library manager for a folder of local files."""
    cc.obj = Context(config=Config.parse(config_path_override=config))
    if verbose:
        logging.getLogger().setLevel(logging.DEBUG)


def filter_options(f: F) -> F:
    # fmt: off
    f = click.option("--status", "-s", "statuses", multiple=True, help="Status filter as NAME[=include|exclude]. Repeatable.")(f)
    f = click.option("--tag", "-t", "tags", multiple=True, help="Only records with this tag. Repeatable.")(f)
    f = click.option("--search", "-q", default="", help="Search query, e.g. 'beach rating>3 size<1GB'.")(f)
    f = click.option("--sort", "sort", default="filename", type=click.Choice([s.value for s in SortCriteria]), help="Sort criteria.")(f)
    f = click.option("--desc", is_flag=True, help="Sort descending.")(f)
    f = click.option("--seed", default=0, type=int, help="Seed for random sort.")(f)
    # fmt: on
    return f


def _visible(
    store: Store,
    statuses: tuple[str, ...],
    tags: tuple[str, ...],
    search: str,
    sort: str,
    desc: bool,
    seed: int,
) -> list[Any]:
    from reel.query import parse_status_filters, visible_records

    return visible_records(
        store.list_records(),
        status_filters=parse_status_filters(statuses),
        tags=tags,
        query=search,
        criteria=SortCriteria(sort),
        descending=desc,
        seed=seed,
    )


def _write_output(text: str, out: Path | None) -> None:
    if out is None:
        click.echo(text)
        return
    with out.open("w") as fp:
        fp.write(text)
    logger.info(f"Wrote {out}")


@contextmanager
def cancel_on_interrupt(cancel: Callable[[], None]) -> Iterator[None]:
    """Route Ctrl-C to a cooperative cancel for the duration of the block."""
    previous = signal.getsignal(signal.SIGINT)
    signal.signal(signal.SIGINT, lambda *_: cancel())
    try:
        yield
    finally:
        signal.signal(signal.SIGINT, previous)


def _log_progress(progress: Any) -> None:
    if progress.processed == progress.total or progress.processed % 25 == 0:
        logger.info(f"Processed {progress.processed}/{progress.total} records ({progress.phase})")


@cli.group()
def library() -> None:
    """Synchronize and inspect the library."""


# fmt: off
@library.command()
@click.option("--skip-previews", is_flag=True, help="Only reconcile records; do not generate thumbnails.")
@click.pass_obj
# fmt: on
def sync(ctx: Context, skip_previews: bool) -> None:
    """Reconcile the library directory with the stored records and generate missing thumbnails."""
    from reel.files import FileResolver, scan_library_dir
    from reel.pipeline import ProcessingPipeline
    from reel.previews import PreviewCache
    from reel.probe import MediaProbe
    from reel.sync import sync_library

    c = ctx.config
    observed = scan_library_dir(c.library_dir)
    with ctx.store() as store:
        plan = sync_library(c, store, observed)
        if skip_previews or not plan.regenerate:
            return
        pipeline = ProcessingPipeline(
            c, store, MediaProbe(c), PreviewCache(c.preview_cache_size), on_progress=_log_progress
        )
        with cancel_on_interrupt(pipeline.cancel):
            result = pipeline.generate_thumbnails(plan.regenerate, FileResolver(observed))
        if result.cancelled:
            click.secho("Cancelled: remaining thumbnails will be generated on the next sync.", fg="yellow")


@library.command()
@click.pass_obj
def scan_durations(ctx: Context) -> None:
    """Probe durations of playable records whose duration is unknown."""
    from reel.files import FileResolver, scan_library_dir
    from reel.pipeline import ProcessingPipeline
    from reel.previews import PreviewCache
    from reel.probe import MediaProbe

    c = ctx.config
    resolver = FileResolver(scan_library_dir(c.library_dir))
    with ctx.store() as store:
        pipeline = ProcessingPipeline(
            c, store, MediaProbe(c), PreviewCache(c.preview_cache_size), on_progress=_log_progress
        )
        with cancel_on_interrupt(pipeline.cancel):
            pipeline.scan_durations(store.list_records(), resolver)


@library.command()
@click.argument("record_id", type=str, nargs=1)
@click.pass_obj
def regenerate(ctx: Context, record_id: str) -> None:
    """Regenerate the thumbnail and timeline of one record."""
    from reel.files import FileResolver, LibraryAccessError, scan_library_dir
    from reel.pipeline import ProcessingPipeline
    from reel.previews import PreviewCache
    from reel.probe import MediaProbe
    from reel.store import RecordDoesNotExistError

    c = ctx.config
    try:
        resolver = FileResolver(scan_library_dir(c.library_dir))
    except LibraryAccessError as e:
        # Regeneration records the failure on the record instead.
        logger.warning(f"Library directory unavailable: {e}")
        resolver = FileResolver([])
    with ctx.store() as store:
        record = store.get_record(record_id)
        if record is None:
            raise RecordDoesNotExistError(f"Record {record_id} does not exist")
        pipeline = ProcessingPipeline(c, store, MediaProbe(c), PreviewCache(c.preview_cache_size))
        updated = pipeline.regenerate(record, resolver)
        click.echo(json.dumps(updated.dump()))


# fmt: off
@library.command(name="list")
@filter_options
@click.option("--page", "-p", default=1, type=int, help="Page number (1-indexed).")
@click.pass_obj
# fmt: on
def list_(
    ctx: Context,
    statuses: tuple[str, ...],
    tags: tuple[str, ...],
    search: str,
    sort: str,
    desc: bool,
    seed: int,
    page: int,
) -> None:
    """Print the visible records (in JSON), one page at a time."""
    from reel.query import page_count, paginate

    with ctx.store() as store:
        records = _visible(store, statuses, tags, search, sort, desc, seed)
    pages = page_count(len(records), ctx.config.page_size)
    click.echo(
        json.dumps(
            {
                "page": page,
                "pages": pages,
                "total": len(records),
                "records": [r.dump() for r in paginate(records, page, ctx.config.page_size)],
            }
        )
    )


@library.command(name="print")
@click.argument("record_id", type=str, nargs=1)
@click.pass_obj
def print1(ctx: Context, record_id: str) -> None:
    """Print a single record (in JSON)."""
    from reel.store import RecordDoesNotExistError

    with ctx.store() as store:
        record = store.get_record(record_id)
    if record is None:
        raise RecordDoesNotExistError(f"Record {record_id} does not exist")
    click.echo(json.dumps(record.dump()))


@library.command()
@click.option("--yes", "-y", is_flag=True, help="Bypass confirmation prompts.")
@click.pass_obj
def reset(ctx: Context, yes: bool) -> None:
    """Forget every record, preview, and the playlist. Files on disk are not touched."""
    from reel.maintenance import reset_library

    if not yes:
        click.confirm("Reset the library database? All ratings, tags, and flags are lost.", abort=True)
    with ctx.store() as store:
        reset_library(ctx.config, store)


def edit_options(f: F) -> F:
    # fmt: off
    f = click.option("--rating", "-r", type=click.IntRange(min=0), help="Set the rating.")(f)
    f = click.option("--seen/--unseen", default=None, help="Mark as seen or unseen.")(f)
    f = click.option("--heart/--unheart", default=None, help="Heart or unheart.")(f)
    f = click.option("--hide/--unhide", default=None, help="Hide or unhide.")(f)
    f = click.option("--delete/--undelete", "delete", default=None, help="Mark as deleted or restore.")(f)
    f = click.option("--title", type=str, help="Set the display title. An empty string clears it.")(f)
    f = click.option("--set-tag", "set_tags", multiple=True, help="Replace the tags with these. Repeatable.")(f)
    # fmt: on
    return f


def _collect_changes(
    rating: int | None,
    seen: bool | None,
    heart: bool | None,
    hide: bool | None,
    delete: bool | None,
    title: str | None,
    set_tags: tuple[str, ...],
) -> dict[str, Any]:
    changes: dict[str, Any] = {}
    if rating is not None:
        changes["rating"] = rating
    if seen is not None:
        changes["seen"] = seen
    if heart is not None:
        changes["hearted"] = heart
    if hide is not None:
        changes["hidden"] = hide
    if delete is not None:
        changes["deleted"] = delete
    if title is not None:
        changes["title"] = title
    if set_tags:
        changes["tags"] = list(set_tags)
    return changes


@cli.group()
def records() -> None:
    """
    Edit record metadata.

    Each command is one process, so its edit history ends with it: edits made here cannot be
    undone from the CLI. Undo and redo are available to library callers through EditHistory.
    """


@records.command()
@click.argument("record_id", type=str, nargs=1)
@edit_options
@click.pass_obj
def edit(ctx: Context, record_id: str, **kwargs: Any) -> None:
    """Edit a single record. Not undoable from the CLI."""
    from reel.history import EditHistory, edit_record

    changes = _collect_changes(**kwargs)
    if not changes:
        logger.info("No-Op: No changes requested")
        return
    with ctx.store() as store:
        updated = edit_record(ctx.config, store, EditHistory(store), record_id, **changes)
    click.echo(json.dumps(updated.dump()))


@records.command()
@filter_options
@edit_options
@click.option("--yes", "-y", is_flag=True, help="Bypass confirmation prompts.")
@click.pass_obj
def batch_edit(
    ctx: Context,
    statuses: tuple[str, ...],
    tags: tuple[str, ...],
    search: str,
    sort: str,
    desc: bool,
    seed: int,
    yes: bool,
    **kwargs: Any,
) -> None:
    """Apply the same edit to every record matching the filters. Not undoable from the CLI."""
    from reel.history import EditHistory, batch_edit as batch_edit_

    changes = _collect_changes(**kwargs)
    if not changes:
        logger.info("No-Op: No changes requested")
        return
    with ctx.store() as store:
        visible = _visible(store, statuses, tags, search, sort, desc, seed)
        if not yes:
            click.confirm(f"Apply {', '.join(sorted(changes))} to {len(visible)} records?", abort=True)
        updated = batch_edit_(ctx.config, store, EditHistory(store), visible, **changes)
    logger.info(f"Updated {len(updated)} of {len(visible)} matching records")


@records.command()
@click.argument("record_id", type=str, nargs=1)
@click.argument("tag", type=str, nargs=1)
@click.pass_obj
def add_tag(ctx: Context, record_id: str, tag: str) -> None:
    """Add a tag to a record."""
    from reel.history import EditHistory, edit_record
    from reel.store import RecordDoesNotExistError

    with ctx.store() as store:
        record = store.get_record(record_id)
        if record is None:
            raise RecordDoesNotExistError(f"Record {record_id} does not exist")
        edit_record(ctx.config, store, EditHistory(store), record_id, tags=[*record.tags, tag])


@records.command()
@click.argument("record_id", type=str, nargs=1)
@click.argument("tag", type=str, nargs=1)
@click.pass_obj
def remove_tag(ctx: Context, record_id: str, tag: str) -> None:
    """Remove a tag from a record."""
    from reel.history import EditHistory, edit_record
    from reel.store import RecordDoesNotExistError

    with ctx.store() as store:
        record = store.get_record(record_id)
        if record is None:
            raise RecordDoesNotExistError(f"Record {record_id} does not exist")
        tags = [t for t in record.tags if t != tag]
        edit_record(ctx.config, store, EditHistory(store), record_id, tags=tags)


@cli.group()
def maintenance() -> None:
    """Library-wide housekeeping."""


@maintenance.command()
@click.pass_obj
def find_duplicates(ctx: Context) -> None:
    """Tag records with the same size and duration as probable duplicates."""
    from reel.maintenance import find_duplicates as find_duplicates_

    with ctx.store() as store:
        find_duplicates_(store)


@maintenance.command()
@click.pass_obj
def find_transcoded(ctx: Context) -> None:
    """Tag convertible files that already have an .mp4 sibling."""
    from reel.maintenance import find_transcoded as find_transcoded_

    with ctx.store() as store:
        find_transcoded_(ctx.config, store)


@maintenance.command()
@click.pass_obj
def reset_duplicates(ctx: Context) -> None:
    """Remove the duplicate tag from every record."""
    from reel.maintenance import reset_duplicates as reset_duplicates_

    with ctx.store() as store:
        reset_duplicates_(store)


@maintenance.command()
@click.pass_obj
def unheart_all(ctx: Context) -> None:
    """Unheart every record."""
    from reel.maintenance import unheart_all as unheart_all_

    with ctx.store() as store:
        unheart_all_(store)


@maintenance.command()
@click.pass_obj
def unhide_all(ctx: Context) -> None:
    """Unhide every record."""
    from reel.maintenance import unhide_all as unhide_all_

    with ctx.store() as store:
        unhide_all_(store)


@cli.group()
def export() -> None:
    """Export library data as JSON."""


@export.command()
@click.argument("out", type=click.Path(path_type=Path), required=False)
@click.pass_obj
def database(ctx: Context, out: Path | None) -> None:
    """Export every record and preview."""
    with ctx.store() as store:
        data = store.export()
    _write_output(json.dumps(data, indent=2), out)


@export.command()
@filter_options
@click.argument("out", type=click.Path(path_type=Path), required=False)
@click.pass_obj
def selection(
    ctx: Context,
    statuses: tuple[str, ...],
    tags: tuple[str, ...],
    search: str,
    sort: str,
    desc: bool,
    seed: int,
    out: Path | None,
) -> None:
    """Export the user metadata of the records matching the filters."""
    from reel.maintenance import export_selection

    with ctx.store() as store:
        visible = _visible(store, statuses, tags, search, sort, desc, seed)
    _write_output(json.dumps(export_selection(visible), indent=2), out)


@cli.group()
def playlist() -> None:
    """Manage the playlist."""


@playlist.command(name="print")
@click.pass_obj
def print2(ctx: Context) -> None:
    """Print the playlist (in JSON)."""
    from reel.playlists import dump_playlist

    with ctx.store() as store:
        click.echo(dump_playlist(ctx.config, store))


@playlist.command()
@click.argument("record_id", type=str, nargs=1)
@click.pass_obj
def add(ctx: Context, record_id: str) -> None:
    """Append a record to the playlist."""
    from reel.playlists import add_to_playlist

    with ctx.store() as store:
        add_to_playlist(ctx.config, store, record_id)


@playlist.command()
@click.argument("record_id", type=str, nargs=1)
@click.pass_obj
def remove(ctx: Context, record_id: str) -> None:
    """Remove a record from the playlist."""
    from reel.playlists import remove_from_playlist

    remove_from_playlist(ctx.config, record_id)


@playlist.command()
@click.pass_obj
def clear(ctx: Context) -> None:
    """Empty the playlist."""
    from reel.playlists import clear_playlist

    clear_playlist(ctx.config)


@playlist.command(name="export")
@click.argument("out", type=click.Path(path_type=Path), required=False)
@click.pass_obj
def export_(ctx: Context, out: Path | None) -> None:
    """Export the playlist as a JSON array of record ids."""
    from reel.playlists import export_playlist

    _write_output(export_playlist(ctx.config), out)


@playlist.command(name="import")
@click.argument("src", type=click.Path(path_type=Path, exists=True, dir_okay=False), nargs=1)
@click.pass_obj
def import_(ctx: Context, src: Path) -> None:
    """Replace the playlist with the ids in a JSON array file."""
    from reel.playlists import import_playlist

    with src.open("r") as fp:
        text = fp.read()
    with ctx.store() as store:
        import_playlist(ctx.config, store, text)
