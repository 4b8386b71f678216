from reel.common import (
    VERSION,
    ReelError,
    ReelExpectedError,
    initialize_logging,
)
from reel.config import Config
from reel.files import FileResolver, LibraryAccessError, ObservedFile, scan_library_dir
from reel.history import EditHistory, InvalidEditError, batch_edit, edit_record
from reel.maintenance import (
    export_selection,
    find_duplicates,
    find_transcoded,
    reset_duplicates,
    reset_library,
    unheart_all,
    unhide_all,
)
from reel.pipeline import PipelineResult, ProcessingPipeline, Progress
from reel.player import Player, PlayerState, Transition
from reel.playlists import (
    InvalidPlaylistError,
    add_to_playlist,
    clear_playlist,
    export_playlist,
    import_playlist,
    load_playlist,
    remove_from_playlist,
)
from reel.previews import PreviewCache, TimelinePreloader, load_timeline
from reel.probe import MediaProbe
from reel.query import SearchQuery, SortCriteria, StatusFilter, paginate, visible_records
from reel.records import LibraryRecord
from reel.store import BatchWriteError, RecordDoesNotExistError, Store, StoreAccessError
from reel.sync import SyncPlan, plan_sync, sync_library

__all__ = [
    # Plumbing
    "initialize_logging",
    "VERSION",
    # Errors
    "ReelError",
    "ReelExpectedError",
    "BatchWriteError",
    "InvalidEditError",
    "InvalidPlaylistError",
    "LibraryAccessError",
    "RecordDoesNotExistError",
    "StoreAccessError",
    # Configuration
    "Config",
    # Store
    "LibraryRecord",
    "Store",
    # Sync
    "FileResolver",
    "ObservedFile",
    "SyncPlan",
    "plan_sync",
    "scan_library_dir",
    "sync_library",
    # Previews
    "MediaProbe",
    "PipelineResult",
    "PreviewCache",
    "ProcessingPipeline",
    "Progress",
    "TimelinePreloader",
    "load_timeline",
    # Edits
    "EditHistory",
    "batch_edit",
    "edit_record",
    # Queries
    "SearchQuery",
    "SortCriteria",
    "StatusFilter",
    "paginate",
    "visible_records",
    # Maintenance
    "export_selection",
    "find_duplicates",
    "find_transcoded",
    "reset_duplicates",
    "reset_library",
    "unheart_all",
    "unhide_all",
    # Playlists
    "add_to_playlist",
    "clear_playlist",
    "export_playlist",
    "import_playlist",
    "load_playlist",
    "remove_from_playlist",
    # Player
    "Player",
    "PlayerState",
    "Transition",
]

initialize_logging(__name__)
