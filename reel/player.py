"""
The player module models playback of one record as an explicit state machine:

    IDLE -> LOADING -> READY -> PLAYING <-> PAUSED -> ENDED

Any state may return to IDLE (stop), and ENDED may restart playback or load the next record.
Rendering is not our concern; a frontend drives the transitions and everything else (preview
preloading, position bookkeeping) hangs off the transition stream.

Position bookkeeping goes through the edit history like any other edit, so opening a record and
saving its position are undoable.
"""

from __future__ import annotations

import enum
import logging
from collections.abc import Callable
from dataclasses import dataclass

from reel.common import ReelError
from reel.config import Config
from reel.history import EditHistory, edit_record
from reel.records import LibraryRecord
from reel.store import RecordDoesNotExistError, Store

logger = logging.getLogger(__name__)

# Stopping this close to the end counts as finishing; the next open starts from the beginning.
END_MARGIN_SECONDS = 1.5
# Positions that moved less than this are not worth a write.
MIN_POSITION_CHANGE_SECONDS = 1.0


class PlayerState(enum.Enum):
    IDLE = "idle"
    LOADING = "loading"
    READY = "ready"
    PLAYING = "playing"
    PAUSED = "paused"
    ENDED = "ended"


TRANSITIONS: dict[PlayerState, frozenset[PlayerState]] = {
    PlayerState.IDLE: frozenset([PlayerState.LOADING]),
    PlayerState.LOADING: frozenset([PlayerState.READY, PlayerState.IDLE]),
    PlayerState.READY: frozenset([PlayerState.PLAYING, PlayerState.IDLE]),
    PlayerState.PLAYING: frozenset([PlayerState.PAUSED, PlayerState.ENDED, PlayerState.IDLE]),
    PlayerState.PAUSED: frozenset([PlayerState.PLAYING, PlayerState.ENDED, PlayerState.IDLE]),
    PlayerState.ENDED: frozenset([PlayerState.PLAYING, PlayerState.LOADING, PlayerState.IDLE]),
}


class InvalidTransitionError(ReelError):
    pass


@dataclass(frozen=True)
class Transition:
    previous: PlayerState
    current: PlayerState
    record_id: str | None


Listener = Callable[[Transition], None]


def resolve_saved_position(position: float, duration: float | None) -> float:
    if duration and position >= duration - END_MARGIN_SECONDS:
        return 0.0
    return max(0.0, position)


class Player:
    def __init__(self, c: Config, store: Store, history: EditHistory) -> None:
        self.config = c
        self.store = store
        self.history = history
        self.state = PlayerState.IDLE
        self.record: LibraryRecord | None = None
        self.position = 0.0
        self.duration: float | None = None
        self._listeners: list[Listener] = []

    def subscribe(self, listener: Listener) -> Callable[[], None]:
        """Register a listener; returns a function that unregisters it."""
        self._listeners.append(listener)
        return lambda: self._listeners.remove(listener)

    def _transition(self, target: PlayerState) -> None:
        if target not in TRANSITIONS[self.state]:
            raise InvalidTransitionError(
                f"Invalid player transition from {self.state.value} to {target.value}"
            )
        transition = Transition(
            previous=self.state,
            current=target,
            record_id=self.record.id if self.record else None,
        )
        self.state = target
        logger.debug(f"Player: {transition.previous.value} -> {transition.current.value}")
        for listener in list(self._listeners):
            listener(transition)

    def load(self, record_id: str) -> LibraryRecord:
        if PlayerState.LOADING not in TRANSITIONS[self.state]:
            raise InvalidTransitionError(f"Cannot load a record while {self.state.value}")
        record = self.store.get_record(record_id)
        if record is None:
            raise RecordDoesNotExistError(f"Record {record_id} does not exist")
        self.record = edit_record(
            self.config,
            self.store,
            self.history,
            record_id,
            times_opened=record.times_opened + 1,
        )
        self.position = 0.0
        self.duration = record.duration
        self._transition(PlayerState.LOADING)
        return self.record

    def ready(self, duration: float | None = None) -> float:
        """The media is loaded. Returns the position playback should resume from."""
        if duration:
            self.duration = duration
        self._transition(PlayerState.READY)
        assert self.record is not None
        self.position = self.record.saved_position or 0.0
        return self.position

    def play(self) -> None:
        restart = self.state == PlayerState.ENDED
        self._transition(PlayerState.PLAYING)
        if restart:
            self.position = 0.0

    def seek(self, position: float) -> None:
        if self.state not in (PlayerState.READY, PlayerState.PLAYING, PlayerState.PAUSED):
            raise InvalidTransitionError(f"Cannot seek while {self.state.value}")
        self.position = max(0.0, position)

    def pause(self, position: float | None = None) -> None:
        if position is not None:
            self.position = position
        self._transition(PlayerState.PAUSED)
        self._save_position()

    def end(self) -> None:
        if self.duration:
            self.position = self.duration
        self._transition(PlayerState.ENDED)
        self._save_position(seen=True)

    def stop(self, position: float | None = None) -> None:
        if self.state == PlayerState.IDLE:
            logger.debug("No-Op: Player already stopped")
            return
        if position is not None:
            self.position = position
        if self.state in (PlayerState.PLAYING, PlayerState.PAUSED):
            self._save_position()
        self._transition(PlayerState.IDLE)
        self.record = None
        self.position = 0.0
        self.duration = None

    def _save_position(self, **extra: bool) -> None:
        if self.record is None:
            return
        changes: dict[str, object] = dict(extra)
        target = resolve_saved_position(self.position, self.duration)
        if abs(target - (self.record.saved_position or 0.0)) > MIN_POSITION_CHANGE_SECONDS:
            changes["saved_position"] = target
        if not changes:
            return
        self.record = edit_record(self.config, self.store, self.history, self.record.id, **changes)
