"""Puzzle solving session.

The session is a frozen SessionState advanced by ``transition(state, event)``,
which returns the next state plus the effects the caller must carry out
(schedule an opponent reply, redraw). Opponent replies come back in as
ordinary OpponentReplyDue events, so every change goes through the same
function.

SessionRunner owns the single live state, serialises events through a FIFO
queue and keeps the pending reply timers.
"""

from __future__ import annotations

import enum
import heapq
import itertools
import time
from collections import deque
from dataclasses import dataclass, field, replace
from pathlib import Path
from typing import Callable, Union

import chess

from bughouse.importer import import_file
from bughouse.models import Puzzle
from bughouse.variant import BughouseBoard, resolve_board_move, resolve_drop

REPLY_DELAY_MS = 1000

SUCCESS_TEXT = "Success"
WRONG_ANSWER_TEXT = "Wrong answer"


class Phase(enum.Enum):
    IDLE = "idle"
    AWAITING_PLAYER_MOVE = "awaiting_player_move"
    AWAITING_OPPONENT_REPLY = "awaiting_opponent_reply"
    SOLVED = "solved"


@dataclass(frozen=True)
class SessionState:
    """Everything the presentation layer needs to draw the session.

    ``epoch`` changes whenever the active puzzle is replaced, so replies
    scheduled for an earlier puzzle can be told apart from current ones.
    """

    puzzles: tuple[Puzzle, ...] = ()
    current_puzzle_index: int = 0
    current_move_index: int = 0
    current_position: BughouseBoard = field(default_factory=BughouseBoard)
    can_play: bool = True
    status_text: str = ""
    flipped: bool = False
    epoch: int = 0


# ---------------------------------------------------------------------------
# Events
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class LoadPuzzles:
    puzzles: tuple[Puzzle, ...]


@dataclass(frozen=True)
class SubmitMove:
    from_square: chess.Square
    to_square: chess.Square
    promotion: chess.PieceType | None = None


@dataclass(frozen=True)
class SubmitDrop:
    piece_type: chess.PieceType
    to_square: chess.Square


@dataclass(frozen=True)
class OpponentReplyDue:
    epoch: int
    puzzle_index: int
    move_index: int


@dataclass(frozen=True)
class NextPuzzle:
    pass


@dataclass(frozen=True)
class PreviousPuzzle:
    pass


@dataclass(frozen=True)
class Flip:
    pass


Event = Union[LoadPuzzles, SubmitMove, SubmitDrop, OpponentReplyDue,
              NextPuzzle, PreviousPuzzle, Flip]


# ---------------------------------------------------------------------------
# Effects
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class ScheduleReply:
    delay_ms: int
    event: OpponentReplyDue


@dataclass(frozen=True)
class Redraw:
    pass


Effect = Union[ScheduleReply, Redraw]


# ---------------------------------------------------------------------------
# Queries
# ---------------------------------------------------------------------------


def current_puzzle(state: SessionState) -> Puzzle | None:
    if not state.puzzles:
        return None
    return state.puzzles[state.current_puzzle_index]


def phase(state: SessionState) -> Phase:
    puzzle = current_puzzle(state)
    if puzzle is None:
        return Phase.IDLE
    if state.current_move_index >= len(puzzle.solution_moves):
        return Phase.SOLVED
    if not state.can_play:
        return Phase.AWAITING_OPPONENT_REPLY
    return Phase.AWAITING_PLAYER_MOVE


def expected_move(state: SessionState) -> chess.Move | None:
    """The solution move due at the current point of the line, if any."""
    puzzle = current_puzzle(state)
    if puzzle is None or state.current_move_index >= len(puzzle.solution_moves):
        return None
    return puzzle.solution_moves[state.current_move_index]


# ---------------------------------------------------------------------------
# Transition
# ---------------------------------------------------------------------------


def _show_puzzle(state: SessionState, index: int) -> SessionState:
    return replace(
        state,
        current_puzzle_index=index,
        current_move_index=0,
        current_position=state.puzzles[index].initial_position(),
        can_play=True,
        status_text="" if state.puzzles[index].solution_moves else SUCCESS_TEXT,
        epoch=state.epoch + 1,
    )


def _play(state: SessionState, move: chess.Move) -> BughouseBoard:
    board = state.current_position.copy()
    board.push(move)
    return board


def _try_move(
    state: SessionState, move: chess.Move | None
) -> tuple[SessionState, list[Effect]]:
    expected = expected_move(state)
    if move is None or expected is None:
        return state, []

    if move != expected:
        return replace(state, status_text=WRONG_ANSWER_TEXT), [Redraw()]

    puzzle = state.puzzles[state.current_puzzle_index]
    state = replace(
        state,
        current_position=_play(state, move),
        current_move_index=state.current_move_index + 1,
        can_play=False,
        status_text="",
    )
    if state.current_move_index == len(puzzle.solution_moves):
        return replace(state, status_text=SUCCESS_TEXT), [Redraw()]

    reply = OpponentReplyDue(state.epoch, state.current_puzzle_index,
                             state.current_move_index)
    return state, [Redraw(), ScheduleReply(REPLY_DELAY_MS, reply)]


def _play_reply(
    state: SessionState, event: OpponentReplyDue
) -> tuple[SessionState, list[Effect]]:
    if (event.epoch != state.epoch
            or event.puzzle_index != state.current_puzzle_index
            or event.move_index != state.current_move_index
            or state.can_play):
        return state, []

    move = expected_move(state)
    if move is None:
        return state, []

    puzzle = state.puzzles[state.current_puzzle_index]
    state = replace(
        state,
        current_position=_play(state, move),
        current_move_index=state.current_move_index + 1,
        can_play=True,
    )
    if state.current_move_index == len(puzzle.solution_moves):
        state = replace(state, status_text=SUCCESS_TEXT)
    return state, [Redraw()]


def transition(
    state: SessionState, event: Event
) -> tuple[SessionState, list[Effect]]:
    """Apply one event to the session.

    Invalid input (blocked, unresolvable or out-of-range requests) leaves the
    state untouched and produces no effects.

    Returns:
        Tuple of (new state, effects for the caller to run).
    """
    if isinstance(event, LoadPuzzles):
        if not event.puzzles:
            return state, []
        state = replace(state, puzzles=tuple(event.puzzles))
        return _show_puzzle(state, 0), [Redraw()]

    if isinstance(event, SubmitMove):
        if not state.can_play:
            return state, []
        move = resolve_board_move(state.current_position, event.from_square,
                                  event.to_square, event.promotion)
        return _try_move(state, move)

    if isinstance(event, SubmitDrop):
        if not state.can_play:
            return state, []
        move = resolve_drop(state.current_position, event.piece_type,
                            event.to_square)
        return _try_move(state, move)

    if isinstance(event, OpponentReplyDue):
        return _play_reply(state, event)

    if isinstance(event, NextPuzzle):
        if not state.puzzles:
            return state, []
        index = min(state.current_puzzle_index + 1, len(state.puzzles) - 1)
        return _show_puzzle(state, index), [Redraw()]

    if isinstance(event, PreviousPuzzle):
        if not state.puzzles:
            return state, []
        index = max(state.current_puzzle_index - 1, 0)
        return _show_puzzle(state, index), [Redraw()]

    if isinstance(event, Flip):
        return replace(state, flipped=not state.flipped), [Redraw()]

    raise TypeError(f"Unknown session event: {event!r}")


def submit(move: chess.Move) -> Event:
    """Wrap a candidate move as the matching submission event."""
    if move.drop is not None:
        return SubmitDrop(move.drop, move.to_square)
    return SubmitMove(move.from_square, move.to_square, move.promotion)


# ---------------------------------------------------------------------------
# Runner
# ---------------------------------------------------------------------------


class SessionRunner:
    """Holds the live session and runs its effects.

    Events are applied strictly one at a time in arrival order. Reply timers
    are kept in a heap keyed by due time on the injected clock; ``fire_due``
    feeds the expired ones back through ``dispatch``.
    """

    def __init__(
        self,
        clock: Callable[[], float] = time.monotonic,
        reply_delay_ms: int | None = None,
        on_redraw: Callable[[SessionState], None] | None = None,
    ) -> None:
        self.state = SessionState()
        self._clock = clock
        self._reply_delay_ms = reply_delay_ms
        self._on_redraw = on_redraw
        self._queue: deque[Event] = deque()
        self._timers: list[tuple[float, int, OpponentReplyDue]] = []
        self._sequence = itertools.count()
        self._draining = False

    def dispatch(self, event: Event) -> SessionState:
        self._queue.append(event)
        if self._draining:
            return self.state

        self._draining = True
        try:
            while self._queue:
                self.state, effects = transition(self.state, self._queue.popleft())
                self._run(effects)
        finally:
            self._draining = False
        return self.state

    def _run(self, effects: list[Effect]) -> None:
        for effect in effects:
            if isinstance(effect, ScheduleReply):
                delay_ms = effect.delay_ms
                if self._reply_delay_ms is not None:
                    delay_ms = self._reply_delay_ms
                due = self._clock() + delay_ms / 1000.0
                heapq.heappush(self._timers, (due, next(self._sequence), effect.event))
            elif isinstance(effect, Redraw) and self._on_redraw is not None:
                self._on_redraw(self.state)

    def next_due(self) -> float | None:
        """Clock time of the earliest pending reply, or None."""
        if not self._timers:
            return None
        return self._timers[0][0]

    def fire_due(self) -> int:
        """Dispatch every reply whose time has come. Returns how many fired."""
        now = self._clock()
        fired = 0
        while self._timers and self._timers[0][0] <= now:
            _, _, event = heapq.heappop(self._timers)
            self.dispatch(event)
            fired += 1
        return fired

    def load_puzzles(self, puzzles: list[Puzzle]) -> SessionState:
        return self.dispatch(LoadPuzzles(tuple(puzzles)))

    def load_file(self, path: str | Path) -> list[Puzzle]:
        """Import a record file and make it the active puzzle set.

        The session only changes once the whole file has been imported.

        Raises:
            PuzzleImportError: If the file cannot be read or parsed; the
                session is left as it was.
        """
        puzzles = import_file(path)
        self.load_puzzles(puzzles)
        return puzzles
