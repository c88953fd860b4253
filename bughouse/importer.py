#!/usr/bin/env python3
"""Import bughouse puzzles from BPGN record files.

Each FEN tag holding a compound ``<player board> | <partner board>`` value
starts a new puzzle at the player board's position. The mainline moves that
follow are resolved against a running board and become the puzzle's
solution line.

Files are read in a fixed 8-bit encoding (cp1252). Per-puzzle problems (bad
FEN, illegal position, unresolvable move) are reported as warnings and
skipped; only unreadable files and broken record framing are fatal.
"""

from __future__ import annotations

import argparse
import json
import sys
from pathlib import Path
from typing import Iterable

import chess

from bughouse.models import ImportResult, Puzzle
from bughouse.records import (
    Header,
    RecordEvent,
    RecordStream,
    RecordSyntaxError,
    SanToken,
)
from bughouse.variant import (
    BughouseBoard,
    IllegalPositionError,
    PositionDecodeError,
    decode_position,
)

RECORD_ENCODING = "cp1252"

FEN_TAG = "FEN"
BOARD_SEPARATOR = "|"


class PuzzleImportError(Exception):
    """A record file could not be read or its framing could not be parsed."""


class CompoundFenError(ValueError):
    """A FEN tag does not hold two boards separated by ``|``."""


def decode_bytes(data: bytes) -> str:
    """Decode raw file bytes, substituting anything undecodable."""
    return data.decode(RECORD_ENCODING, errors="replace")


def split_compound_fen(value: str) -> tuple[str, str]:
    """Split a compound FEN tag value into (player board, partner board).

    The player board is everything before the separator minus the one
    character (normally a space) right before it.

    Raises:
        CompoundFenError: If the value has no separator.
    """
    index = value.find(BOARD_SEPARATOR)
    if index < 0:
        raise CompoundFenError(f"cannot find '{BOARD_SEPARATOR}' in FEN '{value}'")
    return value[:index][:-1], value[index + 1:].strip()


class _PuzzleFold:
    """Accumulates puzzles while walking the event stream."""

    def __init__(self) -> None:
        self.result = ImportResult()
        self._board: BughouseBoard | None = None
        self._start: tuple[str, str] | None = None
        self._moves: list[chess.Move] = []
        self._done: list[Puzzle] = []

    def _close_puzzle(self) -> None:
        if self._start is not None:
            fen, partner_fen = self._start
            self._done.append(Puzzle(fen, tuple(self._moves), partner_fen))
        self._start = None
        self._moves = []

    def header(self, event: Header) -> None:
        if event.key != FEN_TAG:
            return

        try:
            player, partner = split_compound_fen(event.value)
            board = decode_position(player)
        except CompoundFenError as e:
            self.result.warnings.append(f"Cannot split FEN: {e}")
            return
        except PositionDecodeError as e:
            self.result.warnings.append(f"Error parsing FEN: {e}")
            return
        except IllegalPositionError as e:
            self.result.warnings.append(f"Error setting up position: {e}")
            return

        self._close_puzzle()
        self._board = board
        self._start = (board.fen(), partner)

    def san(self, event: SanToken) -> None:
        if self._start is None or self._board is None:
            return

        try:
            move = self._board.parse_san(event.san)
        except ValueError as e:
            self.result.warnings.append(
                f"Error playing move '{event.san}' at line {event.line_number}: {e}"
            )
            return
        if not move or move not in self._board.legal_moves:
            self.result.warnings.append(
                f"Error playing move '{event.san}' at line {event.line_number}: "
                "not a legal move"
            )
            return

        self._board.push(move)
        self._moves.append(move)

    def finish(self) -> ImportResult:
        self._close_puzzle()
        self.result.puzzles = self._done
        return self.result


def build_puzzles(events: Iterable[RecordEvent]) -> ImportResult:
    """Fold a record event stream into puzzles.

    Puzzles accumulate across records: a new record does not reset the
    running board, only a usable FEN tag does.

    Raises:
        RecordSyntaxError: If the event source hits broken framing.
    """
    fold = _PuzzleFold()
    for event in events:
        if isinstance(event, Header):
            fold.header(event)
        elif isinstance(event, SanToken):
            fold.san(event)
    return fold.finish()


def parse_puzzles(text: str) -> ImportResult:
    """Parse decoded record text into puzzles and warnings.

    Raises:
        PuzzleImportError: If the record framing is unparseable.
    """
    try:
        return build_puzzles(RecordStream(text))
    except RecordSyntaxError as e:
        raise PuzzleImportError(f"Cannot parse PGN file: {e}") from e


def import_bytes(data: bytes) -> ImportResult:
    """Decode and parse the raw bytes of one record file."""
    return parse_puzzles(decode_bytes(data))


def import_file(path: str | Path) -> list[Puzzle]:
    """Import every puzzle from a BPGN file.

    Warnings are printed to stderr and do not fail the import.

    Args:
        path: Path to the record file.

    Returns:
        Puzzles in file order (possibly empty).

    Raises:
        PuzzleImportError: If the file cannot be read or parsed.
    """
    path = Path(path)
    try:
        data = path.read_bytes()
    except OSError as e:
        raise PuzzleImportError(f"Cannot read {path}: {e.strerror or e}") from e

    result = import_bytes(data)
    for warning in result.warnings:
        print(f"Warning: {path.name}: {warning}", file=sys.stderr)
    return result.puzzles


def puzzles_to_json(puzzles: list[Puzzle]) -> str:
    """Serialize puzzles to the JSON puzzle-file format."""
    return json.dumps([puzzle.to_dict() for puzzle in puzzles], indent=2)


def main() -> int:
    parser = argparse.ArgumentParser(
        description="Import bughouse puzzles from a BPGN file"
    )
    parser.add_argument("file", type=str, help="BPGN file to import")
    parser.add_argument(
        "--output",
        type=str,
        default=None,
        help="Output JSON file path (default: stdout)",
    )
    args = parser.parse_args()

    try:
        puzzles = import_file(args.file)
    except PuzzleImportError as e:
        print(f"Error: {e}", file=sys.stderr)
        return 1

    if not puzzles:
        print("No puzzles found.", file=sys.stderr)
        return 1

    output_json = puzzles_to_json(puzzles)
    if args.output:
        out_path = Path(args.output)
        out_path.parent.mkdir(parents=True, exist_ok=True)
        out_path.write_text(output_json + "\n", encoding="utf-8")
        print(f"Wrote {len(puzzles)} puzzles to {args.output}", file=sys.stderr)
    else:
        print(output_json)

    return 0


if __name__ == "__main__":
    sys.exit(main())
