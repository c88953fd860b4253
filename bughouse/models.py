"""Shared data models for the bughouse puzzle trainer.

Puzzle and ImportResult are the contract between the importer and the
solving session.
"""

from __future__ import annotations

from dataclasses import dataclass, field

import chess

from bughouse.variant import BughouseBoard


@dataclass(frozen=True)
class Puzzle:
    """A start position and the solution line expected from it."""

    fen: str
    solution_moves: tuple[chess.Move, ...] = ()
    partner_fen: str = ""

    def initial_position(self) -> BughouseBoard:
        """Return a fresh board set up at the puzzle's start position."""
        return BughouseBoard(self.fen)

    def solution_san(self) -> list[str]:
        """Return the solution line in SAN, played out from the start."""
        board = self.initial_position()
        san_list = []
        for move in self.solution_moves:
            san_list.append(board.san(move))
            board.push(move)
        return san_list

    def to_dict(self) -> dict:
        return {
            "fen": self.fen,
            "partner_fen": self.partner_fen,
            "solution_moves": [move.uci() for move in self.solution_moves],
            "solution_san": self.solution_san(),
            "source": "bpgn",
        }


@dataclass
class ImportResult:
    """Puzzles recovered from one file plus the warnings raised on the way."""

    puzzles: list[Puzzle] = field(default_factory=list)
    warnings: list[str] = field(default_factory=list)
