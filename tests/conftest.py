"""Shared test fixtures for the bughouse puzzle trainer.

Usage:
    pytest tests/

Fixtures:
    sample_bpgn    - Two-record BPGN text: a mate in one and a five-move line.
    sample_file    - The sample text written to a cp1252 file in tmp_path.
    fake_clock     - Manually advanced clock for SessionRunner timers.
"""

from __future__ import annotations

import pytest

# Position after 1.e4 f6 2.d4 g5; White mates with Qh5#
MATE_IN_ONE_FEN = "rnbqkbnr/ppppp2p/5p2/6p1/3PP3/8/PPP2PPP/RNBQKBNR[] w KQkq - 0 3"
START_FEN = "rnbqkbnr/pppppppp/8/8/8/8/PPPPPPPP/RNBQKBNR[] w KQkq - 0 1"
KNIGHT_IN_HAND_FEN = "rnbqkbnr/pppppppp/8/8/8/8/PPPPPPPP/RNBQKBNR[N] w KQkq - 0 1"
NO_BLACK_KING_FEN = "8/8/8/8/8/8/8/4K3[] w - - 0 1"


def compound(player: str, partner: str = START_FEN) -> str:
    """Build a compound FEN tag value."""
    return f"{player} | {partner}"


def record(fen_value: str, movetext: str, event: str = "Bughouse puzzle") -> str:
    """Build one BPGN record with an Event and a FEN tag."""
    return (
        f'[Event "{event}"]\n'
        f'[FEN "{fen_value}"]\n'
        "\n"
        f"{movetext}\n"
        "\n"
    )


SAMPLE_BPGN = (
    record(compound(MATE_IN_ONE_FEN), "3. Qh5# 1-0")
    + record(compound(START_FEN), "1. e4 f6 2. d4 g5 3. Qh5# 1-0")
)


class FakeClock:
    """Monotonic clock stand-in that only moves when told to."""

    def __init__(self, start: float = 100.0) -> None:
        self.now = start

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += seconds


@pytest.fixture()
def sample_bpgn() -> str:
    return SAMPLE_BPGN


@pytest.fixture()
def sample_file(tmp_path):
    path = tmp_path / "puzzles.bpgn"
    path.write_bytes(SAMPLE_BPGN.encode("cp1252"))
    return path


@pytest.fixture()
def fake_clock() -> FakeClock:
    return FakeClock()
