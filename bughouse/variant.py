"""Bughouse position handling on top of python-chess.

Wraps chess.variant.CrazyhouseBoard so that a single bughouse board can be
decoded from a FEN string, checked for legality and advanced move by move.
Provides:
- BughouseBoard (crazyhouse drops, but captures leave the board for the partner)
- Position decoding with distinct malformed / illegal errors
- Exact-match resolution of board moves and drops against the legal move list
- Pocket contents for display
"""

from __future__ import annotations

import re

import chess
import chess.variant

# Piece-count flags that do not apply when pieces arrive from a partner board
_PARTNER_SUPPLY_STATUS = (
    chess.STATUS_TOO_MANY_WHITE_PIECES
    | chess.STATUS_TOO_MANY_BLACK_PIECES
    | chess.STATUS_TOO_MANY_WHITE_PAWNS
    | chess.STATUS_TOO_MANY_BLACK_PAWNS
)

_POCKET_ORDER = [chess.QUEEN, chess.ROOK, chess.BISHOP, chess.KNIGHT, chess.PAWN]

_UCI_RE = re.compile(r"^[a-h][1-8][a-h][1-8][qrbn]?$")
_DROP_RE = re.compile(r"^([PNBRQpnbrq])@([a-h][1-8])$")


class PositionDecodeError(ValueError):
    """The position string is not a well-formed bughouse FEN."""


class IllegalPositionError(ValueError):
    """The position string decodes, but the position is not legal."""


class BughouseBoard(chess.variant.CrazyhouseBoard):
    """One board of a bughouse game.

    Drops work as in crazyhouse. Captured pieces are handed to the partner,
    so they never reach the capturing side's own pocket.
    """

    aliases = ["Bughouse", "Bug", "bughouse"]
    uci_variant = "bughouse"
    xboard_variant = "bughouse"

    def _push_capture(self, move: chess.Move, capture_square: chess.Square,
                      piece_type: chess.PieceType, was_promoted: bool) -> None:
        pass

    def status(self) -> chess.Status:
        return super().status() & ~_PARTNER_SUPPLY_STATUS


def decode_position(fen: str) -> BughouseBoard:
    """Decode a single-board FEN into a legal bughouse position.

    Args:
        fen: Board FEN, pockets in ``[...]`` or as a ninth ``/`` rank.

    Returns:
        The decoded board.

    Raises:
        PositionDecodeError: If the string is malformed.
        IllegalPositionError: If the position breaks the rules.
    """
    try:
        board = BughouseBoard(fen.strip())
    except ValueError as e:
        raise PositionDecodeError(f"invalid FEN '{fen}': {e}") from e

    if not board.is_valid():
        raise IllegalPositionError(
            f"illegal position '{fen}' (status {board.status()!r})"
        )
    return board


def resolve_board_move(
    board: BughouseBoard,
    from_square: chess.Square,
    to_square: chess.Square,
    promotion: chess.PieceType | None = None,
) -> chess.Move | None:
    """Return the legal board move matching origin, destination and promotion."""
    for move in board.legal_moves:
        if move.drop is not None:
            continue
        if (move.from_square == from_square and move.to_square == to_square
                and move.promotion == promotion):
            return move
    return None


def resolve_drop(
    board: BughouseBoard,
    piece_type: chess.PieceType,
    to_square: chess.Square,
) -> chess.Move | None:
    """Return the legal drop of ``piece_type`` on ``to_square``, if any."""
    move = chess.Move(to_square, to_square, drop=piece_type)
    if move in board.legal_moves:
        return move
    return None


def parse_candidate(board: BughouseBoard, text: str) -> chess.Move | None:
    """Turn trainee input into a candidate move.

    Accepts UCI (``e2e4``, ``e7e8q``), drops (``N@f3``) and SAN. The result
    is only a candidate: it has not been checked against the solution.
    """
    text = text.strip()
    if not text:
        return None

    drop_match = _DROP_RE.match(text)
    if drop_match:
        piece_type = chess.PIECE_SYMBOLS.index(drop_match.group(1).lower())
        return chess.Move(chess.parse_square(drop_match.group(2)),
                          chess.parse_square(drop_match.group(2)),
                          drop=piece_type)

    if _UCI_RE.match(text):
        try:
            return chess.Move.from_uci(text)
        except ValueError:
            return None

    try:
        return board.parse_san(text)
    except ValueError:
        return None


def pocket_contents(board: chess.Board, color: chess.Color) -> dict[str, int]:
    """Return pocket counts keyed by piece symbol, strongest piece first.

    Boards without pockets (plain chess) report an empty pocket.
    """
    pockets = getattr(board, "pockets", None)
    if pockets is None:
        return {}

    pocket = pockets[color]
    contents: dict[str, int] = {}
    for piece_type in _POCKET_ORDER:
        count = pocket.count(piece_type)
        if count:
            contents[chess.Piece(piece_type, color).symbol()] = count
    return contents
