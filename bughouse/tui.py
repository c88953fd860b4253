"""Terminal puzzle trainer.

Renders a Rich-based bughouse board with both pockets and the session
status, and reads moves and commands from the prompt. Opponent replies are
played after the reply delay before the next prompt.

Commands:
    <move>        UCI (e2e4, e7e8q), drop (N@f3) or SAN (Qh5#)
    next / prev   Move between puzzles
    flip          Flip the board
    import PATH   Load a BPGN file, replacing the current puzzles
    quit          Leave the trainer
"""

from __future__ import annotations

import argparse
import os
import sys
import time
from pathlib import Path

import chess
from rich.console import Console, Group
from rich.layout import Layout
from rich.panel import Panel
from rich.table import Table
from rich.text import Text

from bughouse.importer import PuzzleImportError
from bughouse.session import (
    Flip,
    NextPuzzle,
    PreviousPuzzle,
    SUCCESS_TEXT,
    WRONG_ANSWER_TEXT,
    Phase,
    SessionRunner,
    SessionState,
    current_puzzle,
    phase,
    submit,
)
from bughouse.variant import parse_candidate, pocket_contents

_REPLY_DELAY_ENV = "BUGHOUSE_REPLY_DELAY_MS"
_PUZZLE_DIR_ENV = "BUGHOUSE_PUZZLE_DIR"

# Unicode piece symbols
_PIECE_SYMBOLS = {
    "K": "\u2654", "Q": "\u2655", "R": "\u2656", "B": "\u2657",
    "N": "\u2658", "P": "\u2659",
    "k": "\u265a", "q": "\u265b", "r": "\u265c", "b": "\u265d",
    "n": "\u265e", "p": "\u265f",
}

_LIGHT_SQ = "grey85"
_DARK_SQ = "grey50"
_HIGHLIGHT = "yellow"

_STATUS_STYLES = {
    SUCCESS_TEXT: "bold green",
    WRONG_ANSWER_TEXT: "bold red",
}


def _reply_delay_ms() -> int | None:
    """Reply delay override from the environment, if set and valid."""
    raw = os.environ.get(_REPLY_DELAY_ENV)
    if not raw:
        return None
    try:
        return max(0, int(raw))
    except ValueError:
        print(f"Warning: ignoring {_REPLY_DELAY_ENV}={raw!r}", file=sys.stderr)
        return None


def _resolve_path(raw: str) -> Path:
    path = Path(raw).expanduser()
    if path.is_absolute():
        return path
    base = os.environ.get(_PUZZLE_DIR_ENV)
    return Path(base) / path if base else path


def _render_pocket(board: chess.Board, color: chess.Color) -> Text:
    contents = pocket_contents(board, color)
    label = "White" if color == chess.WHITE else "Black"
    text = Text(f"{label} pocket: ", style="bold")
    if not contents:
        text.append("-", style="dim")
        return text
    for symbol, count in contents.items():
        text.append(f"{_PIECE_SYMBOLS[symbol]}x{count} ")
    return text


def _render_board_panel(state: SessionState) -> Panel:
    """Render the board with the solving side at the bottom.

    Args:
        state: Current session state.

    Returns:
        Panel containing the board and both pockets.
    """
    board = state.current_position
    puzzle = current_puzzle(state)
    bottom = puzzle.initial_position().turn if puzzle is not None else chess.WHITE
    if state.flipped:
        bottom = not bottom
    is_flipped = bottom == chess.BLACK

    highlight_squares: set[int] = set()
    if board.move_stack:
        last = board.move_stack[-1]
        highlight_squares.add(last.to_square)
        if last.drop is None:
            highlight_squares.add(last.from_square)

    table = Table(show_header=False, show_edge=False, pad_edge=False,
                  box=None, padding=(0, 1))
    table.add_column(width=2, justify="right")
    for _ in range(8):
        table.add_column(width=3, justify="center")

    ranks = range(8) if is_flipped else range(7, -1, -1)
    files = range(7, -1, -1) if is_flipped else range(8)

    for rank in ranks:
        row: list[Text] = [Text(str(rank + 1), style="bold")]
        for file in files:
            sq = chess.square(file, rank)
            piece = board.piece_at(sq)

            is_light = (rank + file) % 2 == 1
            bg = _LIGHT_SQ if is_light else _DARK_SQ
            if sq in highlight_squares:
                bg = _HIGHLIGHT

            if piece is not None:
                symbol = _PIECE_SYMBOLS.get(piece.symbol(), "?")
                row.append(Text(f" {symbol} ", style=f"on {bg}"))
            else:
                row.append(Text("   ", style=f"on {bg}"))
        table.add_row(*row)

    file_labels = [Text("  ")]
    for f in files:
        file_labels.append(Text(f" {chr(ord('a') + f)} ", style="bold"))
    table.add_row(*file_labels)

    body = Group(
        _render_pocket(board, not bottom),
        table,
        _render_pocket(board, bottom),
    )
    return Panel(body, title="Bughouse Puzzles", border_style="blue")


def _render_sidebar(state: SessionState) -> Panel:
    parts: list[str] = []
    puzzle = current_puzzle(state)

    if puzzle is None:
        parts.append("[dim]No puzzles loaded.[/dim]")
        parts.append("")
        parts.append("Use [bold]import PATH[/bold] to load a BPGN file.")
        return Panel("\n".join(parts), title="Info", border_style="dim")

    parts.append(
        f"[bold]Puzzle {state.current_puzzle_index + 1}/{len(state.puzzles)}[/bold]"
    )
    to_move = "White" if puzzle.initial_position().turn == chess.WHITE else "Black"
    parts.append(f"{to_move} to play")
    parts.append(
        f"Progress: {state.current_move_index}/{len(puzzle.solution_moves)} moves"
    )
    if phase(state) == Phase.AWAITING_OPPONENT_REPLY:
        parts.append("[italic]Opponent is replying...[/italic]")
    parts.append("")

    style = _STATUS_STYLES.get(state.status_text, "bold")
    if state.status_text:
        parts.append(f"[{style}]{state.status_text}[/{style}]")

    return Panel("\n".join(parts), title="Info", border_style="green")


def render_session(state: SessionState) -> Layout:
    """Render the full trainer layout from a session state."""
    layout = Layout()
    layout.split_row(
        Layout(name="board", ratio=2),
        Layout(name="sidebar", ratio=1),
    )
    layout["board"].update(_render_board_panel(state))
    layout["sidebar"].update(_render_sidebar(state))
    return layout


def handle_command(runner: SessionRunner, line: str) -> str | None:
    """Apply one prompt line to the session.

    Returns:
        A message for the prompt area, or None when there is nothing to say.
        Returns "quit" when the trainer should exit.
    """
    command, _, argument = line.strip().partition(" ")
    command = command.lower()

    if command in ("quit", "exit", "q"):
        return "quit"
    if command in ("next", "n"):
        if runner.state.puzzles:
            runner.dispatch(NextPuzzle())
        return None
    if command in ("prev", "previous", "p"):
        if runner.state.puzzles:
            runner.dispatch(PreviousPuzzle())
        return None
    if command in ("flip", "f"):
        runner.dispatch(Flip())
        return None
    if command in ("import", "i"):
        if not argument.strip():
            return "Usage: import PATH"
        try:
            puzzles = runner.load_file(_resolve_path(argument.strip()))
        except PuzzleImportError as e:
            return f"[red]{e}[/red]"
        return f"Imported {len(puzzles)} puzzles."

    if current_puzzle(runner.state) is None:
        return "No puzzles loaded."
    move = parse_candidate(runner.state.current_position, line)
    if move is None:
        return f"Unrecognized move: {line.strip()}"
    runner.dispatch(submit(move))
    return None


def _wait_for_replies(runner: SessionRunner, console: Console) -> None:
    while runner.next_due() is not None:
        time.sleep(max(0.0, runner.next_due() - time.monotonic()))
        if runner.fire_due():
            console.print(render_session(runner.state))


def _prompt_loop(runner: SessionRunner, console: Console) -> None:
    console.print(render_session(runner.state))
    while True:
        try:
            line = console.input("[bold]> [/bold]")
        except (EOFError, KeyboardInterrupt):
            return
        if not line.strip():
            continue

        message = handle_command(runner, line)
        if message == "quit":
            return
        console.print(render_session(runner.state))
        if message:
            console.print(message)
        _wait_for_replies(runner, console)


def main() -> None:
    """CLI entry point for tui.py."""
    parser = argparse.ArgumentParser(
        description="Bughouse puzzle trainer"
    )
    parser.add_argument("file", nargs="?", default=None,
                        help="BPGN file to import at startup")
    parser.add_argument(
        "--render", action="store_true",
        help="Render the first puzzle and exit (no prompt)"
    )
    args = parser.parse_args()

    console = Console()
    runner = SessionRunner(reply_delay_ms=_reply_delay_ms())

    if args.file:
        try:
            runner.load_file(_resolve_path(args.file))
        except PuzzleImportError as e:
            console.print(f"[red]{e}[/red]")
            sys.exit(1)

    if args.render:
        console.print(render_session(runner.state))
        return

    _prompt_loop(runner, console)


if __name__ == "__main__":
    main()
