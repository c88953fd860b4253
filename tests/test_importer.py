"""Pytest tests for the BPGN puzzle importer.

Tests cover compound FEN splitting, puzzle creation per FEN tag, solution
resolution against the running board, lossy handling of bad tags and
moves, decoding, fatal errors and the CLI.
All file tests use tmp_path.
"""

from __future__ import annotations

import json
import sys
from pathlib import Path
from unittest.mock import patch

import chess
import pytest

from bughouse.importer import (
    CompoundFenError,
    PuzzleImportError,
    build_puzzles,
    decode_bytes,
    import_bytes,
    import_file,
    main,
    parse_puzzles,
    puzzles_to_json,
    split_compound_fen,
)
from bughouse.records import Header, SanToken
from conftest import (
    KNIGHT_IN_HAND_FEN,
    MATE_IN_ONE_FEN,
    NO_BLACK_KING_FEN,
    START_FEN,
    compound,
    record,
)


# ---------------------------------------------------------------------------
# Compound FEN
# ---------------------------------------------------------------------------


class TestSplitCompoundFen:

    def test_split(self):
        player, partner = split_compound_fen(compound(MATE_IN_ONE_FEN))
        assert player == MATE_IN_ONE_FEN
        assert partner == START_FEN

    def test_one_character_before_separator_is_dropped(self):
        assert split_compound_fen("abc|def") == ("ab", "def")

    def test_missing_separator(self):
        with pytest.raises(CompoundFenError, match="cannot find"):
            split_compound_fen(START_FEN)


# ---------------------------------------------------------------------------
# Puzzle building
# ---------------------------------------------------------------------------


class TestBuildPuzzles:

    def test_sample_file_gives_two_puzzles(self, sample_bpgn):
        result = parse_puzzles(sample_bpgn)
        assert result.warnings == []
        assert len(result.puzzles) == 2

        first, second = result.puzzles
        assert first.fen == MATE_IN_ONE_FEN
        assert first.partner_fen == START_FEN
        assert first.solution_moves == (chess.Move(chess.D1, chess.H5),)
        assert second.fen == START_FEN
        assert second.solution_san() == ["e4", "f6", "d4", "g5", "Qh5#"]

    def test_fen_tag_starts_empty_puzzle(self):
        result = build_puzzles([Header("FEN", compound(START_FEN))])
        assert len(result.puzzles) == 1
        assert result.puzzles[0].solution_moves == ()

    def test_other_tags_are_ignored(self):
        result = build_puzzles([
            Header("Event", compound(START_FEN)),
            Header("SetUp", "1"),
        ])
        assert result.puzzles == []
        assert result.warnings == []

    def test_moves_before_any_fen_are_discarded(self):
        result = build_puzzles([
            SanToken("e4"),
            Header("FEN", compound(START_FEN)),
            SanToken("d4"),
        ])
        assert result.warnings == []
        assert result.puzzles[0].solution_moves == (chess.Move.from_uci("d2d4"),)

    def test_unresolvable_move_is_dropped(self):
        result = parse_puzzles(record(compound(START_FEN), "1. e4 Ke2 f6 *"))
        assert result.puzzles[0].solution_san() == ["e4", "f6"]
        assert len(result.warnings) == 1
        assert "Ke2" in result.warnings[0]

    @pytest.mark.parametrize("null", ["--", "Z0"])
    def test_null_move_is_dropped(self, null):
        result = parse_puzzles(record(compound(START_FEN), f"1. e4 {null} 2. d4 1-0"))
        assert result.puzzles[0].solution_moves == (
            chess.Move.from_uci("e2e4"),
            chess.Move.from_uci("d2d4"),
        )
        assert len(result.warnings) == 1
        assert f"'{null}'" in result.warnings[0]

    def test_puzzles_accumulate_across_records(self):
        text = record(compound(START_FEN), "1. e4 *") + "1. e5 *\n"
        result = parse_puzzles(text)
        assert len(result.puzzles) == 1
        assert result.puzzles[0].solution_san() == ["e4", "e5"]

    def test_drops_in_solution(self):
        result = parse_puzzles(record(compound(KNIGHT_IN_HAND_FEN), "1. N@e4 *"))
        assert result.puzzles[0].solution_moves == (
            chess.Move(chess.E4, chess.E4, drop=chess.KNIGHT),
        )

    def test_solution_follows_running_position(self):
        result = parse_puzzles(record(compound(START_FEN), "1. e4 e5 2. Nf3 Nc6 *"))
        board = result.puzzles[0].initial_position()
        for move in result.puzzles[0].solution_moves:
            assert move in board.legal_moves
            board.push(move)
        assert board.fen().startswith("r1bqkbnr/pppp1ppp/2n5/4p3/4P3/5N2/")


class TestSkippedHeaders:

    def test_missing_separator_gives_no_puzzle(self):
        result = parse_puzzles(record(START_FEN, "1. e4 *"))
        assert result.puzzles == []
        assert len(result.warnings) == 1
        assert result.warnings[0].startswith("Cannot split FEN")

    def test_malformed_player_board(self):
        result = parse_puzzles(record(compound("garbage here"), "*"))
        assert result.puzzles == []
        assert result.warnings[0].startswith("Error parsing FEN")

    def test_illegal_position_skipped_later_puzzles_kept(self):
        text = (
            record(compound(NO_BLACK_KING_FEN), "1. Kd2 *")
            + record(compound(MATE_IN_ONE_FEN), "3. Qh5# 1-0")
        )
        result = parse_puzzles(text)
        assert len(result.puzzles) == 1
        assert result.puzzles[0].fen == MATE_IN_ONE_FEN
        assert result.puzzles[0].solution_san() == ["Qh5#"]
        assert result.warnings[0].startswith("Error setting up position")

    def test_bad_header_keeps_previous_cursor(self):
        text = (
            record(compound(START_FEN), "1. e4 *")
            + record(START_FEN, "1... e5 *")
        )
        result = parse_puzzles(text)
        assert len(result.puzzles) == 1
        assert result.puzzles[0].solution_san() == ["e4", "e5"]


# ---------------------------------------------------------------------------
# Decoding and files
# ---------------------------------------------------------------------------


class TestDecoding:

    def test_cp1252_text(self):
        assert decode_bytes(b"D\xe9butant \x80") == "D\u00e9butant \u20ac"

    def test_undecodable_bytes_are_replaced(self):
        assert decode_bytes(b"a\x81b") == "a\ufffdb"

    def test_import_bytes_with_legacy_bytes(self, sample_bpgn):
        data = b'[Event "Tournoi d\xe9butant \x81"]\n' + sample_bpgn.encode("cp1252")
        result = import_bytes(data)
        assert len(result.puzzles) == 2


class TestImportFile:

    def test_import_file(self, sample_file):
        puzzles = import_file(sample_file)
        assert len(puzzles) == 2

    def test_reimport_is_structurally_equal(self, sample_file):
        assert import_file(sample_file) == import_file(sample_file)

    def test_missing_file(self, tmp_path):
        with pytest.raises(PuzzleImportError, match="Cannot read"):
            import_file(tmp_path / "missing.bpgn")

    def test_broken_framing(self, tmp_path):
        path = tmp_path / "broken.bpgn"
        path.write_bytes(b'[FEN "x | y"]\n\n1. e4 { unterminated\n')
        with pytest.raises(PuzzleImportError, match="Cannot parse PGN file"):
            import_file(path)

    def test_warnings_go_to_stderr(self, tmp_path, capsys):
        path = tmp_path / "nopipe.bpgn"
        path.write_text(record(START_FEN, "1. e4 *"), encoding="cp1252")
        assert import_file(path) == []
        err = capsys.readouterr().err
        assert "Warning: nopipe.bpgn: Cannot split FEN" in err

    def test_empty_file(self, tmp_path):
        path = tmp_path / "empty.bpgn"
        path.write_bytes(b"")
        assert import_file(path) == []


# ---------------------------------------------------------------------------
# Export and CLI
# ---------------------------------------------------------------------------


class TestExport:

    def test_json_shape(self, sample_bpgn):
        data = json.loads(puzzles_to_json(parse_puzzles(sample_bpgn).puzzles))
        assert data[0] == {
            "fen": MATE_IN_ONE_FEN,
            "partner_fen": START_FEN,
            "solution_moves": ["d1h5"],
            "solution_san": ["Qh5#"],
            "source": "bpgn",
        }
        assert data[1]["solution_moves"] == ["e2e4", "f7f6", "d2d4", "g7g5", "d1h5"]


class TestCLI:

    def test_writes_output(self, sample_file, tmp_path):
        out = tmp_path / "out" / "puzzles.json"
        with patch.object(sys, "argv", ["importer", str(sample_file), "--output", str(out)]):
            assert main() == 0
        assert len(json.loads(out.read_text(encoding="utf-8"))) == 2

    def test_prints_to_stdout(self, sample_file, capsys):
        with patch.object(sys, "argv", ["importer", str(sample_file)]):
            assert main() == 0
        assert json.loads(capsys.readouterr().out)[0]["solution_san"] == ["Qh5#"]

    def test_missing_file_exit_code(self, tmp_path, capsys):
        with patch.object(sys, "argv", ["importer", str(tmp_path / "nope.bpgn")]):
            assert main() == 1
        assert "Error: Cannot read" in capsys.readouterr().err

    def test_no_puzzles_exit_code(self, tmp_path, capsys):
        path = tmp_path / "plain.pgn"
        path.write_text('[Event "A"]\n\n1. e4 e5 *\n', encoding="cp1252")
        with patch.object(sys, "argv", ["importer", str(path)]):
            assert main() == 1
        assert "No puzzles found." in capsys.readouterr().err


class TestBundledData:

    def test_bundled_puzzles(self):
        path = Path(__file__).resolve().parent.parent / "data" / "puzzles.bpgn"
        puzzles = import_file(path)
        assert [p.solution_san() for p in puzzles] == [
            ["Qh5#"],
            ["e4", "f6", "d4", "g5", "Qh5#"],
            ["N@f7#"],
        ]
