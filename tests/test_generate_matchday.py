"""
Unit tests for the matchday preview command.
"""
import pytest
import sys
import os

sys.path.insert(0, os.path.join(os.path.dirname(__file__), '..', 'src'))

import generate_matchday
from generate_matchday import format_matchday, preview_matchday
from league.matchday import generate_next_matchday
from league.models import RejectionReason
from league.storage import load_matches, save_matches, save_players


class TestFormatMatchday:
    """Tests for printable output."""

    def test_names_replace_ids(self, four_players):
        """Test lines use player names and the matchday header."""
        records = generate_next_matchday(four_players, []).records
        assert format_matchday(records, four_players) == [
            "# Matchday 1",
            "rr-1-1: Alice & Dario vs Bruno & Carla",
        ]

    def test_unknown_id_printed_as_is(self, four_players):
        """Test ids missing from the roster are kept."""
        records = generate_next_matchday(four_players, []).records
        assert format_matchday(records, four_players[1:])[1].startswith("rr-1-1: A & Dario")

    def test_empty(self):
        """Test no matches gives no lines."""
        assert format_matchday([], []) == []


class TestPreviewMatchday:
    """Tests for previewing from a data directory."""

    def test_preview_does_not_write(self, tmp_path, four_players):
        """Test the preview leaves the match log untouched."""
        save_players(str(tmp_path), four_players)
        players, outcome = preview_matchday(str(tmp_path))

        assert players == four_players
        assert outcome.ok
        assert load_matches(str(tmp_path)) == []

    def test_preview_rejection(self, tmp_path, four_players):
        """Test an open matchday is reported, not replaced."""
        save_players(str(tmp_path), four_players)
        save_matches(str(tmp_path), generate_next_matchday(four_players, []).records)

        _, outcome = preview_matchday(str(tmp_path))
        assert outcome.reason == RejectionReason.INCOMPLETE_PREVIOUS_ROUND


class TestMain:
    """Tests for the command line entry point."""

    def test_main_prints_matchday(self, tmp_path, four_players, monkeypatch, capsys):
        """Test a successful preview prints and returns 0."""
        save_players(str(tmp_path), four_players)
        monkeypatch.setattr(sys, 'argv', ['generate_matchday.py', str(tmp_path)])

        assert generate_matchday.main() == 0
        out = capsys.readouterr().out
        assert "# Matchday 1" in out
        assert "Alice & Dario vs Bruno & Carla" in out

    def test_main_reports_rejection(self, tmp_path, monkeypatch, capsys):
        """Test an empty league returns 1 with the reason."""
        monkeypatch.setattr(sys, 'argv', ['generate_matchday.py', str(tmp_path)])

        assert generate_matchday.main() == 1
        assert "not-enough-players" in capsys.readouterr().out
