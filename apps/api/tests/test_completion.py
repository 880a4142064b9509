"""
Tests for protocol completion percentage.
"""

import pytest

from byggportal.protocols.completion import completion_checks, completion_percentage


def complete(**overrides) -> int:
    values = {
        "attendee_count": 3,
        "agenda_count": 2,
        "notes": "Genomgång av tidplan",
        "decision_count": 1,
        "action_count": 1,
    }
    values.update(overrides)
    return completion_percentage(**values)


class TestCompletionPercentage:
    """Tests for the four completion checks."""

    def test_full_protocol_is_100(self) -> None:
        """Test that a protocol passing every check is complete."""
        assert complete() == 100

    def test_empty_protocol_is_0(self) -> None:
        """Test that an empty protocol is at zero."""
        assert completion_percentage(0, 0, None, 0, 0) == 0

    @pytest.mark.parametrize(
        "overrides",
        [
            {"attendee_count": 0},
            {"agenda_count": 0},
            {"notes": None},
            {"decision_count": 0, "action_count": 0},
        ],
    )
    def test_each_missing_check_costs_a_quarter(self, overrides: dict) -> None:
        """Test that failing any single check drops the percentage to 75."""
        assert complete(**overrides) == 75

    def test_whitespace_notes_do_not_count(self) -> None:
        """Test that blank notes are treated as missing."""
        assert complete(notes="   \n\t") == 75

    def test_decisions_or_actions_are_enough(self) -> None:
        """Test that either decisions or action items satisfy the outcome check."""
        assert complete(decision_count=0) == 100
        assert complete(action_count=0) == 100

    def test_counts_checks(self) -> None:
        """Test the number of passing checks."""
        checks = completion_checks(1, 0, "x", 0, 0)
        assert checks.done == 2
        assert checks.total == 4
        assert completion_percentage(1, 0, "x", 0, 0) == 50
