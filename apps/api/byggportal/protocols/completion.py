"""
Protocol completion.

A protocol is considered complete when it has attendees, an agenda, notes and
at least one decision or action item. The percentage is derived on every
read and never stored.
"""

from dataclasses import dataclass


@dataclass(frozen=True)
class CompletionChecks:
    has_attendees: bool
    has_agenda: bool
    has_notes: bool
    has_outcomes: bool  # decisions or action items

    @property
    def done(self) -> int:
        return sum(
            (self.has_attendees, self.has_agenda, self.has_notes, self.has_outcomes)
        )

    @property
    def total(self) -> int:
        return 4


def completion_checks(
    attendee_count: int,
    agenda_count: int,
    notes: str | None,
    decision_count: int,
    action_count: int,
) -> CompletionChecks:
    return CompletionChecks(
        has_attendees=attendee_count > 0,
        has_agenda=agenda_count > 0,
        has_notes=bool(notes and notes.strip()),
        has_outcomes=decision_count > 0 or action_count > 0,
    )


def completion_percentage(
    attendee_count: int,
    agenda_count: int,
    notes: str | None,
    decision_count: int,
    action_count: int,
) -> int:
    """Share of the four checks that pass, as a rounded integer percent."""
    checks = completion_checks(
        attendee_count, agenda_count, notes, decision_count, action_count
    )
    return round(checks.done / checks.total * 100)
