"""AI module - protocol summaries, action item extraction and agenda suggestions."""

from byggportal.ai.service import (
    ActionExtraction,
    AgendaSuggestion,
    AIService,
    ExtractedAction,
    ProtocolSummary,
    SuggestedAgendaItem,
    ai_service,
)

__all__ = [
    "AIService",
    "ActionExtraction",
    "AgendaSuggestion",
    "ExtractedAction",
    "ProtocolSummary",
    "SuggestedAgendaItem",
    "ai_service",
]
