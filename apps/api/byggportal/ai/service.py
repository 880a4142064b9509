"""
AI Service - Groq-based AI for protocol summaries and action extraction.

Uses the Groq API for fast inference. Responses are requested as JSON and
parsed leniently, since models like to wrap JSON in code fences or leave
trailing commas.
"""

import asyncio
import json
import logging
import re
from typing import Any

from groq import Groq
from pydantic import BaseModel, ValidationError

from byggportal.core.config import settings
from byggportal.core.errors import ExternalServiceError, ServiceNotConfiguredError

logger = logging.getLogger(__name__)


class ExtractedAction(BaseModel):
    """An action item suggested by the AI."""
    description: str
    assigned_to_name: str | None = None
    deadline: str | None = None
    priority: str = "medium"
    source_text: str | None = None


class ProtocolSummary(BaseModel):
    """Structured summary of a meeting."""
    summary: str
    key_points: list[str]
    extracted_actions: list[ExtractedAction] = []


class ActionExtraction(BaseModel):
    actions: list[ExtractedAction]
    notes: str | None = None


class SuggestedAgendaItem(BaseModel):
    """An agenda point proposed by the AI."""
    title: str
    description: str | None = None
    source: str = "standard"
    related_item_id: str | None = None
    duration_minutes: int | None = None
    order_index: int | None = None


class AgendaSuggestion(BaseModel):
    suggestions: list[SuggestedAgendaItem]
    explanation: str | None = None


def parse_ai_json(text: str) -> dict[str, Any]:
    """
    Parse a JSON object out of a model response.

    Strips markdown code fences, takes the outermost {...} and removes
    trailing commas before closing brackets.
    """
    json_text = text.strip()

    if json_text.startswith("```"):
        json_text = re.sub(r"^```(?:json)?\n?", "", json_text)
        json_text = re.sub(r"\n?```$", "", json_text)

    json_match = re.search(r"\{[\s\S]*\}", json_text)
    if json_match:
        json_text = json_match.group()

    json_text = re.sub(r",(\s*[}\]])", r"\1", json_text)

    try:
        data = json.loads(json_text)
    except json.JSONDecodeError as e:
        logger.error(f"JSON parse error: {e}; raw response: {text[:500]}")
        raise ExternalServiceError("AI returnerade ogiltigt format") from e

    if not isinstance(data, dict):
        raise ExternalServiceError("Ogiltigt svarsformat från AI")
    return data


def normalize_priority(value: Any) -> str:
    if value in ("low", "medium", "high", "critical"):
        return value
    return "medium"


def build_summary_prompt(
    notes: str | None,
    agenda_items: list[dict[str, Any]],
    decisions: list[dict[str, Any]],
) -> str:
    """Build the summary prompt from notes, agenda items and decisions."""
    agenda_context = ""
    if agenda_items:
        lines = []
        for i, item in enumerate(agenda_items):
            number = item.get("order_index") or i + 1
            line = f"{number}. {item.get('title', '')}"
            if item.get("notes"):
                line += f": {item['notes']}"
            lines.append(line)
        agenda_context = "\n\nDagordningspunkter:\n" + "\n".join(lines)

    decisions_context = ""
    if decisions:
        lines = [
            f"- Beslut {d.get('decision_number') or i + 1}: {d.get('description', '')}"
            for i, d in enumerate(decisions)
        ]
        decisions_context = "\n\nBeslut som fattades:\n" + "\n".join(lines)

    return f"""Analysera följande mötesanteckningar och skapa en strukturerad sammanfattning.

Mötesanteckningar:
{notes or '(Inga anteckningar angivna)'}{agenda_context}{decisions_context}

Skapa en sammanfattning som inkluderar:
1. En kortfattad övergripande sammanfattning av mötet (2-3 meningar)
2. Nyckelpunkter från diskussionerna (3-5 punkter)
3. Eventuella identifierade åtgärdspunkter eller uppgifter som behöver utföras"""


def build_extraction_prompt(text: str, members: list[dict[str, Any]]) -> str:
    members_context = ""
    if members:
        lines = []
        for m in members:
            line = f"- {m.get('name') or m.get('email')}"
            if m.get("company"):
                line += f" ({m['company']})"
            lines.append(line)
        members_context = "\n\nProjektmedlemmar som kan tilldelas uppgifter:\n" + "\n".join(lines)

    return f"""Text att analysera:
{text}{members_context}

Identifiera alla åtgärdspunkter och försök matcha ansvariga personer mot projektmedlemmarna om möjligt."""


MEETING_TYPE_LABELS = {
    "byggmote": "Byggmöte",
    "projektmote": "Projektmöte",
    "samordningsmote": "Samordningsmöte",
    "startmote": "Startmöte",
    "slutmote": "Slutmöte",
    "besiktning": "Besiktning",
    "other": "Övrigt möte",
}

AGENDA_SOURCES = ("standard", "action", "previous")


def build_agenda_prompt(
    meeting_type: str,
    previous_protocol: dict[str, Any] | None,
    pending_actions: list[dict[str, Any]],
) -> str:
    """Build the agenda suggestion prompt from the project's recent meeting history."""
    label = MEETING_TYPE_LABELS.get(meeting_type, meeting_type or "Projektmöte")

    previous_context = ""
    if previous_protocol:
        lines = [
            f"Föregående protokoll: {previous_protocol.get('title', '')}",
            f"Mötestyp: {previous_protocol.get('meeting_type', '')}",
        ]
        if previous_protocol.get("notes"):
            lines.append(f"Anteckningar: {previous_protocol['notes'][:500]}...")
        if previous_protocol.get("agenda_items"):
            lines.append("Tidigare dagordning:")
            lines.extend(f"- {title}" for title in previous_protocol["agenda_items"])
        if previous_protocol.get("decisions"):
            lines.append("Tidigare beslut:")
            lines.extend(f"- {description}" for description in previous_protocol["decisions"])
        previous_context = "\n" + "\n".join(lines)

    if pending_actions:
        lines = []
        for a in pending_actions:
            line = f"- {a.get('description', '')}"
            if a.get("assigned_to_name"):
                line += f" ({a['assigned_to_name']})"
            if a.get("deadline"):
                line += f" - deadline: {a['deadline']}"
            lines.append(line)
        actions_context = "\nPågående åtgärdspunkter:\n" + "\n".join(lines)
    else:
        actions_context = "\nInga pågående åtgärdspunkter."

    return f"""Skapa ett förslag på dagordning baserat på följande projektkontext.

Mötestyp: {label}{previous_context}
{actions_context}

Skapa en relevant dagordning för {label}. Inkludera:
1. Standardpunkter för mötestypen (mötets öppnande, föregående protokoll, etc.)
2. Uppföljning av pågående åtgärder
3. Uppföljning av punkter från föregående möte
4. Eventuella nya punkter baserat på projektets status"""


class AIService:
    """AI Service using the Groq API."""

    SUMMARY_SYSTEM_PROMPT = """Du är en expert på att sammanfatta byggmötesprotokoll på svenska.

Svara ENDAST med ett giltigt JSON-objekt i detta format:
{
  "summary": "Övergripande sammanfattning av mötet...",
  "key_points": ["Nyckelpunkt 1", "Nyckelpunkt 2", "Nyckelpunkt 3"],
  "extracted_actions": [
    {
      "description": "Åtgärd som behöver utföras",
      "assigned_to_name": "Ansvarig person om nämnd",
      "deadline": "2024-01-15 om datum nämnts, annars null",
      "priority": "medium"
    }
  ]
}

VIKTIGT:
- Skriv på svenska
- Var koncis men informativ
- Om ingen ansvarig nämns, sätt assigned_to_name till null
- Om inget deadline nämns, sätt deadline till null
- priority ska vara: low, medium, high, eller critical
- Returnera ENDAST giltig JSON, ingen annan text"""

    EXTRACTION_SYSTEM_PROMPT = """Du är en expert på att extrahera åtgärdspunkter och uppgifter från mötesanteckningar på svenska.

Leta efter:
- Explicita åtaganden ("X ska göra Y")
- Uppgifter med deadlines ("senast fredag", "innan nästa möte")
- Öppna frågor som kräver åtgärd
- Beslut som kräver uppföljning

Svara ENDAST med ett giltigt JSON-objekt i detta format:
{
  "actions": [
    {
      "description": "Beskrivning av åtgärden",
      "assigned_to_name": "Namn på ansvarig person (eller null om okänt)",
      "deadline": "2024-01-15 (ISO-datum om nämnt, annars null)",
      "priority": "medium",
      "source_text": "Den del av texten som åtgärden baseras på"
    }
  ],
  "notes": "Eventuella kommentarer om extraktionen"
}

Riktlinjer för priority:
- critical: Akuta säkerhetsproblem, blockerande issues
- high: Viktiga uppgifter med snart deadline
- medium: Normala uppgifter
- low: Uppgifter som kan vänta

Om flera personer nämns för samma uppgift, skapa separata åtgärdspunkter.
Om inga åtgärder hittas, returnera {"actions": [], "notes": "Inga åtgärdspunkter identifierades"}"""

    AGENDA_SYSTEM_PROMPT = """Du är en expert på att planera byggmöten i Sverige.

Svara ENDAST med ett giltigt JSON-objekt i detta format:
{
  "suggestions": [
    {
      "title": "Dagordningspunkt",
      "description": "Kort beskrivning av vad som ska diskuteras",
      "source": "standard|action|previous",
      "related_item_id": null,
      "duration_minutes": 10,
      "order_index": 1
    }
  ],
  "explanation": "Kort förklaring av dagordningsförslaget"
}

Riktlinjer:
- source anger varifrån förslaget kommer:
  - "standard": Standardpunkt för mötestypen
  - "action": Uppföljning av åtgärdspunkt
  - "previous": Uppföljning från föregående möte
- Föreslå realistiska tidsuppskattningar (duration_minutes)
- Ordna punkterna i logisk ordning
- Inkludera alltid "Mötets öppnande" först och "Nästa möte/Avslut" sist

VIKTIGT:
- Skriv på svenska
- Returnera ENDAST giltig JSON, ingen annan text"""

    def __init__(self):
        """Initialize the AI service."""
        self._client: Groq | None = None

    @property
    def client(self) -> Groq | None:
        """Get Groq client (lazy initialization)."""
        api_key = settings.groq_api_key
        if not api_key:
            return None
        if self._client is None:
            self._client = Groq(api_key=api_key)
        return self._client

    def _call_groq_sync(
        self,
        messages: list[dict[str, str]],
        temperature: float = 0.3,
        max_tokens: int = 2048,
    ) -> str:
        """Call the Groq API synchronously."""
        client = self.client
        if not client:
            logger.error("GROQ_API_KEY is not configured")
            raise ServiceNotConfiguredError("AI-tjänsten är inte konfigurerad")

        try:
            completion = client.chat.completions.create(
                model=settings.groq_model,
                messages=messages,
                temperature=temperature,
                max_completion_tokens=max_tokens,
                top_p=1,
                stream=False,
            )
        except Exception as e:
            logger.exception(f"Groq request failed: {e}")
            raise ExternalServiceError(f"AI-fel: {e}") from e

        choice = completion.choices[0]
        if choice.finish_reason == "length":
            logger.error("AI response was truncated")
            raise ExternalServiceError("AI-svaret blev avkortat. Försök med kortare text.")

        content = choice.message.content
        if not content:
            raise ExternalServiceError("Inget svar från AI")
        return content

    async def _call_groq(
        self,
        messages: list[dict[str, str]],
        temperature: float = 0.3,
        max_tokens: int = 2048,
    ) -> str:
        """Call the Groq API (runs sync call in thread)."""
        loop = asyncio.get_running_loop()
        return await loop.run_in_executor(
            None,
            lambda: self._call_groq_sync(messages, temperature, max_tokens)
        )

    async def summarize_protocol(
        self,
        notes: str | None,
        agenda_items: list[dict[str, Any]],
        decisions: list[dict[str, Any]],
    ) -> ProtocolSummary:
        """Summarize a meeting from its notes, agenda and decisions."""
        messages = [
            {"role": "system", "content": self.SUMMARY_SYSTEM_PROMPT},
            {"role": "user", "content": build_summary_prompt(notes, agenda_items, decisions)},
        ]
        response = await self._call_groq(messages, temperature=0.3, max_tokens=2048)
        data = parse_ai_json(response)

        if not data.get("summary") or not isinstance(data.get("key_points"), list):
            raise ExternalServiceError("Ogiltigt svarsformat från AI")

        actions = data.get("extracted_actions")
        if not isinstance(actions, list):
            actions = []

        try:
            return ProtocolSummary(
                summary=data["summary"],
                key_points=[str(point) for point in data["key_points"]],
                extracted_actions=[
                    {**a, "priority": normalize_priority(a.get("priority"))}
                    for a in actions
                    if isinstance(a, dict) and a.get("description")
                ],
            )
        except ValidationError as e:
            raise ExternalServiceError("Ogiltigt svarsformat från AI") from e

    async def extract_actions(
        self,
        text: str,
        members: list[dict[str, Any]] | None = None,
    ) -> ActionExtraction:
        """Extract action items from free text, matching assignees to members."""
        messages = [
            {"role": "system", "content": self.EXTRACTION_SYSTEM_PROMPT},
            {"role": "user", "content": build_extraction_prompt(text[:8000], members or [])},
        ]
        response = await self._call_groq(messages, temperature=0.1, max_tokens=2048)
        data = parse_ai_json(response)

        if not isinstance(data.get("actions"), list):
            raise ExternalServiceError("Ogiltigt svarsformat från AI")

        try:
            return ActionExtraction(
                actions=[
                    {**a, "priority": normalize_priority(a.get("priority"))}
                    for a in data["actions"]
                    if isinstance(a, dict) and a.get("description")
                ],
                notes=data.get("notes"),
            )
        except ValidationError as e:
            raise ExternalServiceError("Ogiltigt svarsformat från AI") from e

    async def suggest_agenda(
        self,
        meeting_type: str,
        previous_protocol: dict[str, Any] | None = None,
        pending_actions: list[dict[str, Any]] | None = None,
    ) -> AgendaSuggestion:
        """Suggest agenda items for an upcoming meeting."""
        messages = [
            {"role": "system", "content": self.AGENDA_SYSTEM_PROMPT},
            {
                "role": "user",
                "content": build_agenda_prompt(meeting_type, previous_protocol, pending_actions or []),
            },
        ]
        response = await self._call_groq(messages, temperature=0.4, max_tokens=2048)
        data = parse_ai_json(response)

        if not isinstance(data.get("suggestions"), list):
            raise ExternalServiceError("Ogiltigt svarsformat från AI")

        suggestions = []
        for index, item in enumerate(data["suggestions"]):
            if not isinstance(item, dict) or not item.get("title"):
                continue
            source = item.get("source")
            suggestions.append({
                **item,
                "source": source if source in AGENDA_SOURCES else "standard",
                "order_index": item.get("order_index") or index + 1,
            })

        try:
            return AgendaSuggestion(suggestions=suggestions, explanation=data.get("explanation"))
        except ValidationError as e:
            raise ExternalServiceError("Ogiltigt svarsformat från AI") from e


# Singleton instance
ai_service = AIService()
