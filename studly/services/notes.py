"""Study-note generation via an OpenAI-compatible chat completion API (Groq)."""

import json
import logging
import re
from dataclasses import dataclass, field
from typing import Optional

import httpx

from studly.config import get_settings
from studly.errors import NoteGenerationError

logger = logging.getLogger(__name__)

settings = get_settings()

SYSTEM_PROMPT = """You are Studly, an AI study assistant specialized in creating exam-ready notes for IB, A-Level, and GCSE students. Your notes are structured, clear, and optimized for revision.

When given a lecture transcription, you must output valid JSON with this exact structure:
{
  "summary": "2-3 paragraph executive summary of the key points",
  "content": "Full structured notes in markdown format with headers, bullet points, and clear organization",
  "keyConcepts": ["Array", "of", "key", "terms", "and", "concepts"],
  "flashcards": [
    {"front": "Question or term", "back": "Answer or definition"}
  ],
  "examTips": ["Practical tips for exam questions on this topic"]
}

Guidelines:
- Use clear, concise language appropriate for students
- Structure notes with logical hierarchy (H2 for main topics, H3 for subtopics)
- Highlight definitions, formulas, and key facts
- Create 5-10 flashcards covering the most important concepts
- Create flashcards that test understanding, not just recall
- Include exam tips specific to the subject and exam board if known
- Output ONLY valid JSON, no markdown code blocks or additional text"""

_FENCED_JSON = re.compile(r"```(?:json)?\s*(\{.*\})\s*```", re.DOTALL)


@dataclass
class GeneratedNotes:
    """Structured notes produced for one transcription."""

    summary: str
    content: str
    key_concepts: list[str] = field(default_factory=list)
    flashcards: list[dict] = field(default_factory=list)
    exam_tips: list[str] = field(default_factory=list)

    @property
    def word_count(self) -> int:
        return len(self.content.split()) if self.content else 0

    def to_dict(self) -> dict:
        return {
            "summary": self.summary,
            "content": self.content,
            "key_concepts": self.key_concepts,
            "flashcards": self.flashcards,
            "exam_tips": self.exam_tips,
            "word_count": self.word_count,
        }


def build_user_prompt(
    transcription: str,
    subject: Optional[str] = None,
    exam_board: Optional[str] = None,
) -> str:
    """Build the user message, prefixed with subject and exam board when known."""
    prompt = ""
    if subject:
        prompt += f"Subject: {subject}\n"
    if exam_board:
        prompt += f"Exam Board: {exam_board}\n"
    prompt += (
        f"\nLecture Transcription:\n{transcription}\n\n"
        "Generate comprehensive study notes from this lecture. Output only valid JSON."
    )
    return prompt


def _string_list(value) -> list[str]:
    if not isinstance(value, list):
        return []
    return [str(item).strip() for item in value if str(item).strip()]


def _flashcards(value) -> list[dict]:
    if not isinstance(value, list):
        return []
    cards = []
    for card in value:
        if not isinstance(card, dict):
            continue
        front = str(card.get("front", "")).strip()
        back = str(card.get("back", "")).strip()
        if front and back:
            cards.append({"front": front, "back": back})
    return cards


def parse_notes(raw: str) -> GeneratedNotes:
    """
    Parse the model's JSON reply into GeneratedNotes.

    Accepts a bare JSON object or one wrapped in a ```json fence.

    Raises:
        NoteGenerationError: if the reply is not a JSON object
    """
    if not raw or not raw.strip():
        raise NoteGenerationError("No content received from note generator")

    text = raw.strip()
    match = _FENCED_JSON.search(text)
    if match:
        text = match.group(1)

    try:
        data = json.loads(text)
    except json.JSONDecodeError as e:
        raise NoteGenerationError(f"Note generator returned invalid JSON: {e}") from e

    if not isinstance(data, dict):
        raise NoteGenerationError("Note generator returned a non-object JSON value")

    return GeneratedNotes(
        summary=str(data.get("summary") or "").strip(),
        content=str(data.get("content") or "").strip(),
        key_concepts=_string_list(data.get("keyConcepts") or data.get("key_concepts")),
        flashcards=_flashcards(data.get("flashcards")),
        exam_tips=_string_list(data.get("examTips") or data.get("exam_tips")),
    )


class NoteService:
    """Generates study notes from lecture transcriptions."""

    def __init__(
        self,
        api_key: str,
        base_url: str,
        model: str,
        temperature: float = 0.3,
        max_tokens: int = 4096,
        timeout: float = 60.0,
    ):
        self.api_key = api_key
        self.base_url = base_url.rstrip("/")
        self.model = model
        self.temperature = temperature
        self.max_tokens = max_tokens
        self.timeout = timeout

    async def generate(
        self,
        transcription: str,
        subject: Optional[str] = None,
        exam_board: Optional[str] = None,
    ) -> GeneratedNotes:
        """
        Generate structured notes for a transcription.

        Raises:
            NoteGenerationError: on vendor failure or an unusable reply
        """
        payload = {
            "model": self.model,
            "messages": [
                {"role": "system", "content": SYSTEM_PROMPT},
                {"role": "user", "content": build_user_prompt(transcription, subject, exam_board)},
            ],
            "temperature": self.temperature,
            "max_tokens": self.max_tokens,
            "response_format": {"type": "json_object"},
        }

        try:
            async with httpx.AsyncClient(timeout=self.timeout) as client:
                response = await client.post(
                    f"{self.base_url}/chat/completions",
                    headers={
                        "Authorization": f"Bearer {self.api_key}",
                        "Content-Type": "application/json",
                    },
                    json=payload,
                )
                response.raise_for_status()
        except httpx.HTTPStatusError as e:
            logger.error(
                f"Note generation API error: {e.response.status_code} - {e.response.text}"
            )
            raise NoteGenerationError(
                f"Note generation API error: {e.response.status_code}"
            ) from e
        except httpx.RequestError as e:
            logger.error(f"Note generation request error: {e}")
            raise NoteGenerationError("Note generation service unreachable") from e

        try:
            data = response.json()
        except ValueError as e:
            logger.error(f"Note generation returned a non-JSON body: {response.text[:200]}")
            raise NoteGenerationError("Note generation API returned an unreadable response") from e

        content = ""
        choices = data.get("choices") if isinstance(data, dict) else None
        if isinstance(choices, list) and choices and isinstance(choices[0], dict):
            message = choices[0].get("message")
            if isinstance(message, dict) and isinstance(message.get("content"), str):
                content = message["content"]

        notes = parse_notes(content)
        logger.info(
            f"Generated notes: {notes.word_count} words, {len(notes.flashcards)} flashcards"
        )
        return notes


# Singleton instance
note_service = NoteService(
    settings.groq_api_key,
    settings.groq_base_url,
    settings.groq_model,
    temperature=settings.groq_temperature,
    max_tokens=settings.groq_max_tokens,
    timeout=settings.vendor_timeout_seconds,
)
