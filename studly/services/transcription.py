"""Speech-to-text service backed by the AssemblyAI REST API."""

import logging
from dataclasses import dataclass
from typing import Optional

import httpx

from studly.config import get_settings
from studly.errors import TranscriptionError

logger = logging.getLogger(__name__)

settings = get_settings()


def _json_body(response: httpx.Response):
    try:
        return response.json()
    except ValueError as e:
        logger.error(f"AssemblyAI returned a non-JSON body: {response.text[:200]}")
        raise TranscriptionError("Transcription service returned an unreadable response") from e


@dataclass
class Transcript:
    """A transcript as reported by the vendor."""

    id: str
    status: str  # queued, processing, completed, error
    text: Optional[str] = None
    error: Optional[str] = None
    audio_duration: Optional[float] = None

    @property
    def is_completed(self) -> bool:
        return self.status == "completed"

    @property
    def is_error(self) -> bool:
        return self.status == "error"

    @classmethod
    def from_api(cls, data: dict) -> "Transcript":
        """
        Build a Transcript from the vendor JSON.

        Raises:
            TranscriptionError: if the reply is not a transcript object
        """
        if not isinstance(data, dict) or not data.get("id"):
            raise TranscriptionError("Transcription service returned an unexpected response")
        return cls(
            id=data.get("id"),
            status=data.get("status", "queued"),
            text=data.get("text"),
            error=data.get("error"),
            audio_duration=data.get("audio_duration"),
        )

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "status": self.status,
            "text": self.text,
            "error": self.error,
            "audio_duration": self.audio_duration,
        }


class TranscriptionService:
    """Submits audio for transcription and checks on it."""

    def __init__(self, api_key: str, base_url: str, timeout: float = 60.0):
        self.api_key = api_key
        self.base_url = base_url.rstrip("/")
        self.timeout = timeout

    def _headers(self) -> dict:
        return {"authorization": self.api_key, "content-type": "application/json"}

    async def submit(self, audio_url: str, language_code: Optional[str] = None) -> Transcript:
        """
        Submit an audio URL for asynchronous transcription.

        Raises:
            TranscriptionError: if the vendor rejects the request
        """
        payload: dict = {"audio_url": audio_url}
        if language_code:
            payload["language_code"] = language_code

        try:
            async with httpx.AsyncClient(timeout=self.timeout) as client:
                response = await client.post(
                    f"{self.base_url}/transcript",
                    headers=self._headers(),
                    json=payload,
                )
                response.raise_for_status()
        except httpx.HTTPStatusError as e:
            logger.error(
                f"AssemblyAI submit failed: {e.response.status_code} - {e.response.text}"
            )
            raise TranscriptionError("Failed to submit audio for transcription") from e
        except httpx.RequestError as e:
            logger.error(f"AssemblyAI submit request error: {e}")
            raise TranscriptionError("Failed to submit audio for transcription") from e

        transcript = Transcript.from_api(_json_body(response))
        logger.info(f"Submitted transcript {transcript.id} ({transcript.status})")
        return transcript

    async def get(self, transcript_id: str) -> Transcript:
        """
        Fetch the current state of a transcript.

        Raises:
            TranscriptionError: if the vendor cannot be reached or errors
        """
        try:
            async with httpx.AsyncClient(timeout=self.timeout) as client:
                response = await client.get(
                    f"{self.base_url}/transcript/{transcript_id}",
                    headers=self._headers(),
                )
                response.raise_for_status()
        except httpx.HTTPError as e:
            logger.error(f"AssemblyAI fetch failed for {transcript_id}: {e}")
            raise TranscriptionError("Failed to fetch transcription") from e

        return Transcript.from_api(_json_body(response))


# Singleton instance
transcription_service = TranscriptionService(
    settings.assemblyai_api_key,
    settings.assemblyai_base_url,
    timeout=settings.vendor_timeout_seconds,
)
