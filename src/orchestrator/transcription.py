"""Speech-to-text gateway.

Forwards recorded voice segments to an OpenAI-compatible transcription
endpoint and cleans up the returned text.
"""

import re
import time
from typing import Optional

import httpx
from tenacity import retry, retry_if_exception_type, stop_after_attempt, wait_exponential

from shared.config import WhisperSettings
from shared.logging import get_logger

logger = get_logger(__name__)


# Watermarks some models hallucinate on silence
ARTIFACTS = (
    "Transcribed by https://otter.ai",
    "Transcribed by Otter.ai",
    "otter.ai",
)


class TranscriptionError(Exception):
    """The transcription endpoint rejected or failed the request."""

    def __init__(self, message: str, status_code: Optional[int] = None) -> None:
        super().__init__(message)
        self.status_code = status_code


class TranscriptionConfigError(TranscriptionError):
    """The transcription gateway is not configured."""
    pass


def clean_transcribed_text(text: str) -> str:
    """Strip known artifacts and collapse whitespace."""
    for artifact in ARTIFACTS:
        text = re.sub(re.escape(artifact), "", text, flags=re.IGNORECASE).strip()
    return re.sub(r"\s+", " ", text).strip()


class WhisperService:
    """Client for the audio transcription endpoint."""

    def __init__(
        self,
        settings: WhisperSettings,
        transport: Optional[httpx.AsyncBaseTransport] = None
    ) -> None:
        """
        Args:
            settings: Endpoint, credentials and model
            transport: Optional httpx transport, used by tests
        """
        self.settings = settings
        self._transport = transport
        self._client: Optional[httpx.AsyncClient] = None

    async def _get_client(self) -> httpx.AsyncClient:
        """Get or create HTTP client."""
        if self._client is None or self._client.is_closed:
            self._client = httpx.AsyncClient(
                base_url=self.settings.endpoint,
                timeout=self.settings.timeout,
                headers={
                    "User-Agent": "WhisperServer/1.0",
                    "Authorization": f"Bearer {self.settings.api_key}",
                },
                transport=self._transport,
            )
        return self._client

    async def close(self) -> None:
        """Close the HTTP client."""
        if self._client and not self._client.is_closed:
            await self._client.aclose()
            self._client = None

    @retry(
        retry=retry_if_exception_type(httpx.TransportError),
        stop=stop_after_attempt(2),
        wait=wait_exponential(multiplier=0.5, min=0.5, max=5),
        reraise=True
    )
    async def _post(self, audio: bytes, filename: str) -> httpx.Response:
        client = await self._get_client()
        return await client.post(
            "audio/transcriptions",
            files={"file": (filename, audio, "audio/webm")},
            data={
                "model": self.settings.model,
                "language": self.settings.language,
                "response_format": "json",
                "temperature": "0.0",
            },
        )

    async def transcribe(
        self,
        audio: bytes,
        filename: Optional[str] = None,
        transcript_id: str = "unknown"
    ) -> str:
        """
        Transcribe one voice segment.

        Args:
            audio: Raw audio bytes
            filename: Original file name
            transcript_id: Client-side identifier, for logging only

        Returns:
            Cleaned transcription; empty for tiny segments or silence

        Raises:
            TranscriptionConfigError: If no API key is configured
            ValueError: If no audio was provided
            TranscriptionError: If the audio exceeds the size limit (413)
                or the endpoint returns an error
        """
        if not self.settings.api_key:
            logger.error("Transcription API key not configured")
            raise TranscriptionConfigError("OpenAI API key not configured")

        if not audio:
            raise ValueError("No audio file provided")

        size_kb = round(len(audio) / 1024)
        logger.info("Processing voice segment", transcript_id=transcript_id, size_kb=size_kb)

        if len(audio) > self.settings.max_audio_bytes:
            logger.warning("Rejecting oversized segment", transcript_id=transcript_id, size_kb=size_kb)
            raise TranscriptionError(
                f"Audio file too large: {len(audio)} bytes",
                status_code=413
            )

        # Very small segments are usually just noise
        if len(audio) < self.settings.min_audio_bytes:
            logger.info("Skipping tiny segment", transcript_id=transcript_id, size_kb=size_kb)
            return ""

        start = time.monotonic()
        try:
            response = await self._post(audio, filename or "voice-segment.webm")
        except httpx.HTTPError as e:
            raise TranscriptionError(f"Transcription request failed: {e}") from e

        elapsed_ms = round((time.monotonic() - start) * 1000)

        if response.is_error:
            logger.error(
                "Transcription failed",
                transcript_id=transcript_id,
                status=response.status_code,
                elapsed_ms=elapsed_ms
            )
            raise TranscriptionError(
                f"OpenAI API error: {response.status_code} - {response.text}",
                status_code=response.status_code
            )

        try:
            payload = response.json()
        except ValueError as e:
            raise TranscriptionError(f"Invalid transcription response: {e}") from e

        text = payload.get("text") if isinstance(payload, dict) else None
        text = clean_transcribed_text(text or "")
        if text:
            logger.info("Transcription succeeded", transcript_id=transcript_id, elapsed_ms=elapsed_ms, text=text)
        else:
            logger.warning("Empty transcription, likely silence", transcript_id=transcript_id, elapsed_ms=elapsed_ms)
        return text
