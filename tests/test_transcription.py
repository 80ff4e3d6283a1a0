"""Tests for the speech-to-text gateway."""

import httpx
import pytest

from shared.config import WhisperSettings


AUDIO = b"\x1aE\xdf\xa3" + b"\x00" * 4096


def whisper(handler, **overrides):
    from orchestrator.transcription import WhisperService

    settings = WhisperSettings(api_key="sk-test", **overrides)
    return WhisperService(settings, transport=httpx.MockTransport(handler))


class TestCleanTranscribedText:
    """Tests for transcript cleanup."""

    def test_removes_watermarks(self):
        from orchestrator.transcription import clean_transcribed_text

        assert clean_transcribed_text("Turn on the lights. Transcribed by https://otter.ai") == "Turn on the lights."
        assert clean_transcribed_text("OTTER.AI hello") == "hello"

    def test_collapses_whitespace(self):
        from orchestrator.transcription import clean_transcribed_text

        assert clean_transcribed_text("  what   is\n the\ttime ") == "what is the time"


class TestWhisperService:
    """Tests for WhisperService."""

    @pytest.mark.asyncio
    async def test_transcribe_posts_multipart(self):
        """Test a successful transcription."""
        seen = {}

        def handler(request: httpx.Request) -> httpx.Response:
            seen["url"] = str(request.url)
            seen["auth"] = request.headers["Authorization"]
            seen["body"] = request.read()
            return httpx.Response(200, json={"text": "  What's the weather?  "})

        service = whisper(handler)
        text = await service.transcribe(AUDIO, filename="segment.webm", transcript_id="t1")
        await service.close()

        assert text == "What's the weather?"
        assert seen["url"] == "https://api.openai.com/v1/audio/transcriptions"
        assert seen["auth"] == "Bearer sk-test"
        assert b'name="model"' in seen["body"]
        assert b"whisper-1" in seen["body"]
        assert b'filename="segment.webm"' in seen["body"]

    @pytest.mark.asyncio
    async def test_tiny_segments_are_skipped(self):
        """Test that noise-sized segments never reach the endpoint."""
        def handler(request):
            raise AssertionError("endpoint should not be called")

        service = whisper(handler)

        assert await service.transcribe(b"\x00" * 100) == ""

    @pytest.mark.asyncio
    async def test_oversized_audio_is_rejected(self):
        """Test that audio past the upload limit never reaches the endpoint."""
        from orchestrator.transcription import TranscriptionError

        def handler(request):
            raise AssertionError("endpoint should not be called")

        service = whisper(handler, max_audio_bytes=len(AUDIO) - 1)

        with pytest.raises(TranscriptionError) as exc_info:
            await service.transcribe(AUDIO)

        assert exc_info.value.status_code == 413

    def test_default_upload_limit(self):
        """Test the 25MB default limit."""
        assert WhisperSettings().max_audio_bytes == 25 * 1024 * 1024

    @pytest.mark.asyncio
    async def test_missing_api_key(self):
        """Test that an unconfigured gateway refuses to run."""
        from orchestrator.transcription import TranscriptionConfigError, WhisperService

        service = WhisperService(WhisperSettings(api_key=None))

        with pytest.raises(TranscriptionConfigError):
            await service.transcribe(AUDIO)

    @pytest.mark.asyncio
    async def test_empty_audio(self):
        """Test that missing audio is a validation error."""
        service = whisper(lambda request: httpx.Response(200, json={}))

        with pytest.raises(ValueError, match="No audio"):
            await service.transcribe(b"")

    @pytest.mark.asyncio
    async def test_upstream_error_keeps_status(self):
        """Test that endpoint errors carry their status code."""
        from orchestrator.transcription import TranscriptionError

        service = whisper(lambda request: httpx.Response(429, text="rate limit"))

        with pytest.raises(TranscriptionError) as exc_info:
            await service.transcribe(AUDIO)

        assert exc_info.value.status_code == 429

    @pytest.mark.asyncio
    async def test_transport_errors_are_retried(self):
        """Test one retry on connection failures."""
        attempts = []

        def handler(request):
            attempts.append(request)
            if len(attempts) == 1:
                raise httpx.ConnectError("reset", request=request)
            return httpx.Response(200, json={"text": "hello"})

        service = whisper(handler)

        assert await service.transcribe(AUDIO) == "hello"
        assert len(attempts) == 2
