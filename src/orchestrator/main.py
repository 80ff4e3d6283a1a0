"""Orchestrator - FastAPI Application.

HTTP gateway in front of one chat session:
- Text and voice input
- Session and tool server resets
- Health reporting
"""

import asyncio
import time
from contextlib import asynccontextmanager
from datetime import datetime, timedelta, timezone
from pathlib import Path
from typing import Any, Optional

from fastapi import Depends, FastAPI, File, Form, HTTPException, Request, UploadFile, status
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from fastapi.staticfiles import StaticFiles
from pydantic import BaseModel, Field

from shared.config import Settings, get_settings
from shared.logging import get_logger, setup_logging, turn_context
from mcp_client.client import MCPConnector
from mcp_client.registry import ToolRegistry
from orchestrator.backend import FunctionInvokingBackend
from orchestrator.llm import BackendError, create_llm_provider
from orchestrator.session import SessionOrchestrator
from orchestrator.transcription import (
    TranscriptionConfigError,
    TranscriptionError,
    WhisperService,
)

logger = get_logger(__name__)

VERSION = "1.0.1"


# Request/Response Models
class NewSessionRequest(BaseModel):
    """Optional body of a new session request."""
    system_prompt: Optional[str] = Field(default=None, description="Instruction for the new session")


class StatusResponse(BaseModel):
    success: bool = True
    message: str


class TurnResponse(BaseModel):
    """Reply to text or voice input."""
    success: bool = True
    requestText: str
    text: str
    transcriptId: str = "0"
    processingTime: float = 0
    timestamp: str


class AgentState:
    """Everything the routes share; one chat session per process."""

    def __init__(
        self,
        orchestrator: SessionOrchestrator,
        whisper: WhisperService
    ) -> None:
        self.orchestrator = orchestrator
        self.whisper = whisper
        # Orchestrator methods must never interleave
        self.lock = asyncio.Lock()


def build_state(settings: Settings) -> AgentState:
    """Wire the orchestrator from configuration."""
    provider = create_llm_provider(settings.llm)
    backend = FunctionInvokingBackend(
        provider,
        max_tool_iterations=settings.orchestrator.max_tool_iterations
    )
    registry = ToolRegistry(MCPConnector(
        connect_timeout=settings.mcp_client.connect_timeout_seconds,
        read_timeout=timedelta(hours=settings.mcp_client.read_timeout_hours)
    ))
    orchestrator = SessionOrchestrator(
        backend=backend,
        registry=registry,
        server_configs=settings.mcp_servers,
        system_prompt=settings.orchestrator.system_prompt,
        idle_reconnect=timedelta(minutes=settings.orchestrator.idle_reconnect_minutes)
    )
    return AgentState(orchestrator, WhisperService(settings.whisper))


def _timestamp() -> str:
    return datetime.now(timezone.utc).isoformat()


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Application lifespan handler."""
    settings: Settings = app.state.settings or get_settings()
    app.state.settings = settings
    setup_logging(settings.log_level, json_output=settings.environment == "production")

    logger.info(
        "Starting MCP agent",
        version=VERSION,
        provider=settings.llm.provider,
        servers=[s.name for s in settings.mcp_servers]
    )
    state = build_state(settings)
    app.state.agent = state

    yield

    logger.info("Shutting down MCP agent")
    await state.orchestrator.registry.reset()
    await state.whisper.close()


def get_agent(request: Request) -> AgentState:
    """Dependency returning the shared agent state."""
    agent: Optional[AgentState] = getattr(request.app.state, "agent", None)
    if agent is None:
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail="Agent not initialized"
        )
    return agent


async def run_turn(agent: AgentState, text: str, transcript_id: str = "0") -> str:
    """Send one message under the session lock."""
    async with agent.lock:
        with turn_context(transcript_id=transcript_id):
            return await agent.orchestrator.send(text)


def create_app(settings: Optional[Settings] = None) -> FastAPI:
    """Create the FastAPI application."""
    app = FastAPI(
        title="MCP Agent",
        description="Chat gateway for MCP tool servers",
        version=VERSION,
        lifespan=lifespan
    )
    app.state.settings = settings

    app.add_middleware(
        CORSMiddleware,
        allow_origins=["*"],
        allow_methods=["*"],
        allow_headers=["*"],
    )

    @app.get("/health", tags=["System"])
    async def health_check(agent: AgentState = Depends(get_agent)) -> dict[str, Any]:
        """Health check endpoint."""
        return {
            "status": "ok",
            "timestamp": _timestamp(),
            **agent.orchestrator.stats(),
        }

    @app.post("/newsession", response_model=StatusResponse, tags=["Session"])
    async def new_session(
        body: Optional[NewSessionRequest] = None,
        agent: AgentState = Depends(get_agent)
    ):
        """Start a new conversation."""
        async with agent.lock:
            agent.orchestrator.new_session(body.system_prompt if body else None)
        return StatusResponse(message="Chat client reinitialized")

    @app.post("/reinit", response_model=StatusResponse, tags=["Session"])
    async def reinit(agent: AgentState = Depends(get_agent)):
        """Reconnect all MCP tool servers."""
        async with agent.lock:
            await agent.orchestrator.reconnect_tools()
        return StatusResponse(message="MCP clients reinitialized")

    @app.post("/process", response_model=TurnResponse, tags=["Chat"])
    async def process(request: Request, agent: AgentState = Depends(get_agent)):
        """Process a plain text message sent as the request body."""
        message = (await request.body()).decode("utf-8")
        start = time.monotonic()

        try:
            reply = await run_turn(agent, message)
        except BackendError as e:
            logger.error("Chat processing failed", error=str(e))
            raise HTTPException(
                status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
                detail=f"Failed to process message: {e}"
            )

        return TurnResponse(
            requestText=message,
            text=reply,
            processingTime=round(time.monotonic() - start, 3),
            timestamp=_timestamp()
        )

    @app.post("/transcribe", response_model=TurnResponse, tags=["Chat"])
    async def transcribe(
        audio: Optional[UploadFile] = File(default=None),
        transcriptId: str = Form(default="unknown"),
        agent: AgentState = Depends(get_agent)
    ):
        """Transcribe a voice segment and answer it."""
        start = time.monotonic()
        try:
            # One byte past the limit is enough to reject the upload
            limit = agent.whisper.settings.max_audio_bytes
            data = await audio.read(limit + 1) if audio else b""
            text = await agent.whisper.transcribe(
                data,
                filename=audio.filename if audio else None,
                transcript_id=transcriptId
            )
            reply = await run_turn(agent, text, transcriptId) if text else ""
        except ValueError as e:
            logger.warning("Validation error", transcript_id=transcriptId, error=str(e))
            return JSONResponse(
                status_code=status.HTTP_400_BAD_REQUEST,
                content={"success": False, "error": str(e)}
            )
        except TranscriptionConfigError as e:
            logger.error("Configuration error", transcript_id=transcriptId, error=str(e))
            raise HTTPException(
                status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
                detail="Server configuration error"
            )
        except (TranscriptionError, BackendError) as e:
            logger.error("Transcription turn failed", transcript_id=transcriptId, error=str(e))
            raise transcription_http_error(e)

        return TurnResponse(
            requestText=text,
            text=reply,
            transcriptId=transcriptId,
            processingTime=round(time.monotonic() - start, 3),
            timestamp=_timestamp()
        )

    static_dir = settings.orchestrator.static_dir if settings else get_settings().orchestrator.static_dir
    if static_dir and Path(static_dir).is_dir():
        app.mount("/", StaticFiles(directory=static_dir, html=True), name="static")

    return app


def transcription_http_error(error: Exception) -> HTTPException:
    """Map an upstream failure to the status the browser client expects."""
    code = getattr(error, "status_code", None)
    message = str(error).lower()

    if code == 413 or "too large" in message:
        return HTTPException(status_code=413, detail="Audio file too large (max 25MB)")
    if code == 401 or "unauthorized" in message:
        return HTTPException(status_code=500, detail="Invalid OpenAI API key")
    if code == 429 or "rate limit" in message:
        return HTTPException(status_code=429, detail="Rate limit exceeded - speaking too fast?")
    return HTTPException(status_code=500, detail=f"Transcription failed: {error}")


app = create_app()


def main():
    """Run the MCP agent server."""
    import uvicorn

    settings = get_settings()

    uvicorn.run(
        "orchestrator.main:app",
        host=settings.orchestrator.host,
        port=settings.orchestrator.port,
        reload=settings.environment == "development"
    )


if __name__ == "__main__":
    main()
