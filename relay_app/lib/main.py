"""FastAPI application for the live transcript relay."""

import logging
import sys
from contextlib import asynccontextmanager

import uvicorn
from fastapi import FastAPI, Request, WebSocket
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse, PlainTextResponse

from .batch import BatchTranscriber
from .constants import APP_HOST, APP_NAME, APP_PORT, APP_VERSION, REALTIME_PATH
from .livetypes import (
    BatchTranscribeRequest,
    BatchTranscribeResponse,
    ErrorResponse,
    HealthResponse,
    TranscriptionProviderException,
)
from .service import Application
from .utils import (
    check_upstream_env_vars,
    is_persistence_configured,
    is_upstream_configured,
    utc_timestamp,
)

# Configure logging
logging.basicConfig(
    level=logging.INFO,
    format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
    handlers=[logging.StreamHandler(sys.stdout)],
)
logger = logging.getLogger(__name__)

# Application instance
app_service = Application()


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Application lifespan handler."""
    logger.info(
        "Starting Koach Transcription Server",
        extra={
            "version": APP_VERSION,
            "port": APP_PORT,
            "websocket_path": REALTIME_PATH,
        },
    )

    # The relay cannot work without provider credentials
    check_upstream_env_vars()
    if not is_persistence_configured():
        logger.warning(
            "Persistence proxy not configured. Set PROXY_SECRET environment variable."
        )

    yield

    # Shutdown
    logger.info("Shutting down Koach Transcription Server")
    await app_service.shutdown()


# Create FastAPI app
app = FastAPI(
    title="Koach Transcription",
    description="Real-time transcription relay between Koach and AssemblyAI streaming",
    version=APP_VERSION,
    lifespan=lifespan,
)

app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"],
    allow_methods=["GET", "POST", "OPTIONS"],
    allow_headers=["Content-Type"],
)


@app.exception_handler(TranscriptionProviderException)
async def transcription_exception_handler(
    request: Request, exc: TranscriptionProviderException
):
    """Handle transcription provider exceptions."""
    return JSONResponse(
        status_code=exc.retcode,
        content=ErrorResponse(error=str(exc)).model_dump(),
    )


@app.get("/", response_class=PlainTextResponse)
async def root():
    return (
        "Koach Transcription WebSocket Server\n"
        f"Connect to {REALTIME_PATH} for streaming transcription"
    )


@app.get("/health")
@app.get("/api/health")
async def health():
    """Health check endpoint."""
    return HealthResponse(
        status="healthy",
        timestamp=utc_timestamp(),
        service=APP_NAME,
        version=APP_VERSION,
        websocket="enabled",
        upstream_configured=is_upstream_configured(),
        persistence_configured=is_persistence_configured(),
    )


@app.get("/api/v1/status")
async def status():
    """Get current status of the relay."""
    return {
        "active_sessions": app_service.get_active_sessions(),
        "version": APP_VERSION,
        "upstream_configured": is_upstream_configured(),
        "persistence_configured": is_persistence_configured(),
    }


@app.websocket(REALTIME_PATH)
async def realtime(websocket: WebSocket):
    """Client-facing streaming endpoint, one relay session per connection."""
    await websocket.accept()
    await app_service.open_session(websocket)


@app.post("/start-transcription", response_model=BatchTranscribeResponse)
@app.post("/api/start-transcription", response_model=BatchTranscribeResponse)
async def start_transcription(request: BatchTranscribeRequest):
    """Transcribe a pre-recorded file and store it as the recording transcript.

    Args:
        request: Audio URL and session ID

    Returns:
        The provider's transcript ID
    """
    transcriber = BatchTranscriber(
        config=app_service.upstream_config,
        persistence=app_service.persistence,
    )
    try:
        transcript = await transcriber.transcribe(
            audio_url=request.audio_url,
            session_id=request.session_id,
        )
    except TranscriptionProviderException:
        raise
    except Exception as e:
        logger.exception(
            "Batch transcription error",
            exc_info=e,
            extra={"session_id": request.session_id},
        )
        raise TranscriptionProviderException(str(e), retcode=500)

    return BatchTranscribeResponse(success=True, transcript_id=str(transcript.get("id", "")))


if __name__ == "__main__":
    uvicorn.run(app, host=APP_HOST, port=APP_PORT, log_level="info")
