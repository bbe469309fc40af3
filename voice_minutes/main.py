"""
FastAPI app: control surface for recording sessions plus per-speaker audio ingest.

HTTP:
  POST /api/session/start   { "routing_token": optional page title }
  POST /api/session/stop
  GET  /api/session/status
  GET  /health
WebSocket:
  /ws/audio/{speaker_id}    binary PCM frames for that speaker
"""
from __future__ import annotations

import logging
from contextlib import asynccontextmanager
from typing import Optional

from fastapi import FastAPI, HTTPException, WebSocket, WebSocketDisconnect

from voice_minutes.asr import Transcriber, create_transcriber, load_whisper_model
from voice_minutes.audio.source import StreamAudioSource
from voice_minutes.audio.vad import VADProcessor
from voice_minutes.config import Settings, get_settings
from voice_minutes.errors import ConnectFailure
from voice_minutes.logging_setup import configure_logging
from voice_minutes.schemas.session import SessionResponse, StartRequest, StatusResponse
from voice_minutes.services.summarizer import Summarizer
from voice_minutes.session.controller import SessionController
from voice_minutes.session.labels import LabelResolver, StaticLabelResolver
from voice_minutes.session.models import Session
from voice_minutes.transcript.publisher import CompositePublisher, LogPublisher, Publisher
from voice_minutes.transcript.writer import MinutesWriter, minutes_page_title, page_url
from voice_minutes.websocket_manager import AudioIngestManager

logger = logging.getLogger(__name__)


def build_publisher(settings: Settings) -> Publisher:
    summarizer = Summarizer(settings) if settings.SUMMARY_ENABLED else None
    return CompositePublisher([LogPublisher(), MinutesWriter(settings, summarizer=summarizer)])


def _session_response(session: Session, settings: Settings) -> SessionResponse:
    return SessionResponse(
        session_id=session.session_id,
        routing_token=session.routing_token,
        started_at=session.started_at,
        ended_at=session.ended_at,
        page_url=page_url(session.routing_token, settings),
    )


def create_app(
    settings: Settings | None = None,
    transcriber: Optional[Transcriber] = None,
    publisher: Optional[Publisher] = None,
    resolver: Optional[LabelResolver] = None,
) -> FastAPI:
    settings = settings or get_settings()

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        configure_logging(settings)
        engine = transcriber
        if engine is None:
            model = load_whisper_model(settings) if settings.ASR_BACKEND == "local" else None
            engine = create_transcriber(settings, model=model)
        app.state.controller = SessionController(
            engine,
            publisher or build_publisher(settings),
            resolver=resolver or StaticLabelResolver(settings.SPEAKER_NAMES),
            settings=settings,
        )
        app.state.source = None
        yield
        # Shutdown: drain whatever is still recording
        await app.state.controller.stop()
        app.state.source = None

    app = FastAPI(
        title="Voice minutes",
        description="Per-speaker capture and transcription of live voice sessions",
        lifespan=lifespan,
    )

    @app.get("/health")
    async def health() -> dict:
        return {"status": "ok"}

    @app.post("/api/session/start", response_model=SessionResponse)
    async def start_session(request: StartRequest) -> SessionResponse:
        controller: SessionController = app.state.controller
        if controller.recording:
            raise HTTPException(status_code=409, detail="Already recording; stop the current session first")
        if controller.stopping:
            raise HTTPException(status_code=409, detail="Previous session is still finishing")
        token = (request.routing_token or "").strip() or minutes_page_title(prefix=settings.MINUTES_TITLE_PREFIX)
        source = StreamAudioSource(vad=VADProcessor(settings=settings))
        try:
            session = await controller.start(source, token)
        except ConnectFailure as e:
            raise HTTPException(status_code=503, detail=f"Could not attach to audio source: {e}")
        except RuntimeError as e:
            raise HTTPException(status_code=409, detail=str(e))
        app.state.source = source
        return _session_response(session, settings)

    @app.post("/api/session/stop", response_model=SessionResponse)
    async def stop_session() -> SessionResponse:
        controller: SessionController = app.state.controller
        if not controller.recording:
            raise HTTPException(status_code=409, detail="Not recording")
        source = app.state.source
        session = await controller.stop()
        if app.state.source is source:
            app.state.source = None
        if session is None:
            raise HTTPException(status_code=409, detail="Not recording")
        return _session_response(session, settings)

    @app.get("/api/session/status", response_model=StatusResponse)
    async def session_status() -> StatusResponse:
        return StatusResponse(**app.state.controller.status())

    @app.websocket("/ws/audio/{speaker_id}")
    async def audio_feed(websocket: WebSocket, speaker_id: str) -> None:
        await websocket.accept()
        manager = AudioIngestManager(websocket, speaker_id, lambda: app.state.source)
        try:
            await manager.run()
        except WebSocketDisconnect:
            pass

    return app


app = create_app()
