"""
HTTP surface over a single AnalysisSession.

Run with: uvicorn --factory uci_supervisor.api:create_app
"""
from __future__ import annotations

import os
from contextlib import asynccontextmanager
from typing import Any, AsyncIterator, Dict, List, Optional

import chess
from fastapi import FastAPI, HTTPException, Request
from fastapi.middleware.cors import CORSMiddleware
from pydantic import BaseModel, Field

from .config import EngineConfig
from .errors import EngineError, RetriesExhausted
from .models import AnalysisRequest
from .session import AnalysisSession


class AnalyzeRequest(BaseModel):
    fen: str = Field(..., min_length=1)
    depth: Optional[int] = Field(None, ge=1, le=60)
    multipv: Optional[int] = Field(None, ge=1, le=10)
    min_time_ms: Optional[int] = Field(None, ge=1, le=600_000)


class LinePayload(BaseModel):
    multipv: int
    moves: List[str]
    evaluation: str
    score_cp: Optional[int] = None
    mate: Optional[int] = None
    wdl: Optional[Dict[str, int]] = None
    depth: Optional[int] = None


class AnalyzeResponse(BaseModel):
    fen: str
    best_move: Optional[str] = None
    evaluation: str
    score_cp: Optional[int] = None
    mate: Optional[int] = None
    lines: List[LinePayload] = Field(default_factory=list)
    wdl: Optional[Dict[str, int]] = None
    partial: bool = False


class StateResponse(BaseModel):
    state: str
    alive: bool
    engine: Optional[str] = None
    search_pending: bool = False


def _session(request: Request) -> AnalysisSession:
    return request.app.state.session


def create_app(session: Optional[AnalysisSession] = None) -> FastAPI:
    if session is None:
        session = AnalysisSession(EngineConfig.load())

    @asynccontextmanager
    async def lifespan(app: FastAPI) -> AsyncIterator[None]:
        yield
        app.state.session.close()

    app = FastAPI(title="UCI Engine Supervisor API", version="1.0", lifespan=lifespan)
    app.state.session = session

    origins = os.getenv("CORS_ORIGINS", "*")
    origins_list = [origin.strip() for origin in origins.split(",") if origin.strip()]
    app.add_middleware(
        CORSMiddleware,
        allow_origins=origins_list if origins_list else ["*"],
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    @app.get("/health")
    def health() -> Dict[str, str]:
        return {"status": "ok"}

    @app.get("/state", response_model=StateResponse)
    def engine_state(request: Request) -> StateResponse:
        current = _session(request)
        return StateResponse(
            state=current.state.value,
            alive=current.is_alive(),
            engine=current.engine_name,
            search_pending=current.search_pending,
        )

    @app.post("/analyze", response_model=AnalyzeResponse)
    def analyze(payload: AnalyzeRequest, request: Request) -> Dict[str, Any]:
        try:
            chess.Board(payload.fen)
        except ValueError as exc:
            raise HTTPException(status_code=400, detail=f"Invalid FEN: {exc}") from exc

        current = _session(request)
        if payload.depth is not None and payload.min_time_ms is not None:
            raise HTTPException(status_code=400, detail="depth and min_time_ms are mutually exclusive.")
        try:
            analysis_request = AnalysisRequest.from_config(
                payload.fen,
                current.config,
                depth=payload.depth,
                movetime_ms=payload.min_time_ms,
                multipv=payload.multipv,
            )
        except ValueError as exc:
            raise HTTPException(status_code=400, detail=str(exc)) from exc

        try:
            result = current.run_analysis(analysis_request)
        except RetriesExhausted as exc:
            raise HTTPException(status_code=503, detail=str(exc)) from exc
        return result.to_dict()

    @app.post("/restart", response_model=StateResponse)
    def restart(request: Request) -> StateResponse:
        current = _session(request)
        try:
            current.restart()
        except EngineError as exc:
            raise HTTPException(status_code=503, detail=f"Engine restart failed: {exc}") from exc
        return engine_state(request)

    return app
