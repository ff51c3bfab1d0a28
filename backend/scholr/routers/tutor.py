from __future__ import annotations

import uuid
from typing import Dict, List, Optional

from fastapi import APIRouter, BackgroundTasks, Depends, HTTPException, Request
from fastapi.responses import StreamingResponse
from pydantic import BaseModel

from ..content import ContentService
from ..schemas import ChatMessage
from ..tutor import TutorSession
from .notes import get_content


router = APIRouter(prefix="/tutor", tags=["tutor"])


class StartRequest(BaseModel):
    # Omit to pick up text handed over from the notes view, if any
    initial_query: Optional[str] = None


class SessionResponse(BaseModel):
    session_id: str
    messages: List[ChatMessage]


class MessageRequest(BaseModel):
    text: str


def _sessions(request: Request) -> Dict[str, TutorSession]:
    return request.app.state.tutor_sessions


def _get_session(request: Request, session_id: str) -> TutorSession:
    sessions = _sessions(request)
    session = sessions.pop(session_id, None)
    if session is None:
        raise HTTPException(status_code=404, detail="Tutor session not found")
    # Re-insert so the map stays ordered least recently used first
    sessions[session_id] = session
    return session


def _evict_idle(sessions: Dict[str, TutorSession], limit: int) -> None:
    """Drop the least recently used idle sessions until one more fits under ``limit``."""
    for session_id in [sid for sid, s in sessions.items() if not s.busy]:
        if len(sessions) < limit:
            break
        del sessions[session_id]


@router.post("/sessions", response_model=SessionResponse, status_code=201)
async def start_session(req: StartRequest, request: Request, content: ContentService = Depends(get_content)):
    initial_query = req.initial_query or request.app.state.navigation.consume_tutor_query()
    session_id = uuid.uuid4().hex
    session = TutorSession(content.get_tutor_chat(), initial_query=initial_query)
    sessions = _sessions(request)
    _evict_idle(sessions, request.app.state.config.tutor_max_sessions)
    sessions[session_id] = session
    return SessionResponse(session_id=session_id, messages=session.messages)


@router.get("/sessions/{session_id}", response_model=SessionResponse)
async def get_session(session_id: str, request: Request):
    session = _get_session(request, session_id)
    return SessionResponse(session_id=session_id, messages=session.messages)


@router.post("/sessions/{session_id}/messages")
async def send_message(session_id: str, req: MessageRequest, request: Request, background_tasks: BackgroundTasks):
    session = _get_session(request, session_id)
    # Claim the turn before streaming so a concurrent send is rejected with 409
    if not session.begin_turn(req.text):
        raise HTTPException(status_code=400, detail="text is required")
    # Frees the slot if the body is never streamed, e.g. the client left first
    background_tasks.add_task(session.abort_turn, session.turn)
    return StreamingResponse(session.stream_turn(req.text), media_type="text/plain; charset=utf-8")


@router.delete("/sessions/{session_id}")
async def end_session(session_id: str, request: Request):
    _sessions(request).pop(session_id, None)
    return {"ok": True}
