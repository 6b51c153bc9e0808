"""
Listening Practice Router

This module exposes the listening comprehension session:
- Loading prayer exercises (generated, or built-in when generation fails)
- Playing the prayer through speech synthesis at a chosen speed
- Selecting and checking multiple-choice answers against the answer key
- Navigation and accuracy statistics

Correctness is decided locally; no network call is involved in checking an answer.
"""

from __future__ import annotations
from typing import Optional

from fastapi import APIRouter, Depends, HTTPException, Request
from pydantic import BaseModel, Field

from ..engine import ListeningSession
from ..schemas import SessionState
from .common import StartRequest, event_stream, get_listening_session, start_session

router = APIRouter(prefix="/listening", tags=["listening"])


# ============================================================================
# REQUEST MODELS
# ============================================================================

class PlayRequest(BaseModel):
    """
    Optional playback speed; must be one of the offered speed options.
    """
    speed: Optional[float] = None


class ChoiceRequest(BaseModel):
    """
    A learner's answer choice.

    Attributes:
        choice_index: Index of the selected answer; omitted on submit to use the current selection
    """
    choice_index: Optional[int] = Field(default=None, ge=0)


# ============================================================================
# API ENDPOINTS
# ============================================================================

@router.post("/start", response_model=SessionState)
async def start(req: StartRequest, session: ListeningSession = Depends(get_listening_session)):
    return await start_session(session, req)


@router.get("/state", response_model=SessionState)
async def state(session: ListeningSession = Depends(get_listening_session)):
    return session.state


@router.post("/play", response_model=SessionState)
async def play(req: Optional[PlayRequest] = None, session: ListeningSession = Depends(get_listening_session)):
    """
    Play the current prayer. Falls back to on-device speech when synthesis fails.

    Raises:
        HTTPException: 400 if the requested speed is not offered
    """
    try:
        return await session.play_current(speed=req.speed if req else None)
    except ValueError as e:
        raise HTTPException(status_code=400, detail=str(e))


@router.post("/stop", response_model=SessionState)
async def stop(session: ListeningSession = Depends(get_listening_session)):
    return await session.stop_playback()


@router.post("/select", response_model=SessionState)
async def select(req: ChoiceRequest, session: ListeningSession = Depends(get_listening_session)):
    if req.choice_index is None:
        raise HTTPException(status_code=400, detail="choice_index is required")
    try:
        return session.select_answer(req.choice_index)
    except ValueError as e:
        raise HTTPException(status_code=400, detail=str(e))


@router.post("/answer", response_model=SessionState)
async def answer(req: ChoiceRequest, session: ListeningSession = Depends(get_listening_session)):
    """
    Check an answer and log the attempt. Submitting again for the same attempt is a no-op.

    Raises:
        HTTPException: 400 if no answer is selected or the index is out of range
    """
    try:
        return session.submit_answer(req.choice_index)
    except ValueError as e:
        raise HTTPException(status_code=400, detail=str(e))


@router.post("/retry", response_model=SessionState)
async def retry(session: ListeningSession = Depends(get_listening_session)):
    return session.retry()


@router.post("/next", response_model=SessionState)
async def next_exercise(session: ListeningSession = Depends(get_listening_session)):
    return await session.next_item()


@router.post("/previous", response_model=SessionState)
async def previous_exercise(session: ListeningSession = Depends(get_listening_session)):
    return await session.previous_item()


@router.get("/stats")
async def stats(session: ListeningSession = Depends(get_listening_session)):
    return session.stats()


@router.get("/events")
async def events(request: Request, session: ListeningSession = Depends(get_listening_session)):
    return event_stream(session, request)
