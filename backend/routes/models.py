"""Pydantic request/response models for API endpoints."""

from pydantic import BaseModel

from sanctuary.models import SessionState


class ChatBody(BaseModel):
    message: str


class MoveBody(BaseModel):
    landmark: str


class JourneyView(BaseModel):
    journey_id: str
    is_active: bool
    busy: bool
    state: SessionState
