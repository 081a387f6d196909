"""Journey lifecycle + chat turns + message log endpoints."""

from fastapi import APIRouter, HTTPException, Request

from backend.sessions import SessionRegistry
from sanctuary.pipeline import Conversation
from sanctuary.world import UnknownLandmarkError

from .models import ChatBody, JourneyView, MoveBody

router = APIRouter()


def _sessions(request: Request) -> SessionRegistry:
    return request.app.state.sessions


def _conversation(request: Request, journey_id: str) -> Conversation:
    try:
        conversation = _sessions(request).get(journey_id)
    except ValueError:
        conversation = None
    if conversation is None:
        raise HTTPException(404, "Journey not found")
    return conversation


def _view(conversation: Conversation) -> JourneyView:
    return JourneyView(
        journey_id=conversation.journey_id,
        is_active=conversation.is_active,
        busy=conversation.busy,
        state=conversation.state,
    )


@router.get("/journeys")
async def list_journeys(request: Request):
    """List saved journeys, most recent first."""
    return [
        {
            "journey_id": s.journey_id,
            "saved_at": s.saved_at,
            "is_active": s.is_active,
            "message_counter": s.state.message_counter,
            "current_landmark": s.state.current_landmark,
        }
        for s in _sessions(request).journeys.list_journeys()
    ]


@router.post("/journeys")
async def start_journey(request: Request):
    """Begin a new journey at the starting landmark. Ends any active one."""
    return _view(_sessions(request).start())


@router.post("/journeys/resume")
async def resume_journey(request: Request):
    """Resume the latest active journey."""
    conversation = _sessions(request).resume()
    if conversation is None:
        raise HTTPException(404, "No active journey")
    return _view(conversation)


@router.get("/journeys/{journey_id}")
async def get_journey(request: Request, journey_id: str):
    """Current session state of a journey."""
    conversation = _conversation(request, journey_id)
    return _view(conversation)


@router.delete("/journeys/{journey_id}")
async def delete_journey(request: Request, journey_id: str):
    """Delete a journey and its message log."""
    _conversation(request, journey_id)
    _sessions(request).delete(journey_id)
    return {"ok": True}


@router.post("/journeys/{journey_id}/chat")
async def journey_chat(request: Request, journey_id: str, body: ChatBody):
    """Send a player message and run one turn."""
    conversation = _conversation(request, journey_id)
    return await conversation.send(body.message)


@router.post("/journeys/{journey_id}/move")
async def move(request: Request, journey_id: str, body: MoveBody):
    """Move the party to another landmark."""
    conversation = _conversation(request, journey_id)
    try:
        moved = await conversation.move_to(body.landmark)
    except UnknownLandmarkError:
        raise HTTPException(400, f"Unknown landmark: {body.landmark}")
    return {"moved": moved, "current_landmark": conversation.state.current_landmark}


@router.post("/journeys/{journey_id}/reset")
async def reset(request: Request, journey_id: str):
    """Reset the journey to its initial state."""
    conversation = _conversation(request, journey_id)
    await conversation.reset()
    return _view(conversation)


@router.get("/journeys/{journey_id}/messages")
async def get_messages(request: Request, journey_id: str):
    """Message log for a journey: utterances and coordinator decisions."""
    _conversation(request, journey_id)
    return _sessions(request).message_log.get_entries(journey_id)
