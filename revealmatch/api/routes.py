"""HTTP routes for the RevealMatch service."""

from datetime import datetime
from typing import Any, Dict, Optional

from fastapi import APIRouter, Depends, Query
from fastapi.responses import JSONResponse
from pydantic import BaseModel

from revealmatch.api.dependencies import ServiceContainer, get_container, get_current_user_id, verify_cron_secret
from revealmatch.models import ConversationStartOutcome, Match, MatchOutcome, Profile
from revealmatch.utils.database import utcnow
from revealmatch.utils.geo import format_distance
from revealmatch.utils.logging import get_logger

logger = get_logger(__name__)

matches_router = APIRouter(prefix="/matches", tags=["matches"])
chat_router = APIRouter(prefix="/chat", tags=["chat"])
credits_router = APIRouter(prefix="/credits", tags=["credits"])
internal_router = APIRouter(prefix="/internal", tags=["internal"])


class StartConversationRequest(BaseModel):
    match_id: str


class SendMessageRequest(BaseModel):
    conversation_id: str
    content: str


def _match_view(match: Match, candidate: Optional[Profile] = None) -> Dict[str, Any]:
    view: Dict[str, Any] = {
        "id": match.id,
        "compatibility_score": match.compatibility_score,
        "distance_km": match.distance_km,
        "distance": format_distance(match.distance_km),
        "tier": match.tier.value,
        "created_at": match.created_at.isoformat(),
    }
    if candidate is not None:
        # Only what the blurred card shows
        view["candidate"] = {
            "id": candidate.id,
            "first_name": candidate.first_name,
            "photo_path": candidate.photo_path,
            "bio": candidate.bio,
        }
    return view


@matches_router.post("/find")
async def find_match(
    user_id: str = Depends(get_current_user_id),
    services: ServiceContainer = Depends(get_container),
) -> JSONResponse:
    """Find and reserve a match for the caller."""
    result = await services.reservations.find_match(user_id)

    if result.outcome == MatchOutcome.ALREADY_IN_CONVERSATION:
        return JSONResponse(
            status_code=409,
            content={"outcome": result.outcome.value, "message": "You are already in an active conversation"},
        )
    if result.outcome == MatchOutcome.NO_MATCH:
        return JSONResponse(
            status_code=404,
            content={
                "outcome": result.outcome.value,
                "message": "Nobody compatible is available right now. Try again soon!",
            },
        )

    assert result.match is not None
    return JSONResponse(
        content={
            "outcome": result.outcome.value,
            "message": "Match found!",
            "match": _match_view(result.match, result.candidate),
        }
    )


@matches_router.get("/current")
async def current_match(
    user_id: str = Depends(get_current_user_id),
    services: ServiceContainer = Depends(get_container),
) -> JSONResponse:
    match = await services.reservations.get_current_match(user_id)
    return JSONResponse(content={"match": _match_view(match) if match else None})


@chat_router.post("/start")
async def start_conversation(
    body: StartConversationRequest,
    user_id: str = Depends(get_current_user_id),
    services: ServiceContainer = Depends(get_container),
) -> JSONResponse:
    """Start the conversation of the caller's match."""
    result = await services.chat.start_conversation(user_id, body.match_id)

    if result.outcome == ConversationStartOutcome.NO_CREDITS:
        return JSONResponse(
            status_code=402,
            content={
                "outcome": result.outcome.value,
                "message": "Not enough credits to start a conversation",
                "credits_remaining": result.credits_remaining,
            },
        )

    assert result.conversation is not None
    return JSONResponse(
        content={
            "outcome": result.outcome.value,
            "message": "Conversation started!",
            "conversation_id": result.conversation.id,
            "credits_remaining": result.credits_remaining,
        }
    )


@chat_router.post("/send")
async def send_message(
    body: SendMessageRequest,
    user_id: str = Depends(get_current_user_id),
    services: ServiceContainer = Depends(get_container),
) -> JSONResponse:
    """Send a message; each one reveals a little more of the photos."""
    sent = await services.chat.send_message(user_id, body.conversation_id, body.content)
    return JSONResponse(
        content={
            "message": sent.message.model_dump(mode="json"),
            "reveal_progress": sent.conversation.reveal_progress,
            "messages_count": sent.conversation.messages_count,
            "transaction_confirmed": sent.transaction_confirmed,
        }
    )


@chat_router.get("/{conversation_id}/messages")
async def list_messages(
    conversation_id: str,
    before: Optional[datetime] = Query(default=None),
    before_id: Optional[str] = Query(default=None),
    limit: int = Query(default=50, ge=1, le=100),
    user_id: str = Depends(get_current_user_id),
    services: ServiceContainer = Depends(get_container),
) -> JSONResponse:
    """Page backwards through a conversation with the returned `cursor` and `cursor_id`."""
    page = await services.chat.list_messages(user_id, conversation_id, before=before, limit=limit, before_id=before_id)
    return JSONResponse(content=page.model_dump(mode="json"))


@chat_router.post("/{conversation_id}/end")
async def end_conversation(
    conversation_id: str,
    user_id: str = Depends(get_current_user_id),
    services: ServiceContainer = Depends(get_container),
) -> JSONResponse:
    conversation = await services.chat.end_conversation(user_id, conversation_id)
    return JSONResponse(
        content={
            "message": "Conversation ended",
            "conversation_id": conversation.id,
            "reveal_progress": conversation.reveal_progress,
        }
    )


@credits_router.get("")
async def get_credits(
    user_id: str = Depends(get_current_user_id),
    services: ServiceContainer = Depends(get_container),
) -> JSONResponse:
    return JSONResponse(content={"credits": await services.credits.get_balance(user_id)})


@credits_router.get("/history")
async def get_credit_history(
    limit: int = Query(default=50, ge=1, le=200),
    user_id: str = Depends(get_current_user_id),
    services: ServiceContainer = Depends(get_container),
) -> JSONResponse:
    transactions = await services.credits.get_history(user_id, limit=limit)
    return JSONResponse(content={"transactions": [t.model_dump(mode="json") for t in transactions]})


@internal_router.post("/reconcile", dependencies=[Depends(verify_cron_secret)])
async def reconcile(services: ServiceContainer = Depends(get_container)) -> JSONResponse:
    """Free users stuck in a reservation. Called by the scheduler."""
    freed = await services.reconciliation.reconcile()
    logger.info("Cron reconcile finished", users_freed=freed)
    return JSONResponse(content={"success": True, "users_freed": freed, "timestamp": utcnow().isoformat()})
