"""
Turn router: the chat webhook's single entry point.

POST /turn → runs one turn through the Brain and returns
{response, expectation, metadata}. Always 200 for a valid body: degraded
turns carry error / is_fallback in metadata instead of failing.
"""
import logging

from fastapi import APIRouter, Depends, Request
from slowapi import Limiter
from slowapi.util import get_remote_address

from capstutor import config
from capstutor.models.turn import InboundTurn, OutboundTurn
from capstutor.services.brain import Brain
from capstutor.services.session_store import InMemorySessionStore

limiter = Limiter(key_func=get_remote_address)

router = APIRouter(tags=["turn"])
logger = logging.getLogger(__name__)

_store: InMemorySessionStore | None = None
_brain: Brain | None = None


def get_store() -> InMemorySessionStore:
    global _store
    if _store is None:
        _store = InMemorySessionStore()
    return _store


def get_brain() -> Brain:
    global _brain
    if _brain is None:
        _brain = Brain(get_store())
    return _brain


@router.post("/turn", response_model=OutboundTurn)
@limiter.limit(config.TURN_RATE_LIMIT)
async def handle_turn(
    request: Request,
    turn: InboundTurn,
    brain: Brain = Depends(get_brain),
) -> OutboundTurn:
    """Classify, route and answer one inbound chat message."""
    logger.info(f"Turn from {turn.user_id} (image={bool(turn.image_url)})")
    response = await brain.handle_turn(turn)
    return response.to_outbound()
