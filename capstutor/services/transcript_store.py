"""
Audit trail: routing decisions and conversation turns in Postgres.
Best-effort only. Nothing here may break a turn, and every call is a
no-op unless DATABASE_URL is configured.
"""
import logging
from typing import Optional

import asyncpg

from capstutor import config

logger = logging.getLogger(__name__)

_pool: Optional[asyncpg.Pool] = None


def audit_enabled() -> bool:
    return bool(config.DATABASE_URL)


async def get_pool() -> asyncpg.Pool:
    global _pool
    if _pool is None:
        _pool = await asyncpg.create_pool(config.DATABASE_URL)
    return _pool


async def close_pool() -> None:
    global _pool
    if _pool is not None:
        await _pool.close()
        _pool = None


async def log_routing_decision(
    user_id: str,
    from_agent: str,
    to_agent: str,
    category: str,
    confidence: float,
    latency_ms: int,
    routing_error: bool = False,
    message_excerpt: str = "",
) -> None:
    if not audit_enabled():
        return
    try:
        pool = await get_pool()
        async with pool.acquire() as conn:
            await conn.execute(
                "INSERT INTO routing_decisions "
                "(user_id, from_agent, to_agent, category, confidence, latency_ms, routing_error, message_excerpt) "
                "VALUES ($1, $2, $3, $4, $5, $6, $7, $8)",
                user_id, from_agent, to_agent, category, confidence, latency_ms, routing_error, message_excerpt,
            )
    except Exception as e:
        logger.warning(f"routing_decisions insert failed: {e}")


async def save_turn(
    user_id: str,
    speaker: str,
    text: str,
    subject: Optional[str] = None,
    expectation: Optional[str] = None,
) -> None:
    """Save one conversation turn."""
    if not audit_enabled():
        return
    try:
        pool = await get_pool()
        async with pool.acquire() as conn:
            await conn.execute(
                """INSERT INTO conversation_turns
                   (user_id, speaker, text, subject, expectation)
                   VALUES ($1, $2, $3, $4, $5)""",
                user_id, speaker, text, subject, expectation,
            )
    except Exception as e:
        logger.error(f"Failed to save conversation turn: {e}")
