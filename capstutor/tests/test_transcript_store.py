"""Unit tests for the best-effort audit trail - asyncpg pool mocked."""
from unittest.mock import AsyncMock, MagicMock, patch

import pytest

from capstutor.services import transcript_store


def _mock_pool():
    conn = MagicMock()
    conn.execute = AsyncMock()
    acquire = MagicMock()
    acquire.__aenter__ = AsyncMock(return_value=conn)
    acquire.__aexit__ = AsyncMock(return_value=False)
    pool = MagicMock()
    pool.acquire = MagicMock(return_value=acquire)
    return pool, conn


@pytest.mark.asyncio
async def test_disabled_without_database_url():
    with patch.object(transcript_store.config, "DATABASE_URL", ""), \
         patch.object(transcript_store, "get_pool", new=AsyncMock()) as get_pool:
        await transcript_store.save_turn("u1", "student", "hi")
        await transcript_store.log_routing_decision("u1", "conversation_agent", "practice_agent", "practice_request", 0.9, 12)
    get_pool.assert_not_called()


@pytest.mark.asyncio
async def test_routing_decision_inserted():
    pool, conn = _mock_pool()
    with patch.object(transcript_store.config, "DATABASE_URL", "postgresql://test"), \
         patch.object(transcript_store, "get_pool", new=AsyncMock(return_value=pool)):
        await transcript_store.log_routing_decision(
            "u1", "conversation_agent", "practice_agent", "practice_request", 0.9, 12,
            message_excerpt="algebra practice",
        )
    sql, *params = conn.execute.call_args.args
    assert "INSERT INTO routing_decisions" in sql
    assert params[:3] == ["u1", "conversation_agent", "practice_agent"]


@pytest.mark.asyncio
async def test_database_failure_is_swallowed():
    """Audit must never break a turn."""
    with patch.object(transcript_store.config, "DATABASE_URL", "postgresql://test"), \
         patch.object(transcript_store, "get_pool", new=AsyncMock(side_effect=OSError("connection refused"))):
        await transcript_store.save_turn("u1", "practice_agent", "Solve 2x = 8")
        await transcript_store.log_routing_decision("u1", "a", "b", "greeting", 0.95, 3)
