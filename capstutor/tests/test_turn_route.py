"""
Unit tests for POST /turn and /health - Brain replaced through dependency override.

Tests the HTTP surface without any network.
"""
from unittest.mock import AsyncMock, MagicMock

import pytest
from httpx import ASGITransport, AsyncClient

from capstutor.main import app, limiter
from capstutor.models.turn import AgentResponse
from capstutor.routers.turn import get_brain


@pytest.fixture
def brain():
    fake = MagicMock()
    fake.handle_turn = AsyncMock(return_value=AgentResponse(
        response="Practice (Algebra – medium)\nSolve 2x = 8",
        expectation="practice_attempt",
        agent_id="practice_agent",
        metadata={"topic": "Algebra"},
    ))
    app.dependency_overrides[get_brain] = lambda: fake
    yield fake
    app.dependency_overrides.pop(get_brain, None)


@pytest.fixture
async def client():
    async with AsyncClient(
        transport=ASGITransport(app=app), base_url="http://test"
    ) as ac:
        yield ac


@pytest.mark.asyncio
async def test_turn_returns_outbound_shape(client, brain):
    resp = await client.post("/turn", json={"user_id": "27820000000", "user_name": "Thabo", "message": "algebra practice"})

    assert resp.status_code == 200
    data = resp.json()
    assert data["response"].startswith("Practice")
    assert data["expectation"] == "practice_attempt"
    assert data["metadata"]["agent_id"] == "practice_agent"
    assert data["metadata"]["routed_by"] == "brain_agent"
    assert data["metadata"]["topic"] == "Algebra"

    turn = brain.handle_turn.call_args.args[0]
    assert turn.user_id == "27820000000"
    assert turn.image_url is None


@pytest.mark.asyncio
async def test_turn_degraded_reply_is_still_200(client, brain):
    brain.handle_turn.return_value = AgentResponse(
        response="I'm having trouble connecting you with the right tutor.",
        expectation="question",
        agent_id="brain_agent",
        error=True,
    )
    resp = await client.post("/turn", json={"user_id": "u1", "message": "hello"})
    assert resp.status_code == 200
    assert resp.json()["metadata"]["error"] is True


@pytest.mark.asyncio
async def test_turn_requires_user_id(client, brain):
    resp = await client.post("/turn", json={"message": "hello"})
    assert resp.status_code == 422
    brain.handle_turn.assert_not_called()


@pytest.mark.asyncio
async def test_health(client):
    resp = await client.get("/health")
    assert resp.status_code == 200
    assert resp.json()["status"] == "ok"


def test_rate_limiter_wired_to_app_state():
    """slowapi limiter must sit on app.state for the 429 handler."""
    assert app.state.limiter is limiter
