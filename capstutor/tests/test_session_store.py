"""
Unit tests for the in-memory session store and idle-expiry sweep.

Tests store operations without any network calls.
"""
import asyncio
from datetime import datetime, timedelta, timezone

import pytest

from capstutor.services.session_store import InMemorySessionStore


@pytest.mark.asyncio
async def test_session_created_lazily(store):
    """First get creates a fresh session."""
    assert "u1" not in store
    session = await store.get("u1")
    assert session.user_id == "u1"
    assert not session.welcome_sent
    assert "u1" in store


@pytest.mark.asyncio
async def test_update_merges_patch(store):
    await store.update("u1", {"subject": "Mathematics"})
    session = await store.update("u1", {"grade": "11"})
    assert session.subject == "Mathematics"
    assert session.grade == "11"


@pytest.mark.asyncio
async def test_get_returns_snapshot(store):
    """Mutating a snapshot does not touch the stored session."""
    snap = await store.get("u1")
    snap.subject = "History"
    fresh = await store.get("u1")
    assert fresh.subject is None


@pytest.mark.asyncio
async def test_append_history(store):
    await store.append_history("u1", "user", "hello")
    await store.append_history("u1", "assistant", "hi there")
    session = await store.get("u1")
    assert [h.role for h in session.history] == ["user", "assistant"]


@pytest.mark.asyncio
async def test_evict_expired_removes_idle_sessions(store):
    await store.get("idle")
    await store.get("active")
    future = datetime.now(timezone.utc) + timedelta(seconds=store.idle_seconds + 5)

    # Touch "active" as if it were used just before the sweep
    store._sessions["active"].updated_at = future

    evicted = store.evict_expired(now=future)
    assert evicted == 1
    assert "idle" not in store
    assert "active" in store


@pytest.mark.asyncio
async def test_expired_session_replaced_with_fresh_one():
    """A turn racing with expiry just gets a new session."""
    store = InMemorySessionStore(idle_seconds=0)
    await store.update("u1", {"welcome_sent": True})
    store._sessions["u1"].updated_at -= timedelta(seconds=5)
    session = await store.get("u1")
    assert not session.welcome_sent


def test_turn_lock_is_per_user(store):
    assert store.turn_lock("a") is store.turn_lock("a")
    assert store.turn_lock("a") is not store.turn_lock("b")


@pytest.mark.asyncio
async def test_turn_lock_serializes_turns(store):
    """Second turn for the same user waits for the first."""
    order = []

    async def turn(tag: str):
        async with store.turn_lock("u1"):
            order.append(f"{tag}-start")
            await asyncio.sleep(0.01)
            order.append(f"{tag}-end")

    await asyncio.gather(turn("a"), turn("b"))
    assert order == ["a-start", "a-end", "b-start", "b-end"]


@pytest.mark.asyncio
async def test_sweeper_start_and_stop(store):
    task = store.start_sweeper()
    assert not task.done()
    store.stop_sweeper()
    await asyncio.sleep(0.01)
    assert task.cancelled() or task.done()
    assert store._sweeper is None
