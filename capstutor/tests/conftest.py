"""
Shared fixtures for the CAPS tutor unit tests.

No network anywhere: the completion service and the Anthropic classifier
client are mocks. By default both fail, which exercises the fallback paths.
"""
from typing import Optional
from unittest.mock import AsyncMock, MagicMock

import pytest

from capstutor.models.intent import Intent, IntentCategory
from capstutor.models.session_state import Session
from capstutor.models.turn import HandoffContext
from capstutor.services.llm import CompletionService, LLMError
from capstutor.services.session_store import InMemorySessionStore
from capstutor.specialists.generators import ContentGenerator


@pytest.fixture
def store():
    return InMemorySessionStore()


@pytest.fixture
def failing_llm():
    """Completion service that is always down."""
    llm = MagicMock(spec=CompletionService)
    llm.complete = AsyncMock(side_effect=LLMError("offline"))
    llm.read_image = AsyncMock(side_effect=LLMError("offline"))
    return llm


@pytest.fixture
def generator(failing_llm):
    return ContentGenerator(failing_llm)


@pytest.fixture
def failing_anthropic():
    """Classifier client whose every call raises."""
    client = AsyncMock()
    client.messages.create = AsyncMock(side_effect=RuntimeError("anthropic down"))
    return client


@pytest.fixture
def make_context():
    """Factory for HandoffContext objects around a session snapshot."""

    def _make(
        session: Session,
        message: str,
        category: IntentCategory = IntentCategory.GENERAL_QUESTION,
        target: str = "conversation_agent",
        subject: Optional[str] = None,
        grade: Optional[str] = None,
        topic: Optional[str] = None,
        image_url: Optional[str] = None,
        user_name: str = "Student",
    ) -> HandoffContext:
        intent = Intent(
            category=category,
            subject=subject or session.subject,
            grade=grade or session.grade,
            topic=topic,
        )
        return HandoffContext(
            user_id=session.user_id,
            message=message,
            session=session,
            intent=intent,
            target_agent=target,
            user_name=user_name,
            image_url=image_url,
            previous_agent=session.current_agent,
        )

    return _make
