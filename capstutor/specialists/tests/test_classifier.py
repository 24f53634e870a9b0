"""Unit tests for intent classifier - all API calls mocked."""
import json
from unittest.mock import AsyncMock, MagicMock

import pytest

from capstutor.models.intent import IntentCategory
from capstutor.models.session_state import Question, Session
from capstutor.specialists.classifier import classify_intent, extract_grade, keyword_intent


def _make_anthropic_response(text: str) -> MagicMock:
    """Create a mock Anthropic API response."""
    content = MagicMock()
    content.text = text
    response = MagicMock()
    response.content = [content]
    return response


def _client_returning(payload: dict) -> AsyncMock:
    client = AsyncMock()
    client.messages.create = AsyncMock(return_value=_make_anthropic_response(json.dumps(payload)))
    return client


def _failing_client() -> AsyncMock:
    client = AsyncMock()
    client.messages.create = AsyncMock(side_effect=Exception("API error"))
    return client


@pytest.mark.asyncio
@pytest.mark.parametrize("message", ["hi", "Hello", "  HEY  ", "greetings"])
async def test_greeting_fast_path_skips_llm(message):
    """Whole-message greetings never reach the model."""
    client = _failing_client()
    intent = await classify_intent(message, Session(user_id="u1"), client=client)
    assert intent.category == IntentCategory.GREETING
    assert intent.confidence >= 0.9
    client.messages.create.assert_not_called()


@pytest.mark.asyncio
async def test_greeting_inside_sentence_is_not_fast_pathed():
    client = _client_returning({"category": "practice_request", "confidence": 0.8})
    intent = await classify_intent("hi can I get algebra practice", Session(user_id="u1"), client=client)
    client.messages.create.assert_called_once()
    assert intent.category == IntentCategory.PRACTICE_REQUEST


@pytest.mark.asyncio
async def test_returning_greeting_stage():
    session = Session(user_id="u1", welcome_sent=True)
    intent = await classify_intent("hi", session, client=_failing_client())
    assert intent.conversation_stage == "returning_greeting"


def test_extract_grade():
    assert extract_grade("I'm in grade 11") == "11"
    assert extract_grade("Grade12 maths") == "12"
    assert extract_grade("no grade here") is None


@pytest.mark.asyncio
async def test_llm_json_parsed_into_intent():
    client = _client_returning({
        "category": "exam_preparation",
        "subject": "maths",
        "grade": "12",
        "topic": "trigonometry",
        "confidence": 0.85,
        "conversation_stage": "problem_solving",
    })
    intent = await classify_intent("help me get ready for my trig exam", Session(user_id="u1"), client=client)
    assert intent.category == IntentCategory.EXAM_PREPARATION
    assert intent.subject == "Mathematics"
    assert intent.grade == "12"
    assert intent.topic == "Trigonometry"
    assert intent.confidence == 0.85

    kwargs = client.messages.create.call_args.kwargs
    assert kwargs["temperature"] == 0.1


@pytest.mark.asyncio
async def test_message_grade_beats_unknown_llm_grade():
    client = _client_returning({
        "category": "practice_request", "subject": "unknown", "grade": "unknown",
        "topic": "unknown", "confidence": 0.6,
    })
    intent = await classify_intent("grade 10 functions please", Session(user_id="u1"), client=client)
    assert intent.grade == "10"
    assert intent.topic == "Functions"


@pytest.mark.asyncio
async def test_message_grade_beats_conflicting_llm_grade():
    client = _client_returning({"category": "practice_request", "grade": "9", "confidence": 0.6})
    intent = await classify_intent("grade 11 algebra practice", Session(user_id="u1", grade="10"), client=client)
    assert intent.grade == "11"


@pytest.mark.asyncio
async def test_session_subject_not_overridden_by_unknown():
    client = _client_returning({"category": "practice_request", "subject": "unknown", "grade": "unknown", "confidence": 0.7})
    session = Session(user_id="u1", subject="Physical Sciences", grade="11")
    intent = await classify_intent("give me something to work on", session, client=client)
    assert intent.subject == "Physical Sciences"
    assert intent.grade == "11"


@pytest.mark.asyncio
async def test_api_failure_uses_keyword_fallback():
    """Classification never raises; fallback confidence is 0.7."""
    intent = await classify_intent("grade 11 algebra practice", Session(user_id="u1"), client=_failing_client())
    assert intent.category == IntentCategory.PRACTICE_REQUEST
    assert intent.grade == "11"
    assert intent.topic == "Algebra"
    assert intent.confidence == 0.7


@pytest.mark.asyncio
async def test_malformed_json_uses_keyword_fallback():
    client = AsyncMock()
    client.messages.create = AsyncMock(return_value=_make_anthropic_response("Sure! {category: exam"))
    intent = await classify_intent("I have an exam on Friday", Session(user_id="u1"), client=client)
    assert intent.category == IntentCategory.EXAM_PREPARATION
    assert intent.confidence == 0.7


@pytest.mark.asyncio
async def test_out_of_schema_category_uses_keyword_fallback():
    client = _client_returning({"category": "small_talk", "confidence": 0.9})
    intent = await classify_intent("explain photosynthesis", Session(user_id="u1"), client=client)
    assert intent.category == IntentCategory.CONCEPT_EXPLANATION
    assert intent.confidence == 0.7


@pytest.mark.parametrize("message,category", [
    ("can you solve this for me", IntentCategory.HOMEWORK_HELP),
    ("I want a practice question", IntentCategory.PRACTICE_REQUEST),
    ("past paper please", IntentCategory.EXAM_PREPARATION),
    ("what is a function", IntentCategory.CONCEPT_EXPLANATION),
    ("hey there how are you", IntentCategory.GREETING),
    ("the weather is nice", IntentCategory.GENERAL_QUESTION),
])
def test_keyword_intent_categories(message, category):
    intent = keyword_intent(message, Session(user_id="u1"), None)
    assert intent.category == category
    assert intent.confidence == 0.7


@pytest.mark.asyncio
async def test_follow_up_stays_with_practice_agent():
    """Short follow-ups keep the practice flow without an LLM call."""
    question = Question(id="q1", text="Solve 2x = 4", topic="Algebra", kind="practice")
    session = Session(
        user_id="u1", current_agent="practice_agent", practice_topic="Algebra", active_question=question,
    )
    client = _failing_client()
    intent = await classify_intent("hint please", session, client=client)
    assert intent.category == IntentCategory.PRACTICE_REQUEST
    client.messages.create.assert_not_called()


@pytest.mark.asyncio
async def test_follow_up_stays_with_active_exam_flow():
    from capstutor.models.session_state import ExamFlowState

    flow = ExamFlowState(active=True, subject="Mathematics", grade="12", focus_topic="Algebra")
    session = Session(user_id="u1", current_agent="exam_agent", exam_flow=flow)
    intent = await classify_intent("memo", session, client=_failing_client())
    assert intent.category == IntentCategory.EXAM_PREPARATION


@pytest.mark.asyncio
async def test_follow_up_word_without_flow_goes_to_model():
    client = _client_returning({"category": "practice_request", "confidence": 0.9})
    await classify_intent("more", Session(user_id="u1"), client=client)
    client.messages.create.assert_called_once()
