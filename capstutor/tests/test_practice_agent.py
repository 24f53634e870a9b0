"""
Unit tests for the practice agent.

decide() is tested as a pure function; the agent itself runs against the
in-memory store with the completion service mocked.
"""
from unittest.mock import AsyncMock, MagicMock

import pytest

from capstutor.agents.base import ALL_HINTS_GIVEN
from capstutor.agents.practice_agent import (
    AdjustDifficulty,
    AskTopic,
    GenerateDefault,
    NextQuestion,
    NoTopic,
    PracticeAgent,
    QuestionActive,
    RevealHint,
    RevealSolution,
    StartTopic,
    TopicSelected,
    decide,
    practice_state,
)
from capstutor.models.intent import IntentCategory
from capstutor.models.session_state import Question, Session
from capstutor.services.llm import CompletionService
from capstutor.specialists.generators import ContentGenerator, fallback_practice_question

PRACTICE_JSON = {
    "question_text": "Solve for x: 2x - 7 = 9",
    "hint1": "Isolate the x term.",
    "hint2": "Add 7 to both sides.",
    "hint3": "Then divide by 2.",
    "solution": "2x = 16, so x = 8",
}


def _question(qid: str = "q1", solution: str | None = None) -> Question:
    return Question(
        id=qid, text="Solve 2x = 4", topic="Algebra", difficulty="medium",
        subject="Mathematics", grade="11", hints=("h1", "h2", "h3"), solution=solution,
    )


def _active(hint_level: int = 0, difficulty: str = "medium") -> QuestionActive:
    return QuestionActive(topic="Algebra", difficulty=difficulty, question=_question(), hint_level=hint_level)


# ------------------- decide() -------------------

def test_hint_with_active_question():
    assert decide(_active(), "I'm stuck", None, "11") == RevealHint()


def test_hint_without_question_does_not_reveal():
    assert isinstance(decide(TopicSelected("Algebra", "easy"), "hint", None, "11"), GenerateDefault)


def test_hint_beats_difficulty_change():
    assert decide(_active(), "hint, this is too hard", None, "11") == RevealHint()


def test_easier_and_harder_adjust_difficulty():
    assert decide(_active(difficulty="medium"), "easier please", None, "11") == AdjustDifficulty("Algebra", "easy")
    assert decide(TopicSelected("Algebra", "hard"), "harder", None, "11") == AdjustDifficulty("Algebra", "challenge")


def test_difficulty_clamps_at_boundaries():
    assert decide(TopicSelected("Algebra", "easy"), "easier", None, "11") == AdjustDifficulty("Algebra", "easy")
    assert decide(_active(difficulty="challenge"), "harder", None, "11") == AdjustDifficulty("Algebra", "challenge")


def test_difficulty_change_needs_sticky_topic():
    assert decide(NoTopic(), "easier", None, "11") == AskTopic()


def test_new_topic_starts_at_medium():
    assert decide(_active(difficulty="challenge"), "let's do trigonometry", "Trigonometry", "9") == StartTopic("Trigonometry", "medium")


def test_same_topic_is_not_a_topic_change():
    assert isinstance(decide(_active(), "more algebra", "Algebra", "11"), NextQuestion)


def test_solution_request():
    assert decide(_active(), "show me the answer", None, "11") == RevealSolution()


def test_help_with_new_topic_starts_that_topic():
    assert decide(_active(), "help me with trigonometry", "Trigonometry", "11") == StartTopic("Trigonometry", "medium")


def test_topic_change_beats_solution_request():
    assert isinstance(decide(_active(), "solution for a trig question", "Trigonometry", "11"), StartTopic)


def test_more_escalates_one_rung():
    assert decide(_active(difficulty="easy"), "another one", None, "11") == NextQuestion("Algebra", "medium")
    assert decide(TopicSelected("Algebra", "challenge"), "next", None, "11") == NextQuestion("Algebra", "challenge")


def test_no_topic_anywhere_asks():
    assert decide(NoTopic(), "give me practice", None, "11") == AskTopic()


def test_default_uses_grade_difficulty():
    assert decide(NoTopic(), "algebra practice", "Algebra", "11") == GenerateDefault("Algebra", "medium")
    assert decide(NoTopic(), "algebra practice", "Algebra", "9") == GenerateDefault("Algebra", "easy")


def test_practice_state_from_session():
    assert practice_state(Session(user_id="u")) == NoTopic()
    assert practice_state(Session(user_id="u", practice_topic="Algebra", practice_difficulty="hard")) == TopicSelected("Algebra", "hard")
    state = practice_state(Session(user_id="u", practice_topic="Algebra", active_question=_question(), hint_level=2))
    assert isinstance(state, QuestionActive)
    assert state.hint_level == 2


def test_practice_state_ignores_homework_question():
    homework = Question(id="hw", text="Solve", kind="homework")
    assert practice_state(Session(user_id="u", active_question=homework)) == NoTopic()


# ------------------- agent -------------------

def _agent(store, llm) -> PracticeAgent:
    return PracticeAgent(store, ContentGenerator(llm), llm)


def _working_llm() -> MagicMock:
    llm = MagicMock(spec=CompletionService)
    llm.complete = AsyncMock(return_value=PRACTICE_JSON)
    return llm


@pytest.mark.asyncio
async def test_grade_11_algebra_practice_scenario(store, make_context):
    agent = _agent(store, _working_llm())
    session = await store.get("u1")
    context = make_context(session, "grade 11 algebra practice", IntentCategory.PRACTICE_REQUEST, "practice_agent", grade="11")

    response = await agent.process_message("u1", context)

    assert "2x - 7 = 9" in response.response
    assert response.expectation == "practice_attempt"
    saved = await store.get("u1")
    assert saved.practice_topic == "Algebra"
    assert saved.practice_difficulty == "medium"
    assert saved.hint_level == 0
    assert saved.active_question.text == PRACTICE_JSON["question_text"]


@pytest.mark.asyncio
async def test_generator_throwing_still_answers(store, make_context):
    """Content generator raising on every call -> fallback question, is_fallback set."""
    generator = MagicMock(spec=ContentGenerator)
    generator.practice_question = AsyncMock(side_effect=RuntimeError("boom"))
    agent = PracticeAgent(store, generator, MagicMock(spec=CompletionService))
    session = await store.get("u1")
    context = make_context(session, "algebra practice", IntentCategory.PRACTICE_REQUEST, "practice_agent", grade="10")

    response = await agent.process_message("u1", context)

    assert response.response.strip()
    assert response.is_fallback
    assert response.to_outbound().metadata["is_fallback"] is True
    saved = await store.get("u1")
    assert saved.active_question.is_fallback
    assert saved.practice_difficulty == "easy"


@pytest.mark.asyncio
async def test_llm_down_uses_fallback_question(store, make_context, failing_llm):
    agent = _agent(store, failing_llm)
    session = await store.get("u1")
    context = make_context(session, "statistics practice", IntentCategory.PRACTICE_REQUEST, "practice_agent", grade="12")
    response = await agent.process_message("u1", context)
    assert "4, 7, 10, 12, 15, 22" in response.response
    assert response.is_fallback


@pytest.mark.asyncio
async def test_hints_escalate_then_stop(store, make_context):
    llm = _working_llm()
    agent = _agent(store, llm)
    await store.update("u1", {"active_question": _question(), "practice_topic": "Algebra", "practice_difficulty": "medium"})

    replies = []
    for _ in range(5):
        session = await store.get("u1")
        response = await agent.process_message("u1", make_context(session, "hint", IntentCategory.PRACTICE_REQUEST, "practice_agent"))
        replies.append(response.response)

    assert replies[0].startswith("Hint 1/3: h1")
    assert replies[1].startswith("Hint 2/3: h2")
    assert replies[2].startswith("Hint 3/3: h3")
    assert replies[3] == ALL_HINTS_GIVEN
    assert replies[4] == ALL_HINTS_GIVEN
    assert (await store.get("u1")).hint_level == 3
    llm.complete.assert_not_called()


@pytest.mark.asyncio
async def test_new_question_resets_hint_level(store, make_context):
    agent = _agent(store, _working_llm())
    await store.update("u1", {"active_question": _question(), "practice_topic": "Algebra", "practice_difficulty": "medium"})
    await store.update("u1", {"hint_level": 2})

    session = await store.get("u1")
    await agent.process_message("u1", make_context(session, "another", IntentCategory.PRACTICE_REQUEST, "practice_agent"))

    saved = await store.get("u1")
    assert saved.hint_level == 0
    assert saved.practice_difficulty == "hard"
    assert saved.active_question.id != "q1"


@pytest.mark.asyncio
async def test_harder_at_challenge_is_noop(store, make_context):
    agent = _agent(store, _working_llm())
    await store.update("u1", {"practice_topic": "Algebra", "practice_difficulty": "challenge"})
    session = await store.get("u1")
    response = await agent.process_message("u1", make_context(session, "harder", IntentCategory.PRACTICE_REQUEST, "practice_agent"))
    assert response.metadata["difficulty"] == "challenge"
    assert (await store.get("u1")).practice_difficulty == "challenge"


@pytest.mark.asyncio
async def test_solution_generated_once_then_reused(store, make_context):
    llm = MagicMock(spec=CompletionService)
    llm.complete = AsyncMock(return_value="Divide both sides by 2: x = 2")
    agent = _agent(store, llm)
    await store.update("u1", {"active_question": _question(), "practice_topic": "Algebra", "practice_difficulty": "medium"})
    await store.update("u1", {"hint_level": 1})

    for _ in range(2):
        session = await store.get("u1")
        response = await agent.process_message("u1", make_context(session, "solution", IntentCategory.PRACTICE_REQUEST, "practice_agent"))
        assert "x = 2" in response.response

    assert llm.complete.await_count == 1
    saved = await store.get("u1")
    assert saved.active_question.id == "q1"
    assert saved.active_question.solution == "Divide both sides by 2: x = 2"
    assert saved.hint_level == 1


@pytest.mark.asyncio
async def test_fallback_solution_not_persisted(store, make_context, failing_llm):
    agent = _agent(store, failing_llm)
    await store.update("u1", {"active_question": _question(), "practice_topic": "Algebra"})
    session = await store.get("u1")
    response = await agent.process_message("u1", make_context(session, "answer", IntentCategory.PRACTICE_REQUEST, "practice_agent"))
    assert response.is_fallback
    assert (await store.get("u1")).active_question.solution is None


@pytest.mark.asyncio
async def test_asks_for_topic_when_none_known(store, make_context):
    agent = _agent(store, _working_llm())
    session = await store.get("u1")
    response = await agent.process_message(
        "u1", make_context(session, "give me practice", IntentCategory.PRACTICE_REQUEST, "practice_agent", subject="Mathematics", grade="12"),
    )
    assert response.expectation == "topic_selection"
    assert "Trigonometry" in response.response
    assert (await store.get("u1")).active_question is None


@pytest.mark.asyncio
async def test_canned_solution_of_fallback_question_stays_flagged(store, make_context):
    llm = _working_llm()
    agent = _agent(store, llm)
    question = fallback_practice_question("Mathematics", "10", "Algebra", "easy")
    await store.update("u1", {"active_question": question, "practice_topic": "Algebra", "practice_difficulty": "easy"})

    session = await store.get("u1")
    response = await agent.process_message("u1", make_context(session, "solution", IntentCategory.PRACTICE_REQUEST, "practice_agent"))

    assert question.solution in response.response
    assert response.is_fallback
    llm.complete.assert_not_called()
