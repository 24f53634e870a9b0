"""
Practice agent: question generation with hint escalation and difficulty
progression.

The agent is split in two. practice_state() + decide() are pure: they map
(session, message) to exactly one action, following a fixed priority
order. PracticeAgent then performs that action against the generator and
the session store.

Priority (first match wins):
    1. hint request with a question in flight   -> RevealHint
    2. easier/harder with a sticky topic        -> AdjustDifficulty
    3. new topic different from the sticky one  -> StartTopic (medium)
    4. solution request with a question         -> RevealSolution
    5. more/another/next with a sticky topic    -> NextQuestion (one rung up)
    6. no topic anywhere                         -> AskTopic
    7. otherwise                                 -> GenerateDefault (grade-based difficulty)
"""
import logging
import re
from dataclasses import dataclass
from typing import Optional, Union

from capstutor.agents.base import HINT_REQUEST, MORE_REQUEST, TutorAgent
from capstutor.models.session_state import Question, Session, initial_difficulty, step_difficulty
from capstutor.models.turn import AgentId, AgentResponse, HandoffContext
from capstutor.specialists.curriculum import detect_topic, get_subject_info
from capstutor.specialists.generators import fallback_practice_question

logger = logging.getLogger(__name__)

EASIER_REQUEST = re.compile(r"\b(easier|simpler|too hard|too difficult|less difficult)\b", re.IGNORECASE)
HARDER_REQUEST = re.compile(r"\b(harder|more difficult|too easy|tougher|more challenging)\b", re.IGNORECASE)
PRACTICE_SOLUTION_REQUEST = re.compile(r"\b(solutions?|answers?|show me|solve it)\b", re.IGNORECASE)

DEFAULT_TOPIC_MENU = ("Algebra", "Trigonometry", "Functions", "Geometry", "Statistics")


# ------------------- states -------------------

@dataclass(frozen=True)
class NoTopic:
    pass


@dataclass(frozen=True)
class TopicSelected:
    topic: str
    difficulty: str


@dataclass(frozen=True)
class QuestionActive:
    topic: str
    difficulty: str
    question: Question
    hint_level: int


PracticeState = Union[NoTopic, TopicSelected, QuestionActive]


# ------------------- actions -------------------

@dataclass(frozen=True)
class RevealHint:
    pass


@dataclass(frozen=True)
class RevealSolution:
    pass


@dataclass(frozen=True)
class AskTopic:
    pass


@dataclass(frozen=True)
class AdjustDifficulty:
    topic: str
    difficulty: str


@dataclass(frozen=True)
class StartTopic:
    topic: str
    difficulty: str = "medium"


@dataclass(frozen=True)
class NextQuestion:
    topic: str
    difficulty: str


@dataclass(frozen=True)
class GenerateDefault:
    topic: str
    difficulty: str


PracticeAction = Union[RevealHint, RevealSolution, AskTopic, AdjustDifficulty, StartTopic, NextQuestion, GenerateDefault]


def practice_state(session: Session) -> PracticeState:
    """Derive the practice state from the session fields."""
    question = session.active_question
    if question is not None and question.kind != "practice":
        question = None
    topic = session.practice_topic or (question.topic if question else None)
    if question is not None and topic:
        difficulty = session.practice_difficulty or question.difficulty or initial_difficulty(session.grade)
        return QuestionActive(topic=topic, difficulty=difficulty, question=question, hint_level=session.hint_level)
    if topic:
        return TopicSelected(topic=topic, difficulty=session.practice_difficulty or initial_difficulty(session.grade))
    return NoTopic()


def decide(
    state: PracticeState,
    message: str,
    detected_topic: Optional[str],
    grade: Optional[str],
) -> PracticeAction:
    """Pure transition function: one action per inbound message."""
    sticky = None if isinstance(state, NoTopic) else state.topic
    current = None if isinstance(state, NoTopic) else state.difficulty

    if isinstance(state, QuestionActive) and HINT_REQUEST.search(message):
        return RevealHint()

    if sticky:
        if EASIER_REQUEST.search(message):
            return AdjustDifficulty(sticky, step_difficulty(current, "easier"))
        if HARDER_REQUEST.search(message):
            return AdjustDifficulty(sticky, step_difficulty(current, "harder"))

    if detected_topic and sticky and detected_topic != sticky:
        return StartTopic(detected_topic, "medium")

    if isinstance(state, QuestionActive) and PRACTICE_SOLUTION_REQUEST.search(message):
        return RevealSolution()

    if sticky and MORE_REQUEST.search(message):
        return NextQuestion(sticky, step_difficulty(current, "harder"))

    topic = detected_topic or sticky
    if not topic:
        return AskTopic()
    return GenerateDefault(topic, initial_difficulty(grade))


class PracticeAgent(TutorAgent):
    agent_id = AgentId.PRACTICE.value

    async def process_message(self, user_id: str, context: HandoffContext) -> AgentResponse:
        session = context.session
        message = context.message or ""
        detected = detect_topic(message) or context.intent.topic
        grade = context.intent.grade or session.grade

        state = practice_state(session)
        action = decide(state, message, detected, grade)
        logger.info(f"Practice {type(state).__name__} -> {type(action).__name__} (user {user_id})")

        if isinstance(action, RevealHint):
            return await self.reveal_hint(user_id, session, state.question, "practice_attempt")
        if isinstance(action, RevealSolution):
            return await self._reveal_solution(user_id, state.question)
        if isinstance(action, AskTopic):
            return self._ask_topic(context)
        return await self._serve_question(user_id, context, action.topic, action.difficulty, type(action).__name__)

    def _ask_topic(self, context: HandoffContext) -> AgentResponse:
        subject = context.intent.subject or context.session.subject
        grade = context.intent.grade or context.session.grade
        info = get_subject_info(subject, grade) if subject else None
        topics = info.topics[:6] if info and info.topics else DEFAULT_TOPIC_MENU
        return self.reply(
            "Which topic would you like to practise? For example: " + ", ".join(topics) + ".",
            "topic_selection",
        )

    async def _serve_question(
        self, user_id: str, context: HandoffContext, topic: str, difficulty: str, reason: str
    ) -> AgentResponse:
        subject = context.intent.subject or context.session.subject or "Mathematics"
        grade = context.intent.grade or context.session.grade or "10"

        try:
            generated = await self.generator.practice_question(subject, grade, topic, difficulty)
            question = generated.data["question"]
        except Exception as e:
            logger.error(f"Practice generation failed for {topic}/{difficulty}: {e}")
            question = fallback_practice_question(subject, grade, topic, difficulty)

        await self.store.update(user_id, {
            "active_question": question,
            "hint_level": 0,
            "practice_topic": topic,
            "practice_difficulty": difficulty,
            "last_help_type": "practice_question",
            "has_received_help": True,
        })

        return self.reply(
            f"Practice ({topic} – {difficulty})\n{question.text}\n\n"
            "Reply with your answer, or say 'hint', 'easier', 'harder' or 'solution'.",
            "practice_attempt",
            is_fallback=question.is_fallback,
            topic=topic,
            difficulty=difficulty,
            question_id=question.id,
            reason=reason,
        )

    async def _reveal_solution(self, user_id: str, question: Question) -> AgentResponse:
        is_fallback = question.is_fallback
        if question.solution:
            solution = question.solution
        else:
            generated = await self.generator.solution(question)
            solution, is_fallback = generated.text, generated.fallback
            if not is_fallback:
                await self.store.update(user_id, {"active_question": question.with_solution(solution)})

        return self.reply(
            f"Solution:\n{solution}\n\nSay 'more' for a tougher question, 'easier' to step back, or name a new topic.",
            "practice_followup",
            is_fallback=is_fallback,
            question_id=question.id,
        )
