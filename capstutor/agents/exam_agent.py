"""
Exam agent: escalating exam-style question sets with marking memos.

States are Idle and FlowActive(flow). decide() is pure. While a flow is
active the priority is: solutions, then more questions, then a new topic
(restart, replacing the old flow), then the command menu.
"""
import logging
import re
import uuid
from dataclasses import dataclass
from typing import Optional, Union

from capstutor.agents.base import MORE_REQUEST, TutorAgent
from capstutor.models.session_state import ExamFlowState, ExamMode, Question, Session
from capstutor.models.turn import AgentId, AgentResponse, HandoffContext
from capstutor.specialists.curriculum import detect_topic

logger = logging.getLogger(__name__)

PAST_PAPER_REQUEST = re.compile(r"\b(past|previous|old)\s+(exam\s+)?papers?\b|\bpast\s+exams?\b", re.IGNORECASE)
MEMO_REQUEST = re.compile(r"\b(solutions?|answers?|memo)\b", re.IGNORECASE)
MIXED_TOPICS = "mixed topics"


@dataclass(frozen=True)
class Idle:
    pass


@dataclass(frozen=True)
class FlowActive:
    flow: ExamFlowState


ExamState = Union[Idle, FlowActive]


@dataclass(frozen=True)
class StartFlow:
    topic: str
    mode: ExamMode


@dataclass(frozen=True)
class ShowSolutions:
    pass


@dataclass(frozen=True)
class MoreQuestions:
    pass


@dataclass(frozen=True)
class ShowMenu:
    pass


ExamAction = Union[StartFlow, ShowSolutions, MoreQuestions, ShowMenu]


def detect_mode(message: str) -> ExamMode:
    return ExamMode.PAST_PAPER if PAST_PAPER_REQUEST.search(message) else ExamMode.EXAM_PREP


def exam_state(session: Session) -> ExamState:
    flow = session.exam_flow
    if flow is not None and flow.active:
        return FlowActive(flow)
    return Idle()


def decide(state: ExamState, message: str, detected_topic: Optional[str]) -> ExamAction:
    """Pure transition function for the exam flow."""
    if isinstance(state, Idle):
        return StartFlow(detected_topic or MIXED_TOPICS, detect_mode(message))
    if MEMO_REQUEST.search(message):
        return ShowSolutions()
    if MORE_REQUEST.search(message):
        return MoreQuestions()
    if detected_topic:
        return StartFlow(detected_topic, detect_mode(message))
    return ShowMenu()


def exam_menu(flow: ExamFlowState) -> str:
    return (
        f"You're working on {flow.focus_topic} (Grade {flow.grade} {flow.subject}). Reply with:\n"
        "• 'solutions' for the step-by-step memo\n"
        "• 'more' for a fresh set of questions\n"
        "• a topic name (e.g. 'trigonometry') to switch focus"
    )


class ExamAgent(TutorAgent):
    agent_id = AgentId.EXAM.value

    async def process_message(self, user_id: str, context: HandoffContext) -> AgentResponse:
        session = context.session
        message = context.message or ""
        state = exam_state(session)
        action = decide(state, message, detect_topic(message) or context.intent.topic)
        logger.info(f"Exam {type(state).__name__} -> {type(action).__name__} (user {user_id})")

        if isinstance(action, StartFlow):
            subject = context.intent.subject or session.subject or "Mathematics"
            grade = context.intent.grade or session.grade or "12"
            return await self._start(user_id, subject, grade, action.topic, action.mode, fresh=False)

        flow = state.flow
        pack = session.active_question if session.active_question and session.active_question.kind == "exam" else None

        if isinstance(action, MoreQuestions) or (isinstance(action, ShowSolutions) and pack is None):
            return await self._start(user_id, flow.subject, flow.grade, flow.focus_topic, flow.mode, fresh=True)
        if isinstance(action, ShowSolutions):
            return await self._solutions(user_id, flow, pack)
        return self.reply(exam_menu(flow), "exam_menu")

    async def _start(
        self, user_id: str, subject: str, grade: str, topic: str, mode: ExamMode, fresh: bool
    ) -> AgentResponse:
        content = await self.generator.exam_pack(subject, grade, topic, mode=mode.value, fresh=fresh)
        pack = Question(
            id=f"exam_{uuid.uuid4().hex[:12]}",
            text="\n".join(q["text"] for q in content.data["questions"]),
            topic=content.topic,
            difficulty="mixed",
            subject=content.subject,
            grade=content.grade,
            is_fallback=content.fallback,
            kind="exam",
        )
        flow = ExamFlowState(
            active=True,
            subject=content.subject,
            grade=content.grade,
            focus_topic=content.topic,
            mode=mode,
            stage="questions",
        )
        await self.store.update(user_id, {
            "exam_flow": flow,
            "active_question": pack,
            "hint_level": 0,
            "last_help_type": "exam_pack",
            "has_received_help": True,
        })

        return self.reply(
            f"{content.text}\n\nReply 'solutions' for the memo, 'more' for another set, or name a topic.",
            "awaiting_answers",
            is_fallback=content.fallback,
            mode=mode.value,
            topic=content.topic,
            question_count=len(content.data["questions"]),
        )

    async def _solutions(self, user_id: str, flow: ExamFlowState, pack: Question) -> AgentResponse:
        is_fallback = False
        if pack.solution:
            memo = pack.solution
        else:
            content = await self.generator.exam_solutions(
                flow.subject, flow.grade, flow.focus_topic, flow.mode.value, pack.text.splitlines(),
            )
            memo, is_fallback = content.text, content.fallback
            patch = {"exam_flow": ExamFlowState(
                active=True,
                subject=flow.subject,
                grade=flow.grade,
                focus_topic=flow.focus_topic,
                mode=flow.mode,
                stage="solutions",
            )}
            if not is_fallback:
                patch["active_question"] = pack.with_solution(memo)
            await self.store.update(user_id, patch)

        return self.reply(
            f"{memo}\n\nSay 'more' for a fresh set or name another topic.",
            "awaiting_follow_up",
            is_fallback=is_fallback,
            mode=flow.mode.value,
        )
