"""
Homework agent: reads typed or photographed homework and scaffolds it step
by step without handing over final answers.
"""
import logging
import re
import uuid
from typing import Optional

from capstutor.agents.base import HINT_REQUEST, MORE_REQUEST, SOLUTION_REQUEST, TutorAgent
from capstutor.models.session_state import Question
from capstutor.models.turn import AgentId, AgentResponse, HandoffContext
from capstutor.services.image_processor import analyze_image
from capstutor.specialists.curriculum import detect_topic

logger = logging.getLogger(__name__)

ORDINALS = {"first": 1, "second": 2, "third": 3, "fourth": 4, "fifth": 5, "last": -1}
NUMBER_PATTERN = re.compile(r"(?:\b|(?<=q))(\d{1,2})\b", re.IGNORECASE)
# Something that looks like an actual problem rather than "help with homework".
PROBLEM_MARKERS = re.compile(r"\d|=|\?|\b(find|calculate|solve|simplify|determine|prove|explain)\b", re.IGNORECASE)

IMAGE_FAILED = (
    "I couldn't read that image clearly. Could you send a clearer photo, or type the question out?"
)
ASK_FOR_QUESTION = "Sure, let's do it! Type your homework question or send a photo of it."


def parse_selection(message: str, count: int) -> Optional[int]:
    """0-based index chosen by "2", "question 3", "the first one"...; None if unusable."""
    lowered = message.lower()
    match = NUMBER_PATTERN.search(lowered)
    if match:
        number = int(match.group(1))
    else:
        number = next((v for word, v in ORDINALS.items() if re.search(rf"\b{word}\b", lowered)), None)
        if number is None:
            return None
    if number == -1:
        number = count
    if 1 <= number <= count:
        return number - 1
    return None


class HomeworkAgent(TutorAgent):
    agent_id = AgentId.HOMEWORK.value

    async def process_message(self, user_id: str, context: HandoffContext) -> AgentResponse:
        session = context.session
        message = (context.message or "").strip()
        question = session.active_question if session.active_question and session.active_question.kind == "homework" else None

        if context.image_url:
            return await self._handle_image(user_id, context)

        selecting = session.expectation == "question_selection" and session.homework_questions
        if selecting and len(message.split()) <= 4:
            index = parse_selection(message, len(session.homework_questions))
            if index is None:
                return self._selection_menu(session.homework_questions, retry=True)
            return await self._scaffold(user_id, context, session.homework_questions[index], index)

        if question and HINT_REQUEST.search(message):
            return await self.reveal_hint(user_id, session, question, "awaiting_follow_up")

        if question and SOLUTION_REQUEST.search(message) and len(message.split()) <= 6:
            return self.reply(
                "I won't hand you the final answer, but I'll get you there. Send me your working so far "
                "and I'll check each step, or ask for a 'hint'.",
                "awaiting_follow_up",
            )

        if MORE_REQUEST.search(message) and session.homework_questions and len(message.split()) <= 4:
            next_index = (session.homework_index if session.homework_index is not None else -1) + 1
            if next_index < len(session.homework_questions):
                return await self._scaffold(user_id, context, session.homework_questions[next_index], next_index)
            return self.reply(
                "That was the last question from your photo. Send another question or photo whenever you're ready.",
                "homework_question",
            )

        if not PROBLEM_MARKERS.search(message) and len(message.split()) <= 6:
            return self.reply(ASK_FOR_QUESTION, "homework_question")

        return await self._scaffold(user_id, context, message, None)

    async def _handle_image(self, user_id: str, context: HandoffContext) -> AgentResponse:
        analysis = await analyze_image(context.image_url, self.llm)
        if not analysis.success:
            return self.reply(IMAGE_FAILED, "homework_question", is_fallback=True)

        patch = {"homework_questions": tuple(analysis.questions), "homework_index": None}
        if analysis.subject and not context.session.subject:
            patch["subject"] = analysis.subject
        await self.store.update(user_id, patch)

        if analysis.question_count > 1:
            return self._selection_menu(analysis.questions)
        return await self._scaffold(user_id, context, analysis.questions[0], 0, topic=analysis.topic)

    def _selection_menu(self, questions, retry: bool = False) -> AgentResponse:
        lines = "\n".join(f"{i}) {q[:120]}" for i, q in enumerate(questions, start=1))
        lead = (
            f"Please reply with a number from 1 to {len(questions)}."
            if retry
            else f"I found {len(questions)} questions in your photo:"
        )
        return self.reply(
            f"{lead}\n{lines}\n\nWhich one should we start with?",
            "question_selection",
            question_count=len(questions),
        )

    async def _scaffold(
        self,
        user_id: str,
        context: HandoffContext,
        text: str,
        index: Optional[int],
        topic: Optional[str] = None,
    ) -> AgentResponse:
        subject = context.intent.subject or context.session.subject
        grade = context.intent.grade or context.session.grade
        topic = topic or context.intent.topic or detect_topic(text)

        content = await self.generator.homework_scaffold(subject, grade, topic, text)
        question = Question(
            id=f"homework_{uuid.uuid4().hex[:12]}",
            text=text,
            topic=content.topic,
            subject=content.subject,
            grade=content.grade,
            hints=tuple(content.data.get("hints", ())),
            is_fallback=content.fallback,
            kind="homework",
        )
        patch = {
            "active_question": question,
            "hint_level": 0,
            "last_help_type": "homework_scaffold",
            "has_received_help": True,
        }
        if index is not None:
            patch["homework_index"] = index
        await self.store.update(user_id, patch)

        return self.reply(
            content.text,
            "awaiting_follow_up",
            is_fallback=content.fallback,
            question_id=question.id,
            topic=content.topic,
        )
