"""
Conversation agent: onboarding, info gathering and open-ended chat.
CRITICAL: this is the Brain's catch-all target. Every LLM call here is
guarded by a static fallback string, so process_message only fails if the
session store does.
"""
import logging
import re
from typing import Optional

from capstutor.agents.base import TutorAgent
from capstutor.models.intent import IntentCategory
from capstutor.models.session_state import Session
from capstutor.models.turn import AgentId, AgentResponse, HandoffContext
from capstutor.services.llm import LLMError

logger = logging.getLogger(__name__)

FIRST_TIME_WELCOME = (
    "Hey 👋 Welcome to The GOAT!\n"
    "Your expert tutor for Grades 8-12 CAPS curriculum subjects. Whether it's:\n"
    "✓ Homework help\n"
    "✓ Exam practice\n"
    "✓ Past paper questions\n"
    "✓ Understanding a tricky concept\n"
    "Type your question. I got you! 📚"
)

RETURNING_WELCOME = (
    "Back again 👋 Ready for more? Drop a homework question, ask for tougher practice, "
    "or name a concept to unpack. I've got you. 🔁📚"
)

MISSING_BOTH = "To help you better, could you tell me your grade and which subject you need help with?"
MISSING_GRADE = "Which grade are you in? This helps me tailor content to your curriculum level."
MISSING_SUBJECT = (
    "Which subject would you like help with? I'm familiar with Mathematics, Physical Sciences, "
    "Life Sciences, and other CAPS subjects."
)

GENERIC_NAMES = {"sir", "madam", "student", "user", "friend", "buddy", "learner", "there"}


def select_welcome(welcome_sent: bool, has_received_help: bool) -> Optional[str]:
    """
    Pure welcome choice.

    (False, *) -> first-time; (True, True) -> returning; (True, False) ->
    None, meaning no welcome this turn.
    """
    if not welcome_sent:
        return FIRST_TIME_WELCOME
    if has_received_help:
        return RETURNING_WELCOME
    return None


def sanitize_name(raw: Optional[str]) -> Optional[str]:
    """First real name from a chat display name, or None for placeholders."""
    if not raw:
        return None
    for word in re.findall(r"[A-Za-zÀ-ÿ'-]+", raw):
        if word.lower() not in GENERIC_NAMES:
            return word[:1].upper() + word[1:].lower()
    return None


def missing_info_fallback(session: Session) -> str:
    if not session.grade and not session.subject:
        return MISSING_BOTH
    if not session.grade:
        return MISSING_GRADE
    return MISSING_SUBJECT


class ConversationAgent(TutorAgent):
    agent_id = AgentId.CONVERSATION.value

    async def process_message(self, user_id: str, context: HandoffContext) -> AgentResponse:
        session = context.session
        name = sanitize_name(context.user_name)

        if context.routing_error:
            logger.warning(
                f"Conversation agent covering for {context.intended_agent} (user {user_id})"
            )
        else:
            welcome = select_welcome(session.welcome_sent, session.has_received_help)
            is_greeting = context.intent.category == IntentCategory.GREETING
            if welcome and (not session.welcome_sent or is_greeting):
                await self.store.update(user_id, {"welcome_sent": True})
                welcome_type = "returning" if session.welcome_sent else "first_time"
                return self.reply(welcome, "question", welcome_type=welcome_type)

        if not session.subject or not session.grade:
            response = await self._gather_info(context, name)
        else:
            response = await self._general_response(context, name)
        if context.routing_error:
            response.metadata.update(routing_error=True, intended_agent=context.intended_agent)
        return response

    async def _gather_info(self, context: HandoffContext, name: Optional[str]) -> AgentResponse:
        session = context.session
        expectation = (
            "subject_and_grade" if not session.subject and not session.grade
            else "grade_selection" if not session.grade
            else "subject_selection"
        )
        known = []
        if session.subject:
            known.append(f"subject: {session.subject}")
        if session.grade:
            known.append(f"grade: {session.grade}")

        system_prompt = f"""You are a friendly South African CAPS tutor chatting on WhatsApp.
You still need to learn the student's {"grade and subject" if expectation == "subject_and_grade" else expectation.split("_")[0]}.
Already known: {", ".join(known) or "nothing yet"}.
{f"The student's name is {name}." if name else ""}
Reply to their message in at most two short sentences, then ask for the missing detail.
Never answer homework in this reply."""

        try:
            text = await self.llm.complete(
                system_prompt, context.message or "(no text)", temperature=0.6, max_tokens=150,
            )
            is_fallback = False
        except LLMError as e:
            logger.warning(f"Info-gathering LLM call failed: {e}")
            text, is_fallback = missing_info_fallback(session), True

        return self.reply(text, expectation, is_fallback=is_fallback)

    async def _general_response(self, context: HandoffContext, name: Optional[str]) -> AgentResponse:
        session = context.session
        system_prompt = f"""You are The GOAT, a warm and encouraging CAPS tutor on WhatsApp.
The student is in Grade {session.grade} studying {session.subject}.
{f"Their name is {name}." if name else ""}
Keep replies under 120 words, plain text, no markdown headings.
Guide the student towards homework help, practice questions, exam prep or a concept explanation when it fits."""

        try:
            text = await self.llm.complete(
                system_prompt,
                context.message or "(no text)",
                temperature=0.7,
                max_tokens=300,
                history=session.conversation_history(),
            )
            is_fallback = False
        except LLMError as e:
            logger.warning(f"General response LLM call failed: {e}")
            text = (
                f"I'm here to help with Grade {session.grade} {session.subject}. "
                "Send me a homework question, ask for practice, or name a topic to explain."
            )
            is_fallback = True

        return self.reply(text, "awaiting_follow_up", is_fallback=is_fallback)
