"""
TutorAgent: base class for all tutoring agents.
CRITICAL: agents receive a detached session snapshot inside the
HandoffContext. State changes go back through store.update (merge), never
by mutating the snapshot.
"""
import abc
import logging
import re

from capstutor.models.session_state import MAX_HINTS, Question, Session
from capstutor.models.turn import AgentResponse, HandoffContext
from capstutor.services.llm import CompletionService
from capstutor.services.session_store import SessionStore
from capstutor.specialists.generators import ContentGenerator

logger = logging.getLogger(__name__)

ALL_HINTS_GIVEN = (
    "I've already given you all the hints. Would you like to see the solution or try a different question?"
)

HINT_REQUEST = re.compile(r"\b(hints?|stuck|don'?t know how)\b", re.IGNORECASE)
SOLUTION_REQUEST = re.compile(r"\b(solutions?|answers?|show me|solve it|memo)\b", re.IGNORECASE)
MORE_REQUEST = re.compile(r"\b(more|another|next)\b", re.IGNORECASE)


class TutorAgent(abc.ABC):
    """
    Common contract: process_message(user_id, context) -> AgentResponse.

    Subclasses set agent_id and implement process_message. Shared
    collaborators are injected so tests can pass fakes.
    """

    agent_id: str = ""

    def __init__(self, store: SessionStore, generator: ContentGenerator, llm: CompletionService):
        self.store = store
        self.generator = generator
        self.llm = llm

    @abc.abstractmethod
    async def process_message(self, user_id: str, context: HandoffContext) -> AgentResponse:
        ...

    def reply(self, text: str, expectation: str, is_fallback: bool = False, **metadata) -> AgentResponse:
        return AgentResponse(
            response=text,
            expectation=expectation,
            agent_id=self.agent_id,
            metadata=metadata,
            is_fallback=is_fallback,
        )

    async def reveal_hint(
        self, user_id: str, session: Session, question: Question, expectation: str
    ) -> AgentResponse:
        """
        Reveal the next hint for the active question.

        At the cap the fixed ALL_HINTS_GIVEN reply comes back every time and
        the session is left untouched.
        """
        level = session.hint_level
        if level >= MAX_HINTS:
            return self.reply(ALL_HINTS_GIVEN, expectation, hint_level=level)

        next_level = level + 1
        is_fallback = False
        if len(question.hints) >= next_level:
            hint = question.hints[next_level - 1]
        else:
            generated = await self.generator.hint(question, next_level)
            hint, is_fallback = generated.text, generated.fallback

        await self.store.update(user_id, {"hint_level": next_level})
        logger.info(f"{self.agent_id}: hint {next_level}/{MAX_HINTS} for {question.id}")

        follow = (
            "Give it another try, or ask for another hint."
            if next_level < MAX_HINTS
            else "That's the last hint. Try it now, or ask for the solution."
        )
        return self.reply(
            f"Hint {next_level}/{MAX_HINTS}: {hint}\n\n{follow}",
            expectation,
            is_fallback=is_fallback,
            hint_level=next_level,
        )
