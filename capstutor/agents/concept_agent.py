"""Concept agent: short CAPS-aligned explanations of a single topic."""
import logging
import re
from typing import Optional

from capstutor.agents.base import TutorAgent
from capstutor.models.turn import AgentId, AgentResponse, HandoffContext
from capstutor.services.llm import CompletionService
from capstutor.services.session_store import SessionStore
from capstutor.specialists.curriculum import detect_topic
from capstutor.specialists.generators import ContentGenerator

logger = logging.getLogger(__name__)


def specialized_agent_name(subject: str, grade: str) -> str:
    """Registry name for a subject/grade concept agent, e.g. mathematics_grade_11_agent."""
    slug = re.sub(r"[^a-z0-9]+", "_", subject.lower()).strip("_")
    return f"{slug}_grade_{grade}_agent"


class ConceptAgent(TutorAgent):
    """
    Explains one concept per turn. When bound to a subject and grade it
    answers as that subject/grade specialist regardless of what the
    session currently holds.
    """

    def __init__(
        self,
        store: SessionStore,
        generator: ContentGenerator,
        llm: CompletionService,
        subject: Optional[str] = None,
        grade: Optional[str] = None,
    ):
        super().__init__(store, generator, llm)
        self.subject = subject
        self.grade = grade
        self.agent_id = specialized_agent_name(subject, grade) if subject and grade else AgentId.CONCEPT.value

    async def process_message(self, user_id: str, context: HandoffContext) -> AgentResponse:
        subject = self.subject or context.intent.subject or context.session.subject
        grade = self.grade or context.intent.grade or context.session.grade
        topic = context.intent.topic or detect_topic(context.message or "")

        if not topic:
            return self.reply(
                "Which concept would you like me to explain? Name the topic, e.g. 'explain the quadratic formula'.",
                "topic_selection",
            )

        content = await self.generator.concept_explanation(subject, grade, topic, focus=context.message)
        await self.store.update(user_id, {
            "last_help_type": "concept_explanation",
            "has_received_help": True,
        })
        logger.info(f"{self.agent_id}: explained {content.topic} for user {user_id}")
        return self.reply(content.text, content.expectation, is_fallback=content.fallback, topic=content.topic)
