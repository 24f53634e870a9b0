"""
Brain: the router between an inbound turn and the agent that answers it.

Pipeline per turn (serialized per user id):
1. Load session snapshot
2. Classify intent (image uploads go straight to homework help)
3. Persist newly detected subject / grade
4. Pick the target from the decision table, build a HandoffContext
5. Run the agent; on failure retry once with the conversation agent
6. Record history, current agent and expectation; audit best-effort

CRITICAL: handle_turn and route never raise. The worst case is the static
emergency reply with error=True.
"""
import logging
from datetime import datetime, timezone
from dataclasses import replace
from typing import Optional

from anthropic import AsyncAnthropic

from capstutor.agents.base import TutorAgent
from capstutor.agents.concept_agent import ConceptAgent, specialized_agent_name
from capstutor.agents.conversation_agent import ConversationAgent
from capstutor.agents.exam_agent import ExamAgent
from capstutor.agents.homework_agent import HomeworkAgent
from capstutor.agents.practice_agent import PracticeAgent
from capstutor.models.intent import Intent, IntentCategory
from capstutor.models.turn import AgentId, AgentResponse, HandoffContext, InboundTurn
from capstutor.observability.langfuse import get_tracer
from capstutor.services import transcript_store
from capstutor.services.llm import CompletionService
from capstutor.services.session_store import SessionStore
from capstutor.specialists.classifier import classify_intent
from capstutor.specialists.curriculum import CAPS_SUBJECTS
from capstutor.specialists.generators import ContentGenerator

logger = logging.getLogger(__name__)
tracer = get_tracer(__name__)

BRAIN_ID = "brain_agent"
EMERGENCY_MESSAGE = "I'm having trouble connecting you with the right tutor. Could you try again with your question?"

# Decision table, evaluated top to bottom. Concept questions with a known
# subject and grade are special-cased in select_agent.
ROUTING_TABLE: list[tuple[IntentCategory, AgentId]] = [
    (IntentCategory.GREETING, AgentId.CONVERSATION),
    (IntentCategory.HOMEWORK_HELP, AgentId.HOMEWORK),
    (IntentCategory.PRACTICE_REQUEST, AgentId.PRACTICE),
    (IntentCategory.EXAM_PREPARATION, AgentId.EXAM),
    (IntentCategory.CONCEPT_EXPLANATION, AgentId.CONCEPT),
]


def emergency_response() -> AgentResponse:
    return AgentResponse(
        response=EMERGENCY_MESSAGE,
        expectation="question",
        agent_id=BRAIN_ID,
        error=True,
    )


def build_registry(
    store: SessionStore, generator: ContentGenerator, llm: CompletionService
) -> dict[str, TutorAgent]:
    """
    Closed name -> agent mapping. Subject/grade concept specialists exist
    for every subject and grade in the curriculum table and nowhere else.
    """
    registry: dict[str, TutorAgent] = {
        AgentId.CONVERSATION.value: ConversationAgent(store, generator, llm),
        AgentId.HOMEWORK.value: HomeworkAgent(store, generator, llm),
        AgentId.PRACTICE.value: PracticeAgent(store, generator, llm),
        AgentId.EXAM.value: ExamAgent(store, generator, llm),
        AgentId.CONCEPT.value: ConceptAgent(store, generator, llm),
    }
    for subject, by_grade in CAPS_SUBJECTS.items():
        for grade in by_grade:
            agent = ConceptAgent(store, generator, llm, subject=subject, grade=grade)
            registry[agent.agent_id] = agent
    return registry


class Brain:
    def __init__(
        self,
        store: SessionStore,
        llm: Optional[CompletionService] = None,
        generator: Optional[ContentGenerator] = None,
        classifier_client: Optional[AsyncAnthropic] = None,
        agents: Optional[dict[str, TutorAgent]] = None,
    ):
        self.store = store
        self.llm = llm or CompletionService()
        self.generator = generator or ContentGenerator(self.llm)
        self.classifier_client = classifier_client
        self.agents = agents if agents is not None else build_registry(store, self.generator, self.llm)

    @staticmethod
    def select_agent(intent: Intent) -> str:
        """Pure routing decision. Only the intent category (plus subject/grade for concepts) matters."""
        if intent.category == IntentCategory.CONCEPT_EXPLANATION and intent.knows_subject_and_grade():
            return specialized_agent_name(intent.subject, intent.grade)
        for category, agent_id in ROUTING_TABLE:
            if intent.category == category:
                return agent_id.value
        return AgentId.CONVERSATION.value

    async def route(self, user_id: str, context: HandoffContext) -> AgentResponse:
        """
        Hand the turn to context.target_agent.

        An unregistered target, an exception or an empty reply all count as
        a routing failure: the conversation agent gets one retry with
        routing_error set, then the emergency reply.
        """
        target = context.target_agent
        try:
            agent = self.agents.get(target)
            if agent is None:
                raise LookupError(f"No agent registered as {target!r}")
            response = await agent.process_message(user_id, context)
            if not response.response or not response.response.strip():
                raise ValueError(f"{target} returned an empty response")
            return response
        except Exception as e:
            logger.error(f"Routing to {target} failed: {e}, falling back to conversation agent", exc_info=True)

        try:
            session = await self.store.get(user_id)
            fallback = replace(context.for_fallback(target), session=session)
            response = await self.agents[AgentId.CONVERSATION.value].process_message(user_id, fallback)
            if not response.response or not response.response.strip():
                raise ValueError("conversation agent returned an empty response")
            return response
        except Exception as e:
            logger.error(f"Fallback to conversation agent failed for user {user_id}: {e}", exc_info=True)
            return emergency_response()

    async def handle_turn(self, turn: InboundTurn) -> AgentResponse:
        """Process one inbound turn end to end. Turns for the same user never interleave."""
        async with self.store.turn_lock(turn.user_id):
            with tracer.start_as_current_span("brain.route") as span:
                span.set_attribute("user.id", turn.user_id)
                try:
                    response = await self._process(turn, span)
                except Exception as e:
                    logger.error(f"Turn failed for user {turn.user_id}: {e}", exc_info=True)
                    response = emergency_response()
                span.set_attribute("agent.id", response.agent_id)
                span.set_attribute("turn.error", response.error)
                span.set_attribute("turn.is_fallback", response.is_fallback)
                return response

    async def _process(self, turn: InboundTurn, span) -> AgentResponse:
        start_time = datetime.now(timezone.utc)
        user_id = turn.user_id
        session = await self.store.get(user_id)

        if turn.image_url:
            intent = Intent(
                category=IntentCategory.HOMEWORK_HELP,
                subject=session.subject,
                grade=session.grade,
                confidence=0.95,
                conversation_stage="problem_solving",
                has_image=True,
            )
        else:
            intent = await classify_intent(turn.message, session, client=self.classifier_client)

        patch = {}
        if intent.subject and intent.subject != session.subject:
            patch["subject"] = intent.subject
        if intent.grade and intent.grade != session.grade:
            patch["grade"] = intent.grade
        if patch:
            session = await self.store.update(user_id, patch)

        target = self.select_agent(intent)
        span.set_attribute("intent.category", intent.category.value)
        span.set_attribute("intent.confidence", intent.confidence)
        span.set_attribute("routing.target", target)
        logger.info(
            f"Routing user {user_id}: {intent.category.value} "
            f"(conf={intent.confidence}) {session.current_agent} -> {target}"
        )

        context = HandoffContext(
            user_id=user_id,
            message=turn.message,
            session=session,
            intent=intent,
            target_agent=target,
            user_name=turn.user_name,
            image_url=turn.image_url,
            previous_agent=session.current_agent,
        )
        response = await self.route(user_id, context)
        response.metadata.setdefault("intent", intent.category.value)
        response.metadata.setdefault("confidence", intent.confidence)

        await self.store.append_history(user_id, "user", turn.message or "[image]")
        await self.store.append_history(user_id, "assistant", response.response)
        if not response.error:
            await self.store.update(user_id, {
                "current_agent": response.agent_id,
                "expectation": response.expectation,
            })

        latency_ms = int((datetime.now(timezone.utc) - start_time).total_seconds() * 1000)
        await transcript_store.log_routing_decision(
            user_id,
            from_agent=session.current_agent,
            to_agent=response.agent_id,
            category=intent.category.value,
            confidence=intent.confidence,
            latency_ms=latency_ms,
            routing_error=bool(response.metadata.get("routing_error")),
            message_excerpt=(turn.message or "")[:200],
        )
        await transcript_store.save_turn(user_id, "student", turn.message or "[image]", subject=session.subject)
        await transcript_store.save_turn(
            user_id, response.agent_id, response.response,
            subject=session.subject, expectation=response.expectation,
        )
        return response
