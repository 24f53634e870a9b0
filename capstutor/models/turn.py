"""Inbound/outbound turn shapes and the handoff package passed to agents."""
from dataclasses import dataclass, field, replace
from datetime import datetime, timezone
from enum import Enum
from typing import Optional

from pydantic import BaseModel

from capstutor.models.intent import Intent
from capstutor.models.session_state import Session


class AgentId(str, Enum):
    """Every agent the Brain can hand a turn to."""
    CONVERSATION = "conversation_agent"
    HOMEWORK = "homework_agent"
    PRACTICE = "practice_agent"
    EXAM = "exam_agent"
    CONCEPT = "concept_agent"


class InboundTurn(BaseModel):
    user_id: str
    user_name: str = "Student"
    message: str = ""
    image_url: str | None = None


class OutboundTurn(BaseModel):
    response: str
    expectation: str
    metadata: dict | None = None


@dataclass(frozen=True)
class HandoffContext:
    """
    Everything an agent gets for one turn. Passed by value: agents learn
    about each other only through what is in here and in the session store.
    """
    user_id: str
    message: str
    session: Session
    intent: Intent
    target_agent: str
    user_name: str = "Student"
    image_url: Optional[str] = None
    previous_agent: str = AgentId.CONVERSATION.value
    handoff_time: datetime = field(default_factory=lambda: datetime.now(timezone.utc))
    routing_error: bool = False
    intended_agent: Optional[str] = None

    @property
    def confidence(self) -> float:
        return self.intent.confidence

    def for_fallback(self, intended_agent: str) -> "HandoffContext":
        """Copy re-addressed to the conversation agent after a routing failure."""
        return replace(
            self,
            target_agent=AgentId.CONVERSATION.value,
            routing_error=True,
            intended_agent=intended_agent,
        )


@dataclass
class AgentResponse:
    """What an agent returns for one turn."""
    response: str
    expectation: str
    agent_id: str = ""
    metadata: dict = field(default_factory=dict)
    error: bool = False
    is_fallback: bool = False
    routed_by: str = "brain_agent"

    def to_outbound(self) -> OutboundTurn:
        metadata = {
            "agent_id": self.agent_id,
            "routed_by": self.routed_by,
            **self.metadata,
        }
        if self.error:
            metadata["error"] = True
        if self.is_fallback:
            metadata["is_fallback"] = True
        return OutboundTurn(response=self.response, expectation=self.expectation, metadata=metadata)
