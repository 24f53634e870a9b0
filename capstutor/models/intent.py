"""Structured classification of one inbound message. Never persisted."""
from dataclasses import dataclass
from enum import Enum
from typing import Optional

UNKNOWN = "unknown"


class IntentCategory(str, Enum):
    GREETING = "greeting"
    HOMEWORK_HELP = "homework_help"
    PRACTICE_REQUEST = "practice_request"
    EXAM_PREPARATION = "exam_preparation"
    CONCEPT_EXPLANATION = "concept_explanation"
    GENERAL_QUESTION = "general_question"


@dataclass(frozen=True)
class Intent:
    """
    Result of intent classification.

    subject/grade/topic are None when nothing is known. The classifier maps
    the model's "unknown" answers to None before building an Intent.
    """
    category: IntentCategory
    subject: Optional[str] = None
    grade: Optional[str] = None
    topic: Optional[str] = None
    confidence: float = 0.7          # 0.95 fast path, 0.7 keyword fallback
    conversation_stage: str = "ongoing_conversation"
    has_image: bool = False

    def knows_subject_and_grade(self) -> bool:
        return bool(self.subject) and bool(self.grade)

    def as_dict(self) -> dict:
        return {
            "category": self.category.value,
            "subject": self.subject,
            "grade": self.grade,
            "topic": self.topic,
            "confidence": self.confidence,
            "conversation_stage": self.conversation_stage,
            "has_image": self.has_image,
        }
