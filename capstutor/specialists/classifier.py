"""
Intent classifier for routing student messages to the right agent.
Uses Claude Haiku for fast, cheap classification at temperature 0.1.
CRITICAL: classify_intent never raises. Any model failure degrades to the
deterministic keyword fallback with confidence 0.7.
"""
import asyncio
import logging
import re
from typing import Optional

from anthropic import AsyncAnthropic
from pydantic import AliasChoices, BaseModel, Field

from capstutor import config
from capstutor.models.intent import UNKNOWN, Intent, IntentCategory
from capstutor.models.session_state import Session
from capstutor.specialists.curriculum import (
    detect_subject,
    detect_topic,
    normalize_subject_name,
    normalize_topic,
)

logger = logging.getLogger(__name__)

GREETING_PATTERN = re.compile(r"^(hi|hello|hey|greetings)$", re.IGNORECASE)
GREETING_PREFIX = re.compile(r"^(hi|hello|hey|greetings)\b", re.IGNORECASE)
GRADE_PATTERN = re.compile(r"\bgrade\s*(\d{1,2})\b", re.IGNORECASE)

# Checked in order; first hit wins.
FALLBACK_KEYWORDS: list[tuple[IntentCategory, tuple[str, ...]]] = [
    (IntentCategory.HOMEWORK_HELP, ("homework", "solve", "help")),
    (IntentCategory.PRACTICE_REQUEST, ("practice", "question")),
    (IntentCategory.EXAM_PREPARATION, ("exam", "test", "paper")),
    (IntentCategory.CONCEPT_EXPLANATION, ("explain", "what is", "how does")),
]

# Short commands that continue whatever the previous agent started.
FOLLOW_UP_PATTERN = re.compile(
    r"\b(hints?|stuck|solutions?|answers?|memo|more|another|next|easier|harder|simpler)\b",
    re.IGNORECASE,
)
FOLLOW_UP_MAX_WORDS = 4

SYSTEM_PROMPT = """You are an expert educational intent analyzer for the South African CAPS curriculum.
Analyze the student's message and respond with ONLY a JSON object with these keys:

- category: one of greeting, homework_help, practice_request, exam_preparation, concept_explanation, general_question
- subject: the academic subject (e.g. Mathematics, Physical Sciences) or "unknown"
- grade: the grade level 8-12 as a string, or "unknown"
- topic: the specific topic within the subject (e.g. Algebra, Trigonometry) or "unknown"
- confidence: 0.0-1.0, your confidence in this analysis
- conversation_stage: one of greeting, subject_selection, topic_exploration, problem_solving, reflection

No explanation, no markdown, just the JSON object."""


class IntentPayload(BaseModel):
    """Declared schema of the classifier model's reply."""
    category: IntentCategory
    subject: Optional[str] = None
    grade: Optional[str | int] = None
    topic: Optional[str] = None
    confidence: float = Field(ge=0.0, le=1.0)
    conversation_stage: str = Field(
        default="ongoing_conversation",
        validation_alias=AliasChoices("conversation_stage", "conversationStage"),
    )


def _known(value) -> Optional[str]:
    """Map empty / 'unknown' model answers to None."""
    if value is None:
        return None
    text = str(value).strip()
    if not text or text.lower() in (UNKNOWN, "none", "null", "n/a"):
        return None
    return text


def _clean_grade(value) -> Optional[str]:
    text = _known(value)
    if text is None:
        return None
    match = re.search(r"\d{1,2}", text)
    return match.group(0) if match else None


def extract_grade(message: str) -> Optional[str]:
    """Explicit "grade N" mention in the message, if any."""
    match = GRADE_PATTERN.search(message)
    return match.group(1) if match else None


def _follow_up_category(message: str, session: Session) -> Optional[IntentCategory]:
    """Category for a short follow-up aimed at the agent that owns the work in flight."""
    agent = session.current_agent
    question = session.active_question
    words = message.split()

    if agent == "homework_agent" and session.expectation == "question_selection" and len(words) <= FOLLOW_UP_MAX_WORDS:
        return IntentCategory.HOMEWORK_HELP
    if len(words) > FOLLOW_UP_MAX_WORDS or not FOLLOW_UP_PATTERN.search(message):
        return None

    if agent == "exam_agent" and session.exam_flow and session.exam_flow.active:
        return IntentCategory.EXAM_PREPARATION
    if agent == "practice_agent" and (session.practice_topic or (question and question.kind == "practice")):
        return IntentCategory.PRACTICE_REQUEST
    if agent == "homework_agent" and ((question and question.kind == "homework") or session.homework_questions):
        return IntentCategory.HOMEWORK_HELP
    return None


def keyword_intent(message: str, session: Session, grade: Optional[str]) -> Intent:
    """Deterministic classification used whenever the model is unavailable."""
    lowered = message.lower()
    category = IntentCategory.GENERAL_QUESTION
    for candidate, keywords in FALLBACK_KEYWORDS:
        if any(k in lowered for k in keywords):
            category = candidate
            break
    else:
        if GREETING_PREFIX.search(lowered):
            category = IntentCategory.GREETING

    return Intent(
        category=category,
        subject=detect_subject(message) or session.subject,
        grade=grade,
        topic=detect_topic(lowered),
        confidence=0.7,
        conversation_stage="ongoing_conversation" if session.welcome_sent else "greeting",
    )


async def classify_intent(
    message: str,
    session: Optional[Session] = None,
    client: Optional[AsyncAnthropic] = None,
) -> Intent:
    """
    Classify a student's message into an Intent.

    Args:
        message: The raw chat message
        session: Snapshot of the user's session (prior subject/grade, flags)
        client: Optional AsyncAnthropic client (creates new if not provided)

    Returns:
        Intent. Greetings and follow-up commands are answered from keyword
        pre-filters without calling the model.
    """
    session = session or Session(user_id="")
    text = message.strip()

    if GREETING_PATTERN.match(text):
        return Intent(
            category=IntentCategory.GREETING,
            subject=session.subject,
            grade=session.grade,
            confidence=0.95,
            conversation_stage="returning_greeting" if session.welcome_sent else "initial_greeting",
        )

    message_grade = extract_grade(text)
    grade = message_grade or session.grade

    follow_up = _follow_up_category(text, session)
    if follow_up is not None:
        return Intent(
            category=follow_up,
            subject=session.subject,
            grade=grade,
            topic=detect_topic(text),
            confidence=0.9,
            conversation_stage="follow_up",
        )

    try:
        _client = client or AsyncAnthropic()
        response = await asyncio.wait_for(
            _client.messages.create(
                model=config.CLASSIFIER_MODEL,
                max_tokens=300,
                temperature=0.1,
                system=SYSTEM_PROMPT,
                messages=[
                    {
                        "role": "user",
                        "content": (
                            f'Student message: "{text}"\n'
                            f"Known context: Grade {grade or UNKNOWN}, Subject: {session.subject or UNKNOWN}"
                        ),
                    }
                ],
            ),
            timeout=config.LLM_TIMEOUT_SECONDS,
        )
        raw = response.content[0].text.strip()
        payload = IntentPayload.model_validate_json(raw)
    except Exception as e:
        logger.error(f"Classification failed: {e}, using keyword fallback")
        intent = keyword_intent(text, session, grade)
        logger.info(f"Classified '{text[:50]}' -> {intent.category.value} (fallback)")
        return intent

    # An explicit "grade N" in the message beats the model; the model beats
    # what the session remembered.
    llm_grade = _clean_grade(payload.grade)
    resolved_grade = message_grade or llm_grade or session.grade
    resolved_subject = (
        normalize_subject_name(_known(payload.subject))
        or detect_subject(text)
        or session.subject
    )
    resolved_topic = normalize_topic(_known(payload.topic)) or detect_topic(text)

    intent = Intent(
        category=payload.category,
        subject=resolved_subject,
        grade=resolved_grade,
        topic=resolved_topic,
        confidence=payload.confidence,
        conversation_stage=payload.conversation_stage,
    )
    logger.info(f"Classified '{text[:50]}' -> {intent.category.value} (conf={intent.confidence})")
    return intent
