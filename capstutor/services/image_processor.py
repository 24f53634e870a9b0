"""Reads homework photos: vision transcription, then a structured breakdown."""
import logging
from dataclasses import dataclass, field
from typing import Optional

from pydantic import BaseModel, ValidationError

from capstutor.services.llm import CompletionService, LLMError
from capstutor.specialists.curriculum import normalize_subject_name, normalize_topic

logger = logging.getLogger(__name__)

EXTRACT_INSTRUCTION = (
    "Extract all text content from this homework or academic image. Preserve equations, "
    "problem structure, and any visible text. Use clear text forms like 'x²' for x-squared."
)

ANALYSIS_PROMPT = """Analyze this extracted homework text and return JSON with:
- subject: the academic subject (Mathematics, Physical Sciences, etc.)
- topic: the specific topic within that subject
- questions: array of the individual question texts, one entry per distinct question
- grade_level: estimated grade level (8-12)"""


class _ImagePayload(BaseModel):
    subject: str = "unknown"
    topic: str = "unknown"
    questions: list[str] = []
    grade_level: str | int | None = None


@dataclass
class ImageAnalysis:
    success: bool
    text: str = ""
    subject: Optional[str] = None
    topic: Optional[str] = None
    questions: list[str] = field(default_factory=list)
    error: Optional[str] = None

    @property
    def question_count(self) -> int:
        return len(self.questions)


async def analyze_image(image_url: str, llm: CompletionService) -> ImageAnalysis:
    """Never raises; failure comes back as success=False."""
    if not image_url:
        return ImageAnalysis(success=False, error="No image URL provided")

    try:
        logger.info(f"Processing image: {image_url[:50]}...")
        text = await llm.read_image(image_url, EXTRACT_INSTRUCTION)
        data = await llm.complete(ANALYSIS_PROMPT, text, json_mode=True, temperature=0.3)
        payload = _ImagePayload.model_validate(data)
    except (LLMError, ValidationError) as e:
        logger.error(f"Image processing failed: {e}")
        return ImageAnalysis(success=False, error=str(e))

    questions = [q.strip() for q in payload.questions if q and q.strip()] or [text]
    logger.info(f"Image analysis complete: {len(questions)} question(s), subject={payload.subject}")
    return ImageAnalysis(
        success=True,
        text=text,
        subject=normalize_subject_name(payload.subject),
        topic=normalize_topic(payload.topic),
        questions=questions,
    )
