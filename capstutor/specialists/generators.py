"""
CAPS-aligned content generators: concept explanations, homework scaffolds,
practice questions/packs, exam packs and their memos, diagnostic warm-ups,
hints and solutions.

CRITICAL: model output is parsed against a declared schema and rejected as
a whole on any mismatch or answer leak. Every public generator returns a
fixed fallback payload (fallback=True) instead of raising. Fallbacks are
never cached.
"""
import json
import logging
import re
import time
import uuid
from dataclasses import dataclass, field
from typing import Callable, Literal, Optional

from pydantic import BaseModel, Field, ValidationError, field_validator

from capstutor import config
from capstutor.models.session_state import Question
from capstutor.services.llm import CompletionService, LLMError
from capstutor.specialists.curriculum import get_subject_info, normalize_subject_name, normalize_topic

logger = logging.getLogger(__name__)

# Question texts must not give the game away.
ANSWER_LEAK = re.compile(r"\b(answers?|solutions?)\b", re.IGNORECASE)


class GenerationError(Exception):
    """Model output failed validation."""


@dataclass
class GeneratedContent:
    """A piece of tutoring content ready to send, plus its structured parts."""
    kind: str
    text: str
    expectation: str
    subject: str
    grade: str
    topic: str
    data: dict = field(default_factory=dict)
    fallback: bool = False


# ------------------- schemas -------------------

def _no_leak(text: str) -> str:
    if ANSWER_LEAK.search(text):
        raise ValueError("answer leakage in question text")
    return text


class ConceptPayload(BaseModel):
    main_explanation: str = Field(min_length=1)
    key_points: list[str] = Field(min_length=1)
    quick_check_question: str = Field(min_length=1)
    encouragement: str = ""


class ScaffoldStep(BaseModel):
    step_number: int
    action: str = Field(min_length=1)
    hint: str = ""


class HomeworkPayload(BaseModel):
    question_type: str = ""
    analysis: str = Field(min_length=1)
    steps: list[ScaffoldStep] = Field(min_length=1)
    common_mistakes: list[str] = []
    encouragement: str = ""


class PracticeQuestionPayload(BaseModel):
    question_text: str = Field(min_length=1)
    hint1: str = Field(min_length=1)
    hint2: str = Field(min_length=1)
    hint3: str = Field(min_length=1)
    solution: str = Field(min_length=1)

    @field_validator("question_text")
    @classmethod
    def no_answer_leak(cls, value: str) -> str:
        return _no_leak(value)


class PackQuestion(BaseModel):
    id: str | int = ""
    text: str = Field(min_length=1)
    difficulty: str = "medium"
    marks: int = Field(default=3, ge=1)

    @field_validator("text")
    @classmethod
    def no_answer_leak(cls, value: str) -> str:
        return _no_leak(value)


class PracticePackPayload(BaseModel):
    questions: list[PackQuestion] = Field(min_length=3, max_length=3)


class ExamPackPayload(BaseModel):
    questions: list[PackQuestion] = Field(min_length=3, max_length=4)
    strategy_tip: str = ""


class DiagnosticPayload(BaseModel):
    question_text: str = Field(min_length=1)
    difficulty: Literal["easy", "medium", "hard"] = "easy"

    @field_validator("question_text")
    @classmethod
    def no_answer_leak(cls, value: str) -> str:
        return _no_leak(value)


# ------------------- fixed fallbacks -------------------

FALLBACK_PRACTICE = {
    "Algebra": (
        "Solve for x: 3(x + 2) = 15",
        (
            "Think about the first step to isolate the variable.",
            "Expand the brackets, then apply the same operation to both sides.",
            "Once 3x is on its own, divide both sides by 3.",
        ),
        "Step 1: Expand: 3x + 6 = 15\nStep 2: Subtract 6: 3x = 9\nStep 3: Divide by 3: x = 3",
    ),
    "Trigonometry": (
        "Find the value of sin(30°) + cos(60°) without a calculator.",
        (
            "Think about the special angles you know exact values for.",
            "Draw the 30°-60°-90° triangle with sides 1, √3 and 2.",
            "Read sin(30°) and cos(60°) off the same triangle.",
        ),
        "Step 1: sin(30°) = 1/2\nStep 2: cos(60°) = 1/2\nStep 3: 1/2 + 1/2 = 1",
    ),
    "Functions": (
        "Determine the axis of symmetry of the parabola y = x² - 6x + 8.",
        (
            "The axis of symmetry passes through the turning point.",
            "For y = ax² + bx + c the axis is x = -b / (2a).",
            "Here a = 1 and b = -6.",
        ),
        "Step 1: a = 1, b = -6\nStep 2: x = -(-6) / (2 × 1)\nStep 3: x = 3",
    ),
    "Geometry": (
        "Calculate the area of a circle with radius 7 cm. Use π ≈ 22/7.",
        (
            "Which formula gives the area of a circle?",
            "Area = πr².",
            "Square the radius first, then multiply by 22/7.",
        ),
        "Step 1: A = πr²\nStep 2: A = 22/7 × 49\nStep 3: A = 154 cm²",
    ),
    "Statistics": (
        "Find the mean of the data set: 4, 7, 10, 12, 15, 22",
        (
            "The mean is a kind of average.",
            "Add all the values together.",
            "Divide the total by how many values there are.",
        ),
        "Step 1: 4 + 7 + 10 + 12 + 15 + 22 = 70\nStep 2: There are 6 values\nStep 3: Mean = 70 / 6 ≈ 11.67",
    ),
}
DEFAULT_FALLBACK_PRACTICE = (
    "Solve the equation: 2x + 5 = 13",
    (
        "Think about the first step to isolate the variable.",
        "Remember to apply the same operation to both sides.",
        "Once you've isolated the variable, simplify to find the value.",
    ),
    "Step 1: Subtract 5: 2x = 8\nStep 2: Divide by 2: x = 4",
)

FALLBACK_HINTS = (
    "Think about which formula or concept applies to this type of problem.",
    "Start by identifying the key variables and writing down what you know.",
    "Consider breaking the problem into smaller steps and solving each part.",
)

FALLBACK_EXAM_QUESTIONS = [
    {"id": "ep_fb1", "text": "Simplify an algebraic expression with brackets and exponents.", "difficulty": "easy", "marks": 3},
    {"id": "ep_fb2", "text": "Solve a quadratic equation by factorising.", "difficulty": "medium", "marks": 4},
    {"id": "ep_fb3", "text": "Find the general term of a linear number pattern.", "difficulty": "medium", "marks": 4},
    {"id": "ep_fb4", "text": "Set up and solve an equation from a word problem.", "difficulty": "hard", "marks": 6},
]

FALLBACK_PRACTICE_PACK = [
    {"id": "fb1", "text": "Solve for x: 2x + 3 = 11", "difficulty": "easy", "marks": 2},
    {"id": "fb2", "text": "Factor: x² - 9", "difficulty": "medium", "marks": 3},
    {"id": "fb3", "text": "If f(x) = x² - 4x, state its turning point.", "difficulty": "hard", "marks": 3},
]


def fallback_practice_question(
    subject: str, grade: str, topic: str, difficulty: str
) -> Question:
    """Topic-keyed canned question with its own hints and worked solution."""
    text, hints, solution = FALLBACK_PRACTICE.get(topic, DEFAULT_FALLBACK_PRACTICE)
    return Question(
        id=f"fallback_{uuid.uuid4().hex[:12]}",
        text=text,
        topic=topic,
        difficulty=difficulty,
        subject=subject,
        grade=grade,
        hints=hints,
        solution=solution,
        is_fallback=True,
        kind="practice",
    )


def clamp_words(text: str, limit: int) -> str:
    words = text.split()
    if len(words) <= limit:
        return text.strip()
    return " ".join(words[:limit]) + "…"


# ------------------- generator service -------------------

class ContentGenerator:
    """
    Formats prompts per content type, validates the model's JSON and caches
    successful results by a composite key for CONTENT_CACHE_TTL_SECONDS.
    """

    def __init__(
        self,
        llm: CompletionService,
        cache_ttl: float = config.CONTENT_CACHE_TTL_SECONDS,
        clock: Callable[[], float] = time.monotonic,
    ):
        self.llm = llm
        self.cache_ttl = cache_ttl
        self._clock = clock
        self._cache: dict[str, tuple[float, GeneratedContent]] = {}

    # -- cache --

    @staticmethod
    def cache_key(**spec) -> str:
        return json.dumps(spec, sort_keys=True, default=str)

    def _cache_get(self, key: str) -> Optional[GeneratedContent]:
        entry = self._cache.get(key)
        if entry is None:
            return None
        stored_at, value = entry
        if self._clock() - stored_at > self.cache_ttl:
            self._cache.pop(key, None)
            return None
        return value

    def _cache_set(self, key: str, value: GeneratedContent) -> None:
        self._cache[key] = (self._clock(), value)

    def clear_cache(self) -> None:
        self._cache.clear()

    async def _structured(self, model: type[BaseModel], system_prompt: str, user_prompt: str, **kwargs):
        """One JSON completion validated against model; GenerationError on any mismatch."""
        data = await self.llm.complete(system_prompt, user_prompt, json_mode=True, **kwargs)
        try:
            return model.model_validate(data)
        except ValidationError as e:
            raise GenerationError(str(e)) from e

    @staticmethod
    def _resolve(subject: Optional[str], grade: Optional[str], topic: Optional[str]) -> tuple[str, str, str]:
        return (
            normalize_subject_name(subject) or "Mathematics",
            str(grade or "11"),
            normalize_topic(topic) or "Algebra",
        )

    # -- concept explanation --

    async def concept_explanation(
        self, subject: Optional[str], grade: Optional[str], topic: Optional[str], focus: str = ""
    ) -> GeneratedContent:
        subject, grade, topic = self._resolve(subject, grade, topic)
        key = self.cache_key(kind="concept", subject=subject, grade=grade, topic=topic, focus=focus)
        cached = self._cache_get(key)
        if cached:
            return cached

        info = get_subject_info(subject, grade)
        caps_topics = ", ".join(info.topics[:8]) if info else ""
        system_prompt = f"""You are a South African CAPS-aligned tutoring content generator.
Generate a concept explanation for one topic.

Return STRICT JSON:
{{
  "main_explanation": "string",
  "key_points": ["point 1", "point 2", "point 3"],
  "quick_check_question": "string",
  "encouragement": "string"
}}

Rules:
- Topic: {topic}
- Subject: {subject}
- Grade: {grade}
- CAPS context topics (for alignment only): {caps_topics}
- Focus: {focus or "core idea of the topic"}
- Keep main_explanation under 160 words, friendly, no final numeric answers.
- quick_check_question = 1 short question (no answer)."""

        try:
            payload = await self._structured(ConceptPayload, system_prompt, "Generate concept now.", temperature=0.45)
        except (LLMError, GenerationError) as e:
            logger.warning(f"Concept generation fell back for {topic}: {e}")
            return GeneratedContent(
                kind="concept_pack",
                text=(
                    f"Concept: {topic}\nThis topic is important in Grade {grade} {subject}. "
                    "Start with the definitions, then work through one simple example step by step.\n"
                    "Say 'practice' for questions."
                ),
                expectation="awaiting_follow_up",
                subject=subject, grade=grade, topic=topic,
                fallback=True,
            )

        points = "\n- ".join(payload.key_points)
        content = GeneratedContent(
            kind="concept_pack",
            text=(
                f"Concept: {topic} (Grade {grade} {subject})\n"
                f"{clamp_words(payload.main_explanation, 160)}\n\n"
                f"Key Points:\n- {points}\n"
                f"Quick Check: {payload.quick_check_question}\n"
                f"{payload.encouragement}\n"
                "Say 'practice' for questions or name another topic."
            ).replace("\n\n\n", "\n\n"),
            expectation="awaiting_follow_up",
            subject=subject, grade=grade, topic=topic,
            data=payload.model_dump(),
        )
        self._cache_set(key, content)
        return content

    # -- homework scaffold --

    async def homework_scaffold(
        self, subject: Optional[str], grade: Optional[str], topic: Optional[str], question: str
    ) -> GeneratedContent:
        subject, grade, topic = self._resolve(subject, grade, topic)
        key = self.cache_key(kind="homework_scaffold", subject=subject, grade=grade, topic=topic, question=question)
        cached = self._cache_get(key)
        if cached:
            return cached

        system_prompt = f"""You are a step-by-step CAPS-aligned homework scaffold generator.

Return STRICT JSON:
{{
  "question_type": "string",
  "analysis": "string",
  "steps": [
    {{ "step_number": 1, "action": "string", "hint": "string" }},
    {{ "step_number": 2, "action": "string", "hint": "string" }}
  ],
  "common_mistakes": ["mistake 1", "mistake 2"],
  "encouragement": "string"
}}

Rules:
- Subject: {subject}
- Grade: {grade}
- Topic: {topic}
- Use 3-5 steps if non-trivial.
- DO NOT provide the final numeric answer.
- Focus on structure, method and reasoning breadcrumbs.
- encouragement: at most 20 words. analysis: at most 60 words."""
        user_prompt = f'Homework question from learner: "{question}"\nGenerate scaffold JSON now.'

        try:
            payload = await self._structured(HomeworkPayload, system_prompt, user_prompt, temperature=0.45)
        except (LLMError, GenerationError) as e:
            logger.warning(f"Homework scaffold fell back: {e}")
            return GeneratedContent(
                kind="homework_scaffold",
                text=(
                    f"Homework: {question}\n"
                    "Let's break it down: identify the type of question, isolate what is being asked, "
                    "then plan your steps. Send me your first step and I'll check it."
                ),
                expectation="awaiting_follow_up",
                subject=subject, grade=grade, topic=topic,
                data={"hints": list(FALLBACK_HINTS)},
                fallback=True,
            )

        steps = "\n".join(
            f"{s.step_number}) {s.action}" + (f"\n   Hint: {s.hint}" if s.hint else "")
            for s in payload.steps
        )
        mistakes = "\n- ".join(payload.common_mistakes)
        text = f"Homework Support ({topic})\nQuestion: {question}\n\nAnalysis: {payload.analysis}\nSteps:\n{steps}"
        if mistakes:
            text += f"\n\nWatch out:\n- {mistakes}"
        if payload.encouragement:
            text += f"\n{payload.encouragement}"
        text += "\nReply with your working or ask for a 'hint'."

        content = GeneratedContent(
            kind="homework_scaffold",
            text=text,
            expectation="awaiting_follow_up",
            subject=subject, grade=grade, topic=topic,
            data={**payload.model_dump(), "hints": [s.hint for s in payload.steps if s.hint][:3]},
        )
        self._cache_set(key, content)
        return content

    # -- practice question (never cached: "more" must give a new one) --

    async def practice_question(
        self, subject: Optional[str], grade: Optional[str], topic: Optional[str], difficulty: str
    ) -> GeneratedContent:
        subject, grade, topic = self._resolve(subject, grade, topic)
        system_prompt = f"""You are a {subject} practice question generator for Grade {grade} CAPS curriculum.

Generate ONE {difficulty} difficulty practice question on {topic}.
The question should be clear, concise, and suitable for WhatsApp.

Return JSON with:
{{
  "question_text": "the practice question",
  "hint1": "subtle hint that doesn't give away the answer",
  "hint2": "more direct hint about approach",
  "hint3": "substantial hint about the method",
  "solution": "step-by-step worked solution"
}}

Keep the question under 100 words unless a data set is needed.
Do not include the solution or hints in question_text."""

        try:
            payload = await self._structured(
                PracticeQuestionPayload, system_prompt,
                f"Create a {difficulty} {topic} question for Grade {grade}",
                temperature=0.7,
            )
        except (LLMError, GenerationError) as e:
            logger.warning(f"Practice question fell back for {topic}/{difficulty}: {e}")
            question = fallback_practice_question(subject, grade, topic, difficulty)
            return GeneratedContent(
                kind="practice_question",
                text=question.text,
                expectation="practice_attempt",
                subject=subject, grade=grade, topic=topic,
                data={"question": question},
                fallback=True,
            )

        question = Question(
            id=f"practice_{uuid.uuid4().hex[:12]}",
            text=payload.question_text,
            topic=topic,
            difficulty=difficulty,
            subject=subject,
            grade=grade,
            hints=(payload.hint1, payload.hint2, payload.hint3),
            solution=payload.solution,
            kind="practice",
        )
        return GeneratedContent(
            kind="practice_question",
            text=question.text,
            expectation="practice_attempt",
            subject=subject, grade=grade, topic=topic,
            data={"question": question},
        )

    # -- practice pack --

    async def practice_pack(
        self, subject: Optional[str], grade: Optional[str], topic: Optional[str], difficulty: str
    ) -> GeneratedContent:
        subject, grade, topic = self._resolve(subject, grade, topic)
        key = self.cache_key(kind="practice_pack", subject=subject, grade=grade, topic=topic, difficulty=difficulty)
        cached = self._cache_get(key)
        if cached:
            return cached

        system_prompt = f"""You are a South African CAPS-aligned question generator.

Generate a 3-question practice pack. Return STRICT JSON:
{{
  "questions": [
    {{ "id": "string", "text": "string", "difficulty": "easy|medium|hard|challenge", "marks": 2 }},
    {{ ... }},
    {{ ... }}
  ]
}}

Rules:
- Grade: {grade}
- Subject: {subject}
- Topic: {topic}
- Base difficulty: {difficulty}
- Q1 easiest, Q3 hardest.
- DO NOT include answers. Keep each question under 35 words unless a data set is needed."""

        try:
            payload = await self._structured(PracticePackPayload, system_prompt, "Practice pack now.", temperature=0.35)
            questions = [q.model_dump() for q in payload.questions]
            fallback = False
        except (LLMError, GenerationError) as e:
            logger.warning(f"Practice pack fell back for {topic}: {e}")
            questions = FALLBACK_PRACTICE_PACK
            fallback = True

        lines = "\n".join(f"{i}) {q['text']}" for i, q in enumerate(questions, start=1))
        content = GeneratedContent(
            kind="practice_pack",
            text=(
                f"Practice ({topic} – {difficulty}).\n{lines}\n\n"
                "Tell me if you don't know where to start. Say 'more' for harder or name a new topic."
            ),
            expectation="awaiting_answers",
            subject=subject, grade=grade, topic=topic,
            data={"questions": questions, "difficulty": difficulty},
            fallback=fallback,
        )
        if not fallback:
            self._cache_set(key, content)
        return content

    # -- exam pack --

    async def exam_pack(
        self,
        subject: Optional[str],
        grade: Optional[str],
        topic: Optional[str],
        mode: str = "exam_prep",
        fresh: bool = False,
    ) -> GeneratedContent:
        """
        3-4 exam-style questions of escalating difficulty. fresh=True skips
        the cache read so "more questions" yields a new set.
        """
        subject = normalize_subject_name(subject) or "Mathematics"
        grade = str(grade or "11")
        topic = normalize_topic(topic) or "mixed topics"
        key = self.cache_key(kind="exam_pack", subject=subject, grade=grade, topic=topic, mode=mode)
        if not fresh:
            cached = self._cache_get(key)
            if cached:
                return cached

        style = "a past paper style question set" if mode == "past_paper" else "an exam preparation pack"
        system_prompt = f"""You are a South African CAPS exam specialist for Grade {grade} {subject}.
Create {style} focusing on {topic}.

Return STRICT JSON:
{{
  "questions": [
    {{ "id": "string", "marks": 5, "difficulty": "easy|medium|hard", "text": "exam-style question (no answer)" }}
  ],
  "strategy_tip": "string"
}}

Rules:
- 3 or 4 questions, escalating difficulty (easy -> medium -> hard).
- Each question at most 45 words unless a data set is needed.
- No solutions. No final answers.
- strategy_tip at most 25 words."""

        try:
            payload = await self._structured(ExamPackPayload, system_prompt, "Generate exam pack now.", temperature=0.6)
            questions = [q.model_dump() for q in payload.questions]
            tip = payload.strategy_tip
            fallback = False
        except (LLMError, GenerationError) as e:
            logger.warning(f"Exam pack fell back for {topic}: {e}")
            questions = FALLBACK_EXAM_QUESTIONS
            tip = "Read every question twice and show all your working for method marks."
            fallback = True

        label = "Past Paper Practice" if mode == "past_paper" else "Exam Prep"
        lines = "\n".join(
            f"{i}) [{q['difficulty']}, {q['marks']} marks] {q['text']}"
            for i, q in enumerate(questions, start=1)
        )
        content = GeneratedContent(
            kind="exam_pack",
            text=f"{label} ({topic} – Grade {grade} {subject})\n{lines}\n\nStrategy: {tip}",
            expectation="awaiting_answers",
            subject=subject, grade=grade, topic=topic,
            data={"questions": questions, "strategy_tip": tip, "mode": mode},
            fallback=fallback,
        )
        if not fallback:
            self._cache_set(key, content)
        return content

    async def exam_solutions(
        self, subject: str, grade: str, topic: str, mode: str, questions: list[str]
    ) -> GeneratedContent:
        """Marking-memo style, step-marked solutions for the given set."""
        kind = "past paper questions" if mode == "past_paper" else "exam questions"
        numbered = "\n".join(f"{i}) {q}" for i, q in enumerate(questions, start=1))
        system_prompt = f"""You are providing solutions for Grade {grade} {subject} {topic} {kind}.

Provide clear, step-by-step solutions appropriate for a marking memorandum.
Format for WhatsApp (brief paragraphs, clear notation). For each question include:
1. The solution approach
2. Key steps in the working, each marked with a tick (✓) for the mark it earns
3. The final answer clearly marked
4. One common mistake to avoid"""

        try:
            text = await self.llm.complete(
                system_prompt, f"Questions:\n{numbered}\n\nProvide the memo now.",
                temperature=0.5, max_tokens=1200,
            )
        except LLMError as e:
            logger.warning(f"Exam solutions fell back for {topic}: {e}")
            return GeneratedContent(
                kind="exam_solutions",
                text=(
                    f"Here are solution guidelines for {topic}:\n\n"
                    "• Break down each problem step by step\n"
                    "• Apply the key formulas and concepts\n"
                    "• Show all your working clearly\n"
                    "• Double-check your final answer"
                ),
                expectation="awaiting_follow_up",
                subject=subject, grade=grade, topic=topic,
                fallback=True,
            )
        return GeneratedContent(
            kind="exam_solutions",
            text=text,
            expectation="awaiting_follow_up",
            subject=subject, grade=grade, topic=topic,
        )

    # -- diagnostic warm-up --

    async def diagnostic_question(
        self, subject: Optional[str], grade: Optional[str], topic: Optional[str]
    ) -> GeneratedContent:
        subject, grade, topic = self._resolve(subject, grade, topic)
        key = self.cache_key(kind="diagnostic", subject=subject, grade=grade, topic=topic)
        cached = self._cache_get(key)
        if cached:
            return cached

        system_prompt = f"""You are a South African CAPS-aligned tutoring content generator.

Task: produce ONE exam warm-up diagnostic question ONLY.
Return STRICT JSON:
{{ "question_text": "string", "difficulty": "easy|medium|hard" }}

Constraints:
- Grade: {grade}
- Subject: {subject}
- Topic: {topic}
- Concise (at most 30 words). NO answer. NO hints. No numbering."""

        try:
            payload = await self._structured(DiagnosticPayload, system_prompt, "Diagnostic now.", temperature=0.35)
            question_text, difficulty, fallback = payload.question_text, payload.difficulty, False
        except (LLMError, GenerationError) as e:
            logger.warning(f"Diagnostic fell back for {topic}: {e}")
            question_text, difficulty, fallback = "Solve for x: 2x + 5 = 17", "easy", True

        content = GeneratedContent(
            kind="diagnostic_question",
            text=(
                f"Exam warm-up ({subject} G{grade}, {topic}).\nQ1) {question_text}\n"
                "If stuck: 'hint'. Say 'full pack' for a full set."
            ),
            expectation="awaiting_answers",
            subject=subject, grade=grade, topic=topic,
            data={"question_text": question_text, "difficulty": difficulty},
            fallback=fallback,
        )
        if not fallback:
            self._cache_set(key, content)
        return content

    # -- hints and solutions for a stored question --

    async def hint(self, question: Question, level: int) -> GeneratedContent:
        """Hint number `level` (1-3) for a question that has no stored hint at that level."""
        system_prompt = f"""You are providing hint #{level} for a Grade {question.grade} {question.subject} question.
The topic is {question.topic} and the difficulty is {question.difficulty}.

Hint guidelines by level:
- Level 1: very general hint about approach/formula
- Level 2: more specific hint about the first step
- Level 3: substantial hint that guides through the key part

Question: {question.text}

Provide ONLY the hint, under 50 words."""

        try:
            text = await self.llm.complete(system_prompt, f"Generate hint #{level}", temperature=0.4, max_tokens=150)
            fallback = False
        except LLMError as e:
            logger.warning(f"Hint generation fell back: {e}")
            text = FALLBACK_HINTS[min(level - 1, len(FALLBACK_HINTS) - 1)]
            fallback = True
        return GeneratedContent(
            kind="hint", text=text, expectation="practice_attempt",
            subject=question.subject or "", grade=question.grade or "", topic=question.topic or "",
            fallback=fallback,
        )

    async def solution(self, question: Question) -> GeneratedContent:
        system_prompt = f"""You are providing a step-by-step solution to this Grade {question.grade} {question.subject} question.

Question: {question.text}

Provide a clear, step-by-step solution with explanations.
Format for WhatsApp (brief paragraphs, simple notation). Highlight the final answer clearly."""

        try:
            text = await self.llm.complete(system_prompt, "Provide the step-by-step solution", temperature=0.4, max_tokens=500)
            fallback = False
        except LLMError as e:
            logger.warning(f"Solution generation fell back: {e}")
            text = (
                "I'm having trouble generating a detailed solution right now. The key is to break the "
                "problem down step by step."
            )
            fallback = True
        return GeneratedContent(
            kind="solution", text=text, expectation="practice_followup",
            subject=question.subject or "", grade=question.grade or "", topic=question.topic or "",
            fallback=fallback,
        )
