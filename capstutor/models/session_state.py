"""
Per-user conversation state.

CRITICAL: hint_level and practice_difficulty are guarded here, not in the
agents. hint_level only moves up while the active question keeps its id and
drops to 0 the moment a question with a different id replaces it.
"""
import copy
from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum
from typing import Optional

MAX_HINTS = 3
HISTORY_LIMIT = 12

# Ordered easiest -> hardest.
DIFFICULTY_LADDER = ("easy", "medium", "hard", "challenge")


def _now() -> datetime:
    return datetime.now(timezone.utc)


def step_difficulty(current: Optional[str], direction: str) -> str:
    """
    Move one rung along the difficulty ladder, clamping at both ends.

    direction is "easier" or "harder". An unrecognised current value
    resolves to "medium".
    """
    if current not in DIFFICULTY_LADDER:
        return "medium"
    index = DIFFICULTY_LADDER.index(current)
    if direction == "easier":
        index = max(index - 1, 0)
    elif direction == "harder":
        index = min(index + 1, len(DIFFICULTY_LADDER) - 1)
    return DIFFICULTY_LADDER[index]


def initial_difficulty(grade: Optional[str]) -> str:
    """Grade 11 and up start at medium, everyone else at easy."""
    try:
        return "medium" if int(str(grade)) >= 11 else "easy"
    except (TypeError, ValueError):
        return "easy"


class ExamMode(str, Enum):
    PAST_PAPER = "past_paper"
    EXAM_PREP = "exam_prep"


@dataclass(frozen=True)
class Question:
    """A practice question, homework problem or exam pack being worked on."""
    id: str
    text: str
    topic: Optional[str] = None
    difficulty: Optional[str] = None
    subject: Optional[str] = None
    grade: Optional[str] = None
    hints: tuple[str, ...] = ()
    solution: Optional[str] = None   # may be filled lazily
    is_fallback: bool = False
    kind: str = "practice"           # 'practice'|'homework'|'exam'

    def with_solution(self, solution: str) -> "Question":
        """Same question (same id) with the solution attached."""
        return Question(
            id=self.id,
            text=self.text,
            topic=self.topic,
            difficulty=self.difficulty,
            subject=self.subject,
            grade=self.grade,
            hints=self.hints,
            solution=solution,
            is_fallback=self.is_fallback,
            kind=self.kind,
        )


@dataclass(frozen=True)
class ExamFlowState:
    active: bool
    subject: str
    grade: str
    focus_topic: str
    mode: ExamMode = ExamMode.EXAM_PREP
    stage: str = "questions"


@dataclass
class HistoryEntry:
    role: str       # 'user'|'assistant'
    content: str
    timestamp: datetime = field(default_factory=_now)


@dataclass
class Session:
    """
    Mutable per-user session. Created lazily, destroyed by idle expiry.

    Agents never mutate a Session they were handed; they send patches to
    the session store, which calls apply_patch on its own copy.
    """
    user_id: str
    subject: Optional[str] = None
    grade: Optional[str] = None
    welcome_sent: bool = False
    has_received_help: bool = False
    current_agent: str = "conversation_agent"
    expectation: Optional[str] = None
    last_help_type: Optional[str] = None
    active_question: Optional[Question] = None
    hint_level: int = 0
    exam_flow: Optional[ExamFlowState] = None
    practice_topic: Optional[str] = None
    practice_difficulty: Optional[str] = None
    homework_questions: tuple[str, ...] = ()
    homework_index: Optional[int] = None
    history: list[HistoryEntry] = field(default_factory=list)
    created_at: datetime = field(default_factory=_now)
    updated_at: datetime = field(default_factory=_now)

    def apply_patch(self, patch: dict) -> None:
        """Merge a patch into the session, enforcing the hint/difficulty invariants."""
        unknown = set(patch) - _PATCHABLE_FIELDS
        if unknown:
            raise KeyError(f"Unknown session fields: {sorted(unknown)}")

        difficulty = patch.get("practice_difficulty", self.practice_difficulty)
        if difficulty is not None and difficulty not in DIFFICULTY_LADDER:
            raise ValueError(f"practice_difficulty must be one of {DIFFICULTY_LADDER}, got {difficulty!r}")

        question_changed = False
        if "active_question" in patch:
            old_id = self.active_question.id if self.active_question else None
            new_q = patch["active_question"]
            question_changed = (new_q.id if new_q else None) != old_id

        for key, value in patch.items():
            if key == "hint_level":
                continue
            setattr(self, key, value)

        if question_changed:
            self.hint_level = 0
        elif "hint_level" in patch:
            # Never decreases while the question is unchanged, never exceeds the cap.
            self.hint_level = min(max(int(patch["hint_level"]), self.hint_level), MAX_HINTS)

        self.updated_at = _now()

    def append_history(self, role: str, content: str) -> None:
        """Append a turn, evicting the oldest entries beyond HISTORY_LIMIT."""
        self.history.append(HistoryEntry(role=role, content=content))
        if len(self.history) > HISTORY_LIMIT:
            del self.history[: len(self.history) - HISTORY_LIMIT]
        self.updated_at = _now()

    def is_expired(self, idle_seconds: float, now: Optional[datetime] = None) -> bool:
        now = now or _now()
        return (now - self.updated_at).total_seconds() > idle_seconds

    def snapshot(self) -> "Session":
        """Detached copy handed to agents; mutating it does not touch the store."""
        return copy.deepcopy(self)

    def conversation_history(self) -> list[dict]:
        """History in chat-completion message format."""
        return [{"role": h.role, "content": h.content} for h in self.history]


_PATCHABLE_FIELDS = {
    "subject",
    "grade",
    "welcome_sent",
    "has_received_help",
    "current_agent",
    "expectation",
    "last_help_type",
    "active_question",
    "hint_level",
    "exam_flow",
    "practice_topic",
    "practice_difficulty",
    "homework_questions",
    "homework_index",
}
