"""
CAPS curriculum lookup plus the keyword tables used to spot subjects and
topics in free text. Pure lookups, no state.
"""
import re
from dataclasses import dataclass, field
from typing import Optional

_MATHS_FET = {
    "10": ["Algebra", "Functions", "Number Patterns", "Geometry", "Trigonometry", "Statistics", "Probability"],
    "11": ["Functions", "Number Patterns", "Algebra", "Geometry", "Trigonometry", "Statistics", "Probability"],
    "12": [
        "Functions", "Sequences and Series", "Finance", "Trigonometry",
        "Polynomials", "Differential Calculus", "Statistics", "Probability",
    ],
}
_MATHS_SENIOR = [
    "Numbers", "Patterns", "Functions", "Algebra", "Geometry",
    "Measurement", "Data Handling", "Probability",
]
_MATHS_LIT = [
    "Numbers and Operations", "Patterns", "Functions",
    "Space and Shape", "Measurement", "Data Handling",
]
_PHYSICAL_SCIENCES = [
    "Matter and Materials", "Chemical Change", "Mechanics", "Waves, Sound and Light",
]
_LIFE_SCIENCES = [
    "Life at Molecular, Cellular and Tissue Level",
    "Life Processes in Plants and Animals",
    "Environmental Studies",
    "Diversity, Change and Continuity",
]
_ENGLISH = [
    "Listening and Speaking", "Reading and Viewing",
    "Writing and Presenting", "Language Structures and Conventions",
]
_GEOGRAPHY = [
    "Climate and Weather", "Geomorphology", "Settlements",
    "Economic Geography of South Africa",
]

# canonical name -> grade -> topics
CAPS_SUBJECTS: dict[str, dict[str, list[str]]] = {
    "Mathematics": {"8": _MATHS_SENIOR, "9": _MATHS_SENIOR, **_MATHS_FET},
    "Mathematical Literacy": {g: _MATHS_LIT for g in ("10", "11", "12")},
    "Physical Sciences": {
        "10": _PHYSICAL_SCIENCES,
        "11": _PHYSICAL_SCIENCES,
        "12": _PHYSICAL_SCIENCES + ["Electricity and Magnetism"],
    },
    "Life Sciences": {g: _LIFE_SCIENCES for g in ("10", "11", "12")},
    "English Home Language": {g: _ENGLISH for g in ("8", "9", "10", "11", "12")},
    "Geography": {g: _GEOGRAPHY for g in ("10", "11", "12")},
}

SUBJECT_ALIASES = {
    "math": "Mathematics",
    "maths": "Mathematics",
    "mathematics": "Mathematics",
    "mathematical literacy": "Mathematical Literacy",
    "math lit": "Mathematical Literacy",
    "maths lit": "Mathematical Literacy",
    "physics": "Physical Sciences",
    "physical science": "Physical Sciences",
    "physical sciences": "Physical Sciences",
    "chemistry": "Physical Sciences",
    "biology": "Life Sciences",
    "life science": "Life Sciences",
    "life sciences": "Life Sciences",
    "english": "English Home Language",
    "geography": "Geography",
}

# Ordered: the first matching pattern wins.
TOPIC_PATTERNS: list[tuple[str, re.Pattern]] = [
    ("Algebra", re.compile(r"\balgebra\w*|\bequations?\b|\bfactor\w*|\bquadratic\w*")),
    ("Trigonometry", re.compile(r"\btrig\w*|\bsin\b|\bcos\b|\btan\b")),
    ("Functions", re.compile(r"\bfunctions?\b|\bgraphs?\b|\bparabola\w*|\bhyperbola\w*")),
    ("Geometry", re.compile(r"\bgeometry\b|\bcircles?\b|\btriangles?\b|\bmidpoint\b|\bgradient\b")),
    ("Statistics", re.compile(r"\bstat\w*|\bmean\b|\bmedian\b|\bdata\b")),
    ("Probability", re.compile(r"\bprobab\w*")),
    ("Number Patterns", re.compile(r"\bpatterns?\b|\bsequences?\b|\bseries\b")),
    ("Calculus", re.compile(r"\bcalculus\b|\bderivative\w*|\bdifferentiat\w*")),
    ("Finance", re.compile(r"\bfinance\b|\binterest\b|\bannuit\w*")),
]


@dataclass
class SubjectInfo:
    """What the curriculum says about one subject (optionally at one grade)."""
    canonical_name: str
    grades: list[str] = field(default_factory=list)
    topics: list[str] = field(default_factory=list)


def normalize_subject_name(name: Optional[str]) -> Optional[str]:
    """Map a free-form subject name onto its CAPS name. Unknown names pass through."""
    if not name:
        return None
    cleaned = name.strip()
    if not cleaned or cleaned.lower() == "unknown":
        return None
    return SUBJECT_ALIASES.get(cleaned.lower(), cleaned)


def get_subject_info(name: Optional[str], grade: Optional[str] = None) -> Optional[SubjectInfo]:
    canonical = normalize_subject_name(name)
    if canonical not in CAPS_SUBJECTS:
        return None
    by_grade = CAPS_SUBJECTS[canonical]
    topics: list[str] = []
    if grade:
        topics = list(by_grade.get(str(grade), []))
    else:
        for grade_topics in by_grade.values():
            topics.extend(t for t in grade_topics if t not in topics)
    return SubjectInfo(canonical_name=canonical, grades=list(by_grade), topics=topics)


def detect_topic(message: str) -> Optional[str]:
    """Return the canonical topic named in a message, if any."""
    lowered = message.lower()
    for topic, pattern in TOPIC_PATTERNS:
        if pattern.search(lowered):
            return topic
    return None


def detect_subject(message: str) -> Optional[str]:
    """Return the canonical subject named in a message, if any. Longest alias wins."""
    lowered = message.lower()
    for alias in sorted(SUBJECT_ALIASES, key=len, reverse=True):
        if re.search(rf"\b{re.escape(alias)}\b", lowered):
            return SUBJECT_ALIASES[alias]
    return None


def normalize_topic(raw: Optional[str]) -> Optional[str]:
    """Canonicalise a topic string from a user or the model; None for empty/unknown."""
    if not raw:
        return None
    cleaned = raw.strip()
    if not cleaned or cleaned.lower() in ("unknown", "none", "null"):
        return None
    return detect_topic(cleaned) or cleaned[0].upper() + cleaned[1:]
