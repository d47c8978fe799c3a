"""Turn generator output into canonical question records."""

import re
from dataclasses import asdict, dataclass
from typing import Any, NamedTuple

CONTROL_CHARS_RE = re.compile(r"[\x00-\x1f\x7f]")
PARENTHETICAL_RE = re.compile(r"\(.*?\)")

BLOOMS_LEVELS = ("knowledge", "comprehension", "application", "analysis", "synthesis", "evaluation")

MAX_TEXT_CHARS = 2000
MAX_OPTION_CHARS = 500
MAX_ANSWER_CHARS = 10
MAX_LABEL_CHARS = 100


class ScriptureReference(NamedTuple):
    book: str
    chapter: str


@dataclass(slots=True)
class QuestionDefaults:
    difficulty: str = "medium"
    blooms_level: str = "knowledge"
    book: str = ""
    chapter: str = ""


@dataclass(slots=True)
class NormalizedQuestion:
    question_text: str
    options: list[dict[str, str]]
    correct_answer: str
    explanation: str
    difficulty: str
    blooms_level: str
    topic: str
    book: str
    chapter: str
    order_index: int

    def to_dict(self) -> dict[str, Any]:
        return asdict(self)


def extract_questions(payload: Any) -> list[dict]:
    """Pull the question list out of any response shape the generator uses.

    Accepted: ``[...]``, ``{"questions": [...]}``,
    ``{"output": {"questions": [...]}}`` and ``[{"output": {"questions": [...]}}]``.
    """
    if isinstance(payload, list):
        first = payload[0] if payload else None
        if isinstance(first, dict) and isinstance(first.get("output"), dict):
            nested = first["output"].get("questions")
            if isinstance(nested, list):
                return [q for q in nested if isinstance(q, dict)]
        return [q for q in payload if isinstance(q, dict) and "output" not in q]
    if isinstance(payload, dict):
        output = payload.get("output")
        if isinstance(output, dict) and isinstance(output.get("questions"), list):
            return [q for q in output["questions"] if isinstance(q, dict)]
        if isinstance(payload.get("questions"), list):
            return [q for q in payload["questions"] if isinstance(q, dict)]
    return []


def clean_text(value: Any, limit: int) -> str:
    if value is None:
        return ""
    return CONTROL_CHARS_RE.sub("", str(value)).strip()[:limit]


def parse_reference(reference: str) -> ScriptureReference:
    """Split ``"1 Corinthians 13:4-7"`` into book and chapter/verse parts."""
    cleaned = PARENTHETICAL_RE.sub("", reference or "").strip()
    parts = cleaned.split()
    if not parts:
        return ScriptureReference("", "")

    book_parts = [parts[0]]
    rest = parts[1:]
    if parts[0].isdigit() and rest:
        book_parts.append(rest.pop(0))
    while rest and not rest[0][0].isdigit():
        book_parts.append(rest.pop(0))
    return ScriptureReference(" ".join(book_parts), " ".join(rest))


def normalize_options(options: Any) -> list[dict[str, str]]:
    if isinstance(options, dict):
        return [
            {"id": str(key).lower(), "text": clean_text(value, MAX_OPTION_CHARS)}
            for key, value in options.items()
        ]
    if isinstance(options, list):
        normalized = []
        for idx, option in enumerate(options):
            if isinstance(option, dict) and "text" in option:
                option_id = str(option.get("id") or chr(ord("a") + idx)).lower()
                normalized.append({"id": option_id, "text": clean_text(option["text"], MAX_OPTION_CHARS)})
            elif option is not None:
                normalized.append({"id": chr(ord("a") + idx), "text": clean_text(option, MAX_OPTION_CHARS)})
        return normalized
    return []


def normalize_question(raw: dict, index: int, defaults: QuestionDefaults) -> NormalizedQuestion | None:
    question_text = clean_text(raw.get("question") or raw.get("questionText"), MAX_TEXT_CHARS)
    options = normalize_options(raw.get("options"))
    correct_answer = clean_text(raw.get("correct_answer") or raw.get("correctAnswer"), MAX_ANSWER_CHARS).lower()
    if not question_text or not options or not correct_answer:
        return None

    book = raw.get("book") or defaults.book
    chapter = raw.get("chapter") or defaults.chapter
    if raw.get("biblical_reference"):
        book, chapter = parse_reference(str(raw["biblical_reference"]))

    blooms_level = raw.get("bloomsLevel") if raw.get("bloomsLevel") in BLOOMS_LEVELS else defaults.blooms_level

    return NormalizedQuestion(
        question_text=question_text,
        options=options,
        correct_answer=correct_answer,
        explanation=clean_text(raw.get("explanation"), MAX_TEXT_CHARS),
        difficulty=clean_text(raw.get("difficulty") or defaults.difficulty, MAX_LABEL_CHARS),
        blooms_level=blooms_level,
        topic=clean_text(raw.get("topic") or raw.get("question_type"), MAX_LABEL_CHARS),
        book=clean_text(book, MAX_LABEL_CHARS),
        chapter=clean_text(chapter, MAX_LABEL_CHARS),
        order_index=index,
    )


def normalize_questions(raw_questions: list[dict], defaults: QuestionDefaults) -> tuple[list[NormalizedQuestion], int]:
    """Normalize in order; returns the valid questions and how many were skipped.

    ``order_index`` is the position among the kept questions; generator ids are
    ignored.
    """
    normalized: list[NormalizedQuestion] = []
    skipped = 0
    for raw in raw_questions:
        question = normalize_question(raw, len(normalized), defaults)
        if question is None:
            skipped += 1
            continue
        normalized.append(question)
    return normalized, skipped


def placeholder_questions(books: list[str], difficulty: str, blooms_levels: list[str]) -> list[dict]:
    """Sample questions stored when the generator gives us nothing usable."""
    first_book = books[0] if books else None
    difficulty = difficulty or "medium"
    return [
        {
            "id": 1,
            "question": f"Sample Question: According to {first_book or 'the Bible'}, what is the main theme discussed?",
            "options": {
                "A": "God's sovereignty and human responsibility",
                "B": "The importance of ritual observance",
                "C": "The genealogy of ancient peoples",
                "D": "The construction of religious buildings",
            },
            "correct_answer": "a",
            "explanation": (
                "This is a sample question. The question generator timed out or failed, so this placeholder "
                "was created. You can edit this question in the review page."
            ),
            "biblical_reference": f"{first_book or 'Genesis'} 1:1",
            "difficulty": difficulty,
            "question_type": blooms_levels[0] if blooms_levels else "knowledge",
        },
        {
            "id": 2,
            "question": "Sample Question: What lesson can we learn from this passage?",
            "options": {
                "A": "Trust in God's providence",
                "B": "Rely on human wisdom",
                "C": "Focus on material wealth",
                "D": "Avoid all challenges",
            },
            "correct_answer": "a",
            "explanation": (
                "This is a sample question created because the question generator timed out or failed. "
                "Please edit this question with actual content."
            ),
            "biblical_reference": f"{first_book or 'Psalms'} 23:1",
            "difficulty": difficulty,
            "question_type": blooms_levels[0] if blooms_levels else "comprehension",
        },
        {
            "id": 3,
            "question": "Sample Question: How can we apply this biblical principle in our daily lives?",
            "options": {
                "A": "Through prayer and meditation on God's Word",
                "B": "By ignoring spiritual matters",
                "C": "Through self-reliance only",
                "D": "By avoiding community involvement",
            },
            "correct_answer": "a",
            "explanation": "This is a placeholder question. Edit this with relevant content based on your selected passages.",
            "biblical_reference": f"{first_book or 'Matthew'} 6:33",
            "difficulty": difficulty,
            "question_type": blooms_levels[1] if len(blooms_levels) > 1 else "application",
        },
    ]
