from datetime import datetime, timedelta, timezone
from typing import Any

from sqlalchemy import select
from sqlalchemy.orm import Session

from quizgen.core.config import get_settings
from quizgen.core.exceptions import ValidationError
from quizgen.models.common import utcnow
from quizgen.models.document import Document
from quizgen.models.question import Question
from quizgen.models.quiz import Quiz
from quizgen.schemas.quiz import QuizCreateRequest
from quizgen.services.generation.questions import NormalizedQuestion, QuestionDefaults


def ensure_start_time(start_time: datetime, now: datetime | None = None) -> None:
    settings = get_settings()
    now = now or utcnow()
    if start_time.tzinfo is None:
        start_time = start_time.replace(tzinfo=timezone.utc)
    earliest = now + timedelta(minutes=settings.min_start_lead_minutes)
    if start_time < earliest:
        raise ValidationError(
            f"Quiz start time must be at least {settings.min_start_lead_minutes} minutes in the future",
            details={"start_time": start_time.isoformat(), "earliest_allowed": earliest.isoformat()},
        )


def load_documents(db: Session, document_ids: list[str]) -> list[Document]:
    if not document_ids:
        return []
    return list(db.scalars(select(Document).where(Document.id.in_(document_ids))).all())


def document_metadata(documents: list[Document]) -> list[dict[str, Any]]:
    return [
        {
            "id": doc.id,
            "filename": doc.filename,
            "fileSize": doc.file_size,
            "mimeType": doc.mime_type,
            "uploadDate": doc.created_at.isoformat() if doc.created_at else None,
            "externalDocumentId": doc.external_document_id,
            "status": doc.status,
        }
        for doc in documents
    ]


def build_generation_payload(request: QuizCreateRequest, documents: list[Document]) -> dict[str, Any]:
    return {
        "documentIds": request.document_ids,
        "documentMetadata": document_metadata(documents),
        "questionCount": request.question_count,
        "topics": request.topics,
        "books": request.books,
        "chapters": request.chapters,
        "difficulty": request.difficulty,
        "bloomsLevel": request.blooms_levels,
        "timeLimit": request.duration,
        "quizTitle": request.title,
        "quizDescription": request.description,
    }


def question_defaults(difficulty: str, blooms_levels: list[str], books: list[str], chapters: list[str]) -> QuestionDefaults:
    return QuestionDefaults(
        difficulty=difficulty or "medium",
        blooms_level=blooms_levels[0] if blooms_levels else "knowledge",
        book=books[0] if books else "",
        chapter=chapters[0] if chapters else "",
    )


def new_draft_quiz(educator_id: str, request: QuizCreateRequest, total_questions: int) -> Quiz:
    return Quiz(
        educator_id=educator_id,
        title=request.title,
        description=request.description,
        document_ids=request.document_ids,
        configuration={
            "difficulty": request.difficulty,
            "bloomsLevels": request.blooms_levels,
            "topics": request.topics,
            "books": request.books,
            "chapters": request.chapters,
        },
        start_time=request.start_time,
        timezone=request.timezone,
        duration=request.duration,
        status="draft",
        total_questions=total_questions,
        passing_score=get_settings().default_passing_score,
        shuffle_questions=request.shuffle_questions,
    )


def add_questions(db: Session, quiz_id: str, questions: list[NormalizedQuestion]) -> list[Question]:
    rows = [Question(quiz_id=quiz_id, **question.to_dict()) for question in questions]
    db.add_all(rows)
    return rows


def question_record(row: Question) -> dict[str, Any]:
    return {
        "id": row.id,
        "quiz_id": row.quiz_id,
        "question_text": row.question_text,
        "options": row.options,
        "correct_answer": row.correct_answer,
        "explanation": row.explanation,
        "difficulty": row.difficulty,
        "blooms_level": row.blooms_level,
        "topic": row.topic,
        "book": row.book,
        "chapter": row.chapter,
        "order_index": row.order_index,
    }


def find_recent_duplicate(db: Session, educator_id: str, title: str, now: datetime | None = None) -> Quiz | None:
    settings = get_settings()
    cutoff = (now or utcnow()) - timedelta(seconds=settings.duplicate_window_seconds)
    return db.scalar(
        select(Quiz)
        .where(Quiz.educator_id == educator_id, Quiz.title == title, Quiz.created_at >= cutoff)
        .order_by(Quiz.created_at.desc())
        .limit(1)
    )
