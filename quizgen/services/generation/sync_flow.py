import logging
from dataclasses import dataclass

from sqlalchemy.orm import Session

from quizgen.models.question import Question
from quizgen.models.quiz import Quiz
from quizgen.schemas.quiz import QuizCreateRequest
from quizgen.services.generation.client import GenerationFallback, GeneratorClient
from quizgen.services.generation.questions import normalize_questions, placeholder_questions
from quizgen.services.quiz_store import (
    add_questions,
    build_generation_payload,
    ensure_start_time,
    load_documents,
    new_draft_quiz,
    question_defaults,
)

logger = logging.getLogger(__name__)

TIMED_OUT_MESSAGE = (
    "The question generation service timed out. Sample questions have been created. "
    "You can edit them in the review page."
)
NOT_CONFIGURED_MESSAGE = "Question generation is not configured. Sample questions have been created for review."


@dataclass(slots=True)
class SyncCreationResult:
    quiz: Quiz
    questions: list[Question]
    generation_timed_out: bool
    used_placeholders: bool

    @property
    def message(self) -> str | None:
        if self.generation_timed_out:
            return TIMED_OUT_MESSAGE
        if self.used_placeholders:
            return NOT_CONFIGURED_MESSAGE
        return None


def create_quiz_and_wait(
    db: Session,
    educator_id: str,
    request: QuizCreateRequest,
    client: GeneratorClient | None,
) -> SyncCreationResult:
    ensure_start_time(request.start_time)

    documents = load_documents(db, request.document_ids)
    payload = build_generation_payload(request, documents)
    defaults = question_defaults(request.difficulty, request.blooms_levels, request.books, request.chapters)

    timed_out = False
    raw_questions: list[dict] = []
    if client is None:
        logger.info("generator_not_configured_using_placeholders")
    else:
        try:
            raw_questions = client.generate(payload)
        except GenerationFallback as exc:
            logger.warning("generation_fallback", extra={"reason": exc.reason, "title": request.title})
            timed_out = True

    questions, skipped = normalize_questions(raw_questions, defaults)
    if skipped:
        logger.warning("generated_questions_skipped", extra={"skipped": skipped, "kept": len(questions)})
    used_placeholders = not questions
    if used_placeholders:
        if client is not None:
            timed_out = True
        questions, _ = normalize_questions(
            placeholder_questions(request.books, request.difficulty, request.blooms_levels), defaults
        )

    quiz = new_draft_quiz(educator_id, request, total_questions=len(questions))
    db.add(quiz)
    db.flush()
    rows = add_questions(db, quiz.id, questions)
    db.commit()
    db.refresh(quiz)

    logger.info(
        "quiz_created",
        extra={
            "quiz_id": quiz.id,
            "questions_created": len(rows),
            "generation_timed_out": timed_out,
            "used_placeholders": used_placeholders,
        },
    )
    return SyncCreationResult(
        quiz=quiz,
        questions=rows,
        generation_timed_out=timed_out,
        used_placeholders=used_placeholders,
    )
