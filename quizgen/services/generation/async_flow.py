"""Fire-and-poll quiz generation.

A creation request registers a job, hands the payload to the generator and
returns as soon as the generator acknowledges it. The generator later POSTs
the questions to a callback endpoint, which completes the job; clients poll
the registry for progress in the meantime.
"""

import logging
import threading
import uuid
from typing import Any

from sqlalchemy import select
from sqlalchemy.orm import Session

from quizgen.core.config import get_settings
from quizgen.core.exceptions import (
    DuplicateQuizError,
    GeneratorNotConfiguredError,
    GeneratorUnavailableError,
    JobNotFoundError,
    JobStateError,
    NotFoundError,
    ValidationError,
)
from quizgen.models.question import Question
from quizgen.models.quiz import Quiz
from quizgen.schemas.job import GenerationCallback
from quizgen.schemas.quiz import QuestionReplaceRequest, QuizCreateRequest
from quizgen.services.generation.client import GeneratorClient
from quizgen.services.generation.questions import extract_questions, normalize_questions
from quizgen.services.jobs.registry import GenerationJob, JobKind, JobRegistry, JobStatus
from quizgen.services.quiz_store import (
    add_questions,
    build_generation_payload,
    document_metadata,
    ensure_start_time,
    find_recent_duplicate,
    load_documents,
    new_draft_quiz,
    question_defaults,
    question_record,
)

logger = logging.getLogger(__name__)

CALLBACK_PATH = "/educator/quiz/webhook-callback"
REPLACE_CALLBACK_PATH = "/educator/quiz/webhook-callback-replace"
POLL_PATH = "/educator/quiz/poll-status"
REPLACEMENT_PREFIX = "replace-"

# fixed pool, picked by hash of (educator_id, title)
_SUBMISSION_LOCKS = tuple(threading.Lock() for _ in range(64))


def poll_url(job_id: str) -> str:
    return f"{POLL_PATH}?job_id={job_id}"


def submission_lock(educator_id: str, title: str) -> threading.Lock:
    """Lock serializing the duplicate check and insert for one educator and title."""
    return _SUBMISSION_LOCKS[hash((educator_id, title)) % len(_SUBMISSION_LOCKS)]


def _dispatch(
    registry: JobRegistry,
    client: GeneratorClient | None,
    job: GenerationJob,
    payload: dict[str, Any],
    started_message: str,
) -> GenerationJob:
    ids = {"job_id": job.job_id, "quiz_id": job.quiz_id}
    if client is None:
        registry.update(
            job.job_id,
            status=JobStatus.FAILED,
            error="No generator configured",
            message="Quiz generation webhook not configured",
        )
        logger.error("generator_not_configured", extra=ids)
        raise GeneratorNotConfiguredError(details=ids)

    try:
        client.acknowledge(payload)
    except GeneratorUnavailableError as exc:
        registry.update(
            job.job_id,
            status=JobStatus.FAILED,
            error=exc.message,
            message="Could not start quiz generation",
        )
        exc.details.update(ids)
        raise

    started = registry.update(job.job_id, status=JobStatus.PROCESSING, progress=10, message=started_message)
    logger.info("generation_job_started", extra=ids)
    return started or job


def start_quiz_job(
    db: Session,
    registry: JobRegistry,
    client: GeneratorClient | None,
    educator_id: str,
    request: QuizCreateRequest,
) -> GenerationJob:
    ensure_start_time(request.start_time)

    documents = load_documents(db, request.document_ids)
    with submission_lock(educator_id, request.title):
        duplicate = find_recent_duplicate(db, educator_id, request.title)
        if duplicate is not None:
            logger.warning(
                "duplicate_quiz_rejected", extra={"existing_quiz_id": duplicate.id, "educator_id": educator_id}
            )
            raise DuplicateQuizError(duplicate.id, request.title)

        quiz = new_draft_quiz(educator_id, request, total_questions=request.question_count)
        db.add(quiz)
        db.commit()
    db.refresh(quiz)

    settings = get_settings()
    job_id = str(uuid.uuid4())
    payload = {
        "jobId": job_id,
        "callbackUrl": settings.callback_url(CALLBACK_PATH),
        **build_generation_payload(request, documents),
    }
    job = registry.create(job_id, quiz.id, payload, owner_id=educator_id, kind=JobKind.QUIZ)
    return _dispatch(registry, client, job, payload, "Quiz generation started")


def start_replacement_job(
    db: Session,
    registry: JobRegistry,
    client: GeneratorClient | None,
    educator_id: str,
    quiz_id: str,
    question_id: str,
    options: QuestionReplaceRequest,
) -> GenerationJob:
    quiz = db.scalar(select(Quiz).where(Quiz.id == quiz_id, Quiz.educator_id == educator_id))
    if quiz is None:
        raise NotFoundError("Quiz", quiz_id)
    question = db.scalar(select(Question).where(Question.id == question_id, Question.quiz_id == quiz_id))
    if question is None:
        raise NotFoundError("Question", question_id)

    config = quiz.configuration or {}
    settings = get_settings()
    job_id = f"{REPLACEMENT_PREFIX}{uuid.uuid4()}"
    payload = {
        "jobId": job_id,
        "callbackUrl": settings.callback_url(REPLACE_CALLBACK_PATH),
        "quizId": quiz.id,
        "questionId": question.id,
        "questionIdToReplace": question.id,
        "documentIds": quiz.document_ids,
        "documentMetadata": document_metadata(load_documents(db, quiz.document_ids)),
        "questionCount": 1,
        "topics": config.get("topics", []),
        "books": [options.book] if options.book else config.get("books", []),
        "chapters": [options.chapter] if options.chapter else config.get("chapters", []),
        "difficulty": options.difficulty or config.get("difficulty", "intermediate"),
        "bloomsLevel": config.get("bloomsLevels", ["knowledge", "comprehension"]),
        "timeLimit": quiz.duration,
        "quizTitle": quiz.title,
        "quizDescription": quiz.description,
        "isReplacement": True,
    }
    job = registry.create(job_id, quiz.id, payload, owner_id=educator_id, kind=JobKind.REPLACEMENT)
    return _dispatch(registry, client, job, payload, "Creating new biblical study question...")


def _processing_job(registry: JobRegistry, callback: GenerationCallback, kind: JobKind) -> GenerationJob:
    if not callback.job_id:
        raise ValidationError("Job ID is required")
    job = registry.get(callback.job_id)
    if job is None:
        logger.warning("callback_job_not_found", extra={"job_id": callback.job_id})
        raise JobNotFoundError(callback.job_id)
    if job.kind is not kind:
        expected = REPLACE_CALLBACK_PATH if job.kind is JobKind.REPLACEMENT else CALLBACK_PATH
        raise ValidationError(
            "Wrong callback endpoint for this job",
            details={"job_id": job.job_id, "expected_endpoint": expected},
        )
    if job.status is not JobStatus.PROCESSING:
        raise JobStateError(job.job_id, job.status.value)
    return job


def _callback_error(callback: GenerationCallback) -> str | None:
    if callback.error:
        return str(callback.error)
    if callback.status == "error":
        return "Unknown error occurred"
    return None


def _callback_questions(callback: GenerationCallback) -> list[dict]:
    if callback.questions_data is not None:
        return [q for q in callback.questions_data if isinstance(q, dict)]
    return extract_questions(callback.model_extra or {})


def _record_progress(registry: JobRegistry, job: GenerationJob, callback: GenerationCallback, default: str) -> GenerationJob:
    updated = registry.update(
        job.job_id,
        status=JobStatus.PROCESSING,
        progress=callback.progress if callback.progress is not None else 50,
        message=callback.message or default,
    )
    logger.info("generation_progress", extra={"job_id": job.job_id, "progress": updated.progress if updated else None})
    return updated or job


def _fail(registry: JobRegistry, job: GenerationJob, error: str, message: str) -> GenerationJob:
    failed = registry.update(job.job_id, status=JobStatus.FAILED, progress=0, error=error, message=message)
    logger.error("generation_job_failed", extra={"job_id": job.job_id, "error": error})
    return failed or job


def apply_generation_callback(db: Session, registry: JobRegistry, callback: GenerationCallback) -> GenerationJob:
    job = _processing_job(registry, callback, JobKind.QUIZ)

    error = _callback_error(callback)
    if error:
        return _fail(registry, job, error, callback.message or "Quiz generation failed")

    if callback.status != "success":
        return _record_progress(registry, job, callback, "Processing quiz generation...")
    raw_questions = _callback_questions(callback)
    if not raw_questions:
        return _fail(registry, job, "Generator returned no questions", "Quiz generation failed")

    payload = job.request_payload
    defaults = question_defaults(
        payload.get("difficulty", "medium"),
        payload.get("bloomsLevel", []),
        payload.get("books", []),
        payload.get("chapters", []),
    )
    questions, skipped = normalize_questions(raw_questions, defaults)
    if not questions:
        return _fail(
            registry,
            job,
            f"All {len(raw_questions)} questions failed validation",
            "Failed to store any generated questions",
        )

    rows = add_questions(db, job.quiz_id, questions)
    quiz = db.scalar(select(Quiz).where(Quiz.id == job.quiz_id))
    if quiz is not None:
        quiz.total_questions = len(rows)
    db.commit()

    if skipped:
        message = f"Generated {len(rows)} of {len(raw_questions)} questions ({skipped} failed)"
    else:
        message = f"Successfully generated {len(rows)} questions"
    completed = registry.update(
        job.job_id,
        status=JobStatus.COMPLETED,
        progress=100,
        message=message,
        result=[question_record(row) for row in rows],
    )
    if completed is None or completed.status is not JobStatus.COMPLETED:
        logger.warning("generation_job_finished_elsewhere", extra={"job_id": job.job_id})
    else:
        logger.info("generation_job_completed", extra={"job_id": job.job_id, "questions": len(rows)})
    return completed or job


def apply_replacement_callback(db: Session, registry: JobRegistry, callback: GenerationCallback) -> GenerationJob:
    job = _processing_job(registry, callback, JobKind.REPLACEMENT)

    error = _callback_error(callback)
    if error:
        return _fail(registry, job, error, callback.message or "Question replacement failed")

    if callback.status != "success":
        return _record_progress(registry, job, callback, "Generating replacement question...")
    raw_questions = _callback_questions(callback)
    if not raw_questions:
        return _fail(registry, job, "Generator returned no questions", "Question replacement failed")

    payload = job.request_payload
    question_id = payload.get("questionIdToReplace")
    defaults = question_defaults(
        payload.get("difficulty", "intermediate"),
        payload.get("bloomsLevel", []),
        payload.get("books", []),
        payload.get("chapters", []),
    )
    questions, _ = normalize_questions(raw_questions[:1], defaults)
    if not questions:
        return _fail(registry, job, "Invalid question data received", "Missing required fields in generated question")

    row = db.scalar(select(Question).where(Question.id == question_id, Question.quiz_id == job.quiz_id))
    if row is None:
        return _fail(registry, job, "Question to replace no longer exists", "Failed to update question")

    replacement = questions[0].to_dict()
    replacement.pop("order_index")
    for key, value in replacement.items():
        setattr(row, key, value)
    db.commit()
    db.refresh(row)

    completed = registry.update(
        job.job_id,
        status=JobStatus.COMPLETED,
        progress=100,
        message="Question replaced successfully",
        result=[question_record(row)],
    )
    logger.info("replacement_job_completed", extra={"job_id": job.job_id, "question_id": row.id})
    return completed or job


def job_for_owner(registry: JobRegistry, job_id: str, owner_id: str) -> GenerationJob:
    job = registry.get(job_id)
    if job is None or (job.owner_id is not None and job.owner_id != owner_id):
        logger.info("poll_job_not_found", extra={"job_id": job_id})
        raise JobNotFoundError(job_id)
    return job
