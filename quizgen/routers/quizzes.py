from fastapi import APIRouter, Depends, Query, status
from sqlalchemy.orm import Session

from quizgen.db.session import get_db
from quizgen.routers.deps import get_current_educator
from quizgen.schemas.job import JobStatusRead
from quizgen.schemas.quiz import (
    GenerationAccepted,
    QuestionRead,
    QuestionReplaceRequest,
    QuizCreateRequest,
    QuizCreateResponse,
    QuizRead,
)
from quizgen.services.generation.async_flow import job_for_owner, poll_url, start_quiz_job, start_replacement_job
from quizgen.services.generation.client import GeneratorClient, get_generator_client
from quizgen.services.generation.sync_flow import create_quiz_and_wait
from quizgen.services.jobs.registry import JobRegistry, get_job_registry

router = APIRouter(prefix="/educator/quiz", tags=["quizzes"])


@router.post("/create", response_model=QuizCreateResponse, status_code=status.HTTP_201_CREATED)
def create_quiz(
    payload: QuizCreateRequest,
    db: Session = Depends(get_db),
    educator_id: str = Depends(get_current_educator),
    client: GeneratorClient | None = Depends(get_generator_client),
) -> QuizCreateResponse:
    result = create_quiz_and_wait(db, educator_id, payload, client)
    return QuizCreateResponse(
        quiz_id=result.quiz.id,
        quiz=QuizRead.model_validate(result.quiz),
        questions=[QuestionRead.model_validate(row) for row in result.questions],
        questions_created=len(result.questions),
        generation_timed_out=result.generation_timed_out,
        used_placeholders=result.used_placeholders,
        message=result.message,
    )


@router.post("/create-async", response_model=GenerationAccepted, status_code=status.HTTP_202_ACCEPTED)
def create_quiz_async(
    payload: QuizCreateRequest,
    db: Session = Depends(get_db),
    educator_id: str = Depends(get_current_educator),
    registry: JobRegistry = Depends(get_job_registry),
    client: GeneratorClient | None = Depends(get_generator_client),
) -> GenerationAccepted:
    job = start_quiz_job(db, registry, client, educator_id, payload)
    return GenerationAccepted(
        job_id=job.job_id,
        quiz_id=job.quiz_id,
        message="Quiz generation started. Please wait while questions are being generated.",
        poll_url=poll_url(job.job_id),
    )


@router.post(
    "/{quiz_id}/questions/{question_id}/replace",
    response_model=GenerationAccepted,
    status_code=status.HTTP_202_ACCEPTED,
)
def replace_question(
    quiz_id: str,
    question_id: str,
    payload: QuestionReplaceRequest | None = None,
    db: Session = Depends(get_db),
    educator_id: str = Depends(get_current_educator),
    registry: JobRegistry = Depends(get_job_registry),
    client: GeneratorClient | None = Depends(get_generator_client),
) -> GenerationAccepted:
    job = start_replacement_job(
        db, registry, client, educator_id, quiz_id, question_id, payload or QuestionReplaceRequest()
    )
    return GenerationAccepted(
        job_id=job.job_id,
        quiz_id=job.quiz_id,
        question_id=question_id,
        message="Question replacement started. Please wait...",
        poll_url=poll_url(job.job_id),
        estimated_time=15,
    )


@router.get("/poll-status", response_model=JobStatusRead)
def poll_status(
    job_id: str = Query(..., min_length=1),
    educator_id: str = Depends(get_current_educator),
    registry: JobRegistry = Depends(get_job_registry),
) -> JobStatusRead:
    job = job_for_owner(registry, job_id, educator_id)
    return JobStatusRead(
        job_id=job.job_id,
        quiz_id=job.quiz_id,
        status=job.status.value,
        progress=job.progress,
        message=job.message,
        error=job.error,
        questions_count=job.questions_count,
        created_at=job.created_at,
        updated_at=job.updated_at,
    )
