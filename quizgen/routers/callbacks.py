from fastapi import APIRouter, Depends
from sqlalchemy.orm import Session

from quizgen.db.session import get_db
from quizgen.schemas.job import CallbackAck, GenerationCallback
from quizgen.services.generation.async_flow import apply_generation_callback, apply_replacement_callback
from quizgen.services.jobs.registry import JobRegistry, get_job_registry

router = APIRouter(prefix="/educator/quiz", tags=["callbacks"])


@router.post("/webhook-callback", response_model=CallbackAck)
def receive_generation_callback(
    payload: GenerationCallback,
    db: Session = Depends(get_db),
    registry: JobRegistry = Depends(get_job_registry),
) -> CallbackAck:
    job = apply_generation_callback(db, registry, payload)
    return CallbackAck(job_id=job.job_id, status=job.status.value)


@router.post("/webhook-callback-replace", response_model=CallbackAck)
def receive_replacement_callback(
    payload: GenerationCallback,
    db: Session = Depends(get_db),
    registry: JobRegistry = Depends(get_job_registry),
) -> CallbackAck:
    job = apply_replacement_callback(db, registry, payload)
    return CallbackAck(job_id=job.job_id, status=job.status.value)
