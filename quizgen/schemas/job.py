from datetime import datetime
from typing import Any

from pydantic import BaseModel, ConfigDict, Field


class JobStatusRead(BaseModel):
    job_id: str
    quiz_id: str
    status: str
    progress: int
    message: str
    error: str | None
    questions_count: int
    created_at: datetime
    updated_at: datetime


class GenerationCallback(BaseModel):
    """Body the external generator POSTs back when a job changes state."""

    model_config = ConfigDict(populate_by_name=True, extra="allow")

    job_id: str | None = Field(default=None, alias="jobId")
    status: str | None = None
    questions_data: list[dict] | None = Field(default=None, alias="questionsData")
    error: Any = None
    progress: int | None = None
    message: str | None = None


class CallbackAck(BaseModel):
    success: bool = True
    job_id: str
    status: str
    message: str = "Callback received successfully"
