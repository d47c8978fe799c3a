from datetime import datetime, timezone

from pydantic import BaseModel, Field, field_validator


class QuizCreateRequest(BaseModel):
    title: str = Field(min_length=1, max_length=255)
    description: str = ""
    document_ids: list[str] = Field(default_factory=list)
    difficulty: str = "medium"
    blooms_levels: list[str] = Field(default_factory=lambda: ["knowledge"])
    topics: list[str] = Field(default_factory=list)
    books: list[str] = Field(default_factory=list)
    chapters: list[str] = Field(default_factory=list)
    question_count: int = Field(default=10, ge=1, le=100)
    start_time: datetime
    timezone: str = "Asia/Kolkata"
    duration: int = Field(default=30, ge=1, le=24 * 60)
    shuffle_questions: bool = False

    @field_validator("start_time")
    @classmethod
    def _assume_utc(cls, value: datetime) -> datetime:
        if value.tzinfo is None:
            return value.replace(tzinfo=timezone.utc)
        return value.astimezone(timezone.utc)


class QuestionRead(BaseModel):
    id: str
    quiz_id: str
    question_text: str
    options: list[dict]
    correct_answer: str
    explanation: str
    difficulty: str
    blooms_level: str
    topic: str
    book: str
    chapter: str
    order_index: int

    model_config = {"from_attributes": True}


class QuizRead(BaseModel):
    id: str
    educator_id: str
    title: str
    description: str
    document_ids: list[str]
    configuration: dict
    start_time: datetime
    timezone: str
    duration: int
    status: str
    total_questions: int
    passing_score: int
    shuffle_questions: bool
    created_at: datetime

    model_config = {"from_attributes": True}


class QuizCreateResponse(BaseModel):
    success: bool = True
    quiz_id: str
    quiz: QuizRead
    questions: list[QuestionRead]
    questions_created: int
    generation_timed_out: bool
    used_placeholders: bool
    message: str | None = None


class GenerationAccepted(BaseModel):
    success: bool = True
    job_id: str
    quiz_id: str
    question_id: str | None = None
    message: str
    poll_url: str
    estimated_time: int = 30


class QuestionReplaceRequest(BaseModel):
    difficulty: str | None = None
    book: str | None = None
    chapter: str | None = None
