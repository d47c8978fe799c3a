from quizgen.schemas.job import CallbackAck, GenerationCallback, JobStatusRead
from quizgen.schemas.quiz import (
    GenerationAccepted,
    QuestionRead,
    QuestionReplaceRequest,
    QuizCreateRequest,
    QuizCreateResponse,
    QuizRead,
)

__all__ = [
    "QuizCreateRequest",
    "QuizCreateResponse",
    "QuizRead",
    "QuestionRead",
    "QuestionReplaceRequest",
    "GenerationAccepted",
    "JobStatusRead",
    "GenerationCallback",
    "CallbackAck",
]
