from quizgen.models.document import Document
from quizgen.models.question import Question
from quizgen.models.quiz import Quiz

__all__ = ["Document", "Quiz", "Question"]
