from satlog.quizzes.constants import QuizStatus
from satlog.quizzes.manager import QuizLifecycleManager
from satlog.quizzes.models import Quiz

__all__ = [
    "Quiz",
    "QuizLifecycleManager",
    "QuizStatus",
]
