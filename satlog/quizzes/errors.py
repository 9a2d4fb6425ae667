class QuizLifecycleError(Exception):
    pass


class QuizPersistenceError(QuizLifecycleError):
    pass


class InvalidQuizTransitionError(QuizLifecycleError):
    pass


class QuizClientMismatchError(QuizLifecycleError):
    pass
