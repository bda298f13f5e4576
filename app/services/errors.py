"""
Service-layer exceptions

Routers translate these into HTTP responses. Data-integrity problems and
background failures are never raised; they are repaired or logged in place.
"""


class QuizEngineError(Exception):
    """Base class for errors surfaced to the immediate caller"""

    status_code = 500

    def __init__(self, message: str):
        super().__init__(message)
        self.message = message


class NotFoundError(QuizEngineError):
    """User, quiz or collection does not exist"""

    status_code = 404


class ConflictError(QuizEngineError):
    """Duplicate assignment, already skipped, duplicate quiz name"""

    status_code = 400


class ValidationError(QuizEngineError):
    """Malformed input rejected before any mutation"""

    status_code = 400
