class EcoPointsError(Exception):
    """Base class for errors the HTTP layer turns into JSON responses."""

    status_code = 400
    default_message = "Request failed"

    def __init__(self, message=None):
        super().__init__(message or self.default_message)
        self.message = message or self.default_message

    def to_dict(self):
        return {"error": self.message}


class NotFound(EcoPointsError):
    status_code = 404
    default_message = "Not found"


class ExpiredOrInactive(EcoPointsError):
    status_code = 410
    default_message = "This item is no longer active"


class Forbidden(EcoPointsError):
    status_code = 403
    default_message = "Forbidden"


class AlreadyCompleted(EcoPointsError):
    status_code = 409
    default_message = "Challenge already completed"


class AlreadySubmitted(EcoPointsError):
    status_code = 409
    default_message = "Quiz already submitted"


class Conflict(EcoPointsError):
    status_code = 409
    default_message = "Conflicts with existing data"


class InvalidAnswers(EcoPointsError):
    status_code = 400
    default_message = "Answers must be a list of option indexes"


class InvalidPayload(EcoPointsError):
    status_code = 400
    default_message = "Invalid request payload"


class InternalFailure(EcoPointsError):
    status_code = 503
    default_message = "Storage temporarily unavailable"
