"""
Domain exceptions raised by the services and rendered by the API layer
"""


class AssessmentError(Exception):
    """Base class for errors surfaced to the caller"""

    status_code = 500
    error = "assessment_error"

    def __init__(self, message: str):
        super().__init__(message)
        self.message = message


class ValidationError(AssessmentError):
    """Malformed or missing required data; the whole operation is rejected"""

    status_code = 400
    error = "validation_error"


class AuthorizationError(AssessmentError):
    """Actor is not the owner/authorizer of the entity"""

    status_code = 403
    error = "authorization_error"


class NotFoundError(AssessmentError):
    status_code = 404
    error = "not_found"


class ConflictError(AssessmentError):
    """Requested transition is not allowed from the entity's current state"""

    status_code = 409
    error = "conflict"


class ExternalServiceError(AssessmentError):
    """Delegated grading or generation capability failed or answered garbage"""

    status_code = 502
    error = "external_service_error"
