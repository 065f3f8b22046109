from rest_framework import status
from rest_framework.exceptions import APIException


class ExamConfigurationError(APIException):
    """The exam cannot be taken or graded as configured (zero marks, no questions)."""

    status_code = status.HTTP_422_UNPROCESSABLE_ENTITY
    default_detail = "This exam is not configured correctly."
    default_code = "exam_configuration"


class ExamUnavailable(APIException):
    status_code = status.HTTP_403_FORBIDDEN
    default_detail = "This exam is not open."
    default_code = "exam_unavailable"


class InvalidStatusTransition(APIException):
    status_code = status.HTTP_409_CONFLICT
    default_detail = "This status change is not allowed."
    default_code = "invalid_transition"


class AttemptAlreadySubmitted(APIException):
    status_code = status.HTTP_409_CONFLICT
    default_detail = "Exam already submitted."
    default_code = "already_submitted"


class GradingConflict(APIException):
    status_code = status.HTTP_409_CONFLICT
    default_detail = "This attempt was graded by someone else in the meantime. Reload and retry."
    default_code = "grading_conflict"
