"""Error taxonomy shared by the scheduling services and the HTTP layer."""

from fastapi import status


class SchedulingError(Exception):
    status_code = status.HTTP_500_INTERNAL_SERVER_ERROR

    def __init__(self, message: str):
        super().__init__(message)
        self.message = message


class ValidationError(SchedulingError):
    status_code = status.HTTP_400_BAD_REQUEST


class ConflictError(SchedulingError):
    # The clinic front end expects a taken slot to come back as a 400.
    status_code = status.HTTP_400_BAD_REQUEST


class NotFoundError(SchedulingError):
    status_code = status.HTTP_404_NOT_FOUND


class AuthenticationError(SchedulingError):
    status_code = status.HTTP_401_UNAUTHORIZED


class AuthorizationError(SchedulingError):
    status_code = status.HTTP_403_FORBIDDEN


class InternalError(SchedulingError):
    status_code = status.HTTP_500_INTERNAL_SERVER_ERROR
