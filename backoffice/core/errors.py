from fastapi import status


class BackofficeError(Exception):
    status_code = status.HTTP_500_INTERNAL_SERVER_ERROR
    default_detail = "Internal server error"

    def __init__(self, detail: str | None = None):
        self.detail = detail or self.default_detail
        super().__init__(self.detail)


class ValidationError(BackofficeError):
    status_code = status.HTTP_400_BAD_REQUEST
    default_detail = "Invalid request"


class ForbiddenError(BackofficeError):
    status_code = status.HTTP_403_FORBIDDEN
    default_detail = "Forbidden"


class NotFoundError(BackofficeError):
    status_code = status.HTTP_404_NOT_FOUND
    default_detail = "Not found"


class ConflictError(BackofficeError):
    status_code = status.HTTP_409_CONFLICT
    default_detail = "Conflict"


class InternalError(BackofficeError):
    pass
