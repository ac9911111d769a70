from fastapi import HTTPException, status

from assignhub.core.errors import InvalidSpec, NotAssigned, NotFound, PersistError, TaskCoreError

ERROR_STATUS = {
    InvalidSpec: status.HTTP_400_BAD_REQUEST,
    NotFound: status.HTTP_404_NOT_FOUND,
    NotAssigned: status.HTTP_403_FORBIDDEN,
    PersistError: status.HTTP_503_SERVICE_UNAVAILABLE,
}


def to_http_exception(exc: TaskCoreError) -> HTTPException:
    for error_type, status_code in ERROR_STATUS.items():
        if isinstance(exc, error_type):
            return HTTPException(status_code=status_code, detail=exc.detail)
    return HTTPException(status_code=status.HTTP_500_INTERNAL_SERVER_ERROR, detail=exc.detail)
