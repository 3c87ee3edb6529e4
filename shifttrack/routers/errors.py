from fastapi import HTTPException

from shifttrack.core.errors import ConflictError, InvalidStateError, NotFoundError, TimeTrackingError


def to_http_exception(exc: TimeTrackingError) -> HTTPException:
    if isinstance(exc, ConflictError):
        return HTTPException(status_code=409, detail=str(exc))
    if isinstance(exc, NotFoundError):
        return HTTPException(status_code=404, detail=str(exc))
    if isinstance(exc, InvalidStateError):
        return HTTPException(status_code=400, detail=str(exc))
    return HTTPException(status_code=400, detail=str(exc))
