from fastapi import HTTPException, status

from ...services.errors import NotFoundError, ServiceError


def to_http_exception(e: ServiceError) -> HTTPException:
    """Missing entities are 404, every other rule violation is a 400."""
    if isinstance(e, NotFoundError):
        return HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail=str(e))
    return HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=str(e))
