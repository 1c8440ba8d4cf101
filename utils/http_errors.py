from fastapi import HTTPException, status
from services.exceptions import (
    AuthorizationError,
    NotFoundError,
    PartialWriteError,
    SoufraError,
    ValidationError,
)


def to_http_exception(exc: SoufraError, action: str = "process request") -> HTTPException:
    """Translate a domain error into the response the dashboard shows."""
    if isinstance(exc, ValidationError):
        return HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=str(exc))
    if isinstance(exc, NotFoundError):
        return HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail=str(exc))
    if isinstance(exc, AuthorizationError):
        return HTTPException(status_code=status.HTTP_403_FORBIDDEN, detail=str(exc))
    if isinstance(exc, PartialWriteError):
        # Reported as a plain failure; the order header is left in place
        return HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail=f"Failed to {action}",
            headers={"X-Partial-Order-Id": str(exc.order_id)},
        )
    return HTTPException(status_code=status.HTTP_500_INTERNAL_SERVER_ERROR, detail=f"Failed to {action}")
