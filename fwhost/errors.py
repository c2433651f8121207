from fastapi import HTTPException, Request
from fastapi.responses import JSONResponse


class ServiceError(HTTPException):
    """Infrastructure fault that ends the current request."""

    def __init__(self, status_code=500, detail="internal error", code="internal_error"):
        super().__init__(status_code=status_code, detail=detail)
        self.code = code


class StorageError(ServiceError):
    def __init__(self, detail="failed to write firmware file"):
        super().__init__(status_code=500, detail=detail, code="storage_error")


class DatabaseError(ServiceError):
    def __init__(self, detail="database operation failed"):
        super().__init__(status_code=500, detail=detail, code="database_error")


class InvalidActionError(ServiceError):
    def __init__(self, action: str):
        super().__init__(
            status_code=400,
            detail=f"unknown action {action!r}",
            code="invalid_action",
        )


async def service_error_handler(request: Request, exc: ServiceError):
    return JSONResponse(
        status_code=exc.status_code,
        content={"code": exc.code, "detail": exc.detail},
    )
