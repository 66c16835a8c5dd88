from __future__ import annotations

from dataclasses import dataclass
from typing import Any

from fastapi import HTTPException

UNAUTHORIZED = "unauthorized"
NOT_FOUND = "not_found"
STORE_BUSY = "store_busy"
VALIDATION_ERROR = "validation_error"


@dataclass
class SyncApiError:
    """Body carried under ``detail`` for every sync admin API failure."""

    code: str
    message: str
    details: dict[str, Any] | None = None

    def to_dict(self) -> dict[str, Any]:
        payload: dict[str, Any] = {"code": self.code, "message": self.message}
        if self.details:
            payload["details"] = self.details
        return payload


class SyncHTTPException(HTTPException):
    def __init__(self, status_code: int, error: SyncApiError) -> None:
        super().__init__(status_code=status_code, detail=error.to_dict())
        self.error = error


def unauthorized() -> SyncHTTPException:
    return SyncHTTPException(401, SyncApiError(code=UNAUTHORIZED, message="Missing or invalid admin token"))


def not_found(message: str, **details: Any) -> SyncHTTPException:
    return SyncHTTPException(404, SyncApiError(code=NOT_FOUND, message=message, details=details or None))


def store_busy(store_id: str) -> SyncHTTPException:
    return SyncHTTPException(
        409,
        SyncApiError(
            code=STORE_BUSY,
            message=f"A sync run is already in progress for store {store_id}",
            details={"store_id": store_id},
        ),
    )
