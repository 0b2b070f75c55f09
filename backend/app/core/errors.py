"""Service error taxonomy.

Every error a service raises is an ``HTTPException`` subclass, so route
handlers let them propagate untouched and the handlers registered in
``app.main`` render them as ``{"error": message, ...extra}``.
"""

from __future__ import annotations

from typing import Any

from fastapi import HTTPException


class ServiceError(HTTPException):
    status_code_default = 500

    def __init__(self, message: str, **extra: Any) -> None:
        super().__init__(status_code=self.status_code_default, detail=message)
        self.message = message
        self.extra = extra

    def to_dict(self) -> dict[str, Any]:
        return {"error": self.message, **self.extra}


class ValidationError(ServiceError):
    status_code_default = 400


class Unauthorized(ServiceError):
    status_code_default = 401


class Forbidden(ServiceError):
    status_code_default = 403


class NotFound(ServiceError):
    status_code_default = 404


class Conflict(ServiceError):
    status_code_default = 409
