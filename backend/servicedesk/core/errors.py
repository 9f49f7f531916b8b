"""Domain error taxonomy.

Services raise these; routers translate them into HTTP responses.
"""

from __future__ import annotations

from typing import Optional

from fastapi import HTTPException


class ServiceDeskError(Exception):
    status_code = 500

    def __init__(self, message: str) -> None:
        super().__init__(message)
        self.message = message


class ValidationError(ServiceDeskError):
    status_code = 400

    def __init__(self, message: str, fields: Optional[list[str]] = None) -> None:
        super().__init__(message)
        self.fields = list(fields or [])


class InvalidStatusError(ValidationError):
    pass


class NotFoundError(ServiceDeskError):
    status_code = 404


class ConflictError(ServiceDeskError):
    status_code = 409


class NotificationError(ServiceDeskError):
    status_code = 502


class StoreError(ServiceDeskError):
    status_code = 500


class DomainHTTPException(HTTPException):
    """HTTPException carrying the offending field names of a ValidationError."""

    def __init__(self, status_code: int, detail: str, fields: Optional[list[str]] = None) -> None:
        super().__init__(status_code, detail)
        self.fields = list(fields or [])


def to_http_exception(exc: ServiceDeskError) -> HTTPException:
    return DomainHTTPException(exc.status_code, exc.message, getattr(exc, "fields", None))
