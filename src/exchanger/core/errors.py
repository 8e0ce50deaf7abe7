"""
Domain errors for the Exchanger core.

Services raise these exceptions; the API layer renders them with the
HTTP status carried by each class. Every error has a stable ``code``
so that callers can branch on the kind of failure without parsing the
human readable message.

Usage:
    try:
        await offers_service.accept_offer(db, offer_id, actor_id)
    except ConflictError as e:
        print(e.code, e.data.get("status"))
"""
from __future__ import annotations

from typing import Any


class ExchangerError(Exception):
    """Base exception for the Exchanger backend."""

    code = "exchanger_error"
    status_code = 500
    default_message = "Unexpected error"

    def __init__(self, message: str = "", **data: Any) -> None:
        self.message = message or self.default_message
        self.data = data
        super().__init__(self.message)

    def as_dict(self) -> dict:
        return {
            "detail": self.message,
            "code": self.code,
            "data": self.data,
        }


class NotFoundError(ExchangerError):
    """A referenced listing, offer or user does not exist."""

    code = "not_found"
    status_code = 404
    default_message = "Not found"


class ForbiddenError(ExchangerError):
    """The actor is not allowed to view or act on the resource."""

    code = "forbidden"
    status_code = 403
    default_message = "Not authorized"


class ValidationError(ExchangerError):
    """Caller supplied data that can never succeed as sent."""

    code = "validation_error"
    status_code = 400
    default_message = "Invalid request"


class ConflictError(ExchangerError):
    """The resource is in a state that does not allow the operation."""

    code = "conflict"
    status_code = 409
    default_message = "Conflicting state"


class StorageError(ExchangerError):
    """Persistence failure."""

    code = "storage_error"
    status_code = 500
    default_message = "Storage failure"
