# backend/backoffice/errors.py
"""
Error taxonomy for core operations.

Every business failure is one of five kinds. Inside a transaction the
services raise them so the enclosing unit of work rolls back; at the
command boundary they are turned into a returned ``Result`` so callers
handle the failure path explicitly.

KINDS:
- ValidationError: missing/invalid field, bad quantity, duplicate identifier
- InsufficientStock: a decrement larger than the quantity on hand
- NotFound: referenced document does not exist (or vanished concurrently)
- InvalidStateTransition: document is not in the required source state
- TransactionConflict: optimistic-concurrency abort; retry with fresh reads
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Any, Generic, Optional, TypeVar

T = TypeVar("T")


class CoreError(Exception):
    """Base class for typed, user-presentable failures."""

    kind = "CoreError"

    def __init__(self, message: str, **details: Any):
        super().__init__(message)
        self.message = message
        self.details = details

    def to_dict(self) -> dict:
        return {
            "kind": self.kind,
            "message": self.message,
            "details": self.details,
        }


class ValidationError(CoreError):
    kind = "ValidationError"


class InsufficientStock(CoreError):
    kind = "InsufficientStock"

    def __init__(self, product_id: str, location_id: str, *, available: int, requested: int):
        super().__init__(
            f"Insufficient stock for product {product_id} at {location_id}. "
            f"Available: {available}, requested: {requested}",
            product_id=product_id,
            location_id=location_id,
            available=available,
            requested=requested,
        )
        self.available = available
        self.requested = requested


class NotFound(CoreError):
    kind = "NotFound"

    def __init__(self, entity: str, entity_id: Any):
        super().__init__(f"{entity} {entity_id} not found", entity=entity, id=entity_id)
        self.entity = entity
        self.entity_id = entity_id


class InvalidStateTransition(CoreError):
    kind = "InvalidStateTransition"

    def __init__(self, entity: str, current: str, action: str, reason: str | None = None):
        message = f"Cannot {action} {entity} in {current} state"
        if reason:
            message = f"{message}: {reason}"
        super().__init__(message, entity=entity, current=current, action=action)
        self.current = current
        self.action = action


class TransactionConflict(CoreError):
    kind = "TransactionConflict"

    def __init__(self, message: str = "The record was modified by someone else. Please try again."):
        super().__init__(message)


@dataclass(frozen=True)
class Result(Generic[T]):
    """Outcome of a core operation: a value or a typed error, never both."""

    value: Optional[T] = None
    error: Optional[CoreError] = None

    @property
    def ok(self) -> bool:
        return self.error is None

    @classmethod
    def success(cls, value: T) -> "Result[T]":
        return cls(value=value)

    @classmethod
    def failure(cls, error: CoreError) -> "Result[T]":
        return cls(error=error)

    def unwrap(self) -> T:
        if self.error is not None:
            raise self.error
        return self.value  # type: ignore[return-value]
