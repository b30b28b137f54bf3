"""
Typed error taxonomy shared by the engine, the record store and the HTTP layer.

Callers branch on the exception class; the HTTP layer maps each class to a
status code via ``status_code`` and reports ``code`` in the X-Error-Code header.
"""

from __future__ import annotations


class TasteSphereError(Exception):
    """Base class for every domain error raised by TasteSphere."""

    code: str = "TASTESPHERE_ERROR"
    status_code: int = 400

    def __init__(self, message: str) -> None:
        super().__init__(message)
        self.message = message


class InvalidTransition(TasteSphereError):
    """Illegal state-graph edge, or any transition attempted on a terminal order."""

    code = "INVALID_TRANSITION"
    status_code = 409

    def __init__(self, current: str, target: str, reason: str | None = None) -> None:
        self.current = current
        self.target = target
        message = f"Cannot move order from {current} to {target}"
        if reason:
            message = f"{message}: {reason}"
        super().__init__(message)


class InvalidRange(TasteSphereError):
    """Analytics window whose end precedes its start."""

    code = "INVALID_RANGE"
    status_code = 400


class NotFound(TasteSphereError):
    """Referenced order, dish, review or user does not exist."""

    code = "NOT_FOUND"
    status_code = 404

    def __init__(self, kind: str, identifier: str) -> None:
        self.kind = kind
        self.identifier = identifier
        super().__init__(f"{kind} {identifier} not found")


class ConcurrentModification(TasteSphereError):
    """Optimistic-concurrency conflict — the record changed since it was read."""

    code = "CONCURRENT_MODIFICATION"
    status_code = 409

    def __init__(self, order_id: str, expected_version: int) -> None:
        self.order_id = order_id
        self.expected_version = expected_version
        super().__init__(
            f"Order {order_id} was modified concurrently (expected version {expected_version})"
        )


class DuplicateReview(TasteSphereError):
    """A user may review a dish only once."""

    code = "DUPLICATE_REVIEW"
    status_code = 409
