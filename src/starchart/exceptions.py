"""Custom exception hierarchy for the Star Chart package."""

from __future__ import annotations

from typing import Dict, Mapping, Optional


class StarChartError(Exception):
    """Base class for all Star Chart specific errors."""

    status_code = 500

    def __init__(self, message: str) -> None:
        super().__init__(message)
        self.message = message

    def to_payload(self) -> Dict[str, object]:
        return {"error": self.message}


class ValidationError(StarChartError):
    """Raised when input is malformed or out of range."""

    status_code = 400

    def __init__(self, message: str, *, fields: Optional[Mapping[str, str]] = None) -> None:
        super().__init__(message)
        self.fields: Dict[str, str] = dict(fields or {})

    def to_payload(self) -> Dict[str, object]:
        payload = super().to_payload()
        if self.fields:
            payload["fields"] = dict(self.fields)
        return payload


class NotFoundError(StarChartError):
    """Raised when a child, task or ledger entry lookup fails.

    Soft-deleted records and already undone ledger entries count as missing.
    """

    status_code = 404


class UnauthorizedError(StarChartError):
    """Raised when the parent PIN is missing, wrong or locked out."""

    status_code = 401


__all__ = ["StarChartError", "ValidationError", "NotFoundError", "UnauthorizedError"]
