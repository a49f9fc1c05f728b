"""Error taxonomy shared by the calculators and services."""

from __future__ import annotations

from typing import Any


class PayrollError(Exception):
    """Base error carrying a stable, caller-facing code."""

    code = "internal"

    def __init__(self, message: str, details: Any = None):
        self.message = message
        self.details = details
        super().__init__(message)

    def to_dict(self) -> dict[str, Any]:
        """Return the error as a plain dict for bulk error lists and the CLI."""
        data: dict[str, Any] = {"code": self.code, "message": self.message}
        if self.details is not None:
            data["details"] = self.details
        return data


class InvalidArgumentError(PayrollError):
    """Raised for missing or malformed ids, dates, or negative amounts."""

    code = "invalid-argument"


class NotFoundError(PayrollError):
    """Raised when a referenced employee or company does not exist."""

    code = "not-found"

    def __init__(self, entity: str, entity_id: str):
        self.entity = entity
        self.entity_id = entity_id
        super().__init__(f"{entity} {entity_id} not found.")


class FailedPreconditionError(PayrollError):
    """Raised when inputs are well-formed but inconsistent (e.g. time-out before time-in)."""

    code = "failed-precondition"


class InternalError(PayrollError):
    """Raised for tax or persistence failures not attributable to the caller."""

    code = "internal"
