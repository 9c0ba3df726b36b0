"""
Application exceptions.

Store failures never raise out of the security core (they degrade to the
documented fallback), so the only exception type callers see is for bad
client input.
"""

from __future__ import annotations

from typing import Optional


class InputValidationError(ValueError):
    """Raised when client-supplied data fails validation or sanitization checks."""

    def __init__(self, message: str, errors: Optional[list[dict[str, str]]] = None):
        super().__init__(message)
        self.message = message
        self.errors = errors or []

    def to_dict(self) -> dict:
        return {"message": self.message, "errors": self.errors}
