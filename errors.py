"""
errors.py
Ledger error taxonomy. Every failure a service reports is a LedgerError subclass,
so callers (the Streamlit pages) can show `exc.message` next to the form.
"""

from __future__ import annotations


class LedgerError(Exception):
    """Base application error with a stable code."""

    def __init__(self, message: str, code: str = "ERROR"):
        self.message = message
        self.code = code
        super().__init__(message)


class NotFoundError(LedgerError):
    def __init__(self, message: str = "Not found"):
        super().__init__(message, code="NOT_FOUND")


class DuplicateEmailError(LedgerError):
    def __init__(self, message: str = "A member with this email already exists"):
        super().__init__(message, code="DUPLICATE_EMAIL")


class InsufficientCreditsError(LedgerError):
    def __init__(self, available: int):
        self.available = available
        super().__init__(
            f"Insufficient credits. Member has {available} credit(s) available.",
            code="INSUFFICIENT_CREDITS",
        )


class ValidationError(LedgerError):
    def __init__(self, errors: list[str] | str):
        if isinstance(errors, str):
            errors = [errors]
        self.errors = list(errors)
        super().__init__(" ".join(self.errors), code="VALIDATION_ERROR")
