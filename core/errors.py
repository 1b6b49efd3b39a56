"""Exception hierarchy for the invoice intake pipeline.

Failures are contained at the smallest unit possible:
- ParseError: a whole document could not be read as an invoice
- StoreError: a persistence call failed (one line, one record)
- NotificationError: an operator message could not be delivered
"""

from typing import Optional


class IntakeError(Exception):
    """Base exception for intake errors."""
    pass


class ParseError(IntakeError):
    """The document lacks the minimum structure of an invoice."""

    def __init__(self, message: str, source_file: Optional[str] = None):
        super().__init__(message)
        self.source_file = source_file

    def __str__(self) -> str:
        message = super().__str__()
        if self.source_file:
            return f"{self.source_file}: {message}"
        return message


class StoreError(IntakeError):
    """A store rejected or failed a read/write."""

    def __init__(self, message: str, transient: bool = False):
        super().__init__(message)
        self.transient = transient


class NotificationError(IntakeError):
    """Delivery to the operator channel failed."""

    def __init__(self, message: str, status_code: int = 0):
        super().__init__(message)
        self.status_code = status_code
