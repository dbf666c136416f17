from datetime import datetime
from typing import Optional


class LedgerError(Exception):
    """Base class for rejections raised by the inventory ledger."""

    reason = "ledger error"

    def __init__(self, message: Optional[str] = None) -> None:
        super().__init__(message or self.reason)


class NotFoundError(LedgerError, LookupError):
    """A referenced book, member or outstanding loan does not exist."""

    reason = "not found"

    def __init__(self, message: Optional[str] = None, *, reason: Optional[str] = None) -> None:
        if reason:
            self.reason = reason
        super().__init__(message)


class OutOfStockError(LedgerError):
    """No copy of the book is available to issue or sell."""

    reason = "out of stock"

    def __init__(self, book_id: int, available_on: Optional[datetime] = None) -> None:
        self.book_id = book_id
        self.available_on = available_on
        super().__init__(f"Book {book_id} is out of stock.")


class InvalidInputError(LedgerError, ValueError):
    """A value supplied by the caller is non-numeric or out of range."""

    reason = "invalid input"
