from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime
from decimal import Decimal, InvalidOperation
from typing import NamedTuple, Optional, List

from lms.exceptions import InvalidInputError


def to_money(value, name: str = "price") -> Decimal:
    """Convert ``value`` to a non-negative Decimal rounded to cents."""
    if isinstance(value, bool):
        raise InvalidInputError(f"{name} must be a number.")
    try:
        amount = Decimal(str(value))
    except (InvalidOperation, ValueError) as exc:
        raise InvalidInputError(f"{name} must be a number.") from exc
    if not amount.is_finite() or amount < 0:
        raise InvalidInputError(f"{name} must be a non-negative amount.")
    return amount.quantize(Decimal("0.01"))


def _parse_time(value) -> Optional[datetime]:
    if value is None or isinstance(value, datetime):
        return value
    return datetime.fromisoformat(value)


def _format_time(value: Optional[datetime]) -> Optional[str]:
    return value.isoformat() if value else None


@dataclass
class Book:
    """A catalog title and the number of physical copies the library owns."""

    id: int
    title: str
    author: str
    price: Decimal
    rental_fee_per_day: Decimal
    total_copies: int

    def __post_init__(self) -> None:
        self.title = self.title.strip()
        self.author = self.author.strip()
        self.price = to_money(self.price, "price")
        self.rental_fee_per_day = to_money(self.rental_fee_per_day, "rental fee")
        if isinstance(self.total_copies, bool) or not isinstance(self.total_copies, int) or self.total_copies < 0:
            raise InvalidInputError("total_copies must be a non-negative integer.")

    def __str__(self) -> str:  # pragma: no cover - string formatting trivial
        return f"{self.title} by {self.author}"

    def rental_cost(self, days: int) -> Decimal:
        return self.rental_fee_per_day * days

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "title": self.title,
            "author": self.author,
            "price": str(self.price),
            "rental_fee_per_day": str(self.rental_fee_per_day),
            "total_copies": self.total_copies,
        }

    @staticmethod
    def from_dict(data: dict) -> "Book":
        return Book(
            id=int(data["id"]),
            title=data["title"],
            author=data.get("author", ""),
            price=data.get("price", 0),
            rental_fee_per_day=data.get("rental_fee_per_day", 0),
            total_copies=int(data.get("total_copies", 1)),
        )


@dataclass(frozen=True)
class Member:
    id: int
    name: str

    def to_dict(self) -> dict:
        return {"id": self.id, "name": self.name}

    @staticmethod
    def from_dict(data: dict) -> "Member":
        return Member(id=int(data["id"]), name=data["name"].strip())


@dataclass
class Loan:
    """One borrowed copy. ``returned_at`` stays ``None`` while the copy is out."""

    id: int
    book_id: int
    member_id: int
    issued_at: datetime
    due_at: datetime
    returned_at: Optional[datetime] = None

    @property
    def is_active(self) -> bool:
        return self.returned_at is None

    def mark_returned(self, when: datetime) -> None:
        if self.returned_at is not None:
            raise ValueError(f"Loan {self.id} was already returned.")
        self.returned_at = when

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "book_id": self.book_id,
            "member_id": self.member_id,
            "issued_at": _format_time(self.issued_at),
            "due_at": _format_time(self.due_at),
            "returned_at": _format_time(self.returned_at),
        }

    @staticmethod
    def from_dict(data: dict) -> "Loan":
        return Loan(
            id=int(data["id"]),
            book_id=int(data["book_id"]),
            member_id=int(data["member_id"]),
            issued_at=_parse_time(data["issued_at"]),
            due_at=_parse_time(data["due_at"]),
            returned_at=_parse_time(data.get("returned_at")),
        )


@dataclass(frozen=True)
class Sale:
    """A sold copy. The unit price is fixed at the moment of sale."""

    id: int
    book_id: int
    buyer_id: int
    sold_at: datetime
    unit_price: Decimal

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "book_id": self.book_id,
            "buyer_id": self.buyer_id,
            "sold_at": _format_time(self.sold_at),
            "unit_price": str(self.unit_price),
        }

    @staticmethod
    def from_dict(data: dict) -> "Sale":
        return Sale(
            id=int(data["id"]),
            book_id=int(data["book_id"]),
            buyer_id=int(data["buyer_id"]),
            sold_at=_parse_time(data["sold_at"]),
            unit_price=to_money(data["unit_price"], "unit_price"),
        )


class ActiveLoan(NamedTuple):
    """Who currently holds a copy of a book, and for how long."""

    loan_id: int
    member_id: int
    member_name: Optional[str]
    issued_at: datetime
    due_at: datetime


@dataclass
class BookStatus:
    """Everything the book detail screen shows about a title."""

    book: Book
    available: int
    earliest_return: Optional[datetime] = None
    active_loans: List[ActiveLoan] = field(default_factory=list)

    @property
    def in_stock(self) -> bool:
        return self.available > 0
