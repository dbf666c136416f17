import logging
from collections import defaultdict
from datetime import datetime, timedelta
from decimal import Decimal
from threading import RLock
from typing import Any, Callable, Dict, Iterable, List, Optional

from lms.book import ActiveLoan, Book, BookStatus, Loan, Member, Sale, to_money
from lms.exceptions import InvalidInputError, NotFoundError, OutOfStockError

logger = logging.getLogger(__name__)

DEFAULT_BORROW_DAYS = 14


def _require_int(value: Any, name: str) -> int:
    if isinstance(value, bool) or not isinstance(value, int):
        raise InvalidInputError(f"{name} must be an integer, got {value!r}.")
    return value


def _require_id(value: Any, name: str) -> int:
    value = _require_int(value, name)
    if value <= 0:
        raise InvalidInputError(f"{name} must be a positive integer, got {value}.")
    return value


class Library:
    """In-memory system of record for books, members, loans and sales.

    Books and members are supplied once at construction and are read-only
    afterwards, apart from a book's purchase price. Loans and sales are
    append-only logs; a loan is mutated exactly once, when it is returned.
    Availability is never stored, it is always derived from the logs:

        available = max(0, total_copies - sold - outstanding loans)
    """

    def __init__(
        self,
        books: Iterable[Book] = (),
        members: Iterable[Member] = (),
        loans: Iterable[Loan] = (),
        sales: Iterable[Sale] = (),
        *,
        default_borrow_days: int = DEFAULT_BORROW_DAYS,
        require_known_members: bool = True,
        clock: Callable[[], datetime] = datetime.now,
    ) -> None:
        if _require_int(default_borrow_days, "default_borrow_days") <= 0:
            raise InvalidInputError("default_borrow_days must be positive.")
        self.default_borrow_days = default_borrow_days
        self.require_known_members = require_known_members
        self._clock = clock
        self._lock = RLock()

        self._books: Dict[int, Book] = {}
        self._members: Dict[int, Member] = {}
        self._loans: List[Loan] = []
        self._loans_by_id: Dict[int, Loan] = {}
        self._loans_by_book: Dict[int, List[Loan]] = defaultdict(list)
        self._sales: List[Sale] = []
        self._sales_by_book: Dict[int, List[Sale]] = defaultdict(list)

        for book in books:
            if book.id in self._books:
                raise InvalidInputError(f"Duplicate book id {book.id}.")
            self._books[book.id] = book
        for member in members:
            if member.id in self._members:
                raise InvalidInputError(f"Duplicate member id {member.id}.")
            self._members[member.id] = member
        for loan in loans:
            self._require_book(loan.book_id)
            if loan.id in self._loans_by_id:
                raise InvalidInputError(f"Duplicate loan id {loan.id}.")
            self._append_loan(loan)
        for sale in sales:
            self._require_book(sale.book_id)
            if any(s.id == sale.id for s in self._sales):
                raise InvalidInputError(f"Duplicate sale id {sale.id}.")
            self._append_sale(sale)

        # Well-formed seeds number their records 1..n, so this is count + 1.
        self._next_loan_id = max([len(self._loans)] + [loan.id for loan in self._loans]) + 1
        self._next_sale_id = max([len(self._sales)] + [s.id for s in self._sales]) + 1

    # ------------------------- Lookups ------------------------- #
    def list_books(self) -> List[Book]:
        return list(self._books.values())

    def find_book(self, book_id: int) -> Optional[Book]:
        return self._books.get(book_id)

    def search_books(self, query: str) -> List[Book]:
        """Case-insensitive title substring search, in catalog order."""
        needle = (query or "").strip().lower()
        return [b for b in self._books.values() if needle in b.title.lower()]

    def list_members(self) -> List[Member]:
        return list(self._members.values())

    def find_member(self, member_id: int) -> Optional[Member]:
        return self._members.get(member_id)

    def get_loan(self, loan_id: int) -> Optional[Loan]:
        return self._loans_by_id.get(loan_id)

    def list_loans(self, active_only: bool = False) -> List[Loan]:
        if active_only:
            return [loan for loan in self._loans if loan.is_active]
        return list(self._loans)

    def list_sales(self) -> List[Sale]:
        return list(self._sales)

    # ------------------------- Derived state ------------------------- #
    def available_copies(self, book_id: int) -> int:
        book = self._require_book(book_id)
        available = book.total_copies - self.sold_count(book_id) - self.active_loan_count(book_id)
        return max(0, available)

    def active_loan_count(self, book_id: int) -> int:
        self._require_book(book_id)
        return sum(1 for loan in self._loans_by_book.get(book_id, ()) if loan.is_active)

    def sold_count(self, book_id: int) -> int:
        self._require_book(book_id)
        return len(self._sales_by_book.get(book_id, ()))

    def earliest_return_date(self, book_id: int) -> Optional[datetime]:
        """Earliest due date among the book's outstanding loans, if any."""
        self._require_book(book_id)
        dues = [loan.due_at for loan in self._loans_by_book.get(book_id, ()) if loan.is_active]
        return min(dues) if dues else None

    def active_loans(self, book_id: int) -> List[ActiveLoan]:
        """Outstanding loans of a book in the order they were issued."""
        self._require_book(book_id)
        result = []
        for loan in self._loans_by_book.get(book_id, ()):
            if not loan.is_active:
                continue
            member = self._members.get(loan.member_id)
            result.append(ActiveLoan(
                loan_id=loan.id,
                member_id=loan.member_id,
                member_name=member.name if member else None,
                issued_at=loan.issued_at,
                due_at=loan.due_at,
            ))
        return result

    def book_status(self, book_id: int) -> BookStatus:
        with self._lock:
            book = self._require_book(book_id)
            return BookStatus(
                book=book,
                available=self.available_copies(book_id),
                earliest_return=self.earliest_return_date(book_id),
                active_loans=self.active_loans(book_id),
            )

    def get_statistics(self) -> Dict[str, Any]:
        """Get library statistics."""
        with self._lock:
            books = self.list_books()
            return {
                "total_titles": len(books),
                "total_copies": sum(b.total_copies for b in books),
                "available_copies": sum(self.available_copies(b.id) for b in books),
                "active_loans": sum(1 for loan in self._loans if loan.is_active),
                "total_sales": len(self._sales),
                "sales_revenue": sum((s.unit_price for s in self._sales), Decimal("0.00")),
                "members": len(self._members),
            }

    # ------------------------- Transitions ------------------------- #
    def issue(self, book_id: int, member_id: int, borrow_days: int = 0) -> Loan:
        """Lend one copy of a book to a member.

        A non-positive ``borrow_days`` falls back to the default borrow period.
        Raises NotFoundError for an unknown book (or member, when membership
        is enforced) and OutOfStockError when no copy is available.
        """
        book_id = _require_id(book_id, "book_id")
        member_id = _require_id(member_id, "member_id")
        borrow_days = _require_int(borrow_days, "borrow_days")
        if borrow_days <= 0:
            borrow_days = self.default_borrow_days

        with self._lock:
            self._require_book(book_id)
            self._check_member(member_id)
            self._check_in_stock(book_id, "issue")

            now = self._clock()
            try:
                due_at = now + timedelta(days=borrow_days)
            except (OverflowError, ValueError) as e:
                raise InvalidInputError(f"borrow_days is out of range: {borrow_days}.") from e
            loan = Loan(
                id=self._next_loan_id,
                book_id=book_id,
                member_id=member_id,
                issued_at=now,
                due_at=due_at,
            )
            self._append_loan(loan)
            self._next_loan_id += 1

        logger.info(f"Issued book {book_id} to member {member_id} as loan {loan.id}, due {loan.due_at:%Y-%m-%d}")
        return loan

    def buy(self, book_id: int, buyer_id: int) -> Sale:
        """Sell one copy of a book at its current price."""
        book_id = _require_id(book_id, "book_id")
        buyer_id = _require_id(buyer_id, "buyer_id")

        with self._lock:
            book = self._require_book(book_id)
            self._check_member(buyer_id)
            self._check_in_stock(book_id, "buy")

            sale = Sale(
                id=self._next_sale_id,
                book_id=book_id,
                buyer_id=buyer_id,
                sold_at=self._clock(),
                unit_price=book.price,
            )
            self._append_sale(sale)
            self._next_sale_id += 1

        logger.info(f"Sold book {book_id} to member {buyer_id} as sale {sale.id} for {sale.unit_price}")
        return sale

    def return_loan(self, loan_id: int) -> Loan:
        """Close an outstanding loan. A loan can only be returned once."""
        loan_id = _require_id(loan_id, "loan_id")

        with self._lock:
            loan = self._loans_by_id.get(loan_id)
            if loan is None or not loan.is_active:
                logger.warning(f"Return rejected: no active loan with id {loan_id}")
                raise NotFoundError(f"Active loan {loan_id} not found.", reason="active loan not found")
            loan.mark_returned(self._clock())

        logger.info(f"Loan {loan_id} returned for book {loan.book_id}")
        return loan

    def update_book_price(self, book_id: int, price) -> Book:
        """Change a book's purchase price. Recorded sales keep their own price."""
        book_id = _require_id(book_id, "book_id")
        new_price = to_money(price, "price")
        with self._lock:
            book = self._require_book(book_id)
            old_price, book.price = book.price, new_price
        logger.info(f"Price of book {book_id} changed from {old_price} to {new_price}")
        return book

    # ------------------------- Helpers ------------------------- #
    def _require_book(self, book_id: int) -> Book:
        book = self._books.get(book_id)
        if book is None:
            raise NotFoundError(f"Book {book_id} not found.", reason="book not found")
        return book

    def _check_member(self, member_id: int) -> None:
        if self.require_known_members and member_id not in self._members:
            logger.warning(f"Rejected unknown member id {member_id}")
            raise NotFoundError(f"Member {member_id} not found.", reason="member not found")

    def _check_in_stock(self, book_id: int, action: str) -> None:
        if self.available_copies(book_id) <= 0:
            logger.warning(f"Cannot {action} book {book_id}: out of stock")
            raise OutOfStockError(book_id, self.earliest_return_date(book_id))

    def _append_loan(self, loan: Loan) -> None:
        self._loans.append(loan)
        self._loans_by_id[loan.id] = loan
        self._loans_by_book[loan.book_id].append(loan)

    def _append_sale(self, sale: Sale) -> None:
        self._sales.append(sale)
        self._sales_by_book[sale.book_id].append(sale)
