from datetime import datetime, timedelta
from decimal import Decimal

import pytest

from lms.book import Book, Loan, Member, Sale
from lms.exceptions import InvalidInputError, LedgerError, NotFoundError, OutOfStockError
from lms.library import Library


def _counts(lib):
    return len(lib.list_loans()), len(lib.list_sales())


def test_seeded_availability(lib):
    assert lib.available_copies(1) == 1
    assert lib.available_copies(2) == 1
    assert lib.available_copies(3) == 0
    assert lib.available_copies(4) == 2


def test_availability_formula_holds_for_every_book(lib):
    lib.issue(4, 1, 3)
    lib.buy(4, 2)
    for book in lib.list_books():
        expected = max(0, book.total_copies - lib.sold_count(book.id) - lib.active_loan_count(book.id))
        assert lib.available_copies(book.id) == expected
        assert lib.available_copies(book.id) >= 0


def test_availability_is_floored_at_zero(clock):
    now = clock()
    book = Book(1, "Overbooked", "Someone", 10, 1, 1)
    loans = [Loan(1, 1, 1, now, now + timedelta(days=1)), Loan(2, 1, 1, now, now + timedelta(days=2))]
    lib = Library([book], [Member(1, "A")], loans, clock=clock)
    assert lib.active_loan_count(1) == 2
    assert lib.available_copies(1) == 0


def test_out_of_stock_book_rejects_buy(lib):
    before = _counts(lib)
    with pytest.raises(OutOfStockError) as exc_info:
        lib.buy(3, 1)
    assert exc_info.value.reason == "out of stock"
    assert exc_info.value.available_on == lib.earliest_return_date(3)
    assert _counts(lib) == before


def test_out_of_stock_book_rejects_issue(lib):
    before = _counts(lib)
    with pytest.raises(OutOfStockError):
        lib.issue(3, 2, 7)
    assert _counts(lib) == before
    assert lib.available_copies(3) == 0


def test_issue_last_copy(lib, clock):
    loan = lib.issue(1, 2, 7)
    assert loan.id == 4
    assert loan.book_id == 1
    assert loan.member_id == 2
    assert loan.issued_at == clock()
    assert loan.due_at == clock() + timedelta(days=7)
    assert loan.returned_at is None
    assert lib.available_copies(1) == 0


@pytest.mark.parametrize("days", [0, -5])
def test_non_positive_borrow_days_use_default(lib, days):
    loan = lib.issue(4, 1, days)
    assert loan.due_at - loan.issued_at == timedelta(days=14)


def test_default_borrow_days_is_configurable(clock):
    lib = Library([Book(1, "T", "A", 1, 1, 1)], [Member(1, "M")], default_borrow_days=21, clock=clock)
    loan = lib.issue(1, 1)
    assert loan.due_at == clock() + timedelta(days=21)


def test_issue_then_return_restores_availability(lib):
    before = lib.available_copies(4)
    loan = lib.issue(4, 3, 5)
    assert lib.available_copies(4) == before - 1
    lib.return_loan(loan.id)
    assert lib.available_copies(4) == before


def test_return_is_one_shot(lib, clock):
    before = lib.available_copies(3)
    clock.advance(days=1)
    returned = lib.return_loan(3)
    assert returned.returned_at == clock()
    assert lib.available_copies(3) == before + 1

    with pytest.raises(NotFoundError) as exc_info:
        lib.return_loan(3)
    assert exc_info.value.reason == "active loan not found"
    assert lib.available_copies(3) == before + 1
    assert lib.get_loan(3).returned_at == returned.returned_at


def test_return_unknown_loan_matches_second_return(lib):
    lib.return_loan(1)
    with pytest.raises(NotFoundError) as second:
        lib.return_loan(1)
    with pytest.raises(NotFoundError) as unknown:
        lib.return_loan(999)
    assert second.value.reason == unknown.value.reason


def test_buy_captures_price(lib, clock):
    sale = lib.buy(4, 2)
    assert sale.id == 2
    assert sale.unit_price == Decimal("699.00")
    assert sale.sold_at == clock()
    assert lib.available_copies(4) == 1
    assert lib.sold_count(4) == 1


def test_price_change_does_not_touch_recorded_sales(lib):
    sale = lib.buy(4, 1)
    lib.update_book_price(4, "750")
    assert lib.find_book(4).price == Decimal("750.00")
    assert sale.unit_price == Decimal("699.00")
    assert lib.list_sales()[-1].unit_price == Decimal("699.00")
    assert lib.list_sales()[0].unit_price == Decimal("499.00")

    second = lib.buy(4, 1)
    assert second.unit_price == Decimal("750.00")


def test_update_price_rejects_negative(lib):
    with pytest.raises(InvalidInputError):
        lib.update_book_price(1, -1)
    assert lib.find_book(1).price == Decimal("499.00")


def test_unknown_book_is_not_found_not_out_of_stock(lib):
    with pytest.raises(NotFoundError) as exc_info:
        lib.buy(42, 1)
    assert exc_info.value.reason == "book not found"
    with pytest.raises(NotFoundError):
        lib.issue(42, 1, 7)
    with pytest.raises(NotFoundError):
        lib.available_copies(42)


def test_unknown_member_rejected_when_enforced(lib):
    before = _counts(lib)
    with pytest.raises(NotFoundError) as exc_info:
        lib.issue(4, 99, 7)
    assert exc_info.value.reason == "member not found"
    with pytest.raises(NotFoundError):
        lib.buy(4, 99)
    assert _counts(lib) == before


def test_unknown_member_accepted_when_not_enforced(clock):
    lib = Library([Book(1, "T", "A", 5, 1, 2)], require_known_members=False, clock=clock)
    loan = lib.issue(1, 77, 3)
    assert loan.member_id == 77
    holders = lib.active_loans(1)
    assert holders[0].member_name is None


@pytest.mark.parametrize("bad", ["1", 1.0, None, True, 0, -3])
def test_invalid_ids_rejected(lib, bad):
    with pytest.raises(InvalidInputError):
        lib.issue(bad, 1, 7)
    with pytest.raises(InvalidInputError):
        lib.buy(1, bad)
    with pytest.raises(InvalidInputError):
        lib.return_loan(bad)


def test_invalid_borrow_days_rejected(lib):
    with pytest.raises(InvalidInputError):
        lib.issue(4, 1, "7")


def test_errors_share_a_base_class(lib):
    with pytest.raises(LedgerError):
        lib.buy(3, 1)
    with pytest.raises(LookupError):
        lib.return_loan(500)
    with pytest.raises(ValueError):
        lib.issue(4, 1, "x")


def test_earliest_return_date(lib, clock):
    assert lib.earliest_return_date(3) == clock() + timedelta(days=3)
    assert lib.earliest_return_date(4) is None

    lib.issue(4, 1, 10)
    lib.issue(4, 2, 5)
    assert lib.earliest_return_date(4) == clock() + timedelta(days=5)


def test_active_loans_in_issue_order(lib, clock):
    first = lib.issue(4, 2, 10)
    clock.advance(hours=1)
    second = lib.issue(4, 1, 2)
    holders = lib.active_loans(4)
    assert [h.loan_id for h in holders] == [first.id, second.id]
    assert [h.member_name for h in holders] == ["Priyanshu Singh Fartiyal", "Aisha Fatima"]

    lib.return_loan(first.id)
    assert [h.loan_id for h in lib.active_loans(4)] == [second.id]


def test_loan_and_sale_ids_are_independent(lib):
    loan = lib.issue(4, 1, 1)
    sale = lib.buy(2, 1)
    assert loan.id == 4
    assert sale.id == 2
    assert lib.issue(1, 1, 1).id == 5


def test_empty_ledger_starts_ids_at_one(clock):
    lib = Library([Book(1, "T", "A", 1, 1, 5)], [Member(1, "M")], clock=clock)
    assert lib.issue(1, 1).id == 1
    assert lib.buy(1, 1).id == 1


def test_book_status(lib):
    status = lib.book_status(3)
    assert status.book.title == "Introduction to Algorithms"
    assert status.available == 0
    assert not status.in_stock
    assert status.earliest_return == lib.earliest_return_date(3)
    assert [h.member_name for h in status.active_loans] == ["Aisha Fatima"]


def test_search_books_is_case_insensitive(lib):
    assert [b.id for b in lib.search_books("the c")] == [2]
    assert [b.id for b in lib.search_books("SYSTEMS")] == [4]
    assert len(lib.search_books("")) == 4
    assert lib.search_books("nothing like this") == []


def test_statistics(lib):
    stats = lib.get_statistics()
    assert stats["total_titles"] == 4
    assert stats["total_copies"] == 8
    assert stats["available_copies"] == 4
    assert stats["active_loans"] == 3
    assert stats["total_sales"] == 1
    assert stats["sales_revenue"] == Decimal("499.00")
    assert stats["members"] == 3


def test_duplicate_seed_ids_rejected():
    with pytest.raises(InvalidInputError):
        Library([Book(1, "A", "X", 1, 1, 1), Book(1, "B", "Y", 1, 1, 1)])


def test_seed_sale_for_unknown_book_rejected():
    sale = Sale(1, 9, 1, datetime(2024, 1, 1), Decimal("1.00"))
    with pytest.raises(NotFoundError):
        Library([Book(1, "A", "X", 1, 1, 1)], sales=[sale])


def test_loan_cannot_be_marked_returned_twice():
    loan = Loan(1, 1, 1, datetime(2024, 1, 1), datetime(2024, 1, 15))
    loan.mark_returned(datetime(2024, 1, 2))
    with pytest.raises(ValueError):
        loan.mark_returned(datetime(2024, 1, 3))
    assert loan.returned_at == datetime(2024, 1, 2)


def test_book_validates_amounts():
    with pytest.raises(InvalidInputError):
        Book(1, "T", "A", -1, 0, 1)
    with pytest.raises(InvalidInputError):
        Book(1, "T", "A", 1, 0, -1)
    assert Book(1, " T ", "A", 9.5, "1.25", 0).price == Decimal("9.50")


def test_huge_borrow_period_rejected_without_mutation(lib):
    before = _counts(lib)
    with pytest.raises(InvalidInputError):
        lib.issue(4, 1, 10_000_000)
    with pytest.raises(InvalidInputError):
        lib.issue(4, 1, 10 ** 12)
    assert _counts(lib) == before
    assert lib.available_copies(4) == 2


def test_snapshots_hold_the_ledger_lock(lib):
    seen = []
    real_available = lib.available_copies

    def spy(book_id):
        seen.append(lib._lock._is_owned())
        return real_available(book_id)

    lib.available_copies = spy
    lib.book_status(3)
    lib.get_statistics()
    assert seen and all(seen)
