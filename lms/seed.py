"""Seed data for the ledger.

The ledger has no load path of its own; this module builds the initial
books, members, loans and sales and hands them to :class:`Library`.
Either the built-in demo catalog or a JSON seed file is used.

A seed file looks like::

    {
      "books":   [{"id": 1, "title": "...", "author": "...", "price": 499,
                   "rental_fee_per_day": 10, "total_copies": 3}],
      "members": [{"id": 1, "name": "..."}],
      "loans":   [{"id": 1, "book_id": 1, "member_id": 1,
                   "issued_at_offset_days": -2, "due_at_offset_days": 12}],
      "sales":   [{"id": 1, "book_id": 1, "buyer_id": 1,
                   "sold_at_offset_days": -7, "unit_price": 499}]
    }

Timestamps may be given either as ``<field>_offset_days`` relative to the
current time or as ISO-8601 strings under the field name itself.
"""
import json
import logging
from datetime import datetime, timedelta
from pathlib import Path
from typing import Any, Callable, Dict, List, Optional

from lms.book import Book, Loan, Member, Sale, to_money
from lms.config import Settings, settings as default_settings
from lms.exceptions import InvalidInputError
from lms.library import Library

logger = logging.getLogger(__name__)

TIME_FIELDS = ("issued_at", "due_at", "returned_at", "sold_at")


def default_seed(now: datetime) -> Dict[str, List[Any]]:
    """Demo catalog: some copies sold, some on loan, one title out of stock."""
    day = timedelta(days=1)
    return {
        "books": [
            Book(1, "Clean Code", "Robert C. Martin", 499, 10, 3),
            Book(2, "The C Programming Language", "Kernighan & Ritchie", 399, 8, 2),
            Book(3, "Introduction to Algorithms", "Cormen et al.", 799, 15, 1),
            Book(4, "Operating Systems", "Silberschatz", 699, 12, 2),
        ],
        "members": [
            Member(1, "Aisha Fatima"),
            Member(2, "Priyanshu Singh Fartiyal"),
            Member(3, "Sumit Saxena"),
        ],
        "loans": [
            Loan(1, book_id=2, member_id=2, issued_at=now - 3 * day, due_at=now + 4 * day),
            Loan(2, book_id=1, member_id=3, issued_at=now - 2 * day, due_at=now + 12 * day),
            # Book 3 has a single copy, so this loan leaves it out of stock.
            Loan(3, book_id=3, member_id=1, issued_at=now - 1 * day, due_at=now + 3 * day),
        ],
        "sales": [
            Sale(1, book_id=1, buyer_id=1, sold_at=now - 7 * day, unit_price=to_money(499)),
        ],
    }


def _resolve_times(entry: Dict[str, Any], now: datetime) -> Dict[str, Any]:
    data = dict(entry)
    for name in TIME_FIELDS:
        offset = data.pop(f"{name}_offset_days", None)
        if offset is not None:
            data[name] = now + timedelta(days=offset)
    return data


def parse_seed(payload: Dict[str, Any], now: datetime) -> Dict[str, List[Any]]:
    try:
        return {
            "books": [Book.from_dict(b) for b in payload.get("books", [])],
            "members": [Member.from_dict(m) for m in payload.get("members", [])],
            "loans": [Loan.from_dict(_resolve_times(loan, now)) for loan in payload.get("loans", [])],
            "sales": [Sale.from_dict(_resolve_times(s, now)) for s in payload.get("sales", [])],
        }
    except InvalidInputError:
        raise
    except (KeyError, TypeError, ValueError) as e:
        raise InvalidInputError(f"Invalid seed data: {e}") from e


def load_seed_file(path: str, now: datetime) -> Dict[str, List[Any]]:
    """Read a JSON seed file from ``path``."""
    with open(Path(path), "r", encoding="utf-8") as f:
        try:
            payload = json.load(f)
        except json.JSONDecodeError as e:
            raise InvalidInputError(f"Seed file {path} is not valid JSON: {e}") from e
    seed = parse_seed(payload, now)
    logger.info(f"Loaded seed file {path}")
    return seed


def build_library(config: Optional[Settings] = None, clock: Callable[[], datetime] = datetime.now) -> Library:
    """Create a ledger populated from the configured seed source."""
    config = config or default_settings
    now = clock()
    if config.seed_file:
        seed = load_seed_file(config.seed_file, now)
    else:
        seed = default_seed(now)

    library = Library(
        **seed,
        default_borrow_days=config.default_borrow_days,
        require_known_members=config.require_known_members,
        clock=clock,
    )
    logger.info(
        f"Library seeded: {len(seed['books'])} books, {len(seed['members'])} members, "
        f"{len(seed['loans'])} loans, {len(seed['sales'])} sales"
    )
    return library
