import re
from decimal import Decimal
from typing import Optional

from lms.book import to_money
from lms.exceptions import InvalidInputError

_INT_RE = re.compile(r"[+-]?\d+")


class InputValidator:
    """Parses raw text typed at the prompts into ledger arguments.

    Anything that is not a plain integer is rejected rather than guessed.
    """

    @staticmethod
    def parse_int(raw: Optional[str], name: str = "value") -> int:
        s = (raw or "").strip()
        if not _INT_RE.fullmatch(s):
            raise InvalidInputError(f"{name} must be a whole number, got {raw!r}.")
        return int(s)

    @staticmethod
    def parse_id(raw: Optional[str], name: str = "id") -> int:
        value = InputValidator.parse_int(raw, name)
        if value <= 0:
            raise InvalidInputError(f"{name} must be a positive number.")
        return value

    @staticmethod
    def parse_days(raw: Optional[str]) -> int:
        """Blank input means "use the default period" and maps to 0."""
        if raw is None or not raw.strip():
            return 0
        return InputValidator.parse_int(raw, "days")

    @staticmethod
    def parse_price(raw: Optional[str]) -> Decimal:
        return to_money((raw or "").strip(), "price")
