"""HTTP API over the inventory ledger.

Read endpoints are open; endpoints that change the ledger require the
``X-API-Key`` header. Ledger rejections map to status codes:
not found -> 404, out of stock -> 409, invalid input -> 422.
"""
from datetime import datetime
from decimal import Decimal
from typing import List, Optional

from fastapi import Depends, FastAPI, HTTPException, Request, Security
from fastapi.responses import JSONResponse
from fastapi.security import APIKeyHeader
from pydantic import BaseModel, Field

from lms.book import Book, Loan, Member, Sale
from lms.config import settings
from lms.exceptions import InvalidInputError, LedgerError, NotFoundError, OutOfStockError
from lms.seed import build_library


library = build_library(settings)

app = FastAPI(title=f"{settings.app_name} API", version=settings.app_version, debug=settings.debug)


# --- Security ---
api_key_header = APIKeyHeader(name="X-API-Key")


def get_api_key(api_key: str = Security(api_key_header)):
    """Dependency that validates the API key."""
    if api_key == settings.api_key:
        return api_key
    raise HTTPException(status_code=403, detail="Could not validate credentials")


# --- Error mapping ---
@app.exception_handler(LedgerError)
async def ledger_error_handler(request: Request, exc: LedgerError):
    if isinstance(exc, NotFoundError):
        status_code = 404
    elif isinstance(exc, OutOfStockError):
        status_code = 409
    elif isinstance(exc, InvalidInputError):
        status_code = 422
    else:
        status_code = 400
    content = {"detail": str(exc), "reason": exc.reason}
    if isinstance(exc, OutOfStockError):
        content["available_on"] = exc.available_on.isoformat() if exc.available_on else None
    return JSONResponse(status_code=status_code, content=content)


# --- Models ---
class BookModel(BaseModel):
    id: int
    title: str
    author: str
    price: float
    rental_fee_per_day: float
    total_copies: int
    available: int


class ActiveLoanModel(BaseModel):
    loan_id: int
    member_id: int
    member_name: Optional[str] = None
    issued_at: datetime
    due_at: datetime


class BookDetailModel(BookModel):
    in_stock: bool
    earliest_return: Optional[datetime] = None
    active_loans: List[ActiveLoanModel] = []


class MemberModel(BaseModel):
    id: int
    name: str


class LoanModel(BaseModel):
    id: int
    book_id: int
    member_id: int
    issued_at: datetime
    due_at: datetime
    returned_at: Optional[datetime] = None


class SaleModel(BaseModel):
    id: int
    book_id: int
    buyer_id: int
    sold_at: datetime
    unit_price: float


class StatsModel(BaseModel):
    total_titles: int
    total_copies: int
    available_copies: int
    active_loans: int
    total_sales: int
    sales_revenue: float
    members: int


class IssueRequest(BaseModel):
    member_id: int
    days: int = Field(default=0, description="Days to borrow; 0 or less uses the default period")


class BuyRequest(BaseModel):
    member_id: int


class PriceUpdateRequest(BaseModel):
    price: Decimal = Field(ge=0)


# --- Helpers ---
def _book_model(book: Book) -> BookModel:
    return BookModel(
        id=book.id,
        title=book.title,
        author=book.author,
        price=float(book.price),
        rental_fee_per_day=float(book.rental_fee_per_day),
        total_copies=book.total_copies,
        available=library.available_copies(book.id),
    )


def _loan_model(loan: Loan) -> LoanModel:
    return LoanModel(
        id=loan.id,
        book_id=loan.book_id,
        member_id=loan.member_id,
        issued_at=loan.issued_at,
        due_at=loan.due_at,
        returned_at=loan.returned_at,
    )


def _sale_model(sale: Sale) -> SaleModel:
    return SaleModel(
        id=sale.id,
        book_id=sale.book_id,
        buyer_id=sale.buyer_id,
        sold_at=sale.sold_at,
        unit_price=float(sale.unit_price),
    )


def _member_model(member: Member) -> MemberModel:
    return MemberModel(id=member.id, name=member.name)


# --- Health ---
@app.get("/health")
def health():
    """Lightweight health endpoint."""
    return {
        "status": "healthy",
        "timestamp": datetime.now().isoformat(),
        "total_books": len(library.list_books()),
        "version": settings.app_version,
    }


# --- Catalog ---
@app.get("/books", response_model=List[BookModel])
def list_books(q: Optional[str] = None):
    """All books, or those whose title contains ``q``."""
    books = library.search_books(q) if q else library.list_books()
    return [_book_model(b) for b in books]


@app.get("/books/{book_id}", response_model=BookDetailModel)
def get_book(book_id: int):
    status = library.book_status(book_id)
    base = _book_model(status.book)
    return BookDetailModel(
        **base.model_dump(),
        in_stock=status.in_stock,
        earliest_return=status.earliest_return,
        active_loans=[ActiveLoanModel(**loan._asdict()) for loan in status.active_loans],
    )


@app.put("/books/{book_id}/price", response_model=BookModel, dependencies=[Depends(get_api_key)])
def update_price(book_id: int, payload: PriceUpdateRequest):
    book = library.update_book_price(book_id, payload.price)
    return _book_model(book)


@app.get("/members", response_model=List[MemberModel])
def list_members():
    return [_member_model(m) for m in library.list_members()]


@app.get("/stats", response_model=StatsModel)
def stats():
    data = library.get_statistics()
    data["sales_revenue"] = float(data["sales_revenue"])
    return StatsModel(**data)


# --- Loans and sales ---
@app.get("/loans", response_model=List[LoanModel])
def list_loans(active_only: bool = False):
    return [_loan_model(loan) for loan in library.list_loans(active_only=active_only)]


@app.get("/sales", response_model=List[SaleModel])
def list_sales():
    return [_sale_model(s) for s in library.list_sales()]


@app.post("/books/{book_id}/issue", response_model=LoanModel, status_code=201, dependencies=[Depends(get_api_key)])
def issue_book(book_id: int, payload: IssueRequest):
    loan = library.issue(book_id, payload.member_id, payload.days)
    return _loan_model(loan)


@app.post("/books/{book_id}/buy", response_model=SaleModel, status_code=201, dependencies=[Depends(get_api_key)])
def buy_book(book_id: int, payload: BuyRequest):
    sale = library.buy(book_id, payload.member_id)
    return _sale_model(sale)


@app.post("/loans/{loan_id}/return", response_model=LoanModel, dependencies=[Depends(get_api_key)])
def return_loan(loan_id: int):
    loan = library.return_loan(loan_id)
    return _loan_model(loan)
