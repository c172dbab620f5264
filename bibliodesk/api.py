import logging
import sqlite3
from contextlib import asynccontextmanager
from datetime import datetime
from typing import Any, Dict, List, Optional

from fastapi import Depends, FastAPI, HTTPException, Query, Security
from fastapi.security import APIKeyHeader
from pydantic import BaseModel, Field

from bibliodesk.config import settings
from bibliodesk.library import Library
from bibliodesk.models import Book, LoanStatus, User, UserRole
from bibliodesk.results import Result, Status
from bibliodesk.validators import validate_book, validate_user

logger = logging.getLogger(__name__)

_library: Optional[Library] = None


def get_library() -> Library:
    """Dependency returning the process-wide Library, created on first use."""
    global _library
    if _library is None:
        _library = Library()
        _library.seed_admin()
    return _library


@asynccontextmanager
async def lifespan(app: FastAPI):
    logging.basicConfig(level="DEBUG" if settings.debug else settings.log_level)
    try:
        yield
    finally:
        global _library
        if _library is not None:
            _library.close()
            _library = None


app = FastAPI(title=f"{settings.app_name} API", version=settings.app_version, debug=settings.debug,
              lifespan=lifespan)

# --- Security ---
api_key_header = APIKeyHeader(name="X-API-Key")


def get_api_key(api_key: str = Security(api_key_header)):
    """Dependency validating the API key."""
    if api_key == settings.api_key:
        return api_key
    raise HTTPException(status_code=403, detail="Could not validate credentials")


_HTTP_STATUS = {
    Status.NOT_FOUND: 404,
    Status.CONFLICT: 409,
    Status.UNAVAILABLE: 503,
}


def _unwrap(result: Result) -> Any:
    """Return the result's value or raise the matching HTTPException."""
    if result.is_ok:
        return result.value
    raise HTTPException(status_code=_HTTP_STATUS[result.status], detail=result.message)


def _validate(check, *args, **kwargs) -> None:
    try:
        check(*args, **kwargs)
    except ValueError as e:
        raise HTTPException(status_code=400, detail=str(e))


# --- API models ---
class BookCreateModel(BaseModel):
    title: str
    author: str
    isbn: str
    category: str
    stock: int = Field(default=1, ge=0)
    publication_year: Optional[int] = None
    publisher: Optional[str] = None


class BookUpdateModel(BaseModel):
    title: Optional[str] = None
    author: Optional[str] = None
    isbn: Optional[str] = None
    category: Optional[str] = None
    stock: Optional[int] = Field(default=None, ge=0)
    publication_year: Optional[int] = None
    publisher: Optional[str] = None


class UserCreateModel(BaseModel):
    name: str
    surname: str
    username: str
    email: str
    password: str
    role: str = "READER"
    phone: Optional[str] = None
    address: Optional[str] = None


class UserUpdateModel(BaseModel):
    name: Optional[str] = None
    surname: Optional[str] = None
    username: Optional[str] = None
    email: Optional[str] = None
    password: Optional[str] = None
    role: Optional[str] = None
    phone: Optional[str] = None
    address: Optional[str] = None
    active: Optional[bool] = None


class LoginModel(BaseModel):
    username: str
    password: str


class LoanCreateModel(BaseModel):
    user_id: int
    book_id: int
    days: Optional[int] = None
    notes: Optional[str] = None


class RenewModel(BaseModel):
    days: int


class StatsModel(BaseModel):
    total_books: int
    active_users: int
    active_loans: int
    overdue_loans: int
    low_stock_books: int


def _parse_role(role: str) -> UserRole:
    try:
        return UserRole[role.upper()]
    except KeyError:
        raise HTTPException(status_code=400, detail=f"Unknown role '{role}'.")


# --- Health and dashboard ---
@app.get("/health")
def health(library: Library = Depends(get_library)):
    """Lightweight health endpoint with a quick database probe."""
    db_ok = True
    try:
        with library.pool.connection() as conn:
            conn.execute("SELECT 1")
    except sqlite3.Error as e:
        logger.error(f"Health check could not reach the database: {e}")
        db_ok = False
    return {
        "status": "healthy" if db_ok else "degraded",
        "timestamp": datetime.utcnow().isoformat() + "Z",
        "db": db_ok,
        "version": settings.app_version,
    }


@app.get("/stats", response_model=StatsModel)
def stats(library: Library = Depends(get_library)):
    return StatsModel(**library.get_statistics())


@app.post("/auth/login")
def login(payload: LoginModel, library: Library = Depends(get_library)):
    """Check credentials; 401 on any mismatch."""
    result = library.auth.authenticate(payload.username, payload.password)
    if result.status is Status.NOT_FOUND:
        raise HTTPException(status_code=401, detail=result.message)
    user: User = _unwrap(result)
    return user.to_dict()


# --- Books ---
@app.get("/books", response_model=List[Dict[str, Any]])
def list_books(
    q: Optional[str] = Query(default=None, description="Partial title or author"),
    category: Optional[str] = None,
    low_stock: bool = False,
    library: Library = Depends(get_library),
):
    if low_stock:
        books = library.books.list_low_stock(library.settings.low_stock_threshold)
    elif q:
        books = library.books.search(q)
    elif category:
        books = library.books.list_by_category(category)
    else:
        books = library.books.list_all()
    return [b.to_dict() for b in books]


@app.get("/books/{book_id}")
def get_book(book_id: int, library: Library = Depends(get_library)):
    return _unwrap(library.books.get(book_id)).to_dict()


@app.post("/books", status_code=201, dependencies=[Depends(get_api_key)])
def add_book(payload: BookCreateModel, library: Library = Depends(get_library)):
    book = Book(**payload.model_dump())
    _validate(validate_book, book)
    return _unwrap(library.books.create(book)).to_dict()


@app.put("/books/{book_id}", dependencies=[Depends(get_api_key)])
def update_book(book_id: int, update: BookUpdateModel, library: Library = Depends(get_library)):
    """Update the supplied fields of a book."""
    book: Book = _unwrap(library.books.get(book_id))
    for field, value in update.model_dump(exclude_none=True).items():
        setattr(book, field, value)
    _validate(validate_book, book)
    return _unwrap(library.books.update(book)).to_dict()


@app.delete("/books/{book_id}", dependencies=[Depends(get_api_key)])
def delete_book(book_id: int, library: Library = Depends(get_library)):
    _unwrap(library.books.delete(book_id))
    return {"message": "Book removed."}


# --- Users ---
@app.get("/users", response_model=List[Dict[str, Any]])
def list_users(
    q: Optional[str] = Query(default=None, description="Partial name or surname"),
    role: Optional[str] = None,
    library: Library = Depends(get_library),
):
    if q:
        users = library.users.search_by_name(q)
    elif role:
        users = library.users.list_by_role(_parse_role(role))
    else:
        users = library.users.list_all()
    return [u.to_dict() for u in users]


@app.get("/users/{user_id}")
def get_user(user_id: int, library: Library = Depends(get_library)):
    return _unwrap(library.users.get(user_id)).to_dict()


@app.post("/users", status_code=201, dependencies=[Depends(get_api_key)])
def add_user(payload: UserCreateModel, library: Library = Depends(get_library)):
    data = payload.model_dump()
    data["role"] = _parse_role(data["role"])
    user = User(**data)
    _validate(validate_user, user, creating=True)
    return _unwrap(library.users.create(user)).to_dict()


@app.put("/users/{user_id}", dependencies=[Depends(get_api_key)])
def update_user(user_id: int, update: UserUpdateModel, library: Library = Depends(get_library)):
    """Update the supplied fields of a user; a new password is re-hashed."""
    user: User = _unwrap(library.users.get(user_id))
    changes = update.model_dump(exclude_none=True)
    if "role" in changes:
        changes["role"] = _parse_role(changes["role"])
    for field, value in changes.items():
        setattr(user, field, value)
    _validate(validate_user, user, creating=False)
    return _unwrap(library.users.update(user)).to_dict()


@app.delete("/users/{user_id}", dependencies=[Depends(get_api_key)])
def delete_user(user_id: int, library: Library = Depends(get_library)):
    _unwrap(library.users.delete(user_id))
    return {"message": "User removed."}


# --- Loans ---
@app.get("/loans", response_model=List[Dict[str, Any]])
def list_loans(
    status: Optional[str] = None,
    user_id: Optional[int] = None,
    book_id: Optional[int] = None,
    active: bool = False,
    library: Library = Depends(get_library),
):
    if active:
        loans = library.loans.list_active()
    elif status:
        try:
            loans = library.loans.list_by_status(LoanStatus[status.upper()])
        except KeyError:
            raise HTTPException(status_code=400, detail=f"Unknown status '{status}'.")
    elif user_id is not None:
        loans = library.loans.list_by_user(user_id)
    elif book_id is not None:
        loans = library.loans.list_by_book(book_id)
    else:
        loans = library.loans.list_all()
    return [l.to_dict() for l in loans]


@app.post("/loans/refresh-overdue", dependencies=[Depends(get_api_key)])
def refresh_overdue(library: Library = Depends(get_library)):
    """Flag loans past their due date as overdue."""
    return {"updated": _unwrap(library.circulation.refresh_overdue())}


@app.get("/loans/{loan_id}")
def get_loan(loan_id: int, library: Library = Depends(get_library)):
    return _unwrap(library.loans.get(loan_id)).to_dict()


@app.post("/loans", status_code=201, dependencies=[Depends(get_api_key)])
def issue_loan(payload: LoanCreateModel, library: Library = Depends(get_library)):
    """Lend one copy of a book; 404 for an unknown or inactive user, 409 when no copy is left."""
    try:
        result = library.circulation.issue_loan(payload.user_id, payload.book_id,
                                                days=payload.days, notes=payload.notes)
    except ValueError as e:
        raise HTTPException(status_code=400, detail=str(e))
    return _unwrap(result).to_dict()


@app.post("/loans/{loan_id}/return", dependencies=[Depends(get_api_key)])
def return_loan(loan_id: int, library: Library = Depends(get_library)):
    return _unwrap(library.circulation.return_loan(loan_id)).to_dict()


@app.post("/loans/{loan_id}/renew", dependencies=[Depends(get_api_key)])
def renew_loan(loan_id: int, payload: RenewModel, library: Library = Depends(get_library)):
    try:
        result = library.circulation.renew_loan(loan_id, payload.days)
    except ValueError as e:
        raise HTTPException(status_code=400, detail=str(e))
    return _unwrap(result).to_dict()
