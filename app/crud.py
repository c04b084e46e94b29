import hmac
import logging
import re
from typing import Any, Dict, List, Optional

from sqlalchemy import func, or_
from sqlalchemy.orm import Session

from app import models, schemas
from app.database import transaction
from app.errors import BookInUse, DuplicateIdentity, Forbidden, InvalidInput, NotFound
from app.models import ROLE_ADMIN, ROLE_PATRON
from app.security import DEFAULT_ROUNDS, MAX_PASSWORD_BYTES, hash_password, verify_password

logger = logging.getLogger(__name__)

USERNAME_PATTERN = re.compile(r"[A-Za-z0-9_]{3,30}")
EMAIL_PATTERN = re.compile(r"[^\s@]+@[^\s@]+\.[^\s@]+")
MIN_PASSWORD_LENGTH = 8


# ------------------------- Credential store ------------------------- #

def validate_signup(username: Any, email: Any, password: Any) -> Dict[str, bool]:
    """Return one validity flag per signup field."""
    return {
        "usernameValid": isinstance(username, str) and USERNAME_PATTERN.fullmatch(username) is not None,
        "emailValid": isinstance(email, str) and EMAIL_PATTERN.fullmatch(email) is not None,
        "passwordValid": (
            isinstance(password, str)
            and len(password) >= MIN_PASSWORD_LENGTH
            and len(password.encode("utf-8")) <= MAX_PASSWORD_BYTES
        ),
    }


def resolve_signup_role(requested_role: Any, invite_code: Any, configured_code: Optional[str]) -> str:
    """Pick the role a new account gets.

    Only an explicit request for ``admin`` elevates, and only with the invite
    code the server holds. Without a configured code admin signup is closed.
    """
    if requested_role != ROLE_ADMIN:
        return ROLE_PATRON
    if not configured_code:
        logger.warning("Admin signup requested but ADMIN_INVITE_CODE is not set")
        raise Forbidden("Admin signup is disabled.")
    if not isinstance(invite_code, str) or not hmac.compare_digest(
        invite_code.encode("utf-8"), configured_code.encode("utf-8")
    ):
        logger.warning("Admin signup rejected: invalid invite code")
        raise Forbidden("Invalid admin invite code.")
    return ROLE_ADMIN


def get_user(db: Session, user_id: int) -> Optional[models.User]:
    return db.query(models.User).filter(models.User.id == user_id).first()


def find_user_by_identity(db: Session, username_or_email: str) -> Optional[models.User]:
    """Look a user up by username or by email, ignoring case."""
    identity = username_or_email.lower()
    return (
        db.query(models.User)
        .filter(or_(func.lower(models.User.username) == identity, func.lower(models.User.email) == identity))
        .first()
    )


def create_user(
        db: Session,
        username: str,
        email: str,
        password: str,
        role: str = ROLE_PATRON,
        rounds: int = DEFAULT_ROUNDS,
) -> models.User:
    password_hash = hash_password(password, rounds)
    with transaction(db, "signup", integrity_error=DuplicateIdentity):
        taken = (
            db.query(models.User.id)
            .filter(or_(
                func.lower(models.User.username) == username.lower(),
                func.lower(models.User.email) == email.lower(),
            ))
            .first()
        )
        if taken:
            raise DuplicateIdentity()

        new_user = models.User(
            username=username,
            email=email,
            password_hash=password_hash,
            role=role,
        )
        db.add(new_user)
        db.flush()
        db.refresh(new_user)

    logger.info(f"Created user {new_user.id} with role {new_user.role}")
    return new_user


def authenticate_user(db: Session, username_or_email: str, password: str) -> Optional[models.User]:
    user = find_user_by_identity(db, username_or_email)
    if not user:
        return None
    if not verify_password(password, user.password_hash):
        return None
    return user


# ------------------------- Catalog store ------------------------- #

def create_book(db: Session, book_data: schemas.BookCreate) -> models.Book:
    fields = book_data.model_dump(exclude={"copies"})
    new_book = models.Book(**fields, total_copies=book_data.copies, available_copies=book_data.copies)
    with transaction(db, "book creation"):
        db.add(new_book)
        db.flush()
        db.refresh(new_book)
    return new_book


def get_books(db: Session) -> List[models.Book]:
    return db.query(models.Book).order_by(models.Book.id).all()


def get_book(db: Session, book_id: int) -> models.Book:
    book = db.query(models.Book).filter(models.Book.id == book_id).first()
    if book is None:
        raise NotFound("Book not found.")
    return book


def count_active_checkouts_for_book(db: Session, book_id: int) -> int:
    return (
        db.query(func.count(models.ActiveCheckout.id))
        .filter(models.ActiveCheckout.book_id == book_id)
        .scalar()
    )


def update_book(db: Session, book_id: int, book_data: schemas.BookUpdate) -> models.Book:
    """Replace the editable fields of a book.

    ``copies`` becomes the new total. The available count is recomputed from
    the checkouts currently out, under a lock on the book row, so it never
    disagrees with the ledger.
    """
    with transaction(db, "book update"):
        book = (
            db.query(models.Book)
            .filter(models.Book.id == book_id)
            .populate_existing()
            .with_for_update()
            .first()
        )
        if book is None:
            raise NotFound("Book not found.")

        checked_out = count_active_checkouts_for_book(db, book_id)
        if book_data.copies < checked_out:
            raise InvalidInput(
                f"Cannot set copies to {book_data.copies}: {checked_out} currently checked out."
            )

        for key, value in book_data.model_dump(exclude={"copies"}).items():
            setattr(book, key, value)
        book.available_copies = book_data.copies - checked_out
        book.total_copies = book_data.copies
        db.flush()

    return book


def delete_book(db: Session, book_id: int) -> None:
    with transaction(db, "book deletion"):
        book = (
            db.query(models.Book)
            .filter(models.Book.id == book_id)
            .populate_existing()
            .with_for_update()
            .first()
        )
        if book is None:
            raise NotFound("Book not found.")
        if count_active_checkouts_for_book(db, book_id) > 0:
            raise BookInUse("Book cannot be deleted while copies are checked out.")
        db.delete(book)
