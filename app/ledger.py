"""Checkout ledger: borrowing and returning copies.

A (user, book) pair moves from no checkout to an active checkout and, on
return, into the history table. Every transition runs in one transaction that
locks the rows it depends on, so concurrent requests from several server
processes serialize in the database:

* at most ``limit`` active checkouts per user (locked on the user row),
* at most one active checkout per (user, book),
* ``available_copies`` equals total copies minus active checkouts and never
  goes below zero (locked on the book row).
"""

import logging
from datetime import datetime, timezone
from typing import Any, List

from sqlalchemy import func
from sqlalchemy.orm import Session

from app import models, schemas
from app.database import transaction
from app.errors import DuplicateCheckout, InvalidInput, LimitReached, NotFound, StorageFailure, Unavailable

logger = logging.getLogger(__name__)

DEFAULT_CHECKOUT_LIMIT = 3


def _now() -> datetime:
    return datetime.now(timezone.utc)


def parse_book_id(value: Any) -> int:
    """Accept a positive integer id, or a string or float holding one."""
    if isinstance(value, bool):
        raise InvalidInput("Invalid bookId")
    if isinstance(value, int):
        book_id = value
    elif isinstance(value, float) and value.is_integer():
        book_id = int(value)
    elif isinstance(value, str) and value.strip().isdecimal():
        book_id = int(value.strip())
    else:
        raise InvalidInput("Invalid bookId")
    if not 0 < book_id <= models.MAX_ID:
        raise InvalidInput("Invalid bookId")
    return book_id


def checkout_book(db: Session, user_id: int, book_id: Any, limit: int = DEFAULT_CHECKOUT_LIMIT) -> models.ActiveCheckout:
    book_id = parse_book_id(book_id)

    with transaction(db, "the checkout process", integrity_error=DuplicateCheckout):
        # Lock order is user then book everywhere a checkout takes both
        user = (
            db.query(models.User)
            .filter(models.User.id == user_id)
            .populate_existing()
            .with_for_update()
            .first()
        )
        book = (
            db.query(models.Book)
            .filter(models.Book.id == book_id)
            .populate_existing()
            .with_for_update()
            .first()
        )

        if user is None:
            raise NotFound("User not found")

        active_count = (
            db.query(func.count(models.ActiveCheckout.id))
            .filter(models.ActiveCheckout.user_id == user_id)
            .scalar()
        )
        if active_count >= limit:
            logger.warning(f"User {user_id} hit the checkout limit ({limit})")
            raise LimitReached(f"Checkout limit reached. You may only check out up to {limit} books.")

        duplicate = (
            db.query(models.ActiveCheckout.id)
            .filter(models.ActiveCheckout.user_id == user_id, models.ActiveCheckout.book_id == book_id)
            .first()
        )
        if duplicate is not None:
            raise DuplicateCheckout()

        if book is None:
            raise NotFound("Book not found.")
        if book.available_copies < 1:
            raise Unavailable()

        book.available_copies -= 1
        checkout = models.ActiveCheckout(user_id=user_id, book_id=book_id, checkout_date=_now())
        db.add(checkout)
        db.flush()
        checkout_id = checkout.id

    logger.info(f"User {user_id} checked out book {book_id} (checkout {checkout_id})")
    return checkout


def return_book(db: Session, user_id: int, book_id: Any) -> models.CheckoutHistory:
    book_id = parse_book_id(book_id)

    with transaction(db, "the return process"):
        checkout = (
            db.query(models.ActiveCheckout)
            .filter(models.ActiveCheckout.user_id == user_id, models.ActiveCheckout.book_id == book_id)
            .populate_existing()
            .with_for_update()
            .first()
        )
        if checkout is None:
            raise NotFound("No active checkout found for this book and user.")

        entry = models.CheckoutHistory(
            user_id=checkout.user_id,
            book_id=checkout.book_id,
            checkout_date=checkout.checkout_date,
            return_date=_now(),
        )
        db.add(entry)
        db.delete(checkout)

        book = (
            db.query(models.Book)
            .filter(models.Book.id == book_id)
            .populate_existing()
            .with_for_update()
            .first()
        )
        if book is None:
            raise StorageFailure("Active checkout references a missing book.")
        book.available_copies += 1
        db.flush()

    logger.info(f"User {user_id} returned book {book_id}")
    return entry


def list_checkouts(db: Session, user_id: int) -> List[schemas.CheckoutRecord]:
    """Active checkouts of a user followed by their returned ones."""
    active = (
        db.query(
            models.ActiveCheckout.id,
            models.ActiveCheckout.book_id,
            models.ActiveCheckout.checkout_date,
            models.Book.title,
            models.Book.author,
        )
        .outerjoin(models.Book, models.Book.id == models.ActiveCheckout.book_id)
        .filter(models.ActiveCheckout.user_id == user_id)
        .order_by(models.ActiveCheckout.checkout_date)
        .all()
    )
    returned = (
        db.query(
            models.CheckoutHistory.id,
            models.CheckoutHistory.book_id,
            models.CheckoutHistory.checkout_date,
            models.CheckoutHistory.return_date,
            models.Book.title,
            models.Book.author,
        )
        .outerjoin(models.Book, models.Book.id == models.CheckoutHistory.book_id)
        .filter(models.CheckoutHistory.user_id == user_id)
        .order_by(models.CheckoutHistory.return_date)
        .all()
    )

    records = [
        schemas.CheckoutRecord(
            id=row.id,
            book_id=row.book_id,
            checkout_date=row.checkout_date,
            return_date=None,
            title=row.title,
            author=row.author,
        )
        for row in active
    ]
    records.extend(
        schemas.CheckoutRecord(
            id=row.id,
            book_id=row.book_id,
            checkout_date=row.checkout_date,
            return_date=row.return_date,
            title=row.title,
            author=row.author,
        )
        for row in returned
    )
    logger.debug(f"User {user_id} checkouts - active: {len(active)}, returned: {len(returned)}")
    return records
