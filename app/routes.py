import logging
from typing import Annotated, List

from fastapi import APIRouter, Depends, Path, Response, status
from fastapi.responses import PlainTextResponse
from sqlalchemy import text
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from app import crud, ledger, models, schemas
from app.auth import Claims, TokenService
from app.config import Settings
from app.database import get_db
from app.dependencies import get_current_claims, get_settings, get_token_service, require_admin
from app.errors import InvalidInput, NotFound, Unauthenticated

logger = logging.getLogger(__name__)

router = APIRouter()
api = APIRouter(prefix="/api")

RowId = Annotated[int, Path(le=models.MAX_ID)]


@router.get("/", response_class=PlainTextResponse)
def read_root():
    return "Library Management System API is running!"


@router.get("/health")
def health(db: Session = Depends(get_db)):
    db_ok = True
    try:
        db.execute(text("SELECT 1"))
    except SQLAlchemyError:
        logger.warning("Health check could not reach the database")
        db_ok = False
    return {"status": "healthy", "db": db_ok}


# ------------------------- Auth ------------------------- #

@api.post("/auth/signup", response_model=schemas.AuthResponse, status_code=status.HTTP_201_CREATED)
def signup(
        payload: schemas.SignupRequest,
        db: Session = Depends(get_db),
        settings: Settings = Depends(get_settings),
        tokens: TokenService = Depends(get_token_service),
):
    logger.info(f"Signup requested for username={payload.username!r} role={payload.role or 'patron'}")
    flags = crud.validate_signup(payload.username, payload.email, payload.password)
    if not all(flags.values()):
        logger.warning(f"Signup validation failed: {flags}")
        raise InvalidInput("Invalid input", fields=flags)

    role = crud.resolve_signup_role(payload.role, payload.admin_invite_code, settings.admin_invite_code)
    user = crud.create_user(
        db,
        payload.username,
        payload.email,
        payload.password,
        role=role,
        rounds=settings.bcrypt_rounds,
    )
    return {"user": schemas.UserConfig.model_validate(user), "token": tokens.issue(user)}


@api.post("/auth/login", response_model=schemas.AuthResponse)
def login(
        payload: schemas.LoginRequest,
        db: Session = Depends(get_db),
        tokens: TokenService = Depends(get_token_service),
):
    if not isinstance(payload.username_or_email, str) or not isinstance(payload.password, str):
        raise InvalidInput("Invalid input")

    user = crud.authenticate_user(db, payload.username_or_email, payload.password)
    if not user:
        logger.warning("Login failed: invalid credentials")
        raise Unauthenticated("Invalid credentials")

    logger.info(f"Login succeeded for user {user.id}")
    return {"user": schemas.UserConfig.model_validate(user), "token": tokens.issue(user)}


@api.get("/auth/me", response_model=schemas.MeResponse)
def read_current_user(
        claims: Claims = Depends(get_current_claims),
        db: Session = Depends(get_db),
):
    user = crud.get_user(db, claims.id)
    if not user:
        raise NotFound("User not found")
    return {"user": schemas.UserConfig.model_validate(user)}


# ------------------------- Catalog ------------------------- #

@api.get("/books", response_model=List[schemas.BookConfig])
def read_all_books(db: Session = Depends(get_db)):
    return crud.get_books(db)


@api.get("/books/{book_id}", response_model=schemas.BookConfig)
def read_book(book_id: RowId, db: Session = Depends(get_db)):
    return crud.get_book(db, book_id)


@api.post("/books", response_model=schemas.BookConfig, status_code=status.HTTP_201_CREATED)
def create_book(
        book: schemas.BookCreate,
        db: Session = Depends(get_db),
        admin: Claims = Depends(require_admin),
):
    created = crud.create_book(db, book)
    logger.info(f"Admin {admin.id} added book {created.id}")
    return created


@api.put("/books/{book_id}", response_model=schemas.BookConfig)
def update_book(
        book_id: RowId,
        book_data: schemas.BookUpdate,
        db: Session = Depends(get_db),
        admin: Claims = Depends(require_admin),
):
    updated = crud.update_book(db, book_id, book_data)
    logger.info(f"Admin {admin.id} updated book {book_id}")
    return updated


@api.delete("/books/{book_id}", status_code=status.HTTP_204_NO_CONTENT)
def delete_book(
        book_id: RowId,
        db: Session = Depends(get_db),
        admin: Claims = Depends(require_admin),
):
    crud.delete_book(db, book_id)
    logger.info(f"Admin {admin.id} deleted book {book_id}")
    return Response(status_code=status.HTTP_204_NO_CONTENT)


# ------------------------- Patron circulation ------------------------- #

@api.get("/patron/checkouts/{user_id}", response_model=List[schemas.CheckoutRecord])
def read_checkouts(user_id: RowId, db: Session = Depends(get_db)):
    return ledger.list_checkouts(db, user_id)


@api.post("/patron/checkout", response_model=schemas.CheckoutCreated, status_code=status.HTTP_201_CREATED)
def checkout_book(
        payload: schemas.CheckoutRequest,
        claims: Claims = Depends(get_current_claims),
        db: Session = Depends(get_db),
        settings: Settings = Depends(get_settings),
):
    checkout = ledger.checkout_book(db, claims.id, payload.book_id, limit=settings.max_active_checkouts)
    return {"message": "Book checked out successfully.", "checkout_id": checkout.id}


@api.post("/patron/return", response_model=schemas.MessageResponse)
def return_book(
        payload: schemas.CheckoutRequest,
        claims: Claims = Depends(get_current_claims),
        db: Session = Depends(get_db),
):
    ledger.return_book(db, claims.id, payload.book_id)
    return {"message": "Book returned successfully."}


router.include_router(api)
