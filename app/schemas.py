from pydantic import BaseModel, Field
from datetime import datetime
from typing import Any, Optional


# Request bodies for the auth endpoints are validated field by field in
# crud.validate_signup so the client gets one validity flag per field.
class SignupRequest(BaseModel):
    username: Any = None
    email: Any = None
    password: Any = None
    role: Any = None
    admin_invite_code: Any = Field(default=None, alias="adminInviteCode")

    model_config = {
        "populate_by_name": True
    }


class LoginRequest(BaseModel):
    username_or_email: Any = Field(default=None, alias="usernameOrEmail")
    password: Any = None

    model_config = {
        "populate_by_name": True
    }


class UserConfig(BaseModel):
    id: int
    username: str
    email: str
    role: str
    created_at: Optional[datetime] = None

    model_config = {
        "from_attributes": True
    }


class AuthResponse(BaseModel):
    user: UserConfig
    token: str


class MeResponse(BaseModel):
    user: UserConfig


class BookBase(BaseModel):
    title: str = Field(min_length=1)
    author: str = Field(min_length=1)
    isbn: Optional[str] = None
    description: Optional[str] = None
    page_count: Optional[int] = Field(default=None, ge=0)


class BookCreate(BookBase):
    copies: int = Field(default=0, ge=0)


# PUT replaces every editable field
class BookUpdate(BookCreate):
    pass


class BookConfig(BookBase):
    id: int
    total_copies: int
    available_copies: int
    copies: int

    model_config = {
        "from_attributes": True
    }


class CheckoutRequest(BaseModel):
    book_id: Any = Field(default=None, alias="bookId")

    model_config = {
        "populate_by_name": True
    }


class MessageResponse(BaseModel):
    message: str


class CheckoutCreated(MessageResponse):
    checkout_id: int = Field(alias="checkoutId")

    model_config = {
        "populate_by_name": True
    }


class CheckoutRecord(BaseModel):
    id: int
    book_id: int = Field(alias="bookId")
    checkout_date: datetime = Field(alias="checkoutDate")
    return_date: Optional[datetime] = Field(default=None, alias="returnDate")
    title: Optional[str] = None
    author: Optional[str] = None

    model_config = {
        "populate_by_name": True
    }
