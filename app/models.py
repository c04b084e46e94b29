from sqlalchemy import Column, Integer, String, Text, ForeignKey, DateTime, CheckConstraint, Index, UniqueConstraint
from sqlalchemy.orm import relationship
from sqlalchemy.sql import func
from app.database import Base

ROLE_ADMIN = "admin"
ROLE_PATRON = "patron"
ROLES = (ROLE_ADMIN, ROLE_PATRON)

# Largest value an INTEGER primary key can hold
MAX_ID = 2**63 - 1


# User model
class User(Base):
    __tablename__ = "users"

    id = Column(Integer, primary_key=True, index=True)
    username = Column(String(50), nullable=False, unique=True, index=True)
    email = Column(String(255), nullable=False, unique=True, index=True)
    password_hash = Column(String(255), nullable=False)
    role = Column(String(16), nullable=False, default=ROLE_PATRON)
    created_at = Column(DateTime(timezone=True), server_default=func.now(), nullable=False)

    active_checkouts = relationship("ActiveCheckout", back_populates="user")

    __table_args__ = (
        CheckConstraint("role IN ('admin', 'patron')", name="chk_user_role"),
        Index("uq_users_username_lower", func.lower(username), unique=True),
        Index("uq_users_email_lower", func.lower(email), unique=True),
    )


# Book model
class Book(Base):
    __tablename__ = "books"

    id = Column(Integer, primary_key=True, index=True)
    title = Column(String(255), nullable=False, index=True)
    author = Column(String(255), nullable=False)
    isbn = Column(String(20), nullable=True)
    description = Column(Text, nullable=True)
    page_count = Column(Integer, nullable=True)
    total_copies = Column(Integer, nullable=False, default=0)
    available_copies = Column(Integer, nullable=False, default=0)

    active_checkouts = relationship("ActiveCheckout", back_populates="book")

    __table_args__ = (
        CheckConstraint("available_copies >= 0", name="chk_book_available_non_negative"),
        CheckConstraint("available_copies <= total_copies", name="chk_book_available_within_total"),
    )

    @property
    def copies(self):
        return self.available_copies


# One borrowed copy that has not been returned yet
class ActiveCheckout(Base):
    __tablename__ = "active_checkouts"

    id = Column(Integer, primary_key=True)
    user_id = Column(Integer, ForeignKey("users.id"), nullable=False, index=True)
    book_id = Column(Integer, ForeignKey("books.id"), nullable=False, index=True)
    checkout_date = Column(DateTime(timezone=True), nullable=False)

    user = relationship("User", back_populates="active_checkouts")
    book = relationship("Book", back_populates="active_checkouts")

    __table_args__ = (
        UniqueConstraint("user_id", "book_id", name="uq_active_checkout_user_book"),
    )


# Append-only log of completed checkouts. book_id is not a foreign key:
# history rows outlive the catalog entry.
class CheckoutHistory(Base):
    __tablename__ = "checkout_history"

    id = Column(Integer, primary_key=True)
    user_id = Column(Integer, ForeignKey("users.id"), nullable=False, index=True)
    book_id = Column(Integer, nullable=False, index=True)
    checkout_date = Column(DateTime(timezone=True), nullable=False)
    return_date = Column(DateTime(timezone=True), nullable=False)
