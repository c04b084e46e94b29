"""Error kinds raised by the stores, the ledger and the token service.

Every request-level error carries the HTTP status and the machine code the
API layer answers with; the message is the human readable ``detail``.
"""

from typing import Any, Dict, Optional


class ConfigurationError(RuntimeError):
    """The server is missing a setting it cannot run without."""


class LibraryError(Exception):
    status_code = 500
    code = "error"
    default_message = "Request failed"

    def __init__(self, message: Optional[str] = None, fields: Optional[Dict[str, Any]] = None):
        self.message = message or self.default_message
        self.fields = fields
        super().__init__(self.message)

    def to_dict(self) -> Dict[str, Any]:
        body: Dict[str, Any] = {"detail": self.message, "code": self.code}
        if self.fields is not None:
            body["fields"] = self.fields
        return body


class InvalidInput(LibraryError):
    status_code = 400
    code = "invalid_input"
    default_message = "Invalid input"


class Unauthenticated(LibraryError):
    status_code = 401
    code = "unauthenticated"
    default_message = "Unauthorized"


class Forbidden(LibraryError):
    status_code = 403
    code = "forbidden"
    default_message = "Forbidden"


class NotFound(LibraryError):
    status_code = 404
    code = "not_found"
    default_message = "Not found"


class DuplicateIdentity(LibraryError):
    status_code = 409
    code = "duplicate_identity"
    default_message = "Username or email already in use"


class BookInUse(LibraryError):
    status_code = 409
    code = "book_in_use"
    default_message = "Book has active checkouts"


class LimitReached(LibraryError):
    status_code = 400
    code = "limit_reached"
    default_message = "Checkout limit reached."


class DuplicateCheckout(LibraryError):
    status_code = 400
    code = "duplicate_checkout"
    default_message = "You may only check out 1 copy of a given book."


class Unavailable(LibraryError):
    status_code = 400
    code = "unavailable"
    default_message = "Book is not available for checkout."


class StorageFailure(LibraryError):
    status_code = 500
    code = "storage_failure"
    default_message = "A storage error occurred"
