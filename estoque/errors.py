"""
Error kinds raised by the catalog core.

Each error carries the HTTP status it is rendered with and a stable ``kind``
string, so the API layer can translate them without knowing the details.
"""
from contextlib import contextmanager
from typing import Iterator, Optional, Type

from sqlalchemy.exc import DataError, IntegrityError, InterfaceError, OperationalError


class EstoqueError(Exception):
    status_code = 500
    kind = "error"
    default_message = "Internal error"

    def __init__(self, message: Optional[str] = None):
        self.message = message or self.default_message
        super().__init__(self.message)


class ValidationError(EstoqueError):
    status_code = 422
    kind = "validation_error"
    default_message = "Invalid field"


class DuplicateCodeError(EstoqueError):
    status_code = 409
    kind = "duplicate_code"
    default_message = "Product code already exists"

    def __init__(self, code: Optional[str] = None):
        self.code = code
        super().__init__(f"Product code '{code}' already exists" if code else None)


class DuplicateSupplierError(EstoqueError):
    status_code = 409
    kind = "duplicate_supplier"
    default_message = "Supplier already exists"


class NotFoundError(EstoqueError):
    status_code = 404
    kind = "not_found"
    default_message = "Not found"


class NothingToRestoreError(NotFoundError):
    kind = "nothing_to_restore"
    default_message = "Nothing to restore"


class AuthError(EstoqueError):
    status_code = 401
    kind = "auth_error"
    default_message = "Invalid credentials"


class AccessDeniedError(EstoqueError):
    status_code = 403
    kind = "permission_denied"
    default_message = "Access denied"


class UploadError(EstoqueError):
    status_code = 400
    kind = "upload_error"
    default_message = "Missing or unreadable file"


class StorageUnavailable(EstoqueError):
    status_code = 503
    kind = "storage_unavailable"
    default_message = "Database unavailable"


@contextmanager
def storage_errors(
    on_integrity: Type[EstoqueError] = ValidationError,
    conflict: Optional[str] = None,
) -> Iterator[None]:
    """Translate driver exceptions raised inside the block into core error kinds."""
    try:
        yield
    except IntegrityError as exc:
        raise on_integrity(conflict) from exc
    except DataError as exc:
        raise ValidationError("Value out of range for its column") from exc
    except (OperationalError, InterfaceError, OSError) as exc:
        raise StorageUnavailable() from exc
