"""
Typed Exception Hierarchy for the Library Kernel.

===============================================================================
WHY TYPED EXCEPTIONS
===============================================================================

Every rejected circulation operation must be distinguishable by the caller.
A checkout refused because the patron is at their limit is handled very
differently from one refused because the last copy just went out, and both
differ from a transient lock conflict that is safe to retry.

Every error therefore has:
  1. A TYPED exception class (catch by type, not message)
  2. A CODE class attribute (machine-readable, API-safe)
  3. Structured DATA attributes (not just a message string)

===============================================================================
EXCEPTION HIERARCHY
===============================================================================

    LibraryKernelError (base)
    |
    +-- NotFoundError
    |   +-- BookNotFoundError
    |   +-- PatronNotFoundError
    |   +-- BorrowRecordNotFoundError
    |   +-- FineNotFoundError
    |
    +-- CirculationError
    |   +-- BookUnavailableError
    |   +-- LimitExceededError
    |   +-- LoanNotActiveError
    |   +-- CatalogIntegrityError
    |   +-- InvalidDueDateError
    |   +-- FutureAccrualDateError
    |
    +-- FineError
    |   +-- FineAlreadyPaidError
    |   +-- FineNotPayableError
    |   +-- InvalidAmountError
    |   +-- OverPaymentError
    |   +-- FineRecordMismatchError
    |
    +-- ConcurrencyError
    |   +-- ConcurrencyConflictError
    |
    +-- StoreError
    |   +-- StoreUnavailableError
    |
    +-- AuthError
        +-- InvalidCredentialError
        +-- PermissionDeniedError

===============================================================================
ERROR CODES - QUICK REFERENCE
===============================================================================

Category     | Code                      | When Raised
-------------|---------------------------|-------------------------------------------
Lookup       | NOT_FOUND                 | Book / patron / record / fine absent
-------------|---------------------------|-------------------------------------------
Circulation  | BOOK_UNAVAILABLE          | No copy free, or book not AVAILABLE
             | LIMIT_EXCEEDED            | Patron at max_books_allowed
             | NOT_ACTIVE                | Loan is not ACTIVE
             | CATALOG_INTEGRITY         | Copy counters would leave [0, total]
             | INVALID_DUE_DATE          | Requested due date before the borrow date
             | FUTURE_ACCRUAL_DATE       | Overdue cutoff later than today
-------------|---------------------------|-------------------------------------------
Fines        | ALREADY_PAID              | Paying a PAID fine
             | FINE_NOT_PAYABLE          | Fine is WAIVED / CANCELLED
             | INVALID_AMOUNT            | Amount <= 0 or finer than a cent
             | OVER_PAYMENT              | Payment > remaining amount
             | FINE_RECORD_MISMATCH      | Fine user differs from loan user
-------------|---------------------------|-------------------------------------------
Concurrency  | CONCURRENCY_CONFLICT      | Lost optimistic race / lock timeout
-------------|---------------------------|-------------------------------------------
Store        | STORE_UNAVAILABLE         | Database unreachable
-------------|---------------------------|-------------------------------------------
Auth         | INVALID_CREDENTIAL        | Unknown / expired credential
             | PERMISSION_DENIED         | Role may not perform the action

===============================================================================
HANDLING PATTERNS
===============================================================================

1. CATCH SPECIFIC EXCEPTIONS:

    try:
        orchestrator.checkout_book(user_id, book_id, actor)
    except LimitExceededError as e:
        notify(f"{e.user_id} already has {e.active_count} books")
    except BookUnavailableError as e:
        offer_reservation(e.book_id)

2. USE CLASSIFICATION, NOT CLASS LISTS:

    except LibraryKernelError as e:
        status = 400 if e.is_client_error else 503
        return {"error": e.code, "message": str(e)}, status

3. CONCURRENCY ERRORS ARE RETRYABLE:

    The orchestrator retries ConcurrencyConflictError once before
    surfacing it.  Callers that see it may retry again at their discretion.
"""

from datetime import date
from decimal import Decimal


class LibraryKernelError(Exception):
    """
    Base exception for all library kernel errors.

    All subclasses must have a ``code`` class attribute for
    machine-readable error identification.
    """

    code: str = "LIBRARY_KERNEL_ERROR"

    # Client errors are caused by the request (bad input, business rule).
    is_client_error: bool = True
    # Retryable errors may succeed if the same request is repeated.
    is_retryable: bool = False


# Lookup exceptions


class NotFoundError(LibraryKernelError):
    """Base exception for missing entities."""

    code: str = "NOT_FOUND"

    entity_type: str = "entity"

    def __init__(self, entity_id: str):
        self.entity_id = entity_id
        super().__init__(f"{self.entity_type} not found: {entity_id}")


class BookNotFoundError(NotFoundError):
    """Book with given ID was not found."""

    entity_type = "Book"


class PatronNotFoundError(NotFoundError):
    """No patron account exists for the given user ID."""

    entity_type = "Patron"


class BorrowRecordNotFoundError(NotFoundError):
    """Borrow record with given ID was not found."""

    entity_type = "BorrowRecord"


class FineNotFoundError(NotFoundError):
    """Fine with given ID was not found."""

    entity_type = "Fine"


# Circulation exceptions


class CirculationError(LibraryKernelError):
    """Base exception for borrowing-rule violations."""

    code: str = "CIRCULATION_ERROR"


class BookUnavailableError(CirculationError):
    """No copy of the book can be lent right now."""

    code: str = "BOOK_UNAVAILABLE"

    def __init__(self, book_id: str, status: str, available_copies: int):
        self.book_id = book_id
        self.status = status
        self.available_copies = available_copies
        super().__init__(
            f"Book {book_id} is not available for borrowing "
            f"(status={status}, available_copies={available_copies})"
        )


class LimitExceededError(CirculationError):
    """Patron already holds their maximum number of active loans."""

    code: str = "LIMIT_EXCEEDED"

    def __init__(self, user_id: str, active_count: int, max_allowed: int):
        self.user_id = user_id
        self.active_count = active_count
        self.max_allowed = max_allowed
        super().__init__(
            f"User {user_id} has reached maximum borrowing limit of "
            f"{max_allowed} (active loans: {active_count})"
        )


class LoanNotActiveError(CirculationError):
    """Loan is not in ACTIVE status and cannot transition."""

    code: str = "NOT_ACTIVE"

    def __init__(self, record_id: str, status: str):
        self.record_id = record_id
        self.status = status
        super().__init__(
            f"Borrow record {record_id} is not currently active (status={status})"
        )


class CatalogIntegrityError(CirculationError):
    """An availability adjustment would break the copy counters."""

    code: str = "CATALOG_INTEGRITY"

    def __init__(self, book_id: str, reason: str):
        self.book_id = book_id
        self.reason = reason
        super().__init__(f"Catalog integrity violation on book {book_id}: {reason}")


class InvalidDueDateError(CirculationError):
    """Requested due date falls before the loan's borrow date."""

    code: str = "INVALID_DUE_DATE"

    def __init__(self, due_date: date, borrow_date: date):
        self.due_date = due_date
        self.borrow_date = borrow_date
        super().__init__(
            f"Due date {due_date} cannot be before borrow date {borrow_date}"
        )


class FutureAccrualDateError(CirculationError):
    """Overdue fines cannot be charged for days that have not happened yet."""

    code: str = "FUTURE_ACCRUAL_DATE"

    def __init__(self, as_of: date, today: date):
        self.as_of = as_of
        self.today = today
        super().__init__(f"Cannot accrue overdue fines as of {as_of}; today is {today}")


# Fine exceptions


class FineError(LibraryKernelError):
    """Base exception for fine and payment errors."""

    code: str = "FINE_ERROR"


class FineAlreadyPaidError(FineError):
    """Fine has already been paid in full."""

    code: str = "ALREADY_PAID"

    def __init__(self, fine_id: str):
        self.fine_id = fine_id
        super().__init__(f"Fine {fine_id} is already paid")


class FineNotPayableError(FineError):
    """Fine is closed (waived or cancelled) and accepts no further action."""

    code: str = "FINE_NOT_PAYABLE"

    def __init__(self, fine_id: str, status: str):
        self.fine_id = fine_id
        self.status = status
        super().__init__(f"Fine {fine_id} is {status} and cannot be changed")


class InvalidAmountError(FineError):
    """Monetary amount is not a positive whole number of cents."""

    code: str = "INVALID_AMOUNT"

    def __init__(self, amount: Decimal | str, reason: str = "amount must be greater than zero"):
        self.amount = str(amount)
        self.reason = reason
        super().__init__(f"Invalid amount {amount}: {reason}")


class OverPaymentError(FineError):
    """Payment exceeds the remaining balance of the fine."""

    code: str = "OVER_PAYMENT"

    def __init__(self, fine_id: str, payment: Decimal, remaining: Decimal):
        self.fine_id = fine_id
        self.payment = str(payment)
        self.remaining = str(remaining)
        super().__init__(
            f"Payment {payment} exceeds remaining amount {remaining} on fine {fine_id}"
        )


class FineRecordMismatchError(FineError):
    """Fine owner differs from the borrower on the referenced loan."""

    code: str = "FINE_RECORD_MISMATCH"

    def __init__(self, record_id: str, fine_user_id: str, record_user_id: str):
        self.record_id = record_id
        self.fine_user_id = fine_user_id
        self.record_user_id = record_user_id
        super().__init__(
            f"Fine for user {fine_user_id} cannot attach to borrow record "
            f"{record_id} owned by {record_user_id}"
        )


# Concurrency exceptions


class ConcurrencyError(LibraryKernelError):
    """Base exception for concurrency-related errors."""

    code: str = "CONCURRENCY_ERROR"
    is_client_error = False
    is_retryable = True


class ConcurrencyConflictError(ConcurrencyError):
    """Another transaction modified the same rows first."""

    code: str = "CONCURRENCY_CONFLICT"

    def __init__(self, operation: str, detail: str = ""):
        self.operation = operation
        self.detail = detail
        message = f"Concurrent modification during {operation}"
        if detail:
            message = f"{message}: {detail}"
        super().__init__(message)


# Store exceptions


class StoreError(LibraryKernelError):
    """Base exception for backing-store failures."""

    code: str = "STORE_ERROR"
    is_client_error = False


class StoreUnavailableError(StoreError):
    """The backing store could not be reached or failed mid-operation."""

    code: str = "STORE_UNAVAILABLE"

    def __init__(self, operation: str, attempts: int, detail: str = ""):
        self.operation = operation
        self.attempts = attempts
        self.detail = detail
        super().__init__(
            f"Store unavailable during {operation} after {attempts} attempt(s)"
            + (f": {detail}" if detail else "")
        )


# Authentication / authorization exceptions


class AuthError(LibraryKernelError):
    """Base exception for identity and permission errors."""

    code: str = "AUTH_ERROR"


class InvalidCredentialError(AuthError):
    """Credential is unknown, malformed, or expired."""

    code: str = "INVALID_CREDENTIAL"

    def __init__(self, reason: str = "credential could not be verified"):
        self.reason = reason
        super().__init__(f"Invalid credential: {reason}")


class PermissionDeniedError(AuthError):
    """Actor's role does not grant the requested action."""

    code: str = "PERMISSION_DENIED"

    def __init__(self, actor_id: str, role: str, action: str):
        self.actor_id = actor_id
        self.role = role
        self.action = action
        super().__init__(f"{role} {actor_id} may not perform '{action}'")
