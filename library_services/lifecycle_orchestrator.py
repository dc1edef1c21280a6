"""
LifecycleOrchestrator -- the external-facing circulation contract.

Responsibility:
    Sequences the Catalog Store, Borrowing Ledger and Fine Ledger for each
    request and owns the transaction boundary around them.  Every mutating
    entry point is one unit of work: a fresh session, the kernel services,
    then commit.  Any failure rolls the whole unit back, so a book counter
    is never moved without its loan record (or vice versa).

Architecture position:
    Services layer.  Above ``library_kernel`` (flush-only services) and
    ``library_config`` (policy), below any transport (HTTP, CLI, jobs).

Error handling:
    - Business-rule errors (``is_client_error``) propagate unchanged.
    - Lost optimistic races, deadlocks, serialization failures and lock
      timeouts become ``ConcurrencyConflictError`` and are retried
      ``conflict_retries`` times (default once) before surfacing.
    - Connection-level failures, including an exhausted connection pool,
      become ``StoreUnavailableError`` and are retried up to
      ``store_retry_attempts`` total attempts.
    - No loop is unbounded.

Observability:
    Every entry point binds ``correlation_id`` and ``actor_id`` into
    ``LogContext`` and emits ``<operation>_started``,
    ``<operation>_completed`` / ``<operation>_failed`` with ``duration_ms``.
"""

from __future__ import annotations

import time
from collections.abc import Callable
from dataclasses import dataclass, field
from datetime import date
from decimal import Decimal
from typing import TypeVar
from uuid import UUID, uuid4

from sqlalchemy import text
from sqlalchemy.exc import DBAPIError, DisconnectionError, IntegrityError
from sqlalchemy.exc import TimeoutError as PoolTimeoutError
from sqlalchemy.orm import Session
from sqlalchemy.orm.exc import StaleDataError

from library_config.bridges import to_policy
from library_config.schema import CirculationConfig
from library_kernel.db.engine import is_postgres
from library_kernel.domain.clock import Clock, SystemClock
from library_kernel.domain.dtos import BorrowRecordInfo, FineInfo
from library_kernel.domain.money import ZERO, to_money
from library_kernel.domain.policy import CirculationPolicy
from library_kernel.exceptions import (
    ConcurrencyConflictError,
    FutureAccrualDateError,
    InvalidAmountError,
    InvalidCredentialError,
    LibraryKernelError,
    StoreUnavailableError,
)
from library_kernel.logging_config import LogContext, get_logger
from library_kernel.models.fine import FineType
from library_kernel.selectors.borrow_record_selector import BorrowRecordSelector
from library_kernel.selectors.fine_selector import FineSelector
from library_kernel.services.borrowing_ledger import BorrowingLedger
from library_kernel.services.catalog_store import CatalogStore
from library_kernel.services.fine_ledger import FineLedger
from library_services.authorization import Action, require_permission
from library_services.identity import Actor, IdentityProvider

logger = get_logger("services.lifecycle_orchestrator")

T = TypeVar("T")

SYSTEM_ACTOR_ID = "system"

# PostgreSQL SQLSTATEs that mean "another transaction got there first"
_CONFLICT_SQLSTATES = frozenset({"40001", "40P01", "55P03"})
_CONFLICT_MESSAGES = (
    "database is locked",
    "deadlock",
    "could not serialize",
    "lock timeout",
    "lock not available",
)

# Raised by the pool or the session before any DBAPI call is made
_STORE_ERRORS = (DBAPIError, PoolTimeoutError, DisconnectionError)


@dataclass(frozen=True)
class SweepResult:
    """Outcome of one overdue sweep."""

    as_of: date
    fines_issued: int
    total_amount: Decimal
    records_scanned: int
    records_skipped: int
    failed_record_ids: tuple[UUID, ...] = field(default_factory=tuple)

    @property
    def records_failed(self) -> int:
        return len(self.failed_record_ids)


@dataclass
class _Kernel:
    """Kernel services bound to one unit of work's session."""

    session: Session
    catalog: CatalogStore
    fines: FineLedger
    ledger: BorrowingLedger


def _translate_db_error(operation: str, exc: Exception) -> LibraryKernelError:
    """Map a SQLAlchemy failure onto the kernel's retry taxonomy."""
    if isinstance(exc, StaleDataError):
        return ConcurrencyConflictError(operation, str(exc))
    if isinstance(exc, IntegrityError):
        return ConcurrencyConflictError(operation, f"constraint violated: {exc.orig}")
    if isinstance(exc, DBAPIError):
        sqlstate = getattr(exc.orig, "pgcode", None)
        message = str(exc.orig).lower()
        if sqlstate in _CONFLICT_SQLSTATES or any(m in message for m in _CONFLICT_MESSAGES):
            return ConcurrencyConflictError(operation, str(exc.orig))
        return StoreUnavailableError(operation, 1, str(exc.orig))
    # pool checkout timeout or lost connection
    return StoreUnavailableError(operation, 1, str(exc))


class LifecycleOrchestrator:
    """
    Unit-of-work owner for circulation requests.

    Contract:
        Each public method opens its own session(s) from ``session_factory``
        and closes them before returning.  Returned values are frozen DTOs.

    Non-goals:
        - Request parsing, HTTP status mapping, pagination of responses.
    """

    def __init__(
        self,
        session_factory: Callable[[], Session],
        clock: Clock | None = None,
        policy: CirculationPolicy | None = None,
        identity_provider: IdentityProvider | None = None,
        statement_timeout_ms: int | None = None,
        conflict_retries: int = 1,
        store_retry_attempts: int = 2,
        store_retry_backoff_seconds: float = 0.05,
    ):
        if conflict_retries < 0:
            raise ValueError("conflict_retries must not be negative")
        if store_retry_attempts < 1:
            raise ValueError("store_retry_attempts must be at least 1")
        self._session_factory = session_factory
        self._clock = clock or SystemClock()
        self._policy = policy or CirculationPolicy()
        self._identity_provider = identity_provider
        self._statement_timeout_ms = statement_timeout_ms
        self._conflict_retries = conflict_retries
        self._store_retry_attempts = store_retry_attempts
        self._store_retry_backoff = store_retry_backoff_seconds

    @classmethod
    def from_config(
        cls,
        config: CirculationConfig,
        session_factory: Callable[[], Session],
        clock: Clock | None = None,
        identity_provider: IdentityProvider | None = None,
    ) -> LifecycleOrchestrator:
        return cls(
            session_factory,
            clock=clock,
            policy=to_policy(config),
            identity_provider=identity_provider,
            statement_timeout_ms=config.orchestrator.statement_timeout_ms,
            conflict_retries=config.orchestrator.conflict_retries,
            store_retry_attempts=config.orchestrator.store_retry_attempts,
            store_retry_backoff_seconds=config.orchestrator.store_retry_backoff_seconds,
        )

    @property
    def policy(self) -> CirculationPolicy:
        return self._policy

    # ------------------------------------------------------------------
    # Unit of work plumbing
    # ------------------------------------------------------------------

    def _kernel(self, session: Session) -> _Kernel:
        catalog = CatalogStore(session)
        fines = FineLedger(session, self._clock, self._policy)
        ledger = BorrowingLedger(session, self._clock, self._policy, catalog, fines)
        return _Kernel(session=session, catalog=catalog, fines=fines, ledger=ledger)

    def _apply_statement_timeout(self, session: Session) -> None:
        if self._statement_timeout_ms is None:
            return
        if is_postgres(session.get_bind()):
            # SET LOCAL takes no bind parameters
            session.execute(
                text(f"SET LOCAL statement_timeout = {int(self._statement_timeout_ms)}")
            )

    def _attempt(self, operation: str, work: Callable[[_Kernel], T]) -> T:
        """One try: open, work, commit; roll back and translate on failure."""
        session = self._session_factory()
        session.info["clock"] = self._clock
        try:
            self._apply_statement_timeout(session)
            result = work(self._kernel(session))
            session.commit()
            return result
        except LibraryKernelError:
            session.rollback()
            raise
        except (StaleDataError, *_STORE_ERRORS) as exc:
            session.rollback()
            raise _translate_db_error(operation, exc) from exc
        except Exception:
            session.rollback()
            raise
        finally:
            session.close()

    def _execute(self, operation: str, work: Callable[[_Kernel], T]) -> T:
        """Run ``work`` as a unit of work with bounded retries."""
        conflicts = 0
        store_failures = 0
        while True:
            try:
                return self._attempt(operation, work)
            except ConcurrencyConflictError:
                conflicts += 1
                if conflicts > self._conflict_retries:
                    raise
                logger.warning(
                    "concurrency_conflict_retry",
                    extra={"attempt": conflicts, "max_retries": self._conflict_retries},
                )
            except StoreUnavailableError as exc:
                store_failures += 1
                if store_failures >= self._store_retry_attempts:
                    raise StoreUnavailableError(operation, store_failures, exc.detail) from exc
                logger.warning(
                    "store_unavailable_retry",
                    extra={"attempt": store_failures, "max_attempts": self._store_retry_attempts},
                )
                time.sleep(self._store_retry_backoff * store_failures)

    def _run(
        self,
        operation: str,
        actor: Actor | None,
        work: Callable[[_Kernel], T],
        **log_fields,
    ) -> T:
        """Bind log context, time the unit of work, and log its outcome."""
        with LogContext.bind(
            correlation_id=str(uuid4()),
            actor_id=actor.user_id if actor else SYSTEM_ACTOR_ID,
            operation=operation,
        ):
            logger.info(f"{operation}_started", extra=log_fields)
            t0 = time.monotonic()
            try:
                result = self._execute(operation, work)
            except LibraryKernelError as exc:
                duration_ms = round((time.monotonic() - t0) * 1000, 2)
                if exc.is_client_error:
                    logger.warning(
                        f"{operation}_failed",
                        extra={"duration_ms": duration_ms, "error_code": exc.code},
                    )
                else:
                    logger.error(
                        f"{operation}_failed",
                        extra={"duration_ms": duration_ms, "error_code": exc.code},
                        exc_info=True,
                    )
                raise
            except Exception:
                duration_ms = round((time.monotonic() - t0) * 1000, 2)
                logger.error(
                    f"{operation}_failed",
                    extra={"duration_ms": duration_ms},
                    exc_info=True,
                )
                raise

            duration_ms = round((time.monotonic() - t0) * 1000, 2)
            logger.info(f"{operation}_completed", extra={"duration_ms": duration_ms})
            return result

    # ------------------------------------------------------------------
    # Identity
    # ------------------------------------------------------------------

    def authenticate(self, credential: str) -> Actor:
        """Resolve a credential to an Actor through the identity provider."""
        if self._identity_provider is None:
            raise InvalidCredentialError("no identity provider configured")
        try:
            actor = self._identity_provider.resolve_actor(credential)
        except InvalidCredentialError as exc:
            logger.warning("authentication_failed", extra={"reason": exc.reason})
            raise
        logger.info(
            "authentication_succeeded",
            extra={"authenticated_user": actor.user_id, "role": actor.role},
        )
        return actor

    # ------------------------------------------------------------------
    # Circulation
    # ------------------------------------------------------------------

    def checkout_book(
        self,
        user_id: str,
        book_id: UUID,
        actor: Actor,
        due_date: date | None = None,
        notes: str | None = None,
    ) -> BorrowRecordInfo:
        """Lend one copy of ``book_id`` to ``user_id`` on behalf of staff ``actor``."""
        require_permission(actor, Action.CHECKOUT, subject_user_id=user_id)
        with LogContext.bind(user_id=user_id):
            return self._run(
                "checkout",
                actor,
                lambda k: k.ledger.checkout(
                    user_id, book_id, actor.user_id, due_date=due_date, notes=notes
                ),
                book_id=str(book_id),
            )

    def return_book(
        self,
        record_id: UUID,
        actor: Actor,
        condition_notes: str | None = None,
    ) -> BorrowRecordInfo:
        """Close a loan as returned; a late return is fined in the same commit."""
        require_permission(actor, Action.RETURN)
        with LogContext.bind(record_id=str(record_id)):
            return self._run(
                "return",
                actor,
                lambda k: k.ledger.return_loan(
                    record_id, actor.user_id, condition_notes=condition_notes
                ),
            )

    def mark_lost(self, record_id: UUID, actor: Actor) -> BorrowRecordInfo:
        require_permission(actor, Action.MARK_LOST)
        with LogContext.bind(record_id=str(record_id)):
            return self._run(
                "mark_lost",
                actor,
                lambda k: k.ledger.mark_lost(record_id, actor.user_id),
            )

    def cancel_loan(
        self,
        record_id: UUID,
        actor: Actor,
        reason: str | None = None,
    ) -> BorrowRecordInfo:
        require_permission(actor, Action.CANCEL_LOAN)
        with LogContext.bind(record_id=str(record_id)):
            return self._run(
                "cancel_loan",
                actor,
                lambda k: k.ledger.cancel_loan(record_id, actor.user_id, reason=reason),
            )

    def run_overdue_sweep(
        self,
        as_of: date,
        daily_fine_rate: Decimal | str | None = None,
        actor: Actor | None = None,
    ) -> SweepResult:
        """
        Fine every overdue loan for the days not yet charged up to ``as_of``.

        The overdue loans are listed in one read-only session; each is then
        accrued in its own unit of work, re-validated under lock, so a loan
        returned since the scan is skipped and one failing loan does not
        undo the others.  ``actor=None`` means a scheduled system run.

        Raises:
            FutureAccrualDateError: if ``as_of`` is later than today;
                days that have not happened are never fined.
        """
        if actor is not None:
            require_permission(actor, Action.RUN_OVERDUE_SWEEP)
        today = self._clock.today()
        if as_of > today:
            raise FutureAccrualDateError(as_of, today)
        rate = self._policy.daily_fine_rate if daily_fine_rate is None else to_money(daily_fine_rate)
        if rate < 0:
            raise InvalidAmountError(rate, "daily rate must not be negative")

        operation = "overdue_sweep"
        with LogContext.bind(
            correlation_id=str(uuid4()),
            actor_id=actor.user_id if actor else SYSTEM_ACTOR_ID,
            operation=operation,
        ):
            logger.info(
                f"{operation}_started",
                extra={"as_of": as_of, "daily_rate": str(rate)},
            )
            t0 = time.monotonic()

            record_ids = self._execute(
                "overdue_scan",
                lambda k: BorrowRecordSelector(k.session, self._policy).overdue_record_ids(as_of),
            )

            issued = 0
            skipped = 0
            total = ZERO
            failed: list[UUID] = []
            for record_id in record_ids:
                try:
                    fine = self._execute(
                        "accrue_overdue_fine",
                        lambda k, rid=record_id: k.ledger.accrue_overdue_fine(rid, as_of, rate),
                    )
                except (ConcurrencyConflictError, StoreUnavailableError):
                    logger.error(
                        "overdue_accrual_failed",
                        extra={"failed_record_id": str(record_id)},
                        exc_info=True,
                    )
                    failed.append(record_id)
                    continue
                if fine is None:
                    skipped += 1
                else:
                    issued += 1
                    total += fine.amount

            result = SweepResult(
                as_of=as_of,
                fines_issued=issued,
                total_amount=total,
                records_scanned=len(record_ids),
                records_skipped=skipped,
                failed_record_ids=tuple(failed),
            )
            duration_ms = round((time.monotonic() - t0) * 1000, 2)
            logger.info(
                f"{operation}_completed",
                extra={
                    "duration_ms": duration_ms,
                    "fines_issued": issued,
                    "total_amount": str(total),
                    "records_scanned": result.records_scanned,
                    "records_skipped": skipped,
                    "records_failed": result.records_failed,
                },
            )
            return result

    # ------------------------------------------------------------------
    # Fines
    # ------------------------------------------------------------------

    def issue_fine(
        self,
        user_id: str,
        amount: Decimal | str,
        fine_type: FineType,
        reason: str,
        actor: Actor,
        borrow_record_id: UUID | None = None,
        description: str | None = None,
    ) -> FineInfo:
        """Manual fine (damage, other) issued by staff."""
        require_permission(actor, Action.ISSUE_FINE)
        with LogContext.bind(user_id=user_id):
            return self._run(
                "issue_fine",
                actor,
                lambda k: k.fines.issue_fine(
                    user_id,
                    amount,
                    fine_type,
                    reason,
                    borrow_record_id=borrow_record_id,
                    description=description,
                    issued_by=actor.user_id,
                ),
            )

    def pay_fine(
        self,
        fine_id: UUID,
        amount: Decimal | str,
        actor: Actor,
        payment_method: str | None = None,
        payment_reference: str | None = None,
    ) -> FineInfo:
        """Apply a payment.  Members may pay only their own fines."""

        def work(k: _Kernel) -> FineInfo:
            owner = FineSelector(k.session, self._policy).get(fine_id).user_id
            require_permission(actor, Action.PAY_FINE, subject_user_id=owner)
            return k.fines.pay_fine(
                fine_id,
                amount,
                processed_by=actor.user_id,
                payment_method=payment_method,
                payment_reference=payment_reference,
            )

        with LogContext.bind(fine_id=str(fine_id)):
            return self._run("pay_fine", actor, work, amount=str(amount))

    def waive_fine(self, fine_id: UUID, actor: Actor, reason: str | None = None) -> FineInfo:
        require_permission(actor, Action.WAIVE_FINE)
        with LogContext.bind(fine_id=str(fine_id)):
            return self._run(
                "waive_fine",
                actor,
                lambda k: k.fines.waive_fine(fine_id, actor.user_id, reason),
            )

    def cancel_fine(self, fine_id: UUID, actor: Actor, reason: str | None = None) -> FineInfo:
        require_permission(actor, Action.CANCEL_FINE)
        with LogContext.bind(fine_id=str(fine_id)):
            return self._run(
                "cancel_fine",
                actor,
                lambda k: k.fines.cancel_fine(fine_id, actor.user_id, reason),
            )

    def total_unpaid(self, user_id: str, actor: Actor) -> Decimal:
        """Outstanding balance of a patron's PENDING fines."""
        require_permission(actor, Action.VIEW_FINES, subject_user_id=user_id)
        return self._execute(
            "total_unpaid",
            lambda k: k.fines.total_unpaid_by_user(user_id),
        )
