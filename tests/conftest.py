"""
Pytest fixtures for the library circulation test suite.

Provides:
- A fresh in-memory SQLite database per test (schema created from the models)
- A flush-only ``session`` for kernel-level tests
- A ``session_factory`` for orchestrator tests that own their own commits
- Deterministic clock, default policy and service fixtures
- Structured-log capture

SQLite runs every transaction as BEGIN IMMEDIATE on one shared in-memory
connection, so a test uses EITHER the ``session`` fixture OR the
orchestrator (which opens its own sessions), never both at once.
"""

import json
import logging
from datetime import datetime, timezone
from decimal import Decimal
from io import StringIO
from uuid import uuid4

import pytest
from sqlalchemy.orm import sessionmaker

import library_services  # noqa: F401  (registers services tables)
from library_kernel.db.engine import build_engine, create_tables
from library_kernel.domain.clock import DeterministicClock
from library_kernel.domain.policy import CirculationPolicy
from library_kernel.logging_config import (
    LogContext,
    StructuredFormatter,
    configure_logging,
    reset_logging,
)
from library_kernel.models.book import Book, BookStatus
from library_kernel.models.patron import Patron, PatronRole
from library_kernel.services.borrowing_ledger import BorrowingLedger
from library_kernel.services.catalog_store import CatalogStore
from library_kernel.services.fine_ledger import FineLedger
from library_kernel.services.patron_service import PatronService
from library_services.identity import Actor, PatronTokenIdentityProvider
from library_services.lifecycle_orchestrator import LifecycleOrchestrator

# =============================================================================
# Logging fixtures
# =============================================================================


@pytest.fixture(autouse=True, scope="session")
def _configure_test_logging():
    """Configure structured logging for the test suite."""
    reset_logging()
    configure_logging(level=logging.DEBUG)
    yield
    reset_logging()


@pytest.fixture(autouse=True)
def _clear_log_context():
    """Clear LogContext between tests to prevent cross-test contamination."""
    LogContext.clear()
    yield
    LogContext.clear()


@pytest.fixture
def captured_logs():
    """
    Capture library_kernel logs as parsed JSON dicts.

    Usage::

        def test_something(captured_logs, orchestrator):
            orchestrator.checkout_book(...)
            logs = captured_logs()
            assert any(r["message"] == "checkout_completed" for r in logs)
    """
    stream = StringIO()
    handler = logging.StreamHandler(stream)
    handler.setFormatter(StructuredFormatter())
    root = logging.getLogger("library_kernel")
    previous_level = root.level
    root.setLevel(logging.DEBUG)
    root.addHandler(handler)

    def _get_records() -> list[dict]:
        lines = stream.getvalue().strip().split("\n")
        return [json.loads(line) for line in lines if line]

    yield _get_records

    root.removeHandler(handler)
    root.setLevel(previous_level)


# =============================================================================
# Database fixtures
# =============================================================================


@pytest.fixture
def engine():
    """Fresh in-memory database with every table created."""
    eng = build_engine("sqlite://")
    create_tables(eng)
    yield eng
    eng.dispose()


@pytest.fixture
def session_factory(engine):
    return sessionmaker(bind=engine, expire_on_commit=False)


@pytest.fixture
def deterministic_clock():
    """Clock fixed at 2024-01-01 12:00 UTC."""
    return DeterministicClock(datetime(2024, 1, 1, 12, 0, 0, tzinfo=timezone.utc))


@pytest.fixture
def policy():
    return CirculationPolicy()


@pytest.fixture
def session(session_factory, deterministic_clock):
    """Flush-only session; everything is rolled back at teardown."""
    sess = session_factory()
    sess.info["clock"] = deterministic_clock
    yield sess
    sess.rollback()
    sess.close()


# =============================================================================
# Kernel service fixtures
# =============================================================================


@pytest.fixture
def catalog(session):
    return CatalogStore(session)


@pytest.fixture
def patrons(session, policy):
    return PatronService(session, policy)


@pytest.fixture
def fine_ledger(session, deterministic_clock, policy):
    return FineLedger(session, deterministic_clock, policy)


@pytest.fixture
def borrowing_ledger(session, deterministic_clock, policy, catalog, fine_ledger):
    return BorrowingLedger(session, deterministic_clock, policy, catalog, fine_ledger)


@pytest.fixture
def make_book(catalog):
    """Factory: register a book and return its id."""

    def _make(
        total_copies: int = 1,
        replacement_cost: Decimal | str | None = None,
        title: str = "The Name of the Rose",
    ):
        availability = catalog.register_book(
            title=title,
            isbn=f"978-{uuid4().hex[:10]}",
            total_copies=total_copies,
            replacement_cost=replacement_cost,
        )
        return availability.book_id

    return _make


@pytest.fixture
def make_patron(patrons):
    """Factory: register a patron and return its user_id."""

    def _make(
        user_id: str | None = None,
        role: PatronRole = PatronRole.MEMBER,
        max_books_allowed: int | None = None,
    ) -> str:
        uid = user_id or f"user-{uuid4().hex[:8]}"
        patrons.register_patron(
            uid,
            first_name="Ada",
            last_name="Lovelace",
            role=role,
            max_books_allowed=max_books_allowed,
        )
        return uid

    return _make


# =============================================================================
# Orchestrator fixtures (own their commits; do not combine with ``session``)
# =============================================================================


@pytest.fixture
def orchestrator(session_factory, deterministic_clock, policy):
    return LifecycleOrchestrator(
        session_factory,
        clock=deterministic_clock,
        policy=policy,
        store_retry_backoff_seconds=0,
    )


@pytest.fixture
def seed(session_factory, deterministic_clock):
    """
    Commit rows outside the orchestrator.

    ``seed.book(...)`` returns a book id; ``seed.patron(...)`` returns an
    ``Actor`` for the new account.
    """

    class _Seeder:
        def book(
            self,
            total_copies: int = 1,
            replacement_cost: Decimal | str | None = None,
            status: BookStatus = BookStatus.AVAILABLE,
        ):
            with session_factory() as s:
                s.info["clock"] = deterministic_clock
                book = Book(
                    title="Seeded Book",
                    isbn=f"978-{uuid4().hex[:10]}",
                    status=BookStatus(status).value,
                    total_copies=total_copies,
                    available_copies=total_copies,
                    replacement_cost=(
                        Decimal(replacement_cost) if replacement_cost is not None else None
                    ),
                )
                s.add(book)
                s.commit()
                return book.id

        def patron(
            self,
            role: PatronRole = PatronRole.MEMBER,
            max_books_allowed: int = 5,
            user_id: str | None = None,
        ) -> Actor:
            uid = user_id or f"{PatronRole(role).value.lower()}-{uuid4().hex[:8]}"
            with session_factory() as s:
                s.info["clock"] = deterministic_clock
                s.add(
                    Patron(
                        user_id=uid,
                        first_name="Test",
                        last_name=PatronRole(role).value.title(),
                        role=PatronRole(role).value,
                        max_books_allowed=max_books_allowed,
                    )
                )
                s.commit()
            return Actor(user_id=uid, role=PatronRole(role).value)

    return _Seeder()


@pytest.fixture
def librarian(seed):
    return seed.patron(PatronRole.LIBRARIAN, max_books_allowed=10)


@pytest.fixture
def admin(seed):
    return seed.patron(PatronRole.ADMIN, max_books_allowed=10)


@pytest.fixture
def member(seed):
    return seed.patron(PatronRole.MEMBER)


@pytest.fixture
def identity_provider(session_factory, deterministic_clock):
    return PatronTokenIdentityProvider(session_factory, clock=deterministic_clock)


@pytest.fixture
def read(session_factory):
    """Read committed state in a fresh, short-lived session."""
    from library_kernel.selectors.borrow_record_selector import BorrowRecordSelector
    from library_kernel.selectors.fine_selector import FineSelector

    class _Reader:
        def record(self, record_id):
            with session_factory() as s:
                return BorrowRecordSelector(s).get(record_id)

        def book(self, book_id):
            with session_factory() as s:
                return CatalogStore(s).get_availability(book_id)

        def fine(self, fine_id):
            with session_factory() as s:
                return FineSelector(s).get(fine_id)

        def fines_for(self, record_id):
            with session_factory() as s:
                return FineSelector(s).fines_for_record(record_id)

        def active_count(self, user_id):
            with session_factory() as s:
                return BorrowRecordSelector(s).active_count_by_user(user_id)

    return _Reader()
