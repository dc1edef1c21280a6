"""
Configuration schema -- frozen dataclasses parsed from YAML.

Every section has defaults matching the shipped ``sets/default.yaml`` so a
partial file only overrides what it names.
"""

from dataclasses import dataclass, field
from decimal import Decimal


@dataclass(frozen=True)
class LendingConfig:
    """Loan periods and borrowing limits."""

    loan_period_days: int = 14
    default_max_books: int = 5
    role_limits: tuple[tuple[str, int], ...] = (
        ("MEMBER", 5),
        ("LIBRARIAN", 10),
        ("ADMIN", 10),
    )


@dataclass(frozen=True)
class FineConfig:
    daily_rate: Decimal = Decimal("0.50")
    payment_days: int = 30
    lost_book_replacement_cost: Decimal = Decimal("25.00")


@dataclass(frozen=True)
class PagingConfig:
    default_page_size: int = 20
    max_page_size: int = 1000


@dataclass(frozen=True)
class OrchestratorConfig:
    """Retry bounds and time budget for each unit of work."""

    conflict_retries: int = 1
    store_retry_attempts: int = 2
    store_retry_backoff_seconds: float = 0.05
    statement_timeout_ms: int | None = None


@dataclass(frozen=True)
class DatabaseConfig:
    url: str = "sqlite:///library.db"
    echo: bool = False
    pool_size: int = 20
    max_overflow: int = 10


@dataclass(frozen=True)
class CirculationConfig:
    """
    Complete runtime configuration.

    ``checksum`` is the SHA-256 of the canonical JSON of the source data and
    identifies the configuration in logs.
    """

    config_id: str
    version: int
    lending: LendingConfig = field(default_factory=LendingConfig)
    fines: FineConfig = field(default_factory=FineConfig)
    paging: PagingConfig = field(default_factory=PagingConfig)
    orchestrator: OrchestratorConfig = field(default_factory=OrchestratorConfig)
    database: DatabaseConfig = field(default_factory=DatabaseConfig)
    checksum: str = ""
