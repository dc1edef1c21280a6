"""
Pure domain layer.

This module contains pure data transfer objects, the circulation policy
and fine arithmetic with NO dependencies on:
- ORM sessions
- Database
- I/O (except SystemClock)
"""

from library_kernel.domain.clock import Clock, DeterministicClock, SystemClock
from library_kernel.domain.dtos import (
    BookAvailability,
    BorrowRecordInfo,
    FineInfo,
    FinePaymentInfo,
    Page,
    PageRequest,
    PatronInfo,
)
from library_kernel.domain.fine_calculator import (
    OverdueAccrual,
    calculate_overdue_fine,
    incremental_overdue_fine,
    overdue_days,
)
from library_kernel.domain.policy import CirculationPolicy

__all__ = [
    "BookAvailability",
    "BorrowRecordInfo",
    "CirculationPolicy",
    "Clock",
    "DeterministicClock",
    "FineInfo",
    "FinePaymentInfo",
    "OverdueAccrual",
    "Page",
    "PageRequest",
    "PatronInfo",
    "SystemClock",
    "calculate_overdue_fine",
    "incremental_overdue_fine",
    "overdue_days",
]
