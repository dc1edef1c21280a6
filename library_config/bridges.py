"""
Config-to-kernel bridges.

Translate the parsed ``CirculationConfig`` into the kernel's
``CirculationPolicy``.  The kernel never imports ``library_config``; these
functions are the only crossing point.
"""

from types import MappingProxyType

from library_config.schema import CirculationConfig
from library_kernel.domain.policy import CirculationPolicy


def to_policy(config: CirculationConfig) -> CirculationPolicy:
    """Build the kernel policy from a loaded configuration."""
    return CirculationPolicy(
        loan_period_days=config.lending.loan_period_days,
        fine_payment_days=config.fines.payment_days,
        daily_fine_rate=config.fines.daily_rate,
        lost_book_replacement_cost=config.fines.lost_book_replacement_cost,
        max_books_by_role=MappingProxyType(dict(config.lending.role_limits)),
        default_max_books=config.lending.default_max_books,
        default_page_size=config.paging.default_page_size,
        max_page_size=config.paging.max_page_size,
    )
