"""
Library circulation kernel.

Models, pure domain logic, flush-only ledgers and read-only selectors for
lending books and managing fines.  Transaction boundaries belong to the
caller; see ``library_services.LifecycleOrchestrator``.
"""
