"""Database layer: declarative base, column types, audit composite, engine."""

from library_kernel.db.audit import AuditFields, register_audit_listeners
from library_kernel.db.base import Base, UUIDString
from library_kernel.db.engine import (
    build_engine,
    create_tables,
    drop_tables,
    get_engine,
    get_session,
    get_session_factory,
    init_engine_from_url,
    is_postgres,
    reset_engine,
    session_scope,
)

__all__ = [
    "AuditFields",
    "Base",
    "UUIDString",
    "build_engine",
    "create_tables",
    "drop_tables",
    "get_engine",
    "get_session",
    "get_session_factory",
    "init_engine_from_url",
    "is_postgres",
    "register_audit_listeners",
    "reset_engine",
    "session_scope",
]
