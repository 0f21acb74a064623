"""Database layer: engine, declarative base, and the document store."""

from uniform_kernel.db.base import Base
from uniform_kernel.db.document_store import (
    BATCH_INVENTORY,
    DEFICIT_REPORTS,
    SCHOOLS,
    STUDENTS,
    UNIFORMS,
    ArrayRemove,
    ArrayUnion,
    DocumentStore,
    FieldFilter,
    Subscription,
    Transaction,
)
from uniform_kernel.db.engine import (
    build_engine,
    create_tables,
    session_scope,
)
from uniform_kernel.db.sql_document_store import SqlDocumentStore, SqlTransaction

__all__ = [
    "BATCH_INVENTORY",
    "Base",
    "DEFICIT_REPORTS",
    "ArrayRemove",
    "ArrayUnion",
    "DocumentStore",
    "FieldFilter",
    "SCHOOLS",
    "STUDENTS",
    "SqlDocumentStore",
    "SqlTransaction",
    "Subscription",
    "Transaction",
    "UNIFORMS",
    "build_engine",
    "create_tables",
    "session_scope",
]
