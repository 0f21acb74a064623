"""
Config -> Kernel Bridges.

Functions that turn ``KernelSettings`` into configured kernel objects.
These live in uniform_config because the kernel must NEVER import
uniform_config.

Usage:
    from uniform_config import get_active_settings
    from uniform_config.bridges import build_kernel

    kernel = build_kernel(get_active_settings())
    kernel.logging_service.log_uniform_received(student_id, uniform, 1, size="M")
"""

from __future__ import annotations

import logging
from dataclasses import dataclass

from sqlalchemy.orm import sessionmaker

from uniform_config.loader import KernelSettings
from uniform_kernel.db.engine import build_engine, create_tables
from uniform_kernel.db.sql_document_store import SqlDocumentStore
from uniform_kernel.domain.clock import Clock, SystemClock
from uniform_kernel.logging_config import configure_logging
from uniform_kernel.services import (
    BatchService,
    DeficitReportStore,
    RosterService,
    SchoolService,
    StockLedger,
    UniformLoggingService,
)


def build_store(settings: KernelSettings, clock: Clock | None = None) -> SqlDocumentStore:
    """Create the engine for ``settings.database_url`` and a store over it."""
    engine = build_engine(settings.database_url, echo=settings.echo_sql)
    create_tables(engine)
    return SqlDocumentStore(sessionmaker(bind=engine, expire_on_commit=False), clock)


def build_stock_ledger(
    settings: KernelSettings, store: SqlDocumentStore, clock: Clock | None = None
) -> StockLedger:
    return StockLedger(
        store,
        clock,
        max_attempts=settings.stock_retry_attempts,
        backoff_seconds=settings.stock_retry_backoff_seconds,
    )


def build_report_store(
    settings: KernelSettings, store: SqlDocumentStore, clock: Clock | None = None
) -> DeficitReportStore:
    return DeficitReportStore(store, clock, prune_orphans=settings.prune_orphan_reports)


@dataclass(frozen=True)
class Kernel:
    """The services of one configured kernel, sharing a store and clock."""

    store: SqlDocumentStore
    clock: Clock
    stock_ledger: StockLedger
    report_store: DeficitReportStore
    logging_service: UniformLoggingService
    school_service: SchoolService
    roster_service: RosterService
    batch_service: BatchService


def build_kernel(
    settings: KernelSettings,
    clock: Clock | None = None,
    *,
    refresh_reports_on_log: bool = False,
    configure_log_output: bool = True,
) -> Kernel:
    """
    Wire every service from ``settings``.

    With ``refresh_reports_on_log`` the logging service refreshes the
    school's stored deficit reports after each successful log.
    """
    if configure_log_output:
        configure_logging(level=settings.log_level_number)
    clock = clock or SystemClock()
    store = build_store(settings, clock)
    stock = build_stock_ledger(settings, store, clock)
    reports = build_report_store(settings, store, clock)
    kernel = Kernel(
        store=store,
        clock=clock,
        stock_ledger=stock,
        report_store=reports,
        logging_service=UniformLoggingService(
            store,
            clock,
            ledger=stock,
            report_store=reports if refresh_reports_on_log else None,
        ),
        school_service=SchoolService(store, clock),
        roster_service=RosterService(store, clock),
        batch_service=BatchService(store, clock),
    )
    logging.getLogger("uniform_kernel.config").debug(
        "kernel_built",
        extra={
            "prune_orphan_reports": settings.prune_orphan_reports,
            "refresh_reports_on_log": refresh_reports_on_log,
        },
    )
    return kernel