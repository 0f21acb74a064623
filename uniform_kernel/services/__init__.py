"""Kernel services: the imperative shell over the domain and engines."""

from uniform_kernel.services.base import BaseService
from uniform_kernel.services.batch_service import BatchService
from uniform_kernel.services.deficit_report_service import (
    DeficitReportStore,
    GeneratedReports,
    school_report_id,
    student_report_id,
)
from uniform_kernel.services.roster_service import RosterService
from uniform_kernel.services.school_service import SchoolService
from uniform_kernel.services.stock_ledger import StockCheck, StockDeduction, StockLedger
from uniform_kernel.services.uniform_logging_service import (
    LoggingResult,
    LoggingStatus,
    UniformLoggingService,
)

__all__ = [
    "BaseService",
    "BatchService",
    "DeficitReportStore",
    "GeneratedReports",
    "LoggingResult",
    "LoggingStatus",
    "RosterService",
    "SchoolService",
    "StockCheck",
    "StockDeduction",
    "StockLedger",
    "UniformLoggingService",
    "school_report_id",
    "student_report_id",
]
