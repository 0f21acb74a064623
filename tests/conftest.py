"""
Pytest fixtures for the uniform kernel test suite.

Provides:
- An in-memory SQLite document store per test
- A deterministic clock
- Service and selector instances wired to the store
- Builders for schools, students, and batches
- Structured log capture
"""

import json
import logging
from io import StringIO

import pytest
from sqlalchemy.orm import sessionmaker

from uniform_kernel.db.engine import build_engine, create_tables
from uniform_kernel.db.sql_document_store import SqlDocumentStore
from uniform_kernel.domain.clock import DeterministicClock
from uniform_kernel.logging_config import (
    LogContext,
    StructuredFormatter,
    configure_logging,
    reset_logging,
)
from uniform_kernel.selectors import DeficitSelector, InventorySelector
from uniform_kernel.services import (
    BatchService,
    DeficitReportStore,
    RosterService,
    SchoolService,
    StockLedger,
    UniformLoggingService,
)

TEST_ACTOR = "Test Storekeeper"


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
    Capture uniform_kernel logs as parsed JSON dicts.

    Usage::

        def test_something(captured_logs, logging_service):
            logging_service.log_uniform_received(...)
            logs = captured_logs()
            assert any(r["message"] == "uniform_logged" for r in logs)
    """
    stream = StringIO()
    handler = logging.StreamHandler(stream)
    handler.setFormatter(StructuredFormatter())
    root = logging.getLogger("uniform_kernel")
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
# Store
# =============================================================================


@pytest.fixture
def clock():
    return DeterministicClock()


@pytest.fixture
def engine():
    eng = build_engine("sqlite://")
    create_tables(eng)
    yield eng
    eng.dispose()


@pytest.fixture
def session_factory(engine):
    return sessionmaker(bind=engine, expire_on_commit=False)


@pytest.fixture
def store(session_factory, clock):
    return SqlDocumentStore(session_factory, clock)


@pytest.fixture
def rival_store(session_factory, clock):
    """A second store over the same database, for writes that race ``store``."""
    return SqlDocumentStore(session_factory, clock)


@pytest.fixture
def rival_ledger(rival_store, clock):
    return StockLedger(rival_store, clock, sleep=lambda _: None)


# =============================================================================
# Services and selectors
# =============================================================================


@pytest.fixture
def sleeps():
    """Backoff delays requested by the stock ledger (no real sleeping)."""
    return []


@pytest.fixture
def stock_ledger(store, clock, sleeps):
    return StockLedger(store, clock, max_attempts=5, backoff_seconds=0.01, sleep=sleeps.append)


@pytest.fixture
def logging_service(store, clock, stock_ledger):
    return UniformLoggingService(store, clock, ledger=stock_ledger)


@pytest.fixture
def report_store(store, clock):
    return DeficitReportStore(store, clock)


@pytest.fixture
def school_service(store, clock):
    return SchoolService(store, clock)


@pytest.fixture
def roster_service(store, clock):
    return RosterService(store, clock)


@pytest.fixture
def batch_service(store, clock):
    return BatchService(store, clock)


@pytest.fixture
def deficit_selector(store):
    return DeficitSelector(store)


@pytest.fixture
def inventory_selector(store):
    return InventorySelector(store)


# =============================================================================
# Builders
# =============================================================================


SHIRT = {"id": "shirt", "name": "White Shirt", "type": "Shirt"}
TROUSERS = {"id": "trousers", "name": "Grey Trousers", "type": "Trousers"}


@pytest.fixture
def school(school_service):
    """A school requiring 3 shirts and 2 trousers for Junior Boys."""
    created = school_service.create_school("Lilongwe Academy")
    school_service.add_policy(
        created.id,
        {
            "uniformId": "shirt",
            "uniformName": "White Shirt",
            "uniformType": "Shirt",
            "level": "Junior",
            "gender": "Boys",
            "quantityPerStudent": 3,
        },
    )
    school_service.add_policy(
        created.id,
        {
            "uniformId": "trousers",
            "uniformName": "Grey Trousers",
            "uniformType": "Trousers",
            "level": "Junior",
            "gender": "Boys",
            "quantityPerStudent": 2,
        },
    )
    return school_service.get_school(created.id)


@pytest.fixture
def student(roster_service, school):
    return roster_service.add_student(school.id, "Chikondi Phiri", "Junior", "Boys", form="1A")


@pytest.fixture
def make_batch(batch_service):
    """Create a batch holding ``quantity`` of one size of a uniform."""

    def _make(uniform_id="shirt", size="M", quantity=10, name="Term 1 delivery", **extra_sizes):
        sizes = [{"size": size, "quantity": quantity}]
        sizes.extend({"size": s, "quantity": q} for s, q in extra_sizes.items())
        return batch_service.create_batch(
            name,
            [
                {
                    "uniformId": uniform_id,
                    "variantType": "Short sleeve",
                    "color": "White",
                    "price": "12.50",
                    "sizes": sizes,
                }
            ],
        )

    return _make
