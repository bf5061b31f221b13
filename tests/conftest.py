"""
Shared pytest fixtures for the Trade Operations Platform test suite.

Provides:
    - app: Flask application (session-scoped)
    - _setup_db: Database table creation/teardown (session-scoped)
    - session: Per-test DB cleanup w/ rollback + recreate (autouse)
    - client: Flask test client (function-scoped)
    - now / today: fixed clock for rule-driven tests
    - make_contract / make_shipment / make_document: committed entity factories
"""

from datetime import datetime, timezone

import pytest

from app import create_app
from app.models import db as _db
from app.models.logistics import Contract, PaymentScheduleItem, Shipment, ShipmentDocument


# ── App & DB fixtures ────────────────────────────────────────────────────


@pytest.fixture(scope="session")
def app():
    """Create the Flask application once per test session."""
    application = create_app("testing")
    return application


@pytest.fixture(scope="session")
def _setup_db(app):
    """Create all tables at session start, drop at end."""
    with app.app_context():
        _db.create_all()
    yield
    with app.app_context():
        _db.drop_all()


@pytest.fixture(autouse=True)
def session(app, _setup_db):
    """Per-test: open app context, rollback after test, recreate tables."""
    with app.app_context():
        yield
        _db.session.rollback()
        _db.drop_all()
        _db.create_all()


@pytest.fixture()
def client(app):
    """Flask test client."""
    return app.test_client()


# ── Clock ────────────────────────────────────────────────────────────────


@pytest.fixture()
def now():
    """Noon UTC today; rule windows are measured in whole days from here."""
    return datetime.now(timezone.utc).replace(hour=12, minute=0, second=0, microsecond=0)


@pytest.fixture()
def today(now):
    return now.date()


# ── Entity factories ─────────────────────────────────────────────────────
# Services commit and roll back on their own, so factory rows are committed.


@pytest.fixture()
def make_contract():
    counter = {"n": 0}

    def _make(*, status="ACTIVE", signed_at=None, payments=(), **kwargs):
        counter["n"] += 1
        contract = Contract(
            contract_no=kwargs.pop("contract_no", f"CT-{counter['n']:04d}"),
            status=status,
            signed_at=signed_at,
            **kwargs,
        )
        _db.session.add(contract)
        _db.session.flush()
        for seq, payment in enumerate(payments, start=1):
            _db.session.add(PaymentScheduleItem(contract_id=contract.id, seq=seq, **payment))
        _db.session.commit()
        return contract

    return _make


@pytest.fixture()
def make_shipment():
    counter = {"n": 0}

    def _make(*, status="planning", transaction_type="incoming", **kwargs):
        counter["n"] += 1
        shipment = Shipment(
            sn=kwargs.pop("sn", f"SN-{counter['n']:04d}"),
            status=status,
            transaction_type=transaction_type,
            **kwargs,
        )
        _db.session.add(shipment)
        _db.session.commit()
        return shipment

    return _make


@pytest.fixture()
def make_document():
    def _make(shipment, doc_type="BL_FINAL", **kwargs):
        doc = ShipmentDocument(shipment_id=shipment.id, doc_type=doc_type,
                               file_name=kwargs.pop("file_name", f"{doc_type.lower()}.pdf"), **kwargs)
        _db.session.add(doc)
        _db.session.commit()
        return doc

    return _make
