"""
Pytest fixtures for stock ledger tests.

Provides an in-memory database, a test client, a CLI runner, and a
variant factory that seeds opening stock through the ledger.
"""

import pytest

from stockledger import create_app
from stockledger.extensions import db
from stockledger.services import variant_service, adjustment_service


TEST_CONFIG = {
    'TESTING': True,
    'SQLALCHEMY_DATABASE_URI': 'sqlite:///:memory:',
    'SQLALCHEMY_TRACK_MODIFICATIONS': False,
    'RESERVATION_TTL_SECONDS': 900,
    'STOCK_WRITE_RETRY_BACKOFF': 0.0,
    'LOW_STOCK_THRESHOLD': 10,
    'SWEEP_ENABLED': False,
}


@pytest.fixture(scope='session')
def app():
    """Create application for testing."""
    app = create_app(TEST_CONFIG)

    with app.app_context():
        db.create_all()
        yield app
        db.drop_all()


@pytest.fixture(scope='function')
def client(app):
    """Create test client."""
    return app.test_client()


@pytest.fixture(scope='function')
def cli_runner(app):
    return app.test_cli_runner()


@pytest.fixture(scope='function')
def db_session(app):
    """Fresh tables for each test."""
    with app.app_context():
        # Core DELETE bypasses the ledger's ORM append-only guard on purpose
        meta = db.metadata
        for table in reversed(meta.sorted_tables):
            db.session.execute(table.delete())
        db.session.commit()

        yield db.session

        db.session.rollback()


@pytest.fixture(scope='function')
def make_variant(db_session):
    """
    Register a variant and seed opening stock with a 'restock' adjustment,
    so that ledger replay matches the counters from the start.
    """
    def _make(variant_id="VAR-1", on_hand=10, *, track_inventory=True, product_id=None, sku=None, name=None):
        variant_service.register_variant(
            variant_id,
            product_id=product_id,
            sku=sku,
            name=name,
            track_inventory=track_inventory,
        )
        if on_hand:
            adjustment_service.adjust(variant_id, on_hand, "restock", "opening stock", "ops@test")
        return variant_id

    return _make


@pytest.fixture(scope='function')
def stock_of(db_session):
    """Returns a reader for (on_hand, reserved), fresh from the projector."""
    from stockledger.models import VariantStock

    def _read(variant_id: str) -> tuple[int, int]:
        db.session.expire_all()
        v = db.session.get(VariantStock, variant_id)
        return v.on_hand, v.reserved

    return _read
