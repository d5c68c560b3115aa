"""
Pytest fixtures for fleetstock backend tests.

Provides the app on in-memory SQLite, a per-test table wipe, item/vehicle
factories, and the Flask test client.
"""

import pytest

from fleetstock import create_app
from fleetstock.extensions import db
from fleetstock.services import inventory_service, vehicle_service


# CTN(qty=10) > DZ(qty=12) > PCS  =>  120 / 12 / 1 pieces per unit
CTN_DZ_PCS = [
    {"layerIndex": 0, "unit": "CTN", "qty": 10},
    {"layerIndex": 1, "unit": "DZ", "qty": 12},
    {"layerIndex": 2, "unit": "PCS"},
]


@pytest.fixture(scope='session')
def app():
    """Create application for testing."""
    app = create_app({
        'TESTING': True,
        'SQLALCHEMY_DATABASE_URI': 'sqlite:///:memory:',
        'SQLALCHEMY_TRACK_MODIFICATIONS': False,
        'LEDGER_RETRY_BACKOFF': 0.0,
        'AUTO_APPROVE_TRANSFERS': False,
        'LOG_LEVEL': 'WARNING',
    })

    with app.app_context():
        db.create_all()
        yield app
        db.drop_all()


@pytest.fixture(scope='function')
def client(app):
    """Create test client."""
    return app.test_client()


@pytest.fixture(scope='function')
def db_session(app):
    """Create fresh database for each test."""
    with app.app_context():
        # Clear all data but keep schema
        meta = db.metadata
        for table in reversed(meta.sorted_tables):
            db.session.execute(table.delete())
        db.session.commit()

        yield db.session

        # Cleanup after test
        db.session.rollback()


@pytest.fixture(scope='function')
def make_item(db_session):
    """Factory: create an item with opening stock in base pieces."""
    def _make(name="Biscuits", structure=None, pieces=0, **kwargs):
        return inventory_service.create_item(
            product_name=name,
            packaging_structure=CTN_DZ_PCS if structure is None else structure,
            opening_stock=pieces,
            **kwargs,
        )
    return _make


@pytest.fixture(scope='function')
def make_vehicle(db_session):
    counter = {"n": 0}

    def _make(name="Van", number=None):
        counter["n"] += 1
        return vehicle_service.create_vehicle(name, number or f"VAN-{counter['n']:03d}")
    return _make


@pytest.fixture(scope='function')
def biscuits(make_item):
    """2880 pieces = 24 CTN / 240 DZ / 2880 PCS."""
    return make_item(pieces=2880)


@pytest.fixture(scope='function')
def van(make_vehicle):
    return make_vehicle()

