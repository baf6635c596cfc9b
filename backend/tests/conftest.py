"""
Pytest fixtures for the back-office backend tests.

Provides an in-memory application, a wiped database per test, a test
client and small builders for stock, purchases and repairs.
"""

import pytest

from backoffice import create_app
from backoffice.extensions import db
from backoffice.services import inventory_service, purchase_service, service_order_service


ACTOR = "u1"
SERVICE_LOCATION = "deposito-servicio"


@pytest.fixture(scope='session')
def app():
    """Create application for testing."""
    app = create_app({
        'TESTING': True,
        'SQLALCHEMY_DATABASE_URI': 'sqlite:///:memory:',
        'SQLALCHEMY_TRACK_MODIFICATIONS': False,
        'SERVICE_LOCATION_ID': SERVICE_LOCATION,
        'PAYABLE_DUE_DAYS': 30,
        'WARRANTY_VALIDITY_DAYS': 90,
        'TRANSACTION_ATTEMPTS': 2,
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
def put_stock(db_session):
    """Stock a product at a location through a regular IN adjustment."""
    def _put(product_id, location_id, quantity):
        return inventory_service.record_adjustment(
            product_id=product_id,
            location_id=location_id,
            direction="IN",
            quantity=quantity,
            reason="Opening balance",
            actor=ACTOR,
        )
    return _put


@pytest.fixture(scope='function')
def quantity_of(db_session):
    return inventory_service.get_quantity_on_hand


@pytest.fixture(scope='function')
def purchase_invoice(db_session):
    """
    Invoice for 10 x P2 at 1000 (10% VAT) received into L1.

    Payable: total 10000, outstanding 10000.
    """
    order = purchase_service.create_purchase_order(
        supplier_id="SUP-1",
        location_id="L1",
        line_items=[{"product_id": "P2", "quantity": 10, "unit_price": 1000, "vat_rate": 10}],
        actor=ACTOR,
    )
    return purchase_service.register_purchase(
        purchase_order_id=order.id,
        invoice_number="001-001-0000123",
        invoice_date="2026-01-10",
        received_items=[{"product_id": "P2", "quantity": 10}],
        actor=ACTOR,
    )


@pytest.fixture(scope='function')
def diagnosed_item(db_session):
    """A printer received and diagnosed at the service depot."""
    items = service_order_service.register_reception(
        client_id="CLI-1",
        equipments=[{
            "equipment_description": "Laser printer HL-1200",
            "reported_problem": "Paper jam",
            "accessories": "Power cable",
        }],
        actor=ACTOR,
    )
    return service_order_service.diagnose(
        service_item_id=items[0].id,
        technician_id="TEC-1",
        diagnosis="Worn fuser unit",
        recommended_work="Replace fuser",
        actor=ACTOR,
    )


QUOTE_LINES = [
    {"ref_id": "P-FUSER", "kind": "PART", "description": "Fuser unit", "quantity": 1, "unit_price": 150000},
    {"ref_id": "L-REPAIR", "kind": "LABOR", "description": "Bench repair", "quantity": 1, "unit_price": 50000},
]


@pytest.fixture(scope='function')
def approved_quote(diagnosed_item, put_stock):
    """Approved quote for the diagnosed item, with the fuser on hand."""
    put_stock("P-FUSER", SERVICE_LOCATION, 5)
    quote = service_order_service.create_quote(
        service_item_id=diagnosed_item.id,
        line_items=QUOTE_LINES,
        actor=ACTOR,
    )
    return service_order_service.resolve_quote(quote_id=quote.id, decision="APPROVED", actor=ACTOR)
