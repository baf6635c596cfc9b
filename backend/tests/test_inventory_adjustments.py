import pytest

from backoffice.errors import InsufficientStock, ValidationError
from backoffice.models import StockMovement
from backoffice.services import inventory_service


def _adjust(direction, quantity, reason="breakage", product_id="P1", location_id="L1"):
    return inventory_service.record_adjustment(
        product_id=product_id,
        location_id=location_id,
        direction=direction,
        quantity=quantity,
        reason=reason,
        actor="u1",
    )


def test_out_larger_than_on_hand_is_rejected(put_stock, quantity_of, db_session):
    put_stock("P1", "L1", 20)
    movements_before = db_session.query(StockMovement).count()

    with pytest.raises(InsufficientStock) as exc_info:
        _adjust("OUT", 25)

    assert exc_info.value.available == 20
    assert exc_info.value.requested == 25
    assert quantity_of("P1", "L1") == 20
    assert db_session.query(StockMovement).count() == movements_before


def test_in_increments_and_appends_one_movement(put_stock, quantity_of, db_session):
    put_stock("P1", "L1", 20)
    movements_before = db_session.query(StockMovement).count()

    movement = _adjust("IN", 5, reason="restock")

    assert quantity_of("P1", "L1") == 25
    assert db_session.query(StockMovement).count() == movements_before + 1
    assert movement.kind == "ADJUSTMENT_IN"
    assert movement.direction == "IN"
    assert movement.to_location_id == "L1"
    assert movement.actor == "u1"
    assert movement.reason == "restock"


def test_in_creates_record_on_first_stocking(quantity_of, db_session):
    _adjust("ENTRADA", 3, reason="found in back room")

    assert quantity_of("P1", "L1") == 3


def test_out_without_record_is_insufficient(db_session):
    with pytest.raises(InsufficientStock):
        _adjust("SALIDA", 1)


def test_out_to_zero_is_allowed(put_stock, quantity_of):
    put_stock("P1", "L1", 2)

    movement = _adjust("OUT", 2)

    assert movement.kind == "ADJUSTMENT_OUT"
    assert movement.from_location_id == "L1"
    assert quantity_of("P1", "L1") == 0


def test_adjustment_refreshes_last_updated(put_stock):
    put_stock("P1", "L1", 2)
    before = inventory_service.list_stock(product_id="P1")[0].last_updated

    _adjust("IN", 1)

    after = inventory_service.list_stock(product_id="P1")[0].last_updated
    assert after >= before


@pytest.mark.parametrize("quantity", [0, -3, 1.5, "2.0", True, None])
def test_invalid_quantity_is_rejected(db_session, quantity):
    with pytest.raises(ValidationError):
        _adjust("IN", quantity)


@pytest.mark.parametrize("field", ["product_id", "location_id", "reason"])
def test_required_text_fields(db_session, field):
    kwargs = {
        "product_id": "P1",
        "location_id": "L1",
        "direction": "IN",
        "quantity": 1,
        "reason": "restock",
        "actor": "u1",
    }
    kwargs[field] = "  "

    with pytest.raises(ValidationError) as exc_info:
        inventory_service.record_adjustment(**kwargs)

    assert exc_info.value.details["field"] == field


def test_unknown_direction(db_session):
    with pytest.raises(ValidationError):
        _adjust("SIDEWAYS", 1)
