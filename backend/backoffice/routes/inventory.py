# backend/backoffice/routes/inventory.py
"""
Stock adjustment, transfer and stock read endpoints.
"""
from flask import Blueprint, g, jsonify, request

from ..commands import RecordAdjustmentCommand, TransferStockCommand, execute
from ..decorators import error_response, json_body, result_response, with_actor
from ..errors import CoreError
from ..services import inventory_service, reporting_service


inventory_bp = Blueprint("inventory", __name__, url_prefix="/api/inventory")


@inventory_bp.post("/adjustments")
@with_actor
def create_adjustment():
    """
    Record a manual stock correction.

    Request body:
    {
        "product_id": str,
        "location_id": str,
        "direction": "IN" | "OUT",
        "quantity": int,
        "reason": str
    }

    Returns:
        201: StockMovement
        400: Invalid request
        409: Insufficient stock
    """
    data = json_body()
    result = execute(RecordAdjustmentCommand(
        product_id=data.get("product_id"),
        location_id=data.get("location_id"),
        direction=data.get("direction"),
        quantity=data.get("quantity"),
        reason=data.get("reason"),
        actor=g.actor,
    ))
    return result_response(result, lambda movement: movement.to_dict(), 201)


@inventory_bp.post("/transfers")
@with_actor
def create_transfer():
    """
    Move stock between two locations.

    Request body:
    {
        "product_id": str,
        "from_location_id": str,
        "to_location_id": str,
        "quantity": int,
        "reason": str
    }

    Returns:
        201: StockMovement (kind TRANSFER)
        400: Invalid request (including same source and destination)
        409: Insufficient stock at the source
    """
    data = json_body()
    result = execute(TransferStockCommand(
        product_id=data.get("product_id"),
        from_location_id=data.get("from_location_id"),
        to_location_id=data.get("to_location_id"),
        quantity=data.get("quantity"),
        reason=data.get("reason"),
        actor=g.actor,
    ))
    return result_response(result, lambda movement: movement.to_dict(), 201)


@inventory_bp.get("/stock")
def list_stock():
    records = inventory_service.list_stock(
        product_id=request.args.get("product_id"),
        location_id=request.args.get("location_id"),
    )
    return jsonify({"items": [record.to_dict() for record in records]}), 200


@inventory_bp.get("/movements")
def list_movements():
    try:
        movements = reporting_service.stock_movements(
            product_id=request.args.get("product_id"),
            location_id=request.args.get("location_id"),
            date_from=request.args.get("date_from"),
            date_to=request.args.get("date_to"),
        )
    except CoreError as exc:
        return error_response(exc)
    return jsonify({"items": movements}), 200
