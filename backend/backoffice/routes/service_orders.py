# backend/backoffice/routes/service_orders.py
"""
Repair workflow endpoints: reception, diagnosis, quotes, work, pickup and
warranty claims.
"""
from flask import Blueprint, g, jsonify

from ..commands import (
    CompleteWorkCommand,
    CreateQuoteCommand,
    DiagnoseCommand,
    FileWarrantyClaimCommand,
    RegisterPickupCommand,
    RegisterReceptionCommand,
    ResolveQuoteCommand,
    execute,
)
from ..decorators import error_response, json_body, result_response, with_actor
from ..errors import NotFound
from ..services import resolver_service


service_orders_bp = Blueprint("service_orders", __name__, url_prefix="/api/services")


def _to_dict(document):
    return document.to_dict()


@service_orders_bp.post("/receptions")
@with_actor
def register_reception():
    """
    Request body:
    {
        "client_id": str,
        "location_id": str (optional),
        "equipments": [{"equipment_description", "reported_problem", "accessories"?}]
    }

    Returns:
        201: {"items": [ServiceItem, ...]}
    """
    data = json_body()
    result = execute(RegisterReceptionCommand(
        client_id=data.get("client_id"),
        equipments=data.get("equipments") or [],
        location_id=data.get("location_id"),
        actor=g.actor,
    ))
    return result_response(result, lambda items: {"items": [item.to_dict() for item in items]}, 201)


@service_orders_bp.get("/items/<int:item_id>")
def item_chain(item_id: int):
    try:
        chain = resolver_service.resolve_service_item_chain(item_id)
    except NotFound as exc:
        return error_response(exc)
    return jsonify(chain), 200


@service_orders_bp.post("/items/<int:item_id>/diagnosis")
@with_actor
def diagnose(item_id: int):
    data = json_body()
    result = execute(DiagnoseCommand(
        service_item_id=item_id,
        technician_id=data.get("technician_id"),
        diagnosis=data.get("diagnosis"),
        recommended_work=data.get("recommended_work"),
        actor=g.actor,
    ))
    return result_response(result, _to_dict)


@service_orders_bp.post("/items/<int:item_id>/quotes")
@with_actor
def create_quote(item_id: int):
    """
    Request body:
    {
        "line_items": [{"ref_id", "kind": "PART"|"LABOR", "description"?, "quantity", "unit_price"}],
        "notes": str (optional)
    }
    """
    data = json_body()
    result = execute(CreateQuoteCommand(
        service_item_id=item_id,
        line_items=data.get("line_items") or [],
        notes=data.get("notes"),
        actor=g.actor,
    ))
    return result_response(result, _to_dict, 201)


@service_orders_bp.post("/quotes/<int:quote_id>/resolution")
@with_actor
def resolve_quote(quote_id: int):
    data = json_body()
    result = execute(ResolveQuoteCommand(
        quote_id=quote_id,
        decision=data.get("decision"),
        actor=g.actor,
    ))
    return result_response(result, _to_dict)


@service_orders_bp.post("/quotes/<int:quote_id>/work")
@with_actor
def complete_work(quote_id: int):
    """
    Request body:
    {
        "technician_id": str,
        "hours": number,
        "items_used": [{"ref_id", "quantity"?}],
        "items_added": [{"ref_id", "kind", "description"?, "quantity", "unit_price"}],
        "warranty_covered_item_ids": [str],
        "notes": str (optional)
    }
    """
    data = json_body()
    result = execute(CompleteWorkCommand(
        quote_id=quote_id,
        technician_id=data.get("technician_id"),
        hours=data.get("hours"),
        items_used=data.get("items_used") or [],
        items_added=data.get("items_added") or [],
        warranty_covered_item_ids=data.get("warranty_covered_item_ids") or [],
        notes=data.get("notes"),
        actor=g.actor,
    ))
    return result_response(result, _to_dict, 201)


@service_orders_bp.post("/items/<int:item_id>/pickup")
@with_actor
def register_pickup(item_id: int):
    data = json_body()
    result = execute(RegisterPickupCommand(
        service_item_id=item_id,
        recipient_name=data.get("recipient_name"),
        recipient_id=data.get("recipient_id"),
        amount_charged=data.get("amount_charged", 0),
        payment_ref=data.get("payment_ref"),
        validity_days=data.get("validity_days"),
        covered_items=data.get("covered_items"),
        actor=g.actor,
    ))
    return result_response(
        result,
        lambda pickup: {
            **pickup.to_dict(),
            "warranty": pickup.warranty.to_dict() if pickup.warranty else None,
        },
        201,
    )


@service_orders_bp.post("/warranties/<int:warranty_id>/claims")
@with_actor
def file_warranty_claim(warranty_id: int):
    data = json_body()
    result = execute(FileWarrantyClaimCommand(
        warranty_id=warranty_id,
        reported_problem=data.get("reported_problem"),
        accessories=data.get("accessories"),
        actor=g.actor,
    ))
    return result_response(result, _to_dict, 201)
