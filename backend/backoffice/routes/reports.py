from flask import Blueprint, jsonify, request

from ..errors import ValidationError
from ..services import reporting_service


reports_bp = Blueprint("reports", __name__, url_prefix="/api/reports")


@reports_bp.get("/stock-levels")
def stock_levels():
    report = reporting_service.stock_levels(
        location_id=request.args.get("location_id"),
        product_id=request.args.get("product_id"),
    )
    return jsonify(report), 200


@reports_bp.get("/quotes")
def quote_analysis():
    try:
        report = reporting_service.quote_analysis(
            date_from=request.args.get("date_from"),
            date_to=request.args.get("date_to"),
        )
        return jsonify(report), 200
    except ValidationError as exc:
        return jsonify({"error": exc.to_dict()}), 400


@reports_bp.get("/receptions")
def reception_statistics():
    return jsonify(reporting_service.reception_statistics()), 200


@reports_bp.get("/payables-aging")
def payables_aging():
    try:
        report = reporting_service.payables_aging(as_of=request.args.get("as_of"))
        return jsonify(report), 200
    except ValidationError as exc:
        return jsonify({"error": exc.to_dict()}), 400


@reports_bp.get("/technicians")
def technician_performance():
    try:
        report = reporting_service.technician_performance(
            date_from=request.args.get("date_from"),
            date_to=request.args.get("date_to"),
            technician_id=request.args.get("technician_id"),
        )
        return jsonify(report), 200
    except ValidationError as exc:
        return jsonify({"error": exc.to_dict()}), 400


@reports_bp.get("/diagnoses")
def diagnosis_history():
    items = reporting_service.diagnosis_history(
        search=request.args.get("q"),
        technician_id=request.args.get("technician_id"),
    )
    return jsonify({"items": items}), 200


@reports_bp.get("/vat-purchases")
def vat_purchase_book():
    try:
        report = reporting_service.vat_purchase_book(
            date_from=request.args.get("date_from"),
            date_to=request.args.get("date_to"),
        )
        return jsonify(report), 200
    except ValidationError as exc:
        return jsonify({"error": exc.to_dict()}), 400
