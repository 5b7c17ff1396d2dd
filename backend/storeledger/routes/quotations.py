# backend/storeledger/routes/quotations.py
"""
Quotation API routes.
"""
from flask import Blueprint, g, jsonify, request

from storeledger.decorators import error_response, require_actor
from storeledger.services import quotation_service


quotations_bp = Blueprint("quotations", __name__, url_prefix="/api/quotations")


@quotations_bp.route("", methods=["GET"])
@require_actor
def list_quotations():
    quotations = quotation_service.list_quotations(
        salesperson_id=request.args.get("salesperson_id", type=int),
    )
    return jsonify({"quotations": [q.to_dict() for q in quotations]}), 200


@quotations_bp.route("", methods=["POST"])
@require_actor
def create_quotation():
    """
    Request body:
    {
        "customer_name": str (optional),
        "customer_phone": str (optional),
        "items": [{"product_sku": str, "product_name": str, "quantity": int,
                   "price": str|number, "is_external": bool}]
    }
    """
    data = request.get_json(silent=True) or {}

    try:
        quotation = quotation_service.create_quotation(
            g.actor.user_id,
            data.get("customer_name"),
            data.get("customer_phone"),
            data["items"],
            notes=data.get("notes"),
        )
        return jsonify(quotation.to_dict()), 201
    except Exception as e:
        return error_response(e)


@quotations_bp.route("/<quotation_id>", methods=["GET"])
@require_actor
def get_quotation(quotation_id: str):
    try:
        return jsonify(quotation_service.get_quotation(quotation_id).to_dict()), 200
    except Exception as e:
        return error_response(e)


@quotations_bp.route("/<quotation_id>/status", methods=["POST"])
@require_actor
def set_status(quotation_id: str):
    data = request.get_json(silent=True) or {}

    try:
        quotation = quotation_service.set_quotation_status(quotation_id, data["status"])
        return jsonify(quotation.to_dict()), 200
    except Exception as e:
        return error_response(e)


@quotations_bp.route("/<quotation_id>/convert", methods=["POST"])
@require_actor
def convert(quotation_id: str):
    try:
        notices = quotation_service.convert_quotation_to_demand_notices(quotation_id, g.actor)
        return jsonify({"demand_notices": [n.to_dict() for n in notices]}), 201
    except Exception as e:
        return error_response(e)


@quotations_bp.route("/<quotation_id>/convert-to-order", methods=["POST"])
@require_actor
def convert_to_order(quotation_id: str):
    """
    Returns:
        201: Order created from the stocked items (pending_payment)
        404: Unknown quotation or product
        409: Not accepted, nothing left to convert, or insufficient stock
    """
    try:
        order = quotation_service.convert_quotation_to_order(quotation_id, g.actor)
        return jsonify(order.to_dict()), 201
    except Exception as e:
        return error_response(e)
