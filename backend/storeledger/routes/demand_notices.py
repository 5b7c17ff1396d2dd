# backend/storeledger/routes/demand_notices.py
"""
Demand notice API routes.
"""
from flask import Blueprint, g, jsonify, request

from storeledger.decorators import error_response, require_actor
from storeledger.services import demand_notice_service, order_service


demand_notices_bp = Blueprint("demand_notices", __name__, url_prefix="/api/demand-notices")


@demand_notices_bp.route("", methods=["GET"])
@require_actor
def list_demand_notices():
    salesperson_id = request.args.get("salesperson_id", type=int)
    notices = demand_notice_service.list_demand_notices(
        status=request.args.get("status"),
        salesperson_id=salesperson_id,
    )
    return jsonify({"demand_notices": [n.to_dict() for n in notices]}), 200


@demand_notices_bp.route("", methods=["POST"])
@require_actor
def create_demand_notice():
    """
    Record customer demand for an out-of-stock or unstocked product.

    Request body:
    {
        "customer_contact_number": str,
        "quantity_requested": int,
        "agreed_price": str|number,
        "product_sku": str (required unless is_new_product),
        "product_name": str (required if is_new_product),
        "is_new_product": bool (optional),
        "expected_availability_date": ISO-8601 (optional),
        "notes": str (optional),
        "advance_payment": {"method": str, "amount": str|number} (optional)
    }
    """
    data = request.get_json(silent=True) or {}

    try:
        notice = demand_notice_service.create_demand_notice(
            salesperson_id=g.actor.user_id,
            customer_contact_number=data["customer_contact_number"],
            quantity_requested=data["quantity_requested"],
            agreed_price=data["agreed_price"],
            product_sku=data.get("product_sku"),
            product_name=data.get("product_name"),
            is_new_product=bool(data.get("is_new_product", False)),
            expected_availability_date=data.get("expected_availability_date"),
            notes=data.get("notes"),
            advance_payment=data.get("advance_payment"),
        )
        return jsonify(notice.to_dict()), 201
    except Exception as e:
        return error_response(e)


@demand_notices_bp.route("/<notice_id>", methods=["GET"])
@require_actor
def get_demand_notice(notice_id: str):
    try:
        return jsonify(demand_notice_service.get_demand_notice(notice_id).to_dict()), 200
    except Exception as e:
        return error_response(e)


@demand_notices_bp.route("/<notice_id>/payments", methods=["POST"])
@require_actor
def add_payment(notice_id: str):
    data = request.get_json(silent=True) or {}

    try:
        payment = demand_notice_service.add_demand_notice_payment(
            notice_id,
            data["method"],
            data["amount"],
            transaction_id=data.get("transaction_id"),
        )
        return jsonify(payment.to_dict()), 201
    except Exception as e:
        return error_response(e)


@demand_notices_bp.route("/<notice_id>/notify", methods=["POST"])
@require_actor
def mark_notified(notice_id: str):
    try:
        return jsonify(demand_notice_service.mark_customer_notified(notice_id).to_dict()), 200
    except Exception as e:
        return error_response(e)


@demand_notices_bp.route("/<notice_id>/cancel", methods=["POST"])
@require_actor
def cancel(notice_id: str):
    try:
        return jsonify(demand_notice_service.cancel_demand_notice(notice_id).to_dict()), 200
    except Exception as e:
        return error_response(e)


@demand_notices_bp.route("/<notice_id>/convert-to-order", methods=["POST"])
@require_actor
def convert_to_order(notice_id: str):
    try:
        order = order_service.convert_demand_notice_to_order(notice_id, g.actor.user_id)
        return jsonify(order.to_dict()), 201
    except Exception as e:
        return error_response(e)
