# backend/storeledger/routes/orders.py
"""
Order settlement and order lifecycle API routes.
"""
from flask import Blueprint, g, jsonify, request

from storeledger.decorators import error_response, require_actor
from storeledger.services import order_service


orders_bp = Blueprint("orders", __name__, url_prefix="/api/orders")


@orders_bp.route("", methods=["GET"])
@require_actor
def list_orders():
    orders = order_service.list_orders(status=request.args.get("status"))
    return jsonify({"orders": [o.to_dict() for o in orders]}), 200


@orders_bp.route("/settle", methods=["POST"])
@require_actor
def settle_order():
    """
    Settle a walk-in sale atomically.

    Request body:
    {
        "items": [{"sku": str, "quantity": int}],
        "payments": [{"method": "cash"|"card"|"bank_transfer", "amount": str|number,
                      "transaction_id": str (optional)}],
        "customer_name": str (optional),
        "customer_phone": str (optional)
    }

    Returns:
        201: Order settled
        400: Invalid request or payment mismatch
        404: Unknown SKU
        409: Insufficient stock
    """
    data = request.get_json(silent=True) or {}

    try:
        order = order_service.settle_order(
            data["items"],
            data["payments"],
            g.actor.user_id,
            customer_name=data.get("customer_name"),
            customer_phone=data.get("customer_phone"),
        )
        return jsonify(order.to_dict()), 201
    except Exception as e:
        return error_response(e)


@orders_bp.route("/<order_id>", methods=["GET"])
@require_actor
def get_order(order_id: str):
    try:
        return jsonify(order_service.get_order(order_id).to_dict()), 200
    except Exception as e:
        return error_response(e)


@orders_bp.route("/<order_id>/payments", methods=["POST"])
@require_actor
def add_payment(order_id: str):
    data = request.get_json(silent=True) or {}

    try:
        order = order_service.add_order_payment(
            order_id,
            data["method"],
            data["amount"],
            g.actor.user_id,
            transaction_id=data.get("transaction_id"),
            notes=data.get("notes"),
        )
        return jsonify(order.to_dict()), 200
    except Exception as e:
        return error_response(e)


@orders_bp.route("/<order_id>/status", methods=["POST"])
@require_actor
def advance_status(order_id: str):
    """
    Move an order forward (or cancel it).

    Request body:
    {
        "status": "paid"|"preparing"|"ready_for_pickup"|"completed"|"cancelled"
    }
    """
    data = request.get_json(silent=True) or {}

    try:
        order = order_service.advance_order_status(order_id, data["status"], g.actor.user_id)
        return jsonify(order.to_dict()), 200
    except Exception as e:
        return error_response(e)
