# backend/storeledger/routes/products.py
"""
Product catalog and stock ledger API routes.
"""
from flask import Blueprint, g, jsonify, request

from storeledger.decorators import error_response, require_actor
from storeledger.services import inventory_service
from storeledger.services.authorization import authorize


products_bp = Blueprint("products", __name__, url_prefix="/api/products")


@products_bp.route("", methods=["GET"])
@require_actor
def list_products():
    products = inventory_service.list_products(
        search=request.args.get("search"),
        category=request.args.get("category"),
    )
    return jsonify({"products": [p.to_dict() for p in products]}), 200


@products_bp.route("", methods=["POST"])
@require_actor
def create_product():
    """
    Create a product with opening stock.

    Request body:
    {
        "sku": str,
        "name": str,
        "price": str|number,
        "quantity_in_stock": int (optional),
        "category": str (optional),
        "low_stock_threshold": int (optional)
    }

    Returns:
        201: Product created (open demand notices for the SKU re-evaluated)
        400: Invalid request
        403: Forbidden
        409: Duplicate SKU
    """
    data = request.get_json(silent=True) or {}

    try:
        authorize(g.actor, "inventory.manage")
        product = inventory_service.create_product(
            sku=data["sku"],
            name=data["name"],
            price=data["price"],
            quantity_in_stock=data.get("quantity_in_stock", 0),
            category=data.get("category"),
            low_stock_threshold=data.get("low_stock_threshold"),
            image_path=data.get("image_path"),
            actor_user_id=g.actor.user_id,
        )
        return jsonify(product.to_dict()), 201

    except Exception as e:
        return error_response(e)


@products_bp.route("/<int:product_id>", methods=["GET"])
@require_actor
def get_product(product_id: int):
    try:
        product = inventory_service.get_product(product_id)
        return jsonify(product.to_dict()), 200
    except Exception as e:
        return error_response(e)


@products_bp.route("/<int:product_id>", methods=["PATCH"])
@require_actor
def update_product(product_id: int):
    data = request.get_json(silent=True) or {}

    try:
        authorize(g.actor, "inventory.manage")
        product = inventory_service.update_product(product_id, **data)
        return jsonify(product.to_dict()), 200
    except Exception as e:
        return error_response(e)


@products_bp.route("/<int:product_id>/adjust", methods=["POST"])
@require_actor
def adjust_stock(product_id: int):
    """
    Manual stock correction.

    Request body:
    {
        "delta": int (non-zero),
        "note": str (optional)
    }
    """
    data = request.get_json(silent=True) or {}

    try:
        authorize(g.actor, "inventory.manage")
        product = inventory_service.adjust_stock(
            product_id,
            data["delta"],
            actor_user_id=g.actor.user_id,
            note=data.get("note"),
        )
        return jsonify(product.to_dict()), 200
    except Exception as e:
        return error_response(e)


@products_bp.route("/<int:product_id>/movements", methods=["GET"])
@require_actor
def list_movements(product_id: int):
    try:
        movements = inventory_service.list_movements(product_id)
        return jsonify({"movements": [m.to_dict() for m in movements]}), 200
    except Exception as e:
        return error_response(e)
