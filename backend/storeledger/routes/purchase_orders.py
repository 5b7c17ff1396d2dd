# backend/storeledger/routes/purchase_orders.py
"""
Supplier and purchase order API routes.
"""
from flask import Blueprint, current_app, g, jsonify, request

from storeledger.decorators import error_response, require_actor
from storeledger.errors import ValidationError
from storeledger.services import purchase_order_service
from storeledger.services.authorization import authorize
from storeledger.services.blob_store import LocalBlobStore


purchase_orders_bp = Blueprint("purchase_orders", __name__, url_prefix="/api")


@purchase_orders_bp.route("/suppliers", methods=["GET"])
@require_actor
def list_suppliers():
    suppliers = purchase_order_service.list_suppliers()
    return jsonify({"suppliers": [s.to_dict() for s in suppliers]}), 200


@purchase_orders_bp.route("/suppliers", methods=["POST"])
@require_actor
def create_supplier():
    data = request.get_json(silent=True) or {}

    try:
        authorize(g.actor, "purchase_order.manage")
        supplier = purchase_order_service.create_supplier(
            data["name"],
            contact_person=data.get("contact_person"),
            phone=data.get("phone"),
            email=data.get("email"),
            address=data.get("address"),
        )
        return jsonify(supplier.to_dict()), 201
    except Exception as e:
        return error_response(e)


@purchase_orders_bp.route("/purchase-orders", methods=["GET"])
@require_actor
def list_purchase_orders():
    pos = purchase_order_service.list_purchase_orders(
        status=request.args.get("status"),
        supplier_id=request.args.get("supplier_id", type=int),
    )
    return jsonify({"purchase_orders": [po.to_dict() for po in pos]}), 200


@purchase_orders_bp.route("/purchase-orders", methods=["POST"])
@require_actor
def create_purchase_order():
    """
    Create a Draft purchase order.

    Request body:
    {
        "supplier_id": int,
        "items": [{"product_id": int, "quantity": int, "notes": str (optional)}],
        "expected_delivery": ISO-8601 (optional),
        "deadline": ISO-8601 (optional)
    }
    """
    data = request.get_json(silent=True) or {}

    try:
        authorize(g.actor, "purchase_order.manage")
        po = purchase_order_service.create_purchase_order(
            data["supplier_id"],
            data["items"],
            g.actor.user_id,
            expected_delivery=data.get("expected_delivery"),
            deadline=data.get("deadline"),
            notes=data.get("notes"),
        )
        return jsonify(po.to_dict()), 201
    except Exception as e:
        return error_response(e)


@purchase_orders_bp.route("/purchase-orders/<po_id>", methods=["GET"])
@require_actor
def get_purchase_order(po_id: str):
    try:
        return jsonify(purchase_order_service.get_purchase_order(po_id).to_dict()), 200
    except Exception as e:
        return error_response(e)


@purchase_orders_bp.route("/purchase-orders/<po_id>/confirm", methods=["POST"])
@require_actor
def confirm(po_id: str):
    try:
        authorize(g.actor, "purchase_order.manage")
        return jsonify(purchase_order_service.confirm_purchase_order(po_id).to_dict()), 200
    except Exception as e:
        return error_response(e)


@purchase_orders_bp.route("/purchase-orders/<po_id>/cancel", methods=["POST"])
@require_actor
def cancel(po_id: str):
    try:
        authorize(g.actor, "purchase_order.manage")
        return jsonify(purchase_order_service.cancel_purchase_order(po_id).to_dict()), 200
    except Exception as e:
        return error_response(e)


@purchase_orders_bp.route("/purchase-orders/<po_id>/receive", methods=["POST"])
@require_actor
def receive(po_id: str):
    """
    Receive goods against a Confirmed PO.

    Request body:
    {
        "receipts": [{"po_item_id": int, "quantity": int, "notes": str (optional)}]
    }

    Returns:
        200: Receipt recorded (PO may now be Received)
        400: Invalid request
        409: Over-receipt or PO not Confirmed
    """
    data = request.get_json(silent=True) or {}

    try:
        authorize(g.actor, "purchase_order.manage")
        po = purchase_order_service.receive_purchase_order(po_id, data["receipts"], g.actor.user_id)
        return jsonify(po.to_dict()), 200
    except Exception as e:
        return error_response(e)


@purchase_orders_bp.route("/purchase-orders/<po_id>/attachments", methods=["POST"])
@require_actor
def upload_attachment(po_id: str):
    """Multipart upload: file field "file", optional form field "kind"."""
    try:
        authorize(g.actor, "purchase_order.manage")
        upload = request.files.get("file")
        if upload is None:
            raise ValidationError("file is required", details={"field": "file"})

        # Store the blob before the ledger transaction opens
        store = LocalBlobStore(current_app.config["UPLOAD_ROOT"])
        path = store.save(f"po-{po_id}", upload.read(), upload.filename)

        attachment = purchase_order_service.add_attachment(
            po_id,
            path,
            original_name=upload.filename,
            kind=request.form.get("kind", "document"),
            uploaded_by_id=g.actor.user_id,
        )
        return jsonify(attachment.to_dict()), 201
    except Exception as e:
        return error_response(e)
