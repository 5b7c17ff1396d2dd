# backend/storeledger/routes/audits.py
"""
Stock audit API routes.
"""
from flask import Blueprint, current_app, g, jsonify, request

from storeledger.decorators import error_response, require_actor
from storeledger.services import audit_service
from storeledger.services.authorization import authorize
from storeledger.services.blob_store import LocalBlobStore


audits_bp = Blueprint("audits", __name__, url_prefix="/api/audits")


def _blob_store() -> LocalBlobStore:
    return LocalBlobStore(current_app.config["UPLOAD_ROOT"])


@audits_bp.route("", methods=["GET"])
@require_actor
def list_audits():
    audits = audit_service.list_audits(g.actor, status=request.args.get("status"))
    return jsonify({"audits": [a.to_dict(include_items=False) for a in audits]}), 200


@audits_bp.route("", methods=["POST"])
@require_actor
def create_audit():
    """
    Launch an audit.

    Request body:
    {
        "title": str,
        "auditor_id": int,
        "store_location": str (optional),
        "product_ids": [int]
    }

    Returns:
        201: Audit created (draft)
        403: Not an audit manager
    """
    data = request.get_json(silent=True) or {}

    try:
        audit = audit_service.create_audit(
            data["title"],
            data["auditor_id"],
            data.get("store_location"),
            data["product_ids"],
            g.actor,
        )
        return jsonify(audit.to_dict()), 201
    except Exception as e:
        return error_response(e)


@audits_bp.route("/<audit_id>", methods=["GET"])
@require_actor
def get_audit(audit_id: str):
    try:
        audit = audit_service.get_audit(audit_id)
        authorize(g.actor, "audit.view", audit)
        return jsonify(audit.to_dict()), 200
    except Exception as e:
        return error_response(e)


@audits_bp.route("/<audit_id>/start", methods=["POST"])
@require_actor
def start_audit(audit_id: str):
    """Optional multipart file field "selfie"."""
    try:
        selfie_path = None
        selfie = request.files.get("selfie")
        if selfie is not None:
            # Refuse before anything lands in the blob store
            audit_service.check_can_start(audit_service.get_audit(audit_id), g.actor)
            selfie_path = _blob_store().save(f"audit-{audit_id}", selfie.read(), selfie.filename)

        audit = audit_service.start_audit(audit_id, g.actor, selfie_path=selfie_path)
        return jsonify(audit.to_dict()), 200
    except Exception as e:
        return error_response(e)


@audits_bp.route("/<audit_id>/items/<int:item_id>/counts", methods=["POST"])
@require_actor
def record_count(audit_id: str, item_id: int):
    """
    Append a count event.

    JSON body {"count": int, "notes": str}, or multipart form with the same
    fields plus any number of "evidence" files.
    """
    try:
        if request.files:
            data = request.form
            count = data["count"]
            audit_service.check_can_count(audit_service.get_audit(audit_id), g.actor)
            store = _blob_store()
            evidence_paths = [
                store.save(f"audit-{audit_id}", f.read(), f.filename)
                for f in request.files.getlist("evidence")
            ]
        else:
            data = request.get_json(silent=True) or {}
            count = data["count"]
            evidence_paths = data.get("evidence_paths") or []

        event = audit_service.record_count(
            audit_id,
            item_id,
            g.actor,
            count,
            notes=data.get("notes"),
            evidence_paths=evidence_paths,
        )
        return jsonify(event.to_dict()), 201
    except Exception as e:
        return error_response(e)


@audits_bp.route("/<audit_id>/complete", methods=["POST"])
@require_actor
def complete_audit(audit_id: str):
    try:
        audit = audit_service.complete_audit(audit_id, g.actor)
        return jsonify(audit.to_dict()), 200
    except Exception as e:
        return error_response(e)
