# backend/storeledger/routes/sequences.py
"""
Identifier series inspection and operator reseed.
"""
from flask import Blueprint, g, jsonify, request

from storeledger.decorators import error_response, require_actor
from storeledger.services import sequence_service


sequences_bp = Blueprint("sequences", __name__, url_prefix="/api/sequences")


@sequences_bp.route("", methods=["GET"])
@require_actor
def list_sequences():
    return jsonify({"sequences": sequence_service.list_counters()}), 200


@sequences_bp.route("/<series_id>/reseed", methods=["POST"])
@require_actor
def reseed(series_id: str):
    """
    Move a series counter forward (admin only).

    Request body:
    {
        "next_number": int
    }

    Returns:
        200: Counter moved
        403: Not an admin
        409: next_number is below the current counter
    """
    data = request.get_json(silent=True) or {}

    try:
        counter = sequence_service.reseed(series_id, data["next_number"], g.actor)
        return jsonify(counter.to_dict()), 200
    except Exception as e:
        return error_response(e)
