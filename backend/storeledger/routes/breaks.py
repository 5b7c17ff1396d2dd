# backend/storeledger/routes/breaks.py
"""
Staff break API routes.
"""
from flask import Blueprint, g, jsonify, request

from storeledger.decorators import error_response, require_actor
from storeledger.services import break_service
from storeledger.services.authorization import can


breaks_bp = Blueprint("breaks", __name__, url_prefix="/api/breaks")


@breaks_bp.route("/start", methods=["POST"])
@require_actor
def start_break():
    """
    Returns:
        201: Break opened
        409: Already on break
    """
    try:
        brk = break_service.start_break(g.actor.user_id)
        return jsonify(brk.to_dict()), 201
    except Exception as e:
        return error_response(e)


@breaks_bp.route("/<int:break_id>/end", methods=["POST"])
@require_actor
def end_break(break_id: int):
    """
    Returns:
        200: Break closed with duration_ms
        404: No such open break for this user
    """
    try:
        brk = break_service.end_break(break_id, g.actor.user_id)
        return jsonify(brk.to_dict()), 200
    except Exception as e:
        return error_response(e)


@breaks_bp.route("/active", methods=["GET"])
@require_actor
def active_break():
    brk = break_service.get_active_break(g.actor.user_id)
    return jsonify({"break": brk.to_dict() if brk else None}), 200


@breaks_bp.route("", methods=["GET"])
@require_actor
def list_breaks():
    user_id = request.args.get("user_id", type=int)
    if user_id is None or (user_id != g.actor.user_id and not can(g.actor, "break.view_others")):
        user_id = g.actor.user_id
    breaks = break_service.list_breaks(user_id=user_id)
    return jsonify({"breaks": [b.to_dict() for b in breaks]}), 200
