# backend/storeledger/routes/attendance.py
"""
Attendance (clock-in) API routes.
"""
from flask import Blueprint, current_app, g, jsonify, request

from storeledger.decorators import error_response, require_actor
from storeledger.errors import AlreadyClockedIn
from storeledger.services import break_service
from storeledger.services.authorization import can
from storeledger.services.blob_store import LocalBlobStore


attendance_bp = Blueprint("attendance", __name__, url_prefix="/api/attendance")


@attendance_bp.route("/clock-in", methods=["POST"])
@require_actor
def clock_in():
    """
    Clock the caller in for today.

    JSON body {"method": "manual"}, or multipart form with a "selfie" file
    (method defaults to "selfie").

    Returns:
        201: Attendance recorded
        409: Already clocked in today
    """
    try:
        selfie = request.files.get("selfie")
        if selfie is None:
            data = request.get_json(silent=True) or {}
            log = break_service.clock_in(g.actor.user_id, data.get("method", "manual"))
            return jsonify(log.to_dict()), 201

        existing = break_service.get_attendance_today(g.actor.user_id)
        if existing is not None:
            raise AlreadyClockedIn(g.actor.user_id, existing.work_date, existing.id)

        selfie_path = LocalBlobStore(current_app.config["UPLOAD_ROOT"]).save(
            f"attendance-{g.actor.user_id}", selfie.read(), selfie.filename
        )
        log = break_service.clock_in(
            g.actor.user_id, request.form.get("method", "selfie"), selfie_path=selfie_path
        )
        return jsonify(log.to_dict()), 201
    except Exception as e:
        return error_response(e)


@attendance_bp.route("/today", methods=["GET"])
@require_actor
def today():
    log = break_service.get_attendance_today(g.actor.user_id)
    return jsonify({"attendance": log.to_dict() if log else None}), 200


@attendance_bp.route("", methods=["GET"])
@require_actor
def list_attendance():
    user_id = request.args.get("user_id", type=int)
    if user_id is None or (user_id != g.actor.user_id and not can(g.actor, "attendance.view_others")):
        user_id = g.actor.user_id
    logs = break_service.list_attendance(user_id=user_id)
    return jsonify({"attendance": [log.to_dict() for log in logs]}), 200
