from flask import Blueprint, jsonify, request

from models.booking import BOOKING_CANCELLED, ACTIVE_BOOKING_STATUSES
from security.identity import current_actor, login_required
from services import store
from utils.errors import ValidationError
from utils.serializers import booking_json

bookings_bp = Blueprint("bookings", __name__, url_prefix="/bookings")

STATUSES = ACTIVE_BOOKING_STATUSES + (BOOKING_CANCELLED,)


def status_filter():
    status = request.args.get("status")
    if status and status not in STATUSES:
        raise ValidationError("Invalid status", details={"status": f"one of {', '.join(STATUSES)}"})
    return status or None


@bookings_bp.post("")
@login_required
def create_booking():
    data = request.get_json(silent=True) or {}
    slot_id = data.get("slot_id")
    if not isinstance(slot_id, int) or isinstance(slot_id, bool):
        raise ValidationError("slot_id required", details={"slot_id": "integer required"})

    # price is always computed server-side, anything the client sends is ignored
    booking = store.request_booking(current_actor(), slot_id, data.get("start_time"), data.get("end_time"))
    return jsonify(booking_json(booking)), 201


@bookings_bp.get("/me")
@login_required
def my_bookings():
    rows = store.list_my_bookings(current_actor(), status_filter())
    return jsonify([booking_json(b) for b in rows]), 200


@bookings_bp.post("/<int:booking_id>/cancel")
@login_required
def cancel_booking(booking_id: int):
    data = request.get_json(silent=True) or {}
    booking = store.cancel_booking(current_actor(), booking_id, data.get("reason"))
    return jsonify(booking_json(booking)), 200


@bookings_bp.post("/<int:booking_id>/confirm")
@login_required
def confirm_booking(booking_id: int):
    booking = store.confirm_booking(current_actor(), booking_id)
    return jsonify(booking_json(booking)), 200
