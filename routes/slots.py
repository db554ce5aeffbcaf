from flask import Blueprint, jsonify, request

from models.slot import SLOT_AVAILABLE
from security.identity import current_actor, login_required
from services import store
from utils.serializers import slot_json
from utils.validation import parse_slot_filters

slots_bp = Blueprint("slots", __name__, url_prefix="/slots")


@slots_bp.get("")
@login_required
def list_slots():
    actor = current_actor()
    slots = store.list_available_slots(actor.tenant_code, parse_slot_filters(request.args))
    return jsonify([slot_json(s, status=SLOT_AVAILABLE) for s in slots]), 200


@slots_bp.post("")
@login_required
def create_slot():
    actor = current_actor()
    data = request.get_json(silent=True) or {}
    slot = store.create_slot(actor, actor.tenant_code, data)
    return jsonify(slot_json(slot)), 201


@slots_bp.get("/<int:slot_id>")
@login_required
def get_slot(slot_id: int):
    slot = store.get_slot(current_actor(), slot_id)
    return jsonify(slot_json(slot)), 200


@slots_bp.patch("/<int:slot_id>")
@login_required
def update_slot(slot_id: int):
    data = request.get_json(silent=True) or {}
    slot = store.update_slot(current_actor(), slot_id, data)
    return jsonify(slot_json(slot)), 200


@slots_bp.delete("/<int:slot_id>")
@login_required
def delete_slot(slot_id: int):
    slot = store.delete_slot(current_actor(), slot_id)
    return jsonify(id=slot.id, is_active=slot.is_active), 200
