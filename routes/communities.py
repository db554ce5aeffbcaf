from flask import Blueprint, jsonify, request

from security.tenancy import known_tenants
from services.store import list_available_slots
from models.slot import SLOT_AVAILABLE
from utils.serializers import slot_json
from utils.validation import parse_slot_filters

communities_bp = Blueprint("communities", __name__, url_prefix="/communities")


@communities_bp.get("")
def list_communities():
    return jsonify([
        {"code": c.code, "name": c.name, "display_name": c.display_name, "address": c.address}
        for c in known_tenants()
    ]), 200


# Public slot board: anonymous reads are allowed, the code is still validated
@communities_bp.get("/<code>/slots")
def community_board(code):
    slots = list_available_slots(code, parse_slot_filters(request.args))
    return jsonify([slot_json(s, status=SLOT_AVAILABLE) for s in slots]), 200
