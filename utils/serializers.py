def _iso(dt):
    return dt.isoformat() if dt is not None else None


def _money(value):
    return str(value) if value is not None else None


def slot_json(s, status=None):
    return {
        "id": s.id,
        "owner_id": s.owner_id,
        "community": s.tenant_code,
        "location": {
            "level": s.location_level,
            "tower": s.location_tower,
            "landmark": s.location_landmark,
        },
        "price_per_hour": _money(s.price_per_hour),
        "status": status or s.status,
        "available_from": _iso(s.available_from),
        "available_until": _iso(s.available_until),
        "notes": s.notes,
        "is_active": s.is_active,
        "created_at": _iso(s.created_at),
    }


def booking_json(b):
    return {
        "id": b.id,
        "slot_id": b.slot_id,
        "requester_id": b.requester_id,
        "community": b.tenant_code,
        "start_time": _iso(b.start_time),
        "end_time": _iso(b.end_time),
        "status": b.status,
        "total_price": _money(b.total_price),
        "confirmed_at": _iso(b.confirmed_at),
        "cancelled_at": _iso(b.cancelled_at),
        "cancelled_by": b.cancelled_by,
        "cancel_reason": b.cancel_reason,
        "created_at": _iso(b.created_at),
    }


def user_json(u):
    return {
        "id": u.id,
        "community": u.tenant_code,
        "display_name": u.display_name,
        "email": u.email,
        "phone": u.phone,
        "unit_number": u.unit_number,
        "role": u.role,
        "is_active": u.is_active,
    }
