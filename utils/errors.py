"""Typed failures raised by the core and rendered by the app error handler."""


class ParkingError(Exception):
    code = "ERROR"
    status_code = 400
    message = "Request failed"

    def __init__(self, message: str = None, reason: str = None, details=None):
        self.message = message or self.message
        self.reason = reason
        self.details = details
        super().__init__(self.message)

    def to_dict(self) -> dict:
        out = {"error": self.message, "code": self.code}
        if self.reason:
            out["reason"] = self.reason
        if self.details:
            out["details"] = self.details
        return out


class Unauthenticated(ParkingError):
    code = "UNAUTHENTICATED"
    status_code = 401
    message = "Authentication required"


class Forbidden(ParkingError):
    code = "FORBIDDEN"
    status_code = 403
    message = "Forbidden"


class UnknownTenant(ParkingError):
    code = "UNKNOWN_TENANT"
    status_code = 404
    message = "Community not found"


class NotFound(ParkingError):
    code = "NOT_FOUND"
    status_code = 404
    message = "Not found"


class ValidationError(ParkingError):
    code = "VALIDATION_ERROR"
    status_code = 400
    message = "Invalid input"


class InvalidRange(ValidationError):
    code = "INVALID_RANGE"
    message = "Invalid time range"


class SlotConflict(ParkingError):
    code = "SLOT_CONFLICT"
    status_code = 409
    message = "Someone just booked this slot for an overlapping time"


class SlotUnavailable(ParkingError):
    code = "SLOT_UNAVAILABLE"
    status_code = 409
    message = "Slot is not available for that time"


class UserHasActiveBooking(ParkingError):
    code = "USER_HAS_ACTIVE_BOOKING"
    status_code = 409
    message = "You already have an active booking"


class StoreTimeout(ParkingError):
    code = "STORE_TIMEOUT"
    status_code = 504
    message = "Store timed out"


class StoreUnavailable(ParkingError):
    code = "STORE_UNAVAILABLE"
    status_code = 503
    message = "Store unavailable"


# Forbidden reason codes
ACTIVE_BOOKINGS_EXIST = "ActiveBookingsExist"
NOT_OWNER = "NotOwner"
OWN_SLOT = "OwnSlot"
CROSS_TENANT = "CrossTenant"
CROSS_TENANT_WRITE = "CrossTenantWrite"
NOT_PARTY = "NotParty"
NOT_SELF = "NotSelf"
NOT_ADMIN = "NotAdmin"
