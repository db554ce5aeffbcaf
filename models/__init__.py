from .db import db, TenantScoped
from .community import Community
from .user import User
from .slot import Slot
from .booking import Booking
from .session import Session
from .audit_log import AuditLog
from .rate_limit import RateLimit
