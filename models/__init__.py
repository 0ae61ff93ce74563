from .db import db
from .user import User, Role, user_roles
from .audit_log import AuditLog
from .session import Session
from .listing import Academy, Coach, Turf, Ground, ServiceRef, LISTING_MODELS, SLOT_RESOURCE_MODELS
from .slot import Slot
from .slot_request import SlotRequest
from .promotion import PromotionTransaction
from .notification import Notification, DeviceToken
from .review import Review
