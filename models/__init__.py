from .db import db
from .user import User, Role, user_roles
from .audit_log import AuditLog
from .session import Session
from .space import Space
from .booking import Booking, BookingStatus, PaymentStatus
from .availability import AvailabilityEntry, AvailabilityType
from .conversation import Conversation, ConversationMessage
