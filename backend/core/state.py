# backend/core/state.py

from enum import Enum

class CallStatus(str, Enum):
    INACTIVE = "INACTIVE"
    CONNECTING = "CONNECTING"
    ACTIVE = "ACTIVE"
    FINISHED = "FINISHED"
    PROCESSING = "PROCESSING"


STARTABLE_STATUSES = frozenset({CallStatus.INACTIVE, CallStatus.FINISHED})
LIVE_STATUSES = frozenset({CallStatus.CONNECTING, CallStatus.ACTIVE})
