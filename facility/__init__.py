"""
Facility portal business logic - attendance and lesson notifications.
Used by the web API; platform-agnostic otherwise.
"""

# Configuration
from .config import Settings, load_settings

# Database (SQLAlchemy)
from .database import get_connection, get_transaction, get_engine, close_engine

# Errors
from .errors import (
    FacilityError, NotFoundError, InvalidTokenError, InvalidStateError,
    ChannelUnavailable, ProviderError,
)

# Attendance
from .tokens import MemberRef, verify_check_in_token, issue_check_in_token
from .checkins import CheckIn, CheckInLedger

__all__ = [
    'Settings', 'load_settings',
    'get_connection', 'get_transaction', 'get_engine', 'close_engine',
    'FacilityError', 'NotFoundError', 'InvalidTokenError', 'InvalidStateError',
    'ChannelUnavailable', 'ProviderError',
    'MemberRef', 'verify_check_in_token', 'issue_check_in_token',
    'CheckIn', 'CheckInLedger',
]
