from .tenancy import Group
from .auth import User, Role, UserRole, AuthToken
from .kiosk import KioskSession
from .lending import Item, Borrower, Loan
from .security import SecurityEvent

__all__ = [
    'Group',
    'User', 'Role', 'UserRole', 'AuthToken',
    'KioskSession',
    'Item', 'Borrower', 'Loan',
    'SecurityEvent',
]
