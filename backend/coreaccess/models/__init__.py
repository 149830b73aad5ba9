from .tenancy import Tenant, Location, Branch, LocationUsage, LocationInventory, LocationAnalytics
from .auth import User, TeamMember, TeamInvitation, SessionToken
from .subscription import Subscription
from .security import SecurityEvent

__all__ = [
    'Tenant', 'Location', 'Branch', 'LocationUsage', 'LocationInventory', 'LocationAnalytics',
    'User', 'TeamMember', 'TeamInvitation', 'SessionToken',
    'Subscription',
    'SecurityEvent',
]
