"""
Messaging Gateway Routing

Tenant resolution and conversation threading.
"""

from messaging_gateway.routing.tenant_resolver import TenantResolver
from messaging_gateway.routing.conversation import ConversationStore

__all__ = [
    "TenantResolver",
    "ConversationStore",
]
