"""
Client side of FlowForge auth: local auth state, the API façade, refresh
scheduling, cross-client sync and route guards.
"""

from .cookies import ProfileSession
from .guard import GuardAction, GuardDecision, RequiresAnonymous, RequiresAuth, RouteGuard, RouteTable
from .runtime import ClientRuntime, create_client
from .scheduler import RefreshScheduler
from .session_client import AuthResult, SessionClient
from .state import AuthSnapshot, AuthState, AuthStatus
from .storage import SharedStorage
from .sync import CrossClientSynchronizer

__all__ = [
    "AuthResult",
    "AuthSnapshot",
    "AuthState",
    "AuthStatus",
    "ClientRuntime",
    "CrossClientSynchronizer",
    "GuardAction",
    "GuardDecision",
    "ProfileSession",
    "RefreshScheduler",
    "RequiresAnonymous",
    "RequiresAuth",
    "RouteGuard",
    "RouteTable",
    "SessionClient",
    "SharedStorage",
    "create_client",
]
