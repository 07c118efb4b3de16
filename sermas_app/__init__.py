"""
sermas-app - connection lifecycle manager for SERMAS platform applications.
"""

__version__ = "0.1.0"

from .app import SermasApp
from .bootstrap import AuthBootstrap, ConnectionState
from .cache import AppDescriptorCache, DescriptorState
from .client import SermasApiClient
from .config import SermasConfig
from .emitter import EventEmitter, SermasChannel
from .errors import (
    AuthenticationError,
    NotFoundError,
    SermasApiError,
    SermasError,
    SubscriptionError,
)
from .fanout import EventFanout
from .subscriptions import Subscription, SubscriptionRegistry

__all__ = [
    "__version__",
    "SermasApp",
    "SermasConfig",
    "SermasApiClient",
    # Local bus
    "EventEmitter",
    "SermasChannel",
    # Lifecycle components
    "AuthBootstrap",
    "ConnectionState",
    "AppDescriptorCache",
    "DescriptorState",
    "EventFanout",
    "Subscription",
    "SubscriptionRegistry",
    # Errors
    "SermasError",
    "SermasApiError",
    "NotFoundError",
    "AuthenticationError",
    "SubscriptionError",
]
