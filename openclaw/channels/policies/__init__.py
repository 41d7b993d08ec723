"""
Channel policies: per-binding message handling strategies.
"""

from openclaw.channels.policies.access import FilterPolicyHandler, PrivatePolicyHandler
from openclaw.channels.policies.base import PolicyHandler
from openclaw.channels.policies.dispatcher import DispatchResult, PolicyDispatcher, TargetResult
from openclaw.channels.policies.executor import ExecutionContext, ExecutionResult, PolicyExecutor
from openclaw.channels.policies.moderate import ModeratePolicyHandler, PendingMessage
from openclaw.channels.policies.observe import (
    EchoPolicyHandler,
    ListenOnlyPolicyHandler,
    MonitorPolicyHandler,
)
from openclaw.channels.policies.queue import QueuedMessage, QueuePolicyHandler
from openclaw.channels.policies.registry import PolicyRegistry
from openclaw.channels.policies.resolver import BindingResolver, default_handlers
from openclaw.channels.policies.routing import (
    BroadcastPolicyHandler,
    ForwardPolicyHandler,
    LoadBalancePolicyHandler,
    ScheduledPolicyHandler,
    SmartRoutePolicyHandler,
)
from openclaw.channels.policies.types import (
    ChannelBinding,
    MessageContext,
    PolicyConfig,
    PolicyContext,
    PolicyResult,
    RouteTarget,
    TransformedMessage,
    ValidationResult,
)

__all__ = [
    # Types
    "ChannelBinding", "MessageContext", "PolicyConfig", "PolicyContext",
    "PolicyResult", "RouteTarget", "TransformedMessage", "ValidationResult",
    # Handlers
    "PolicyHandler",
    "PrivatePolicyHandler", "FilterPolicyHandler",
    "MonitorPolicyHandler", "ListenOnlyPolicyHandler", "EchoPolicyHandler",
    "ModeratePolicyHandler", "PendingMessage",
    "QueuePolicyHandler", "QueuedMessage",
    "LoadBalancePolicyHandler", "ScheduledPolicyHandler", "ForwardPolicyHandler",
    "BroadcastPolicyHandler", "SmartRoutePolicyHandler",
    # Plumbing
    "PolicyRegistry", "BindingResolver", "default_handlers",
    "PolicyDispatcher", "DispatchResult", "TargetResult",
    "PolicyExecutor", "ExecutionContext", "ExecutionResult",
]
