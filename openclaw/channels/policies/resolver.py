"""
BindingResolver — picks the binding for a channel account and runs its policy.
"""

from __future__ import annotations

from typing import Any, Iterable

from loguru import logger

from openclaw.channels.policies.access import FilterPolicyHandler, PrivatePolicyHandler
from openclaw.channels.policies.base import PolicyHandler
from openclaw.channels.policies.moderate import ModeratePolicyHandler
from openclaw.channels.policies.observe import (
    EchoPolicyHandler,
    ListenOnlyPolicyHandler,
    MonitorPolicyHandler,
)
from openclaw.channels.policies.queue import QueuePolicyHandler
from openclaw.channels.policies.registry import PolicyRegistry
from openclaw.channels.policies.routing import (
    BroadcastPolicyHandler,
    ForwardPolicyHandler,
    LoadBalancePolicyHandler,
    ScheduledPolicyHandler,
    SmartRoutePolicyHandler,
)
from openclaw.channels.policies.types import (
    ChannelBinding,
    PolicyContext,
    PolicyResult,
    ValidationResult,
)
from openclaw.errors import NotFoundError


def default_handlers() -> list[PolicyHandler]:
    """One fresh instance of every built-in policy handler."""
    return [
        PrivatePolicyHandler(),
        MonitorPolicyHandler(),
        ListenOnlyPolicyHandler(),
        LoadBalancePolicyHandler(),
        QueuePolicyHandler(),
        ModeratePolicyHandler(),
        EchoPolicyHandler(),
        FilterPolicyHandler(),
        ScheduledPolicyHandler(),
        ForwardPolicyHandler(),
        BroadcastPolicyHandler(),
        SmartRoutePolicyHandler(),
    ]


class BindingResolver:
    """
    Usage::

        resolver = BindingResolver()
        binding = resolver.resolve_binding(bindings, "telegram", "bot-1")
        result = await resolver.apply_policy(PolicyContext(...))
    """

    def __init__(self, registry: PolicyRegistry | None = None) -> None:
        if registry is None:
            registry = PolicyRegistry()
            for handler in default_handlers():
                registry.register(handler)
        self.registry = registry

    def resolve_binding(
        self,
        bindings: Iterable[ChannelBinding] | None,
        channel_id: str,
        account_id: str,
    ) -> ChannelBinding | None:
        """Highest-priority enabled binding for the account; ties keep config order."""
        matched = [
            b for b in bindings or []
            if b.enabled and b.channel_id == channel_id and b.account_id == account_id
        ]
        if not matched:
            return None
        matched.sort(key=lambda b: b.priority or 0, reverse=True)
        return matched[0]

    async def apply_policy(self, ctx: PolicyContext) -> PolicyResult:
        policy_type = ctx.binding.policy.type
        handler = self.registry.get(policy_type)
        if handler is None:
            raise NotFoundError(f"Policy handler not found for type: {policy_type}")
        try:
            return await handler.process(ctx)
        except Exception as exc:
            logger.error(f"[policy] Policy processing error for {policy_type}: {exc}")
            return PolicyResult(allow=False, reason=f"Policy processing failed: {exc}")

    async def validate_binding(self, binding: ChannelBinding | dict[str, Any]) -> ValidationResult:
        if isinstance(binding, dict):
            data = binding
            policy = data.get("policy")
            if not isinstance(policy, dict):
                errors = self._check_ids(data)
                return ValidationResult(False, [*errors, "Policy is required and must be an object"])
            policy_type, config = policy.get("type", ""), policy.get("config")
        else:
            data = vars(binding)
            policy_type, config = binding.policy.type, binding.policy.config

        errors = self._check_ids(data)
        handler = self.registry.get(policy_type)
        if handler is None:
            return ValidationResult(False, [*errors, f"Unknown policy type: {policy_type}"])
        errors.extend((await handler.validate(config)).errors)
        return ValidationResult.from_errors(errors)

    @staticmethod
    def _check_ids(data: dict[str, Any]) -> list[str]:
        errors = []
        for key, label in (("id", "Binding ID"), ("channel_id", "Channel ID"), ("account_id", "Account ID")):
            if not data.get(key) or not isinstance(data[key], str):
                errors.append(f"{label} is required and must be a string")
        return errors

    def list_policy_types(self) -> list[str]:
        return self.registry.list_types()

    def has_policy_type(self, type: str) -> bool:
        return self.registry.has(type)

    def get_policy_handler(self, type: str) -> PolicyHandler | None:
        return self.registry.get(type)
