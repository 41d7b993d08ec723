"""
PolicyExecutor — resolve binding, apply policy, dispatch side effects.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, Iterable

from loguru import logger

from openclaw.channels.policies.dispatcher import DispatchResult, PolicyDispatcher, SendFunction
from openclaw.channels.policies.resolver import BindingResolver
from openclaw.channels.policies.types import (
    ChannelBinding,
    MessageContext,
    PolicyContext,
    PolicyResult,
)


@dataclass
class ExecutionContext:
    agent_id: str
    message: MessageContext
    channel_id: str
    account_id: str
    bindings: list[ChannelBinding] = field(default_factory=list)
    direction: str = "inbound"          # inbound | outbound
    agent_config: dict[str, Any] = field(default_factory=dict)
    metadata: dict[str, Any] = field(default_factory=dict)


@dataclass
class ExecutionResult:
    allow: bool
    reason: str | None = None
    policy_result: PolicyResult | None = None
    dispatch_result: DispatchResult | None = None
    binding_id: str | None = None
    policy_type: str | None = None


class PolicyExecutor:
    """
    Usage::

        executor = PolicyExecutor()
        result = await executor.execute(ExecutionContext(...), send=gateway_send)
        if result.allow:
            ...
    """

    def __init__(
        self,
        resolver: BindingResolver | None = None,
        dispatcher: PolicyDispatcher | None = None,
    ) -> None:
        self.resolver = resolver or BindingResolver()
        self.dispatcher = dispatcher or PolicyDispatcher()

    async def execute(self, ctx: ExecutionContext, send: SendFunction | None = None) -> ExecutionResult:
        binding = self.resolver.resolve_binding(ctx.bindings, ctx.channel_id, ctx.account_id)
        if binding is None:
            return ExecutionResult(allow=True, reason="No matching channel binding found")

        policy_ctx = PolicyContext(
            message=ctx.message,
            agent_id=ctx.agent_id,
            channel_id=ctx.channel_id,
            account_id=ctx.account_id,
            binding=binding,
            agent_config=ctx.agent_config,
            gateway_context={**ctx.metadata, "direction": ctx.direction},
        )
        try:
            policy_result = await self.resolver.apply_policy(policy_ctx)
        except Exception as exc:
            logger.error(f"[policy] Execution failed for binding {binding.id}: {exc}")
            return ExecutionResult(
                allow=False,
                reason=f"Policy execution failed: {exc}",
                binding_id=binding.id,
                policy_type=binding.policy.type,
            )

        result = ExecutionResult(
            allow=policy_result.allow,
            reason=policy_result.reason,
            policy_result=policy_result,
            binding_id=binding.id,
            policy_type=binding.policy.type,
        )
        logger.debug(
            f"[policy] {ctx.direction} {binding.id} ({binding.policy.type}): "
            f"allow={policy_result.allow} reason={policy_result.reason!r}"
        )

        if not policy_result.allow and send is not None:
            if policy_result.auto_reply or policy_result.route_to:
                result.dispatch_result = await self.dispatcher.dispatch(policy_result, ctx.message, send)
        return result

    async def validate_channel_bindings(self, bindings: Iterable[ChannelBinding | dict[str, Any]]) -> dict[str, list[str]]:
        """Binding id -> errors, for every binding that fails validation."""
        failures: dict[str, list[str]] = {}
        for binding in bindings:
            outcome = await self.resolver.validate_binding(binding)
            if not outcome.valid:
                binding_id = binding.get("id", "") if isinstance(binding, dict) else binding.id
                failures[binding_id] = outcome.errors
        return failures

    def list_available_policies(self) -> list[str]:
        return self.resolver.list_policy_types()

    def is_policy_available(self, type: str) -> bool:
        return self.resolver.has_policy_type(type)
