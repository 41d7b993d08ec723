"""
PolicyRegistry — policy type name -> handler instance.
"""

from __future__ import annotations

from loguru import logger

from openclaw.channels.policies.base import PolicyHandler


class PolicyRegistry:
    def __init__(self) -> None:
        self._handlers: dict[str, PolicyHandler] = {}

    def register(self, handler: PolicyHandler) -> None:
        if handler.type in self._handlers:
            logger.warning(f"[policy] Handler for policy type {handler.type!r} already registered, overwriting")
        self._handlers[handler.type] = handler
        logger.debug(f"[policy] Registered policy handler: {handler.type}")

    def get(self, type: str) -> PolicyHandler | None:
        return self._handlers.get(type)

    def has(self, type: str) -> bool:
        return type in self._handlers

    def list_types(self) -> list[str]:
        return list(self._handlers)

    def unregister(self, type: str) -> bool:
        handler = self._handlers.pop(type, None)
        if handler is None:
            return False
        handler.dispose()
        logger.debug(f"[policy] Unregistered policy handler: {type}")
        return True

    def dispose(self) -> None:
        """Release handler state but keep the handlers registered."""
        for handler in self._handlers.values():
            handler.dispose()

    def clear(self) -> None:
        for handler in self._handlers.values():
            handler.dispose()
        self._handlers.clear()

    def __len__(self) -> int:
        return len(self._handlers)
