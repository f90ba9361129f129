"""Named registry of transport adapters with one active adapter."""

from __future__ import annotations

from typing import Optional

from fetchkit.adapters.base import Adapter
from fetchkit.exceptions import AdapterError


class AdapterRegistry:
    """Holds adapters by name and tracks which one is active.

    A new registry contains *default* (an
    :class:`~fetchkit.adapters.httpx_adapter.HttpxAdapter` when omitted)
    and makes it active. The active adapter cannot be unregistered.
    """

    def __init__(self, default: Optional[Adapter] = None) -> None:
        if default is None:
            from fetchkit.adapters.httpx_adapter import HttpxAdapter

            default = HttpxAdapter()
        self._adapters: dict[str, Adapter] = {}
        self.register(default)
        self._active = default.name

    def register(self, adapter: Adapter) -> None:
        """Add *adapter*, replacing any adapter with the same name."""
        if not adapter.name:
            raise AdapterError("Adapter must have a name")
        self._adapters[adapter.name] = adapter

    def get(self, name: str) -> Optional[Adapter]:
        return self._adapters.get(name)

    def get_active(self) -> Adapter:
        adapter = self._adapters.get(self._active)
        if adapter is None:
            raise AdapterError(f"Active adapter '{self._active}' not found")
        return adapter

    @property
    def active_name(self) -> str:
        return self._active

    def set_active(self, name: str) -> None:
        if name not in self._adapters:
            raise AdapterError(f"Adapter '{name}' not registered")
        self._active = name

    def has(self, name: str) -> bool:
        return name in self._adapters

    def unregister(self, name: str) -> bool:
        """Remove the adapter called *name*.

        Returns:
            ``True`` if an adapter was removed.

        Raises:
            AdapterError: If *name* is the active adapter.
        """
        if name == self._active:
            raise AdapterError(f"Cannot unregister the active adapter '{name}'")
        return self._adapters.pop(name, None) is not None

    def names(self) -> list[str]:
        return list(self._adapters)

    async def aclose(self) -> None:
        for adapter in self._adapters.values():
            await adapter.aclose()
