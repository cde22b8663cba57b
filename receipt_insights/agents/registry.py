"""Registry of receipt parser implementations, selectable by name in settings."""

from typing import ClassVar

from receipt_insights.agents.base import BaseReceiptParser


class AgentRegistry:
    """Registry for receipt parser classes."""

    _registry: ClassVar[dict[str, type[BaseReceiptParser]]] = {}

    @classmethod
    def register(cls, name: str, agent_cls: type[BaseReceiptParser]) -> None:
        """Register a parser class with a given name."""
        cls._registry[name] = agent_cls

    @classmethod
    def get(cls, name: str) -> type[BaseReceiptParser]:
        """Retrieve a parser class by name."""
        try:
            return cls._registry[name]
        except KeyError:
            msg = f"Unknown receipt agent {name!r}; available: {cls.available()}"
            raise KeyError(msg) from None

    @classmethod
    def available(cls) -> list[str]:
        """List all available parser names."""
        return sorted(cls._registry)
