"""Agents package: provides the parser registry, base class, and receipt parser implementations."""

from .base import BaseReceiptParser  # noqa: F401
from .receipt_agent import PlaceholderReceiptParser, ReceiptAgent  # noqa: F401
from .registry import AgentRegistry  # noqa: F401
