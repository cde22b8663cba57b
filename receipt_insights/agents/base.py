"""Base abstraction for receipt parsers.

A receipt parser turns OCR text into an unsaved ExpenseRecord draft that the
user reviews before it is stored.
"""

from abc import ABC, abstractmethod

from sqlalchemy.orm import sessionmaker

from receipt_insights.core.models import ExpenseRecord
from receipt_insights.core.settings import Settings


class BaseReceiptParser(ABC):
    """Abstract base class for all receipt parsers."""

    def __init__(self, settings: Settings, session_factory: sessionmaker | None = None) -> None:
        """Initialize the parser with settings and an optional DB session factory."""
        self.settings = settings
        self.session_factory = session_factory

    @abstractmethod
    def parse_receipt(self, text: str, owner_id: str) -> ExpenseRecord:
        """Parse OCR text into an expense draft owned by ``owner_id``."""
