"""Core package: provides models, errors, database helpers, settings, and shared utilities."""

from .errors import ReceiptInsightsError  # noqa: F401
from .models import ExpenseRecord, JobState  # noqa: F401
from .settings import Settings  # noqa: F401
