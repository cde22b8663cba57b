"""Exception hierarchy for Receipt Insights."""


class ReceiptInsightsError(Exception):
    """Base class for all application errors."""


class NoDataToAnalyzeError(ReceiptInsightsError):
    """Raised when an analysis is requested for an empty set of expenses."""

    def __init__(self, message: str = "No expenses to analyze.") -> None:
        """Initialize with a default message."""
        super().__init__(message)


class InvalidRecordError(ReceiptInsightsError):
    """Raised when an expense record carries a negative or non-finite amount."""

    def __init__(self, expense_id: str, amount: object) -> None:
        """Record the offending expense and its amount."""
        self.expense_id = expense_id
        self.amount = amount
        super().__init__(f"Expense {expense_id!r} has an invalid amount: {amount!r}")


class BackendQueryFailedError(ReceiptInsightsError):
    """Raised when the analysis backend cannot be reached or returns garbage."""

    def __init__(self, reason: str) -> None:
        """Keep the human-readable reason for the Failed state."""
        self.reason = reason
        super().__init__(reason)


class ExpenseStoreError(ReceiptInsightsError):
    """Raised when the expense datastore fails."""


class DuplicateExpenseError(ExpenseStoreError):
    """Raised when inserting an expense whose id already exists."""

    def __init__(self, expense_id: str) -> None:
        """Record the duplicated expense id."""
        self.expense_id = expense_id
        super().__init__(f"Expense already exists: {expense_id}")


class ExpenseNotFoundError(ExpenseStoreError):
    """Raised when an expense id does not exist."""

    def __init__(self, expense_id: str) -> None:
        """Record the missing expense id."""
        self.expense_id = expense_id
        super().__init__(f"Expense not found: {expense_id}")


class StorageError(ReceiptInsightsError):
    """Raised when a receipt image cannot be stored or read back."""


class InvalidImageError(StorageError):
    """Raised when uploaded bytes are not a readable image."""


class OCRError(ReceiptInsightsError):
    """Raised when the OCR endpoint fails or returns an unusable response."""


class ReceiptParseError(ReceiptInsightsError):
    """Raised when OCR text cannot be turned into an expense draft."""
