"""ExpenseAnalyzer: pure spend summary over a collection of expenses."""

import math
from collections.abc import Callable, Sequence
from datetime import datetime

import pandas as pd

from receipt_insights.core.errors import InvalidRecordError
from receipt_insights.core.models import AnalysisSummary, ExpenseRecord
from receipt_insights.core.utils import utcnow

NO_CATEGORY = "N/A"


class ExpenseAnalyzer:
    """Compute an AnalysisSummary from expense records without any I/O."""

    def __init__(self, clock: Callable[[], datetime] = utcnow) -> None:
        """Initialize the analyzer with the clock used for ``analyzed_at``."""
        self.clock = clock

    def validate(self, records: Sequence[ExpenseRecord]) -> None:
        """Raise InvalidRecordError for the first negative or non-finite amount."""
        for record in records:
            amount = record.amount
            if not isinstance(amount, int | float) or not math.isfinite(amount) or amount < 0:
                raise InvalidRecordError(record.id, amount)

    def analyze(self, records: Sequence[ExpenseRecord]) -> AnalysisSummary:
        """Summarize total spend, per-category totals and the top category."""
        self.validate(records)
        total = math.fsum(record.amount for record in records)
        if records:
            frame = pd.DataFrame(
                {"category": [r.category for r in records], "amount": [float(r.amount) for r in records]}
            )
            # sort=False keeps first-seen order, so idxmax breaks ties on the first maximum
            totals = frame.groupby("category", sort=False)["amount"].agg(math.fsum)
            top_category = str(totals.idxmax())
            category_totals = {str(k): float(v) for k, v in sorted(totals.items())}
        else:
            top_category = NO_CATEGORY
            category_totals = {}
        return AnalysisSummary(
            summary=(
                f"You spent a total of ${total:.2f} across {len(records)} receipts. "
                f"Your top category is {top_category}."
            ),
            total_spent=total,
            top_category=top_category,
            category_totals=category_totals,
            analyzed_at=self.clock(),
        )
