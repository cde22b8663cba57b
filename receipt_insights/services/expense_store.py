"""ExpenseStore: CRUD access to the ``expenses`` table."""

from sqlalchemy import select
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session, sessionmaker

from receipt_insights.core.db import ExpenseRow
from receipt_insights.core.errors import DuplicateExpenseError, ExpenseNotFoundError, ExpenseStoreError
from receipt_insights.core.models import ExpenseRecord, ExpenseUpdate
from receipt_insights.core.utils import get_logger

logger = get_logger("receipt-insights.store")


def _to_record(row: ExpenseRow) -> ExpenseRecord:
    return ExpenseRecord(
        id=row.id,
        owner_id=row.user_id,
        date=row.date,
        amount=row.amount,
        category=row.category,
        status=row.status,
        merchant=row.merchant,
        notes=row.notes,
        created_at=row.created_at,
    )


class ExpenseStore:
    """Fetch, insert, update and delete expense records through SQLAlchemy sessions."""

    def __init__(self, session_factory: sessionmaker) -> None:
        """Initialize the store with a session factory."""
        self.session_factory = session_factory

    def fetch_all(self, owner_id: str) -> list[ExpenseRecord]:
        """Return all expenses of an owner, newest date first."""
        stmt = select(ExpenseRow).where(ExpenseRow.user_id == owner_id).order_by(ExpenseRow.date.desc())
        with self._session() as session:
            rows = session.execute(stmt).scalars().all()
            records = [_to_record(row) for row in rows]
        logger.info(f"Fetched {len(records)} expenses for owner {owner_id}")
        return records

    def get(self, expense_id: str) -> ExpenseRecord:
        """Return one expense by id."""
        with self._session() as session:
            row = session.get(ExpenseRow, expense_id)
            if row is None:
                raise ExpenseNotFoundError(expense_id)
            return _to_record(row)

    def insert(self, record: ExpenseRecord) -> ExpenseRecord:
        """Insert a new expense. The id must not exist yet."""
        with self._session() as session:
            if session.get(ExpenseRow, record.id) is not None:
                raise DuplicateExpenseError(record.id)
            session.add(
                ExpenseRow(
                    id=record.id,
                    user_id=record.owner_id,
                    date=record.date,
                    amount=record.amount,
                    category=record.category,
                    status=record.status,
                    merchant=record.merchant,
                    notes=record.notes,
                    created_at=record.created_at,
                )
            )
            session.commit()
        logger.info(f"Inserted expense {record.id} for owner {record.owner_id}")
        return record

    def update(self, expense_id: str, changes: ExpenseUpdate) -> ExpenseRecord:
        """Apply the fields set in ``changes``, explicit nulls included, to an existing expense and return it."""
        values = changes.model_dump(exclude_unset=True)
        with self._session() as session:
            row = session.get(ExpenseRow, expense_id)
            if row is None:
                raise ExpenseNotFoundError(expense_id)
            for key, value in values.items():
                setattr(row, key, value)
            session.commit()
            record = _to_record(row)
        logger.info(f"Updated expense {expense_id}: {sorted(values)}")
        return record

    def delete(self, expense_id: str) -> None:
        """Delete an expense by id."""
        with self._session() as session:
            row = session.get(ExpenseRow, expense_id)
            if row is None:
                raise ExpenseNotFoundError(expense_id)
            session.delete(row)
            session.commit()
        logger.info(f"Deleted expense {expense_id}")

    def _session(self) -> "_StoreSession":
        return _StoreSession(self.session_factory)


class _StoreSession:
    """Session context that rolls back and wraps driver errors as ExpenseStoreError."""

    def __init__(self, session_factory: sessionmaker) -> None:
        self.session: Session = session_factory()

    def __enter__(self) -> Session:
        return self.session

    def __exit__(self, exc_type: type | None, exc: BaseException | None, tb: object) -> bool:
        try:
            if exc is not None:
                self.session.rollback()
        finally:
            self.session.close()
        if isinstance(exc, SQLAlchemyError):
            logger.error("Expense datastore error", exc_info=exc)
            raise ExpenseStoreError(str(exc)) from exc
        return False
