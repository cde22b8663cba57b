"""DB engine, session factory and ORM tables for Receipt Insights."""

from sqlalchemy import Column, Float, Integer, String, Text, create_engine
from sqlalchemy.engine import Engine
from sqlalchemy.orm import declarative_base, sessionmaker
from sqlalchemy.pool import StaticPool

Base = declarative_base()


class ExpenseRow(Base):
    """An expense row in the ``expenses`` table."""

    __tablename__ = "expenses"
    id = Column(String, primary_key=True)
    user_id = Column(String, nullable=False, index=True)
    date = Column(String, nullable=False)
    amount = Column(Float, nullable=False)
    category = Column(String, nullable=False)
    status = Column(String, nullable=False)
    merchant = Column(String, nullable=True)
    notes = Column(Text, nullable=True)
    created_at = Column(String, nullable=True)


class MerchantCategory(Base):
    """A remembered category for a merchant, used when parsing new receipts."""

    __tablename__ = "merchant_categories"
    id = Column(Integer, primary_key=True)
    merchant = Column(String, unique=True, index=True)
    category = Column(String)


def get_engine(url: str | None = None) -> Engine:
    """Create a SQLAlchemy engine using the given or configured database URL."""
    if url is None:
        from receipt_insights.core.settings import get_settings

        url = get_settings().database_url
    if url in ("sqlite://", "sqlite:///:memory:"):
        # One shared connection, otherwise every session sees its own empty database
        return create_engine(url, connect_args={"check_same_thread": False}, poolclass=StaticPool)
    return create_engine(url)


def create_session_factory(engine: Engine) -> sessionmaker:
    """Return a session factory bound to the engine."""
    return sessionmaker(autocommit=False, autoflush=False, bind=engine)


def init_db(engine: Engine) -> None:
    """Create all tables that do not exist yet."""
    Base.metadata.create_all(engine)
