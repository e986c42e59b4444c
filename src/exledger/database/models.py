"""SQLAlchemy models for the exledger database."""

from datetime import datetime
from sqlalchemy import (
    Column,
    Integer,
    String,
    ForeignKey,
    DateTime,
    Numeric,
    Boolean,
    JSON,
    create_engine,
)
from sqlalchemy.orm import declarative_base, relationship, sessionmaker, Session
from sqlalchemy.pool import StaticPool

Base = declarative_base()

# Shared precision for every monetary column
Money = Numeric(38, 9)


class Asset(Base):
    """Cash vault, bank account or memo account."""

    __tablename__ = "assets"

    id = Column(String, primary_key=True)
    name = Column(String, nullable=False)
    kind = Column(String, nullable=False)
    currency = Column(String(3), nullable=True)
    balance = Column(Money, nullable=False, default=0)
    opening_balance = Column(Money, nullable=False, default=0)
    is_pos_enabled = Column(Boolean, default=False, nullable=False)
    created_at = Column(DateTime, default=datetime.now, nullable=False)


class Transaction(Base):
    """Ledger transaction model.

    ``seq`` keeps insertion order stable for transactions that share a
    timestamp.
    """

    __tablename__ = "transactions"

    seq = Column(Integer, primary_key=True, autoincrement=True)
    id = Column(String, unique=True, nullable=False)
    timestamp = Column(DateTime, nullable=False, index=True)
    currency = Column(String(3), nullable=False)
    amount = Column(Money, nullable=False)
    asset_id = Column(String, nullable=False, index=True)
    entry_type = Column(String, nullable=False)
    description = Column(String, nullable=False, default="")
    related_party = Column(String, nullable=False, default="")
    group_id = Column(String, nullable=True, index=True)
    actor = Column(String, nullable=True)
    is_deleted = Column(Boolean, default=False, nullable=False)
    operation_kind = Column(String, nullable=True, index=True)
    operation_payload = Column(JSON, nullable=True)


class Customer(Base):
    """Customer owing money to the business in one currency."""

    __tablename__ = "customers"

    id = Column(Integer, primary_key=True)
    name = Column(String, nullable=False)
    currency = Column(String(3), nullable=False)
    is_archived = Column(Boolean, default=False, nullable=False)
    created_at = Column(DateTime, default=datetime.now, nullable=False)

    # Relationships
    debts = relationship(
        "DebtInstallment",
        back_populates="customer",
        cascade="all, delete-orphan",
        order_by="DebtInstallment.id",
    )


class DebtInstallment(Base):
    """Single debt entry of a customer."""

    __tablename__ = "debt_installments"

    id = Column(Integer, primary_key=True)
    customer_id = Column(Integer, ForeignKey("customers.id"), nullable=False)
    amount = Column(Money, nullable=False)
    paid = Column(Money, nullable=False, default=0)
    date = Column(DateTime, nullable=False)
    is_archived = Column(Boolean, default=False, nullable=False)
    is_voided = Column(Boolean, default=False, nullable=False)

    # Relationships
    customer = relationship("Customer", back_populates="debts")


class Receivable(Base):
    """Amount owed by the business."""

    __tablename__ = "receivables"

    id = Column(Integer, primary_key=True)
    debtor = Column(String, nullable=False)
    currency = Column(String(3), nullable=False)
    amount = Column(Money, nullable=False)
    paid = Column(Money, nullable=False, default=0)
    date = Column(DateTime, nullable=False)
    is_archived = Column(Boolean, default=False, nullable=False)
    is_voided = Column(Boolean, default=False, nullable=False)


class CapitalHistoryEntry(Base):
    """Immutable capital closing snapshot."""

    __tablename__ = "capital_history"

    id = Column(Integer, primary_key=True)
    timestamp = Column(DateTime, nullable=False, index=True)
    total = Column(Money, nullable=False)
    capital_breakdown = Column(JSON, nullable=False)
    rates = Column(JSON, nullable=False)
    detailed_breakdown = Column(JSON, nullable=True)


class Setting(Base):
    """Opaque configuration blob such as dashboard or sidebar layout."""

    __tablename__ = "settings"

    key = Column(String, primary_key=True)
    value = Column(JSON, nullable=True)


def create_session_factory(database_url: str) -> sessionmaker[Session]:
    """Create a SQLAlchemy session factory."""
    if database_url == "sqlite://":
        # One shared connection, otherwise every checkout sees an empty database
        engine = create_engine(
            database_url,
            echo=False,
            connect_args={"check_same_thread": False},
            poolclass=StaticPool,
        )
    else:
        engine = create_engine(database_url, echo=False)
    Base.metadata.create_all(engine)
    return sessionmaker(bind=engine)
