"""SQLAlchemy models for tallyup database."""

from datetime import datetime, UTC
from sqlalchemy import (
    JSON,
    Column,
    Integer,
    String,
    ForeignKey,
    DateTime,
    Date,
    Numeric,
    Boolean,
    UniqueConstraint,
    create_engine,
)
from sqlalchemy.orm import declarative_base, relationship, sessionmaker, Session

Base = declarative_base()


class Account(Base):
    """Bank or credit card account model."""

    __tablename__ = "accounts"

    id = Column(Integer, primary_key=True)
    name = Column(String, unique=True, nullable=False)
    type = Column(String, nullable=False)
    last4 = Column(String(4), nullable=True)
    display_alias = Column(String, nullable=True)
    invert_amounts = Column(Boolean, default=False, nullable=False)
    created_at = Column(DateTime, default=lambda: datetime.now(UTC), nullable=False)

    # Relationships
    transactions = relationship("Transaction", back_populates="account", cascade="all, delete-orphan")
    import_batches = relationship("ImportBatch", back_populates="account", cascade="all, delete-orphan")


class Period(Base):
    """Calendar month period model."""

    __tablename__ = "periods"

    id = Column(Integer, primary_key=True)
    year = Column(Integer, nullable=False)
    month = Column(Integer, nullable=False)
    status = Column(String, default="open", nullable=False)
    created_at = Column(DateTime, default=lambda: datetime.now(UTC), nullable=False)

    __table_args__ = (UniqueConstraint("year", "month", name="uq_period_month"),)

    # Relationships
    transactions = relationship("Transaction", back_populates="period")


class ImportBatch(Base):
    """One file import run."""

    __tablename__ = "import_batches"

    id = Column(Integer, primary_key=True)
    account_id = Column(Integer, ForeignKey("accounts.id"), nullable=False)
    period_id = Column(Integer, ForeignKey("periods.id"), nullable=False)
    imported = Column(Integer, default=0, nullable=False)
    duplicate = Column(Integer, default=0, nullable=False)
    transfer_ignored = Column(Integer, default=0, nullable=False)
    rule_ignored = Column(Integer, default=0, nullable=False)
    out_of_period = Column(Integer, default=0, nullable=False)
    recurring_matched = Column(Integer, default=0, nullable=False)
    income_merged = Column(Integer, default=0, nullable=False)
    malformed = Column(Integer, default=0, nullable=False)
    created_at = Column(DateTime, default=lambda: datetime.now(UTC), nullable=False)

    # Relationships
    account = relationship("Account", back_populates="import_batches")
    transactions = relationship("Transaction", back_populates="import_batch", cascade="all, delete-orphan")
    raw_rows = relationship("RawImportRow", back_populates="batch", cascade="all, delete-orphan")


class RawImportRow(Base):
    """Staged, normalized input line kept for audit and dedup."""

    __tablename__ = "raw_import_rows"

    id = Column(Integer, primary_key=True)
    batch_id = Column(Integer, ForeignKey("import_batches.id"), nullable=False)
    account_id = Column(Integer, ForeignKey("accounts.id"), nullable=False)
    line_number = Column(Integer, nullable=False)
    raw_data = Column(JSON, nullable=False)
    parsed_date = Column(Date, nullable=False)
    parsed_description = Column(String, nullable=False)
    parsed_sub_description = Column(String, nullable=True)
    amount_before_norm = Column(Numeric(12, 2), nullable=False)
    normalized_amount = Column(Numeric(12, 2), nullable=False)
    normalized_description = Column(String, nullable=False)
    hash_key = Column(String(64), nullable=False)
    status = Column(String, nullable=False)
    external_id = Column(String, nullable=True)
    ignore_reason = Column(String, nullable=True)

    __table_args__ = (UniqueConstraint("account_id", "hash_key", name="uq_raw_row_account_hash"),)

    # Relationships
    batch = relationship("ImportBatch", back_populates="raw_rows")


class Transaction(Base):
    """Ledger entry model (posted, pending or projected)."""

    __tablename__ = "transactions"

    id = Column(Integer, primary_key=True)
    account_id = Column(Integer, ForeignKey("accounts.id"), nullable=True)
    period_id = Column(Integer, ForeignKey("periods.id"), nullable=False)
    import_batch_id = Column(Integer, ForeignKey("import_batches.id"), nullable=True)
    date = Column(Date, nullable=False)
    description = Column(String, nullable=False)
    sub_description = Column(String, nullable=True)
    amount = Column(Numeric(12, 2), nullable=False)
    category = Column(String, default="Uncategorized", nullable=False)
    status = Column(String, default="posted", nullable=False)
    source = Column(String, default="import", nullable=False)
    is_ignored = Column(Boolean, default=False, nullable=False)
    is_recurring_instance = Column(Boolean, default=False, nullable=False)
    recurring_definition_id = Column(Integer, ForeignKey("recurring_definitions.id"), nullable=True)
    external_id = Column(String, nullable=True)
    source_import_hash = Column(String(64), nullable=True)
    notes = Column(String, nullable=True)
    created_at = Column(DateTime, default=lambda: datetime.now(UTC), nullable=False)

    # One ledger entry per source event
    __table_args__ = (
        UniqueConstraint("account_id", "period_id", "source_import_hash", name="uq_transaction_import_hash"),
        UniqueConstraint("account_id", "external_id", name="uq_transaction_external_id"),
    )

    # Relationships
    account = relationship("Account", back_populates="transactions")
    period = relationship("Period", back_populates="transactions")
    import_batch = relationship("ImportBatch", back_populates="transactions")
    amazon_links = relationship("AmazonOrderLink", back_populates="transaction", cascade="all, delete-orphan")


class RecurringDefinition(Base):
    """Recurring schedule model."""

    __tablename__ = "recurring_definitions"

    id = Column(Integer, primary_key=True)
    merchant_label = Column(String, nullable=False)
    display_label = Column(String, nullable=True)
    nominal_amount = Column(Numeric(12, 2), nullable=False)
    frequency = Column(String, nullable=False)
    schedule = Column(JSON, nullable=False)
    category = Column(String, nullable=False)
    active = Column(Boolean, default=True, nullable=False)
    created_at = Column(DateTime, default=lambda: datetime.now(UTC), nullable=False)


class IgnoreRule(Base):
    """Suppression pattern model."""

    __tablename__ = "ignore_rules"

    id = Column(Integer, primary_key=True)
    pattern = Column(String, nullable=False)
    normalized_pattern = Column(String, unique=True, nullable=False)
    active = Column(Boolean, default=True, nullable=False)
    created_at = Column(DateTime, default=lambda: datetime.now(UTC), nullable=False)


class CategoryMappingRule(Base):
    """Exact description to category mapping model."""

    __tablename__ = "category_mapping_rules"

    id = Column(Integer, primary_key=True)
    raw_description = Column(String, nullable=False)
    normalized_description = Column(String, unique=True, nullable=False)
    category = Column(String, nullable=False)
    active = Column(Boolean, default=True, nullable=False)
    created_at = Column(DateTime, default=lambda: datetime.now(UTC), nullable=False)


class SuggestionDismissal(Base):
    """Dismissed recurring suggestion key."""

    __tablename__ = "suggestion_dismissals"

    id = Column(Integer, primary_key=True)
    suggestion_key = Column(String, unique=True, nullable=False)
    created_at = Column(DateTime, default=lambda: datetime.now(UTC), nullable=False)


class AmazonOrder(Base):
    """Marketplace order model."""

    __tablename__ = "amazon_orders"

    id = Column(Integer, primary_key=True)
    amazon_order_id = Column(String, unique=True, nullable=False)
    order_date = Column(Date, nullable=False)
    order_total = Column(Numeric(12, 2), nullable=False)
    currency = Column(String, default="CAD", nullable=False)
    order_url = Column(String, nullable=True)
    match_status = Column(String, default="unmatched", nullable=False)
    match_metadata = Column(JSON, nullable=True)
    is_ignored = Column(Boolean, default=False, nullable=False)
    created_at = Column(DateTime, default=lambda: datetime.now(UTC), nullable=False)

    # Relationships
    items = relationship("AmazonOrderItem", back_populates="order", cascade="all, delete-orphan")
    links = relationship("AmazonOrderLink", back_populates="order", cascade="all, delete-orphan")


class AmazonOrderItem(Base):
    """Item title on an order."""

    __tablename__ = "amazon_order_items"

    id = Column(Integer, primary_key=True)
    order_id = Column(Integer, ForeignKey("amazon_orders.id"), nullable=False)
    title = Column(String, nullable=False)
    quantity = Column(Integer, default=1, nullable=False)

    # Relationships
    order = relationship("AmazonOrder", back_populates="items")


class AmazonOrderLink(Base):
    """Link between an order and a transaction that paid for it."""

    __tablename__ = "amazon_order_links"

    id = Column(Integer, primary_key=True)
    order_id = Column(Integer, ForeignKey("amazon_orders.id"), nullable=False)
    transaction_id = Column(Integer, ForeignKey("transactions.id"), nullable=False)

    __table_args__ = (UniqueConstraint("order_id", "transaction_id", name="uq_order_transaction"),)

    # Relationships
    order = relationship("AmazonOrder", back_populates="links")
    transaction = relationship("Transaction", back_populates="amazon_links")


def create_session_factory(database_url: str) -> sessionmaker[Session]:
    """Create a SQLAlchemy session factory."""
    engine = create_engine(database_url, echo=False)
    Base.metadata.create_all(engine)
    return sessionmaker(bind=engine)
