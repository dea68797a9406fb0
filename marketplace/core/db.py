"""DB models, engine and session factory for the marketplace payments service."""

from functools import lru_cache

from sqlalchemy import (
    Boolean,
    CheckConstraint,
    Column,
    DateTime,
    Enum,
    ForeignKey,
    Integer,
    Numeric,
    String,
    Text,
    create_engine,
    event,
)
from sqlalchemy.engine import Connection, Engine
from sqlalchemy.orm import declarative_base, relationship, sessionmaker

from marketplace.core.settings import get_settings
from marketplace.core.utils import utcnow

Base = declarative_base()

# Execution option marking a connection whose transaction must take write locks up front.
LOCKING_OPTION = "marketplace_locking"

# Largest id a 64-bit INTEGER primary key can hold.
MAX_ROW_ID = 2**63 - 1

PROFILE_TYPES = ("client", "contractor")
CONTRACT_STATUSES = ("new", "in_progress", "terminated")


class Profile(Base):
    """A marketplace participant holding a monetary balance."""

    __tablename__ = "profiles"
    __table_args__ = (CheckConstraint("balance >= 0", name="ck_profiles_balance_non_negative"),)

    id = Column(Integer, primary_key=True)
    first_name = Column(String, nullable=False)
    last_name = Column(String, nullable=False)
    profession = Column(String, nullable=False)
    type = Column(Enum(*PROFILE_TYPES, name="profile_type"), nullable=False)
    balance = Column(Numeric(12, 2), nullable=False, default=0)
    created_at = Column(DateTime(timezone=True), nullable=False, default=utcnow)
    updated_at = Column(DateTime(timezone=True), nullable=False, default=utcnow, onupdate=utcnow)


class Contract(Base):
    """An agreement between one client and one contractor."""

    __tablename__ = "contracts"

    id = Column(Integer, primary_key=True)
    client_id = Column(Integer, ForeignKey("profiles.id"), nullable=False, index=True)
    contractor_id = Column(Integer, ForeignKey("profiles.id"), nullable=False, index=True)
    status = Column(Enum(*CONTRACT_STATUSES, name="contract_status"), nullable=False, default="new")
    terms = Column(Text, nullable=False)
    created_at = Column(DateTime(timezone=True), nullable=False, default=utcnow)
    updated_at = Column(DateTime(timezone=True), nullable=False, default=utcnow, onupdate=utcnow)

    client = relationship("Profile", foreign_keys=[client_id])
    contractor = relationship("Profile", foreign_keys=[contractor_id])


class Job(Base):
    """A unit of billable work under a contract."""

    __tablename__ = "jobs"
    __table_args__ = (CheckConstraint("price > 0", name="ck_jobs_price_positive"),)

    id = Column(Integer, primary_key=True)
    contract_id = Column(Integer, ForeignKey("contracts.id"), nullable=False, index=True)
    description = Column(Text, nullable=False)
    price = Column(Numeric(12, 2), nullable=False)
    paid = Column(Boolean, nullable=False, default=False)
    payment_date = Column(DateTime(timezone=True), nullable=True)
    created_at = Column(DateTime(timezone=True), nullable=False, default=utcnow)
    updated_at = Column(DateTime(timezone=True), nullable=False, default=utcnow, onupdate=utcnow)

    contract = relationship("Contract")


def _install_sqlite_hooks(engine: Engine) -> None:
    """Take over transaction control from pysqlite.

    SQLite has no row locks, so locking transactions open with ``BEGIN IMMEDIATE``
    and hold the database write lock until commit or rollback. Waiting for that lock
    is bounded by the connection ``timeout``.
    """

    @event.listens_for(engine, "connect")
    def _on_connect(dbapi_connection: object, connection_record: object) -> None:
        _ = connection_record
        dbapi_connection.isolation_level = None
        cursor = dbapi_connection.cursor()
        cursor.execute("PRAGMA foreign_keys=ON")
        cursor.close()

    @event.listens_for(engine, "begin")
    def _on_begin(conn: Connection) -> None:
        if conn.get_execution_options().get(LOCKING_OPTION):
            conn.exec_driver_sql("BEGIN IMMEDIATE")
        else:
            conn.exec_driver_sql("BEGIN")


def create_db_engine(url: str, lock_timeout_seconds: float = 5.0, echo: bool = False) -> Engine:
    """Create a SQLAlchemy engine for the given database URL."""
    if url.startswith("sqlite"):
        engine = create_engine(
            url,
            echo=echo,
            connect_args={"check_same_thread": False, "timeout": lock_timeout_seconds},
        )
        _install_sqlite_hooks(engine)
        return engine
    return create_engine(url, echo=echo, pool_pre_ping=True)


@lru_cache
def get_engine() -> Engine:
    """Create the SQLAlchemy engine using the configured database URL."""
    settings = get_settings()
    return create_db_engine(settings.database_url, settings.lock_timeout_seconds, settings.sql_echo)


@lru_cache
def get_sessionmaker() -> sessionmaker:
    """Return the session factory bound to the configured engine."""
    return sessionmaker(bind=get_engine(), autoflush=False, expire_on_commit=False)


def init_db(engine: Engine) -> None:
    """Create all tables if they do not exist."""
    Base.metadata.create_all(engine)
