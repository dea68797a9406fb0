"""Pytest configuration and shared fixtures."""

from collections.abc import Iterator
from datetime import datetime
from decimal import Decimal
from pathlib import Path

import pytest
from fastapi.testclient import TestClient
from sqlalchemy.engine import Engine
from sqlalchemy.orm import sessionmaker

from marketplace.api.dependencies import get_session_factory
from marketplace.core.db import Contract, Job, Profile, create_db_engine, init_db
from marketplace.main import app
from marketplace.services.payments import PaymentTransactor
from marketplace.services.store import EntityStore

LOCK_TIMEOUT_SECONDS = 10.0


class EntityFactory:
    """Inserts profiles, contracts and jobs and reads back their committed state."""

    def __init__(self, session_factory: sessionmaker) -> None:
        """Initialize the factory with the test session factory."""
        self.session_factory = session_factory

    def _add(self, row: object) -> None:
        with self.session_factory() as session:
            session.add(row)
            session.commit()

    def add_profile(  # noqa: PLR0913
        self,
        id: int,  # noqa: A002
        type: str,  # noqa: A002
        balance: Decimal | int = 0,
        first_name: str = "Harry",
        last_name: str = "Potter",
        profession: str = "Wizard",
    ) -> None:
        """Insert a profile."""
        self._add(
            Profile(
                id=id,
                type=type,
                balance=Decimal(balance),
                first_name=first_name,
                last_name=last_name,
                profession=profession,
            )
        )

    def add_contract(
        self,
        id: int,  # noqa: A002
        client_id: int,
        contractor_id: int,
        status: str = "in_progress",
        terms: str = "bla bla bla",
    ) -> None:
        """Insert a contract."""
        self._add(Contract(id=id, client_id=client_id, contractor_id=contractor_id, status=status, terms=terms))

    def add_job(  # noqa: PLR0913
        self,
        id: int,  # noqa: A002
        contract_id: int,
        price: Decimal | int = 100,
        paid: bool = False,
        payment_date: datetime | None = None,
        description: str = "work",
    ) -> None:
        """Insert a job."""
        self._add(
            Job(
                id=id,
                contract_id=contract_id,
                price=Decimal(price),
                paid=paid,
                payment_date=payment_date,
                description=description,
            )
        )

    def balance(self, profile_id: int) -> Decimal:
        """Read the committed balance of a profile."""
        with self.session_factory() as session:
            return session.get(Profile, profile_id).balance

    def job(self, job_id: int) -> Job:
        """Read the committed state of a job."""
        with self.session_factory() as session:
            return session.get(Job, job_id)


@pytest.fixture
def database_url(tmp_path: Path) -> str:
    """File-backed SQLite URL so that concurrent connections see one database."""
    return f"sqlite:///{tmp_path / 'marketplace.sqlite3'}"


@pytest.fixture
def engine(database_url: str) -> Iterator[Engine]:
    """Engine with all tables created."""
    engine = create_db_engine(database_url, lock_timeout_seconds=LOCK_TIMEOUT_SECONDS)
    init_db(engine)
    yield engine
    engine.dispose()


@pytest.fixture
def session_factory(engine: Engine) -> sessionmaker:
    """Session factory bound to the test engine."""
    return sessionmaker(bind=engine, autoflush=False, expire_on_commit=False)


@pytest.fixture
def store(session_factory: sessionmaker) -> EntityStore:
    """Entity store over the test database."""
    return EntityStore(session_factory, lock_timeout_seconds=LOCK_TIMEOUT_SECONDS)


@pytest.fixture
def transactor(store: EntityStore) -> PaymentTransactor:
    """Payment transactor over the test store."""
    return PaymentTransactor(store)


@pytest.fixture
def factory(session_factory: sessionmaker) -> EntityFactory:
    """Row factory for the test database."""
    return EntityFactory(session_factory)


@pytest.fixture
def client(session_factory: sessionmaker) -> Iterator[TestClient]:
    """Test client whose requests use the test database."""
    app.dependency_overrides[get_session_factory] = lambda: session_factory
    yield TestClient(app)
    app.dependency_overrides.clear()
