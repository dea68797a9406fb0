"""Entity store for profiles, contracts and jobs.

The store is the only shared mutable resource of the service. Writes go through a
``StoreTransaction`` obtained from ``EntityStore.begin``; rows read with
``for_update=True`` stay locked until the transaction commits or rolls back.
Reads used by the listing endpoints are plain consistent reads without locks.
"""

from collections.abc import Sequence
from datetime import datetime
from decimal import Decimal
from types import TracebackType

from sqlalchemy import or_, select, text, update
from sqlalchemy.orm import Session, contains_eager, sessionmaker

from marketplace.core.db import LOCKING_OPTION, MAX_ROW_ID, Contract, Job, Profile
from marketplace.core.utils import get_logger, utcnow

logger = get_logger("marketplace.store")


class StoreError(Exception):
    """Raised when the store is left in a state a transaction cannot proceed from."""


def is_row_id(value: int) -> bool:
    """Tell whether ``value`` fits an INTEGER primary key; larger ids cannot match any row."""
    return -MAX_ROW_ID - 1 <= value <= MAX_ROW_ID


class StoreTransaction:
    """A unit of work against the entity store, bound to its own session."""

    def __init__(self, session: Session) -> None:
        """Wrap a session that has already begun its transaction."""
        self.session = session
        self._finished = False

    def __enter__(self) -> "StoreTransaction":
        return self

    def __exit__(
        self,
        exc_type: type[BaseException] | None,
        exc: BaseException | None,
        tb: TracebackType | None,
    ) -> None:
        try:
            if not self._finished:
                self.rollback()
        finally:
            self.close()

    def find_job_with_contract(self, job_id: int, for_update: bool = False) -> tuple[Job, Contract] | None:
        """Load a job joined with its contract, optionally locking both rows."""
        if not is_row_id(job_id):
            return None
        stmt = select(Job, Contract).join(Contract, Job.contract_id == Contract.id).where(Job.id == job_id)
        if for_update:
            stmt = stmt.with_for_update().execution_options(populate_existing=True)
        row = self.session.execute(stmt).first()
        if row is None:
            return None
        return row.Job, row.Contract

    def find_profile(self, profile_id: int, for_update: bool = False) -> Profile | None:
        """Load a profile by id, optionally locking its row."""
        if not is_row_id(profile_id):
            return None
        stmt = select(Profile).where(Profile.id == profile_id)
        if for_update:
            stmt = stmt.with_for_update().execution_options(populate_existing=True)
        return self.session.execute(stmt).scalar_one_or_none()

    def adjust_balance(self, profile_id: int, delta: Decimal) -> None:
        """Add ``delta`` to a profile balance as a single SQL-side update."""
        result = self.session.execute(
            update(Profile)
            .where(Profile.id == profile_id)
            .values(balance=Profile.balance + delta, updated_at=utcnow())
        )
        if result.rowcount != 1:
            msg = f"Profile {profile_id} vanished while adjusting its balance"
            raise StoreError(msg)

    def mark_job_paid(self, job_id: int, payment_date: datetime) -> bool:
        """Flip a job to paid. Returns False if it was already paid."""
        result = self.session.execute(
            update(Job)
            .where(Job.id == job_id, Job.paid.is_(False))
            .values(paid=True, payment_date=payment_date, updated_at=payment_date)
        )
        return result.rowcount == 1

    def commit(self) -> None:
        """Commit the transaction and release its locks."""
        self.session.commit()
        self._finished = True

    def rollback(self) -> None:
        """Roll back the transaction and release its locks."""
        self._finished = True
        self.session.rollback()

    def close(self) -> None:
        """Close the underlying session."""
        self.session.close()


class EntityStore:
    """Transactional persistence for profiles, contracts and jobs."""

    def __init__(self, session_factory: sessionmaker, lock_timeout_seconds: float = 5.0) -> None:
        """Initialize the store with a session factory and the lock wait bound."""
        self.session_factory = session_factory
        self.lock_timeout_seconds = lock_timeout_seconds

    def begin(self, locking: bool = True) -> StoreTransaction:
        """Open a new transaction on a fresh session.

        A locking transaction takes its write locks eagerly on SQLite (``BEGIN IMMEDIATE``)
        and caps lock waits with ``lock_timeout`` on PostgreSQL.
        """
        session = self.session_factory()
        try:
            if locking:
                session.connection(execution_options={LOCKING_OPTION: True})
                if session.get_bind().dialect.name == "postgresql":
                    timeout_ms = int(self.lock_timeout_seconds * 1000)
                    session.execute(text(f"SET LOCAL lock_timeout = {timeout_ms}"))
            else:
                session.begin()
        except BaseException:
            session.close()
            raise
        return StoreTransaction(session)

    def get_profile(self, profile_id: int) -> Profile | None:
        """Retrieve a profile by id."""
        if not is_row_id(profile_id):
            return None
        with self.session_factory() as session:
            return session.get(Profile, profile_id)

    def get_contract(self, contract_id: int) -> Contract | None:
        """Retrieve a contract by id."""
        if not is_row_id(contract_id):
            return None
        with self.session_factory() as session:
            return session.get(Contract, contract_id)

    def list_active_contracts(self, profile_id: int) -> Sequence[Contract]:
        """List non-terminated contracts where the profile is client or contractor."""
        if not is_row_id(profile_id):
            return []
        stmt = (
            select(Contract)
            .where(
                or_(Contract.client_id == profile_id, Contract.contractor_id == profile_id),
                Contract.status != "terminated",
            )
            .order_by(Contract.id)
        )
        with self.session_factory() as session:
            return session.execute(stmt).scalars().all()

    def list_unpaid_jobs(self, profile_id: int) -> Sequence[Job]:
        """List unpaid jobs of in-progress contracts involving the profile, with contracts loaded."""
        if not is_row_id(profile_id):
            return []
        stmt = (
            select(Job)
            .join(Job.contract)
            .options(contains_eager(Job.contract))
            .where(
                Job.paid.is_(False),
                Contract.status == "in_progress",
                or_(Contract.client_id == profile_id, Contract.contractor_id == profile_id),
            )
            .order_by(Job.id)
        )
        with self.session_factory() as session:
            return session.execute(stmt).scalars().all()
