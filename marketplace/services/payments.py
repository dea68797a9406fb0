"""Job payment transactions.

``PaymentTransactor.pay`` moves a job's price from the client's balance to the
contractor's balance and marks the job paid, all inside one store transaction.

Locks are taken in a fixed order: the job (joined with its contract) first, then
both profiles in ascending id order. Validation happens on the locked rows, so
concurrent payments of the same job, or of different jobs drawing on the same
client balance, are serialized by the database rather than by this process.
"""

from sqlalchemy.exc import SQLAlchemyError

from marketplace.core.models import JobOut
from marketplace.core.utils import get_logger, utcnow
from marketplace.services.store import EntityStore, StoreError

logger = get_logger("marketplace.payments")


class PaymentError(Exception):
    """Base class for job payment failures."""


class JobNotFoundError(PaymentError):
    """The job does not exist or the acting profile is not its client.

    Both cases share one error so that non-owners cannot probe for job ids.
    """

    def __init__(self, job_id: int) -> None:
        """Record the job id that could not be resolved for the caller."""
        super().__init__("Job not found")
        self.job_id = job_id


class JobAlreadyPaidError(PaymentError):
    """The job has already been paid."""

    def __init__(self, job_id: int) -> None:
        """Record the job id that was already paid."""
        super().__init__("Job is already paid")
        self.job_id = job_id


class InsufficientFundsError(PaymentError):
    """The client balance does not cover the job price."""

    def __init__(self, job_id: int, profile_id: int) -> None:
        """Record the job and the client profile that cannot pay for it."""
        super().__init__("Insufficient funds")
        self.job_id = job_id
        self.profile_id = profile_id


class TransactionFailureError(PaymentError):
    """The store failed mid-transaction. Nothing was persisted; retrying is safe."""

    def __init__(self, job_id: int) -> None:
        """Record the job whose payment transaction was rolled back."""
        super().__init__("Server error")
        self.job_id = job_id


class PaymentTransactor:
    """Pays jobs atomically against the entity store."""

    def __init__(self, store: EntityStore) -> None:
        """Initialize the transactor with the store it operates on."""
        self.store = store

    def pay(self, job_id: int, acting_profile_id: int) -> JobOut:
        """Pay a job on behalf of its client and return the paid job.

        Raises:
            JobNotFoundError: the job is missing or ``acting_profile_id`` is not its client.
            JobAlreadyPaidError: the job was paid before this call.
            InsufficientFundsError: the client balance is below the job price.
            TransactionFailureError: the store failed; the transaction was rolled back.

        """
        try:
            with self.store.begin(locking=True) as txn:
                found = txn.find_job_with_contract(job_id, for_update=True)
                if found is None or found[1].client_id != acting_profile_id:
                    raise JobNotFoundError(job_id)
                job, contract = found
                if job.paid:
                    raise JobAlreadyPaidError(job_id)

                profiles = {}
                for profile_id in sorted({contract.client_id, contract.contractor_id}):
                    profile = txn.find_profile(profile_id, for_update=True)
                    if profile is None:
                        msg = f"Profile {profile_id} of contract {contract.id} does not exist"
                        raise StoreError(msg)
                    profiles[profile_id] = profile
                client = profiles[contract.client_id]
                price = job.price
                if price > client.balance:
                    raise InsufficientFundsError(job_id, client.id)

                txn.adjust_balance(contract.client_id, -price)
                txn.adjust_balance(contract.contractor_id, price)
                payment_date = utcnow()
                if not txn.mark_job_paid(job.id, payment_date):
                    raise JobAlreadyPaidError(job_id)

                snapshot = JobOut.model_validate(job).model_copy(update={"paid": True, "payment_date": payment_date})
                txn.commit()
        except PaymentError as exc:
            logger.warning(f"Payment rejected: job_id={job_id}, profile_id={acting_profile_id}, reason={exc}")
            raise
        except (SQLAlchemyError, StoreError) as exc:
            logger.exception(f"Payment transaction failed: job_id={job_id}, profile_id={acting_profile_id}")
            raise TransactionFailureError(job_id) from exc

        logger.info(
            f"Job paid: job_id={job_id}, client_id={contract.client_id}, "
            f"contractor_id={contract.contractor_id}, amount={price}"
        )
        return snapshot
