"""Services package: the entity store and the job payment transactor."""

from .payments import (  # noqa: F401
    InsufficientFundsError,
    JobAlreadyPaidError,
    JobNotFoundError,
    PaymentError,
    PaymentTransactor,
    TransactionFailureError,
)
from .store import EntityStore, StoreError, StoreTransaction  # noqa: F401
