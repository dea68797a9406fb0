"""Concurrency tests for the job payment transactor.

Each payment runs on its own thread and its own database connection, as concurrent
requests would in the threadpool of the API.
"""

import concurrent.futures
import threading
from decimal import Decimal

import pytest

from marketplace.services.payments import (
    InsufficientFundsError,
    JobAlreadyPaidError,
    PaymentError,
    PaymentTransactor,
    TransactionFailureError,
)
from tests.conftest import EntityFactory

CLIENT_ID = 10
CONTRACTOR_ID = 11
CONTRACT_ID = 20
CONCURRENT_CALLS = 8


def run_concurrently(transactor: PaymentTransactor, calls: list[tuple[int, int]]) -> list[object]:
    """Start all ``(job_id, profile_id)`` payments at once and collect each result or error."""
    barrier = threading.Barrier(len(calls))

    def pay(call: tuple[int, int]) -> object:
        barrier.wait()
        try:
            return transactor.pay(*call)
        except PaymentError as exc:
            return exc

    with concurrent.futures.ThreadPoolExecutor(max_workers=len(calls)) as executor:
        return list(executor.map(pay, calls))


def test_concurrent_payments_of_one_job_pay_once(factory: EntityFactory, transactor: PaymentTransactor) -> None:
    """Test racing payments of the same job produce a single transfer."""
    factory.add_profile(id=CLIENT_ID, type="client", balance=500)
    factory.add_profile(id=CONTRACTOR_ID, type="contractor", balance=75)
    factory.add_contract(id=CONTRACT_ID, client_id=CLIENT_ID, contractor_id=CONTRACTOR_ID)
    factory.add_job(id=30, contract_id=CONTRACT_ID, price=200)

    results = run_concurrently(transactor, [(30, CLIENT_ID)] * CONCURRENT_CALLS)

    successes = [r for r in results if not isinstance(r, PaymentError)]
    failures = [r for r in results if isinstance(r, PaymentError)]
    if len(successes) != 1:
        msg = f"Expected exactly one successful payment, got {len(successes)}: {results}"
        raise AssertionError(msg)
    if not all(isinstance(f, JobAlreadyPaidError | TransactionFailureError) for f in failures):
        msg = f"Unexpected failures: {failures}"
        raise AssertionError(msg)
    if factory.balance(CLIENT_ID) != Decimal(300):
        msg = f"Expected client balance 300, got {factory.balance(CLIENT_ID)}"
        raise AssertionError(msg)
    if factory.balance(CONTRACTOR_ID) != Decimal(275):
        msg = f"Expected contractor balance 275, got {factory.balance(CONTRACTOR_ID)}"
        raise AssertionError(msg)


def test_concurrent_jobs_cannot_overdraw_client(factory: EntityFactory, transactor: PaymentTransactor) -> None:
    """Test two jobs that together exceed the client balance cannot both be paid."""
    factory.add_profile(id=CLIENT_ID, type="client", balance=300)
    factory.add_profile(id=CONTRACTOR_ID, type="contractor", balance=0)
    factory.add_profile(id=12, type="contractor", balance=0)
    factory.add_contract(id=CONTRACT_ID, client_id=CLIENT_ID, contractor_id=CONTRACTOR_ID)
    factory.add_contract(id=21, client_id=CLIENT_ID, contractor_id=12)
    factory.add_job(id=30, contract_id=CONTRACT_ID, price=200)
    factory.add_job(id=31, contract_id=21, price=250)

    results = run_concurrently(transactor, [(30, CLIENT_ID), (31, CLIENT_ID)])

    successes = [r for r in results if not isinstance(r, PaymentError)]
    if len(successes) != 1:
        msg = f"Expected exactly one successful payment, got {results}"
        raise AssertionError(msg)
    if not any(isinstance(r, InsufficientFundsError) for r in results):
        msg = f"Expected the other payment to fail for insufficient funds, got {results}"
        raise AssertionError(msg)
    paid_price = successes[0].price
    if factory.balance(CLIENT_ID) != Decimal(300) - paid_price:
        msg = f"Expected client balance {Decimal(300) - paid_price}, got {factory.balance(CLIENT_ID)}"
        raise AssertionError(msg)
    if factory.balance(CONTRACTOR_ID) + factory.balance(12) != paid_price:
        msg = "Expected contractors to receive exactly the paid price"
        raise AssertionError(msg)


@pytest.mark.parametrize("price", [60, 100])
def test_concurrent_jobs_drain_balance_consistently(
    factory: EntityFactory, transactor: PaymentTransactor, price: int
) -> None:
    """Test many jobs against one balance pay as many as the balance covers and never go negative."""
    factory.add_profile(id=CLIENT_ID, type="client", balance=300)
    factory.add_profile(id=CONTRACTOR_ID, type="contractor", balance=0)
    factory.add_contract(id=CONTRACT_ID, client_id=CLIENT_ID, contractor_id=CONTRACTOR_ID)
    job_ids = list(range(100, 100 + CONCURRENT_CALLS))
    for job_id in job_ids:
        factory.add_job(id=job_id, contract_id=CONTRACT_ID, price=price)

    results = run_concurrently(transactor, [(job_id, CLIENT_ID) for job_id in job_ids])

    successes = [r for r in results if not isinstance(r, PaymentError)]
    if len(successes) != 300 // price:
        msg = f"Expected {300 // price} payments, got {len(successes)}: {results}"
        raise AssertionError(msg)
    balance = factory.balance(CLIENT_ID)
    if balance < 0 or balance != Decimal(300 - price * len(successes)):
        msg = f"Unexpected client balance {balance}"
        raise AssertionError(msg)
    if factory.balance(CONTRACTOR_ID) != Decimal(price * len(successes)):
        msg = f"Unexpected contractor balance {factory.balance(CONTRACTOR_ID)}"
        raise AssertionError(msg)
