"""FastAPI dependencies for DI (store, payment transactor, authenticated profile).

This module provides dependency injection helpers for the entity store, the payment
transactor and the profile resolved from the ``profile_id`` request header.
"""

from typing import Annotated

from fastapi import Depends, Header, HTTPException, status
from sqlalchemy.orm import sessionmaker

from marketplace.core.db import Profile, get_sessionmaker
from marketplace.core.settings import Settings, get_settings
from marketplace.core.utils import get_logger, safe_cast
from marketplace.services.payments import PaymentTransactor
from marketplace.services.store import EntityStore

logger = get_logger("marketplace.api")


def get_session_factory() -> sessionmaker:
    """Provide the session factory for dependency injection."""
    return get_sessionmaker()


def get_store(
    session_factory: Annotated[sessionmaker, Depends(get_session_factory)],
    settings: Annotated[Settings, Depends(get_settings)],
) -> EntityStore:
    """Provide an EntityStore instance for dependency injection."""
    return EntityStore(session_factory, lock_timeout_seconds=settings.lock_timeout_seconds)


def get_payment_transactor(store: Annotated[EntityStore, Depends(get_store)]) -> PaymentTransactor:
    """Provide a PaymentTransactor instance for dependency injection."""
    return PaymentTransactor(store)


def get_current_profile(
    store: Annotated[EntityStore, Depends(get_store)],
    profile_id: Annotated[str | None, Header(convert_underscores=False)] = None,
) -> Profile:
    """Resolve the acting profile from the ``profile_id`` header, rejecting unknown ids with 401."""
    parsed_id = safe_cast(profile_id, int) if profile_id is not None else None
    profile = store.get_profile(parsed_id) if parsed_id is not None else None
    if profile is None:
        logger.warning(f"Rejected request with unknown profile_id header: {profile_id!r}")
        raise HTTPException(status.HTTP_401_UNAUTHORIZED, "Unauthorized")
    return profile


CurrentProfile = Annotated[Profile, Depends(get_current_profile)]
Store = Annotated[EntityStore, Depends(get_store)]
Transactor = Annotated[PaymentTransactor, Depends(get_payment_transactor)]
