"""Pydantic models for the marketplace payments API.

These define the JSON shape of profiles, contracts and jobs as returned by the API.
Field names are camelCase on the wire and money values are serialized as numbers.
"""

from datetime import datetime
from decimal import Decimal
from typing import Annotated, Literal

from pydantic import BaseModel, ConfigDict, PlainSerializer
from pydantic.alias_generators import to_camel

Money = Annotated[Decimal, PlainSerializer(float, return_type=float, when_used="json")]


class ApiModel(BaseModel):
    """Base model reading from ORM rows and writing camelCase JSON."""

    model_config = ConfigDict(from_attributes=True, alias_generator=to_camel, populate_by_name=True)


class ProfileOut(ApiModel):
    """A marketplace participant."""

    id: int
    first_name: str
    last_name: str
    profession: str
    type: Literal["client", "contractor"]
    balance: Money
    created_at: datetime | None = None
    updated_at: datetime | None = None


class ContractOut(ApiModel):
    """An agreement between one client and one contractor."""

    id: int
    client_id: int
    contractor_id: int
    status: Literal["new", "in_progress", "terminated"]
    terms: str
    created_at: datetime | None = None
    updated_at: datetime | None = None


class JobOut(ApiModel):
    """A unit of billable work under a contract."""

    id: int
    contract_id: int
    description: str
    price: Money
    paid: bool
    payment_date: datetime | None = None
    created_at: datetime | None = None
    updated_at: datetime | None = None


class JobWithContractOut(JobOut):
    """A job together with the contract it belongs to."""

    contract: ContractOut
