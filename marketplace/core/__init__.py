"""Core package: provides models, database helpers, settings, and shared utilities."""

from .db import Contract, Job, Profile  # noqa: F401
from .models import ContractOut, JobOut, JobWithContractOut, ProfileOut  # noqa: F401
from .settings import Settings  # noqa: F401
from .utils import get_logger  # noqa: F401
