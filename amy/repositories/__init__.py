"""
Repository mixins for the DuckDB store.

- CredentialsMixin: QuickBooks OAuth credentials per location
- MarketersMixin: Monthly marketer ledger
"""
from amy.repositories.credentials import CredentialsMixin
from amy.repositories.marketers import MarketersMixin

__all__ = [
    "CredentialsMixin",
    "MarketersMixin",
]
