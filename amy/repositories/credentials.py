"""DuckDBStore credential methods."""
from __future__ import annotations

import logging
from datetime import datetime, timezone
from typing import List, Optional

from amy.models import Credential

logger = logging.getLogger(__name__)

_CREDENTIAL_COLUMNS = "location, access_token, refresh_token, expires_at, realm_id, company_name"


def _to_db_timestamp(value: datetime) -> datetime:
    """Aware datetime -> naive UTC for a TIMESTAMP column."""
    if value.tzinfo is None:
        return value
    return value.astimezone(timezone.utc).replace(tzinfo=None)


def _from_db_timestamp(value: datetime) -> datetime:
    """Naive UTC from a TIMESTAMP column -> aware UTC."""
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc)


def _row_to_credential(row: tuple) -> Credential:
    return Credential(
        location=row[0],
        access_token=row[1],
        refresh_token=row[2],
        expires_at=_from_db_timestamp(row[3]),
        realm_id=row[4] or "",
        company_name=row[5],
    )


class CredentialsMixin:

    async def get_credential(self, location: str) -> Optional[Credential]:
        """Stored credential for a location, or None."""
        row = await self._fetch_one(
            f"SELECT {_CREDENTIAL_COLUMNS} FROM quickbooks_tokens WHERE location = ?",
            [location],
        )
        return _row_to_credential(row) if row else None

    async def list_credentials(self) -> List[Credential]:
        """All stored credentials ordered by location."""
        rows = await self._fetch_all(
            f"SELECT {_CREDENTIAL_COLUMNS} FROM quickbooks_tokens ORDER BY location"
        )
        return [_row_to_credential(row) for row in rows]

    async def upsert_credential(self, credential: Credential) -> None:
        """Insert or replace the credential row for its location."""
        await self._execute_with_timeout(f"""
            INSERT OR REPLACE INTO quickbooks_tokens
            ({_CREDENTIAL_COLUMNS}, updated_at)
            VALUES (?, ?, ?, ?, ?, ?, CURRENT_TIMESTAMP)
        """, [
            credential.location,
            credential.access_token,
            credential.refresh_token,
            _to_db_timestamp(credential.expires_at),
            credential.realm_id or None,
            credential.company_name,
        ])
        logger.debug(f"Stored QuickBooks credential for {credential.location}")

    async def update_credential_expiry(self, location: str, expires_at: datetime) -> None:
        """Overwrite only the expiry of a stored credential."""
        await self._execute_with_timeout(
            "UPDATE quickbooks_tokens SET expires_at = ?, updated_at = CURRENT_TIMESTAMP WHERE location = ?",
            [_to_db_timestamp(expires_at), location],
        )

    async def delete_credential(self, location: str) -> bool:
        """Delete the credential for a location. Returns True if one existed."""
        existing = await self._fetch_one(
            "SELECT 1 FROM quickbooks_tokens WHERE location = ?", [location]
        )
        if not existing:
            return False
        await self._execute_with_timeout(
            "DELETE FROM quickbooks_tokens WHERE location = ?", [location]
        )
        return True
