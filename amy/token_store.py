"""
OAuth credential lifecycle per location.

TokenStore hands out usable access tokens. A credential that expires within
the refresh buffer is refreshed and persisted before it is returned.
Refreshes for one location are serialized so concurrent requests share a
single refresh round trip.
"""
import asyncio
from datetime import datetime, timedelta, timezone
from typing import Callable, Dict, List, Optional

from amy.config import config
from amy.exceptions import NotConnectedError
from amy.models import Credential
from amy.observability import get_logger
from amy.quickbooks import QuickBooksClient

logger = get_logger(__name__)


def utc_now() -> datetime:
    return datetime.now(timezone.utc)


class TokenStore:
    """
    Credential access backed by the DuckDB store.

    Args:
        store: Object with get_credential / list_credentials / upsert_credential /
            update_credential_expiry / delete_credential coroutines (DuckDBStore)
        client: QuickBooksClient used for code exchange and refresh
        refresh_buffer: Refresh when the token expires sooner than this
        clock: Returns the current aware UTC datetime
    """

    def __init__(
        self,
        store,
        client: QuickBooksClient,
        refresh_buffer: timedelta = None,
        clock: Callable[[], datetime] = utc_now,
        location_order: List[str] = None,
    ):
        self._store = store
        self._client = client
        self.refresh_buffer = refresh_buffer or timedelta(
            seconds=config.quickbooks.refresh_buffer_seconds
        )
        self._clock = clock
        self._location_order = location_order if location_order is not None else config.locations.names
        self._locks: Dict[str, asyncio.Lock] = {}

    def _lock_for(self, location: str) -> asyncio.Lock:
        lock = self._locks.get(location)
        if lock is None:
            lock = self._locks[location] = asyncio.Lock()
        return lock

    def needs_refresh(self, credential: Credential) -> bool:
        return credential.expires_within(self.refresh_buffer, self._clock())

    # ─── Reads ───────────────────────────────────────────────────────────────

    async def get_credential(self, location: str) -> Optional[Credential]:
        """Stored credential without any refresh."""
        return await self._store.get_credential(location)

    async def get_valid_credential(self, location: str) -> Credential:
        """
        Credential safe to use right now.

        Raises:
            NotConnectedError: No credential stored for the location
            RefreshFailedError: Token needed a refresh and the provider refused it
        """
        credential = await self._store.get_credential(location)
        if credential is None:
            raise NotConnectedError(location)
        if not self.needs_refresh(credential):
            return credential

        async with self._lock_for(location):
            # Another request may have refreshed while we waited
            credential = await self._store.get_credential(location)
            if credential is None:
                raise NotConnectedError(location)
            if not self.needs_refresh(credential):
                return credential
            return await self._refresh_locked(credential)

    async def connected_locations(self) -> List[str]:
        """Locations with a stored credential, in configured order."""
        stored = {credential.location for credential in await self._store.list_credentials()}
        ordered = [name for name in self._location_order if name in stored]
        return ordered + sorted(stored.difference(ordered))

    async def list_credentials(self) -> List[Credential]:
        return await self._store.list_credentials()

    # ─── Writes ──────────────────────────────────────────────────────────────

    async def refresh(self, credential: Credential) -> Credential:
        """
        Refresh a credential unconditionally and persist the result.

        Raises:
            RefreshFailedError: Provider rejected the refresh token
        """
        async with self._lock_for(credential.location):
            return await self._refresh_locked(credential)

    async def _refresh_locked(self, credential: Credential) -> Credential:
        location = credential.location
        logger.info(f"Refreshing QuickBooks token for {location}")

        data = await self._client.refresh_tokens(credential.refresh_token, location)
        refreshed = Credential.from_token_response(
            data, location, self._clock(), realm_id=credential.realm_id
        )
        refreshed.company_name = credential.company_name

        try:
            await self._store.upsert_credential(refreshed)
        except Exception:
            # Provider already rotated the refresh token; the stored one is now dead
            logger.error(
                f"Refreshed QuickBooks token for {location} but failed to persist it",
                extra={"location": location},
                exc_info=True,
            )
            raise

        logger.info(
            f"QuickBooks token refreshed for {location}",
            extra={"location": location, "expires_at": refreshed.expires_at.isoformat()}
        )
        return refreshed

    async def store(self, credential: Credential) -> None:
        """Insert or replace the credential for its location."""
        async with self._lock_for(credential.location):
            await self._store.upsert_credential(credential)

    async def complete_authorization(
        self,
        location: str,
        code: str,
        realm_id: str,
        company_name: Optional[str] = None,
    ) -> Credential:
        """Exchange an OAuth callback code and store the new credential."""
        data = await self._client.exchange_code(code, location)
        credential = Credential.from_token_response(data, location, self._clock(), realm_id=realm_id)
        credential.company_name = company_name
        await self.store(credential)
        logger.info(f"QuickBooks connected for {location}", extra={"realm_id": credential.realm_id})
        return credential

    async def mark_expired(self, location: str) -> None:
        """Force the next get_valid_credential call to refresh."""
        async with self._lock_for(location):
            await self._store.update_credential_expiry(location, self._clock())
        logger.warning(f"QuickBooks token for {location} marked expired")

    async def disconnect(self, location: str) -> bool:
        """Delete the stored credential. Returns True if one existed."""
        async with self._lock_for(location):
            removed = await self._store.delete_credential(location)
        if removed:
            logger.info(f"QuickBooks disconnected for {location}")
        return removed
