"""
Credential Store

Per-tenant, per-provider POS credentials and the cached access token.

The durable row is the only token cache: adapters read it, decide whether the
token is still usable, and write a refreshed token back. Two instances
refreshing at once both succeed and the later write wins, which is fine for
bearer tokens.
"""

import logging
from datetime import datetime, timedelta, timezone
from typing import Optional

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from dialorder.core.errors import MisconfiguredError
from dialorder.models import ProviderCredential
from dialorder.schemas import CredentialPublic, CredentialUpsert

logger = logging.getLogger(__name__)


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


def as_utc(value: datetime) -> datetime:
    """Attach UTC to naive timestamps (some drivers drop the offset)."""
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value


def token_is_fresh(
    credential: ProviderCredential,
    margin_seconds: int = 60,
    now: Optional[datetime] = None,
) -> bool:
    """True if a cached token exists and outlives ``now + margin``."""
    if not credential.access_token or credential.token_expires_at is None:
        return False
    now = now or utcnow()
    return as_utc(credential.token_expires_at) > now + timedelta(seconds=margin_seconds)


def to_public(credential: ProviderCredential) -> CredentialPublic:
    return CredentialPublic(
        restaurant_id=credential.restaurant_id,
        provider=credential.provider,
        external_ref=credential.external_ref,
        environment=credential.environment,
        has_access_token=bool(credential.access_token),
        has_refresh_token=bool(credential.refresh_token),
        token_expires_at=credential.token_expires_at,
    )


class CredentialStore:
    """Read/write access to provider_credentials."""

    def __init__(self, db: AsyncSession):
        self.db = db

    async def get(self, restaurant_id: str, provider: str) -> Optional[ProviderCredential]:
        result = await self.db.execute(
            select(ProviderCredential).where(
                ProviderCredential.restaurant_id == restaurant_id,
                ProviderCredential.provider == provider,
            )
        )
        return result.scalar_one_or_none()

    async def require(self, restaurant_id: str, provider: str) -> ProviderCredential:
        credential = await self.get(restaurant_id, provider)
        if credential is None:
            raise MisconfiguredError(
                f"{provider} credentials not configured for restaurant",
                {"restaurant_id": restaurant_id, "provider": provider},
            )
        return credential

    async def upsert(
        self,
        restaurant_id: str,
        provider: str,
        fields: CredentialUpsert,
    ) -> CredentialPublic:
        """
        Create or overwrite the credential row for a tenant + provider.

        Token fields left unset in ``fields`` keep their stored values, so
        re-seeding client secrets does not throw away a valid token.
        """
        credential = await self.get(restaurant_id, provider)
        values = fields.model_dump(exclude_unset=True)

        if credential is None:
            credential = ProviderCredential(
                restaurant_id=restaurant_id,
                provider=provider,
                **values,
            )
            self.db.add(credential)
        else:
            for key, value in values.items():
                setattr(credential, key, value)

        await self.db.commit()
        await self.db.refresh(credential)

        logger.info(
            f"Credentials upserted: restaurant={restaurant_id} provider={provider} "
            f"env={credential.environment}"
        )
        return to_public(credential)

    async def save_token(
        self,
        credential: ProviderCredential,
        access_token: str,
        expires_at: datetime,
        refresh_token: Optional[str] = None,
    ) -> None:
        """Persist a freshly issued token and its absolute expiry."""
        credential.access_token = access_token
        credential.token_expires_at = expires_at
        if refresh_token:
            credential.refresh_token = refresh_token
        await self.db.commit()

        logger.info(
            f"Token refreshed: restaurant={credential.restaurant_id} "
            f"provider={credential.provider} expires_at={expires_at.isoformat()}"
        )
