"""Credential storage and token freshness."""

from datetime import datetime, timedelta, timezone

import pytest

from dialorder.core.errors import MisconfiguredError
from dialorder.models import ProviderCredential
from dialorder.schemas import CredentialUpsert
from dialorder.services.credentials import CredentialStore, token_is_fresh

NOW = datetime(2026, 1, 1, 12, 0, tzinfo=timezone.utc)


def credential(access_token="tok", expires_in=None):
    expires_at = NOW + timedelta(seconds=expires_in) if expires_in is not None else None
    return ProviderCredential(
        restaurant_id="rest-1",
        provider="toast",
        external_ref="guid-1",
        access_token=access_token,
        token_expires_at=expires_at,
    )


@pytest.mark.parametrize(
    "access_token, expires_in, fresh",
    [
        ("tok", 3600, True),
        ("tok", 61, True),
        ("tok", 60, False),
        ("tok", 30, False),
        ("tok", -10, False),
        ("tok", None, False),
        (None, 3600, False),
    ],
)
def test_token_is_fresh_honours_margin(access_token, expires_in, fresh):
    assert token_is_fresh(credential(access_token, expires_in), margin_seconds=60, now=NOW) is fresh


def test_naive_expiry_treated_as_utc():
    cred = credential()
    cred.token_expires_at = (NOW + timedelta(hours=1)).replace(tzinfo=None)

    assert token_is_fresh(cred, now=NOW)


async def test_require_missing_credentials_is_misconfigured(db, restaurant):
    with pytest.raises(MisconfiguredError) as exc_info:
        await CredentialStore(db).require(restaurant.id, "toast")

    assert exc_info.value.details["provider"] == "toast"


async def test_upsert_hides_secrets(db, restaurant):
    public = await CredentialStore(db).upsert(
        restaurant.id,
        "toast",
        CredentialUpsert(external_ref="guid-1", client_id="cid", client_secret="shh"),
    )

    dumped = public.model_dump()
    assert dumped["external_ref"] == "guid-1"
    assert dumped["environment"] == "sandbox"
    assert dumped["has_access_token"] is False
    assert "client_secret" not in dumped
    assert "access_token" not in dumped


async def test_upsert_keeps_token_fields_left_unset(db, restaurant):
    store = CredentialStore(db)
    expires_at = datetime.now(timezone.utc) + timedelta(hours=1)
    await store.upsert(
        restaurant.id,
        "clover",
        CredentialUpsert(
            external_ref="merchant-1",
            access_token="access-1",
            refresh_token="refresh-1",
            token_expires_at=expires_at,
        ),
    )

    public = await store.upsert(
        restaurant.id,
        "clover",
        CredentialUpsert(external_ref="merchant-2", environment="prod"),
    )

    stored = await store.require(restaurant.id, "clover")
    assert public.has_access_token and public.has_refresh_token
    assert stored.external_ref == "merchant-2"
    assert stored.environment == "prod"
    assert stored.access_token == "access-1"
    assert stored.refresh_token == "refresh-1"


async def test_save_token_persists_expiry(db, restaurant):
    store = CredentialStore(db)
    await store.upsert(restaurant.id, "toast", CredentialUpsert(external_ref="guid-1"))
    stored = await store.require(restaurant.id, "toast")
    expires_at = datetime.now(timezone.utc) + timedelta(hours=2)

    await store.save_token(stored, "fresh-token", expires_at, refresh_token="r-2")

    reloaded = await store.require(restaurant.id, "toast")
    assert reloaded.access_token == "fresh-token"
    assert reloaded.refresh_token == "r-2"
    assert token_is_fresh(reloaded)
