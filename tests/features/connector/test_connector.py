"""Tests for the connector feature.
Covers: TokenCipher, ConnectorService and the /connectors endpoints.
"""

import base64
from datetime import UTC, datetime

import pytest
import pytest_asyncio
from fastapi import status
from pydantic import ValidationError
from sqlalchemy import select

from shelfkeeper.config.settings import Settings, settings
from shelfkeeper.features.connector.crypto import TokenCipher, get_token_cipher
from shelfkeeper.features.connector.exceptions import ConnectorInactive, ConnectorNotFound
from shelfkeeper.features.connector.models import Connector, ConnectorProvider
from shelfkeeper.features.connector.service import ConnectorService

CONNECTORS = f"{settings.api_prefix}/connectors"
ANTHROPIC_TOKEN = "sk-ant-api03-test-token"


@pytest.fixture
def cipher() -> TokenCipher:
    return TokenCipher(TokenCipher.generate_key())


@pytest_asyncio.fixture
async def oauth_headers(auth_client):
    """Opaque OAuth token for the auth_client user, granted to agent-x."""
    client, _, headers = auth_client
    authorize = await client.post(
        "/oauth/authorize",
        params={
            "client_id": "agent-x",
            "redirect_uri": "https://agent.example.com/callback",
            "response_type": "code",
        },
        headers=headers,
    )
    assert authorize.status_code == status.HTTP_200_OK, authorize.text

    exchanged = await client.post(
        "/oauth/token",
        json={
            "grant_type": "authorization_code",
            "client_id": "agent-x",
            "client_secret": "agent-x-secret",
            "code": authorize.json()["code"],
            "redirect_uri": "https://agent.example.com/callback",
        },
    )
    assert exchanged.status_code == status.HTTP_200_OK, exchanged.text
    return {"Authorization": f"Bearer {exchanged.json()['access_token']}"}


# TokenCipher


class TestTokenCipher:
    def test_round_trip(self, cipher):
        encrypted = cipher.encrypt(ANTHROPIC_TOKEN)

        assert encrypted != ANTHROPIC_TOKEN
        assert cipher.decrypt(encrypted) == ANTHROPIC_TOKEN

    def test_unicode_and_empty_plaintext(self, cipher):
        assert cipher.decrypt(cipher.encrypt("clé-🔑")) == "clé-🔑"
        assert cipher.decrypt(cipher.encrypt("")) == ""

    def test_fresh_nonce_per_encryption(self, cipher):
        first = cipher.encrypt(ANTHROPIC_TOKEN)
        second = cipher.encrypt(ANTHROPIC_TOKEN)

        assert first != second
        assert base64.b64decode(first)[:12] != base64.b64decode(second)[:12]

    def test_tampered_ciphertext_rejected(self, cipher):
        data = bytearray(base64.b64decode(cipher.encrypt(ANTHROPIC_TOKEN)))
        data[-1] ^= 0x01
        tampered = base64.b64encode(bytes(data)).decode("ascii")

        with pytest.raises(ValueError, match="Failed to decrypt"):
            cipher.decrypt(tampered)

    def test_wrong_key_rejected(self, cipher):
        other = TokenCipher(TokenCipher.generate_key())
        with pytest.raises(ValueError):
            other.decrypt(cipher.encrypt(ANTHROPIC_TOKEN))

    @pytest.mark.parametrize("value", ["not base64!", base64.b64encode(b"short").decode("ascii")])
    def test_malformed_ciphertext_rejected(self, cipher, value):
        with pytest.raises(ValueError):
            cipher.decrypt(value)

    def test_generated_key_shape(self):
        key = TokenCipher.generate_key()

        assert len(key) == 44
        assert len(base64.b64decode(key)) == 32
        assert TokenCipher.generate_key() != key

    @pytest.mark.parametrize(
        "key",
        ["%%% not a key %%%", base64.b64encode(b"0123456789abcdef").decode("ascii"), ""],
    )
    def test_invalid_key_rejected(self, key):
        with pytest.raises(ValueError):
            TokenCipher(key)

    def test_settings_reject_short_key(self):
        with pytest.raises(ValidationError):
            Settings(encryption_key=base64.b64encode(b"too-short").decode("ascii"))


# ConnectorService


class TestConnectorService:
    async def test_upsert_creates_encrypted_row(self, session, make_user):
        user = await make_user()
        connector = await ConnectorService.upsert(session, user.id, ConnectorProvider.ANTHROPIC, ANTHROPIC_TOKEN)
        await session.commit()

        assert connector.id is not None
        assert connector.is_active is True
        assert connector.last_used_at is None
        assert ANTHROPIC_TOKEN not in connector.encrypted_token
        assert get_token_cipher().decrypt(connector.encrypted_token) == ANTHROPIC_TOKEN

    async def test_upsert_replaces_token_in_place(self, session, make_user):
        user = await make_user()
        first = await ConnectorService.upsert(session, user.id, ConnectorProvider.GEMINI, "old-token")
        await session.commit()
        second = await ConnectorService.upsert(session, user.id, ConnectorProvider.GEMINI, "new-token")
        await session.commit()

        assert second.id == first.id
        rows = (await session.scalars(select(Connector).where(Connector.user_id == user.id))).all()
        assert len(rows) == 1
        assert get_token_cipher().decrypt(rows[0].encrypted_token) == "new-token"

    async def test_upsert_reactivates(self, session, make_user):
        user = await make_user()
        await ConnectorService.upsert(session, user.id, ConnectorProvider.CHATGPT, "token-1")
        await ConnectorService.deactivate(session, user.id, ConnectorProvider.CHATGPT)
        connector = await ConnectorService.upsert(session, user.id, ConnectorProvider.CHATGPT, "token-2")
        await session.commit()

        assert connector.is_active is True

    async def test_use_token_decrypts_and_stamps_last_use(self, session, make_user):
        user = await make_user()
        await ConnectorService.upsert(session, user.id, ConnectorProvider.ANTHROPIC, ANTHROPIC_TOKEN)
        now = datetime(2026, 1, 2, 3, 4, 5, tzinfo=UTC)

        token = await ConnectorService.use_token(session, user.id, ConnectorProvider.ANTHROPIC, now=now)
        await session.commit()

        assert token == ANTHROPIC_TOKEN
        connector = await ConnectorService.get(session, user.id, ConnectorProvider.ANTHROPIC)
        assert connector.last_used_at == now

    async def test_use_token_of_inactive_connector(self, session, make_user):
        user = await make_user()
        await ConnectorService.upsert(session, user.id, ConnectorProvider.ANTHROPIC, ANTHROPIC_TOKEN)
        await ConnectorService.deactivate(session, user.id, ConnectorProvider.ANTHROPIC)

        with pytest.raises(ConnectorInactive):
            await ConnectorService.use_token(session, user.id, ConnectorProvider.ANTHROPIC)

    async def test_missing_connector(self, session, make_user):
        user = await make_user()

        with pytest.raises(ConnectorNotFound):
            await ConnectorService.use_token(session, user.id, ConnectorProvider.GEMINI)
        with pytest.raises(ConnectorNotFound):
            await ConnectorService.toggle(session, user.id, ConnectorProvider.GEMINI)


# Endpoints


class TestConnectorEndpoints:
    async def test_create_never_returns_token(self, auth_client):
        client, _, headers = auth_client
        response = await client.post(
            CONNECTORS, json={"provider": "anthropic", "api_token": ANTHROPIC_TOKEN}, headers=headers
        )

        assert response.status_code == status.HTTP_201_CREATED, response.text
        body = response.json()
        assert body["provider"] == "anthropic"
        assert body["is_active"] is True
        assert body["last_used_at"] is None
        assert "api_token" not in body
        assert "encrypted_token" not in body
        assert ANTHROPIC_TOKEN not in response.text

    async def test_list_newest_first(self, auth_client):
        client, _, headers = auth_client
        for provider in ("anthropic", "gemini"):
            await client.post(CONNECTORS, json={"provider": provider, "api_token": "t"}, headers=headers)

        response = await client.get(CONNECTORS, headers=headers)

        assert response.status_code == status.HTTP_200_OK
        assert [c["provider"] for c in response.json()] == ["gemini", "anthropic"]

    async def test_get_and_missing(self, auth_client):
        client, _, headers = auth_client
        await client.post(CONNECTORS, json={"provider": "chatgpt", "api_token": "t"}, headers=headers)

        found = await client.get(f"{CONNECTORS}/chatgpt", headers=headers)
        missing = await client.get(f"{CONNECTORS}/gemini", headers=headers)

        assert found.status_code == status.HTTP_200_OK
        assert found.json()["provider"] == "chatgpt"
        assert missing.status_code == status.HTTP_404_NOT_FOUND
        assert missing.json()["detail"] == "Connector 'gemini' not found"

    async def test_delete_is_soft(self, auth_client, session_factory):
        client, user, headers = auth_client
        await client.post(CONNECTORS, json={"provider": "anthropic", "api_token": "t"}, headers=headers)

        response = await client.delete(f"{CONNECTORS}/anthropic", headers=headers)

        assert response.status_code == status.HTTP_204_NO_CONTENT
        async with session_factory() as s:
            row = await s.scalar(select(Connector).where(Connector.user_id == user.id))
        assert row is not None
        assert row.is_active is False

        missing = await client.delete(f"{CONNECTORS}/gemini", headers=headers)
        assert missing.status_code == status.HTTP_404_NOT_FOUND

    async def test_toggle(self, auth_client):
        client, _, headers = auth_client
        await client.post(CONNECTORS, json={"provider": "gemini", "api_token": "t"}, headers=headers)

        off = await client.patch(f"{CONNECTORS}/gemini/toggle", headers=headers)
        on = await client.patch(f"{CONNECTORS}/gemini/toggle", headers=headers)

        assert off.json()["is_active"] is False
        assert on.json()["is_active"] is True

    @pytest.mark.parametrize(
        "payload",
        [
            {"provider": "anthropic", "api_token": ""},
            {"provider": "anthropic", "api_token": "   "},
            {"provider": "openai", "api_token": "t"},
            {"provider": "anthropic"},
        ],
    )
    async def test_invalid_payload(self, auth_client, payload):
        client, _, headers = auth_client
        response = await client.post(CONNECTORS, json=payload, headers=headers)
        assert response.status_code == 422

    async def test_unknown_provider_path(self, auth_client):
        client, _, headers = auth_client
        response = await client.get(f"{CONNECTORS}/openai", headers=headers)
        assert response.status_code == 422

    async def test_connectors_are_per_user(self, auth_client, make_user, login):
        client, _, headers = auth_client
        await client.post(CONNECTORS, json={"provider": "anthropic", "api_token": "t"}, headers=headers)

        other = await make_user()
        other_headers = {"Authorization": f"Bearer {(await login(other.username))['access_token']}"}

        assert (await client.get(CONNECTORS, headers=other_headers)).json() == []
        response = await client.get(f"{CONNECTORS}/anthropic", headers=other_headers)
        assert response.status_code == status.HTTP_404_NOT_FOUND

    async def test_requires_authentication(self, client):
        response = await client.get(CONNECTORS)
        assert response.status_code == status.HTTP_401_UNAUTHORIZED

    async def test_oauth_credential_rejected(self, auth_client, oauth_headers):
        client, _, _ = auth_client
        response = await client.post(
            CONNECTORS, json={"provider": "anthropic", "api_token": "t"}, headers=oauth_headers
        )
        assert response.status_code == status.HTTP_403_FORBIDDEN
