"""Tests for the user feature.
Covers: UserService and the profile endpoints, including scope and ownership checks.
"""

import pytest
import pytest_asyncio
from fastapi import status

from shelfkeeper.config.settings import settings
from shelfkeeper.features.user.exceptions import EmailAlreadyExists, UsernameAlreadyExists
from shelfkeeper.features.user.models import User
from shelfkeeper.features.user.schemas import UserRegisterRequest
from shelfkeeper.features.user.service import UserService

USERS = f"{settings.api_prefix}/users"


@pytest_asyncio.fixture
async def reader_token(auth_client):
    """Opaque token granted to the read-only "reader" client.

    Returns:
        tuple: (client, user, first-party headers, OAuth headers)

    """
    client, user, headers = auth_client
    authorize = await client.post(
        "/oauth/authorize",
        params={
            "client_id": "reader",
            "redirect_uri": "https://reader.example.com/cb",
            "response_type": "code",
            "scope": "read",
        },
        headers=headers,
    )
    assert authorize.status_code == status.HTTP_200_OK, authorize.text

    exchanged = await client.post(
        "/oauth/token",
        json={
            "grant_type": "authorization_code",
            "client_id": "reader",
            "client_secret": "reader-secret",
            "code": authorize.json()["code"],
            "redirect_uri": "https://reader.example.com/cb",
        },
    )
    assert exchanged.status_code == status.HTTP_200_OK, exchanged.text
    assert exchanged.json()["scope"] == "read"

    oauth_headers = {"Authorization": f"Bearer {exchanged.json()['access_token']}"}
    return client, user, headers, oauth_headers


# UserService


class TestUserServiceRegistration:
    """Tests for UserService.register_user."""

    async def test_register_user_success(self, session):
        data = UserRegisterRequest(
            username="newuser",
            email="newuser@example.com",
            password="Password123",
            full_name="New User",
        )
        user = await UserService.register_user(session, data)
        await session.commit()

        assert user.id is not None
        assert user.username == "newuser"
        assert user.hashed_password != "Password123"
        assert user.verify_password("Password123")

    async def test_register_user_duplicate_username(self, session, make_user):
        await make_user(username="existing")
        data = UserRegisterRequest(username="existing", email="other@example.com", password="Password123")

        with pytest.raises(UsernameAlreadyExists):
            await UserService.register_user(session, data)

    async def test_register_user_duplicate_email(self, session, make_user):
        await make_user(email="existing@example.com")
        data = UserRegisterRequest(username="other", email="existing@example.com", password="Password123")

        with pytest.raises(EmailAlreadyExists):
            await UserService.register_user(session, data)


class TestUserServiceUpdateAndDelete:
    async def test_update_only_provided_fields(self, session, make_user):
        user = await make_user(full_name="Original Name", email="keep@example.com")

        updated = await UserService.update_user(session, user, full_name="New Name", email=None)
        await session.commit()

        assert updated.full_name == "New Name"
        assert updated.email == "keep@example.com"

    async def test_update_email_conflict(self, session, make_user):
        await make_user(email="taken@example.com")
        user = await make_user()

        with pytest.raises(EmailAlreadyExists):
            await UserService.update_user(session, user, email="taken@example.com")

    async def test_get_by_credential(self, session, make_user):
        user = await make_user(username="lookup", email="lookup@example.com")

        assert (await UserService.get_by_credential(session, "lookup")).id == user.id
        assert (await UserService.get_by_credential(session, "lookup@example.com")).id == user.id
        assert await UserService.get_by_credential(session, "missing") is None

    async def test_delete_user(self, session, make_user):
        user = await make_user()

        assert await UserService.delete_user(session, user.id) is True
        await session.commit()
        assert await UserService.get_user(session, user.id) is None
        assert await UserService.delete_user(session, user.id) is False

    def test_password_hashing(self):
        hashed = User.hash_password("Secret123")
        user = User(username="h", email="h@example.com", hashed_password=hashed)

        assert hashed != "Secret123"
        assert user.verify_password("Secret123")
        assert not user.verify_password("secret123")


# Endpoints


class TestProfileEndpoints:
    async def test_get_own_profile(self, auth_client):
        client, user, headers = auth_client
        response = await client.get(f"{USERS}/{user.id}", headers=headers)

        assert response.status_code == status.HTTP_200_OK
        assert response.json()["username"] == user.username

    async def test_get_other_profile_forbidden(self, auth_client, make_user):
        client, _, headers = auth_client
        other = await make_user()

        response = await client.get(f"{USERS}/{other.id}", headers=headers)

        assert response.status_code == status.HTTP_403_FORBIDDEN
        assert response.json()["detail"] == "Access denied"

    async def test_requires_authentication(self, client, make_user):
        user = await make_user()
        response = await client.get(f"{USERS}/{user.id}")
        assert response.status_code == status.HTTP_401_UNAUTHORIZED

    async def test_update_profile(self, auth_client):
        client, user, headers = auth_client
        response = await client.put(
            f"{USERS}/{user.id}",
            json={"full_name": "Renamed Reader", "email": "renamed@example.com"},
            headers=headers,
        )

        assert response.status_code == status.HTTP_200_OK
        assert response.json()["full_name"] == "Renamed Reader"
        assert response.json()["email"] == "renamed@example.com"

    async def test_update_email_conflict(self, auth_client, make_user):
        client, user, headers = auth_client
        await make_user(email="claimed@example.com")

        response = await client.put(f"{USERS}/{user.id}", json={"email": "claimed@example.com"}, headers=headers)
        assert response.status_code == status.HTTP_409_CONFLICT

    async def test_delete_account(self, auth_client):
        client, user, headers = auth_client

        response = await client.delete(f"{USERS}/{user.id}", headers=headers)
        assert response.status_code == status.HTTP_200_OK

        me = await client.get(f"{settings.api_prefix}/auth/me", headers=headers)
        assert me.status_code == status.HTTP_401_UNAUTHORIZED


class TestOAuthScopes:
    async def test_read_scope_allows_profile_read(self, reader_token):
        client, user, _, oauth_headers = reader_token
        response = await client.get(f"{USERS}/{user.id}", headers=oauth_headers)

        assert response.status_code == status.HTTP_200_OK
        assert response.json()["id"] == user.id

    async def test_read_scope_cannot_write(self, reader_token):
        client, user, _, oauth_headers = reader_token
        response = await client.put(f"{USERS}/{user.id}", json={"full_name": "Hijacked"}, headers=oauth_headers)

        assert response.status_code == status.HTTP_403_FORBIDDEN

    async def test_oauth_credential_cannot_delete_account(self, reader_token):
        client, user, _, oauth_headers = reader_token
        response = await client.delete(f"{USERS}/{user.id}", headers=oauth_headers)

        assert response.status_code == status.HTTP_403_FORBIDDEN
        assert response.json()["detail"] == "This action requires a first-party session"

    async def test_oauth_credential_still_scoped_to_owner(self, reader_token, make_user):
        client, _, _, oauth_headers = reader_token
        other = await make_user()

        response = await client.get(f"{USERS}/{other.id}", headers=oauth_headers)
        assert response.status_code == status.HTTP_403_FORBIDDEN
