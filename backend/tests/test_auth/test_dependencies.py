"""Tests for auth dependencies — token validation and role gates, via the API."""

import uuid
from datetime import timedelta

from httpx import AsyncClient
from sqlalchemy.ext.asyncio import AsyncSession

from recipe_forge.auth.jwt import create_access_token, create_token_pair
from recipe_forge.models.user import User

RECIPE = {
    "title": "Toast",
    "ingredients": ["bread"],
    "instructions": ["Toast the bread"],
}


class TestGetCurrentUser:
    """get_current_user edge cases, exercised through /auth/me."""

    async def test_valid_token(self, client: AsyncClient, test_user: User, auth_headers: dict):
        response = await client.get("/api/v1/auth/me", headers=auth_headers)
        assert response.status_code == 200
        assert response.json()["id"] == str(test_user.id)

    async def test_missing_token(self, client: AsyncClient):
        response = await client.get("/api/v1/auth/me")
        assert response.status_code in (401, 403)

    async def test_expired_token_rejected(self, client: AsyncClient, test_user: User):
        token = create_access_token({"sub": str(test_user.id)}, expires_delta=timedelta(seconds=-1))
        response = await client.get("/api/v1/auth/me", headers={"Authorization": f"Bearer {token}"})
        assert response.status_code == 401

    async def test_invalid_token_format(self, client: AsyncClient):
        response = await client.get("/api/v1/auth/me", headers={"Authorization": "Bearer not.a.valid.jwt"})
        assert response.status_code == 401

    async def test_refresh_token_type_rejected(self, client: AsyncClient, test_user: User):
        tokens = create_token_pair(str(test_user.id))
        headers = {"Authorization": f"Bearer {tokens['refresh_token']}"}
        response = await client.get("/api/v1/auth/me", headers=headers)
        assert response.status_code == 401

    async def test_nonexistent_user_id_rejected(self, client: AsyncClient):
        token = create_access_token({"sub": str(uuid.uuid4())})
        response = await client.get("/api/v1/auth/me", headers={"Authorization": f"Bearer {token}"})
        assert response.status_code == 401

    async def test_non_uuid_subject_rejected(self, client: AsyncClient):
        token = create_access_token({"sub": "user-123"})
        response = await client.get("/api/v1/auth/me", headers={"Authorization": f"Bearer {token}"})
        assert response.status_code == 401

    async def test_inactive_user_rejected(self, client: AsyncClient, db_session: AsyncSession, make_user):
        user, headers = await make_user()
        user.is_active = False
        await db_session.flush()
        response = await client.get("/api/v1/auth/me", headers=headers)
        assert response.status_code == 401


class TestRoleGates:
    async def test_guest_cannot_create_content(self, client: AsyncClient, guest):
        _, headers = guest
        response = await client.post("/api/v1/recipes", json=RECIPE, headers=headers)
        assert response.status_code == 403
        assert response.json()["detail"] == "Only members can create content"

    async def test_member_can_create_content(self, client: AsyncClient, auth_headers: dict):
        response = await client.post("/api/v1/recipes", json=RECIPE, headers=auth_headers)
        assert response.status_code == 201

    async def test_unknown_stored_role_is_forbidden(self, client: AsyncClient, make_user):
        _, headers = await make_user(role="SUPERUSER")
        response = await client.post("/api/v1/recipes", json=RECIPE, headers=headers)
        assert response.status_code == 403
        assert response.json()["detail"] == "Account role is not recognised"

    async def test_member_is_not_admin(self, client: AsyncClient, auth_headers: dict):
        response = await client.get("/api/v1/admin/subscriptions/stats", headers=auth_headers)
        assert response.status_code == 403

    async def test_anonymous_reader_is_guest(self, client: AsyncClient, auth_headers: dict):
        created = await client.post("/api/v1/recipes", json={**RECIPE, "is_public": True}, headers=auth_headers)
        response = await client.get(f"/api/v1/recipes/{created.json()['id']}")
        assert response.status_code == 200
