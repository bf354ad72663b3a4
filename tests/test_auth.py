from datetime import datetime, timezone
from unittest.mock import AsyncMock

import pytest
from fastapi.testclient import TestClient

from ticketdesk.core.config import Settings
from ticketdesk.core.errors import AuthError, ForbiddenError
from ticketdesk.dependencies import services as service_deps
from ticketdesk.dependencies.auth import TokenIdentityProvider, require_manager, role_required
from ticketdesk.main import create_app
from ticketdesk.users.models import Actor, Role, User


def _user(user_id: str, role: Role) -> User:
    return User(
        id=user_id,
        name=user_id.title(),
        email=f"{user_id}@example.com",
        role=role,
        phone_number=None,
        employee_id=None,
        last_active_at=None,
        created_at=datetime(2024, 3, 1, tzinfo=timezone.utc),
    )


def test_token_provider_resolves_known_tokens():
    provider = TokenIdentityProvider({"t-1": ("agent-a", "agent")})

    identity = provider.resolve("t-1")

    assert identity.user_id == "agent-a"
    assert identity.role == Role.AGENT
    assert provider.resolve(None) is None
    with pytest.raises(AuthError):
        provider.resolve("forged")


@pytest.mark.asyncio
async def test_role_required_allows_authorized_actor():
    actor = Actor(id="manager-1", name="Morgan", role=Role.MANAGER)

    result = await require_manager(actor)  # type: ignore[arg-type]

    assert result.id == "manager-1"


@pytest.mark.asyncio
async def test_role_required_rejects_other_roles():
    dependency = role_required(Role.MANAGER)
    actor = Actor(id="agent-a", name="Alice", role=Role.AGENT)

    with pytest.raises(ForbiddenError) as exc:
        await dependency(actor)  # type: ignore[arg-type]

    assert exc.value.status_code == 403
    assert exc.value.message == "Insufficient permissions"


@pytest.fixture
def auth_client():
    settings = Settings(
        auth_tokens={"manager-token": ("manager-1", "manager"), "agent-token": ("agent-a", "agent")},
        jobs_enabled=False,
    )
    app = create_app(settings)
    users = AsyncMock()
    known = {"manager-1": _user("manager-1", Role.MANAGER), "agent-a": _user("agent-a", Role.AGENT)}
    users.get_user = AsyncMock(side_effect=lambda user_id: known[user_id])
    users.list_agents = AsyncMock(return_value=[known["agent-a"]])

    async def override_users():
        return users

    app.dependency_overrides[service_deps.get_user_service] = override_users
    client = TestClient(app)
    try:
        yield client, users
    finally:
        app.dependency_overrides.clear()


def test_valid_token_resolves_the_caller(auth_client):
    client, _ = auth_client

    response = client.get("/users/me", headers={"Authorization": "Bearer agent-token"})

    assert response.status_code == 200
    assert response.json()["id"] == "agent-a"
    assert response.json()["role"] == "AGENT"


def test_missing_token_is_rejected(auth_client):
    client, _ = auth_client

    response = client.get("/users/me")

    assert response.status_code == 401
    assert response.json() == {"message": "Missing authentication credentials"}


@pytest.mark.parametrize("header", ["Bearer forged", "Basic dXNlcjpwYXNz", "Bearer "])
def test_invalid_credentials_are_rejected_by_middleware(auth_client, header):
    client, users = auth_client

    response = client.get("/users/me", headers={"Authorization": header})

    assert response.status_code == 401
    assert response.json() == {"message": "Invalid authentication credentials"}
    users.get_user.assert_not_awaited()


def test_agents_cannot_reach_manager_routes(auth_client):
    client, users = auth_client

    forbidden = client.get("/agents", headers={"Authorization": "Bearer agent-token"})
    allowed = client.get("/agents", headers={"Authorization": "Bearer manager-token"})

    assert forbidden.status_code == 403
    assert forbidden.json() == {"message": "Insufficient permissions"}
    assert allowed.status_code == 200
    assert [agent["id"] for agent in allowed.json()] == ["agent-a"]


def test_ping_is_public(auth_client):
    client, _ = auth_client

    response = client.get("/ping")

    assert response.status_code == 200
    assert response.json() == {"status": "ok"}
