import asyncio

import pytest
from fastapi.testclient import TestClient
from jose import jwt

from tokenops.api.container import build_container
from tokenops.api.main import create_app


@pytest.fixture
def container(settings, chain, ledger):
    """In-memory broker and ledger, mocked chain, workers disabled."""
    return asyncio.run(build_container(settings, ledger=ledger, client=chain))


@pytest.fixture
def client(container):
    """TestClient running the app lifespan (broker connect, topology)."""
    with TestClient(create_app(container)) as test_client:
        yield test_client


@pytest.fixture
def token(settings):
    """Factory for signed access tokens."""

    def make(sub="user-1", company_id="company-a", roles=None, secret=None):
        claims = {"sub": sub, "company_id": company_id, "roles": roles or []}
        return jwt.encode(claims, secret or settings.jwt_secret, algorithm=settings.jwt_algorithm)

    return make


@pytest.fixture
def auth(token):
    """Authorization headers for a regular user of company-a."""
    return {"Authorization": f"Bearer {token()}"}


@pytest.fixture
def admin_auth(token):
    return {"Authorization": f"Bearer {token(sub='ops-1', company_id=None, roles=['admin'])}"}
