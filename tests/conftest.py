"""Shared fixtures: two configured principals and a fresh in-memory store."""

import os

os.environ.setdefault("USER1_EMAIL", "a@x.com")
os.environ.setdefault("USER2_EMAIL", "b@x.com")
os.environ.setdefault("LOG_FORMAT", "text")

import pytest
from fastapi.testclient import TestClient

from voucher_exchange.identity import IdentityConfig, IdentityResolver
from voucher_exchange.main import app, get_identity, get_store
from voucher_exchange.models import Principal
from voucher_exchange.storage import InMemoryVoucherStore

ALICE = "a@x.com"
BOB = "b@x.com"
MALLORY = "c@x.com"


@pytest.fixture
def identity():
    return IdentityResolver(IdentityConfig(user1_email=ALICE, user2_email=BOB))


@pytest.fixture
def store():
    return InMemoryVoucherStore({})


@pytest.fixture
def alice():
    return Principal(email=ALICE, name="Alice")


@pytest.fixture
def bob():
    return Principal(email=BOB)


@pytest.fixture
def mallory():
    return Principal(email=MALLORY)


@pytest.fixture
def client(store, identity):
    app.dependency_overrides[get_store] = lambda: store
    app.dependency_overrides[get_identity] = lambda: identity
    yield TestClient(app)
    app.dependency_overrides.clear()


@pytest.fixture
def auth_headers():
    def build(email, name=None):
        headers = {"Cf-Access-Authenticated-User-Email": email}
        if name:
            headers["Cf-Access-Authenticated-User-Name"] = name
        return headers
    return build
