"""Pytest fixtures and configuration."""

from __future__ import annotations

import os
from collections.abc import AsyncGenerator
from typing import Any

os.environ.setdefault("RATE_LIMIT_PER_MINUTE", "10000")
os.environ.setdefault("SUPABASE_URL", "http://supabase.test")
os.environ.setdefault("SUPABASE_SERVICE_KEY", "test-service-key")

import pytest
import pytest_asyncio
from httpx import ASGITransport, AsyncClient

from directory_service.api.auth import require_admin
from directory_service.api_server import app
from directory_service.db import DatabaseClient
from directory_service.services.account_provisioner import AccountProvisioner
from directory_service.services.enrichment import EntryEnricher
from directory_service.services.entry_lifecycle import EntryLifecycle, get_entry_lifecycle
from tests.fakes import FakeSupabase


@pytest.fixture
def supabase() -> FakeSupabase:
    return FakeSupabase()


@pytest.fixture
def db(supabase: FakeSupabase) -> DatabaseClient:
    return DatabaseClient(supabase)


@pytest.fixture
def provisioner(db: DatabaseClient) -> AccountProvisioner:
    return AccountProvisioner(db)


@pytest.fixture
def enricher(db: DatabaseClient) -> EntryEnricher:
    return EntryEnricher(db)


@pytest.fixture
def lifecycle(db: DatabaseClient, provisioner: AccountProvisioner, enricher: EntryEnricher) -> EntryLifecycle:
    return EntryLifecycle(db, provisioner=provisioner, enricher=enricher)


@pytest_asyncio.fixture(scope="function")
async def client(lifecycle: EntryLifecycle) -> AsyncGenerator[AsyncClient, None]:
    """HTTP client with the lifecycle bound to the in-memory backend and admin auth bypassed."""
    app.dependency_overrides[get_entry_lifecycle] = lambda: lifecycle
    app.dependency_overrides[require_admin] = lambda: {"id": "admin", "role": "admin", "is_active": True}

    transport = ASGITransport(app=app)
    async with AsyncClient(transport=transport, base_url="http://test") as ac:
        yield ac

    app.dependency_overrides.clear()


@pytest_asyncio.fixture(scope="function")
async def guarded_client(lifecycle: EntryLifecycle) -> AsyncGenerator[AsyncClient, None]:
    """HTTP client that goes through the real admin guard."""
    app.dependency_overrides[get_entry_lifecycle] = lambda: lifecycle

    transport = ASGITransport(app=app)
    async with AsyncClient(transport=transport, base_url="http://test") as ac:
        yield ac

    app.dependency_overrides.clear()


@pytest.fixture
def physician_payload() -> dict[str, Any]:
    """A complete create request for a physician, using the keys the admin UI sends."""
    return {
        "role": "medecin",
        "name": "Dr. Amina Belkacem",
        "email": "amina@example.dz",
        "phone": "+213550101010",
        "region": "Alger",
        "sub_region": "Hydra",
        "password": "S3cret-pass",
        "bio": "Oncologue",
        "roleSpecificData": {
            "specialization": "Oncologie",
            "licenseNumber": "MED-001",
            "yearsOfExperience": "12",
            "languagesSpoken": "Français, Arabe",
        },
    }


@pytest.fixture
def pharmacy_payload() -> dict[str, Any]:
    return {
        "role": "pharmacie",
        "name": "Pharmacie El Amel",
        "email": "elamel@example.dz",
        "phone": "+213550303030",
        "wilaya": "Oran",
        "commune": "Bir El Djir",
        "password": "S3cret-pass",
        "role_data": {
            "pharmacy_name": "Pharmacie El Amel",
            "license_number": "PH-31",
            "address": "Cité USTO",
            "is24Hours": "oui",
        },
    }
