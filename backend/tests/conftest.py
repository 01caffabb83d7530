"""
Shared fixtures: a throwaway SQLite database and a fixed-rate currency service
"""
import os
import tempfile
from pathlib import Path

import pytest

TEST_DIR = Path(tempfile.mkdtemp(prefix="lexledger-tests-"))
TEST_DB = TEST_DIR / "test.db"

# Settings are read at import time
os.environ["DATABASE_URL"] = f"sqlite+aiosqlite:///{TEST_DB}"
os.environ["EXPORT_DIR"] = str(TEST_DIR / "exports")

from fastapi.testclient import TestClient  # noqa: E402

from lexledger.api.deps import get_currency_service  # noqa: E402
from lexledger.main import app  # noqa: E402
from lexledger.services.currency_service import CurrencyService, StaticRateProvider  # noqa: E402

TEST_RATES = {
    ("USD", "INR"): "83.0",
    ("EUR", "INR"): "90.0",
    ("GBP", "INR"): "105.0",
}


@pytest.fixture
def currency_service():
    return CurrencyService(StaticRateProvider(TEST_RATES))


@pytest.fixture
def client(currency_service):
    if TEST_DB.exists():
        TEST_DB.unlink()
    app.dependency_overrides[get_currency_service] = lambda: currency_service
    with TestClient(app, headers={"X-User-Role": "partner"}) as test_client:
        yield test_client
    app.dependency_overrides.clear()


@pytest.fixture
def seed(client):
    """A partner, an associate, a client and one INR and one USD matter"""
    partner = client.post("/api/users", json={"name": "Asha Rao", "email": "asha@firm.test", "role": "partner"}).json()
    associate = client.post("/api/users", json={"name": "Vikram Shah", "email": "vikram@firm.test",
                                                "role": "associate"}).json()
    customer = client.post("/api/clients", json={"name": "Acme Holdings", "client_code": "12",
                                                 "address": "Mumbai", "billing_location": "Mumbai"}).json()
    inr_matter = client.post("/api/matters", json={"client_id": customer["id"], "title": "Lease Review",
                                                   "currency": "INR"}).json()
    usd_matter = client.post("/api/matters", json={"client_id": customer["id"], "title": "Cross-border Merger",
                                                   "currency": "usd"}).json()
    return {
        "partner": partner,
        "associate": associate,
        "client": customer,
        "inr_matter": inr_matter,
        "usd_matter": usd_matter,
    }
