"""
Pytest Configuration and Shared Fixtures for Billing Migration Backend Tests.

This module provides fixtures and configuration for all backend tests, supporting:
- Async test execution with pytest-asyncio
- A fixed reference time so date-based rules are deterministic
- Record factories for client, vault, transaction and War Chest rows
- Fast settings (no inter-chunk delays) and a fresh in-memory job repository
- Mock asyncpg pool and Slack webhook client
- A FastAPI TestClient running the real application lifespan
"""

from datetime import datetime, timedelta, timezone
from typing import Any, Callable, Dict, Generator, List
from unittest.mock import AsyncMock, Mock, patch

import pytest
from fastapi.testclient import TestClient

from billing_migration.core.config import Settings, get_settings
from billing_migration.services.job_repository import InMemoryJobRepository


# ============================================================
# PYTEST PLUGINS CONFIGURATION
# ============================================================

pytest_plugins: List[str] = ['pytest_asyncio']


# ============================================================
# PYTEST HOOKS
# ============================================================

def pytest_configure(config) -> None:
    """
    Configure custom pytest markers for test organization.

    Custom markers defined:
    - slow: Marks tests as slow (deselect with -m "not slow")
    - integration: Marks tests that drive the full HTTP application
    """
    config.addinivalue_line(
        'markers',
        'slow: marks tests as slow (deselect with -m "not slow")'
    )
    config.addinivalue_line(
        'markers',
        'integration: marks tests that drive the full HTTP application'
    )


# ============================================================
# TIME FIXTURES
# ============================================================

AS_OF = datetime(2026, 1, 15, 12, 0, tzinfo=timezone.utc)


@pytest.fixture
def as_of() -> datetime:
    """Fixed reference time used by every date-based rule in the tests."""
    return AS_OF


# ============================================================
# SETTINGS FIXTURES
# ============================================================

@pytest.fixture
def fast_settings() -> Settings:
    """Default settings with inter-chunk delays disabled."""
    return Settings(
        _env_file=None,
        vault_chunk_delay_seconds=0,
        transaction_chunk_delay_seconds=0,
        client_chunk_delay_seconds=0,
        slack_webhook_url=None,
    )


@pytest.fixture
def repository() -> InMemoryJobRepository:
    return InMemoryJobRepository(max_errors=100)


# ============================================================
# RECORD FACTORIES
# ============================================================

@pytest.fixture
def client_factory() -> Callable[..., Dict[str, Any]]:
    """
    Build ClientRecord payloads.

    The default client is an established, engaged customer with a clean
    payment history; overrides replace individual fields.
    """
    def _make(reference: datetime = AS_OF, **overrides: Any) -> Dict[str, Any]:
        record = {
            "client_id": "WC-000001",
            "legal_name": "Acme Dental LLC",
            "email": "billing@acmedental.com",
            "phone": "555-0100",
            "signup_date": (reference - timedelta(days=900)).isoformat(),
            "last_activity_date": (reference - timedelta(days=5)).isoformat(),
            "last_payment_date": (reference - timedelta(days=10)).isoformat(),
            "last_payment_amount": 99.0,
            "total_lifetime_value": 2400.0,
            "payment_history_months": 24,
            "has_valid_payment_method": True,
            "payment_method_type": "credit_card",
            "successful_payments": 24,
            "failed_payments": 0,
            "chargebacks": 0,
            "current_plan": "professional",
            "subscription_status": "active",
            "risk_score": 0,
            "fraud_indicators": [],
            "compliance_flags": [],
        }
        record.update(overrides)
        return record
    return _make


@pytest.fixture
def vault_factory() -> Callable[..., Dict[str, Any]]:
    """Build LegacyVaultRecord payloads for a valid, long-standing card."""
    def _make(reference: datetime = AS_OF, **overrides: Any) -> Dict[str, Any]:
        record = {
            "customer_vault_id": "NMI-1001",
            "customer_id": "CUST-1001",
            "first_name": "Dana",
            "last_name": "Reyes",
            "email": "dana@example.com",
            "phone": "555-0101",
            "cc_number_masked": "************4242",
            "cc_exp": f"12{(reference.year + 3) % 100:02d}",
            "cc_type": "visa",
            "created_date": (reference - timedelta(days=1000)).isoformat(),
            "status": "active",
            "previous_chargebacks": 0,
            "account_notes": None,
            "risk_level": "low",
        }
        record.update(overrides)
        return record
    return _make


@pytest.fixture
def transaction_factory() -> Callable[..., Dict[str, Any]]:
    """Build TransactionRecord payloads for a clean, approved daytime card sale."""
    def _make(reference: datetime = AS_OF, **overrides: Any) -> Dict[str, Any]:
        occurred = (reference - timedelta(days=30)).replace(hour=14, minute=0, second=0, microsecond=0)
        record = {
            "transaction_id": "TXN-1",
            "customer_id": "CUST-1",
            "amount": 120.0,
            "currency": "USD",
            "type": "sale",
            "payment_method": {
                "type": "credit_card",
                "card_type": "visa",
                "last_four": "4242",
            },
            "status": "approved",
            "response_code": "100",
            "auth_code": "A1B2C3",
            "avs_response": "Y",
            "cvv_response": "M",
            "transaction_date": occurred.isoformat(),
            "billing_address": {"country": "US"},
        }
        record.update(overrides)
        return record
    return _make


@pytest.fixture
def war_chest_factory() -> Callable[..., Dict[str, Any]]:
    """Build WarChestClientRecord payloads for a billable client."""
    def _make(**overrides: Any) -> Dict[str, Any]:
        record = {
            "client_id": "WC-9001",
            "legal_name": "Harbor Vet Clinic",
            "email": "accounts@harborvet.com",
            "original_signup_date": "2019-04-01",
            "last_activity_date": "2025-12-20",
            "historical_plan": "war_chest_gold",
            "current_status": "BILL",
            "nmi_customer_vault_id": "NMI-555",
            "chargeback_history": [],
        }
        record.update(overrides)
        return record
    return _make


# ============================================================
# DATABASE MOCK FIXTURES
# ============================================================

@pytest.fixture
def mock_db_pool() -> AsyncMock:
    """
    Create a mock asyncpg connection pool.

    pool.acquire() returns an async context manager yielding a mock
    connection; conn.transaction() returns an async context manager too.

    Usage:
        conn = mock_db_pool.acquire.return_value.__aenter__.return_value
        conn.fetchrow.return_value = {'payload': '{...}'}
    """
    pool = AsyncMock()

    conn = AsyncMock()
    conn.execute = AsyncMock(return_value="UPDATE 1")
    conn.executemany = AsyncMock(return_value=None)
    conn.fetch = AsyncMock(return_value=[])
    conn.fetchrow = AsyncMock(return_value=None)
    conn.fetchval = AsyncMock(return_value=None)

    transaction_context = AsyncMock()
    transaction_context.__aenter__ = AsyncMock(return_value=None)
    transaction_context.__aexit__ = AsyncMock(return_value=None)
    conn.transaction = Mock(return_value=transaction_context)

    acquire_context = AsyncMock()
    acquire_context.__aenter__ = AsyncMock(return_value=conn)
    acquire_context.__aexit__ = AsyncMock(return_value=None)
    pool.acquire = Mock(return_value=acquire_context)

    pool.close = AsyncMock(return_value=None)

    return pool


# ============================================================
# EXTERNAL SERVICE MOCK FIXTURES
# ============================================================

@pytest.fixture
def mock_slack_client() -> Generator[Mock, None, None]:
    """
    Patch slack_sdk WebhookClient used by the completion notifier.

    Yields the mock client instance; send() returns a 200 response.
    """
    client = Mock()
    response = Mock()
    response.status_code = 200
    response.body = "ok"
    client.send = Mock(return_value=response)

    with patch('billing_migration.jobs.completion_notifier.WebhookClient', return_value=client):
        yield client


# ============================================================
# HTTP APPLICATION FIXTURE
# ============================================================

@pytest.fixture
def api_client(monkeypatch: pytest.MonkeyPatch) -> Generator[TestClient, None, None]:
    """
    TestClient over the real application with the in-memory job store.

    Chunk delays are disabled through the environment so batches finish
    quickly; the settings cache is cleared before and after.
    """
    monkeypatch.setenv("JOB_REPOSITORY_BACKEND", "memory")
    monkeypatch.setenv("VAULT_CHUNK_DELAY_SECONDS", "0")
    monkeypatch.setenv("TRANSACTION_CHUNK_DELAY_SECONDS", "0")
    monkeypatch.setenv("CLIENT_CHUNK_DELAY_SECONDS", "0")
    monkeypatch.delenv("SLACK_WEBHOOK_URL", raising=False)
    monkeypatch.delenv("DATABASE_URL", raising=False)
    get_settings.cache_clear()

    from billing_migration.main import app

    with TestClient(app) as client:
        yield client

    get_settings.cache_clear()
