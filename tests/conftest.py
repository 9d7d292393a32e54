"""Shared test fixtures for VitalSync tests."""

from __future__ import annotations

import sys
from pathlib import Path

import pytest

# Allow running tests without `pip install -e .` by making `src/` importable.
_PROJECT_ROOT = Path(__file__).resolve().parent.parent
_SRC_DIR = _PROJECT_ROOT / "src"
if str(_SRC_DIR) not in sys.path:
    sys.path.insert(0, str(_SRC_DIR))


# ---------------------------------------------------------------------------
# Test hermeticity
# ---------------------------------------------------------------------------

@pytest.fixture(autouse=True)
def _force_hermetic_test_env(monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.setenv("DB_PATH", ":memory:")
    monkeypatch.setenv("DB_POOL_SIZE", "4")
    monkeypatch.setenv("ENCRYPTION_KEY", "")
    monkeypatch.delenv("SCORE_WEIGHT_SCHEME", raising=False)
    monkeypatch.delenv("INSIGHTS_TIMEOUT_SECONDS", raising=False)


# ---------------------------------------------------------------------------
# In-memory storage fixtures
# ---------------------------------------------------------------------------

@pytest.fixture
def metric_db():
    """Create an in-memory MetricDatabase with a small pool."""
    from vitalsync.core.storage.database import MetricDatabase

    db = MetricDatabase(":memory:", pool_size=4)
    db.initialize()
    yield db
    db.close()


@pytest.fixture
def field_encryptor():
    """Create a FieldEncryptor with a fresh test key."""
    from cryptography.fernet import Fernet

    from vitalsync.core.storage.encryption import FieldEncryptor

    return FieldEncryptor(Fernet.generate_key().decode())


@pytest.fixture
def metric_repository(metric_db, field_encryptor):
    """Create a MetricRepository (with raw archive) backed by in-memory SQLite."""
    from vitalsync.core.storage.repository import MetricRepository

    return MetricRepository(metric_db, field_encryptor)
