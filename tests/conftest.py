import pytest
import os
import sys
from pathlib import Path
from types import SimpleNamespace
from unittest.mock import AsyncMock

# Add the project root to the Python path
project_root = Path(__file__).parent.parent
sys.path.insert(0, str(project_root))

from bundle_fanout.endpoints import Endpoint
from bundle_fanout.retry import RetryPolicy

# Environment variables for testing
os.environ.setdefault("BUNDLE_FANOUT_LOG_LEVEL", "DEBUG")


class FakeTransaction:
    """Signed transaction stand-in that counts how often it is serialized."""

    def __init__(self, seed: int, body: bytes = b""):
        self.signatures = [bytes([seed]) * 64]
        self.body = body or bytes([seed]) * 32
        self.serialize_calls = 0

    def __bytes__(self):
        self.serialize_calls += 1
        return self.signatures[0] + self.body


@pytest.fixture
def endpoints():
    return [
        Endpoint(code=f"relay{i}", url=f"http://relay{i}.test/api/v1/bundles")
        for i in range(1, 6)
    ]


@pytest.fixture
def fast_policy():
    """Real backoff shape, scaled down so tests do not sleep for seconds."""
    return RetryPolicy(base_delay=0.001, max_delay=0.004, jitter=0.0, request_timeout=5.0)


@pytest.fixture
def bundle():
    return [FakeTransaction(1), FakeTransaction(2), FakeTransaction(3)]


@pytest.fixture
def connection():
    """Ledger client mock with the solana AsyncClient response shapes."""
    conn = AsyncMock()
    conn.get_latest_blockhash.return_value = SimpleNamespace(
        value=SimpleNamespace(blockhash="4sGjMW1sUnHzSxGspuhpqLDx6wiyjNtZAMdL4VZHirAn", last_valid_block_height=1000)
    )
    conn.confirm_transaction.return_value = SimpleNamespace(value=[SimpleNamespace(err=None)])
    return conn


@pytest.fixture
def make_transaction():
    return FakeTransaction
