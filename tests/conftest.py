"""
Pytest fixtures for the TouristID SDK tests.
"""
import time
from unittest.mock import AsyncMock, MagicMock

import pytest
from eth_account import Account

from touristid_sdk._rate_limited_log import reset_rate_limits
from touristid_sdk.account import IssuerAccount
from touristid_sdk.contract import ContractInterface
from touristid_sdk.ledger import LedgerClient

from tests.test_helpers import FakeLedger, create_test_client, TEST_CONTRACT, TEST_PRIV_KEY, TEST_RPC_URL

COMMITMENT = "0x" + "aa" * 32


@pytest.fixture(autouse=True)
def _reset_rate_limited_log():
    """Rate-limited warnings must be visible to every test's caplog."""
    reset_rate_limits()
    yield
    reset_rate_limits()


@pytest.fixture
def issuer_address():
    return Account.from_key(TEST_PRIV_KEY).address


@pytest.fixture
def account():
    return IssuerAccount(TEST_PRIV_KEY)


@pytest.fixture
def contract():
    return ContractInterface(TEST_CONTRACT)


@pytest.fixture
def fake_ledger(issuer_address):
    return FakeLedger(TEST_CONTRACT, issuer_address)


@pytest.fixture
def client(fake_ledger):
    return create_test_client(fake_ledger)


@pytest.fixture
def future_ts():
    return int(time.time()) + 3600


@pytest.fixture
def mock_w3():
    """
    AsyncWeb3 stand-in: every eth method is an AsyncMock, and awaitable
    properties are set per test via ``set_property``.
    """
    w3 = MagicMock()
    eth = MagicMock()
    for name in (
        "get_balance", "get_transaction_count", "get_block", "estimate_gas", "call",
        "get_transaction_receipt", "send_raw_transaction", "get_logs",
    ):
        setattr(eth, name, AsyncMock())
    w3.eth = eth
    return w3


def set_property(eth, name, value=None, side_effect=None):
    """Make ``await eth.<name>`` return value (or raise side_effect) on every access."""
    async def _value():
        if side_effect is not None:
            raise side_effect
        return value
    setattr(type(eth), name, property(lambda self: _value()))


@pytest.fixture
def ledger_client(mock_w3):
    return LedgerClient(TEST_RPC_URL, w3=mock_w3, retry_count=3, backoff_factor=0)
