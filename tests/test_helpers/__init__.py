from .client_creator import (
    create_test_client, create_test_settings, TEST_RPC_URL, TEST_PRIV_KEY, TEST_CONTRACT
)
from .fake_ledger import FakeLedger, TEST_CHAIN_ID, decode_raw_transaction

__all__ = [
    "create_test_client",
    "create_test_settings",
    "FakeLedger",
    "decode_raw_transaction",
    "TEST_CHAIN_ID",
    "TEST_RPC_URL",
    "TEST_PRIV_KEY",
    "TEST_CONTRACT",
]
