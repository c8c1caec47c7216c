"""
IssuerAccount - the single signing identity authorized to mint.
"""
import asyncio
import logging
from typing import Any, Dict, Optional

from eth_account import Account
from eth_account.signers.local import LocalAccount

logger = logging.getLogger(__name__)


class IssuerAccount:
    """
    Issuer ("government") wallet owned by the minting process.

    Holds the private key and the per-account nonce lock. Every mint that
    shares this account must read its nonce and broadcast while holding
    ``nonce_lock``, so two concurrent mints never see the same pending count.
    """

    def __init__(self, private_key: str, expected_address: Optional[str] = None):
        """
        Args:
            private_key: Hex private key, with or without 0x prefix
            expected_address: Externally configured address; a mismatch is logged

        Raises:
            ValueError: If the private key is malformed
        """
        if not private_key.startswith("0x"):
            private_key = "0x" + private_key
        self._account: LocalAccount = Account.from_key(private_key)
        self.nonce_lock = asyncio.Lock()

        if expected_address and expected_address.lower() != self.address.lower():
            logger.warning(
                f"Configured issuer address ({expected_address}) does not match "
                f"private key derived address ({self.address})"
            )

    @property
    def address(self) -> str:
        return self._account.address

    def sign_transaction(self, transaction_dict: Dict[str, Any]) -> bytes:
        """
        Sign a transaction dict.

        Returns:
            Raw signed transaction bytes
        """
        signed = self._account.sign_transaction(transaction_dict)
        return bytes(signed.raw_transaction)

    def __repr__(self) -> str:
        return f"IssuerAccount(address={self.address})"
