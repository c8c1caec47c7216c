"""
TransactionSubmitter - dry run, sign and broadcast.
"""
import logging
from typing import Callable, Optional

from eth_utils import keccak

from .account import IssuerAccount
from .exceptions import (
    ContractReverted, LedgerError, MintError, MintStage, NetworkError, PreflightFailed, WouldRevert
)
from .fees import FeeEstimator
from .ledger import LedgerClient
from .models import TransactionEnvelope
from .utils import to_hex

logger = logging.getLogger(__name__)


class TransactionSubmitter:
    """
    Signs and broadcasts transactions for the issuer account.

    ``submit`` is not idempotent: each successful call broadcasts exactly
    one transaction and consumes one nonce. Never call it again for the
    same mint after a broadcast has happened.
    """

    def __init__(
        self,
        ledger: LedgerClient,
        fees: FeeEstimator,
        logger: Optional[logging.Logger] = None
    ):
        self.ledger = ledger
        self.fees = fees
        self.logger = logger or logging.getLogger(__name__)

    async def simulate(self, envelope: TransactionEnvelope) -> str:
        """
        Execute the call without committing state.

        Returns:
            Return data of the simulated call

        Raises:
            WouldRevert: If the call would revert
            LedgerError: If the node could not run the simulation
        """
        try:
            result = await self.ledger.call(envelope.call_params())
        except ContractReverted as e:
            self.logger.warning(f"Dry run reverted: {e.reason}")
            raise WouldRevert(MintStage.SIMULATING, e.reason or str(e), cause=e) from e
        self.logger.debug(f"Dry run succeeded, return data: {result}")
        return result

    async def submit(
        self,
        envelope: TransactionEnvelope,
        account: IssuerAccount,
        simulate: bool = True,
        on_signed: Optional[Callable[[str], None]] = None
    ) -> str:
        """
        Sign and broadcast one transaction.

        The nonce is read as the pending count while holding the account's
        nonce lock, and the lock is held until the broadcast returns.

        Args:
            envelope: Envelope without nonce; a fresh copy with the nonce is signed
            account: Issuer account to sign with
            simulate: Run the dry run first (skip only if the caller just did)
            on_signed: Called with the local transaction hash before broadcasting

        Returns:
            0x-prefixed transaction hash

        Raises:
            WouldRevert: Dry run failed; nothing was broadcast
            PreflightFailed: Nonce could not be read; nothing was broadcast
            MintError: Signing or broadcasting failed
        """
        if simulate:
            await self.simulate(envelope)

        async with account.nonce_lock:
            try:
                nonce = await self.fees.next_nonce(account.address)
            except LedgerError as e:
                raise PreflightFailed(
                    MintStage.SUBMITTING, f"Failed to read nonce: {e}", cause=e
                ) from e

            attempt = envelope.model_copy(update={"nonce": nonce})
            try:
                raw = account.sign_transaction(attempt.to_tx_dict())
            except (TypeError, ValueError) as e:
                self.logger.error(f"Transaction signing failed: {e}")
                raise MintError(
                    MintStage.SUBMITTING, f"Failed to sign transaction: {e}", cause=e
                ) from e

            local_hash = to_hex(keccak(raw))
            if on_signed is not None:
                on_signed(local_hash)
            try:
                tx_hash = await self.ledger.send_signed(raw)
            except NetworkError as e:
                # The node may have accepted it; report the hash for reconciliation
                self.logger.error(f"Broadcast outcome unknown for {local_hash}: {e}")
                raise MintError(
                    MintStage.SUBMITTING,
                    f"Broadcast outcome unknown: {e}",
                    transaction_hash=local_hash,
                    cause=e
                ) from e
            except LedgerError as e:
                self.logger.error(f"Failed to send transaction: {e}")
                raise MintError(
                    MintStage.SUBMITTING, f"Failed to send transaction: {e}", cause=e
                ) from e

        self.logger.info(f"Transaction sent: {tx_hash} (nonce {nonce})")
        return tx_hash
