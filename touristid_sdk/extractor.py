"""
ResultExtractor - recovers the minted token id from a confirmed receipt.

The fallback order is an explicit list of tagged strategies. Each strategy
either returns a token id, returns None (nothing found) or raises
DecodeMismatch / LedgerError; in every case but the first the next strategy
is tried.
"""
import logging
from typing import Awaitable, Callable, List, Optional, Tuple

from .contract import ZERO_ADDRESS, ContractInterface
from .exceptions import DecodeMismatch, LedgerError
from .ledger import LedgerClient
from .models import ExtractionResult, ExtractionStrategy, TxReceipt

logger = logging.getLogger(__name__)

StrategyFn = Callable[[TxReceipt], Awaitable[Optional[int]]]

# The high-water mark can belong to a concurrent mint
LOW_CONFIDENCE_STRATEGIES = frozenset({ExtractionStrategy.CURRENT_TOKEN_ID})


class ResultExtractor:
    """Runs the token id strategies in order and stops at the first hit."""

    def __init__(
        self,
        contract: ContractInterface,
        ledger: LedgerClient,
        logger: Optional[logging.Logger] = None
    ):
        self.contract = contract
        self.ledger = ledger
        self.logger = logger or logging.getLogger(__name__)
        self.strategies: List[Tuple[ExtractionStrategy, StrategyFn]] = [
            (ExtractionStrategy.TRANSFER_EVENT, self._from_transfer_event),
            (ExtractionStrategy.MINTED_EVENT, self._from_minted_event),
            (ExtractionStrategy.BLOCK_EVENT_SCAN, self._from_block_event_scan),
            (ExtractionStrategy.CURRENT_TOKEN_ID, self._from_current_token_id),
        ]

    async def extract(self, receipt: TxReceipt) -> ExtractionResult:
        """
        Recover the token id minted by the receipt's transaction.

        Never raises for a missing id: the mint already happened on-chain,
        so an unrecoverable id yields ``token_id=None`` flagged low confidence.
        """
        for strategy, run in self.strategies:
            try:
                token_id = await run(receipt)
            except (DecodeMismatch, LedgerError) as e:
                self.logger.warning(f"Token id strategy {strategy.value} failed: {e}")
                continue
            if token_id is None:
                self.logger.debug(f"Token id strategy {strategy.value} found nothing")
                continue

            low_confidence = strategy in LOW_CONFIDENCE_STRATEGIES
            if low_confidence:
                self.logger.warning(
                    f"Token id {token_id} for {receipt.tx_hash} taken from {strategy.value}; "
                    f"may belong to a concurrent mint"
                )
            else:
                self.logger.debug(f"Token id {token_id} recovered via {strategy.value}")
            return ExtractionResult(token_id=token_id, strategy=strategy, low_confidence=low_confidence)

        self.logger.error(
            f"Could not recover token id for confirmed transaction {receipt.tx_hash} "
            f"(block {receipt.block_number}); the mint succeeded but the id is unknown"
        )
        return ExtractionResult(token_id=None, strategy=None, low_confidence=True)

    async def _from_transfer_event(self, receipt: TxReceipt) -> Optional[int]:
        transfer_topic = self.contract.event_signature_for("Transfer")
        mismatch = None
        for log in receipt.logs:
            if not log.topics or log.topics[0].lower() != transfer_topic:
                continue
            if not self.contract.is_own_log(log):
                continue
            try:
                decoded = self.contract.decode_transfer_log(log)
            except DecodeMismatch as e:
                mismatch = e
                continue
            if decoded["from"] == ZERO_ADDRESS:
                return decoded["tokenId"]
        if mismatch is not None:
            raise mismatch
        return None

    async def _from_minted_event(self, receipt: TxReceipt) -> Optional[int]:
        minted_topic = self.contract.event_signature_for("TouristIDMinted")
        mismatch = None
        for log in receipt.logs:
            if not log.topics or log.topics[0].lower() != minted_topic:
                continue
            if not self.contract.is_own_log(log):
                continue
            try:
                return self.contract.decode_minted_log(log)["tokenId"]
            except DecodeMismatch as e:
                mismatch = e
        if mismatch is not None:
            raise mismatch
        return None

    async def _from_block_event_scan(self, receipt: TxReceipt) -> Optional[int]:
        logs = await self.ledger.get_logs(
            self.contract.minted_logs_filter(receipt.block_number, receipt.block_number)
        )
        for log in logs:
            if log.transaction_hash is None or log.transaction_hash.lower() != receipt.tx_hash.lower():
                continue
            if not self.contract.is_own_log(log):
                continue
            return self.contract.decode_minted_log(log)["tokenId"]
        return None

    async def _from_current_token_id(self, receipt: TxReceipt) -> Optional[int]:
        data = await self.ledger.call({
            "to": self.contract.address,
            "data": self.contract.encode_current_token_id_call(),
        })
        return self.contract.decode_current_token_id(data)
