"""
Gas, fee and nonce estimation with fallback policies.
"""
import logging
from typing import Any, Dict, Optional

from ._rate_limited_log import rate_limited_log
from .exceptions import FeeUnavailable, LedgerError
from .ledger import LedgerClient
from .models import FeeQuote

logger = logging.getLogger(__name__)

DEFAULT_GAS_LIMIT = 500_000
GAS_SAFETY_MULTIPLIER = 1.5
# Fee caps are inflated by 20% over the current base / legacy price
FEE_MULTIPLIER_NUM = 12
FEE_MULTIPLIER_DEN = 10


class FeeEstimator:
    """
    Computes the gas limit, fee fields and nonce for a submission attempt.

    Gas estimation failures never abort a mint: the fixed default is used.
    Fee-market failures fall back to legacy pricing.
    """

    def __init__(
        self,
        ledger: LedgerClient,
        default_gas_limit: int = DEFAULT_GAS_LIMIT,
        gas_multiplier: float = GAS_SAFETY_MULTIPLIER,
        logger: Optional[logging.Logger] = None
    ):
        self.ledger = ledger
        self.default_gas_limit = default_gas_limit
        self.gas_multiplier = gas_multiplier
        self.logger = logger or logging.getLogger(__name__)

    async def estimate_gas_limit(self, call_params: Dict[str, Any]) -> int:
        """
        Gas limit for the exact call, with a safety margin.

        Args:
            call_params: from/to/data/value of the call

        Returns:
            Live estimate times the safety multiplier, or the fixed default
        """
        try:
            estimate = await self.ledger.estimate_gas(call_params)
        except LedgerError as e:
            self.logger.warning(
                f"Gas estimation failed, using default: {self.default_gas_limit}. Error: {e}"
            )
            return self.default_gas_limit

        gas = int(estimate * self.gas_multiplier)
        self.logger.debug(f"Estimated gas: {estimate}, with margin: {gas}")
        return gas

    async def quote_fees(self) -> FeeQuote:
        """
        Fee fields for a new transaction.

        Prefers EIP-1559 (cap = baseFee * 1.2 + tip); falls back to a
        legacy gas price inflated by the same factor.

        Raises:
            LedgerError: If neither fee-market data nor a gas price can be read
        """
        try:
            suggestion = await self.ledger.get_fee_suggestion()
        except FeeUnavailable as e:
            rate_limited_log(
                f"Fee market unavailable, falling back to legacy gas price: {e}",
                level="warning",
                logger_instance=self.logger,
                key="fee-market-unavailable"
            )
        else:
            max_fee = (
                suggestion.base_fee * FEE_MULTIPLIER_NUM // FEE_MULTIPLIER_DEN
                + suggestion.priority_fee
            )
            return FeeQuote(
                max_fee_per_gas=max_fee,
                max_priority_fee_per_gas=suggestion.priority_fee
            )

        gas_price = await self.ledger.get_gas_price()
        return FeeQuote(gas_price=gas_price * FEE_MULTIPLIER_NUM // FEE_MULTIPLIER_DEN)

    async def next_nonce(self, address: str) -> int:
        """
        Pending transaction count for the address.

        Read fresh on every call; callers must hold the account's nonce lock
        until the transaction using it has been broadcast.
        """
        nonce = await self.ledger.get_transaction_count(address, "pending")
        self.logger.debug(f"Pending nonce for {address}: {nonce}")
        return nonce
