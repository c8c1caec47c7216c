"""
ConfirmationPoller - waits for a finalized receipt under a bounded budget.
"""
import asyncio
import logging
from dataclasses import dataclass
from enum import Enum
from typing import Optional

from ._rate_limited_log import rate_limited_log
from .exceptions import LedgerError
from .ledger import LedgerClient
from .models import TxReceipt

logger = logging.getLogger(__name__)

DEFAULT_POLL_INTERVAL = 3.5
DEFAULT_MAX_ATTEMPTS = 120
DEFAULT_MAX_WAIT = 450.0


class PollState(str, Enum):
    PENDING = "pending"
    CONFIRMED = "confirmed"
    REVERTED = "reverted"
    TIMED_OUT = "timed_out"


@dataclass
class PollOutcome:
    """
    Terminal state of one confirmation wait.

    ``deadline_hit`` tells whether an external deadline, rather than the
    poller's own budget, ended a TIMED_OUT wait.
    """
    state: PollState
    tx_hash: str
    receipt: Optional[TxReceipt] = None
    attempts: int = 0
    elapsed: float = 0.0
    deadline_hit: bool = False


class ConfirmationPoller:
    """
    Polls ``get_receipt`` until the transaction is mined or the budget runs out.

    Two independent bounds apply: ``max_attempts`` polls and ``max_wait``
    seconds of wall clock. A caller-supplied absolute ``deadline`` (event
    loop time) is a third bound. TIMED_OUT means the outcome is unknown.
    """

    def __init__(
        self,
        ledger: LedgerClient,
        interval: float = DEFAULT_POLL_INTERVAL,
        max_attempts: int = DEFAULT_MAX_ATTEMPTS,
        max_wait: float = DEFAULT_MAX_WAIT,
        logger: Optional[logging.Logger] = None
    ):
        if interval < 0:
            raise ValueError("interval must not be negative")
        if max_attempts < 1:
            raise ValueError("max_attempts must be at least 1")
        self.ledger = ledger
        self.interval = interval
        self.max_attempts = max_attempts
        self.max_wait = max_wait
        self.logger = logger or logging.getLogger(__name__)

    async def wait(self, tx_hash: str, deadline: Optional[float] = None) -> PollOutcome:
        """
        Wait for the receipt of tx_hash.

        Args:
            tx_hash: Transaction hash to poll for
            deadline: Absolute loop.time() after which to stop

        Returns:
            PollOutcome in state CONFIRMED, REVERTED or TIMED_OUT
        """
        loop = asyncio.get_running_loop()
        started = loop.time()
        ceiling = started + self.max_wait
        deadline_hit = False
        if deadline is not None and deadline < ceiling:
            ceiling = deadline
            deadline_hit = True

        attempts = 0
        while attempts < self.max_attempts:
            if attempts and loop.time() >= ceiling:
                break
            attempts += 1
            try:
                receipt = await self.ledger.get_receipt(tx_hash)
            except LedgerError as e:
                rate_limited_log(
                    f"Receipt lookup for {tx_hash} failed, still waiting: {e}",
                    level="warning",
                    logger_instance=self.logger,
                    key=f"poll:{tx_hash}"
                )
                receipt = None

            if receipt is not None:
                elapsed = loop.time() - started
                if receipt.succeeded:
                    self.logger.info(
                        f"Transaction {tx_hash} confirmed in block {receipt.block_number} "
                        f"after {attempts} polls"
                    )
                    return PollOutcome(PollState.CONFIRMED, tx_hash, receipt, attempts, elapsed)
                self.logger.error(f"Transaction {tx_hash} reverted in block {receipt.block_number}")
                return PollOutcome(PollState.REVERTED, tx_hash, receipt, attempts, elapsed)

            if attempts >= self.max_attempts:
                break
            remaining = ceiling - loop.time()
            if remaining <= 0:
                break
            await asyncio.sleep(min(self.interval, remaining))

        elapsed = loop.time() - started
        # Only blame the external deadline if it is what actually ran out
        deadline_hit = deadline_hit and attempts < self.max_attempts
        self.logger.warning(
            f"No receipt for {tx_hash} after {attempts} polls ({elapsed:.1f}s); outcome unknown"
        )
        return PollOutcome(
            PollState.TIMED_OUT, tx_hash, None, attempts, elapsed, deadline_hit=deadline_hit
        )
