"""
LedgerClient - async connection to a remote EVM node.

Thin layer over web3's AsyncWeb3 that maps every failure onto the SDK's
error taxonomy: NetworkError for transient transport problems, NodeRejected
for answers the node refuses, ContractReverted for reverting calls.
"""
import asyncio
import logging
from typing import Any, Awaitable, Callable, Dict, List, Optional, TypeVar

import aiohttp
from web3 import AsyncWeb3
from web3.exceptions import ContractLogicError, TransactionNotFound, Web3Exception

from .exceptions import ContractReverted, FeeUnavailable, LedgerError, NetworkError, NodeRejected
from .models import FeeSuggestion, LogEntry, TxReceipt
from .utils import retry_async, to_hex

logger = logging.getLogger(__name__)

T = TypeVar('T')

_TRANSIENT_ERRORS = (aiohttp.ClientError, asyncio.TimeoutError, ConnectionError, OSError)


def _revert_reason(error: ContractLogicError) -> str:
    message = getattr(error, "message", None) or str(error)
    if message.startswith("execution reverted: "):
        return message[len("execution reverted: "):]
    return message


class LedgerClient:
    """
    Async client for the ledger node RPC surface used by the SDK.

    Read operations are retried on NetworkError; send_signed never is.
    """

    def __init__(
        self,
        rpc_url: str,
        w3: Optional[AsyncWeb3] = None,
        retry_count: int = 3,
        backoff_factor: float = 0.5,
        request_timeout: int = 30,
        logger: Optional[logging.Logger] = None
    ):
        """
        Args:
            rpc_url: Node HTTP(S) endpoint
            w3: Pre-built AsyncWeb3 instance (tests inject mocks here)
            retry_count: Attempts for read operations
            backoff_factor: Base delay between read retries in seconds
            request_timeout: Per-request timeout in seconds
            logger: Optional logger instance
        """
        self.rpc_url = rpc_url
        self.retry_count = retry_count
        self.backoff_factor = backoff_factor
        self.logger = logger or logging.getLogger(__name__)
        self.w3 = w3 or AsyncWeb3(
            AsyncWeb3.AsyncHTTPProvider(rpc_url, request_kwargs={"timeout": request_timeout})
        )

    async def _rpc(self, description: str, operation: Callable[[], Awaitable[T]]) -> T:
        """Run one RPC and translate web3 / transport failures."""
        try:
            return await operation()
        except LedgerError:
            raise
        except ContractLogicError as e:
            reason = _revert_reason(e)
            raise ContractReverted(f"{description} reverted: {reason}", reason=reason) from e
        except _TRANSIENT_ERRORS as e:
            raise NetworkError(f"{description} failed: {e}") from e
        except (Web3Exception, ValueError) as e:
            raise NodeRejected(f"{description} rejected by node: {e}") from e

    async def _read(self, description: str, operation: Callable[[], Awaitable[T]]) -> T:
        return await retry_async(
            lambda: self._rpc(description, operation),
            retry_count=self.retry_count,
            backoff_factor=self.backoff_factor,
            description=description,
            log=self.logger
        )

    async def get_block_height(self) -> int:
        return int(await self._read("eth_blockNumber", lambda: self.w3.eth.block_number))

    async def get_chain_id(self) -> int:
        return int(await self._read("eth_chainId", lambda: self.w3.eth.chain_id))

    async def get_balance(self, address: str) -> int:
        return int(await self._read("eth_getBalance", lambda: self.w3.eth.get_balance(address)))

    async def get_transaction_count(self, address: str, block: str = "pending") -> int:
        """
        Transaction count for an address.

        Args:
            address: Account address
            block: "pending" includes not yet mined transactions; "latest" does not
        """
        if block not in ("pending", "latest"):
            raise ValueError(f"block must be 'pending' or 'latest', got {block!r}")
        return int(await self._read(
            "eth_getTransactionCount",
            lambda: self.w3.eth.get_transaction_count(address, block)
        ))

    async def get_gas_price(self) -> int:
        return int(await self._read("eth_gasPrice", lambda: self.w3.eth.gas_price))

    async def get_fee_suggestion(self) -> FeeSuggestion:
        """
        Current base fee and priority fee.

        Raises:
            FeeUnavailable: If the node does not support the fee market
            NetworkError: If the node is unreachable
        """
        block = await self._read("eth_getBlockByNumber", lambda: self.w3.eth.get_block("latest"))
        base_fee = dict(block).get("baseFeePerGas")
        if base_fee is None:
            raise FeeUnavailable("Latest block has no baseFeePerGas (pre-London chain)")
        try:
            priority_fee = await self._read(
                "eth_maxPriorityFeePerGas", lambda: self.w3.eth.max_priority_fee
            )
        except NodeRejected as e:
            raise FeeUnavailable(f"Node does not provide a priority fee: {e}") from e
        return FeeSuggestion(base_fee=int(base_fee), priority_fee=int(priority_fee))

    async def estimate_gas(self, params: Dict[str, Any]) -> int:
        return int(await self._read("eth_estimateGas", lambda: self.w3.eth.estimate_gas(params)))

    async def call(self, params: Dict[str, Any], block: str = "latest") -> str:
        """
        Execute a read-only call.

        Returns:
            0x-prefixed return data

        Raises:
            ContractReverted: If the call reverts
        """
        result = await self._read("eth_call", lambda: self.w3.eth.call(params, block))
        return to_hex(result)

    async def get_receipt(self, tx_hash: str) -> Optional[TxReceipt]:
        """
        Receipt for a transaction, or None when it is not mined yet.

        Not retried: the confirmation poller owns the retry policy.
        """
        async def _fetch():
            try:
                return await self.w3.eth.get_transaction_receipt(tx_hash)
            except TransactionNotFound:
                return None

        receipt = await self._rpc("eth_getTransactionReceipt", _fetch)
        if receipt is None:
            return None
        return TxReceipt.from_web3(receipt)

    async def send_signed(self, raw_transaction: bytes) -> str:
        """
        Broadcast a signed transaction. Exactly one attempt.

        Returns:
            0x-prefixed transaction hash
        """
        tx_hash = await self._rpc(
            "eth_sendRawTransaction",
            lambda: self.w3.eth.send_raw_transaction(raw_transaction)
        )
        return to_hex(tx_hash)

    async def get_logs(self, filter_params: Dict[str, Any]) -> List[LogEntry]:
        logs = await self._read("eth_getLogs", lambda: self.w3.eth.get_logs(filter_params))
        return [LogEntry.from_web3(log) for log in logs]
