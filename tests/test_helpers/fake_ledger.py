"""
In-memory stand-in for LedgerClient that runs a tiny TouristID contract.

Signed transactions are RLP-decoded so the nonce and call data seen by the
fake are exactly what the SDK signed.
"""
import asyncio
import time
from typing import Any, Dict, List, Optional

import rlp
from eth_abi import decode, encode
from eth_utils import function_signature_to_4byte_selector, keccak, to_checksum_address

from touristid_sdk.contract import ContractInterface
from touristid_sdk.exceptions import ContractReverted, FeeUnavailable, NetworkError, NodeRejected
from touristid_sdk.models import FeeSuggestion, LogEntry, TxReceipt

TEST_CHAIN_ID = 11155111
GWEI = 10 ** 9

_SELECTORS = {
    function_signature_to_4byte_selector(ContractInterface.canonical_signature(name)): name
    for name in ("mintTouristID", "getTouristRecord", "isValid", "getCurrentTokenId", "owner")
}


def _topic_int(value: int) -> str:
    return "0x" + value.to_bytes(32, "big").hex()


def _topic_address(address: str) -> str:
    return "0x" + "00" * 12 + address[2:].lower()


def decode_raw_transaction(raw: bytes) -> Dict[str, Any]:
    """Extract nonce, gas, to and data from a signed legacy or EIP-1559 transaction."""
    if raw[0] == 2:
        fields = rlp.decode(raw[1:])
        nonce, gas, to, data = fields[1], fields[4], fields[5], fields[7]
        max_fee = int.from_bytes(fields[3], "big")
        priority = int.from_bytes(fields[2], "big")
        fee = {"maxFeePerGas": max_fee, "maxPriorityFeePerGas": priority}
    else:
        fields = rlp.decode(raw)
        nonce, gas, to, data = fields[0], fields[2], fields[3], fields[5]
        fee = {"gasPrice": int.from_bytes(fields[1], "big")}
    return {
        "nonce": int.from_bytes(nonce, "big"),
        "gas": int.from_bytes(gas, "big"),
        "to": to_checksum_address("0x" + to.hex()),
        "data": bytes(data),
        **fee,
    }


class FakeLedger:
    """
    Async ledger double with a deterministic TouristID contract behind it.

    Knobs:
        fee_market: False makes get_fee_suggestion raise FeeUnavailable
        fail_estimate: True makes estimate_gas raise NodeRejected
        revert_reason: When set, every mint simulation reverts with it
        confirm_after: Receipt becomes visible on this poll (1 = first poll)
        never_confirm: Receipts never become visible
        revert_on_chain: Mined receipts have status 0
        emit_transfer / emit_minted: Which events a mint emits
        foreign_transfer: Prepend a same-topic Transfer from another contract
    """

    def __init__(self, contract_address: str, owner: str, balance: int = 10 ** 18):
        self.contract_address = to_checksum_address(contract_address)
        self.owner = owner
        self.balances: Dict[str, int] = {owner.lower(): balance}
        self.chain_id = TEST_CHAIN_ID
        self.block_number = 100

        self.fee_market = True
        self.fail_estimate = False
        self.revert_reason: Optional[str] = None
        self.confirm_after = 1
        self.never_confirm = False
        self.revert_on_chain = False
        self.emit_transfer = True
        self.emit_minted = True
        self.foreign_transfer = False

        self.pending_nonce = 0
        self.current_token_id = 0
        self.records: Dict[int, Dict[str, Any]] = {}
        self.receipts: Dict[str, TxReceipt] = {}
        self.poll_counts: Dict[str, int] = {}

        self.calls: List[str] = []
        self.sent: List[Dict[str, Any]] = []
        self.nonce_reads: List[int] = []

    # ------------------------------------------------------------------
    # LedgerClient surface
    # ------------------------------------------------------------------

    async def _tick(self, name: str) -> None:
        self.calls.append(name)
        # Yield so concurrent pipelines interleave between RPCs
        await asyncio.sleep(0)

    async def get_block_height(self) -> int:
        await self._tick("get_block_height")
        return self.block_number

    async def get_chain_id(self) -> int:
        await self._tick("get_chain_id")
        return self.chain_id

    async def get_balance(self, address: str) -> int:
        await self._tick("get_balance")
        return self.balances.get(address.lower(), 0)

    async def get_transaction_count(self, address: str, block: str = "pending") -> int:
        await self._tick("get_transaction_count")
        self.nonce_reads.append(self.pending_nonce)
        return self.pending_nonce

    async def get_gas_price(self) -> int:
        await self._tick("get_gas_price")
        return 5 * GWEI

    async def get_fee_suggestion(self) -> FeeSuggestion:
        await self._tick("get_fee_suggestion")
        if not self.fee_market:
            raise FeeUnavailable("Latest block has no baseFeePerGas")
        return FeeSuggestion(base_fee=10 * GWEI, priority_fee=1 * GWEI)

    async def estimate_gas(self, params: Dict[str, Any]) -> int:
        await self._tick("estimate_gas")
        if self.fail_estimate:
            raise NodeRejected("eth_estimateGas rejected by node: method not available")
        return 200_000

    async def call(self, params: Dict[str, Any], block: str = "latest") -> str:
        await self._tick("call")
        data = bytes.fromhex(params["data"][2:])
        return "0x" + self._execute_view(data).hex()

    async def get_receipt(self, tx_hash: str) -> Optional[TxReceipt]:
        await self._tick("get_receipt")
        self.poll_counts[tx_hash] = self.poll_counts.get(tx_hash, 0) + 1
        if self.never_confirm or tx_hash not in self.receipts:
            return None
        if self.poll_counts[tx_hash] < self.confirm_after:
            return None
        return self.receipts[tx_hash]

    async def send_signed(self, raw_transaction: bytes) -> str:
        await self._tick("send_signed")
        tx = decode_raw_transaction(raw_transaction)
        if tx["nonce"] != self.pending_nonce:
            raise NodeRejected(f"nonce too low: expected {self.pending_nonce}, got {tx['nonce']}")
        self.pending_nonce += 1
        self.sent.append(tx)

        tx_hash = "0x" + keccak(raw_transaction).hex()
        self.block_number += 1
        self.receipts[tx_hash] = self._mine(tx_hash, tx)
        return tx_hash

    async def get_logs(self, filter_params: Dict[str, Any]) -> List[LogEntry]:
        await self._tick("get_logs")
        from_block = filter_params.get("fromBlock", 0)
        to_block = filter_params.get("toBlock", "latest")
        to_block = self.block_number if to_block == "latest" else to_block
        topic = filter_params.get("topics", [None])[0]
        matched = []
        for receipt in self.receipts.values():
            if not from_block <= receipt.block_number <= to_block:
                continue
            for log in receipt.logs:
                if log.address.lower() != filter_params["address"].lower():
                    continue
                if topic and log.topics[0].lower() != topic.lower():
                    continue
                matched.append(log)
        return matched

    # ------------------------------------------------------------------
    # Contract behavior
    # ------------------------------------------------------------------

    def _execute_view(self, data: bytes) -> bytes:
        name = _SELECTORS.get(data[:4])
        args = data[4:]
        if name == "mintTouristID":
            if self.revert_reason:
                raise ContractReverted(f"eth_call reverted: {self.revert_reason}", reason=self.revert_reason)
            _, valid_until, _, _ = decode(["bytes32", "uint256", "string", "string"], args)
            if valid_until <= int(time.time()):
                raise ContractReverted("eth_call reverted: Invalid validity", reason="Invalid validity")
            return encode(["uint256"], [self.current_token_id + 1])
        if name == "getTouristRecord":
            (token_id,) = decode(["uint256"], args)
            record = self.records.get(token_id)
            if record is None:
                raise ContractReverted("eth_call reverted: Token does not exist", reason="Token does not exist")
            return encode(
                ["(bytes32,uint256,string,string)"],
                [(record["hash"], record["validUntil"], record["cid"], record["issuer"])]
            )
        if name == "isValid":
            (token_id,) = decode(["uint256"], args)
            record = self.records.get(token_id)
            return encode(["bool"], [bool(record) and record["validUntil"] > int(time.time())])
        if name == "getCurrentTokenId":
            return encode(["uint256"], [self.current_token_id])
        if name == "owner":
            return encode(["address"], [self.owner])
        raise ContractReverted("eth_call reverted", reason="")

    def _mine(self, tx_hash: str, tx: Dict[str, Any]) -> TxReceipt:
        common = {"transactionHash": tx_hash, "blockNumber": self.block_number}
        if self.revert_on_chain:
            return TxReceipt(status=0, gasUsed=tx["gas"], logs=[], **common)

        commitment, valid_until, cid, issuer = decode(
            ["bytes32", "uint256", "string", "string"], tx["data"][4:]
        )
        self.current_token_id += 1
        token_id = self.current_token_id
        self.records[token_id] = {"hash": commitment, "validUntil": valid_until, "cid": cid, "issuer": issuer}

        logs = []
        transfer_topic = ContractInterface.event_signature_for("Transfer")
        if self.foreign_transfer:
            logs.append(LogEntry(
                address="0x" + "ee" * 20,
                topics=[transfer_topic, _topic_address("0x" + "00" * 20), _topic_address(self.owner), _topic_int(999)],
                **common
            ))
        if self.emit_transfer:
            logs.append(LogEntry(
                address=self.contract_address,
                topics=[transfer_topic, _topic_address("0x" + "00" * 20), _topic_address(self.owner), _topic_int(token_id)],
                **common
            ))
        if self.emit_minted:
            logs.append(LogEntry(
                address=self.contract_address,
                topics=[
                    ContractInterface.event_signature_for("TouristIDMinted"),
                    _topic_int(token_id),
                    "0x" + commitment.hex(),
                ],
                data="0x" + encode(["uint256", "string"], [valid_until, cid]).hex(),
                **common
            ))
        return TxReceipt(status=1, gasUsed=150_000, logs=logs, **common)

    @property
    def send_count(self) -> int:
        return self.calls.count("send_signed")
