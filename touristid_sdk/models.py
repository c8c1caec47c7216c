"""
Data models for the TouristID SDK.
"""
from enum import Enum
from typing import Any, Dict, List, Optional

from pydantic import BaseModel, ConfigDict, Field, field_validator

from .utils import normalize_commitment, to_hex

DEFAULT_ISSUER_LABEL = "Government Tourism Authority"


class MintRequest(BaseModel):
    """Inbound request to issue one Tourist ID."""
    identity_commitment: str
    valid_until: int
    metadata_reference: str = Field(..., min_length=1)
    issuer_label: str = Field(DEFAULT_ISSUER_LABEL, max_length=100)

    @field_validator("identity_commitment", mode="before")
    @classmethod
    def _normalize_commitment(cls, value: Any) -> str:
        return normalize_commitment(value)


class FeeQuote(BaseModel):
    """Either a legacy gas price or an EIP-1559 tip + cap."""
    gas_price: Optional[int] = None
    max_fee_per_gas: Optional[int] = None
    max_priority_fee_per_gas: Optional[int] = None

    @property
    def is_eip1559(self) -> bool:
        return self.max_fee_per_gas is not None

    @property
    def max_price(self) -> int:
        """Highest per-gas price this quote could pay."""
        return self.max_fee_per_gas if self.is_eip1559 else (self.gas_price or 0)

    def to_tx_fields(self) -> Dict[str, int]:
        if self.is_eip1559:
            return {
                "maxFeePerGas": self.max_fee_per_gas,
                "maxPriorityFeePerGas": self.max_priority_fee_per_gas or 0,
            }
        return {"gasPrice": self.gas_price or 0}


class FeeSuggestion(BaseModel):
    """Raw fee-market data read from the node."""
    base_fee: int
    priority_fee: int


class TransactionEnvelope(BaseModel):
    """
    Unsigned transaction for a single submission attempt.

    Never reuse an envelope across nonces.
    """
    model_config = ConfigDict(frozen=True)

    from_address: str
    to: str
    data: str
    gas: int
    nonce: Optional[int] = None
    chain_id: int
    fee: FeeQuote
    value: int = 0

    def call_params(self) -> Dict[str, Any]:
        """Parameters for eth_call / eth_estimateGas (no nonce or fees)."""
        return {
            "from": self.from_address,
            "to": self.to,
            "data": self.data,
            "value": self.value,
        }

    def to_tx_dict(self) -> Dict[str, Any]:
        """
        Transaction dict ready for eth-account signing.

        Raises:
            ValueError: If the nonce has not been assigned yet
        """
        if self.nonce is None:
            raise ValueError("Envelope has no nonce assigned")
        tx = {
            "to": self.to,
            "data": self.data,
            "gas": self.gas,
            "nonce": self.nonce,
            "chainId": self.chain_id,
            "value": self.value,
        }
        tx.update(self.fee.to_tx_fields())
        return tx


class LogEntry(BaseModel):
    """One event log emitted during a transaction."""
    model_config = ConfigDict(frozen=True, populate_by_name=True)

    address: str
    topics: List[str]
    data: str = "0x"
    transaction_hash: Optional[str] = Field(None, alias="transactionHash")
    block_number: Optional[int] = Field(None, alias="blockNumber")
    log_index: Optional[int] = Field(None, alias="logIndex")

    @classmethod
    def from_web3(cls, log: Any) -> "LogEntry":
        """Build from a web3 log (AttributeDict with HexBytes values)."""
        raw = dict(log)
        return cls(
            address=raw.get("address", ""),
            topics=[to_hex(t) for t in raw.get("topics", [])],
            data=to_hex(raw.get("data", b"")),
            transactionHash=to_hex(raw["transactionHash"]) if raw.get("transactionHash") is not None else None,
            blockNumber=raw.get("blockNumber"),
            logIndex=raw.get("logIndex"),
        )


class TxReceipt(BaseModel):
    """Transaction receipt from the ledger. Authoritative for the outcome."""
    model_config = ConfigDict(frozen=True, populate_by_name=True)

    tx_hash: str = Field(..., alias="transactionHash")
    block_number: int = Field(..., alias="blockNumber")
    block_hash: Optional[str] = Field(None, alias="blockHash")
    status: int
    gas_used: int = Field(..., alias="gasUsed")
    logs: List[LogEntry] = Field(default_factory=list)

    @property
    def succeeded(self) -> bool:
        return self.status == 1

    @classmethod
    def from_web3(cls, receipt: Any) -> "TxReceipt":
        """Convert a web3 receipt, turning bytes into hex strings."""
        raw = dict(receipt)
        return cls(
            transactionHash=to_hex(raw["transactionHash"]),
            blockNumber=raw["blockNumber"],
            blockHash=to_hex(raw["blockHash"]) if raw.get("blockHash") is not None else None,
            status=int(raw.get("status", 0)),
            gasUsed=raw.get("gasUsed", 0),
            logs=[LogEntry.from_web3(log) for log in raw.get("logs", [])],
        )


class TouristRecord(BaseModel):
    """On-chain Tourist ID record. Validity is time derived by the contract."""
    token_id: int
    identity_commitment: str
    metadata_reference: str
    valid_until: int
    issuer_label: str
    is_valid: bool


class ExtractionStrategy(str, Enum):
    """Ordered ways of recovering the minted token id from a receipt."""
    TRANSFER_EVENT = "transfer_event"
    MINTED_EVENT = "minted_event"
    BLOCK_EVENT_SCAN = "block_event_scan"
    CURRENT_TOKEN_ID = "current_token_id"


class ExtractionResult(BaseModel):
    token_id: Optional[int] = None
    strategy: Optional[ExtractionStrategy] = None
    low_confidence: bool = True


class MintResult(BaseModel):
    """Outbound result of a successful mint."""
    transaction_hash: str
    token_id: Optional[int]
    block_number: int
    gas_used: int
    extraction_strategy: Optional[ExtractionStrategy] = None
    low_confidence: bool = False

    def to_dict(self) -> Dict[str, Any]:
        return {
            "transactionHash": self.transaction_hash,
            "tokenId": self.token_id,
            "blockNumber": self.block_number,
            "gasUsed": self.gas_used,
            "extractionStrategy": self.extraction_strategy.value if self.extraction_strategy else None,
            "lowConfidence": self.low_confidence,
        }


class ActiveTouristIDPage(BaseModel):
    page: int
    limit: int
    total: int
    data: List[TouristRecord]


class ChainStatus(BaseModel):
    chain_id: int
    block_number: int
    contract_address: Optional[str]
    issuer_address: Optional[str]
    issuer_balance_wei: Optional[int]
    issuer_balance_ether: Optional[str]
