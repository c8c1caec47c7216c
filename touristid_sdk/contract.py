"""
ContractInterface - typed encode/decode layer for the TouristID contract.

Everything here is pure: no node access and no shared mutable state, so a
single instance can be used by any number of concurrent mints.
"""
import functools
import logging
from typing import Any, Dict, List, Optional, Sequence, Tuple

from eth_abi import decode, encode
from eth_abi.exceptions import DecodingError
from eth_utils import function_signature_to_4byte_selector, keccak, to_checksum_address

from .exceptions import DecodeMismatch
from .models import LogEntry
from .utils import hex_to_bytes, to_hex

logger = logging.getLogger(__name__)

ZERO_ADDRESS = "0x0000000000000000000000000000000000000000"


class ContractInterface:
    """
    ABI codec for the TouristID (ERC-721) contract.

    Only the canonical mint signature ``mintTouristID(bytes32,uint256,string,string)``
    is supported.
    """

    TOURIST_ID_ABI = [
        {
            "inputs": [
                {"internalType": "bytes32", "name": "touristIdHash", "type": "bytes32"},
                {"internalType": "uint256", "name": "validUntil", "type": "uint256"},
                {"internalType": "string", "name": "metadataCID", "type": "string"},
                {"internalType": "string", "name": "issuerInfo", "type": "string"}
            ],
            "name": "mintTouristID",
            "outputs": [{"internalType": "uint256", "name": "", "type": "uint256"}],
            "stateMutability": "nonpayable",
            "type": "function"
        },
        {
            "inputs": [{"internalType": "uint256", "name": "tokenId", "type": "uint256"}],
            "name": "getTouristRecord",
            "outputs": [
                {
                    "components": [
                        {"internalType": "bytes32", "name": "touristIdHash", "type": "bytes32"},
                        {"internalType": "uint256", "name": "validUntil", "type": "uint256"},
                        {"internalType": "string", "name": "metadataCID", "type": "string"},
                        {"internalType": "string", "name": "issuerInfo", "type": "string"}
                    ],
                    "internalType": "struct TouristID.TouristRecord",
                    "name": "",
                    "type": "tuple"
                }
            ],
            "stateMutability": "view",
            "type": "function"
        },
        {
            "inputs": [{"internalType": "uint256", "name": "tokenId", "type": "uint256"}],
            "name": "isValid",
            "outputs": [{"internalType": "bool", "name": "", "type": "bool"}],
            "stateMutability": "view",
            "type": "function"
        },
        {
            "inputs": [],
            "name": "getCurrentTokenId",
            "outputs": [{"internalType": "uint256", "name": "", "type": "uint256"}],
            "stateMutability": "view",
            "type": "function"
        },
        {
            "inputs": [],
            "name": "owner",
            "outputs": [{"internalType": "address", "name": "", "type": "address"}],
            "stateMutability": "view",
            "type": "function"
        },
        {
            "anonymous": False,
            "inputs": [
                {"indexed": True, "internalType": "address", "name": "from", "type": "address"},
                {"indexed": True, "internalType": "address", "name": "to", "type": "address"},
                {"indexed": True, "internalType": "uint256", "name": "tokenId", "type": "uint256"}
            ],
            "name": "Transfer",
            "type": "event"
        },
        {
            "anonymous": False,
            "inputs": [
                {"indexed": True, "internalType": "uint256", "name": "tokenId", "type": "uint256"},
                {"indexed": True, "internalType": "bytes32", "name": "touristIdHash", "type": "bytes32"},
                {"indexed": False, "internalType": "uint256", "name": "validUntil", "type": "uint256"},
                {"indexed": False, "internalType": "string", "name": "metadataCID", "type": "string"}
            ],
            "name": "TouristIDMinted",
            "type": "event"
        }
    ]

    def __init__(self, address: str):
        """
        Args:
            address: Deployed contract address
        """
        self.address = to_checksum_address(address)

    # ------------------------------------------------------------------
    # ABI lookup
    # ------------------------------------------------------------------

    @classmethod
    def _abi_entry(cls, name: str, kind: str) -> Dict[str, Any]:
        for entry in cls.TOURIST_ID_ABI:
            if entry.get("type") == kind and entry.get("name") == name:
                return entry
        raise KeyError(f"No {kind} named {name} in TouristID ABI")

    @staticmethod
    def _type_string(param: Dict[str, Any]) -> str:
        if param["type"] == "tuple":
            inner = ",".join(ContractInterface._type_string(c) for c in param["components"])
            return f"({inner})"
        return param["type"]

    @classmethod
    def canonical_signature(cls, name: str, kind: str = "function") -> str:
        """Method name followed by the parenthesized, comma-joined argument types."""
        entry = cls._abi_entry(name, kind)
        types = ",".join(cls._type_string(p) for p in entry["inputs"])
        return f"{name}({types})"

    @classmethod
    def _input_types(cls, name: str) -> List[str]:
        return [cls._type_string(p) for p in cls._abi_entry(name, "function")["inputs"]]

    @classmethod
    def _output_types(cls, name: str) -> List[str]:
        return [cls._type_string(p) for p in cls._abi_entry(name, "function")["outputs"]]

    @classmethod
    @functools.lru_cache(maxsize=None)
    def event_signature_for(cls, name: str) -> str:
        """
        Topic hash of an event, computed once from its canonical signature.

        Args:
            name: Event name, e.g. "TouristIDMinted"

        Returns:
            0x-prefixed keccak-256 of the canonical signature
        """
        return "0x" + keccak(text=cls.canonical_signature(name, "event")).hex()

    @classmethod
    @functools.lru_cache(maxsize=None)
    def selector_for(cls, name: str) -> bytes:
        return function_signature_to_4byte_selector(cls.canonical_signature(name))

    def _encode_call(self, name: str, args: Sequence[Any]) -> str:
        return to_hex(self.selector_for(name) + encode(self._input_types(name), list(args)))

    def _decode_return(self, name: str, data: Any) -> Tuple[Any, ...]:
        raw = hex_to_bytes(data) if isinstance(data, str) else bytes(data)
        if not raw:
            raise DecodeMismatch(f"{name} returned no data")
        try:
            return decode(self._output_types(name), raw)
        except (DecodingError, ValueError, OverflowError) as e:
            raise DecodeMismatch(f"Cannot decode {name} return value: {e}") from e

    # ------------------------------------------------------------------
    # Calls
    # ------------------------------------------------------------------

    def encode_mint_call(
        self,
        commitment: str,
        valid_until: int,
        metadata_reference: str,
        issuer_label: str
    ) -> str:
        """
        Encode mintTouristID call data.

        Args:
            commitment: 0x-prefixed 32-byte digest
            valid_until: Unix timestamp in seconds
            metadata_reference: Content-addressed metadata id (IPFS CID)
            issuer_label: Free text describing the issuer

        Returns:
            0x-prefixed call data
        """
        commitment_bytes = hex_to_bytes(commitment)
        if len(commitment_bytes) != 32:
            raise ValueError(f"Commitment must be 32 bytes, got {len(commitment_bytes)}")
        return self._encode_call(
            "mintTouristID",
            [commitment_bytes, int(valid_until), metadata_reference, issuer_label]
        )

    def encode_read_record_call(self, token_id: int) -> str:
        return self._encode_call("getTouristRecord", [int(token_id)])

    def decode_read_record(self, data: Any) -> Dict[str, Any]:
        """
        Decode getTouristRecord return data.

        Returns:
            Dict with identity_commitment, valid_until, metadata_reference, issuer_label
        """
        (record,) = self._decode_return("getTouristRecord", data)
        commitment, valid_until, metadata_reference, issuer_label = record
        return {
            "identity_commitment": to_hex(commitment),
            "valid_until": int(valid_until),
            "metadata_reference": metadata_reference,
            "issuer_label": issuer_label,
        }

    def encode_is_valid_call(self, token_id: int) -> str:
        return self._encode_call("isValid", [int(token_id)])

    def decode_is_valid(self, data: Any) -> bool:
        return bool(self._decode_return("isValid", data)[0])

    def encode_current_token_id_call(self) -> str:
        return self._encode_call("getCurrentTokenId", [])

    def decode_current_token_id(self, data: Any) -> int:
        return int(self._decode_return("getCurrentTokenId", data)[0])

    def encode_owner_call(self) -> str:
        return self._encode_call("owner", [])

    def decode_owner(self, data: Any) -> str:
        return to_checksum_address(self._decode_return("owner", data)[0])

    # ------------------------------------------------------------------
    # Events
    # ------------------------------------------------------------------

    def is_own_log(self, log: LogEntry) -> bool:
        return log.address.lower() == self.address.lower()

    @staticmethod
    def _topic_matches(log: LogEntry, topic: str) -> bool:
        return bool(log.topics) and log.topics[0].lower() == topic.lower()

    def decode_transfer_log(self, log: LogEntry) -> Dict[str, Any]:
        """
        Decode an ERC-721 Transfer log.

        Raises:
            DecodeMismatch: If the log is not a Transfer with three indexed topics
        """
        if not self._topic_matches(log, self.event_signature_for("Transfer")):
            raise DecodeMismatch("Log is not a Transfer event")
        # ERC-20 Transfer has only two indexed topics and the amount in data
        if len(log.topics) != 4:
            raise DecodeMismatch(f"Transfer log has {len(log.topics)} topics, expected 4")
        try:
            from_address = to_checksum_address("0x" + hex_to_bytes(log.topics[1])[-20:].hex())
            to_address = to_checksum_address("0x" + hex_to_bytes(log.topics[2])[-20:].hex())
            token_id = int.from_bytes(hex_to_bytes(log.topics[3]), "big")
        except ValueError as e:
            raise DecodeMismatch(f"Malformed Transfer topics: {e}") from e
        return {"from": from_address, "to": to_address, "tokenId": token_id}

    def decode_minted_log(self, log: LogEntry) -> Dict[str, Any]:
        """
        Decode a TouristIDMinted log.

        Raises:
            DecodeMismatch: If topic count or data layout differs from the event ABI
        """
        if not self._topic_matches(log, self.event_signature_for("TouristIDMinted")):
            raise DecodeMismatch("Log is not a TouristIDMinted event")
        if len(log.topics) != 3:
            raise DecodeMismatch(f"TouristIDMinted log has {len(log.topics)} topics, expected 3")
        try:
            token_id = int.from_bytes(hex_to_bytes(log.topics[1]), "big")
            valid_until, metadata_reference = decode(["uint256", "string"], hex_to_bytes(log.data))
        except (DecodingError, ValueError, OverflowError) as e:
            raise DecodeMismatch(f"Malformed TouristIDMinted data: {e}") from e
        return {
            "tokenId": token_id,
            "touristIdHash": log.topics[2].lower(),
            "validUntil": int(valid_until),
            "metadataCID": metadata_reference,
        }

    def minted_logs_filter(self, from_block: Any, to_block: Any) -> Dict[str, Any]:
        """eth_getLogs filter for TouristIDMinted events of this contract."""
        return {
            "address": self.address,
            "fromBlock": from_block,
            "toBlock": to_block,
            "topics": [self.event_signature_for("TouristIDMinted")],
        }
