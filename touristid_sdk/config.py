"""
Settings for the TouristID SDK.
"""
import logging
import os
import urllib.parse
from typing import Mapping, Optional

from eth_utils import is_address, to_checksum_address
from pydantic import BaseModel, Field, field_validator

from .poller import DEFAULT_MAX_ATTEMPTS, DEFAULT_MAX_WAIT, DEFAULT_POLL_INTERVAL

logger = logging.getLogger(__name__)

DEFAULT_MINT_DEADLINE = 600.0


def _is_local(url: str) -> bool:
    parsed = urllib.parse.urlparse(url)
    host = parsed.netloc.split(':')[0] if parsed.netloc else ''
    return host in ('localhost', '127.0.0.1')


class TouristIDSettings(BaseModel):
    """
    Connection, issuer and timing settings.

    The private key and contract address may be absent; minting then fails
    at the preflight stage while read operations that do not need them work.
    """
    rpc_url: str
    contract_address: Optional[str] = None
    private_key: Optional[str] = Field(None, repr=False)
    expected_address: Optional[str] = None
    chain_id: Optional[int] = None

    poll_interval: float = Field(DEFAULT_POLL_INTERVAL, ge=0)
    max_poll_attempts: int = Field(DEFAULT_MAX_ATTEMPTS, ge=1)
    confirm_timeout: float = Field(DEFAULT_MAX_WAIT, gt=0)
    mint_deadline: float = Field(DEFAULT_MINT_DEADLINE, gt=0)
    retry_count: int = Field(3, ge=1)
    request_timeout: int = Field(30, gt=0)

    @field_validator("rpc_url")
    @classmethod
    def _require_https(cls, url: str) -> str:
        parsed = urllib.parse.urlparse(url)
        if parsed.scheme != 'https' and not _is_local(url):
            raise ValueError(f"rpc_url must use https:// for security (got: {parsed.scheme}://)")
        return url

    @field_validator("contract_address", "expected_address")
    @classmethod
    def _checksum(cls, value: Optional[str]) -> Optional[str]:
        if value is None:
            return None
        if not is_address(value):
            raise ValueError(f"Invalid address: {value}")
        return to_checksum_address(value)

    @field_validator("private_key")
    @classmethod
    def _normalize_key(cls, value: Optional[str]) -> Optional[str]:
        if not value:
            return None
        return value if value.startswith("0x") else "0x" + value

    @classmethod
    def from_env(cls, environ: Optional[Mapping[str, str]] = None) -> "TouristIDSettings":
        """
        Load settings from environment variables.

        Raises:
            ValueError: If RPC_URL is missing or a value is malformed
        """
        env = os.environ if environ is None else environ

        rpc_url = env.get("RPC_URL")
        if not rpc_url:
            raise ValueError("RPC_URL is not set in environment")

        values = {
            "rpc_url": rpc_url,
            "contract_address": env.get("CONTRACT_ADDRESS") or None,
            "private_key": env.get("GOVERNMENT_PRIVATE_KEY") or None,
            "expected_address": env.get("GOVERNMENT_ADDRESS") or None,
        }
        optional = {
            "chain_id": ("CHAIN_ID", int),
            "poll_interval": ("TOURISTID_POLL_INTERVAL", float),
            "max_poll_attempts": ("TOURISTID_MAX_POLL_ATTEMPTS", int),
            "confirm_timeout": ("TOURISTID_CONFIRM_TIMEOUT", float),
            "mint_deadline": ("TOURISTID_MINT_DEADLINE", float),
            "retry_count": ("TOURISTID_RETRY_COUNT", int),
        }
        for field, (var, convert) in optional.items():
            raw = env.get(var)
            if raw:
                try:
                    values[field] = convert(raw)
                except ValueError:
                    raise ValueError(f"{var} must be a number, got {raw!r}")

        settings = cls(**values)
        if not settings.private_key:
            logger.warning("GOVERNMENT_PRIVATE_KEY not set - blockchain writes will fail")
        if not settings.contract_address:
            logger.warning("CONTRACT_ADDRESS not set - deploy or set it to use an existing contract")
        return settings
