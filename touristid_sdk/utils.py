"""
Utility functions for the TouristID SDK.
"""
import asyncio
import logging
import re
import time
from typing import Any, Awaitable, Callable, Optional, TypeVar, Union

from eth_utils import keccak

from .exceptions import NetworkError

logger = logging.getLogger(__name__)

T = TypeVar('T')

_BYTES32_HEX = re.compile(r"^0x[0-9a-fA-F]{64}$")


def normalize_commitment(value: Union[str, bytes]) -> str:
    """
    Normalize an identity commitment to a 0x-prefixed 32-byte hex digest.

    A value that is already a 32-byte hex digest is returned lower-cased;
    anything else is hashed with keccak-256.

    Args:
        value: Hex digest, raw string or raw bytes

    Returns:
        0x-prefixed lowercase hex string of 64 characters

    Raises:
        ValueError: If value is empty
    """
    if isinstance(value, (bytes, bytearray)):
        if not value:
            raise ValueError("identity commitment must not be empty")
        if len(value) == 32:
            return "0x" + bytes(value).hex()
        return "0x" + keccak(bytes(value)).hex()

    if not value:
        raise ValueError("identity commitment must not be empty")
    if _BYTES32_HEX.match(value):
        return value.lower()
    return "0x" + keccak(text=value).hex()


def to_hex(value: Any) -> str:
    """
    Render bytes / HexBytes / str as a 0x-prefixed hex string.
    """
    if isinstance(value, (bytes, bytearray)):
        return "0x" + bytes(value).hex()
    if isinstance(value, str):
        return value if value.startswith("0x") else "0x" + value
    raise TypeError(f"Cannot convert {type(value).__name__} to hex")


def hex_to_bytes(value: Union[str, bytes]) -> bytes:
    """Inverse of to_hex, tolerant of missing 0x prefix."""
    if isinstance(value, (bytes, bytearray)):
        return bytes(value)
    if value.startswith("0x"):
        value = value[2:]
    return bytes.fromhex(value)


def now() -> int:
    """Current unix time in seconds."""
    return int(time.time())


def wei_to_ether(wei: int) -> str:
    """Format a wei amount as a decimal ether string without float rounding."""
    whole, frac = divmod(int(wei), 10 ** 18)
    if not frac:
        return str(whole)
    return f"{whole}.{frac:018d}".rstrip("0")


async def retry_async(
    operation: Callable[[], Awaitable[T]],
    retry_count: int = 3,
    backoff_factor: float = 0.5,
    description: str = "ledger call",
    log: Optional[logging.Logger] = None
) -> T:
    """
    Run an async operation, retrying on NetworkError with exponential backoff.

    Only use for calls that do not change ledger state.

    Args:
        operation: Zero-argument coroutine factory
        retry_count: Total number of attempts
        backoff_factor: Base delay in seconds; attempt n waits factor * 2**(n-1)
        description: Label used in log messages
        log: Logger to use (defaults to module logger)

    Returns:
        Result of the operation

    Raises:
        NetworkError: If all attempts fail with a transient error
        LedgerError: Non-transient errors are raised immediately
    """
    log = log or logger
    attempt = 0

    while True:
        try:
            return await operation()
        except NetworkError as e:
            attempt += 1
            if attempt >= retry_count:
                log.error(f"{description} failed after {attempt} attempts: {e}")
                raise
            wait_time = backoff_factor * (2 ** (attempt - 1))
            log.warning(f"Retrying {description} after {wait_time}s due to network error: {e}")
            await asyncio.sleep(wait_time)
