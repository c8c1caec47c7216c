"""
Exceptions for the TouristID SDK.
"""
from enum import Enum
from typing import Optional


class MintStage(str, Enum):
    """
    Stages of the minting pipeline, in the order they are entered.
    """
    VALIDATING = "validating"
    PREFLIGHT_CHECKING = "preflight_checking"
    SIMULATING = "simulating"
    ESTIMATING = "estimating"
    SUBMITTING = "submitting"
    CONFIRMING = "confirming"
    EXTRACTING = "extracting"
    DONE = "done"


class TouristIDError(Exception):
    """Base exception for all TouristID SDK errors."""
    pass


class ConfigurationError(TouristIDError):
    """Raised when the SDK settings are invalid."""
    pass


class LedgerError(TouristIDError):
    """Base exception for failures talking to the ledger node."""
    pass


class NetworkError(LedgerError):
    """Raised on transient transport failures (connection reset, timeout)."""
    pass


class NodeRejected(LedgerError):
    """Raised when the node answers but refuses the request."""
    pass


class FeeUnavailable(LedgerError):
    """Raised when the node cannot provide fee-market (EIP-1559) data."""
    pass


class ContractReverted(LedgerError):
    """Raised when a read-only call or dry run reverts."""

    def __init__(self, message: str, reason: Optional[str] = None):
        self.reason = reason
        super().__init__(message)


class DecodeMismatch(TouristIDError):
    """Raised when a log or return value does not match the expected ABI shape."""
    pass


class MintError(TouristIDError):
    """
    Typed failure of the minting pipeline.

    Attributes:
        stage: Pipeline stage at which the failure occurred
        reason: Human readable cause string
        transaction_hash: Hash of the broadcast transaction, if one was sent
        cause: Underlying exception, if any
    """
    default_status = 500

    def __init__(
        self,
        stage: MintStage,
        reason: str,
        transaction_hash: Optional[str] = None,
        cause: Optional[BaseException] = None
    ):
        self.stage = stage
        self.reason = reason
        self.transaction_hash = transaction_hash
        self.cause = cause
        super().__init__(f"[{stage.value}] {reason}")

    @property
    def status_hint(self) -> int:
        """Suggested HTTP status code for the HTTP layer."""
        text = self.reason.lower()
        if "insufficient balance" in text:
            return 402
        if isinstance(self.cause, NetworkError):
            return 502
        if "nonce" in text:
            return 409
        return self.default_status

    @property
    def broadcast(self) -> bool:
        """Whether a transaction reached the network before the failure."""
        return self.transaction_hash is not None

    def to_dict(self):
        """Serializable form for HTTP and alerting collaborators."""
        return {
            "error": type(self).__name__,
            "stage": self.stage.value,
            "reason": self.reason,
            "transactionHash": self.transaction_hash,
            "status": self.status_hint,
        }


class PreflightFailed(MintError):
    """Bad inputs, missing account or contract, or insufficient balance. Nothing was broadcast."""
    default_status = 400


class WouldRevert(MintError):
    """The dry run predicts the transaction would fail. Nothing was broadcast."""
    default_status = 400


class Reverted(MintError):
    """The transaction was mined but failed. The fee was spent."""
    pass


class TimedOut(MintError):
    """
    No receipt within the polling budget.

    The outcome is unknown: the transaction may still confirm later.
    """
    default_status = 408


class DeadlineExceeded(TimedOut):
    """The overall wall-clock deadline for submit and confirm elapsed."""
    pass
