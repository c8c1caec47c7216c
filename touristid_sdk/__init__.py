"""
TouristID SDK - issue and verify Tourist ID tokens on an EVM ledger.
"""
from .version import __version__
from .account import IssuerAccount
from .client import TouristIDClient
from .config import TouristIDSettings
from .contract import ContractInterface
from .exceptions import (
    TouristIDError, ConfigurationError, LedgerError, NetworkError, NodeRejected,
    FeeUnavailable, ContractReverted, DecodeMismatch, MintStage, MintError,
    PreflightFailed, WouldRevert, Reverted, TimedOut, DeadlineExceeded
)
from .extractor import ResultExtractor
from .fees import FeeEstimator, DEFAULT_GAS_LIMIT, GAS_SAFETY_MULTIPLIER
from .ledger import LedgerClient
from .models import (
    MintRequest, MintResult, TransactionEnvelope, FeeQuote, TxReceipt, LogEntry,
    TouristRecord, ExtractionStrategy, ExtractionResult
)
from .orchestrator import MintingOrchestrator
from .poller import ConfirmationPoller, PollOutcome, PollState
from .submitter import TransactionSubmitter
from .utils import normalize_commitment

__all__ = [
    "TouristIDClient",
    "TouristIDSettings",
    "IssuerAccount",
    "LedgerClient",
    "ContractInterface",
    "FeeEstimator",
    "TransactionSubmitter",
    "ConfirmationPoller",
    "ResultExtractor",
    "MintingOrchestrator",
    "MintRequest",
    "MintResult",
    "TransactionEnvelope",
    "FeeQuote",
    "TxReceipt",
    "LogEntry",
    "TouristRecord",
    "ExtractionStrategy",
    "ExtractionResult",
    "PollOutcome",
    "PollState",
    "MintStage",
    "TouristIDError",
    "ConfigurationError",
    "LedgerError",
    "NetworkError",
    "NodeRejected",
    "FeeUnavailable",
    "ContractReverted",
    "DecodeMismatch",
    "MintError",
    "PreflightFailed",
    "WouldRevert",
    "Reverted",
    "TimedOut",
    "DeadlineExceeded",
    "DEFAULT_GAS_LIMIT",
    "GAS_SAFETY_MULTIPLIER",
    "normalize_commitment",
    "__version__",
]
