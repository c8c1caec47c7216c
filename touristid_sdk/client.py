"""
TouristIDClient - main client for issuing and looking up Tourist IDs.
"""
import logging
from typing import Any, Dict, Optional, Union

from pydantic import ValidationError
from web3 import AsyncWeb3

from .account import IssuerAccount
from .config import TouristIDSettings
from .contract import ContractInterface
from .exceptions import (
    ConfigurationError, ContractReverted, DecodeMismatch, LedgerError, MintStage, PreflightFailed
)
from .extractor import ResultExtractor
from .fees import FeeEstimator
from .ledger import LedgerClient
from .models import (
    DEFAULT_ISSUER_LABEL, ActiveTouristIDPage, ChainStatus, MintRequest, MintResult, TouristRecord
)
from .orchestrator import MintingOrchestrator, StageCallback
from .poller import ConfirmationPoller
from .submitter import TransactionSubmitter
from .utils import wei_to_ether


class TouristIDClient:
    """
    Client for the TouristID contract.

    This client handles:
    1. Minting Tourist IDs from the issuer ("government") wallet
    2. Reading records and validity back from the contract
    3. Issuer balance and chain status checks

    All ledger access is async; create the client once and share it between
    concurrent mints so they share the issuer account's nonce lock.
    """

    def __init__(
        self,
        settings: TouristIDSettings,
        w3: Optional[AsyncWeb3] = None,
        ledger: Optional[LedgerClient] = None,
        logger: Optional[logging.Logger] = None
    ):
        """
        Initialize the TouristIDClient

        Args:
            settings: Connection, issuer and timing settings
            w3: Optional pre-built AsyncWeb3 instance
            ledger: Optional ledger client, replacing the one built from settings
            logger: Optional logger instance to use for debug/info logging

        Raises:
            ConfigurationError: If the private key is malformed
        """
        self.settings = settings
        self.logger = logger or logging.getLogger(__name__)

        self.ledger = ledger or LedgerClient(
            settings.rpc_url,
            w3=w3,
            retry_count=settings.retry_count,
            request_timeout=settings.request_timeout,
            logger=self.logger
        )

        self.account: Optional[IssuerAccount] = None
        if settings.private_key:
            try:
                self.account = IssuerAccount(settings.private_key, settings.expected_address)
            except ValueError as e:
                raise ConfigurationError(f"Failed to initialize issuer account: {e}") from e

        self.contract: Optional[ContractInterface] = None
        self.extractor: Optional[ResultExtractor] = None
        if settings.contract_address:
            self.contract = ContractInterface(settings.contract_address)
            self.extractor = ResultExtractor(self.contract, self.ledger, logger=self.logger)
            self.logger.info(f"Using contract address {self.contract.address}")

        self.fees = FeeEstimator(self.ledger, logger=self.logger)
        self.submitter = TransactionSubmitter(self.ledger, self.fees, logger=self.logger)
        self.poller = ConfirmationPoller(
            self.ledger,
            interval=settings.poll_interval,
            max_attempts=settings.max_poll_attempts,
            max_wait=settings.confirm_timeout,
            logger=self.logger
        )
        self.orchestrator = MintingOrchestrator(
            ledger=self.ledger,
            contract=self.contract,
            account=self.account,
            fees=self.fees,
            submitter=self.submitter,
            poller=self.poller,
            extractor=self.extractor,
            chain_id=settings.chain_id,
            deadline=settings.mint_deadline,
            logger=self.logger
        )

    @classmethod
    def from_env(cls, logger: Optional[logging.Logger] = None) -> "TouristIDClient":
        """Create a client from RPC_URL, CONTRACT_ADDRESS, GOVERNMENT_PRIVATE_KEY, ..."""
        return cls(TouristIDSettings.from_env(), logger=logger)

    @property
    def issuer_address(self) -> Optional[str]:
        """Issuer address from the key, else the configured address."""
        if self.account:
            return self.account.address
        return self.settings.expected_address

    def _require_contract(self) -> ContractInterface:
        if self.contract is None:
            raise ConfigurationError("Contract not initialized - set CONTRACT_ADDRESS")
        return self.contract

    async def _call(self, data: str) -> str:
        contract = self._require_contract()
        return await self.ledger.call({"to": contract.address, "data": data})

    async def mint_tourist_id(
        self,
        identity_commitment: Union[str, bytes],
        valid_until: int,
        metadata_reference: str,
        issuer_label: str = DEFAULT_ISSUER_LABEL,
        on_stage: Optional[StageCallback] = None
    ) -> MintResult:
        """
        Mint a new Tourist ID.

        Args:
            identity_commitment: 32-byte hex digest, or any value to be keccak-hashed
            valid_until: Unix timestamp (seconds) in the future
            metadata_reference: IPFS CID of the off-chain metadata
            issuer_label: Textual issuer info
            on_stage: Optional stage observer

        Returns:
            MintResult

        Raises:
            PreflightFailed: Invalid fields, at the validating stage
            MintError: Typed failure naming the pipeline stage
        """
        try:
            request = MintRequest(
                identity_commitment=identity_commitment,
                valid_until=valid_until,
                metadata_reference=metadata_reference,
                issuer_label=issuer_label,
            )
        except ValidationError as e:
            fields = ", ".join(".".join(str(p) for p in err["loc"]) for err in e.errors())
            raise PreflightFailed(MintStage.VALIDATING, f"Invalid mint request: {fields}", cause=e) from e
        return await self.mint(request, on_stage=on_stage)

    async def mint(self, request: MintRequest, on_stage: Optional[StageCallback] = None) -> MintResult:
        return await self.orchestrator.mint(request, on_stage=on_stage)

    async def get_tourist_record(self, token_id: int) -> Optional[TouristRecord]:
        """
        Read a Tourist ID record.

        Returns:
            The record, or None if the contract reverts (unknown token)
        """
        contract = self._require_contract()
        try:
            record = contract.decode_read_record(
                await self._call(contract.encode_read_record_call(token_id))
            )
        except ContractReverted as e:
            self.logger.debug(f"getTouristRecord({token_id}) reverted: {e.reason}")
            return None
        valid = await self.is_valid(token_id)
        return TouristRecord(token_id=int(token_id), is_valid=valid, **record)

    async def is_valid(self, token_id: int) -> bool:
        contract = self._require_contract()
        return contract.decode_is_valid(await self._call(contract.encode_is_valid_call(token_id)))

    async def get_current_token_id(self) -> int:
        contract = self._require_contract()
        return contract.decode_current_token_id(
            await self._call(contract.encode_current_token_id_call())
        )

    async def get_contract_owner(self) -> Optional[str]:
        """Contract owner, or None (with a warning) if it cannot be read."""
        contract = self._require_contract()
        try:
            return contract.decode_owner(await self._call(contract.encode_owner_call()))
        except (DecodeMismatch, LedgerError) as e:
            self.logger.warning(f"Failed to read contract owner(): {e}")
            return None

    async def get_issuer_balance(self) -> Dict[str, Any]:
        """
        Issuer wallet balance.

        Returns:
            Dict with "wei" (int) and "ether" (decimal string)

        Raises:
            ConfigurationError: If no issuer address is configured
        """
        address = self.issuer_address
        if not address:
            raise ConfigurationError("Issuer address not configured")
        balance = await self.ledger.get_balance(address)
        return {"wei": balance, "ether": wei_to_ether(balance)}

    async def list_active_tourist_ids(self, page: int = 1, limit: int = 20) -> ActiveTouristIDPage:
        """
        List currently valid Tourist IDs, paginated.

        Scans every TouristIDMinted event since block 0, which gets expensive
        for long histories; records that fail to load are skipped.
        """
        contract = self._require_contract()
        page = max(int(page or 1), 1)
        limit = max(int(limit or 20), 1)

        logs = await self.ledger.get_logs(contract.minted_logs_filter(0, "latest"))
        active = []
        for log in logs:
            try:
                token_id = contract.decode_minted_log(log)["tokenId"]
                record = await self.get_tourist_record(token_id)
            except (DecodeMismatch, LedgerError) as e:
                self.logger.warning(f"Failed to retrieve record from log {log.transaction_hash}: {e}")
                continue
            if record is not None and record.is_valid:
                active.append(record)

        start = (page - 1) * limit
        return ActiveTouristIDPage(
            page=page, limit=limit, total=len(active), data=active[start:start + limit]
        )

    async def get_status(self) -> ChainStatus:
        """Chain id, block height, issuer balance and contract address."""
        chain_id = await self.ledger.get_chain_id()
        block_number = await self.ledger.get_block_height()
        balance = None
        if self.issuer_address:
            balance = await self.ledger.get_balance(self.issuer_address)
        return ChainStatus(
            chain_id=chain_id,
            block_number=block_number,
            contract_address=self.contract.address if self.contract else None,
            issuer_address=self.issuer_address,
            issuer_balance_wei=balance,
            issuer_balance_ether=wei_to_ether(balance) if balance is not None else None,
        )

    async def assert_chain_id(self) -> int:
        """
        Check that the node serves the configured chain.

        Raises:
            ConfigurationError: If the node's chain id differs from settings.chain_id
        """
        actual = await self.ledger.get_chain_id()
        expected = self.settings.chain_id
        if expected is not None and actual != expected:
            raise ConfigurationError(f"Chain ID mismatch: expected {expected}, node reports {actual}")
        return actual
