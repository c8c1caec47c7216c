"""
MintingOrchestrator - composes the full minting pipeline.

Stages run in order: VALIDATING, PREFLIGHT_CHECKING, SIMULATING, ESTIMATING,
SUBMITTING, CONFIRMING, EXTRACTING, DONE. A failure at any stage raises a
MintError subclass naming that stage. There is no automatic retry: a
state-changing mint that is retried silently could be issued twice.
"""
import asyncio
import logging
from typing import Callable, Optional

from .account import IssuerAccount
from .contract import ContractInterface
from .exceptions import (
    DeadlineExceeded, LedgerError, MintError, MintStage, PreflightFailed, Reverted, TimedOut
)
from .extractor import ResultExtractor
from .fees import FeeEstimator
from .ledger import LedgerClient
from .models import MintRequest, MintResult, TransactionEnvelope
from .poller import ConfirmationPoller, PollState
from .submitter import TransactionSubmitter
from .utils import now

logger = logging.getLogger(__name__)

StageCallback = Callable[[MintStage], None]


class MintingOrchestrator:
    """Runs one mint request through the staged pipeline."""

    def __init__(
        self,
        ledger: LedgerClient,
        contract: Optional[ContractInterface],
        account: Optional[IssuerAccount],
        fees: FeeEstimator,
        submitter: TransactionSubmitter,
        poller: ConfirmationPoller,
        extractor: Optional[ResultExtractor],
        chain_id: Optional[int] = None,
        deadline: Optional[float] = None,
        logger: Optional[logging.Logger] = None
    ):
        """
        Args:
            ledger: Ledger client
            contract: Contract codec (None when no contract is configured)
            account: Issuer account (None when no key is configured)
            fees: Fee and nonce estimator
            submitter: Transaction submitter
            poller: Confirmation poller
            extractor: Token id extractor
            chain_id: Fixed chain id; read from the node when None
            deadline: Seconds allowed for submit + confirm together
            logger: Optional logger instance
        """
        self.ledger = ledger
        self.contract = contract
        self.account = account
        self.fees = fees
        self.submitter = submitter
        self.poller = poller
        self.extractor = extractor
        self.chain_id = chain_id
        self.deadline = deadline
        self.logger = logger or logging.getLogger(__name__)

    async def mint(
        self,
        request: MintRequest,
        on_stage: Optional[StageCallback] = None
    ) -> MintResult:
        """
        Mint one Tourist ID.

        Args:
            request: Validated mint request
            on_stage: Called with each stage as it is entered

        Returns:
            MintResult; ``low_confidence`` is set when the token id is a guess or unknown

        Raises:
            PreflightFailed: Invalid request, missing configuration or funds
            WouldRevert: Dry run failed; nothing broadcast
            Reverted: Mined but failed; fee spent
            TimedOut: No receipt in time; outcome unknown
            DeadlineExceeded: Overall deadline elapsed; outcome unknown
            MintError: Any other failure, tagged with its stage
        """
        state = _PipelineState(on_stage)
        try:
            return await self._run(request, state)
        except MintError:
            raise
        except Exception as e:
            self.logger.exception(f"Unexpected error during mint at stage {state.stage.value}")
            raise MintError(
                state.stage, f"Unexpected error: {e}", transaction_hash=state.tx_hash, cause=e
            ) from e

    async def _run(self, request: MintRequest, state: "_PipelineState") -> MintResult:
        state.enter(MintStage.VALIDATING)
        self._validate(request)

        state.enter(MintStage.PREFLIGHT_CHECKING)
        contract, account = self._require_configuration()
        chain_id, balance = await self._preflight(account)

        call_data = contract.encode_mint_call(
            request.identity_commitment,
            request.valid_until,
            request.metadata_reference,
            request.issuer_label
        )
        envelope = TransactionEnvelope(
            from_address=account.address,
            to=contract.address,
            data=call_data,
            gas=0,
            chain_id=chain_id,
            fee={"gas_price": 0},
        )

        state.enter(MintStage.SIMULATING)
        await self.submitter.simulate(envelope)

        state.enter(MintStage.ESTIMATING)
        envelope = await self._price(envelope, balance)

        loop = asyncio.get_running_loop()
        deadline_at = loop.time() + self.deadline if self.deadline else None

        state.enter(MintStage.SUBMITTING)
        try:
            state.tx_hash = await asyncio.wait_for(
                self.submitter.submit(envelope, account, simulate=False, on_signed=state.signed),
                timeout=self.deadline
            )
        except asyncio.TimeoutError as e:
            raise DeadlineExceeded(
                MintStage.SUBMITTING,
                f"Deadline of {self.deadline}s elapsed during submission; broadcast state unknown",
                transaction_hash=state.tx_hash,
                cause=e
            ) from e

        state.enter(MintStage.CONFIRMING)
        outcome = await self.poller.wait(state.tx_hash, deadline=deadline_at)
        if outcome.state == PollState.REVERTED:
            raise Reverted(
                MintStage.CONFIRMING,
                f"Transaction reverted in block {outcome.receipt.block_number}",
                transaction_hash=state.tx_hash
            )
        if outcome.state == PollState.TIMED_OUT:
            error_cls = DeadlineExceeded if outcome.deadline_hit else TimedOut
            raise error_cls(
                MintStage.CONFIRMING,
                f"No receipt after {outcome.attempts} polls ({outcome.elapsed:.1f}s); "
                f"transaction may still confirm",
                transaction_hash=state.tx_hash
            )
        receipt = outcome.receipt

        state.enter(MintStage.EXTRACTING)
        extraction = await self.extractor.extract(receipt)

        state.enter(MintStage.DONE)
        result = MintResult(
            transaction_hash=receipt.tx_hash,
            token_id=extraction.token_id,
            block_number=receipt.block_number,
            gas_used=receipt.gas_used,
            extraction_strategy=extraction.strategy,
            low_confidence=extraction.low_confidence,
        )
        self.logger.info(
            f"Tourist ID minted: token {result.token_id} in tx {result.transaction_hash} "
            f"(block {result.block_number}, gas {result.gas_used})"
        )
        return result

    def _validate(self, request: MintRequest) -> None:
        if request.valid_until <= now():
            raise PreflightFailed(
                MintStage.VALIDATING, "validUntil must be a future unix timestamp (seconds)"
            )
        if not request.metadata_reference.strip():
            raise PreflightFailed(MintStage.VALIDATING, "metadata reference must not be empty")

    def _require_configuration(self):
        if self.contract is None or self.extractor is None:
            raise PreflightFailed(
                MintStage.PREFLIGHT_CHECKING, "Contract not initialized - set CONTRACT_ADDRESS"
            )
        if self.account is None:
            raise PreflightFailed(
                MintStage.PREFLIGHT_CHECKING,
                "Issuer account not configured: set GOVERNMENT_PRIVATE_KEY to enable minting"
            )
        return self.contract, self.account

    async def _preflight(self, account: IssuerAccount):
        try:
            chain_id = self.chain_id or await self.ledger.get_chain_id()
            balance = await self.ledger.get_balance(account.address)
        except LedgerError as e:
            raise PreflightFailed(
                MintStage.PREFLIGHT_CHECKING, f"Failed to read chain state: {e}", cause=e
            ) from e
        if balance <= 0:
            raise PreflightFailed(
                MintStage.PREFLIGHT_CHECKING,
                f"Insufficient balance: issuer {account.address} has no funds"
            )
        return chain_id, balance

    async def _price(self, envelope: TransactionEnvelope, balance: int) -> TransactionEnvelope:
        gas = await self.fees.estimate_gas_limit(envelope.call_params())
        try:
            fee = await self.fees.quote_fees()
        except LedgerError as e:
            raise MintError(MintStage.ESTIMATING, f"Failed to price transaction: {e}", cause=e) from e

        max_cost = gas * fee.max_price
        if max_cost > balance:
            raise PreflightFailed(
                MintStage.ESTIMATING,
                f"Insufficient balance: need up to {max_cost} wei, have {balance} wei"
            )
        return envelope.model_copy(update={"gas": gas, "fee": fee})


class _PipelineState:
    """Current stage and broadcast hash of one mint."""

    def __init__(self, on_stage: Optional[StageCallback]):
        self.stage = MintStage.VALIDATING
        self.tx_hash: Optional[str] = None
        self._on_stage = on_stage

    def signed(self, tx_hash: str) -> None:
        self.tx_hash = tx_hash

    def enter(self, stage: MintStage) -> None:
        self.stage = stage
        logger.debug(f"Mint stage: {stage.value}")
        if self._on_stage is not None:
            self._on_stage(stage)
