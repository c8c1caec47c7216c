"""
Tests for TransactionSubmitter dry run, signing and broadcast.
"""
import pytest

from touristid_sdk.exceptions import MintError, MintStage, NetworkError, PreflightFailed, WouldRevert
from touristid_sdk.fees import FeeEstimator
from touristid_sdk.models import FeeQuote, TransactionEnvelope
from touristid_sdk.submitter import TransactionSubmitter

from tests.conftest import COMMITMENT
from tests.test_helpers import TEST_CHAIN_ID, TEST_CONTRACT
from tests.test_helpers.fake_ledger import GWEI


@pytest.fixture
def submitter(fake_ledger):
    return TransactionSubmitter(fake_ledger, FeeEstimator(fake_ledger))


@pytest.fixture
def envelope(contract, account, future_ts):
    return TransactionEnvelope(
        from_address=account.address,
        to=contract.address,
        data=contract.encode_mint_call(COMMITMENT, future_ts, "QmTest", "Issuer"),
        gas=300_000,
        chain_id=TEST_CHAIN_ID,
        fee=FeeQuote(max_fee_per_gas=13 * GWEI, max_priority_fee_per_gas=GWEI),
    )


@pytest.mark.asyncio
async def test_submit_signs_with_pending_nonce(submitter, envelope, account, fake_ledger):
    fake_ledger.pending_nonce = 4
    tx_hash = await submitter.submit(envelope, account)

    assert tx_hash in fake_ledger.receipts
    assert fake_ledger.send_count == 1
    sent = fake_ledger.sent[0]
    assert sent["nonce"] == 4
    assert sent["gas"] == 300_000
    assert sent["to"] == TEST_CONTRACT
    assert sent["maxFeePerGas"] == 13 * GWEI
    assert "0x" + sent["data"].hex() == envelope.data


@pytest.mark.asyncio
async def test_submit_does_not_mutate_envelope(submitter, envelope, account):
    await submitter.submit(envelope, account)
    assert envelope.nonce is None


@pytest.mark.asyncio
async def test_simulation_revert_sends_nothing(submitter, envelope, account, fake_ledger):
    fake_ledger.revert_reason = "Not authorized"
    with pytest.raises(WouldRevert) as exc_info:
        await submitter.submit(envelope, account)

    assert exc_info.value.stage == MintStage.SIMULATING
    assert exc_info.value.reason == "Not authorized"
    assert fake_ledger.send_count == 0
    assert fake_ledger.nonce_reads == []


@pytest.mark.asyncio
async def test_skip_simulation(submitter, envelope, account, fake_ledger):
    await submitter.submit(envelope, account, simulate=False)
    assert "call" not in fake_ledger.calls


@pytest.mark.asyncio
async def test_nonce_read_failure(submitter, envelope, account, fake_ledger, monkeypatch):
    async def broken_count(address, block="pending"):
        raise NetworkError("eth_getTransactionCount failed: timeout")

    monkeypatch.setattr(fake_ledger, "get_transaction_count", broken_count)
    with pytest.raises(PreflightFailed, match="Failed to read nonce") as exc_info:
        await submitter.submit(envelope, account)

    # transport failure, not a nonce conflict
    assert exc_info.value.status_hint == 502
    assert fake_ledger.send_count == 0


@pytest.mark.asyncio
async def test_node_rejection_is_mint_error(submitter, envelope, account, fake_ledger, monkeypatch):
    """A nonce the node refuses surfaces with a 409 hint and no hash"""
    async def stale_count(address, block="pending"):
        return 0

    fake_ledger.pending_nonce = 3
    monkeypatch.setattr(fake_ledger, "get_transaction_count", stale_count)
    with pytest.raises(MintError) as exc_info:
        await submitter.submit(envelope, account, simulate=False)

    error = exc_info.value
    assert error.stage == MintStage.SUBMITTING
    assert "nonce too low" in error.reason
    assert error.status_hint == 409
    assert error.transaction_hash is None


@pytest.mark.asyncio
async def test_unknown_broadcast_outcome_keeps_local_hash(
    submitter, envelope, account, fake_ledger, monkeypatch
):
    async def dropped(raw):
        raise NetworkError("eth_sendRawTransaction failed: connection reset")

    monkeypatch.setattr(fake_ledger, "send_signed", dropped)
    with pytest.raises(MintError) as exc_info:
        await submitter.submit(envelope, account, simulate=False)

    error = exc_info.value
    assert error.reason.startswith("Broadcast outcome unknown")
    assert error.transaction_hash.startswith("0x")
    assert len(error.transaction_hash) == 66
    assert error.broadcast
    assert error.status_hint == 502


@pytest.mark.asyncio
async def test_on_signed_sees_hash_before_broadcast(submitter, envelope, account, fake_ledger):
    seen = []

    def on_signed(tx_hash):
        seen.append((tx_hash, fake_ledger.send_count))

    tx_hash = await submitter.submit(envelope, account, simulate=False, on_signed=on_signed)
    assert seen == [(tx_hash, 0)]
