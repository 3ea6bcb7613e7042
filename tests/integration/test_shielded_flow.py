import pytest

from shieldcore.core.errors import DoubleSpendError, StaleMerkleRootError
from shieldcore.core.indexer import LocalLedger
from shieldcore.core.keys import create_keypair
from shieldcore.core.prover import MockProver, OutputSpec, ensure_root_current
from shieldcore.core.state.commitment import verify_commitment
from shieldcore.core.state.nullifier import check_nullifier_spent
from shieldcore.core.storage import NoteStore
from shieldcore.core.wallet import WalletSession

POOL = "pool-main"
TOKEN = 1


def _deposit(ledger, session, amount):
    out = session.prepare_shield(TOKEN, amount)
    return ledger.append_commitment(POOL, out.commitment, out.encrypted_note, out.stealth_ephemeral_pubkey)


@pytest.fixture
def ledger():
    return LocalLedger(merkle_depth=8)


@pytest.mark.asyncio
async def test_shield_transfer_unshield(ledger):
    """Two wallets in one process: shield, pay, unshield, sync."""
    alice = WalletSession(create_keypair(), ledger, MockProver(), [POOL]).open()
    bob = WalletSession(create_keypair(), ledger, MockProver(), [POOL]).open()
    try:
        # 1. Alice shields 500
        _deposit(ledger, alice, 500)
        await alice.sync()
        await bob.sync()
        assert alice.balance(TOKEN) == 500
        assert bob.balance(TOKEN) == 0

        # 2. Alice pays Bob 100 and unshields 200
        (spent_note,) = alice.notes.get_unspent_notes(alice.keypair, TOKEN)
        bundle = await alice.transfer(bob.keypair.public_key, TOKEN, 100, unshield_amount=200)
        assert bundle.public_signals[5] == "200"
        for out in bundle.outputs:
            assert verify_commitment(out.commitment, out.note)

        ledger.submit(bundle)
        alice.mark_submitted(bundle)

        # 3. Both wallets see the result
        await alice.sync()
        await bob.sync()
        assert alice.balance(TOKEN) == 200
        assert bob.balance(TOKEN) == 100

        # 4. The spent note's nullifier is on the ledger
        nullifier = alice.notes.nullifier_for(alice.keypair, spent_note)
        assert bundle.nullifiers == [nullifier]
        assert await check_nullifier_spent(ledger, nullifier)

        # 5. Replaying the bundle is rejected by the ledger
        with pytest.raises(DoubleSpendError):
            ledger.submit(bundle)
    finally:
        alice.close()
        bob.close()


@pytest.mark.asyncio
async def test_unshield_pads_with_dummy(ledger):
    """A pure unshield has one real output (change) and one dummy commitment."""
    async with WalletSession(create_keypair(), ledger, MockProver(), [POOL]) as wallet:
        _deposit(ledger, wallet, 500)
        await wallet.sync()

        bundle = await wallet.transfer(wallet.keypair.public_key, TOKEN, 0, unshield_amount=200)
        amounts = [out.amount for out in bundle.outputs]
        assert amounts == [300, 0]
        assert bundle.outputs[1].encrypted_note == b""

        ledger.submit(bundle)
        wallet.mark_submitted(bundle)
        await wallet.sync()
        assert wallet.balance(TOKEN) == 300
        assert len(ledger.pools[POOL].tree) == 3


@pytest.mark.asyncio
async def test_vote_keeps_note_spendable(ledger):
    """Voting publishes an action nullifier only; the note remains spendable."""
    async with WalletSession(create_keypair(), ledger, MockProver(), [POOL]) as wallet:
        _deposit(ledger, wallet, 40)
        await wallet.sync()

        vote = await wallet.vote(TOKEN, ballot_id=2024, choice=3)
        ledger.submit(vote)
        wallet.mark_submitted(vote)
        assert not await check_nullifier_spent(ledger, vote.action_nullifiers[0])

        await wallet.sync()
        assert wallet.balance(TOKEN) == 40

        payment = await wallet.transfer(create_keypair().public_key, TOKEN, 40)
        ledger.submit(payment)
        wallet.mark_submitted(payment)
        await wallet.sync()
        assert wallet.balance(TOKEN) == 0


@pytest.mark.asyncio
async def test_stale_root_detected_before_submit(ledger):
    """The pool moving on makes a witness stale; rebuilding picks up the new root."""
    async with WalletSession(create_keypair(), ledger, MockProver(), [POOL]) as wallet:
        _deposit(ledger, wallet, 50)
        await wallet.sync()

        note = wallet.notes.get_unspent_notes(wallet.keypair, TOKEN)[0]
        proof = await ledger.get_merkle_proof(POOL, note.commitment)
        witness = wallet.assembler.build_transfer(
            wallet.keypair, note, proof, [OutputSpec.to_address(wallet.own_address(), 50)],
        )

        # Someone else deposits
        _deposit(ledger, WalletSession(create_keypair(), ledger, MockProver(), [POOL]), 7)
        with pytest.raises(StaleMerkleRootError):
            await ensure_root_current(ledger, POOL, witness.merkle_root)

        fresh = await ledger.get_merkle_proof(POOL, note.commitment)
        rebuilt = wallet.assembler.build_transfer(
            wallet.keypair, note, fresh, [OutputSpec.to_address(wallet.own_address(), 50)],
        )
        await ensure_root_current(ledger, POOL, rebuilt.merkle_root)
        assert rebuilt.nullifiers == witness.nullifiers


@pytest.mark.asyncio
async def test_wallet_restart(ledger, tmp_path):
    """Notes and spent state survive closing and reopening a wallet."""
    keypair = create_keypair()
    store = NoteStore(tmp_path / "wallet.db")

    # 1. First run: deposit two notes, spend one
    first = WalletSession(keypair, ledger, MockProver(), [POOL], store=store).open()
    _deposit(ledger, first, 30)
    _deposit(ledger, first, 70)
    await first.sync()
    bundle = await first.transfer(create_keypair().public_key, TOKEN, 70)
    ledger.submit(bundle)
    first.mark_submitted(bundle)
    first.close()

    # 2. Second run, before any sync: spent note is still excluded
    second = WalletSession(keypair, ledger, MockProver(), [POOL], store=NoteStore(tmp_path / "wallet.db")).open()
    try:
        assert second.balance(TOKEN) == 30
        await second.sync()
        assert second.balance(TOKEN) == 30
    finally:
        second.close()
