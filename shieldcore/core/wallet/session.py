"""
WalletSession - the single owner of one wallet's mutable state.

Lifecycle:
    open()   load the persisted note cache for the keypair
    ...      sync / spend, serialized by one asyncio.Lock
    close()  drop in-memory state, release store and proving executor

Several sessions (one per wallet) can live in one process; none of their
state is shared.

Submission Guard:
----------------
Broadcasting a spend is not idempotent. After the caller submits a bundle,
mark_submitted() marks its spending nullifiers spent locally and records
every nullifier of the bundle as attempted. Building or submitting any
later operation that reuses one raises DuplicateOperationError. With a
NoteStore attached the attempted set is persisted, so the guard (and with it
one vote per ballot) survives a restart.
"""

import asyncio
import json
from typing import List, Optional, Sequence, Set

from shieldcore.crypto.babyjubjub import Point
from shieldcore.crypto.poseidon import field_to_hex, hex_to_field, load_poseidon_params
from shieldcore.core.config import WalletConfig
from shieldcore.core.errors import DuplicateOperationError, InsufficientFundsError, StaleMerkleRootError
from shieldcore.core.fees import NO_FEES, FeeSchedule
from shieldcore.core.indexer.client import HttpIndexerClient, IndexerClient
from shieldcore.core.keys import Keypair
from shieldcore.core.prover.circuits import build_registry
from shieldcore.core.prover.prover import MockProver, ProverBackend, SnarkJSProver
from shieldcore.core.prover.witness import (
    OrderTerms,
    OutputNote,
    OutputSpec,
    ProofBundle,
    Witness,
    WitnessAssembler,
)
from shieldcore.core.state.merkle import MerkleProof
from shieldcore.core.state.note import DecryptedNote
from shieldcore.core.stealth import StealthAddress, generate_stealth_address
from shieldcore.core.storage.note_store import NoteStore, open_wallet_store
from shieldcore.core.wallet.note_manager import NoteManager
from shieldcore.utils.logger import setup_logging, wallet_logger
from shieldcore.utils.validation import require, validate_amount

ATTEMPTED_KEY = "attempted_nullifiers"


class WalletSession:
    """
    One wallet's note cache, proving pipeline and submission guard.

    Usage:
        async with WalletSession(keypair, indexer, prover, ["pool-a"]) as session:
            await session.sync()
            bundle = await session.transfer(recipient, token_id, 100)
            ledger.submit(bundle)
            session.mark_submitted(bundle)
    """

    def __init__(
        self,
        keypair: Keypair,
        indexer: IndexerClient,
        prover: ProverBackend,
        pool_ids: Sequence[str],
        default_pool: Optional[str] = None,
        store: Optional[NoteStore] = None,
        assembler: Optional[WitnessAssembler] = None,
        fee_schedule: FeeSchedule = NO_FEES,
    ):
        self.keypair = keypair
        self.indexer = indexer
        self.pool_ids = list(pool_ids)
        self.default_pool = default_pool or self.pool_ids[0]
        self.store = store
        self.notes = NoteManager(indexer, self.pool_ids, store=store)
        self.assembler = assembler or WitnessAssembler(prover)
        self.fee_schedule = fee_schedule
        self._lock = asyncio.Lock()
        self._attempted: Set[int] = set()
        self._open = False
        self._owns_indexer = False
        self._log = wallet_logger("session", keypair.wallet_id)

    @classmethod
    def from_config(
        cls,
        keypair: Keypair,
        config: WalletConfig,
        indexer: Optional[IndexerClient] = None,
        prover: Optional[ProverBackend] = None,
    ) -> "WalletSession":
        """
        Build a session from configuration.

        Loads Poseidon parameters when configured, opens the wallet's note
        store under data_dir, and builds the HTTP indexer and prover unless
        given.
        """
        setup_logging(config.log_level, config.log_dir if config.log_to_file else None, force=True)
        if config.poseidon_params_path is not None:
            load_poseidon_params(config.poseidon_params_path)
        config.ensure_dirs()

        circuits = build_registry(config.proof_layouts)
        owns_indexer = indexer is None
        if indexer is None:
            indexer = HttpIndexerClient(
                config.indexer_url,
                max_concurrent_requests=config.max_concurrent_requests,
                request_timeout=config.request_timeout,
            )
        if prover is None:
            if config.prover_backend == "snarkjs":
                prover = SnarkJSProver(
                    config.circuit_dir,
                    node_path=config.node_path,
                    snarkjs_path=config.snarkjs_path,
                    timeout=config.prover_timeout,
                    circuits=circuits,
                )
            else:
                prover = MockProver(circuits=circuits)

        session = cls(
            keypair,
            indexer,
            prover,
            config.pools,
            default_pool=config.default_pool,
            store=open_wallet_store(config.data_dir, keypair.wallet_id),
            assembler=WitnessAssembler(prover, circuits=circuits, merkle_depth=config.merkle_depth),
            fee_schedule=config.fee_schedule(),
        )
        session._owns_indexer = owns_indexer
        return session

    # =========================================================================
    # Lifecycle
    # =========================================================================

    def open(self) -> "WalletSession":
        if not self._open:
            loaded = self.notes.load_from_store()
            self._attempted = self._load_attempted()
            self._open = True
            self._log.info(f"Opened ({loaded} cached notes)")
        return self

    def close(self):
        """
        Drop in-memory state and release the store and proving executor.

        An indexer built by from_config holds network connections; use
        aclose() (or `async with`) to release it as well.
        """
        if not self._open:
            return
        self.notes.clear()
        self._attempted.clear()
        self.assembler.close()
        if self.store is not None:
            self.store.close()
        self._open = False
        self._log.info("Closed")

    async def aclose(self):
        """close(), then close the indexer if this session created it."""
        self.close()
        if self._owns_indexer:
            await self.indexer.close()

    async def __aenter__(self) -> "WalletSession":
        return self.open()

    async def __aexit__(self, exc_type, exc, tb):
        await self.aclose()

    def _load_attempted(self) -> Set[int]:
        if self.store is None:
            return set()
        raw = self.store.get_meta(ATTEMPTED_KEY)
        return {hex_to_field(value) for value in json.loads(raw)} if raw else set()

    def _save_attempted(self):
        if self.store is not None:
            self.store.set_meta(ATTEMPTED_KEY, json.dumps(sorted(field_to_hex(n) for n in self._attempted)))

    def _require_open(self):
        if not self._open:
            raise RuntimeError("WalletSession is not open")

    # =========================================================================
    # State
    # =========================================================================

    async def sync(self) -> List[DecryptedNote]:
        self._require_open()
        async with self._lock:
            return await self.notes.sync(self.keypair)

    def balance(self, token_id: int) -> int:
        return self.notes.get_balance(self.keypair, token_id)

    def own_address(self) -> StealthAddress:
        """Fresh stealth address paying this wallet."""
        address, _ = generate_stealth_address(self.keypair.public_key)
        return address

    def prepare_shield(self, token_id: int, amount: int, recipient: Optional[Point] = None) -> OutputNote:
        """
        Build a deposit note paying this wallet (or recipient).

        The caller publishes its commitment and payload with the deposit.
        """
        require(validate_amount(amount))
        target = recipient if recipient is not None else self.keypair.public_key
        address, _ = generate_stealth_address(target)
        return OutputSpec.to_address(address, amount).resolve(token_id)

    # =========================================================================
    # Operations
    # =========================================================================

    def _check_attempted(self, witness: Witness):
        reused = (set(witness.nullifiers) | set(witness.action_nullifiers)) & self._attempted
        if reused:
            raise DuplicateOperationError(f"{witness.circuit_id}: operation already submitted")

    async def _proof(self, note: DecryptedNote) -> MerkleProof:
        return await self.indexer.get_merkle_proof(note.pool_id, note.commitment)

    async def _prove(self, witness: Witness) -> ProofBundle:
        self._check_attempted(witness)
        bundle = await self.assembler.prove(witness)
        self._log.info(f"Proved {witness.circuit_id}")
        return bundle

    def _select_one(self, token_id: int, target: int) -> DecryptedNote:
        if target < 1:
            raise ValueError("Operation moves no value")
        selection = self.notes.select_notes_for_amount(self.keypair, token_id, target, max_inputs=1)
        return selection.notes[0]

    def _fee(self, operation: str, taxable: int, fee: Optional[int]) -> int:
        """Protocol minimum when fee is None, else fee checked against it."""
        minimum = self.fee_schedule.minimum_fee(operation, taxable)
        if fee is None:
            return minimum
        require(validate_amount(fee, "fee"))
        if fee < minimum:
            raise ValueError(f"{operation} fee {fee} is below the protocol minimum {minimum}")
        return fee

    def _change(self, note: DecryptedNote, spent: int) -> List[OutputSpec]:
        change = note.amount - spent
        return [OutputSpec.to_address(self.own_address(), change)] if change > 0 else []

    async def transfer(
        self,
        recipient: Point,
        token_id: int,
        amount: int,
        unshield_amount: int = 0,
        fee: Optional[int] = None,
    ) -> ProofBundle:
        """
        Pay amount to recipient's stealth address, optionally unshielding.

        Change returns to a fresh stealth address of this wallet. The
        transfer rate applies to amount + unshield_amount; fee defaults to
        that protocol minimum.

        Raises:
            TooManyInputsError: No single note covers the total; consolidate first
            ValueError: Nothing to move, or fee below the protocol minimum
        """
        self._require_open()
        async with self._lock:
            fee = self._fee("transfer", amount + unshield_amount, fee)
            total = amount + unshield_amount + fee
            note = self._select_one(token_id, total)
            outputs: List[OutputSpec] = []
            if amount > 0:
                address, _ = generate_stealth_address(recipient)
                outputs.append(OutputSpec.to_address(address, amount))
            outputs.extend(self._change(note, total))

            witness = self.assembler.build_transfer(
                self.keypair, note, await self._proof(note), outputs,
                unshield_amount=unshield_amount, fee=fee,
            )
            return await self._prove(witness)

    async def consolidate(self, token_id: int, fee: int = 0, max_notes: int = 3) -> ProofBundle:
        """Merge the smallest unspent notes of a token into one."""
        self._require_open()
        if max_notes not in (2, 3):
            raise ValueError("max_notes must be 2 or 3")
        async with self._lock:
            unspent = sorted(
                self.notes.get_unspent_notes(self.keypair, token_id),
                key=lambda n: (n.amount, n.leaf_index),
            )
            picked = unspent[:max_notes]
            if len(picked) < 2:
                raise ValueError(f"Need at least 2 unspent notes to consolidate, have {len(picked)}")

            proofs = await asyncio.gather(*(self._proof(n) for n in picked))
            if len({p.root for p in proofs}) != 1:
                raise StaleMerkleRootError("Pool root moved while fetching proofs; retry")

            total = sum(n.amount for n in picked)
            if fee >= total:
                raise InsufficientFundsError(
                    f"Fee {fee} leaves nothing of {total} to consolidate",
                    available=total,
                    required=fee + 1,
                )
            output = OutputSpec.to_address(self.own_address(), total - fee)
            witness = self.assembler.build_consolidation(self.keypair, picked, list(proofs), output, fee=fee)
            return await self._prove(witness)

    async def swap_via_adapter(
        self,
        token_id: int,
        swap_amount: int,
        adapter_program: int,
        output_token_id: int,
        expected_output: int,
        min_output: int,
        fee: Optional[int] = None,
    ) -> ProofBundle:
        """Swap through an adapter; output and change both return to this wallet."""
        self._require_open()
        async with self._lock:
            fee = self._fee("swap", swap_amount, fee)
            note = self._select_one(token_id, swap_amount + fee)
            change = self._change(note, swap_amount + fee)
            witness = self.assembler.build_adapter_swap(
                self.keypair, note, await self._proof(note),
                swap_amount=swap_amount,
                adapter_program=adapter_program,
                output_token_id=output_token_id,
                output=OutputSpec.to_address(self.own_address(), expected_output),
                min_output=min_output,
                change=change[0] if change else None,
                fee=fee,
            )
            return await self._prove(witness)

    async def create_order(self, terms: OrderTerms, fee: int = 0) -> ProofBundle:
        """Escrow offer_amount for a limit order; fills pay a fresh stealth key."""
        self._require_open()
        async with self._lock:
            note = self._select_one(terms.offer_token, terms.offer_amount + fee)
            change = self._change(note, terms.offer_amount + fee)
            witness = self.assembler.build_order_create(
                self.keypair, note, await self._proof(note), terms,
                escrow_address=self.own_address(),
                maker_receive_stealth_pub_x=self.own_address().stealth_pubkey.x,
                change=change[0] if change else None,
                fee=fee,
            )
            return await self._prove(witness)

    async def vote(self, token_id: int, ballot_id: int, choice: int) -> ProofBundle:
        """
        Vote with the largest unspent note of a token.

        The note is not spent and stays selectable afterwards.
        """
        self._require_open()
        async with self._lock:
            note = self._select_one(token_id, 1)
            witness = self.assembler.build_vote(self.keypair, note, await self._proof(note), ballot_id, choice)
            return await self._prove(witness)

    # =========================================================================
    # Submission
    # =========================================================================

    def mark_submitted(self, bundle: ProofBundle):
        """
        Record a bundle as broadcast.

        Raises:
            DuplicateOperationError: Any of its nullifiers was already submitted
        """
        nullifiers = set(bundle.all_nullifiers)
        if nullifiers & self._attempted:
            raise DuplicateOperationError(f"{bundle.circuit_id}: bundle already submitted")
        self._attempted |= nullifiers
        self._save_attempted()
        self.notes.mark_spent(bundle.nullifiers)
