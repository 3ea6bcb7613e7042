"""
Witness Assembly - from a high-level operation to a circuit's signal set.

Every operation follows the same pipeline:

1. Inputs: resolve each note's private key (stealth-derived when the note
   carries a stealth ephemeral key, else the base key), check that key owns
   the note, recompute the commitment and compare with the cached one, check
   the Merkle proof for the note's own leaf, derive its nullifier.
2. Outputs: accept a precomputed {commitment, stealth_pub_x, randomness} or
   build the note from a StealthAddress and amount (encrypting it to the
   stealth key).
3. Balance: sum(inputs) >= sum(outputs) + unshield + fee.
4. Signals: public signals first in verifier order, then private ones. All
   values are decimal strings.
5. Prove: call the external backend on a worker thread and bundle the proof
   with everything the caller must submit alongside it.

Retries on stale roots are the caller's business: re-fetch proofs, rebuild.
"""

import asyncio
import secrets
from concurrent.futures import Executor, ThreadPoolExecutor
from dataclasses import dataclass, field
from typing import TYPE_CHECKING, Dict, List, Optional, Sequence

from shieldcore.crypto.babyjubjub import Point, derive_public_key
from shieldcore.crypto.poseidon import (
    DOMAIN_ORDER_TERMS,
    DOMAIN_VOTE_COMMITMENT,
    FIELD_PRIME,
    poseidon_hash_domain,
)
from shieldcore.core.errors import (
    CommitmentMismatchError,
    InsufficientFundsError,
    InvalidKeyError,
    InvalidMerkleProofError,
    StaleMerkleRootError,
)
from shieldcore.core.keys import Keypair
from shieldcore.core.prover.circuits import CircuitSpec, get_circuit, public_signal_values
from shieldcore.core.prover.prover import Groth16Proof, ProverBackend
from shieldcore.core.state.commitment import compute_commitment, create_note, generate_randomness
from shieldcore.core.state.merkle import MerkleProof
from shieldcore.core.state.note import DecryptedNote, Note, encrypt_note
from shieldcore.core.state.nullifier import (
    derive_action_nullifier,
    derive_nullifier_key,
    derive_spending_nullifier,
)
from shieldcore.core.stealth import StealthAddress, resolve_note_key
from shieldcore.utils.logger import get_logger
from shieldcore.utils.validation import require, validate_amount, validate_field_element

if TYPE_CHECKING:
    from shieldcore.core.indexer.client import IndexerClient

logger = get_logger("witness")


# =============================================================================
# Outputs
# =============================================================================


@dataclass(frozen=True)
class OutputNote:
    """
    A resolved output, ready to be appended to the ledger.

    Attributes:
        note: Plaintext note
        commitment: Its commitment
        encrypted_note: Wire-format ciphertext (empty for dummy outputs)
        stealth_ephemeral_pubkey: E of the recipient stealth address
    """
    note: Note
    commitment: int
    encrypted_note: bytes = b""
    stealth_ephemeral_pubkey: Optional[Point] = None

    @property
    def amount(self) -> int:
        return self.note.amount


@dataclass(frozen=True)
class OutputSpec:
    """
    Requested output: either a target stealth address and amount, or a
    precomputed note opening.
    """
    amount: int
    address: Optional[StealthAddress] = None
    commitment: Optional[int] = None
    stealth_pub_x: Optional[int] = None
    randomness: Optional[int] = None
    encrypted_note: bytes = b""
    stealth_ephemeral_pubkey: Optional[Point] = None

    def __post_init__(self):
        require(validate_amount(self.amount))

    @classmethod
    def to_address(cls, address: StealthAddress, amount: int) -> "OutputSpec":
        return cls(amount=amount, address=address)

    @classmethod
    def precomputed(
        cls,
        commitment: int,
        stealth_pub_x: int,
        amount: int,
        randomness: int,
        encrypted_note: bytes = b"",
        stealth_ephemeral_pubkey: Optional[Point] = None,
    ) -> "OutputSpec":
        return cls(
            amount=amount,
            commitment=commitment,
            stealth_pub_x=stealth_pub_x,
            randomness=randomness,
            encrypted_note=encrypted_note,
            stealth_ephemeral_pubkey=stealth_ephemeral_pubkey,
        )

    def resolve(self, token_id: int) -> OutputNote:
        """
        Produce the output note for a token.

        Raises:
            CommitmentMismatchError: Precomputed commitment does not open to the fields
            ValueError: Neither an address nor a full precomputed opening
        """
        if self.address is not None:
            note = create_note(self.address.stealth_pubkey.x, token_id, self.amount, self.randomness)
            encrypted = encrypt_note(note, self.address.stealth_pubkey)
            return OutputNote(
                note=note,
                commitment=compute_commitment(note),
                encrypted_note=encrypted.to_bytes(),
                stealth_ephemeral_pubkey=self.address.ephemeral_pubkey,
            )

        if self.commitment is None or self.stealth_pub_x is None or self.randomness is None:
            raise ValueError("OutputSpec needs an address or commitment, stealth_pub_x and randomness")

        note = Note(
            stealth_pub_x=self.stealth_pub_x,
            token_id=token_id,
            amount=self.amount,
            randomness=self.randomness,
        )
        if compute_commitment(note) != self.commitment:
            raise CommitmentMismatchError("Precomputed output commitment does not match its fields")
        return OutputNote(
            note=note,
            commitment=self.commitment,
            encrypted_note=self.encrypted_note,
            stealth_ephemeral_pubkey=self.stealth_ephemeral_pubkey,
        )


def dummy_output(token_id: int) -> OutputNote:
    """
    Zero-amount filler output.

    Bound to a random x coordinate nobody controls and published without a
    payload, so it is indistinguishable from a real commitment.
    """
    note = create_note(generate_randomness(), token_id, 0)
    return OutputNote(note=note, commitment=compute_commitment(note))


# =============================================================================
# Witness & Bundle
# =============================================================================


@dataclass(frozen=True)
class OrderTerms:
    """Terms of a limit order."""
    offer_token: int
    offer_amount: int
    ask_token: int
    ask_amount: int
    expiry: int

    def __post_init__(self):
        require(validate_field_element(self.offer_token, "offer_token"))
        require(validate_field_element(self.ask_token, "ask_token"))
        require(validate_amount(self.offer_amount, "offer_amount"))
        require(validate_amount(self.ask_amount, "ask_amount"))
        if self.offer_amount == 0 or self.ask_amount == 0:
            raise ValueError("Order amounts must be positive")

    def terms_hash(self) -> int:
        """H(ORDER_TERMS, offer_token, offer_amount, ask_token, ask_amount)."""
        return poseidon_hash_domain(
            DOMAIN_ORDER_TERMS,
            [self.offer_token, self.offer_amount, self.ask_token, self.ask_amount],
        )


@dataclass
class Witness:
    """
    Fully assembled signal set for one circuit.

    Attributes:
        circuit_id: Target circuit
        pool_id: Pool the inputs live in
        merkle_root: Snapshot root every input proof was taken against
        signals: Signal name -> decimal string or list of decimal strings
        nullifiers: Spending nullifiers the operation publishes
        action_nullifiers: Action nullifiers the operation publishes
        outputs: Output notes to append
        extra: Operation-specific public values (order_id, vote_commitment, ...)
    """
    circuit_id: str
    pool_id: str
    merkle_root: int
    signals: Dict[str, object]
    nullifiers: List[int] = field(default_factory=list)
    action_nullifiers: List[int] = field(default_factory=list)
    outputs: List[OutputNote] = field(default_factory=list)
    extra: Dict[str, int] = field(default_factory=dict)


@dataclass(frozen=True)
class ProofBundle:
    """Proof plus every public value the caller submits with it."""
    circuit_id: str
    pool_id: str
    proof: Groth16Proof
    public_signals: List[str]
    merkle_root: int
    nullifiers: List[int]
    action_nullifiers: List[int]
    outputs: List[OutputNote]
    extra: Dict[str, int] = field(default_factory=dict)

    @property
    def output_commitments(self) -> List[int]:
        return [out.commitment for out in self.outputs]

    @property
    def proof_bytes(self) -> bytes:
        return self.proof.to_bytes()

    @property
    def all_nullifiers(self) -> List[int]:
        return list(self.nullifiers) + list(self.action_nullifiers)


@dataclass(frozen=True)
class _ResolvedInput:
    note: DecryptedNote
    spending_key: int
    public_key: Point
    commitment: int
    nullifier: int
    merkle_proof: MerkleProof


def _dec(value: int) -> str:
    return str(value)


# =============================================================================
# Assembler
# =============================================================================


class WitnessAssembler:
    """
    Builds circuit witnesses and drives the proving backend.

    Proof generation is CPU-bound and slow, so it runs on a dedicated
    executor instead of the event loop.
    """

    def __init__(
        self,
        prover: ProverBackend,
        circuits: Optional[Dict[str, CircuitSpec]] = None,
        executor: Optional[Executor] = None,
        merkle_depth: Optional[int] = None,
    ):
        """
        Initialize the assembler.

        Args:
            prover: Proving backend
            circuits: Circuit registry (defaults to the prover's, then CIRCUITS)
            executor: Executor for proving; a single-worker pool if None
            merkle_depth: Tree depth the circuits are compiled for; proofs of
                any other depth are rejected. Unchecked if None.
        """
        self.prover = prover
        self.circuits = circuits if circuits is not None else getattr(prover, "circuits", None)
        self._owns_executor = executor is None
        self._executor = executor
        self.merkle_depth = merkle_depth

    def _get_executor(self) -> Executor:
        if self._executor is None:
            self._executor = ThreadPoolExecutor(max_workers=1, thread_name_prefix="shieldcore-prover")
        return self._executor

    def close(self) -> None:
        if self._owns_executor and self._executor is not None:
            self._executor.shutdown(wait=True)
            self._executor = None

    def _circuit(self, circuit_id: str) -> CircuitSpec:
        return get_circuit(circuit_id, self.circuits)

    # =========================================================================
    # Shared Steps
    # =========================================================================

    def _resolve_input(
        self,
        keypair: Keypair,
        note: DecryptedNote,
        merkle_proof: MerkleProof,
        action_domain: Optional[int] = None,
    ) -> _ResolvedInput:
        sk = resolve_note_key(keypair, note)
        public_key = derive_public_key(sk)
        if public_key.x != note.stealth_pub_x:
            raise InvalidKeyError(f"Key does not own note at leaf {note.leaf_index} in {note.pool_id}")

        commitment = compute_commitment(note)
        if commitment != note.commitment:
            raise CommitmentMismatchError(f"Cached commitment for leaf {note.leaf_index} does not match note fields")

        if self.merkle_depth is not None and len(merkle_proof.path_elements) != self.merkle_depth:
            raise InvalidMerkleProofError(
                f"Merkle proof has depth {len(merkle_proof.path_elements)}, circuits expect {self.merkle_depth}"
            )
        if merkle_proof.leaf_index != note.leaf_index or not merkle_proof.verify(commitment):
            raise InvalidMerkleProofError(f"Merkle proof does not include leaf {note.leaf_index}")

        nk = derive_nullifier_key(sk)
        if action_domain is None:
            nullifier = derive_spending_nullifier(nk, commitment, note.leaf_index)
        else:
            nullifier = derive_action_nullifier(nk, commitment, action_domain)

        return _ResolvedInput(
            note=note,
            spending_key=sk,
            public_key=public_key,
            commitment=commitment,
            nullifier=nullifier,
            merkle_proof=merkle_proof,
        )

    def _resolve_inputs(
        self,
        keypair: Keypair,
        notes: Sequence[DecryptedNote],
        merkle_proofs: Sequence[MerkleProof],
        action_domain: Optional[int] = None,
    ) -> List[_ResolvedInput]:
        if not notes:
            raise ValueError("At least one input note is required")
        if len(notes) != len(merkle_proofs):
            raise ValueError("Each input note needs exactly one Merkle proof")
        if len({p.root for p in merkle_proofs}) != 1:
            raise ValueError("Input Merkle proofs must share one root")
        if len({n.pool_id for n in notes}) != 1 or len({n.token_id for n in notes}) != 1:
            raise ValueError("Input notes must share one pool and one token")
        if len({n.commitment for n in notes}) != len(notes):
            raise ValueError("Input notes must be distinct")
        return [self._resolve_input(keypair, n, p, action_domain) for n, p in zip(notes, merkle_proofs)]

    @staticmethod
    def _check_balance(inputs: Sequence[_ResolvedInput], outputs_total: int, unshield: int = 0, fee: int = 0) -> None:
        require(validate_amount(unshield, "unshield_amount"))
        require(validate_amount(fee, "fee"))
        available = sum(i.note.amount for i in inputs)
        required = outputs_total + unshield + fee
        if available < required:
            raise InsufficientFundsError(
                f"Inputs total {available} < outputs {outputs_total} + unshield {unshield} + fee {fee}",
                available=available,
                required=required,
            )

    @staticmethod
    def _input_signals(inp: _ResolvedInput, suffix: str = "") -> Dict[str, object]:
        return {
            f"in_stealth_pub_x{suffix}": _dec(inp.public_key.x),
            f"in_stealth_pub_y{suffix}": _dec(inp.public_key.y),
            f"in_amount{suffix}": _dec(inp.note.amount),
            f"in_randomness{suffix}": _dec(inp.note.randomness),
            f"in_stealth_spending_key{suffix}": _dec(inp.spending_key),
            f"merkle_path{suffix}": [_dec(e) for e in inp.merkle_proof.path_elements],
            f"merkle_path_indices{suffix}": [_dec(i) for i in inp.merkle_proof.path_indices],
            f"leaf_index{suffix}": _dec(inp.note.leaf_index),
        }

    @staticmethod
    def _output_signals(out: OutputNote, index: int) -> Dict[str, object]:
        return {
            f"out_stealth_pub_x_{index}": _dec(out.note.stealth_pub_x),
            f"out_amount_{index}": _dec(out.note.amount),
            f"out_randomness_{index}": _dec(out.note.randomness),
        }

    def _witness(
        self,
        circuit_id: str,
        inputs: Sequence[_ResolvedInput],
        signals: Dict[str, object],
        outputs: List[OutputNote],
        action: bool = False,
        extra: Optional[Dict[str, int]] = None,
    ) -> Witness:
        spec = self._circuit(circuit_id)
        public_signal_values(spec, signals)
        nullifiers = [i.nullifier for i in inputs]
        logger.debug(f"Assembled {circuit_id} witness ({len(inputs)} in, {len(outputs)} out)")
        return Witness(
            circuit_id=circuit_id,
            pool_id=inputs[0].note.pool_id,
            merkle_root=inputs[0].merkle_proof.root,
            signals=signals,
            nullifiers=[] if action else nullifiers,
            action_nullifiers=nullifiers if action else [],
            outputs=outputs,
            extra=dict(extra or {}),
        )

    # =========================================================================
    # Operations
    # =========================================================================

    def build_transfer(
        self,
        keypair: Keypair,
        note: DecryptedNote,
        merkle_proof: MerkleProof,
        outputs: Sequence[OutputSpec],
        unshield_amount: int = 0,
        fee: int = 0,
    ) -> Witness:
        """
        Private transfer of one note to up to three outputs, optionally
        unshielding part of the value to a public account.

        Two or fewer outputs use transfer/1x2, three use transfer/1x3.
        Missing outputs are filled with zero-amount dummies.
        """
        if len(outputs) > 3:
            raise ValueError(f"Transfer supports at most 3 outputs, got {len(outputs)}")
        circuit_id = "transfer/1x3" if len(outputs) == 3 else "transfer/1x2"
        spec = self._circuit(circuit_id)

        (inp,) = self._resolve_inputs(keypair, [note], [merkle_proof])
        resolved = [o.resolve(note.token_id) for o in outputs]
        self._check_balance([inp], sum(o.amount for o in resolved), unshield_amount, fee)
        while len(resolved) < spec.n_outputs:
            resolved.append(dummy_output(note.token_id))

        signals: Dict[str, object] = {
            "merkle_root": _dec(merkle_proof.root),
            "nullifier": _dec(inp.nullifier),
        }
        for i, out in enumerate(resolved, start=1):
            signals[f"out_commitment_{i}"] = _dec(out.commitment)
        signals.update({
            "token_mint": _dec(note.token_id),
            "unshield_amount": _dec(unshield_amount),
            "fee": _dec(fee),
        })
        signals.update(self._input_signals(inp))
        for i, out in enumerate(resolved, start=1):
            signals.update(self._output_signals(out, i))

        return self._witness(circuit_id, [inp], signals, resolved)

    def build_consolidation(
        self,
        keypair: Keypair,
        notes: Sequence[DecryptedNote],
        merkle_proofs: Sequence[MerkleProof],
        output: OutputSpec,
        fee: int = 0,
    ) -> Witness:
        """Merge two or three notes of one token into a single output."""
        if len(notes) not in (2, 3):
            raise ValueError(f"Consolidation takes 2 or 3 notes, got {len(notes)}")
        circuit_id = f"consolidate/{len(notes)}x1"

        inputs = self._resolve_inputs(keypair, notes, merkle_proofs)
        token_id = notes[0].token_id
        out = output.resolve(token_id)
        self._check_balance(inputs, out.amount, 0, fee)

        signals: Dict[str, object] = {"merkle_root": _dec(merkle_proofs[0].root)}
        for i, inp in enumerate(inputs, start=1):
            signals[f"nullifier_{i}"] = _dec(inp.nullifier)
        signals["out_commitment_1"] = _dec(out.commitment)
        signals["token_mint"] = _dec(token_id)
        signals["fee"] = _dec(fee)
        for i, inp in enumerate(inputs, start=1):
            signals.update(self._input_signals(inp, f"_{i}"))
        signals.update(self._output_signals(out, 1))

        return self._witness(circuit_id, inputs, signals, [out])

    def build_adapter_swap(
        self,
        keypair: Keypair,
        note: DecryptedNote,
        merkle_proof: MerkleProof,
        swap_amount: int,
        adapter_program: int,
        output_token_id: int,
        output: OutputSpec,
        min_output: int,
        change: Optional[OutputSpec] = None,
        fee: int = 0,
    ) -> Witness:
        """
        Swap part of a note through an external adapter program.

        swap_amount leaves the pool to the adapter; the adapter must deliver
        at least min_output of output_token_id into the output commitment.
        """
        require(validate_field_element(adapter_program, "adapter_program"))
        require(validate_field_element(output_token_id, "output_token_id"))
        require(validate_amount(swap_amount, "swap_amount"))
        require(validate_amount(min_output, "min_output"))
        if output.amount < min_output:
            raise ValueError(f"Output amount {output.amount} below min_output {min_output}")

        (inp,) = self._resolve_inputs(keypair, [note], [merkle_proof])
        out = output.resolve(output_token_id)
        change_out = change.resolve(note.token_id) if change is not None else dummy_output(note.token_id)
        self._check_balance([inp], swap_amount + change_out.amount, 0, fee)

        signals: Dict[str, object] = {
            "merkle_root": _dec(merkle_proof.root),
            "nullifier": _dec(inp.nullifier),
            "input_amount": _dec(swap_amount),
            "output_commitment": _dec(out.commitment),
            "change_commitment": _dec(change_out.commitment),
            "adapter_program": _dec(adapter_program),
            "min_output": _dec(min_output),
        }
        signals.update(self._input_signals(inp))
        signals.update({
            "token_mint": _dec(note.token_id),
            "fee": _dec(fee),
            "output_token": _dec(output_token_id),
            "out_stealth_pub_x": _dec(out.note.stealth_pub_x),
            "out_randomness": _dec(out.note.randomness),
            "change_stealth_pub_x": _dec(change_out.note.stealth_pub_x),
            "change_amount": _dec(change_out.amount),
            "change_randomness": _dec(change_out.note.randomness),
        })

        return self._witness("adapter/1x1", [inp], signals, [out, change_out])

    def build_order_create(
        self,
        keypair: Keypair,
        note: DecryptedNote,
        merkle_proof: MerkleProof,
        terms: OrderTerms,
        escrow_address: StealthAddress,
        maker_receive_stealth_pub_x: int,
        change: Optional[OutputSpec] = None,
        order_id: Optional[int] = None,
        fee: int = 0,
    ) -> Witness:
        """
        Lock offer_amount of a note into an escrow commitment for a limit order.
        """
        if terms.offer_token != note.token_id:
            raise ValueError("Order must offer the input note's token")
        require(validate_field_element(maker_receive_stealth_pub_x, "maker_receive_stealth_pub_x"))
        order_id = secrets.randbelow(FIELD_PRIME) if order_id is None else order_id
        require(validate_field_element(order_id, "order_id"))

        (inp,) = self._resolve_inputs(keypair, [note], [merkle_proof])
        escrow = OutputSpec.to_address(escrow_address, terms.offer_amount).resolve(terms.offer_token)
        change_out = change.resolve(note.token_id) if change is not None else dummy_output(note.token_id)
        self._check_balance([inp], escrow.amount + change_out.amount, 0, fee)
        terms_hash = terms.terms_hash()

        signals: Dict[str, object] = {
            "merkle_root": _dec(merkle_proof.root),
            "nullifier": _dec(inp.nullifier),
            "order_id": _dec(order_id),
            "escrow_commitment": _dec(escrow.commitment),
            "change_commitment": _dec(change_out.commitment),
            "terms_hash": _dec(terms_hash),
            "expiry": _dec(terms.expiry),
        }
        signals.update(self._input_signals(inp))
        signals.update({
            "offer_token": _dec(terms.offer_token),
            "offer_amount": _dec(terms.offer_amount),
            "ask_token": _dec(terms.ask_token),
            "ask_amount": _dec(terms.ask_amount),
            "escrow_stealth_pub_x": _dec(escrow.note.stealth_pub_x),
            "escrow_randomness": _dec(escrow.note.randomness),
            "maker_receive_stealth_pub_x": _dec(maker_receive_stealth_pub_x),
            "change_stealth_pub_x": _dec(change_out.note.stealth_pub_x),
            "change_amount": _dec(change_out.amount),
            "change_randomness": _dec(change_out.note.randomness),
            "fee": _dec(fee),
        })

        return self._witness(
            "market/order_create", [inp], signals, [escrow, change_out],
            extra={"order_id": order_id, "terms_hash": terms_hash},
        )

    def build_vote(
        self,
        keypair: Keypair,
        note: DecryptedNote,
        merkle_proof: MerkleProof,
        ballot_id: int,
        choice: int,
        vote_randomness: Optional[int] = None,
    ) -> Witness:
        """
        Cast a vote weighted by a note's amount.

        Uses an action nullifier scoped to the ballot: the note stays
        spendable and can vote once per ballot.

            vote_commitment = H(VOTE_COMMITMENT, action_nullifier, choice, amount, r)
        """
        require(validate_field_element(ballot_id, "ballot_id"))
        if not (0 <= choice < 256):
            raise ValueError(f"choice must be in [0, 256), got {choice}")
        vote_randomness = generate_randomness() if vote_randomness is None else vote_randomness
        require(validate_field_element(vote_randomness, "vote_randomness"))

        (inp,) = self._resolve_inputs(keypair, [note], [merkle_proof], action_domain=ballot_id)
        vote_commitment = poseidon_hash_domain(
            DOMAIN_VOTE_COMMITMENT,
            [inp.nullifier, choice, note.amount, vote_randomness],
        )

        signals: Dict[str, object] = {
            "merkle_root": _dec(merkle_proof.root),
            "action_nullifier": _dec(inp.nullifier),
            "ballot_id": _dec(ballot_id),
            "token_mint": _dec(note.token_id),
            "vote_commitment": _dec(vote_commitment),
        }
        signals.update(self._input_signals(inp))
        signals.update({
            "vote_choice": _dec(choice),
            "vote_randomness": _dec(vote_randomness),
        })

        return self._witness(
            "governance/vote", [inp], signals, [], action=True,
            extra={"vote_commitment": vote_commitment, "ballot_id": ballot_id},
        )

    # =========================================================================
    # Proving
    # =========================================================================

    async def prove(self, witness: Witness) -> ProofBundle:
        """
        Run the backend on the proving executor.

        Raises:
            ProverError: Propagated unchanged from the backend
        """
        spec = self._circuit(witness.circuit_id)
        loop = asyncio.get_running_loop()
        proof = await loop.run_in_executor(self._get_executor(), self.prover.prove, witness.circuit_id, witness.signals)

        return ProofBundle(
            circuit_id=witness.circuit_id,
            pool_id=witness.pool_id,
            proof=proof,
            public_signals=public_signal_values(spec, witness.signals),
            merkle_root=witness.merkle_root,
            nullifiers=list(witness.nullifiers),
            action_nullifiers=list(witness.action_nullifiers),
            outputs=list(witness.outputs),
            extra=dict(witness.extra),
        )


async def ensure_root_current(indexer: "IndexerClient", pool_id: str, root: int) -> None:
    """
    Confirm a witness root is still the pool's current root.

    Raises:
        StaleMerkleRootError: The pool has moved on; rebuild the witness
    """
    current = await indexer.get_merkle_root(pool_id)
    if current != root:
        raise StaleMerkleRootError(
            f"Root {hex(root)[:12]}... is stale for {pool_id}; current is {hex(current)[:12]}..."
        )
