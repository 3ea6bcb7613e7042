"""
Circuit registry and Groth16 proof layouts.

Proof Layouts:
-------------
The byte encoding of a Groth16 proof is part of each circuit's contract with
its on-chain verifier, so it is declared per circuit instead of hardcoded:

- groth16-256: A(64) with y negated || B(128) as x_im|x_re|y_im|y_re || C(64)
  Uncompressed, ready for a pairing-check verifier that expects -A.
- groth16-128: A(32) || B(64) || C(32), x coordinates only, with the
  sign of y in the most significant bit of the first byte.

Both layouts are built from snarkjs proof.json output after checking every
point lies on BN254 (py_ecc).
"""

from dataclasses import dataclass, replace
from typing import Dict, List, Optional, Tuple

from py_ecc.bn128 import FQ, FQ2, b, b2, field_modulus, is_on_curve, neg

from shieldcore.core.errors import ProofFormatError


# =============================================================================
# Proof Layouts
# =============================================================================


@dataclass(frozen=True)
class ProofLayout:
    """Byte sizes of the A, B, C components of an encoded proof."""
    name: str
    a_size: int
    b_size: int
    c_size: int

    @property
    def total_size(self) -> int:
        return self.a_size + self.b_size + self.c_size


GROTH16_256 = ProofLayout(name="groth16-256", a_size=64, b_size=128, c_size=64)
GROTH16_128 = ProofLayout(name="groth16-128", a_size=32, b_size=64, c_size=32)

LAYOUTS: Dict[str, ProofLayout] = {
    GROTH16_256.name: GROTH16_256,
    GROTH16_128.name: GROTH16_128,
}

_SIGN_FLAG = 0x80
_HALF_MODULUS = (field_modulus - 1) // 2


def get_layout(name: str) -> ProofLayout:
    layout = LAYOUTS.get(name)
    if layout is None:
        raise ProofFormatError(f"Unknown proof layout {name!r}; known: {sorted(LAYOUTS)}")
    return layout


def _b32(value: int) -> bytes:
    return value.to_bytes(32, byteorder="big")


def _flagged(x: int, negative: bool) -> bytes:
    data = bytearray(_b32(x))
    if negative:
        data[0] |= _SIGN_FLAG
    return bytes(data)


def _parse_g1(raw, name: str) -> Tuple[int, int]:
    try:
        x, y = int(raw[0]), int(raw[1])
    except (IndexError, TypeError, ValueError) as e:
        raise ProofFormatError(f"Malformed G1 point {name}: {raw!r}") from e
    if not is_on_curve((FQ(x), FQ(y)), b):
        raise ProofFormatError(f"Proof point {name} is not on BN254 G1")
    return x, y


def _parse_g2(raw, name: str) -> Tuple[int, int, int, int]:
    try:
        x_re, x_im = int(raw[0][0]), int(raw[0][1])
        y_re, y_im = int(raw[1][0]), int(raw[1][1])
    except (IndexError, TypeError, ValueError) as e:
        raise ProofFormatError(f"Malformed G2 point {name}: {raw!r}") from e
    if not is_on_curve((FQ2([x_re, x_im]), FQ2([y_re, y_im])), b2):
        raise ProofFormatError(f"Proof point {name} is not on BN254 G2")
    return x_re, x_im, y_re, y_im


def encode_snarkjs_proof(proof_json: dict, layout: ProofLayout) -> Tuple[bytes, bytes, bytes]:
    """
    Encode a snarkjs proof.json into (a, b, c) bytes for a layout.

    Raises:
        ProofFormatError: Malformed JSON, points off-curve, or unknown layout
    """
    try:
        pi_a, pi_b, pi_c = proof_json["pi_a"], proof_json["pi_b"], proof_json["pi_c"]
    except (KeyError, TypeError) as e:
        raise ProofFormatError("proof.json must contain pi_a, pi_b and pi_c") from e

    ax, ay = _parse_g1(pi_a, "A")
    bx_re, bx_im, by_re, by_im = _parse_g2(pi_b, "B")
    cx, cy = _parse_g1(pi_c, "C")

    if layout.name == GROTH16_256.name:
        neg_a = neg((FQ(ax), FQ(ay)))
        a = _b32(ax) + _b32(neg_a[1].n)
        b_bytes = _b32(bx_im) + _b32(bx_re) + _b32(by_im) + _b32(by_re)
        c = _b32(cx) + _b32(cy)
    elif layout.name == GROTH16_128.name:
        b_negative = by_im > _HALF_MODULUS if by_im != 0 else by_re > _HALF_MODULUS
        a = _flagged(ax, ay > _HALF_MODULUS)
        b_bytes = _flagged(bx_im, b_negative) + _b32(bx_re)
        c = _flagged(cx, cy > _HALF_MODULUS)
    else:
        raise ProofFormatError(f"No encoder for layout {layout.name!r}")

    return a, b_bytes, c


# =============================================================================
# Circuits
# =============================================================================


@dataclass(frozen=True)
class CircuitSpec:
    """
    Static description of a proving circuit.

    Attributes:
        circuit_id: Public name, e.g. "transfer/1x2"
        artifact: Basename of the wasm/zkey files
        n_inputs: Input notes consumed
        n_outputs: Output commitments produced
        public_signals: Names of public signals, in verifier order
        layout: Proof byte layout expected by the verifier
    """
    circuit_id: str
    artifact: str
    n_inputs: int
    n_outputs: int
    public_signals: Tuple[str, ...]
    layout: ProofLayout = GROTH16_256


CIRCUITS: Dict[str, CircuitSpec] = {
    spec.circuit_id: spec
    for spec in [
        CircuitSpec(
            circuit_id="transfer/1x2",
            artifact="transfer_1x2",
            n_inputs=1,
            n_outputs=2,
            public_signals=(
                "merkle_root", "nullifier", "out_commitment_1", "out_commitment_2",
                "token_mint", "unshield_amount", "fee",
            ),
        ),
        CircuitSpec(
            circuit_id="transfer/1x3",
            artifact="transfer_1x3",
            n_inputs=1,
            n_outputs=3,
            public_signals=(
                "merkle_root", "nullifier", "out_commitment_1", "out_commitment_2",
                "out_commitment_3", "token_mint", "unshield_amount", "fee",
            ),
        ),
        CircuitSpec(
            circuit_id="consolidate/2x1",
            artifact="consolidate_2x1",
            n_inputs=2,
            n_outputs=1,
            public_signals=(
                "merkle_root", "nullifier_1", "nullifier_2",
                "out_commitment_1", "token_mint", "fee",
            ),
        ),
        CircuitSpec(
            circuit_id="consolidate/3x1",
            artifact="consolidate_3x1",
            n_inputs=3,
            n_outputs=1,
            public_signals=(
                "merkle_root", "nullifier_1", "nullifier_2", "nullifier_3",
                "out_commitment_1", "token_mint", "fee",
            ),
        ),
        CircuitSpec(
            circuit_id="adapter/1x1",
            artifact="adapter_1x1",
            n_inputs=1,
            n_outputs=2,
            public_signals=(
                "merkle_root", "nullifier", "input_amount", "output_commitment",
                "change_commitment", "adapter_program", "min_output",
            ),
        ),
        CircuitSpec(
            circuit_id="market/order_create",
            artifact="order_create",
            n_inputs=1,
            n_outputs=2,
            public_signals=(
                "merkle_root", "nullifier", "order_id", "escrow_commitment",
                "change_commitment", "terms_hash", "expiry",
            ),
        ),
        CircuitSpec(
            circuit_id="governance/vote",
            artifact="vote",
            n_inputs=1,
            n_outputs=0,
            public_signals=(
                "merkle_root", "action_nullifier", "ballot_id", "token_mint", "vote_commitment",
            ),
        ),
    ]
}


def get_circuit(circuit_id: str, registry: Optional[Dict[str, CircuitSpec]] = None) -> CircuitSpec:
    """Look up a circuit, raising ValueError for unknown ids."""
    registry = CIRCUITS if registry is None else registry
    spec = registry.get(circuit_id)
    if spec is None:
        raise ValueError(f"Unknown circuit {circuit_id!r}")
    return spec


def build_registry(layout_overrides: Optional[Dict[str, str]] = None) -> Dict[str, CircuitSpec]:
    """
    Copy of the default registry with per-circuit layout overrides.

    Args:
        layout_overrides: circuit_id -> layout name
    """
    registry = dict(CIRCUITS)
    for circuit_id, layout_name in (layout_overrides or {}).items():
        registry[circuit_id] = replace(get_circuit(circuit_id), layout=get_layout(layout_name))
    return registry


def public_signal_values(spec: CircuitSpec, signals: Dict[str, object]) -> List[str]:
    """Public signals in verifier order, as decimal strings."""
    missing = [name for name in spec.public_signals if name not in signals]
    if missing:
        raise ValueError(f"{spec.circuit_id}: missing public signals {missing}")
    return [str(signals[name]) for name in spec.public_signals]
