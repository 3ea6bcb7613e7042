"""
Poseidon Hash Function for shieldcore.

This module provides the ZK-friendly hash used for every commitment,
nullifier, key derivation and Merkle node in the protocol.

The permutation follows circomlib's reference Poseidon:
- state = [0, input_1, ..., input_n], width t = n + 1
- rounds_f = 8 full rounds, split 4 / 4 around the partial rounds
- rounds_p depends on t (circomlib table below)
- alpha = 5 (S-box exponent)
- output is state[0]

Domain Separation:
-----------------
Every call site passes a distinct small integer tag as the FIRST input:

    H(domain, x_1, ..., x_k) = Poseidon([domain, x_1, ..., x_k])

so a commitment hash can never be reinterpreted as a nullifier hash.
Tags are fixed at protocol-design time and never reused.

Round Constants:
---------------
Bit-exact agreement with deployed circuits requires circomlib's own constants.
They are loaded with `load_poseidon_params()` from a circomlibjs-format JSON
file ({"C": [...], "M": [...]}, indexed by t - 2). Without such a file,
constants are generated deterministically (SHAKE-256 seeded round constants,
Cauchy MDS matrix), which is sufficient for local ledgers and tests.

References:
- Poseidon paper: https://eprint.iacr.org/2019/458
- circomlib implementation: https://github.com/iden3/circomlib
"""

import hashlib
import json
from pathlib import Path
from typing import Dict, List, Optional, Tuple, Union

# BN254 scalar field prime
FIELD_PRIME = 21888242871839275222246405745257275088548364400416034343698204186575808495617

# Domain separators
DOMAIN_COMMITMENT = 0x01
DOMAIN_SPENDING_NULLIFIER = 0x02
DOMAIN_ACTION_NULLIFIER = 0x03
DOMAIN_NULLIFIER_KEY = 0x04
DOMAIN_STEALTH = 0x05
DOMAIN_MERKLE = 0x06
DOMAIN_EMPTY_LEAF = 0x07
DOMAIN_POSITION = 0x08
DOMAIN_LP = 0x09
DOMAIN_ORDER_TERMS = 0x0A
DOMAIN_VOTE_COMMITMENT = 0x0B
DOMAIN_INCOMING_VIEWING_KEY = 0x10

ROUNDS_F = 8

# circomlib partial round counts, indexed by t - 2
ROUNDS_P = [56, 57, 56, 60, 60, 63, 64, 63, 60, 66, 60, 65, 70, 60, 64, 68]

MAX_INPUTS = len(ROUNDS_P)


# =============================================================================
# Round Constants
# =============================================================================


def _generate_round_constants(t: int, rounds_f: int, rounds_p: int, seed: bytes = b"poseidon") -> List[int]:
    """
    Generate Poseidon round constants using a deterministic PRNG.

    One 32-byte SHAKE-256 chunk per constant, reduced modulo the field prime.
    The width is mixed into the seed so every t gets an independent stream.
    """
    total_rounds = rounds_f + rounds_p
    h = hashlib.shake_256(seed + b"-t" + str(t).encode())
    digest = h.digest(total_rounds * t * 32)

    constants = []
    for i in range(total_rounds * t):
        chunk = digest[i * 32:(i + 1) * 32]
        constants.append(int.from_bytes(chunk, byteorder="big") % FIELD_PRIME)

    return constants


def _generate_mds_matrix(t: int) -> List[List[int]]:
    """
    Generate MDS (Maximum Distance Separable) matrix for Poseidon.

    Uses a Cauchy matrix construction which is guaranteed to be MDS.
    """
    x = [(i + 1) % FIELD_PRIME for i in range(t)]
    y = [(t + i + 1) % FIELD_PRIME for i in range(t)]

    matrix = []
    for i in range(t):
        row = []
        for j in range(t):
            # M[i][j] = 1 / (x[i] + y[j]) mod p
            denom = (x[i] + y[j]) % FIELD_PRIME
            row.append(pow(denom, FIELD_PRIME - 2, FIELD_PRIME))
        matrix.append(row)

    return matrix


# t -> (round constants, MDS matrix)
_CONSTANTS: Dict[int, Tuple[List[int], List[List[int]]]] = {}
_PARAMS_SOURCE = "generated"


def _parse_constant(value: Union[str, int]) -> int:
    if isinstance(value, int):
        return value % FIELD_PRIME
    value = value.strip()
    if value.startswith(("0x", "0X")):
        return int(value, 16) % FIELD_PRIME
    return int(value) % FIELD_PRIME


def load_poseidon_params(path: Union[str, Path]) -> int:
    """
    Load circomlib round constants and MDS matrices from a JSON file.

    The file uses the circomlibjs layout: "C"[t-2] is the flat list of round
    constants for width t, "M"[t-2] the t x t mixing matrix. Replaces any
    previously cached constants.

    Returns:
        Number of widths loaded
    """
    global _PARAMS_SOURCE

    with open(path) as f:
        params = json.load(f)

    if "C" not in params or "M" not in params:
        raise ValueError(f"Poseidon params file {path} must contain 'C' and 'M'")

    loaded: Dict[int, Tuple[List[int], List[List[int]]]] = {}
    for idx, (c_list, m_rows) in enumerate(zip(params["C"], params["M"])):
        t = idx + 2
        expected = (ROUNDS_F + ROUNDS_P[idx]) * t
        if len(c_list) != expected:
            raise ValueError(f"t={t}: expected {expected} round constants, got {len(c_list)}")
        if len(m_rows) != t or any(len(row) != t for row in m_rows):
            raise ValueError(f"t={t}: MDS matrix must be {t}x{t}")
        loaded[t] = (
            [_parse_constant(c) for c in c_list],
            [[_parse_constant(v) for v in row] for row in m_rows],
        )

    _CONSTANTS.clear()
    _CONSTANTS.update(loaded)
    _PARAMS_SOURCE = str(path)
    return len(loaded)


def reset_poseidon_params() -> None:
    """Drop loaded constants and fall back to generated ones."""
    global _PARAMS_SOURCE
    _CONSTANTS.clear()
    _PARAMS_SOURCE = "generated"


def params_source() -> str:
    """Where the active constants came from ("generated" or a file path)."""
    return _PARAMS_SOURCE


def _get_constants(t: int) -> Tuple[List[int], List[List[int]]]:
    """Get or compute constants for width t."""
    if t not in _CONSTANTS:
        if _PARAMS_SOURCE != "generated":
            raise ValueError(f"Loaded Poseidon params do not cover width t={t}")
        _CONSTANTS[t] = (
            _generate_round_constants(t, ROUNDS_F, ROUNDS_P[t - 2]),
            _generate_mds_matrix(t),
        )
    return _CONSTANTS[t]


# =============================================================================
# Poseidon Core Implementation
# =============================================================================


def _sbox(x: int) -> int:
    """Apply S-box: x^5 mod p."""
    return pow(x, 5, FIELD_PRIME)


def _mds_multiply(state: List[int], matrix: List[List[int]]) -> List[int]:
    """Multiply state by MDS matrix."""
    t = len(state)
    return [
        sum(matrix[i][j] * state[j] for j in range(t)) % FIELD_PRIME
        for i in range(t)
    ]


def _add_round_constants(state: List[int], constants: List[int], round_idx: int) -> List[int]:
    t = len(state)
    offset = round_idx * t
    return [(state[i] + constants[offset + i]) % FIELD_PRIME for i in range(t)]


def poseidon_hash(inputs: List[int]) -> int:
    """
    Compute Poseidon hash of 1 to 16 field elements.

    Args:
        inputs: List of field elements (integers < FIELD_PRIME)

    Returns:
        Hash as a field element (integer)

    Raises:
        ValueError: If inputs are out of range or wrong count
    """
    n = len(inputs)
    if not (1 <= n <= MAX_INPUTS):
        raise ValueError(f"Poseidon supports 1-{MAX_INPUTS} inputs, got {n}")

    for i, val in enumerate(inputs):
        if not isinstance(val, int) or not (0 <= val < FIELD_PRIME):
            raise ValueError(f"Input {i} out of field range: {val}")

    t = n + 1
    constants, matrix = _get_constants(t)
    rounds_p = ROUNDS_P[t - 2]
    half_f = ROUNDS_F // 2

    state = [0] + list(inputs)

    for r in range(ROUNDS_F + rounds_p):
        state = _add_round_constants(state, constants, r)
        if r < half_f or r >= half_f + rounds_p:
            state = [_sbox(x) for x in state]
        else:
            state[0] = _sbox(state[0])
        state = _mds_multiply(state, matrix)

    return state[0]


def poseidon_hash_domain(domain: int, inputs: List[int]) -> int:
    """
    Domain-separated hash: Poseidon([domain, *inputs]).

    Args:
        domain: One of the DOMAIN_* tags
        inputs: Up to 15 field elements
    """
    return poseidon_hash([domain] + list(inputs))


# =============================================================================
# Field Encoding
# =============================================================================


def int_to_bytes32(val: int) -> bytes:
    """Convert field element to 32 bytes (big-endian)."""
    return val.to_bytes(32, byteorder="big")


def bytes32_to_int(data: bytes) -> int:
    """Convert canonical 32 bytes to field element."""
    if len(data) != 32:
        raise ValueError(f"Expected 32 bytes, got {len(data)}")
    val = int.from_bytes(data, byteorder="big")
    if val >= FIELD_PRIME:
        raise ValueError(f"Value {val} exceeds field prime")
    return val


def bytes_to_field(data: bytes) -> int:
    """
    Map arbitrary bytes (e.g. a 32-byte token mint address) into the field.

    Reduces the big-endian integer modulo FIELD_PRIME.
    """
    return int.from_bytes(data, byteorder="big") % FIELD_PRIME


def field_to_hex(val: int) -> str:
    """Encode a field element as 0x-prefixed 32-byte hex."""
    return "0x" + int_to_bytes32(val).hex()


def hex_to_field(hex_str: str) -> int:
    """Decode a 0x-prefixed (or bare) hex string into a canonical field element."""
    if hex_str.startswith(("0x", "0X")):
        hex_str = hex_str[2:]
    data = bytes.fromhex(hex_str.rjust(64, "0"))
    return bytes32_to_int(data)
