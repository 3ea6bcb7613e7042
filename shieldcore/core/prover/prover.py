"""
ZK Prover - Groth16 proof generation backends.

The proving backend is external and possibly slow (seconds) and
out-of-process. Witness assembly only talks to it through the
ProverBackend interface:

    prove(circuit_id, signals) -> Groth16Proof

Implementations:
1. MockProver (deterministic fake proofs for development and tests)
2. SnarkJSProver (node witness generation + `snarkjs groth16 prove`)

Backend failures raise ProverError carrying the backend's own message.
"""

import json
import subprocess
import tempfile
import time
from dataclasses import dataclass
from pathlib import Path
from typing import Dict, Optional, Protocol, runtime_checkable

from shieldcore.crypto import sha256, bytes_to_hex, hex_to_bytes
from shieldcore.core.errors import ProofFormatError, ProverError
from shieldcore.core.prover.circuits import (
    CIRCUITS,
    CircuitSpec,
    ProofLayout,
    encode_snarkjs_proof,
    get_circuit,
    get_layout,
)
from shieldcore.utils.logger import get_logger

logger = get_logger("prover")


# =============================================================================
# Groth16 Proof
# =============================================================================


@dataclass(frozen=True)
class Groth16Proof:
    """
    Encoded Groth16 proof.

    Attributes:
        a: Encoded G1 point A
        b: Encoded G2 point B
        c: Encoded G1 point C
        layout: Layout the bytes follow
    """
    a: bytes
    b: bytes
    c: bytes
    layout: ProofLayout

    def __post_init__(self):
        sizes = (len(self.a), len(self.b), len(self.c))
        expected = (self.layout.a_size, self.layout.b_size, self.layout.c_size)
        if sizes != expected:
            raise ProofFormatError(f"{self.layout.name} proof must be {expected} bytes, got {sizes}")

    def to_bytes(self) -> bytes:
        return self.a + self.b + self.c

    @classmethod
    def from_bytes(cls, data: bytes, layout: ProofLayout) -> "Groth16Proof":
        if len(data) != layout.total_size:
            raise ProofFormatError(f"{layout.name} proof must be {layout.total_size} bytes, got {len(data)}")
        a_end = layout.a_size
        b_end = a_end + layout.b_size
        return cls(a=data[:a_end], b=data[a_end:b_end], c=data[b_end:], layout=layout)

    def to_dict(self) -> dict:
        """Convert to JSON-serializable dict."""
        return {
            "a": bytes_to_hex(self.a),
            "b": bytes_to_hex(self.b),
            "c": bytes_to_hex(self.c),
            "layout": self.layout.name,
        }

    @classmethod
    def from_dict(cls, data: dict) -> "Groth16Proof":
        """Create from dict."""
        return cls(
            a=hex_to_bytes(data["a"]),
            b=hex_to_bytes(data["b"]),
            c=hex_to_bytes(data["c"]),
            layout=get_layout(data["layout"]),
        )


@runtime_checkable
class ProverBackend(Protocol):
    """Opaque proving service."""

    def prove(self, circuit_id: str, signals: Dict[str, object]) -> Groth16Proof:
        ...


# =============================================================================
# Mock Prover (Simulated ZK)
# =============================================================================


class MockProver:
    """
    Simulated Groth16 prover for development and testing.

    Produces deterministic proof bytes of the circuit's layout size, derived
    from the circuit id and signals. The bytes are not valid curve points.
    """

    def __init__(
        self,
        proving_delay_ms: int = 0,
        failure_message: Optional[str] = None,
        circuits: Optional[Dict[str, CircuitSpec]] = None,
    ):
        """
        Initialize mock prover.

        Args:
            proving_delay_ms: Simulated proving time in milliseconds
            failure_message: When set, every prove() fails with this message
            circuits: Circuit registry (defaults to CIRCUITS)
        """
        self.proving_delay_ms = proving_delay_ms
        self.failure_message = failure_message
        self.circuits = circuits if circuits is not None else CIRCUITS
        self.proofs_generated = 0
        self.last_signals: Optional[Dict[str, object]] = None

    def prove(self, circuit_id: str, signals: Dict[str, object]) -> Groth16Proof:
        spec = get_circuit(circuit_id, self.circuits)
        start_time = time.time()

        if self.proving_delay_ms:
            time.sleep(self.proving_delay_ms / 1000)

        if self.failure_message is not None:
            raise ProverError(self.failure_message)

        seed = sha256(circuit_id.encode() + json.dumps(signals, sort_keys=True).encode())
        stream = b""
        counter = 0
        while len(stream) < spec.layout.total_size:
            stream += sha256(seed + counter.to_bytes(4, "big"))
            counter += 1

        self.proofs_generated += 1
        self.last_signals = dict(signals)
        proving_time_ms = int((time.time() - start_time) * 1000)
        logger.info(f"Mock proof generated for {circuit_id} in {proving_time_ms}ms")

        return Groth16Proof.from_bytes(stream[:spec.layout.total_size], spec.layout)


# =============================================================================
# Real Prover (snarkjs integration)
# =============================================================================


class SnarkJSProver:
    """
    Groth16 prover using snarkjs via subprocess.

    Requires:
    - Node.js installed
    - snarkjs installed (npm install -g snarkjs)
    - Compiled circuit files per circuit:
        {circuit_dir}/{artifact}_js/{artifact}.wasm
        {circuit_dir}/{artifact}_js/generate_witness.js
        {circuit_dir}/{artifact}.zkey
    """

    def __init__(
        self,
        circuit_dir: Path,
        node_path: str = "node",
        snarkjs_path: str = "snarkjs",
        timeout: int = 300,
        circuits: Optional[Dict[str, CircuitSpec]] = None,
    ):
        """
        Initialize snarkjs prover.

        Args:
            circuit_dir: Directory containing compiled circuit files
            node_path: Node.js executable
            snarkjs_path: snarkjs executable
            timeout: Per-step timeout in seconds
            circuits: Circuit registry (defaults to CIRCUITS)
        """
        self.circuit_dir = Path(circuit_dir)
        self.node_path = node_path
        self.snarkjs_path = snarkjs_path
        self.timeout = timeout
        self.circuits = circuits if circuits is not None else CIRCUITS
        self.proofs_generated = 0

    def _paths(self, spec: CircuitSpec) -> Dict[str, Path]:
        js_dir = self.circuit_dir / f"{spec.artifact}_js"
        return {
            "wasm": js_dir / f"{spec.artifact}.wasm",
            "witness_js": js_dir / "generate_witness.js",
            "zkey": self.circuit_dir / f"{spec.artifact}.zkey",
        }

    def is_setup_complete(self, circuit_id: str) -> bool:
        """Check if circuit files exist."""
        spec = get_circuit(circuit_id, self.circuits)
        return all(path.exists() for path in self._paths(spec).values())

    def _run(self, args, step: str) -> None:
        try:
            result = subprocess.run(args, capture_output=True, text=True, timeout=self.timeout)
        except subprocess.TimeoutExpired as e:
            raise ProverError(f"{step} timed out after {self.timeout}s") from e
        except FileNotFoundError as e:
            raise ProverError(f"{step} failed: executable not found ({args[0]})") from e
        if result.returncode != 0:
            raise ProverError(f"{step} failed: {result.stderr.strip() or result.stdout.strip()}")

    def prove(self, circuit_id: str, signals: Dict[str, object]) -> Groth16Proof:
        """
        Generate a real Groth16 proof.

        Raises:
            ProverError: Missing artifacts or any backend failure
            ProofFormatError: Backend output does not fit the circuit layout
        """
        spec = get_circuit(circuit_id, self.circuits)
        paths = self._paths(spec)
        missing = [str(p) for p in paths.values() if not p.exists()]
        if missing:
            raise ProverError(f"Circuit {circuit_id} not compiled; missing {missing}")

        start_time = time.time()

        with tempfile.TemporaryDirectory(prefix="shieldcore-prove-") as tmp:
            work = Path(tmp)
            input_path = work / "input.json"
            witness_path = work / "witness.wtns"
            proof_path = work / "proof.json"
            public_path = work / "public.json"

            with open(input_path, "w") as f:
                json.dump(signals, f)

            self._run(
                [self.node_path, str(paths["witness_js"]), str(paths["wasm"]), str(input_path), str(witness_path)],
                "Witness generation",
            )
            self._run(
                [self.snarkjs_path, "groth16", "prove", str(paths["zkey"]), str(witness_path), str(proof_path), str(public_path)],
                "Proof generation",
            )

            try:
                with open(proof_path) as f:
                    proof_json = json.load(f)
            except (OSError, json.JSONDecodeError) as e:
                raise ProverError(f"Could not read proof.json: {e}") from e

        a, b, c = encode_snarkjs_proof(proof_json, spec.layout)
        self.proofs_generated += 1
        proving_time_ms = int((time.time() - start_time) * 1000)
        logger.info(f"Proof generated for {circuit_id} in {proving_time_ms}ms")

        return Groth16Proof(a=a, b=b, c=c, layout=spec.layout)
