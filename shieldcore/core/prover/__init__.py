"""Proving: circuit registry, proof layouts, backends and witness assembly"""
from shieldcore.core.prover.circuits import (
    CIRCUITS,
    GROTH16_128,
    GROTH16_256,
    CircuitSpec,
    ProofLayout,
    build_registry,
    encode_snarkjs_proof,
    get_circuit,
    get_layout,
    public_signal_values,
)
from shieldcore.core.prover.prover import Groth16Proof, MockProver, ProverBackend, SnarkJSProver
from shieldcore.core.prover.witness import (
    OrderTerms,
    OutputNote,
    OutputSpec,
    ProofBundle,
    Witness,
    WitnessAssembler,
    dummy_output,
    ensure_root_current,
)

__all__ = [
    "CIRCUITS",
    "GROTH16_128",
    "GROTH16_256",
    "CircuitSpec",
    "ProofLayout",
    "build_registry",
    "encode_snarkjs_proof",
    "get_circuit",
    "get_layout",
    "public_signal_values",
    "Groth16Proof",
    "MockProver",
    "ProverBackend",
    "SnarkJSProver",
    "OrderTerms",
    "OutputNote",
    "OutputSpec",
    "ProofBundle",
    "Witness",
    "WitnessAssembler",
    "dummy_output",
    "ensure_root_current",
]
