"""
Wallet configuration for shieldcore.

Defines the indexer endpoint, tracked pools, proving backend and local paths.

Sources, later ones winning:
1. Dataclass defaults
2. JSON config file
3. Environment variables (SHIELDCORE_*), after loading a .env file
"""

import json
import os
from dataclasses import dataclass, field, fields
from pathlib import Path
from typing import Dict, List, Optional

from dotenv import load_dotenv

from shieldcore.core.errors import ProofFormatError
from shieldcore.core.fees import FeeSchedule
from shieldcore.core.prover.circuits import CIRCUITS, get_layout
from shieldcore.core.state.merkle import DEFAULT_DEPTH

ENV_PREFIX = "SHIELDCORE_"
PROVER_BACKENDS = ("mock", "snarkjs")
LOG_LEVELS = ("DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL")


@dataclass
class WalletConfig:
    """Wallet configuration parameters"""

    # Indexer
    indexer_url: str = "http://localhost:8080"
    max_concurrent_requests: int = 8
    request_timeout: float = 30.0

    # Pools
    pools: List[str] = field(default_factory=lambda: ["default"])
    default_pool: Optional[str] = None  # first pool if unset
    merkle_depth: int = DEFAULT_DEPTH

    # Proving
    prover_backend: str = "mock"
    circuit_dir: Path = Path("circuits")
    node_path: str = "node"
    snarkjs_path: str = "snarkjs"
    prover_timeout: int = 300
    proof_layouts: Dict[str, str] = field(default_factory=dict)  # circuit_id -> layout name

    # Protocol fees (basis points)
    fees_enabled: bool = False
    transfer_fee_bps: int = 10
    unshield_fee_bps: int = 25
    swap_fee_bps: int = 30

    # Crypto
    poseidon_params_path: Optional[Path] = None

    # Paths
    data_dir: Path = Path("data")
    log_dir: Path = Path("logs")

    # Logging
    log_level: str = "INFO"
    log_to_file: bool = False

    def __post_init__(self):
        if self.default_pool is None and self.pools:
            self.default_pool = self.pools[0]
        self.circuit_dir = Path(self.circuit_dir)
        self.data_dir = Path(self.data_dir)
        self.log_dir = Path(self.log_dir)
        if self.poseidon_params_path is not None:
            self.poseidon_params_path = Path(self.poseidon_params_path)
        self.validate()

    def validate(self):
        """Raise ValueError on inconsistent settings."""
        if not self.pools:
            raise ValueError("At least one pool must be configured")
        if self.default_pool not in self.pools:
            raise ValueError(f"default_pool {self.default_pool!r} not in pools {self.pools}")
        if self.prover_backend not in PROVER_BACKENDS:
            raise ValueError(f"prover_backend must be one of {PROVER_BACKENDS}")
        if self.max_concurrent_requests < 1:
            raise ValueError("max_concurrent_requests must be at least 1")
        if not (1 <= self.merkle_depth <= 32):
            raise ValueError("merkle_depth must be in [1, 32]")
        if self.log_level.upper() not in LOG_LEVELS:
            raise ValueError(f"log_level must be one of {LOG_LEVELS}")
        self.fee_schedule()
        for circuit_id, layout_name in self.proof_layouts.items():
            if circuit_id not in CIRCUITS:
                raise ValueError(f"proof_layouts names unknown circuit {circuit_id!r}")
            try:
                get_layout(layout_name)
            except ProofFormatError as e:
                raise ValueError(str(e)) from e

    def fee_schedule(self) -> FeeSchedule:
        """Fee rates the verifier enforces; raises ValueError on out-of-range rates."""
        return FeeSchedule(
            transfer_bps=self.transfer_fee_bps,
            unshield_bps=self.unshield_fee_bps,
            swap_bps=self.swap_fee_bps,
            enabled=self.fees_enabled,
        )

    def ensure_dirs(self):
        """Create data and log directories."""
        self.data_dir.mkdir(exist_ok=True, parents=True)
        self.log_dir.mkdir(exist_ok=True, parents=True)


def _coerce(name: str, raw: str):
    if name in ("max_concurrent_requests", "merkle_depth", "prover_timeout",
                "transfer_fee_bps", "unshield_fee_bps", "swap_fee_bps"):
        return int(raw)
    if name == "request_timeout":
        return float(raw)
    if name in ("log_to_file", "fees_enabled"):
        return raw.strip().lower() in ("1", "true", "yes", "on")
    if name == "pools":
        return [p.strip() for p in raw.split(",") if p.strip()]
    if name == "proof_layouts":
        return json.loads(raw)
    return raw


def load_config(config_path: Optional[str] = None, env_file: Optional[str] = None) -> WalletConfig:
    """
    Load configuration from file and environment.

    Args:
        config_path: Optional JSON file with WalletConfig field names as keys
        env_file: Optional .env file (python-dotenv searches upward if None)

    Returns:
        WalletConfig instance

    Raises:
        ValueError: Unknown keys or invalid values
    """
    known = {f.name for f in fields(WalletConfig)}
    values: Dict[str, object] = {}

    if config_path:
        with open(config_path, "r", encoding="utf-8") as fh:
            data = json.load(fh)
        unknown = set(data) - known
        if unknown:
            raise ValueError(f"Unknown config keys: {sorted(unknown)}")
        values.update(data)

    load_dotenv(env_file)
    for name in known:
        raw = os.getenv(ENV_PREFIX + name.upper())
        if raw is not None:
            values[name] = _coerce(name, raw)

    return WalletConfig(**values)
