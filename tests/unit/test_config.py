"""
Unit tests for wallet configuration.
"""

import json
import os
from pathlib import Path

import pytest

from shieldcore.core.config import WalletConfig, load_config


@pytest.fixture
def clean_env(monkeypatch):
    """Isolated os.environ without SHIELDCORE_* variables."""
    env = {k: v for k, v in os.environ.items() if not k.startswith("SHIELDCORE_")}
    monkeypatch.setattr(os, "environ", env)
    return env


class TestWalletConfig:
    """Tests for WalletConfig defaults and validation."""

    def test_defaults(self):
        config = WalletConfig()
        assert config.pools == ["default"]
        assert config.default_pool == "default"
        assert config.prover_backend == "mock"
        assert isinstance(config.data_dir, Path)

    def test_default_pool_is_first(self):
        assert WalletConfig(pools=["b", "a"]).default_pool == "b"

    def test_default_pool_must_be_tracked(self):
        with pytest.raises(ValueError):
            WalletConfig(pools=["a"], default_pool="b")

    def test_backend_validated(self):
        with pytest.raises(ValueError):
            WalletConfig(prover_backend="rapidsnark")

    def test_proof_layouts_validated(self):
        WalletConfig(proof_layouts={"transfer/1x2": "groth16-128"})
        with pytest.raises(ValueError):
            WalletConfig(proof_layouts={"transfer/9x9": "groth16-128"})
        with pytest.raises(ValueError):
            WalletConfig(proof_layouts={"transfer/1x2": "groth16-64"})

    def test_log_level_validated(self):
        assert WalletConfig(log_level="debug").log_level == "debug"
        with pytest.raises(ValueError):
            WalletConfig(log_level="chatty")

    def test_fee_schedule(self):
        assert WalletConfig().fee_schedule().enabled is False
        schedule = WalletConfig(fees_enabled=True, swap_fee_bps=50).fee_schedule()
        assert schedule.rate_for("swap") == 50
        assert schedule.rate_for("transfer") == 10
        with pytest.raises(ValueError):
            WalletConfig(swap_fee_bps=2000)

    def test_ensure_dirs(self, tmp_path):
        config = WalletConfig(data_dir=tmp_path / "d", log_dir=tmp_path / "l")
        config.ensure_dirs()
        assert (tmp_path / "d").is_dir()
        assert (tmp_path / "l").is_dir()


class TestLoadConfig:
    """Tests for load_config sources and precedence."""

    def test_json_file(self, tmp_path, clean_env):
        path = tmp_path / "wallet.json"
        path.write_text(json.dumps({
            "indexer_url": "http://indexer:9000",
            "pools": ["usdc", "sol"],
            "data_dir": str(tmp_path / "data"),
        }))
        config = load_config(str(path), env_file=str(tmp_path / "missing.env"))
        assert config.indexer_url == "http://indexer:9000"
        assert config.default_pool == "usdc"
        assert config.data_dir == tmp_path / "data"

    def test_unknown_key(self, tmp_path, clean_env):
        path = tmp_path / "wallet.json"
        path.write_text(json.dumps({"indexer": "x"}))
        with pytest.raises(ValueError, match="Unknown config keys"):
            load_config(str(path), env_file=str(tmp_path / "missing.env"))

    def test_env_overrides_file(self, tmp_path, clean_env):
        path = tmp_path / "wallet.json"
        path.write_text(json.dumps({"max_concurrent_requests": 2, "pools": ["a"]}))
        clean_env["SHIELDCORE_MAX_CONCURRENT_REQUESTS"] = "16"
        clean_env["SHIELDCORE_POOLS"] = "x, y"
        clean_env["SHIELDCORE_PROOF_LAYOUTS"] = '{"governance/vote": "groth16-128"}'
        clean_env["SHIELDCORE_LOG_TO_FILE"] = "true"
        clean_env["SHIELDCORE_FEES_ENABLED"] = "true"
        clean_env["SHIELDCORE_SWAP_FEE_BPS"] = "50"

        config = load_config(str(path), env_file=str(tmp_path / "missing.env"))
        assert config.max_concurrent_requests == 16
        assert config.pools == ["x", "y"]
        assert config.proof_layouts == {"governance/vote": "groth16-128"}
        assert config.log_to_file is True
        assert config.fee_schedule().rate_for("swap") == 50

    def test_dotenv_file(self, tmp_path, clean_env):
        env_file = tmp_path / ".env"
        env_file.write_text("SHIELDCORE_REQUEST_TIMEOUT=2.5\nSHIELDCORE_PROVER_BACKEND=snarkjs\n")
        config = load_config(env_file=str(env_file))
        assert config.request_timeout == 2.5
        assert config.prover_backend == "snarkjs"

    def test_invalid_env_value(self, tmp_path, clean_env):
        clean_env["SHIELDCORE_MERKLE_DEPTH"] = "0"
        with pytest.raises(ValueError):
            load_config(env_file=str(tmp_path / "missing.env"))
