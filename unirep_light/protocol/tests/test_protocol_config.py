"""Tests for protocol configuration"""

from pathlib import Path

import pytest

from unirep_light.protocol.config import DEFAULT_CONFIG, ProtocolConfig, load_config
from unirep_light.protocol.exceptions import ConfigurationError


def test_defaults_match_deployment() -> None:
    cfg = DEFAULT_CONFIG
    assert cfg.global_state_tree_depth == 4
    assert cfg.user_state_tree_depth == 4
    assert cfg.epoch_tree_depth == 8
    assert cfg.num_epoch_key_nonce_per_epoch == 3
    assert cfg.num_attestations_per_proof == 5
    assert cfg.max_reputation_budget == 10
    assert cfg.epoch_length == 30
    assert cfg.attesting_fee == 0
    assert cfg.max_users == 15
    assert cfg.max_attesters == 15


def test_load_config_none_returns_defaults() -> None:
    assert load_config() == DEFAULT_CONFIG


def test_load_config_partial_yaml(tmp_path: Path) -> None:
    path = tmp_path / "protocol.yaml"
    path.write_text("epoch_tree_depth: 10\nnum_attestations_per_proof: 2\n")
    cfg = load_config(path)
    assert cfg.epoch_tree_depth == 10
    assert cfg.num_attestations_per_proof == 2
    assert cfg.global_state_tree_depth == 4


def test_load_config_attesting_fee(tmp_path: Path) -> None:
    path = tmp_path / "protocol.yaml"
    path.write_text("attesting_fee: 1000000000000000\n")
    assert load_config(path).attesting_fee == 10**15


def test_load_config_empty_file(tmp_path: Path) -> None:
    path = tmp_path / "empty.yaml"
    path.write_text("")
    assert load_config(path) == DEFAULT_CONFIG


def test_load_config_rejects_unknown_keys(tmp_path: Path) -> None:
    path = tmp_path / "protocol.yaml"
    path.write_text("epoch_tree_depht: 10\n")
    with pytest.raises(ConfigurationError, match="epoch_tree_depht"):
        load_config(path)


def test_load_config_rejects_non_mapping(tmp_path: Path) -> None:
    path = tmp_path / "protocol.yaml"
    path.write_text("- 1\n- 2\n")
    with pytest.raises(ConfigurationError):
        load_config(path)


def test_load_config_missing_file(tmp_path: Path) -> None:
    with pytest.raises(ConfigurationError):
        load_config(tmp_path / "missing.yaml")


@pytest.mark.parametrize(
    "overrides",
    [
        {"global_state_tree_depth": 0},
        {"epoch_tree_depth": 40},
        {"num_epoch_key_nonce_per_epoch": 0},
        {"num_attestations_per_proof": -1},
        {"max_reputation_budget": "10"},
        {"attesting_fee": -1},
        {"attesting_fee": True},
    ],
)
def test_validate_rejects_bad_values(overrides) -> None:
    with pytest.raises(ConfigurationError):
        ProtocolConfig(**overrides).validate()


def test_round_trip_dict() -> None:
    cfg = ProtocolConfig(epoch_tree_depth=6)
    assert ProtocolConfig.from_dict(cfg.to_dict()) == cfg
