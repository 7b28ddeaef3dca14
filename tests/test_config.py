import pytest

from civic_dao import config as civic_config
from civic_dao.civic_api import build_aggregator, build_pinner
from civic_dao.config import ZERO_ADDRESS, load_config
from civic_dao.settings import Settings

from conftest import DAO


def test_defaults(base_config):
    cfg = load_config(None)
    assert civic_config.chain_enabled(cfg) is False
    assert civic_config.get_contract_address(cfg, "civic_dao") == ZERO_ADDRESS
    assert civic_config.get_timelock_delay(cfg) == 172800
    assert civic_config.get_network(cfg)["chain_id"] == 80002
    assert civic_config.get_ipfs_api_url(cfg) == ""


def test_defaults_are_not_shared(base_config):
    first = load_config(None)
    first["chain"]["rpc_url"] = "http://mutated"
    first["contracts"]["civic_dao"] = DAO
    second = load_config(None)
    assert second["chain"]["rpc_url"] == ""
    assert second["contracts"]["civic_dao"] == ZERO_ADDRESS


def test_yaml_is_merged_over_defaults(base_config, tmp_path):
    path = tmp_path / "civic_config.yaml"
    path.write_text(
        "chain:\n"
        "  network: sepolia\n"
        "  rpc_url: http://localhost:8545\n"
        "contracts:\n"
        f"  civic_dao: '{DAO.upper().replace('0X', '0x')}'\n"
        "governance:\n"
        "  timelock_delay: 3600\n"
    )
    cfg = load_config(str(path))
    assert civic_config.get_rpc_url(cfg) == "http://localhost:8545"
    assert cfg["chain"]["timeout_sec"] == 10.0
    assert civic_config.get_contract_address(cfg, "civic_dao") == DAO
    assert civic_config.get_contract_address(cfg, "treasury") == ZERO_ADDRESS
    assert civic_config.get_timelock_delay(cfg) == 3600
    assert civic_config.get_network(cfg)["name"] == "Sepolia"


def test_missing_file_means_defaults(base_config, tmp_path):
    cfg = load_config(str(tmp_path / "nope.yaml"))
    assert cfg["governance"]["voting_period"] == 40320


def test_yaml_must_be_mapping(base_config, tmp_path):
    path = tmp_path / "bad.yaml"
    path.write_text("- just\n- a list\n")
    with pytest.raises(ValueError):
        load_config(str(path))


def test_env_overrides(base_config, monkeypatch):
    monkeypatch.setenv("RPC_URL", "http://node:8545")
    monkeypatch.setenv("CHAIN_TIMEOUT_SEC", "2.5")
    monkeypatch.setenv("TREASURY_ADDRESS", "0xABCDEF0000000000000000000000000000000001")
    monkeypatch.setenv("IPFS_HTTP_API", "/ip4/127.0.0.1/tcp/5001")
    cfg = load_config(None)
    assert civic_config.chain_enabled(cfg)
    assert cfg["chain"]["timeout_sec"] == 2.5
    assert cfg["contracts"]["treasury"] == "0xabcdef0000000000000000000000000000000001"
    assert civic_config.get_ipfs_api_url(cfg) == "/ip4/127.0.0.1/tcp/5001"


def test_bad_env_value(base_config, monkeypatch):
    monkeypatch.setenv("CHAIN_TIMEOUT_SEC", "soon")
    with pytest.raises(ValueError) as exc:
        load_config(None)
    assert "CHAIN_TIMEOUT_SEC" in str(exc.value)


def test_builders_follow_config(base_config, monkeypatch):
    offline = build_aggregator(base_config)
    try:
        assert offline.enabled is False
    finally:
        offline.close()
    assert build_pinner(base_config) is None

    monkeypatch.setenv("RPC_URL", "http://node:8545")
    monkeypatch.setenv("CHAIN_RECEIPT_TIMEOUT_SEC", "30")
    monkeypatch.setenv("IPFS_HTTP_API", "127.0.0.1:5001")
    cfg = load_config(None)
    online = build_aggregator(cfg)
    try:
        assert online.enabled is True
        assert online.gateway.receipt_timeout == 30.0
        assert online.gateway.rpc.url == "http://node:8545"
    finally:
        online.close()
    assert build_pinner(cfg).base == "http://127.0.0.1:5001"


def test_settings_from_env(monkeypatch):
    # Settings reads the environment when the class body runs, so check the helpers
    from civic_dao import settings as settings_mod

    monkeypatch.setenv("CIVIC_CORS_ORIGINS", "http://a.test, http://b.test,")
    assert settings_mod._csv("CIVIC_CORS_ORIGINS") == ["http://a.test", "http://b.test"]
    monkeypatch.setenv("CIVIC_SEED_DEMO", "false")
    assert settings_mod._flag("CIVIC_SEED_DEMO", "1") is False
    monkeypatch.setenv("CIVIC_SEED_DEMO", "Yes")
    assert settings_mod._flag("CIVIC_SEED_DEMO", "1") is True
    assert Settings.MAX_PAGE_LIMIT >= 1


def test_private_key_enables_local_signing(base_config, monkeypatch):
    from eth_account import Account

    key = "0x4c0883a69102937d6231471b5dbb6204fe5129617082792ae468d01a3f362318"
    monkeypatch.setenv("RPC_URL", "http://node:8545")
    monkeypatch.setenv("CHAIN_PRIVATE_KEY", key)
    cfg = load_config(None)
    assert cfg["chain"]["private_key"] == key
    online = build_aggregator(cfg)
    try:
        assert online.gateway.signs_locally is True
        assert online.gateway.sender == Account.from_key(key).address.lower()
    finally:
        online.close()

    monkeypatch.delenv("CHAIN_PRIVATE_KEY")
    fallback = build_aggregator(load_config(None))
    try:
        assert fallback.gateway.signs_locally is False
    finally:
        fallback.close()
