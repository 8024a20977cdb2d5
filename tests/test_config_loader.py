import textwrap

import pytest

from launchpad.utils.config_loader import EngineConfig, FeeConfig, PricingConfig, load_config, validate_config


def _write(tmp_path, body: str):
    path = tmp_path / "config.yaml"
    path.write_text(textwrap.dedent(body), encoding="utf-8")
    return path


def test_default_config_builds_engine_config():
    cfg = load_config(force_reload=True)
    engine = EngineConfig.from_dict(cfg)
    assert engine.pricing.base_rate == 1_000_000
    assert engine.pricing.min_rate == pytest.approx(20_000)
    assert engine.pricing.max_rate == pytest.approx(3_000_000)
    assert engine.pricing.issuance_window == 800_000_000
    assert engine.fees == FeeConfig()
    assert engine.treasury.protocol_fee_recipient == engine.treasury.identity


def test_env_overrides(tmp_path, monkeypatch):
    path = _write(
        tmp_path,
        """
        treasury: {identity: "FromYaml"}
        ledger: {rpc_url: "http://yaml"}
        """,
    )
    monkeypatch.setenv("LAUNCHPAD_RPC_URL", "http://env")
    monkeypatch.setenv("LAUNCHPAD_FEE_TREASURY", "FeeWallet")
    monkeypatch.setenv("LAUNCHPAD_ISSUANCE_WINDOW", "1000")
    engine = EngineConfig.from_dict(load_config(path, force_reload=True))
    assert engine.ledger.rpc_url == "http://env"
    assert engine.treasury.protocol_fee_recipient == "FeeWallet"
    assert engine.pricing.issuance_window == 1000


def test_load_config_returns_independent_copies(tmp_path):
    path = _write(tmp_path, 'treasury: {identity: "T"}\nledger: {rpc_url: "http://x"}\n')
    first = load_config(path, force_reload=True)
    first["treasury"]["identity"] = "mutated"
    assert load_config(path)["treasury"]["identity"] == "T"


def test_missing_sections_fail_fast(tmp_path):
    with pytest.raises(ValueError, match="treasury"):
        validate_config({"ledger": {"rpc_url": "x"}})
    with pytest.raises(ValueError, match="identity"):
        validate_config({"treasury": {}, "ledger": {"rpc_url": "x"}})
    with pytest.raises(FileNotFoundError):
        load_config(tmp_path / "absent.yaml", force_reload=True)


def test_non_mapping_yaml_is_rejected(tmp_path):
    path = _write(tmp_path, "- just\n- a list\n")
    with pytest.raises(ValueError, match="mapping"):
        load_config(path, force_reload=True)


def test_pricing_tables_accept_string_keys():
    cfg = PricingConfig.from_dict({"steepness": {"1": 0.1, "2": 0.2, "3": 0.3}, "sell_reference_progress": 0.5})
    assert cfg.steepness == {1: 0.1, 2: 0.2, 3: 0.3}
    assert cfg.sell_reference_progress == 0.5


def test_custom_fee_tiers():
    fees = FeeConfig.from_dict(
        {"pre_tiers": [{"max_base": 1, "total_bps": 90, "creator_bps": 10}, {"total_bps": 10}], "cap_pre": 5}
    )
    assert [t.total_bps for t in fees.pre_tiers] == [90, 10]
    assert fees.pre_tiers[1].max_base is None
    assert fees.cap_pre == 5
    assert fees.cap_post == 250_000_000
