import json
import os

from solders.keypair import Keypair

import main as cli


def _config(tmp_path, identity: str):
    path = tmp_path / "config.yaml"
    path.write_text(f'treasury: {{identity: "{identity}"}}\nledger: {{rpc_url: "http://rpc.test"}}\n', encoding="utf-8")
    return str(path)


def test_curve_table_prints_points(capsys):
    assert cli.main(["curve-table", "--curve", "linear", "--strength", "2", "--points", "4"]) == 0
    lines = capsys.readouterr().out.strip().splitlines()
    assert len(lines) == 5
    assert lines[0].split() == ["0.00", "1000000.00"]
    assert lines[-1].split() == ["1.00", "500000.00"]


def test_check_authority_ok(tmp_path, monkeypatch):
    kp = Keypair()
    monkeypatch.setenv("LAUNCHPAD_TREASURY_SECRET", json.dumps(list(bytes(kp))))
    monkeypatch.delenv("LAUNCHPAD_TREASURY", raising=False)
    assert cli.main(["--config", _config(tmp_path, str(kp.pubkey())), "check-authority"]) == 0


def test_check_authority_detects_drift(tmp_path, monkeypatch):
    monkeypatch.setenv("LAUNCHPAD_TREASURY_SECRET", json.dumps(list(bytes(Keypair()))))
    monkeypatch.delenv("LAUNCHPAD_TREASURY", raising=False)
    assert cli.main(["--config", _config(tmp_path, str(Keypair().pubkey())), "check-authority"]) == 1


def test_init_db_creates_sqlite_file(tmp_path, monkeypatch):
    db_file = tmp_path / "cli.db"
    monkeypatch.setenv("LAUNCHPAD_SQLITE_PATH", str(db_file))
    assert cli.main(["init-db"]) == 0
    assert os.path.exists(db_file)
