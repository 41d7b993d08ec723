import json

import pytest

from openclaw import cli


@pytest.fixture(autouse=True)
def quiet(monkeypatch, tmp_path):
    monkeypatch.chdir(tmp_path)
    monkeypatch.setattr(cli, "setup_logging", lambda *args, **kwargs: None)


def run(argv):
    with pytest.raises(SystemExit) as exc:
        cli.main(argv)
    return exc.value.code


def test_parse_kv_args():
    assert cli.parse_kv_args(["id=acme", "name=Acme Inc", "note=a=b"]) == {
        "id": "acme", "name": "Acme Inc", "note": "a=b",
    }
    with pytest.raises(ValueError, match="Expected key=value"):
        cli.parse_kv_args(["oops"])


def test_presets(capsys):
    assert run(["presets"]) == 0
    out = capsys.readouterr().out
    assert "deepseek" in out
    assert "deepseek/deepseek-chat" in out


def test_org_list(capsys):
    assert run(["org", "--list"]) == 0
    commands = capsys.readouterr().out.split()
    assert "org:create" in commands
    assert "mentor:progress" in commands


def test_org_create(capsys):
    assert run(["org", "org:create", "id=acme", "name=Acme", "level=company"]) == 0
    captured = capsys.readouterr()
    data = json.loads(captured.out)
    assert "org:create is not saved" in captured.err
    assert data["id"] == "acme"
    assert data["level"] == "company"


def test_org_errors(capsys):
    assert run(["org", "org:nope"]) == 2
    assert "Unknown command: org:nope" in capsys.readouterr().err

    assert run(["org", "org:create", "id=acme", "level=company"]) == 2
    assert "Missing argument: name" in capsys.readouterr().err

    assert run(["org", "org:create", "id=acme", "name=Acme", "level=planet"]) == 1
    assert "Error:" in capsys.readouterr().err


def test_org_loads_config(tmp_path, capsys):
    config = tmp_path / "org.json"
    config.write_text(json.dumps({
        "organizations": [{"id": "acme", "name": "Acme", "level": "company"}],
    }), encoding="utf-8")

    assert run(["org", "org:get", "id=acme", "--config", str(config)]) == 0
    captured = capsys.readouterr()
    assert json.loads(captured.out)["name"] == "Acme"
    assert "not saved" not in captured.err


def test_onboard_writes_config(tmp_path):
    path = tmp_path / "conf" / "openclaw.json"
    assert run(["onboard", "deepseek", "--config", str(path), "--api-key", "sk-1"]) == 0

    cfg = json.loads(path.read_text(encoding="utf-8"))
    assert cfg["models"]["providers"]["deepseek"]["apiKey"] == "sk-1"
    assert cfg["agents"]["defaults"]["model"]["primary"] == "deepseek/deepseek-chat"
    assert cfg["auth"]["profiles"]["deepseek:default"] == {"provider": "deepseek", "mode": "api_key"}


def test_onboard_unknown_preset(tmp_path, capsys):
    assert run(["onboard", "nope", "--config", str(tmp_path / "c.json")]) == 1
    assert "Unknown provider preset" in capsys.readouterr().err
    assert not (tmp_path / "c.json").exists()
