"""Tests for config loading: defaults, JSON file merge, env overrides."""

import json

import pytest

from mamastale import config


def _write(tmp_path, data) -> str:
    path = tmp_path / "mamastale.json"
    path.write_text(json.dumps(data))
    return str(path)


def test_defaults():
    conf = config.get_config()
    assert conf["anthropic"]["api_key"] == ""
    assert conf["auth"]["jwt_audience"] == "authenticated"
    assert conf["rate_limits"]["chat"] == {"limit": 20, "window": 60, "max_entries": 500, "ip_only": False}
    assert conf["rate_limits"]["like"]["ip_only"] is True


def test_cached_until_reload(monkeypatch):
    first = config.get_config()
    assert config.get_config() is first
    monkeypatch.setenv("ANTHROPIC_MODEL", "claude-other")
    assert config.get_config()["anthropic"]["model"] != "claude-other"
    assert config.reload_config()["anthropic"]["model"] == "claude-other"


def test_file_merges_nested_sections(tmp_path, monkeypatch):
    monkeypatch.setenv("MAMASTALE_CONFIG", _write(tmp_path, {
        "anthropic": {"max_tokens": 4000},
        "rate_limits": {"review": {"limit": 1}, "extra": {"limit": 7, "window": 10}},
    }))
    conf = config.reload_config()
    assert conf["anthropic"]["max_tokens"] == 4000
    assert conf["anthropic"]["base_url"] == "https://api.anthropic.com"
    assert conf["rate_limits"]["review"] == {"limit": 1, "window": 3600, "max_entries": 500, "ip_only": False}
    assert conf["rate_limits"]["extra"] == {"limit": 7, "window": 10}


def test_env_overrides_file(tmp_path, monkeypatch):
    monkeypatch.setenv("MAMASTALE_CONFIG", _write(tmp_path, {"anthropic": {"api_key": "from-file"}}))
    monkeypatch.setenv("ANTHROPIC_API_KEY", "from-env")
    monkeypatch.setenv("SUPABASE_JWT_SECRET", "jwt-secret")
    conf = config.reload_config()
    assert conf["anthropic"]["api_key"] == "from-env"
    assert conf["auth"]["jwt_secret"] == "jwt-secret"


def test_missing_file_uses_defaults(tmp_path, monkeypatch, caplog):
    monkeypatch.setenv("MAMASTALE_CONFIG", str(tmp_path / "absent.json"))
    with caplog.at_level("WARNING", logger="mamastale.config"):
        conf = config.reload_config()
    assert conf["rate_limits"]["chat"]["limit"] == 20
    assert "not found" in caplog.text


def test_defaults_not_mutated(tmp_path):
    conf = config.load_config(tmp_path / "absent.json")
    conf["rate_limits"]["chat"]["limit"] = 1
    assert config.load_config()["rate_limits"]["chat"]["limit"] == 20


def test_invalid_json_raises(tmp_path):
    path = tmp_path / "bad.json"
    path.write_text("{not json")
    with pytest.raises(json.JSONDecodeError):
        config.load_config(path)


# ── system_template ────────────────────────────────────────


def test_system_template_unset():
    assert config.system_template(config.get_config()) is None


def test_system_template_reads_file(tmp_path):
    path = tmp_path / "system.hbs"
    path.write_text("Be warm. {{#each stages}}{{id}}{{/each}}")
    assert config.system_template({"system_prompt_file": str(path)}).startswith("Be warm.")


def test_system_template_missing_file_falls_back(tmp_path, caplog):
    with caplog.at_level("WARNING", logger="mamastale.config"):
        template = config.system_template({"system_prompt_file": str(tmp_path / "absent.hbs")})
    assert template is None
    assert "using the default prompt" in caplog.text
