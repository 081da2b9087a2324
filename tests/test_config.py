import textwrap

import pytest

from seqsync.core.config import ConfigError, load_config


def _clear_env(monkeypatch):
    import os

    for key in list(os.environ):
        if key.startswith("SEQSYNC_"):
            monkeypatch.delenv(key, raising=False)


def test_defaults_and_run_id_generated(tmp_path, monkeypatch):
    _clear_env(monkeypatch)
    monkeypatch.chdir(tmp_path)
    cfg = load_config({"app": {"dry_run": True}}, files=(), use_dotenv=False)
    assert cfg.logging.console_level == "INFO"
    assert cfg.seq.timeout_sec == 30 and cfg.seq.verify_tls is True
    assert cfg.state.path == "./seqsync.state.json"
    assert cfg.desired.prune is True
    rid1 = cfg.run_id
    rid2 = cfg.run_id
    assert isinstance(rid1, str) and len(rid1) >= 8
    assert rid1 == rid2  # stable once generated


def test_file_then_env_then_cli_precedence(tmp_path, monkeypatch):
    _clear_env(monkeypatch)
    (tmp_path / "seqsync.yml").write_text(textwrap.dedent("""
      seq:
        server_url: "https://file.example"
        api_key: "FILE"
        timeout_sec: 5
      logging:
        console_level: "WARNING"
      desired:
        path: "./keys-from-file.yml"
    """), encoding="utf-8")
    monkeypatch.chdir(tmp_path)

    monkeypatch.setenv("SEQSYNC_SEQ__SERVER_URL", "https://env.example")
    monkeypatch.setenv("SEQSYNC_SEQ__VERIFY_TLS", "false")
    monkeypatch.setenv("SEQSYNC_SEQ__TIMEOUT_SEC", "12")

    cfg = load_config(
        {"seq": {"server_url": "https://cli.example"}},
        files=(str(tmp_path / "seqsync.yml"),),
        use_dotenv=False,
    )

    assert cfg.seq.server_url == "https://cli.example"   # CLI wins
    assert cfg.seq.verify_tls is False                   # env coerced to bool
    assert cfg.seq.timeout_sec == 12                     # env coerced to int
    assert cfg.seq.api_key == "FILE"                     # from file
    assert cfg.logging.console_level == "WARNING"
    assert cfg.desired.path == "./keys-from-file.yml"


def test_env_interpolation(tmp_path, monkeypatch):
    _clear_env(monkeypatch)
    (tmp_path / "seqsync.yml").write_text(textwrap.dedent("""
      seq:
        api_key: "${MY_SEQ_KEY}"
    """), encoding="utf-8")
    monkeypatch.chdir(tmp_path)
    monkeypatch.setenv("MY_SEQ_KEY", "SECRET_123")
    cfg = load_config({"app": {"dry_run": True}}, files=(str(tmp_path / "seqsync.yml"),), use_dotenv=False)
    assert cfg.seq.api_key == "SECRET_123"


def test_dotenv_is_loaded_without_overriding_env(tmp_path, monkeypatch):
    _clear_env(monkeypatch)
    (tmp_path / ".env").write_text(
        "SEQSYNC_SEQ__SERVER_URL=https://dotenv.example\nSEQSYNC_SEQ__API_KEY=FROM_DOTENV\n",
        encoding="utf-8",
    )
    monkeypatch.chdir(tmp_path)
    monkeypatch.setenv("SEQSYNC_SEQ__API_KEY", "FROM_ENV")
    # Remove what .env sets once the test ends.
    monkeypatch.setenv("SEQSYNC_SEQ__SERVER_URL", "placeholder")
    monkeypatch.delenv("SEQSYNC_SEQ__SERVER_URL")

    cfg = load_config(files=())
    assert cfg.seq.server_url == "https://dotenv.example"
    assert cfg.seq.api_key == "FROM_ENV"


def test_server_url_required_when_not_dry_run(tmp_path, monkeypatch):
    _clear_env(monkeypatch)
    monkeypatch.chdir(tmp_path)
    with pytest.raises(ConfigError) as ei:
        load_config({"app": {"dry_run": False}}, files=(), use_dotenv=False)
    assert "seq.server_url" in str(ei.value)


def test_invalid_timeout_and_unknown_keys(tmp_path, monkeypatch):
    _clear_env(monkeypatch)
    monkeypatch.chdir(tmp_path)
    with pytest.raises(ConfigError):
        load_config({"app": {"dry_run": True}, "seq": {"timeout_sec": "soon"}}, files=(), use_dotenv=False)
    with pytest.raises(ConfigError):
        load_config({"app": {"dry_run": True}, "seq": {"colour": "blue"}}, files=(), use_dotenv=False)


def test_non_mapping_yaml_is_rejected(tmp_path, monkeypatch):
    _clear_env(monkeypatch)
    (tmp_path / "seqsync.yml").write_text("- just\n- a list\n", encoding="utf-8")
    monkeypatch.chdir(tmp_path)
    with pytest.raises(ConfigError):
        load_config({"app": {"dry_run": True}}, files=(str(tmp_path / "seqsync.yml"),), use_dotenv=False)
